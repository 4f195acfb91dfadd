#!/usr/bin/env python3
"""
2048 DQN - Main Entry Point
===========================

Play 2048 yourself, train the Q-learning agent, or watch it play.

Usage:
    # Play yourself in a pygame window (arrow keys)
    python main.py

    # Train headless for 20 rounds of 50 steps, then save
    python main.py --train --rounds 20 --steps 50 --save

    # Continue training a saved model in-process
    python main.py --train --model models/game-model-0.pth --no-worker --save

    # Watch a trained model play
    python main.py --play --model models/game-model-0.pth

    # Browser board with training controls
    python main.py --web --port 5000

Press (pygame window):
    - Arrow keys: Move (human mode)
    - R: New game
    - ESC or Q: Quit
"""

import warnings
warnings.filterwarnings("ignore", category=UserWarning, module="pygame.pkgdata")

import argparse
import os
import sys
import threading
import time
from typing import Optional

import numpy as np
import pygame
import torch

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import Config
from src.game import Game2048
from src.ai.model_store import ModelStore
from src.ai.trainer import TrainingService
from src.utils.logger import LogLevel, get_logger, setup_logging

_logger = get_logger('main')

KEY_DIRECTIONS = {
    pygame.K_UP: 'up',
    pygame.K_DOWN: 'down',
    pygame.K_RIGHT: 'right',
    pygame.K_LEFT: 'left',
}


class GameApp:
    """
    Pygame window around a TrainingService.

    Human mode maps arrow keys to moves; play mode runs service.play() in a
    background thread and only renders.
    """

    WINDOW_SIZE = 500
    FPS = 30

    def __init__(self, service: TrainingService, config: Config):
        self.service = service
        self.config = config
        self.running = True

        pygame.init()
        self.screen = pygame.display.set_mode((self.WINDOW_SIZE, self.WINDOW_SIZE + 60))
        pygame.display.set_caption("2048")
        self.clock = pygame.time.Clock()
        self.font = pygame.font.SysFont('arial', 24, bold=True)

    def _handle_events(self, human: bool) -> None:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type == pygame.KEYDOWN:
                if event.key in (pygame.K_ESCAPE, pygame.K_q):
                    self.running = False
                elif event.key == pygame.K_r and not self.service.busy:
                    self.service.game.reset()
                elif human and event.key in KEY_DIRECTIONS and not self.service.busy:
                    self.service.game.shift(KEY_DIRECTIONS[event.key])

    def _render(self) -> None:
        game = self.service.game
        self.screen.fill((250, 248, 239))
        header = f"Score: {game.score}   Best: {game.max_score}   {self.service.status}"
        self.screen.blit(self.font.render(header, True, (119, 110, 101)), (10, 15))

        board_surface = self.screen.subsurface(pygame.Rect(0, 60, self.WINDOW_SIZE, self.WINDOW_SIZE))
        game.render(board_surface)

        if game.is_won() or game.is_lost():
            text = "You win!" if game.is_won() else "Game over - press R"
            label = self.font.render(text, True, (119, 110, 101))
            self.screen.blit(label, label.get_rect(center=(self.WINDOW_SIZE // 2, 40)))

        pygame.display.flip()

    def run_human_mode(self) -> None:
        """Play with the arrow keys."""
        print("\n" + "=" * 60)
        print("  HUMAN PLAY MODE")
        print("=" * 60)
        print("   Arrow keys: Move")
        print("   R: New game")
        print("   Q/ESC: Quit")
        print("=" * 60 + "\n")

        self.service.game.reset()
        while self.running:
            self._handle_events(human=True)
            self._render()
            self.clock.tick(self.FPS)
        pygame.quit()

    def run_play_mode(self) -> None:
        """Watch the current model play until the game ends or the window closes."""
        print("\n🤖 AI Play Mode (No Training)")
        print("   Press Q to quit\n")

        self.service.game.reset()
        worker = threading.Thread(target=self.service.play, name='play', daemon=True)
        worker.start()

        while self.running:
            self._handle_events(human=False)
            self._render()
            self.clock.tick(self.FPS)

        self.service.stop()
        worker.join(timeout=2.0)
        pygame.quit()


def build_service(config: Config, model_path: Optional[str]):
    """Create the game, the training service and the model store, then load or create a model."""
    game = Game2048(config, seed=config.SEED)
    game.reset()
    service = TrainingService(game, config)
    store = ModelStore(service, config)

    if model_path:
        if not store.load_model(model_path):
            raise SystemExit(f"Could not load model: {model_path}")
        print(f"📂 Loaded model: {store.selected}")
    else:
        store.create_model()
    return service, store


def run_training(config: Config, args: argparse.Namespace) -> None:
    """Headless training."""
    service, store = build_service(config, args.model)

    print("\n" + "=" * 60)
    print("🧠 Starting DQN Training")
    print("=" * 60)
    print(f"   Rounds: {args.rounds or config.TRAINING_ROUNDS}")
    print(f"   Steps per round: {args.steps or config.STEPS}")
    print(f"   Device: {config.DEVICE}")
    print(f"   Executor: {'worker process' if config.USE_WORKER else 'in-process'}")
    print("=" * 60 + "\n")

    try:
        service.train(rounds=args.rounds, steps=args.steps)
    except KeyboardInterrupt:
        print("\n\n⛔ Training interrupted by user")

    metrics = service.metrics.to_dict()
    print("\n" + "=" * 60)
    print("✅ Training Complete!")
    print("=" * 60)
    print(f"   Rounds: {metrics['rounds']}")
    print(f"   Best reward: {metrics['best_reward']:.1f}")
    print(f"   Avg loss: {metrics['avg_loss']:.4f}")
    print("=" * 60)

    if args.save:
        path = store.save_model() if not store.selected else (
            store.selected if store.overwrite_model() else None)
        if path:
            print(f"💾 Model saved: {path}")


def run_web_mode(config: Config, args: argparse.Namespace) -> None:
    """Serve the browser board until interrupted."""
    from src.web import GameServer

    service, store = build_service(config, args.model)
    server = GameServer(service, store, config, port=args.port)
    server.start()
    print(f"🌐 Open http://localhost:{server.port} (Ctrl+C to quit)")

    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        server.stop()


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="2048 DQN - Play 2048 and train a Q-learning agent to play it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES
========
    python main.py                                  Play yourself
    python main.py --train --rounds 50 --save       Train and save a new model
    python main.py --play --model models/game-model-0.pth
    python main.py --web                            Browser UI at localhost:5000
        """
    )

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument('--train', action='store_true', help='Headless training')
    mode_group.add_argument('--play', action='store_true', help='Watch the model play')
    mode_group.add_argument('--web', action='store_true', help='Run the browser board and controls')

    parser.add_argument('--rounds', type=int, default=None, help='Training rounds (default: config)')
    parser.add_argument('--steps', type=int, default=None, help='Steps per training round (default: config)')
    parser.add_argument('--model', type=str, default=None, help='Checkpoint to load (inside MODEL_DIR)')
    parser.add_argument('--save', action='store_true', help='Save the model after training')
    parser.add_argument('--no-delay', action='store_true', help='Skip all pacing sleeps')
    parser.add_argument('--no-worker', action='store_true', help='Train in-process instead of in a worker')
    parser.add_argument('--cpu', action='store_true', help='Force CPU')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--port', type=int, default=None, help='Web server port (default: config)')
    parser.add_argument(
        '--log-level', type=str, default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging verbosity'
    )
    return parser.parse_args(argv)


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Apply CLI overrides to the configuration."""
    if args.rounds is not None and args.rounds <= 0:
        raise SystemExit("--rounds must be positive")
    if args.steps is not None and args.steps <= 0:
        raise SystemExit("--steps must be positive")

    if args.no_delay:
        config.NO_DELAY = True
    if args.no_worker:
        config.USE_WORKER = False
    if args.cpu:
        config.FORCE_CPU = True
    if args.seed is not None:
        np.random.seed(args.seed)
        torch.manual_seed(args.seed)
        config.SEED = args.seed
    return config


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    config = apply_args(Config(), args)
    setup_logging(config.LOG_DIR, level=LogLevel[args.log_level], file_output=args.train, force=True)

    if args.train:
        run_training(config, args)
    elif args.web:
        run_web_mode(config, args)
    else:
        service, _ = build_service(config, args.model)
        app = GameApp(service, config)
        if args.play:
            app.run_play_mode()
        else:
            app.run_human_mode()


if __name__ == "__main__":
    main()
