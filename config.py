"""
Configuration file for the 2048 DQN Trainer
============================================

All hyperparameters, game settings, and pacing options are centralized here.
Modify these values to experiment with different training configurations.

Usage:
    from config import Config
    cfg = Config()
    print(cfg.DISCOUNT_RATE)
"""

from dataclasses import dataclass, field
from typing import List, Optional
import os
import torch


@dataclass
class Config:
    """
    Central configuration for the entire project.

    Sections:
    1. Game Settings - 2048 board parameters
    2. Neural Network - Architecture configuration
    3. Training - Replay and learning hyperparameters
    4. Pacing - Delays used for UI pacing and move backoff
    5. Execution - Worker process settings
    6. System - Hardware and paths
    7. Web - Dashboard server
    """

    # =========================================================================
    # GAME SETTINGS
    # =========================================================================

    # Board is TABLE_SIZE x TABLE_SIZE cells
    TABLE_SIZE: int = 4

    # Tiles spawned by reset()
    START_TILES: int = 2

    # Probability that a spawned tile is a 4 instead of a 2
    FOUR_PROBABILITY: float = 0.1

    # Reaching this tile wins the game
    WIN_TILE: int = 2048

    @property
    def STATE_SIZE(self) -> int:
        """Input layer size: one value per board cell."""
        return self.TABLE_SIZE * self.TABLE_SIZE

    # Action space: UP, DOWN, RIGHT, LEFT
    ACTION_SIZE: int = 4

    # =========================================================================
    # NEURAL NETWORK ARCHITECTURE
    # =========================================================================

    # Hidden layer sizes (ReLU between layers, linear output)
    HIDDEN_LAYERS: List[int] = field(default_factory=lambda: [128, 64, 32])

    # Batch normalization after every hidden layer
    USE_BATCH_NORM: bool = True

    # Dropout after every hidden layer except the last (0 disables)
    DROPOUT: float = 0.2

    # Adam learning rate
    LEARNING_RATE: float = 0.001

    # =========================================================================
    # TRAINING HYPERPARAMETERS
    # =========================================================================

    # Transition memory capacity (oldest transitions are evicted first)
    MEMORY_SLOTS: int = 1000

    # Environment steps per training round (one replay per round)
    STEPS: int = 50

    # Rounds (episodes) per training job
    TRAINING_ROUNDS: int = 10

    # Discount factor (gamma) for the one-step TD target
    # 0.95 values the next few moves, not the whole game
    DISCOUNT_RATE: float = 0.95

    # Transitions sampled per replay
    BATCH_SIZE: int = 32

    # Reward shaping: 'tiered' (default) or 'scaled'
    REWARD_FUNCTION: str = 'tiered'

    # =========================================================================
    # PACING
    # =========================================================================

    # Seconds between environment steps (UI pacing)
    TRAINING_DELAY: float = 0.05

    # Skip TRAINING_DELAY entirely (fast headless training)
    NO_DELAY: bool = False

    # Seconds to wait after the game rejects a move in play mode
    REJECTED_MOVE_BACKOFF: float = 0.05

    # Seconds between training rounds in the in-process executor
    ROUND_DELAY: float = 0.1

    # Safety cap for a single play() demonstration
    MAX_PLAY_STEPS: int = 10000

    # =========================================================================
    # EXECUTION
    # =========================================================================

    # Run training jobs in a separate worker process (falls back in-process)
    USE_WORKER: bool = True

    # Seconds to wait for any single worker message before giving up
    WORKER_TIMEOUT: float = 300.0

    # =========================================================================
    # SYSTEM SETTINGS
    # =========================================================================

    # Force CPU device (the network is tiny, GPU transfer costs dominate)
    FORCE_CPU: bool = True

    @property
    def DEVICE(self) -> torch.device:
        """Auto-detect CUDA/MPS/CPU, or force CPU if configured."""
        if self.FORCE_CPU:
            return torch.device('cpu')
        if torch.cuda.is_available():
            return torch.device('cuda')
        elif hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
            return torch.device('mps')
        return torch.device('cpu')

    # Paths
    MODEL_DIR: str = 'models'
    LOG_DIR: str = 'logs'

    @property
    def MODEL_PREFIX(self) -> str:
        """Filename prefix for auto-named checkpoints."""
        return 'game-model-'

    # Random seed for reproducibility (None for random)
    SEED: Optional[int] = None

    # =========================================================================
    # WEB SETTINGS
    # =========================================================================

    WEB_HOST: str = '0.0.0.0'
    WEB_PORT: int = 5000

    def __post_init__(self):
        """Validation."""
        assert self.TABLE_SIZE >= 2, "Table size must be at least 2"
        assert 1 <= self.START_TILES <= self.TABLE_SIZE * self.TABLE_SIZE, \
            "Start tiles must fit on the board"
        assert 0 <= self.FOUR_PROBABILITY <= 1, "Four probability must be in [0, 1]"
        assert self.LEARNING_RATE > 0, "Learning rate must be positive"
        assert 0 <= self.DISCOUNT_RATE < 1, "Discount rate must be in [0, 1)"
        assert self.BATCH_SIZE > 0, "Batch size must be positive"
        assert self.MEMORY_SLOTS > 0, "Memory slots must be positive"
        assert self.STEPS > 0, "Steps per round must be positive"
        assert self.TRAINING_ROUNDS > 0, "Training rounds must be positive"
        assert 0 <= self.DROPOUT < 1, "Dropout must be in [0, 1)"
        assert self.TRAINING_DELAY >= 0, "Training delay cannot be negative"
        assert self.REWARD_FUNCTION in ('tiered', 'scaled'), \
            "Reward function must be 'tiered' or 'scaled'"


# Global config instance for easy importing
config = Config()


if __name__ == "__main__":
    # Print configuration summary
    cfg = Config()
    print("=" * 60)
    print("2048 DQN Trainer - Configuration Summary")
    print("=" * 60)
    print(f"\nBoard: {cfg.TABLE_SIZE}x{cfg.TABLE_SIZE} (win at {cfg.WIN_TILE})")
    print(f"\nNeural Network:")
    print(f"   Input size: {cfg.STATE_SIZE}")
    print(f"   Hidden layers: {cfg.HIDDEN_LAYERS}")
    print(f"   Output size: {cfg.ACTION_SIZE}")
    print(f"\nTraining:")
    print(f"   Memory slots: {cfg.MEMORY_SLOTS}")
    print(f"   Rounds x steps: {cfg.TRAINING_ROUNDS} x {cfg.STEPS}")
    print(f"   Batch size: {cfg.BATCH_SIZE}")
    print(f"   Discount rate: {cfg.DISCOUNT_RATE}")
    print(f"   Reward: {cfg.REWARD_FUNCTION}")
    print(f"\nDevice: {cfg.DEVICE}")
    print(f"Models: {os.path.abspath(cfg.MODEL_DIR)}")
    print("=" * 60)
