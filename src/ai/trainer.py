"""
Training Service
================

Owns the live game, the model and the transition memory, and exposes the
two long-running operations the UI triggers:

    train()  - TRAINING_ROUNDS rounds of Orchestrator.run(), in a worker
               process when possible, in-process otherwise
    play()   - demonstration moves with the current policy until the game
               is lost or won

While either runs, `busy` is set and keyboard input must be rejected.
`status` is a human readable string ('idle', 'Playing',
'Training round 3/10', ...).
"""

import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .executor import (
    InProcessExecutor, RoundProgress, TrainingExecutor, TrainingJob,
    TrainingResult, WorkerError, WorkerExecutor,
)
from .memory import Memory
from .model import Model
from .orchestrator import Orchestrator
from .reward import get_reward_function
from src.game.base_game import BaseGame
from src.utils.logger import get_logger, log_training_metrics

import sys
sys.path.append('../..')
from config import Config

_logger = get_logger(__name__)

STATUS_IDLE = 'idle'
STATUS_PLAYING = 'Playing'
STATUS_PREPARING = 'Preparing training...'
STATUS_WORKER = 'Training in worker...'
STATUS_ERROR = 'Training error'
STATUS_FALLBACK = 'Training in main thread (fallback)'
STATUS_MAIN_THREAD = 'Training in main thread'


@dataclass
class RoundStats:
    """Statistics for a single training round."""
    round: int
    total_reward: float
    steps: int
    loss: Optional[float]
    duration: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TrainingMetrics:
    """
    Tracks per-round training metrics.

    Metrics tracked:
        - Total reward per round
        - Steps per round
        - Replay loss (None when memory was empty)
        - Round durations
    """

    def __init__(self, history_length: int = 1000):
        self.history_length = history_length

        self.rewards: List[float] = []
        self.steps: List[int] = []
        self.losses: List[Optional[float]] = []
        self.durations: List[float] = []
        self.rounds_total = 0

    def add(self, stats: RoundStats) -> None:
        """Add round statistics."""
        self.rewards.append(stats.total_reward)
        self.steps.append(stats.steps)
        self.losses.append(stats.loss)
        self.durations.append(stats.duration)
        self.rounds_total += 1

        if len(self.rewards) > self.history_length:
            for attr in ['rewards', 'steps', 'losses', 'durations']:
                setattr(self, attr, getattr(self, attr)[-self.history_length:])

    def get_recent_average(self, metric: str, n: int = 100) -> float:
        """Average of the last n values for a metric, ignoring missing losses."""
        values = [v for v in getattr(self, metric, [])[-n:] if v is not None]
        if not values:
            return 0.0
        return float(np.mean(values))

    def get_best_reward(self) -> float:
        return max(self.rewards) if self.rewards else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rounds': self.rounds_total,
            'last_reward': self.rewards[-1] if self.rewards else None,
            'best_reward': self.get_best_reward(),
            'avg_reward': self.get_recent_average('rewards'),
            'avg_loss': self.get_recent_average('losses'),
        }


class TrainingService:
    """
    Coordinates training and demonstration play for one game.

    Example:
        >>> service = TrainingService(Game2048(), config)
        >>> service.set_model(Model(16, 4, 32))
        >>> service.train()
        >>> service.play()
    """

    def __init__(
        self,
        game: BaseGame,
        config: Optional[Config] = None,
        model: Optional[Model] = None,
        memory: Optional[Memory] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            game: Live game shown to the user
            config: Configuration object
            model: Initial model (can be set later with set_model)
            memory: Transition memory for in-process training
            sleep: Sleep function (injected by tests)
        """
        self.config = config or Config()
        self.game = game
        self.memory = memory or Memory(self.config.MEMORY_SLOTS, seed=self.config.SEED)
        self.metrics = TrainingMetrics()
        self._sleep = sleep

        self.model: Optional[Model] = None
        self.orchestrator: Optional[Orchestrator] = None

        self.busy = False
        self._status = STATUS_IDLE
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._round_started = 0.0

        self._on_status_callbacks: List[Callable[[str, bool], None]] = []
        self._on_state_callbacks: List[Callable[[BaseGame], None]] = []

        if model is not None:
            self.set_model(model)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def status(self) -> str:
        return self._status

    def _set_status(self, status: str) -> None:
        self._status = status
        for callback in self._on_status_callbacks:
            callback(status, self.busy)

    def _emit_state(self) -> None:
        for callback in self._on_state_callbacks:
            callback(self.game)

    def on_status(self, callback: Callable[[str, bool], None]) -> None:
        """Register callback(status, busy) for status changes."""
        self._on_status_callbacks.append(callback)

    def on_state(self, callback: Callable[[BaseGame], None]) -> None:
        """Register callback(game) for board changes made by the service."""
        self._on_state_callbacks.append(callback)

    def set_model(self, model: Optional[Model]) -> None:
        """Swap the model used by training and play."""
        self.model = model
        if model is None:
            self.orchestrator = None
            return

        self.orchestrator = Orchestrator(
            game=self.game,
            model=model,
            memory=self.memory,
            max_steps_per_game=self.config.STEPS,
            step_delay=self.config.TRAINING_DELAY,
            no_delay=self.config.NO_DELAY,
            discount_rate=self.config.DISCOUNT_RATE,
            rejected_move_backoff=self.config.REJECTED_MOVE_BACKOFF,
            reward_fn=get_reward_function(self.config.REWARD_FUNCTION),
            sleep=self._sleep,
        )

    def stop(self) -> None:
        """Request cancellation; honored between rounds and between play moves."""
        self._stop_event.set()

    def get_status(self) -> Dict[str, Any]:
        return {
            'status': self._status,
            'busy': self.busy,
            'has_model': self.model is not None,
            'memory_size': len(self.memory),
            'memory_capacity': self.memory.capacity,
            'metrics': self.metrics.to_dict(),
        }

    # =========================================================================
    # TRAINING
    # =========================================================================

    def _make_worker_executor(self) -> TrainingExecutor:
        return WorkerExecutor(self.model, self.config)

    def _make_in_process_executor(self) -> TrainingExecutor:
        return InProcessExecutor(
            self.orchestrator,
            round_delay=self.config.ROUND_DELAY,
            no_delay=self.config.NO_DELAY,
            sleep=self._sleep,
        )

    def _round_stats(self, progress: RoundProgress, steps: int) -> RoundStats:
        now = time.time()
        stats = RoundStats(
            round=progress.round,
            total_reward=progress.reward,
            steps=steps,
            loss=progress.loss,
            duration=now - self._round_started,
        )
        self._round_started = now
        return stats

    def _record_round(self, stats: RoundStats, memory_size: Optional[int] = None) -> None:
        self.metrics.add(stats)
        log_training_metrics(stats.round, stats.total_reward, loss=stats.loss,
                             steps=stats.steps, memory_size=memory_size)

    def _report_round(self, progress: RoundProgress) -> None:
        self._set_status(f"Training round {progress.round}/{progress.total_rounds}")
        self._emit_state()

    def _run_worker(self, job: TrainingJob) -> Optional[TrainingResult]:
        """
        Train in the worker process.

        Rounds are only committed to the metrics once the worker completes,
        so a failed worker leaves no trace before the fallback runs.

        Returns:
            The result, or None if the worker failed
        """
        pending: List[RoundStats] = []

        def on_progress(progress: RoundProgress) -> None:
            pending.append(self._round_stats(progress, job.steps))
            self._report_round(progress)

        try:
            result = self._make_worker_executor().execute(
                job, on_progress, self._stop_event.is_set)
        except WorkerError as e:
            _logger.error(f"Worker error: {e}")
            if pending:
                _logger.warning(f"Discarding {len(pending)} rounds from the failed worker")
            return None

        for stats in pending:
            self._record_round(stats)
        return result

    def _run_in_process(self, job: TrainingJob) -> TrainingResult:
        def on_progress(progress: RoundProgress) -> None:
            self._record_round(self._round_stats(progress, job.steps), memory_size=len(self.memory))
            self._report_round(progress)

        return self._make_in_process_executor().execute(job, on_progress, self._stop_event.is_set)

    def train(self, rounds: Optional[int] = None, steps: Optional[int] = None) -> bool:
        """
        Run a training job.

        Args:
            rounds: Number of rounds (default: config TRAINING_ROUNDS)
            steps: Steps per round (default: config STEPS)

        Returns:
            True if the job ran, False if there is no model or a job
            is already in flight
        """
        if self.model is None:
            _logger.error("No model: create or load one before training")
            return False

        if not self._lock.acquire(blocking=False):
            _logger.warning("Training request ignored: service is busy")
            return False

        try:
            self._stop_event.clear()
            self.busy = True
            job = TrainingJob(
                rounds=rounds if rounds is not None else self.config.TRAINING_ROUNDS,
                steps=steps if steps is not None else self.config.STEPS,
                discount_rate=self.config.DISCOUNT_RATE,
            )

            self.game.reset()
            self._emit_state()
            self._set_status(STATUS_PREPARING)
            self._round_started = time.time()

            result = None
            if self.config.USE_WORKER:
                self._set_status(STATUS_WORKER)
                result = self._run_worker(job)
                if result is None:
                    self._set_status(STATUS_ERROR)

            if result is None:
                self._set_status(STATUS_FALLBACK if self.config.USE_WORKER else STATUS_MAIN_THREAD)
                self._round_started = time.time()
                result = self._run_in_process(job)

            self._log_summary(job, result)
            return True
        finally:
            self.busy = False
            self._set_status(STATUS_IDLE)
            self._lock.release()

    def _log_summary(self, job: TrainingJob, result: TrainingResult) -> None:
        if result.cancelled:
            _logger.warning(f"Training stopped after {result.rounds_completed}/{job.rounds} rounds")
        else:
            _logger.info(f"Training complete: {result.rounds_completed} rounds")
        if result.rewards:
            _logger.info(
                f"Reward avg {np.mean(result.rewards):.1f}, "
                f"best {max(result.rewards):.1f}"
            )

    # =========================================================================
    # PLAY
    # =========================================================================

    def play(self, max_steps: Optional[int] = None) -> int:
        """
        Let the policy play the live game until it is lost or won.

        Returns:
            Number of moves attempted (0 if there is no model or the
            service is busy)
        """
        if self.model is None:
            _logger.error("No model: create or load one before playing")
            return 0

        if not self._lock.acquire(blocking=False):
            _logger.warning("Play request ignored: service is busy")
            return 0

        if max_steps is None:
            max_steps = self.config.MAX_PLAY_STEPS
        steps = 0
        try:
            self._stop_event.clear()
            self.busy = True
            self._set_status(STATUS_PLAYING)

            while steps < max_steps and not self._stop_event.is_set():
                lost, won = self.orchestrator.just_play()
                steps += 1
                self._emit_state()
                if lost or won:
                    break
                if not self.config.NO_DELAY:
                    self._sleep(self.config.TRAINING_DELAY)

            if steps >= max_steps:
                _logger.warning(f"Play stopped at the {max_steps} move limit")
            _logger.info(f"Steps performed: {steps}, score {self.game.score}")
            return steps
        finally:
            self.busy = False
            self._set_status(STATUS_IDLE)
            self._lock.release()
