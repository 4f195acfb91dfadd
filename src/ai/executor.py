"""
Training Executors
==================

Two ways to run a training job (N rounds of Orchestrator.run()):

    InProcessExecutor - runs the rounds against the live game, model and
                        memory in the calling thread
    WorkerExecutor    - runs the rounds in a separate process with its own
                        game and memory; only serialized weights and scalar
                        progress reports cross the process boundary

Worker message protocol (plain dicts tagged by 'type'):

    host -> worker
        {'type': 'train', 'model': bytes, 'config': Config,
         'rounds': int, 'steps': int, 'discount_rate': float}
        {'type': 'stop'}
    worker -> host
        {'type': 'progress', 'round': int, 'total_rounds': int,
         'reward': float, 'loss': float | None}
        {'type': 'complete', 'model': bytes, 'rewards': [...],
         'losses': [...], 'cancelled': bool}
        {'type': 'error', 'error': str}

The learning semantics are the same on both paths: the worker builds an
Orchestrator exactly like the host does.
"""

import multiprocessing as mp
import queue
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .memory import Memory
from .model import Model
from .orchestrator import Orchestrator
from .reward import get_reward_function
from src.game.game_2048 import Game2048
from src.utils.logger import get_logger, log_worker_event

import sys
sys.path.append('../..')
from config import Config

_logger = get_logger(__name__)


MSG_TRAIN = 'train'
MSG_STOP = 'stop'
MSG_PROGRESS = 'progress'
MSG_COMPLETE = 'complete'
MSG_ERROR = 'error'

# Seconds between polls of the worker outbox
POLL_INTERVAL = 0.1


class WorkerError(RuntimeError):
    """Raised when the worker process fails, times out or reports an error."""


@dataclass
class TrainingJob:
    """What to train: `rounds` runs of `steps` environment steps each."""
    rounds: int
    steps: int
    discount_rate: float


@dataclass
class RoundProgress:
    """Progress report emitted after each finished round."""
    round: int
    total_rounds: int
    reward: float
    loss: Optional[float] = None


@dataclass
class TrainingResult:
    """Outcome of a training job."""
    rewards: List[float] = field(default_factory=list)
    losses: List[Optional[float]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def rounds_completed(self) -> int:
        return len(self.rewards)


ProgressCallback = Callable[[RoundProgress], None]
StopCheck = Callable[[], bool]


def _never_stop() -> bool:
    return False


def _ignore_progress(progress: RoundProgress) -> None:
    pass


class TrainingExecutor(ABC):
    """Runs a TrainingJob and reports progress between rounds."""

    name = 'executor'

    @abstractmethod
    def execute(
        self,
        job: TrainingJob,
        on_progress: ProgressCallback = _ignore_progress,
        should_stop: StopCheck = _never_stop
    ) -> TrainingResult:
        """
        Run the job.

        Args:
            job: Rounds, steps per round and discount rate
            on_progress: Called after every finished round
            should_stop: Polled between rounds; True cancels the rest

        Returns:
            Per-round rewards and losses
        """
        pass


class InProcessExecutor(TrainingExecutor):
    """
    Runs training rounds in the calling thread.

    Example:
        >>> executor = InProcessExecutor(orchestrator, round_delay=0.1)
        >>> result = executor.execute(TrainingJob(rounds=10, steps=50, discount_rate=0.95))
    """

    name = 'in-process'

    def __init__(
        self,
        orchestrator: Orchestrator,
        round_delay: float = 0.0,
        no_delay: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.orchestrator = orchestrator
        self.round_delay = round_delay
        self.no_delay = no_delay
        self._sleep = sleep

    def execute(
        self,
        job: TrainingJob,
        on_progress: ProgressCallback = _ignore_progress,
        should_stop: StopCheck = _never_stop
    ) -> TrainingResult:
        self.orchestrator.max_steps_per_game = job.steps
        self.orchestrator.discount_rate = job.discount_rate

        result = TrainingResult()
        for i in range(job.rounds):
            if should_stop():
                _logger.debug(f"Stop requested before round {i + 1}/{job.rounds}")
                result.cancelled = True
                break

            episode = self.orchestrator.run()
            result.rewards.append(episode.total_reward)
            result.losses.append(episode.loss)
            on_progress(RoundProgress(
                round=i + 1,
                total_rounds=job.rounds,
                reward=episode.total_reward,
                loss=episode.loss,
            ))

            if not self.no_delay and self.round_delay > 0:
                self._sleep(self.round_delay)

        return result


def _stop_requested(inbox) -> bool:
    """Drain the inbox, True if a stop message arrived."""
    stop = False
    while True:
        try:
            message = inbox.get_nowait()
        except queue.Empty:
            return stop
        if message.get('type') == MSG_STOP:
            stop = True


def worker_main(inbox, outbox) -> None:
    """
    Entry point of the training worker process.

    Waits for one 'train' message, trains, replies with 'complete' or 'error'.
    """
    message = inbox.get()
    if message.get('type') != MSG_TRAIN:
        outbox.put({'type': MSG_ERROR, 'error': f"Unexpected message: {message.get('type')!r}"})
        return

    try:
        config: Config = message['config']
        model = Model(config.STATE_SIZE, config.ACTION_SIZE, config.BATCH_SIZE,
                      config=config, seed=config.SEED)
        model.load_state_dict_bytes(message['model'])

        orchestrator = Orchestrator(
            game=Game2048(config, seed=config.SEED),
            model=model,
            memory=Memory(config.MEMORY_SLOTS, seed=config.SEED),
            max_steps_per_game=message['steps'],
            no_delay=True,
            discount_rate=message['discount_rate'],
            reward_fn=get_reward_function(config.REWARD_FUNCTION),
        )

        rounds = message['rounds']
        rewards: List[float] = []
        losses: List[Optional[float]] = []
        cancelled = False
        for i in range(rounds):
            if _stop_requested(inbox):
                cancelled = True
                break
            episode = orchestrator.run()
            rewards.append(episode.total_reward)
            losses.append(episode.loss)
            outbox.put({
                'type': MSG_PROGRESS,
                'round': i + 1,
                'total_rounds': rounds,
                'reward': episode.total_reward,
                'loss': episode.loss,
            })

        outbox.put({
            'type': MSG_COMPLETE,
            'model': model.state_dict_bytes(),
            'rewards': rewards,
            'losses': losses,
            'cancelled': cancelled,
        })
    except Exception as e:
        outbox.put({'type': MSG_ERROR, 'error': f"{type(e).__name__}: {e}"})


class WorkerExecutor(TrainingExecutor):
    """
    Runs training rounds in a separate process.

    The host model's weights are serialized into the 'train' message and
    replaced with the worker's weights when 'complete' arrives. Any failure
    raises WorkerError and leaves the host model untouched.
    """

    name = 'worker'

    def __init__(
        self,
        model: Model,
        config: Config,
        start_method: str = 'spawn',
        timeout: Optional[float] = None,
        target: Callable[[Any, Any], None] = worker_main
    ):
        """
        Args:
            model: Host model, updated in place on success
            config: Configuration sent to the worker
            start_method: multiprocessing start method
            timeout: Seconds to wait for any single message (default: config)
            target: Worker entry point
        """
        self.model = model
        self.config = config
        self.start_method = start_method
        self.timeout = timeout if timeout is not None else config.WORKER_TIMEOUT
        self.target = target

    def execute(
        self,
        job: TrainingJob,
        on_progress: ProgressCallback = _ignore_progress,
        should_stop: StopCheck = _never_stop
    ) -> TrainingResult:
        ctx = mp.get_context(self.start_method)
        inbox = ctx.Queue()
        outbox = ctx.Queue()
        process = ctx.Process(target=self.target, args=(inbox, outbox), daemon=True)

        try:
            process.start()
        except (OSError, RuntimeError) as e:
            raise WorkerError(f"Could not start training worker: {e}") from e
        log_worker_event('start', pid=getattr(process, 'pid', None), rounds=job.rounds)

        try:
            inbox.put({
                'type': MSG_TRAIN,
                'model': self.model.state_dict_bytes(),
                'config': self.config,
                'rounds': job.rounds,
                'steps': job.steps,
                'discount_rate': job.discount_rate,
            })
            return self._collect(process, inbox, outbox, on_progress, should_stop)
        finally:
            process.join(timeout=1.0)
            if process.is_alive():
                process.terminate()
                process.join(timeout=1.0)

    def _collect(self, process, inbox, outbox, on_progress, should_stop) -> TrainingResult:
        waited = 0.0
        stop_sent = False
        while True:
            if not stop_sent and should_stop():
                inbox.put({'type': MSG_STOP})
                log_worker_event('stop requested')
                stop_sent = True

            try:
                message: Dict[str, Any] = outbox.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                if not process.is_alive():
                    raise WorkerError(f"Training worker exited unexpectedly (code {process.exitcode})")
                waited += POLL_INTERVAL
                if waited >= self.timeout:
                    raise WorkerError(f"Training worker silent for {self.timeout:.0f}s")
                continue

            waited = 0.0
            kind = message.get('type')
            if kind == MSG_PROGRESS:
                on_progress(RoundProgress(
                    round=message['round'],
                    total_rounds=message['total_rounds'],
                    reward=message['reward'],
                    loss=message.get('loss'),
                ))
            elif kind == MSG_COMPLETE:
                try:
                    self.model.load_state_dict_bytes(message['model'])
                except (RuntimeError, ValueError) as e:
                    raise WorkerError(f"Error loading model from worker: {e}") from e
                log_worker_event('complete', rounds=len(message['rewards']))
                return TrainingResult(
                    rewards=list(message['rewards']),
                    losses=list(message['losses']),
                    cancelled=message.get('cancelled', False),
                )
            elif kind == MSG_ERROR:
                raise WorkerError(message.get('error', 'unknown worker error'))
            else:
                raise WorkerError(f"Unexpected message from worker: {kind!r}")
