"""
Tests for the TrainingService and its metrics.

These tests verify:
    - Missing model and busy guards
    - Status transitions and the busy flag
    - Worker preference and the in-process fallback
    - Demonstration play
"""

import pytest
import torch
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from src.ai.executor import RoundProgress, TrainingExecutor, TrainingResult, WorkerError
from src.ai.model import Model
from src.ai.trainer import (
    TrainingService, TrainingMetrics, RoundStats,
    STATUS_ERROR, STATUS_FALLBACK, STATUS_IDLE, STATUS_MAIN_THREAD,
    STATUS_PLAYING, STATUS_PREPARING, STATUS_WORKER,
)
from src.game.game_2048 import Game2048


class BrokenWorker(TrainingExecutor):
    def execute(self, job, on_progress=None, should_stop=None):
        raise WorkerError("worker crashed")


class EchoWorker(TrainingExecutor):
    """Reports every round without doing any work."""

    def execute(self, job, on_progress=None, should_stop=None):
        result = TrainingResult()
        for i in range(job.rounds):
            on_progress(RoundProgress(round=i + 1, total_rounds=job.rounds, reward=1.0))
            result.rewards.append(1.0)
            result.losses.append(None)
        return result


class PartialWorker(TrainingExecutor):
    """Reports one round, then crashes."""

    def execute(self, job, on_progress=None, should_stop=None):
        on_progress(RoundProgress(round=1, total_rounds=job.rounds, reward=99.0))
        raise WorkerError("worker crashed mid-job")


@pytest.fixture
def service(fast_config):
    torch.manual_seed(0)
    game = Game2048(fast_config, seed=0)
    model = Model(fast_config.STATE_SIZE, fast_config.ACTION_SIZE, fast_config.BATCH_SIZE,
                  config=fast_config, seed=0)
    return TrainingService(game, fast_config, model=model, sleep=lambda s: None)


@pytest.fixture
def statuses(service):
    recorded = []
    service.on_status(lambda status, busy: recorded.append((status, busy)))
    return recorded


class TestTrainingMetrics:
    """Test metric tracking."""

    def test_add_and_best(self):
        metrics = TrainingMetrics()
        metrics.add(RoundStats(1, 10.0, 50, 0.5, 0.1))
        metrics.add(RoundStats(2, 30.0, 50, None, 0.1))
        assert metrics.get_best_reward() == 30.0
        assert metrics.get_recent_average('rewards') == 20.0
        # Missing losses are ignored
        assert metrics.get_recent_average('losses') == 0.5

    def test_history_trimmed(self):
        metrics = TrainingMetrics(history_length=5)
        for i in range(8):
            metrics.add(RoundStats(i, float(i), 10, 0.1, 0.0))
        assert metrics.rewards == [3.0, 4.0, 5.0, 6.0, 7.0]
        assert metrics.rounds_total == 8

    def test_empty(self):
        metrics = TrainingMetrics()
        assert metrics.get_best_reward() == 0.0
        assert metrics.to_dict()['last_reward'] is None


class TestTrain:
    """Test train()."""

    def test_no_model(self, fast_config, caplog):
        service = TrainingService(Game2048(fast_config, seed=0), fast_config)
        with caplog.at_level("ERROR"):
            assert service.train() is False
        assert "No model" in caplog.text
        assert service.status == STATUS_IDLE
        assert not service.busy

    def test_in_process_training(self, service, statuses, fast_config):
        assert service.train() is True

        assert service.metrics.rounds_total == fast_config.TRAINING_ROUNDS
        assert service.model.train_steps == fast_config.TRAINING_ROUNDS
        assert len(service.memory) == fast_config.TRAINING_ROUNDS * fast_config.STEPS
        names = [s for s, _ in statuses]
        assert names[0] == STATUS_PREPARING
        assert STATUS_MAIN_THREAD in names
        assert "Training round 1/2" in names
        assert "Training round 2/2" in names
        assert names[-1] == STATUS_IDLE
        assert statuses[-1][1] is False
        assert service.status == STATUS_IDLE

    def test_busy_while_training(self, service, statuses):
        service.train()
        assert all(busy for status, busy in statuses if status.startswith("Training round"))

    def test_rounds_and_steps_override(self, service):
        service.train(rounds=1, steps=3)
        assert service.metrics.rounds_total == 1
        assert len(service.memory) == 3

    def test_worker_preferred(self, service, statuses, monkeypatch):
        service.config.USE_WORKER = True
        monkeypatch.setattr(service, '_make_worker_executor', lambda: EchoWorker())

        assert service.train(rounds=2) is True

        names = [s for s, _ in statuses]
        assert STATUS_WORKER in names
        assert STATUS_FALLBACK not in names
        # In-process training never ran
        assert service.model.train_steps == 0
        assert service.metrics.rounds_total == 2

    def test_worker_failure_falls_back(self, service, statuses, monkeypatch):
        service.config.USE_WORKER = True
        monkeypatch.setattr(service, '_make_worker_executor', lambda: BrokenWorker())

        assert service.train(rounds=2) is True

        names = [s for s, _ in statuses]
        assert names.index(STATUS_WORKER) < names.index(STATUS_ERROR) < names.index(STATUS_FALLBACK)
        assert service.model.train_steps == 2
        assert service.status == STATUS_IDLE
        assert not service.busy

    def test_failed_worker_rounds_not_recorded(self, service, statuses, monkeypatch):
        service.config.USE_WORKER = True
        monkeypatch.setattr(service, '_make_worker_executor', lambda: PartialWorker())

        assert service.train(rounds=2) is True

        assert service.metrics.rounds_total == 2
        # Rewards come from the in-process rounds only
        assert 99.0 not in service.metrics.rewards
        assert service.metrics.get_best_reward() != 99.0
        names = [s for s, _ in statuses]
        assert names.index(STATUS_ERROR) < names.index(STATUS_FALLBACK)

    def test_worker_rounds_record_job_steps(self, service, monkeypatch):
        service.config.USE_WORKER = True
        monkeypatch.setattr(service, '_make_worker_executor', lambda: EchoWorker())

        service.train(rounds=2, steps=3)

        assert service.metrics.steps == [3, 3]
        assert service.metrics.rewards == [1.0, 1.0]

    def test_in_process_rounds_record_job_steps(self, service):
        service.train(rounds=1, steps=4)
        assert service.metrics.steps == [4]

    def test_second_job_refused_while_busy(self, service, monkeypatch):
        nested = []

        class ReentrantWorker(EchoWorker):
            def execute(self, job, on_progress=None, should_stop=None):
                nested.append(service.train())
                nested.append(service.play())
                return super().execute(job, on_progress, should_stop)

        service.config.USE_WORKER = True
        monkeypatch.setattr(service, '_make_worker_executor', lambda: ReentrantWorker())

        assert service.train(rounds=1) is True
        assert nested == [False, 0]

    def test_stop_cancels_remaining_rounds(self, service):
        service.on_status(lambda status, busy: service.stop() if status.endswith("1/5") else None)
        service.train(rounds=5)
        assert service.metrics.rounds_total == 1

    def test_game_reset_before_training(self, service, monkeypatch):
        resets = []
        original = service.game.reset
        monkeypatch.setattr(service.game, 'reset', lambda: resets.append(1) or original())
        service.train(rounds=1)
        # Once before training, once after the round's replay
        assert len(resets) == 2


class TestPlay:
    """Test play()."""

    def test_no_model(self, fast_config):
        service = TrainingService(Game2048(fast_config, seed=0), fast_config)
        assert service.play() == 0

    def test_plays_until_lost(self, service, statuses, monkeypatch):
        outcomes = iter([(False, False), (False, False), (True, False)])
        monkeypatch.setattr(service.orchestrator, 'just_play', lambda: next(outcomes))

        assert service.play() == 3
        assert statuses[0] == (STATUS_PLAYING, True)
        assert statuses[-1] == (STATUS_IDLE, False)

    def test_stops_on_win(self, service, monkeypatch):
        monkeypatch.setattr(service.orchestrator, 'just_play', lambda: (False, True))
        assert service.play() == 1

    def test_move_limit(self, service, monkeypatch):
        monkeypatch.setattr(service.orchestrator, 'just_play', lambda: (False, False))
        assert service.play(max_steps=25) == 25

    def test_zero_move_limit(self, service, monkeypatch):
        moves = []
        monkeypatch.setattr(service.orchestrator, 'just_play',
                            lambda: moves.append(1) or (False, False))
        assert service.play(max_steps=0) == 0
        assert moves == []

    def test_delay_between_moves(self, fast_config, monkeypatch):
        config = Config(NO_DELAY=False, USE_WORKER=False, TRAINING_DELAY=0.05)
        sleeps = []
        service = TrainingService(Game2048(config, seed=0), config,
                                  model=Model(16, 4, 8, config=config), sleep=sleeps.append)
        outcomes = iter([(False, False), (False, False), (True, False)])
        monkeypatch.setattr(service.orchestrator, 'just_play', lambda: next(outcomes))

        service.play()
        assert sleeps == [0.05, 0.05]

    def test_stop_interrupts_play(self, service, monkeypatch):
        def move():
            service.stop()
            return False, False
        monkeypatch.setattr(service.orchestrator, 'just_play', move)
        assert service.play() == 1

    def test_real_play_moves_the_board(self, service):
        before = service.game.board.copy()
        steps = service.play(max_steps=20)
        assert 1 <= steps <= 20
        assert service.game.score > 0 or not (service.game.board == before).all()


class TestServiceState:
    """Test model swapping and status reporting."""

    def test_set_model_none(self, service):
        service.set_model(None)
        assert service.orchestrator is None
        assert service.train() is False

    def test_orchestrator_uses_config(self, service, fast_config):
        assert service.orchestrator.max_steps_per_game == fast_config.STEPS
        assert service.orchestrator.discount_rate == fast_config.DISCOUNT_RATE
        assert service.orchestrator.memory is service.memory

    def test_get_status(self, service):
        status = service.get_status()
        assert status['status'] == STATUS_IDLE
        assert status['busy'] is False
        assert status['has_model'] is True
        assert status['memory_capacity'] == 100

    def test_state_callbacks(self, service):
        boards = []
        service.on_state(lambda game: boards.append(game.score))
        service.train(rounds=1)
        assert len(boards) >= 2
