"""
Tests for command line parsing and config overrides.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from main import apply_args, build_service, parse_args


class TestParseArgs:
    """Test argument parsing."""

    def test_defaults(self):
        args = parse_args([])
        assert not args.train and not args.play and not args.web
        assert args.rounds is None
        assert args.log_level == 'INFO'

    def test_train_options(self):
        args = parse_args(['--train', '--rounds', '5', '--steps', '20', '--save'])
        assert args.train
        assert args.rounds == 5
        assert args.steps == 20
        assert args.save

    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse_args(['--train', '--web'])


class TestApplyArgs:
    """Test CLI overrides."""

    def test_flags_override_config(self):
        config = apply_args(Config(), parse_args(['--no-delay', '--no-worker', '--seed', '3']))
        assert config.NO_DELAY is True
        assert config.USE_WORKER is False
        assert config.SEED == 3

    def test_rejects_non_positive_rounds(self):
        with pytest.raises(SystemExit):
            apply_args(Config(), parse_args(['--train', '--rounds', '0']))


class TestBuildService:
    """Test service construction."""

    def test_creates_model_when_none_given(self, fast_config):
        service, store = build_service(fast_config, None)
        assert service.model is not None
        assert store.selected == ''

    def test_missing_model_exits(self, fast_config):
        with pytest.raises(SystemExit):
            build_service(fast_config, 'game-model-42.pth')

    def test_loads_saved_model(self, fast_config):
        _, store = build_service(fast_config, None)
        path = store.save_model()
        service, store = build_service(fast_config, path)
        assert store.selected == os.path.realpath(path)
        assert service.model is not None
