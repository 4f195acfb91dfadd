"""
Pytest configuration for the test suite.

This file is automatically loaded by pytest and applies configuration
to all tests in the tests/ directory.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def fast_config(tmp_path):
    """Config with pacing disabled, in-process training and a temp model dir."""
    return Config(
        NO_DELAY=True,
        USE_WORKER=False,
        SEED=0,
        BATCH_SIZE=8,
        MEMORY_SLOTS=100,
        STEPS=10,
        TRAINING_ROUNDS=2,
        MODEL_DIR=str(tmp_path / 'models'),
        LOG_DIR=str(tmp_path / 'logs'),
    )
