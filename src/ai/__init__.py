"""
AI Module
=========

Deep Q-Learning components for playing 2048.

Classes:
    QNetwork         - Fully connected Q-value network
    Model            - Network wrapper: predict, train, action policy
    Memory           - Fixed-capacity transition memory
    Orchestrator     - Episode driver and replay step
    TrainingService  - Training and demonstration play for the live game
    ModelStore       - Checkpoint management
"""

from .network import QNetwork
from .model import Model
from .memory import Memory, Transition
from .reward import compute_reward, compute_scaled_reward, get_reward_function
from .orchestrator import Orchestrator, EpisodeResult, action_to_direction
from .executor import InProcessExecutor, WorkerExecutor, TrainingJob, TrainingResult, WorkerError
from .trainer import TrainingService, TrainingMetrics, RoundStats
from .model_store import ModelStore

__all__ = [
    'QNetwork', 'Model', 'Memory', 'Transition',
    'compute_reward', 'compute_scaled_reward', 'get_reward_function',
    'Orchestrator', 'EpisodeResult', 'action_to_direction',
    'InProcessExecutor', 'WorkerExecutor', 'TrainingJob', 'TrainingResult', 'WorkerError',
    'TrainingService', 'TrainingMetrics', 'RoundStats', 'ModelStore',
]
