"""
Q-Value Model
=============

Wraps the Q-network with everything the training core needs from a
function approximator:

    predict(states)        -> Q-values, one row per state
    train(x, y)            -> one gradient step on a target batch
    choose_action(state)   -> stochastic action id

Action policy:
    The policy squashes the raw Q-values with a sigmoid, divides by their sum
    and draws one action from the resulting categorical distribution. This is
    not a softmax: near-equal or negative Q-values flatten the distribution
    toward uniform. Trained checkpoints depend on this transform, so it is
    kept as is. Exploration comes entirely from this draw; there is no
    epsilon.
"""

import io
import os
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim

from .network import QNetwork
from src.utils.logger import get_logger, log_model_event

import sys
sys.path.append('../..')
from config import Config

_logger = get_logger(__name__)

StateInput = Union[np.ndarray, torch.Tensor]


@dataclass
class ModelMetadata:
    """Metadata stored with each checkpoint."""
    timestamp: str
    num_states: int
    num_actions: int
    batch_size: int
    hidden_layers: List[int]
    learning_rate: float
    train_steps: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelMetadata':
        return cls(**data)


class Model:
    """
    Function approximator used by the policy and the replay step.

    `num_states`, `num_actions` and `batch_size` are fixed at construction.
    Only train() mutates the network weights.

    Example:
        >>> model = Model(num_states=16, num_actions=4, batch_size=32)
        >>> action = model.choose_action(game.get_state())
        >>> loss = model.train(x_batch, y_batch)
    """

    def __init__(
        self,
        num_states: int,
        num_actions: int,
        batch_size: int,
        config: Optional[Config] = None,
        network: Optional[QNetwork] = None,
        learning_rate: Optional[float] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize the model.

        Args:
            num_states: Dimension of the state vector
            num_actions: Number of actions
            batch_size: Replay mini-batch size
            config: Configuration object
            network: Existing network to wrap (e.g. a loaded checkpoint)
            learning_rate: Override config's learning rate
            seed: Seed for the action sampler
        """
        self.config = config or Config()
        self._num_states = num_states
        self._num_actions = num_actions
        self._batch_size = batch_size
        self.device = self.config.DEVICE
        self.learning_rate = learning_rate or self.config.LEARNING_RATE

        self.network = (network or QNetwork(num_states, num_actions, self.config)).to(self.device)
        self.network.eval()

        self.optimizer = optim.Adam(self.network.parameters(), lr=self.learning_rate)
        self.loss_fn = nn.MSELoss()
        self.train_steps = 0

        self._generator = torch.Generator()
        if seed is not None:
            self._generator.manual_seed(seed)
        else:
            self._generator.seed()

        _logger.debug(
            f"Model ready: {num_states} -> {num_actions}, "
            f"{self.network.count_parameters():,} parameters, "
            f"device={self.device}"
        )

    @property
    def num_states(self) -> int:
        return self._num_states

    @property
    def num_actions(self) -> int:
        return self._num_actions

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def _as_batch(self, states: StateInput) -> torch.Tensor:
        """Convert one state or a batch of states to a (batch, num_states) tensor."""
        if isinstance(states, torch.Tensor):
            tensor = states.to(self.device, dtype=torch.float32)
        else:
            tensor = torch.as_tensor(np.asarray(states, dtype=np.float32), device=self.device)
        return tensor.reshape(-1, self._num_states)

    def predict(self, states: StateInput) -> torch.Tensor:
        """
        Q-values for one state or a batch of states.

        Returns:
            Tensor of shape (batch, num_actions)
        """
        batch = self._as_batch(states)
        self.network.eval()
        # no_grad rather than inference_mode: results may become training targets
        with torch.no_grad():
            return self.network(batch)

    def get_q_values(self, state: StateInput) -> np.ndarray:
        """Q-values for a single state as a numpy vector."""
        return self.predict(state)[0].cpu().numpy()

    def action_probabilities(self, state: StateInput) -> torch.Tensor:
        """Sigmoid-normalized action distribution used by choose_action()."""
        with torch.inference_mode():
            logits = self.predict(state)
            squashed = torch.sigmoid(logits)
            return (squashed / squashed.sum()).flatten().cpu()

    def choose_action(self, state: StateInput) -> int:
        """
        Draw one action from the sigmoid-normalized Q-values.

        Returns:
            Action id in [0, num_actions)
        """
        with torch.inference_mode():
            probs = self.action_probabilities(state)
            return int(torch.multinomial(probs, 1, generator=self._generator).item())

    def train(self, x_batch: torch.Tensor, y_batch: torch.Tensor) -> float:
        """
        One gradient step of MSE regression toward the target Q-values.

        Args:
            x_batch: States, shape (batch, num_states)
            y_batch: Target Q-values, shape (batch, num_actions)

        Returns:
            Loss before the update
        """
        x_batch = x_batch.to(self.device)
        y_batch = y_batch.to(self.device)

        # BatchNorm cannot compute batch statistics from a single row
        self.network.train(mode=x_batch.shape[0] > 1)
        try:
            predictions = self.network(x_batch)
            loss = self.loss_fn(predictions, y_batch)

            self.optimizer.zero_grad()
            loss.backward()
            self.optimizer.step()
        finally:
            self.network.eval()

        self.train_steps += 1
        return loss.item()

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def metadata(self) -> ModelMetadata:
        hidden = getattr(self.network, 'hidden_sizes', self.config.HIDDEN_LAYERS)
        return ModelMetadata(
            timestamp=datetime.now().isoformat(),
            num_states=self._num_states,
            num_actions=self._num_actions,
            batch_size=self._batch_size,
            hidden_layers=list(hidden),
            learning_rate=self.learning_rate,
            train_steps=self.train_steps,
        )

    def _checkpoint(self) -> Dict[str, Any]:
        return {
            'network_state_dict': self.network.state_dict(),
            'optimizer_state_dict': self.optimizer.state_dict(),
            'metadata': self.metadata().to_dict(),
        }

    def _restore(self, checkpoint: Dict[str, Any]) -> None:
        saved = checkpoint.get('metadata', {})
        if (saved.get('num_states', self._num_states) != self._num_states or
                saved.get('num_actions', self._num_actions) != self._num_actions):
            raise ValueError(
                f"Architecture mismatch: checkpoint is "
                f"{saved.get('num_states')} -> {saved.get('num_actions')}, "
                f"model is {self._num_states} -> {self._num_actions}"
            )
        self.network.load_state_dict(checkpoint['network_state_dict'])
        if 'optimizer_state_dict' in checkpoint:
            self.optimizer.load_state_dict(checkpoint['optimizer_state_dict'])
        self.train_steps = saved.get('train_steps', self.train_steps)
        self.network.eval()

    def state_dict_bytes(self) -> bytes:
        """Serialize weights and optimizer state (for the worker boundary)."""
        buffer = io.BytesIO()
        torch.save(self._checkpoint(), buffer)
        return buffer.getvalue()

    def load_state_dict_bytes(self, data: bytes) -> None:
        """Replace weights and optimizer state from state_dict_bytes() output."""
        checkpoint = torch.load(io.BytesIO(data), map_location=self.device, weights_only=True)
        self._restore(checkpoint)

    def save(self, filepath: str) -> ModelMetadata:
        """
        Save the model to a checkpoint file.

        Raises:
            OSError: If the file cannot be written
        """
        dir_path = os.path.dirname(filepath)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

        checkpoint = self._checkpoint()
        torch.save(checkpoint, filepath)
        log_model_event('save', filepath, train_steps=self.train_steps)
        return ModelMetadata.from_dict(checkpoint['metadata'])

    @classmethod
    def load(cls, filepath: str, config: Optional[Config] = None) -> 'Model':
        """
        Build a model from a checkpoint file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the checkpoint does not match the configured board
        """
        config = config or Config()
        checkpoint = torch.load(filepath, map_location=config.DEVICE, weights_only=True)
        saved = ModelMetadata.from_dict(checkpoint['metadata'])

        network = QNetwork(saved.num_states, saved.num_actions, config,
                           hidden_layers=saved.hidden_layers)
        model = cls(saved.num_states, saved.num_actions, saved.batch_size,
                    config=config, network=network, learning_rate=saved.learning_rate)
        model._restore(checkpoint)
        log_model_event('load', filepath, train_steps=model.train_steps)
        return model
