"""
Q-Network Architecture
======================

The function approximator that maps a 2048 board to one Q-value per move.

Theory:
    Q-Learning aims to learn Q(s, a) = expected future reward
    We use a neural network to approximate this function

    Input:  Flattened board (TABLE_SIZE ** 2 raw tile values)
    Output: Q-value for UP, DOWN, RIGHT, LEFT

The network learns by minimizing TD (Temporal Difference) error:
    Loss = (Q(s,a) - (r + γ * max_a' Q(s', a')))²

Architecture (defaults):
    Linear(16, 128) → ReLU → BatchNorm → Dropout(0.2)
    Linear(128, 64) → ReLU → BatchNorm → Dropout(0.2)
    Linear(64, 32)  → ReLU → BatchNorm
    Linear(32, 4)   (linear Q-values)
"""

import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import List, Optional

import sys
sys.path.append('../..')
from config import Config


class QNetwork(nn.Module):
    """
    Fully connected Q-network with batch norm and dropout.

    Attributes:
        layers (nn.ModuleList): Linear layers, last one is the output
        norms (nn.ModuleList): BatchNorm per hidden layer (Identity if disabled)

    Example:
        >>> net = QNetwork(num_states=16, num_actions=4)
        >>> q_values = net(torch.randn(8, 16))  # Shape: (8, 4)
    """

    def __init__(
        self,
        num_states: int,
        num_actions: int,
        config: Optional[Config] = None,
        hidden_layers: Optional[List[int]] = None
    ):
        """
        Initialize the network.

        Args:
            num_states: Dimension of state input
            num_actions: Number of possible actions (output dimension)
            config: Configuration object
            hidden_layers: Override config's hidden layer sizes
        """
        super(QNetwork, self).__init__()

        self.config = config or Config()
        self.num_states = num_states
        self.num_actions = num_actions
        self.hidden_sizes = hidden_layers or self.config.HIDDEN_LAYERS
        self.dropout_rate = self.config.DROPOUT

        self.layers = nn.ModuleList()
        self.norms = nn.ModuleList()
        self._build_network()
        self._init_weights()

    def _build_network(self) -> None:
        """Construct the layers."""
        layer_sizes = [self.num_states] + list(self.hidden_sizes) + [self.num_actions]

        for i in range(len(layer_sizes) - 1):
            self.layers.append(nn.Linear(layer_sizes[i], layer_sizes[i + 1]))

        for size in self.hidden_sizes:
            if self.config.USE_BATCH_NORM:
                self.norms.append(nn.BatchNorm1d(size))
            else:
                self.norms.append(nn.Identity())

    def _init_weights(self) -> None:
        """Xavier/Glorot initialization for stable early training."""
        for layer in self.layers:
            nn.init.xavier_uniform_(layer.weight)
            nn.init.constant_(layer.bias, 0.0)

    def forward(self, state: torch.Tensor) -> torch.Tensor:
        """
        Forward pass.

        Args:
            state: Tensor of shape (batch_size, num_states)

        Returns:
            Q-values tensor of shape (batch_size, num_actions)
        """
        x = state
        last_hidden = len(self.layers) - 2

        for i, layer in enumerate(self.layers[:-1]):
            x = self.norms[i](F.relu(layer(x)))
            # No dropout right before the output layer
            if i < last_hidden and self.dropout_rate > 0:
                x = F.dropout(x, p=self.dropout_rate, training=self.training)

        return self.layers[-1](x)

    def count_parameters(self) -> int:
        """Return total number of trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)
