"""
Tests for the Q-network architecture.
"""

import pytest
import torch
import torch.nn as nn
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from src.ai.network import QNetwork


@pytest.fixture
def network():
    return QNetwork(num_states=16, num_actions=4, config=Config())


class TestQNetworkShape:
    """Test layer layout and output shape."""

    def test_output_shape(self, network):
        network.eval()
        q = network(torch.randn(5, 16))
        assert q.shape == (5, 4)

    def test_default_layer_sizes(self, network):
        sizes = [(layer.in_features, layer.out_features) for layer in network.layers]
        assert sizes == [(16, 128), (128, 64), (64, 32), (32, 4)]

    def test_batch_norm_per_hidden_layer(self, network):
        assert len(network.norms) == 3
        assert all(isinstance(n, nn.BatchNorm1d) for n in network.norms)

    def test_batch_norm_can_be_disabled(self):
        net = QNetwork(16, 4, Config(USE_BATCH_NORM=False))
        assert all(isinstance(n, nn.Identity) for n in net.norms)
        # Without batch norm a single row works in train mode too
        net.train()
        assert net(torch.randn(1, 16)).shape == (1, 4)

    def test_custom_hidden_layers(self):
        net = QNetwork(36, 4, Config(), hidden_layers=[10, 5])
        assert [layer.out_features for layer in net.layers] == [10, 5, 4]
        assert net.hidden_sizes == [10, 5]

    def test_parameter_count(self, network):
        linear = 16 * 128 + 128 + 128 * 64 + 64 + 64 * 32 + 32 + 32 * 4 + 4
        batch_norm = 2 * (128 + 64 + 32)
        assert network.count_parameters() == linear + batch_norm


class TestQNetworkBehavior:
    """Test train/eval behavior."""

    def test_eval_is_deterministic(self, network):
        network.eval()
        x = torch.randn(3, 16)
        assert torch.equal(network(x), network(x))

    def test_output_layer_is_linear(self, network):
        """Q-values can be negative: no activation on the output."""
        with torch.no_grad():
            network.layers[-1].bias.fill_(-100.0)
        network.eval()
        assert (network(torch.randn(4, 16)) < 0).all()

    def test_gradients_flow(self, network):
        network.train()
        loss = network(torch.randn(8, 16)).sum()
        loss.backward()
        assert all(layer.weight.grad is not None for layer in network.layers)
