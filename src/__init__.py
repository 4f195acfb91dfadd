"""
2048 DQN - Source Package
=========================

A playable 2048 game and a Deep Q-Learning agent that learns to play it.

Modules:
    game/   - The 2048 engine
    ai/     - Q-network, memory, replay and training service
    web/    - Flask + SocketIO board and training controls
    utils/  - Logging
"""

__version__ = "1.0.0"
