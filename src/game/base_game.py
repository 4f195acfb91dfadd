"""
Base Game Interface
===================

Abstract base class that defines the interface the training core talks to.
The orchestrator never touches board internals: it reads the state vector,
applies a direction, and checks score and terminal flags.

To add a new board game:
1. Create a new file in src/game/
2. Inherit from BaseGame
3. Implement all abstract methods
4. Register in __init__.py
"""

from abc import ABC, abstractmethod
from typing import Tuple
import numpy as np


# Directions accepted by shift(), indexed by action id
DIRECTIONS: Tuple[str, ...] = ('up', 'down', 'right', 'left')


class BaseGame(ABC):
    """
    Abstract base class for games.

    Properties:
        state_size: int - Dimension of the state vector
        action_size: int - Number of possible actions
        score: int - Current game score

    Methods:
        reset() -> np.ndarray
            Clear the board, spawn the initial tiles, clear terminal flags

        shift(direction: str) -> bool
            Apply a move, False if nothing moved or the game is over

        get_state() -> np.ndarray
            Flattened board

        is_won() / is_lost() -> bool
            Terminal flags

        render(screen) -> None
            Draw game to pygame screen
    """

    @property
    @abstractmethod
    def state_size(self) -> int:
        """Return the dimension of the state vector."""
        pass

    @property
    def action_size(self) -> int:
        """Return the number of possible actions."""
        return len(DIRECTIONS)

    @property
    @abstractmethod
    def score(self) -> int:
        """Return the current score."""
        pass

    @abstractmethod
    def reset(self) -> np.ndarray:
        """
        Reset the game to initial state.

        Returns:
            np.ndarray: Initial state vector
        """
        pass

    @abstractmethod
    def shift(self, direction: str) -> bool:
        """
        Move every tile toward `direction`.

        Args:
            direction: One of DIRECTIONS

        Returns:
            True if the board changed, False otherwise
        """
        pass

    @abstractmethod
    def get_state(self) -> np.ndarray:
        """
        Get the current state as a flat vector.

        Returns:
            np.ndarray: Board cell values, row-major
        """
        pass

    @abstractmethod
    def is_won(self) -> bool:
        pass

    @abstractmethod
    def is_lost(self) -> bool:
        pass

    @abstractmethod
    def render(self, screen) -> None:
        """
        Render the current game state to a pygame screen.

        Args:
            screen: Pygame surface to draw on
        """
        pass

    def close(self) -> None:
        """Clean up resources. Override if needed."""
        pass

    def seed(self, seed: int) -> None:
        """Set random seed for reproducibility. Override if game has randomness."""
        pass
