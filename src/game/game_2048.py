"""
2048 Game Implementation
========================

The sliding-tile puzzle the agent learns to play.

Game Rules:
- A TABLE_SIZE x TABLE_SIZE board starts with START_TILES random tiles
- A move slides every tile toward one edge; two equal tiles that collide
  merge into one with their sum (each tile merges at most once per move)
- Every merge adds the new tile's value to the score
- After each move that changed the board a new tile (2, sometimes 4) spawns
- Reaching WIN_TILE wins; a full board with no merges left loses

State representation:
    Raw tile values (0 for empty), flattened row-major into a vector of
    length TABLE_SIZE ** 2.
"""

import numpy as np
import pygame
from typing import List, Optional, Tuple

from .base_game import BaseGame, DIRECTIONS
import sys
sys.path.append('..')
from config import Config


# Classic palette: tile value -> (background, foreground)
TILE_COLORS = {
    0: ((205, 193, 180), (119, 110, 101)),
    2: ((238, 228, 218), (119, 110, 101)),
    4: ((237, 224, 200), (119, 110, 101)),
    8: ((242, 177, 121), (249, 246, 242)),
    16: ((245, 149, 99), (249, 246, 242)),
    32: ((246, 124, 95), (249, 246, 242)),
    64: ((246, 94, 59), (249, 246, 242)),
    128: ((237, 207, 114), (249, 246, 242)),
    256: ((237, 204, 97), (249, 246, 242)),
    512: ((237, 200, 80), (249, 246, 242)),
    1024: ((237, 197, 63), (249, 246, 242)),
    2048: ((237, 194, 46), (249, 246, 242)),
}
COLOR_BACKGROUND = (187, 173, 160)
COLOR_SUPER_TILE = ((60, 58, 50), (249, 246, 242))


def merge_line(line: np.ndarray) -> Tuple[np.ndarray, int]:
    """
    Slide and merge one row toward index 0.

    Args:
        line: 1-D array of tile values

    Returns:
        (merged line, points gained)
    """
    tiles = [int(v) for v in line if v != 0]
    merged: List[int] = []
    points = 0
    i = 0
    while i < len(tiles):
        if i + 1 < len(tiles) and tiles[i] == tiles[i + 1]:
            value = tiles[i] * 2
            merged.append(value)
            points += value
            i += 2
        else:
            merged.append(tiles[i])
            i += 1
    merged.extend([0] * (len(line) - len(merged)))
    return np.array(merged, dtype=line.dtype), points


class Game2048(BaseGame):
    """
    2048 environment for the DQN agent.

    Attributes:
        board: (TABLE_SIZE, TABLE_SIZE) int array of tile values
        max_score: Best score seen since construction

    Example:
        >>> game = Game2048(Config())
        >>> moved = game.shift('left')
        >>> state = game.get_state()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        seed: Optional[int] = None,
        board: Optional[np.ndarray] = None
    ):
        """
        Initialize the game.

        Args:
            config: Configuration object
            seed: Random seed for tile spawning
            board: Optional starting board (for tests and replays)
        """
        self.config = config or Config()
        self.size = self.config.TABLE_SIZE
        self._rng = np.random.RandomState(seed)

        self.board = np.zeros((self.size, self.size), dtype=np.int64)
        self._score = 0
        self.max_score = 0
        self._won = False
        self._lost = False

        # Font is created on first render (pygame.font needs init)
        self._font: Optional[pygame.font.Font] = None

        if board is None:
            self.reset()
        else:
            self.set_board(board)

    @property
    def state_size(self) -> int:
        return self.size * self.size

    @property
    def score(self) -> int:
        return self._score

    def reset(self) -> np.ndarray:
        """Clear the board, score and flags, then spawn the start tiles."""
        self.board = np.zeros((self.size, self.size), dtype=np.int64)
        self._score = 0
        self._won = False
        self._lost = False
        for _ in range(self.config.START_TILES):
            self._spawn_tile()
        return self.get_state()

    def set_board(self, board: np.ndarray, score: int = 0) -> None:
        """Replace the board and recompute the terminal flags."""
        board = np.asarray(board, dtype=np.int64).reshape(self.size, self.size)
        self.board = board.copy()
        self._score = score
        self._won = bool((self.board >= self.config.WIN_TILE).any())
        self._lost = not self._won and not self._can_move()

    def get_state(self) -> np.ndarray:
        return self.board.flatten().astype(np.float32)

    def is_won(self) -> bool:
        return self._won

    def is_lost(self) -> bool:
        return self._lost

    def seed(self, seed: int) -> None:
        self._rng = np.random.RandomState(seed)

    def shift(self, direction: str) -> bool:
        """
        Apply a move.

        Returns:
            False if the game is already over or no tile moved
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction!r}")
        if self._won or self._lost:
            return False

        new_board, points = self._slide(self.board, direction)
        if np.array_equal(new_board, self.board):
            return False

        self.board = new_board
        self._add_score(points)
        if (self.board >= self.config.WIN_TILE).any():
            self._won = True
            return True

        self._spawn_tile()
        if not self._can_move():
            self._lost = True
        return True

    def partition(self) -> List[List[int]]:
        """Board as a list of rows (for rendering and JSON)."""
        return self.board.tolist()

    def to_dict(self) -> dict:
        return {
            'board': self.partition(),
            'score': self._score,
            'max_score': self.max_score,
            'won': self._won,
            'lost': self._lost,
        }

    def _slide(self, board: np.ndarray, direction: str) -> Tuple[np.ndarray, int]:
        # Rotate so every move becomes a move toward index 0 of each row
        if direction == 'left':
            view = board
        elif direction == 'right':
            view = board[:, ::-1]
        elif direction == 'up':
            view = board.T
        else:
            view = board.T[:, ::-1]

        result = np.empty_like(view)
        points = 0
        for i, row in enumerate(view):
            result[i], row_points = merge_line(row)
            points += row_points

        if direction == 'left':
            return result, points
        if direction == 'right':
            return result[:, ::-1].copy(), points
        if direction == 'up':
            return result.T.copy(), points
        return result[:, ::-1].T.copy(), points

    def _spawn_tile(self) -> bool:
        empty = np.argwhere(self.board == 0)
        if len(empty) == 0:
            return False
        row, col = empty[self._rng.randint(len(empty))]
        value = 4 if self._rng.random_sample() < self.config.FOUR_PROBABILITY else 2
        self.board[row, col] = value
        return True

    def _can_move(self) -> bool:
        if (self.board == 0).any():
            return True
        if (self.board[:, 1:] == self.board[:, :-1]).any():
            return True
        return bool((self.board[1:, :] == self.board[:-1, :]).any())

    def _add_score(self, points: int) -> None:
        self._score += points
        if self._score > self.max_score:
            self.max_score = self._score

    def render(self, screen: pygame.Surface) -> None:
        """Draw the board filling the given surface."""
        if self._font is None:
            if not pygame.font.get_init():
                pygame.font.init()
            self._font = pygame.font.SysFont('arial', 32, bold=True)

        width, height = screen.get_size()
        screen.fill(COLOR_BACKGROUND)
        padding = 10
        cell = (min(width, height) - padding * (self.size + 1)) // self.size

        for r in range(self.size):
            for c in range(self.size):
                value = int(self.board[r, c])
                bg, fg = TILE_COLORS.get(value, COLOR_SUPER_TILE)
                rect = pygame.Rect(
                    padding + c * (cell + padding),
                    padding + r * (cell + padding),
                    cell,
                    cell
                )
                pygame.draw.rect(screen, bg, rect, border_radius=6)
                if value:
                    text = self._font.render(str(value), True, fg)
                    screen.blit(text, text.get_rect(center=rect.center))

    def close(self) -> None:
        self._font = None
