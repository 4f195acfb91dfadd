"""
Transition Memory
=================

A fixed-capacity memory of the transitions the agent has experienced.

Why a replay memory?
    1. Breaks correlation between consecutive moves
       (a game of 2048 is a long chain of near-identical boards)

    2. Reuses experience
       (each transition can feed several replays)

How it works:
    1. The orchestrator stores (state, action, reward, next_state) after
       every move; next_state is None when the move ended the game
    2. At the end of each round, replay draws a uniform mini-batch
       without replacement
    3. When full, the oldest transition is evicted (FIFO) and its state
       buffers are handed to the release hook

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

import random
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

import numpy as np

from src.utils.logger import get_logger

_logger = get_logger(__name__)


# Above this fraction of the population, shuffle instead of drawing indices
SHUFFLE_FRACTION = 0.7

# Index draws allowed per requested sample before topping up deterministically
RETRIES_PER_SAMPLE = 10


@dataclass(frozen=True, eq=False)
class Transition:
    """
    One step of experience.

    Attributes:
        state: Board before the move (flat vector)
        action: Action id that was taken
        reward: Reward observed after the move
        next_state: Board after the move, or None if the move ended the game
    """
    state: np.ndarray
    action: int
    reward: float
    next_state: Optional[np.ndarray]

    @property
    def terminal(self) -> bool:
        return self.next_state is None


def release_buffer(buffer: np.ndarray) -> None:
    """Default release hook. Numpy buffers are reclaimed by refcounting."""


class Memory:
    """
    Circular buffer of Transition objects with FIFO eviction.

    Invariants:
        - never holds more than `capacity` transitions
        - the transition evicted next is always the oldest one held
        - every evicted state buffer is released exactly once

    Example:
        >>> memory = Memory(capacity=1000)
        >>> memory.add_sample(Transition(state, action, reward, next_state))
        >>> batch = memory.sample(32)
    """

    def __init__(
        self,
        capacity: int,
        release: Callable[[np.ndarray], None] = release_buffer,
        seed: Optional[int] = None
    ):
        """
        Initialize the memory.

        Args:
            capacity: Maximum number of transitions to hold
            release: Called once for every state buffer that leaves the memory
            seed: Seed for the sampling RNG
        """
        if not isinstance(capacity, int) or capacity <= 0:
            raise ValueError(f"Memory capacity must be a positive integer, got {capacity!r}")

        self.capacity = capacity
        self._release = release
        self._rng = random.Random(seed)

        self._slots: List[Optional[Transition]] = [None] * capacity
        self._size = 0  # Current number of transitions stored
        self._position = 0  # Next write slot (also the oldest slot once full)

    def add_sample(self, transition: Transition) -> None:
        """
        Store a transition, evicting the oldest one when full.

        Ownership of the transition's buffers passes to the memory.
        """
        evicted = self._slots[self._position] if self._size == self.capacity else None

        self._slots[self._position] = transition
        self._position = (self._position + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)

        if evicted is not None:
            self._dispose(evicted)

    def sample(self, n: int) -> List[Transition]:
        """
        Draw up to `n` distinct transitions uniformly without replacement.

        Args:
            n: Number of transitions requested

        Returns:
            `n` transitions, or every stored transition when fewer are held
        """
        if n < 0:
            raise ValueError(f"Sample size cannot be negative, got {n}")

        population = self._size
        if n > population:
            _logger.warning(
                f"Requested {n} samples but memory only holds {population}; "
                f"returning {population}"
            )
            n = population
        if n == 0:
            return []

        if n > SHUFFLE_FRACTION * population:
            indices = list(range(population))
            self._rng.shuffle(indices)
            indices = indices[:n]
        else:
            indices = self._draw_distinct(n, population)

        return [self._slots[i] for i in indices]

    def _draw_distinct(self, n: int, population: int) -> List[int]:
        chosen: List[int] = []
        seen = set()
        attempts = 0
        max_attempts = n * RETRIES_PER_SAMPLE
        while len(chosen) < n and attempts < max_attempts:
            index = self._rng.randrange(population)
            attempts += 1
            if index not in seen:
                seen.add(index)
                chosen.append(index)

        if len(chosen) < n:
            _logger.debug(f"Sampling hit retry cap after {attempts} draws; topping up")
            remaining = [i for i in range(population) if i not in seen]
            self._rng.shuffle(remaining)
            chosen.extend(remaining[:n - len(chosen)])
        return chosen

    def _dispose(self, transition: Transition) -> None:
        self._release(transition.state)
        if transition.next_state is not None:
            self._release(transition.next_state)

    def __len__(self) -> int:
        """Return current number of stored transitions."""
        return self._size

    def __iter__(self) -> Iterator[Transition]:
        """Iterate from oldest to newest."""
        start = self._position if self._size == self.capacity else 0
        for offset in range(self._size):
            yield self._slots[(start + offset) % self.capacity]

    def is_ready(self, batch_size: int) -> bool:
        """Check if memory holds enough transitions for a full batch."""
        return self._size >= batch_size

    def clear(self) -> None:
        """Release and drop every stored transition."""
        for transition in list(self):
            self._dispose(transition)
        self._slots = [None] * self.capacity
        self._size = 0
        self._position = 0
