"""
Reward Shaping
==============

Maps the board after a move to the scalar reward stored with the transition.

Two shapings exist:
    tiered  - coarse buckets on the max tile plus a score bracket and a flat
              loss penalty (default)
    scaled  - rewards grow with the max tile and score, then get multiplied
              by win/loss modifiers
"""

from typing import Callable, Dict, Sequence


def compute_reward(position: Sequence[float], score: float, lost: bool, won: bool = False) -> float:
    """
    Tiered reward.

    Args:
        position: Flat board after the move
        score: Game score after the move
        lost: Whether the move lost the game
        won: Accepted for interface parity; the tiered shaping has no win bonus

    Returns:
        Reward for the move

    Example:
        >>> compute_reward([128, 2, 0, 0], score=50, lost=False)
        10.0
    """
    max_value = max(position)

    if max_value >= 2048:
        reward = 100.0
    elif max_value >= 1024:
        reward = 80.0
    elif max_value >= 512:
        reward = 60.0
    elif max_value >= 256:
        reward = 40.0
    elif max_value >= 128:
        reward = 20.0
    else:
        reward = 5.0

    if score < 100:
        reward -= 10
    elif score < 200:
        reward += 10
    elif score < 300:
        reward += 20
    else:
        reward += 40

    if lost:
        reward -= 50

    return reward


def compute_scaled_reward(position: Sequence[float], score: float, lost: bool, won: bool = False) -> float:
    """Magnitude-scaled reward with multiplicative win/loss modifiers."""
    max_value = max(position)

    if max_value >= 2048:
        reward = 10000.0
    elif max_value >= 1024:
        reward = 1000.0
    elif max_value >= 512:
        reward = 500.0
    elif max_value >= 256:
        reward = 250.0
    elif max_value >= 128:
        reward = 125.0
    else:
        reward = max_value / 2

    reward += score / 20

    if won:
        reward *= 1.5
    if lost:
        reward *= 0.1

    return float(reward)


REWARD_FUNCTIONS: Dict[str, Callable[..., float]] = {
    'tiered': compute_reward,
    'scaled': compute_scaled_reward,
}


def get_reward_function(name: str) -> Callable[..., float]:
    """Look up a reward shaping by name ('tiered' or 'scaled')."""
    try:
        return REWARD_FUNCTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown reward function: {name!r}") from None
