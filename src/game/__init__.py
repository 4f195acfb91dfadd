"""
Game Module
===========

Contains the game implementations the AI can learn to play.

Classes:
    Game2048 - The 2048 sliding-tile puzzle
    BaseGame - Abstract base class for creating new games

Game Registry:
    Use get_game(name) to get a game class by name
    Use list_games() to get all available games
    Use get_game_info(name) to get metadata about a game
"""

from typing import Dict, List, Type, Optional, Any
from .base_game import BaseGame, DIRECTIONS
from .game_2048 import Game2048


# =============================================================================
# GAME REGISTRY
# =============================================================================
# Maps game names to their classes and metadata.

GAME_REGISTRY: Dict[str, Dict[str, Any]] = {
    '2048': {
        'class': Game2048,
        'name': '2048',
        'description': 'Slide and merge tiles to reach 2048',
        'actions': [d.upper() for d in DIRECTIONS],
        'difficulty': 'Hard',
        'color': (237, 194, 46),
    },
}


def get_game(name: str) -> Optional[Type[BaseGame]]:
    """
    Get a game class by name.

    Args:
        name: Game identifier (e.g., '2048')

    Returns:
        The game class, or None if not found
    """
    entry = GAME_REGISTRY.get(name.lower())
    if entry:
        return entry['class']
    return None


def list_games() -> List[str]:
    """Get a list of all available game names."""
    return list(GAME_REGISTRY.keys())


def get_game_info(name: str) -> Optional[Dict[str, Any]]:
    """
    Get metadata about a game.

    Info includes:
        - name: Display name
        - description: Short description
        - actions: List of action names, indexed by action id
        - difficulty: Difficulty rating
        - color: Theme color (RGB tuple)
    """
    entry = GAME_REGISTRY.get(name.lower())
    if entry:
        return {k: v for k, v in entry.items() if k != 'class'}
    return None


__all__ = [
    'Game2048',
    'BaseGame',
    'DIRECTIONS',
    'GAME_REGISTRY',
    'get_game',
    'list_games',
    'get_game_info',
]
