"""
Episode Orchestrator
====================

Drives the game and the learning step:

    run():
        1. Observe state s
        2. Choose action a (sigmoid-normalized Q-value draw)
        3. Shift the board, observe reward r and next state s'
        4. Store (s, a, r, s' or None if the game ended) in memory
        5. Reset the game if it ended, keep stepping until the step budget
        6. Replay one mini-batch, then reset the game

    replay():
        For each sampled transition the target for the taken action is
            y = r                          if terminal
            y = r + γ * max_a' Q(s', a')   otherwise
        and every other action keeps its predicted Q-value. One gradient
        step is taken on the whole batch.

    just_play():
        One demonstration move: no memory writes, no learning.

The model is injected by the owner of the orchestrator; the policy only
reads it through predict() and replay() is the only caller of train().
"""

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import torch

from .memory import Memory, Transition
from .model import Model
from .reward import compute_reward
from src.game.base_game import BaseGame, DIRECTIONS
from src.utils.logger import get_logger

_logger = get_logger(__name__)

RewardFunction = Callable[[Sequence[float], float, bool, bool], float]


@dataclass
class EpisodeResult:
    """Summary of one run()."""
    steps: int
    total_reward: float
    games_finished: int
    loss: Optional[float]
    batch_size: int


def action_to_direction(action: int) -> str:
    """Map an action id to a board direction (0 up, 1 down, 2 right, 3 left)."""
    if not 0 <= action < len(DIRECTIONS):
        raise ValueError(f"Action out of range: {action}")
    return DIRECTIONS[action]


class Orchestrator:
    """
    Interleaves game steps with learning.

    Attributes:
        steps: Total environment steps taken across all runs
        discount_rate: γ in the one-step TD target

    Example:
        >>> orchestrator = Orchestrator(game, model, memory, max_steps_per_game=50)
        >>> result = orchestrator.run()
        >>> lost, won = orchestrator.just_play()
    """

    def __init__(
        self,
        game: BaseGame,
        model: Model,
        memory: Memory,
        max_steps_per_game: int,
        step_delay: float = 0.0,
        no_delay: bool = True,
        discount_rate: float = 0.95,
        rejected_move_backoff: float = 0.05,
        reward_fn: RewardFunction = compute_reward,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the orchestrator.

        Args:
            game: Environment to play
            model: Function approximator shared by the policy and replay
            memory: Transition memory (takes ownership of stored states)
            max_steps_per_game: Step budget for one run()
            step_delay: Seconds to wait between steps
            no_delay: Skip step_delay entirely
            discount_rate: γ, must be in [0, 1)
            rejected_move_backoff: Seconds to wait after a rejected demo move
            reward_fn: Reward shaping
            sleep: Sleep function (injected by tests)
        """
        if not 0 <= discount_rate < 1:
            raise ValueError(f"Discount rate must be in [0, 1), got {discount_rate}")
        if max_steps_per_game < 0:
            raise ValueError(f"Step budget cannot be negative, got {max_steps_per_game}")

        self.game = game
        self.model = model
        self.memory = memory
        self.max_steps_per_game = max_steps_per_game
        self.step_delay = step_delay
        self.no_delay = no_delay
        self.discount_rate = discount_rate
        self.rejected_move_backoff = rejected_move_backoff
        self.reward_fn = reward_fn
        self._sleep = sleep

        self.steps = 0

    def run(self) -> EpisodeResult:
        """
        Play one round of up to max_steps_per_game steps, then replay once.

        The round does not stop when a game ends: the board is reset and
        stepping continues until the budget is spent.
        """
        state = self.game.get_state()
        total_reward = 0.0
        games_finished = 0
        step = 0

        while step < self.max_steps_per_game:
            action = self.model.choose_action(state)
            self.game.shift(action_to_direction(action))

            won = self.game.is_won()
            lost = self.game.is_lost()
            done = won or lost
            next_state = self.game.get_state()
            reward = self.reward_fn(next_state, self.game.score, lost, won)

            # Each stored buffer gets exactly one owner: the copy goes to this
            # transition, the original becomes the next transition's state
            self.memory.add_sample(
                Transition(state, action, reward, None if done else next_state.copy())
            )

            self.steps += 1
            step += 1
            total_reward += reward
            state = next_state
            if done:
                games_finished += 1

            if step == self.max_steps_per_game:
                break

            if done:
                self.game.reset()
                state = self.game.get_state()

            if not self.no_delay and self.step_delay > 0:
                self._sleep(self.step_delay)

        _logger.info(f"Achieved reward: {total_reward:.1f} over {step} steps")

        loss, batch_size = self.replay()
        self.game.reset()

        return EpisodeResult(
            steps=step,
            total_reward=total_reward,
            games_finished=games_finished,
            loss=loss,
            batch_size=batch_size,
        )

    def replay(self) -> Tuple[Optional[float], int]:
        """
        One learning step on a mini-batch sampled from memory.

        Returns:
            (loss, number of transitions trained on); loss is None when
            memory is empty
        """
        batch = self.memory.sample(self.model.batch_size)
        if not batch:
            _logger.debug("Replay skipped: memory is empty")
            return None, 0

        x_batch, y_batch = self._build_targets(batch)
        try:
            loss = self.model.train(x_batch, y_batch)
        finally:
            del x_batch, y_batch

        _logger.debug(f"Replay trained on {len(batch)} transitions, loss={loss:.6f}")
        return loss, len(batch)

    def _build_targets(self, batch: List[Transition]) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Stack states and TD-corrected Q-value targets.

        Returns:
            x of shape (len(batch), num_states), y of shape (len(batch), num_actions)
        """
        states = np.empty((len(batch), self.model.num_states), dtype=np.float32)
        targets = np.empty((len(batch), self.model.num_actions), dtype=np.float32)

        for i, transition in enumerate(batch):
            with torch.no_grad():
                current_q = self.model.predict(transition.state)[0].cpu().numpy().copy()

                if transition.next_state is None:
                    current_q[transition.action] = transition.reward
                else:
                    next_q = self.model.predict(transition.next_state)
                    max_next_q = float(next_q.max().item())
                    del next_q
                    current_q[transition.action] = (
                        transition.reward + self.discount_rate * max_next_q
                    )

            states[i] = np.asarray(transition.state, dtype=np.float32).reshape(-1)
            targets[i] = current_q

        return torch.from_numpy(states), torch.from_numpy(targets)

    def just_play(self) -> Tuple[bool, bool]:
        """
        Make one move with the current policy, without storing or learning.

        Returns:
            (lost, won) after the move
        """
        action = self.model.choose_action(self.game.get_state())
        moved = self.game.shift(action_to_direction(action))
        if not moved:
            self._sleep(self.rejected_move_backoff)
        return self.game.is_lost(), self.game.is_won()
