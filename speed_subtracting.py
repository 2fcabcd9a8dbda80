"""
Speed subtracting: count a 501 leg down to zero as fast as possible.

The engine shows a generated visit score; the player types what is left after subtracting it.
Correct answers move the score down, wrong ones only count as mistakes. Generated visits follow
a rough distribution of real scoring and, from 180 down, never exceed what is left, with a
30% chance of offering the exact finish at 60 or below.

Each game is its own object; nothing is shared between instances.
"""

import logging
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from timers import TimerOwner, start_periodic

logger = logging.getLogger(__name__)

START_SCORE = 501
MAX_VISIT = 180
FINISH_CHANCE = 0.3

# (cumulative probability, low, high)
VISIT_BANDS = [
    (0.05, 100, 180),
    (0.20, 81, 99),
    (0.70, 41, 80),
    (0.95, 26, 40),
    (1.00, 1, 25),
]


def generate_dart_score(rng: random.Random) -> int:
    roll = rng.random()
    for threshold, low, high in VISIT_BANDS:
        if roll < threshold:
            return rng.randint(low, high)
    return rng.randint(1, 25)


def generate_safe_score(current_score: int, rng: random.Random) -> int:
    """A visit that cannot take `current_score` below zero."""
    if current_score > MAX_VISIT:
        return generate_dart_score(rng)
    if current_score <= 60 and rng.random() < FINISH_CHANCE:
        return current_score
    if current_score <= 25:
        return rng.randint(1, current_score)
    if current_score <= 60:
        return rng.randint(1, min(40, current_score))
    return rng.randint(1, min(60, current_score))


@dataclass
class SubtractingState:
    current_score: int = START_SCORE
    current_target: int = 0
    throw_count: int = 0
    mistakes: int = 0
    is_playing: bool = False
    game_complete: bool = False
    elapsed_time: float = 0.0
    best_time: Optional[float] = None
    throw_history: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_score": self.current_score,
            "current_target": self.current_target,
            "throw_count": self.throw_count,
            "mistakes": self.mistakes,
            "is_playing": self.is_playing,
            "game_complete": self.game_complete,
            "elapsed_time": round(self.elapsed_time, 3),
            "best_time": self.best_time,
            "throw_history": list(self.throw_history),
        }


class SpeedSubtractingGame(TimerOwner):
    POLL_INTERVAL = 0.1

    def __init__(
        self,
        best_time: Optional[float] = None,
        on_new_best: Optional[Callable[[float], Any]] = None,
        start_score: int = START_SCORE,
        clock: Callable[[], float] = time.monotonic,
        scheduler=start_periodic,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(scheduler)
        self.start_score = start_score
        self._on_new_best = on_new_best
        self._clock = clock
        self._rng = rng or random.Random()
        self._started_at = 0.0
        self.state = SubtractingState(current_score=start_score, best_time=best_time)

    def start_game(self) -> SubtractingState:
        with self._lock:
            self._cancel_all_timers()
            self._started_at = self._clock()
            self.state = SubtractingState(
                current_score=self.start_score,
                current_target=self._next_target(self.start_score),
                is_playing=True,
                best_time=self.state.best_time,
            )
            self._start_timer("elapsed", self.POLL_INTERVAL, self.update_timer)
            return self.snapshot()

    def reset_game(self) -> SubtractingState:
        with self._lock:
            self._cancel_all_timers()
            self.state = SubtractingState(current_score=self.start_score, best_time=self.state.best_time)
            return self.snapshot()

    def submit_answer(self, answer: int) -> bool:
        """True when `answer` is exactly the score left after the current visit."""
        with self._lock:
            state = self.state
            if not state.is_playing or state.game_complete:
                return False
            self.update_timer()
            expected = state.current_score - state.current_target
            if answer != expected:
                state.mistakes += 1
                return False

            state.current_score = expected
            state.throw_count += 1
            state.throw_history.append(state.current_target)
            if state.current_score == 0:
                self._complete()
            else:
                state.current_target = self._next_target(state.current_score)
            return True

    def update_timer(self, now: Optional[float] = None) -> float:
        with self._lock:
            if self.state.is_playing and not self.state.game_complete:
                now = self._clock() if now is None else now
                self.state.elapsed_time = max(0.0, now - self._started_at)
            return self.state.elapsed_time

    @property
    def is_over(self) -> bool:
        return self.state.game_complete

    def snapshot(self) -> SubtractingState:
        with self._lock:
            return replace(self.state, throw_history=list(self.state.throw_history))

    def _next_target(self, current_score: int) -> int:
        target = generate_safe_score(current_score, self._rng)
        # a bust is never offered; draw again from the bounded range
        while target > current_score:
            target = self._rng.randint(1, current_score)
        return target

    def _complete(self) -> None:
        state = self.state
        self._cancel_all_timers()
        state.game_complete = True
        state.is_playing = False
        elapsed = state.elapsed_time
        logger.info("Speed subtracting completed in %.2fs with %d mistakes", elapsed, state.mistakes)
        if state.best_time is not None and elapsed >= state.best_time:
            return
        state.best_time = elapsed
        if self._on_new_best is None:
            return
        try:
            self._on_new_best(elapsed)
        except Exception:
            logger.exception("Failed to save speed subtracting best time")
