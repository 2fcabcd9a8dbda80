"""
Rapid-fire checkout quiz: menu -> playing -> finished.

One clock (30 seconds by default) runs the whole round. Each answer is judged and the next
question shown immediately; the pool is reshuffled and reused when exhausted, so only the
clock ends a round. Score is 10 points per correct answer plus 50 for a round without a
wrong answer. A score above the player's personal best is persisted and flagged.
"""

import enum
import logging
import math
import random
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import scoring
from questions import (
    AnswerPad,
    CandidateAnswer,
    CheckoutQuestion,
    judge_answer,
    select_questions,
    shuffled,
)
from timers import TimerOwner, start_periodic

logger = logging.getLogger(__name__)

# keypad limits: two digits, nothing above a treble twenty
MAX_DIGITS = 2
MAX_VALUE = 60


class RapidPhase(str, enum.Enum):
    MENU = "menu"
    PLAYING = "playing"
    FINISHED = "finished"
    ABORTED = "aborted"


class RapidQuiz(TimerOwner):
    TICK_INTERVAL = 1.0

    def __init__(
        self,
        fetch_questions: Callable[[], Iterable[CheckoutQuestion]],
        fetch_personal_best: Optional[Callable[[str], int]] = None,
        persist_score: Optional[Callable[[Dict[str, Any]], Any]] = None,
        user_id: Optional[str] = None,
        duration: int = 30,
        points_per_correct: int = scoring.RAPID_POINTS_PER_CORRECT,
        perfect_bonus: int = scoring.RAPID_PERFECT_BONUS,
        clock: Callable[[], float] = time.monotonic,
        scheduler=start_periodic,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(scheduler)
        self._fetch_questions = fetch_questions
        self._fetch_personal_best = fetch_personal_best
        self._persist_score = persist_score
        self.user_id = user_id
        self.duration = duration
        self.points_per_correct = points_per_correct
        self.perfect_bonus = perfect_bonus
        self._clock = clock
        self._rng = rng or random.Random()

        self.phase = RapidPhase.MENU
        self.error: Optional[str] = None
        self.personal_best = 0
        self.is_new_high_score = False
        self.questions: List[CheckoutQuestion] = []
        self.question_index = 0
        self.pad: Optional[AnswerPad] = None
        self.time_remaining = duration
        self.questions_answered = 0
        self.correct_answers = 0
        self.wrong_answers = 0
        self.current_streak = 0
        self.best_streak = 0
        self.last_correct: Optional[bool] = None
        self.persisted = False
        self._ends_at: Optional[float] = None

    # Lifecycle

    def load_personal_best(self) -> int:
        with self._lock:
            if not self.user_id or self._fetch_personal_best is None:
                return self.personal_best
            try:
                self.personal_best = int(self._fetch_personal_best(self.user_id) or 0)
            except Exception:
                logger.exception("Failed to load rapid quiz high score for user %s", self.user_id)
            return self.personal_best

    def start(self) -> bool:
        """Fetch the pool and start the clock. On failure the session stays on the menu with `error` set."""
        with self._lock:
            if self.phase is not RapidPhase.MENU:
                return False
            self.error = None
            try:
                pool = list(self._fetch_questions())
            except Exception:
                logger.exception("Failed to load rapid quiz questions")
                self.error = "Failed to load quiz questions"
                return False

            questions = select_questions(pool, None, rng=self._rng)
            if not questions:
                self.error = "No quiz questions available"
                logger.warning("Rapid quiz for user %s could not start: %s", self.user_id, self.error)
                return False

            now = self._clock()
            self.questions = questions
            self.question_index = 0
            self.questions_answered = self.correct_answers = self.wrong_answers = 0
            self.current_streak = self.best_streak = 0
            self.time_remaining = self.duration
            self._ends_at = now + self.duration
            self.phase = RapidPhase.PLAYING
            self._present_question()
            self._start_timer("clock", self.TICK_INTERVAL, self.tick)
            logger.info("Rapid quiz started for user %s with %d questions", self.user_id, len(questions))
            return True

    def tick(self, now: Optional[float] = None) -> RapidPhase:
        with self._lock:
            if self.phase is not RapidPhase.PLAYING:
                return self.phase
            now = self._clock() if now is None else now
            self.time_remaining = max(0, int(math.ceil(self._ends_at - now)))
            if self.time_remaining <= 0:
                self._finish()
            return self.phase

    def abort(self) -> bool:
        with self._lock:
            if self.phase in (RapidPhase.FINISHED, RapidPhase.ABORTED):
                return False
            self._cancel_all_timers()
            self.phase = RapidPhase.ABORTED
            logger.info("Rapid quiz aborted by user %s", self.user_id)
            return True

    # Input

    def press_digit(self, digit) -> bool:
        with self._lock:
            return self._accepting() and self.pad.press_digit(digit)

    def backspace(self) -> bool:
        with self._lock:
            return self._accepting() and self.pad.backspace()

    def clear_input(self) -> bool:
        with self._lock:
            return self._accepting() and self.pad.clear()

    def select_multiplier(self, multiplier) -> bool:
        with self._lock:
            return self._accepting() and self.pad.select_multiplier(multiplier)

    def press_segment(self, segment: int) -> bool:
        with self._lock:
            return self._accepting() and self.pad.press_segment(segment)

    def enter(self) -> bool:
        with self._lock:
            if not self._accepting():
                return False
            if not self.pad.enter():
                self._submit(self.pad.to_answer())
            return True

    def declare_no_outshot(self) -> bool:
        with self._lock:
            if not self._accepting():
                return False
            self.pad.mark_no_outshot()
            self._submit(self.pad.to_answer())
            return True

    def submit(self, answer: CandidateAnswer) -> bool:
        with self._lock:
            if not self._accepting():
                return False
            self._submit(answer)
            return True

    # State

    @property
    def current_question(self) -> Optional[CheckoutQuestion]:
        if self.phase is not RapidPhase.PLAYING:
            return None
        return self.questions[self.question_index]

    @property
    def is_over(self) -> bool:
        return self.phase in (RapidPhase.FINISHED, RapidPhase.ABORTED)

    @property
    def final_score(self) -> int:
        return scoring.rapid_score(self.correct_answers, self.wrong_answers, self.questions_answered,
                                   self.points_per_correct, self.perfect_bonus)

    def score_record(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "score": self.final_score,
            "questions_answered": self.questions_answered,
            "correct_answers": self.correct_answers,
            "wrong_answers": self.wrong_answers,
            "best_streak": self.best_streak,
        }

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            question = self.current_question
            data = self.score_record()
            data.update({
                "phase": self.phase.value,
                "error": self.error,
                "time_remaining": self.time_remaining,
                "current_streak": self.current_streak,
                "personal_best": self.personal_best,
                "is_new_high_score": self.is_new_high_score,
                "last_correct": self.last_correct,
                "question": None,
                "input": self.pad.to_dict() if self.pad and question else None,
            })
            if question is not None:
                data["question"] = {
                    "id": question.id,
                    "target_score": question.target_score,
                    "required_darts": question.required_darts,
                    "input_slots": question.input_slots,
                }
            return data

    # Transitions

    def _accepting(self) -> bool:
        self.tick()
        if self.phase is not RapidPhase.PLAYING:
            logger.debug("Rapid quiz input ignored (phase=%s)", self.phase.value)
            return False
        return True

    def _present_question(self) -> None:
        question = self.questions[self.question_index]
        self.pad = AnswerPad(question.input_slots, max_digits=MAX_DIGITS, max_value=MAX_VALUE)

    def _submit(self, answer: CandidateAnswer) -> None:
        correct = judge_answer(self.questions[self.question_index], answer)
        self.questions_answered += 1
        self.last_correct = correct
        if correct:
            self.correct_answers += 1
            self.current_streak += 1
            self.best_streak = max(self.best_streak, self.current_streak)
        else:
            self.wrong_answers += 1
            self.current_streak = 0
        self._next_question()

    def _next_question(self) -> None:
        if self.question_index < len(self.questions) - 1:
            self.question_index += 1
        else:
            self.questions = shuffled(self.questions, self._rng)
            self.question_index = 0
        self._present_question()

    def _finish(self) -> None:
        self._cancel_all_timers()
        self.phase = RapidPhase.FINISHED
        self.time_remaining = 0
        score = self.final_score
        logger.info("Rapid quiz finished for user %s: %d points (%d/%d)", self.user_id, score,
                    self.correct_answers, self.questions_answered)
        if not self.user_id or score <= self.personal_best:
            return
        self.is_new_high_score = True
        previous = self.personal_best
        self.personal_best = score
        if self._persist_score is None:
            return
        try:
            self._persist_score(self.score_record())
            self.persisted = True
            logger.info("New rapid quiz high score for user %s: %d (was %d)", self.user_id, score, previous)
        except Exception:
            logger.exception("Failed to save rapid quiz score for user %s", self.user_id)
