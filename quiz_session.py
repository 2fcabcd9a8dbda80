"""
Timed checkout quiz: loading -> countdown -> playing -> finished.

A session fetches a fixed-size batch of questions, runs a 3-2-1 countdown, then takes
keystroke input question by question. Every judged answer is shown for `answer_delay`
seconds, during which no input is accepted, before the next question appears. The finished
session is handed to the persistence callable once; a failed save is logged and ignored.
A session may be aborted from any state before finished; aborted sessions are never saved.

All deadlines are stored as clock readings, so `tick()` can be driven by a background
periodic task or simply called whenever an event arrives.
"""

import enum
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

import scoring
from questions import (
    AnswerPad,
    AnswerRecord,
    CandidateAnswer,
    CheckoutQuestion,
    judge_answer,
    make_record,
    select_questions,
)
from timers import TimerOwner, start_periodic

logger = logging.getLogger(__name__)


class QuizPhase(str, enum.Enum):
    LOADING = "loading"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    FINISHED = "finished"
    ABORTED = "aborted"


@dataclass
class QuizResult:
    user_id: Optional[str]
    start_time: datetime
    end_time: datetime
    total_questions: int
    correct_answers: int
    duration: float
    answers: List[AnswerRecord] = field(default_factory=list)

    @property
    def score(self) -> str:
        return f"{self.correct_answers}/{self.total_questions}"

    @property
    def accuracy(self) -> float:
        return scoring.accuracy(self.correct_answers, self.total_questions)

    @property
    def combined_score(self) -> float:
        return scoring.combined_score(self.accuracy, self.duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "score": self.score,
            "duration": round(self.duration, 3),
            "accuracy": round(self.accuracy, 2),
            "combined_score": round(self.combined_score, 2),
            "answers": [a.to_dict() for a in self.answers],
        }


class QuizSession(TimerOwner):
    COUNTDOWN_INTERVAL = 1.0
    ELAPSED_POLL_INTERVAL = 0.1

    def __init__(
        self,
        fetch_questions: Callable[[], Iterable[CheckoutQuestion]],
        persist_session: Optional[Callable[[QuizResult], Any]] = None,
        user_id: Optional[str] = None,
        question_count: int = 10,
        no_outshot_share: float = 0.15,
        countdown_seconds: int = 3,
        answer_delay: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.utcnow,
        scheduler=start_periodic,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(scheduler)
        self._fetch_questions = fetch_questions
        self._persist_session = persist_session
        self.user_id = user_id
        self.question_count = question_count
        self.no_outshot_share = no_outshot_share
        self.countdown_seconds = countdown_seconds
        self.answer_delay = answer_delay
        self._clock = clock
        self._wall_clock = wall_clock
        self._rng = rng or random.Random()

        self.phase = QuizPhase.LOADING
        self.error: Optional[str] = None
        self.questions: List[CheckoutQuestion] = []
        self.question_index = 0
        self.score = 0
        self.elapsed_time = 0.0
        self.countdown_value = countdown_seconds
        self.answers: List[AnswerRecord] = []
        self.pad: Optional[AnswerPad] = None
        self.last_answer: Optional[AnswerRecord] = None
        self.result: Optional[QuizResult] = None
        self.persisted = False

        self._started_at: Optional[float] = None
        self._next_count_at: Optional[float] = None
        self._advance_at: Optional[float] = None
        self._question_started_at: Optional[float] = None

    # Lifecycle

    def load(self) -> QuizPhase:
        with self._lock:
            if self.phase is not QuizPhase.LOADING:
                return self.phase
            try:
                pool = list(self._fetch_questions())
            except Exception:
                logger.exception("Failed to load quiz questions")
                self._fail("Failed to load quiz questions")
                return self.phase

            questions = select_questions(pool, self.question_count, self.no_outshot_share, self._rng)
            if not questions:
                self._fail("No quiz questions available")
                return self.phase

            self.questions = questions
            logger.info("Quiz loaded %d questions for user %s", len(questions), self.user_id)
            self._enter_countdown(self._clock())
            return self.phase

    def tick(self, now: Optional[float] = None) -> QuizPhase:
        with self._lock:
            now = self._clock() if now is None else now

            if self.phase is QuizPhase.COUNTDOWN:
                while self.countdown_value > 0 and now >= self._next_count_at:
                    self.countdown_value -= 1
                    self._next_count_at += self.COUNTDOWN_INTERVAL
                if self.countdown_value <= 0:
                    # play starts at the moment the count reached zero
                    self._begin_playing(self._next_count_at - self.COUNTDOWN_INTERVAL)

            if self.phase is QuizPhase.PLAYING:
                self.elapsed_time = max(0.0, now - self._started_at)
                if self._advance_at is not None and now >= self._advance_at:
                    self._advance(self._advance_at)
            return self.phase

    def abort(self) -> bool:
        with self._lock:
            if self.phase in (QuizPhase.FINISHED, QuizPhase.ABORTED):
                return False
            self._cancel_all_timers()
            self._advance_at = None
            self.phase = QuizPhase.ABORTED
            logger.info("Quiz aborted by user %s at question %d", self.user_id, self.question_index + 1)
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
        """Move to the next input slot, or submit when the last slot is active."""
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
        if self.phase is not QuizPhase.PLAYING:
            return None
        return self.questions[self.question_index]

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def awaiting_advance(self) -> bool:
        return self._advance_at is not None

    @property
    def is_over(self) -> bool:
        return self.phase in (QuizPhase.FINISHED, QuizPhase.ABORTED)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            question = self.current_question
            data = {
                "phase": self.phase.value,
                "error": self.error,
                "countdown": self.countdown_value,
                "question_number": self.question_index + 1 if self.questions else 0,
                "total_questions": self.total_questions,
                "score": self.score,
                "elapsed_time": round(self.elapsed_time, 3),
                "awaiting_advance": self.awaiting_advance,
                "question": None,
                "input": self.pad.to_dict() if self.pad and question else None,
                "last_answer": self.last_answer.to_dict() if self.last_answer else None,
                "result": self.result.to_dict() if self.result else None,
            }
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
        if self.phase is not QuizPhase.PLAYING or self._advance_at is not None:
            logger.debug("Quiz input ignored (phase=%s, awaiting=%s)", self.phase.value, self.awaiting_advance)
            return False
        return True

    def _fail(self, message: str) -> None:
        self._cancel_all_timers()
        self.error = message
        self.phase = QuizPhase.FINISHED
        logger.warning("Quiz for user %s could not start: %s", self.user_id, message)

    def _enter_countdown(self, now: float) -> None:
        self.phase = QuizPhase.COUNTDOWN
        self.countdown_value = self.countdown_seconds
        self._next_count_at = now + self.COUNTDOWN_INTERVAL
        if self.countdown_value <= 0:
            self._begin_playing(now)
            return
        self._start_timer("countdown", self.COUNTDOWN_INTERVAL, self.tick)

    def _begin_playing(self, at: float) -> None:
        self._cancel_timer("countdown")
        self.countdown_value = 0
        self.phase = QuizPhase.PLAYING
        self._started_at = at
        self.elapsed_time = 0.0
        self._present_question(at)
        self._start_timer("elapsed", self.ELAPSED_POLL_INTERVAL, self.tick)

    def _present_question(self, at: float) -> None:
        question = self.questions[self.question_index]
        self.pad = AnswerPad(question.input_slots)
        self._question_started_at = at

    def _submit(self, answer: CandidateAnswer) -> None:
        now = self._clock()
        question = self.questions[self.question_index]
        correct = judge_answer(question, answer)
        if correct:
            self.score += 1
        record = make_record(self.question_index + 1, question, answer, correct,
                             max(0.0, now - self._question_started_at))
        self.answers.append(record)
        self.last_answer = record

        if self.answer_delay <= 0:
            self._advance(now)
        else:
            self._advance_at = now + self.answer_delay

    def _advance(self, at: float) -> None:
        self._advance_at = None
        if self.question_index < len(self.questions) - 1:
            self.question_index += 1
            self._present_question(at)
        else:
            self._finish(at)

    def _finish(self, at: float) -> None:
        self._cancel_all_timers()
        self.phase = QuizPhase.FINISHED
        self.elapsed_time = max(0.0, at - self._started_at)
        end_time = self._wall_clock()
        self.result = QuizResult(
            user_id=self.user_id,
            start_time=end_time - timedelta(seconds=self.elapsed_time),
            end_time=end_time,
            total_questions=len(self.questions),
            correct_answers=self.score,
            duration=self.elapsed_time,
            answers=list(self.answers),
        )
        logger.info("Quiz finished for user %s: %s in %.1fs", self.user_id, self.result.score, self.elapsed_time)
        self._persist()

    def _persist(self) -> None:
        if not self.user_id or self._persist_session is None:
            return
        try:
            self._persist_session(self.result)
            self.persisted = True
        except Exception:
            logger.exception("Failed to save quiz session for user %s", self.user_id)
