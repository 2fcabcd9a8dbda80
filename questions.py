"""
Quiz questions, player answers and how they are judged.

A question asks for a checkout of `target_score` in `required_darts` darts. Its canonical
`solution` is a list of raw point values (e.g. [60, 60, 50] for 170). Players type point values,
so an answer is judged on the value multiset: after dropping empty/zero slots and sorting both
sides, the values must pair up exactly and add up to the target. "No outshot" questions are only
answered correctly by explicitly declaring that no checkout exists.
"""

import logging
import math
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from checkout import (
    InvalidDartError,
    MAX_DARTS,
    Multiplier,
    dart_value,
    format_answer,
    recommended_checkout,
)

logger = logging.getLogger(__name__)

NO_OUTSHOT = "NO OUTSHOT"
# slots shown for a no-outshot question; typing into them is an incorrect answer
NO_OUTSHOT_SLOTS = 3


@dataclass(frozen=True)
class CheckoutQuestion:
    id: int
    target_score: int
    required_darts: int
    solution: tuple = ()
    is_no_outshot: bool = False

    def __post_init__(self):
        object.__setattr__(self, "solution", tuple(int(v) for v in self.solution))
        # a question without a dart count has no outshot by convention
        if self.required_darts == 0 and not self.is_no_outshot:
            object.__setattr__(self, "is_no_outshot", True)

    @property
    def input_slots(self) -> int:
        return NO_OUTSHOT_SLOTS if self.is_no_outshot else self.required_darts

    @property
    def correct_answer(self) -> List[str]:
        if self.is_no_outshot:
            return [NO_OUTSHOT]
        return [str(v) for v in self.solution]

    @property
    def answer_label(self) -> str:
        """Canonical answer as shown to players, e.g. "T20, T20, Bull"."""
        if self.is_no_outshot:
            return NO_OUTSHOT
        return format_answer(self.solution)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target_score": self.target_score,
            "required_darts": self.required_darts,
            "solution": list(self.solution),
            "is_no_outshot": self.is_no_outshot,
            "input_slots": self.input_slots,
        }


def question_for_score(score: int, question_id: int = 0) -> CheckoutQuestion:
    """Build a question from the checkout search; a score without checkout becomes a no-outshot question."""
    darts = recommended_checkout(score)
    if not darts:
        return CheckoutQuestion(id=question_id, target_score=score, required_darts=0, is_no_outshot=True)
    return CheckoutQuestion(
        id=question_id,
        target_score=score,
        required_darts=len(darts),
        solution=tuple(d.value for d in darts),
    )


@dataclass(frozen=True)
class CandidateAnswer:
    values: tuple = ()
    no_outshot: bool = False
    raw: tuple = ()

    @classmethod
    def from_values(cls, values: Sequence[int]) -> "CandidateAnswer":
        return cls(values=tuple(int(v) for v in values), raw=tuple(str(v) for v in values))

    @classmethod
    def declare_no_outshot(cls) -> "CandidateAnswer":
        return cls(no_outshot=True, raw=(NO_OUTSHOT,))

    @property
    def entered_numbers(self) -> bool:
        return any(v > 0 for v in self.values)


def judge_answer(question: CheckoutQuestion, answer: CandidateAnswer) -> bool:
    if question.is_no_outshot:
        return answer.no_outshot and not answer.entered_numbers
    if answer.no_outshot:
        return False
    user = sorted((v for v in answer.values if v > 0), reverse=True)
    correct = sorted(question.solution, reverse=True)
    return user == correct and sum(user) == question.target_score


class AnswerPad:
    """
    Keystroke-built answer for one question.

    Numeric mode appends digits to the active slot; dart mode writes the value of
    (selected multiplier x segment) into it. `enter()` moves to the next slot and
    reports False once the last slot is active, meaning the answer should be submitted.
    """

    def __init__(self, slots: int, max_digits: Optional[int] = None, max_value: Optional[int] = None):
        self.inputs: List[str] = [""] * max(1, slots)
        self.index = 0
        self.multiplier = Multiplier.SINGLE
        self.max_digits = max_digits
        self.max_value = max_value
        self.no_outshot = False

    @property
    def at_last_slot(self) -> bool:
        return self.index >= len(self.inputs) - 1

    def press_digit(self, digit) -> bool:
        digit = str(digit)
        if not digit.isdigit() or len(digit) != 1:
            return False
        current = self.inputs[self.index]
        if self.max_digits is not None and len(current) >= self.max_digits:
            return False
        candidate = current + digit
        if self.max_value is not None and int(candidate) > self.max_value:
            return False
        self.inputs[self.index] = candidate
        return True

    def backspace(self) -> bool:
        self.inputs[self.index] = self.inputs[self.index][:-1]
        return True

    def clear(self) -> bool:
        self.inputs[self.index] = ""
        return True

    def select_multiplier(self, multiplier) -> bool:
        try:
            self.multiplier = Multiplier.coerce(multiplier)
        except InvalidDartError:
            return False
        return True

    def press_segment(self, segment: int) -> bool:
        try:
            self.inputs[self.index] = str(dart_value(int(segment), self.multiplier))
        except (InvalidDartError, TypeError, ValueError) as e:
            logger.debug("Rejected dart input %s x %s: %s", self.multiplier.name, segment, e)
            return False
        return True

    def enter(self) -> bool:
        if self.at_last_slot:
            return False
        self.index += 1
        return True

    def values(self) -> List[int]:
        return [int(s) if s else 0 for s in self.inputs]

    def to_answer(self) -> CandidateAnswer:
        if self.no_outshot:
            return CandidateAnswer.declare_no_outshot()
        return CandidateAnswer(values=tuple(self.values()), raw=tuple(self.inputs))

    def mark_no_outshot(self) -> None:
        self.no_outshot = True
        self.inputs = [""] * len(self.inputs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputs": list(self.inputs),
            "index": self.index,
            "multiplier": self.multiplier.name.lower(),
            "no_outshot": self.no_outshot,
        }


@dataclass
class AnswerRecord:
    question_number: int
    question_id: int
    checkout: int
    user_input: List[str]
    correct_answer: List[str]
    is_correct: bool
    darts_required: int
    time_spent: float = 0.0
    correct_answer_label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_number": self.question_number,
            "question_id": self.question_id,
            "checkout": self.checkout,
            "user_input": list(self.user_input),
            "correct_answer": list(self.correct_answer),
            "correct_answer_label": self.correct_answer_label,
            "is_correct": self.is_correct,
            "darts_required": self.darts_required,
            "time_spent": round(self.time_spent, 3),
        }


def make_record(number: int, question: CheckoutQuestion, answer: CandidateAnswer, is_correct: bool,
                time_spent: float) -> AnswerRecord:
    return AnswerRecord(
        question_number=number,
        question_id=question.id,
        checkout=question.target_score,
        user_input=[NO_OUTSHOT] if answer.no_outshot else list(answer.raw),
        correct_answer=question.correct_answer,
        is_correct=is_correct,
        darts_required=question.required_darts or MAX_DARTS,
        time_spent=time_spent,
        correct_answer_label=question.answer_label,
    )


def shuffled(items: Sequence, rng: Optional[random.Random] = None) -> list:
    # random.shuffle is a Fisher-Yates shuffle
    out = list(items)
    (rng or random).shuffle(out)
    return out


def select_questions(pool: Sequence[CheckoutQuestion], count: Optional[int] = 10,
                     no_outshot_share: float = 0.15, rng: Optional[random.Random] = None) -> List[CheckoutQuestion]:
    """
    Pick a session's questions: mostly answerable ones plus roughly `no_outshot_share`
    (at least one, when any exist) no-outshot questions, uniformly shuffled.
    `count=None` returns the whole pool shuffled. Empty when the pool has no answerable question.
    """
    regular = [q for q in pool if not q.is_no_outshot]
    no_outshot = [q for q in pool if q.is_no_outshot]
    if not regular:
        return []
    if count is None:
        return shuffled(list(pool), rng)

    no_count = max(1, math.floor(count * no_outshot_share)) if no_outshot else 0
    no_count = min(no_count, len(no_outshot), max(count - 1, 0))
    selected = shuffled(regular, rng)[: count - no_count] + shuffled(no_outshot, rng)[:no_count]
    return shuffled(selected, rng)
