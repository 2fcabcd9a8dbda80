import random

from checkout import COMMON_CHECKOUTS
from questions import (
    NO_OUTSHOT,
    AnswerPad,
    CandidateAnswer,
    CheckoutQuestion,
    judge_answer,
    make_record,
    question_for_score,
    select_questions,
)


def test_same_values_is_correct():
    q = CheckoutQuestion(1, 60, 3, (20, 20, 20))
    assert judge_answer(q, CandidateAnswer.from_values([20, 20, 20]))


def test_order_does_not_matter():
    q = CheckoutQuestion(1, 170, 3, (60, 60, 50))
    assert judge_answer(q, CandidateAnswer.from_values([60, 50, 60]))


def test_different_values_with_same_total_is_wrong():
    q = CheckoutQuestion(1, 60, 2, (20, 40))
    assert not judge_answer(q, CandidateAnswer.from_values([30, 30]))


def test_empty_slots_are_ignored():
    q = CheckoutQuestion(1, 40, 1, (40,))
    assert judge_answer(q, CandidateAnswer.from_values([0, 40, 0]))


def test_no_outshot_declaration():
    q = CheckoutQuestion(1, 169, 0, is_no_outshot=True)
    assert judge_answer(q, CandidateAnswer.declare_no_outshot())
    assert not judge_answer(q, CandidateAnswer.from_values([57, 57, 55]))
    assert not judge_answer(q, CandidateAnswer.from_values([0, 0, 0]))


def test_declaring_no_outshot_on_regular_question_is_wrong():
    q = CheckoutQuestion(1, 40, 1, (40,))
    assert not judge_answer(q, CandidateAnswer.declare_no_outshot())


def test_zero_darts_means_no_outshot():
    q = CheckoutQuestion(7, 163, 0)
    assert q.is_no_outshot
    assert q.input_slots == 3
    assert q.correct_answer == [NO_OUTSHOT]


def test_question_for_score():
    q = question_for_score(100, question_id=3)
    assert q.required_darts == 2
    assert q.solution == (60, 40)
    assert question_for_score(169).is_no_outshot


def test_pad_numeric_input():
    pad = AnswerPad(2)
    assert pad.press_digit(6)
    assert pad.press_digit("0")
    assert pad.enter()
    pad.press_digit(4)
    pad.press_digit(5)
    pad.backspace()
    assert pad.values() == [60, 4]
    # last slot: enter means submit
    assert not pad.enter()


def test_pad_limits():
    pad = AnswerPad(1, max_digits=2, max_value=60)
    assert pad.press_digit(6)
    assert not pad.press_digit(1)
    assert pad.press_digit(0)
    assert not pad.press_digit(0)
    assert not pad.press_digit("x")
    pad.clear()
    assert pad.values() == [0]


def test_pad_dart_mode():
    pad = AnswerPad(3)
    pad.select_multiplier("T")
    pad.press_segment(20)
    pad.enter()
    pad.press_segment(20)
    pad.enter()
    pad.select_multiplier("double")
    pad.press_segment(25)
    assert pad.to_answer().values == (60, 60, 50)
    pad.select_multiplier(3)
    assert not pad.press_segment(25)
    assert not pad.select_multiplier("Q")


def test_pad_no_outshot_clears_inputs():
    pad = AnswerPad(3)
    pad.press_digit(5)
    pad.mark_no_outshot()
    answer = pad.to_answer()
    assert answer.no_outshot
    assert not answer.entered_numbers


def test_make_record():
    q = CheckoutQuestion(9, 169, 0, is_no_outshot=True)
    record = make_record(1, q, CandidateAnswer.declare_no_outshot(), True, 2.5)
    assert record.user_input == [NO_OUTSHOT]
    assert record.darts_required == 3
    assert record.to_dict()["checkout"] == 169
    assert record.correct_answer_label == NO_OUTSHOT


def test_record_labels_canonical_answer():
    q = question_for_score(170, question_id=4)
    record = make_record(2, q, CandidateAnswer.from_values([60, 60, 50]), True, 4.0)
    assert record.correct_answer == ["60", "60", "50"]
    assert record.to_dict()["correct_answer_label"] == "T20, T20, Bull"


def test_select_questions_mixes_no_outshot(pool):
    selected = select_questions(pool, 10, 0.15, random.Random(1))
    assert len(selected) == 10
    assert sum(q.is_no_outshot for q in selected) == 1
    assert len({q.id for q in selected}) == 10


def test_select_questions_small_pool(pool):
    selected = select_questions(pool[:4], 10, rng=random.Random(1))
    assert len(selected) == 4


def test_select_questions_needs_a_regular_question():
    pool = [CheckoutQuestion(1, 169, 0), CheckoutQuestion(2, 168, 0)]
    assert select_questions(pool, 10) == []


def test_select_whole_pool(pool):
    selected = select_questions(pool, None, rng=random.Random(3))
    assert sorted(q.id for q in selected) == sorted(q.id for q in pool)


def test_every_curated_question_is_answerable():
    for score in COMMON_CHECKOUTS:
        q = question_for_score(score)
        assert sum(q.solution) == score
        assert judge_answer(q, CandidateAnswer.from_values(q.solution)), score
