from datetime import datetime

from questions import CandidateAnswer
from quiz_session import QuizPhase, QuizSession


def correct_answer(question):
    if question.is_no_outshot:
        return CandidateAnswer.declare_no_outshot()
    return CandidateAnswer.from_values(question.solution)


def make_session(pool, clock, scheduler, rng, **kwargs):
    saved = kwargs.pop("saved", None)
    options = dict(
        fetch_questions=lambda: pool,
        persist_session=saved.append if saved is not None else None,
        user_id="player-1",
        clock=clock,
        wall_clock=lambda: datetime(2024, 3, 10, 12, 0),
        scheduler=scheduler,
        rng=rng,
    )
    options.update(kwargs)
    return QuizSession(**options)


def play_to_end(session, clock, answer_delay=3.0):
    while session.phase is QuizPhase.PLAYING:
        assert session.submit(correct_answer(session.current_question))
        clock.advance(answer_delay)
        session.tick()


def test_countdown_then_playing(pool, clock, scheduler, rng):
    session = make_session(pool, clock, scheduler, rng)
    assert session.load() is QuizPhase.COUNTDOWN
    assert session.countdown_value == 3
    assert session.total_questions == 10
    assert not session.press_digit(1)

    clock.advance(1)
    session.tick()
    assert session.countdown_value == 2

    clock.advance(2)
    assert session.tick() is QuizPhase.PLAYING
    assert session.current_question is not None
    assert scheduler.named("countdown")[0].cancelled
    assert session.active_timers == ["elapsed"]


def test_late_tick_catches_up(pool, clock, scheduler, rng):
    session = make_session(pool, clock, scheduler, rng)
    session.load()
    clock.advance(4.5)
    assert session.tick() is QuizPhase.PLAYING
    # play started when the count hit zero, 1.5s ago
    assert session.elapsed_time == 1.5


def test_answer_delay_blocks_input(pool, clock, scheduler, rng):
    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0)
    session.load()
    first = session.current_question
    assert session.submit(correct_answer(first))
    assert session.score == 1
    assert session.awaiting_advance
    assert not session.submit(correct_answer(first))

    clock.advance(2.5)
    session.tick()
    assert session.current_question is first
    assert not session.press_digit(1)

    clock.advance(0.5)
    session.tick()
    assert session.question_index == 1
    assert not session.awaiting_advance


def test_keypad_answer(pool, clock, scheduler, rng):
    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0, answer_delay=0)
    session.load()
    while session.current_question.is_no_outshot:
        session.declare_no_outshot()
    question = session.current_question
    for digit in str(question.solution[0]):
        assert session.press_digit(digit)
    # one slot, so enter submits
    assert session.enter()
    assert session.answers[-1].is_correct
    assert session.answers[-1].user_input == [str(question.solution[0])]


def test_full_session_is_saved_once(pool, clock, scheduler, rng):
    saved = []
    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0, saved=saved)
    session.load()
    play_to_end(session, clock)

    assert session.phase is QuizPhase.FINISHED
    assert len(saved) == 1
    result = saved[0]
    assert result.score == "10/10"
    assert result.user_id == "player-1"
    assert len(result.answers) == 10
    assert result.duration == 30.0
    assert session.persisted
    assert scheduler.live == []
    assert session.tick() is QuizPhase.FINISHED
    assert len(saved) == 1


def test_wrong_answers_are_recorded(pool, clock, scheduler, rng):
    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0, answer_delay=0)
    session.load()
    while session.phase is QuizPhase.PLAYING:
        session.submit(CandidateAnswer.from_values([1]))
    assert session.result.correct_answers == 0
    assert all(not a.is_correct for a in session.result.answers)


def test_anonymous_session_is_not_saved(pool, clock, scheduler, rng):
    saved = []
    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0, answer_delay=0,
                           saved=saved, user_id=None)
    session.load()
    play_to_end(session, clock, answer_delay=0)
    assert session.phase is QuizPhase.FINISHED
    assert saved == []


def test_save_failure_is_swallowed(pool, clock, scheduler, rng):
    def broken(result):
        raise RuntimeError("database is down")

    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0, answer_delay=0,
                           persist_session=broken)
    session.load()
    play_to_end(session, clock, answer_delay=0)
    assert session.phase is QuizPhase.FINISHED
    assert session.result is not None
    assert not session.persisted


def test_abort_cancels_timers_and_skips_save(pool, clock, scheduler, rng):
    saved = []
    session = make_session(pool, clock, scheduler, rng, saved=saved)
    session.load()
    clock.advance(3)
    session.tick()
    session.submit(correct_answer(session.current_question))

    assert session.abort()
    assert session.phase is QuizPhase.ABORTED
    assert scheduler.live == []
    clock.advance(10)
    assert session.tick() is QuizPhase.ABORTED
    assert not session.submit(CandidateAnswer.from_values([2]))
    assert saved == []
    assert not session.abort()


def test_load_failure(clock, scheduler, rng):
    def failing():
        raise IOError("no connection")

    session = make_session([], clock, scheduler, rng, fetch_questions=failing)
    assert session.load() is QuizPhase.FINISHED
    assert session.error
    assert scheduler.tasks == []


def test_empty_pool(clock, scheduler, rng):
    session = make_session([], clock, scheduler, rng)
    assert session.load() is QuizPhase.FINISHED
    assert session.error == "No quiz questions available"


def test_snapshot_hides_solution(pool, clock, scheduler, rng):
    session = make_session(pool, clock, scheduler, rng, countdown_seconds=0)
    session.load()
    state = session.snapshot()
    assert state["phase"] == "playing"
    assert "solution" not in state["question"]
    assert state["question_number"] == 1
