from questions import CandidateAnswer
from rapid_quiz import RapidPhase, RapidQuiz


def right(question):
    if question.is_no_outshot:
        return CandidateAnswer.declare_no_outshot()
    return CandidateAnswer.from_values(question.solution)


def wrong(question):
    if question.is_no_outshot:
        return CandidateAnswer.from_values([20])
    return CandidateAnswer.declare_no_outshot()


def make_quiz(pool, clock, scheduler, rng, **kwargs):
    options = dict(fetch_questions=lambda: pool, user_id="player-1", clock=clock,
                   scheduler=scheduler, rng=rng)
    options.update(kwargs)
    return RapidQuiz(**options)


def test_start_and_clock(pool, clock, scheduler, rng):
    quiz = make_quiz(pool, clock, scheduler, rng)
    assert quiz.phase is RapidPhase.MENU
    assert quiz.start()
    assert quiz.phase is RapidPhase.PLAYING
    assert quiz.time_remaining == 30
    assert quiz.active_timers == ["clock"]
    assert not quiz.start()

    clock.advance(10.5)
    quiz.tick()
    assert quiz.time_remaining == 20

    clock.advance(19.5)
    assert quiz.tick() is RapidPhase.FINISHED
    assert quiz.time_remaining == 0
    assert scheduler.live == []


def test_scores_and_streaks(pool, clock, scheduler, rng):
    quiz = make_quiz(pool, clock, scheduler, rng)
    quiz.start()
    for _ in range(3):
        quiz.submit(right(quiz.current_question))
    quiz.submit(wrong(quiz.current_question))
    quiz.submit(right(quiz.current_question))

    assert quiz.questions_answered == 5
    assert quiz.correct_answers == 4
    assert quiz.wrong_answers == 1
    assert quiz.best_streak == 3
    assert quiz.current_streak == 1
    assert quiz.last_correct is True
    assert quiz.final_score == 40


def test_perfect_round_bonus(pool, clock, scheduler, rng):
    quiz = make_quiz(pool, clock, scheduler, rng)
    quiz.start()
    for _ in range(10):
        quiz.submit(right(quiz.current_question))
    assert quiz.final_score == 150


def test_pool_is_reused_when_exhausted(pool, clock, scheduler, rng):
    quiz = make_quiz(pool, clock, scheduler, rng)
    quiz.start()
    for _ in range(len(pool) * 2 + 1):
        assert quiz.submit(right(quiz.current_question))
    assert quiz.phase is RapidPhase.PLAYING
    assert quiz.questions_answered == len(pool) * 2 + 1
    assert sorted(q.id for q in quiz.questions) == sorted(q.id for q in pool)


def test_keypad_caps_input(pool, clock, scheduler, rng):
    quiz = make_quiz(pool, clock, scheduler, rng)
    quiz.start()
    assert quiz.press_digit(6)
    assert not quiz.press_digit(5)
    assert quiz.press_digit(0)
    assert not quiz.press_digit(0)


def test_input_after_time_is_up_is_ignored(pool, clock, scheduler, rng):
    quiz = make_quiz(pool, clock, scheduler, rng)
    quiz.start()
    clock.advance(31)
    assert not quiz.submit(right(pool[0]))
    assert quiz.phase is RapidPhase.FINISHED
    assert quiz.questions_answered == 0


def test_new_high_score_is_saved(pool, clock, scheduler, rng):
    saved = []
    quiz = make_quiz(pool, clock, scheduler, rng, fetch_personal_best=lambda user_id: 30,
                     persist_score=saved.append)
    assert quiz.load_personal_best() == 30
    quiz.start()
    for _ in range(4):
        quiz.submit(right(quiz.current_question))
    clock.advance(30)
    quiz.tick()

    assert quiz.is_new_high_score
    assert quiz.personal_best == 90
    assert saved == [{
        "user_id": "player-1",
        "score": 90,
        "questions_answered": 4,
        "correct_answers": 4,
        "wrong_answers": 0,
        "best_streak": 4,
    }]


def test_lower_score_is_not_saved(pool, clock, scheduler, rng):
    saved = []
    quiz = make_quiz(pool, clock, scheduler, rng, fetch_personal_best=lambda user_id: 500,
                     persist_score=saved.append)
    quiz.load_personal_best()
    quiz.start()
    quiz.submit(right(quiz.current_question))
    clock.advance(30)
    quiz.tick()
    assert not quiz.is_new_high_score
    assert saved == []


def test_save_failure_is_swallowed(pool, clock, scheduler, rng):
    def broken(record):
        raise RuntimeError("database is down")

    quiz = make_quiz(pool, clock, scheduler, rng, persist_score=broken)
    quiz.start()
    quiz.submit(right(quiz.current_question))
    clock.advance(30)
    assert quiz.tick() is RapidPhase.FINISHED
    assert quiz.is_new_high_score
    assert not quiz.persisted


def test_start_failure_stays_on_menu(clock, scheduler, rng):
    def failing():
        raise IOError("no connection")

    quiz = make_quiz([], clock, scheduler, rng, fetch_questions=failing)
    assert not quiz.start()
    assert quiz.phase is RapidPhase.MENU
    assert quiz.error == "Failed to load quiz questions"

    quiz = make_quiz([], clock, scheduler, rng)
    assert not quiz.start()
    assert quiz.error == "No quiz questions available"
    assert scheduler.tasks == []


def test_abort(pool, clock, scheduler, rng):
    saved = []
    quiz = make_quiz(pool, clock, scheduler, rng, persist_score=saved.append)
    quiz.start()
    quiz.submit(right(quiz.current_question))
    assert quiz.abort()
    assert quiz.phase is RapidPhase.ABORTED
    assert scheduler.live == []
    clock.advance(60)
    quiz.tick()
    assert saved == []
    assert not quiz.abort()
