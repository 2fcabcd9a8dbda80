import logging
import threading
import time
import uuid

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

import store
from checkout import (
    FINISHING_VALUES,
    MAX_DARTS,
    find_checkout,
    generate_checkouts,
    minimum_darts,
    validate_checkout,
)
from config import DefaultConfig
from models import db
from questions import CandidateAnswer, CheckoutQuestion, question_for_score
from quiz_session import QuizSession
from rapid_quiz import RapidQuiz
from speed_subtracting import SpeedSubtractingGame
from timers import no_background, start_periodic

# Basic logging setup for debugging endpoints and important events.
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


class SessionRegistry:
    """
    Live game sessions of this process, keyed by a generated id.

    Every lookup refreshes a session's last-touched time. `sweep()` drops sessions that are
    over and untouched for `finished_ttl` seconds, and any session untouched for `idle_ttl`
    seconds, stopping their timers. It runs on every add and lookup, and periodically when
    background timers are enabled.
    """

    def __init__(self, idle_ttl=1800.0, finished_ttl=300.0, clock=time.monotonic):
        self.idle_ttl = idle_ttl
        self.finished_ttl = finished_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions = {}
        self._touched = {}

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def add(self, session) -> str:
        self.sweep()
        session_id = uuid.uuid4().hex
        with self._lock:
            self._sessions[session_id] = session
            self._touched[session_id] = self._clock()
        return session_id

    def get(self, session_id, kind):
        self.sweep()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._touched[session_id] = self._clock()
        return session if isinstance(session, kind) else None

    def remove(self, session_id):
        with self._lock:
            self._touched.pop(session_id, None)
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.release()
        return session

    def sweep(self, now=None) -> int:
        now = self._clock() if now is None else now
        with self._lock:
            expired = []
            for session_id, session in self._sessions.items():
                idle = now - self._touched[session_id]
                if idle >= self.idle_ttl or (session.is_over and idle >= self.finished_ttl):
                    expired.append(session_id)
            dropped = [self._sessions.pop(session_id) for session_id in expired]
            for session_id in expired:
                del self._touched[session_id]
        for session in dropped:
            session.release()
        if dropped:
            logger.info("Dropped %d expired game sessions", len(dropped))
        return len(dropped)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(DefaultConfig)
    app.config.from_prefixed_env("DARTS")
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    registry = SessionRegistry(app.config["SESSION_IDLE_SECONDS"], app.config["SESSION_FINISHED_SECONDS"])
    app.extensions["game_sessions"] = registry
    if app.config["BACKGROUND_TIMERS"]:
        app.extensions["session_sweeper"] = start_periodic(
            app.config["SESSION_SWEEP_SECONDS"], registry.sweep, "session-sweep")
    app.register_blueprint(api)

    # Ensure tables exist
    with app.app_context():
        db.create_all()
    return app


# Helpers


def _sessions() -> SessionRegistry:
    return current_app.extensions["game_sessions"]


def _scheduler():
    return start_periodic if current_app.config["BACKGROUND_TIMERS"] else no_background


def _in_app_context(fn):
    """Wrap a store function so it can run from a session timer thread."""
    app = current_app._get_current_object()

    def wrapper(*args, **kwargs):
        with app.app_context():
            return fn(*args, **kwargs)

    return wrapper


def _user_id(data):
    user_id = data.get("user_id")
    if user_id is None:
        return None
    user_id = str(user_id).strip()
    return user_id or None


def _not_found(what):
    return jsonify({"error": f"{what} not found"}), 404


def _apply_input(session, data):
    """
    Feed one keypad event to a quiz or rapid quiz session.
    Accepts JSON: { "action": "digit"|"backspace"|"clear"|"multiplier"|"segment"|"enter"|"no_outshot", "value": ... }
    """
    action = (data.get("action") or "").strip().lower()
    value = data.get("value")
    if action == "digit":
        return session.press_digit(value)
    if action == "backspace":
        return session.backspace()
    if action == "clear":
        return session.clear_input()
    if action == "multiplier":
        return session.select_multiplier(value)
    if action == "segment":
        try:
            return session.press_segment(int(value))
        except (TypeError, ValueError):
            return False
    if action == "enter":
        return session.enter()
    if action == "no_outshot":
        return session.declare_no_outshot()
    raise ValueError(f"Unknown action: {action!r}")


def _answer_from_payload(data):
    if data.get("no_outshot"):
        return CandidateAnswer.declare_no_outshot()
    values = data.get("values")
    if not isinstance(values, list):
        raise ValueError("values must be a list of point values")
    return CandidateAnswer.from_values([int(v or 0) for v in values])


# Checkout APIs


@api.route("/checkouts/<int:score>", methods=["GET"])
def checkouts(score):
    max_darts = request.args.get("max_darts", MAX_DARTS, type=int)
    limit = request.args.get("limit", 50, type=int)
    found = generate_checkouts(score, max_darts)
    return jsonify(
        {
            "score": score,
            "recommended": find_checkout(score),
            "min_darts": minimum_darts(score),
            "count": len(found),
            "checkouts": [[d.notation for d in seq] for seq in found[: max(limit, 0)]],
        }
    )


@api.route("/checkouts/validate", methods=["POST"])
def checkout_validate():
    """Accepts JSON: { "target_score": 170, "darts": ["T20", "T20", "DBull"] }"""
    data = request.json or {}
    try:
        target = int(data.get("target_score"))
    except (TypeError, ValueError):
        return jsonify({"error": "target_score required"}), 400
    darts = data.get("darts") or []
    if not isinstance(darts, list):
        return jsonify({"error": "darts must be a list of notations"}), 400
    result = validate_checkout(target, [str(d) for d in darts])
    return jsonify({"valid": result.valid, "reason": result.reason})


# Question bank APIs


@api.route("/questions", methods=["GET", "POST"])
def questions():
    if request.method == "GET":
        return jsonify([q.to_dict() for q in store.fetch_questions()])

    data = request.json or {}
    try:
        target = int(data.get("target_score"))
    except (TypeError, ValueError):
        return jsonify({"error": "target_score required"}), 400

    if data.get("is_no_outshot"):
        question = CheckoutQuestion(0, target, 0, is_no_outshot=True)
    elif "values" in data:
        try:
            values = [int(v) for v in data.get("values") or []]
        except (TypeError, ValueError):
            values = []
        if not values or len(values) > MAX_DARTS or sum(values) != target or values[-1] not in FINISHING_VALUES:
            return jsonify({"error": "values must add up to target_score and end on a double"}), 400
        question = CheckoutQuestion(0, target, len(values), tuple(values))
    else:
        question = question_for_score(target)

    try:
        row = store.add_question(question)
    except SQLAlchemyError as e:
        logger.exception("Failed to add question for %s", target)
        return jsonify({"error": "Failed to add question", "details": str(e)}), 500
    return jsonify(row.to_question().to_dict()), 201


# Quiz APIs


@api.route("/quiz", methods=["POST"])
def quiz_start():
    data = request.json or {}
    user_id = _user_id(data)
    name = data.get("name")
    cfg = current_app.config
    persist = _in_app_context(lambda result: store.record_quiz_session(result, display_name=name))
    session = QuizSession(
        fetch_questions=store.fetch_questions,
        persist_session=persist,
        user_id=user_id,
        question_count=cfg["QUIZ_QUESTION_COUNT"],
        no_outshot_share=cfg["QUIZ_NO_OUTSHOT_SHARE"],
        countdown_seconds=cfg["QUIZ_COUNTDOWN_SECONDS"],
        answer_delay=cfg["QUIZ_ANSWER_DELAY_SECONDS"],
        scheduler=_scheduler(),
    )
    session.load()
    session_id = _sessions().add(session)
    return jsonify({"session_id": session_id, "state": session.snapshot()}), 201


@api.route("/quiz/<session_id>", methods=["GET"])
def quiz_state(session_id):
    session = _sessions().get(session_id, QuizSession)
    if session is None:
        return _not_found("Quiz session")
    session.tick()
    return jsonify(session.snapshot())


@api.route("/quiz/<session_id>/input", methods=["POST"])
def quiz_input(session_id):
    session = _sessions().get(session_id, QuizSession)
    if session is None:
        return _not_found("Quiz session")
    try:
        accepted = _apply_input(session, request.json or {})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"accepted": bool(accepted), "state": session.snapshot()})


@api.route("/quiz/<session_id>/answer", methods=["POST"])
def quiz_answer(session_id):
    session = _sessions().get(session_id, QuizSession)
    if session is None:
        return _not_found("Quiz session")
    try:
        answer = _answer_from_payload(request.json or {})
    except (TypeError, ValueError) as e:
        return jsonify({"error": "Invalid answer", "details": str(e)}), 400
    accepted = session.submit(answer)
    return jsonify({"accepted": accepted, "state": session.snapshot()})


@api.route("/quiz/<session_id>/abort", methods=["POST"])
def quiz_abort(session_id):
    session = _sessions().get(session_id, QuizSession)
    if session is None:
        return _not_found("Quiz session")
    if not session.abort():
        return jsonify({"error": "Quiz session already over", "state": session.snapshot()}), 409
    _sessions().remove(session_id)
    return jsonify({"status": "aborted"})


# Rapid quiz APIs


@api.route("/rapid", methods=["POST"])
def rapid_create():
    data = request.json or {}
    user_id = _user_id(data)
    name = data.get("name")
    cfg = current_app.config
    session = RapidQuiz(
        fetch_questions=store.fetch_questions,
        fetch_personal_best=store.get_rapid_high_score,
        persist_score=_in_app_context(lambda record: store.persist_rapid_score(record, user_name=name)),
        user_id=user_id,
        duration=cfg["RAPID_DURATION_SECONDS"],
        points_per_correct=cfg["RAPID_POINTS_PER_CORRECT"],
        perfect_bonus=cfg["RAPID_PERFECT_BONUS"],
        scheduler=_scheduler(),
    )
    session.load_personal_best()
    session_id = _sessions().add(session)
    return jsonify({"session_id": session_id, "state": session.snapshot()}), 201


@api.route("/rapid/<session_id>/start", methods=["POST"])
def rapid_start(session_id):
    session = _sessions().get(session_id, RapidQuiz)
    if session is None:
        return _not_found("Rapid quiz session")
    if not session.start():
        status = 409 if session.error is None else 503
        return jsonify({"error": session.error or "Rapid quiz already started", "state": session.snapshot()}), status
    return jsonify(session.snapshot())


@api.route("/rapid/<session_id>", methods=["GET"])
def rapid_state(session_id):
    session = _sessions().get(session_id, RapidQuiz)
    if session is None:
        return _not_found("Rapid quiz session")
    session.tick()
    return jsonify(session.snapshot())


@api.route("/rapid/<session_id>/input", methods=["POST"])
def rapid_input(session_id):
    session = _sessions().get(session_id, RapidQuiz)
    if session is None:
        return _not_found("Rapid quiz session")
    try:
        accepted = _apply_input(session, request.json or {})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"accepted": bool(accepted), "state": session.snapshot()})


@api.route("/rapid/<session_id>/answer", methods=["POST"])
def rapid_answer(session_id):
    session = _sessions().get(session_id, RapidQuiz)
    if session is None:
        return _not_found("Rapid quiz session")
    try:
        answer = _answer_from_payload(request.json or {})
    except (TypeError, ValueError) as e:
        return jsonify({"error": "Invalid answer", "details": str(e)}), 400
    accepted = session.submit(answer)
    return jsonify({"accepted": accepted, "state": session.snapshot()})


@api.route("/rapid/<session_id>/abort", methods=["POST"])
def rapid_abort(session_id):
    session = _sessions().get(session_id, RapidQuiz)
    if session is None:
        return _not_found("Rapid quiz session")
    if not session.abort():
        return jsonify({"error": "Rapid quiz already over", "state": session.snapshot()}), 409
    _sessions().remove(session_id)
    return jsonify({"status": "aborted"})


@api.route("/rapid/leaderboard", methods=["GET"])
def rapid_leaderboard():
    limit = request.args.get("limit", 100, type=int)
    return jsonify(store.get_rapid_leaderboard(limit))


# Speed subtracting APIs


@api.route("/speed", methods=["POST"])
def speed_create():
    data = request.json or {}
    user_id = _user_id(data)
    on_new_best = None
    best_time = None
    if user_id:
        best_time = store.get_best_time(user_id)
        on_new_best = _in_app_context(lambda seconds: store.save_best_time(user_id, seconds))
    game = SpeedSubtractingGame(
        best_time=best_time,
        on_new_best=on_new_best,
        start_score=current_app.config["SPEED_START_SCORE"],
        scheduler=_scheduler(),
    )
    game.start_game()
    session_id = _sessions().add(game)
    return jsonify({"session_id": session_id, "state": game.snapshot().to_dict()}), 201


@api.route("/speed/<session_id>", methods=["GET"])
def speed_state(session_id):
    game = _sessions().get(session_id, SpeedSubtractingGame)
    if game is None:
        return _not_found("Speed subtracting game")
    game.update_timer()
    return jsonify(game.snapshot().to_dict())


@api.route("/speed/<session_id>/answer", methods=["POST"])
def speed_answer(session_id):
    game = _sessions().get(session_id, SpeedSubtractingGame)
    if game is None:
        return _not_found("Speed subtracting game")
    data = request.json or {}
    try:
        answer = int(data.get("answer"))
    except (TypeError, ValueError):
        return jsonify({"error": "answer must be an integer"}), 400
    correct = game.submit_answer(answer)
    return jsonify({"correct": correct, "state": game.snapshot().to_dict()})


@api.route("/speed/<session_id>/restart", methods=["POST"])
def speed_restart(session_id):
    game = _sessions().get(session_id, SpeedSubtractingGame)
    if game is None:
        return _not_found("Speed subtracting game")
    return jsonify(game.start_game().to_dict())


@api.route("/speed/<session_id>/reset", methods=["POST"])
def speed_reset(session_id):
    game = _sessions().get(session_id, SpeedSubtractingGame)
    if game is None:
        return _not_found("Speed subtracting game")
    return jsonify(game.reset_game().to_dict())


@api.route("/speed/<session_id>/quit", methods=["POST"])
def speed_quit(session_id):
    game = _sessions().get(session_id, SpeedSubtractingGame)
    if game is None:
        return _not_found("Speed subtracting game")
    game.reset_game()
    _sessions().remove(session_id)
    return jsonify({"status": "quit"})


@api.route("/speed/leaderboard", methods=["GET"])
def speed_leaderboard():
    limit = request.args.get("limit", 100, type=int)
    return jsonify(store.get_speed_leaderboard(limit))


# Stats and leaderboard APIs


@api.route("/users/<user_id>/stats", methods=["GET"])
def user_stats(user_id):
    return jsonify(store.get_player_stats(user_id))


@api.route("/users/<user_id>/sessions", methods=["GET"])
def user_sessions(user_id):
    limit = request.args.get("limit", 50, type=int)
    return jsonify(store.get_user_sessions(user_id, limit))


@api.route("/users/<user_id>/rapid_history", methods=["GET"])
def user_rapid_history(user_id):
    limit = request.args.get("limit", 10, type=int)
    return jsonify(store.get_rapid_history(user_id, limit))


@api.route("/leaderboard", methods=["GET"])
def leaderboard():
    period = request.args.get("period", "all-time")
    if period not in store.PERIODS:
        return jsonify({"error": f"period must be one of {', '.join(store.PERIODS)}"}), 400
    return jsonify(store.fetch_leaderboard(period, request.args.get("user_id")))


if __name__ == "__main__":
    create_app().run(debug=True)
