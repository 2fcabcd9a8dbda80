"""
Persistence for the trainer: question bank, finished sessions, player stats, leaderboards
and personal bests. All functions need an application context.

Writes commit immediately and roll back before re-raising on failure; the session machines
treat every save as best effort and log what is raised here.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

import scoring
from models import PersonalBest, PlayerStats, QuizQuestion, QuizSessionRecord, RapidScore, db
from questions import CheckoutQuestion

logger = logging.getLogger(__name__)

RAPID_QUIZ = "rapid_quiz"
SPEED_SUBTRACTING = "speed_subtracting"

PERIODS = ("all-time", "this-week", "today")


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError:
        try:
            db.session.rollback()
        except SQLAlchemyError:
            logger.debug("Rollback failed after commit error")
        raise


# Question bank


def fetch_questions() -> List[CheckoutQuestion]:
    return [q.to_question() for q in QuizQuestion.query.order_by(QuizQuestion.id).all()]


def add_question(question: CheckoutQuestion) -> QuizQuestion:
    row = QuizQuestion(
        target_score=question.target_score,
        dart_count=0 if question.is_no_outshot else question.required_darts,
        solution_values=list(question.solution),
        is_no_outshot=question.is_no_outshot,
    )
    db.session.add(row)
    _commit()
    return row


# Quiz sessions and stats


def get_or_create_stats(user_id: str) -> PlayerStats:
    stats = db.session.get(PlayerStats, user_id)
    if stats is None:
        stats = PlayerStats(user_id=user_id, total_games=0, total_correct=0, total_questions=0,
                            current_streak=0, best_streak=0, daily_streak=0, best_daily_streak=0)
        db.session.add(stats)
    return stats


def record_quiz_session(result, display_name: Optional[str] = None) -> QuizSessionRecord:
    """Store a finished quiz and fold it into the player's stats."""
    row = QuizSessionRecord(
        user_id=result.user_id,
        start_time=result.start_time,
        end_time=result.end_time,
        total_questions=result.total_questions,
        correct_answers=result.correct_answers,
        score=result.score,
        duration=round(result.duration, 3),
        answers=[a.to_dict() for a in result.answers],
    )
    db.session.add(row)

    stats = get_or_create_stats(result.user_id)
    if display_name:
        stats.display_name = display_name
    scoring.apply_quiz_result(stats, result.correct_answers, result.total_questions,
                              result.duration, result.end_time)
    _commit()
    logger.info("Saved quiz session %s for user %s (%s)", row.id, result.user_id, result.score)
    return row


def stats_to_dict(stats: PlayerStats, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or datetime.utcnow().date()
    total_correct = stats.total_correct or 0
    total_questions = stats.total_questions or 0
    daily_streak, expires_at = scoring.daily_streak_status(stats.last_daily_play_date,
                                                           stats.daily_streak or 0, today)
    best = f"{stats.best_correct}/{stats.best_total}" if stats.best_correct is not None else "0/0"
    average = (total_correct / total_questions * 10) if total_questions else 0.0
    return {
        "user_id": stats.user_id,
        "display_name": stats.display_name,
        "total_games": stats.total_games or 0,
        "total_correct": total_correct,
        "total_questions": total_questions,
        "best_score": best,
        "average_score": f"{average:.1f}/10",
        "accuracy": f"{scoring.display_accuracy(total_correct, total_questions)}%",
        "current_streak": stats.current_streak or 0,
        "best_streak": stats.best_streak or 0,
        "daily_streak": daily_streak,
        "best_daily_streak": stats.best_daily_streak or 0,
        "last_daily_play_date": stats.last_daily_play_date.isoformat() if stats.last_daily_play_date else None,
        "streak_expires_at": expires_at.isoformat() if expires_at else None,
        "last_played": stats.last_played.isoformat() if stats.last_played else None,
        "best_time_seconds": stats.best_time_seconds,
    }


def get_player_stats(user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    stats = db.session.get(PlayerStats, user_id)
    if stats is None:
        stats = PlayerStats(user_id=user_id)
    return stats_to_dict(stats, today)


def get_user_sessions(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    rows = (
        QuizSessionRecord.query.filter_by(user_id=user_id)
        .order_by(QuizSessionRecord.created_at.desc(), QuizSessionRecord.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]


# Leaderboard


def period_start(period: str, now: datetime) -> datetime:
    if period == "today":
        return datetime(now.year, now.month, now.day)
    if period == "this-week":
        return now - timedelta(days=7)
    return datetime.min


def fetch_leaderboard(period: str = "all-time", current_user_id: Optional[str] = None,
                      now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Players ranked by combined score (accuracy x 10 + capped speed points from their best time).
    Only players with at least one game whose last play falls inside `period` are listed.
    Equal scores keep fetch order. `current_user_rank` is 0 when the user is not listed.
    """
    now = now or datetime.utcnow()
    since = period_start(period, now)
    entries = []
    for stats in PlayerStats.query.order_by(PlayerStats.user_id).all():
        if not stats.total_games or stats.last_played is None or stats.last_played < since:
            continue
        acc = scoring.accuracy(stats.total_correct or 0, stats.total_questions or 0)
        entries.append({
            "id": stats.user_id,
            "name": stats.display_name or "Anonymous Player",
            "combined_score": round(scoring.combined_score(acc, stats.best_time_seconds), 2),
            "_rank_key": scoring.combined_score(acc, stats.best_time_seconds),
            "best_score": f"{stats.best_correct}/{stats.best_total}" if stats.best_correct is not None else "0/0",
            "best_time_in_seconds": stats.best_time_seconds or 0,
            "accuracy": scoring.display_accuracy(stats.total_correct or 0, stats.total_questions or 0),
            "total_games": stats.total_games,
            "is_current_user": stats.user_id == current_user_id,
        })

    entries.sort(key=lambda e: e["_rank_key"], reverse=True)
    current_user_rank = 0
    for rank, entry in enumerate(entries, start=1):
        entry.pop("_rank_key")
        entry["rank"] = rank
        if entry["is_current_user"]:
            current_user_rank = rank
    return {"players": entries, "current_user_rank": current_user_rank}


# Personal bests


def get_personal_best(user_id: str, kind: str) -> Optional[float]:
    row = PersonalBest.query.filter_by(user_id=user_id, kind=kind).first()
    return row.value if row else None


def set_personal_best(user_id: str, kind: str, value: float) -> PersonalBest:
    row = PersonalBest.query.filter_by(user_id=user_id, kind=kind).first()
    if row is None:
        row = PersonalBest(user_id=user_id, kind=kind, value=value)
        db.session.add(row)
    else:
        row.value = value
    _commit()
    return row


# Rapid quiz


def get_rapid_high_score(user_id: str) -> int:
    value = get_personal_best(user_id, RAPID_QUIZ)
    return int(value) if value is not None else 0


def persist_rapid_score(record: Dict[str, Any], user_name: Optional[str] = None) -> RapidScore:
    """Store a new rapid quiz high score and raise the player's personal best."""
    user_id = record["user_id"]
    row = RapidScore(
        user_id=user_id,
        user_name=user_name,
        score=record["score"],
        questions_answered=record.get("questions_answered", 0),
        correct_answers=record.get("correct_answers", 0),
        wrong_answers=record.get("wrong_answers", 0),
        best_streak=record.get("best_streak", 0),
        timestamp=record.get("timestamp") or datetime.utcnow(),
    )
    db.session.add(row)
    current = get_rapid_high_score(user_id)
    if record["score"] > current:
        set_personal_best(user_id, RAPID_QUIZ, record["score"])
    else:
        _commit()
    return row


def get_rapid_leaderboard(limit: int = 100) -> List[Dict[str, Any]]:
    best: Dict[str, RapidScore] = {}
    for row in RapidScore.query.order_by(RapidScore.score.desc(), RapidScore.id).all():
        if row.user_id not in best:
            best[row.user_id] = row
    ranked = sorted(best.values(), key=lambda r: r.score, reverse=True)[:limit]
    return [dict(r.to_dict(), rank=i) for i, r in enumerate(ranked, start=1)]


def get_rapid_history(user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    rows = (
        RapidScore.query.filter_by(user_id=user_id)
        .order_by(RapidScore.timestamp.desc(), RapidScore.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]


# Speed subtracting


def get_best_time(user_id: str) -> Optional[float]:
    return get_personal_best(user_id, SPEED_SUBTRACTING)


def save_best_time(user_id: str, seconds: float) -> bool:
    """Keep `seconds` only when it beats the stored time."""
    current = get_best_time(user_id)
    if current is not None and seconds >= current:
        return False
    set_personal_best(user_id, SPEED_SUBTRACTING, seconds)
    logger.info("New speed subtracting best time for user %s: %.2fs", user_id, seconds)
    return True


def get_speed_leaderboard(limit: int = 100) -> List[Dict[str, Any]]:
    rows = (
        PersonalBest.query.filter_by(kind=SPEED_SUBTRACTING)
        .order_by(PersonalBest.value.asc(), PersonalBest.id)
        .limit(limit)
        .all()
    )
    names = {s.user_id: s.display_name for s in PlayerStats.query.filter(
        PlayerStats.user_id.in_([r.user_id for r in rows])).all()} if rows else {}
    return [
        {"rank": i, "user_id": r.user_id, "name": names.get(r.user_id) or "Anonymous Player",
         "best_time": r.value}
        for i, r in enumerate(rows, start=1)
    ]
