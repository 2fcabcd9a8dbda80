"""
Performance metrics: accuracy, combined leaderboard score, rapid-fire score and streaks.

The combined score is `accuracy% * 10 + min(3000 / seconds, 100)`. The speed term is capped
at 100 points everywhere it is used, including elapsed times of zero or below.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

SPEED_NUMERATOR = 3000.0
SPEED_CAP = 100.0
ACCURACY_WEIGHT = 10

RAPID_POINTS_PER_CORRECT = 10
RAPID_PERFECT_BONUS = 50


def accuracy(total_correct: int, total_questions: int) -> float:
    """Percentage at full precision; 0 when nothing was answered."""
    if not total_questions:
        return 0.0
    return total_correct / total_questions * 100


def display_accuracy(total_correct: int, total_questions: int) -> int:
    return int(round(accuracy(total_correct, total_questions)))


def speed_points(time_in_seconds: Optional[float]) -> float:
    if time_in_seconds is None:
        return 0.0
    if time_in_seconds <= 0:
        return SPEED_CAP
    return min(SPEED_NUMERATOR / time_in_seconds, SPEED_CAP)


def combined_score(accuracy_pct: float, time_in_seconds: Optional[float]) -> float:
    return accuracy_pct * ACCURACY_WEIGHT + speed_points(time_in_seconds)


def rapid_score(correct_answers: int, wrong_answers: int, questions_answered: int,
                points_per_correct: int = RAPID_POINTS_PER_CORRECT,
                perfect_bonus: int = RAPID_PERFECT_BONUS) -> int:
    bonus = perfect_bonus if wrong_answers == 0 and questions_answered > 0 else 0
    return correct_answers * points_per_correct + bonus


def next_perfect_streak(current_streak: int, correct: int, total: int) -> int:
    """Sessions in a row scored at 100%."""
    if total > 0 and correct == total:
        return (current_streak or 0) + 1
    return 0


def streak_expires_at(play_date: date) -> datetime:
    """End of the day after `play_date`; playing after that breaks the daily streak."""
    return datetime.combine(play_date + timedelta(days=1), time.max)


def next_daily_streak(last_play_date: Optional[date], daily_streak: int, today: date) -> int:
    if last_play_date is None:
        return 1
    if last_play_date == today:
        return daily_streak or 1
    if last_play_date == today - timedelta(days=1):
        return (daily_streak or 0) + 1
    return 1


def daily_streak_status(last_play_date: Optional[date], daily_streak: int,
                        today: date) -> Tuple[int, Optional[datetime]]:
    """Streak as it stands today: 0 and no expiry once a full day was missed."""
    if last_play_date is None:
        return 0, None
    if last_play_date not in (today, today - timedelta(days=1)):
        return 0, None
    return daily_streak or 0, streak_expires_at(last_play_date)


def apply_quiz_result(stats, correct: int, total: int, duration_seconds: Optional[float],
                      played_at: datetime) -> None:
    """
    Fold one finished quiz into a stats record (the persisted player_stats row or any object
    with the same attributes). Unset attributes are treated as zero.
    """
    stats.total_games = (stats.total_games or 0) + 1
    stats.total_correct = (stats.total_correct or 0) + correct
    stats.total_questions = (stats.total_questions or 0) + total

    if stats.best_correct is None or correct > stats.best_correct:
        stats.best_correct = correct
        stats.best_total = total

    stats.current_streak = next_perfect_streak(stats.current_streak or 0, correct, total)
    stats.best_streak = max(stats.best_streak or 0, stats.current_streak)

    today = played_at.date()
    stats.daily_streak = next_daily_streak(stats.last_daily_play_date, stats.daily_streak or 0, today)
    stats.best_daily_streak = max(stats.best_daily_streak or 0, stats.daily_streak)
    stats.last_daily_play_date = today
    stats.streak_expires_at = streak_expires_at(today)
    stats.last_played = played_at

    if duration_seconds is not None and duration_seconds > 0:
        if stats.best_time_seconds is None or duration_seconds < stats.best_time_seconds:
            stats.best_time_seconds = duration_seconds
