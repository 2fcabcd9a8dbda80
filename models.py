from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

from questions import CheckoutQuestion

db = SQLAlchemy()


class QuizQuestion(db.Model):
    """One entry of the question bank. `solution_values` is the canonical solution as raw point values."""

    id = db.Column(db.Integer, primary_key=True)
    target_score = db.Column(db.Integer, nullable=False)
    # 0 means there is no outshot for this score
    dart_count = db.Column(db.Integer, default=0)
    solution_values = db.Column(db.JSON, default=list)
    is_no_outshot = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_question(self) -> CheckoutQuestion:
        return CheckoutQuestion(
            id=self.id,
            target_score=self.target_score,
            required_darts=self.dart_count or 0,
            solution=tuple(self.solution_values or []),
            is_no_outshot=bool(self.is_no_outshot),
        )


class QuizSessionRecord(db.Model):
    __tablename__ = "quiz_session"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)
    total_questions = db.Column(db.Integer, default=0)
    correct_answers = db.Column(db.Integer, default=0)
    score = db.Column(db.String(16))  # e.g. "8/10"
    duration = db.Column(db.Float, default=0.0)  # seconds
    answers = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "score": self.score,
            "duration": self.duration,
            "answers": self.answers or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PlayerStats(db.Model):
    """
    Aggregated quiz statistics for one user, updated after every finished quiz.
    Streak fields: `current_streak`/`best_streak` count perfect sessions in a row,
    `daily_streak`/`best_daily_streak` count consecutive calendar days played.
    """

    user_id = db.Column(db.String(128), primary_key=True)
    display_name = db.Column(db.String(80))
    total_games = db.Column(db.Integer, default=0)
    total_correct = db.Column(db.Integer, default=0)
    total_questions = db.Column(db.Integer, default=0)
    best_correct = db.Column(db.Integer, nullable=True)
    best_total = db.Column(db.Integer, nullable=True)
    current_streak = db.Column(db.Integer, default=0)
    best_streak = db.Column(db.Integer, default=0)
    daily_streak = db.Column(db.Integer, default=0)
    best_daily_streak = db.Column(db.Integer, default=0)
    last_daily_play_date = db.Column(db.Date, nullable=True)
    streak_expires_at = db.Column(db.DateTime, nullable=True)
    last_played = db.Column(db.DateTime, nullable=True)
    best_time_seconds = db.Column(db.Float, nullable=True)


class RapidScore(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    user_name = db.Column(db.String(80))
    score = db.Column(db.Integer, default=0)
    questions_answered = db.Column(db.Integer, default=0)
    correct_answers = db.Column(db.Integer, default=0)
    wrong_answers = db.Column(db.Integer, default=0)
    best_streak = db.Column(db.Integer, default=0)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        answered = self.questions_answered or 0
        return {
            "user_id": self.user_id,
            "user_name": self.user_name or "Anonymous",
            "score": self.score,
            "questions_answered": answered,
            "correct_answers": self.correct_answers,
            "wrong_answers": self.wrong_answers,
            "best_streak": self.best_streak,
            "accuracy": round((self.correct_answers or 0) / answered * 100) if answered else 0,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class PersonalBest(db.Model):
    """Scalar personal record per user and game (rapid quiz points, speed subtracting seconds)."""

    __table_args__ = (db.UniqueConstraint("user_id", "kind"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False)
    value = db.Column(db.Float, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
