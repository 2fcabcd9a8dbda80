import os

base_dir = os.path.abspath(os.path.dirname(__file__))


class DefaultConfig:
    """
    Defaults for the trainer app. Any key can be overridden with a DARTS_ prefixed
    environment variable, e.g. DARTS_QUIZ_ANSWER_DELAY_SECONDS=1.5.
    """

    SQLALCHEMY_DATABASE_URI = "sqlite:///" + os.path.join(base_dir, "darts.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    QUIZ_QUESTION_COUNT = 10
    QUIZ_NO_OUTSHOT_SHARE = 0.15
    QUIZ_COUNTDOWN_SECONDS = 3
    QUIZ_ANSWER_DELAY_SECONDS = 3.0

    RAPID_DURATION_SECONDS = 30
    RAPID_POINTS_PER_CORRECT = 10
    RAPID_PERFECT_BONUS = 50

    SPEED_START_SCORE = 501

    # run session clocks on background threads; when off, sessions advance on requests only
    BACKGROUND_TIMERS = True

    # live sessions untouched this long are dropped; finished ones sooner
    SESSION_IDLE_SECONDS = 1800
    SESSION_FINISHED_SECONDS = 300
    SESSION_SWEEP_SECONDS = 60
