import random

import pytest

from app import create_app
from models import db
from questions import CheckoutQuestion


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


class FakeTask:
    def __init__(self, interval, callback, name):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class RecordingScheduler:
    """Scheduler that never fires on its own; remembers every task it handed out."""

    def __init__(self):
        self.tasks = []

    def __call__(self, interval, callback, name=None):
        task = FakeTask(interval, callback, name)
        self.tasks.append(task)
        return task

    def named(self, name):
        return [t for t in self.tasks if t.name == name]

    @property
    def live(self):
        return [t for t in self.tasks if not t.cancelled]


def make_pool(regular=12, no_outshot=3):
    pool = []
    qid = 1
    for i in range(regular):
        # D1..D20 style one dart finishes: 2, 4, 6, ...
        value = 2 * (i % 20 + 1)
        pool.append(CheckoutQuestion(qid, value, 1, (value,)))
        qid += 1
    for score in (169, 168, 166, 165, 163, 162, 159)[:no_outshot]:
        pool.append(CheckoutQuestion(qid, score, 0, is_no_outshot=True))
        qid += 1
    return pool


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def pool():
    return make_pool()


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "BACKGROUND_TIMERS": False,
            "QUIZ_COUNTDOWN_SECONDS": 0,
            "QUIZ_ANSWER_DELAY_SECONDS": 0,
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app
