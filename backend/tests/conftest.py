import os
import sys
import pytest

# Ensure the backend root (containing the `wordmatrix` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from wordmatrix import create_app, db, orchestrator, socketio


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    STORE_RETRY_BACKOFF_MS = 0


class RecordingBroadcaster:
    """Stands in for the Socket.IO fan-out and keeps every published event."""

    def __init__(self):
        self.events = []

    def publish(self, room_code, event, payload=None):
        self.events.append((room_code, event, payload or {}))

    def named(self, event):
        return [payload for _, name, payload in self.events if name == event]

    def names(self):
        return [name for _, name, _ in self.events]


class FakeClock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import wordmatrix.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def broadcaster(flask_app, monkeypatch):
    recorder = RecordingBroadcaster()
    monkeypatch.setattr(orchestrator, 'broadcaster', recorder)
    return recorder


@pytest.fixture()
def clock(flask_app, monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(orchestrator, 'clock', fake)
    return fake


@pytest.fixture()
def fixed_prompt(monkeypatch):
    """Pin round prompts: EATS tiles for letters rooms, PAINTERS for subword rooms."""
    prompts = {
        'letters': {'kind': 'letters', 'letters': ['E', 'A', 'T', 'S']},
        'subword': {'kind': 'subword', 'mainWord': 'PAINTERS'},
    }

    def _prompt(mode, config, dictionary=None, rng=None):
        return dict(prompts[mode])

    monkeypatch.setattr('wordmatrix.services.games.orchestrator.generate_prompt', _prompt)
    return prompts
