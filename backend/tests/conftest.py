import os
import sys
import pytest

# Ensure the backend root (containing the `processmaster` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from processmaster import create_app, db, socketio


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    ALLOWED_ORIGINS = ['http://localhost:3000']
    AUTO_ADVANCE_SETTLE_SEC = 0
    CONTROLLER_DEBOUNCE_MS = 0
    TIMER_HEARTBEAT_SEC = 0
    JOIN_BASE_URL = 'http://testserver/'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import processmaster.models  # noqa: F401
        db.create_all()
    # No context stays pushed: each test-client request gets its own g and login state
    yield application
    with application.app_context():
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context held open for tests that call the services directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def host_client(flask_app):
    """A separate client logged in as an instructor."""
    host = flask_app.test_client()
    res = host.post('/register', json={'username': 'teacher', 'password': 'password'})
    assert res.status_code == 201
    return host


@pytest.fixture()
def host(app_ctx):
    from processmaster.models import Instructor
    instructor = Instructor(username='host')
    instructor.set_password('password')
    db.session.add(instructor)
    db.session.commit()
    return instructor


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
    except RuntimeError:
        pass


def open_lobby(host_client, *entries):
    playlist = [{'level_id': level_id, 'time_limit': limit} for level_id, limit in entries]
    res = host_client.post('/api/sessions/', json={'playlist': playlist})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def join(client, session_id, nickname, avatar='🐶'):
    res = client.post(f'/api/sessions/{session_id}/join', json={'nickname': nickname, 'avatar': avatar})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


BPR_CORRECT = ['bpr1', 'bpr2', 'bpr3', 'bpr4']
DT_CORRECT = ['dt1', 'dt2', 'dt3', 'dt4', 'dt5']
