import bcrypt
import pytest

from config import JukeboxConfig
from flask_app import create_app
from queue_controller import QueueController

HOST_IP = "127.0.0.1"
GUEST_IP = "192.168.1.50"
VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def fake_title(url, timeout):
    return "Never Gonna Give You Up"


def failing_title(url, timeout):
    raise ConnectionError("network down")


@pytest.fixture
def controller():
    return QueueController(HOST_IP)


@pytest.fixture
def make_client():
    """Build a test client around a fresh controller."""

    def _make(strategies=(fake_title,), **overrides):
        settings = {"hostIp": HOST_IP, "advertise": False}
        settings.update(overrides)
        config = JukeboxConfig.from_dict(settings)
        controller = QueueController(config.host_ip)
        app = create_app(config, controller, title_strategies=strategies)
        app.testing = True
        return app.test_client(), controller

    return _make


@pytest.fixture
def client(make_client):
    test_client, _ = make_client()
    return test_client


@pytest.fixture(scope="session")
def password_hash():
    # low cost factor keeps the suite fast
    return bcrypt.hashpw(b"admin", bcrypt.gensalt(4)).decode("utf-8")
