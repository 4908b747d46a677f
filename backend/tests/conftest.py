import pytest
from fastapi.testclient import TestClient

from app.config import UploadSettings
from app.context import build_context, get_peer
from app.limiter import LimiterRegistry
from app.main import create_app

BASE_URL = "http://files.example.test/files"


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage_dir(tmp_path):
    path = tmp_path / "files"
    path.mkdir()
    return path


@pytest.fixture
def upload_settings(storage_dir):
    return UploadSettings(directory=str(storage_dir), allowlist=("127.0.0.1",), base_url=BASE_URL)


@pytest.fixture
def registry(clock):
    return LimiterRegistry(rate=20, burst=1, clock=clock)


@pytest.fixture
def context(upload_settings, registry):
    return build_context(upload_settings=upload_settings, registry=registry)


@pytest.fixture
def make_client(context):
    """Build a client whose requests come from the given peer address."""

    def _make(peer=("127.0.0.1", 50000)):
        app = create_app(context)
        app.dependency_overrides[get_peer] = lambda: peer
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()
