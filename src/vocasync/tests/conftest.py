"""Test configuration."""
import json
import os
from pathlib import Path
from typing import Callable, Generator, List, Optional

import httpx
import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("API_BASE_URL", "http://test.local/api")

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import sessionmaker

from vocasync.models.base import create_session_factory
from vocasync.models.quiz_models import WordCatalogEntry
from vocasync.services.api_client import ApiClient
from vocasync.services.storage_service import KeyValueStore, QueueStore

BASE_URL = "http://test.local/api"


class FakeClock:
    """Clock returning a controllable epoch time in seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeServer:
    """Request handler standing in for the PHP API."""

    def __init__(self, words: List[dict]):
        self.words = words
        self.quiz: list = []
        self.requests: List[httpx.Request] = []
        # Returns an exception to raise, a response to send, or None to answer normally
        self.fail: Optional[Callable[[httpx.Request], object]] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail is not None:
            outcome = self.fail(request)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, httpx.Response):
                return outcome

        path = request.url.path
        if path.endswith("/progress.php") or path.endswith("/quiz_result.php"):
            return httpx.Response(200, json={"status": "ok"})
        if path.endswith("/words.php"):
            return httpx.Response(200, json=self.words)
        if path.endswith("/quiz.php"):
            return httpx.Response(200, json=self.quiz)
        return httpx.Response(404, json={"error": "not found"})

    def calls(self, endpoint: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(endpoint)]

    def payloads(self, endpoint: str) -> List[dict]:
        return [json.loads(request.content) for request in self.calls(endpoint)]


def offline(request: httpx.Request) -> Exception:
    return httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def catalog() -> List[WordCatalogEntry]:
    """A small word catalog with distinct meanings."""
    return [
        WordCatalogEntry(id=i, word=f"word{i}", meaning=f"meaning{i}")
        for i in range(1, 11)
    ]


@pytest.fixture
def server(catalog: List[WordCatalogEntry]) -> FakeServer:
    return FakeServer([word.to_dict() for word in catalog])


@pytest.fixture
def api(server: FakeServer) -> ApiClient:
    return ApiClient(base_url=BASE_URL, transport=httpx.MockTransport(server))


@pytest.fixture
def session_factory(tmp_path: Path) -> Generator[sessionmaker, None, None]:
    """Session factory over a fresh SQLite file."""
    factory = create_session_factory(f"sqlite:///{tmp_path / 'vocasync.db'}")
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(session_factory: sessionmaker, clock: FakeClock) -> QueueStore:
    return QueueStore(session_factory, clock=clock)


@pytest.fixture
def kv(session_factory: sessionmaker) -> KeyValueStore:
    return KeyValueStore(session_factory)
