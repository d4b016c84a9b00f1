"""Test configuration and fixtures.

HTTP never leaves the process: FakeSession subclasses requests.Session, so
requests are prepared exactly as in production, and answers ``send`` from
scripted responders.
"""

import io
import json
import threading
from typing import Callable, Dict, List, Tuple

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from conduit.core.config import ConnectorSettings
from conduit.engine.connector_engine import ConnectorEngine

BASE_TIME = 1_700_000_000.0

WEATHER_SERVICE = {
    "id": "weather",
    "name": "Weather",
    "description": "Test weather API",
    "baseUrl": "https://api.weather.test",
    "authProvider": "api-key",
    "dataTransformer": "json",
    "endpoints": {
        "current": {"method": "GET", "path": "/v1/{city}/now", "defaultParams": {"units": "metric"}},
        "list": {"method": "GET", "path": "/v1/cities", "defaultParams": {"limit": 10}},
        "report": {"method": "POST", "path": "/v1/{city}/reports", "contentType": "application/json"},
        "subscribe": {
            "method": "POST",
            "path": "/v1/subscriptions",
            "contentType": "application/x-www-form-urlencoded",
        },
        "station": {
            "method": "GET",
            "path": "/v1/stations/{region}/{station}",
            "headers": {"Accept": "application/vnd.weather+json"},
        },
    },
}

TOKEN_URL = "https://auth.files.test/oauth/token"

FILES_SERVICE = {
    "id": "files",
    "name": "Files",
    "baseUrl": "https://api.files.test/v2",
    "authProvider": "oauth2",
    "authDefaults": {"token_url": TOKEN_URL},
    "endpoints": {
        "listFiles": {"method": "GET", "path": "/files"},
    },
}


def make_response(status: int = 200, body=b"", headers: Dict[str, str] = None) -> requests.Response:
    """Build a real requests.Response whose body streams from memory."""
    headers = dict(headers or {})
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")
    elif isinstance(body, str):
        body = body.encode("utf-8")
    response = requests.Response()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers)
    response.raw = io.BytesIO(body)
    return response


def reply(status: int = 200, body=b"", headers: Dict[str, str] = None) -> Callable:
    def responder(request):
        return make_response(status, body, headers)
    return responder


def fail(exc_type=requests.exceptions.ConnectionError) -> Callable:
    def responder(request):
        raise exc_type("connection refused")
    return responder


class FakeSession(requests.Session):
    """Records prepared requests and answers from per-URL responder queues.

    Each route holds a sequence of responders; the last one repeats.
    """

    def __init__(self):
        super().__init__()
        self.sent: List[requests.PreparedRequest] = []
        self._routes: Dict[Tuple[str, str], List[Callable]] = {}
        self._lock = threading.Lock()

    def route(self, method: str, url: str, *responders: Callable) -> None:
        self._routes[(method.upper(), url)] = list(responders)

    def send(self, request, **kwargs):
        key = (request.method, request.url.split("?", 1)[0])
        with self._lock:
            self.sent.append(request)
            queue = self._routes.get(key)
            if not queue:
                raise AssertionError(f"Unexpected request {key}")
            responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)

    def requests_to(self, url: str) -> List[requests.PreparedRequest]:
        return [request for request in self.sent if request.url.split("?", 1)[0] == url]


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = BASE_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    return ConnectorSettings(load_builtins=False, backoff_base=0.0, backoff_max=0.0, max_attempts=3)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(settings, fake_session, clock):
    """Engine with the weather and files services registered."""
    engine = ConnectorEngine(settings=settings, session=fake_session, clock=clock, sleep=lambda seconds: None)
    engine.initialize()
    engine.register_service(WEATHER_SERVICE)
    engine.register_service(FILES_SERVICE)
    return engine


@pytest.fixture
def weather_connection(engine):
    """Connection id for the weather service."""
    return engine.connect("weather", {"api_key": "weather-secret-key"}).id


@pytest.fixture
def token_endpoint(fake_session):
    """Token endpoint issuing token-1, token-2, ... and counting grants."""
    state = {"calls": 0}
    lock = threading.Lock()

    def responder(request):
        with lock:
            state["calls"] += 1
            number = state["calls"]
        return make_response(200, {"access_token": f"token-{number}", "expires_in": 3600, "token_type": "Bearer"})

    fake_session.route("POST", TOKEN_URL, responder)
    return state
