"""Tests for token refresh, including concurrent single-flight refresh."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import parse_qs

import pytest

from conduit.exceptions import AuthFailure

from conftest import BASE_TIME, TOKEN_URL, make_response, reply

FILES_URL = "https://api.files.test/v2/files"

REPO_SERVICE = {
    "id": "repos",
    "name": "Repos",
    "baseUrl": "https://repos.test",
    "authProvider": "bearer-token",
    "endpoints": {"list": {"path": "/repos"}},
}


def _form(request):
    return {key: values[0] for key, values in parse_qs(request.body).items()}


class TestSingleFlightRefresh:

    def test_concurrent_invocations_share_one_refresh(self, engine, fake_session, clock):
        calls = {"count": 0}
        lock = threading.Lock()

        def slow_token(request):
            with lock:
                calls["count"] += 1
                number = calls["count"]
            # Hold the refresh open so the other callers pile up behind it
            time.sleep(0.05)
            return make_response(200, {"access_token": f"token-{number}", "expires_in": 3600})

        fake_session.route("POST", TOKEN_URL, slow_token)
        fake_session.route("GET", FILES_URL, reply(200, {"files": []}))
        connection_id = engine.connect("files", {"client_id": "app", "client_secret": "s"}).id
        assert calls["count"] == 1

        clock.advance(7200)
        start = threading.Barrier(10)

        def call():
            start.wait()
            return engine.invoke(connection_id, "listFiles")

        with ThreadPoolExecutor(max_workers=10) as pool:
            results = list(pool.map(lambda _: call(), range(10)))

        assert len(results) == 10
        assert calls["count"] == 2
        sent = fake_session.requests_to(FILES_URL)
        assert len(sent) == 10
        assert {request.headers["Authorization"] for request in sent} == {"Bearer token-2"}

    def test_short_lived_tokens_refreshed_once(self, engine, fake_session, clock):
        calls = {"count": 0}
        lock = threading.Lock()

        def short_token(request):
            with lock:
                calls["count"] += 1
                number = calls["count"]
            time.sleep(0.05)
            # Lifetime below the 30 s refresh skew
            return make_response(200, {"access_token": f"token-{number}", "expires_in": 20})

        fake_session.route("POST", TOKEN_URL, short_token)
        fake_session.route("GET", FILES_URL, reply(200, {"files": []}))
        connection_id = engine.connect("files", {"client_id": "app", "client_secret": "s"}).id

        clock.advance(100)
        start = threading.Barrier(10)

        def call():
            start.wait()
            return engine.invoke(connection_id, "listFiles")

        with ThreadPoolExecutor(max_workers=10) as pool:
            list(pool.map(lambda _: call(), range(10)))

        assert calls["count"] == 2
        engine.invoke(connection_id, "listFiles")
        assert calls["count"] == 2
        assert {request.headers["Authorization"] for request in fake_session.requests_to(FILES_URL)} == {
            "Bearer token-2",
        }

    def test_refresh_happens_once_per_expiry(self, engine, fake_session, clock, token_endpoint):
        fake_session.route("GET", FILES_URL, reply(200, {"files": []}))
        connection_id = engine.connect("files", {"client_id": "app", "client_secret": "s"}).id

        engine.invoke(connection_id, "listFiles")
        clock.advance(3600)
        engine.invoke(connection_id, "listFiles")
        engine.invoke(connection_id, "listFiles")

        assert token_endpoint["calls"] == 2
        headers = [request.headers["Authorization"] for request in fake_session.requests_to(FILES_URL)]
        assert headers == ["Bearer token-1", "Bearer token-2", "Bearer token-2"]

    def test_refresh_within_skew(self, engine, fake_session, clock, token_endpoint):
        fake_session.route("GET", FILES_URL, reply(200, {"files": []}))
        connection_id = engine.connect("files", {"client_id": "app", "client_secret": "s"}).id

        clock.advance(3600 - 10)
        engine.invoke(connection_id, "listFiles")

        assert token_endpoint["calls"] == 2


class TestRefreshGrants:

    def test_refresh_token_reused(self, engine, fake_session, clock, token_endpoint):
        fake_session.route("GET", FILES_URL, reply(200, {"files": []}))
        connection_id = engine.connect(
            "files", {"client_id": "app", "client_secret": "s", "refresh_token": "r-1"}
        ).id

        clock.advance(7200)
        engine.invoke(connection_id, "listFiles")

        grants = [_form(request) for request in fake_session.requests_to(TOKEN_URL)]
        assert [grant["grant_type"] for grant in grants] == ["refresh_token", "refresh_token"]
        assert grants[1]["refresh_token"] == "r-1"
        assert grants[1]["client_id"] == "app"

    def test_bearer_refresh(self, engine, fake_session, clock, token_endpoint):
        engine.register_service(REPO_SERVICE)
        fake_session.route("GET", "https://repos.test/repos", reply(200, []))
        connection_id = engine.connect("repos", {
            "token": "initial",
            "expires_at": str(BASE_TIME + 100),
            "token_url": TOKEN_URL,
            "refresh_token": "r-2",
        }).id

        engine.invoke(connection_id, "list")
        clock.advance(200)
        engine.invoke(connection_id, "list")

        headers = [request.headers["Authorization"] for request in fake_session.requests_to("https://repos.test/repos")]
        assert headers == ["Bearer initial", "Bearer token-1"]
        assert _form(fake_session.requests_to(TOKEN_URL)[0]) == {"grant_type": "refresh_token", "refresh_token": "r-2"}

    def test_expired_bearer_without_refresh(self, engine, fake_session, clock):
        engine.register_service(REPO_SERVICE)
        fake_session.route("GET", "https://repos.test/repos", reply(200, []))
        connection_id = engine.connect("repos", {"token": "t", "expires_at": str(BASE_TIME + 100)}).id

        # Inside the skew window but not yet expired: the token is still used
        clock.advance(80)
        engine.invoke(connection_id, "list")

        clock.advance(40)
        with pytest.raises(AuthFailure):
            engine.invoke(connection_id, "list")
        assert len(fake_session.requests_to("https://repos.test/repos")) == 1

    def test_failed_refresh(self, engine, fake_session, clock, token_endpoint):
        connection_id = engine.connect("files", {"client_id": "app", "client_secret": "s"}).id
        fake_session.route("POST", TOKEN_URL, reply(400, {"error": "invalid_grant"}))
        fake_session.route("GET", FILES_URL, reply(200, {"files": []}))

        clock.advance(7200)
        with pytest.raises(AuthFailure) as exc_info:
            engine.invoke(connection_id, "listFiles")

        assert "400" in exc_info.value.reason
        assert fake_session.requests_to(FILES_URL) == []
