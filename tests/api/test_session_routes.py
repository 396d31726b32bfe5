"""End-to-end tests for cookies-disabled mode through the session routes.

A ``MemCookieStore`` plays the browser script: the TestClient's own cookie
jar is cleared after every response so only the bundle carries state.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from memcookies.api.main import create_app
from memcookies.client import MemCookieStore
from memcookies.core.config import Settings
from memcookies.core.encryption import CookieCipher
from memcookies.core.sealing import parse_bundle, restore_cookie_header
from tests.conftest import T0, FakeClock

AJAX = {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture
def app_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(test_settings: Settings, app_clock: FakeClock) -> Iterator[TestClient]:
    with patch("memcookies.api.middleware.mem_cookies._now", app_clock):
        app = create_app(test_settings)
        test_client = TestClient(app, headers=AJAX)
        test_client.event_hooks["response"].append(lambda response: test_client.cookies.clear())
        yield test_client


@pytest.fixture
def store(client: TestClient) -> MemCookieStore:
    store = MemCookieStore()
    store.install(client)
    return store


class TestCookiesDisabledFlow:
    def test_login_then_read_session(self, client: TestClient, store: MemCookieStore) -> None:
        response = client.post("/api/v1/session", json={"user": "ana", "theme": "dark"})
        assert response.status_code == 200
        assert len(store) == 2
        assert store.bundle_hash

        response = client.get("/api/v1/session")
        body = response.json()
        assert body["authenticated"] is True
        assert body["user"] == "ana"
        assert body["cookies"]["theme"] == "dark"

    def test_without_store_nothing_persists(self, client: TestClient) -> None:
        client.post("/api/v1/session", json={"user": "ana"})
        response = client.get("/api/v1/session")
        assert response.json()["authenticated"] is False

    def test_logout_expires_session(self, client: TestClient, store: MemCookieStore) -> None:
        client.post("/api/v1/session", json={"user": "ana"})
        client.delete("/api/v1/session")
        # the re-sealed, already-expired entry replaced the live one
        assert len(store) == 2
        body = client.get("/api/v1/session").json()
        assert body["authenticated"] is False
        assert body["cookies"] == {"theme": "light"}

    def test_session_expires_after_ceiling(
        self, client: TestClient, store: MemCookieStore, app_clock: FakeClock
    ) -> None:
        client.post("/api/v1/session", json={"user": "ana"})
        app_clock.advance(20 * 60)
        assert client.get("/api/v1/session").json()["authenticated"] is False

    def test_body_metadata_replay(self, client: TestClient, store: MemCookieStore) -> None:
        client.post("/api/v1/session", json={"user": "ana"})
        client.get("/api/v1/session")  # refresh the hash over the merged store
        body_fields, headers = store.metadata()

        plain = TestClient(client.app)
        response = plain.post(
            "/api/v1/session",
            json={"user": "bob", **body_fields},
            headers=headers,
        )
        assert response.status_code == 200
        assert "x-cookies" in response.headers

    def test_body_metadata_forged_hash_rejected(self, client: TestClient, store: MemCookieStore) -> None:
        client.post("/api/v1/session", json={"user": "ana"})
        body_fields, _ = store.metadata()
        plain = TestClient(client.app)
        response = plain.post(
            "/api/v1/session",
            json={"user": "bob", **body_fields},
            headers={"x-cookies-hash": "0" * 64},
        )
        assert response.status_code == 401


class TestFullRender:
    def test_index_embeds_bundle_without_header(self, test_settings: Settings, cipher: CookieCipher) -> None:
        with patch("memcookies.api.middleware.mem_cookies._now", return_value=T0):
            client = TestClient(create_app(test_settings))
            response = client.get("/")
        assert response.status_code == 200
        assert "x-cookies" not in response.headers
        assert response.cookies.get("visitor")

        match = re.search(r"window\.__MEM_COOKIES__ = (\{.*?\});</script>", response.text)
        assert match is not None
        bundle = parse_bundle(match.group(1))
        assert bundle is not None
        header = restore_cookie_header(cipher, bundle, now=T0)
        assert header == f"visitor={response.cookies['visitor']}"

    def test_embedded_bundle_seeds_store(self, test_settings: Settings) -> None:
        app = create_app(test_settings)
        page = TestClient(app).get("/")
        match = re.search(r"window\.__MEM_COOKIES__ = (\{.*?\});</script>", page.text)
        assert match is not None

        store = MemCookieStore()
        store.set_cookies(match.group(1))
        ajax = TestClient(app, headers=AJAX)
        store.install(ajax)
        response = ajax.get("/api/v1/session")
        assert response.json()["cookies"]["visitor"] == page.cookies["visitor"]
