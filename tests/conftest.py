"""Shared test fixtures for the memcookies test suite.

Provides fixed test settings, a cipher built from them and a controllable
clock so expiry behavior can be tested without sleeping.
"""

from __future__ import annotations

import string

import pytest

from memcookies.core.config import Settings
from memcookies.core.encryption import CookieCipher

TEST_ENCRYPTION_KEY = "test-encryption-key"
TEST_MAC_KEY = "test-mac-key"
TEST_USER_AGENT = "testclient"

# 2026-01-01T00:00:00Z
T0 = 1_767_225_600.0

_B64_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"


def flip_last_bit(token: str) -> str:
    """Flip the lowest bit of a base64 token's final character, keeping any padding."""
    body = token.rstrip("=")
    last = _B64_ALPHABET[_B64_ALPHABET.index(body[-1]) ^ 1]
    return body[:-1] + last + token[len(body) :]


class FakeClock:
    """A callable clock that only moves when told to."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_settings() -> Settings:
    """Settings with stable keys that ignore the environment's .env file."""
    return Settings(
        encryption_key=TEST_ENCRYPTION_KEY,
        mac_key=TEST_MAC_KEY,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def cipher(test_settings: Settings) -> CookieCipher:
    return CookieCipher.from_settings(test_settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
