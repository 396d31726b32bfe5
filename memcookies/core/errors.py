"""Exceptions raised by the cookie sealing protocol."""

from __future__ import annotations


class MemCookieAuthError(Exception):
    """Raised when an inbound bundle cannot be trusted.

    Covers a missing or mismatched bundle hash on the body-metadata path and
    a user-agent mismatch on a bound cookie. Callers must reject the request
    (401) rather than continue with partial trust.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"memcookies: {reason}")


class InvalidCaptureTransitionError(Exception):
    """Raised when a CookieCapture is driven through an invalid state change."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid capture transition: {from_state} → {to_state}")
