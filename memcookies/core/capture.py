"""Per-response capture of outgoing cookies.

A CookieCapture records every ``Set-Cookie`` value a response tries to
emit and seals them exactly once, when the response headers are final:

  IDLE → CAPTURING → FINALIZING → DELIVERED
  IDLE → FINALIZING (no cookie was ever recorded)

``finalize`` is idempotent: the first call seals, later calls return the
same result without sealing again.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from memcookies.core.bundle_hash import compute_bundle_hash
from memcookies.core.encryption import CookieCipher
from memcookies.core.errors import InvalidCaptureTransitionError
from memcookies.core.models import Bundle, CookieEntry
from memcookies.core.sealing import dump_bundle, seal_cookies

logger = logging.getLogger(__name__)


class CaptureState(enum.StrEnum):
    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    DELIVERED = "delivered"


ALLOWED_TRANSITIONS: dict[CaptureState, set[CaptureState]] = {
    CaptureState.IDLE: {CaptureState.CAPTURING, CaptureState.FINALIZING},
    CaptureState.CAPTURING: {CaptureState.FINALIZING},
    CaptureState.FINALIZING: {CaptureState.DELIVERED},
    CaptureState.DELIVERED: set(),  # Terminal state
}


@dataclass(frozen=True)
class OutboundBundle:
    """Result of sealing one response's cookies."""

    bundle: Bundle
    entries: list[CookieEntry] = field(default_factory=list)
    bundle_hash: str | None = None

    @property
    def bundle_json(self) -> str:
        return dump_bundle(self.bundle)


class CookieCapture:
    """Record a response's ``Set-Cookie`` values and seal them on finalize.

    Args:
        cipher: Cipher holding the process keys.
        max_age: Hard ceiling on sealed cookie lifetime, in seconds.
        hash_key: Key for the bundle hash. When None no hash is computed.
        inbound_bundle: Bundle received with the request, merged into the
            hash so the client's merged store verifies on replay.
        user_agent: When given, bound into every sealed payload.
        clock: Returns the current POSIX time.
    """

    def __init__(
        self,
        cipher: CookieCipher,
        max_age: float,
        hash_key: str | None = None,
        inbound_bundle: Mapping[str, str] | None = None,
        user_agent: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cipher = cipher
        self._max_age = max_age
        self._hash_key = hash_key
        self._inbound = dict(inbound_bundle or {})
        self._user_agent = user_agent
        self._clock = clock
        self._raw: list[str] = []
        self._seen: set[str] = set()
        self._result: OutboundBundle | None = None
        self.state = CaptureState.IDLE

    @property
    def raw_cookies(self) -> list[str]:
        return list(self._raw)

    @property
    def result(self) -> OutboundBundle | None:
        return self._result

    @property
    def finalized(self) -> bool:
        return self.state in (CaptureState.FINALIZING, CaptureState.DELIVERED)

    def _transition(self, to_state: CaptureState) -> None:
        if to_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidCaptureTransitionError(self.state.value, to_state.value)
        self.state = to_state

    def record(self, cookies: str | Iterable[str]) -> None:
        """Record one raw ``Set-Cookie`` value or several.

        Identical strings are kept once, in first-seen order. Values
        recorded after finalization are ignored.
        """
        if self.finalized:
            logger.debug("Ignoring Set-Cookie recorded after finalization")
            return
        values = [cookies] if isinstance(cookies, str) else list(cookies)
        for raw in values:
            if raw in self._seen:
                continue
            if self.state is CaptureState.IDLE:
                self._transition(CaptureState.CAPTURING)
            self._seen.add(raw)
            self._raw.append(raw)

    def finalize(self) -> OutboundBundle:
        """Seal the recorded cookies. Only the first call does any work."""
        if self._result is not None:
            return self._result

        self._transition(CaptureState.FINALIZING)
        bundle, entries = seal_cookies(
            self._cipher,
            self._raw,
            now=self._clock(),
            max_age=self._max_age,
            user_agent=self._user_agent,
        )
        bundle_hash = None
        if self._hash_key is not None:
            bundle_hash = compute_bundle_hash(self._hash_key, self._inbound, bundle)

        self._result = OutboundBundle(bundle=bundle, entries=entries, bundle_hash=bundle_hash)
        self._transition(CaptureState.DELIVERED)
        logger.debug("Sealed %d cookie(s) into outbound bundle", len(bundle))
        return self._result
