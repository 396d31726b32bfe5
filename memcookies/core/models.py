"""Value types shared by the sealing, capture and restore steps."""

from __future__ import annotations

from dataclasses import dataclass

# Sealed name -> sealed payload, as carried by the client.
Bundle = dict[str, str]


@dataclass(frozen=True)
class CookieEntry:
    """A plaintext cookie with an absolute expiry (POSIX seconds)."""

    name: str
    value: str
    expiry: float

    def header_pair(self) -> str:
        return f"{self.name}={self.value}"


@dataclass(frozen=True)
class CookiePayload:
    """Decoded contents of a sealed payload."""

    value: str
    expiry: float
    user_agent: str | None = None
