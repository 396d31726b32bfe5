"""Parse raw ``Set-Cookie`` header values.

Only the attributes that matter for replay are read: the name/value pair
and the expiry. ``Max-Age`` takes precedence over ``Expires`` (RFC 6265
section 5.3). Domain, Path and the flags are dropped because the client
replays the whole bundle to the one origin that issued it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC
from email.utils import parsedate_to_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedSetCookie:
    """Name, raw value and declared expiry of one ``Set-Cookie`` value.

    ``expiry`` is None for a session cookie.
    """

    name: str
    value: str
    expiry: float | None


def _parse_expires(raw: str) -> float | None:
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def parse_set_cookie(raw: str, now: float) -> ParsedSetCookie | None:
    """Parse one ``Set-Cookie`` header value.

    Args:
        raw: Header value, e.g. ``"sid=abc; Max-Age=60; HttpOnly"``.
        now: Current POSIX time, used to resolve ``Max-Age``.

    Returns:
        The parsed cookie, or None when there is no usable name.
    """
    pair, _, attributes = raw.partition(";")
    name, sep, value = pair.partition("=")
    name = name.strip()
    if not sep or not name:
        logger.debug("Ignoring Set-Cookie without a name")
        return None
    value = value.strip()

    max_age: float | None = None
    expires: float | None = None
    for attribute in attributes.split(";"):
        key, _, attr_value = attribute.partition("=")
        key = key.strip().lower()
        attr_value = attr_value.strip()
        if key == "max-age":
            try:
                seconds = int(attr_value)
            except ValueError:
                continue
            max_age = now + seconds if seconds > 0 else now
        elif key == "expires":
            parsed = _parse_expires(attr_value)
            if parsed is not None:
                expires = parsed

    expiry = max_age if max_age is not None else expires
    return ParsedSetCookie(name=name, value=value, expiry=expiry)
