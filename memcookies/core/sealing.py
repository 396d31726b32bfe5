"""Seal captured cookies into a bundle and restore a bundle into a cookie header.

Sealing clamps every expiry to a hard ceiling so a leaked bundle has a
bounded replay window. Restoring drops any entry that fails decryption,
fails to decode or has expired; only a user-agent mismatch on a bound
cookie is fatal.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping

from cryptography.fernet import InvalidToken

from memcookies.core.encryption import CookieCipher
from memcookies.core.errors import MemCookieAuthError
from memcookies.core.models import Bundle, CookieEntry
from memcookies.core.payload import decode_payload, encode_payload
from memcookies.core.set_cookie import parse_set_cookie

logger = logging.getLogger(__name__)

COOKIE_SEPARATOR = "; "


def parse_bundle(text: str | bytes | None) -> Bundle | None:
    """Parse a JSON bundle as carried in a header.

    Returns:
        The bundle with non-string entries removed, or None if the text is
        not a JSON object.
    """
    if text is None:
        return None
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    return coerce_bundle(data)


def coerce_bundle(data: object) -> Bundle | None:
    """Keep only the string-to-string entries of a decoded JSON object."""
    if not isinstance(data, dict):
        return None
    return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}


def dump_bundle(bundle: Mapping[str, str]) -> str:
    return json.dumps(dict(bundle), separators=(",", ":"))


def seal_cookies(
    cipher: CookieCipher,
    raw_cookies: Iterable[str],
    now: float,
    max_age: float,
    user_agent: str | None = None,
) -> tuple[Bundle, list[CookieEntry]]:
    """Seal raw ``Set-Cookie`` values into a bundle.

    Each cookie's effective expiry is ``min(declared, now + max_age)``;
    session cookies get the ceiling. A later cookie with the same name
    replaces an earlier one, as a browser jar would.

    Args:
        cipher: Cipher holding the process keys.
        raw_cookies: ``Set-Cookie`` header values in the order they were set.
        now: Current POSIX time.
        max_age: Hard ceiling on cookie lifetime, in seconds.
        user_agent: When given, bound into every payload.

    Returns:
        The sealed bundle and the plaintext entries it contains.
    """
    ceiling = now + max_age
    bundle: Bundle = {}
    entries: dict[str, CookieEntry] = {}
    for raw in raw_cookies:
        parsed = parse_set_cookie(raw, now)
        if parsed is None:
            continue
        expiry = ceiling if parsed.expiry is None else min(parsed.expiry, ceiling)
        sealed_name = cipher.seal_name(parsed.name)
        bundle[sealed_name] = cipher.encrypt(encode_payload(parsed.value, expiry, user_agent))
        entries[parsed.name] = CookieEntry(name=parsed.name, value=parsed.value, expiry=expiry)
    return bundle, list(entries.values())


def unseal_bundle(
    cipher: CookieCipher,
    bundle: Mapping[str, str],
    now: float,
    user_agent: str | None = None,
    bind_user_agent: bool = False,
) -> list[CookieEntry]:
    """Decrypt and validate every entry of a bundle.

    Entries that fail decryption, decode to a malformed payload or have
    ``expiry <= now`` are skipped.

    Raises:
        MemCookieAuthError: If ``bind_user_agent`` is set and a decoded
            entry was sealed for a different user agent.
    """
    entries: list[CookieEntry] = []
    for sealed_name, sealed_payload in bundle.items():
        try:
            name = cipher.unseal_name(sealed_name)
            payload = decode_payload(cipher.decrypt(sealed_payload))
        except InvalidToken:
            logger.debug("Dropping bundle entry that failed decryption")
            continue
        if payload is None:
            logger.debug("Dropping bundle entry with malformed payload")
            continue
        if payload.expiry <= now:
            continue
        if bind_user_agent and payload.user_agent is not None and payload.user_agent != user_agent:
            raise MemCookieAuthError("user-agent mismatch")
        entries.append(CookieEntry(name=name, value=payload.value, expiry=payload.expiry))
    return entries


def build_cookie_header(entries: Iterable[CookieEntry]) -> str:
    """Join entries into a ``cookie`` request header value."""
    return COOKIE_SEPARATOR.join(entry.header_pair() for entry in entries)


def restore_cookie_header(
    cipher: CookieCipher,
    bundle: Mapping[str, str],
    now: float,
    user_agent: str | None = None,
    bind_user_agent: bool = False,
) -> str:
    """Turn a sealed bundle into the cookie header a browser would have sent."""
    entries = unseal_bundle(cipher, bundle, now, user_agent=user_agent, bind_user_agent=bind_user_agent)
    return build_cookie_header(entries)
