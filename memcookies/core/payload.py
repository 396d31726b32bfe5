"""JSON codec for the ``[value, expiry]`` tuple inside a sealed payload.

Decoded payloads come from client-held ciphertext, so ``decode_payload``
never raises: anything that is not a well-formed pair returns ``None``.
"""

from __future__ import annotations

import json
import math

from memcookies.core.models import CookiePayload


def encode_payload(value: str, expiry: float, user_agent: str | None = None) -> str:
    """Serialize a cookie value and absolute expiry, optionally bound to a user agent."""
    items: list[object] = [value, expiry]
    if user_agent is not None:
        items.append(user_agent)
    return json.dumps(items, separators=(",", ":"))


def decode_payload(text: str) -> CookiePayload | None:
    """Parse a payload produced by ``encode_payload``.

    Returns:
        The decoded payload, or None when the text is not JSON, not an
        array, has fewer than two elements, or carries wrongly typed fields.
    """
    try:
        items = json.loads(text)
    except (TypeError, ValueError):
        return None

    if not isinstance(items, list) or len(items) < 2:
        return None

    value, expiry = items[0], items[1]
    if not isinstance(value, str):
        return None
    # bool is an int subclass
    if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
        return None
    if math.isnan(expiry):
        return None

    user_agent = items[2] if len(items) > 2 and isinstance(items[2], str) else None
    return CookiePayload(value=value, expiry=float(expiry), user_agent=user_agent)
