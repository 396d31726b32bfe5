"""Keyed digest over a whole bundle.

The hash is a consistency check that sits beside the per-entry encryption:
it binds the exact set of sealed entries the server issued, so a client
replaying a bundle through the body-metadata path cannot add, drop or swap
entries without detection.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

_SEPARATOR = "; "


def canonical_bundle_string(
    request_cookies: Mapping[str, str],
    response_cookies: Mapping[str, str] | None = None,
) -> str:
    """Merge both maps (response wins), sort by name and join as ``name=value``."""
    merged = dict(request_cookies)
    if response_cookies:
        merged.update(response_cookies)
    return _SEPARATOR.join(f"{name}={merged[name]}" for name in sorted(merged))


def compute_bundle_hash(
    key: str,
    request_cookies: Mapping[str, str],
    response_cookies: Mapping[str, str] | None = None,
) -> str:
    """Compute the HMAC-SHA256 hex digest of the canonical bundle string."""
    message = canonical_bundle_string(request_cookies, response_cookies)
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_bundle_hash(key: str, bundle: Mapping[str, str], supplied: str | None) -> bool:
    """Check a client-supplied hash against the bundle in constant time."""
    if not supplied or not supplied.isascii():
        return False
    expected = compute_bundle_hash(key, bundle)
    return hmac.compare_digest(expected, supplied.strip().lower())
