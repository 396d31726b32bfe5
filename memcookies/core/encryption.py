"""Authenticated encryption for sealed cookie names and payloads.

Payloads are sealed with Fernet (AES-CBC + HMAC-SHA256, random IV). Names
are sealed with AES-SIV, which is deterministic: the same cookie name always
maps to the same bundle key, so a re-issued cookie replaces its predecessor
in the client's store. Supports key rotation with automatic fallback to the
previous key for decryption.

Every decrypt failure surfaces as ``cryptography.fernet.InvalidToken``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging

from cryptography.exceptions import InvalidTag
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.ciphers.aead import AESSIV

from memcookies.core.config import Settings

logger = logging.getLogger(__name__)

_NAME_AAD = [b"memcookies-name-v1"]


def _derive_fernet_key(secret: str) -> bytes:
    """Derive a valid Fernet key from an arbitrary secret string."""
    try:
        Fernet(secret.encode())
        return secret.encode()
    except (ValueError, binascii.Error):
        derived = hashlib.sha256(secret.encode()).digest()
        return base64.urlsafe_b64encode(derived)


def _derive_siv_key(secret: str) -> bytes:
    """Derive a 512-bit AES-SIV key (AES-256-SIV) from a secret string."""
    return hashlib.sha512(b"memcookies-siv:" + secret.encode()).digest()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64decode(token: str) -> bytes:
    """Decode unpadded urlsafe base64, accepting only the canonical encoding.

    The decoder ignores the unused low bits of the final character and
    drops characters outside the alphabet, so several strings can decode to
    the same bytes. Only the one that re-encodes to itself is accepted.
    """
    padding = "=" * (-len(token) % 4)
    data = base64.urlsafe_b64decode(token + padding)
    if _b64encode(data) != token:
        raise ValueError("non-canonical base64")
    return data


class CookieCipher:
    """Seal and unseal cookie names and payloads under the configured keys."""

    def __init__(self, encryption_key: str, previous_key: str = "") -> None:
        if not encryption_key:
            raise ValueError("encryption_key must not be empty")
        self._fernets = [Fernet(_derive_fernet_key(encryption_key))]
        self._sivs = [AESSIV(_derive_siv_key(encryption_key))]
        if previous_key:
            self._fernets.append(Fernet(_derive_fernet_key(previous_key)))
            self._sivs.append(AESSIV(_derive_siv_key(previous_key)))

    @classmethod
    def from_settings(cls, settings: Settings) -> CookieCipher:
        return cls(settings.encryption_key, settings.encryption_key_previous)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string and return a Fernet token."""
        return self._fernets[0].encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a Fernet token.

        Tries the current key first, then the previous key if key rotation
        is in progress.

        Raises:
            InvalidToken: If no key authenticates the token.
        """
        try:
            data = token.encode("ascii")
        except (UnicodeEncodeError, AttributeError) as exc:
            raise InvalidToken from exc
        try:
            canonical = base64.urlsafe_b64encode(base64.urlsafe_b64decode(data)) == data
        except (ValueError, binascii.Error) as exc:
            raise InvalidToken from exc
        if not canonical:
            raise InvalidToken
        for fernet in self._fernets:
            try:
                return fernet.decrypt(data).decode()
            except InvalidToken:
                continue
            except UnicodeDecodeError as exc:
                raise InvalidToken from exc
        raise InvalidToken

    def seal_name(self, name: str) -> str:
        """Deterministically encrypt a cookie name."""
        return _b64encode(self._sivs[0].encrypt(name.encode(), _NAME_AAD))

    def unseal_name(self, token: str) -> str:
        """Decrypt a sealed cookie name.

        Raises:
            InvalidToken: If the token is malformed or fails authentication.
        """
        try:
            data = _b64decode(token)
        except (ValueError, binascii.Error) as exc:
            raise InvalidToken from exc
        for siv in self._sivs:
            try:
                return siv.decrypt(data, _NAME_AAD).decode()
            except (InvalidTag, ValueError):
                # ValueError: shorter than the SIV tag, or not UTF-8
                continue
        raise InvalidToken
