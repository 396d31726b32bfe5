"""Client-side store for cookies-disabled mode.

``MemCookieStore`` keeps the sealed entries a server has issued and replays
them on every request, the way a browser cookie jar would. It never sees
plaintext: entries are opaque to the client and only the server can read
them.

Usage with httpx::

    store = MemCookieStore()
    client = httpx.Client(base_url="https://app.example")
    store.install(client)
    client.post("/api/v1/session", json={"user": "ana"})
    client.get("/api/v1/session")  # session cookie replayed from the store
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_HEADER_NAME = "x-cookies"
DEFAULT_METADATA_FIELD = "_cookies"


class MemCookieStore:
    """An explicitly owned, per-session store of sealed cookie entries.

    Args:
        header_name: Header the server reads and writes bundles on.
        metadata_field: Body/query field used when headers cannot be sent.
    """

    def __init__(
        self,
        header_name: str = DEFAULT_HEADER_NAME,
        metadata_field: str = DEFAULT_METADATA_FIELD,
    ) -> None:
        self._cookies: dict[str, str] = {}
        self.header_name = header_name
        self.metadata_field = metadata_field
        self.bundle_hash: str | None = None

    @property
    def header_name(self) -> str:
        return self._header_name

    @header_name.setter
    def header_name(self, name: str) -> None:
        self._header_name = name.lower()

    @property
    def hash_header_name(self) -> str:
        return f"{self._header_name}-hash"

    def __len__(self) -> int:
        return len(self._cookies)

    def set_cookies(self, payload: str | dict[str, str]) -> None:
        """Merge a bundle into the store; entries in ``payload`` win."""
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except ValueError:
                logger.warning("Ignoring malformed cookie bundle")
                return
        if not isinstance(payload, dict):
            logger.warning("Ignoring cookie bundle that is not an object")
            return
        self._cookies.update({k: v for k, v in payload.items() if isinstance(k, str) and isinstance(v, str)})

    def get_cookies(self) -> str:
        """Serialize the whole store for the bundle header."""
        return json.dumps(self._cookies, separators=(",", ":"))

    def clear(self) -> None:
        self._cookies.clear()
        self.bundle_hash = None

    def update_from_response(self, response: httpx.Response) -> None:
        """Merge the bundle a response carries and remember its hash."""
        bundle = response.headers.get(self._header_name)
        if bundle is None:
            return
        self.set_cookies(bundle)
        bundle_hash = response.headers.get(self.hash_header_name)
        if bundle_hash:
            self.bundle_hash = bundle_hash

    def prepare_request(self, request: httpx.Request) -> None:
        """Attach the store to an outgoing request."""
        request.headers[self._header_name] = self.get_cookies()

    def metadata(self) -> tuple[dict[str, Any], dict[str, str]]:
        """Return ``(body_fields, headers)`` for the body-metadata path.

        The server only accepts this form with the hash it issued for the
        current store contents.
        """
        headers = {self.hash_header_name: self.bundle_hash} if self.bundle_hash else {}
        return {self.metadata_field: dict(self._cookies)}, headers

    def install(self, client: httpx.Client) -> None:
        """Register request/response hooks on a synchronous httpx client."""
        client.event_hooks["request"].append(self.prepare_request)
        client.event_hooks["response"].append(self.update_from_response)

    def install_async(self, client: httpx.AsyncClient) -> None:
        """Register request/response hooks on an httpx.AsyncClient."""

        async def on_request(request: httpx.Request) -> None:
            self.prepare_request(request)

        async def on_response(response: httpx.Response) -> None:
            self.update_from_response(response)

        client.event_hooks["request"].append(on_request)
        client.event_hooks["response"].append(on_response)
