"""Cookies-disabled mode middleware.

Lets a JavaScript client that cannot use the browser cookie jar carry the
server's cookies itself, as an encrypted bundle:

- Inbound: a bundle sent in the ``x-cookies`` header (or, with a companion
  hash header, in the ``_cookies`` query parameter / JSON body field) is
  decrypted into a synthetic ``cookie`` header, so downstream code reads
  ``request.cookies`` as usual.
- Outbound: every ``Set-Cookie`` the application emits is captured and
  sealed when the response headers are sent. AJAX callers get the bundle
  and its hash back as response headers; full page renders get it on
  ``request.state.encrypted_cookies`` for the template.

Native ``Set-Cookie`` headers are always passed through untouched.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable

from starlette.datastructures import Headers, MutableHeaders, QueryParams
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from memcookies.core.bundle_hash import verify_bundle_hash
from memcookies.core.capture import CookieCapture
from memcookies.core.config import Settings, get_settings
from memcookies.core.encryption import CookieCipher
from memcookies.core.errors import MemCookieAuthError
from memcookies.core.models import Bundle
from memcookies.core.sealing import coerce_bundle, parse_bundle, restore_cookie_header

logger = logging.getLogger(__name__)

# Keys on request.state
CAPTURE_STATE_KEY = "mem_cookie_capture"
RENDER_STATE_KEY = "encrypted_cookies"

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _now() -> float:
    return time.time()


def is_ajax(headers: Headers) -> bool:
    """Mirror Express's ``req.xhr``."""
    return headers.get("x-requested-with", "").lower() == "xmlhttprequest"


async def _read_body(receive: Receive) -> bytes:
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay_receive(body: bytes, receive: Receive) -> Receive:
    """Hand the already-consumed body back to the application."""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def _with_cookie_header(scope: Scope, cookie_header: str) -> Scope:
    """Return a scope whose ``cookie`` header is replaced by ``cookie_header``."""
    raw = [(k, v) for k, v in scope["headers"] if k != b"cookie"]
    if cookie_header:
        raw.append((b"cookie", cookie_header.encode("latin-1")))
    return {**scope, "headers": raw}


class MemCookiesMiddleware:
    """Restore inbound cookie bundles and seal outbound cookies.

    Pure ASGI so that the ``http.response.start`` message can serve as the
    exactly-once "headers are final" hook.
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: Settings | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.app = app
        self.settings = settings or get_settings()
        self.cipher = CookieCipher.from_settings(self.settings)
        self.clock = clock

    def _clock(self) -> float:
        return self.clock() if self.clock is not None else _now()

    async def _read_metadata(
        self, scope: Scope, receive: Receive, headers: Headers
    ) -> tuple[Bundle | None, Receive]:
        """Find a bundle in the query string or a JSON body."""
        field = self.settings.metadata_field
        query = QueryParams(scope.get("query_string", b""))
        if field in query:
            return parse_bundle(query[field]) or {}, receive

        content_type = headers.get("content-type", "").split(";")[0].strip().lower()
        if scope["method"] not in _BODY_METHODS or content_type != "application/json":
            return None, receive

        body = await _read_body(receive)
        receive = _replay_receive(body, receive)
        try:
            data = json.loads(body)
        except ValueError:
            return None, receive
        if not isinstance(data, dict) or field not in data:
            return None, receive

        value = data[field]
        bundle = parse_bundle(value) if isinstance(value, str) else coerce_bundle(value)
        return bundle or {}, receive

    async def _inbound_bundle(
        self, scope: Scope, receive: Receive, headers: Headers
    ) -> tuple[Bundle | None, Receive]:
        """Locate and authenticate the request's bundle.

        Raises:
            MemCookieAuthError: If a body-metadata bundle has a missing or
                wrong companion hash.
        """
        header_value = headers.get(self.settings.header_name)
        if header_value is not None:
            bundle = parse_bundle(header_value)
            if bundle is None:
                logger.warning("Malformed %s header; treating as empty bundle", self.settings.header_name)
                bundle = {}
            return bundle, receive

        bundle, receive = await self._read_metadata(scope, receive, headers)
        if bundle is None:
            return None, receive

        supplied = headers.get(self.settings.hash_header_name)
        if supplied is None:
            raise MemCookieAuthError("missing bundle hash")
        if not verify_bundle_hash(self.settings.bundle_hash_key, bundle, supplied):
            raise MemCookieAuthError("bundle hash mismatch")
        return bundle, receive

    async def _reject(self, scope: Scope, receive: Receive, send: Send, exc: MemCookieAuthError) -> None:
        request_id = scope.get("state", {}).get("request_id", "unknown")
        logger.warning("Rejected cookie bundle [%s]: %s", request_id, exc.reason)
        response = JSONResponse(
            status_code=401,
            content={"detail": "Invalid cookie bundle", "request_id": request_id},
        )
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        settings = self.settings
        headers = Headers(scope=scope)
        user_agent = headers.get("user-agent")
        bound_agent = user_agent if settings.bind_user_agent else None
        cookie_header = ""

        try:
            inbound, receive = await self._inbound_bundle(scope, receive, headers)
            if inbound is not None:
                cookie_header = restore_cookie_header(
                    self.cipher,
                    inbound,
                    now=self._clock(),
                    user_agent=user_agent,
                    bind_user_agent=settings.bind_user_agent,
                )
        except MemCookieAuthError as exc:
            await self._reject(scope, receive, send, exc)
            return

        if inbound is None and is_ajax(headers):
            # Native cookie mode: nothing to restore and no page to hand a bundle to.
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        if inbound is not None:
            scope = _with_cookie_header(scope, cookie_header)
            logger.debug("Restored cookie header from a %d-entry bundle", len(inbound))

        capture = CookieCapture(
            self.cipher,
            max_age=settings.max_cookie_age_seconds,
            hash_key=settings.bundle_hash_key if inbound is not None else None,
            inbound_bundle=inbound,
            user_agent=bound_agent,
            clock=self._clock,
        )
        state[CAPTURE_STATE_KEY] = capture

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                capture.record(response_headers.getlist("set-cookie"))
                outbound = capture.finalize()
                if inbound is not None:
                    response_headers[settings.header_name] = outbound.bundle_json
                    response_headers[settings.hash_header_name] = outbound.bundle_hash or ""
                else:
                    state[RENDER_STATE_KEY] = outbound.bundle_json
            await send(message)

        await self.app(scope, receive, send_wrapper)
