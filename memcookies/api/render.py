"""Hand a cookie bundle to a full page render.

A full render has no later header round trip in which to receive the
bundle, so the page has to embed it. ``seal_for_render`` finalizes the
request's capture early, from the cookies already placed on the response,
and returns the bundle for the template.
"""

from __future__ import annotations

from fastapi import Request, Response

from memcookies.api.middleware.mem_cookies import CAPTURE_STATE_KEY, RENDER_STATE_KEY
from memcookies.core.capture import CookieCapture

EMPTY_BUNDLE = "{}"


def get_capture(request: Request) -> CookieCapture | None:
    """Return the request's capture, or None when the middleware is not engaged."""
    return getattr(request.state, CAPTURE_STATE_KEY, None)


def seal_for_render(request: Request, response: Response) -> str:
    """Seal the cookies set on ``response`` and return the bundle JSON.

    Cookies set on ``response`` after this call still reach the browser
    natively but are not part of the bundle.
    """
    capture = get_capture(request)
    if capture is None:
        return EMPTY_BUNDLE
    capture.record(response.headers.getlist("set-cookie"))
    bundle_json = capture.finalize().bundle_json
    setattr(request.state, RENDER_STATE_KEY, bundle_json)
    return bundle_json


def bundle_script(bundle_json: str, variable: str = "__MEM_COOKIES__") -> str:
    """Render an inline ``<script>`` assigning the bundle to ``window[variable]``."""
    safe = bundle_json.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
    return f"<script>window.{variable} = {safe};</script>"
