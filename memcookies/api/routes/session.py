"""Session routes that set, read and clear cookies.

These handlers use ``response.set_cookie`` and ``request.cookies`` only;
they work unchanged whether the browser keeps the cookies natively or the
client carries them as a memcookies bundle.

- POST   /api/v1/session  (start a session: sets ``session`` and ``theme``)
- GET    /api/v1/session  (echo the cookies the request arrived with)
- DELETE /api/v1/session  (expire the ``session`` cookie)
- GET    /                (full page render embedding the bundle)
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from memcookies.api.render import bundle_script, seal_for_render

router = APIRouter(tags=["session"])
logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session"
THEME_COOKIE_NAME = "theme"
SESSION_MAX_AGE = 60 * 60  # clamped to the bundle ceiling in cookies-disabled mode

_PAGE = """<!doctype html>
<html>
  <head><title>memcookies</title></head>
  <body>
    <p>Visitor {visitor}</p>
    {script}
  </body>
</html>
"""


class SessionRequest(BaseModel):
    """Body for starting a session."""

    user: str = Field(min_length=1, max_length=64)
    theme: str = "light"


def _set_session_cookies(response: Response, user: str, theme: str) -> str:
    token = f"{user}.{secrets.token_urlsafe(16)}"
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    response.set_cookie(THEME_COOKIE_NAME, theme, samesite="lax")
    return token


@router.post("/api/v1/session")
async def start_session(body: SessionRequest, response: Response) -> dict[str, Any]:
    _set_session_cookies(response, body.user, body.theme)
    logger.info("Started session for %s", body.user)
    return {"user": body.user, "theme": body.theme}


@router.get("/api/v1/session")
async def read_session(request: Request) -> dict[str, Any]:
    """Return the cookies this request carried, as the application sees them."""
    session = request.cookies.get(SESSION_COOKIE_NAME)
    return {
        "authenticated": session is not None,
        "user": session.split(".", 1)[0] if session else None,
        "cookies": dict(request.cookies),
    }


@router.delete("/api/v1/session")
async def end_session(response: Response) -> dict[str, Any]:
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"authenticated": False}


@router.get("/", response_class=HTMLResponse)
async def index(request: Request, response: Response) -> str:
    """Initial page render.

    Issues a visitor cookie and embeds the sealed bundle in the page so a
    cookies-disabled client can seed its store without an extra request.
    """
    visitor = request.cookies.get("visitor") or secrets.token_hex(8)
    response.set_cookie("visitor", visitor, max_age=SESSION_MAX_AGE, httponly=True, samesite="lax")
    bundle_json = seal_for_render(request, response)
    return _PAGE.format(visitor=visitor, script=bundle_script(bundle_json))
