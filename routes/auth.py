# ─────────────────────────────────────────────────────────────────
# routes/auth.py — Login, Logout, Session Check
#
# The only routes reachable without a session.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import get_settings, is_authorized
from config import Settings
from models import LoginRequest

logger = logging.getLogger("routes.auth")

router = APIRouter(tags=["Auth"])

# Unknown usernames wait this long so they take about as long as a bcrypt check
UNKNOWN_USER_DELAY = 0.2


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# ─────────────────────────────────────────────────────────────────
# POST /login
# ─────────────────────────────────────────────────────────────────

@router.post("/login")
async def login(body: LoginRequest, request: Request):
    """
    Checks credentials and starts a session.

    Flow:
    1. Rate limit per client address (429 when exceeded)
    2. Body validated by Pydantic (400 on bad input, see main.py)
    3. Unknown user → short delay, 401
    4. Wrong password → 401
    5. Session reset and filled → 200
    """

    limiter = request.app.state.login_limiter
    if not limiter.hit(_client_key(request)):
        logger.warning(f"Too many login attempts from {_client_key(request)}")
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": "Too many login attempts. Try again in 15 minutes.",
            },
        )

    authenticator = request.app.state.authenticator

    if body.username not in authenticator:
        await asyncio.sleep(UNKNOWN_USER_DELAY)
        return JSONResponse(status_code=401, content={"success": False, "message": "Invalid credentials"})

    # bcrypt is CPU-bound; keep it off the event loop
    valid = await asyncio.to_thread(authenticator.verify, body.username, body.password)
    if not valid:
        logger.info(f"Failed login for '{body.username}'")
        return JSONResponse(status_code=401, content={"success": False, "message": "Invalid credentials"})

    # Fresh session contents on every login
    request.session.clear()
    login_time = time.time()
    request.session.update({
        "authenticated": True,
        "user_id": body.username,
        "login_time": login_time,
        "last_seen": login_time,
    })

    logger.info(f"🔐 '{body.username}' logged in")

    return {
        "success": True,
        "user": body.username,
        "loginTime": int(login_time * 1000),
    }


# ─────────────────────────────────────────────────────────────────
# POST /logout
# ─────────────────────────────────────────────────────────────────

@router.post("/logout")
def logout(request: Request):
    user = request.session.get("user_id")
    request.session.clear()
    if user:
        logger.info(f"'{user}' logged out")
    return {"success": True}


# ─────────────────────────────────────────────────────────────────
# GET /auth/check
# ─────────────────────────────────────────────────────────────────

@router.get("/auth/check")
def check_session(request: Request, settings: Settings = Depends(get_settings)):
    if not is_authorized(request.session, settings.session_ttl):
        return {"success": False, "authenticated": False}

    return {
        "success": True,
        "authenticated": True,
        "user": request.session["user_id"],
        "loginTime": int(request.session["login_time"] * 1000),
    }
