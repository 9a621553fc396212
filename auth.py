# ─────────────────────────────────────────────────────────────────
# auth.py — Login Checks & the Authorization Gate
#
# The monitor itself knows nothing about users. Every route and
# the WebSocket ask one question before touching it:
#
#     is_authorized(session) → True / False
#
# Sessions live in a signed cookie (Starlette SessionMiddleware).
# The check runs on EVERY request and before every WebSocket push,
# so an expired login stops working even on a socket that is still
# open. Each authorized HTTP request moves `last_seen` forward, so
# the session only lapses after `session_ttl` seconds of inactivity.
# ─────────────────────────────────────────────────────────────────

import logging
import secrets
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Mapping, Optional

import bcrypt
from fastapi import HTTPException, Request

from config import Settings

logger = logging.getLogger("auth")


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def is_authorized(session: Optional[Mapping], ttl: float, now: Optional[float] = None) -> bool:
    if not session:
        return False
    if not session.get("authenticated") or not session.get("user_id"):
        return False

    last_seen = session.get("last_seen", session.get("login_time"))
    if not isinstance(last_seen, (int, float)):
        return False

    now = time.time() if now is None else now
    return now - last_seen < ttl


class LoginRateLimiter:
    """
    Sliding window per client address: at most `max_attempts`
    login attempts in any `window` seconds.
    """

    def __init__(self, max_attempts: int = 5, window: float = 15 * 60):
        self.max_attempts = max_attempts
        self.window = window
        self._attempts: Dict[str, Deque[float]] = defaultdict(deque)

    def hit(self, key: str, now: Optional[float] = None) -> bool:
        """Records an attempt. False means the caller is over the limit."""
        now = time.monotonic() if now is None else now
        self._evict_stale(now)
        attempts = self._attempts[key]

        while attempts and now - attempts[0] >= self.window:
            attempts.popleft()

        if len(attempts) >= self.max_attempts:
            return False

        attempts.append(now)
        return True

    def __len__(self):
        return len(self._attempts)

    def _evict_stale(self, now: float):
        # Drop addresses with no attempt left inside the window
        stale = [
            key for key, attempts in self._attempts.items()
            if not attempts or now - attempts[-1] >= self.window
        ]
        for key in stale:
            del self._attempts[key]


class Authenticator:
    """Username → bcrypt hash, checked on login."""

    def __init__(self, users: Mapping[str, str]):
        self._users = dict(users)

        if not self._users:
            password = secrets.token_urlsafe(12)
            self._users["admin"] = hash_password(password)
            logger.warning(
                f"No users configured — created development user 'admin' with password '{password}'"
            )

    def __contains__(self, username):
        return username in self._users

    def verify(self, username: str, password: str) -> bool:
        password_hash = self._users.get(username)
        if password_hash is None:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            logger.error(f"Stored password hash for '{username}' is not a valid bcrypt hash")
            return False


# ── FastAPI dependencies ──────────────────────────────────────────

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_user(request: Request) -> str:
    """Route dependency: the logged-in username, or 401."""
    settings = request.app.state.settings
    if not is_authorized(request.session, settings.session_ttl):
        raise HTTPException(status_code=401, detail="Unauthorized access")
    request.session["last_seen"] = time.time()
    return request.session["user_id"]
