"""
Session store.

The session is a small JSON object {userId, nickname, preferences} kept in
the `fliqk_session` cookie (base64url encoded). It is not signed and has no
server-side record: whoever holds the cookie is that user. Anything that
needs authority (admin role) re-reads the user from the database.
"""

import base64
import json
from typing import Optional

from fastapi import HTTPException, Request, Response

SESSION_COOKIE = "fliqk_session"
SESSION_MAX_AGE = 60 * 60 * 24 * 365

DEFAULT_PREFERENCES = {
    "theme": "light",
    "locale": "en",
    "sort_order": "newest",
    "ai_suggestions": True,
}

_ALLOWED_VALUES = {
    "theme": ("light", "dark"),
    "locale": ("it", "de", "en"),
    "sort_order": ("newest", "oldest", "alpha"),
}


def normalize_preferences(prefs: Optional[dict], base: Optional[dict] = None) -> dict:
    """Merge known, valid preference values over `base` (defaults when omitted)."""
    result = dict(base or DEFAULT_PREFERENCES)
    for key, value in (prefs or {}).items():
        if key in _ALLOWED_VALUES:
            if value in _ALLOWED_VALUES[key]:
                result[key] = value
        elif key == "ai_suggestions" and isinstance(value, bool):
            result[key] = value
    return result


def make_session(user: dict) -> dict:
    return {
        "userId": user["id"],
        "nickname": user["nickname"],
        "preferences": normalize_preferences(user.get("preferences")),
    }


def encode_session(session: dict) -> str:
    raw = json.dumps(session, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_session(value: Optional[str]) -> Optional[dict]:
    """Decode a cookie value. Anything malformed is treated as no session."""
    if not value:
        return None
    try:
        padded = value + "=" * (-len(value) % 4)
        session = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, UnicodeError):
        return None
    if not isinstance(session, dict) or not session.get("userId"):
        return None
    if not isinstance(session["userId"], str) or not isinstance(session.get("preferences") or {}, dict):
        return None
    session["preferences"] = normalize_preferences(session.get("preferences"))
    return session


def get_session(request: Request) -> Optional[dict]:
    return decode_session(request.cookies.get(SESSION_COOKIE))


def require_session(request: Request) -> dict:
    """FastAPI dependency: the current session, or 401."""
    session = get_session(request)
    if not session:
        raise HTTPException(401, "Not logged in")
    return session


def set_session(response: Response, session: dict) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=encode_session(session),
        httponly=False,  # the SPA reads it like its old localStorage entry
        samesite="lax",
        max_age=SESSION_MAX_AGE,
    )


def clear_session(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)


def update_session_preferences(session: dict, updates: dict) -> dict:
    """Return a copy of the session with valid preference updates applied."""
    updated = dict(session)
    updated["preferences"] = normalize_preferences(updates, base=session.get("preferences"))
    return updated
