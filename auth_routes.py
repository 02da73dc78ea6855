"""
Auth routes -- invite-token registration, nickname login, preferences.

Usage in main.py:
    from auth_routes import create_auth_router
    app.include_router(create_auth_router(store))
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from session import (
    clear_session, make_session, require_session, set_session,
    update_session_preferences,
)
from store import Store


class RegisterRequest(BaseModel):
    nickname: str
    token: str
    deviceId: Optional[str] = None


class LoginRequest(BaseModel):
    nickname: str
    deviceId: Optional[str] = None


class PreferencesRequest(BaseModel):
    theme: Optional[str] = None
    locale: Optional[str] = None
    sort_order: Optional[str] = None
    ai_suggestions: Optional[bool] = None


def public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "nickname": user.get("nickname"),
        "role": user.get("role"),
        "created_at": user.get("created_at"),
    }


def create_auth_router(store: Store) -> APIRouter:
    router = APIRouter(tags=["auth"])

    @router.post("/api/auth/register")
    async def register(body: RegisterRequest):
        result = store.register_user(body.nickname, body.token, device_id=body.deviceId)
        if not result["success"]:
            return JSONResponse(status_code=400, content=result)

        user = result["user"]
        response = JSONResponse({"success": True, "userId": user["id"], "user": public_user(user)})
        set_session(response, make_session(user))
        return response

    @router.post("/api/auth/login")
    async def login(body: LoginRequest):
        result = store.login_user(body.nickname, device_id=body.deviceId)
        if not result["success"]:
            return JSONResponse(status_code=401, content=result)

        user = result["user"]
        response = JSONResponse({"success": True, "userId": user["id"], "user": public_user(user)})
        set_session(response, make_session(user))
        return response

    @router.post("/api/auth/logout")
    async def logout():
        response = JSONResponse({"success": True})
        clear_session(response)
        return response

    @router.get("/api/me")
    async def me(session: dict = Depends(require_session)):
        """Current user, re-read from the database so the role is authoritative."""
        user = store.get_user(session["userId"])
        if not user:
            response = JSONResponse(status_code=401, content={"detail": "User no longer exists"})
            clear_session(response)
            return response
        return {"user": public_user(user), "preferences": session["preferences"]}

    @router.put("/api/me/preferences")
    async def update_preferences(body: PreferencesRequest, session: dict = Depends(require_session)):
        updates = body.model_dump(exclude_none=True)
        if not updates:
            raise HTTPException(400, "No preferences given")

        new_session = update_session_preferences(session, updates)
        store.update_user_preferences(session["userId"], new_session["preferences"])
        response = JSONResponse({"preferences": new_session["preferences"]})
        set_session(response, new_session)
        return response

    return router
