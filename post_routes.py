"""
Post routes -- CRUD, composer actions, quick-add, media, stats, export.

Usage in main.py:
    from post_routes import create_post_router
    app.include_router(create_post_router(store, engine))
"""

import os
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ai_engine import AIEngine
from ai_routes import resolve_locale
from composer import ComposerError, PostComposer, validate_upload
from export import EXPORT_FORMATS, PERIODS, export_filename, export_posts, filter_by_period
from posts import (
    all_tags, bookmarklet_code, card_view, extract_shared_url, filter_posts, normalize_url,
    validation_message,
)
from session import require_session
from share import format_share_text, share_url_for
from store import Store

PUBLIC_URL = os.getenv("FLIQK_PUBLIC_URL", "https://fliqk.to")


# ============================================================
# Request Models
# ============================================================

class PostBody(BaseModel):
    id: Optional[str] = None
    post_type: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    custom_thumbnail: Optional[str] = None
    thumbnail_type: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    tags: Optional[List[str]] = None
    status: Optional[str] = None
    collection_id: Optional[str] = None


class ComposerRequest(BaseModel):
    sessionId: str
    draft: PostBody
    platform: Optional[str] = None
    includePreview: bool = False
    includeTitle: bool = False


class FromUrlRequest(BaseModel):
    url: Optional[str] = None
    text: Optional[str] = None
    locale: Optional[str] = None


class LegacyImportRequest(BaseModel):
    links: List[dict]


def _fields(body: PostBody) -> dict:
    return body.model_dump(exclude_none=True)


# ============================================================
# Router Factory
# ============================================================

def create_post_router(store: Store, engine: AIEngine) -> APIRouter:
    router = APIRouter(tags=["posts"])

    # --- CRUD ---

    @router.get("/api/posts")
    async def list_posts(search: str = "", tags: Optional[str] = None, status: str = "all",
                         sort: Optional[str] = None, session: dict = Depends(require_session)):
        """All posts of the current user, filtered like the home screen."""
        sort_order = sort or session["preferences"]["sort_order"]
        posts = store.get_user_posts(session["userId"], sort_order)
        wanted = [t for t in (tags or "").split(",") if t]
        return {
            "posts": [card_view(p) for p in filter_posts(posts, search=search, tags=wanted, status=status)],
            "tags": all_tags(posts),
        }

    @router.post("/api/posts")
    async def create_post(body: PostBody, session: dict = Depends(require_session)):
        try:
            post = store.create_post(session["userId"], _fields(body))
        except ValueError as e:
            raise HTTPException(400, str(e))
        return {"post": card_view(post)}

    @router.post("/api/posts/from-url")
    async def create_from_url(body: FromUrlRequest, request: Request,
                              session: dict = Depends(require_session)):
        """Quick add: analyze a shared URL and keep it as a draft."""
        shared = extract_shared_url(body.url, body.text)
        if not shared:
            raise HTTPException(400, "URL required")
        url = normalize_url(shared)

        try:
            analysis = await engine.analyze_link(url, locale=resolve_locale(request, body.locale))
        except httpx.HTTPError as e:
            print(f"[Analyze] Model call failed for {url}: {e}")
            raise HTTPException(500, "Error while analyzing the link")
        if analysis.get("code") == "DOMAIN_NOT_FOUND":
            return JSONResponse(status_code=404, content=analysis)

        post = store.create_post(session["userId"], {
            "post_type": "link",
            "url": url,
            "title": analysis.get("title"),
            "description": analysis.get("description"),
            "thumbnail": analysis.get("thumbnail"),
            "tags": analysis.get("tags"),
            "status": "draft",
        })
        return {"post": card_view(post)}

    @router.post("/api/posts/import-legacy")
    async def import_legacy(body: LegacyImportRequest, session: dict = Depends(require_session)):
        imported = store.import_legacy_links(session["userId"], body.links)
        print(f"[Store] Imported {len(imported)}/{len(body.links)} legacy links for {session['userId']}")
        return {"imported": len(imported), "posts": [card_view(p) for p in imported]}

    @router.get("/api/posts/{post_id}")
    async def get_post(post_id: str, session: dict = Depends(require_session)):
        post = store.get_post(post_id, session["userId"])
        if not post:
            raise HTTPException(404, "Post not found")
        return {"post": card_view(post)}

    @router.patch("/api/posts/{post_id}")
    async def update_post(post_id: str, body: PostBody, session: dict = Depends(require_session)):
        try:
            post = store.update_post(post_id, session["userId"], _fields(body))
        except ValueError as e:
            raise HTTPException(400, str(e))
        if not post:
            raise HTTPException(404, "Post not found")
        return {"post": card_view(post)}

    @router.delete("/api/posts/{post_id}")
    async def delete_post(post_id: str, session: dict = Depends(require_session)):
        if not store.delete_post(post_id, session["userId"]):
            raise HTTPException(404, "Post not found")
        return {"success": True}

    @router.post("/api/posts/{post_id}/click")
    async def track_click(post_id: str, session: dict = Depends(require_session)):
        post = store.get_post(post_id, session["userId"])
        if not post:
            raise HTTPException(404, "Post not found")
        if post.get("post_type", "link") != "link":
            raise HTTPException(400, "Only link posts track clicks")
        return {"click_count": store.increment_click_count(post_id, session["userId"])}

    # --- Composer ---

    @router.post("/api/posts/preview")
    async def preview(body: ComposerRequest, session: dict = Depends(require_session)):
        """Validate a draft and render the share text it would produce."""
        draft = _fields(body.draft)
        message = validation_message(draft)
        if message:
            return {"valid": False, "error": message}
        url = share_url_for(draft)
        text = format_share_text(draft.get("description") or draft.get("title") or "", url,
                                 title=draft.get("title"), include_title=body.includeTitle,
                                 include_preview=body.includePreview)
        return {"valid": True, "text": text}

    @router.post("/api/posts/save")
    async def save_for_later(body: ComposerRequest, session: dict = Depends(require_session)):
        try:
            composer = PostComposer(store, session["userId"], _fields(body.draft), body.sessionId)
            composer.preview()
            post = composer.save_for_later()
        except ComposerError as e:
            raise HTTPException(e.status, str(e))
        return {"post": card_view(post), "state": composer.state}

    @router.post("/api/posts/share")
    async def share(body: ComposerRequest, session: dict = Depends(require_session)):
        """Save the draft (once per composer session) and return the platform payload."""
        if not body.platform:
            raise HTTPException(400, "Platform required")
        try:
            composer = PostComposer(store, session["userId"], _fields(body.draft), body.sessionId)
            composer.preview()
            payload = composer.share(body.platform, include_preview=body.includePreview,
                                     include_title=body.includeTitle)
        except ComposerError as e:
            raise HTTPException(e.status, str(e))
        payload["post"] = card_view(payload["post"])
        return payload

    # --- Media ---

    @router.post("/api/media")
    async def upload_media(file: UploadFile = File(...), post_type: str = Form(...),
                           session: dict = Depends(require_session)):
        try:
            # Reject oversized files before reading them when the size is known
            if file.size is not None:
                validate_upload(file.content_type, file.size, post_type)
            content = await file.read()
            validate_upload(file.content_type, len(content), post_type)
        except ComposerError as e:
            raise HTTPException(e.status, str(e))
        try:
            return store.upload_media(session["userId"], file.filename, content, file.content_type)
        except RuntimeError as e:
            raise HTTPException(503, str(e))

    # --- Stats / export / bookmarklet ---

    @router.get("/api/stats")
    async def stats(session: dict = Depends(require_session)):
        return store.get_user_stats(session["userId"])

    @router.get("/api/export")
    async def export(format: str = "json", period: str = "all", status: str = "all",
                     tags: Optional[str] = None, session: dict = Depends(require_session)):
        if format not in EXPORT_FORMATS:
            raise HTTPException(400, f"Unknown export format: {format}")
        if period not in PERIODS:
            raise HTTPException(400, f"Unknown period: {period}")

        posts = store.get_user_posts(session["userId"], session["preferences"]["sort_order"])
        wanted = [t for t in (tags or "").split(",") if t]
        posts = filter_by_period(filter_posts(posts, tags=wanted, status=status), period)

        return Response(
            content=export_posts(posts, format),
            media_type=EXPORT_FORMATS[format],
            headers={"Content-Disposition": f'attachment; filename="{export_filename(format)}"'},
        )

    @router.get("/api/bookmarklet")
    async def bookmarklet():
        return {"code": bookmarklet_code(PUBLIC_URL)}

    return router
