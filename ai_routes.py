"""
AI routes -- link analysis, page metadata and domain suggestions.

Usage in main.py:
    from ai_routes import create_ai_router
    app.include_router(create_ai_router(engine))
"""

from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ai_engine import AIEngine
from i18n import LOCALES, request_locale
from posts import normalize_url


# ============================================================
# Request Models
# ============================================================

class AnalyzeRequest(BaseModel):
    url: Optional[str] = None
    locale: Optional[str] = None


class SuggestDomainsRequest(BaseModel):
    input: Optional[str] = None
    apiKey: Optional[str] = None


def resolve_locale(request: Request, requested: Optional[str]) -> str:
    if requested in LOCALES:
        return requested
    return getattr(request.state, "locale", None) or request_locale(request)


# ============================================================
# Router Factory
# ============================================================

def create_ai_router(engine: AIEngine) -> APIRouter:
    """Create the AI router around a shared engine."""

    router = APIRouter(tags=["ai"])

    @router.post("/api/analyze")
    async def analyze(body: AnalyzeRequest, request: Request):
        """Fetch a URL and ask the model for title, description and tags."""
        if not body.url or not body.url.strip():
            raise HTTPException(400, "URL required")

        url = normalize_url(body.url)
        locale = resolve_locale(request, body.locale)
        try:
            result = await engine.analyze_link(url, locale=locale)
        except httpx.HTTPError as e:
            print(f"[Analyze] Model call failed for {body.url}: {e}")
            raise HTTPException(500, "Error while analyzing the link")

        if result.get("code") == "DOMAIN_NOT_FOUND":
            return JSONResponse(status_code=404, content=result)
        return result

    @router.get("/api/meta")
    async def meta(url: Optional[str] = None):
        """Title, description and og:image for the editor. No AI involved."""
        if not url:
            raise HTTPException(400, "URL required")
        try:
            return await engine.fetcher.fetch_meta(normalize_url(url))
        except Exception as e:
            print(f"[Meta] Error fetching {url}: {e}")
            return JSONResponse(status_code=500, content={"error": "Failed to fetch"})

    @router.post("/api/suggest-domains")
    async def suggest_domains(body: SuggestDomainsRequest):
        """Suggest domains the user may have meant after a DOMAIN_NOT_FOUND."""
        if not body.input or not body.input.strip():
            raise HTTPException(400, "Input required")
        if not (body.apiKey or engine.api_key):
            raise HTTPException(400, "API key required")

        try:
            suggestions = await engine.suggest_domains(body.input, api_key=body.apiKey)
        except httpx.HTTPError as e:
            print(f"[Suggest] Model call failed for {body.input}: {e}")
            raise HTTPException(500, "Error while looking for suggestions")
        return {"suggestions": suggestions}

    @router.get("/api/ai/health")
    async def ai_health():
        """Check if the AI engine is configured."""
        has_key = bool(engine.api_key)
        return {
            "status": "ok" if has_key else "degraded",
            "anthropic_api": "configured" if has_key else "missing",
        }

    return router
