"""
AI Content Engine -- link analysis and domain suggestions.

Wraps the Anthropic Messages API for the two things fliqk asks a model:
- analyze a pasted URL into {title, description, tags}
- suggest the domain a user probably meant when a fetch fails

Usage:
    from ai_engine import AIEngine
    engine = AIEngine()

    result = await engine.analyze_link("https://example.com", locale="en")
    if result.get("code") == "DOMAIN_NOT_FOUND":
        suggestions = await engine.suggest_domains(result["domain"])

Model output is never trusted to be valid JSON: analysis falls back to the
page title with no description/tags, suggestions fall back to [].
No retries, no streaming, no caching.
"""

import os
import json
import re
from typing import Optional

import httpx

from metadata import MetadataFetcher
from posts import get_domain, normalize_tags
from prompts import analysis_prompt, domain_suggestion_prompt

# ============================================================
# Model Configuration
# ============================================================

MODELS = {
    "haiku": os.getenv("FLIQK_ANALYZE_MODEL", "claude-3-haiku-20240307"),
    "sonnet": os.getenv("FLIQK_SUGGEST_MODEL", "claude-sonnet-4-20250514"),
}

ANALYZE_MAX_TOKENS = 500
SUGGEST_MAX_TOKENS = 300
MAX_TAGS = 5
MAX_SUGGESTIONS = 5
TITLE_MAX_CHARS = 80
DESCRIPTION_MAX_CHARS = 150

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_response(text: str):
    """Parse a model completion as JSON. Returns None when it is not JSON."""
    cleaned = _FENCE.sub("", (text or "").strip())
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        return None


def clean_suggestions(parsed) -> list:
    """Keep non-empty strings, lowercased and trimmed, at most five."""
    if not isinstance(parsed, list):
        return []
    suggestions = []
    for s in parsed:
        if isinstance(s, str) and s.strip():
            suggestions.append(s.strip().lower())
    return suggestions[:MAX_SUGGESTIONS]


def build_analysis(parsed, page_title: str) -> dict:
    """Merge a parsed completion with the page title fallback."""
    if not isinstance(parsed, dict):
        parsed = {}

    title = parsed.get("title")
    if not isinstance(title, str) or not title.strip():
        title = page_title
    description = parsed.get("description")
    if not isinstance(description, str):
        description = ""
    tags = parsed.get("tags")
    if not isinstance(tags, list):
        tags = []

    return {
        "title": title.strip()[:TITLE_MAX_CHARS],
        "description": description.strip()[:DESCRIPTION_MAX_CHARS],
        "tags": normalize_tags(tags)[:MAX_TAGS],
    }


def domain_from_input(value: str) -> str:
    """Reduce user input ("https://gogle.com/x") to the bare domain."""
    value = (value or "").strip()
    if not value:
        return ""
    return get_domain(value).lower()


# ============================================================
# AI Engine
# ============================================================

class AIEngine:
    """Core AI Content Engine for fliqk."""

    def __init__(self, anthropic_api_key: str = None, fetcher: MetadataFetcher = None,
                 http_client: httpx.AsyncClient = None):
        self.api_key = anthropic_api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self.fetcher = fetcher or MetadataFetcher()
        self._http = http_client

    @property
    def http(self):
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=60.0)
        return self._http

    async def close(self):
        if self._http:
            await self._http.aclose()
            self._http = None
        await self.fetcher.close()

    # --------------------------------------------------------
    # Claude API
    # --------------------------------------------------------

    async def _call_claude(self, prompt: str, model_key: str = "haiku",
                           max_tokens: int = 1024, api_key: str = None) -> str:
        """Send a single user message and return the concatenated text blocks."""
        model = MODELS.get(model_key, MODELS["haiku"])

        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": api_key or self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

        resp = await self.http.post(ANTHROPIC_API_URL, json=payload, headers=headers)
        resp.raise_for_status()
        data = resp.json()

        text = ""
        for block in data.get("content", []):
            if block.get("type") == "text":
                text += block["text"]

        usage = data.get("usage", {})
        print(f"[AIEngine] {model}: {usage.get('input_tokens', 0)} in / "
              f"{usage.get('output_tokens', 0)} out tokens")
        return text

    # --------------------------------------------------------
    # Link Analysis
    # --------------------------------------------------------

    async def analyze_content(self, url: str, page: dict, locale: str = "en") -> dict:
        """Ask the model about an already fetched page. Parse failures fall back silently."""
        prompt = analysis_prompt(url, page["title"], page["content"], locale=locale)
        text = await self._call_claude(prompt, model_key="haiku", max_tokens=ANALYZE_MAX_TOKENS)
        parsed = parse_json_response(text)
        if parsed is None:
            print(f"[AIEngine] Unparseable analysis for {url}, using page title")
        return build_analysis(parsed, page["title"])

    async def analyze_link(self, url: str, locale: str = "en") -> dict:
        """
        Fetch and analyze a URL.

        Returns {title, description, tags, thumbnail} on success or
        {error, code: "DOMAIN_NOT_FOUND", domain} when the page could not
        be fetched. Model transport errors propagate as httpx.HTTPError.
        """
        page = await self.fetcher.fetch_page(url)
        if page["fetch_failed"]:
            return {
                "error": "Domain not found",
                "code": "DOMAIN_NOT_FOUND",
                "domain": domain_from_input(url),
            }

        analysis = await self.analyze_content(url, page, locale=locale)
        analysis["thumbnail"] = page["og_image"]
        return analysis

    # --------------------------------------------------------
    # Domain Suggestions
    # --------------------------------------------------------

    async def suggest_domains(self, value: str, api_key: Optional[str] = None) -> list:
        """Suggest up to five real domains for a mistyped one. [] means no suggestion."""
        domain = domain_from_input(value) or value.strip()
        prompt = domain_suggestion_prompt(domain)
        text = await self._call_claude(prompt, model_key="sonnet",
                                       max_tokens=SUGGEST_MAX_TOKENS, api_key=api_key)
        return clean_suggestions(parse_json_response(text))
