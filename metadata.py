"""
Page metadata fetcher.

Fetches a URL and pulls out what the composer needs to pre-fill a post:
title, description, og:image and a plain-text excerpt of the body for
the AI analyzer.

Extraction priority:
    title:        og:title -> <title> -> the URL itself
    image:        og:image -> None
    description:  og:description -> <meta name="description"> -> ""

Any fetch problem (DNS, timeout, 4xx/5xx) collapses into fetch_failed=True.
Callers report that as DOMAIN_NOT_FOUND since a mistyped domain is by far
the most common cause.
"""

import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

USER_AGENT = "Mozilla/5.0 (compatible; FliqkBot/1.0)"
BODY_TEXT_MAX_CHARS = 3000
FETCH_TIMEOUT = 30.0

_WHITESPACE = re.compile(r"\s+")


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def extract_metadata(html: str) -> dict:
    """
    Extract {title, description, image} from raw HTML.

    title is None when neither og:title nor <title> is present; callers
    choose their own fallback. Pure function of the input.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    title = _meta_content(soup, property="og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    description = (
        _meta_content(soup, property="og:description")
        or _meta_content(soup, name="description")
        or ""
    )

    return {
        "title": title,
        "description": description,
        "image": _meta_content(soup, property="og:image"),
    }


def extract_body_text(html: str, max_chars: int = BODY_TEXT_MAX_CHARS) -> str:
    """Visible body text: scripts/styles dropped, markup stripped, whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    body = soup.body
    if body is None:
        return ""
    for tag in body(["script", "style"]):
        tag.decompose()
    text = _WHITESPACE.sub(" ", body.get_text(" ")).strip()
    return text[:max_chars]


class MetadataFetcher:
    """Fetches pages with a fixed User-Agent over a shared async client."""

    def __init__(self, http_client: httpx.AsyncClient = None):
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=FETCH_TIMEOUT,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._http

    async def close(self):
        if self._http:
            await self._http.aclose()
            self._http = None

    async def _get_html(self, url: str) -> str:
        resp = await self.http.get(url, headers={"User-Agent": USER_AGENT})
        resp.raise_for_status()
        return resp.text

    async def fetch_page(self, url: str) -> dict:
        """
        Fetch a page for analysis.

        Returns {title, description, content, og_image, fetch_failed}.
        content is the description and the body excerpt joined by a blank line.
        """
        try:
            html = await self._get_html(url)
        except Exception as e:
            print(f"[Metadata] Fetch failed for {url}: {e}")
            return {
                "title": url,
                "description": "",
                "content": "",
                "og_image": None,
                "fetch_failed": True,
            }

        meta = extract_metadata(html)
        body_text = extract_body_text(html)
        return {
            "title": (meta["title"] or url).strip(),
            "description": meta["description"],
            "content": f"{meta['description']}\n\n{body_text}".strip(),
            "og_image": meta["image"],
            "fetch_failed": False,
        }

    async def fetch_meta(self, url: str) -> dict:
        """
        Lightweight lookup used while editing a post.

        Returns {title, description, thumbnail}; title is "" rather than the
        URL when the page has none. Raises on any fetch failure.
        """
        html = await self._get_html(url)
        meta = extract_metadata(html)
        return {
            "title": (meta["title"] or "").strip(),
            "description": meta["description"].strip(),
            "thumbnail": meta["image"],
        }
