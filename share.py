"""
Share-text formatting and platform share payloads.

Everything here is a pure function of its inputs: identical inputs give
byte-identical text.

Text layout (one item per line):
    [title]            only when the title flag is set
    description
    [domain.com]       link posts only
    shared via [[fliqk.to]]

With include_preview the full URL follows after a blank line so that the
target platform renders its link-preview card.
"""

from typing import Optional
from urllib.parse import quote

from posts import get_domain, normalize_url

BRANDING = "shared via [[fliqk.to]]"
SOCIAL_BRANDING = "[[fliqk.to]]"

PLATFORMS = ("whatsapp", "telegram", "native", "copy", "instagram", "tiktok")


def _encode(text: str) -> str:
    """Percent-encode like JavaScript's encodeURIComponent."""
    return quote(text, safe="-_.!~*'()")


def strip_branding(text: str) -> str:
    """Remove a trailing branding line so it is never appended twice."""
    text = (text or "").rstrip()
    while text.endswith(BRANDING):
        text = text[: -len(BRANDING)].rstrip()
    return text


def format_share_text(description: str, url: Optional[str] = None,
                      title: Optional[str] = None, include_title: bool = False,
                      include_preview: bool = False) -> str:
    parts = []
    if include_title and title and title.strip():
        parts.append(title.strip())

    body = strip_branding(description)
    if body:
        parts.append(body)

    if url:
        parts.append(f"[{get_domain(url)}]")

    parts.append(BRANDING)
    text = "\n".join(parts)

    if include_preview and url:
        text += "\n\n" + normalize_url(url)
    return text


def format_social_text(description: str, url: Optional[str] = None) -> str:
    """Copy-paste variant for Instagram/TikTok, where links are not clickable."""
    text = strip_branding(description)
    if url:
        text += "\n\n🔗 Link in bio"
    return f"{text}\n\n{SOCIAL_BRANDING}"


def whatsapp_url(text: str) -> str:
    return f"https://wa.me/?text={_encode(text)}"


def telegram_url(text: str, share_url: Optional[str] = None) -> str:
    if share_url:
        return f"https://t.me/share/url?url={_encode(share_url)}&text={_encode(text)}"
    return f"https://t.me/share/url?text={_encode(text)}"


def share_url_for(post: dict) -> Optional[str]:
    """Full external URL of a link post, None for other post types."""
    if post.get("post_type", "link") != "link":
        return None
    return normalize_url(post.get("url"))


def build_share_payload(platform: str, post: dict, include_preview: bool = False,
                        include_title: bool = False) -> dict:
    """
    Build what a client needs to hand off to a platform.

    Returns {platform, text, url}: `text` is what gets shared or copied,
    `url` is the deep link to open (None for clipboard/native variants),
    and native shares also carry `title` and `share_url`.
    """
    if platform not in PLATFORMS:
        raise ValueError(f"Unknown share platform: {platform}")

    link_url = share_url_for(post)
    description = post.get("description") or post.get("title") or ""
    title = post.get("title")

    if platform in ("instagram", "tiktok"):
        return {"platform": platform, "text": format_social_text(description, link_url), "url": None}

    base_text = format_share_text(description, link_url, title=title,
                                  include_title=include_title)
    full_text = format_share_text(description, link_url, title=title,
                                  include_title=include_title,
                                  include_preview=include_preview)

    if platform == "whatsapp":
        return {"platform": platform, "text": full_text, "url": whatsapp_url(full_text)}
    if platform == "telegram":
        preview_url = link_url if include_preview else None
        return {"platform": platform, "text": base_text, "url": telegram_url(base_text, preview_url)}
    if platform == "native":
        return {
            "platform": platform,
            "title": title or "",
            "text": base_text,
            "share_url": link_url if include_preview else None,
            "url": None,
        }
    return {"platform": platform, "text": full_text, "url": None}
