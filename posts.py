"""
Post domain helpers -- types, normalization, validity, filtering, sorting.

Pure functions over post dicts (rows as returned by the store).
"""

import re
from collections import Counter
from typing import Optional, List
from urllib.parse import urlparse

POST_TYPES = ("link", "image", "audio", "video", "text")
STATUSES = ("draft", "sent")
THUMBNAIL_TYPES = ("original", "custom", "emoji")
SORT_ORDERS = ("newest", "oldest", "alpha")
MEDIA_POST_TYPES = ("image", "audio", "video")
DEFAULT_EMOJI = "🔗"

_TAG_STRIP = re.compile(r"[^a-z0-9àèéìòù-]")


def normalize_url(url: Optional[str]) -> Optional[str]:
    """Prepend https:// when the URL has no scheme. Empty input -> None."""
    if url is None:
        return None
    url = url.strip()
    if not url:
        return None
    if not url.lower().startswith(("http://", "https://")):
        url = "https://" + url
    return url


def get_domain(url: str) -> str:
    """Hostname without a leading www. -- falls back to the raw string."""
    if not url:
        return ""
    try:
        host = urlparse(url if url.lower().startswith("http") else f"https://{url}").hostname
    except ValueError:
        return url
    if not host:
        return url
    return host[4:] if host.startswith("www.") else host


def normalize_tag(tag: str) -> str:
    return _TAG_STRIP.sub("", (tag or "").strip().lower())


def normalize_tags(tags) -> List[str]:
    """Normalize, drop empties and duplicates, keep first-seen order."""
    result = []
    for tag in tags or []:
        t = normalize_tag(str(tag).lstrip("#"))
        if t and t not in result:
            result.append(t)
    return result


EDITABLE_FIELDS = (
    "post_type", "url", "title", "description", "thumbnail", "custom_thumbnail",
    "thumbnail_type", "media_url", "media_type", "tags", "status", "collection_id",
)


def prepare_post(data: dict, existing: Optional[dict] = None) -> dict:
    """
    Validate and normalize post fields for storage.

    Merges `data` over `existing` (for updates) and returns only the
    editable columns. Raises ValueError for invalid values; a link post
    without a URL is rejected.
    """
    merged = dict(existing or {})
    merged.update({k: v for k, v in data.items() if k in EDITABLE_FIELDS})

    post_type = merged.get("post_type") or "link"
    if post_type not in POST_TYPES:
        raise ValueError(f"Invalid post type: {post_type}")

    status = merged.get("status") or "draft"
    if status not in STATUSES:
        raise ValueError(f"Invalid status: {status}")

    thumbnail_type = merged.get("thumbnail_type") or "original"
    if thumbnail_type not in THUMBNAIL_TYPES:
        raise ValueError(f"Invalid thumbnail type: {thumbnail_type}")

    url = normalize_url(merged.get("url")) if post_type == "link" else None
    if post_type == "link" and not url:
        raise ValueError("A link post needs a URL")

    description = (merged.get("description") or "").strip() or None
    title = (merged.get("title") or "").strip()
    if not title:
        title = url if post_type == "link" else (description or "")[:100]

    custom_thumbnail = merged.get("custom_thumbnail") or None
    if thumbnail_type == "emoji" and not custom_thumbnail:
        custom_thumbnail = DEFAULT_EMOJI

    return {
        "post_type": post_type,
        "url": url,
        "title": title,
        "description": description,
        "thumbnail": merged.get("thumbnail") or None,
        "custom_thumbnail": custom_thumbnail,
        "thumbnail_type": thumbnail_type,
        "media_url": merged.get("media_url") if post_type in MEDIA_POST_TYPES else None,
        "media_type": merged.get("media_type") if post_type in MEDIA_POST_TYPES else None,
        "tags": normalize_tags(merged.get("tags")),
        "status": status,
        "collection_id": merged.get("collection_id"),
    }


def is_valid_for_preview(post: dict) -> bool:
    """Per-type gate for leaving the editing state."""
    post_type = post.get("post_type") or "link"
    title = (post.get("title") or "").strip()
    description = (post.get("description") or "").strip()

    if post_type == "link":
        return bool((post.get("url") or "").strip()) and bool(title)
    if post_type == "text":
        return bool(title or description)
    if post_type in MEDIA_POST_TYPES:
        return bool(post.get("media_url"))
    return False


def validation_message(post: dict) -> Optional[str]:
    """Human-readable reason a post cannot be previewed, None when valid."""
    if is_valid_for_preview(post):
        return None
    post_type = post.get("post_type") or "link"
    if post_type == "link":
        if not (post.get("url") or "").strip():
            return "A link post needs a URL"
        return "A link post needs a title"
    if post_type == "text":
        return "A text post needs a title or a description"
    if post_type in MEDIA_POST_TYPES:
        return f"This {post_type} post needs an uploaded file"
    return f"Unknown post type: {post_type}"


def card_actions(post: dict) -> List[str]:
    """Actions a post card offers. Only posts with an external url can be opened or copied."""
    actions = []
    if post.get("post_type", "link") == "link" and post.get("url"):
        actions += ["open", "copy_link"]
    actions += ["share", "edit", "delete"]
    return actions


def current_thumbnail(post: dict) -> Optional[str]:
    """Image URL to render for a post, or None (emoji is rendered separately)."""
    kind = post.get("thumbnail_type") or "original"
    if kind == "custom":
        return post.get("custom_thumbnail") or None
    if kind == "emoji":
        return None
    return post.get("thumbnail") or None


def card_view(post: dict) -> dict:
    """A post row as the API returns it: the row plus its card actions and resolved thumbnail."""
    return dict(post, actions=card_actions(post), display_thumbnail=current_thumbnail(post))


def filter_posts(posts: list, search: str = "", tags: Optional[list] = None,
                 status: str = "all") -> list:
    """Client-side style filtering: status, free-text search, any-of tags."""
    query = (search or "").strip().lower()
    wanted = [t for t in (tags or []) if t]
    result = []
    for post in posts:
        if status in STATUSES and post.get("status") != status:
            continue
        post_tags = post.get("tags") or []
        if query:
            haystack = [
                post.get("title") or "",
                post.get("description") or "",
                post.get("url") or "",
            ] + post_tags
            if not any(query in s.lower() for s in haystack):
                continue
        if wanted and not any(t in post_tags for t in wanted):
            continue
        result.append(post)
    return result


def sort_posts(posts: list, sort_order: str = "newest") -> list:
    if sort_order == "alpha":
        return sorted(posts, key=lambda p: (p.get("title") or "").lower())
    return sorted(posts, key=lambda p: p.get("created_at") or "",
                  reverse=(sort_order != "oldest"))


def all_tags(posts: list) -> List[str]:
    tags = set()
    for post in posts:
        tags.update(post.get("tags") or [])
    return sorted(tags)


def compute_stats(posts: list, top_n: int = 10) -> dict:
    """Per-user statistics page numbers."""
    tag_counts = Counter()
    domain_counts = Counter()
    day_counts = Counter()
    for post in posts:
        tag_counts.update(post.get("tags") or [])
        if post.get("post_type", "link") == "link" and post.get("url"):
            domain_counts[get_domain(post["url"])] += 1
        if post.get("created_at"):
            day_counts[post["created_at"][:10]] += 1

    return {
        "totalLinks": len(posts),
        "totalClicks": sum(p.get("click_count") or 0 for p in posts),
        "publishedLinks": sum(1 for p in posts if p.get("status") == "sent"),
        "draftLinks": sum(1 for p in posts if p.get("status") != "sent"),
        "totalTags": len(tag_counts),
        "topTags": [{"tag": t, "count": c} for t, c in tag_counts.most_common(top_n)],
        "domainsCount": [{"domain": d, "count": c} for d, c in domain_counts.most_common(top_n)],
        "linksPerDay": [{"date": d, "count": day_counts[d]} for d in sorted(day_counts)],
    }


_SHARED_URL_RE = re.compile(r"https?://[^\s]+")


def extract_shared_url(url: Optional[str] = None, text: Optional[str] = None) -> Optional[str]:
    """URL handed over by the bookmarklet or a share target (`?url=` or a URL inside `?text=`)."""
    if url and url.strip():
        return url.strip()
    match = _SHARED_URL_RE.search(text or "")
    return match.group(0) if match else None


def bookmarklet_code(base_url: str) -> str:
    return ("javascript:(function(){window.open('" + base_url.rstrip("/") +
            "/?url='+encodeURIComponent(window.location.href),'_blank')})()")
