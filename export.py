"""
Link export -- JSON, CSV and a self-contained HTML page.
"""

import csv
import io
import json
from datetime import date, datetime, timedelta, timezone
from html import escape
from typing import Optional

from posts import get_domain

EXPORT_FORMATS = {
    "json": "application/json",
    "csv": "text/csv",
    "html": "text/html",
}

PERIODS = {
    "all": None,
    "today": 0,
    "7d": 7,
    "30d": 30,
    "90d": 90,
}

CSV_COLUMNS = ["title", "url", "description", "tags", "status", "post_type", "click_count", "created_at"]


def _parse_ts(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def filter_by_period(posts: list, period: str = "all", now: Optional[datetime] = None) -> list:
    """Keep posts with created_at >= now - N days; "today" means since midnight UTC."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")
    days = PERIODS[period]
    if days is None:
        return list(posts)

    now = now or datetime.now(timezone.utc)
    if days == 0:
        cutoff = now.replace(hour=0, minute=0, second=0, microsecond=0)
    else:
        cutoff = now - timedelta(days=days)

    kept = []
    for post in posts:
        ts = _parse_ts(post.get("created_at"))
        if ts and ts >= cutoff:
            kept.append(post)
    return kept


def _export_row(post: dict) -> dict:
    return {
        "title": post.get("title") or "",
        "url": post.get("url") or "",
        "description": post.get("description") or "",
        "tags": post.get("tags") or [],
        "status": post.get("status") or "draft",
        "post_type": post.get("post_type") or "link",
        "click_count": post.get("click_count") or 0,
        "created_at": post.get("created_at") or "",
    }


def export_json(posts: list) -> str:
    return json.dumps({
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "count": len(posts),
        "links": [_export_row(p) for p in posts],
    }, indent=2, ensure_ascii=False)


def export_csv(posts: list) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for post in posts:
        row = _export_row(post)
        row["tags"] = ", ".join(row["tags"])
        writer.writerow(row)
    return buf.getvalue()


_HTML_CSS = """
body{font-family:system-ui,-apple-system,sans-serif;max-width:760px;margin:2em auto;padding:0 1em;color:#1f2937;background:#fafafa}
h1{color:#8B5CF6;font-size:1.6em}
.meta{color:#6b7280;font-size:.9em;margin-bottom:2em}
.link{background:#fff;border:1px solid #e5e7eb;border-radius:12px;padding:1em 1.2em;margin-bottom:1em}
.link a{color:#111827;font-weight:600;text-decoration:none}
.link a:hover{color:#8B5CF6}
.domain{color:#9ca3af;font-size:.8em}
.desc{color:#4b5563;margin:.4em 0}
.tag{display:inline-block;background:#ede9fe;color:#6d28d9;border-radius:999px;padding:1px 8px;font-size:.75em;margin-right:4px}
"""


def export_html(posts: list) -> str:
    cards = []
    for post in posts:
        row = _export_row(post)
        title = escape(row["title"] or row["url"] or "Untitled")
        if row["url"]:
            heading = f'<a href="{escape(row["url"])}" target="_blank" rel="noopener">{title}</a>'
            heading += f' <span class="domain">{escape(get_domain(row["url"]))}</span>'
        else:
            heading = f"<strong>{title}</strong>"
        desc = f'<p class="desc">{escape(row["description"])}</p>' if row["description"] else ""
        tags = "".join(f'<span class="tag">#{escape(t)}</span>' for t in row["tags"])
        cards.append(f'<div class="link">{heading}{desc}<div>{tags}</div></div>')

    exported = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    return f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>fliqk links</title>
<style>{_HTML_CSS}</style></head>
<body><h1>fliqk links</h1>
<div class="meta">{len(posts)} links &middot; exported {exported}</div>
{''.join(cards)}
</body></html>"""


def export_posts(posts: list, fmt: str) -> str:
    if fmt == "json":
        return export_json(posts)
    if fmt == "csv":
        return export_csv(posts)
    if fmt == "html":
        return export_html(posts)
    raise ValueError(f"Unknown export format: {fmt}")


def export_filename(fmt: str, today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"fliqk-links-{today.isoformat()}.{fmt}"
