"""
Persistence client -- every read and write against the relational store.

Works with any object exposing the supabase-py table() API: the hosted
Supabase client in production, db_compat.CompatClient on plain Postgres.

Tables: users, invite_tokens, links (posts), collections.

Usage:
    from store import Store
    store = Store(get_client())
    result = store.register_user("ada", "Hk7#qP", device_id="dev-1")
    if not result["success"]:
        print(result["error"])
"""

import os
import uuid
from datetime import datetime, timezone
from collections import Counter
from typing import Optional

from posts import prepare_post, sort_posts, compute_stats, SORT_ORDERS
from session import DEFAULT_PREFERENCES, normalize_preferences
from user_utils import (
    GRANTABLE_ROLES, generate_invite_token, normalize_nickname, nickname_error,
)

MEDIA_BUCKET = os.getenv("FLIQK_MEDIA_BUCKET", "media")

INVALID_TOKEN = "invalid token"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Store:
    """Data access for fliqk. Methods return plain row dicts."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    # --------------------------------------------------------
    # Users
    # --------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[dict]:
        resp = self.supabase.table("users").select("*").eq("id", user_id).execute()
        return resp.data[0] if resp.data else None

    def get_user_role(self, user_id: str) -> Optional[str]:
        resp = self.supabase.table("users").select("role").eq("id", user_id).execute()
        return resp.data[0].get("role") if resp.data else None

    def find_user_by_nickname(self, nickname: str) -> Optional[dict]:
        """Nicknames are stored lowercase, so lookup is case-insensitive."""
        resp = self.supabase.table("users").select("*").eq(
            "nickname", normalize_nickname(nickname)
        ).execute()
        return resp.data[0] if resp.data else None

    def list_users(self) -> list:
        resp = self.supabase.table("users").select("*").order("created_at", desc=True).execute()
        return resp.data or []

    def register_user(self, nickname: str, token: str, device_id: Optional[str] = None) -> dict:
        """
        Create a user from a one-time invite token.

        Returns {"success": True, "userId", "user"} or {"success": False, "error"}.
        The token is claimed with a conditional update on used=false, so a
        token that was consumed concurrently fails registration and the
        just-created user is removed again.
        """
        nickname = normalize_nickname(nickname)
        error = nickname_error(nickname)
        if error:
            return {"success": False, "error": error}

        token = (token or "").strip()
        if not token:
            return {"success": False, "error": INVALID_TOKEN}

        resp = self.supabase.table("invite_tokens").select("*").eq(
            "token", token
        ).eq("used", False).execute()
        if not resp.data:
            return {"success": False, "error": INVALID_TOKEN}
        invite = resp.data[0]

        if self.find_user_by_nickname(nickname):
            return {"success": False, "error": "nickname already taken"}

        role = invite.get("grants_role") if invite.get("grants_role") in GRANTABLE_ROLES else "user"
        try:
            created = self.supabase.table("users").insert({
                "nickname": nickname,
                "role": role,
                "device_id": device_id,
                "preferences": dict(DEFAULT_PREFERENCES),
            }).execute()
        except Exception:
            # Lost a race on the unique nickname
            if self.find_user_by_nickname(nickname):
                print(f"[Store] Nickname {nickname} registered concurrently")
                return {"success": False, "error": "nickname already taken"}
            raise
        if not created.data:
            return {"success": False, "error": "registration failed"}
        user = created.data[0]

        claimed = self.supabase.table("invite_tokens").update({
            "used": True,
            "used_by": user["id"],
            "used_at": _now(),
        }).eq("id", invite["id"]).eq("used", False).execute()

        if not claimed.data:
            print(f"[Store] Token {invite['id']} consumed concurrently, rolling back user {user['id']}")
            self.supabase.table("users").delete().eq("id", user["id"]).execute()
            return {"success": False, "error": INVALID_TOKEN}

        print(f"[Store] Registered {nickname} as {role}")
        return {"success": True, "userId": user["id"], "user": user}

    def login_user(self, nickname: str, device_id: Optional[str] = None) -> dict:
        """
        Log in by nickname. The first login with a device id binds the
        account to it; a different device is refused until an admin reset.
        """
        user = self.find_user_by_nickname(nickname)
        if not user:
            return {"success": False, "error": "user not found"}

        bound = user.get("device_id")
        if bound and bound != device_id:
            return {"success": False, "error": "account is bound to another device"}
        if device_id and not bound:
            self.supabase.table("users").update({"device_id": device_id}).eq("id", user["id"]).execute()
            user["device_id"] = device_id

        return {"success": True, "user": user}

    def update_user_preferences(self, user_id: str, preferences: dict) -> dict:
        prefs = normalize_preferences(preferences)
        self.supabase.table("users").update({"preferences": prefs}).eq("id", user_id).execute()
        return prefs

    def reset_user_device_id(self, user_id: str) -> bool:
        resp = self.supabase.table("users").update({"device_id": None}).eq("id", user_id).execute()
        return bool(resp.data)

    # --------------------------------------------------------
    # Invite Tokens
    # --------------------------------------------------------

    def create_invite_token(self, grants_role: str = "tester") -> dict:
        if grants_role not in GRANTABLE_ROLES:
            raise ValueError(f"Tokens can only grant {', '.join(GRANTABLE_ROLES)}")
        resp = self.supabase.table("invite_tokens").insert({
            "token": generate_invite_token(),
            "grants_role": grants_role,
            "used": False,
        }).execute()
        return resp.data[0] if resp.data else {}

    def list_invite_tokens(self) -> list:
        resp = self.supabase.table("invite_tokens").select("*").order("created_at", desc=True).execute()
        return resp.data or []

    def delete_invite_token(self, token_id: str) -> bool:
        resp = self.supabase.table("invite_tokens").delete().eq("id", token_id).execute()
        return bool(resp.data)

    # --------------------------------------------------------
    # Posts
    # --------------------------------------------------------

    def get_user_posts(self, user_id: str, sort_order: str = "newest") -> list:
        if sort_order not in SORT_ORDERS:
            sort_order = "newest"
        resp = self.supabase.table("links").select("*").eq("user_id", user_id).execute()
        return sort_posts(resp.data or [], sort_order)

    def get_post(self, post_id: str, user_id: Optional[str] = None) -> Optional[dict]:
        query = self.supabase.table("links").select("*").eq("id", post_id)
        if user_id:
            query = query.eq("user_id", user_id)
        resp = query.execute()
        return resp.data[0] if resp.data else None

    def find_post_by_idempotency_key(self, user_id: str, key: str) -> Optional[dict]:
        resp = self.supabase.table("links").select("*").eq(
            "user_id", user_id
        ).eq("idempotency_key", key).execute()
        return resp.data[0] if resp.data else None

    def create_post(self, user_id: str, data: dict, idempotency_key: Optional[str] = None) -> dict:
        """Insert a post. With an idempotency key, an existing post for the key is returned instead."""
        if idempotency_key:
            existing = self.find_post_by_idempotency_key(user_id, idempotency_key)
            if existing:
                return existing

        self._check_collection(user_id, data.get("collection_id"))
        row = prepare_post(data)
        row.update({
            "user_id": user_id,
            "click_count": 0,
            "idempotency_key": idempotency_key,
        })
        resp = self.supabase.table("links").insert(row).execute()
        return resp.data[0] if resp.data else {}

    def update_post(self, post_id: str, user_id: str, updates: dict) -> Optional[dict]:
        existing = self.get_post(post_id, user_id)
        if not existing:
            return None
        if updates.get("collection_id") != existing.get("collection_id"):
            self._check_collection(user_id, updates.get("collection_id"))
        row = prepare_post(updates, existing=existing)
        row["updated_at"] = _now()
        resp = self.supabase.table("links").update(row).eq("id", post_id).eq("user_id", user_id).execute()
        return resp.data[0] if resp.data else None

    def set_post_status(self, post_id: str, status: str) -> Optional[dict]:
        resp = self.supabase.table("links").update({
            "status": status,
            "updated_at": _now(),
        }).eq("id", post_id).execute()
        return resp.data[0] if resp.data else None

    def delete_post(self, post_id: str, user_id: str) -> bool:
        resp = self.supabase.table("links").delete().eq("id", post_id).eq("user_id", user_id).execute()
        return bool(resp.data)

    def increment_click_count(self, post_id: str, user_id: str) -> Optional[int]:
        """Read-then-write increment; concurrent clicks may be lost."""
        post = self.get_post(post_id, user_id)
        if not post:
            return None
        count = (post.get("click_count") or 0) + 1
        self.supabase.table("links").update({"click_count": count}).eq("id", post_id).execute()
        return count

    def import_legacy_links(self, user_id: str, links: list) -> list:
        """Import the old locally cached link list ({url, title, description, tags, createdAt})."""
        imported = []
        for link in links:
            if not link.get("url"):
                continue
            key = f"legacy:{link.get('id') or link['url']}"
            try:
                imported.append(self.create_post(user_id, {
                    "post_type": "link",
                    "url": link["url"],
                    "title": link.get("title") or "",
                    "description": link.get("description") or "",
                    "thumbnail": link.get("thumbnail"),
                    "tags": link.get("tags") or [],
                    "status": "draft",
                }, idempotency_key=key))
            except ValueError as e:
                print(f"[Store] Skipping legacy link {link.get('url')}: {e}")
        return imported

    # --------------------------------------------------------
    # Collections
    # --------------------------------------------------------

    def get_user_collections(self, user_id: str) -> list:
        resp = self.supabase.table("collections").select("*").eq(
            "user_id", user_id
        ).order("created_at", desc=True).execute()
        collections = resp.data or []

        posts = self.supabase.table("links").select("id, collection_id").eq("user_id", user_id).execute()
        counts = Counter(p["collection_id"] for p in (posts.data or []) if p.get("collection_id"))
        for collection in collections:
            collection["item_count"] = counts.get(collection["id"], 0)
        return collections

    def get_collection(self, collection_id: str, user_id: str) -> Optional[dict]:
        resp = self.supabase.table("collections").select("*").eq(
            "id", collection_id
        ).eq("user_id", user_id).execute()
        return resp.data[0] if resp.data else None

    def _check_collection(self, user_id: str, collection_id: Optional[str]) -> None:
        if collection_id and not self.get_collection(collection_id, user_id):
            raise ValueError("Collection not found")

    def find_collection_by_name(self, user_id: str, name: str) -> Optional[dict]:
        wanted = (name or "").strip().lower()
        if not wanted:
            return None
        for collection in self.get_user_collections(user_id):
            if (collection.get("name") or "").strip().lower() == wanted:
                return collection
        return None

    def create_collection(self, user_id: str, name: str, emoji: str = "📚",
                          color: str = "#8B5CF6") -> dict:
        name = (name or "").strip()
        if not name:
            raise ValueError("Collection name required")
        resp = self.supabase.table("collections").insert({
            "user_id": user_id,
            "name": name,
            "emoji": emoji,
            "color": color,
        }).execute()
        collection = resp.data[0] if resp.data else {}
        if collection:
            collection["item_count"] = 0
        return collection

    def update_collection(self, collection_id: str, user_id: str, updates: dict) -> Optional[dict]:
        fields = {k: v for k, v in updates.items() if k in ("name", "emoji", "color") and v is not None}
        if "name" in fields:
            fields["name"] = fields["name"].strip()
            if not fields["name"]:
                raise ValueError("Collection name required")
        if not fields:
            return self.get_collection(collection_id, user_id)
        resp = self.supabase.table("collections").update(fields).eq(
            "id", collection_id
        ).eq("user_id", user_id).execute()
        return resp.data[0] if resp.data else None

    def delete_collection(self, collection_id: str, user_id: str) -> bool:
        """Delete a collection; its posts are detached, never deleted."""
        self.supabase.table("links").update({"collection_id": None}).eq(
            "collection_id", collection_id
        ).eq("user_id", user_id).execute()
        resp = self.supabase.table("collections").delete().eq(
            "id", collection_id
        ).eq("user_id", user_id).execute()
        return bool(resp.data)

    def get_collection_items(self, collection_id: str, user_id: str, sort_order: str = "newest") -> list:
        resp = self.supabase.table("links").select("*").eq(
            "collection_id", collection_id
        ).eq("user_id", user_id).execute()
        return sort_posts(resp.data or [], sort_order if sort_order in SORT_ORDERS else "newest")

    def add_to_collection(self, post_id: str, collection_id: Optional[str], user_id: str) -> bool:
        if collection_id and not self.get_collection(collection_id, user_id):
            return False
        resp = self.supabase.table("links").update({"collection_id": collection_id}).eq(
            "id", post_id
        ).eq("user_id", user_id).execute()
        return bool(resp.data)

    # --------------------------------------------------------
    # Stats
    # --------------------------------------------------------

    def get_user_stats(self, user_id: str) -> dict:
        return compute_stats(self.get_user_posts(user_id))

    def get_admin_overview(self) -> dict:
        users = self.list_users()
        posts = self.supabase.table("links").select("id, user_id, click_count").execute().data or []
        tokens = self.list_invite_tokens()

        per_user = Counter(p.get("user_id") for p in posts)
        for user in users:
            user["links_count"] = per_user.get(user["id"], 0)

        nicknames = {u["id"]: u.get("nickname") for u in users}
        for token in tokens:
            if token.get("used_by"):
                token["user_nickname"] = nicknames.get(token["used_by"])

        return {
            "stats": {
                "totalUsers": len(users),
                "totalTesters": sum(1 for u in users if u.get("role") == "tester"),
                "totalLinks": len(posts),
                "totalClicks": sum(p.get("click_count") or 0 for p in posts),
            },
            "users": users,
            "tokens": tokens,
        }

    # --------------------------------------------------------
    # Media
    # --------------------------------------------------------

    def upload_media(self, user_id: str, filename: str, content: bytes, content_type: str) -> dict:
        """Upload to Supabase Storage and return {url, type}."""
        storage = getattr(self.supabase, "storage", None)
        if storage is None:
            raise RuntimeError("Media uploads need Supabase Storage (SUPABASE_URL/SUPABASE_KEY)")

        ext = os.path.splitext(filename or "")[1].lower()
        path = f"{user_id}/{uuid.uuid4().hex}{ext}"
        bucket = storage.from_(MEDIA_BUCKET)
        bucket.upload(path, content, {"content-type": content_type})
        print(f"[Store] Uploaded {len(content)} bytes to {MEDIA_BUCKET}/{path}")
        return {"url": bucket.get_public_url(path), "type": content_type}
