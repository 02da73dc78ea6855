"""
Post composer -- the editing / previewing / shared lifecycle of one post.

A composer session is identified by a client-generated key. The key is
stored on the post as its idempotency key, so repeated saves and shares
from the same session create at most one post and keep it in step with
the latest draft.

    editing --preview()--> previewing --share()--------> shared
                               |
                               +--save_for_later()--> saved-as-draft
"""

from typing import Optional

from posts import (
    MEDIA_POST_TYPES, is_valid_for_preview, normalize_tags, validation_message,
)
from share import PLATFORMS, build_share_payload

EDITING = "editing"
PREVIEWING = "previewing"
SAVED_AS_DRAFT = "saved-as-draft"
SHARED = "shared"

MB = 1024 * 1024
UPLOAD_LIMITS = {
    "image": 5 * MB,
    "audio": 10 * MB,
    "video": 50 * MB,
}


class ComposerError(Exception):
    """Raised for invalid composer input or transitions. `status` is the HTTP code to report."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def validate_upload(content_type: Optional[str], size: int, post_type: str) -> None:
    """Check an upload against the post type's MIME family and size ceiling."""
    if post_type not in MEDIA_POST_TYPES:
        raise ComposerError(f"{post_type} posts do not take uploads")
    if not (content_type or "").startswith(f"{post_type}/"):
        raise ComposerError(f"Expected a {post_type} file, got {content_type or 'unknown type'}")
    limit = UPLOAD_LIMITS[post_type]
    if size > limit:
        raise ComposerError(f"File too large: {post_type} uploads are limited to {limit // MB}MB")


class PostComposer:
    """
    Drives one composer session against the store.

    `draft` holds the editable post fields. When it carries an `id` the
    composer works on that existing post instead of creating a new one.
    """

    def __init__(self, store, user_id: str, draft: dict, session_key: str):
        if not session_key:
            raise ComposerError("Composer session key required")
        self.store = store
        self.user_id = user_id
        self.session_key = session_key
        self.draft = dict(draft)
        self.draft["tags"] = normalize_tags(self.draft.get("tags"))
        self.state = EDITING
        self.post = None

    def preview(self) -> dict:
        if self.state != EDITING:
            raise ComposerError(f"Cannot preview from {self.state}", status=409)
        message = validation_message(self.draft)
        if message:
            raise ComposerError(message)
        self.state = PREVIEWING
        return self.draft

    def back_to_editing(self) -> None:
        if self.state != PREVIEWING:
            raise ComposerError(f"Cannot edit from {self.state}", status=409)
        self.state = EDITING

    def ensure_saved(self) -> dict:
        """
        Persist the draft once. Later calls return the same post; a later
        request of the same session writes its current draft over the post
        the session already saved.
        """
        if self.post is not None:
            return self.post

        post_id = self.draft.get("id")
        try:
            if not post_id:
                saved = self.store.find_post_by_idempotency_key(self.user_id, self.session_key)
                if saved:
                    post_id = saved["id"]
            if post_id:
                post = self.store.update_post(post_id, self.user_id, self.draft)
                if post is None:
                    raise ComposerError("Post not found", status=404)
            else:
                post = self.store.create_post(self.user_id, self.draft,
                                              idempotency_key=self.session_key)
        except ValueError as e:
            raise ComposerError(str(e))

        self.post = post
        return post

    def save_for_later(self) -> dict:
        if self.state != PREVIEWING:
            raise ComposerError(f"Cannot save from {self.state}", status=409)
        post = self.ensure_saved()
        self.state = SAVED_AS_DRAFT
        print(f"[Composer] Saved draft {post.get('id')} (session {self.session_key})")
        return post

    def share(self, platform: str, include_preview: bool = False,
              include_title: bool = False) -> dict:
        """
        Save (at most once), build the platform payload, then mark the post
        sent and file it in the collection named after its first tag.
        Bookkeeping failures after the payload is built are logged only.
        """
        if platform not in PLATFORMS:
            raise ComposerError(f"Unknown share platform: {platform}")
        if self.state not in (PREVIEWING, SHARED):
            raise ComposerError(f"Cannot share from {self.state}", status=409)
        if not is_valid_for_preview(self.draft):
            raise ComposerError(validation_message(self.draft))

        post = self.ensure_saved()
        payload = build_share_payload(platform, post, include_preview=include_preview,
                                      include_title=include_title)
        self._after_share(post)
        self.state = SHARED
        payload["post"] = self.post
        return payload

    def _after_share(self, post: dict) -> None:
        try:
            updated = self.store.set_post_status(post["id"], "sent")
            if updated:
                self.post = updated
        except Exception as e:
            print(f"[Composer] Failed to mark {post.get('id')} as sent: {e}")

        tags = post.get("tags") or []
        if not tags or post.get("collection_id"):
            return
        try:
            collection = self.store.find_collection_by_name(self.user_id, tags[0])
            if collection:
                self.store.add_to_collection(post["id"], collection["id"], self.user_id)
                self.post = dict(self.post, collection_id=collection["id"])
                print(f"[Composer] Filed {post['id']} under '{collection['name']}'")
        except Exception as e:
            print(f"[Composer] Auto-collection failed for {post.get('id')}: {e}")
