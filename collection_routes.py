"""
Collection routes -- named, emoji-tagged groups of posts.
"""

import random
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from posts import card_view
from session import require_session
from store import Store


class CollectionCreate(BaseModel):
    name: str
    emoji: Optional[str] = "📚"
    color: Optional[str] = "#8B5CF6"


class CollectionUpdate(BaseModel):
    name: Optional[str] = None
    emoji: Optional[str] = None
    color: Optional[str] = None


def create_collection_router(store: Store) -> APIRouter:
    router = APIRouter(tags=["collections"])

    def owned(collection_id: str, user_id: str) -> dict:
        collection = store.get_collection(collection_id, user_id)
        if not collection:
            raise HTTPException(404, "Collection not found")
        return collection

    @router.get("/api/collections")
    async def list_collections(session: dict = Depends(require_session)):
        return {"collections": store.get_user_collections(session["userId"])}

    @router.post("/api/collections")
    async def create_collection(body: CollectionCreate, session: dict = Depends(require_session)):
        try:
            collection = store.create_collection(session["userId"], body.name,
                                                 emoji=body.emoji or "📚",
                                                 color=body.color or "#8B5CF6")
        except ValueError as e:
            raise HTTPException(400, str(e))
        return {"collection": collection}

    @router.patch("/api/collections/{collection_id}")
    async def update_collection(collection_id: str, body: CollectionUpdate,
                                session: dict = Depends(require_session)):
        owned(collection_id, session["userId"])
        try:
            collection = store.update_collection(collection_id, session["userId"],
                                                 body.model_dump(exclude_none=True))
        except ValueError as e:
            raise HTTPException(400, str(e))
        return {"collection": collection}

    @router.delete("/api/collections/{collection_id}")
    async def delete_collection(collection_id: str, session: dict = Depends(require_session)):
        owned(collection_id, session["userId"])
        store.delete_collection(collection_id, session["userId"])
        return {"success": True}

    @router.get("/api/collections/{collection_id}/items")
    async def collection_items(collection_id: str, sort: Optional[str] = None,
                               session: dict = Depends(require_session)):
        collection = owned(collection_id, session["userId"])
        sort_order = sort or session["preferences"]["sort_order"]
        items = store.get_collection_items(collection_id, session["userId"], sort_order)
        return {"collection": collection, "items": [card_view(p) for p in items]}

    @router.get("/api/collections/{collection_id}/random")
    async def random_item(collection_id: str, session: dict = Depends(require_session)):
        """Pick one post at random, for the shuffle button."""
        owned(collection_id, session["userId"])
        items = store.get_collection_items(collection_id, session["userId"])
        if not items:
            raise HTTPException(404, "Collection is empty")
        return {"post": card_view(random.choice(items))}

    @router.post("/api/collections/{collection_id}/items/{post_id}")
    async def add_item(collection_id: str, post_id: str, session: dict = Depends(require_session)):
        owned(collection_id, session["userId"])
        if not store.add_to_collection(post_id, collection_id, session["userId"]):
            raise HTTPException(404, "Post not found")
        return {"success": True}

    @router.delete("/api/collections/{collection_id}/items/{post_id}")
    async def remove_item(collection_id: str, post_id: str, session: dict = Depends(require_session)):
        owned(collection_id, session["userId"])
        post = store.get_post(post_id, session["userId"])
        if not post or post.get("collection_id") != collection_id:
            raise HTTPException(404, "Post not in collection")
        store.add_to_collection(post_id, None, session["userId"])
        return {"success": True}

    return router
