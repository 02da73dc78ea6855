"""
Shared fixtures: an in-memory stand-in for the Supabase table API, an
AIEngine wired to httpx.MockTransport, and a FastAPI app built from the
router factories.
"""

import copy
import json
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ai_engine import AIEngine
from ai_routes import create_ai_router
from admin_routes import create_admin_router
from auth_routes import create_auth_router
from collection_routes import create_collection_router
from i18n import locale_middleware
from metadata import MetadataFetcher
from post_routes import create_post_router
from session import SESSION_COOKIE, encode_session, make_session
from store import Store


# ============================================================
# In-memory table API
# ============================================================

class FakeAPIError(Exception):
    """Raised like postgrest.APIError when an insert breaks a unique constraint."""


class FakeResponse:
    def __init__(self, data=None, count=None):
        self.data = data or []
        self.count = count


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.operation = None
        self.columns = "*"
        self.count_mode = None
        self.filters = []
        self.order_by = []
        self.limit_val = None
        self.payload = None

    def select(self, columns="*", count=None):
        self.operation, self.columns, self.count_mode = "select", columns, count
        return self

    def insert(self, data):
        self.operation, self.payload = "insert", data
        return self

    def update(self, data):
        self.operation, self.payload = "update", data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def _filter(self, fn):
        self.filters.append(fn)
        return self

    def eq(self, col, val):
        return self._filter(lambda r: r.get(col) == val)

    def neq(self, col, val):
        return self._filter(lambda r: r.get(col) != val)

    def gt(self, col, val):
        return self._filter(lambda r: r.get(col) is not None and r.get(col) > val)

    def gte(self, col, val):
        return self._filter(lambda r: r.get(col) is not None and r.get(col) >= val)

    def lt(self, col, val):
        return self._filter(lambda r: r.get(col) is not None and r.get(col) < val)

    def lte(self, col, val):
        return self._filter(lambda r: r.get(col) is not None and r.get(col) <= val)

    def ilike(self, col, pattern):
        needle = pattern.strip("%").lower()
        return self._filter(lambda r: needle in str(r.get(col) or "").lower())

    def in_(self, col, values):
        values = list(values)
        return self._filter(lambda r: r.get(col) in values)

    def is_(self, col, val):
        return self._filter(lambda r: r.get(col) is None if val in (None, "null") else r.get(col) is val)

    def order(self, col, desc=False):
        self.order_by.append((col, desc))
        return self

    def limit(self, n):
        self.limit_val = n
        return self

    def _matching(self):
        rows = self.db.tables.setdefault(self.table, [])
        return [r for r in rows if all(f(r) for f in self.filters)]

    def _project(self, row):
        cols = [c.strip() for c in self.columns.split(",") if c.strip()]
        if cols == ["*"]:
            return copy.deepcopy(row)
        return {c: copy.deepcopy(row.get(c)) for c in cols}

    def execute(self):
        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            inserted = []
            for item in (self.payload if isinstance(self.payload, list) else [self.payload]):
                row = copy.deepcopy(item)
                for col in self.db.unique.get(self.table, ()):
                    if any(r.get(col) == row.get(col) for r in rows):
                        raise FakeAPIError(f"duplicate key value violates unique constraint on {col}")
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", self.db.next_timestamp())
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        matched = self._matching()

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse([copy.deepcopy(r) for r in matched])

        if self.operation == "delete":
            self.db.tables[self.table] = [r for r in rows if r not in matched]
            return FakeResponse([copy.deepcopy(r) for r in matched])

        for col, desc in reversed(self.order_by):
            matched = sorted(matched, key=lambda r: (r.get(col) is None, r.get(col) or ""), reverse=desc)
        if self.limit_val is not None:
            matched = matched[: self.limit_val]
        count = len(matched) if self.count_mode == "exact" else None
        return FakeResponse([self._project(r) for r in matched], count)


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, content, file_options=None):
        self.storage.files[f"{self.name}/{path}"] = (content, file_options)
        return {"path": path}

    def get_public_url(self, path):
        return f"https://storage.test/{self.name}/{path}"


class FakeStorage:
    def __init__(self):
        self.files = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    """Just enough of supabase.Client for Store: table() and storage."""

    def __init__(self):
        self.tables = {}
        self.storage = FakeStorage()
        self.unique = {"users": ("nickname",), "invite_tokens": ("token",)}
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def next_timestamp(self):
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.get(name, [])


# ============================================================
# Fake outbound HTTP
# ============================================================

def claude_reply(text):
    return {
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": 10, "output_tokens": 5},
    }


class FakeWeb:
    """Routes MockTransport requests: pages by host, Claude replies from a queue."""

    def __init__(self):
        self.pages = {}
        self.claude_replies = []
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "api.anthropic.com":
            text = self.claude_replies.pop(0) if self.claude_replies else "{}"
            return httpx.Response(200, json=claude_reply(text))
        page = self.pages.get(request.url.host)
        if page is None:
            raise httpx.ConnectError("Name or service not known", request=request)
        status, html = page
        return httpx.Response(status, text=html, headers={"content-type": "text/html"})

    def claude_requests(self):
        return [json.loads(r.content) for r in self.requests if r.url.host == "api.anthropic.com"]


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def store(fake_db):
    return Store(fake_db)


@pytest.fixture
def web():
    return FakeWeb()


@pytest.fixture
def engine(web):
    transport = httpx.MockTransport(web.handler)
    fetcher = MetadataFetcher(http_client=httpx.AsyncClient(transport=transport))
    return AIEngine(anthropic_api_key="test-key", fetcher=fetcher,
                    http_client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def app(store, engine):
    app = FastAPI()
    app.middleware("http")(locale_middleware)
    app.include_router(create_auth_router(store))
    app.include_router(create_post_router(store, engine))
    app.include_router(create_collection_router(store))
    app.include_router(create_ai_router(engine))
    app.include_router(create_admin_router(store))
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(fake_db):
    def _make(nickname="ada", role="user", device_id=None):
        return fake_db.table("users").insert({
            "nickname": nickname,
            "role": role,
            "device_id": device_id,
            "preferences": {"theme": "light", "locale": "en", "sort_order": "newest", "ai_suggestions": True},
        }).execute().data[0]
    return _make


def login_as(client, user):
    client.cookies.set(SESSION_COOKIE, encode_session(make_session(user)))
    return client


@pytest.fixture
def user_client(client, make_user):
    """TestClient logged in as a regular user; the user row is on `client.user`."""
    user = make_user("ada")
    login_as(client, user)
    client.user = user
    return client
