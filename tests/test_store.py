import pytest

from user_utils import TOKEN_ALPHABET


def _token(fake_db, token="Hk7#qP", grants_role="tester", used=False):
    return fake_db.table("invite_tokens").insert({
        "token": token, "grants_role": grants_role, "used": used,
    }).execute().data[0]


# --- registration / login ---

def test_register_consumes_token(store, fake_db):
    invite = _token(fake_db)
    result = store.register_user("  Ada ", "Hk7#qP", device_id="dev-1")

    assert result["success"] is True
    user = result["user"]
    assert user["nickname"] == "ada"
    assert user["role"] == "tester"
    assert user["device_id"] == "dev-1"

    token = fake_db.rows("invite_tokens")[0]
    assert token["id"] == invite["id"]
    assert token["used"] is True
    assert token["used_by"] == user["id"]
    assert token["used_at"]


def test_register_with_used_token_fails_without_creating_user(store, fake_db):
    _token(fake_db, used=True)
    result = store.register_user("bob", "Hk7#qP")
    assert result == {"success": False, "error": "invalid token"}
    assert fake_db.rows("users") == []


def test_register_with_unknown_token(store, fake_db):
    assert store.register_user("bob", "nope")["error"] == "invalid token"
    assert store.register_user("bob", "")["error"] == "invalid token"


def test_token_is_consumed_at_most_once(store, fake_db):
    _token(fake_db)
    assert store.register_user("first", "Hk7#qP")["success"]
    second = store.register_user("second", "Hk7#qP")
    assert second["error"] == "invalid token"
    assert [u["nickname"] for u in fake_db.rows("users")] == ["first"]


def test_register_rolls_back_user_when_claim_loses_race(store, fake_db, monkeypatch):
    _token(fake_db)
    original_find = store.find_user_by_nickname

    def find_and_steal(nickname):
        # Another request claims the token between lookup and claim
        for t in fake_db.rows("invite_tokens"):
            t["used"] = True
        return original_find(nickname)

    monkeypatch.setattr(store, "find_user_by_nickname", find_and_steal)
    result = store.register_user("late", "Hk7#qP")
    assert result == {"success": False, "error": "invalid token"}
    assert fake_db.rows("users") == []


def test_register_rejects_taken_nickname(store, fake_db, make_user):
    make_user("ada")
    _token(fake_db)
    result = store.register_user("ADA", "Hk7#qP")
    assert result["success"] is False
    assert fake_db.rows("invite_tokens")[0]["used"] is False


def test_login_binds_device_on_first_login(store, make_user):
    make_user("ada")
    assert store.login_user("Ada", device_id="dev-1")["success"]
    assert store.find_user_by_nickname("ada")["device_id"] == "dev-1"

    assert store.login_user("ada", device_id="dev-1")["success"]
    refused = store.login_user("ada", device_id="dev-2")
    assert refused["success"] is False
    assert not store.login_user("ada")["success"]


def test_login_unknown_user(store):
    assert store.login_user("ghost") == {"success": False, "error": "user not found"}


def test_reset_device_allows_new_device(store, make_user):
    user = make_user("ada", device_id="dev-1")
    assert store.reset_user_device_id(user["id"])
    assert store.login_user("ada", device_id="dev-2")["success"]


def test_update_user_preferences_normalizes(store, make_user):
    user = make_user("ada")
    prefs = store.update_user_preferences(user["id"], {"theme": "dark", "locale": "xx"})
    assert prefs["theme"] == "dark"
    assert prefs["locale"] == "en"
    assert store.get_user(user["id"])["preferences"] == prefs


# --- tokens ---

def test_create_invite_token(store):
    token = store.create_invite_token("user")
    assert len(token["token"]) == 6
    assert set(token["token"]) <= set(TOKEN_ALPHABET)
    assert token["used"] is False
    with pytest.raises(ValueError):
        store.create_invite_token("admin")


def test_delete_invite_token(store):
    token = store.create_invite_token()
    assert store.delete_invite_token(token["id"])
    assert store.list_invite_tokens() == []


# --- posts ---

def test_create_post_idempotency_key(store, make_user, fake_db):
    user = make_user()
    first = store.create_post(user["id"], {"url": "a.com"}, idempotency_key="sess-1")
    again = store.create_post(user["id"], {"url": "b.com"}, idempotency_key="sess-1")
    assert again["id"] == first["id"]
    assert len(fake_db.rows("links")) == 1
    assert first["url"] == "https://a.com"


def test_update_post_only_for_owner(store, make_user):
    ada, bob = make_user("ada"), make_user("bob")
    post = store.create_post(ada["id"], {"url": "a.com", "title": "A"})
    assert store.update_post(post["id"], bob["id"], {"title": "hijack"}) is None
    updated = store.update_post(post["id"], ada["id"], {"title": "B", "tags": ["X"]})
    assert updated["title"] == "B"
    assert updated["tags"] == ["x"]
    assert updated["updated_at"]


def test_increment_click_count(store, make_user):
    user = make_user()
    post = store.create_post(user["id"], {"url": "a.com"})
    assert store.increment_click_count(post["id"], user["id"]) == 1
    assert store.increment_click_count(post["id"], user["id"]) == 2
    assert store.increment_click_count("missing", user["id"]) is None


def test_get_user_posts_sorted(store, make_user):
    user = make_user()
    store.create_post(user["id"], {"url": "b.com", "title": "Beta"})
    store.create_post(user["id"], {"url": "a.com", "title": "alpha"})
    assert [p["title"] for p in store.get_user_posts(user["id"])] == ["alpha", "Beta"]
    assert [p["title"] for p in store.get_user_posts(user["id"], "oldest")] == ["Beta", "alpha"]
    assert [p["title"] for p in store.get_user_posts(user["id"], "bogus")] == ["alpha", "Beta"]


def test_import_legacy_links_skips_bad_and_repeats(store, make_user, fake_db):
    user = make_user()
    legacy = [
        {"id": "1", "url": "https://a.com", "title": "A", "tags": ["x"]},
        {"id": "2", "title": "no url"},
    ]
    assert len(store.import_legacy_links(user["id"], legacy)) == 1
    store.import_legacy_links(user["id"], legacy)
    assert len(fake_db.rows("links")) == 1


# --- collections ---

def test_collections_item_counts_and_delete_detaches(store, make_user, fake_db):
    user = make_user()
    coll = store.create_collection(user["id"], "Reading", emoji="📖")
    post = store.create_post(user["id"], {"url": "a.com"})
    store.add_to_collection(post["id"], coll["id"], user["id"])

    assert store.get_user_collections(user["id"])[0]["item_count"] == 1
    assert [p["id"] for p in store.get_collection_items(coll["id"], user["id"])] == [post["id"]]

    assert store.delete_collection(coll["id"], user["id"])
    assert store.get_post(post["id"])["collection_id"] is None
    assert fake_db.rows("collections") == []


def test_find_collection_by_name_case_insensitive(store, make_user):
    user = make_user()
    coll = store.create_collection(user["id"], "Python")
    assert store.find_collection_by_name(user["id"], "python")["id"] == coll["id"]
    assert store.find_collection_by_name(user["id"], "rust") is None


def test_create_collection_requires_name(store, make_user):
    with pytest.raises(ValueError):
        store.create_collection(make_user()["id"], "  ")


# --- stats / admin ---

def test_admin_overview(store, fake_db, make_user):
    admin = make_user("root", role="admin")
    _token(fake_db)
    result = store.register_user("tess", "Hk7#qP")
    store.create_post(result["userId"], {"url": "a.com"})

    overview = store.get_admin_overview()
    assert overview["stats"] == {"totalUsers": 2, "totalTesters": 1, "totalLinks": 1, "totalClicks": 0}
    counts = {u["nickname"]: u["links_count"] for u in overview["users"]}
    assert counts == {"root": 0, "tess": 1}
    assert overview["tokens"][0]["user_nickname"] == "tess"
    assert store.get_user_role(admin["id"]) == "admin"


def test_upload_media(store, fake_db, make_user):
    user = make_user()
    result = store.upload_media(user["id"], "cat.PNG", b"\x89PNG", "image/png")
    assert result["type"] == "image/png"
    assert result["url"].startswith(f"https://storage.test/media/{user['id']}/")
    assert result["url"].endswith(".png")
    assert len(fake_db.storage.files) == 1


def test_upload_media_without_storage(store, fake_db, make_user):
    fake_db.storage = None
    with pytest.raises(RuntimeError):
        store.upload_media(make_user()["id"], "a.png", b"x", "image/png")


def test_register_reports_taken_nickname_when_insert_loses_race(store, fake_db, make_user):
    _token(fake_db)
    original_find = store.find_user_by_nickname
    calls = []

    def find_before_other_insert(nickname):
        # First lookup runs before a concurrent request inserts the same nickname
        calls.append(nickname)
        if len(calls) == 1:
            make_user("ada")
            return None
        return original_find(nickname)

    store.find_user_by_nickname = find_before_other_insert
    result = store.register_user("ada", "Hk7#qP")
    assert result == {"success": False, "error": "nickname already taken"}
    assert fake_db.rows("invite_tokens")[0]["used"] is False
    assert len(fake_db.rows("users")) == 1


def test_posts_only_join_own_collections(store, make_user):
    ada, bob = make_user("ada"), make_user("bob")
    ada_coll = store.create_collection(ada["id"], "Reading")

    with pytest.raises(ValueError):
        store.create_post(bob["id"], {"url": "spam.com", "collection_id": ada_coll["id"]})

    post = store.create_post(bob["id"], {"url": "spam.com"})
    with pytest.raises(ValueError):
        store.update_post(post["id"], bob["id"], {"collection_id": ada_coll["id"]})
    assert store.add_to_collection(post["id"], ada_coll["id"], bob["id"]) is False

    assert store.get_collection_items(ada_coll["id"], ada["id"]) == []
    assert store.get_post(post["id"])["collection_id"] is None


def test_update_post_keeps_existing_collection(store, make_user):
    user = make_user()
    coll = store.create_collection(user["id"], "Reading")
    post = store.create_post(user["id"], {"url": "a.com", "collection_id": coll["id"]})
    updated = store.update_post(post["id"], user["id"], {"title": "Renamed"})
    assert updated["collection_id"] == coll["id"]
