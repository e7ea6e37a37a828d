"""
End-to-end tests for the blog endpoints: cached reads, write invalidation,
and degraded operation without the cache backend.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
ADMIN = {"X-User-Id": "root", "X-User-Role": "admin"}


def recently(days):
    return datetime.now(timezone.utc) - timedelta(days=days)


@pytest.fixture
def app(cache_client, store):
    return create_app(Settings(), cache_client=cache_client, store=store)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded(store):
    store.add(id="b1", title="Modern C++ idioms", author_id="alice", tags=["cpp"], category="tech")
    store.add(id="b2", title="C tips", author_id="bob", category="tech")
    store.add(id="d1", title="Unfinished", author_id="alice", status="draft")
    return store


class TestCachedReads:

    def test_list_miss_then_hit(self, client, seeded):
        first = client.get("/api/blogs", params={"page": 1})
        second = client.get("/api/blogs", params={"page": 1})

        assert first.status_code == second.status_code == 200
        assert first.headers["X-Cache-Status"] == "MISS"
        assert second.headers["X-Cache-Status"] == "HIT"
        assert first.content == second.content
        assert seeded.calls["query"] == 1

    def test_list_body(self, client, seeded):
        body = client.get("/api/blogs").json()

        ids = {b["id"] for b in body["data"]["blogs"]}
        assert ids == {"b1", "b2"}
        assert body["data"]["pagination"]["totalCount"] == 2
        assert body["data"]["pagination"]["hasNext"] is False

    def test_equivalent_queries_share_an_entry(self, client, seeded):
        client.get("/api/blogs?category=tech&page=1")
        response = client.get("/api/blogs?page=1&category=TECH")
        assert response.headers["X-Cache-Status"] == "HIT"

    @pytest.mark.parametrize("first,second", [
        ("/api/blogs", "/api/blogs?page=1&status=published&sortOrder=desc"),
        ("/api/blogs?page=0", "/api/blogs?page=1"),
        ("/api/blogs?limit=500", "/api/blogs?limit=50"),
        ("/api/blogs?sortBy=createdAt", "/api/blogs?sortBy=bogus"),
    ])
    def test_identical_results_share_an_entry(self, client, seeded, first, second):
        a = client.get(first)
        b = client.get(second)
        assert b.headers["X-Cache-Status"] == "HIT"
        assert a.headers["X-Cache-Key"] == b.headers["X-Cache-Key"]

    def test_unbound_parameter_names_do_not_change_the_key(self, client, store):
        for i in range(15):
            store.add(id=f"p{i:02d}")

        ignored = client.get("/api/blogs?Page=2")
        second_page = client.get("/api/blogs?page=2")

        assert ignored.json()["data"]["pagination"]["currentPage"] == 1
        assert second_page.headers["X-Cache-Status"] == "MISS"
        assert second_page.json()["data"]["pagination"]["currentPage"] == 2
        assert ignored.headers["X-Cache-Key"] != second_page.headers["X-Cache-Key"]

    def test_repeated_tags_key_on_the_bound_value(self, client, store):
        for i in range(3):
            store.add(id=f"a{i}", tags=["a"])
        for i in range(2):
            store.add(id=f"b{i}", tags=["b"])

        last_b = client.get("/api/blogs?tags=a&tags=b")
        last_a = client.get("/api/blogs?tags=b&tags=a")

        assert last_a.headers["X-Cache-Status"] == "MISS"
        assert {b["id"] for b in last_b.json()["data"]["blogs"]} == {"b0", "b1"}
        assert {b["id"] for b in last_a.json()["data"]["blogs"]} == {"a0", "a1", "a2"}

    def test_zero_limit_is_clamped_to_one(self, client, seeded):
        body = client.get("/api/blogs", params={"limit": 0}).json()
        assert len(body["data"]["blogs"]) == 1
        assert body["data"]["pagination"]["pageSize"] == 1

    def test_principals_get_separate_entries(self, client, seeded):
        anonymous = client.get("/api/blogs")
        alice = client.get("/api/blogs", headers=ALICE)
        bob = client.get("/api/blogs", headers=BOB)

        assert alice.headers["X-Cache-Status"] == "MISS"
        assert bob.headers["X-Cache-Status"] == "MISS"
        assert "guest:anonymous" in anonymous.headers["X-Cache-Key"]
        assert "user:alice" in alice.headers["X-Cache-Key"]
        assert anonymous.headers["Cache-Control"].startswith("public")
        assert alice.headers["Cache-Control"].startswith("private")

    def test_search_is_literal(self, client, seeded):
        body = client.get("/api/blogs", params={"search": "c++"}).json()
        assert [b["id"] for b in body["data"]["blogs"]] == ["b1"]

    def test_page_size_clamped(self, client, store):
        for i in range(60):
            store.add(id=f"p{i}")
        body = client.get("/api/blogs", params={"limit": 500, "page": 0}).json()
        pagination = body["data"]["pagination"]
        assert len(body["data"]["blogs"]) == 50
        assert pagination["currentPage"] == 1
        assert pagination["totalPages"] == 2

    def test_unpublished_listing_requires_ownership(self, client, seeded):
        assert client.get("/api/blogs", params={"status": "draft"}).status_code == 403

        own = client.get("/api/blogs", params={"status": "draft", "author": "alice"}, headers=ALICE)
        assert own.status_code == 200
        assert [b["id"] for b in own.json()["data"]["blogs"]] == ["d1"]

        assert client.get("/api/blogs", params={"status": "draft"}, headers=ADMIN).status_code == 200

    def test_user_profile_shows_drafts_to_owner_only(self, client, seeded):
        public = client.get("/api/blogs/user/alice").json()
        own = client.get("/api/blogs/user/alice", headers=ALICE).json()

        assert {b["id"] for b in public["data"]["blogs"]} == {"b1"}
        assert {b["id"] for b in own["data"]["blogs"]} == {"b1", "d1"}


class TestSinglePost:

    def test_views_counted_on_every_request(self, client, seeded):
        first = client.get("/api/blogs/b1")
        second = client.get("/api/blogs/b1")

        assert first.headers["X-Cache-Status"] == "MISS"
        assert second.headers["X-Cache-Status"] == "HIT"
        assert first.json()["data"]["blog"]["views"] == 1
        assert seeded.posts["b1"].views == 2

    def test_missing_post(self, client, seeded):
        response = client.get("/api/blogs/nope")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_draft_visible_to_author_only(self, client, seeded):
        assert client.get("/api/blogs/d1").status_code == 404
        assert client.get("/api/blogs/d1", headers=BOB).status_code == 404

        response = client.get("/api/blogs/d1", headers=ALICE)
        assert response.status_code == 200
        assert response.json()["data"]["blog"]["status"] == "draft"

    def test_hidden_draft_does_not_count_views(self, client, seeded):
        assert client.get("/api/blogs/d1", headers=BOB).status_code == 404
        assert client.get("/api/blogs/d1").status_code == 404
        assert seeded.posts["d1"].views == 0
        assert "increment_views" not in seeded.calls


class TestWriteInvalidation:

    def test_create_invalidates_lists(self, client, seeded):
        client.get("/api/blogs")
        created = client.post(
            "/api/blogs",
            json={"title": "Fresh", "content": "New post body", "status": "published", "tags": ["News"]},
            headers=ALICE,
        )

        assert created.status_code == 201
        blog = created.json()["data"]["blog"]
        assert blog["author_id"] == "alice"
        assert blog["tags"] == ["news"]

        after = client.get("/api/blogs")
        assert after.headers["X-Cache-Status"] == "MISS"
        assert blog["id"] in {b["id"] for b in after.json()["data"]["blogs"]}

    def test_create_requires_title_and_content(self, client, seeded):
        response = client.post("/api/blogs", json={"title": "No body"}, headers=ALICE)
        assert response.status_code == 422

    def test_writes_require_a_user(self, client, seeded):
        assert client.post("/api/blogs", json={"title": "t", "content": "c"}).status_code == 401
        assert client.post("/api/blogs/b1/like").status_code == 401

    def test_like_purges_item_but_not_lists(self, client, seeded):
        client.get("/api/blogs")
        client.get("/api/blogs/b1")

        liked = client.post("/api/blogs/b1/like", headers=BOB)
        assert liked.json()["data"] == {"likesCount": 1, "isLiked": True}

        item = client.get("/api/blogs/b1")
        assert item.headers["X-Cache-Status"] == "MISS"
        assert item.json()["data"]["blog"]["likes_count"] == 1
        assert client.get("/api/blogs").headers["X-Cache-Status"] == "HIT"

    def test_like_toggles(self, client, seeded):
        client.post("/api/blogs/b1/like", headers=BOB)
        unliked = client.post("/api/blogs/b1/like", headers=BOB)
        assert unliked.json()["data"] == {"likesCount": 0, "isLiked": False}

    def test_comment_purges_item(self, client, seeded):
        client.get("/api/blogs/b1")

        created = client.post("/api/blogs/b1/comments", json={"content": "Nice"}, headers=BOB)
        assert created.status_code == 201

        item = client.get("/api/blogs/b1")
        assert item.headers["X-Cache-Status"] == "MISS"
        assert item.json()["data"]["blog"]["comments_count"] == 1

    def test_comment_length_validated(self, client, seeded):
        assert client.post("/api/blogs/b1/comments", json={"content": "  "}, headers=BOB).status_code == 422
        too_long = {"content": "x" * 1001}
        assert client.post("/api/blogs/b1/comments", json=too_long, headers=BOB).status_code == 422

    def test_update_requires_ownership(self, client, seeded):
        forbidden = client.put("/api/blogs/b1", json={"title": "Hijacked"}, headers=BOB)
        assert forbidden.status_code == 403

        client.get("/api/blogs/b1")
        updated = client.put("/api/blogs/b1", json={"title": "Renamed"}, headers=ALICE)
        assert updated.status_code == 200

        item = client.get("/api/blogs/b1")
        assert item.headers["X-Cache-Status"] == "MISS"
        assert item.json()["data"]["blog"]["title"] == "Renamed"

    def test_admin_deletes_any_post(self, client, seeded):
        client.get("/api/blogs")
        assert client.delete("/api/blogs/b2", headers=ADMIN).status_code == 200

        ids = {b["id"] for b in client.get("/api/blogs").json()["data"]["blogs"]}
        assert ids == {"b1"}
        assert client.get("/api/blogs/b2").status_code == 404


class TestTrending:

    @pytest.fixture
    def trending_store(self, store):
        store.add(id="A", published_at=recently(2), views=100)
        store.add(id="B", published_at=recently(1), likes=10, comments=5)
        store.add(id="C", published_at=recently(10), views=1000)
        return store

    def test_trending_ranking(self, client, trending_store):
        body = client.get("/api/blogs/trending").json()
        blogs = body["data"]["blogs"]

        assert [b["id"] for b in blogs] == ["B", "A"]
        assert [b["trendingScore"] for b in blogs] == [100, 100]
        assert body["data"]["timeframe"] == 7

    def test_trending_shared_by_all_requesters(self, client, trending_store):
        first = client.get("/api/blogs/trending")
        second = client.get("/api/blogs/trending", headers=ALICE)

        assert first.headers["X-Cache-Status"] == "MISS"
        assert second.headers["X-Cache-Status"] == "HIT"
        assert trending_store.calls["find_published_since"] == 1

    def test_trending_timeframe(self, client, trending_store):
        body = client.get("/api/blogs/trending", params={"timeframe": 30}).json()
        assert [b["id"] for b in body["data"]["blogs"]][0] == "C"

    def test_like_invalidates_trending(self, client, trending_store):
        client.get("/api/blogs/trending")
        client.post("/api/blogs/A/like", headers=BOB)

        after = client.get("/api/blogs/trending")
        assert after.headers["X-Cache-Status"] == "MISS"
        assert [b["id"] for b in after.json()["data"]["blogs"]] == ["A", "B"]

    def test_trending_store_failure(self, client, trending_store):
        trending_store.fail = True
        response = client.get("/api/blogs/trending")
        assert response.status_code == 500
        assert response.json()["success"] is False


class TestDegradedCache:

    def test_reads_and_writes_without_redis(self, client, seeded, fake_redis):
        fake_redis.fail = True

        first = client.get("/api/blogs")
        second = client.get("/api/blogs")
        assert first.status_code == second.status_code == 200
        assert second.headers["X-Cache-Status"] == "MISS"
        assert first.json() == second.json()
        assert seeded.calls["query"] == 2

        created = client.post("/api/blogs", json={"title": "t", "content": "c"}, headers=ALICE)
        assert created.status_code == 201

    def test_slow_redis_is_bypassed(self, client, seeded, fake_redis):
        fake_redis.delay = 0.2
        response = client.get("/api/blogs/b1")
        assert response.status_code == 200
        assert response.headers["X-Cache-Status"] == "MISS"

    def test_store_failure_is_an_error(self, client, seeded):
        seeded.fail = True
        assert client.get("/api/blogs").status_code == 500

    def test_cache_health(self, client, fake_redis):
        assert client.get("/health/cache").json()["status"] == "ok"

        fake_redis.fail = True
        body = client.get("/health/cache").json()
        assert body["status"] == "degraded"
        assert body["available"] is False


def test_trace_id_echoed(client):
    response = client.get("/health/", headers={"X-Trace-ID": "trace-42"})
    assert response.status_code == 200
    assert response.headers["X-Trace-ID"] == "trace-42"
