"""
Article endpoint tests — covers the CRUD lifecycle, slug generation,
filters and pagination, the feed, favorites and authorship checks.

Each test creates the users and articles it needs via the API so test
order does not matter.
"""
import pytest
from httpx import AsyncClient


def _auth(user: dict) -> dict:
    return {"Authorization": f"Bearer {user['token']}"}


async def _create_article(
    client: AsyncClient,
    user: dict,
    title: str,
    tags: list[str] | None = None,
    body: str = "Article body",
) -> dict:
    resp = await client.post("/api/articles", headers=_auth(user), json={"article": {
        "title": title,
        "description": f"About {title}",
        "body": body,
        "tagList": tags or [],
    }})
    assert resp.status_code == 201, resp.text
    return resp.json()["article"]


# ---------------------------------------------------------------------------
# Infrastructure / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# Create + get
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_get_article(async_client: AsyncClient, register):
    """Creating an article and fetching it by slug returns consistent data."""
    jake = await register("jake")
    article = await _create_article(async_client, jake, "How to train your dragon", ["dragons", "training"])
    assert article["slug"] == "how-to-train-your-dragon"
    assert article["tagList"] == ["dragons", "training"]
    assert article["favorited"] is False
    assert article["favoritesCount"] == 0
    assert article["author"] == {"username": "jake", "bio": None, "image": None, "following": False}
    assert article["createdAt"].endswith("Z")

    resp = await async_client.get(f"/api/articles/{article['slug']}")
    assert resp.status_code == 200
    fetched = resp.json()["article"]
    assert fetched["title"] == "How to train your dragon"
    assert fetched["description"] == "About How to train your dragon"
    assert fetched["body"] == "Article body"
    assert fetched["tagList"] == ["dragons", "training"]


@pytest.mark.asyncio
async def test_create_article_requires_auth(async_client: AsyncClient):
    resp = await async_client.post("/api/articles", json={"article": {
        "title": "Anonymous", "description": "d", "body": "b",
    }})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_article_missing_body(async_client: AsyncClient, register):
    user = await register("nobody")
    resp = await async_client.post("/api/articles", headers=_auth(user), json={"article": {
        "title": "No body",
    }})
    assert resp.status_code == 422
    assert "body" in resp.json()["errors"]


@pytest.mark.asyncio
async def test_hello_world_slug(async_client: AsyncClient, register):
    user = await register("greeter")
    article = await _create_article(async_client, user, "Hello World")
    assert article["slug"] == "hello-world"


@pytest.mark.asyncio
async def test_duplicate_title_gets_distinct_slug(async_client: AsyncClient, register):
    user = await register("twin")
    first = await _create_article(async_client, user, "Hello World")
    second = await _create_article(async_client, user, "Hello World")
    third = await _create_article(async_client, user, "Hello World")
    assert first["slug"] == "hello-world"
    assert second["slug"] == "hello-world-2"
    assert third["slug"] == "hello-world-3"


@pytest.mark.asyncio
async def test_slug_is_url_safe(async_client: AsyncClient, register):
    user = await register("slugger")
    article = await _create_article(async_client, user, "Hello, World! This is a Test.")
    slug = article["slug"]
    assert slug == "hello-world-this-is-a-test"


@pytest.mark.asyncio
async def test_duplicate_tags_collapsed(async_client: AsyncClient, register):
    user = await register("tagdup")
    article = await _create_article(async_client, user, "Tags", [" python ", "python", ""])
    assert article["tagList"] == ["python"]


@pytest.mark.asyncio
async def test_title_matching_fixed_route_gets_fetchable_slug(async_client: AsyncClient, register):
    """A title slugifying to "feed" must not be shadowed by /api/articles/feed."""
    user = await register("feeder")
    article = await _create_article(async_client, user, "Feed")
    assert article["slug"] == "feed-2"

    resp = await async_client.get(f"/api/articles/{article['slug']}")
    assert resp.status_code == 200
    assert resp.json()["article"]["title"] == "Feed"


@pytest.mark.asyncio
async def test_overlong_tag_rejected(async_client: AsyncClient, register):
    user = await register("longtag")
    resp = await async_client.post("/api/articles", headers=_auth(user), json={"article": {
        "title": "Long tag", "description": "d", "body": "b", "tagList": ["x" * 101],
    }})
    assert resp.status_code == 422
    assert "tagList" in resp.json()["errors"]

    article = await _create_article(async_client, user, "Widest tag", ["x" * 100])
    assert article["tagList"] == ["x" * 100]

    resp = await async_client.put(
        f"/api/articles/{article['slug']}",
        headers=_auth(user),
        json={"article": {"tagList": ["y" * 101]}},
    )
    assert resp.status_code == 422
    assert "tagList" in resp.json()["errors"]


@pytest.mark.asyncio
async def test_get_unknown_article(async_client: AsyncClient):
    resp = await async_client.get("/api/articles/no-such-article")
    assert resp.status_code == 404
    assert resp.json() == {"errors": {"article": ["not found"]}}


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_title_regenerates_slug(async_client: AsyncClient, register):
    user = await register("editor")
    article = await _create_article(async_client, user, "Original Title")
    resp = await async_client.put(
        f"/api/articles/{article['slug']}",
        headers=_auth(user),
        json={"article": {"title": "Updated Title", "body": "Updated body"}},
    )
    assert resp.status_code == 200
    updated = resp.json()["article"]
    assert updated["slug"] == "updated-title"
    assert updated["title"] == "Updated Title"
    assert updated["body"] == "Updated body"
    assert updated["description"] == "About Original Title"

    assert (await async_client.get("/api/articles/original-title")).status_code == 404


@pytest.mark.asyncio
async def test_update_without_title_keeps_slug(async_client: AsyncClient, register):
    user = await register("keepslug")
    await _create_article(async_client, user, "Stable")
    resp = await async_client.put(
        "/api/articles/stable",
        headers=_auth(user),
        json={"article": {"description": "new description"}},
    )
    assert resp.status_code == 200
    assert resp.json()["article"]["slug"] == "stable"


@pytest.mark.asyncio
async def test_update_same_title_keeps_slug(async_client: AsyncClient, register):
    """Re-submitting the unchanged title must not add a collision suffix."""
    user = await register("sametitle")
    await _create_article(async_client, user, "Same Title")
    resp = await async_client.put(
        "/api/articles/same-title",
        headers=_auth(user),
        json={"article": {"title": "Same Title"}},
    )
    assert resp.status_code == 200
    assert resp.json()["article"]["slug"] == "same-title"


@pytest.mark.asyncio
async def test_update_title_colliding_with_other_article(async_client: AsyncClient, register):
    user = await register("collider")
    await _create_article(async_client, user, "First Article")
    await _create_article(async_client, user, "Second Article")
    resp = await async_client.put(
        "/api/articles/second-article",
        headers=_auth(user),
        json={"article": {"title": "First Article"}},
    )
    assert resp.status_code == 200
    assert resp.json()["article"]["slug"] == "first-article-2"


@pytest.mark.asyncio
async def test_update_title_to_fixed_route_name(async_client: AsyncClient, register):
    user = await register("renamer")
    await _create_article(async_client, user, "Soon Renamed")
    resp = await async_client.put(
        "/api/articles/soon-renamed",
        headers=_auth(user),
        json={"article": {"title": "Feed"}},
    )
    assert resp.status_code == 200
    slug = resp.json()["article"]["slug"]
    assert slug == "feed-2"
    assert (await async_client.get(f"/api/articles/{slug}")).status_code == 200


@pytest.mark.asyncio
async def test_update_replaces_tags(async_client: AsyncClient, register):
    user = await register("retagger")
    await _create_article(async_client, user, "Retag", ["old-tag"])
    resp = await async_client.put(
        "/api/articles/retag",
        headers=_auth(user),
        json={"article": {"tagList": ["new-b", "new-a"]}},
    )
    assert resp.status_code == 200
    assert resp.json()["article"]["tagList"] == ["new-a", "new-b"]


@pytest.mark.asyncio
async def test_update_by_non_author_forbidden(async_client: AsyncClient, register):
    owner = await register("owner")
    intruder = await register("intruder")
    await _create_article(async_client, owner, "Mine")
    resp = await async_client.put(
        "/api/articles/mine",
        headers=_auth(intruder),
        json={"article": {"title": "Yours now"}},
    )
    assert resp.status_code == 403
    assert resp.json() == {"errors": {"article": ["forbidden"]}}


@pytest.mark.asyncio
async def test_update_unknown_article(async_client: AsyncClient, register):
    user = await register("ghostwriter")
    resp = await async_client.put(
        "/api/articles/ghost",
        headers=_auth(user),
        json={"article": {"title": "Ghost"}},
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_article(async_client: AsyncClient, register):
    user = await register("deleter")
    await _create_article(async_client, user, "To Delete")
    resp = await async_client.delete("/api/articles/to-delete", headers=_auth(user))
    assert resp.status_code == 204
    assert (await async_client.get("/api/articles/to-delete")).status_code == 404


@pytest.mark.asyncio
async def test_delete_by_non_author_forbidden(async_client: AsyncClient, register):
    owner = await register("keeper")
    other = await register("vandal")
    await _create_article(async_client, owner, "Keep Me")
    resp = await async_client.delete("/api/articles/keep-me", headers=_auth(other))
    assert resp.status_code == 403
    assert (await async_client.get("/api/articles/keep-me")).status_code == 200


@pytest.mark.asyncio
async def test_delete_requires_auth(async_client: AsyncClient, register):
    owner = await register("anonymous_target")
    await _create_article(async_client, owner, "Target")
    resp = await async_client.delete("/api/articles/target")
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Listing, filters, pagination
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/articles")
    assert resp.status_code == 200
    assert resp.json() == {"articles": [], "articlesCount": 0}


@pytest.mark.asyncio
async def test_list_articles_newest_first(async_client: AsyncClient, register):
    user = await register("chronicler")
    for title in ("One", "Two", "Three"):
        await _create_article(async_client, user, title)
    resp = await async_client.get("/api/articles")
    titles = [a["title"] for a in resp.json()["articles"]]
    assert titles == ["Three", "Two", "One"]


@pytest.mark.asyncio
async def test_filter_by_tag(async_client: AsyncClient, register):
    user = await register("tagger")
    await _create_article(async_client, user, "Dragon A", ["dragons"])
    await _create_article(async_client, user, "Dragon B", ["dragons", "fire"])
    await _create_article(async_client, user, "Cats", ["cats"])

    resp = await async_client.get("/api/articles", params={"tag": "dragons"})
    data = resp.json()
    assert data["articlesCount"] == 2
    assert all("dragons" in a["tagList"] for a in data["articles"])


@pytest.mark.asyncio
async def test_filter_by_tag_with_pagination(async_client: AsyncClient, register):
    """limit caps the page; articlesCount is the filtered total."""
    user = await register("pager")
    for i in range(3):
        await _create_article(async_client, user, f"Dragon {i}", ["dragons"])
    await _create_article(async_client, user, "Not a dragon", ["other"])

    resp = await async_client.get("/api/articles", params={"tag": "dragons", "limit": 2, "offset": 0})
    data = resp.json()
    assert len(data["articles"]) == 2
    assert data["articlesCount"] == 3

    resp = await async_client.get("/api/articles", params={"tag": "dragons", "limit": 2, "offset": 2})
    data = resp.json()
    assert len(data["articles"]) == 1
    assert data["articlesCount"] == 3


@pytest.mark.asyncio
async def test_filter_by_author(async_client: AsyncClient, register):
    alice = await register("alice")
    bob = await register("bob")
    await _create_article(async_client, alice, "By Alice")
    await _create_article(async_client, bob, "By Bob")

    resp = await async_client.get("/api/articles", params={"author": "alice"})
    data = resp.json()
    assert data["articlesCount"] == 1
    assert data["articles"][0]["author"]["username"] == "alice"


@pytest.mark.asyncio
async def test_filter_by_favorited(async_client: AsyncClient, register):
    author = await register("writer")
    fan = await register("fan")
    await _create_article(async_client, author, "Loved")
    await _create_article(async_client, author, "Ignored")
    await async_client.post("/api/articles/loved/favorite", headers=_auth(fan))

    resp = await async_client.get("/api/articles", params={"favorited": "fan"})
    data = resp.json()
    assert data["articlesCount"] == 1
    assert data["articles"][0]["slug"] == "loved"


@pytest.mark.asyncio
async def test_filters_are_conjunctive(async_client: AsyncClient, register):
    alice = await register("alice")
    bob = await register("bob")
    await _create_article(async_client, alice, "Alice Dragons", ["dragons"])
    await _create_article(async_client, alice, "Alice Cats", ["cats"])
    await _create_article(async_client, bob, "Bob Dragons", ["dragons"])

    resp = await async_client.get("/api/articles", params={"author": "alice", "tag": "dragons"})
    data = resp.json()
    assert data["articlesCount"] == 1
    assert data["articles"][0]["slug"] == "alice-dragons"


@pytest.mark.asyncio
async def test_limit_is_clamped(async_client: AsyncClient):
    resp = await async_client.get("/api/articles", params={"limit": 1000})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_negative_offset_rejected(async_client: AsyncClient):
    resp = await async_client.get("/api/articles", params={"offset": -1})
    assert resp.status_code == 422
    assert "offset" in resp.json()["errors"]


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_feed_shows_followed_authors_only(async_client: AsyncClient, register):
    reader = await register("reader")
    followed = await register("followed")
    stranger = await register("stranger")
    await _create_article(async_client, followed, "Followed Post")
    await _create_article(async_client, stranger, "Stranger Post")
    await async_client.post("/api/profiles/followed/follow", headers=_auth(reader))

    resp = await async_client.get("/api/articles/feed", headers=_auth(reader))
    assert resp.status_code == 200
    data = resp.json()
    assert data["articlesCount"] == 1
    article = data["articles"][0]
    assert article["slug"] == "followed-post"
    assert article["author"]["following"] is True


@pytest.mark.asyncio
async def test_feed_requires_auth(async_client: AsyncClient):
    resp = await async_client.get("/api/articles/feed")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_feed_empty_without_follows(async_client: AsyncClient, register):
    loner = await register("loner")
    resp = await async_client.get("/api/articles/feed", headers=_auth(loner))
    assert resp.json() == {"articles": [], "articlesCount": 0}


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_favorite_and_unfavorite(async_client: AsyncClient, register):
    author = await register("author")
    fan = await register("fan")
    await _create_article(async_client, author, "Favorite Me")

    resp = await async_client.post("/api/articles/favorite-me/favorite", headers=_auth(fan))
    assert resp.status_code == 200
    article = resp.json()["article"]
    assert article["favorited"] is True
    assert article["favoritesCount"] == 1

    # The flag is relative to the caller.
    as_author = await async_client.get("/api/articles/favorite-me", headers=_auth(author))
    assert as_author.json()["article"]["favorited"] is False
    assert as_author.json()["article"]["favoritesCount"] == 1

    resp = await async_client.delete("/api/articles/favorite-me/favorite", headers=_auth(fan))
    assert resp.status_code == 200
    article = resp.json()["article"]
    assert article["favorited"] is False
    assert article["favoritesCount"] == 0


@pytest.mark.asyncio
async def test_favorite_twice_is_idempotent(async_client: AsyncClient, register):
    author = await register("author")
    fan = await register("fan")
    await _create_article(async_client, author, "Twice")

    for _ in range(2):
        resp = await async_client.post("/api/articles/twice/favorite", headers=_auth(fan))
        assert resp.status_code == 200
    assert resp.json()["article"]["favoritesCount"] == 1


@pytest.mark.asyncio
async def test_unfavorite_without_favorite_is_noop(async_client: AsyncClient, register):
    author = await register("author")
    await _create_article(async_client, author, "Never Liked")
    resp = await async_client.delete("/api/articles/never-liked/favorite", headers=_auth(author))
    assert resp.status_code == 200
    assert resp.json()["article"]["favorited"] is False


@pytest.mark.asyncio
async def test_favorite_unknown_article(async_client: AsyncClient, register):
    fan = await register("fan")
    resp = await async_client.post("/api/articles/nothing/favorite", headers=_auth(fan))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_favorite_requires_auth(async_client: AsyncClient, register):
    author = await register("author")
    await _create_article(async_client, author, "Auth Needed")
    resp = await async_client.post("/api/articles/auth-needed/favorite")
    assert resp.status_code == 401
