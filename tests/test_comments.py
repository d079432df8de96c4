"""
Comment endpoint tests: creation, listing, deletion and the
``comments_count`` counter that must track the rows exactly.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.cache import comments_key
from app.models import Article


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def _article(client: AsyncClient, token: str, **overrides) -> dict:
    payload = {"title": "Commented", "description": "d", "body": "b"}
    payload.update(overrides)
    resp = await client.post("/api/v1/articles", headers=_auth(token), json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["article"]


async def _comments_count(db_session, article_id: int) -> int:
    stmt = select(Article.comments_count).where(Article.id == article_id)
    return (await db_session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_add_comment(async_client: AsyncClient, register_user, db_session):
    user = await register_user("commenter")
    article = await _article(async_client, user["token"])

    resp = await async_client.post(
        f"/api/v1/articles/{article['id']}/comments",
        headers=_auth(user["token"]),
        json={"body": "  Great article!  "},
    )
    assert resp.status_code == 201
    comment = resp.json()["data"]["comment"]
    assert comment["body"] == "Great article!"
    assert comment["article_id"] == article["id"]
    assert comment["author"]["username"] == "commenter"
    assert await _comments_count(db_session, article["id"]) == 1


@pytest.mark.asyncio
async def test_add_comment_requires_auth(async_client: AsyncClient, register_user):
    user = await register_user("anon_target")
    article = await _article(async_client, user["token"])
    resp = await async_client.post(
        f"/api/v1/articles/{article['id']}/comments", json={"body": "hi"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_add_comment_to_missing_article_returns_404(async_client: AsyncClient, register_user):
    user = await register_user("lost")
    resp = await async_client.post(
        "/api/v1/articles/9999/comments", headers=_auth(user["token"]), json={"body": "hi"}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_add_comment_to_draft_returns_400(async_client: AsyncClient, register_user):
    user = await register_user("draftcomment")
    draft = await _article(async_client, user["token"], is_published=False)
    resp = await async_client.post(
        f"/api/v1/articles/{draft['id']}/comments", headers=_auth(user["token"]), json={"body": "hi"}
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "ARTICLE_NOT_PUBLISHED"


@pytest.mark.asyncio
async def test_blank_comment_rejected(async_client: AsyncClient, register_user):
    user = await register_user("blank")
    article = await _article(async_client, user["token"])
    resp = await async_client.post(
        f"/api/v1/articles/{article['id']}/comments", headers=_auth(user["token"]), json={"body": "   "}
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_list_comments_newest_first(async_client: AsyncClient, register_user):
    user = await register_user("chatty")
    article = await _article(async_client, user["token"])
    for i in range(3):
        await async_client.post(
            f"/api/v1/articles/{article['id']}/comments",
            headers=_auth(user["token"]),
            json={"body": f"Comment {i}"},
        )

    resp = await async_client.get(f"/api/v1/articles/{article['id']}/comments?limit=2")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 3
    assert [c["body"] for c in data["comments"]] == ["Comment 2", "Comment 1"]


@pytest.mark.asyncio
async def test_list_comments_following_flag(async_client: AsyncClient, register_user):
    author = await register_user("speaker")
    listener = await register_user("listener")
    article = await _article(async_client, author["token"])
    await async_client.post(
        f"/api/v1/articles/{article['id']}/comments", headers=_auth(author["token"]), json={"body": "hi"}
    )
    await async_client.post("/api/v1/profiles/speaker/follow", headers=_auth(listener["token"]))

    url = f"/api/v1/articles/{article['id']}/comments"
    anonymous = (await async_client.get(url)).json()["data"]["comments"][0]
    as_listener = (await async_client.get(url, headers=_auth(listener["token"]))).json()["data"]["comments"][0]
    assert anonymous["author"]["following"] is False
    assert as_listener["author"]["following"] is True


@pytest.mark.asyncio
async def test_comment_pages_cached_and_invalidated(async_client: AsyncClient, register_user, cache_backend):
    user = await register_user("pagecache")
    article = await _article(async_client, user["token"])
    url = f"/api/v1/articles/{article['id']}/comments"

    await async_client.get(url)
    assert comments_key(article["id"], 20, 0) in cache_backend.keys()

    await async_client.post(url, headers=_auth(user["token"]), json={"body": "new"})
    assert comments_key(article["id"], 20, 0) not in cache_backend.keys()

    data = (await async_client.get(url)).json()["data"]
    assert data["total"] == 1


@pytest.mark.asyncio
async def test_delete_comment_decrements_once(async_client: AsyncClient, register_user, db_session):
    user = await register_user("remover")
    article = await _article(async_client, user["token"])
    created = await async_client.post(
        f"/api/v1/articles/{article['id']}/comments", headers=_auth(user["token"]), json={"body": "bye"}
    )
    comment_id = created.json()["data"]["comment"]["id"]
    url = f"/api/v1/articles/{article['id']}/comments/{comment_id}"

    first = await async_client.delete(url, headers=_auth(user["token"]))
    assert first.status_code == 200
    assert first.json() == {"success": True, "data": None}
    assert await _comments_count(db_session, article["id"]) == 0

    second = await async_client.delete(url, headers=_auth(user["token"]))
    assert second.status_code == 404
    assert second.json()["error"]["code"] == "COMMENT_NOT_FOUND"
    assert await _comments_count(db_session, article["id"]) == 0


@pytest.mark.asyncio
async def test_delete_comment_by_other_user_forbidden(async_client: AsyncClient, register_user):
    author = await register_user("mine")
    other = await register_user("notmine")
    article = await _article(async_client, author["token"])
    created = await async_client.post(
        f"/api/v1/articles/{article['id']}/comments", headers=_auth(author["token"]), json={"body": "x"}
    )
    comment_id = created.json()["data"]["comment"]["id"]

    resp = await async_client.delete(
        f"/api/v1/articles/{article['id']}/comments/{comment_id}", headers=_auth(other["token"])
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_can_delete_any_comment(async_client: AsyncClient, register_user, make_admin, db_session):
    author = await register_user("spammer")
    admin = await register_user("janitor")
    admin_token = await make_admin(admin["user"]["id"], "janitor@example.com")
    article = await _article(async_client, author["token"])
    created = await async_client.post(
        f"/api/v1/articles/{article['id']}/comments", headers=_auth(author["token"]), json={"body": "spam"}
    )
    comment_id = created.json()["data"]["comment"]["id"]

    resp = await async_client.delete(
        f"/api/v1/articles/{article['id']}/comments/{comment_id}", headers=_auth(admin_token)
    )
    assert resp.status_code == 200
    assert await _comments_count(db_session, article["id"]) == 0


@pytest.mark.asyncio
async def test_delete_comment_under_wrong_article_returns_404(async_client: AsyncClient, register_user):
    user = await register_user("crossed")
    first = await _article(async_client, user["token"], title="One")
    second = await _article(async_client, user["token"], title="Two")
    created = await async_client.post(
        f"/api/v1/articles/{first['id']}/comments", headers=_auth(user["token"]), json={"body": "x"}
    )
    comment_id = created.json()["data"]["comment"]["id"]

    resp = await async_client.delete(
        f"/api/v1/articles/{second['id']}/comments/{comment_id}", headers=_auth(user["token"])
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unpublishing_drops_cached_comment_pages(async_client: AsyncClient, register_user, cache_backend):
    user = await register_user("retractor")
    article = await _article(async_client, user["token"])
    url = f"/api/v1/articles/{article['id']}/comments"
    await async_client.post(url, headers=_auth(user["token"]), json={"body": "early"})
    await async_client.get(url)
    assert comments_key(article["id"], 20, 0) in cache_backend.keys()

    resp = await async_client.put(
        f"/api/v1/articles/{article['id']}",
        headers=_auth(user["token"]),
        json={"is_published": False},
    )
    assert resp.status_code == 200
    assert comments_key(article["id"], 20, 0) not in cache_backend.keys()

    assert (await async_client.get(url)).status_code == 404
    own = await async_client.get(url, headers=_auth(user["token"]))
    assert own.json()["data"]["total"] == 1
