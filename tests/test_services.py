"""
Direct service-layer tests: business logic exercised without HTTP overhead.

Services are taken from the per-test container and called with a live
session, which gives precise coverage of the repository query paths, the
cache-aside logic and the ownership rules.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import commit
from app.exceptions import ForbiddenError, NotFoundError
from app.models import Article
from app.schemas import ArticleCreate, ArticleUpdate, CommentCreate, RegisterRequest
from app.security import TokenUser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _register(container, db: AsyncSession, username: str) -> TokenUser:
    data = await container.auth.register(db, RegisterRequest(
        email=f"{username}@example.com",
        username=username,
        password="Password1",
        confirm_password="Password1",
    ))
    await commit(db)
    user = data["user"]
    return TokenUser(
        id=user["id"], email=user["email"], username=user["username"],
        role=user["role"], is_active=True,
    )


def _admin(user: TokenUser) -> TokenUser:
    return TokenUser(
        id=user.id, email=user.email, username=user.username, role="ADMIN", is_active=True
    )


async def _create(container, db: AsyncSession, author: TokenUser, **overrides) -> dict:
    payload = {"title": "Service Article", "description": "d", "body": "b"}
    payload.update(overrides)
    article = await container.articles.create_article(db, author, ArticleCreate(**payload))
    await commit(db)
    return article


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_empty(container, db_session: AsyncSession):
    page = await container.articles.list_articles(db_session, None, limit=20, offset=0)
    assert page == {"articles": [], "articles_count": 0, "limit": 20, "offset": 0}


@pytest.mark.asyncio
async def test_create_and_get_article(container, db_session: AsyncSession):
    author = await _register(container, db_session, "svc_author")
    created = await _create(container, db_session, author, tag_list=["python", "fastapi"])

    assert created["slug"] == "service-article"
    assert created["tag_list"] == ["fastapi", "python"]
    assert created["author"]["username"] == "svc_author"

    fetched = await container.articles.get_article(db_session, "service-article", None)
    assert fetched["body"] == "b"
    assert fetched["favorited"] is False


@pytest.mark.asyncio
async def test_draft_visible_to_author_and_admin_only(container, db_session: AsyncSession):
    author = await _register(container, db_session, "drafter")
    reader = await _register(container, db_session, "reader")
    draft = await _create(container, db_session, author, title="Secret Plan", is_published=False)

    assert (await container.articles.get_article(db_session, draft["slug"], author))["id"] == draft["id"]
    assert (await container.articles.get_article(db_session, draft["slug"], _admin(reader)))["id"] == draft["id"]
    for viewer in (None, reader):
        with pytest.raises(NotFoundError):
            await container.articles.get_article(db_session, draft["slug"], viewer)


@pytest.mark.asyncio
async def test_update_by_other_user_forbidden(container, db_session: AsyncSession):
    author = await _register(container, db_session, "owner")
    other = await _register(container, db_session, "intruder")
    article = await _create(container, db_session, author)

    with pytest.raises(ForbiddenError):
        await container.articles.update_article(
            db_session, other, article["id"], ArticleUpdate(body="vandalised")
        )


@pytest.mark.asyncio
async def test_update_keeps_slug_when_only_case_changes(container, db_session: AsyncSession):
    author = await _register(container, db_session, "stable")
    article = await _create(container, db_session, author, title="Stable Title")

    updated = await container.articles.update_article(
        db_session, author, article["id"], ArticleUpdate(title="STABLE title!")
    )
    assert updated["slug"] == "stable-title"
    assert updated["title"] == "STABLE title!"


@pytest.mark.asyncio
async def test_set_slug_if_free_keeps_transaction_usable(container, db_session: AsyncSession):
    author = await _register(container, db_session, "slugger")
    taken = await _create(container, db_session, author, title="Taken")
    mine = await _create(container, db_session, author, title="Mine")
    articles = container.repos.articles(db_session)

    await articles.update(await articles.get_by_id(mine["id"]), description="edited")
    assert await articles.set_slug_if_free(mine["id"], taken["slug"]) is False
    assert await articles.set_slug_if_free(mine["id"], "mine-2") is True
    await commit(db_session)

    article = await articles.get_by_id(mine["id"])
    assert (article.slug, article.description) == ("mine-2", "edited")


@pytest.mark.asyncio
async def test_delete_missing_article_raises(container, db_session: AsyncSession):
    user = await _register(container, db_session, "deleter")
    with pytest.raises(NotFoundError):
        await container.articles.delete_article(db_session, user, 12345)


# ---------------------------------------------------------------------------
# Comments and counters
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_comment_counter_follows_rows(container, db_session: AsyncSession):
    author = await _register(container, db_session, "counted")
    article = await _create(container, db_session, author)

    first = await container.comments.add_comment(db_session, author, article["id"], CommentCreate(body="one"))
    await container.comments.add_comment(db_session, author, article["id"], CommentCreate(body="two"))
    await container.comments.delete_comment(db_session, author, article["id"], first["id"])
    await commit(db_session)

    count = (
        await db_session.execute(select(Article.comments_count).where(Article.id == article["id"]))
    ).scalar_one()
    assert count == 1

    page = await container.comments.list_comments(db_session, article["id"], None, limit=20, offset=0)
    assert page["total"] == 1
    assert [c["body"] for c in page["comments"]] == ["two"]


# ---------------------------------------------------------------------------
# Favorites, follows, tags
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_favorite_overlay_on_list(container, db_session: AsyncSession):
    author = await _register(container, db_session, "listed")
    fan = await _register(container, db_session, "lister")
    article = await _create(container, db_session, author)

    await container.favorites.favorite(db_session, fan, article["id"])
    await commit(db_session)

    as_fan = await container.articles.list_articles(db_session, fan, limit=20, offset=0)
    anonymous = await container.articles.list_articles(db_session, None, limit=20, offset=0)
    assert as_fan["articles"][0]["favorited"] is True
    assert as_fan["articles"][0]["favorites_count"] == 1
    assert anonymous["articles"][0]["favorited"] is False


@pytest.mark.asyncio
async def test_feed_contains_followed_authors_only(container, db_session: AsyncSession):
    followed = await _register(container, db_session, "followed")
    ignored = await _register(container, db_session, "ignored")
    reader = await _register(container, db_session, "feedreader")
    await _create(container, db_session, followed, title="Followed Post")
    await _create(container, db_session, ignored, title="Ignored Post")
    await _create(container, db_session, followed, title="Followed Draft", is_published=False)

    await container.follows.follow(db_session, reader, "followed")
    await commit(db_session)

    feed = await container.articles.feed(db_session, reader, limit=20, offset=0)
    assert [a["title"] for a in feed["articles"]] == ["Followed Post"]
    assert feed["articles_count"] == 1
    assert feed["articles"][0]["author"]["following"] is True


@pytest.mark.asyncio
async def test_tag_service_counts(container, db_session: AsyncSession):
    author = await _register(container, db_session, "tagsvc")
    await _create(container, db_session, author, title="A", tag_list=["alpha"])
    await _create(container, db_session, author, title="B", tag_list=["alpha", "beta"])

    tags = (await container.tags.list_tags(db_session))["tags"]
    assert [(t["name"], t["articles_count"]) for t in tags] == [("alpha", 2), ("beta", 1)]

    detail = await container.tags.get_tag(db_session, "beta", None)
    assert [a["title"] for a in detail["articles"]] == ["B"]
