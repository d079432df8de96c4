"""
Serialisation helpers shared by the services.

Everything produced here is viewer-independent so it can be cached as is.
Per-viewer flags (``favorited``, ``following``) are overlaid afterwards by
``apply_article_flags`` / ``apply_following_flags`` with one batched query
each.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Article, Comment, Tag, User
from app.repositories import Repositories
from app.security import TokenUser


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _role(user: User) -> str:
    return getattr(user.role, "value", user.role)


def author_to_dict(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "bio": user.bio,
        "avatar": user.avatar,
        "following": False,
    }


def profile_to_dict(user: User, articles_count: int | None = None) -> dict:
    data = {
        "id": user.id,
        "username": user.username,
        "bio": user.bio,
        "avatar": user.avatar,
        "followers_count": user.followers_count,
        "following_count": user.following_count,
        "created_at": _iso(user.created_at),
        "following": False,
    }
    if articles_count is not None:
        data["articles_count"] = articles_count
    return data


def user_to_dict(user: User) -> dict:
    """Private view of the authenticated user's own account."""
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "bio": user.bio,
        "avatar": user.avatar,
        "role": _role(user),
        "is_active": user.is_active,
        "followers_count": user.followers_count,
        "following_count": user.following_count,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def article_to_dict(article: Article, include_body: bool = True) -> dict:
    data = {
        "id": article.id,
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "tag_list": sorted(tag.name for tag in article.tags),
        "is_published": article.is_published,
        "favorites_count": article.favorites_count,
        "comments_count": article.comments_count,
        "created_at": _iso(article.created_at),
        "updated_at": _iso(article.updated_at),
        "author": author_to_dict(article.author),
        "favorited": False,
    }
    if include_body:
        data["body"] = article.body
    return data


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "article_id": comment.article_id,
        "created_at": _iso(comment.created_at),
        "author": author_to_dict(comment.author),
    }


def tag_to_dict(tag: Tag, articles_count: int | None = None) -> dict:
    data = {"name": tag.name, "slug": tag.slug}
    if articles_count is not None:
        data["articles_count"] = articles_count
    return data


# ---------------------------------------------------------------------------
# Viewer overlays
# ---------------------------------------------------------------------------

async def apply_following_flags(
    db: AsyncSession, repos: Repositories, viewer: TokenUser | None, people: list[dict]
) -> list[dict]:
    """Set ``following`` on each author/profile dict in *people*."""
    people = [p for p in people if p is not None]
    if viewer is None or not people:
        return people
    followed = await repos.follows(db).following_ids(viewer.id, list({p["id"] for p in people}))
    for person in people:
        person["following"] = person["id"] in followed
    return people


async def apply_article_flags(
    db: AsyncSession, repos: Repositories, viewer: TokenUser | None, articles: list[dict]
) -> list[dict]:
    if viewer is None or not articles:
        return articles
    favorited = await repos.favorites(db).favorited_ids(viewer.id, [a["id"] for a in articles])
    for article in articles:
        article["favorited"] = article["id"] in favorited
    await apply_following_flags(db, repos, viewer, [a["author"] for a in articles])
    return articles
