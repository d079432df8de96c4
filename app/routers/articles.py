from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import (
    ArticleFilters,
    ListParams,
    get_container,
    get_current_user,
    get_optional_user,
)
from app.responses import ok
from app.schemas import ArticleCreate, ArticleUpdate
from app.security import TokenUser

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("")
async def list_articles(
    page: ListParams = Depends(),
    filters: ArticleFilters = Depends(),
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(
        await container.articles.list_articles(
            db,
            viewer,
            limit=page.limit,
            offset=page.offset,
            tag=filters.tag,
            author=filters.author,
            favorited=filters.favorited,
            sort_by=filters.sort_by,
            order=filters.order,
        )
    )


# Declared before "/{slug}" so "feed" is not taken for a slug.
@router.get("/feed")
async def feed(
    page: ListParams = Depends(),
    viewer: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.articles.feed(db, viewer, limit=page.limit, offset=page.offset))


@router.get("/{slug}")
async def get_article(
    slug: str,
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok({"article": await container.articles.get_article(db, slug, viewer)})


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    author: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok({"article": await container.articles.create_article(db, author, data)})


@router.put("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    actor: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok({"article": await container.articles.update_article(db, actor, article_id, data)})


@router.delete("/{article_id}")
async def delete_article(
    article_id: int,
    actor: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    await container.articles.delete_article(db, actor, article_id)
    return ok()


@router.post("/{article_id}/favorite")
async def favorite_article(
    article_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.favorites.favorite(db, user, article_id))


@router.delete("/{article_id}/favorite")
async def unfavorite_article(
    article_id: int,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.favorites.unfavorite(db, user, article_id))
