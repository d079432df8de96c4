from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import get_container, require_roles
from app.models import Role
from app.responses import ok
from app.schemas import MetricsResponse

router = APIRouter(
    prefix="/api/v1/metrics",
    tags=["metrics"],
    dependencies=[Depends(require_roles(Role.ADMIN))],
)

TOP_ARTICLES_LIMIT = 5


@router.get("")
async def get_metrics(
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    repos = container.repos
    total_articles = await repos.articles(db).count()
    total_comments = await repos.comments(db).count()
    total_users = await repos.users(db).count()

    avg_comments = total_comments / total_articles if total_articles > 0 else 0

    top_articles = [
        {"id": a.id, "slug": a.slug, "title": a.title, "favorites_count": a.favorites_count}
        for a in await repos.articles(db).top_by_favorites(TOP_ARTICLES_LIMIT)
    ]

    metrics = MetricsResponse(
        total_articles=total_articles,
        total_comments=total_comments,
        total_users=total_users,
        avg_comments_per_article=round(avg_comments, 2),
        top_articles=top_articles,
        cache_info=container.cache.stats,
    )
    return ok(metrics.model_dump())
