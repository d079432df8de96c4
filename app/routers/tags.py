from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import get_container, get_optional_user
from app.responses import ok
from app.security import TokenUser

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.get("")
async def list_tags(
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.tags.list_tags(db))


@router.get("/{slug}")
async def get_tag(
    slug: str,
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.tags.get_tag(db, slug, viewer))
