from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import ListParams, get_container, get_current_user, get_optional_user
from app.responses import ok
from app.security import TokenUser

router = APIRouter(prefix="/api/v1/profiles", tags=["profiles"])


@router.get("/{username}")
async def get_profile(
    username: str,
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok({"profile": await container.users.get_profile(db, username, viewer)})


@router.post("/{username}/follow")
async def follow(
    username: str,
    viewer: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.follows.follow(db, viewer, username))


@router.delete("/{username}/follow")
async def unfollow(
    username: str,
    viewer: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.follows.unfollow(db, viewer, username))


@router.get("/{username}/followers")
async def list_followers(
    username: str,
    page: ListParams = Depends(),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(
        await container.follows.list_followers(
            db, username, viewer, page.limit, page.offset, order
        )
    )


@router.get("/{username}/following")
async def list_following(
    username: str,
    page: ListParams = Depends(),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(
        await container.follows.list_following(
            db, username, viewer, page.limit, page.offset, order
        )
    )
