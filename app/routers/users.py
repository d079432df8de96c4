from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import get_container, get_current_user
from app.responses import ok
from app.schemas import UserUpdate
from app.security import TokenUser

router = APIRouter(prefix="/api/v1/user", tags=["user"])


@router.get("")
async def get_current(
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.users.get_current(db, user.id))


@router.put("")
async def update_current(
    data: UserUpdate,
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.users.update_current(db, user.id, data))


@router.post("/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    # Read one byte past the limit so oversized uploads are rejected
    # without buffering the whole body.
    content = await file.read(container.settings.MAX_AVATAR_BYTES + 1)
    return ok(
        await container.users.upload_avatar(
            db, user.id, content, file.filename or "avatar", file.content_type
        )
    )
