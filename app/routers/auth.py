from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import get_container
from app.responses import ok
from app.schemas import LoginRequest, RefreshRequest, RegisterRequest

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.auth.register(db, data))


@router.post("/login")
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.auth.login(db, data))


@router.post("/refresh")
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(await container.auth.refresh(db, data.refresh_token))
