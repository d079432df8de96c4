from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.container import Container
from app.database import get_db
from app.dependencies import ListParams, get_container, get_current_user, get_optional_user
from app.responses import ok
from app.schemas import CommentCreate
from app.security import TokenUser

router = APIRouter(prefix="/api/v1/articles/{article_id}/comments", tags=["comments"])


@router.get("")
async def list_comments(
    article_id: int,
    page: ListParams = Depends(),
    viewer: TokenUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok(
        await container.comments.list_comments(
            db, article_id, viewer, limit=page.limit, offset=page.offset
        )
    )


@router.post("", status_code=201)
async def add_comment(
    article_id: int,
    data: CommentCreate,
    author: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    return ok({"comment": await container.comments.add_comment(db, author, article_id, data)})


@router.delete("/{comment_id}")
async def delete_comment(
    article_id: int,
    comment_id: int,
    actor: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    container: Container = Depends(get_container),
):
    await container.comments.delete_comment(db, actor, article_id, comment_id)
    return ok()
