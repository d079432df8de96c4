from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import EmailLog
from app.repositories import interfaces


class SqlEmailLogRepository(interfaces.EmailLogRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields) -> EmailLog:
        log = EmailLog(**fields)
        self._session.add(log)
        await self._session.flush()
        return log

    async def list_for_job(self, job_id: str) -> list[EmailLog]:
        stmt = select(EmailLog).where(EmailLog.job_id == job_id).order_by(EmailLog.id)
        return list((await self._session.execute(stmt)).scalars().all())
