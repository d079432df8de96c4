import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.models import EmailStatus
from app.notifications import templates
from app.notifications.providers import EmailMessage, MailDeliveryError, MailProvider
from app.repositories import Repositories

logger = logging.getLogger(__name__)


class MailService:
    """
    Renders a notification and hands it to the configured provider.

    Every attempt leaves an ``EmailLog`` row.  A failure to write that row
    is logged and never masks the delivery outcome.
    """

    def __init__(self, provider: MailProvider, repos: Repositories, settings: Settings) -> None:
        self._provider = provider
        self._repos = repos
        self._settings = settings

    async def send_email(self, db: AsyncSession, payload: dict, job_id: str | None = None) -> bool:
        """
        Deliver the email described by *payload* (``to``, ``subject``,
        ``template``, ``variables``).

        Returns False when sending is disabled by configuration.  Raises
        ``MailDeliveryError`` when the provider fails so the queue can retry.
        """
        to = payload["to"]
        subject = payload["subject"]
        template = payload["template"]

        if not self._settings.MAIL_ENABLED:
            logger.info("Mail sending disabled, job %s left pending", job_id)
            await self._log(db, to, template, subject, job_id, EmailStatus.PENDING)
            return False

        html_body, text_body = templates.render(template, payload.get("variables", {}))
        message = EmailMessage(to=to, subject=subject, html=html_body, text=text_body)
        try:
            result = await self._provider.send(message)
        except MailDeliveryError as exc:
            await self._log(db, to, template, subject, job_id, EmailStatus.FAILED, str(exc))
            raise

        logger.info(
            "Email %s delivered via %s (job=%s, message_id=%s)",
            template, result.provider, job_id, result.message_id,
        )
        await self._log(db, to, template, subject, job_id, EmailStatus.SENT)
        return True

    async def _log(
        self,
        db: AsyncSession,
        to: str,
        template: str,
        subject: str,
        job_id: str | None,
        status: EmailStatus,
        error: str | None = None,
    ) -> None:
        try:
            await self._repos.email_logs(db).create(
                recipient=to,
                template=template,
                subject=subject,
                job_id=job_id,
                status=status,
                error=error,
            )
        except SQLAlchemyError:
            logger.exception("Failed to write email log for job %s", job_id)
