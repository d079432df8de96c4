"""
Mail delivery providers.

Both providers talk to the vendor REST API over httpx.  When credentials
are not configured they log the message and report a simulated delivery,
which keeps local development and CI free of vendor accounts.
"""
import logging
import uuid
from dataclasses import dataclass
from email.utils import parseaddr
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class SendResult:
    provider: str
    message_id: str
    simulated: bool = False


class MailProvider(Protocol):
    name: str

    async def send(self, message: EmailMessage) -> SendResult: ...


def _simulated(provider: str, message: EmailMessage) -> SendResult:
    logger.info("[%s] credentials not configured, simulating send: %s", provider, message.subject)
    return SendResult(provider=provider, message_id=f"simulated-{uuid.uuid4().hex}", simulated=True)


class MailgunProvider:
    name = "mailgun"

    def __init__(
        self,
        api_key: str | None,
        domain: str | None,
        sender: str,
        base_url: str = "https://api.mailgun.net/v3",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._domain = domain
        self._sender = sender
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    async def send(self, message: EmailMessage) -> SendResult:
        if not self._api_key or not self._domain:
            return _simulated(self.name, message)

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/{self._domain}/messages",
                    auth=("api", self._api_key),
                    data={
                        "from": self._sender,
                        "to": message.to,
                        "subject": message.subject,
                        "html": message.html,
                        "text": message.text,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MailDeliveryError(f"{self.name}: {exc}") from exc

        message_id = response.json().get("id", "")
        logger.info("[%s] email sent to recipient (id=%s)", self.name, message_id)
        return SendResult(provider=self.name, message_id=message_id)


class SendGridProvider:
    name = "sendgrid"
    endpoint = "https://api.sendgrid.com/v3/mail/send"

    def __init__(
        self,
        api_key: str | None,
        sender: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._transport = transport

    def _from_field(self) -> dict:
        name, address = parseaddr(self._sender)
        return {"email": address, "name": name} if name else {"email": address}

    async def send(self, message: EmailMessage) -> SendResult:
        if not self._api_key:
            return _simulated(self.name, message)

        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": self._from_field(),
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MailDeliveryError(f"{self.name}: {exc}") from exc

        message_id = response.headers.get("x-message-id", "")
        logger.info("[%s] email sent to recipient (id=%s)", self.name, message_id)
        return SendResult(provider=self.name, message_id=message_id)


def create_mail_provider(settings) -> MailProvider:
    if settings.MAIL_PROVIDER == "sendgrid":
        return SendGridProvider(settings.SENDGRID_API_KEY, settings.MAIL_FROM)
    if settings.MAIL_PROVIDER == "mailgun":
        return MailgunProvider(
            settings.MAILGUN_API_KEY,
            settings.MAILGUN_DOMAIN,
            settings.MAIL_FROM,
            settings.MAILGUN_BASE_URL,
        )
    raise ValueError(f"Unknown MAIL_PROVIDER: {settings.MAIL_PROVIDER!r}")
