"""
Outbound email.

The storage layer only needs a "send email" capability; delivery itself is
handled by a relay service that queues messages. ``HttpRelayEmailSender``
posts to the relay's ``/send-email`` endpoint, ``LoggingEmailSender`` just
logs (for demo installs without a relay).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import aiohttp

from .exceptions import DeliveryQueueError
from .schema import Record
from .settings import AppSettings, SettingsRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAINTENANCE_EMAIL = "maintenance@staysync.hotel"
DEFAULT_MANAGER_EMAIL = "manager@staysync.hotel"


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str

    def to_dict(self) -> dict[str, str]:
        return {"to": self.to, "subject": self.subject, "body": self.body}


class EmailSender(ABC):
    """Capability to hand an email to a delivery queue."""

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Queue one email.

        Raises:
            DeliveryQueueError: If the queue is unreachable or rejects the message
        """
        ...


class HttpRelayEmailSender(EmailSender):
    """Posts ``{"to", "subject", "body"}`` JSON to ``{api_base_url}/send-email``.

    Example:
        >>> sender = HttpRelayEmailSender("https://api.example.com", api_key="...")
        >>> await sender.send_email("guest@example.com", "Welcome", "Hello!")
    """

    def __init__(
        self,
        api_base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.api_base_url = api_base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._session = session

    @classmethod
    def from_settings(cls, settings: AppSettings) -> HttpRelayEmailSender:
        """Build a sender from the relay fields of the settings record.

        Raises:
            ValueError: If no relay URL is configured
        """
        if not settings.api_base_url:
            raise ValueError("api_base_url is not configured")
        return cls(settings.api_base_url, api_key=settings.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.api_base_url}/send-email"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def send_email(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage(to, subject, body)

        if self._session is not None:
            await self._post(self._session, message)
            return

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            await self._post(session, message)

    async def _post(self, session: aiohttp.ClientSession, message: EmailMessage) -> None:
        try:
            async with session.post(
                self.endpoint, json=message.to_dict(), headers=self._headers()
            ) as response:
                if response.status >= 300:
                    detail = await response.text()
                    raise DeliveryQueueError(
                        self.endpoint,
                        RuntimeError(detail[:200] or response.reason or "rejected"),
                        status=response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryQueueError(self.endpoint, e) from e

        logger.info(f"Email queued for {message.to}: {message.subject}")


class LoggingEmailSender(EmailSender):
    """Logs emails instead of sending them. Keeps a copy of each message."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send_email(self, to: str, subject: str, body: str) -> None:
        self.sent.append(EmailMessage(to, subject, body))
        logger.info(f"Email (not sent) to {to}: {subject}\n{body}")


class MaintenanceNotifier:
    """Composes maintenance ticket emails and routes them from settings.

    New requests go to the maintenance address, resolutions to the
    manager address.
    """

    def __init__(self, sender: EmailSender, settings: SettingsRegistry | None = None) -> None:
        self.sender = sender
        self.settings = settings

    def _recipients(self) -> tuple[str, str]:
        if self.settings is None:
            return DEFAULT_MAINTENANCE_EMAIL, DEFAULT_MANAGER_EMAIL
        current = self.settings.get_cached_settings()
        return (
            current.maintenance_email or DEFAULT_MAINTENANCE_EMAIL,
            current.manager_email or DEFAULT_MANAGER_EMAIL,
        )

    async def notify_new_request(self, ticket: Record) -> EmailMessage:
        to, _ = self._recipients()
        priority = str(ticket.get("priority", "medium"))
        message = EmailMessage(
            to=to,
            subject=f"[{priority.upper()}] New Issue in Room {ticket.get('roomNumber', '?')}",
            body=(
                f"Room: {ticket.get('roomNumber', '?')}\n"
                f"Priority: {priority}\n"
                f"Reported By: {ticket.get('reportedBy', 'unknown')}\n"
                f"Description:\n{ticket.get('description', '')}"
            ),
        )
        await self.sender.send_email(message.to, message.subject, message.body)
        return message

    async def notify_resolved(self, ticket: Record, cost: float, notes: str) -> EmailMessage:
        _, to = self._recipients()
        message = EmailMessage(
            to=to,
            subject=f"Ticket Resolved - Room {ticket.get('roomNumber', '?')}",
            body=(
                f"Ticket ID: {ticket.get('id')}\n"
                f"Total Cost: ${cost:.2f}\n"
                f"Resolution Notes:\n{notes}"
            ),
        )
        await self.sender.send_email(message.to, message.subject, message.body)
        return message
