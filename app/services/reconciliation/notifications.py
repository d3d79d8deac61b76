"""
Outbound notifications triggered by reconciliation.

Events:
    loan_rejected        - a row carried code R
    appointment_created  - the engine booked an appointment for today
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from app.config import settings
from app.services.reconciliation.errors import NotifyError

logger = logging.getLogger(__name__)

LOAN_REJECTED = "loan_rejected"
APPOINTMENT_CREATED = "appointment_created"


class NotificationSink(Protocol):
    async def send(self, event: str, payload: dict[str, Any]) -> bool:
        """Deliver one event. Returns False when nothing is configured for it; raises NotifyError on failure."""
        ...


class WebhookNotificationSink:
    """Posts each event as JSON to its configured webhook URL."""

    def __init__(self, routes: dict[str, Optional[str]], timeout: float = 10):
        self.routes = routes
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "WebhookNotificationSink":
        return cls(
            {
                LOAN_REJECTED: settings.REJECTION_WEBHOOK_URL,
                APPOINTMENT_CREATED: settings.APPOINTMENT_WEBHOOK_URL,
            },
            timeout=settings.EXTERNAL_TIMEOUT_SECONDS,
        )

    def is_configured(self, event: str) -> bool:
        return bool(self.routes.get(event))

    async def send(self, event: str, payload: dict[str, Any]) -> bool:
        if not self.is_configured(event):
            logger.debug(f"No webhook configured for {event}, skipping")
            return False

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.routes[event],
                    json={"event": event, **payload},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"{event} webhook failed: {e}")
            raise NotifyError(f"{event} webhook failed: {type(e).__name__}")

        logger.info(f"{event} webhook sent")
        return True
