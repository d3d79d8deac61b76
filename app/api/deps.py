"""
FastAPI Dependencies

Database session, the business clock, the engine's outbound
collaborators, and the shared-key check for the status-update webhook.

SECURITY NOTES:
- API keys are never logged
- Keys are compared in constant time
"""

import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import UnauthorizedError
from app.services.reconciliation.clock import Clock
from app.services.reconciliation.eligibility import EligibilityChecker, HttpEligibilityChecker
from app.services.reconciliation.notifications import NotificationSink, WebhookNotificationSink

logger = logging.getLogger(__name__)


def get_clock() -> Clock:
    return Clock()


def get_notification_sink() -> NotificationSink:
    return WebhookNotificationSink.from_settings()


async def get_eligibility_checker(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> EligibilityChecker:
    return HttpEligibilityChecker.from_settings(db)


def resolve_acting_user(api_key: Optional[str], agent_user_id: Optional[str] = None) -> str:
    """
    Check the webhook's shared key and return the user id to record on changes.

    A key that does not match API_KEY is rejected. A missing key is allowed
    (manual testing from the GET variant) and acts as AGENT_USER_ID.
    """
    if api_key:
        if not settings.API_KEY or not secrets.compare_digest(api_key, settings.API_KEY):
            logger.warning("Status update rejected: invalid API key")
            raise UnauthorizedError("Invalid API key")
        return agent_user_id or settings.AGENT_USER_ID

    logger.info("Status update without API key, acting as default agent user")
    return settings.AGENT_USER_ID


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
BusinessClock = Annotated[Clock, Depends(get_clock)]
Notifier = Annotated[NotificationSink, Depends(get_notification_sink)]
Eligibility = Annotated[EligibilityChecker, Depends(get_eligibility_checker)]
