"""
Eligibility check for engine-created leads.

A lead is eligible when its number is a Singapore mobile, no other live
lead already owns the number, and (when configured) the external
customer registry has no record of it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.lead import Lead
from app.models.statuses import LeadStatus
from app.services.reconciliation.errors import EligibilityCheckError
from app.services.reconciliation.phone_matcher import PhoneMatcher, mask_phone, normalize_phone

logger = logging.getLogger(__name__)

SG_MOBILE_PATTERN = re.compile(r"^[689]\d{7}$")


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    status: LeadStatus
    notes: str


def _ineligible(notes: str) -> EligibilityResult:
    return EligibilityResult(False, LeadStatus.unqualified, notes)


class EligibilityChecker(Protocol):
    async def check(self, lead: Lead) -> EligibilityResult:
        ...


class HttpEligibilityChecker:
    """Local rules plus an optional HTTP registry lookup."""

    def __init__(
        self,
        db: AsyncSession,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10,
    ):
        self.db = db
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, db: AsyncSession) -> "HttpEligibilityChecker":
        return cls(
            db,
            api_url=settings.ELIGIBILITY_API_URL,
            api_key=settings.ELIGIBILITY_API_KEY,
            timeout=settings.EXTERNAL_TIMEOUT_SECONDS,
        )

    async def check(self, lead: Lead) -> EligibilityResult:
        phone_key = normalize_phone(lead.phone_number)
        if not phone_key or not SG_MOBILE_PATTERN.match(phone_key):
            return _ineligible("Invalid Singapore mobile number")

        if await self._has_live_duplicate(phone_key, lead.id):
            return _ineligible("Duplicate: phone number already belongs to another lead")

        if self.api_url:
            names = await self._registry_matches(phone_key)
            if names:
                return _ineligible(f"Existing registry record: {', '.join(names)}")

        return EligibilityResult(True, LeadStatus.new, "Eligible")

    async def _has_live_duplicate(self, phone_key: str, lead_id: int) -> bool:
        other_ids = [i for i in await PhoneMatcher(self.db).find_lead_ids(phone_key) if i != lead_id]
        if not other_ids:
            return False
        result = await self.db.execute(
            select(Lead.id).where(Lead.id.in_(other_ids), Lead.status != LeadStatus.unqualified).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _registry_matches(self, phone_key: str) -> list[str]:
        headers = {"apikey": self.api_key} if self.api_key else {}
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.api_url,
                    json={"phone": phone_key},
                    headers=headers,
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Eligibility lookup failed for {mask_phone(phone_key)}: {e}")
            raise EligibilityCheckError(f"Eligibility service error: {type(e).__name__}")

        if isinstance(data, dict):
            data = data.get("data") or []
        return [str(name) for name in data if name]
