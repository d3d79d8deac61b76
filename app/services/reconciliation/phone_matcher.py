"""
Phone normalization and lead/borrower lookup.

Stored numbers come in many shapes ("+65 9123 4567", "6591234567",
"9123-4567"); every comparison goes through normalize_phone on both sides.
"""

import logging
import re
from typing import Any, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.borrower import Borrower
from app.models.lead import Lead

logger = logging.getLogger(__name__)

SG_COUNTRY_CODE = "65"
LOCAL_NUMBER_LENGTH = 8


def normalize_phone(value: Any) -> Optional[str]:
    """Reduce a phone value to its 8-digit Singapore key, or None."""
    if value is None:
        return None
    # Spreadsheet connectors send numeric cells as floats
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    digits = re.sub(r"\D", "", str(value))
    if len(digits) == LOCAL_NUMBER_LENGTH + len(SG_COUNTRY_CODE) and digits.startswith(SG_COUNTRY_CODE):
        digits = digits[len(SG_COUNTRY_CODE):]
    return digits if len(digits) == LOCAL_NUMBER_LENGTH else None


def format_phone(key: str) -> str:
    """Storage format for engine-created records."""
    return f"+{SG_COUNTRY_CODE}{key}"


def mask_phone(value: Any) -> str:
    """Log-safe form: last four digits only."""
    digits = re.sub(r"\D", "", str(value or ""))
    return f"****{digits[-4:]}" if digits else "****"


class PhoneMatcher:
    """Read-only resolver from a phone key to the oldest matching lead or borrower."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_lead_id(self, phone_key: str, exclude_id: Optional[int] = None) -> Optional[int]:
        return await self._find(Lead, phone_key, exclude_id)

    async def find_borrower_id(self, phone_key: str) -> Optional[int]:
        return await self._find(Borrower, phone_key)

    async def find_lead_ids(self, phone_key: str) -> list[int]:
        """All non-deleted leads sharing the key, oldest first."""
        rows = await self._candidates(Lead, phone_key)
        return [row.id for row in rows if self._row_matches(row, phone_key)]

    async def _find(self, model, phone_key: str, exclude_id: Optional[int] = None) -> Optional[int]:
        for row in await self._candidates(model, phone_key):
            if exclude_id is not None and row.id == exclude_id:
                continue
            if self._row_matches(row, phone_key):
                return row.id
        return None

    async def _candidates(self, model, phone_key: str):
        if normalize_phone(phone_key) != phone_key:
            logger.debug(f"Refusing lookup for non-normalized key {mask_phone(phone_key)}")
            return []
        # Any stored formatting still ends with the last four digits
        suffix = f"%{phone_key[-4:]}"
        result = await self.db.execute(
            select(model.id, model.phone_number, model.phone_number_2, model.phone_number_3)
            .where(
                or_(model.is_deleted == False, model.is_deleted.is_(None)),  # noqa: E712
                or_(
                    model.phone_number.like(suffix),
                    model.phone_number_2.like(suffix),
                    model.phone_number_3.like(suffix),
                ),
            )
            .order_by(model.id)
        )
        return result.all()

    @staticmethod
    def _row_matches(row, phone_key: str) -> bool:
        return any(
            normalize_phone(p) == phone_key
            for p in (row.phone_number, row.phone_number_2, row.phone_number_3)
            if p
        )
