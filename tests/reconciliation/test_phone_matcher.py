"""
Tests for PhoneMatcher lookups.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.reconciliation.phone_matcher import PhoneMatcher


class TestPhoneMatcher:
    """Tests for lead and borrower resolution by phone key."""

    @pytest.mark.asyncio
    async def test_matches_any_stored_format(self, test_db: AsyncSession, make_lead):
        """Stored spacing and country code do not matter."""
        lead = await make_lead(phone_number="+65 9123 4567")

        assert await PhoneMatcher(test_db).find_lead_id("91234567") == lead.id

    @pytest.mark.asyncio
    async def test_matches_secondary_numbers(self, test_db: AsyncSession, make_lead):
        """The second and third number columns are searched too."""
        lead = await make_lead(phone_number="+6580000001", phone_number_3="6591234567")

        assert await PhoneMatcher(test_db).find_lead_id("91234567") == lead.id

    @pytest.mark.asyncio
    async def test_suffix_collision_is_not_a_match(self, test_db: AsyncSession, make_lead):
        """Numbers sharing only the last digits are told apart."""
        await make_lead(phone_number="+6581234567")

        assert await PhoneMatcher(test_db).find_lead_id("91234567") is None

    @pytest.mark.asyncio
    async def test_oldest_lead_wins(self, test_db: AsyncSession, make_lead):
        """With duplicates the lowest id is returned; exclude_id skips a lead."""
        first = await make_lead(phone_number="91234567")
        second = await make_lead(phone_number="+65 9123 4567")
        matcher = PhoneMatcher(test_db)

        assert await matcher.find_lead_id("91234567") == first.id
        assert await matcher.find_lead_id("91234567", exclude_id=first.id) == second.id
        assert await matcher.find_lead_ids("91234567") == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_deleted_leads_ignored(self, test_db: AsyncSession, make_lead):
        """Soft-deleted leads never match."""
        await make_lead(phone_number="91234567", is_deleted=True)

        assert await PhoneMatcher(test_db).find_lead_id("91234567") is None

    @pytest.mark.asyncio
    async def test_borrower_lookup(self, test_db: AsyncSession, make_borrower):
        """Borrowers resolve the same way as leads."""
        borrower = await make_borrower(phone_number="6591234567")

        assert await PhoneMatcher(test_db).find_borrower_id("91234567") == borrower.id

    @pytest.mark.asyncio
    async def test_non_normalized_key(self, test_db: AsyncSession, make_lead):
        """Lookups require an already-normalized key."""
        await make_lead(phone_number="91234567")

        assert await PhoneMatcher(test_db).find_lead_id("+6591234567") is None
