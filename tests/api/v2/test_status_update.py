"""
Tests for the appointment status-update webhook (/api/v2/appointments).
"""

from datetime import time
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Appointment, Lead, Timeslot
from app.models.statuses import AppointmentStatus, LeadStatus
from app.models.timeslot import CalendarSettings
from app.services.reconciliation.batch_runner import BatchRunner

from tests.factories import CallRowFactory

STATUS_UPDATE_URL = "/api/v2/appointments/status-update"


@pytest_asyncio.fixture
async def slots(make_slots):
    return await make_slots()


class TestPostStatusUpdate:
    """Tests for POST /status-update."""

    @pytest.mark.asyncio
    async def test_live_rows(self, client: AsyncClient, slots):
        """Rows at the top level are reconciled and summarized."""
        response = await client.post(STATUS_UPDATE_URL, json={"mode": "live", "rows": [CallRowFactory()]})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "live"
        assert data["todaySingapore"] == "2026-10-16"
        assert data["thresholdHours"] == settings.LIVE_THRESHOLD_HOURS
        assert data["processedCount"] == 1
        assert [r["type"] for r in data["results"]] == ["create_lead", "create_appointment"]
        assert data["results"][0]["leadId"] is not None
        assert data["summary"]["totalActions"] == 2
        assert data["summary"]["actionTypes"]["leads_created"] == 1
        assert data["summary"]["actionTypes"]["appointments_created"] == 1

    @pytest.mark.asyncio
    async def test_excel_data_envelope(self, client: AsyncClient, slots):
        """Rows inside the legacy excelData wrapper are read too."""
        payload = {
            "excelData": {
                "rows": [CallRowFactory(), CallRowFactory(date="01/10/2026")],
                "spreadsheet_name": "Calls",
                "sheet": "Today",
            }
        }

        response = await client.post(STATUS_UPDATE_URL, json=payload)

        data = response.json()
        assert response.status_code == 200
        assert data["sheet"] == "Calls / Today"
        assert data["processedCount"] == 1
        assert data["summary"]["skipped"] == 1

    @pytest.mark.asyncio
    async def test_realtime_alias(self, client: AsyncClient, slots):
        """The legacy realtime mode name means live."""
        response = await client.post(STATUS_UPDATE_URL, json={"mode": "realtime", "rows": [CallRowFactory()]})

        assert response.status_code == 200
        assert response.json()["mode"] == "live"

    @pytest.mark.asyncio
    async def test_unknown_mode(self, client: AsyncClient):
        """Unknown modes fail validation."""
        response = await client.post(STATUS_UPDATE_URL, json={"mode": "weekly", "rows": []})

        assert response.status_code == 422
        assert response.headers["content-type"].startswith("application/problem+json")

    @pytest.mark.asyncio
    async def test_threshold_out_of_range(self, client: AsyncClient):
        """Thresholds above 24 hours are rejected."""
        response = await client.post(STATUS_UPDATE_URL, json={"thresholdHours": 30})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_api_key(self, client: AsyncClient, monkeypatch):
        """A wrong key is rejected with a problem document."""
        monkeypatch.setattr(settings, "API_KEY", "sheet-secret")

        response = await client.post(STATUS_UPDATE_URL, json={"api_key": "guess", "rows": [CallRowFactory()]})

        assert response.status_code == 401
        problem = response.json()
        assert problem["code"] == "AUTH_001"
        assert problem["status"] == 401
        assert problem["instance"] == STATUS_UPDATE_URL

    @pytest.mark.asyncio
    async def test_valid_api_key_sets_acting_user(
        self, client: AsyncClient, test_db: AsyncSession, monkeypatch, slots
    ):
        """With a valid key, changes are recorded against the given agent."""
        monkeypatch.setattr(settings, "API_KEY", "sheet-secret")

        response = await client.post(
            STATUS_UPDATE_URL,
            json={"api_key": "sheet-secret", "agent_user_id": "agent-7", "rows": [CallRowFactory()]},
        )

        assert response.status_code == 200
        appointment = (await test_db.execute(select(Appointment))).scalar_one()
        assert appointment.agent_id == "agent-7"
        lead = (await test_db.execute(select(Lead))).scalar_one()
        assert lead.created_by == "agent-7"

    @pytest.mark.asyncio
    async def test_end_of_day(self, client: AsyncClient, test_db: AsyncSession, make_lead, book, slots):
        """end_of_day finalizes today's appointments and ignores rows."""
        lead = await make_lead()
        await book(lead, slots[1], AppointmentStatus.done, loan_status="RS")

        response = await client.post(STATUS_UPDATE_URL, json={"mode": "end_of_day", "rows": [CallRowFactory()]})

        data = response.json()
        assert data["mode"] == "end_of_day"
        assert data["summary"]["actionTypes"]["final_status_updates"] == 1
        refreshed = await test_db.get(Lead, lead.id, populate_existing=True)
        assert refreshed.status is LeadStatus.missed_rs

    @pytest.mark.asyncio
    async def test_database_outage(self, client: AsyncClient):
        """Losing the database answers 503 instead of a partial summary."""
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with patch.object(BatchRunner, "run", AsyncMock(side_effect=error)):
            response = await client.post(STATUS_UPDATE_URL, json={"rows": [CallRowFactory()]})

        assert response.status_code == 503
        assert response.json()["code"] == "SRV_002"


class TestGetStatusUpdate:
    """Tests for GET /status-update."""

    @pytest.mark.asyncio
    async def test_time_sweep(self, client: AsyncClient, make_lead, book, slots):
        """GET runs the time-only sweep."""
        await book(await make_lead(), slots[0])

        response = await client.get(STATUS_UPDATE_URL, params={"thresholdHours": 3})

        data = response.json()
        assert response.status_code == 200
        assert data["thresholdHours"] == 3
        assert data["summary"]["actionTypes"]["timeout_updates"] == 1
        assert data["results"][0]["leadStatusAfter"] == "follow_up"

    @pytest.mark.asyncio
    async def test_unknown_mode(self, client: AsyncClient):
        """Unknown modes are a bad request."""
        response = await client.get(STATUS_UPDATE_URL, params={"mode": "weekly"})

        assert response.status_code == 400
        assert response.json()["code"] == "BIZ_001"


class TestCancelAppointment:
    """Tests for POST /{appointment_id}/cancel."""

    @pytest.mark.asyncio
    async def test_cancel_upcoming(self, client: AsyncClient, test_db: AsyncSession, make_lead, book, slots):
        """Cancelling frees the slot and returns the lead to assigned."""
        lead = await make_lead(status=LeadStatus.follow_up)
        appointment = await book(lead, slots[6])

        response = await client.post(f"/api/v2/appointments/{appointment.id}/cancel")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["previous_status"] == "upcoming"
        assert data["released_timeslot_id"] == slots[6].id
        assert data["lead_status"] == "assigned"
        slot = await test_db.get(Timeslot, slots[6].id, populate_existing=True)
        assert slot.occupied_count == 0

    @pytest.mark.asyncio
    async def test_cancel_done_refused(self, client: AsyncClient, make_lead, book, slots):
        """Done appointments cannot be cancelled."""
        appointment = await book(await make_lead(), slots[0], AppointmentStatus.done)

        response = await client.post(f"/api/v2/appointments/{appointment.id}/cancel")

        assert response.status_code == 400
        assert response.json()["code"] == "BIZ_001"

    @pytest.mark.asyncio
    async def test_cancel_missing(self, client: AsyncClient):
        """Unknown appointments are 404."""
        response = await client.post("/api/v2/appointments/999/cancel")

        assert response.status_code == 404
        assert response.json()["code"] == "RES_001"


class TestTimeslots:
    """Tests for /api/v2/timeslots."""

    @pytest.mark.asyncio
    async def test_list_day(self, client: AsyncClient, slots):
        """Slots of a day are listed in start order with occupancy."""
        response = await client.get("/api/v2/timeslots", params={"date": "2026-10-16"})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 8
        assert data[0]["start_time"] == "09:00:00"
        assert data[0]["occupied_count"] == 0

    @pytest.mark.asyncio
    async def test_generate(self, client: AsyncClient, test_db: AsyncSession):
        """Slots are generated from a calendar configuration."""
        calendar = CalendarSettings(
            name="Main office",
            working_days=[1, 2, 3, 4, 5],
            daily_start_time=time(9, 0),
            daily_end_time=time(11, 0),
            slot_duration_minutes=60,
            default_max_capacity=1,
        )
        test_db.add(calendar)
        await test_db.commit()

        response = await client.post(
            "/api/v2/timeslots/generate",
            json={"calendar_setting_id": calendar.id, "start_date": "2026-10-16", "end_date": "2026-10-19"},
        )

        assert response.status_code == 200
        assert response.json()["created"] == 4

    @pytest.mark.asyncio
    async def test_generate_unknown_calendar(self, client: AsyncClient):
        """Unknown calendars are 404."""
        response = await client.post(
            "/api/v2/timeslots/generate",
            json={"calendar_setting_id": 42, "start_date": "2026-10-16", "end_date": "2026-10-19"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_generate_reversed_range(self, client: AsyncClient):
        """An end date before the start date fails validation."""
        response = await client.post(
            "/api/v2/timeslots/generate",
            json={"calendar_setting_id": 1, "start_date": "2026-10-19", "end_date": "2026-10-16"},
        )

        assert response.status_code == 422
