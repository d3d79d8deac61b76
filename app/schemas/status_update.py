"""
Pydantic schemas for the appointment status-update webhook.

Request and response keys keep the camelCase names the spreadsheet
automation already sends and reads.
"""

from datetime import date, time
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from app.services.reconciliation.actions import ReconciliationAction, RunSummary
from app.services.reconciliation.batch_runner import RunMode


class SheetEnvelope(BaseModel):
    """Legacy `excelData` wrapper: rows plus sheet metadata."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    spreadsheet_id: Optional[str] = None
    spreadsheet_name: Optional[str] = None
    sheet: Optional[str] = None

    class Config:
        extra = "allow"


class StatusUpdateRequest(BaseModel):
    """Webhook body. Rows may arrive at the top level or inside `excelData`."""

    mode: RunMode = RunMode.live
    threshold_hours: Optional[float] = Field(None, alias="thresholdHours", gt=0, le=24)
    rows: Optional[list[dict[str, Any]]] = None
    excel_data: Optional[SheetEnvelope] = Field(None, alias="excelData")
    spreadsheet_id: Optional[str] = None
    spreadsheet_name: Optional[str] = None
    sheet: Optional[str] = None
    api_key: Optional[str] = None
    agent_user_id: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "allow"

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, value):
        if value is None or isinstance(value, RunMode):
            return value or RunMode.live
        return RunMode.parse(str(value))

    def batch_rows(self) -> list[dict[str, Any]]:
        if self.rows is not None:
            return self.rows
        if self.excel_data is not None:
            return self.excel_data.rows
        return []

    def sheet_label(self) -> Optional[str]:
        envelope = self.excel_data
        name = self.spreadsheet_name or (envelope.spreadsheet_name if envelope else None)
        sheet = self.sheet or (envelope.sheet if envelope else None)
        return " / ".join(p for p in (name, sheet) if p) or None


class ActionResult(BaseModel):
    type: str
    success: bool
    message: str
    row_number: Optional[int] = Field(None, alias="rowNumber")
    lead_id: Optional[int] = Field(None, alias="leadId")
    borrower_id: Optional[int] = Field(None, alias="borrowerId")
    appointment_id: Optional[int] = Field(None, alias="appointmentId")
    appointment_status_before: Optional[str] = Field(None, alias="appointmentStatusBefore")
    appointment_status_after: Optional[str] = Field(None, alias="appointmentStatusAfter")
    lead_status_before: Optional[str] = Field(None, alias="leadStatusBefore")
    lead_status_after: Optional[str] = Field(None, alias="leadStatusAfter")
    error_kind: Optional[str] = Field(None, alias="errorKind")

    class Config:
        populate_by_name = True

    @classmethod
    def from_action(cls, action: ReconciliationAction) -> "ActionResult":
        return cls(
            type=action.kind.value,
            success=action.success,
            message=action.message,
            row_number=action.row_number,
            lead_id=action.lead_id,
            borrower_id=action.borrower_id,
            appointment_id=action.appointment_id,
            appointment_status_before=action.appointment_status_before,
            appointment_status_after=action.appointment_status_after,
            lead_status_before=action.lead_status_before,
            lead_status_after=action.lead_status_after,
            error_kind=action.error_kind.value if action.error_kind else None,
        )


class ActionTypeCounts(BaseModel):
    leads_created: int = 0
    appointments_created: int = 0
    appointments_moved: int = 0
    appointments_updated: int = 0
    timeout_updates: int = 0
    final_status_updates: int = 0


class RunSummaryResponse(BaseModel):
    total_actions: int = Field(alias="totalActions")
    successful: int
    failed: int
    skipped: int = 0
    action_types: ActionTypeCounts = Field(alias="actionTypes")

    class Config:
        populate_by_name = True


class StatusUpdateResponse(BaseModel):
    success: bool
    mode: str
    message: str
    today_singapore: date = Field(alias="todaySingapore")
    threshold_hours: float = Field(alias="thresholdHours")
    processed_count: int = Field(0, alias="processedCount")
    sheet: Optional[str] = None
    results: list[ActionResult]
    summary: RunSummaryResponse

    class Config:
        populate_by_name = True

    @classmethod
    def from_summary(cls, summary: RunSummary, sheet: Optional[str] = None) -> "StatusUpdateResponse":
        return cls(
            success=True,
            mode=summary.mode,
            message=summary.message,
            today_singapore=summary.today,
            threshold_hours=summary.threshold_hours,
            processed_count=summary.processed_count,
            sheet=sheet,
            results=[ActionResult.from_action(a) for a in summary.actions],
            summary=RunSummaryResponse.model_validate(summary.summary()),
        )


class TimeslotGenerateRequest(BaseModel):
    calendar_setting_id: int
    start_date: date
    end_date: date

    @field_validator("end_date")
    @classmethod
    def end_not_before_start(cls, value, info):
        start = info.data.get("start_date")
        if start and value < start:
            raise ValueError("end_date must not be before start_date")
        return value


class TimeslotGenerateResponse(BaseModel):
    calendar_setting_id: int
    start_date: date
    end_date: date
    created: int


class AppointmentCancelResponse(BaseModel):
    id: int
    status: str
    previous_status: str
    released_timeslot_id: Optional[int] = None
    lead_status: Optional[str] = None


class TimeslotResponse(BaseModel):
    id: int
    date: date
    start_time: time
    end_time: time
    max_capacity: int
    occupied_count: int
    is_disabled: bool

    class Config:
        from_attributes = True
