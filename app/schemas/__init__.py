from app.schemas.status_update import (
    StatusUpdateRequest,
    StatusUpdateResponse,
    ActionResult,
    RunSummaryResponse,
    TimeslotResponse,
    TimeslotGenerateRequest,
    TimeslotGenerateResponse,
    AppointmentCancelResponse,
)

__all__ = [
    "StatusUpdateRequest",
    "StatusUpdateResponse",
    "ActionResult",
    "RunSummaryResponse",
    "TimeslotResponse",
    "TimeslotGenerateRequest",
    "TimeslotGenerateResponse",
    "AppointmentCancelResponse",
]
