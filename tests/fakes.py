"""In-memory stand-ins for the engine's outbound collaborators."""

from app.services.reconciliation.eligibility import EligibilityResult
from app.services.reconciliation.errors import NotifyError


class RecordingNotificationSink:
    """Keeps every event; optionally fails like an unreachable webhook."""

    def __init__(self, fail: bool = False, error: Exception = None):
        self.fail = fail
        self.error = error
        self.sent: list[tuple[str, dict]] = []

    async def send(self, event: str, payload: dict) -> bool:
        if self.error is not None:
            raise self.error
        if self.fail:
            raise NotifyError(f"{event} webhook failed: ConnectError")
        self.sent.append((event, payload))
        return True

    def events(self) -> list[str]:
        return [event for event, _ in self.sent]


class StaticEligibilityChecker:
    def __init__(self, result: EligibilityResult = None, error: Exception = None):
        self.result = result
        self.error = error
        self.checked: list[int] = []

    async def check(self, lead):
        self.checked.append(lead.id)
        if self.error is not None:
            raise self.error
        return self.result
