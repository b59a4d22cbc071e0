"""Value types and error hierarchy for the payroll relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


class PayrollRelayError(Exception):
    """Base class for errors raised while relaying payroll notifications."""


class DispatchError(PayrollRelayError):
    """Raised when a batch cannot be completed; surfaced to HTTP callers as a 500."""


class ReadError(DispatchError):
    """Raised when a spreadsheet cannot be opened, decoded, or parsed."""


class SendError(DispatchError):
    """Raised when the Slack API rejects an outbound message."""

    def __init__(self, message: str, *, channel: str | None = None, error_code: str | None = None) -> None:
        super().__init__(message)
        self.channel = channel
        self.error_code = error_code


class MetadataError(DispatchError):
    """Raised when a shared file cannot be described or downloaded."""


@dataclass(frozen=True)
class PayrollEntry:
    """Logical payroll fields extracted from one spreadsheet row."""

    recipient_id: str
    salary: str
    name: str
    absences: str = "0"
    holidays_worked: str = "0"


@dataclass(frozen=True)
class NotificationRecord:
    """Recipient a tracked notification was sent to."""

    recipient_id: str
    recipient_name: str
    recorded_at: float


@dataclass
class DispatchResult:
    sent: int = 0
    skipped: int = 0
    handles: List[str] = field(default_factory=list)
