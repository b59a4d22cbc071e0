"""Payroll Relay package initialisation."""

from .config import AppSettings, ColumnMapping, get_settings  # noqa: F401
from .dispatcher import NotificationDispatcher  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .messages import MessageTemplates, compose_notification, get_templates  # noqa: F401
from .models import (  # noqa: F401
    DispatchError,
    DispatchResult,
    MetadataError,
    NotificationRecord,
    PayrollEntry,
    PayrollRelayError,
    ReadError,
    SendError,
)
from .spreadsheet import read_rows  # noqa: F401
from .tracker import AcknowledgementTracker, message_handle  # noqa: F401

__all__ = [
    "AppSettings",
    "ColumnMapping",
    "get_settings",
    "NotificationDispatcher",
    "configure_logging",
    "MessageTemplates",
    "compose_notification",
    "get_templates",
    "PayrollRelayError",
    "DispatchError",
    "ReadError",
    "SendError",
    "MetadataError",
    "DispatchResult",
    "NotificationRecord",
    "PayrollEntry",
    "read_rows",
    "AcknowledgementTracker",
    "message_handle",
]
