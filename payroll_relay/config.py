"""Pydantic-based configuration helpers for the payroll relay."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List

from pydantic import BaseModel, Field, ValidationError, field_validator

from .messages import LOCALES


class ColumnMapping(BaseModel):
    """Accepted spreadsheet header names for each logical payroll field."""

    recipient: List[str]
    salary: List[str]
    name: List[str]
    absences: List[str]
    holidays_worked: List[str]


class AppSettings(BaseModel):
    """Settings required to initialise the Slack bot and the upload endpoint."""

    bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    signing_secret: str = Field(..., alias="SLACK_SIGNING_SECRET")
    supervisor_channel_id: str = Field(..., alias="SUPERVISOR_CHANNEL_ID")
    port: int = Field(3000, alias="PORT")
    upload_dir: Path = Field(Path("uploads"), alias="UPLOAD_DIR")
    locale: str = Field("en", alias="LOCALE")
    ack_reaction: str = Field("white_check_mark", alias="ACK_REACTION")
    ack_dedupe: bool = Field(False, alias="ACK_DEDUPE")
    tracker_ttl_hours: int = Field(24 * 45, alias="TRACKER_TTL_HOURS")
    sign_off: str = Field("Payroll Supervision", alias="MESSAGE_SIGN_OFF")
    recipient_columns: List[str] = Field(["SlackUser", "Slack User"], alias="RECIPIENT_COLUMNS")
    salary_columns: List[str] = Field(["Salary"], alias="SALARY_COLUMNS")
    name_columns: List[str] = Field(["Name"], alias="NAME_COLUMNS")
    absences_columns: List[str] = Field(["Absences"], alias="ABSENCES_COLUMNS")
    holidays_columns: List[str] = Field(["HolidaysWorked", "Holidays Worked"], alias="HOLIDAYS_COLUMNS")

    @field_validator(
        "recipient_columns",
        "salary_columns",
        "name_columns",
        "absences_columns",
        "holidays_columns",
        mode="before",
    )
    @classmethod
    def _split_columns(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, list):
            items = [item.strip() for item in value if item.strip()]
        else:
            items = [item.strip() for item in value.split(",") if item.strip()]
        if not items:
            raise ValueError("At least one column name is required")
        return items

    @field_validator("locale")
    @classmethod
    def _known_locale(cls, value: str) -> str:
        normalised = value.strip().lower()
        if normalised not in LOCALES:
            raise ValueError(f"Unsupported locale '{value}'")
        return normalised

    @field_validator("ack_reaction")
    @classmethod
    def _strip_colons(cls, value: str) -> str:
        # Accept ":white_check_mark:" as well as the bare reaction name.
        return value.strip().strip(":")

    @field_validator("tracker_ttl_hours", "port")
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be greater than zero")
        return value

    @property
    def columns(self) -> ColumnMapping:
        return ColumnMapping(
            recipient=self.recipient_columns,
            salary=self.salary_columns,
            name=self.name_columns,
            absences=self.absences_columns,
            holidays_worked=self.holidays_columns,
        )


def _format_fields(fields: Iterable[str]) -> str:
    """Return a comma-separated list of env vars without duplicates."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        invalid = [str(error["loc"][0]) for error in exc.errors() if error["type"] != "missing"]
        if missing:
            message = f"Missing required environment variables: {_format_fields(missing)}"
        else:
            message = f"Invalid environment variables: {_format_fields(invalid)}"
        raise RuntimeError(message) from exc
