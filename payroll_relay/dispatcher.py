"""Send payroll notifications for every row of an uploaded spreadsheet."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping

from slack_sdk.errors import SlackApiError
import structlog

from .config import ColumnMapping
from .messages import MessageTemplates, compose_notification
from .models import DispatchResult, SendError
from .slack_client import SlackClient, slack_error_code
from .spreadsheet import extract_entry, read_rows
from .tracker import AcknowledgementTracker, message_handle


class NotificationDispatcher:
    """Drive the spreadsheet-to-direct-message pipeline for one deployment."""

    def __init__(
        self,
        *,
        tracker: AcknowledgementTracker,
        columns: ColumnMapping,
        templates: MessageTemplates,
        sign_off: str,
        reaction: str = "white_check_mark",
    ) -> None:
        self.tracker = tracker
        self.columns = columns
        self.templates = templates
        self.sign_off = sign_off
        self.reaction = reaction

    def process_spreadsheet(
        self,
        path: Path | str,
        *,
        client: SlackClient,
        source_channel: str | None,
    ) -> DispatchResult:
        """Read the CSV at *path* and dispatch every row.

        Raises ReadError before anything is sent when the file is unreadable.
        """

        rows = read_rows(path)
        structlog.get_logger().info("spreadsheet_read", row_count=len(rows))
        return self.dispatch(rows, client=client, source_channel=source_channel)

    def dispatch(
        self,
        rows: Iterable[Mapping[str, str]],
        *,
        client: SlackClient,
        source_channel: str | None,
    ) -> DispatchResult:
        """Notify each eligible row in order, then post the batch summary.

        A Slack failure raises SendError immediately: the remaining rows are
        not sent and no summary is posted. Rows sent before the failure stay
        tracked.
        """

        log = structlog.get_logger().bind(source_channel=source_channel)
        result = DispatchResult()

        for index, row in enumerate(rows, start=1):
            entry = extract_entry(row, self.columns)
            if entry is None:
                result.skipped += 1
                log.debug("row_skipped", row_number=index, reason="missing_recipient_or_salary")
                continue

            text = compose_notification(
                entry.name,
                entry.salary,
                entry.absences,
                entry.holidays_worked,
                templates=self.templates,
                sign_off=self.sign_off,
                reaction=self.reaction,
            )
            try:
                response = client.post_message(channel=entry.recipient_id, text=text)
            except SlackApiError as exc:
                error_code = slack_error_code(exc)
                log.error(
                    "notification_send_failed",
                    row_number=index,
                    recipient_id=entry.recipient_id,
                    error=error_code,
                    sent=result.sent,
                )
                raise SendError(
                    f"Failed to notify {entry.recipient_id}: {error_code}",
                    channel=entry.recipient_id,
                    error_code=error_code,
                ) from exc

            result.sent += 1
            ts = response.get("ts")
            if not ts:
                log.warning(
                    "notification_untracked",
                    row_number=index,
                    recipient_id=entry.recipient_id,
                    reason="missing_ts",
                )
                continue

            handle = message_handle(response.get("channel") or entry.recipient_id, ts)
            self.tracker.record(handle, entry.recipient_id, entry.name)
            result.handles.append(handle)
            log.info("notification_sent", row_number=index, recipient_id=entry.recipient_id, handle=handle)

        if not source_channel:
            log.warning("batch_summary_skipped", reason="missing_source_channel", sent=result.sent)
        else:
            try:
                client.post_message(channel=source_channel, text=self.templates.summary)
            except SlackApiError as exc:
                error_code = slack_error_code(exc)
                log.error("batch_summary_failed", error=error_code)
                raise SendError(
                    f"Failed to post batch summary: {error_code}",
                    channel=source_channel,
                    error_code=error_code,
                ) from exc

        log.info("batch_completed", sent=result.sent, skipped=result.skipped)
        return result
