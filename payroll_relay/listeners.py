"""Slack event handlers for acknowledgements, direct messages, and shared files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

import requests
from slack_sdk.errors import SlackApiError
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from .config import AppSettings
from .dispatcher import NotificationDispatcher
from .files import scoped_upload
from .messages import MessageTemplates, build_confirmation, build_echo
from .models import DispatchError, MetadataError
from .slack_client import SlackClient, slack_error_code
from .tracker import AcknowledgementTracker, message_handle

SPREADSHEET_FILETYPE = "csv"


def handle_reaction_added(
    *,
    event: Mapping[str, Any],
    client: SlackClient,
    tracker: AcknowledgementTracker,
    settings: AppSettings,
    templates: MessageTemplates,
    logger,
) -> bool:
    """Relay an acknowledgement to the supervisory channel.

    Returns True when a confirmation was posted.
    """

    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger()
    try:
        reaction = (event or {}).get("reaction")
        item = (event or {}).get("item") or {}
        if reaction != settings.ack_reaction:
            return False

        channel = item.get("channel")
        ts = item.get("ts")
        if not channel or not ts:
            return False

        handle = message_handle(channel, ts)
        if settings.ack_dedupe:
            record = tracker.consume(handle)
        else:
            record = tracker.lookup(handle)
        if record is None:
            log.debug("reaction_untracked", handle=handle)
            return False

        text = build_confirmation(templates, name=record.recipient_name, user_id=record.recipient_id)
        try:
            client.post_message(channel=settings.supervisor_channel_id, text=text)
        except SlackApiError as exc:
            if settings.ack_dedupe:
                tracker.restore(handle, record)
            error_code = slack_error_code(exc)
            log.error("acknowledgement_relay_failed", handle=handle, error=error_code)
            logger.error(
                "Failed to relay payroll acknowledgement",
                extra={"recipient_id": record.recipient_id, "error": error_code},
            )
            return False

        log.info(
            "acknowledgement_relayed",
            handle=handle,
            recipient_id=record.recipient_id,
            reacted_by=(event or {}).get("user"),
        )
        return True
    finally:
        unbind_contextvars("trace_id")


def handle_direct_message(
    *,
    event: Mapping[str, Any],
    client: SlackClient,
    templates: MessageTemplates,
    logger,
) -> bool:
    """Echo a message back when it was sent in a one-to-one conversation."""

    event = event or {}
    # Edits, joins and the bot's own posts arrive as message events too.
    if event.get("subtype") or event.get("bot_id"):
        return False

    channel = event.get("channel")
    text = event.get("text") or ""
    if not channel:
        return False

    log = structlog.get_logger().bind(channel=channel, user_id=event.get("user"))
    try:
        conversation = client.conversation_info(channel)
    except SlackApiError as exc:
        log.warning("conversation_info_failed", error=slack_error_code(exc))
        return False

    if not conversation.get("is_im"):
        return False

    log.info("direct_message_received", text_length=len(text))
    try:
        client.post_message(channel=channel, text=build_echo(templates, text))
    except SlackApiError as exc:
        error_code = slack_error_code(exc)
        log.error("direct_message_echo_failed", error=error_code)
        logger.error("Failed to echo direct message", extra={"channel": channel, "error": error_code})
        return False

    log.info("direct_message_echoed")
    return True


def _describe_file(client: SlackClient, file_id: str) -> Mapping[str, Any]:
    try:
        return client.file_info(file_id)
    except SlackApiError as exc:
        raise MetadataError(f"Could not describe file {file_id}: {slack_error_code(exc)}") from exc


def _download(client: SlackClient, url: str, destination: Path) -> None:
    try:
        client.download_file(url, destination)
    except requests.RequestException as exc:
        raise MetadataError(f"Could not download shared file: {exc}") from exc


def handle_file_shared(
    *,
    event: Mapping[str, Any],
    client: SlackClient,
    dispatcher: NotificationDispatcher,
    upload_dir: Path,
    logger,
) -> bool:
    """Run the notification pipeline for a CSV file shared in Slack.

    Returns True when the batch completed. Failures are logged and end only
    this event.
    """

    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    file_id = (event or {}).get("file_id")
    channel_id = (event or {}).get("channel_id")
    log = structlog.get_logger().bind(file_id=file_id, channel=channel_id)
    try:
        if not file_id:
            return False

        file_obj = _describe_file(client, file_id)
        filetype = file_obj.get("filetype")
        if filetype != SPREADSHEET_FILETYPE:
            log.info("file_shared_ignored", filetype=filetype)
            return False

        url = file_obj.get("url_private_download") or file_obj.get("url_private")
        if not url:
            raise MetadataError(f"File {file_id} has no download URL")

        try:
            with scoped_upload(upload_dir, file_obj.get("name")) as path:
                _download(client, url, path)
                log.info("file_shared_downloaded", name=file_obj.get("name"))
                result = dispatcher.process_spreadsheet(path, client=client, source_channel=channel_id)
        except OSError as exc:
            # Upload directory or scratch file could not be created or removed.
            raise MetadataError(f"Could not store shared file {file_id}: {exc}") from exc

        log.info("file_shared_processed", sent=result.sent, skipped=result.skipped)
        return True
    except DispatchError as exc:
        log.error("file_shared_failed", error=str(exc), error_type=type(exc).__name__)
        logger.error(
            "Failed to process shared payroll file",
            extra={"file_id": file_id, "error": str(exc)},
        )
        return False
    finally:
        unbind_contextvars("trace_id")
