"""Application entry point for the payroll relay bot."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from flask import Flask, jsonify, request
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from slack_sdk.signature import SignatureVerifier
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars
from werkzeug.exceptions import HTTPException

from payroll_relay.config import AppSettings, get_settings
from payroll_relay.dispatcher import NotificationDispatcher
from payroll_relay.files import scoped_upload
from payroll_relay.listeners import (
    handle_direct_message,
    handle_file_shared,
    handle_reaction_added,
)
from payroll_relay.logging_config import configure_logging
from payroll_relay.messages import MessageTemplates, get_templates
from payroll_relay.models import DispatchError
from payroll_relay.slack_client import SlackClient
from payroll_relay.tracker import AcknowledgementTracker

LIVENESS_TEXT = "Bot is running!"
EXTENSION_KEY = "payroll_relay"

SLACK_SIGNATURE_HEADER = "X-Slack-Signature"
SLACK_TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"


@dataclass
class RelayContext:
    """Components owned by one application instance."""

    settings: AppSettings
    templates: MessageTemplates
    tracker: AcknowledgementTracker
    dispatcher: NotificationDispatcher
    slack_client: SlackClient


def _create_bolt_app(settings: AppSettings) -> SlackApp:
    """Initialise the Slack Bolt application using validated settings."""

    return SlackApp(
        token=settings.bot_token,
        signing_secret=settings.signing_secret,
        token_verification_enabled=False,
    )


def _create_signature_verifier(settings: AppSettings) -> SignatureVerifier:
    return SignatureVerifier(settings.signing_secret)


def _is_signed_by_slack(verifier: SignatureVerifier, raw_body: str) -> bool:
    timestamp = request.headers.get(SLACK_TIMESTAMP_HEADER)
    signature = request.headers.get(SLACK_SIGNATURE_HEADER)
    if not timestamp or not signature:
        return False
    try:
        return verifier.is_valid(body=raw_body, timestamp=timestamp, signature=signature)
    except ValueError:
        # Non-numeric timestamp header.
        return False


def _create_relay(settings: AppSettings, bolt_app: SlackApp) -> RelayContext:
    templates = get_templates(settings.locale)
    tracker = AcknowledgementTracker(ttl=timedelta(hours=settings.tracker_ttl_hours))
    dispatcher = NotificationDispatcher(
        tracker=tracker,
        columns=settings.columns,
        templates=templates,
        sign_off=settings.sign_off,
        reaction=settings.ack_reaction,
    )
    return RelayContext(
        settings=settings,
        templates=templates,
        tracker=tracker,
        dispatcher=dispatcher,
        slack_client=SlackClient(client=bolt_app.client),
    )


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(404)
    def handle_not_found(_error):
        # Uptime pingers hit arbitrary paths; answer them like the root route.
        return LIVENESS_TEXT, 200

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        if isinstance(error, HTTPException):
            return error
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _register_event_handlers(bolt_app: SlackApp, relay: RelayContext) -> None:
    @bolt_app.event("reaction_added")
    def handle_reaction(event, client, logger):
        handle_reaction_added(
            event=event,
            client=SlackClient(client=client),
            tracker=relay.tracker,
            settings=relay.settings,
            templates=relay.templates,
            logger=logger,
        )

    @bolt_app.event("message")
    def handle_message(event, client, logger):
        handle_direct_message(
            event=event,
            client=SlackClient(client=client),
            templates=relay.templates,
            logger=logger,
        )

    @bolt_app.event("file_shared")
    def handle_file(event, client, logger):
        handle_file_shared(
            event=event,
            client=SlackClient(client=client),
            dispatcher=relay.dispatcher,
            upload_dir=relay.settings.upload_dir,
            logger=logger,
        )


def _handle_upload(relay: RelayContext):
    trace_id = str(uuid4())
    bind_contextvars(trace_id=trace_id)
    log = structlog.get_logger()
    try:
        uploaded = request.files.get("file")
        if uploaded is None or not uploaded.filename:
            log.info("upload_rejected", reason="missing_file")
            return relay.templates.upload_missing, 400

        channel_id = (request.form.get("channel_id") or "").strip() or None
        log = log.bind(source_channel=channel_id, filename=uploaded.filename)
        try:
            with scoped_upload(relay.settings.upload_dir, uploaded.filename) as path:
                uploaded.save(path)
                result = relay.dispatcher.process_spreadsheet(
                    path,
                    client=relay.slack_client,
                    source_channel=channel_id,
                )
        except DispatchError as exc:
            log.error("upload_failed", error=str(exc), error_type=type(exc).__name__)
            return relay.templates.upload_failed, 500

        log.info("upload_processed", sent=result.sent, skipped=result.skipped)
        return relay.templates.upload_succeeded, 200
    finally:
        unbind_contextvars("trace_id")


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    settings = get_settings()
    bolt_app = _create_bolt_app(settings)
    handler = SlackRequestHandler(bolt_app)
    verifier = _create_signature_verifier(settings)
    relay = _create_relay(settings, bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.extensions[EXTENSION_KEY] = relay
    flask_app.logger.setLevel("INFO")

    _register_error_handlers(flask_app)
    _register_event_handlers(bolt_app, relay)

    @flask_app.route("/", methods=["GET"])
    def index():
        return LIVENESS_TEXT, 200

    @flask_app.route("/upload", methods=["POST"])
    def upload():
        return _handle_upload(relay)

    @flask_app.route("/slack/events", methods=["POST"])
    def slack_events():
        raw_body = request.get_data(as_text=True)
        if not _is_signed_by_slack(verifier, raw_body):
            response = jsonify({"error": "invalid_signature"})
            response.status_code = 401
            return response

        # Bolt acks immediately and runs the listeners on its own worker pool.
        return handler.handle(request)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")
        try:
            get_settings()
            health["config"] = "valid"
        except RuntimeError as exc:
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        health["tracked"] = len(relay.tracker)
        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=get_settings().port)
