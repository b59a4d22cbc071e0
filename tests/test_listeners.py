"""Tests for Slack event listeners."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest
import requests
from slack_sdk.errors import SlackApiError
from structlog.testing import capture_logs

from payroll_relay.config import AppSettings
from payroll_relay.dispatcher import NotificationDispatcher
from payroll_relay.listeners import (
    handle_direct_message,
    handle_file_shared,
    handle_reaction_added,
)
from payroll_relay.messages import get_templates
from payroll_relay.slack_client import SlackClient
from payroll_relay.tracker import AcknowledgementTracker

LOGGER = logging.getLogger(__name__)
EN = get_templates("en")


class DummyResponse(dict):
    def __init__(self, error: str) -> None:
        super().__init__({"ok": False, "error": error})


class DummyWebClient:
    token = "xoxb-test"

    def __init__(self, *, conversations=None, files=None) -> None:
        self.post_calls: list[dict] = []
        self.conversations = conversations or {}
        self.files = files or {}

    def chat_postMessage(self, **kwargs):
        self.post_calls.append(kwargs)
        return {"ok": True, "channel": f"D{kwargs['channel']}", "ts": f"1.{len(self.post_calls)}"}

    def conversations_info(self, *, channel):
        if channel not in self.conversations:
            raise SlackApiError("not found", DummyResponse("channel_not_found"))
        return {"ok": True, "channel": self.conversations[channel]}

    def files_info(self, *, file):
        if file not in self.files:
            raise SlackApiError("not found", DummyResponse("file_not_found"))
        return {"ok": True, "file": self.files[file]}


def _settings(**overrides) -> AppSettings:
    env = {
        "SLACK_BOT_TOKEN": "xoxb-test",
        "SLACK_SIGNING_SECRET": "secret",
        "SUPERVISOR_CHANNEL_ID": "CSUPER",
    }
    env.update(overrides)
    return AppSettings.model_validate(env)


def _reaction_event(reaction="white_check_mark", channel="DU1", ts="1.1"):
    return {
        "type": "reaction_added",
        "user": "U1",
        "reaction": reaction,
        "item": {"type": "message", "channel": channel, "ts": ts},
    }


@pytest.fixture
def tracker():
    tracker = AcknowledgementTracker(ttl=timedelta(days=1))
    tracker.record("DU1:1.1", "U1", "Jane")
    return tracker


def test_matching_reaction_relays_confirmation(tracker):
    web = DummyWebClient()

    relayed = handle_reaction_added(
        event=_reaction_event(),
        client=SlackClient(client=web),
        tracker=tracker,
        settings=_settings(),
        templates=EN,
        logger=LOGGER,
    )

    assert relayed is True
    assert len(web.post_calls) == 1
    call = web.post_calls[0]
    assert call["channel"] == "CSUPER"
    assert "Jane" in call["text"]
    assert "U1" in call["text"]


@pytest.mark.parametrize("reaction", ["thumbsup", "x", "heavy_check_mark"])
def test_other_reactions_never_confirm(tracker, reaction):
    web = DummyWebClient()

    relayed = handle_reaction_added(
        event=_reaction_event(reaction=reaction),
        client=SlackClient(client=web),
        tracker=tracker,
        settings=_settings(),
        templates=EN,
        logger=LOGGER,
    )

    assert relayed is False
    assert web.post_calls == []


def test_reaction_on_untracked_message_is_ignored(tracker):
    web = DummyWebClient()

    relayed = handle_reaction_added(
        event=_reaction_event(ts="9.9"),
        client=SlackClient(client=web),
        tracker=tracker,
        settings=_settings(),
        templates=EN,
        logger=LOGGER,
    )

    assert relayed is False
    assert web.post_calls == []


def test_repeated_reactions_confirm_each_time_by_default(tracker):
    web = DummyWebClient()
    for _ in range(2):
        handle_reaction_added(
            event=_reaction_event(),
            client=SlackClient(client=web),
            tracker=tracker,
            settings=_settings(),
            templates=EN,
            logger=LOGGER,
        )

    assert len(web.post_calls) == 2


def test_dedupe_consumes_record_on_first_confirmation(tracker):
    web = DummyWebClient()
    settings = _settings(ACK_DEDUPE="true")
    for _ in range(2):
        handle_reaction_added(
            event=_reaction_event(),
            client=SlackClient(client=web),
            tracker=tracker,
            settings=settings,
            templates=EN,
            logger=LOGGER,
        )

    assert len(web.post_calls) == 1
    assert tracker.lookup("DU1:1.1") is None


class FlakyWebClient(DummyWebClient):
    def __init__(self, *, failures: int, response: dict | None = None) -> None:
        super().__init__()
        self.failures = failures
        self.response = response if response is not None else {"ok": False, "error": "ratelimited"}

    def chat_postMessage(self, **kwargs):
        if self.failures:
            self.failures -= 1
            raise SlackApiError("post failed", self.response)
        return super().chat_postMessage(**kwargs)


def test_dedupe_keeps_record_when_confirmation_post_fails(tracker):
    web = FlakyWebClient(failures=1)
    settings = _settings(ACK_DEDUPE="true")

    def react():
        return handle_reaction_added(
            event=_reaction_event(),
            client=SlackClient(client=web),
            tracker=tracker,
            settings=settings,
            templates=EN,
            logger=LOGGER,
        )

    assert react() is False
    assert tracker.lookup("DU1:1.1") is not None

    assert react() is True
    assert len(web.post_calls) == 1
    assert tracker.lookup("DU1:1.1") is None


def test_relay_failure_logs_message_when_response_has_no_error_code(tracker):
    web = FlakyWebClient(failures=1, response={"ok": False})

    with capture_logs() as logs:
        handle_reaction_added(
            event=_reaction_event(),
            client=SlackClient(client=web),
            tracker=tracker,
            settings=_settings(),
            templates=EN,
            logger=LOGGER,
        )

    failures = [entry for entry in logs if entry["event"] == "acknowledgement_relay_failed"]
    assert failures
    assert failures[0]["error"]
    assert failures[0]["error"].startswith("post failed")


def test_custom_acknowledgement_reaction(tracker):
    web = DummyWebClient()

    relayed = handle_reaction_added(
        event=_reaction_event(reaction="thumbsup"),
        client=SlackClient(client=web),
        tracker=tracker,
        settings=_settings(ACK_REACTION="thumbsup"),
        templates=EN,
        logger=LOGGER,
    )

    assert relayed is True


def test_direct_message_is_echoed():
    web = DummyWebClient(conversations={"D1": {"id": "D1", "is_im": True}})

    echoed = handle_direct_message(
        event={"type": "message", "channel": "D1", "user": "U1", "text": "hello"},
        client=SlackClient(client=web),
        templates=EN,
        logger=LOGGER,
    )

    assert echoed is True
    assert web.post_calls == [{"channel": "D1", "text": EN.echo.format(text="hello")}]


def test_channel_message_is_not_echoed():
    web = DummyWebClient(conversations={"C1": {"id": "C1", "is_im": False, "is_channel": True}})

    echoed = handle_direct_message(
        event={"type": "message", "channel": "C1", "user": "U1", "text": "hello"},
        client=SlackClient(client=web),
        templates=EN,
        logger=LOGGER,
    )

    assert echoed is False
    assert web.post_calls == []


@pytest.mark.parametrize(
    "extra",
    [{"subtype": "message_changed"}, {"bot_id": "B1"}],
)
def test_bot_and_edited_messages_are_not_echoed(extra):
    web = DummyWebClient(conversations={"D1": {"id": "D1", "is_im": True}})
    event = {"type": "message", "channel": "D1", "user": "U1", "text": "hi", **extra}

    assert handle_direct_message(event=event, client=SlackClient(client=web), templates=EN, logger=LOGGER) is False
    assert web.post_calls == []


def test_conversation_lookup_failure_is_ignored():
    web = DummyWebClient()

    echoed = handle_direct_message(
        event={"type": "message", "channel": "DX", "user": "U1", "text": "hi"},
        client=SlackClient(client=web),
        templates=EN,
        logger=LOGGER,
    )

    assert echoed is False


class FakeDownload:
    def __init__(self, content: bytes, content_type: str = "text/csv", status_code: int = 200) -> None:
        self.content = content
        self.headers = {"Content-Type": content_type}
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def iter_content(self, chunk_size=1):
        yield self.content


@pytest.fixture
def dispatcher():
    settings = _settings()
    return NotificationDispatcher(
        tracker=AcknowledgementTracker(),
        columns=settings.columns,
        templates=EN,
        sign_off=settings.sign_off,
    )


def _csv_file(name="payroll.csv", filetype="csv"):
    return {
        "id": "F1",
        "name": name,
        "filetype": filetype,
        "url_private_download": "https://files.slack.com/F1/download/payroll.csv",
    }


def test_shared_csv_is_downloaded_dispatched_and_removed(monkeypatch, tmp_path, dispatcher):
    web = DummyWebClient(files={"F1": _csv_file()})
    requested = {}

    def fake_get(url, headers=None, timeout=None, stream=False):
        requested.update(url=url, headers=headers)
        return FakeDownload(b"SlackUser,Salary,Name,Absences,HolidaysWorked\nU123,1000,Jane,2,1\n")

    monkeypatch.setattr("payroll_relay.slack_client.requests.get", fake_get)

    processed = handle_file_shared(
        event={"type": "file_shared", "file_id": "F1", "channel_id": "CUPLOAD"},
        client=SlackClient(client=web),
        dispatcher=dispatcher,
        upload_dir=tmp_path,
        logger=LOGGER,
    )

    assert processed is True
    assert requested["headers"] == {"Authorization": "Bearer xoxb-test"}
    assert [call["channel"] for call in web.post_calls] == ["U123", "CUPLOAD"]
    assert dispatcher.tracker.lookup("DU123:1.1") is not None
    assert list(tmp_path.iterdir()) == []


def test_non_csv_file_is_ignored(monkeypatch, tmp_path, dispatcher):
    web = DummyWebClient(files={"F1": _csv_file(name="photo.png", filetype="png")})

    def fail_get(*_args, **_kwargs):  # pragma: no cover - must not be called
        raise AssertionError("download attempted")

    monkeypatch.setattr("payroll_relay.slack_client.requests.get", fail_get)

    processed = handle_file_shared(
        event={"type": "file_shared", "file_id": "F1", "channel_id": "C1"},
        client=SlackClient(client=web),
        dispatcher=dispatcher,
        upload_dir=tmp_path,
        logger=LOGGER,
    )

    assert processed is False
    assert web.post_calls == []


def test_metadata_failure_is_logged_and_contained(tmp_path, dispatcher):
    web = DummyWebClient()

    with capture_logs() as logs:
        processed = handle_file_shared(
            event={"type": "file_shared", "file_id": "F404", "channel_id": "C1"},
            client=SlackClient(client=web),
            dispatcher=dispatcher,
            upload_dir=tmp_path,
            logger=LOGGER,
        )

    assert processed is False
    failures = [entry for entry in logs if entry["event"] == "file_shared_failed"]
    assert failures and failures[0]["error_type"] == "MetadataError"


def test_html_sign_in_page_counts_as_download_failure(monkeypatch, tmp_path, dispatcher):
    web = DummyWebClient(files={"F1": _csv_file()})
    monkeypatch.setattr(
        "payroll_relay.slack_client.requests.get",
        lambda *args, **kwargs: FakeDownload(b"<html></html>", content_type="text/html; charset=utf-8"),
    )

    processed = handle_file_shared(
        event={"type": "file_shared", "file_id": "F1", "channel_id": "C1"},
        client=SlackClient(client=web),
        dispatcher=dispatcher,
        upload_dir=tmp_path,
        logger=LOGGER,
    )

    assert processed is False
    assert web.post_calls == []
    assert list(tmp_path.iterdir()) == []


def test_unparseable_shared_file_sends_nothing_and_is_removed(monkeypatch, tmp_path, dispatcher):
    web = DummyWebClient(files={"F1": _csv_file()})
    monkeypatch.setattr(
        "payroll_relay.slack_client.requests.get",
        lambda *args, **kwargs: FakeDownload(b"SlackUser,Salary\n\xff\xfe,10\n"),
    )

    processed = handle_file_shared(
        event={"type": "file_shared", "file_id": "F1", "channel_id": "C1"},
        client=SlackClient(client=web),
        dispatcher=dispatcher,
        upload_dir=tmp_path,
        logger=LOGGER,
    )

    assert processed is False
    assert web.post_calls == []
    assert list(tmp_path.iterdir()) == []


def test_unwritable_upload_dir_is_reported_as_metadata_error(monkeypatch, tmp_path, dispatcher):
    web = DummyWebClient(files={"F1": _csv_file()})
    monkeypatch.setattr(
        "payroll_relay.slack_client.requests.get",
        lambda *args, **kwargs: FakeDownload(b"SlackUser,Salary\nU1,10\n"),
    )
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    with capture_logs() as logs:
        processed = handle_file_shared(
            event={"type": "file_shared", "file_id": "F1", "channel_id": "C1"},
            client=SlackClient(client=web),
            dispatcher=dispatcher,
            upload_dir=blocker / "uploads",
            logger=LOGGER,
        )

    assert processed is False
    assert web.post_calls == []
    failures = [entry for entry in logs if entry["event"] == "file_shared_failed"]
    assert failures and failures[0]["error_type"] == "MetadataError"
