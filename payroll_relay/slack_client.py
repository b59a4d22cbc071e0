"""Thin wrapper utilities around the Slack WebClient."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import requests
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

DOWNLOAD_TIMEOUT = 30
_CHUNK_SIZE = 64 * 1024


class SlackClient:
    """Encapsulate the Slack calls the relay makes, for easier testing."""

    def __init__(self, *, token: str | None = None, client: WebClient | None = None) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")
        self._client = client or WebClient(token=token)
        self._token = token or getattr(self._client, "token", None)

    def post_message(self, *, channel: str, text: str) -> Mapping[str, Any]:
        """Post a plain-text (mrkdwn) message to a channel or user."""

        return self._client.chat_postMessage(channel=channel, text=text)

    def file_info(self, file_id: str) -> Mapping[str, Any]:
        """Return the ``file`` object describing *file_id*."""

        response = self._client.files_info(file=file_id)
        return response.get("file") or {}

    def conversation_info(self, channel: str) -> Mapping[str, Any]:
        """Return the ``channel`` object describing a conversation."""

        response = self._client.conversations_info(channel=channel)
        return response.get("channel") or {}

    def download_file(self, url: str, destination: Path) -> Path:
        """Fetch a private Slack file with the bot token and write it to *destination*.

        Slack answers an unauthorised download with its HTML sign-in page and a
        200 status, so an HTML content type is treated as a failure too.
        """

        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        with requests.get(url, headers=headers, timeout=DOWNLOAD_TIMEOUT, stream=True) as response:
            response.raise_for_status()
            content_type = response.headers.get("Content-Type", "")
            if content_type.startswith("text/html"):
                raise requests.HTTPError(
                    f"Expected file content but received {content_type}", response=response
                )
            with destination.open("wb") as fp:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        fp.write(chunk)
        return destination


def slack_error_code(exc: SlackApiError) -> str:
    """Return the Slack ``error`` code of *exc*, falling back to its message."""

    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)
    return response.get("error") or str(exc)
