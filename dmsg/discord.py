"""Logging handler that reports errors to a Discord webhook, with rate limiting."""

from __future__ import annotations

import logging
import os
import socket
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

WEBHOOK_URL_ENV_NAME = "DISCORD_WEBHOOK_URL"

LOGGED_LEVEL = logging.ERROR
START_STOP_LOG_LEVEL = logging.INFO

START_LOG_MESSAGE = "Starting"
STOP_LOG_MESSAGE = "Stopping"

DEFAULT_RATE_LIMITER_THRESHOLD = 10 * 60.0  # seconds

Option = Callable[["DiscordHook"], None]


class DiscordHook(logging.Handler):
    """Posts records of level ERROR and above to a Discord webhook.

    Start and stop messages are logged at ERROR so that they reach the hook,
    then reported as INFO. With a limit set, a message repeated within the
    limit is not posted again.
    """

    def __init__(self, tag: str, webhook_url: str, client: Optional[httpx.Client] = None) -> None:
        super().__init__(level=LOGGED_LEVEL)
        self.tag = tag
        self.webhook_url = webhook_url
        self.author = ""
        self.limit = 0.0
        self.timestamps: Optional[dict[str, float]] = None
        self._client = client

    def should_fire(self, message: str, timestamp: float) -> bool:
        """Whether a message logged at ``timestamp`` (seconds) passes the rate limit."""
        if self.limit and self.timestamps is not None:
            last = self.timestamps.get(message)
            if last is not None and timestamp - last < self.limit:
                return False
            self.timestamps[message] = timestamp
        return True

    def _payload(self, record: logging.LogRecord, message: str) -> dict[str, Any]:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        embed: dict[str, Any] = {
            "title": record.levelname,
            "description": message,
            "timestamp": stamp,
        }
        if self.author:
            embed["author"] = {"name": self.author}
        return {"username": self.tag, "embeds": [embed]}

    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        if message in (START_LOG_MESSAGE, STOP_LOG_MESSAGE):
            record.levelno = START_STOP_LOG_LEVEL
            record.levelname = logging.getLevelName(START_STOP_LOG_LEVEL)
        if not self.should_fire(message, record.created):
            return
        try:
            poster: Any = self._client if self._client is not None else httpx
            resp = poster.post(self.webhook_url, json=self._payload(record, message), timeout=10.0)
            resp.raise_for_status()
        except Exception:
            self.handleError(record)


def with_limit(limit: float) -> Option:
    """Enable rate limiting: a message is posted at most once per ``limit`` seconds."""

    def apply(hook: DiscordHook) -> None:
        hook.limit = limit
        hook.timestamps = {}

    return apply


def with_author(author: str) -> Option:
    """Set the author shown on posted messages."""

    def apply(hook: DiscordHook) -> None:
        hook.author = author

    return apply


def new_hook(tag: str, web_hook_url: str, *args: Option) -> DiscordHook:
    hook = DiscordHook(tag, web_hook_url)
    for opt in args:
        opt(hook)
    return hook


def get_webhook_url_from_env() -> str:
    return os.environ.get(WEBHOOK_URL_ENV_NAME, "")


def get_default_opts() -> list[Option]:
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = "<unknown hostname>"
    return [with_limit(DEFAULT_RATE_LIMITER_THRESHOLD), with_author(hostname)]