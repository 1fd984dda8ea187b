"""Flags shared by the service commands: logging, syslog, tag and config source."""

from __future__ import annotations

import argparse
import json
import logging
import logging.handlers
import socket
import sys
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Optional

from dmsg.discord import get_default_opts, get_webhook_url_from_env, new_hook

ERR_TAG_CANNOT_BE_EMPTY = "tag cannot be empty"
ERR_TAG_HAS_INVALID_CHARS = "tag can only contain alphanumeric values and underscore"
ERR_TAG_HAS_MISPLACED_UNDERSCORES = (
    "tag cannot start or end with an underscore or have two underscores back-to-back"
)
ERR_INVALID_LOG_STRING = "failed to convert string to log level"
ERR_INVALID_SYSLOG_NET = "network type is unsupported for syslog"

STDIN_CONFIG = "stdin"

_SYSLOG_NETS = ("tcp", "udp", "unix")

_Syslog = logging.handlers.SysLogHandler

_LEVELS: dict[str, tuple[int, int]] = {
    "debug": (logging.DEBUG, _Syslog.LOG_DEBUG),
    "info": (logging.INFO, _Syslog.LOG_INFO),
    "notice": (logging.INFO, _Syslog.LOG_INFO),
    "warn": (logging.WARNING, _Syslog.LOG_WARNING),
    "warning": (logging.WARNING, _Syslog.LOG_WARNING),
    "error": (logging.ERROR, _Syslog.LOG_ERR),
    "fatal": (logging.CRITICAL, _Syslog.LOG_CRIT),
    "critical": (logging.CRITICAL, _Syslog.LOG_CRIT),
    "panic": (logging.CRITICAL, _Syslog.LOG_EMERG),
}


class TagError(ValueError):
    """The service tag is empty or malformed."""


class InvalidLogStringError(ValueError):
    """A log level name is not recognised."""


class InvalidSyslogNetError(ValueError):
    """The syslog network type is not supported."""


def valid_tag(tag: str) -> None:
    """Raise TagError unless the tag is letters, numbers and single inner underscores."""
    if not tag:
        raise TagError(ERR_TAG_CANNOT_BE_EMPTY)

    for c in tag:
        if c != "_" and unicodedata.category(c)[0] not in ("L", "N"):
            raise TagError(ERR_TAG_HAS_INVALID_CHARS)

    if tag[0] == "_" or tag[-1] == "_" or "__" in tag:
        raise TagError(ERR_TAG_HAS_MISPLACED_UNDERSCORES)


def level_from_string(s: str) -> tuple[int, int]:
    """Return the logging level and syslog priority named by ``s``."""
    try:
        return _LEVELS[s.lower()]
    except KeyError:
        raise InvalidLogStringError(ERR_INVALID_LOG_STRING) from None


@dataclass
class ServiceFlags:
    """Common flags of a service and the objects built from them."""

    metrics_addr: str = ""
    syslog: str = ""
    syslog_net: str = ""
    log_level: str = ""
    tag: str = ""
    config: str = ""
    stdin: bool = False

    _check_done: bool = field(default=False, init=False, repr=False)
    _logger_done: bool = field(default=False, init=False, repr=False)
    _logger: Optional[logging.Logger] = field(default=None, init=False, repr=False)

    def init(self, parser: argparse.ArgumentParser, default_tag: str, default_conf: str) -> None:
        """Validate the default tag, fill in defaults and add the flags to ``parser``."""
        valid_tag(default_tag)

        if not self.syslog_net:
            self.syslog_net = "udp"
        if not self.log_level:
            self.log_level = "debug"

        if default_tag:
            self.tag = default_tag
        if default_conf:
            self.config = default_conf

        parser.add_argument("-m", "--metrics", dest="metrics_addr", default=self.metrics_addr,
                            help="address to serve metrics API from")
        parser.add_argument("--syslog", dest="syslog", default=self.syslog,
                            help="address in which to dial to syslog server")
        parser.add_argument("--syslog-net", dest="syslog_net", default=self.syslog_net,
                            help="network in which to dial to syslog server")
        parser.add_argument("--syslog-lvl", dest="log_level", default=self.log_level,
                            help="minimum log level to report")
        parser.add_argument("--tag", dest="tag", default=self.tag,
                            help="tag used for logging and metrics")

        if default_conf:
            parser.add_argument("-c", "--config", dest="config", default=self.config,
                                help="location of config file (STDIN to read from standard input)")
            parser.add_argument("--stdin", dest="stdin", action="store_true", default=self.stdin,
                                help="whether to read config via stdin")

    def apply_args(self, namespace: argparse.Namespace) -> None:
        """Copy parsed flag values onto these service flags."""
        for name in ("metrics_addr", "syslog", "syslog_net", "log_level", "tag", "config", "stdin"):
            if hasattr(namespace, name):
                setattr(self, name, getattr(namespace, name))

    def check(self) -> None:
        """Validate the flags; only the first call does any checking."""
        if self._check_done:
            return
        self._check_done = True

        if self.syslog and self.syslog_net not in _SYSLOG_NETS:
            raise InvalidSyslogNetError(f"{ERR_INVALID_SYSLOG_NET}: {self.syslog_net}")

        try:
            level_from_string(self.log_level)
        except InvalidLogStringError:
            raise InvalidLogStringError(f"{ERR_INVALID_LOG_STRING}: {self.log_level}") from None

        try:
            valid_tag(self.tag)
        except TagError as exc:
            raise TagError(f"{exc}: {self.tag}") from None

    def _syslog_handler(self) -> logging.Handler:
        if self.syslog_net == "unix":
            return _Syslog(address=self.syslog)
        host, _, port = self.syslog.rpartition(":")
        socktype = socket.SOCK_STREAM if self.syslog_net == "tcp" else socket.SOCK_DGRAM
        return _Syslog(address=(host or "localhost", int(port)), socktype=socktype)

    def logger(self) -> logging.Logger:
        """The service logger, built once from the flags."""
        if self._logger_done and self._logger is not None:
            return self._logger
        self._logger_done = True

        log = logging.getLogger(self.tag)
        self._logger = log

        log_level, _ = level_from_string(self.log_level)
        log.setLevel(log_level)

        if self.syslog:
            try:
                handler = self._syslog_handler()
            except (OSError, ValueError) as exc:
                log.critical("Failed to connect to syslog daemon. net=%s addr=%s: %s",
                             self.syslog_net, self.syslog, exc)
                raise SystemExit(1) from exc
            handler.ident = f"{self.tag}: "
            handler.setLevel(log_level)
            log.addHandler(handler)

        webhook_url = get_webhook_url_from_env()
        if webhook_url:
            log.addHandler(new_hook(self.tag, webhook_url, *get_default_opts()))

        return log

    def _read_config_source(self, args: list[str], check_args: bool) -> str:
        if self.stdin or self.config.lower() == STDIN_CONFIG:
            return sys.stdin.read()

        if check_args:
            if len(args) != 1:
                for i, arg in enumerate(args):
                    if arg.endswith(".json") and i > 0 and not args[i - 1].startswith("-"):
                        return self._read_file(arg)
        elif self.config:
            return self._read_file(self.config)

        raise ValueError("no config location specified")

    @staticmethod
    def _read_file(path: str) -> str:
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            raise OSError(f"failed to open config file: {exc}") from exc

    def parse_config(self, args: list[str], check_args: bool) -> Any:
        """Read and decode the JSON config.

        With ``check_args`` set, the config path is looked for among ``args``.
        """
        text = self._read_config_source(args, check_args)
        try:
            value = json.loads(text)
        except ValueError as exc:
            raise ValueError(f"failed to decode config file: {exc}") from exc

        self.logger().info("Read config: %s", json.dumps(value, indent="\t"))
        return value