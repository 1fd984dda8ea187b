"""Helpers for command-line entry points."""

from __future__ import annotations

import logging
import posixpath
import sys
from typing import Any


def _first_error(values: tuple[Any, ...]) -> BaseException | None:
    for value in values:
        if isinstance(value, BaseException):
            return value
    return None


def catch(*args: Any) -> None:
    """Raise the first exception instance among the arguments, if any."""
    catch_with_msg("", *args)


def catch_with_msg(msg: str, *args: Any) -> None:
    """Raise the first exception among the arguments, prefixed by a message if given."""
    err = _first_error(args)
    if err is None:
        return
    if not msg:
        raise err
    prefix = msg.strip().removesuffix(":")
    raise RuntimeError(f"{prefix}: {err}") from err


def catch_with_log(log: logging.Logger, msg: str, *args: Any) -> None:
    """Log the first exception among the arguments as critical and exit with status 1."""
    err = _first_error(args)
    if err is None:
        return
    log.critical("%s: %s", msg, err)
    raise SystemExit(1)


def root_cmd_name() -> str:
    """Base name of the running program."""
    name = sys.argv[0] if sys.argv else ""
    if not name:
        return "."
    stripped = name.rstrip("/")
    if not stripped:
        return "/"
    return posixpath.basename(stripped)