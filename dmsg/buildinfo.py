"""Build information for the running binaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

_UNKNOWN = "unknown"

_version = _UNKNOWN
_commit = _UNKNOWN
_date = _UNKNOWN


def _quote(s: str) -> str:
    escaped = s.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def version() -> str:
    """Version from git describe."""
    return _version


def commit() -> str:
    """Commit hash."""
    return _commit


def date() -> str:
    """Build date in RFC 3339 format."""
    return _date


@dataclass
class BuildInfo:
    """Build information summary."""

    version: str
    commit: str
    date: str

    def write_to(self, w: TextIO) -> int:
        """Write the summary line to a text stream and return its length."""
        msg = (
            f"Version {_quote(self.version)} built on {_quote(self.date)} "
            f"against commit {_quote(self.commit)}\n"
        )
        w.write(msg)
        return len(msg)


def get() -> BuildInfo:
    return BuildInfo(version=version(), commit=commit(), date=date())