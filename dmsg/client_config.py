"""Configuration of a dmsg client entity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_DISC_ADDR = "http://dmsg.discovery.skywire.cc"
DEFAULT_MIN_SESSIONS = 1
DEFAULT_UPDATE_INTERVAL = 15.0  # seconds between discovery entry updates
DEFAULT_MAX_SESSIONS = 100

SERVE_WAIT = 1.0  # seconds

SessionDialCallback = Callable[[str, str], None]
SessionDisconnectCallback = Callable[[str, str, Optional[BaseException]], None]


def _accept_dial(network: str, addr: str) -> None:
    return None


def _ignore_disconnect(network: str, addr: str, err: Optional[BaseException]) -> None:
    return None


@dataclass
class ClientCallbacks:
    """Callbacks a client triggers around sessions.

    ``on_session_dial`` runs before a session is dialed; raising aborts the dial.
    ``on_session_disconnect`` runs after a session is closed.
    """

    on_session_dial: Optional[SessionDialCallback] = None
    on_session_disconnect: Optional[SessionDisconnectCallback] = None

    def ensure(self) -> None:
        """Replace missing callbacks with no-ops."""
        if self.on_session_dial is None:
            self.on_session_dial = _accept_dial
        if self.on_session_disconnect is None:
            self.on_session_disconnect = _ignore_disconnect


@dataclass
class Config:
    """Client configuration; zero values are replaced by defaults in ``ensure``."""

    min_sessions: int = 0
    update_interval: float = 0.0
    callbacks: Optional[ClientCallbacks] = None

    def ensure(self) -> None:
        if self.min_sessions == 0:
            self.min_sessions = DEFAULT_MIN_SESSIONS
        if self.update_interval == 0:
            self.update_interval = DEFAULT_UPDATE_INTERVAL
        if self.callbacks is None:
            self.callbacks = ClientCallbacks()
        self.callbacks.ensure()


def default_config() -> Config:
    return Config(min_sessions=DEFAULT_MIN_SESSIONS, update_interval=DEFAULT_UPDATE_INTERVAL)