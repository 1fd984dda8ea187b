"""Stop events triggered by termination signals."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Any, Optional

_SIGNAL_NAMES = ("SIGINT", "SIGTERM", "SIGQUIT")


def signal_event(log: Optional[logging.Logger] = None) -> threading.Event:
    """Return an event that is set when SIGINT, SIGTERM or SIGQUIT is received.

    Setting the event directly stands in for cancelling. Must be called from
    the main thread.
    """
    if log is None:
        log = logging.getLogger(__name__)

    event = threading.Event()

    def _handler(signum: int, frame: Any) -> None:
        log.info("Closing with received signal. signal=%s", signal.Signals(signum).name)
        event.set()

    for name in _SIGNAL_NAMES:
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, _handler)

    return event