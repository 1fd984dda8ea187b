"""In-memory stand-in for a dmsg discovery."""

from __future__ import annotations

import threading
import time

from dmsg.cipher import PubKey, SecKey
from dmsg.disc_client import APIClient
from dmsg.entry import ERR_KEY_NOT_FOUND, DiscError, Entry, copy_entry

HTTP_NOT_FOUND = 404


def _clone(entry: Entry) -> Entry:
    out = Entry()
    copy_entry(out, entry)
    return out


class MockClient(APIClient):
    """Keeps entries in memory; optionally drops entries older than ``timeout`` seconds.

    It approximates the real discovery and does not reply with the exact same errors.
    """

    def __init__(self, timeout: float = 0.0) -> None:
        self.timeout = timeout
        self._entries: dict[PubKey, Entry] = {}
        self._lock = threading.RLock()

    def _get(self, pk: PubKey) -> Entry | None:
        with self._lock:
            return self._entries.get(pk)

    def _expire(self, pk: PubKey) -> None:
        with self._lock:
            entry = self._entries.get(pk)
            if entry is not None and (time.time_ns() - entry.timestamp) / 1e9 > self.timeout:
                del self._entries[pk]

    def _set(self, entry: Entry) -> None:
        with self._lock:
            if self.timeout:
                timer = threading.Timer(self.timeout, self._expire, args=(entry.static,))
                timer.daemon = True
                timer.start()
            self._entries[entry.static] = _clone(entry)

    def entry(self, pk: PubKey) -> Entry:
        stored = self._get(pk)
        if stored is None:
            raise DiscError(f"status code: {HTTP_NOT_FOUND}. message: {ERR_KEY_NOT_FOUND}")
        return _clone(stored)

    def post_entry(self, entry: Entry) -> None:
        previous = self._get(entry.static)
        if previous is not None:
            previous.validate_iteration(entry)
            entry.verify_signature()
        self._set(entry)

    def put_entry(self, sk: SecKey, entry: Entry) -> None:
        self._put_with_retries(sk, entry)

    def available_servers(self) -> list[Entry]:
        with self._lock:
            return [_clone(e) for e in self._entries.values() if e.server is not None]