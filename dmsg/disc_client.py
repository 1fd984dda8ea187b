"""Client for the dmsg discovery service."""

from __future__ import annotations

import abc
import logging
import threading
import time
from typing import Any, Optional

import httpx

from dmsg.cipher import PubKey, SecKey
from dmsg.entry import ERR_VALIDATION_WRONG_SEQUENCE, Entry, err_from_string
from dmsg.http_message import HTTP_OK, HTTPMessage

log = logging.getLogger("disc")


class APIClient(abc.ABC):
    """Operations offered by a dmsg discovery."""

    @abc.abstractmethod
    def entry(self, public_key: PubKey) -> Entry:
        """Fetch the entry of a public key."""

    @abc.abstractmethod
    def post_entry(self, entry: Entry) -> None:
        """Store an entry."""

    @abc.abstractmethod
    def put_entry(self, sk: SecKey, entry: Entry) -> None:
        """Advance, sign and store an entry."""

    @abc.abstractmethod
    def available_servers(self) -> list[Entry]:
        """List the entries of available servers."""

    def _put_with_retries(self, sk: SecKey, entry: Entry) -> None:
        """Bump the sequence, sign and post, resolving sequence conflicts with the remote entry."""
        entry.sequence += 1
        entry.timestamp = time.time_ns()
        while True:
            entry.sign(sk)
            try:
                self.post_entry(entry)
                return
            except Exception as err:
                if err != ERR_VALIDATION_WRONG_SEQUENCE:
                    entry.sequence -= 1
                    raise
                try:
                    remote = self.entry(entry.static)
                except Exception:
                    raise err from None
            if remote.timestamp > entry.timestamp:
                # A more recent entry is already stored; drop this update.
                entry.sequence = remote.sequence
                return
            entry.sequence = remote.sequence + 1


class HTTPClient(APIClient):
    """Talks to a dmsg discovery over HTTP."""

    def __init__(self, address: str, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.address = address
        self._http = httpx.Client(transport=transport)
        self._update_lock = threading.Lock()

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _raise_for_message(resp: httpx.Response) -> None:
        if resp.status_code != HTTP_OK:
            message = HTTPMessage.from_dict(resp.json())
            raise err_from_string(message.message)

    def entry(self, public_key: PubKey) -> Entry:
        endpoint = f"{self.address}/dmsg-discovery/entry/{public_key}"
        resp = self._http.get(endpoint, headers={"Connection": "keep-alive"})
        self._raise_for_message(resp)
        return Entry.from_dict(resp.json())

    def post_entry(self, entry: Entry) -> None:
        endpoint = f"{self.address}/dmsg-discovery/entry/"
        try:
            resp = self._http.post(
                endpoint,
                content=entry.to_json().encode(),
                params={"timeout": "true"},
                headers={"Connection": "keep-alive", "Content-Type": "application/json"},
            )
        except httpx.HTTPError:
            log.exception("Failed to perform request.")
            raise
        if resp.status_code != HTTP_OK:
            message = HTTPMessage.from_dict(resp.json())
            log.error("resp_body=%s resp_status=%d", message.message, resp.status_code)
            raise err_from_string(message.message)

    def put_entry(self, sk: SecKey, entry: Entry) -> None:
        with self._update_lock:
            self._put_with_retries(sk, entry)

    def available_servers(self) -> list[Entry]:
        endpoint = f"{self.address}/dmsg-discovery/available_servers"
        resp = self._http.get(endpoint, headers={"Connection": "keep-alive"})
        self._raise_for_message(resp)
        data = resp.json()
        return [Entry.from_dict(item) for item in data or []]


def new_http(address: str, transport: Optional[httpx.BaseTransport] = None) -> HTTPClient:
    """Create a discovery client that talks HTTP to ``address``."""
    log.debug("Created HTTP client. addr=%s", address)
    return HTTPClient(address, transport)