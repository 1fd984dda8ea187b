"""Storage back ends of the dmsg discovery service."""

from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import redis

from dmsg.cipher import PubKey
from dmsg.entry import (
    ERR_KEY_NOT_FOUND,
    ERR_UNAUTHORIZED,
    ERR_UNEXPECTED,
    DiscError,
    Entry,
)

log = logging.getLogger("store")

DEFAULT_URL = "redis://localhost:6379"
DEFAULT_TIMEOUT = 60.0  # seconds; 0 means entries never expire

SERVERS_KEY = "servers"

_NO_PASSWORD = ""


def _new(err: DiscError) -> DiscError:
    """A fresh instance equal to ``err``, safe to raise."""
    return type(err)(*err.args)


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)


class Storer(abc.ABC):
    """A store of discovery entries."""

    @abc.abstractmethod
    def entry(self, static_pub_key: PubKey) -> Optional[Entry]:
        """Obtain the entry of a static public key."""

    @abc.abstractmethod
    def set_entry(self, entry: Entry, timeout: float) -> None:
        """Store an entry without checking its signature; ``timeout`` of 0 means no expiry."""

    @abc.abstractmethod
    def available_servers(self, max_count: int) -> list[Entry]:
        """List entries of available dmsg servers."""


@dataclass
class StoreConfig:
    """Settings of a store."""

    url: str = DEFAULT_URL
    password: str = _NO_PASSWORD
    timeout: float = DEFAULT_TIMEOUT


def default_config() -> StoreConfig:
    return StoreConfig(url=DEFAULT_URL, timeout=DEFAULT_TIMEOUT)


class MockStore(Storer):
    """An in-memory store; timeouts are ignored and every server is returned."""

    def __init__(self) -> None:
        self._entries: dict[str, bytes] = {}
        self._servers: dict[str, bytes] = {}
        self._lock = threading.RLock()

    def entry(self, static_pub_key: PubKey) -> Entry:
        with self._lock:
            payload = self._entries.get(static_pub_key.hex())
        if payload is None:
            raise _new(ERR_KEY_NOT_FOUND)
        try:
            entry = Entry.from_json(payload)
        except (ValueError, TypeError, AttributeError):
            raise _new(ERR_UNEXPECTED) from None
        try:
            entry.verify_signature()
        except (ValueError, TypeError):
            raise _new(ERR_UNAUTHORIZED) from None
        return entry

    def set_entry(self, entry: Entry, timeout: float) -> None:
        payload = entry.to_json().encode()
        key = entry.static.hex()
        with self._lock:
            self._entries[key] = payload
            if entry.server is not None:
                self._servers[key] = payload

    def clear(self) -> None:
        """Drop all stored data."""
        with self._lock:
            self._entries = {}
            self._servers = {}

    def available_servers(self, max_count: int) -> list[Entry]:
        with self._lock:
            payloads = list(self._servers.values())
        try:
            return [Entry.from_json(payload) for payload in payloads]
        except (ValueError, TypeError, AttributeError):
            raise _new(ERR_UNEXPECTED) from None


class RedisStore(Storer):
    """A store kept in redis; server keys are tracked in a set."""

    def __init__(self, client: Any, timeout: float = 0.0) -> None:
        self._client = client
        self.timeout = timeout

    def entry(self, static_pub_key: PubKey) -> Optional[Entry]:
        try:
            payload = self._client.get(static_pub_key.hex())
        except redis.RedisError as exc:
            log.error("Failed to get entry from redis. pk=%s: %s", static_pub_key, exc)
            raise _new(ERR_UNEXPECTED) from exc
        if payload is None:
            raise _new(ERR_KEY_NOT_FOUND)
        try:
            return Entry.from_json(payload)
        except (ValueError, TypeError, AttributeError) as exc:
            log.warning("Failed to unmarshal payload %r: %s", payload, exc)
            return None

    def set_entry(self, entry: Entry, timeout: float) -> None:
        payload = entry.to_json()
        expiry_ms = int(timeout * 1000) if timeout > 0 else None
        try:
            self._client.set(entry.static.hex(), payload, px=expiry_ms)
        except redis.RedisError as exc:
            log.error("Failed to set entry in redis: %s", exc)
            raise _new(ERR_UNEXPECTED) from exc
        if entry.server is not None:
            try:
                self._client.sadd(SERVERS_KEY, entry.static.hex())
            except redis.RedisError as exc:
                raise _new(ERR_UNEXPECTED) from exc

    def available_servers(self, max_count: int) -> list[Entry]:
        try:
            pks = self._client.srandmember(SERVERS_KEY, max_count)
        except redis.RedisError as exc:
            log.error("Failed to get servers (SRANDMEMBER) from redis: %s", exc)
            raise _new(ERR_UNEXPECTED) from exc
        if not pks:
            return []
        try:
            payloads = self._client.mget([_text(pk) for pk in pks])
        except redis.RedisError as exc:
            log.error("Failed to get servers (MGET) from redis: %s", exc)
            raise _new(ERR_UNEXPECTED) from exc

        entries: list[Entry] = []
        for payload in payloads:
            if payload is None:
                continue
            try:
                entry = Entry.from_json(payload)
            except (ValueError, TypeError, AttributeError) as exc:
                log.warning("Failed to unmarshal payload %r: %s", payload, exc)
                continue
            if entry.server is None or entry.server.available_sessions <= 0:
                log.warning("Server is at max capacity. Skipping... server_pk=%s", entry.static)
                continue
            entries.append(entry)
        return entries


def _new_redis(url: str, password: str, timeout: float) -> RedisStore:
    client = redis.Redis.from_url(url)
    client.connection_pool.connection_kwargs["password"] = password or None
    client.ping()
    return RedisStore(client, timeout)


def new_store(name: str, conf: Optional[StoreConfig] = None) -> Storer:
    """Create the store called ``name``: "mock" or "redis"."""
    if conf is None:
        conf = default_config()
    if name == "mock":
        return MockStore()
    if name == "redis":
        return _new_redis(conf.url, conf.password, conf.timeout)
    raise ValueError("no such store type")