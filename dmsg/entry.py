"""Discovery entries: the signed records dmsg clients and servers advertise."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from dmsg.cipher import PubKey, SecKey, Sig, sign_payload, verify_pub_key_signed_payload

log = logging.getLogger("disc")

CURRENT_VERSION = "0.0.1"
ENTRY_LIFETIME_NS = 60 * 1_000_000_000
ALLOWED_ENTRY_TIMESTAMP_ERROR_NS = 5 * 1_000_000_000


class DiscError(Exception):
    """An error reported by or to the discovery service.

    Errors compare equal when they are of the same class with the same arguments,
    so a received error can be matched against the module constants.
    """

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiscError):
            return NotImplemented
        return type(self) is type(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class EntryValidationError(DiscError):
    """An entry holds invalid data."""

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause

    def __str__(self) -> str:
        return f"entry validation error: {self.cause}"


ERR_KEY_NOT_FOUND = DiscError("entry of public key is not found")
ERR_NO_AVAILABLE_SERVERS = DiscError("no delegated dmsg servers available for remote")
ERR_UNEXPECTED = DiscError("something unexpected happened")
ERR_UNAUTHORIZED = DiscError("invalid signature")
ERR_BAD_INPUT = DiscError("error bad input")
ERR_VALIDATION_NON_ZERO_SEQUENCE = EntryValidationError("new entry has non-zero sequence")
ERR_VALIDATION_NIL_EPHEMERALS = EntryValidationError("entry of client instance has nil ephemeral keys")
ERR_VALIDATION_NIL_KEYS = EntryValidationError("entry Keys is nil")
ERR_VALIDATION_NON_NIL_EPHEMERALS = EntryValidationError(
    "entry of server instance has non nil Keys.Ephemerals field"
)
ERR_VALIDATION_NO_SIGNATURE = EntryValidationError("entry has no signature")
ERR_VALIDATION_NO_VERSION = EntryValidationError("entry has no version")
ERR_VALIDATION_NO_CLIENT_OR_SERVER = EntryValidationError("entry has neither client or server field")
ERR_VALIDATION_WRONG_SEQUENCE = EntryValidationError(
    "sequence field of new entry is not sequence of old entry + 1"
)
ERR_VALIDATION_WRONG_TIME = EntryValidationError("advertised entry timestamp is not greater than previous")
ERR_VALIDATION_OUTDATED_TIME = EntryValidationError("advertised entry has outdated timestamp")
ERR_VALIDATION_SERVER_ADDRESS = EntryValidationError(
    "advertising localhost listening address is not allowed in production mode"
)
ERR_VALIDATION_EMPTY_SERVER_ADDRESS = EntryValidationError("server address cannot be empty")

_KNOWN_ERRORS = (
    ERR_KEY_NOT_FOUND,
    ERR_NO_AVAILABLE_SERVERS,
    ERR_UNEXPECTED,
    ERR_UNAUTHORIZED,
    ERR_BAD_INPUT,
    ERR_VALIDATION_NON_ZERO_SEQUENCE,
    ERR_VALIDATION_NIL_EPHEMERALS,
    ERR_VALIDATION_NIL_KEYS,
    ERR_VALIDATION_NON_NIL_EPHEMERALS,
    ERR_VALIDATION_NO_SIGNATURE,
    ERR_VALIDATION_NO_VERSION,
    ERR_VALIDATION_NO_CLIENT_OR_SERVER,
    ERR_VALIDATION_WRONG_SEQUENCE,
    ERR_VALIDATION_WRONG_TIME,
    ERR_VALIDATION_OUTDATED_TIME,
    ERR_VALIDATION_SERVER_ADDRESS,
    ERR_VALIDATION_EMPTY_SERVER_ADDRESS,
)
_ERRORS_BY_MESSAGE = {str(err): err for err in _KNOWN_ERRORS}


def _fresh(err: DiscError) -> DiscError:
    """A new instance equal to ``err``, safe to raise."""
    return type(err)(*err.args)


def err_from_string(s: str) -> DiscError:
    """Map an error message back to its error; unknown messages map to ERR_UNEXPECTED."""
    return _fresh(_ERRORS_BY_MESSAGE.get(s, ERR_UNEXPECTED))


def _dump_json(obj: Any) -> str:
    """Compact JSON with HTML-sensitive characters escaped."""
    text = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    for raw, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(raw, escaped)
    return text


@dataclass
class Client:
    """Parameters of an entry advertised as a dmsg client."""

    delegated_servers: Optional[list[PubKey]] = None

    def __str__(self) -> str:
        return "delegated servers: \n" + "".join(f"\t{ds}\n" for ds in self.delegated_servers or [])

    def to_dict(self) -> dict[str, Any]:
        servers = None if self.delegated_servers is None else [pk.hex() for pk in self.delegated_servers]
        return {"delegated_servers": servers}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Client":
        servers = data.get("delegated_servers")
        if servers is None:
            return cls()
        return cls([PubKey.from_text(s) for s in servers])


@dataclass
class Server:
    """Parameters of an entry advertised as a dmsg server."""

    address: str = ""
    available_sessions: int = 0

    def __str__(self) -> str:
        return f"\taddress: {self.address}\n\tavailable sessions: {self.available_sessions}\n"

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "availableSessions": self.available_sessions}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Server":
        return cls(address=data.get("address", ""), available_sessions=data.get("availableSessions", 0))


@dataclass
class Entry:
    """A dmsg node's entry in the discovery database."""

    version: str = ""
    sequence: int = 0
    timestamp: int = 0  # nanoseconds since the epoch
    static: PubKey = field(default_factory=PubKey)
    client: Optional[Client] = None
    server: Optional[Server] = None
    signature: str = ""

    def __str__(self) -> str:
        res = (
            f"\tversion: {self.version}\n"
            f"\tsequence: {self.sequence}\n"
            f"\tregistered at: {self.timestamp}\n"
            f"\tstatic public key: {self.static}\n"
            f"\tsignature: {self.signature}\n"
        )
        if self.client is not None:
            indented = str(self.client).replace("\n\t", "\n\t\t\t")
            res += f"\tentry is registered as client. Related info: \n\t\t{indented}\n"
        if self.server is not None:
            indented = str(self.server).replace("\n\t", "\n\t\t")
            res += f"\tentry is registered as server. Related info: \n\t{indented}\n"
        return res

    def to_dict(self) -> dict[str, Any]:
        """The entry as a JSON-ready dict, with keys in wire order."""
        data: dict[str, Any] = {
            "version": self.version,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "static": self.static.hex(),
        }
        if self.client is not None:
            data["client"] = self.client.to_dict()
        if self.server is not None:
            data["server"] = self.server.to_dict()
        if self.signature:
            data["signature"] = self.signature
        return data

    def to_json(self) -> str:
        return _dump_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        client = data.get("client")
        server = data.get("server")
        static = data.get("static")
        return cls(
            version=data.get("version", ""),
            sequence=data.get("sequence", 0),
            timestamp=data.get("timestamp", 0),
            static=PubKey() if static is None else PubKey.from_text(static),
            client=None if client is None else Client.from_dict(client),
            server=None if server is None else Server.from_dict(server),
            signature=data.get("signature", ""),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> "Entry":
        return cls.from_dict(json.loads(text))

    def _unsigned_payload(self) -> bytes:
        data = self.to_dict()
        data.pop("signature", None)
        return _dump_json(data).encode()

    def verify_signature(self) -> None:
        """Raise CipherError unless the signature was made by the entry's static key."""
        sig = Sig.from_hex(self.signature)
        verify_pub_key_signed_payload(self.static, sig, self._unsigned_payload())

    def sign(self, sk: SecKey) -> None:
        """Sign the entry, replacing any previous signature."""
        self.signature = ""
        self.signature = sign_payload(self._unsigned_payload(), sk).hex()

    def validate(self) -> None:
        """Raise EntryValidationError if the entry is malformed."""
        if not self.version:
            raise _fresh(ERR_VALIDATION_NO_VERSION)
        if not self.signature:
            raise _fresh(ERR_VALIDATION_NO_SIGNATURE)
        if self.static.is_null():
            raise _fresh(ERR_VALIDATION_NIL_KEYS)
        if self.client is None and self.server is None:
            raise _fresh(ERR_VALIDATION_NO_CLIENT_OR_SERVER)
        if self.server is not None and not self.server.address:
            raise _fresh(ERR_VALIDATION_EMPTY_SERVER_ADDRESS)

        now = time.time_ns()
        earliest = now - ENTRY_LIFETIME_NS
        latest = now + ALLOWED_ENTRY_TIMESTAMP_ERROR_NS
        if self.timestamp > latest or self.timestamp < earliest:
            # Clock drift on some nodes is common, so this is only reported.
            log.warning("Entry timestamp %d is not correct (now: %d)", self.timestamp, now)

    def validate_iteration(self, next_entry: "Entry") -> None:
        """Raise EntryValidationError unless ``next_entry`` may succeed this entry."""
        if next_entry.sequence <= self.sequence:
            raise _fresh(ERR_VALIDATION_WRONG_SEQUENCE)
        if next_entry.timestamp < self.timestamp:
            raise _fresh(ERR_VALIDATION_WRONG_TIME)


def new_client_entry(
    pubkey: PubKey, sequence: int, delegated_servers: Optional[list[PubKey]]
) -> Entry:
    """An unsigned client entry stamped with the current time."""
    return Entry(
        version=CURRENT_VERSION,
        sequence=sequence,
        client=Client(delegated_servers),
        static=pubkey,
        timestamp=time.time_ns(),
    )


def new_server_entry(pk: PubKey, seq: int, addr: str, available_sessions: int) -> Entry:
    """An unsigned server entry stamped with the current time."""
    return Entry(
        version=CURRENT_VERSION,
        sequence=seq,
        server=Server(address=addr, available_sessions=available_sessions),
        static=pk,
        timestamp=time.time_ns(),
    )


def copy_entry(dst: Entry, src: Entry) -> None:
    """Deep-copy ``src`` into ``dst``; works with empty entries."""
    dst.server = None if src.server is None else Server(src.server.address, src.server.available_sessions)
    if src.client is None:
        dst.client = None
    else:
        servers = src.client.delegated_servers
        dst.client = Client(None if servers is None else list(servers))
    dst.static = src.static
    dst.signature = src.signature
    dst.version = src.version
    dst.sequence = src.sequence
    dst.timestamp = src.timestamp