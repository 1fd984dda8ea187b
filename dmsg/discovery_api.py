"""HTTP API of the dmsg discovery service, as a WSGI application."""

from __future__ import annotations

import ipaddress
import json
import logging
from typing import Any, Callable, Iterable, Optional

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from dmsg.cipher import PubKey
from dmsg.entry import (
    ERR_BAD_INPUT,
    ERR_KEY_NOT_FOUND,
    ERR_NO_AVAILABLE_SERVERS,
    ERR_UNAUTHORIZED,
    ERR_UNEXPECTED,
    ERR_VALIDATION_SERVER_ADDRESS,
    Entry,
    EntryValidationError,
)
from dmsg.http_message import MSG_ENTRY_SET, MSG_ENTRY_UPDATED, HTTPMessage
from dmsg.store import DEFAULT_TIMEOUT, Storer

MAX_GET_AVAILABLE_SERVERS_RESULT = 512

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404
HTTP_UNPROCESSABLE_ENTITY = 422
HTTP_INTERNAL_SERVER_ERROR = 500

_API_ERRORS = {
    ERR_KEY_NOT_FOUND: (HTTP_NOT_FOUND, str(ERR_KEY_NOT_FOUND)),
    ERR_UNEXPECTED: (HTTP_INTERNAL_SERVER_ERROR, str(ERR_UNEXPECTED)),
    ERR_UNAUTHORIZED: (HTTP_UNAUTHORIZED, str(ERR_UNAUTHORIZED)),
    ERR_BAD_INPUT: (HTTP_BAD_REQUEST, str(ERR_BAD_INPUT)),
}


def _split_host_port(addr: str) -> tuple[str, str]:
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            raise ValueError(f"address {addr}: missing ']' in address")
        host, rest = addr[1:end], addr[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"address {addr}: missing port in address")
        port = rest[1:]
    else:
        idx = addr.rfind(":")
        if idx < 0:
            raise ValueError(f"address {addr}: missing port in address")
        host, port = addr[:idx], addr[idx + 1:]
        if ":" in host:
            raise ValueError(f"address {addr}: too many colons in address")
    if "[" in port or "]" in port:
        raise ValueError(f"address {addr}: unexpected bracket in port")
    return host, port


def is_loopback_addr(addr: str) -> bool:
    """Whether a host:port address names the loopback interface or an empty host.

    Raises ValueError if the address cannot be split into host and port.
    Host names are not resolved and so are never loopback.
    """
    host, _ = _split_host_port(addr)
    if host == "":
        return True
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped.is_loopback
    return ip.is_loopback


class API:
    """The discovery API; an instance is a WSGI application."""

    def __init__(self, log: Optional[logging.Logger] = None, db: Optional[Storer] = None,
                 test_mode: bool = False) -> None:
        if db is None:
            raise ValueError("cannot create new api without a store.Storer")
        self.log = log if log is not None else logging.getLogger("dmsg_disc")
        self.db = db
        self.test_mode = test_mode
        self._handlers: dict[str, Callable[..., Response]] = {
            "get_entry": self._get_entry,
            "set_entry": self._set_entry,
            "available_servers": self._get_available_servers,
        }
        self._urls = Map([
            Rule("/dmsg-discovery/entry/<pk>", methods=["GET"], endpoint="get_entry"),
            Rule("/dmsg-discovery/entry/", methods=["POST"], endpoint="set_entry"),
            Rule("/dmsg-discovery/entry/<pk>", methods=["POST"], endpoint="set_entry"),
            Rule("/dmsg-discovery/available_servers", methods=["GET"], endpoint="available_servers"),
        ])

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request(environ)
        response = self._dispatch(request)
        self.log.info("%s %s %d", request.method, request.path, response.status_code)
        return response(environ, start_response)

    def _dispatch(self, request: Request) -> Response:
        adapter = self._urls.bind_to_environ(request.environ)
        try:
            endpoint, values = adapter.match()
        except HTTPException as exc:
            return exc.get_response(request.environ)
        try:
            return self._handlers[endpoint](request, **values)
        except Exception:
            self.log.exception("Panic while serving %s %s", request.method, request.path)
            return Response(status=HTTP_INTERNAL_SERVER_ERROR)

    @staticmethod
    def _write_json(code: int, obj: Any) -> Response:
        body = json.dumps(obj, separators=(",", ":"))
        return Response(body, status=code, content_type="application/json")

    def handle_error(self, e: BaseException) -> Response:
        """The JSON response reporting an error."""
        if isinstance(e, EntryValidationError):
            code, msg = HTTP_UNPROCESSABLE_ENTITY, str(e)
        else:
            code, msg = _API_ERRORS.get(e, (HTTP_INTERNAL_SERVER_ERROR, str(ERR_UNEXPECTED)))
        if code != HTTP_NOT_FOUND:
            self.log.warning("%d: %s", code, e)
        return self._write_json(code, HTTPMessage(message=msg, code=code).to_dict())

    def _get_entry(self, request: Request, pk: str) -> Response:
        try:
            static_pk = PubKey.from_text(pk)
        except ValueError:
            return self.handle_error(ERR_BAD_INPUT)
        try:
            entry = self.db.entry(static_pk)
        except Exception as exc:
            return self.handle_error(exc)
        return self._write_json(HTTP_OK, None if entry is None else entry.to_dict())

    def _set_entry(self, request: Request, pk: Optional[str] = None) -> Response:
        timeout = DEFAULT_TIMEOUT if request.args.get("timeout") == "true" else 0.0

        try:
            entry = Entry.from_json(request.get_data())
        except Exception:
            return self.handle_error(ERR_UNEXPECTED)

        if entry.server is not None and not self.test_mode:
            try:
                loopback = is_loopback_addr(entry.server.address)
            except ValueError:
                loopback = False
            if loopback:
                return self.handle_error(ERR_VALIDATION_SERVER_ADDRESS)

        try:
            entry.validate()
        except EntryValidationError as exc:
            return self.handle_error(exc)

        try:
            entry.verify_signature()
        except Exception:
            return self.handle_error(ERR_UNAUTHORIZED)

        try:
            old_entry = self.db.entry(entry.static)
        except Exception as exc:
            if exc != ERR_KEY_NOT_FOUND:
                return self.handle_error(exc)
            try:
                self.db.set_entry(entry, timeout)
            except Exception as set_exc:
                return self.handle_error(set_exc)
            return self._write_json(HTTP_OK, MSG_ENTRY_SET.to_dict())

        try:
            if old_entry is not None:
                old_entry.validate_iteration(entry)
            self.db.set_entry(entry, timeout)
        except Exception as exc:
            return self.handle_error(exc)
        return self._write_json(HTTP_OK, MSG_ENTRY_UPDATED.to_dict())

    def _get_available_servers(self, request: Request) -> Response:
        try:
            entries = self.db.available_servers(MAX_GET_AVAILABLE_SERVERS_RESULT)
        except Exception as exc:
            return self.handle_error(exc)
        if not entries:
            message = HTTPMessage(message=str(ERR_NO_AVAILABLE_SERVERS), code=HTTP_NOT_FOUND)
            return self._write_json(HTTP_NOT_FOUND, message.to_dict())
        return self._write_json(HTTP_OK, [e.to_dict() for e in entries])