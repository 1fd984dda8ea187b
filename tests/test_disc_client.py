import json

import httpx
import pytest

from dmsg.cipher import generate_key_pair
from dmsg.disc_client import HTTPClient, new_http
from dmsg.entry import (
    ERR_KEY_NOT_FOUND,
    ERR_NO_AVAILABLE_SERVERS,
    ERR_UNAUTHORIZED,
    ERR_UNEXPECTED,
    ERR_VALIDATION_WRONG_SEQUENCE,
    DiscError,
    Entry,
    new_client_entry,
    new_server_entry,
)
from dmsg.http_message import MSG_ENTRY_SET, MSG_ENTRY_UPDATED, HTTPMessage

ADDRESS = "http://disc.example.com"


@pytest.fixture(scope="module")
def keys():
    return generate_key_pair()


def _client(handler):
    return new_http(ADDRESS, httpx.MockTransport(handler))


def _error(code, err):
    return httpx.Response(code, json=HTTPMessage(message=str(err), code=code).to_dict())


def test_new_http_keeps_address():
    client = new_http(ADDRESS)
    assert isinstance(client, HTTPClient)
    assert client.address == ADDRESS
    client.close()


def test_entry_success(keys):
    pk, sk = keys
    stored = new_client_entry(pk, 3, [pk])
    stored.sign(sk)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=stored.to_dict())

    with _client(handler) as client:
        got = client.entry(pk)
    assert got == stored
    assert seen[0].method == "GET"
    assert seen[0].url.path == f"/dmsg-discovery/entry/{pk.hex()}"
    assert seen[0].headers["connection"] == "keep-alive"


def test_entry_not_found(keys):
    pk, _ = keys
    with _client(lambda request: _error(404, ERR_KEY_NOT_FOUND)) as client:
        with pytest.raises(DiscError) as excinfo:
            client.entry(pk)
    assert excinfo.value == ERR_KEY_NOT_FOUND


def test_post_entry_sends_json_with_timeout(keys):
    pk, sk = keys
    entry = new_server_entry(pk, 0, "10.0.0.1:8080", 5)
    entry.sign(sk)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=MSG_ENTRY_SET.to_dict())

    with _client(handler) as client:
        client.post_entry(entry)
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/dmsg-discovery/entry/"
    assert request.url.params["timeout"] == "true"
    assert request.headers["content-type"] == "application/json"
    assert Entry.from_dict(json.loads(request.content)) == entry


def test_post_entry_maps_errors(keys):
    pk, sk = keys
    entry = new_client_entry(pk, 0, None)
    entry.sign(sk)
    with _client(lambda request: _error(401, ERR_UNAUTHORIZED)) as client:
        with pytest.raises(DiscError) as excinfo:
            client.post_entry(entry)
    assert excinfo.value == ERR_UNAUTHORIZED


def test_post_entry_unknown_message_is_unexpected(keys):
    pk, sk = keys
    entry = new_client_entry(pk, 0, None)
    entry.sign(sk)
    with _client(lambda request: httpx.Response(500, json={"message": "weird", "code": 500})) as client:
        with pytest.raises(DiscError) as excinfo:
            client.post_entry(entry)
    assert excinfo.value == ERR_UNEXPECTED


def test_put_entry_increments_and_signs(keys):
    pk, sk = keys
    entry = new_client_entry(pk, 0, None)
    posted = []

    def handler(request):
        posted.append(Entry.from_dict(json.loads(request.content)))
        return httpx.Response(200, json=MSG_ENTRY_UPDATED.to_dict())

    with _client(handler) as client:
        client.put_entry(sk, entry)
    assert entry.sequence == 1
    assert posted == [entry]
    entry.verify_signature()
    assert entry.signature


def test_put_entry_retries_on_wrong_sequence(keys):
    pk, sk = keys
    remote = new_client_entry(pk, 5, None)
    remote.timestamp = 1
    calls = []

    def handler(request):
        calls.append(request.method)
        if request.method == "POST":
            body = json.loads(request.content)
            if body["sequence"] <= remote.sequence:
                return _error(422, ERR_VALIDATION_WRONG_SEQUENCE)
            return httpx.Response(200, json=MSG_ENTRY_UPDATED.to_dict())
        return httpx.Response(200, json=remote.to_dict())

    entry = new_client_entry(pk, 1, None)
    with _client(handler) as client:
        client.put_entry(sk, entry)
    assert entry.sequence == remote.sequence + 1
    assert calls == ["POST", "GET", "POST"]


def test_put_entry_drops_update_when_remote_is_newer(keys):
    pk, sk = keys
    remote = new_client_entry(pk, 9, None)
    remote.timestamp = 2**62
    calls = []

    def handler(request):
        calls.append(request.method)
        if request.method == "POST":
            return _error(422, ERR_VALIDATION_WRONG_SEQUENCE)
        return httpx.Response(200, json=remote.to_dict())

    entry = new_client_entry(pk, 1, None)
    with _client(handler) as client:
        client.put_entry(sk, entry)
    assert entry.sequence == remote.sequence
    assert calls == ["POST", "GET"]


def test_put_entry_restores_sequence_on_other_error(keys):
    pk, sk = keys
    entry = new_client_entry(pk, 4, None)
    with _client(lambda request: _error(401, ERR_UNAUTHORIZED)) as client:
        with pytest.raises(DiscError) as excinfo:
            client.put_entry(sk, entry)
    assert excinfo.value == ERR_UNAUTHORIZED
    assert entry.sequence == 4


def test_put_entry_returns_post_error_when_lookup_fails(keys):
    pk, sk = keys

    def handler(request):
        if request.method == "POST":
            return _error(422, ERR_VALIDATION_WRONG_SEQUENCE)
        return _error(404, ERR_KEY_NOT_FOUND)

    entry = new_client_entry(pk, 0, None)
    with _client(handler) as client:
        with pytest.raises(DiscError) as excinfo:
            client.put_entry(sk, entry)
    assert excinfo.value == ERR_VALIDATION_WRONG_SEQUENCE


def test_available_servers(keys):
    pk, sk = keys
    server = new_server_entry(pk, 0, "10.0.0.1:8080", 3)
    server.sign(sk)
    seen = []

    def handler(request):
        seen.append(request.url.path)
        return httpx.Response(200, json=[server.to_dict()])

    with _client(handler) as client:
        servers = client.available_servers()
    assert servers == [server]
    assert seen == ["/dmsg-discovery/available_servers"]


def test_available_servers_null_body_is_empty():
    with _client(lambda request: httpx.Response(200, content=b"null")) as client:
        assert client.available_servers() == []


def test_available_servers_not_found():
    with _client(lambda request: _error(404, ERR_NO_AVAILABLE_SERVERS)) as client:
        with pytest.raises(DiscError) as excinfo:
            client.available_servers()
    assert excinfo.value == ERR_NO_AVAILABLE_SERVERS