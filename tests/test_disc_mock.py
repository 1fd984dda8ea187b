import time

import pytest

from dmsg.cipher import CipherError, generate_key_pair
from dmsg.disc_mock import MockClient
from dmsg.entry import (
    ERR_VALIDATION_WRONG_SEQUENCE,
    ERR_VALIDATION_WRONG_TIME,
    DiscError,
    new_client_entry,
    new_server_entry,
)


@pytest.fixture(scope="module")
def keys():
    return generate_key_pair()


def test_post_then_entry_returns_copy(keys):
    pk, sk = keys
    mock = MockClient()
    entry = new_client_entry(pk, 0, [pk])
    entry.sign(sk)
    mock.post_entry(entry)

    got = mock.entry(pk)
    assert got == entry
    got.client.delegated_servers.clear()
    got.sequence = 42
    assert mock.entry(pk) == entry


def test_missing_entry_message(keys):
    pk, _ = keys
    with pytest.raises(DiscError) as excinfo:
        MockClient().entry(pk)
    assert str(excinfo.value) == "status code: 404. message: entry of public key is not found"


def test_post_rejects_wrong_sequence(keys):
    pk, sk = keys
    mock = MockClient()
    first = new_client_entry(pk, 1, None)
    first.sign(sk)
    mock.post_entry(first)

    second = new_client_entry(pk, 1, None)
    second.sign(sk)
    with pytest.raises(DiscError) as excinfo:
        mock.post_entry(second)
    assert excinfo.value == ERR_VALIDATION_WRONG_SEQUENCE


def test_post_rejects_older_timestamp(keys):
    pk, sk = keys
    mock = MockClient()
    first = new_client_entry(pk, 0, None)
    first.sign(sk)
    mock.post_entry(first)

    second = new_client_entry(pk, 1, None)
    second.timestamp = first.timestamp - 3
    second.sign(sk)
    with pytest.raises(DiscError) as excinfo:
        mock.post_entry(second)
    assert excinfo.value == ERR_VALIDATION_WRONG_TIME


def test_post_rejects_bad_signature(keys):
    pk, sk = keys
    _, other_sk = generate_key_pair()
    mock = MockClient()
    first = new_client_entry(pk, 0, None)
    first.sign(sk)
    mock.post_entry(first)

    second = new_client_entry(pk, 1, None)
    second.sign(other_sk)
    with pytest.raises(CipherError):
        mock.post_entry(second)
    assert mock.entry(pk).sequence == 0


def test_put_entry_increments(keys):
    pk, sk = keys
    mock = MockClient()
    entry = new_client_entry(pk, 0, None)
    mock.put_entry(sk, entry)
    assert entry.sequence == 1
    assert mock.entry(pk) == entry

    mock.put_entry(sk, entry)
    assert entry.sequence == 2
    assert mock.entry(pk).sequence == 2


def test_put_entry_recovers_from_stale_sequence(keys):
    pk, sk = keys
    mock = MockClient()
    remote = new_client_entry(pk, 5, None)
    remote.sign(sk)
    mock.post_entry(remote)

    local = new_client_entry(pk, 2, None)
    mock.put_entry(sk, local)
    assert local.sequence == remote.sequence + 1
    assert mock.entry(pk) == local


def test_available_servers_only_lists_servers(keys):
    pk, sk = keys
    server_pk, server_sk = generate_key_pair()
    mock = MockClient()
    client_entry = new_client_entry(pk, 0, None)
    client_entry.sign(sk)
    server_entry = new_server_entry(server_pk, 0, "10.0.0.1:8080", 2)
    server_entry.sign(server_sk)
    mock.post_entry(client_entry)
    mock.post_entry(server_entry)

    assert mock.available_servers() == [server_entry]


def test_entries_expire_after_timeout(keys):
    pk, sk = keys
    mock = MockClient(timeout=0.05)
    entry = new_client_entry(pk, 0, None)
    entry.sign(sk)
    mock.post_entry(entry)
    assert mock.entry(pk) == entry

    time.sleep(0.3)
    with pytest.raises(DiscError):
        mock.entry(pk)