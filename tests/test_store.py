import time
from types import SimpleNamespace
from unittest import mock

import pytest
import redis

from dmsg.cipher import generate_key_pair
from dmsg.entry import (
    ERR_KEY_NOT_FOUND,
    ERR_UNAUTHORIZED,
    Client,
    DiscError,
    Entry,
    Server,
)
from dmsg.store import (
    DEFAULT_TIMEOUT,
    DEFAULT_URL,
    MockStore,
    RedisStore,
    StoreConfig,
    default_config,
    new_store,
)


class FakeRedis:
    def __init__(self):
        self.kv = {}
        self.sets = {}
        self.expiries = {}
        self.connection_pool = SimpleNamespace(connection_kwargs={})
        self.ping_error = None

    def ping(self):
        if self.ping_error is not None:
            raise self.ping_error
        return True

    def get(self, name):
        return self.kv.get(name)

    def set(self, name, value, px=None):
        self.kv[name] = value.encode() if isinstance(value, str) else value
        self.expiries[name] = px
        return True

    def sadd(self, name, *values):
        self.sets.setdefault(name, set()).update(values)
        return len(values)

    def srandmember(self, name, number=None):
        members = sorted(self.sets.get(name, set()))
        return [m.encode() for m in members[:number]]

    def mget(self, keys):
        return [self.kv.get(k) for k in keys]


@pytest.fixture
def keys():
    return generate_key_pair()


def server_entry(pk, sessions=3):
    return Entry(
        static=pk,
        timestamp=time.time_ns(),
        server=Server(address="localhost:8080", available_sessions=sessions),
        version="0",
        sequence=1,
    )


def test_default_config():
    conf = default_config()
    assert conf.url == DEFAULT_URL == "redis://localhost:6379"
    assert conf.timeout == DEFAULT_TIMEOUT == 60.0
    assert conf.password == ""


def test_new_store_unknown_name():
    with pytest.raises(ValueError, match="no such store type"):
        new_store("nope", None)


def test_new_store_mock_is_usable(keys):
    pk, sk = keys
    store = new_store("mock", None)
    entry = server_entry(pk)
    entry.sign(sk)
    store.set_entry(entry, 0)
    assert isinstance(store, MockStore)
    assert store.entry(pk) == entry


def test_mock_missing_entry(keys):
    with pytest.raises(DiscError) as info:
        MockStore().entry(keys[0])
    assert info.value == ERR_KEY_NOT_FOUND


def test_mock_unsigned_entry_is_unauthorized(keys):
    store = MockStore()
    store.set_entry(server_entry(keys[0]), 0)
    with pytest.raises(DiscError) as info:
        store.entry(keys[0])
    assert info.value == ERR_UNAUTHORIZED


def test_mock_available_servers_only_servers(keys):
    pk, sk = keys
    other_pk, other_sk = generate_key_pair()
    store = MockStore()
    srv = server_entry(pk)
    srv.sign(sk)
    cli = Entry(static=other_pk, timestamp=time.time_ns(), client=Client([pk]), version="0")
    cli.sign(other_sk)
    store.set_entry(srv, 0)
    store.set_entry(cli, 0)
    assert store.available_servers(10) == [srv]


def test_mock_clear(keys):
    pk, sk = keys
    store = MockStore()
    entry = server_entry(pk)
    entry.sign(sk)
    store.set_entry(entry, 0)
    store.clear()
    assert store.available_servers(10) == []
    with pytest.raises(DiscError):
        store.entry(pk)


def test_redis_store_client_entry(keys):
    pk, sk = keys
    store = RedisStore(FakeRedis(), 0)
    entry = Entry(
        static=pk,
        timestamp=time.time_ns(),
        client=Client(delegated_servers=[pk]),
        version="0",
        sequence=1,
    )
    entry.sign(sk)
    store.set_entry(entry, 0)
    assert store.entry(pk) == entry
    assert store.available_servers(2) == []


def test_redis_store_server_entry(keys):
    pk, sk = keys
    store = RedisStore(FakeRedis(), 0)
    entry = server_entry(pk)
    entry.sign(sk)
    store.set_entry(entry, 0)
    assert store.entry(pk) == entry
    assert len(store.available_servers(2)) == 1
    store.set_entry(entry, 0)
    assert len(store.available_servers(2)) == 1


def test_redis_store_missing_entry(keys):
    with pytest.raises(DiscError) as info:
        RedisStore(FakeRedis(), 0).entry(keys[0])
    assert info.value == ERR_KEY_NOT_FOUND


def test_redis_store_timeout_is_milliseconds(keys):
    pk, sk = keys
    fake = FakeRedis()
    store = RedisStore(fake, 0)
    entry = server_entry(pk)
    entry.sign(sk)
    store.set_entry(entry, 60.0)
    assert fake.expiries[pk.hex()] == 60000
    store.set_entry(entry, 0)
    assert fake.expiries[pk.hex()] is None


def test_redis_store_skips_full_servers(keys):
    pk, sk = keys
    store = RedisStore(FakeRedis(), 0)
    entry = server_entry(pk, sessions=0)
    entry.sign(sk)
    store.set_entry(entry, 0)
    assert store.available_servers(5) == []


def test_new_store_redis_sets_password(keys):
    pk, sk = keys
    fake = FakeRedis()
    password = "password"
    with mock.patch("redis.Redis.from_url", return_value=fake) as from_url:
        store = new_store("redis", StoreConfig(url="redis://localhost:6379", password=password))
    from_url.assert_called_once_with("redis://localhost:6379")
    assert fake.connection_pool.connection_kwargs["password"] == "password"
    entry = server_entry(pk)
    entry.sign(sk)
    store.set_entry(entry, 0)
    assert store.entry(pk) == entry


def test_new_store_redis_ping_failure():
    fake = FakeRedis()
    fake.ping_error = redis.ConnectionError("refused")
    with mock.patch("redis.Redis.from_url", return_value=fake):
        with pytest.raises(redis.ConnectionError):
            new_store("redis", None)