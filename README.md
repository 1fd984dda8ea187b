# dmsg

Building blocks for a distributed messaging network in which clients and
servers publish signed entries to a discovery service and find one another
through it.

The package provides:

- **`dmsg.cipher`**: secp256k1 public keys, secret keys and signatures
  (`PubKey`, `SecKey`, `Sig`), random and seeded key-pair generation,
  payload signing and verification, and SHA-256 helpers. Errors are raised
  as `CipherError`.
- **`dmsg.entry`**: the discovery `Entry` with its `Client` and `Server`
  parts, JSON encoding, signing, validation and iteration checks, plus the
  discovery errors (`DiscError`, `EntryValidationError` and the `ERR_*`
  constants).
- **`dmsg.http_message`**: the `HTTPMessage` body that the discovery service
  returns for status replies and errors.
- **`dmsg.disc_client`**: an HTTP client for a discovery service
  (`new_http`, `HTTPClient`), and **`dmsg.disc_mock`**: an in-memory
  `MockClient` with the same interface.
- **`dmsg.store`**: storage back ends for a discovery service, an in-memory
  `MockStore` and a Redis-backed `RedisStore`, chosen through `new_store`.
- **`dmsg.discovery_api`**: the discovery service as a WSGI application
  (`API`).
- **`dmsg.client_config`**: client configuration (`Config`,
  `ClientCallbacks`, `default_config`) and its default values.
- **`dmsg.service_flags`**: command-line flags shared by services
  (`ServiceFlags`), tag checking (`valid_tag`) and log-level names
  (`level_from_string`).
- **`dmsg.catch`**, **`dmsg.signals`**, **`dmsg.discord`**,
  **`dmsg.buildinfo`**: error helpers for entry points, a stop event set by
  termination signals, a rate-limited Discord logging handler and build
  information.

## Keys and signatures

```python
from dmsg.cipher import PubKey, generate_key_pair, sign_payload, verify_pub_key_signed_payload

pk, sk = generate_key_pair()
sig = sign_payload(b"hello", sk)
verify_pub_key_signed_payload(pk, sig, b"hello")  # raises CipherError if invalid

assert PubKey.from_hex(pk.hex()) == pk
assert sk.pub_key() == pk
```

`generate_deterministic_key_pair(seed)` always returns the same pair for the
same seed. `PubKey.from_text` treats a text made only of `0` characters as
the null key.

## Discovery entries

```python
from dmsg.cipher import generate_key_pair
from dmsg.entry import Entry, new_server_entry

pk, sk = generate_key_pair()
entry = new_server_entry(pk, 0, "192.0.2.5:8080", 5)
entry.sign(sk)
entry.validate()           # raises EntryValidationError on a malformed entry
entry.verify_signature()   # raises CipherError if the signature does not match

same = Entry.from_json(entry.to_json())
```

A newer entry for the same key must carry a higher sequence and a timestamp
that is not older; `Entry.validate_iteration` checks this. Timestamps are in
nanoseconds; a timestamp far from the current time is only logged as a
warning. `copy_entry(dst, src)` deep-copies one entry into another.

## Storing entries

```python
from dmsg.store import new_store

store = new_store("mock", None)
store.set_entry(entry, 0)
assert store.entry(pk).static == pk   # the stored signature is checked on read
servers = store.available_servers(512)
```

`MockStore` ignores timeouts and returns every stored server.
`new_store("redis", conf)` connects to Redis using a `StoreConfig`; by
default it uses `redis://localhost:6379` with a one-minute entry timeout.
`RedisStore` keeps server keys in a set, returns up to `max_count` of them at
random and skips servers with no available sessions.

## Talking to a discovery service

`new_http(address, transport)` returns an `HTTPClient` whose `entry`,
`post_entry`, `put_entry` and `available_servers` methods call the endpoints
under `/dmsg-discovery/`. Error replies are turned back into the matching
`DiscError` or `EntryValidationError`. `put_entry` raises the sequence,
refreshes the timestamp and signs; when the service reports a sequence
conflict it fetches the stored entry, and either gives up the update (the
stored one is newer) or retries with the next sequence.

`MockClient` offers the same methods in memory, optionally dropping entries
older than its `timeout` in seconds.

## Serving discovery

`API(log, db, test_mode)` is a WSGI application with these routes:

| Method | Path                                  | Purpose                   |
|--------|---------------------------------------|---------------------------|
| GET    | `/dmsg-discovery/entry/{pk}`          | fetch an entry            |
| POST   | `/dmsg-discovery/entry/`              | create or update an entry |
| POST   | `/dmsg-discovery/entry/{pk}`          | create or update an entry |
| GET    | `/dmsg-discovery/available_servers`   | list stored servers       |

```python
from wsgiref.simple_server import make_server

from dmsg.discovery_api import API
from dmsg.store import new_store

app = API(db=new_store("mock", None))
make_server("127.0.0.1", 9090, app).serve_forever()
```

Posting with `?timeout=true` stores the entry with the default timeout.
Outside test mode, server entries with a loopback or empty host are refused.
Validation failures are answered with status 422, unknown keys with 404, bad
signatures with 401, malformed keys with 400 and other failures with 500,
each as an `HTTPMessage` JSON body; an empty server list is a 404.

## Service helpers

`ServiceFlags.init(parser, default_tag, default_conf)` adds `--metrics`,
`--syslog`, `--syslog-net`, `--syslog-lvl`, `--tag` and, when a default
config is given, `--config` and `--stdin` to an `argparse` parser.
`apply_args` copies parsed values back, `check` validates them, `logger`
builds a logger (with a syslog handler when `--syslog` is set and a Discord
handler when `DISCORD_WEBHOOK_URL` is set) and `parse_config` reads a JSON
config from standard input or a file.

`signal_event()` returns a `threading.Event` set on SIGINT, SIGTERM or
SIGQUIT. `catch`, `catch_with_msg` and `catch_with_log` raise, or log and
exit, on the first exception passed to them. `buildinfo.get().write_to(stream)`
writes a one-line version summary.

## What this package does not do

It has no dmsg client or server: it does not open sessions or streams
between peers, and `dmsg.client_config` only holds a client's settings. It
installs no commands; the discovery service runs only when its `API` is
mounted in a WSGI server of your choosing. It serves no metrics and no
health endpoint, even though `ServiceFlags` accepts a `--metrics` address.