"""Keys, signatures and hashes on the secp256k1 curve.

Public keys are 33-byte compressed points, secret keys 32-byte scalars and
signatures 65-byte compact recoverable ECDSA signatures (r, s, recovery id).
Payloads are signed by their SHA256 digest.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence, Tuple, Union

PUB_KEY_LEN = 33
SEC_KEY_LEN = 32
SIG_LEN = 65
SHA256_LEN = 32

_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)

_Affine = Optional[Tuple[int, int]]
_Jacobian = Tuple[int, int, int]
_INFINITY: _Jacobian = (0, 1, 0)


class CipherError(ValueError):
    """Raised for malformed keys, signatures or failed verification."""


# --- curve arithmetic -------------------------------------------------------


def _to_jacobian(point: _Affine) -> _Jacobian:
    if point is None:
        return _INFINITY
    return (point[0], point[1], 1)


def _to_affine(point: _Jacobian) -> _Affine:
    x, y, z = point
    if z == 0:
        return None
    z_inv = pow(z, -1, _P)
    z_inv2 = z_inv * z_inv % _P
    return (x * z_inv2 % _P, y * z_inv2 * z_inv % _P)


def _double(point: _Jacobian) -> _Jacobian:
    x, y, z = point
    if z == 0 or y == 0:
        return _INFINITY
    yy = y * y % _P
    s = 4 * x * yy % _P
    m = 3 * x * x % _P
    x3 = (m * m - 2 * s) % _P
    y3 = (m * (s - x3) - 8 * yy * yy) % _P
    z3 = 2 * y * z % _P
    return (x3, y3, z3)


def _add(p1: _Jacobian, p2: _Jacobian) -> _Jacobian:
    if p1[2] == 0:
        return p2
    if p2[2] == 0:
        return p1
    x1, y1, z1 = p1
    x2, y2, z2 = p2
    z1z1 = z1 * z1 % _P
    z2z2 = z2 * z2 % _P
    u1 = x1 * z2z2 % _P
    u2 = x2 * z1z1 % _P
    s1 = y1 * z2 * z2z2 % _P
    s2 = y2 * z1 * z1z1 % _P
    if u1 == u2:
        return _double(p1) if s1 == s2 else _INFINITY
    h = (u2 - u1) % _P
    r = (s2 - s1) % _P
    hh = h * h % _P
    hhh = h * hh % _P
    u1hh = u1 * hh % _P
    x3 = (r * r - hhh - 2 * u1hh) % _P
    y3 = (r * (u1hh - x3) - s1 * hhh) % _P
    z3 = h * z1 * z2 % _P
    return (x3, y3, z3)


def _mul(k: int, point: _Affine) -> _Affine:
    result = _INFINITY
    addend = _to_jacobian(point)
    while k:
        if k & 1:
            result = _add(result, addend)
        addend = _double(addend)
        k >>= 1
    return _to_affine(result)


def _lift_x(x: int, odd: bool) -> Tuple[int, int]:
    if x >= _P:
        raise CipherError("invalid curve point x coordinate")
    alpha = (pow(x, 3, _P) + 7) % _P
    y = pow(alpha, (_P + 1) // 4, _P)
    if y * y % _P != alpha:
        raise CipherError("point is not on the curve")
    if (y & 1) != odd:
        y = _P - y
    return (x, y)


def _compress(point: Tuple[int, int]) -> bytes:
    x, y = point
    return bytes([2 + (y & 1)]) + x.to_bytes(32, "big")


def _decompress(data: bytes) -> Tuple[int, int]:
    if len(data) != PUB_KEY_LEN or data[0] not in (2, 3):
        raise CipherError("invalid public key")
    return _lift_x(int.from_bytes(data[1:], "big"), data[0] == 3)


def _valid_scalar(data: bytes) -> bool:
    return 0 < int.from_bytes(data, "big") < _N


def _nonces(secret: int, digest: bytes) -> Iterator[int]:
    """Deterministic nonce candidates in the manner of RFC 6979."""
    x = secret.to_bytes(32, "big")
    h = (int.from_bytes(digest, "big") % _N).to_bytes(32, "big")
    v = b"\x01" * 32
    k = b"\x00" * 32
    k = hmac.new(k, v + b"\x00" + x + h, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    k = hmac.new(k, v + b"\x01" + x + h, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    while True:
        v = hmac.new(k, v, hashlib.sha256).digest()
        candidate = int.from_bytes(v, "big")
        if 0 < candidate < _N:
            yield candidate
        k = hmac.new(k, v + b"\x00", hashlib.sha256).digest()
        v = hmac.new(k, v, hashlib.sha256).digest()


# --- key and signature types ------------------------------------------------


def _as_bytes(value: Union[bytes, bytearray, memoryview], length: int, kind: str) -> bytes:
    data = bytes(value)
    if len(data) != length:
        raise CipherError(f"invalid {kind} length")
    return data


def _from_hex(s: Union[str, bytes]) -> bytes:
    text = s.decode() if isinstance(s, (bytes, bytearray)) else s
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise CipherError(f"invalid hex: {exc}") from exc


@dataclass(frozen=True)
class PubKey:
    """A compressed secp256k1 public key; the all-zero key is null."""

    data: bytes = bytes(PUB_KEY_LEN)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _as_bytes(self.data, PUB_KEY_LEN, "public key"))

    def hex(self) -> str:
        return self.data.hex()

    def is_null(self) -> bool:
        return not any(self.data)

    def big(self) -> int:
        return int.from_bytes(self.data, "big")

    def __str__(self) -> str:
        return self.hex()

    def __bytes__(self) -> bytes:
        return self.data

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> "PubKey":
        """Build a key from 33 bytes, checking that it is a point on the curve."""
        raw = _as_bytes(data, PUB_KEY_LEN, "public key")
        _decompress(raw)
        return cls(raw)

    @classmethod
    def from_hex(cls, s: Union[str, bytes]) -> "PubKey":
        return cls.from_bytes(_from_hex(s))

    @classmethod
    def from_text(cls, data: Union[str, bytes]) -> "PubKey":
        """Parse a hex key; a text of only '0' characters yields the null key."""
        text = data.decode() if isinstance(data, (bytes, bytearray)) else data
        if text.count("0") == len(text):
            return cls()
        return cls.from_hex(text)


@dataclass(frozen=True)
class SecKey:
    """A secp256k1 secret key; the all-zero key is null."""

    data: bytes = bytes(SEC_KEY_LEN)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _as_bytes(self.data, SEC_KEY_LEN, "secret key"))

    def __repr__(self) -> str:
        return "SecKey(...)"

    def hex(self) -> str:
        return self.data.hex()

    def is_null(self) -> bool:
        return not any(self.data)

    def __str__(self) -> str:
        return self.hex()

    def __bytes__(self) -> bytes:
        return self.data

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> "SecKey":
        raw = _as_bytes(data, SEC_KEY_LEN, "secret key")
        if not _valid_scalar(raw):
            raise CipherError("invalid secret key")
        return cls(raw)

    @classmethod
    def from_hex(cls, s: Union[str, bytes]) -> "SecKey":
        return cls.from_bytes(_from_hex(s))

    def pub_key(self) -> PubKey:
        """Derive the public key of this secret key."""
        if not _valid_scalar(self.data):
            raise CipherError("invalid secret key")
        point = _mul(int.from_bytes(self.data, "big"), _G)
        assert point is not None
        return PubKey(_compress(point))


@dataclass(frozen=True)
class Sig:
    """A 65-byte recoverable signature."""

    data: bytes = bytes(SIG_LEN)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _as_bytes(self.data, SIG_LEN, "signature"))

    def hex(self) -> str:
        return self.data.hex()

    def is_null(self) -> bool:
        return not any(self.data)

    def __str__(self) -> str:
        return self.hex()

    def __bytes__(self) -> bytes:
        return self.data

    @classmethod
    def from_hex(cls, s: Union[str, bytes]) -> "Sig":
        return cls(_as_bytes(_from_hex(s), SIG_LEN, "signature"))


# --- functions --------------------------------------------------------------


def generate_key_pair() -> Tuple[PubKey, SecKey]:
    """Create a random key pair."""
    while True:
        raw = secrets.token_bytes(SEC_KEY_LEN)
        if _valid_scalar(raw):
            sk = SecKey(raw)
            return sk.pub_key(), sk


def generate_deterministic_key_pair(seed: bytes) -> Tuple[PubKey, SecKey]:
    """Derive a key pair from a seed; the same seed yields the same pair."""
    if not seed:
        raise CipherError("seed input is empty")
    digest = hashlib.sha256(bytes(seed)).digest()
    while True:
        digest = hashlib.sha256(digest + bytes(seed)).digest()
        if _valid_scalar(digest):
            sk = SecKey(digest)
            return sk.pub_key(), sk


def new_pub_key(b: bytes) -> PubKey:
    return PubKey.from_bytes(b)


def parse_pub_keys(text: str) -> list[PubKey]:
    """Parse a comma separated list of hex public keys."""
    return [PubKey.from_hex(part.strip()) for part in text.split(",")]


def format_pub_keys(pks: Iterable[PubKey]) -> str:
    return "public keys:\n" + "".join(f"\t{pk}\n" for pk in pks)


def sum_sha256(b: bytes) -> bytes:
    return hashlib.sha256(bytes(b)).digest()


def sha256_from_bytes(b: bytes) -> bytes:
    return _as_bytes(b, SHA256_LEN, "SHA256")


def rand_byte(n: int) -> bytes:
    return secrets.token_bytes(n)


def _sign_hash(digest: bytes, sec: SecKey) -> Sig:
    if not _valid_scalar(sec.data):
        raise CipherError("invalid secret key")
    d = int.from_bytes(sec.data, "big")
    z = int.from_bytes(digest, "big") % _N
    for k in _nonces(d, digest):
        point = _mul(k, _G)
        assert point is not None
        rx, ry = point
        r = rx % _N
        if r == 0:
            continue
        s = pow(k, -1, _N) * (z + r * d) % _N
        if s == 0:
            continue
        recid = (ry & 1) | (2 if rx >= _N else 0)
        if s > _N // 2:
            s = _N - s
            recid ^= 1
        return Sig(r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([recid]))
    raise CipherError("failed to sign")  # pragma: no cover


def _recover(sig: Sig, digest: bytes) -> PubKey:
    r = int.from_bytes(sig.data[:32], "big")
    s = int.from_bytes(sig.data[32:64], "big")
    recid = sig.data[64]
    if recid > 3 or not 0 < r < _N or not 0 < s < _N:
        raise CipherError("invalid signature")
    point = _lift_x(r + (recid >> 1) * _N, bool(recid & 1))
    z = int.from_bytes(digest, "big") % _N
    r_inv = pow(r, -1, _N)
    sr = _to_jacobian(_mul(s, point))
    zg = _to_jacobian(_mul((-z) % _N, _G))
    q = _to_affine(_add(sr, zg))
    if q is None:
        raise CipherError("invalid signature")
    q = _mul(r_inv, q)
    if q is None:
        raise CipherError("invalid signature")
    return PubKey(_compress(q))


def sign_payload(payload: bytes, sec: SecKey) -> Sig:
    """Sign the SHA256 digest of the payload."""
    return _sign_hash(sum_sha256(payload), sec)


def verify_pub_key_signed_payload(pubkey: PubKey, sig: Sig, payload: bytes) -> None:
    """Raise CipherError unless the payload's digest was signed by the key."""
    recovered = _recover(sig, sum_sha256(payload))
    if recovered != pubkey:
        raise CipherError("recovered public key does not match public key")


def same_pub_keys(pks1: Sequence[PubKey], pks2: Sequence[PubKey]) -> bool:
    """True when both sequences hold the same keys, in any order (no duplicates assumed)."""
    if len(pks1) != len(pks2):
        return False
    known = set(pks1)
    return all(pk in known for pk in pks2)