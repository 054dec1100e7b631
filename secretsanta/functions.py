"""Helper functions made available to secret templates."""

from __future__ import annotations

import base64
import hashlib
import math
import re
import zlib
from typing import Any, Callable

import bcrypt as _bcrypt

_BCRYPT_MAX_BYTES = 72
_BCRYPT_DEFAULT_COST = 10
_DECIMAL_INT = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def sha256(s: str) -> str:
    """Return the hex SHA-256 digest of ``s``."""
    return hashlib.sha256(s.encode()).hexdigest()


def bcrypt_hash(s: str) -> str:
    """Return a ``$2a$`` bcrypt hash of ``s`` at the default cost.

    Input longer than 72 bytes is truncated, as bcrypt only uses that many.
    """
    password = s.encode()[:_BCRYPT_MAX_BYTES]
    salt = _bcrypt.gensalt(rounds=_BCRYPT_DEFAULT_COST, prefix=b"2a")
    return _bcrypt.hashpw(password, salt).decode()


def entropy(s: str, charset: str) -> float:
    """Return the entropy in bits of ``s`` drawn uniformly from ``charset``."""
    length = len(s.encode())
    alphabet = len(charset.encode())
    if alphabet == 0:
        return math.nan if length == 0 else -math.inf
    return length * math.log2(alphabet)


def crc32(s: str) -> str:
    """Return the IEEE CRC-32 of ``s`` as eight lower-case hex digits."""
    return f"{zlib.crc32(s.encode()) & 0xFFFFFFFF:08x}"


def url_safe_b64(s: str) -> str:
    """Return the padded URL-safe base64 encoding of ``s``."""
    return base64.urlsafe_b64encode(s.encode()).decode()


def compact(s: str) -> str:
    """Remove every dash from ``s``."""
    return s.replace("-", "")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _DECIMAL_INT.fullmatch(value):
        number = int(value)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    return None


def to_binary(value: Any) -> str:
    """Render an integer, or a decimal integer string, in base 2; else ``""``."""
    number = _as_int(value)
    return "" if number is None else format(number, "b")


def to_hex(value: Any) -> str:
    """Render an integer, or a decimal integer string, in base 16; else ``""``."""
    number = _as_int(value)
    return "" if number is None else format(number, "x")


def func_map() -> dict[str, Callable[..., Any]]:
    """Return the template function table, keyed by template name."""
    return {
        "sha256": sha256,
        "bcrypt": bcrypt_hash,
        "entropy": entropy,
        "crc32": crc32,
        "urlSafeB64": url_safe_b64,
        "compact": compact,
        "toBinary": to_binary,
        "toHex": to_hex,
    }