"""Double SHA-256 scoring of nonce candidates.

A candidate is appended to the payload as a big-endian ``uint32`` and the
result is hashed twice.  The score is the number of leading zero bits of the
second digest.
"""

from __future__ import annotations

import hashlib
import struct

_NONCE = struct.Struct(">I")


def _as_bytes(payload: bytes | str) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)


def double_hash(payload: bytes | str, candidate: int) -> bytes:
    """Return ``SHA256(SHA256(payload || be32(candidate)))``."""
    try:
        suffix = _NONCE.pack(candidate)
    except struct.error as exc:
        raise ValueError(f"candidate {candidate} is not a 32-bit unsigned value") from exc
    first = hashlib.sha256(_as_bytes(payload) + suffix).digest()
    return hashlib.sha256(first).digest()


def leading_zero_bits(digest: bytes) -> int:
    """Count zero bits from the most significant bit of ``digest[0]``."""
    zeros = 0
    for byte in digest:
        if byte:
            return zeros + 8 - byte.bit_length()
        zeros += 8
    return zeros


def score(payload: bytes | str, candidate: int) -> int:
    """Return the leading-zero-bit count of the double hash for ``candidate``."""
    return leading_zero_bits(double_hash(payload, candidate))


__all__ = ["double_hash", "leading_zero_bits", "score"]
