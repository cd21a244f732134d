"""Private address derivation — one-way, deterministic, no I/O.

A private address is a hash commitment over ``(owner, secret)`` as field
elements. Without the secret it cannot be linked to the owner; with it the
owner can always re-derive and verify the same address.
"""
from __future__ import annotations

import hashlib
import secrets

# BN254 scalar field, the field addresses and secrets live in on the ledger.
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

_FIELD_BYTES = 32


def to_field(value: int | str) -> int:
    """Decode an int or ``0x``-prefixed hex string into a field element.

    Raises:
        ValueError: the value is not valid hex, negative or outside the field.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a field element: {value!r}")
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        if not text:
            raise ValueError(f"Not a field element: {value!r}")
        try:
            number = int(text, 16)
        except ValueError as e:
            raise ValueError(f"Not a field element: {value!r}") from e
    elif isinstance(value, int):
        number = value
    else:
        raise ValueError(f"Not a field element: {value!r}")

    if not 0 <= number < FIELD_MODULUS:
        raise ValueError(f"Value outside the field: {value!r}")
    return number


def format_address(field: int) -> str:
    return "0x" + field.to_bytes(_FIELD_BYTES, "big").hex()


def derive_private_address(secret: int | str, owner: str) -> str:
    """Derive the private address for ``owner`` under ``secret``."""
    owner_field = to_field(owner)
    secret_field = to_field(secret)
    digest = hashlib.sha256(
        owner_field.to_bytes(_FIELD_BYTES, "big")
        + secret_field.to_bytes(_FIELD_BYTES, "big")
    ).digest()
    return format_address(int.from_bytes(digest, "big") % FIELD_MODULUS)


def generate_secret() -> int:
    """Return a fresh non-zero secret from a cryptographically secure source."""
    return secrets.randbelow(FIELD_MODULUS - 1) + 1


def same_address(a: str, b: str) -> bool:
    """Compare two addresses by field value, ignoring case and zero padding."""
    try:
        return to_field(a) == to_field(b)
    except ValueError:
        return a == b
