"""Base58btc / multibase helpers for Ed25519 public keys.

Ed25519 keys are published in DID documents either as ``publicKeyBase58``
(raw key, base58btc) or as ``publicKeyMultibase``: the multicodec prefix
``0xed 0x01`` followed by the raw key, base58btc-encoded and prefixed with
the multibase indicator ``z``.
"""
from __future__ import annotations

ED25519_MULTICODEC_PREFIX: bytes = b"\xed\x01"

_BASE58_ALPHABET: str = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58btc_encode(data: bytes) -> str:
    """Encode *data* to a base58btc string."""
    n = int.from_bytes(data, "big")
    result: list[str] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder])
    # Leading zero bytes are encoded as '1'
    for byte in data:
        if byte == 0:
            result.append("1")
        else:
            break
    return "".join(reversed(result))


def base58btc_decode(encoded: str) -> bytes:
    """Decode a base58btc string back to bytes.

    Raises
    ------
    ValueError
        If the string contains a character outside the base58btc alphabet.
    """
    n = 0
    for char in encoded:
        index = _BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(
                f"Invalid base58btc character {char!r} in encoded string {encoded!r}"
            )
        n = n * 58 + index
    result = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_size = len(encoded) - len(encoded.lstrip("1"))
    return b"\x00" * pad_size + result


def ed25519_to_multibase(public_key: bytes) -> str:
    """Encode a raw Ed25519 public key as ``z<base58btc(0xed01 + key)>``."""
    return "z" + base58btc_encode(ED25519_MULTICODEC_PREFIX + public_key)


def multibase_to_ed25519(value: str) -> bytes:
    """Decode a ``publicKeyMultibase`` value into a raw Ed25519 public key.

    Both the multicodec-prefixed form and a bare base58btc key are accepted.

    Raises
    ------
    ValueError
        If the value is not base58btc multibase or carries a non-Ed25519
        multicodec prefix.
    """
    if not value.startswith("z"):
        raise ValueError(
            f"Unsupported multibase encoding {value[:1]!r}. Only base58btc ('z') is supported."
        )
    decoded = base58btc_decode(value[1:])
    if decoded.startswith(ED25519_MULTICODEC_PREFIX) and len(decoded) == 34:
        return decoded[len(ED25519_MULTICODEC_PREFIX):]
    if len(decoded) == 32:
        return decoded
    prefix_hex = decoded[:2].hex()
    raise ValueError(
        f"Unsupported multicodec prefix 0x{prefix_hex}. Only Ed25519 (0xed01) keys are supported."
    )


__all__ = [
    "ED25519_MULTICODEC_PREFIX",
    "base58btc_decode",
    "base58btc_encode",
    "ed25519_to_multibase",
    "multibase_to_ed25519",
]
