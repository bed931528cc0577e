"""
Hex and Bech32 encodings for keys and event ids.

Bech32 strings carry a human-readable prefix (``npub``, ``nsec``, ``note``),
the separator ``1``, the payload regrouped into 5-bit symbols and a 6-symbol
BCH checksum. Every key goes through the same algorithm; there are no
special-cased outputs.
"""

import re
from typing import Optional, Union

from bech32 import CHARSET, bech32_hrp_expand, bech32_polymod, convertbits

from .types import (
    EVENT_ID_SIZE,
    NOTE_PREFIX,
    NPUB_PREFIX,
    NSEC_PREFIX,
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_SIZE,
    ChecksumError,
    FormatError,
)

SEPARATOR = "1"
CHECKSUM_LENGTH = 6

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def encode_hex(data: bytes) -> str:
    """Encode bytes as lowercase hex."""
    return bytes(data).hex()


def decode_hex(value: str, size: Optional[int] = None) -> bytes:
    """
    Decode a hex string, optionally enforcing the decoded length.

    Raises:
        FormatError: If the value is not valid hex or has the wrong size.
    """
    if not isinstance(value, str):
        raise FormatError(f"Expected hex string, got {type(value).__name__}")
    if not _HEX_RE.fullmatch(value):
        raise FormatError("Invalid hex string: only 0-9, a-f and A-F are allowed")
    try:
        data = bytes.fromhex(value)
    except ValueError as e:
        raise FormatError(f"Invalid hex string: {e}") from e
    if size is not None and len(data) != size:
        raise FormatError(f"Expected {size} bytes, got {len(data)}")
    return data


def _create_checksum(hrp: str, values: list[int]) -> list[int]:
    polymod = bech32_polymod(bech32_hrp_expand(hrp) + values + [0] * CHECKSUM_LENGTH) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(CHECKSUM_LENGTH)]


def _check_hrp(hrp: str) -> None:
    if not hrp:
        raise FormatError("Human-readable part is empty")
    if any(ord(c) < 33 or ord(c) > 126 for c in hrp):
        raise FormatError("Human-readable part contains invalid characters")


def bech32_encode(hrp: str, data: bytes) -> str:
    """
    Encode bytes as a Bech32 string.

    Args:
        hrp: Human-readable prefix (e.g. "npub")
        data: Payload bytes

    Returns:
        Lowercase Bech32 string
    """
    _check_hrp(hrp)
    hrp = hrp.lower()
    values = convertbits(bytes(data), 8, 5, True)
    combined = values + _create_checksum(hrp, values)
    return hrp + SEPARATOR + "".join(CHARSET[v] for v in combined)


def bech32_decode(value: str) -> tuple[str, bytes]:
    """
    Decode a Bech32 string into its prefix and payload bytes.

    Raises:
        FormatError: Missing separator, unknown symbols or bad padding.
        ChecksumError: The checksum does not match.
    """
    if not isinstance(value, str):
        raise FormatError(f"Expected string, got {type(value).__name__}")
    if any(ord(c) < 33 or ord(c) > 126 for c in value):
        raise FormatError("Input contains characters outside the printable range")

    value = value.lower()
    pos = value.rfind(SEPARATOR)
    if pos == -1:
        raise FormatError("Missing separator '1'")
    if pos == 0:
        raise FormatError("Human-readable part is empty")
    if pos + 1 + CHECKSUM_LENGTH > len(value):
        raise FormatError("Data part is shorter than the checksum")

    hrp = value[:pos]
    values = []
    for c in value[pos + 1:]:
        index = CHARSET.find(c)
        if index == -1:
            raise FormatError(f"Invalid Bech32 character: {c!r}")
        values.append(index)

    if bech32_polymod(bech32_hrp_expand(hrp) + values) != 1:
        raise ChecksumError("Bech32 checksum mismatch")

    payload = convertbits(values[:-CHECKSUM_LENGTH], 5, 8, False)
    if payload is None:
        raise FormatError("Invalid padding in Bech32 data")
    return hrp, bytes(payload)


def _encode_typed(prefix: str, data: bytes, size: int) -> str:
    if len(data) != size:
        raise FormatError(f"{prefix} payload must be {size} bytes, got {len(data)}")
    return bech32_encode(prefix, data)


def _decode_typed(prefix: str, value: str, size: int) -> bytes:
    hrp, data = bech32_decode(value)
    if hrp != prefix:
        raise FormatError(f"Expected prefix {prefix!r}, got {hrp!r}")
    if len(data) != size:
        raise FormatError(f"{prefix} payload must be {size} bytes, got {len(data)}")
    return data


def encode_npub(public_key: bytes) -> str:
    """Encode a 32-byte x-only public key as npub."""
    return _encode_typed(NPUB_PREFIX, public_key, PUBLIC_KEY_SIZE)


def decode_npub(value: str) -> bytes:
    """Decode an npub string to the 32-byte public key."""
    return _decode_typed(NPUB_PREFIX, value, PUBLIC_KEY_SIZE)


def encode_nsec(private_key: bytes) -> str:
    """Encode a 32-byte private key as nsec."""
    return _encode_typed(NSEC_PREFIX, private_key, PRIVATE_KEY_SIZE)


def decode_nsec(value: str) -> bytes:
    """Decode an nsec string to the 32-byte private key."""
    return _decode_typed(NSEC_PREFIX, value, PRIVATE_KEY_SIZE)


def encode_note(event_id: bytes) -> str:
    """Encode a 32-byte event id as note."""
    return _encode_typed(NOTE_PREFIX, event_id, EVENT_ID_SIZE)


def decode_note(value: str) -> bytes:
    """Decode a note string to the 32-byte event id."""
    return _decode_typed(NOTE_PREFIX, value, EVENT_ID_SIZE)


def parse_public_key(value: Union[str, bytes]) -> bytes:
    """
    Parse a public key given as raw bytes, 64-char hex or npub.

    Raises:
        FormatError: If the value is none of the accepted forms.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != PUBLIC_KEY_SIZE:
            raise FormatError(f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(value)}")
        return bytes(value)
    if isinstance(value, str) and value.lower().startswith(NPUB_PREFIX + SEPARATOR):
        return decode_npub(value)
    return decode_hex(value, PUBLIC_KEY_SIZE)
