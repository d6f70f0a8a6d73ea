"""
Fixed-width field encoding used by GiftManager records.

Short names (favorites, legacy charity names) are stored in ``bytes32``
slots: UTF-8, at most 31 bytes, zero-padded on the right. IPFS CIDv0
addresses fit in the same slot once their multihash prefix is dropped.
"""
import logging
from typing import Union

import base58
from web3 import Web3

from .exceptions import InvalidInput

logger = logging.getLogger(__name__)

FIELD_SIZE = 32
MAX_NAME_BYTES = 31

# sha2-256 multihash header carried by every CIDv0 ("Qm...")
_CIDV0_PREFIX = b"\x12\x20"

Bytes32Like = Union[bytes, bytearray, str]


def encode_name(name: str) -> bytes:
    """
    Encode a display name into a 32-byte field.

    Args:
        name: Human-readable name. Surrounding whitespace is dropped.

    Returns:
        Exactly 32 bytes: UTF-8 text truncated to 31 bytes, zero-padded

    Raises:
        InvalidInput: If the name is empty after trimming
    """
    if not isinstance(name, str):
        raise InvalidInput(f"Name must be a string, got {type(name).__name__}")
    trimmed = name.strip()
    if not trimmed:
        raise InvalidInput("Name must not be empty")

    raw = trimmed.encode("utf-8")
    if len(raw) > MAX_NAME_BYTES:
        # Cut on a character boundary so the field always decodes
        raw = raw[:MAX_NAME_BYTES].decode("utf-8", errors="ignore").encode("utf-8")
        logger.debug(f"Truncated name to {len(raw)} bytes")
    return raw.ljust(FIELD_SIZE, b"\x00")


def decode_name(field: Bytes32Like, placeholder: str = "") -> str:
    """
    Decode a 32-byte name field back into text.

    Never raises: malformed input yields ``placeholder``.

    Args:
        field: Raw bytes, a ``0x`` hex string, or an already-decoded string
        placeholder: Value returned when the field cannot be decoded

    Returns:
        Decoded, trimmed name; ``""`` for an all-zero field
    """
    try:
        if isinstance(field, str):
            if not field.startswith(("0x", "0X")):
                # Newer ledgers return names as plain strings
                return field.replace("\x00", "").strip()
            field = bytes.fromhex(field[2:])
        raw = bytes(field)
    except (TypeError, ValueError):
        logger.debug(f"Undecodable name field: {field!r}")
        return placeholder

    if len(raw) > FIELD_SIZE:
        return placeholder
    if not any(raw):
        return ""
    try:
        return raw.rstrip(b"\x00").decode("utf-8").strip()
    except UnicodeDecodeError:
        logger.debug(f"Name field is not valid UTF-8: {raw.hex()}")
        return placeholder


def to_bytes32(value: Bytes32Like) -> bytes:
    """
    Normalise a ``bytes32`` value returned by a ledger client.

    Raises:
        InvalidInput: If the value is not exactly 32 bytes
    """
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            value = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidInput(f"Invalid hex for bytes32: {e}")
    raw = bytes(value)
    if len(raw) != FIELD_SIZE:
        raise InvalidInput(f"Expected {FIELD_SIZE} bytes, got {len(raw)}")
    return raw


def hash_tag(text: str) -> str:
    """
    keccak256 of a UTF-8 string, as a ``0x`` hex string.

    Used for gift categories ("birthday", "thank_you", ...) and for
    messages that are not published to IPFS.
    """
    return Web3.to_hex(Web3.keccak(text=text))


def cid_to_bytes32(cid: str) -> bytes:
    """
    Pack a CIDv0 into a 32-byte field by dropping its multihash header.

    Raises:
        InvalidInput: If ``cid`` is not a base58 sha2-256 CIDv0
    """
    if not isinstance(cid, str):
        raise InvalidInput(f"CID must be a string, got {type(cid).__name__}")
    try:
        decoded = base58.b58decode(cid)
    except ValueError as e:
        raise InvalidInput(f"Failed to decode CID {cid!r}: {e}")
    if len(decoded) != 34 or not decoded.startswith(_CIDV0_PREFIX):
        raise InvalidInput(f"Not a CIDv0 sha2-256 address: {cid!r}")
    return decoded[2:]


def bytes32_to_cid(field: Bytes32Like) -> str:
    """Rebuild the CIDv0 for a digest stored with :func:`cid_to_bytes32`."""
    return base58.b58encode(_CIDV0_PREFIX + to_bytes32(field)).decode("ascii")
