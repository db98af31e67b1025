"""
Hex normalization helpers.

Nodes and web3 middlewares hand back hashes and topics as HexBytes, raw bytes
or hex strings depending on the transport; these helpers give the rest of the
package one representation.
"""

from typing import Any, Union

from hexbytes import HexBytes
from web3 import Web3


def to_bytes_safe(value: Union[HexBytes, bytes, str]) -> bytes:
    """
    Safely convert value to bytes, handling HexBytes, bytes, and hex strings.

    Args:
        value: Value to convert (HexBytes, bytes, or hex string)

    Returns:
        Bytes representation
    """
    if isinstance(value, HexBytes):
        return bytes(value)
    elif isinstance(value, bytes):
        return value
    else:
        return Web3.to_bytes(hexstr=value)


def to_hex_str(value: Union[HexBytes, bytes, str, None]) -> str:
    """
    Convert a hash-like value to a lowercase 0x-prefixed hex string.

    Args:
        value: HexBytes, bytes, or hex string with or without 0x prefix

    Returns:
        0x-prefixed lowercase hex string ('' for None)
    """
    if value is None:
        return ''
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith('0x') else '0x' + text


def to_int(value: Any) -> int:
    """
    Parse a quantity that may arrive as an int or a hex string.

    Args:
        value: int, hex string ("0x1a") or decimal string

    Returns:
        Integer value
    """
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith('0x') else int(value)
    raise TypeError(f"Cannot interpret {value!r} as an integer")


def topic_to_address(topic: Union[HexBytes, bytes, str]) -> str:
    """
    Extract the checksummed address held in the last 20 bytes of an indexed topic.

    Args:
        topic: 32-byte topic value

    Returns:
        Checksummed address
    """
    raw = to_bytes_safe(topic)
    if len(raw) != 32:
        raise ValueError(f"Expected a 32-byte topic, got {len(raw)} bytes")
    return Web3.to_checksum_address(raw[12:])
