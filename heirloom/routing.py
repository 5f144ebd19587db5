"""
HEIRLOOM Transfer Routing

Encoding of the deposit routing payload and the receiver acknowledgment
contract between the confidential token and a receiving contract.

Wire Format:
    The payload is exactly the ABI encoding of a single uint256 estate id:
    32 bytes, big-endian, left-padded with zeros.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
from typing import Optional, Protocol

from heirloom.fhe import EncryptedValue
from heirloom.hardening import MissingRoutingInfo

ESTATE_ID_SIZE = 32
MAX_ESTATE_ID = (1 << 256) - 1

# Returned by a receiver that accepts an incoming transfer.
RECEIVER_ACK = hashlib.sha256(
    b"onConfidentialTransferReceived(address,address,bytes32,bytes)"
).digest()[:4]


def encode_estate_id(estate_id: int) -> bytes:
    """Encode an estate id as a routing payload."""
    if isinstance(estate_id, bool) or not isinstance(estate_id, int):
        raise MissingRoutingInfo(f"estate id must be an integer, got {type(estate_id).__name__}")
    if not 0 <= estate_id <= MAX_ESTATE_ID:
        raise MissingRoutingInfo("estate id out of uint256 range")
    return estate_id.to_bytes(ESTATE_ID_SIZE, "big")


def decode_estate_id(payload: Optional[bytes]) -> int:
    """
    Decode a routing payload into an estate id.

    Raises:
        MissingRoutingInfo: payload absent, not bytes, or not exactly 32 bytes
    """
    if payload is None:
        raise MissingRoutingInfo("payload absent")
    if not isinstance(payload, (bytes, bytearray)):
        raise MissingRoutingInfo(f"payload must be bytes, got {type(payload).__name__}")
    if len(payload) == 0:
        raise MissingRoutingInfo("payload absent")
    if len(payload) < ESTATE_ID_SIZE:
        raise MissingRoutingInfo("payload too short")
    if len(payload) > ESTATE_ID_SIZE:
        raise MissingRoutingInfo("payload has trailing data")
    return int.from_bytes(payload, "big")


class ConfidentialTransferReceiver(Protocol):
    """Protocol for contracts that accept transfers with a payload."""

    def on_confidential_transfer_received(
        self,
        sender: str,
        operator: str,
        from_: str,
        amount: EncryptedValue,
        payload: bytes,
    ) -> bytes:
        ...
