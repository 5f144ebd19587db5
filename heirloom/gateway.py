"""
HEIRLOOM User Decryption Gateway

Off-ledger decryption for end users. A user signs a request naming the
contracts whose handles they want to read and a validity window; the gateway
checks the signature and the window, then decrypts only handles the ACL
grants to both the user and one of the named contracts.

Request Signing:
    The user signs the canonical JSON of
        {contract_addresses, duration_days, public_key, start_timestamp}
    with Ed25519. The user address is the last 20 bytes of
    sha256(raw public key).

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from heirloom.acl import AccessControlList
from heirloom.config import HeirloomConfig, get_config
from heirloom.fhe import EncryptedValue
from heirloom.hardening import NotAuthorized, ValidationError, require_address
from heirloom.observability import HeirloomLayer, get_logger
from heirloom.runtime import Clock

SECONDS_PER_DAY = 86400


class Decryptor(Protocol):
    """Privileged decryption capability held by the gateway."""

    def decrypt(self, value: EncryptedValue) -> int:
        ...


def public_key_bytes(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def address_from_public_key(public_key: Ed25519PublicKey) -> str:
    """Account address controlled by an Ed25519 key."""
    return "0x" + hashlib.sha256(public_key_bytes(public_key)).digest()[-20:].hex()


@dataclass
class DecryptionRequest:
    """A signed user decryption request."""
    public_key: str
    contract_addresses: List[str]
    start_timestamp: int
    duration_days: int
    signature: str = ""

    def signing_payload(self) -> bytes:
        body = {
            "contract_addresses": sorted(a.lower() for a in self.contract_addresses),
            "duration_days": self.duration_days,
            "public_key": self.public_key,
            "start_timestamp": self.start_timestamp,
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()

    @property
    def user_address(self) -> str:
        return address_from_public_key(self._public_key())

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def _public_key(self) -> Ed25519PublicKey:
        try:
            return Ed25519PublicKey.from_public_bytes(bytes.fromhex(self.public_key))
        except ValueError as e:
            raise ValidationError("public_key", "Not a raw Ed25519 public key") from e

    def verify(self) -> bool:
        try:
            self._public_key().verify(bytes.fromhex(self.signature), self.signing_payload())
            return True
        except (InvalidSignature, ValueError, ValidationError):
            return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "public_key": self.public_key,
            "contract_addresses": list(self.contract_addresses),
            "start_timestamp": self.start_timestamp,
            "duration_days": self.duration_days,
            "signature": self.signature,
        }


def create_decryption_request(
    private_key: Ed25519PrivateKey,
    contract_addresses: Iterable[str],
    start_timestamp: int,
    duration_days: Optional[int] = None,
    config: Optional[HeirloomConfig] = None,
) -> DecryptionRequest:
    """Build and sign a decryption request. `duration_days` defaults to the configured value."""
    if duration_days is None:
        duration_days = (config or get_config()).gateway.default_duration_days.get()
    request = DecryptionRequest(
        public_key=public_key_bytes(private_key.public_key()).hex(),
        contract_addresses=[require_address(a, "contract") for a in contract_addresses],
        start_timestamp=start_timestamp,
        duration_days=duration_days,
    )
    request.signature = private_key.sign(request.signing_payload()).hex()
    return request


class DecryptionGateway:
    """
    Decrypts handles for authorized users.

    Example:
        request = create_decryption_request(key, [token.address], clock.now())
        gateway.user_decrypt(request, [token.balance_of(user)])
    """

    def __init__(
        self,
        acl: AccessControlList,
        backend: Decryptor,
        clock: Clock,
        config: Optional[HeirloomConfig] = None,
    ):
        self.acl = acl
        self.backend = backend
        self.clock = clock
        self._max_duration_days = (config or get_config()).gateway.max_duration_days.get()
        self._logger = get_logger("gateway", HeirloomLayer.GATEWAY)

    def _check_request(self, request: DecryptionRequest) -> str:
        if not request.verify():
            raise NotAuthorized("Decryption request signature is invalid")
        if not 0 < request.duration_days <= self._max_duration_days:
            raise NotAuthorized(
                "Decryption request duration out of range",
                duration_days=request.duration_days,
            )
        now = self.clock.now()
        if not request.start_timestamp <= now < request.expires_at:
            raise NotAuthorized("Decryption request is outside its validity window")
        if not request.contract_addresses:
            raise NotAuthorized("Decryption request names no contract")
        return request.user_address

    def user_decrypt(
        self,
        request: DecryptionRequest,
        handles: Iterable[EncryptedValue],
    ) -> Dict[str, int]:
        """
        Decrypt `handles` for the request's signer.

        Returns a mapping from handle to plaintext. The uninitialized handle
        decrypts to 0.
        """
        user = self._check_request(request)
        contracts = [c.lower() for c in request.contract_addresses]

        results: Dict[str, int] = {}
        for value in handles:
            if not value.is_initialized:
                results[value.handle] = 0
                continue
            if not self.acl.is_granted(value, user):
                raise NotAuthorized("User is not granted this handle", user=user, handle=value.handle)
            if not any(self.acl.is_granted(value, c) for c in contracts):
                raise NotAuthorized("No listed contract is granted this handle", handle=value.handle)
            results[value.handle] = self.backend.decrypt(value)

        self._logger.info("User decryption served", user=user, handles=len(results))
        return results
