"""
HEIRLOOM Encrypted Value Infrastructure

Opaque ciphertext handles and the homomorphic capability the ledger computes
with. The ledger never holds plaintext: it only ever sees `EncryptedValue`
handles and combines them through an injected `HomomorphicBackend`.

Capability Surface:
    zero()                          fresh handle encrypting 0
    add(a, b), sub(a, b)            uint64 arithmetic, wrapping mod 2^64
    from_external(ct, proof, ctx)   ingest a client ciphertext, proof-checked
    trivial_encrypt(n)              public constant (token minting)
    ge(a, b), select(c, a, b)       saturating transfers (token collaborator)

Input Proofs:
    A client encrypts a value *for* an (contract, user) context. The input
    verifier attests the ciphertext with an Ed25519 signature over
    sha256(ciphertext) || contract || user. Replaying the ciphertext against
    another contract or another user fails verification.

`ShadowBackend` keeps the plaintext next to each handle so tests and tooling
can check homomorphic invariants. It is NOT a cryptographic scheme.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from heirloom.hardening import InvalidHandle, ProofInvalid, require_address


UINT64_MASK = (1 << 64) - 1


# =============================================================================
# HANDLES
# =============================================================================

class ValueType(Enum):
    """Encrypted value types."""
    EUINT64 = "euint64"
    EBOOL = "ebool"

    @property
    def tag(self) -> int:
        return 0x05 if self == ValueType.EUINT64 else 0x00


@dataclass(frozen=True)
class EncryptedValue:
    """
    Opaque handle to a ciphertext.

    The handle is a 32-byte identifier rendered as 0x-prefixed hex. It carries
    no plaintext. The all-zero handle is the uninitialized value and reads as 0.
    """
    handle: str
    value_type: ValueType = ValueType.EUINT64

    UNINITIALIZED_HANDLE = "0x" + "0" * 64

    @classmethod
    def uninitialized(cls) -> 'EncryptedValue':
        return cls(cls.UNINITIALIZED_HANDLE)

    @property
    def is_initialized(self) -> bool:
        return self.handle != self.UNINITIALIZED_HANDLE

    def __str__(self) -> str:
        return self.handle


@dataclass(frozen=True)
class InputContext:
    """The (target contract, supplying user) pair a ciphertext is bound to."""
    contract: str
    user: str

    def __post_init__(self):
        object.__setattr__(self, "contract", require_address(self.contract, "contract"))
        object.__setattr__(self, "user", require_address(self.user, "user"))

    def binding(self, ciphertext: bytes) -> bytes:
        return (
            hashlib.sha256(ciphertext).digest()
            + bytes.fromhex(self.contract[2:])
            + bytes.fromhex(self.user[2:])
        )


@dataclass(frozen=True)
class EncryptedInput:
    """Client-side encryption result: ciphertext bytes plus input proof."""
    ciphertext: bytes
    proof: bytes


# =============================================================================
# CAPABILITY INTERFACE
# =============================================================================

class HomomorphicBackend(Protocol):
    """Protocol for the homomorphic capability injected into the ledger."""

    def zero(self) -> EncryptedValue:
        ...

    def add(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        ...

    def sub(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        ...

    def from_external(
        self,
        ciphertext: bytes,
        proof: bytes,
        context: InputContext,
    ) -> EncryptedValue:
        ...

    def trivial_encrypt(self, value: int) -> EncryptedValue:
        ...

    def ge(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        ...

    def select(
        self,
        condition: EncryptedValue,
        if_true: EncryptedValue,
        if_false: EncryptedValue,
    ) -> EncryptedValue:
        ...


# =============================================================================
# INPUT VERIFIER
# =============================================================================

class InputVerifier:
    """
    Attests and verifies client ciphertexts.

    Holds the Ed25519 key of the input-verification service. `attest` is what
    the client-side encryption flow obtains; `verify` is what `from_external`
    runs before accepting a ciphertext.
    """

    PROOF_SIZE = 64

    def __init__(self, private_key: Optional[Ed25519PrivateKey] = None):
        self._private_key = private_key or Ed25519PrivateKey.generate()

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self._private_key.public_key()

    def attest(self, ciphertext: bytes, context: InputContext) -> bytes:
        return self._private_key.sign(context.binding(ciphertext))

    def verify(self, ciphertext: bytes, proof: bytes, context: InputContext) -> bool:
        if not isinstance(proof, (bytes, bytearray)) or len(proof) != self.PROOF_SIZE:
            return False
        try:
            self.public_key.verify(bytes(proof), context.binding(ciphertext))
            return True
        except InvalidSignature:
            return False


# =============================================================================
# PLAINTEXT-SHADOW BACKEND
# =============================================================================

class ShadowBackend:
    """
    Plaintext-shadow stand-in for the encryption scheme.

    Every handle maps to its plaintext in a private table. Arithmetic produces
    fresh content-addressed handles. Client ciphertexts are the plaintext masked
    with an HMAC keystream so that they are opaque bytes on the wire.

    NOT CRYPTOGRAPHICALLY SECURE - for testing and tooling only.
    """

    NONCE_SIZE = 16
    CIPHERTEXT_SIZE = 1 + NONCE_SIZE + 8

    def __init__(self, verifier: Optional[InputVerifier] = None):
        self.verifier = verifier or InputVerifier()
        self._key = secrets.token_bytes(32)
        self._plaintexts: Dict[str, Tuple[ValueType, int]] = {}
        self._counter = 0
        self._lock = threading.Lock()

    # -- handle table ---------------------------------------------------------

    def _new_handle(self, value_type: ValueType, value: int, op: str, *operands: EncryptedValue) -> EncryptedValue:
        with self._lock:
            self._counter += 1
            seed = "|".join([op, str(self._counter)] + [o.handle for o in operands])
            digest = hmac.new(self._key, seed.encode(), hashlib.sha256).digest()
            # Last byte carries the type tag, as in the on-chain handle layout
            handle = "0x" + (digest[:31] + bytes([value_type.tag])).hex()
            if value_type == ValueType.EBOOL:
                value = 1 if value else 0
            self._plaintexts[handle] = (value_type, value & UINT64_MASK)
        return EncryptedValue(handle, value_type)

    def _plaintext(self, value: EncryptedValue) -> int:
        if not isinstance(value, EncryptedValue):
            raise InvalidHandle("handle", f"Expected EncryptedValue, got {type(value).__name__}")
        if not value.is_initialized:
            return 0
        entry = self._plaintexts.get(value.handle)
        if entry is None:
            raise InvalidHandle("handle", "Unknown ciphertext handle", value.handle)
        return entry[1]

    def knows(self, value: EncryptedValue) -> bool:
        return not value.is_initialized or value.handle in self._plaintexts

    # -- capability -----------------------------------------------------------

    def zero(self) -> EncryptedValue:
        return self._new_handle(ValueType.EUINT64, 0, "zero")

    def trivial_encrypt(self, value: int) -> EncryptedValue:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT64_MASK:
            raise InvalidHandle("value", "Must be an unsigned 64-bit integer", value)
        return self._new_handle(ValueType.EUINT64, value, "trivial")

    def add(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        return self._new_handle(
            ValueType.EUINT64, self._plaintext(a) + self._plaintext(b), "add", a, b,
        )

    def sub(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        # Wraps modulo 2^64; no underflow check exists under encryption.
        return self._new_handle(
            ValueType.EUINT64, self._plaintext(a) - self._plaintext(b), "sub", a, b,
        )

    def ge(self, a: EncryptedValue, b: EncryptedValue) -> EncryptedValue:
        return self._new_handle(
            ValueType.EBOOL, int(self._plaintext(a) >= self._plaintext(b)), "ge", a, b,
        )

    def select(
        self,
        condition: EncryptedValue,
        if_true: EncryptedValue,
        if_false: EncryptedValue,
    ) -> EncryptedValue:
        chosen = if_true if self._plaintext(condition) else if_false
        return self._new_handle(
            ValueType.EUINT64, self._plaintext(chosen), "select", condition, if_true, if_false,
        )

    def from_external(
        self,
        ciphertext: bytes,
        proof: bytes,
        context: InputContext,
    ) -> EncryptedValue:
        if not isinstance(ciphertext, (bytes, bytearray)) or len(ciphertext) != self.CIPHERTEXT_SIZE:
            raise ProofInvalid("malformed ciphertext")
        ciphertext = bytes(ciphertext)
        if not self.verifier.verify(ciphertext, proof, context):
            raise ProofInvalid("input proof does not bind ciphertext to caller and contract")

        value_type = ValueType.EUINT64 if ciphertext[0] == ValueType.EUINT64.tag else ValueType.EBOOL
        nonce = ciphertext[1:1 + self.NONCE_SIZE]
        masked = int.from_bytes(ciphertext[1 + self.NONCE_SIZE:], "big")
        value = masked ^ self._keystream(nonce)
        return self._new_handle(value_type, value, "input")

    # -- client and gateway side ---------------------------------------------

    def _keystream(self, nonce: bytes) -> int:
        return int.from_bytes(hmac.new(self._key, nonce, hashlib.sha256).digest()[:8], "big")

    def encrypt_input(self, value: int, context: InputContext) -> EncryptedInput:
        """Encrypt a uint64 for `context` and obtain its input proof."""
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT64_MASK:
            raise InvalidHandle("value", "Must be an unsigned 64-bit integer", value)
        nonce = secrets.token_bytes(self.NONCE_SIZE)
        masked = value ^ self._keystream(nonce)
        ciphertext = bytes([ValueType.EUINT64.tag]) + nonce + masked.to_bytes(8, "big")
        return EncryptedInput(ciphertext, self.verifier.attest(ciphertext, context))

    def decrypt(self, value: EncryptedValue) -> int:
        """
        Privileged decryption.

        Only the decryption gateway (which enforces the ACL) and test code call
        this; the ledger never does.
        """
        return self._plaintext(value)
