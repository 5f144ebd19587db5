"""
HEIRLOOM: Confidential Estate Allocation Ledger

An executor registers encrypted allocations for a set of heirs. Each heir can
decrypt only their own allocation, the executor can decrypt all of them, and
the encrypted aggregates (total allocated, estate balance) stay correct
without ever being decrypted by the ledger. Allocations lock at finalization,
after which each heir claims exactly once.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                     CONFIDENTIAL ESTATE LEDGER                           │
    │                                                                          │
    │  ESTATES                                                                 │
    │    registry.py    Estate ids, reverse indices, deposit receiver hook    │
    │    estate.py      Per-estate OPEN → FINALIZED state machine             │
    │    routing.py     Deposit payload encoding and receiver acknowledgment  │
    │                                                                          │
    │  VALUE                                                                   │
    │    token.py       Confidential token with operators and hooks           │
    │    gateway.py     Signed user decryption against the ACL                │
    │                                                                          │
    │  PLATFORM                                                                │
    │    fhe.py         Ciphertext handles, homomorphic backend, input proofs │
    │    acl.py         Non-revocable per-handle grants                       │
    │    runtime.py     Atomic units with snapshot/rollback, block clock      │
    │    events.py      Committed notifications, bus and store                │
    │    hardening.py   Error taxonomy, validators, state invariants          │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Ciphertext handle: Opaque reference to an encrypted uint64. The ledger only
    combines handles through the injected backend (zero, add, sub, ingest).

    Grant: ACL record letting a principal decrypt one handle. Grants are never
    revoked; a handle replaced by a new one keeps its old grants.

    Atomic unit: Every external call either commits completely or leaves no
    trace, including across the token's receiver hook.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.3.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import HEIRLOOM components on first access."""

    if name in ("System", "deploy"):
        from heirloom import system
        return getattr(system, name)

    if name in ("EstateRegistry", "EstateStorage", "EstateInfo"):
        from heirloom import registry
        return getattr(registry, name)

    if name in ("EstateLedger", "Estate", "EstateStatus", "HeirSet"):
        from heirloom import estate
        return getattr(estate, name)

    if name in ("ConfidentialToken",):
        from heirloom import token
        return getattr(token, name)

    if name in ("EncryptedValue", "ShadowBackend", "InputContext", "InputVerifier",
                "HomomorphicBackend"):
        from heirloom import fhe
        return getattr(fhe, name)

    if name in ("AccessControlList",):
        from heirloom import acl
        return getattr(acl, name)

    if name in ("DecryptionGateway", "DecryptionRequest", "create_decryption_request",
                "address_from_public_key"):
        from heirloom import gateway
        return getattr(gateway, name)

    if name in ("encode_estate_id", "decode_estate_id", "RECEIVER_ACK"):
        from heirloom import routing
        return getattr(routing, name)

    if name in ("Runtime", "Clock"):
        from heirloom import runtime
        return getattr(runtime, name)

    raise AttributeError(f"module 'heirloom' has no attribute {name!r}")
