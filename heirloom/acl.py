"""
HEIRLOOM Access Control List

Per-ciphertext grant registry deciding who may ever decrypt (or compute with)
a given handle.

Rules:
    - grant() is idempotent and additive; there is no revoke
    - A grant lives as long as the handle does, even after the business object
      that held the handle moved on to a new handle
    - Transient grants hand a handle to another contract for the current
      atomic unit only; the runtime clears them when the unit ends

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import copy
import threading
from typing import Dict, FrozenSet, Iterable, Set

from heirloom.fhe import EncryptedValue
from heirloom.hardening import InvalidHandle, normalize_address


class AccessControlList:
    """
    Grant registry keyed by ciphertext handle.

    Example:
        acl = AccessControlList()
        acl.grant(balance, holder)
        acl.is_granted(balance, holder)   # True
    """

    def __init__(self):
        self._grants: Dict[str, Set[str]] = {}
        self._transient: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _key(value: EncryptedValue) -> str:
        if not isinstance(value, EncryptedValue):
            raise InvalidHandle("handle", f"Expected EncryptedValue, got {type(value).__name__}")
        if not value.is_initialized:
            raise InvalidHandle("handle", "Cannot grant access to the uninitialized handle")
        return value.handle

    def grant(self, value: EncryptedValue, principal: str) -> None:
        """Grant `principal` decrypt eligibility on `value`. Idempotent."""
        key = self._key(value)
        with self._lock:
            self._grants.setdefault(key, set()).add(normalize_address(principal))

    def grant_many(self, value: EncryptedValue, principals: Iterable[str]) -> None:
        for principal in principals:
            self.grant(value, principal)

    def grant_transient(self, value: EncryptedValue, principal: str) -> None:
        """Allow `principal` to use `value` until the current atomic unit ends."""
        key = self._key(value)
        with self._lock:
            self._transient.setdefault(key, set()).add(normalize_address(principal))

    def is_granted(self, value: EncryptedValue, principal: str) -> bool:
        """Persistent grant lookup. Pure."""
        if not isinstance(value, EncryptedValue) or not value.is_initialized:
            return False
        with self._lock:
            return normalize_address(principal) in self._grants.get(value.handle, ())

    def is_allowed(self, value: EncryptedValue, principal: str) -> bool:
        """Persistent or transient grant lookup."""
        if self.is_granted(value, principal):
            return True
        if not isinstance(value, EncryptedValue) or not value.is_initialized:
            return False
        with self._lock:
            return normalize_address(principal) in self._transient.get(value.handle, ())

    def principals(self, value: EncryptedValue) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._grants.get(value.handle, ()))

    def clear_transient(self) -> None:
        with self._lock:
            self._transient.clear()

    # -- atomic unit support ----------------------------------------------------

    def snapshot(self) -> Dict[str, Set[str]]:
        with self._lock:
            return copy.deepcopy(self._grants)

    def restore(self, snapshot: Dict[str, Set[str]]) -> None:
        with self._lock:
            self._grants = snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._grants)
