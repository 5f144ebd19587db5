"""
HEIRLOOM Estate Ledger

The per-estate state machine: heir membership, encrypted allocations, the
encrypted running total, the estate's encrypted balance, and the
finalize/claim lifecycle.

State Machine:

    OPEN ──finalize──► FINALIZED

    OPEN:       add_heir, remove_heir, finalize, deposits
    FINALIZED:  claims (each heir at most once), deposits

There is no terminal closed state. `finalized` never goes back to False.

Grant Rules:
    Every handle produced by a mutation is granted, after all arithmetic, to
    each principal expected to read it:
        allocation      heir, executor, custodian
        total_allocated executor, custodian
        balance         executor, custodian
        claimed amount  heir, executor, custodian
    The custodian is the contract holding the estate's funds.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List

from heirloom.acl import AccessControlList
from heirloom.fhe import EncryptedValue, HomomorphicBackend
from heirloom.hardening import (
    AlreadyClaimed,
    AlreadyFinalized,
    AlreadyHeir,
    EstateInactive,
    Forbidden,
    InvariantChecker,
    NotFinalized,
    NotHeir,
    normalize_address,
    require_address,
)


class EstateStatus(Enum):
    OPEN = "open"
    FINALIZED = "finalized"


VALID_TRANSITIONS = {
    EstateStatus.OPEN: {EstateStatus.FINALIZED},
    EstateStatus.FINALIZED: set(),
}


class HeirSet:
    """
    Unordered address set with O(1) insert, removal and membership.

    Removal swaps the last element into the removed slot, so iteration order
    is not stable across removals.
    """

    def __init__(self):
        self._items: List[str] = []
        self._positions: Dict[str, int] = {}

    def add(self, address: str) -> None:
        if address in self._positions:
            return
        self._positions[address] = len(self._items)
        self._items.append(address)

    def remove(self, address: str) -> None:
        index = self._positions.pop(address)
        last = self._items.pop()
        if index < len(self._items):
            self._items[index] = last
            self._positions[last] = index

    def __contains__(self, address: object) -> bool:
        return address in self._positions

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def to_list(self) -> List[str]:
        return list(self._items)


@dataclass
class Estate:
    """Stored estate record."""
    estate_id: int
    executor: str
    created_at: int
    name: str = ""
    finalized: bool = False
    active: bool = True
    heirs: HeirSet = field(default_factory=HeirSet)
    allocations: Dict[str, EncryptedValue] = field(default_factory=dict)
    claimed: Dict[str, bool] = field(default_factory=dict)
    balance: EncryptedValue = field(default_factory=EncryptedValue.uninitialized)
    total_allocated: EncryptedValue = field(default_factory=EncryptedValue.uninitialized)

    @property
    def status(self) -> EstateStatus:
        return EstateStatus.FINALIZED if self.finalized else EstateStatus.OPEN


class EstateLedger:
    """
    Operations on a single estate.

    The ledger is a thin view over an `Estate` record owned by the registry's
    storage; it holds no state of its own.
    """

    def __init__(
        self,
        estate: Estate,
        backend: HomomorphicBackend,
        acl: AccessControlList,
        custodian: str,
    ):
        self.estate = estate
        self.backend = backend
        self.acl = acl
        self.custodian = custodian

    @classmethod
    def open(
        cls,
        estate_id: int,
        executor: str,
        name: str,
        created_at: int,
        backend: HomomorphicBackend,
        acl: AccessControlList,
        custodian: str,
    ) -> 'EstateLedger':
        """Create a new OPEN estate with zero balance and total."""
        estate = Estate(estate_id=estate_id, executor=executor, created_at=created_at, name=name)
        ledger = cls(estate, backend, acl, custodian)
        estate.balance = backend.zero()
        estate.total_allocated = backend.zero()
        ledger._grant_to_executor(estate.balance)
        ledger._grant_to_executor(estate.total_allocated)
        return ledger

    # -- guards ---------------------------------------------------------------

    def require_executor(self, caller: str) -> None:
        if caller != self.estate.executor:
            raise Forbidden("Only the executor can perform this action", estate_id=self.estate.estate_id)

    def require_mutable(self) -> None:
        if self.estate.finalized:
            raise AlreadyFinalized("Estate is already finalized", estate_id=self.estate.estate_id)
        if not self.estate.active:
            raise EstateInactive("Estate is not active", estate_id=self.estate.estate_id)

    def _require_heir(self, address: str) -> None:
        if address not in self.estate.heirs:
            raise NotHeir("Address is not an heir of this estate", estate_id=self.estate.estate_id)

    def _grant_to_executor(self, value: EncryptedValue) -> None:
        self.acl.grant_many(value, (self.estate.executor, self.custodian))

    # -- mutations ------------------------------------------------------------

    def add_heir(self, caller: str, heir: str, allocation: EncryptedValue) -> None:
        self.require_executor(caller)
        self.require_mutable()
        heir = require_address(heir, "heir")
        if heir in self.estate.heirs:
            raise AlreadyHeir("Address is already an heir", estate_id=self.estate.estate_id)

        estate = self.estate
        estate.allocations[heir] = allocation
        estate.heirs.add(heir)
        estate.total_allocated = self.backend.add(estate.total_allocated, allocation)

        self.acl.grant(allocation, heir)
        self._grant_to_executor(allocation)
        self._grant_to_executor(estate.total_allocated)

    def remove_heir(self, caller: str, heir: str) -> None:
        self.require_executor(caller)
        self.require_mutable()
        heir = require_address(heir, "heir", allow_zero=True)
        self._require_heir(heir)

        estate = self.estate
        estate.total_allocated = self.backend.sub(estate.total_allocated, estate.allocations[heir])
        # The old allocation handle keeps its grants; only the slot is reset.
        estate.allocations[heir] = self.backend.zero()
        estate.heirs.remove(heir)

        self._grant_to_executor(estate.total_allocated)
        self._grant_to_executor(estate.allocations[heir])

    def finalize(self, caller: str) -> None:
        self.require_executor(caller)
        InvariantChecker.check_state_transition(
            self.estate.status,
            EstateStatus.FINALIZED,
            VALID_TRANSITIONS,
            error=AlreadyFinalized,
        )
        self.estate.finalized = True

    def begin_claim(self, caller: str) -> EncryptedValue:
        """
        Mark `caller`'s allocation claimed and return the amount to pay out.

        The amount is the allocation when the estate balance covers it and
        zero otherwise. The estate balance is debited by the returned amount.
        """
        estate = self.estate
        if not estate.finalized:
            raise NotFinalized("Estate is not finalized", estate_id=estate.estate_id)
        self._require_heir(caller)
        if estate.claimed.get(caller, False):
            raise AlreadyClaimed("Allocation already claimed", estate_id=estate.estate_id)

        estate.claimed[caller] = True
        allocation = estate.allocations[caller]
        covered = self.backend.ge(estate.balance, allocation)
        payout = self.backend.select(covered, allocation, self.backend.zero())
        estate.balance = self.backend.sub(estate.balance, payout)

        self._grant_to_executor(estate.balance)
        self.acl.grant(payout, caller)
        self._grant_to_executor(payout)
        return payout

    def credit(self, amount: EncryptedValue) -> None:
        """Add a routed deposit to the estate balance."""
        estate = self.estate
        estate.balance = self.backend.add(estate.balance, amount)
        self._grant_to_executor(estate.balance)

    # -- read paths -----------------------------------------------------------

    def allocation_for(self, caller: str, heir: str) -> EncryptedValue:
        self.require_executor(caller)
        heir = require_address(heir, "heir", allow_zero=True)
        return self.estate.allocations.get(heir, EncryptedValue.uninitialized())

    def my_allocation(self, caller: str) -> EncryptedValue:
        self._require_heir(caller)
        return self.estate.allocations[caller]

    def balance(self, caller: str) -> EncryptedValue:
        self.require_executor(caller)
        return self.estate.balance

    def total_allocated(self, caller: str) -> EncryptedValue:
        self.require_executor(caller)
        return self.estate.total_allocated

    def is_heir(self, address: str) -> bool:
        return normalize_address(address) in self.estate.heirs

    def has_claimed(self, address: str) -> bool:
        return self.estate.claimed.get(normalize_address(address), False)
