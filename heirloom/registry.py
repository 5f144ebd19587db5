"""
HEIRLOOM Estate Registry

Multi-estate front end: sequential estate ids, executor and heir reverse
indices, the external estate operations, and the deposit receiver hook.

All estates share the registry's token account. Each estate's encrypted
`balance` tracks its share of that account; deposits credit it through the
receiver hook and claims debit it.

Deposit Flow:

    depositor ──confidential_transfer_and_call(registry, ct, proof, payload)──► token
        token: ingest ct, debit depositor, credit registry          (effects)
        token ──on_confidential_transfer_received(payload)──► registry
            registry: decode payload, resolve estate, credit estate (last step)
            registry ──RECEIVER_ACK──► token

Any failure along the flow reverts the whole unit, including the debit.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from heirloom.config import HeirloomConfig, get_config
from heirloom.events import (
    AllocationClaimed,
    EstateCreated,
    EstateFinalized,
    FundsDeposited,
    HeirAdded,
    HeirRemoved,
)
from heirloom.estate import Estate, EstateLedger
from heirloom.fhe import EncryptedValue, HomomorphicBackend, InputContext
from heirloom.hardening import (
    EstateNotFound,
    NotAuthorized,
    Validators,
    normalize_address,
    require_address,
)
from heirloom.observability import HeirloomLayer, get_logger, timed_operation
from heirloom.routing import RECEIVER_ACK, decode_estate_id
from heirloom.runtime import Contract, Runtime, transactional
from heirloom.token import ConfidentialToken

logger = get_logger("registry", HeirloomLayer.REGISTRY)


@dataclass
class EstateStorage:
    """Registry storage: estate records, id counter and reverse indices."""
    estates: Dict[int, Estate] = field(default_factory=dict)
    next_id: int = 0
    executor_index: Dict[str, List[int]] = field(default_factory=dict)
    heir_index: Dict[str, List[int]] = field(default_factory=dict)


@dataclass(frozen=True)
class EstateInfo:
    """Public estate summary."""
    executor: str
    created_at: int
    finalized: bool
    active: bool
    name: str
    estate_id: int = 0

    @property
    def display_name(self) -> str:
        return self.name or f"Estate #{self.estate_id}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EstateRegistry(Contract):
    """
    Registry of estates.

    Example:
        estate_id = registry.create_estate(executor, "Family Trust")
        ct = backend.encrypt_input(100, InputContext(registry.address, executor))
        registry.add_heir(executor, estate_id, heir, ct.ciphertext, ct.proof)
        registry.finalize_estate(executor, estate_id)
        registry.claim_allocation(heir, estate_id)
    """

    def __init__(
        self,
        runtime: Runtime,
        token: ConfidentialToken,
        backend: HomomorphicBackend,
        storage: Optional[EstateStorage] = None,
        config: Optional[HeirloomConfig] = None,
    ):
        super().__init__(runtime, "estate-registry")
        self.token = token
        self.backend = backend
        self.state = storage if storage is not None else EstateStorage()
        self._max_name_length = (config or get_config()).estate.max_name_length.get()
        runtime.deploy(self)

    # -- helpers --------------------------------------------------------------

    def _estate(self, estate_id: int) -> Estate:
        estate = self.state.estates.get(estate_id)
        if estate is None:
            raise EstateNotFound("Estate does not exist", estate_id=estate_id)
        return estate

    def _ledger(self, estate_id: int) -> EstateLedger:
        return EstateLedger(self._estate(estate_id), self.backend, self.acl, self.address)

    # -- estate management ----------------------------------------------------

    @property
    def next_estate_id(self) -> int:
        return self.state.next_id

    @transactional()
    @timed_operation(logger, "create_estate")
    def create_estate(self, sender: str, name: str = "") -> int:
        executor = require_address(sender, "sender")
        name = Validators.validate_name(name, "name", self._max_name_length).unwrap()

        estate_id = self.state.next_id
        self.state.next_id += 1
        ledger = EstateLedger.open(
            estate_id, executor, name, self.now(), self.backend, self.acl, self.address,
        )
        self.state.estates[estate_id] = ledger.estate
        self.state.executor_index.setdefault(executor, []).append(estate_id)

        self.emit(EstateCreated(estate_id=estate_id, executor=executor, name=name))
        logger.info("Estate created", estate_id=estate_id, executor=executor)
        return estate_id

    def get_estate_info(self, estate_id: int) -> EstateInfo:
        estate = self._estate(estate_id)
        return EstateInfo(
            executor=estate.executor,
            created_at=estate.created_at,
            finalized=estate.finalized,
            active=estate.active,
            name=estate.name,
            estate_id=estate.estate_id,
        )

    def get_my_executor_estates(self, sender: str) -> List[int]:
        return list(self.state.executor_index.get(normalize_address(sender), []))

    def get_my_heir_estates(self, sender: str) -> List[int]:
        return list(self.state.heir_index.get(normalize_address(sender), []))

    # -- heir management ------------------------------------------------------

    @transactional()
    def add_heir(
        self,
        sender: str,
        estate_id: int,
        heir: str,
        ciphertext: bytes,
        proof: bytes,
    ) -> None:
        sender = require_address(sender, "sender")
        ledger = self._ledger(estate_id)
        # Authorization and state checks run before the ciphertext is ingested
        ledger.require_executor(sender)
        ledger.require_mutable()
        allocation = self.backend.from_external(ciphertext, proof, InputContext(self.address, sender))
        ledger.add_heir(sender, heir, allocation)

        heir = normalize_address(heir)
        self.state.heir_index.setdefault(heir, []).append(estate_id)
        self.emit(HeirAdded(estate_id=estate_id, heir=heir))
        logger.info("Heir added", estate_id=estate_id, heir=heir)

    @transactional()
    def remove_heir(self, sender: str, estate_id: int, heir: str) -> None:
        sender = require_address(sender, "sender")
        self._ledger(estate_id).remove_heir(sender, heir)

        heir = normalize_address(heir)
        estates = self.state.heir_index.get(heir, [])
        if estate_id in estates:
            estates.remove(estate_id)
        self.emit(HeirRemoved(estate_id=estate_id, heir=heir))
        logger.info("Heir removed", estate_id=estate_id, heir=heir)

    def get_heirs(self, estate_id: int) -> List[str]:
        return self._estate(estate_id).heirs.to_list()

    def get_heir_count(self, estate_id: int) -> int:
        return len(self._estate(estate_id).heirs)

    def is_heir_of(self, estate_id: int, address: str) -> bool:
        return self._ledger(estate_id).is_heir(address)

    # -- allocation and claim -------------------------------------------------

    def get_my_allocation(self, sender: str, estate_id: int) -> EncryptedValue:
        return self._ledger(estate_id).my_allocation(normalize_address(sender))

    def get_allocation(self, sender: str, estate_id: int, heir: str) -> EncryptedValue:
        return self._ledger(estate_id).allocation_for(normalize_address(sender), heir)

    @transactional()
    def finalize_estate(self, sender: str, estate_id: int) -> None:
        sender = require_address(sender, "sender")
        self._ledger(estate_id).finalize(sender)
        self.emit(EstateFinalized(estate_id=estate_id, executor=sender))
        logger.info("Estate finalized", estate_id=estate_id)

    @transactional()
    @timed_operation(logger, "claim_allocation")
    def claim_allocation(self, sender: str, estate_id: int) -> EncryptedValue:
        heir = require_address(sender, "sender")
        payout = self._ledger(estate_id).begin_claim(heir)
        # The registry moves its own funds: holder == spender
        self.token.transfer(self.address, self.address, heir, payout)
        self.emit(AllocationClaimed(estate_id=estate_id, heir=heir))
        logger.info("Allocation claimed", estate_id=estate_id, heir=heir)
        return payout

    def has_claimed(self, estate_id: int, heir: str) -> bool:
        return self._ledger(estate_id).has_claimed(heir)

    # -- funding --------------------------------------------------------------

    def get_contract_balance(self, sender: str, estate_id: int) -> EncryptedValue:
        return self._ledger(estate_id).balance(normalize_address(sender))

    def get_total_allocated(self, sender: str, estate_id: int) -> EncryptedValue:
        return self._ledger(estate_id).total_allocated(normalize_address(sender))

    @transactional("deposit")
    def on_confidential_transfer_received(
        self,
        sender: str,
        operator: str,
        from_: str,
        amount: EncryptedValue,
        payload: bytes,
    ) -> bytes:
        """Receiver hook: route an incoming token transfer to an estate."""
        if normalize_address(sender) != self.token.address:
            raise NotAuthorized("Deposits are only accepted from the estate token", sender=sender)
        if not self.acl.is_allowed(amount, self.address):
            raise NotAuthorized("Registry may not use the deposited amount")

        try:
            estate_id = decode_estate_id(payload)
            ledger = self._ledger(estate_id)
        except Exception as e:
            logger.warning("Deposit routing failed", error_code=getattr(e, "code", ""), depositor=from_)
            raise
        ledger.credit(amount)

        self.emit(FundsDeposited(estate_id=estate_id, depositor=normalize_address(from_)))
        logger.info("Funds deposited", estate_id=estate_id, depositor=normalize_address(from_))
        return RECEIVER_ACK
