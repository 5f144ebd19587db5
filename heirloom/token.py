"""
HEIRLOOM Confidential Token

Per-address encrypted balances with time-bounded operator approvals and
transfers that can notify a receiving contract.

Transfer Semantics:
    - The amount moved is select(ge(balance, amount), amount, 0): an
      insufficient balance moves nothing instead of failing, so a failed
      transfer is indistinguishable from a successful one to observers
    - Balances are updated before any receiver hook runs
    - A receiver that does not return RECEIVER_ACK fails the whole unit
    - New balance handles are granted to their holder and the token; the
      moved-amount handle to sender, recipient and operator

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from heirloom.events import ConfidentialTransfer, OperatorSet
from heirloom.fhe import EncryptedValue, HomomorphicBackend, InputContext
from heirloom.hardening import (
    ZERO_ADDRESS,
    NotAuthorized,
    ReceiverRejected,
    Validators,
    normalize_address,
    require_address,
)
from heirloom.observability import HeirloomLayer, get_logger
from heirloom.routing import RECEIVER_ACK
from heirloom.runtime import Contract, Runtime, transactional


@dataclass
class TokenState:
    """Mutable token storage."""
    balances: Dict[str, EncryptedValue] = field(default_factory=dict)
    operators: Dict[Tuple[str, str], int] = field(default_factory=dict)
    total_supply: EncryptedValue = field(default_factory=EncryptedValue.uninitialized)


class ConfidentialToken(Contract):
    """
    Confidential fungible token.

    Example:
        token = ConfidentialToken(runtime, backend, owner=admin)
        token.mint(admin, alice, 1_000)
        token.set_operator(alice, registry.address, until=now + 3600)
    """

    def __init__(
        self,
        runtime: Runtime,
        backend: HomomorphicBackend,
        owner: str,
        name: str = "Confidential Estate Token",
        symbol: str = "cEST",
        decimals: int = 6,
    ):
        super().__init__(runtime, f"token:{symbol}")
        self.backend = backend
        self.owner = require_address(owner, "owner")
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.state = TokenState()
        self._logger = get_logger("token", HeirloomLayer.TOKEN)
        runtime.deploy(self)

    # -- views ----------------------------------------------------------------

    def balance_of(self, account: str) -> EncryptedValue:
        """Balance handle of `account`; the uninitialized handle if never touched."""
        account = require_address(account, "account", allow_zero=True)
        return self.state.balances.get(account, EncryptedValue.uninitialized())

    @property
    def total_supply(self) -> EncryptedValue:
        return self.state.total_supply

    def is_operator(self, holder: str, spender: str) -> bool:
        holder = require_address(holder, "holder", allow_zero=True)
        spender = require_address(spender, "spender", allow_zero=True)
        if holder == spender:
            return True
        return self.state.operators.get((holder, spender), 0) > self.now()

    def operator_expiry(self, holder: str, operator: str) -> int:
        return self.state.operators.get((normalize_address(holder), normalize_address(operator)), 0)

    # -- approvals ------------------------------------------------------------

    @transactional()
    def set_operator(self, sender: str, operator: str, until: int) -> None:
        """Approve `operator` to move the sender's funds until `until`. Overwrites."""
        holder = require_address(sender, "sender")
        operator = require_address(operator, "operator")
        until = Validators.validate_timestamp(until, "until").unwrap()

        self.state.operators[(holder, operator)] = until
        self.emit(OperatorSet(token=self.address, holder=holder, operator=operator, until=until))
        self._logger.info("Operator set", holder=holder, operator=operator, until=until)

    # -- transfers ------------------------------------------------------------

    @transactional()
    def transfer(self, sender: str, from_: str, to: str, amount: EncryptedValue) -> EncryptedValue:
        """Move `amount` from `from_` to `to` on behalf of `sender`."""
        sender, from_, to = self._authorize(sender, from_, to, amount)
        return self._update(from_, to, amount, sender)

    @transactional()
    def transfer_with_payload(
        self,
        sender: str,
        from_: str,
        to: str,
        amount: EncryptedValue,
        payload: bytes,
    ) -> EncryptedValue:
        """Transfer, then require the receiving contract to acknowledge `payload`."""
        sender, from_, to = self._authorize(sender, from_, to, amount)
        moved = self._update(from_, to, amount, sender)
        self._notify_receiver(sender, from_, to, moved, payload)
        return moved

    @transactional()
    def confidential_transfer(
        self,
        sender: str,
        to: str,
        ciphertext: bytes,
        proof: bytes,
    ) -> EncryptedValue:
        """Transfer a client-encrypted amount from the sender's own balance."""
        sender = require_address(sender, "sender")
        to = require_address(to, "to")
        amount = self._ingest(sender, ciphertext, proof)
        return self._update(sender, to, amount, sender)

    @transactional()
    def confidential_transfer_and_call(
        self,
        sender: str,
        to: str,
        ciphertext: bytes,
        proof: bytes,
        payload: bytes,
    ) -> EncryptedValue:
        """Client-encrypted transfer that notifies the receiving contract."""
        sender = require_address(sender, "sender")
        to = require_address(to, "to")
        amount = self._ingest(sender, ciphertext, proof)
        moved = self._update(sender, to, amount, sender)
        self._notify_receiver(sender, sender, to, moved, payload)
        return moved

    # -- supply ---------------------------------------------------------------

    @transactional()
    def mint(self, sender: str, to: str, amount: int) -> EncryptedValue:
        """Owner-only: mint a public amount."""
        sender = self._require_owner(sender)
        to = require_address(to, "to")
        return self._update(None, to, self.backend.trivial_encrypt(amount), sender)

    @transactional()
    def mint_encrypted(self, sender: str, to: str, ciphertext: bytes, proof: bytes) -> EncryptedValue:
        """Owner-only: mint a client-encrypted amount."""
        sender = self._require_owner(sender)
        to = require_address(to, "to")
        amount = self._ingest(sender, ciphertext, proof)
        return self._update(None, to, amount, sender)

    # -- internals ------------------------------------------------------------

    def _require_owner(self, sender: str) -> str:
        sender = require_address(sender, "sender")
        if sender != self.owner:
            raise NotAuthorized("Only the token owner can mint", sender=sender)
        return sender

    def _authorize(
        self,
        sender: str,
        from_: str,
        to: str,
        amount: EncryptedValue,
    ) -> Tuple[str, str, str]:
        sender = require_address(sender, "sender")
        from_ = require_address(from_, "from")
        to = require_address(to, "to")
        if not self.is_operator(from_, sender):
            raise NotAuthorized("Caller is not an operator of the holder", holder=from_, caller=sender)
        if not self.acl.is_allowed(amount, sender):
            raise NotAuthorized("Caller may not use the amount handle", caller=sender)
        return sender, from_, to

    def _ingest(self, sender: str, ciphertext: bytes, proof: bytes) -> EncryptedValue:
        amount = self.backend.from_external(ciphertext, proof, InputContext(self.address, sender))
        self.acl.grant_transient(amount, self.address)
        self.acl.grant_transient(amount, sender)
        return amount

    def _touch(self, account: str) -> EncryptedValue:
        """Balance handle of `account`, creating a granted zero on first touch."""
        balance = self.state.balances.get(account)
        if balance is None:
            balance = self.backend.zero()
            self.acl.grant_many(balance, (account, self.address))
            self.state.balances[account] = balance
        return balance

    def _update(
        self,
        from_: Optional[str],
        to: str,
        amount: EncryptedValue,
        operator: str,
    ) -> EncryptedValue:
        if from_ is None:
            moved = amount
            supply = self.state.total_supply
            if not supply.is_initialized:
                supply = self.backend.zero()
            self.state.total_supply = self.backend.add(supply, moved)
            self.acl.grant_many(self.state.total_supply, (self.address, self.owner))
        else:
            balance = self._touch(from_)
            sufficient = self.backend.ge(balance, amount)
            moved = self.backend.select(sufficient, amount, self.backend.zero())
            new_from = self.backend.sub(balance, moved)
            self.state.balances[from_] = new_from
            self.acl.grant_many(new_from, (from_, self.address))

        # Read after the debit so a self-transfer credits the debited balance
        new_to = self.backend.add(self._touch(to), moved)
        self.state.balances[to] = new_to
        self.acl.grant_many(new_to, (to, self.address))

        principals = [to, operator, self.address]
        if from_ is not None:
            principals.append(from_)
        self.acl.grant_many(moved, principals)

        self.emit(ConfidentialTransfer(
            token=self.address,
            from_address=from_ or ZERO_ADDRESS,
            to_address=to,
            amount_handle=moved.handle,
        ))
        self._logger.debug("Transfer applied", from_address=from_ or ZERO_ADDRESS, to_address=to)
        return moved

    def _notify_receiver(
        self,
        operator: str,
        from_: str,
        to: str,
        moved: EncryptedValue,
        payload: bytes,
    ) -> None:
        receiver = self.runtime.contract_at(to)
        hook = getattr(receiver, "on_confidential_transfer_received", None)
        if hook is None:
            return

        self.acl.grant_transient(moved, to)
        result = hook(self.address, operator, from_, moved, payload)
        if result != RECEIVER_ACK:
            raise ReceiverRejected("Receiver did not acknowledge the transfer", receiver=to)
