"""
HEIRLOOM Execution Runtime

The platform the ledger runs on: a serialized, all-or-nothing execution model
for contract calls, a block clock, and the contract registry.

Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │                      RUNTIME                                 │
    │  ┌─────────────┐  ┌─────────────┐  ┌─────────────┐          │
    │  │    Clock    │  │   Atomic    │  │   Event     │          │
    │  │ (block time)│  │    Units    │  │   Buffer    │          │
    │  └─────────────┘  └──────┬──────┘  └──────┬──────┘          │
    │                          │                │                  │
    │  ┌───────────────────────┴────────────────┴──────┐          │
    │  │              Contract Registry                 │          │
    │  │      ConfidentialToken │ EstateRegistry        │          │
    │  └────────────────────────────────────────────────┘          │
    └─────────────────────────────────────────────────────────────┘

Atomic Units:
    The outermost call snapshots the `state` of every deployed contract and
    the ACL grant table. Nested calls (a token transfer invoking a receiver
    hook that calls back into the token) join the running unit. If anything
    raises, every snapshot is restored, buffered events are dropped and
    transient grants are cleared. Only a committed unit publishes its events.

    Snapshots copy all contract state and the full grant table, so the cost
    of a call grows with the size of the ledger. The shadow backend handle
    table and the audit trail are append-only and grow with its history.

Usage:
    runtime = Runtime()
    with runtime.atomic("create_estate", actor=executor):
        ...

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import copy
import hashlib
import threading
import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from heirloom.acl import AccessControlList
from heirloom.events import Event, EventBus, EventStore
from heirloom.observability import (
    AuditLogger,
    HeirloomLayer,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
)

__all__ = [
    "Clock",
    "Runtime",
    "Contract",
    "transactional",
]

T = TypeVar("T")


# =============================================================================
# CLOCK
# =============================================================================

class Clock:
    """
    Block timestamp source in unix seconds.

    A clock created with a timestamp is frozen at that time and only moves when
    advanced. A clock created without one follows the wall clock.
    """

    def __init__(self, timestamp: Optional[int] = None):
        self._fixed = timestamp

    @property
    def is_fixed(self) -> bool:
        return self._fixed is not None

    def now(self) -> int:
        if self._fixed is not None:
            return self._fixed
        return int(time.time())

    def set(self, timestamp: int) -> None:
        self._fixed = timestamp

    def advance(self, seconds: int) -> int:
        """Move time forward; freezes a wall clock at its current reading first."""
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._fixed = self.now() + seconds
        return self._fixed


# =============================================================================
# RUNTIME
# =============================================================================

class Runtime:
    """
    Serialized atomic executor for contract calls.

    All mutations of contract state and grants happen inside `atomic()`. The
    runtime lock serializes units, so the ledger observes one total order of
    calls.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        acl: Optional[AccessControlList] = None,
        event_store: Optional[EventStore] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.clock = clock or Clock()
        self.acl = acl or AccessControlList()
        self.event_store = event_store or EventStore()
        self.event_bus = event_bus or EventBus()
        self._contracts: Dict[str, "Contract"] = {}
        self._pending: List[Event] = []
        self._depth = 0
        self._nonce = 0
        self._lock = threading.RLock()
        self._logger = get_logger("runtime", HeirloomLayer.RUNTIME)
        self.audit = AuditLogger(self._logger)

    # -- contract registry ----------------------------------------------------

    def new_address(self, label: str) -> str:
        """Derive a fresh deterministic contract address."""
        with self._lock:
            self._nonce += 1
            digest = hashlib.sha256(f"{label}:{self._nonce}".encode()).digest()
        return "0x" + digest[-20:].hex()

    def deploy(self, contract: "Contract") -> None:
        with self._lock:
            if contract.address in self._contracts:
                raise ValueError(f"Address already in use: {contract.address}")
            self._contracts[contract.address] = contract
        self._logger.info(
            "Contract deployed",
            contract=type(contract).__name__,
            address=contract.address,
        )

    def contract_at(self, address: str) -> Optional["Contract"]:
        return self._contracts.get(address.lower())

    def is_contract(self, address: str) -> bool:
        return address.lower() in self._contracts

    # -- atomic units ---------------------------------------------------------

    @property
    def in_unit(self) -> bool:
        return self._depth > 0

    def emit(self, event: Event) -> None:
        """Buffer an event until the running unit commits."""
        if self._depth == 0:
            raise RuntimeError("Events can only be emitted inside an atomic unit")
        if event.correlation_id is None:
            event.correlation_id = correlation_id_var.get() or None
        self._pending.append(event)

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "contracts": {
                address: copy.deepcopy(contract.state)
                for address, contract in self._contracts.items()
            },
            "acl": self.acl.snapshot(),
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for address, saved in snapshot["contracts"].items():
            self._contracts[address].restore_state(saved)
        self.acl.restore(snapshot["acl"])

    @contextmanager
    def atomic(self, operation: str, actor: str = "") -> Iterator["Runtime"]:
        """
        Run a block as one all-or-nothing unit.

        Nested entries join the enclosing unit; only the outermost entry
        snapshots, commits or reverts.
        """
        with self._lock:
            outermost = self._depth == 0
            snapshot = None
            cid_token = None
            if outermost:
                snapshot = self._snapshot()
                if not correlation_id_var.get():
                    cid_token = correlation_id_var.set(generate_correlation_id())

            self._depth += 1
            try:
                yield self
            except BaseException as e:
                self._depth -= 1
                if outermost:
                    self._restore(snapshot)
                    self._pending = []
                    self.acl.clear_transient()
                    self.audit.log(actor, operation, "reverted", error=type(e).__name__)
                    self._logger.info(
                        "Unit reverted",
                        operation=operation,
                        error_code=getattr(e, "code", ""),
                    )
                raise
            else:
                self._depth -= 1
                if outermost:
                    events, self._pending = self._pending, []
                    self.acl.clear_transient()
                    self.event_store.append(events)
                    self.audit.log(actor, operation, "committed", events=len(events))
                    for event in events:
                        self.event_bus.publish(event)
            finally:
                if cid_token is not None:
                    correlation_id_var.reset(cid_token)


def transactional(operation: Optional[str] = None) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator running a contract method as an atomic unit.

    The first positional argument after `self` is taken as the acting address.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = operation or func.__name__

        @wraps(func)
        def wrapper(self: "Contract", *args: Any, **kwargs: Any) -> T:
            actor = kwargs.get("sender", args[0] if args else "")
            with self.runtime.atomic(name, actor=str(actor)):
                return func(self, *args, **kwargs)
        return wrapper
    return decorator


# =============================================================================
# CONTRACT BASE
# =============================================================================

class Contract:
    """
    Base class for deployed contracts.

    Every piece of mutable contract data lives in `self.state` so the runtime
    can snapshot and restore it as a whole.
    """

    def __init__(self, runtime: Runtime, label: str):
        self.runtime = runtime
        self.address = runtime.new_address(label)
        self.state: Any = None

    @property
    def acl(self) -> AccessControlList:
        return self.runtime.acl

    def now(self) -> int:
        return self.runtime.clock.now()

    def emit(self, event: Event) -> None:
        self.runtime.emit(event)

    def restore_state(self, saved: Any) -> None:
        """
        Roll `state` back to a snapshot taken by the runtime.

        Objects with attributes are restored in place so that storage handed in
        by the caller keeps tracking the contract.
        """
        if hasattr(self.state, "__dict__") and type(self.state) is type(saved):
            self.state.__dict__.clear()
            self.state.__dict__.update(saved.__dict__)
        elif isinstance(self.state, dict) and isinstance(saved, dict):
            self.state.clear()
            self.state.update(saved)
        else:
            self.state = saved
