"""
HEIRLOOM System Assembly

Wires the runtime, encryption backend, token, registry and decryption gateway
into one deployment.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from heirloom.acl import AccessControlList
from heirloom.config import HeirloomConfig, get_config
from heirloom.fhe import EncryptedInput, InputContext, ShadowBackend
from heirloom.gateway import DecryptionGateway
from heirloom.registry import EstateRegistry, EstateStorage
from heirloom.runtime import Clock, Runtime
from heirloom.token import ConfidentialToken

DEFAULT_TOKEN_OWNER = "0x" + "ad" * 20


@dataclass
class System:
    """A deployed ledger."""
    runtime: Runtime
    backend: ShadowBackend
    token: ConfidentialToken
    registry: EstateRegistry
    gateway: DecryptionGateway

    @property
    def acl(self) -> AccessControlList:
        return self.runtime.acl

    @property
    def clock(self) -> Clock:
        return self.runtime.clock

    def encrypt_for(self, value: int, contract: str, user: str) -> EncryptedInput:
        """Client-side encryption of `value` for `user` calling `contract`."""
        return self.backend.encrypt_input(value, InputContext(contract, user))


def deploy(
    config: Optional[HeirloomConfig] = None,
    owner: str = DEFAULT_TOKEN_OWNER,
    backend: Optional[ShadowBackend] = None,
    storage: Optional[EstateStorage] = None,
) -> System:
    """Deploy a fresh token, registry and gateway on a new runtime."""
    config = config or get_config()

    genesis = config.runtime.genesis_timestamp.get()
    runtime = Runtime(clock=Clock(genesis or None))
    backend = backend or ShadowBackend()

    token = ConfidentialToken(
        runtime,
        backend,
        owner=owner,
        name=config.token.name.get(),
        symbol=config.token.symbol.get(),
        decimals=config.token.decimals.get(),
    )
    registry = EstateRegistry(runtime, token, backend, storage=storage, config=config)
    gateway = DecryptionGateway(runtime.acl, backend, runtime.clock, config=config)
    return System(runtime=runtime, backend=backend, token=token, registry=registry, gateway=gateway)
