import os
import pathlib
import sys
from types import SimpleNamespace
from typing import Tuple

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import heirloom`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey  # noqa: E402

from heirloom.config import ConfigManager  # noqa: E402
from heirloom.gateway import address_from_public_key  # noqa: E402
from heirloom.routing import encode_estate_id  # noqa: E402
from heirloom.system import deploy  # noqa: E402

GENESIS = 1_700_000_000

REPO_ROOT = _REPO_ROOT
SCENARIO_DIR = _REPO_ROOT / "scenarios"


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from default configuration."""
    for var in list(os.environ):
        if var.startswith("HEIRLOOM_"):
            monkeypatch.delenv(var, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def accounts():
    """Well-known account addresses."""
    return SimpleNamespace(
        executor="0x" + "11" * 20,
        alice="0x" + "a1" * 20,
        bob="0x" + "b0" * 20,
        carol="0x" + "c0" * 20,
        mallory="0x" + "dd" * 20,
    )


@pytest.fixture
def system():
    """A freshly deployed ledger with a frozen clock."""
    deployed = deploy()
    deployed.clock.set(GENESIS)
    return deployed


@pytest.fixture
def decrypt(system):
    """Privileged plaintext read for assertions."""
    return system.backend.decrypt


@pytest.fixture
def mint(system):
    def _mint(to: str, amount: int):
        return system.token.mint(system.token.owner, to, amount)
    return _mint


@pytest.fixture
def create_estate(system, accounts):
    def _create(name: str = "E1", sender: str = None) -> int:
        return system.registry.create_estate(sender or accounts.executor, name)
    return _create


@pytest.fixture
def add_heir(system, accounts):
    def _add(estate_id: int, heir: str, amount: int, sender: str = None):
        sender = sender or accounts.executor
        ct = system.encrypt_for(amount, system.registry.address, sender)
        system.registry.add_heir(sender, estate_id, heir, ct.ciphertext, ct.proof)
    return _add


@pytest.fixture
def deposit(system, accounts):
    def _deposit(estate_id: int, amount: int, sender: str = None, payload: bytes = None):
        sender = sender or accounts.executor
        if payload is None:
            payload = encode_estate_id(estate_id)
        ct = system.encrypt_for(amount, system.token.address, sender)
        return system.token.confidential_transfer_and_call(
            sender, system.registry.address, ct.ciphertext, ct.proof, payload,
        )
    return _deposit


@pytest.fixture
def user_key():
    """Factory for an Ed25519 key and the address it controls."""
    def _make() -> Tuple[Ed25519PrivateKey, str]:
        key = Ed25519PrivateKey.generate()
        return key, address_from_public_key(key.public_key())
    return _make
