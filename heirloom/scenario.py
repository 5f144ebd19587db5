"""
HEIRLOOM Scenario Runner

Loads YAML scenarios, validates them against the bundled JSON Schemas, and
replays them against a freshly deployed system.

Scenario Format:

    name: basic-distribution
    accounts: [executor, alice, bob]
    steps:
      - {action: mint, to: executor, amount: 1000}
      - {action: create_estate, as: executor, name: E1, ref: e1}
      - {action: add_heir, as: executor, estate: e1, heir: alice, amount: 100}
      - {action: deposit, as: executor, estate: e1, amount: 100}
      - {action: finalize, as: executor, estate: e1}
      - {action: claim, as: alice, estate: e1}
      - {action: claim, as: alice, estate: e1, expect_error: AlreadyClaimed}
    expect:
      balances: {alice: 100}

Every account gets a fresh Ed25519 key; its address derives from the public
key. Expected balances and allocations are read back through the decryption
gateway with a request signed by the owning account, so expectations only
pass when the ACL actually lets that account decrypt.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from heirloom.config import HeirloomConfig, get_config
from heirloom.gateway import address_from_public_key, create_decryption_request
from heirloom.hardening import HeirloomError
from heirloom.observability import HeirloomLayer, get_logger
from heirloom.routing import encode_estate_id
from heirloom.system import System, deploy

SCHEMA_DIR = Path(__file__).parent / "schemas"
SCENARIO_SCHEMA = SCHEMA_DIR / "scenario.schema.json"

DEFAULT_GENESIS = 1_700_000_000

logger = get_logger("scenario", HeirloomLayer.CLI)


class ScenarioError(Exception):
    """Scenario could not be loaded or is invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


# =============================================================================
# SCHEMA VALIDATION
# =============================================================================

def load_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def _schema_registry(schema_dir: Path = SCHEMA_DIR) -> Registry:
    """Registry of the bundled schemas so `$ref`s between them resolve."""
    resources = []
    for schema_path in sorted(schema_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        schema_id = schema.get("$id") or schema_path.name
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


def schema_validator(schema_path: Path = SCENARIO_SCHEMA) -> Draft202012Validator:
    schema = load_json(schema_path)
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_scenario(data: Any) -> List[str]:
    """Validate scenario data. Returns error messages (empty if valid)."""
    validator = schema_validator()
    errors = [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(data), key=lambda e: e.json_path)
    ]
    if errors:
        return errors

    accounts = set(data["accounts"])
    for index, step in enumerate(data["steps"]):
        for key in ("as", "to", "heir", "operator"):
            if key in step and step[key] not in accounts and not step[key].startswith("0x"):
                errors.append(f"$.steps[{index}].{key}: unknown account {step[key]!r}")
    owner = data.get("owner")
    if owner is not None and owner not in accounts:
        errors.append(f"$.owner: unknown account {owner!r}")
    return errors


def load_scenario(path: Union[str, Path]) -> Dict[str, Any]:
    """Load and validate a scenario file."""
    path = Path(path)
    if not path.exists():
        raise ScenarioError(f"Scenario file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ScenarioError(f"Invalid YAML in {path}: {e}") from e

    errors = validate_scenario(data)
    if errors:
        raise ScenarioError(f"Scenario {path} is invalid", errors)
    return data


# =============================================================================
# REPORT
# =============================================================================

@dataclass
class StepResult:
    index: int
    action: str
    ok: bool
    error: str = ""
    expected_error: str = ""
    result: Any = None


@dataclass
class ScenarioReport:
    name: str
    steps: List[StepResult] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)
    balances: Dict[str, int] = field(default_factory=dict)
    failures: List[str] = field(default_factory=list)
    audit_chain_valid: bool = True

    @property
    def passed(self) -> bool:
        return not self.failures and all(s.ok for s in self.steps) and self.audit_chain_valid

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["passed"] = self.passed
        return data


# =============================================================================
# RUNNER
# =============================================================================

class ScenarioRunner:
    """Replays one scenario against a fresh deployment."""

    def __init__(self, scenario: Dict[str, Any], config: Optional[HeirloomConfig] = None):
        self.scenario = scenario
        self.keys: Dict[str, Ed25519PrivateKey] = {
            name: Ed25519PrivateKey.generate() for name in scenario["accounts"]
        }
        self.addresses: Dict[str, str] = {
            name: address_from_public_key(key.public_key()) for name, key in self.keys.items()
        }
        owner = scenario.get("owner", scenario["accounts"][0])
        self.system: System = deploy(config or get_config(), owner=self.addresses[owner])
        self.system.clock.set(scenario.get("genesis_timestamp", DEFAULT_GENESIS))
        self.estates: Dict[str, int] = {}

    def _address(self, name: str) -> str:
        return self.addresses.get(name, name)

    def _estate_id(self, ref: Union[int, str]) -> int:
        if isinstance(ref, int):
            return ref
        if ref not in self.estates:
            raise ScenarioError(f"Unknown estate reference {ref!r}")
        return self.estates[ref]

    def _step(self, step: Dict[str, Any]) -> Any:
        system = self.system
        token, registry = system.token, system.registry
        action = step["action"]
        sender = self._address(step.get("as", ""))

        if action == "mint":
            actor = sender or token.owner
            token.mint(actor, self._address(step["to"]), step["amount"])
        elif action == "transfer":
            ct = system.encrypt_for(step["amount"], token.address, sender)
            token.confidential_transfer(sender, self._address(step["to"]), ct.ciphertext, ct.proof)
        elif action == "set_operator":
            until = system.clock.now() + step["until_offset"]
            token.set_operator(sender, self._address(step["operator"]), until)
        elif action == "create_estate":
            estate_id = registry.create_estate(sender, step.get("name", ""))
            if "ref" in step:
                self.estates[step["ref"]] = estate_id
            return estate_id
        elif action == "add_heir":
            ct = system.encrypt_for(step["amount"], registry.address, sender)
            registry.add_heir(
                sender, self._estate_id(step["estate"]), self._address(step["heir"]),
                ct.ciphertext, ct.proof,
            )
        elif action == "remove_heir":
            registry.remove_heir(sender, self._estate_id(step["estate"]), self._address(step["heir"]))
        elif action == "deposit":
            if "payload" in step:
                payload = bytes.fromhex(step["payload"].removeprefix("0x"))
            else:
                payload = encode_estate_id(self._estate_id(step["estate"]))
            ct = system.encrypt_for(step["amount"], token.address, sender)
            token.confidential_transfer_and_call(
                sender, registry.address, ct.ciphertext, ct.proof, payload,
            )
        elif action == "finalize":
            registry.finalize_estate(sender, self._estate_id(step["estate"]))
        elif action == "claim":
            registry.claim_allocation(sender, self._estate_id(step["estate"]))
        elif action == "advance_time":
            return system.clock.advance(step["seconds"])
        return None

    def _decrypt(self, account: str, contract: str, handle: Any) -> int:
        request = create_decryption_request(
            self.keys[account], [contract], self.system.clock.now(),
        )
        return self.system.gateway.user_decrypt(request, [handle])[handle.handle]

    def _check_expectations(self, report: ScenarioReport) -> None:
        expect = self.scenario.get("expect", {})
        token, registry = self.system.token, self.system.registry

        for account in self.scenario["accounts"]:
            balance = token.balance_of(self.addresses[account])
            report.balances[account] = self._decrypt(account, token.address, balance)

        for account, amount in expect.get("balances", {}).items():
            actual = report.balances.get(account)
            if actual != amount:
                report.failures.append(f"balance of {account}: expected {amount}, got {actual}")

        for ref, allocations in expect.get("allocations", {}).items():
            estate_id = self._estate_id(ref)
            for heir, amount in allocations.items():
                try:
                    handle = registry.get_my_allocation(self.addresses[heir], estate_id)
                    actual = self._decrypt(heir, registry.address, handle)
                except HeirloomError as e:
                    report.failures.append(f"allocation of {heir} in {ref}: {type(e).__name__}")
                    continue
                if actual != amount:
                    report.failures.append(
                        f"allocation of {heir} in {ref}: expected {amount}, got {actual}"
                    )

        for ref, claims in expect.get("claimed", {}).items():
            estate_id = self._estate_id(ref)
            for heir, claimed in claims.items():
                if registry.has_claimed(estate_id, self.addresses[heir]) != claimed:
                    report.failures.append(f"claimed flag of {heir} in {ref}: expected {claimed}")

    def run(self) -> ScenarioReport:
        report = ScenarioReport(name=self.scenario["name"])
        for index, step in enumerate(self.scenario["steps"]):
            expected = step.get("expect_error", "")
            result = StepResult(index=index, action=step["action"], ok=True, expected_error=expected)
            try:
                result.result = self._step(step)
                if expected:
                    result.ok = False
            except HeirloomError as e:
                result.error = type(e).__name__
                result.ok = expected in (type(e).__name__, e.category)
            report.steps.append(result)
            if not result.ok:
                logger.warning(
                    "Scenario step did not match expectation",
                    scenario=report.name,
                    step=index,
                    action=step["action"],
                )

        self._check_expectations(report)
        report.events = [
            {"stream": record.stream_id, "type": record.event.event_type}
            for record in self.system.runtime.event_store.read_all()
        ]
        report.audit_chain_valid = self.system.runtime.audit.verify_chain()
        logger.info("Scenario finished", scenario=report.name, passed=report.passed)
        return report


def run_scenario(path: Union[str, Path], config: Optional[HeirloomConfig] = None) -> ScenarioReport:
    """Load, validate and run a scenario file."""
    return ScenarioRunner(load_scenario(path), config=config).run()
