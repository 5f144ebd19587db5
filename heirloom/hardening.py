"""
HEIRLOOM Validation and Hardening Module

Error taxonomy, input validation and state machine invariants shared by every
ledger component.

Error Model:
    - Every failure raises a subclass of HeirloomError
    - Failures roll back the whole atomic unit (see runtime.py)
    - No error is retried internally
    - No error message ever carries a plaintext amount

Taxonomy:

    HeirloomError
    ├── AuthorizationError    Forbidden, NotAuthorized
    ├── StateError            AlreadyFinalized, NotFinalized, EstateInactive
    ├── DuplicateError        AlreadyHeir, AlreadyClaimed
    ├── NotFoundError         EstateNotFound, NotHeir
    ├── ValidationError       ZeroAddress, InvalidAddress, MissingRoutingInfo,
    │                         ProofInvalid, InvalidHandle, InvalidName
    └── ReceiverRejected

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


# =============================================================================
# ERROR TYPES
# =============================================================================

class HeirloomError(Exception):
    """Base exception for all ledger failures."""

    code = "HEIRLOOM_ERROR"

    def __init__(self, message: str = "", **context: Any):
        self.message = message or self.__class__.__name__
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }

    @property
    def category(self) -> str:
        for base in type(self).__mro__:
            if base in _CATEGORIES:
                return base.__name__
        return HeirloomError.__name__


class AuthorizationError(HeirloomError):
    """Caller lacks the authority for the operation."""
    code = "AUTHORIZATION"


class StateError(HeirloomError):
    """Operation is illegal in the current lifecycle state."""
    code = "STATE"


class DuplicateError(HeirloomError):
    """Operation would repeat an exactly-once effect."""
    code = "DUPLICATE"


class NotFoundError(HeirloomError):
    """Referenced estate or membership does not exist."""
    code = "NOT_FOUND"


class ValidationError(HeirloomError):
    """Malformed input."""
    code = "VALIDATION"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {message}", field=field)


class ReceiverRejected(HeirloomError):
    """Transfer receiver did not acknowledge the transfer."""
    code = "RECEIVER_REJECTED"


_CATEGORIES = (
    AuthorizationError,
    StateError,
    DuplicateError,
    NotFoundError,
    ValidationError,
    ReceiverRejected,
)


class Forbidden(AuthorizationError):
    code = "FORBIDDEN"


class NotAuthorized(AuthorizationError):
    code = "NOT_AUTHORIZED"


class AlreadyFinalized(StateError):
    code = "ALREADY_FINALIZED"


class NotFinalized(StateError):
    code = "NOT_FINALIZED"


class EstateInactive(StateError):
    code = "ESTATE_INACTIVE"


class AlreadyHeir(DuplicateError):
    code = "ALREADY_HEIR"


class AlreadyClaimed(DuplicateError):
    code = "ALREADY_CLAIMED"


class EstateNotFound(NotFoundError):
    code = "ESTATE_NOT_FOUND"


class NotHeir(NotFoundError):
    code = "NOT_HEIR"


class ZeroAddress(ValidationError):
    code = "ZERO_ADDRESS"

    def __init__(self, field: str = "address"):
        super().__init__(field, "zero address not allowed")


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"


class MissingRoutingInfo(ValidationError):
    code = "MISSING_ROUTING_INFO"

    def __init__(self, message: str = "payload does not encode an estate id"):
        super().__init__("payload", message)


class ProofInvalid(ValidationError):
    code = "PROOF_INVALID"

    def __init__(self, message: str = "input proof rejected"):
        super().__init__("proof", message)


class InvalidHandle(ValidationError):
    code = "INVALID_HANDLE"


class InvalidName(ValidationError):
    code = "INVALID_NAME"


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the first error if validation failed."""
        if not self.is_valid:
            raise self.errors[0]

    def unwrap(self) -> Any:
        self.raise_if_invalid()
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

ZERO_ADDRESS = "0x" + "0" * 40


class Validators:
    """Collection of input validators."""

    HEX40_PATTERN = re.compile(r'^0x[a-f0-9]{40}$')
    HANDLE_PATTERN = re.compile(r'^0x[a-f0-9]{64}$')

    MAX_NAME_LENGTH = 256

    @classmethod
    def validate_address(
        cls,
        value: Any,
        field_name: str = "address",
        allow_zero: bool = False,
    ) -> ValidationResult:
        """Validate and normalize a 20-byte hex account address."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                InvalidAddress(field_name, f"Expected string, got {type(value).__name__}", value)
            ])

        lower = value.strip().lower()
        if not cls.HEX40_PATTERN.match(lower):
            return ValidationResult.failure([
                InvalidAddress(field_name, "Must be 0x + 40 hex characters", value)
            ])

        if lower == ZERO_ADDRESS and not allow_zero:
            return ValidationResult.failure([ZeroAddress(field_name)])

        return ValidationResult.success(lower)

    @classmethod
    def validate_name(
        cls,
        value: Any,
        field_name: str = "name",
        max_length: Optional[int] = None,
    ) -> ValidationResult:
        """Validate an estate display name. Empty names are allowed."""
        max_length = max_length if max_length is not None else cls.MAX_NAME_LENGTH
        if not isinstance(value, str):
            return ValidationResult.failure([
                InvalidName(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        if len(value) > max_length:
            return ValidationResult.failure([
                InvalidName(field_name, f"Too long (max {max_length} characters)", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_timestamp(cls, value: Any, field_name: str = "timestamp") -> ValidationResult:
        """Validate a unix timestamp in seconds."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected int, got {type(value).__name__}", value)
            ])
        if value < 0:
            return ValidationResult.failure([
                ValidationError(field_name, "Must be non-negative", value)
            ])
        return ValidationResult.success(value)


def require_address(value: Any, field_name: str = "address", allow_zero: bool = False) -> str:
    """Validate an address and return its normalized form."""
    return Validators.validate_address(value, field_name, allow_zero=allow_zero).unwrap()


def normalize_address(value: Any) -> Any:
    """Canonical lookup key for an address. Non-strings pass through unchanged."""
    return value.strip().lower() if isinstance(value, str) else value


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
        error: type = StateError,
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise error(
                f"Invalid state transition: {current_state.value} -> {target_state.value}",
                current=current_state.value,
                target=target_state.value,
            )
