"""
HEIRLOOM Observability Framework

Structured logging and audit trail for production monitoring.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Ledger Components                     │
    │  logger.info("Estate created", estate_id=3)             │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │              HeirloomLogger / AuditLogger                │
    │  Layer tags, correlation IDs, hash-chained audit        │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     Handlers                             │
    │      StructuredHandler (json) │ StreamHandler (text)    │
    └─────────────────────────────────────────────────────────┘

Log records never contain plaintext amounts or ciphertext bytes.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import sys
import threading
import time
import traceback
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class HeirloomLayer(Enum):
    """System layers for categorization."""
    FHE = "fhe"
    ACL = "acl"
    TOKEN = "token"
    ESTATE = "estate"
    REGISTRY = "registry"
    ROUTING = "routing"
    GATEWAY = "gateway"
    RUNTIME = "runtime"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class TextFormatter(logging.Formatter):
    """Human-readable formatter that appends the structured context."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = getattr(record, "context", {})
        if context:
            base += " " + " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return base


def _build_handler(log_format: str) -> logging.Handler:
    if log_format == "text":
        handler = logging.StreamHandler()
        handler.setFormatter(TextFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        return handler
    return StructuredHandler()


class HeirloomLogger:
    """
    Structured logger for HEIRLOOM components.

    Automatically includes correlation IDs and layer information in all log
    events.
    """

    def __init__(
        self,
        name: str,
        layer: HeirloomLayer,
        level: LogLevel = LogLevel.INFO,
        log_format: str = "json",
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"heirloom.{layer.value}.{name}")
        self._logger.setLevel(getattr(logging, level.value.upper()))

        if not any(getattr(h, "_heirloom_handler", False) for h in self._logger.handlers):
            handler = _build_handler(log_format)
            handler._heirloom_handler = True  # type: ignore[attr-defined]
            self._logger.addHandler(handler)
            self._logger.propagate = False

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.DEBUG if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if needed."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: HeirloomLayer) -> HeirloomLogger:
    """Get a logger for a HEIRLOOM component, honoring the observability config."""
    from heirloom.config import get_config

    obs = get_config().observability
    return HeirloomLogger(
        name,
        layer,
        level=LogLevel(obs.log_level.get()),
        log_format=obs.log_format.get(),
    )


T = TypeVar("T")


def timed_operation(
    logger: HeirloomLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator


# Audit logging
@dataclass
class AuditEvent:
    """Audit event for one atomic unit."""
    event_id: str
    timestamp: str
    actor: str
    action: str
    outcome: str  # committed, reverted
    correlation_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLogger:
    """
    Tamper-evident audit trail with hash chaining.

    Each entry's hash covers the entry and the previous hash.
    """

    GENESIS = "genesis"

    def __init__(self, logger: HeirloomLogger):
        self._logger = logger
        self._last_hash: str = self.GENESIS
        self._entries: list = []
        self._lock = threading.Lock()

    def _compute_hash(self, event: AuditEvent, previous: str) -> str:
        data = json.dumps(event.to_dict(), sort_keys=True, default=str) + previous
        return hashlib.sha256(data.encode()).hexdigest()

    def log(self, actor: str, action: str, outcome: str, **details: Any) -> AuditEvent:
        """Log an audit event."""
        event = AuditEvent(
            event_id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            actor=actor,
            action=action,
            outcome=outcome,
            correlation_id=get_correlation_id(),
            details=details,
        )

        with self._lock:
            event_hash = self._compute_hash(event, self._last_hash)
            self._entries.append((event, event_hash))
            self._last_hash = event_hash

        self._logger.debug(
            f"AUDIT: {action} {outcome}",
            operation="audit",
            actor=actor,
            event_hash=event_hash,
        )
        return event

    @property
    def head(self) -> str:
        with self._lock:
            return self._last_hash

    def entries(self) -> list:
        with self._lock:
            return [event for event, _ in self._entries]

    def verify_chain(self) -> bool:
        """Recompute every link of the chain."""
        with self._lock:
            previous = self.GENESIS
            for event, event_hash in self._entries:
                if self._compute_hash(event, previous) != event_hash:
                    return False
                previous = event_hash
            return True
