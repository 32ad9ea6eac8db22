"""Diagnostic records, raw transport failures and classifier state.

A DiagnosticRecord is created once per raw failure by the ErrorClassifier.
The only later mutation is resolution metadata (`mark_resolved`).
ClassifierState holds the per-category counters and the bounded history; it
is passed to the classifier explicitly so tests and independent servers do
not share state by accident.
"""
import errno
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .models import ErrorCategory, ErrorSeverity, RecoveryStrategy


@dataclass(frozen=True)
class RecoveryPlan:
    """Recommended recovery with strategy-specific parameters."""

    strategy: RecoveryStrategy
    max_retries: Optional[int] = None
    retry_delay_ms: Optional[int] = None
    backoff_multiplier: Optional[float] = None
    circuit_breaker_threshold: Optional[int] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"strategy": self.strategy.value}
        for name in ("max_retries", "retry_delay_ms", "backoff_multiplier", "circuit_breaker_threshold"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class OperationContext:
    """Caller-supplied context for one classification."""

    operation: str
    correlation_id: Optional[str] = None
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class DiagnosticContext:
    """Context attached to a DiagnosticRecord at classification time."""

    operation: str
    endpoint: Optional[str]
    timestamp: datetime


@dataclass
class DiagnosticRecord:
    """One classified failure."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    recovery: RecoveryPlan
    correlation_id: str
    context: DiagnosticContext
    source_error_code: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    resolved_by: Optional[str] = None
    resolution_time: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_by is not None

    def mark_resolved(self, resolved_by: str, at: Optional[datetime] = None) -> None:
        """Record that the orchestration layer recovered from this failure."""
        self.resolved_by = resolved_by
        self.resolution_time = at or datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "recovery": self.recovery.to_dict(),
            "source_error_code": self.source_error_code,
            "correlation_id": self.correlation_id,
            "operation": self.context.operation,
            "endpoint": self.context.endpoint,
            "timestamp": self.context.timestamp.isoformat(),
            "details": self.details,
            "resolved_by": self.resolved_by,
            "resolution_time": self.resolution_time.isoformat() if self.resolution_time else None,
        }


def _network_code(exc: BaseException) -> Optional[str]:
    """Find a symbolic errno (ECONNREFUSED, ...) on the exception or its causes."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        code = getattr(current, "errno", None)
        if isinstance(code, int) and code in errno.errorcode:
            return errno.errorcode[code]
        current = current.__cause__ or current.__context__
    return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


@dataclass
class TransportFailure:
    """Failure reported by the HTTP layer.

    Carries an HTTP status code and body when a response arrived, or a
    network error code and message when it did not.
    """

    status_code: Optional[int] = None
    body: Any = None
    headers: Optional[dict[str, str]] = None
    network_code: Optional[str] = None
    message: str = ""
    endpoint: Optional[str] = None
    method: Optional[str] = None
    exception_type: Optional[str] = None

    @property
    def has_response(self) -> bool:
        return self.status_code is not None

    @classmethod
    def from_exception(cls, exc: BaseException) -> Optional["TransportFailure"]:
        """Adapt an httpx or socket-level exception, or return None for anything else."""
        if isinstance(exc, httpx.HTTPStatusError):
            response = exc.response
            return cls(
                status_code=response.status_code,
                body=_response_body(response),
                headers=dict(response.headers),
                message=str(exc),
                endpoint=str(exc.request.url),
                method=exc.request.method,
                exception_type=type(exc).__name__,
            )

        if isinstance(exc, httpx.TransportError):
            try:
                request = exc.request
            except RuntimeError:
                request = None
            return cls(
                network_code=_network_code(exc),
                message=str(exc),
                endpoint=str(request.url) if request is not None else None,
                method=request.method if request is not None else None,
                exception_type=type(exc).__name__,
            )

        if isinstance(exc, (ConnectionError, TimeoutError)) or type(exc).__module__ in ("socket", "ssl"):
            return cls(
                network_code=_network_code(exc),
                message=str(exc),
                exception_type=type(exc).__name__,
            )

        return None


class ClassifierState:
    """Per-category counters and bounded diagnostic history, safe for concurrent use."""

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self._lock = threading.Lock()
        self._counts: dict[ErrorCategory, int] = {}
        self._history: deque[DiagnosticRecord] = deque(maxlen=max_history)

    def record(self, diagnostic: DiagnosticRecord) -> None:
        with self._lock:
            self._counts[diagnostic.category] = self._counts.get(diagnostic.category, 0) + 1
            if self.max_history > 0:
                self._history.append(diagnostic)

    def count(self, category: ErrorCategory) -> int:
        with self._lock:
            return self._counts.get(category, 0)

    def counts(self) -> dict[ErrorCategory, int]:
        with self._lock:
            return dict(self._counts)

    def history(self) -> list[DiagnosticRecord]:
        with self._lock:
            return list(self._history)

    def resolve(self, correlation_id: str, resolved_by: str, at: Optional[datetime] = None) -> bool:
        """Mark the most recent unresolved record for `correlation_id` as resolved.

        Returns:
            True if a record was found and updated
        """
        with self._lock:
            for diagnostic in reversed(self._history):
                if diagnostic.correlation_id == correlation_id and not diagnostic.is_resolved:
                    diagnostic.mark_resolved(resolved_by, at)
                    return True
        return False

    def metrics(self) -> dict:
        """Aggregate statistics over the counters and retained history."""
        with self._lock:
            history = list(self._history)
            counts = dict(self._counts)

        by_severity: dict[str, int] = {}
        for diagnostic in history:
            by_severity[diagnostic.severity.value] = by_severity.get(diagnostic.severity.value, 0) + 1

        recovery_seconds = [
            (d.resolution_time - d.context.timestamp).total_seconds()
            for d in history
            if d.resolution_time is not None
        ]
        mttr = sum(recovery_seconds) / len(recovery_seconds) if recovery_seconds else 0.0

        top = sorted(counts.items(), key=lambda item: (-item[1], item[0].value))
        return {
            "total_errors": sum(counts.values()),
            "errors_by_category": {category.value: count for category, count in counts.items()},
            "errors_by_severity": by_severity,
            "history_size": len(history),
            "resolved": len(recovery_seconds),
            "mean_time_to_recovery_seconds": mttr,
            "top_categories": [{"category": c.value, "count": n} for c, n in top],
        }

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._history.clear()
