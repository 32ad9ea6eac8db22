"""Error classification for failed Rally operations.

Maps raw failures (httpx errors, structured transport failures, exceptions,
arbitrary values) onto the closed ErrorCategory taxonomy, each with a
severity, a recovery recommendation and a fixed user-facing message.

Precedence (first match wins):
1. HTTP status code -> STATUS_RULES (then generic 5xx / 4xx / 3xx)
2. Transport failure -> NETWORK_PATTERNS on error code and message
3. Exception -> type table, name/message substrings, network patterns,
   builtin fallbacks, then internal
4. Anything else -> unexpected

The classifier never raises and performs no I/O. Logging the resulting
DiagnosticRecord is the caller's job.
"""
import json
import re
import traceback
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from .diagnostics import (
    ClassifierState,
    DiagnosticContext,
    DiagnosticRecord,
    OperationContext,
    RecoveryPlan,
    TransportFailure,
)
from .exceptions import ConfigurationError, RallyApiError, RallyResponseError
from .models import ErrorCategory, ErrorSeverity, RecoveryStrategy
from .security import sanitize_log_data


@dataclass(frozen=True)
class ClassificationRule:
    """Category plus optional overrides of that category's defaults."""

    category: ErrorCategory
    severity: Optional[ErrorSeverity] = None
    recovery: Optional[RecoveryPlan] = None


@dataclass(frozen=True)
class NetworkPattern:
    rule: ClassificationRule
    pattern: re.Pattern
    description: str


_BACKOFF_FAST = RecoveryPlan(RecoveryStrategy.RETRY_WITH_BACKOFF, max_retries=3, retry_delay_ms=1000, backoff_multiplier=2)
_BACKOFF_SLOW = RecoveryPlan(RecoveryStrategy.RETRY_WITH_BACKOFF, max_retries=3, retry_delay_ms=2000, backoff_multiplier=2)
_RATE_LIMIT_BACKOFF = RecoveryPlan(RecoveryStrategy.RETRY_WITH_BACKOFF, max_retries=5, retry_delay_ms=5000, backoff_multiplier=2)
_CIRCUIT_BREAKER = RecoveryPlan(RecoveryStrategy.CIRCUIT_BREAKER, circuit_breaker_threshold=5)
_FAIL_FAST = RecoveryPlan(RecoveryStrategy.FAIL_FAST)
_INTERVENTION = RecoveryPlan(RecoveryStrategy.REQUIRE_INTERVENTION)


# Default severity and recovery per category
CATEGORY_DEFAULTS: dict[ErrorCategory, tuple[ErrorSeverity, RecoveryPlan]] = {
    ErrorCategory.VALIDATION: (ErrorSeverity.MEDIUM, _FAIL_FAST),
    ErrorCategory.SCHEMA_VALIDATION: (ErrorSeverity.MEDIUM, _FAIL_FAST),
    ErrorCategory.AUTHENTICATION: (ErrorSeverity.CRITICAL, _INTERVENTION),
    ErrorCategory.PERMISSION: (ErrorSeverity.HIGH, _INTERVENTION),
    ErrorCategory.NOT_FOUND: (ErrorSeverity.MEDIUM, _FAIL_FAST),
    ErrorCategory.RESOURCE_CONFLICT: (
        ErrorSeverity.MEDIUM,
        RecoveryPlan(RecoveryStrategy.RETRY_IMMEDIATE, max_retries=2, retry_delay_ms=1000),
    ),
    ErrorCategory.RATE_LIMIT: (ErrorSeverity.MEDIUM, _RATE_LIMIT_BACKOFF),
    ErrorCategory.SERVICE_UNAVAILABLE: (ErrorSeverity.HIGH, _CIRCUIT_BREAKER),
    ErrorCategory.TIMEOUT: (ErrorSeverity.MEDIUM, _BACKOFF_SLOW),
    ErrorCategory.NETWORK: (ErrorSeverity.HIGH, _BACKOFF_FAST),
    ErrorCategory.SSL_CERTIFICATE: (ErrorSeverity.CRITICAL, _INTERVENTION),
    ErrorCategory.CONFIGURATION: (ErrorSeverity.CRITICAL, _INTERVENTION),
    ErrorCategory.PROTOCOL: (ErrorSeverity.MEDIUM, _FAIL_FAST),
    ErrorCategory.SERIALIZATION: (ErrorSeverity.MEDIUM, _FAIL_FAST),
    ErrorCategory.DATA_TRANSFORMATION: (ErrorSeverity.MEDIUM, _FAIL_FAST),
    ErrorCategory.INTERNAL: (
        ErrorSeverity.HIGH,
        RecoveryPlan(RecoveryStrategy.RETRY_IMMEDIATE, max_retries=1, retry_delay_ms=1000),
    ),
    ErrorCategory.UNEXPECTED: (ErrorSeverity.HIGH, _FAIL_FAST),
}

# Fixed user-facing text; raw error text never goes here
CATEGORY_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.VALIDATION: "The provided data is invalid.",
    ErrorCategory.SCHEMA_VALIDATION: "The tool arguments do not match the expected schema.",
    ErrorCategory.AUTHENTICATION: "Authentication failed. Please check your API credentials.",
    ErrorCategory.PERMISSION: "You do not have permission to perform this operation.",
    ErrorCategory.NOT_FOUND: "The requested resource was not found.",
    ErrorCategory.RESOURCE_CONFLICT: "The resource was modified by another request. Please retry.",
    ErrorCategory.RATE_LIMIT: "Rally API rate limit exceeded. Please wait before trying again.",
    ErrorCategory.SERVICE_UNAVAILABLE: "Rally service is temporarily unavailable. Please try again later.",
    ErrorCategory.TIMEOUT: "The request timed out. Please check your network connection.",
    ErrorCategory.NETWORK: "Network error occurred. Please check your connection.",
    ErrorCategory.SSL_CERTIFICATE: "Secure connection failed. The server certificate could not be verified.",
    ErrorCategory.CONFIGURATION: "Configuration error. Please check your settings.",
    ErrorCategory.PROTOCOL: "The tool request could not be processed.",
    ErrorCategory.SERIALIZATION: "The response from Rally could not be read.",
    ErrorCategory.DATA_TRANSFORMATION: "The data could not be converted between Rally and tool formats.",
    ErrorCategory.INTERNAL: "An internal error occurred. Please try again.",
    ErrorCategory.UNEXPECTED: "An unexpected error occurred.",
}

# HTTP status -> classification. Rules here beat every pattern below.
STATUS_RULES: dict[int, ClassificationRule] = {
    401: ClassificationRule(ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL, _INTERVENTION),
    403: ClassificationRule(ErrorCategory.PERMISSION, ErrorSeverity.HIGH, _INTERVENTION),
    404: ClassificationRule(ErrorCategory.NOT_FOUND, ErrorSeverity.MEDIUM, _FAIL_FAST),
    408: ClassificationRule(ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM, _BACKOFF_SLOW),
    409: ClassificationRule(ErrorCategory.RESOURCE_CONFLICT),
    422: ClassificationRule(ErrorCategory.VALIDATION, ErrorSeverity.MEDIUM, _FAIL_FAST),
    429: ClassificationRule(ErrorCategory.RATE_LIMIT, ErrorSeverity.MEDIUM, _RATE_LIMIT_BACKOFF),
    500: ClassificationRule(ErrorCategory.SERVICE_UNAVAILABLE, ErrorSeverity.HIGH, _BACKOFF_SLOW),
    501: ClassificationRule(
        ErrorCategory.SERVICE_UNAVAILABLE, ErrorSeverity.MEDIUM, RecoveryPlan(RecoveryStrategy.DEGRADE_GRACEFULLY)
    ),
    502: ClassificationRule(ErrorCategory.SERVICE_UNAVAILABLE, ErrorSeverity.HIGH, _CIRCUIT_BREAKER),
    503: ClassificationRule(ErrorCategory.SERVICE_UNAVAILABLE, ErrorSeverity.HIGH, _CIRCUIT_BREAKER),
    504: ClassificationRule(ErrorCategory.TIMEOUT, ErrorSeverity.HIGH, _BACKOFF_SLOW),
}

GENERIC_SERVER_ERROR = ClassificationRule(ErrorCategory.SERVICE_UNAVAILABLE, ErrorSeverity.HIGH, _BACKOFF_SLOW)
GENERIC_CLIENT_ERROR = ClassificationRule(ErrorCategory.VALIDATION, ErrorSeverity.MEDIUM, _FAIL_FAST)
# Redirects are not followed; the base URL or scheme is wrong
GENERIC_REDIRECT = ClassificationRule(ErrorCategory.CONFIGURATION, ErrorSeverity.CRITICAL, _INTERVENTION)
# A non-error status reported as a failure
GENERIC_NON_ERROR_STATUS = ClassificationRule(ErrorCategory.PROTOCOL)

# Retry-After delay-seconds above this are clamped
MAX_RETRY_AFTER_SECONDS = 3600

# Checked in order against transport error codes and messages
NETWORK_PATTERNS: list[NetworkPattern] = [
    NetworkPattern(
        ClassificationRule(ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM, _BACKOFF_FAST),
        re.compile(r"timeout|timed out|ETIMEDOUT", re.IGNORECASE),
        "Connection timeout - retry with exponential backoff",
    ),
    NetworkPattern(
        ClassificationRule(ErrorCategory.NETWORK, ErrorSeverity.HIGH, _CIRCUIT_BREAKER),
        re.compile(
            r"ENOTFOUND|EAI_AGAIN|EAI_NONAME|getaddrinfo|name or service not known|"
            r"nodename nor servname|name resolution|\bDNS\b",
            re.IGNORECASE,
        ),
        "DNS resolution failure - check network connectivity",
    ),
    NetworkPattern(
        ClassificationRule(ErrorCategory.SSL_CERTIFICATE, ErrorSeverity.CRITICAL, _INTERVENTION),
        re.compile(r"certificate|\bSSL|\bTLS|CERT_", re.IGNORECASE),
        "TLS certificate validation error - requires manual intervention",
    ),
    NetworkPattern(
        ClassificationRule(ErrorCategory.NETWORK, ErrorSeverity.HIGH, _BACKOFF_SLOW),
        re.compile(
            r"ECONNREFUSED|ECONNRESET|ECONNABORTED|EPIPE|EHOSTUNREACH|ENETUNREACH|"
            r"connection refused|connection reset|connection aborted|broken pipe",
            re.IGNORECASE,
        ),
        "Network connection error - retry with backoff",
    ),
]

# Transport failures raised before a request could be sent
REQUEST_SETUP_ERRORS: tuple[type[BaseException], ...] = (httpx.UnsupportedProtocol, httpx.InvalidURL)

# Exact exception types, checked before message inspection
EXCEPTION_TYPE_RULES: list[tuple[type[BaseException], ClassificationRule]] = [
    (ConfigurationError, ClassificationRule(ErrorCategory.CONFIGURATION)),
    (httpx.InvalidURL, ClassificationRule(ErrorCategory.CONFIGURATION)),
    (ValidationError, ClassificationRule(ErrorCategory.SCHEMA_VALIDATION)),
    (RallyResponseError, ClassificationRule(ErrorCategory.SERIALIZATION)),
    (httpx.DecodingError, ClassificationRule(ErrorCategory.SERIALIZATION)),
    (json.JSONDecodeError, ClassificationRule(ErrorCategory.SERIALIZATION)),
    (UnicodeDecodeError, ClassificationRule(ErrorCategory.SERIALIZATION)),
]

# Lowercased substrings of "<exception name> <message>", checked in order
MESSAGE_RULES: list[tuple[tuple[str, ...], ClassificationRule]] = [
    (("validation",), ClassificationRule(ErrorCategory.VALIDATION)),
    (("authentication", "unauthorized", "invalid key", "api key"), ClassificationRule(ErrorCategory.AUTHENTICATION)),
    (("permission", "forbidden", "not authorized", "access denied"), ClassificationRule(ErrorCategory.PERMISSION)),
    (("concurrency conflict", "conflict"), ClassificationRule(ErrorCategory.RESOURCE_CONFLICT)),
    (("not found", "could not read", "does not exist"), ClassificationRule(ErrorCategory.NOT_FOUND)),
    (("protocol", "jsonrpc", "unknown tool"), ClassificationRule(ErrorCategory.PROTOCOL)),
]

# Builtin exceptions that signal malformed data in flight
FALLBACK_TYPE_RULES: list[tuple[type[BaseException], ClassificationRule]] = [
    (TypeError, ClassificationRule(ErrorCategory.DATA_TRANSFORMATION)),
    (KeyError, ClassificationRule(ErrorCategory.DATA_TRANSFORMATION)),
    (AttributeError, ClassificationRule(ErrorCategory.DATA_TRANSFORMATION)),
    (IndexError, ClassificationRule(ErrorCategory.DATA_TRANSFORMATION)),
]


def extract_rally_error_message(body: Any) -> Optional[str]:
    """Pull the first error string out of a Rally error payload."""
    if not body:
        return None

    if isinstance(body, str):
        return body

    if not isinstance(body, dict):
        return None

    for wrapper in ("QueryResult", "OperationResult", "CreateResult"):
        errors = (body.get(wrapper) or {}).get("Errors") if isinstance(body.get(wrapper), dict) else None
        if errors:
            return str(errors[0])

    if isinstance(body.get("Errors"), list) and body["Errors"]:
        return str(body["Errors"][0])

    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])

    return None


def _retry_after_ms(headers: Optional[dict[str, str]]) -> Optional[int]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            try:
                seconds = int(str(value).strip())
            except (TypeError, ValueError, OverflowError):
                return None
            return max(0, min(seconds, MAX_RETRY_AFTER_SECONDS)) * 1000
    return None


def _match_network_pattern(*texts: Optional[str]) -> Optional[ClassificationRule]:
    for entry in NETWORK_PATTERNS:
        for text in texts:
            if text and entry.pattern.search(text):
                return entry.rule
    return None


class ErrorClassifier:
    """Classify raw failures into DiagnosticRecords.

    Args:
        state: Shared counters/history; a private ClassifierState when omitted
        id_factory: Correlation id generator used when the context has none
        clock: Timestamp source
        include_stack_traces: Attach formatted tracebacks to record details
    """

    def __init__(
        self,
        state: Optional[ClassifierState] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        include_stack_traces: bool = False,
    ):
        self.state = state if state is not None else ClassifierState()
        self.id_factory = id_factory
        self.clock = clock
        self.include_stack_traces = include_stack_traces

    def classify(self, raw_failure: Any, context: OperationContext) -> DiagnosticRecord:
        """Classify `raw_failure` raised during `context.operation`. Never raises."""
        correlation_id = context.correlation_id or self.id_factory()
        timestamp = self.clock()

        try:
            record = self._classify(raw_failure, context, correlation_id, timestamp)
        except Exception as exc:
            record = self._build(
                ClassificationRule(ErrorCategory.UNEXPECTED),
                context,
                correlation_id,
                timestamp,
                details={"classification_error": type(exc).__name__},
            )

        self.state.record(record)
        return record

    def _classify(
        self,
        raw_failure: Any,
        context: OperationContext,
        correlation_id: str,
        timestamp: datetime,
    ) -> DiagnosticRecord:
        if isinstance(raw_failure, TransportFailure):
            failure: Optional[TransportFailure] = raw_failure
        elif isinstance(raw_failure, BaseException):
            failure = TransportFailure.from_exception(raw_failure)
        else:
            failure = None

        if failure is not None and failure.has_response:
            return self._from_status(failure, context, correlation_id, timestamp, raw_failure)

        if failure is not None and (failure.network_code or failure.message or failure.exception_type):
            return self._from_transport(failure, context, correlation_id, timestamp, raw_failure)

        if isinstance(raw_failure, BaseException):
            return self._from_exception(raw_failure, context, correlation_id, timestamp)

        return self._build(
            ClassificationRule(ErrorCategory.UNEXPECTED),
            context,
            correlation_id,
            timestamp,
            details={"value": repr(raw_failure)[:500], "value_type": type(raw_failure).__name__},
        )

    def _from_status(self, failure, context, correlation_id, timestamp, raw_failure) -> DiagnosticRecord:
        status = failure.status_code
        rule = STATUS_RULES.get(status)
        if rule is None:
            if status >= 500:
                rule = GENERIC_SERVER_ERROR
            elif status >= 400:
                rule = GENERIC_CLIENT_ERROR
            elif status >= 300:
                rule = GENERIC_REDIRECT
            else:
                rule = GENERIC_NON_ERROR_STATUS

        if rule.category == ErrorCategory.RATE_LIMIT:
            delay = _retry_after_ms(failure.headers)
            if delay is not None:
                _, default_recovery = CATEGORY_DEFAULTS[rule.category]
                base = rule.recovery or default_recovery
                rule = ClassificationRule(
                    rule.category,
                    rule.severity,
                    RecoveryPlan(
                        base.strategy,
                        max_retries=base.max_retries,
                        retry_delay_ms=delay,
                        backoff_multiplier=base.backoff_multiplier,
                    ),
                )

        details = {
            "http_status": status,
            "response_body": sanitize_log_data(failure.body),
            "response_headers": sanitize_log_data(failure.headers),
            "request_url": failure.endpoint,
            "request_method": failure.method,
            "rally_error_message": extract_rally_error_message(failure.body),
        }
        return self._build(
            rule, context, correlation_id, timestamp,
            source_error_code=str(status),
            endpoint=failure.endpoint,
            details=details,
            exc=raw_failure,
        )

    def _from_transport(self, failure, context, correlation_id, timestamp, raw_failure) -> DiagnosticRecord:
        rule = _match_network_pattern(failure.network_code, failure.message, failure.exception_type)
        if rule is None:
            if isinstance(raw_failure, REQUEST_SETUP_ERRORS):
                rule = ClassificationRule(ErrorCategory.CONFIGURATION)
            else:
                rule = ClassificationRule(ErrorCategory.NETWORK)

        details = {
            "network_code": failure.network_code,
            "original_message": failure.message,
            "exception_type": failure.exception_type,
            "request_url": failure.endpoint,
            "request_method": failure.method,
        }
        return self._build(
            rule, context, correlation_id, timestamp,
            source_error_code=failure.network_code or failure.exception_type,
            endpoint=failure.endpoint,
            details=details,
            exc=raw_failure,
        )

    def _from_exception(self, exc: BaseException, context, correlation_id, timestamp) -> DiagnosticRecord:
        name = type(exc).__name__
        message = str(exc)
        rule = self._rule_for_exception(exc, name, message)

        details: dict[str, Any] = {"exception_type": name, "original_message": message}
        if isinstance(exc, RallyApiError):
            details["rally_errors"] = exc.errors
            details["rally_warnings"] = exc.warnings
        if isinstance(exc, ValidationError):
            details["validation_errors"] = [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()
            ]
        return self._build(rule, context, correlation_id, timestamp, details=details, exc=exc)

    @staticmethod
    def _rule_for_exception(exc: BaseException, name: str, message: str) -> ClassificationRule:
        for exc_type, rule in EXCEPTION_TYPE_RULES:
            if isinstance(exc, exc_type):
                return rule

        haystack = f"{name} {message}".lower()
        for needles, rule in MESSAGE_RULES:
            if any(needle in haystack for needle in needles):
                return rule

        network_rule = _match_network_pattern(message)
        if network_rule is not None:
            return network_rule

        for exc_type, rule in FALLBACK_TYPE_RULES:
            if isinstance(exc, exc_type):
                return rule

        return ClassificationRule(ErrorCategory.INTERNAL)

    def _build(
        self,
        rule: ClassificationRule,
        context: OperationContext,
        correlation_id: str,
        timestamp: datetime,
        source_error_code: Optional[str] = None,
        endpoint: Optional[str] = None,
        details: Optional[dict] = None,
        exc: Any = None,
    ) -> DiagnosticRecord:
        default_severity, default_recovery = CATEGORY_DEFAULTS[rule.category]
        details = {key: value for key, value in (details or {}).items() if value is not None}

        if self.include_stack_traces and isinstance(exc, BaseException):
            details["stack_trace"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

        return DiagnosticRecord(
            category=rule.category,
            severity=rule.severity or default_severity,
            message=CATEGORY_MESSAGES[rule.category],
            recovery=rule.recovery or default_recovery,
            correlation_id=correlation_id,
            context=DiagnosticContext(
                operation=context.operation,
                endpoint=context.endpoint or endpoint,
                timestamp=timestamp,
            ),
            source_error_code=source_error_code,
            details=details,
        )
