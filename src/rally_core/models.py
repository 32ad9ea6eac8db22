"""Enumerations shared across the Rally bridge."""
import enum


class ArtifactType(str, enum.Enum):
    """Rally artifact types addressable through the client."""

    USER_STORY = "UserStory"
    HIERARCHICAL_REQUIREMENT = "HierarchicalRequirement"
    DEFECT = "Defect"
    TASK = "Task"
    PROJECT = "Project"
    USER = "User"
    WORKSPACE = "Workspace"
    ITERATION = "Iteration"


class DefectSeverity(str, enum.Enum):
    """Defect severity values accepted by Rally."""

    COSMETIC = "Cosmetic"
    MINOR = "Minor"
    MAJOR = "Major"
    CRITICAL = "Critical"


class DefectState(str, enum.Enum):
    """Defect workflow states."""

    SUBMITTED = "Submitted"
    OPEN = "Open"
    IN_PROGRESS = "In-Progress"
    FIXED = "Fixed"
    CLOSED = "Closed"


class TaskState(str, enum.Enum):
    """Task workflow states."""

    DEFINED = "Defined"
    IN_PROGRESS = "In-Progress"
    COMPLETED = "Completed"


class ErrorCategory(str, enum.Enum):
    """Closed error taxonomy. Every classified failure maps to exactly one value."""

    VALIDATION = "validation"
    SCHEMA_VALIDATION = "schema-validation"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    NOT_FOUND = "not-found"
    RESOURCE_CONFLICT = "resource-conflict"
    RATE_LIMIT = "rate-limit"
    SERVICE_UNAVAILABLE = "service-unavailable"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SSL_CERTIFICATE = "ssl-certificate"
    CONFIGURATION = "configuration"
    PROTOCOL = "protocol"
    SERIALIZATION = "serialization"
    DATA_TRANSFORMATION = "data-transformation"
    INTERNAL = "internal"
    UNEXPECTED = "unexpected"


class ErrorSeverity(str, enum.Enum):
    """Ordinal severity of a classified failure."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


# Lower number = less severe
SEVERITY_RANK: dict[ErrorSeverity, int] = {
    ErrorSeverity.LOW: 1,
    ErrorSeverity.MEDIUM: 2,
    ErrorSeverity.HIGH: 3,
    ErrorSeverity.CRITICAL: 4,
}


class RecoveryStrategy(str, enum.Enum):
    """Recommended caller response to a classified failure (never executed here)."""

    RETRY_IMMEDIATE = "retry-immediate"
    RETRY_WITH_BACKOFF = "retry-with-backoff"
    CIRCUIT_BREAKER = "circuit-breaker"
    FAIL_FAST = "fail-fast"
    REQUIRE_INTERVENTION = "require-intervention"
    DEGRADE_GRACEFULLY = "degrade-gracefully"
