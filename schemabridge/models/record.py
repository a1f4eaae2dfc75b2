"""Record-level models: structured values, transform results and integrity issues."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum
import json


Record = Dict[str, Any]

# Values a string-encoded field can hold once decoded.
JsonValue = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]


class StructuredKind(str, Enum):
    """How a string-encoded structured field was resolved."""
    PARSED = "parsed"  # valid JSON, decoded
    WRAPPED = "wrapped"  # not JSON, kept as {"value": raw}
    PASSTHROUGH = "passthrough"  # already structured, left alone


@dataclass(frozen=True)
class StructuredValue:
    """Outcome of decoding a string-encoded structured field."""
    kind: StructuredKind
    value: JsonValue

    @classmethod
    def decode(cls, raw: Any) -> "StructuredValue":
        """
        Parse a JSON string; wrap the raw text when it is not a JSON object or array.

        JSON scalars ("12", "\"x\"") are wrapped too, so decoding an already
        decoded value is always a passthrough.
        """
        if not isinstance(raw, str):
            return cls(StructuredKind.PASSTHROUGH, raw)

        try:
            parsed = json.loads(raw)
        except ValueError:
            return cls(StructuredKind.WRAPPED, {"value": raw})

        if isinstance(parsed, (dict, list)):
            return cls(StructuredKind.PARSED, parsed)
        return cls(StructuredKind.WRAPPED, {"value": raw})


class IssueType(str, Enum):
    """Kinds of integrity issue."""
    MISSING_REQUIRED = "missing_required"
    INVALID_FORMAT = "invalid_format"
    CONSTRAINT_VIOLATION = "constraint_violation"
    ORPHANED_REFERENCE = "orphaned_reference"
    DUPLICATE_VALUE = "duplicate_value"


class Severity(str, Enum):
    """Issue severity."""
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationError:
    """A single rule violation found on a record."""
    field: str
    message: str
    error_type: IssueType = IssueType.CONSTRAINT_VIOLATION
    severity: Severity = Severity.ERROR
    value: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field": self.field,
            "message": self.message,
            "error_type": self.error_type.value,
            "severity": self.severity.value,
            "value": self.value,
        }


@dataclass
class TransformResult:
    """Result of transforming one record to the canonical layout."""
    transformed_record: Record
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Check if the transformed record passed validation."""
        return not self.errors

    @property
    def record_id(self) -> Optional[str]:
        value = self.transformed_record.get("id")
        return str(value) if value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "transformedRecord": self.transformed_record,
            "isValid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class IntegrityIssue:
    """An integrity problem found on a stored record."""
    type: IssueType
    record_id: str
    message: str
    severity: Severity = Severity.ERROR
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type.value,
            "recordId": self.record_id,
            "field": self.field,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class IntegrityCheckResult:
    """Result of auditing one entity."""
    entity: str
    total_records: int = 0
    issues: List[IntegrityIssue] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == Severity.ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == Severity.WARNING)

    @property
    def health_score(self) -> int:
        """0-100 heuristic: 10 points per error, 2 per warning."""
        return max(0, 100 - self.errors * 10 - self.warnings * 2)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "errors": self.errors,
            "warnings": self.warnings,
            "healthScore": self.health_score,
        }

    def issues_of_type(self, issue_type: IssueType) -> List[IntegrityIssue]:
        """Get issues of a single type."""
        return [issue for issue in self.issues if issue.type == issue_type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "entity": self.entity,
            "totalRecords": self.total_records,
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": self.summary,
        }
