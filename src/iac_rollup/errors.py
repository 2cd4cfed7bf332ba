from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Sequence


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    code: str
    message: str
    path: str = ""
    value: Any = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]


class RollupError(Exception):
    """Base class for engine errors. Carries a machine-readable code."""

    code = "ROLLUP_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ConfigurationError(RollupError):
    code = "INVALID_CONFIGURATION"

    def __init__(
        self,
        message: str,
        *,
        issues: Sequence[ValidationIssue] = (),
        code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.issues = list(issues)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["issues"] = [asdict(issue) for issue in self.issues]
        return payload


class UnsupportedStrategyError(RollupError):
    code = "UNSUPPORTED_STRATEGY"


class RollupExecutionError(RollupError):
    code = "EXECUTION_FAILED"


class RollupLimitExceededError(RollupExecutionError):
    code = "NODE_LIMIT_EXCEEDED"


class RollupCancelledError(RollupExecutionError):
    code = "EXECUTION_CANCELLED"


class MergeConflictError(RollupExecutionError):
    code = "MERGE_CONFLICT"


class BlastRadiusError(RollupError):
    code = "BLAST_RADIUS_FAILED"
