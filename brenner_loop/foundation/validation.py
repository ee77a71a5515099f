"""Validation results shared by every record type.

Two channels, used consistently:

    1. validate_*() functions NEVER raise.  They return a ValidationResult
       separating blocking errors from advisory warnings.
    2. create_*() factories call the matching validator and raise
       InvalidRecordError with an aggregated, field-labelled message.

Structural problems (missing keys, wrong types, unknown enum values) are
found by pydantic parsing and converted into ValidationIssues here, so a
caller sees one uniform error list regardless of which layer caught it.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ValidationIssue(BaseModel):
    """A single error or warning attached to a field path."""

    field: str
    message: str
    code: str

    model_config = {"frozen": True}


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationIssue]
    warnings: list[ValidationIssue]

    model_config = {"frozen": True}

    @classmethod
    def from_issues(
        cls,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> ValidationResult:
        return cls(valid=not errors, errors=errors, warnings=warnings)


class InvalidRecordError(ValueError):
    """Raised by factories when a record fails validation."""

    def __init__(self, record_name: str, errors: list[ValidationIssue]) -> None:
        self.record_name = record_name
        self.errors = errors
        detail = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Invalid {record_name}: {detail}")


def _field_path(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "__root__"


def issues_from_pydantic(exc: ValidationError) -> list[ValidationIssue]:
    """Translate a pydantic ValidationError into ValidationIssues."""
    issues: list[ValidationIssue] = []
    for err in exc.errors():
        code = "MISSING_REQUIRED" if err["type"] == "missing" else "INVALID_TYPE"
        issues.append(
            ValidationIssue(field=_field_path(err["loc"]), message=err["msg"], code=code)
        )
    return issues


def parse_record(
    model: type[ModelT],
    value: Any,
) -> tuple[ModelT | None, list[ValidationIssue]]:
    """Parse *value* into *model* without raising.

    Instances of *model* pass straight through.  Returns the parsed model
    (or None) together with any structural issues found.
    """
    if isinstance(value, model):
        return value, []
    try:
        return model.model_validate(value), []
    except ValidationError as exc:
        return None, issues_from_pydantic(exc)


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    return value is None or (isinstance(value, str) and not value.strip())


def raise_for_errors(record_name: str, result: ValidationResult) -> None:
    if not result.valid:
        raise InvalidRecordError(record_name, result.errors)
