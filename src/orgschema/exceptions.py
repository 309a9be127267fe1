"""Custom exceptions for orgschema.

Errors fall into five families so callers can tell "bad input" from "stale
reference":
- structural: malformed documents, duplicate names, dangling references
- constraint: missing or out-of-range type settings
- consistency: deleting something that is still referenced
- not found: unknown object, field, version ...
- storage: persistence failures

Messages say what went wrong AND how to fix it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from orgschema.core.types import ImpactReport, LayoutIssue


class OrgSchemaError(Exception):
    """Base exception for all orgschema errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


# === Structural errors ===


class StructuralError(OrgSchemaError):
    """Input is malformed or would break a uniqueness/reference invariant."""

    pass


class InvalidApiNameError(StructuralError):
    """API name does not match ^[A-Za-z_][A-Za-z0-9_]*$ or exceeds 40 chars."""

    def __init__(self, api_name: str) -> None:
        message = (
            f"Invalid API name '{api_name}'. Use letters, digits and underscores, "
            f"start with a letter or underscore, at most 40 characters."
        )
        super().__init__(message, {"api_name": api_name})
        self.api_name = api_name


class DuplicateFieldApiNameError(StructuralError):
    """Field API name already exists on the object (case-sensitive)."""

    def __init__(self, field_api_name: str, object_api_name: str) -> None:
        message = (
            f"Field '{field_api_name}' already exists on '{object_api_name}'. "
            f"Choose a different API name or update the existing field."
        )
        super().__init__(
            message, {"field_api_name": field_api_name, "object_api_name": object_api_name}
        )
        self.field_api_name = field_api_name
        self.object_api_name = object_api_name


class ObjectAlreadyExistsError(StructuralError):
    """Object API name already exists in the schema."""

    def __init__(self, object_api_name: str) -> None:
        message = (
            f"Object '{object_api_name}' already exists. "
            f"Object API names must be unique across the schema."
        )
        super().__init__(message, {"object_api_name": object_api_name})
        self.object_api_name = object_api_name


class InvalidSchemaFormatError(StructuralError):
    """Imported document is not a valid schema document."""

    def __init__(self, reason: str, errors: list[dict[str, Any]] | None = None) -> None:
        message = f"Invalid schema format: {reason}"
        super().__init__(message, {"reason": reason, "errors": errors or []})
        self.reason = reason
        self.errors = errors or []


class LayoutValidationError(StructuralError):
    """Layout failed validation against its object."""

    def __init__(self, layout_name: str, issues: list[LayoutIssue]) -> None:
        codes = sorted({issue.code for issue in issues})
        message = (
            f"Layout '{layout_name}' has {len(issues)} problem(s): {', '.join(codes)}. "
            f"Fix or remove the offending placements."
        )
        super().__init__(
            message,
            {"layout_name": layout_name, "issues": [issue.model_dump() for issue in issues]},
        )
        self.layout_name = layout_name
        self.issues = issues


# === Constraint errors ===


class ConstraintError(OrgSchemaError):
    """A type-specific setting is missing or out of range."""

    pass


class MissingRequiredConstraintError(ConstraintError):
    """A field type's mandatory setting is absent."""

    def __init__(self, kind: str, field_api_name: str, field_type: str) -> None:
        message = (
            f"Field '{field_api_name}' of type {field_type} requires '{kind}'. "
            f"Provide it when creating or updating the field."
        )
        super().__init__(
            message,
            {"kind": kind, "field_api_name": field_api_name, "field_type": field_type},
        )
        self.kind = kind
        self.field_api_name = field_api_name
        self.field_type = field_type


class InvalidConstraintError(ConstraintError):
    """A field setting has an invalid value."""

    def __init__(self, field_api_name: str, reason: str) -> None:
        message = f"Invalid settings on field '{field_api_name}': {reason}"
        super().__init__(message, {"field_api_name": field_api_name, "reason": reason})
        self.field_api_name = field_api_name
        self.reason = reason


class DefaultRecordTypeError(ConstraintError):
    """Record type invariants are violated."""

    pass


class SystemFieldError(ConstraintError):
    """System fields cannot be added, changed or removed."""

    def __init__(self, field_api_name: str, operation: str) -> None:
        message = (
            f"Cannot {operation} system field '{field_api_name}'. "
            f"System fields are present on every object and managed by the engine."
        )
        super().__init__(message, {"field_api_name": field_api_name, "operation": operation})
        self.field_api_name = field_api_name
        self.operation = operation


# === Consistency errors ===


class InUseError(OrgSchemaError):
    """Delete target is still referenced; pass cascade=True to strip references."""

    def __init__(self, message: str, report: ImpactReport) -> None:
        super().__init__(
            message, {"target": report.target, "references": report.warnings()}
        )
        self.report = report


class FieldInUseError(InUseError):
    def __init__(self, field_api_name: str, object_api_name: str, report: ImpactReport) -> None:
        message = (
            f"Field '{field_api_name}' on '{object_api_name}' is referenced in "
            f"{len(report.references)} place(s). Remove the references first or "
            f"delete with cascade=True."
        )
        super().__init__(message, report)
        self.field_api_name = field_api_name
        self.object_api_name = object_api_name


class ObjectInUseError(InUseError):
    def __init__(self, object_api_name: str, report: ImpactReport) -> None:
        message = (
            f"Object '{object_api_name}' is referenced by {len(report.references)} "
            f"field(s) on other objects. Delete them first or delete with cascade=True."
        )
        super().__init__(message, report)
        self.object_api_name = object_api_name


class LayoutInUseError(InUseError):
    def __init__(self, layout_id: str, object_api_name: str, report: ImpactReport) -> None:
        message = (
            f"Layout '{layout_id}' on '{object_api_name}' is assigned to "
            f"{len(report.references)} record type(s). Reassign them first or "
            f"delete with cascade=True."
        )
        super().__init__(message, report)
        self.layout_id = layout_id
        self.object_api_name = object_api_name


# === Not-found errors ===


class NotFoundError(OrgSchemaError):
    """Referenced element does not exist."""

    pass


class ObjectNotFoundError(NotFoundError):
    """Object does not exist."""

    def __init__(self, object_api_name: str, available_objects: list[str] | None = None) -> None:
        available = available_objects or []
        if available:
            message = (
                f"Object '{object_api_name}' not found. "
                f"Available objects: {', '.join(available)}"
            )
        else:
            message = f"Object '{object_api_name}' not found. No objects exist yet."
        super().__init__(
            message, {"object_api_name": object_api_name, "available_objects": available}
        )
        self.object_api_name = object_api_name
        self.available_objects = available


class FieldNotFoundError(NotFoundError):
    """Field does not exist on object."""

    def __init__(
        self, field_api_name: str, object_api_name: str, available_fields: list[str] | None = None
    ) -> None:
        available = available_fields or []
        if available:
            message = (
                f"Field '{field_api_name}' not found on '{object_api_name}'. "
                f"Available fields: {', '.join(available)}"
            )
        else:
            message = f"Field '{field_api_name}' not found on '{object_api_name}'. No fields defined."
        super().__init__(
            message,
            {
                "field_api_name": field_api_name,
                "object_api_name": object_api_name,
                "available_fields": available,
            },
        )
        self.field_api_name = field_api_name
        self.object_api_name = object_api_name
        self.available_fields = available


class _ChildNotFoundError(NotFoundError):
    kind = "element"

    def __init__(self, element_id: str, object_api_name: str) -> None:
        message = f"{self.kind.capitalize()} '{element_id}' not found on '{object_api_name}'."
        super().__init__(message, {"id": element_id, "object_api_name": object_api_name})
        self.element_id = element_id
        self.object_api_name = object_api_name


class RecordTypeNotFoundError(_ChildNotFoundError):
    kind = "record type"


class LayoutNotFoundError(_ChildNotFoundError):
    kind = "page layout"


class SectionNotFoundError(_ChildNotFoundError):
    kind = "layout section"


class ValidationRuleNotFoundError(_ChildNotFoundError):
    kind = "validation rule"


class PermissionSetNotFoundError(NotFoundError):
    def __init__(self, permission_set_id: str) -> None:
        super().__init__(
            f"Permission set '{permission_set_id}' not found.",
            {"permission_set_id": permission_set_id},
        )
        self.permission_set_id = permission_set_id


class VersionNotFoundError(NotFoundError):
    """Requested schema version is not in the history."""

    def __init__(self, version: int, available_versions: list[int] | None = None) -> None:
        available = available_versions or []
        if available:
            message = (
                f"Version {version} not found. "
                f"Available versions: {', '.join(str(v) for v in available)}"
            )
        else:
            message = f"Version {version} not found. No versions have been saved yet."
        super().__init__(message, {"version": version, "available_versions": available})
        self.version = version
        self.available_versions = available


# === Expression errors ===


class ExpressionError(OrgSchemaError):
    """Condition or rule expression could not be parsed or evaluated."""

    pass


class UnknownOperatorError(ExpressionError):
    def __init__(self, operator: str, valid_operators: list[str]) -> None:
        message = (
            f"Unknown operator '{operator}'. Valid operators: {', '.join(valid_operators)}"
        )
        super().__init__(message, {"operator": operator, "valid_operators": valid_operators})
        self.operator = operator


class ExpressionSyntaxError(ExpressionError):
    def __init__(self, expression: str, reason: str, position: int) -> None:
        message = f"Syntax error at position {position} in '{expression}': {reason}"
        super().__init__(
            message, {"expression": expression, "reason": reason, "position": position}
        )
        self.expression = expression
        self.reason = reason
        self.position = position


class UnknownFunctionError(ExpressionError):
    def __init__(self, name: str, valid_functions: list[str]) -> None:
        message = f"Unknown function '{name}'. Valid functions: {', '.join(valid_functions)}"
        super().__init__(message, {"function": name, "valid_functions": valid_functions})
        self.name = name


# === Storage errors ===


class RepositoryError(OrgSchemaError):
    """Loading or saving the schema failed; the previous state is kept."""

    pass


class ConnectionError(RepositoryError):
    """Failed to connect to the database."""

    pass
