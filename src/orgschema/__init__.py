"""orgschema - Schema metadata engine for low-code CRMs.

Objects, fields, record types, page layouts and validation rules are kept
in one versioned schema document. Every change goes through a single store
that enforces uniqueness, reference integrity and default-record-type rules,
and every save is kept in a bounded history that supports rollback.

Example:
    from orgschema import SchemaStore, SqlSchemaRepository

    store = SchemaStore(SqlSchemaRepository("sqlite:///./orgschema.db"))

    # Add a field and place it on the edit layout
    store.add_field("Deal", {"label": "Probability", "type": "Percent"})
    layout = store.effective_layout("Deal")
    section = layout.tabs[0].sections[0]
    store.place_field("Deal", layout.id, section.id, "Deal__probability", column=1)

    # Render the form tree and persist a new version
    tree = store.resolve_layout("Deal")
    store.save(description="Add probability")
"""

from orgschema.core.types import (
    ConditionExpr,
    ConditionOperator,
    FieldDef,
    FieldType,
    ImpactReport,
    LayoutIssue,
    LayoutIssueCode,
    LayoutType,
    ObjectDef,
    OrgSchema,
    PageField,
    PageLayout,
    PageSection,
    PageTab,
    PermissionSet,
    RecordType,
    RenderTree,
    RuleViolation,
    SchemaSettings,
    SchemaVersionInfo,
    ValidationRule,
)
from orgschema.exceptions import (
    ConstraintError,
    DefaultRecordTypeError,
    DuplicateFieldApiNameError,
    ExpressionError,
    FieldInUseError,
    FieldNotFoundError,
    InvalidApiNameError,
    InvalidConstraintError,
    InvalidSchemaFormatError,
    InUseError,
    LayoutInUseError,
    LayoutNotFoundError,
    LayoutValidationError,
    MissingRequiredConstraintError,
    NotFoundError,
    ObjectAlreadyExistsError,
    ObjectInUseError,
    ObjectNotFoundError,
    OrgSchemaError,
    RecordTypeNotFoundError,
    RepositoryError,
    StructuralError,
    SystemFieldError,
    UnknownOperatorError,
    VersionNotFoundError,
)
from orgschema.rules.visibility import evaluate as evaluate_visibility
from orgschema.storage.repository import (
    InMemorySchemaRepository,
    SchemaRepository,
    SqlSchemaRepository,
)
from orgschema.store import SchemaStore

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "SchemaStore",
    "SchemaRepository",
    "InMemorySchemaRepository",
    "SqlSchemaRepository",
    "evaluate_visibility",
    # Types
    "FieldType",
    "FieldDef",
    "ObjectDef",
    "OrgSchema",
    "RecordType",
    "PageLayout",
    "PageTab",
    "PageSection",
    "PageField",
    "ValidationRule",
    "PermissionSet",
    "ConditionExpr",
    "ConditionOperator",
    "LayoutType",
    "LayoutIssue",
    "LayoutIssueCode",
    "RenderTree",
    "ImpactReport",
    "RuleViolation",
    "SchemaVersionInfo",
    "SchemaSettings",
    # Exceptions
    "OrgSchemaError",
    "StructuralError",
    "ConstraintError",
    "InUseError",
    "NotFoundError",
    "ExpressionError",
    "InvalidApiNameError",
    "DuplicateFieldApiNameError",
    "ObjectAlreadyExistsError",
    "InvalidSchemaFormatError",
    "LayoutValidationError",
    "MissingRequiredConstraintError",
    "InvalidConstraintError",
    "DefaultRecordTypeError",
    "SystemFieldError",
    "FieldInUseError",
    "ObjectInUseError",
    "LayoutInUseError",
    "ObjectNotFoundError",
    "FieldNotFoundError",
    "RecordTypeNotFoundError",
    "LayoutNotFoundError",
    "VersionNotFoundError",
    "UnknownOperatorError",
    "RepositoryError",
]
