"""Core types and helpers for orgschema."""

from orgschema.core.compat import UTC, StrEnum, new_id, utc_now
from orgschema.core.types import (
    ConditionOperator,
    FieldDef,
    FieldType,
    LayoutType,
    ObjectDef,
    OrgSchema,
    SchemaSettings,
)

__all__ = [
    "UTC",
    "StrEnum",
    "new_id",
    "utc_now",
    "ConditionOperator",
    "FieldDef",
    "FieldType",
    "LayoutType",
    "ObjectDef",
    "OrgSchema",
    "SchemaSettings",
]
