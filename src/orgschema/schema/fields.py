"""Field model: API name rules, system fields and type-specific constraints."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from orgschema.core.compat import new_id
from orgschema.core.types import FieldDef, FieldType
from orgschema.exceptions import (
    InvalidApiNameError,
    InvalidConstraintError,
    InvalidSchemaFormatError,
    MissingRequiredConstraintError,
)

API_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
API_NAME_MAX_LENGTH = 40

SHORT_TEXT_MAX_LENGTH = 255
LONG_TEXT_MAX_LENGTH = 131072
LONG_TEXT_DEFAULT_LENGTH = 32768
DEFAULT_PRECISION = 18
DEFAULT_SCALE = 2

# Numeric placeholder inside an auto-number display format, e.g. "P-{0000}"
AUTO_NUMBER_PLACEHOLDER = re.compile(r"\{0+\}")

SHORT_TEXT_TYPES = frozenset({FieldType.TEXT, FieldType.ENCRYPTED_TEXT})
LONG_TEXT_TYPES = frozenset(
    {FieldType.TEXT_AREA, FieldType.LONG_TEXT_AREA, FieldType.RICH_TEXT_AREA}
)
NUMERIC_TYPES = frozenset({FieldType.NUMBER, FieldType.CURRENCY, FieldType.PERCENT})
PICKLIST_TYPES = frozenset({FieldType.PICKLIST, FieldType.MULTI_PICKLIST})
LOOKUP_TYPES = frozenset({FieldType.LOOKUP, FieldType.EXTERNAL_LOOKUP})

SYSTEM_FIELDS: tuple[FieldDef, ...] = (
    FieldDef(
        id="id",
        api_name="Id",
        label="Record ID",
        type=FieldType.TEXT,
        custom=False,
        required=True,
        unique=True,
        read_only=True,
        help_text="System-generated unique identifier",
    ),
    FieldDef(
        id="createdDate",
        api_name="CreatedDate",
        label="Created Date",
        type=FieldType.DATETIME,
        custom=False,
        read_only=True,
        help_text="Date and time when record was created",
    ),
    FieldDef(
        id="lastModifiedDate",
        api_name="LastModifiedDate",
        label="Last Modified Date",
        type=FieldType.DATETIME,
        custom=False,
        read_only=True,
        help_text="Date and time when record was last modified",
    ),
    FieldDef(
        id="createdBy",
        api_name="CreatedById",
        label="Created By",
        type=FieldType.LOOKUP,
        custom=False,
        read_only=True,
        lookup_object="User",
        help_text="User who created this record",
    ),
    FieldDef(
        id="lastModifiedBy",
        api_name="LastModifiedById",
        label="Last Modified By",
        type=FieldType.LOOKUP,
        custom=False,
        read_only=True,
        lookup_object="User",
        help_text="User who last modified this record",
    ),
)

SYSTEM_FIELD_NAMES = frozenset(f.api_name for f in SYSTEM_FIELDS)


def validate_api_name(name: str) -> bool:
    """Check an API name against the identifier pattern and length limit."""
    return bool(API_NAME_PATTERN.match(name)) and len(name) <= API_NAME_MAX_LENGTH


def ensure_api_name(name: str) -> str:
    """Return ``name`` unchanged or raise InvalidApiNameError."""
    if not isinstance(name, str) or not validate_api_name(name):
        raise InvalidApiNameError(str(name))
    return name


def is_system_field(api_name: str) -> bool:
    return api_name in SYSTEM_FIELD_NAMES


def get_system_field(api_name: str) -> FieldDef | None:
    for field in SYSTEM_FIELDS:
        if field.api_name == api_name:
            return field
    return None


def slugify_label(label: str) -> str:
    """Turn a human label into an identifier-safe, lowercase slug.

    Non-alphanumeric characters (other than spaces) are dropped, whitespace
    runs become ``_`` and a leading digit is prefixed with ``_``.
    """
    slug = re.sub(r"[^A-Za-z0-9\s]", "", label).strip()
    slug = re.sub(r"\s+", "_", slug).lower()
    if slug and slug[0].isdigit():
        slug = f"_{slug}"
    return slug[:API_NAME_MAX_LENGTH]


def derive_api_name_from_label(object_api_name: str, label: str, system: bool = False) -> str:
    """Derive a field API name from its label.

    Custom fields are namespaced as ``{object}__{slug}``; system fields use
    the bare slug. The result is capped at 40 characters.

    Raises:
        InvalidApiNameError: If the label has no usable characters
    """
    slug = slugify_label(label)
    if not slug:
        raise InvalidApiNameError(label)
    name = slug if system else f"{object_api_name}__{slug}"
    return ensure_api_name(name[:API_NAME_MAX_LENGTH])


def field_type_category(field_type: FieldType | str) -> str:
    """Group a field type the way the field picker does."""
    ft = FieldType.parse(field_type)
    if ft in (FieldType.AUTO_NUMBER, FieldType.FORMULA, FieldType.ROLLUP_SUMMARY):
        return "Advanced"
    if ft in LOOKUP_TYPES:
        return "Relationship"
    if ft in SHORT_TEXT_TYPES or ft in LONG_TEXT_TYPES:
        return "Text"
    if ft in NUMERIC_TYPES:
        return "Number"
    if ft in (FieldType.DATE, FieldType.DATETIME, FieldType.TIME):
        return "Date/Time"
    if ft in PICKLIST_TYPES:
        return "Selection"
    return "Other"


def apply_type_defaults(field: FieldDef) -> FieldDef:
    """Fill in type-specific constraint defaults that were left unset."""
    ft = FieldType.parse(field.type)
    updates: dict[str, Any] = {}
    if ft in SHORT_TEXT_TYPES or ft == FieldType.TEXT_AREA:
        if field.max_length is None:
            updates["max_length"] = SHORT_TEXT_MAX_LENGTH
    elif ft in LONG_TEXT_TYPES:
        if field.max_length is None:
            updates["max_length"] = LONG_TEXT_DEFAULT_LENGTH
    elif ft in NUMERIC_TYPES:
        if field.precision is None:
            updates["precision"] = DEFAULT_PRECISION
        if field.scale is None:
            updates["scale"] = DEFAULT_SCALE
    return field.model_copy(update=updates) if updates else field


def check_field(field: FieldDef) -> None:
    """Validate a field definition in isolation.

    Raises:
        InvalidApiNameError: If the API name is malformed
        MissingRequiredConstraintError: If a mandatory type setting is absent
        InvalidConstraintError: If a setting is out of range
    """
    ensure_api_name(field.api_name)
    ft = FieldType.parse(field.type)

    def missing(kind: str) -> MissingRequiredConstraintError:
        return MissingRequiredConstraintError(kind, field.api_name, ft.value)

    if ft in PICKLIST_TYPES and not field.picklist_values:
        raise missing("picklistValues")
    if ft == FieldType.AUTO_NUMBER:
        settings = field.auto_number
        if settings is None or not settings.display_format:
            raise missing("autoNumber.displayFormat")
        if not AUTO_NUMBER_PLACEHOLDER.search(settings.display_format):
            raise InvalidConstraintError(
                field.api_name,
                f"displayFormat '{settings.display_format}' needs a numeric placeholder "
                "such as {0000}",
            )
        if settings.starting_number is None:
            raise missing("autoNumber.startingNumber")
        if settings.starting_number < 1:
            raise InvalidConstraintError(field.api_name, "startingNumber must be at least 1")
    if ft in LOOKUP_TYPES and not field.lookup_object:
        raise missing("lookupObject")
    if ft == FieldType.FORMULA and not (field.formula_expr or "").strip():
        raise missing("formulaExpr")
    if ft == FieldType.ROLLUP_SUMMARY and field.rollup is None:
        raise missing("rollup")

    ceiling = None
    if ft in SHORT_TEXT_TYPES:
        ceiling = SHORT_TEXT_MAX_LENGTH
    elif ft in LONG_TEXT_TYPES:
        ceiling = LONG_TEXT_MAX_LENGTH
    if field.max_length is not None:
        if field.max_length < 1:
            raise InvalidConstraintError(field.api_name, "maxLength must be positive")
        if ceiling is not None and field.max_length > ceiling:
            raise InvalidConstraintError(
                field.api_name, f"maxLength {field.max_length} exceeds {ceiling} for {ft.value}"
            )
    if field.min_length is not None:
        if field.min_length < 0:
            raise InvalidConstraintError(field.api_name, "minLength must not be negative")
        if field.max_length is not None and field.min_length > field.max_length:
            raise InvalidConstraintError(field.api_name, "minLength is greater than maxLength")
    if field.min is not None and field.max is not None and field.min > field.max:
        raise InvalidConstraintError(field.api_name, "min is greater than max")
    if field.precision is not None and field.precision < 1:
        raise InvalidConstraintError(field.api_name, "precision must be positive")
    if field.scale is not None:
        if field.scale < 0:
            raise InvalidConstraintError(field.api_name, "scale must not be negative")
        if field.precision is not None and field.scale > field.precision:
            raise InvalidConstraintError(field.api_name, "scale is greater than precision")
    if field.dependent_values and not field.controlling_field:
        raise missing("controllingField")
    if field.controlling_field == field.api_name:
        raise InvalidConstraintError(field.api_name, "a field cannot control itself")


def build_field(
    spec: FieldDef | Mapping[str, Any],
    id_factory: Callable[[], str] = new_id,
) -> FieldDef:
    """Construct a validated field with type defaults applied.

    Args:
        spec: FieldDef or dict in wire (camelCase) or snake_case keys
        id_factory: Used when the spec carries no id

    Returns:
        A new FieldDef; the spec is never mutated
    """
    if isinstance(spec, FieldDef):
        field = spec.model_copy(deep=True)
    else:
        try:
            field = FieldDef.model_validate(dict(spec))
        except PydanticValidationError as e:
            raise InvalidSchemaFormatError(
                "field definition is malformed", e.errors(include_url=False, include_context=False)
            ) from e
    if not field.id:
        field = field.model_copy(update={"id": id_factory()})
    field = apply_type_defaults(field)
    check_field(field)
    return field


def allowed_dependent_values(field: FieldDef, controlling_value: Any) -> list[str]:
    """Picklist values allowed for ``field`` given its controlling field's value."""
    values = list(field.picklist_values or [])
    if not field.controlling_field or field.dependent_values is None:
        return values
    allowed = field.dependent_values.get(str(controlling_value), [])
    return [v for v in values if v in allowed]
