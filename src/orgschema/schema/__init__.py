"""Field and object models."""

from orgschema.schema.fields import (
    SYSTEM_FIELDS,
    build_field,
    derive_api_name_from_label,
    validate_api_name,
)
from orgschema.schema.objects import (
    add_field,
    all_fields,
    custom_fields,
    plan_field_removal,
    remove_field,
    set_default_record_type,
)

__all__ = [
    "SYSTEM_FIELDS",
    "build_field",
    "derive_api_name_from_label",
    "validate_api_name",
    "add_field",
    "all_fields",
    "custom_fields",
    "plan_field_removal",
    "remove_field",
    "set_default_record_type",
]
