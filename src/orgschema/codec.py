"""Import/export of schema documents.

Export is deterministic JSON in model declaration order. Import validates the
document shape, runs every field and layout through the same checks as a
live edit, drops system fields listed inline and regenerates every
identifier, so an imported document can never collide with live ids.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from orgschema.core.compat import new_id, utc_now
from orgschema.core.types import ObjectDef, OrgSchema, PageLayout
from orgschema.exceptions import (
    DuplicateFieldApiNameError,
    InvalidSchemaFormatError,
    ObjectAlreadyExistsError,
)
from orgschema.layout.composer import ensure_valid_layout
from orgschema.schema.fields import SYSTEM_FIELD_NAMES, build_field, ensure_api_name
from orgschema.schema.objects import check_record_types, sync_default_record_type

IdFactory = Callable[[], str]
Clock = Callable[[], datetime]


def export_schema(schema: OrgSchema, indent: int = 2) -> str:
    """Serialize the whole schema in the wire shape."""
    return json.dumps(schema.to_wire(), indent=indent, ensure_ascii=False)


def export_object(obj: ObjectDef, indent: int = 2) -> str:
    """Serialize a single object subtree."""
    return json.dumps(obj.to_wire(), indent=indent, ensure_ascii=False)


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidSchemaFormatError(f"document is not valid JSON ({e})") from e


def _strip_system_fields(raw_object: Any) -> Any:
    if isinstance(raw_object, dict) and isinstance(raw_object.get("fields"), list):
        raw_object = dict(raw_object)
        raw_object["fields"] = [
            f
            for f in raw_object["fields"]
            if not (isinstance(f, dict) and f.get("apiName", f.get("api_name")) in SYSTEM_FIELD_NAMES)
        ]
    return raw_object


def _check_object(obj: ObjectDef) -> ObjectDef:
    ensure_api_name(obj.api_name)
    seen: set[str] = set()
    fields = []
    for field in obj.fields:
        ensure_api_name(field.api_name)
        if field.api_name in seen:
            raise DuplicateFieldApiNameError(field.api_name, obj.api_name)
        seen.add(field.api_name)
        fields.append(build_field(field))
    obj = sync_default_record_type(obj.model_copy(update={"fields": fields}))
    check_record_types(obj)
    for layout in obj.page_layouts:
        ensure_valid_layout(obj, layout)
    return obj


def _regenerate_layout(layout: PageLayout, id_factory: IdFactory) -> PageLayout:
    tabs = [
        tab.model_copy(
            update={
                "id": id_factory(),
                "sections": [s.model_copy(update={"id": id_factory()}) for s in tab.sections],
            }
        )
        for tab in layout.tabs
    ]
    rules = layout.formatting_rules
    if rules is not None:
        rules = [r.model_copy(update={"id": id_factory()}) for r in rules]
    return layout.model_copy(update={"id": id_factory(), "tabs": tabs, "formatting_rules": rules})


def regenerate_object_ids(obj: ObjectDef, id_factory: IdFactory, now: datetime) -> ObjectDef:
    """Fresh ids for the object and every child; internal references are remapped."""
    layout_ids: dict[str, str] = {}
    layouts = []
    for layout in obj.page_layouts:
        fresh = _regenerate_layout(layout, id_factory)
        layout_ids[layout.id] = fresh.id
        layouts.append(fresh)

    record_type_ids: dict[str, str] = {}
    record_types = []
    for rt in obj.record_types:
        new_rt_id = id_factory()
        record_type_ids[rt.id] = new_rt_id
        record_types.append(
            rt.model_copy(
                update={
                    "id": new_rt_id,
                    "page_layout_id": layout_ids.get(rt.page_layout_id) if rt.page_layout_id else None,
                }
            )
        )

    return obj.model_copy(
        update={
            "id": id_factory(),
            "fields": [f.model_copy(update={"id": id_factory()}) for f in obj.fields],
            "record_types": record_types,
            "page_layouts": layouts,
            "validation_rules": [
                r.model_copy(update={"id": id_factory()}) for r in obj.validation_rules
            ],
            "default_record_type_id": record_type_ids.get(obj.default_record_type_id or ""),
            "created_at": now,
            "updated_at": now,
        }
    )


def import_schema(
    text: str,
    id_factory: IdFactory = new_id,
    clock: Clock = utc_now,
) -> OrgSchema:
    """Parse a schema document into a fresh schema at version 1.

    Raises:
        InvalidSchemaFormatError: If the JSON or its shape is invalid
        DuplicateFieldApiNameError: If an object repeats a field API name
        ObjectAlreadyExistsError: If two objects share an API name
        MissingRequiredConstraintError: If a field lacks a mandatory type setting
        InvalidConstraintError: If a field setting is out of range
        LayoutValidationError: If a layout places unknown fields or bad columns
    """
    data = _load_json(text)
    if not isinstance(data, dict):
        raise InvalidSchemaFormatError("top level must be an object")
    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, (int, float)):
        raise InvalidSchemaFormatError("'version' must be a number")
    if not isinstance(data.get("objects"), list):
        raise InvalidSchemaFormatError("'objects' must be an array")

    data = {**data, "objects": [_strip_system_fields(o) for o in data["objects"]]}
    try:
        parsed = OrgSchema.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidSchemaFormatError(
            f"{e.error_count()} validation error(s)", e.errors(include_url=False, include_context=False)
        ) from e

    now = clock()
    seen: set[str] = set()
    objects = []
    for obj in parsed.objects:
        if obj.api_name in seen:
            raise ObjectAlreadyExistsError(obj.api_name)
        seen.add(obj.api_name)
        objects.append(regenerate_object_ids(_check_object(obj), id_factory, now))

    return parsed.model_copy(
        update={
            "version": 1,
            "updated_at": now,
            "objects": objects,
            "permission_sets": [
                ps.model_copy(update={"id": id_factory()}) for ps in parsed.permission_sets
            ],
        }
    )


def import_object(
    text: str,
    id_factory: IdFactory = new_id,
    clock: Clock = utc_now,
) -> ObjectDef:
    """Parse a single exported object with regenerated ids.

    Raises:
        InvalidSchemaFormatError: If the JSON or its shape is invalid
        LayoutValidationError: If a layout places unknown fields or bad columns
    """
    data = _load_json(text)
    if not isinstance(data, dict):
        raise InvalidSchemaFormatError("object document must be a JSON object")
    try:
        obj = ObjectDef.model_validate(_strip_system_fields(data))
    except PydanticValidationError as e:
        raise InvalidSchemaFormatError(
            f"{e.error_count()} validation error(s)", e.errors(include_url=False, include_context=False)
        ) from e
    return regenerate_object_ids(_check_object(obj), id_factory, clock())
