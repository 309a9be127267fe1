"""Object model: aggregate invariants across an object's fields and record types.

Every function here is pure: it returns a new ObjectDef (or list) and never
mutates its arguments, so a failed check leaves the caller's state intact.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from orgschema.core.types import (
    ConditionExpr,
    FieldDef,
    ImpactReport,
    ObjectDef,
    PermissionSet,
    RecordType,
    ReferenceKind,
    SchemaReference,
)
from orgschema.exceptions import (
    DefaultRecordTypeError,
    DuplicateFieldApiNameError,
    FieldInUseError,
    FieldNotFoundError,
    LayoutNotFoundError,
    ObjectInUseError,
    ObjectNotFoundError,
    RecordTypeNotFoundError,
    SystemFieldError,
)
from orgschema.rules.expressions import field_references
from orgschema.schema.fields import SYSTEM_FIELDS, get_system_field, is_system_field


def custom_fields(obj: ObjectDef) -> list[FieldDef]:
    """Fields defined on the object, without the implicit system fields."""
    return [f for f in obj.fields if not is_system_field(f.api_name)]


def all_fields(obj: ObjectDef) -> list[FieldDef]:
    """System fields followed by the object's own fields."""
    return [*SYSTEM_FIELDS, *custom_fields(obj)]


def find_field(obj: ObjectDef, api_name: str) -> FieldDef | None:
    """Resolve a field by exact (case-sensitive) API name, including system fields."""
    for field in obj.fields:
        if field.api_name == api_name:
            return field
    return get_system_field(api_name)


def require_field(obj: ObjectDef, api_name: str) -> FieldDef:
    field = find_field(obj, api_name)
    if field is None:
        raise FieldNotFoundError(api_name, obj.api_name, [f.api_name for f in obj.fields])
    return field


def find_object(objects: Iterable[ObjectDef], api_name: str) -> ObjectDef | None:
    for obj in objects:
        if obj.api_name == api_name:
            return obj
    return None


def require_object(objects: Sequence[ObjectDef], api_name: str) -> ObjectDef:
    obj = find_object(objects, api_name)
    if obj is None:
        raise ObjectNotFoundError(api_name, [o.api_name for o in objects])
    return obj


def add_field(obj: ObjectDef, field: FieldDef) -> ObjectDef:
    """Append a field, rejecting duplicate API names (system names included).

    Raises:
        DuplicateFieldApiNameError: If the API name is already taken
        FieldNotFoundError: If ``controllingField`` does not resolve
    """
    if find_field(obj, field.api_name) is not None:
        raise DuplicateFieldApiNameError(field.api_name, obj.api_name)
    if field.controlling_field:
        require_field(obj, field.controlling_field)
    return obj.model_copy(update={"fields": [*obj.fields, field]})


def replace_field(obj: ObjectDef, api_name: str, field: FieldDef) -> ObjectDef:
    """Swap a field definition in place, keeping its position.

    Renaming is allowed only while nothing references the old API name.

    Raises:
        SystemFieldError: If ``api_name`` is a system field
        FieldNotFoundError: If the field does not exist
        DuplicateFieldApiNameError: If the new API name is taken
        FieldInUseError: If renaming a referenced field
    """
    if is_system_field(api_name):
        raise SystemFieldError(api_name, "update")
    index = next((i for i, f in enumerate(obj.fields) if f.api_name == api_name), None)
    if index is None:
        raise FieldNotFoundError(api_name, obj.api_name, [f.api_name for f in obj.fields])
    if field.api_name != api_name:
        if find_field(obj, field.api_name) is not None:
            raise DuplicateFieldApiNameError(field.api_name, obj.api_name)
        report = plan_field_removal(obj, api_name)
        if report.has_references:
            raise FieldInUseError(api_name, obj.api_name, report)
    if field.controlling_field and field.controlling_field != api_name:
        require_field(obj, field.controlling_field)
    fields = list(obj.fields)
    fields[index] = field.model_copy(update={"id": obj.fields[index].id})
    return obj.model_copy(update={"fields": fields})


def reorder_fields(obj: ObjectDef, api_names: Sequence[str]) -> ObjectDef:
    """Reorder fields; names not listed keep their relative order at the end."""
    by_name = {f.api_name: f for f in obj.fields}
    ordered = [by_name[name] for name in api_names if name in by_name]
    listed = {f.api_name for f in ordered}
    ordered.extend(f for f in obj.fields if f.api_name not in listed)
    return obj.model_copy(update={"fields": ordered})


# === Impact analysis ===


def _conditions_reference(conditions: list[ConditionExpr] | None, api_name: str) -> bool:
    return any(c.left == api_name for c in conditions or [])


def plan_field_removal(
    obj: ObjectDef,
    api_name: str,
    permission_sets: Sequence[PermissionSet] = (),
) -> ImpactReport:
    """List every place that would be touched by removing a field."""
    refs: list[SchemaReference] = []

    def ref(kind: ReferenceKind, target_id: str | None, name: str | None, detail: str | None = None) -> None:
        refs.append(
            SchemaReference(
                kind=kind,
                object_api_name=obj.api_name,
                target_id=target_id,
                target_name=name,
                detail=detail,
            )
        )

    for layout in obj.page_layouts:
        for tab in layout.tabs:
            for section in tab.sections:
                if any(pf.field_api_name == api_name for pf in section.fields):
                    ref(
                        ReferenceKind.LAYOUT_PLACEMENT,
                        layout.id,
                        f"{layout.name} / {section.label}",
                        f"section {section.id}",
                    )
                if _conditions_reference(section.visible_if, api_name):
                    ref(
                        ReferenceKind.SECTION_VISIBILITY,
                        layout.id,
                        f"{layout.name} / {section.label}",
                        f"section {section.id}",
                    )
        for rule in layout.formatting_rules or []:
            if api_name in field_references(rule.when):
                ref(ReferenceKind.FORMATTING_RULE, rule.id, rule.name, f"layout {layout.name}")
    for field in obj.fields:
        if field.api_name == api_name:
            continue
        if _conditions_reference(field.visible_if, api_name):
            ref(ReferenceKind.FIELD_VISIBILITY, field.id, field.api_name)
        if field.controlling_field == api_name:
            ref(ReferenceKind.FIELD_DEPENDENCY, field.id, field.api_name)
    for rule in obj.validation_rules:
        if api_name in field_references(rule.condition):
            ref(ReferenceKind.VALIDATION_RULE, rule.id, rule.name)
    if obj.compact_layout and api_name in obj.compact_layout.field_api_names:
        ref(ReferenceKind.COMPACT_LAYOUT, None, "compact layout")
    if obj.search_layouts:
        sl = obj.search_layouts
        if api_name in (*sl.default_fields, *sl.lookup_dialog_fields, *sl.list_view_fields):
            ref(ReferenceKind.SEARCH_LAYOUT, None, "search layouts")
    key = f"{obj.api_name}.{api_name}"
    for ps in permission_sets:
        if key in ps.field_permissions:
            ref(ReferenceKind.PERMISSION_SET, ps.id, ps.name, key)
    return ImpactReport(target=f"{obj.api_name}.{api_name}", references=refs)


def plan_rollup_references(objects: Sequence[ObjectDef], object_api_name: str, api_name: str) -> list[SchemaReference]:
    """Rollup summaries on any object that aggregate through or over a field."""
    return [
        SchemaReference(
            kind=ReferenceKind.ROLLUP_SUMMARY,
            object_api_name=other.api_name,
            target_id=field.id,
            target_name=field.api_name,
            detail=f"{field.rollup.aggregate} over {object_api_name}.{api_name}",
        )
        for other in objects
        for field in other.fields
        if field.rollup is not None
        and field.rollup.related_object == object_api_name
        and api_name in (field.rollup.relationship_field, field.rollup.target_field)
        and not (other.api_name == object_api_name and field.api_name == api_name)
    ]


def _strip_conditions(conditions: list[ConditionExpr] | None, api_name: str) -> list[ConditionExpr] | None:
    if conditions is None:
        return None
    kept = [c for c in conditions if c.left != api_name]
    return kept or None


def remove_field(
    obj: ObjectDef,
    api_name: str,
    cascade: bool = False,
) -> tuple[ObjectDef, ImpactReport]:
    """Remove a field, optionally stripping every reference to it.

    With cascade, placements and visibility conditions naming the field are
    removed, dependent picklists lose their controlling field, and rules that
    reference it are deactivated (never deleted).

    Returns:
        (new object, impact report of the side effects applied)

    Raises:
        SystemFieldError: If ``api_name`` is a system field
        FieldNotFoundError: If the field does not exist
        FieldInUseError: If referenced and cascade is False
    """
    if is_system_field(api_name):
        raise SystemFieldError(api_name, "delete")
    if not any(f.api_name == api_name for f in obj.fields):
        raise FieldNotFoundError(api_name, obj.api_name, [f.api_name for f in obj.fields])
    report = plan_field_removal(obj, api_name)
    if report.has_references and not cascade:
        raise FieldInUseError(api_name, obj.api_name, report)

    layouts = []
    for layout in obj.page_layouts:
        tabs = []
        for tab in layout.tabs:
            sections = [
                section.model_copy(
                    update={
                        "fields": [pf for pf in section.fields if pf.field_api_name != api_name],
                        "visible_if": _strip_conditions(section.visible_if, api_name),
                    }
                )
                for section in tab.sections
            ]
            tabs.append(tab.model_copy(update={"sections": sections}))
        rules = layout.formatting_rules
        if rules is not None:
            rules = [
                r.model_copy(update={"active": False}) if api_name in field_references(r.when) else r
                for r in rules
            ]
        layouts.append(layout.model_copy(update={"tabs": tabs, "formatting_rules": rules}))

    fields = []
    for field in obj.fields:
        if field.api_name == api_name:
            continue
        update: dict = {"visible_if": _strip_conditions(field.visible_if, api_name)}
        if field.controlling_field == api_name:
            update.update(controlling_field=None, dependent_values=None)
        fields.append(field.model_copy(update=update))

    rules = [
        r.model_copy(update={"active": False}) if api_name in field_references(r.condition) else r
        for r in obj.validation_rules
    ]

    update = {"page_layouts": layouts, "fields": fields, "validation_rules": rules}
    if obj.compact_layout:
        update["compact_layout"] = obj.compact_layout.model_copy(
            update={"field_api_names": [n for n in obj.compact_layout.field_api_names if n != api_name]}
        )
    if obj.search_layouts:
        sl = obj.search_layouts
        update["search_layouts"] = sl.model_copy(
            update={
                "default_fields": [n for n in sl.default_fields if n != api_name],
                "lookup_dialog_fields": [n for n in sl.lookup_dialog_fields if n != api_name],
                "list_view_fields": [n for n in sl.list_view_fields if n != api_name],
            }
        )
    return obj.model_copy(update=update), report


def strip_field_permissions(
    permission_sets: Sequence[PermissionSet], object_api_name: str, field_api_name: str | None = None
) -> list[PermissionSet]:
    """Drop permission entries for a field, or for a whole object when no field is given."""
    prefix = f"{object_api_name}."
    result = []
    for ps in permission_sets:
        if field_api_name is None:
            field_perms = {k: v for k, v in ps.field_permissions.items() if not k.startswith(prefix)}
            object_perms = {k: v for k, v in ps.object_permissions.items() if k != object_api_name}
        else:
            field_perms = {
                k: v for k, v in ps.field_permissions.items() if k != prefix + field_api_name
            }
            object_perms = dict(ps.object_permissions)
        result.append(
            ps.model_copy(update={"field_permissions": field_perms, "object_permissions": object_perms})
        )
    return result


def rename_field_permissions(
    permission_sets: Sequence[PermissionSet], object_api_name: str, old_name: str, new_name: str
) -> list[PermissionSet]:
    """Move permission entries for a renamed field to its new key."""
    old_key, new_key = f"{object_api_name}.{old_name}", f"{object_api_name}.{new_name}"
    return [
        ps.model_copy(
            update={
                "field_permissions": {
                    (new_key if k == old_key else k): v for k, v in ps.field_permissions.items()
                }
            }
        )
        for ps in permission_sets
    ]


def _points_at(field: FieldDef, target_api_name: str) -> bool:
    return (
        field.lookup_object == target_api_name
        or (field.relationship is not None and field.relationship.target_object == target_api_name)
        or (field.rollup is not None and field.rollup.related_object == target_api_name)
    )


def plan_object_removal(objects: Sequence[ObjectDef], api_name: str) -> ImpactReport:
    """List fields on other objects that point at ``api_name``."""
    require_object(objects, api_name)
    refs = [
        SchemaReference(
            kind=ReferenceKind.LOOKUP_FIELD,
            object_api_name=other.api_name,
            target_id=field.id,
            target_name=field.api_name,
            detail=f"{field.type} -> {api_name}",
        )
        for other in objects
        if other.api_name != api_name
        for field in other.fields
        if _points_at(field, api_name)
    ]
    return ImpactReport(target=api_name, references=refs)


def remove_object(
    objects: Sequence[ObjectDef], api_name: str, cascade: bool = False
) -> tuple[list[ObjectDef], list[str]]:
    """Remove an object; with cascade, also remove fields pointing at it.

    Returns:
        (remaining objects, warnings for every cascading change)

    Raises:
        ObjectNotFoundError: If the object does not exist
        ObjectInUseError: If referenced and cascade is False
    """
    report = plan_object_removal(objects, api_name)
    if report.has_references and not cascade:
        raise ObjectInUseError(api_name, report)
    warnings = report.warnings()
    remaining = []
    for obj in objects:
        if obj.api_name == api_name:
            continue
        for field in [f for f in obj.fields if _points_at(f, api_name)]:
            obj, field_report = remove_field(obj, field.api_name, cascade=True)
            warnings.extend(field_report.warnings())
        remaining.append(obj)
    return remaining, warnings


# === Record types ===


def check_record_types(obj: ObjectDef) -> None:
    """Enforce single default and same-object layout references.

    Raises:
        DefaultRecordTypeError: If more than one record type is default
        LayoutNotFoundError: If a record type points at a foreign layout
        RecordTypeNotFoundError: If defaultRecordTypeId does not resolve
    """
    defaults = [rt.name for rt in obj.record_types if rt.default]
    if len(defaults) > 1:
        raise DefaultRecordTypeError(
            f"Object '{obj.api_name}' has {len(defaults)} default record types "
            f"({', '.join(defaults)}). Exactly one may be default.",
            {"object_api_name": obj.api_name, "defaults": defaults},
        )
    layout_ids = {layout.id for layout in obj.page_layouts}
    for rt in obj.record_types:
        if rt.page_layout_id and rt.page_layout_id not in layout_ids:
            raise LayoutNotFoundError(rt.page_layout_id, obj.api_name)
    if obj.default_record_type_id and obj.default_record_type_id not in {
        rt.id for rt in obj.record_types
    }:
        raise RecordTypeNotFoundError(obj.default_record_type_id, obj.api_name)


def sync_default_record_type(obj: ObjectDef) -> ObjectDef:
    """Make ``defaultRecordTypeId`` agree with the record types' default flags."""
    default = next((rt for rt in obj.record_types if rt.default), None)
    if default is None and obj.default_record_type_id:
        # Older documents carry only the id
        if any(rt.id == obj.default_record_type_id for rt in obj.record_types):
            return set_default_record_type(obj, obj.default_record_type_id)
    default_id = default.id if default else None
    if default_id == obj.default_record_type_id:
        return obj
    return obj.model_copy(update={"default_record_type_id": default_id})


def set_default_record_type(obj: ObjectDef, record_type_id: str) -> ObjectDef:
    """Make one record type the default, clearing the flag on all others.

    Raises:
        RecordTypeNotFoundError: If the record type does not exist
    """
    if not any(rt.id == record_type_id for rt in obj.record_types):
        raise RecordTypeNotFoundError(record_type_id, obj.api_name)
    record_types = [
        rt.model_copy(update={"default": rt.id == record_type_id}) for rt in obj.record_types
    ]
    return obj.model_copy(
        update={"record_types": record_types, "default_record_type_id": record_type_id}
    )


def add_record_type(obj: ObjectDef, record_type: RecordType) -> ObjectDef:
    """Append a record type; a new default replaces the previous one."""
    obj = obj.model_copy(
        update={"record_types": [*obj.record_types, record_type.model_copy(update={"default": False})]}
    )
    if record_type.default:
        obj = set_default_record_type(obj, record_type.id)
    check_record_types(obj)
    return obj


def remove_record_type(obj: ObjectDef, record_type_id: str) -> ObjectDef:
    if not any(rt.id == record_type_id for rt in obj.record_types):
        raise RecordTypeNotFoundError(record_type_id, obj.api_name)
    record_types = [rt for rt in obj.record_types if rt.id != record_type_id]
    default_id = obj.default_record_type_id
    if default_id == record_type_id:
        default_id = None
    return obj.model_copy(
        update={"record_types": record_types, "default_record_type_id": default_id}
    )
