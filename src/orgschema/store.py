"""Schema store: the single mutation surface over the live OrgSchema.

Every mutating operation runs under one re-entrant lock against a deep copy
of the schema; the copy replaces the live schema only after every check has
passed, so a failed operation leaves no partial change behind.

Example:
    >>> store = SchemaStore(InMemorySchemaRepository())
    >>> store.add_field("Deal", {"apiName": "Deal__score", "label": "Score", "type": "Number"})
    >>> store.save(description="Add score")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from orgschema import codec
from orgschema.core.compat import new_id, utc_now
from orgschema.core.types import (
    CompactLayout,
    FieldDef,
    FieldPermission,
    ImpactReport,
    LayoutIssue,
    LayoutType,
    ObjectDef,
    ObjectPermission,
    OrgSchema,
    PageLayout,
    PermissionSet,
    RecordType,
    ReferenceKind,
    RenderTree,
    RuleViolation,
    SchemaReference,
    SchemaVersionInfo,
    SearchLayouts,
    ValidationRule,
)
from orgschema.exceptions import (
    FieldInUseError,
    FieldNotFoundError,
    InvalidSchemaFormatError,
    LayoutInUseError,
    ObjectAlreadyExistsError,
    ObjectNotFoundError,
    PermissionSetNotFoundError,
    RecordTypeNotFoundError,
    SystemFieldError,
    ValidationRuleNotFoundError,
)
from orgschema.layout import composer
from orgschema.rules.expressions import field_references, parse_expression
from orgschema.rules.validation import evaluate_rules
from orgschema.schema import objects as object_model
from orgschema.schema.fields import (
    LOOKUP_TYPES,
    build_field,
    derive_api_name_from_label,
    ensure_api_name,
    is_system_field,
)
from orgschema.storage.repository import SchemaRepository
from orgschema.storage.seed import MASTER_RECORD_TYPE, create_sample_schema

logger = logging.getLogger(__name__)


def _wire_keys(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Accept snake_case or camelCase update keys; return camelCase."""
    return {(to_camel(k) if "_" in k.strip("_") else k): v for k, v in changes.items()}


class SchemaStore:
    """Owns the live schema and routes every change through invariant checks.

    Args:
        repository: Persistence backend; loaded once at construction
        id_factory: Generates ids for new elements (inject for deterministic tests)
        clock: Timestamp source for ``updatedAt`` stamps and saves
    """

    def __init__(
        self,
        repository: SchemaRepository,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._new_id = id_factory
        self._clock = clock
        self._lock = threading.RLock()
        self._schema = repository.load()

    # === Internals ===

    @contextmanager
    def _transaction(self) -> Iterator[OrgSchema]:
        with self._lock:
            working = self._schema.model_copy(deep=True)
            yield working
            self._schema = working

    def _index(self, schema: OrgSchema, object_api_name: str) -> int:
        for i, obj in enumerate(schema.objects):
            if obj.api_name == object_api_name:
                return i
        raise ObjectNotFoundError(object_api_name, [o.api_name for o in schema.objects])

    def _put(self, schema: OrgSchema, index: int, obj: ObjectDef) -> ObjectDef:
        obj = obj.model_copy(update={"updated_at": self._clock()})
        schema.objects[index] = obj
        return obj

    def _require_object(self, schema: OrgSchema, api_name: str) -> None:
        self._index(schema, api_name)

    def _check_field_targets(self, schema: OrgSchema, field: FieldDef) -> None:
        if field.type in LOOKUP_TYPES and field.lookup_object:
            self._require_object(schema, field.lookup_object)
        if field.relationship is not None:
            self._require_object(schema, field.relationship.target_object)
        if field.rollup is not None:
            related = schema.objects[self._index(schema, field.rollup.related_object)]
            object_model.require_field(related, field.rollup.relationship_field)
            if field.rollup.target_field:
                object_model.require_field(related, field.rollup.target_field)

    def _check_object_targets(self, schema: OrgSchema, objects: Sequence[ObjectDef]) -> None:
        for obj in objects:
            for field in obj.fields:
                self._check_field_targets(schema, field)

    def _remove_field(
        self, schema: OrgSchema, object_api_name: str, field_api_name: str, removed: set[str]
    ) -> list[ImpactReport]:
        """Cascade-remove a field plus any rollup built on it; returns the dependents' reports."""
        removed.add(f"{object_api_name}.{field_api_name}")
        index = self._index(schema, object_api_name)
        obj, _ = object_model.remove_field(schema.objects[index], field_api_name, cascade=True)
        self._put(schema, index, obj)
        schema.permission_sets = object_model.strip_field_permissions(
            schema.permission_sets, object_api_name, field_api_name
        )
        reports = []
        for ref in object_model.plan_rollup_references(schema.objects, object_api_name, field_api_name):
            if f"{ref.object_api_name}.{ref.target_name}" in removed:
                continue
            owner = schema.objects[self._index(schema, ref.object_api_name)]
            reports.append(
                object_model.plan_field_removal(owner, ref.target_name, schema.permission_sets)
            )
            reports.extend(self._remove_field(schema, ref.object_api_name, ref.target_name, removed))
        return reports

    def _add_reciprocal_lookup(self, schema: OrgSchema, index: int, target: ObjectDef) -> None:
        owner = schema.objects[index]
        if any(f.type in LOOKUP_TYPES and f.lookup_object == target.api_name for f in owner.fields):
            return
        api_name = derive_api_name_from_label(owner.api_name, target.api_name)
        if object_model.find_field(owner, api_name) is not None:
            return
        field = build_field(
            {
                "apiName": api_name,
                "label": target.label,
                "type": "Lookup",
                "lookupObject": target.api_name,
                "relationshipName": target.plural_label or target.label,
                "helpText": f"Lookup to {target.label}",
            },
            self._new_id,
        )
        owner = object_model.add_field(owner, field)
        layouts = [composer.place_in_first_section(layout, api_name) for layout in owner.page_layouts]
        self._put(schema, index, owner.model_copy(update={"page_layouts": layouts}))
        logger.debug(f"Related '{owner.api_name}' to '{target.api_name}' through '{api_name}'")

    def _relate_object(self, schema: OrgSchema, new_index: int) -> None:
        for index in range(len(schema.objects)):
            if index == new_index:
                continue
            self._add_reciprocal_lookup(schema, new_index, schema.objects[index])
            self._add_reciprocal_lookup(schema, index, schema.objects[new_index])

    def _fill_layout_ids(self, layout: PageLayout) -> PageLayout:
        tabs = []
        for tab in layout.tabs:
            sections = [s if s.id else s.model_copy(update={"id": self._new_id()}) for s in tab.sections]
            tabs.append(tab.model_copy(update={"id": tab.id or self._new_id(), "sections": sections}))
        rules = layout.formatting_rules
        if rules is not None:
            rules = [r if r.id else r.model_copy(update={"id": self._new_id()}) for r in rules]
        return layout.model_copy(
            update={"id": layout.id or self._new_id(), "tabs": tabs, "formatting_rules": rules}
        )

    def _check_rule_condition(self, obj: ObjectDef, condition: str) -> None:
        parse_expression(condition)
        for name in field_references(condition):
            object_model.require_field(obj, name)

    @staticmethod
    def _validate_model(model: type[Any], data: Any) -> Any:
        if isinstance(data, model):
            return data.model_copy(deep=True)
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidSchemaFormatError(
                f"{model.__name__} is malformed", e.errors(include_url=False, include_context=False)
            ) from e

    # === Reads ===

    @property
    def schema(self) -> OrgSchema:
        """Deep copy of the live schema."""
        with self._lock:
            return self._schema.model_copy(deep=True)

    @property
    def version(self) -> int:
        return self._schema.version

    @property
    def repository(self) -> SchemaRepository:
        return self._repository

    def list_objects(self) -> list[ObjectDef]:
        return self.schema.objects

    def get_object(self, api_name: str) -> ObjectDef:
        """Get an object by API name.

        Raises:
            ObjectNotFoundError: If the object does not exist
        """
        schema = self._schema
        return object_model.require_object(schema.objects, api_name).model_copy(deep=True)

    def get_field(self, object_api_name: str, field_api_name: str) -> FieldDef:
        return object_model.require_field(self.get_object(object_api_name), field_api_name)

    def list_fields(self, object_api_name: str, include_system: bool = True) -> list[FieldDef]:
        obj = self.get_object(object_api_name)
        if include_system:
            return object_model.all_fields(obj)
        return object_model.custom_fields(obj)

    def get_layout(self, object_api_name: str, layout_id: str) -> PageLayout:
        return composer.find_layout(self.get_object(object_api_name), layout_id)

    def validate_layout(self, object_api_name: str, layout_id: str) -> list[LayoutIssue]:
        obj = self.get_object(object_api_name)
        return composer.validate_layout(obj, composer.find_layout(obj, layout_id))

    def effective_layout(
        self,
        object_api_name: str,
        layout_type: LayoutType | str = LayoutType.EDIT,
        record_type_id: str | None = None,
    ) -> PageLayout:
        layout, _ = composer.effective_layout(self.get_object(object_api_name), layout_type, record_type_id)
        return layout

    def resolve_layout(
        self,
        object_api_name: str,
        layout_id: str | None = None,
        layout_type: LayoutType | str = LayoutType.EDIT,
        record_type_id: str | None = None,
    ) -> RenderTree:
        """Render tree for a specific layout, or the effective one when no id is given.

        Raises:
            LayoutValidationError: If the layout does not validate
        """
        obj = self.get_object(object_api_name)
        if layout_id:
            return composer.resolve(obj, composer.find_layout(obj, layout_id))
        return composer.resolve_effective(obj, layout_type, record_type_id)

    def evaluate_validation_rules(
        self, object_api_name: str, record: Mapping[str, Any]
    ) -> list[RuleViolation]:
        """Active rules of the object that would block saving ``record``."""
        return evaluate_rules(self.get_object(object_api_name).validation_rules, record)

    # === Objects ===

    def create_object(
        self,
        api_name: str,
        label: str,
        plural_label: str | None = None,
        description: str | None = None,
        fields: Sequence[FieldDef | Mapping[str, Any]] = (),
        relate: bool = False,
    ) -> ObjectDef:
        """Create an object with a default page layout and a "Master" record type.

        With ``relate`` the new object and every existing object gain a Lookup
        to each other (unless one already exists), placed in the first section
        of each of their layouts.

        Raises:
            InvalidApiNameError: If the API name is malformed
            ObjectAlreadyExistsError: If the API name is taken
            ObjectNotFoundError: If a lookup or rollup targets a missing object
        """
        ensure_api_name(api_name)
        with self._transaction() as schema:
            if object_model.find_object(schema.objects, api_name) is not None:
                raise ObjectAlreadyExistsError(api_name)
            now = self._clock()
            obj = ObjectDef(
                id=self._new_id(),
                api_name=api_name,
                label=label,
                plural_label=plural_label or f"{label}s",
                description=description,
                created_at=now,
                updated_at=now,
            )
            for spec in fields:
                field = build_field(spec, self._new_id)
                if is_system_field(field.api_name):
                    raise SystemFieldError(field.api_name, "add")
                obj = object_model.add_field(obj, field)
            schema.objects.append(obj)
            self._check_object_targets(schema, [obj])
            layout = composer.create_default_layout(
                [f.api_name for f in obj.fields], name=f"{label} Layout", id_factory=self._new_id
            )
            record_type = RecordType(
                id=self._new_id(),
                name=MASTER_RECORD_TYPE,
                description=f"Default record type for {label}",
                default=True,
                page_layout_id=layout.id,
            )
            obj = obj.model_copy(
                update={
                    "page_layouts": [layout],
                    "record_types": [record_type],
                    "default_record_type_id": record_type.id,
                }
            )
            schema.objects[-1] = obj
            if relate:
                self._relate_object(schema, len(schema.objects) - 1)
                obj = schema.objects[-1]
        logger.info(f"Created object '{api_name}' with {len(obj.fields)} field(s)")
        return obj.model_copy(deep=True)

    def update_object(
        self,
        api_name: str,
        label: str | None = None,
        plural_label: str | None = None,
        description: str | None = None,
        search_layouts: SearchLayouts | Mapping[str, Any] | None = None,
        compact_layout: CompactLayout | Mapping[str, Any] | None = None,
    ) -> ObjectDef:
        """Update display metadata. API names are immutable once created.

        Raises:
            ObjectNotFoundError: If the object does not exist
            FieldNotFoundError: If a search/compact layout names an unknown field
        """
        with self._transaction() as schema:
            index = self._index(schema, api_name)
            obj = schema.objects[index]
            update: dict[str, Any] = {}
            if label is not None:
                update["label"] = label
            if plural_label is not None:
                update["plural_label"] = plural_label
            if description is not None:
                update["description"] = description
            if search_layouts is not None:
                sl = self._validate_model(SearchLayouts, search_layouts)
                for name in (*sl.default_fields, *sl.lookup_dialog_fields, *sl.list_view_fields):
                    object_model.require_field(obj, name)
                update["search_layouts"] = sl
            if compact_layout is not None:
                cl = self._validate_model(CompactLayout, compact_layout)
                for name in cl.field_api_names:
                    object_model.require_field(obj, name)
                update["compact_layout"] = cl
            obj = self._put(schema, index, obj.model_copy(update=update))
        logger.info(f"Updated object '{api_name}'")
        return obj.model_copy(deep=True)

    def plan_delete_object(self, api_name: str) -> ImpactReport:
        """Dry run of :meth:`delete_object`."""
        schema = self._schema
        report = object_model.plan_object_removal(schema.objects, api_name)
        refs = list(report.references)
        prefix = f"{api_name}."
        for ps in schema.permission_sets:
            if api_name in ps.object_permissions or any(k.startswith(prefix) for k in ps.field_permissions):
                refs.append(
                    SchemaReference(
                        kind=ReferenceKind.PERMISSION_SET,
                        object_api_name=api_name,
                        target_id=ps.id,
                        target_name=ps.name,
                    )
                )
        return ImpactReport(target=api_name, references=refs)

    def delete_object(self, api_name: str, cascade: bool = False) -> list[str]:
        """Delete an object.

        With cascade, lookup/rollup fields on other objects that point at it
        are removed (with their own cascade) and permission entries dropped.

        Returns:
            Warnings describing every cascading change

        Raises:
            ObjectNotFoundError: If the object does not exist
            ObjectInUseError: If referenced and cascade is False
        """
        with self._transaction() as schema:
            report = self.plan_delete_object(api_name)
            remaining, warnings = object_model.remove_object(schema.objects, api_name, cascade)
            now = self._clock()
            before = {o.api_name: o for o in schema.objects}
            schema.objects = [
                o if before[o.api_name] is o else o.model_copy(update={"updated_at": now})
                for o in remaining
            ]
            schema.permission_sets = object_model.strip_field_permissions(
                schema.permission_sets, api_name
            )
            warnings.extend(
                ref.describe() for ref in report.references if ref.kind == ReferenceKind.PERMISSION_SET
            )
        for warning in warnings:
            logger.warning(f"Deleting object '{api_name}': {warning}")
        logger.info(f"Deleted object '{api_name}'")
        return warnings

    # === Fields ===

    def add_field(self, object_api_name: str, spec: FieldDef | Mapping[str, Any]) -> FieldDef:
        """Add a field to an object.

        Args:
            object_api_name: Owning object
            spec: FieldDef or dict (camelCase or snake_case keys); an ``apiName``
                is derived from the label when omitted

        Raises:
            ObjectNotFoundError: If the object (or a lookup target) does not exist
            DuplicateFieldApiNameError: If the API name is taken
            MissingRequiredConstraintError: If a type setting is missing
        """
        if isinstance(spec, Mapping) and not (spec.get("apiName") or spec.get("api_name")):
            label = str(spec.get("label", ""))
            spec = {**spec, "apiName": derive_api_name_from_label(object_api_name, label)}
        field = build_field(spec, self._new_id)
        if is_system_field(field.api_name):
            raise SystemFieldError(field.api_name, "add")
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            self._check_field_targets(schema, field)
            self._put(schema, index, object_model.add_field(schema.objects[index], field))
        logger.info(f"Added field '{field.api_name}' ({field.type}) to '{object_api_name}'")
        return field.model_copy(deep=True)

    def update_field(
        self, object_api_name: str, field_api_name: str, changes: Mapping[str, Any]
    ) -> FieldDef:
        """Apply partial changes to a field; the id is preserved.

        A rename carries the field's permission entries over to the new name.

        Raises:
            SystemFieldError: If the field is a system field
            FieldNotFoundError: If the field does not exist
            FieldInUseError: If renaming a referenced field
        """
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            if is_system_field(field_api_name):
                raise SystemFieldError(field_api_name, "update")
            current = object_model.require_field(obj, field_api_name)
            merged = {**current.to_wire(), **_wire_keys(changes), "id": current.id}
            field = build_field(merged, self._new_id)
            renamed = field.api_name != field_api_name
            if renamed:
                rollups = object_model.plan_rollup_references(schema.objects, object_api_name, field_api_name)
                if rollups:
                    report = ImpactReport(target=f"{object_api_name}.{field_api_name}", references=rollups)
                    raise FieldInUseError(field_api_name, object_api_name, report)
            self._check_field_targets(schema, field)
            self._put(schema, index, object_model.replace_field(obj, field_api_name, field))
            if renamed:
                schema.permission_sets = object_model.rename_field_permissions(
                    schema.permission_sets, object_api_name, field_api_name, field.api_name
                )
        logger.info(f"Updated field '{object_api_name}.{field_api_name}'")
        return field.model_copy(deep=True)

    def reorder_fields(self, object_api_name: str, api_names: Sequence[str]) -> ObjectDef:
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = self._put(schema, index, object_model.reorder_fields(schema.objects[index], api_names))
        return obj.model_copy(deep=True)

    def plan_delete_field(self, object_api_name: str, field_api_name: str) -> ImpactReport:
        """Dry run of :meth:`delete_field`.

        Raises:
            SystemFieldError: If the field is a system field
            FieldNotFoundError: If the field does not exist
        """
        schema = self._schema
        obj = object_model.require_object(schema.objects, object_api_name)
        if is_system_field(field_api_name):
            raise SystemFieldError(field_api_name, "delete")
        if not any(f.api_name == field_api_name for f in obj.fields):
            raise FieldNotFoundError(field_api_name, object_api_name, [f.api_name for f in obj.fields])
        report = object_model.plan_field_removal(obj, field_api_name, schema.permission_sets)
        rollups = object_model.plan_rollup_references(schema.objects, object_api_name, field_api_name)
        return ImpactReport(target=report.target, references=[*report.references, *rollups])

    def delete_field(self, object_api_name: str, field_api_name: str, cascade: bool = False) -> list[str]:
        """Delete a field.

        With cascade, placements and conditions naming the field are removed,
        rules that reference it are deactivated and rollup summaries built on
        it are deleted along with their own references. Permission entries are
        removed with or without cascade and never block the delete.

        Returns:
            Warnings describing every cascading change (empty when unreferenced)

        Raises:
            SystemFieldError: If the field is a system field
            FieldNotFoundError: If the field does not exist
            FieldInUseError: If referenced and cascade is False
        """
        with self._transaction() as schema:
            report = self.plan_delete_field(object_api_name, field_api_name)
            # Permission entries never block; they are stripped either way
            blocking = [r for r in report.references if r.kind != ReferenceKind.PERMISSION_SET]
            if blocking and not cascade:
                raise FieldInUseError(field_api_name, object_api_name, report)
            dependents = self._remove_field(schema, object_api_name, field_api_name, set())
        warnings = report.warnings()
        for dependent in dependents:
            warnings.extend(dependent.warnings())
        for warning in warnings:
            logger.warning(f"Deleting field '{object_api_name}.{field_api_name}': {warning}")
        logger.info(f"Deleted field '{object_api_name}.{field_api_name}'")
        return warnings

    # === Record types ===

    def create_record_type(
        self,
        object_api_name: str,
        name: str,
        description: str | None = None,
        default: bool = False,
        page_layout_id: str | None = None,
    ) -> RecordType:
        """Add a record type; ``default=True`` moves the default flag to it.

        Raises:
            LayoutNotFoundError: If ``page_layout_id`` is not a layout of the object
        """
        record_type = RecordType(
            id=self._new_id(),
            name=name,
            description=description,
            default=default,
            page_layout_id=page_layout_id,
        )
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            self._put(schema, index, object_model.add_record_type(schema.objects[index], record_type))
        logger.info(f"Created record type '{name}' on '{object_api_name}'")
        return record_type

    def update_record_type(
        self,
        object_api_name: str,
        record_type_id: str,
        name: str | None = None,
        description: str | None = None,
        page_layout_id: str | None = None,
    ) -> RecordType:
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            position = next((i for i, rt in enumerate(obj.record_types) if rt.id == record_type_id), None)
            if position is None:
                raise RecordTypeNotFoundError(record_type_id, object_api_name)
            update: dict[str, Any] = {}
            if name is not None:
                update["name"] = name
            if description is not None:
                update["description"] = description
            if page_layout_id is not None:
                update["page_layout_id"] = page_layout_id or None
            record_types = list(obj.record_types)
            record_types[position] = record_types[position].model_copy(update=update)
            obj = obj.model_copy(update={"record_types": record_types})
            object_model.check_record_types(obj)
            self._put(schema, index, obj)
        return record_types[position]

    def set_default_record_type(self, object_api_name: str, record_type_id: str) -> ObjectDef:
        """Make a record type the default; the previous default is cleared in the same step.

        Raises:
            RecordTypeNotFoundError: If the record type does not exist
        """
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = object_model.set_default_record_type(schema.objects[index], record_type_id)
            object_model.check_record_types(obj)
            obj = self._put(schema, index, obj)
        logger.info(f"Default record type of '{object_api_name}' is now '{record_type_id}'")
        return obj.model_copy(deep=True)

    def delete_record_type(self, object_api_name: str, record_type_id: str) -> None:
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            self._put(schema, index, object_model.remove_record_type(schema.objects[index], record_type_id))
        logger.info(f"Deleted record type '{record_type_id}' from '{object_api_name}'")

    # === Page layouts ===

    def create_layout(
        self,
        object_api_name: str,
        name: str | None = None,
        layout_type: LayoutType | str = LayoutType.EDIT,
        layout: PageLayout | Mapping[str, Any] | None = None,
    ) -> PageLayout:
        """Add a page layout.

        Without ``layout`` an empty "Details / Information" shell is created.
        Missing ids in a supplied layout are generated.

        Raises:
            LayoutValidationError: If the layout does not validate
        """
        if layout is None:
            new_layout = composer.create_default_layout(
                name=name or "New Layout", layout_type=layout_type, id_factory=self._new_id
            )
        else:
            new_layout = self._fill_layout_ids(self._validate_model(PageLayout, layout))
            new_layout = new_layout.model_copy(update={"id": self._new_id()})
            if name:
                new_layout = new_layout.model_copy(update={"name": name})
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            composer.ensure_valid_layout(obj, new_layout)
            self._put(schema, index, obj.model_copy(update={"page_layouts": [*obj.page_layouts, new_layout]}))
        logger.info(f"Created layout '{new_layout.name}' on '{object_api_name}'")
        return new_layout.model_copy(deep=True)

    def _replace_layout(self, schema: OrgSchema, object_api_name: str, layout: PageLayout) -> PageLayout:
        index = self._index(schema, object_api_name)
        obj = schema.objects[index]
        composer.find_layout(obj, layout.id)
        composer.ensure_valid_layout(obj, layout)
        layouts = [layout if lay.id == layout.id else lay for lay in obj.page_layouts]
        self._put(schema, index, obj.model_copy(update={"page_layouts": layouts}))
        return layout

    def update_layout(self, object_api_name: str, layout: PageLayout | Mapping[str, Any]) -> PageLayout:
        """Replace a layout (matched by id) with a new definition.

        Raises:
            LayoutNotFoundError: If no layout has the given id
            LayoutValidationError: If the new definition does not validate
        """
        new_layout = self._fill_layout_ids(self._validate_model(PageLayout, layout))
        with self._transaction() as schema:
            self._replace_layout(schema, object_api_name, new_layout)
        logger.info(f"Updated layout '{new_layout.name}' on '{object_api_name}'")
        return new_layout.model_copy(deep=True)

    def place_field(
        self,
        object_api_name: str,
        layout_id: str,
        section_id: str,
        field_api_name: str,
        column: int = 0,
        order: int | None = None,
    ) -> PageLayout:
        """Place a field into a layout section.

        Raises:
            LayoutValidationError: If the placement would dangle, overflow the
                section's columns or duplicate an existing placement
        """
        with self._transaction() as schema:
            obj = schema.objects[self._index(schema, object_api_name)]
            layout = composer.find_layout(obj, layout_id)
            layout = composer.place_field(layout, section_id, field_api_name, column, order)
            self._replace_layout(schema, object_api_name, layout)
        return layout.model_copy(deep=True)

    def unplace_field(self, object_api_name: str, layout_id: str, field_api_name: str) -> PageLayout:
        with self._transaction() as schema:
            obj = schema.objects[self._index(schema, object_api_name)]
            layout = composer.unplace_field(composer.find_layout(obj, layout_id), field_api_name)
            self._replace_layout(schema, object_api_name, layout)
        return layout.model_copy(deep=True)

    def plan_delete_layout(self, object_api_name: str, layout_id: str) -> ImpactReport:
        """Record types that would lose their layout assignment."""
        obj = self.get_object(object_api_name)
        composer.find_layout(obj, layout_id)
        refs = [
            SchemaReference(
                kind=ReferenceKind.RECORD_TYPE,
                object_api_name=object_api_name,
                target_id=rt.id,
                target_name=rt.name,
            )
            for rt in obj.record_types
            if rt.page_layout_id == layout_id
        ]
        return ImpactReport(target=layout_id, references=refs)

    def delete_layout(self, object_api_name: str, layout_id: str, cascade: bool = False) -> list[str]:
        """Delete a layout; with cascade, record types using it are unassigned.

        Raises:
            LayoutNotFoundError: If the layout does not exist
            LayoutInUseError: If a record type uses it and cascade is False
        """
        with self._transaction() as schema:
            report = self.plan_delete_layout(object_api_name, layout_id)
            if report.has_references and not cascade:
                raise LayoutInUseError(layout_id, object_api_name, report)
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            record_types = [
                rt.model_copy(update={"page_layout_id": None}) if rt.page_layout_id == layout_id else rt
                for rt in obj.record_types
            ]
            layouts = [lay for lay in obj.page_layouts if lay.id != layout_id]
            self._put(
                schema, index, obj.model_copy(update={"page_layouts": layouts, "record_types": record_types})
            )
        warnings = report.warnings()
        for warning in warnings:
            logger.warning(f"Deleting layout '{layout_id}': {warning}")
        logger.info(f"Deleted layout '{layout_id}' from '{object_api_name}'")
        return warnings

    # === Validation rules ===

    def create_validation_rule(
        self,
        object_api_name: str,
        name: str,
        error_message: str,
        condition: str,
        active: bool = True,
    ) -> ValidationRule:
        """Add a validation rule after checking its condition parses.

        Raises:
            ExpressionSyntaxError: If the condition does not parse
            FieldNotFoundError: If the condition names an unknown field
        """
        rule = ValidationRule(
            id=self._new_id(), name=name, error_message=error_message, condition=condition, active=active
        )
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            self._check_rule_condition(obj, condition)
            self._put(schema, index, obj.model_copy(update={"validation_rules": [*obj.validation_rules, rule]}))
        logger.info(f"Created validation rule '{name}' on '{object_api_name}'")
        return rule

    def update_validation_rule(
        self,
        object_api_name: str,
        rule_id: str,
        name: str | None = None,
        error_message: str | None = None,
        condition: str | None = None,
        active: bool | None = None,
    ) -> ValidationRule:
        """Update a rule; ``active=False`` deactivates without deleting.

        Raises:
            ValidationRuleNotFoundError: If the rule does not exist
        """
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            position = next((i for i, r in enumerate(obj.validation_rules) if r.id == rule_id), None)
            if position is None:
                raise ValidationRuleNotFoundError(rule_id, object_api_name)
            update: dict[str, Any] = {}
            if name is not None:
                update["name"] = name
            if error_message is not None:
                update["error_message"] = error_message
            if condition is not None:
                self._check_rule_condition(obj, condition)
                update["condition"] = condition
            if active is not None:
                update["active"] = active
            rules = list(obj.validation_rules)
            rules[position] = rules[position].model_copy(update=update)
            self._put(schema, index, obj.model_copy(update={"validation_rules": rules}))
        logger.info(f"Updated validation rule '{rules[position].name}' on '{object_api_name}'")
        return rules[position]

    def set_validation_rule_active(self, object_api_name: str, rule_id: str, active: bool) -> ValidationRule:
        return self.update_validation_rule(object_api_name, rule_id, active=active)

    def delete_validation_rule(self, object_api_name: str, rule_id: str) -> None:
        with self._transaction() as schema:
            index = self._index(schema, object_api_name)
            obj = schema.objects[index]
            if not any(r.id == rule_id for r in obj.validation_rules):
                raise ValidationRuleNotFoundError(rule_id, object_api_name)
            rules = [r for r in obj.validation_rules if r.id != rule_id]
            self._put(schema, index, obj.model_copy(update={"validation_rules": rules}))
        logger.info(f"Deleted validation rule '{rule_id}' from '{object_api_name}'")

    # === Permission sets ===

    def _check_permissions(
        self,
        schema: OrgSchema,
        object_permissions: Mapping[str, ObjectPermission],
        field_permissions: Mapping[str, FieldPermission],
    ) -> None:
        for object_api_name in object_permissions:
            self._require_object(schema, object_api_name)
        for key in field_permissions:
            object_api_name, _, field_api_name = key.partition(".")
            if not field_api_name:
                raise InvalidSchemaFormatError(
                    f"field permission key '{key}' must look like 'Object.field'"
                )
            obj = object_model.require_object(schema.objects, object_api_name)
            object_model.require_field(obj, field_api_name)

    def list_permission_sets(self) -> list[PermissionSet]:
        return self.schema.permission_sets

    def get_permission_set(self, permission_set_id: str) -> PermissionSet:
        for ps in self._schema.permission_sets:
            if ps.id == permission_set_id:
                return ps.model_copy(deep=True)
        raise PermissionSetNotFoundError(permission_set_id)

    def create_permission_set(
        self,
        name: str,
        object_permissions: Mapping[str, ObjectPermission | Mapping[str, bool]] | None = None,
        field_permissions: Mapping[str, FieldPermission | Mapping[str, bool]] | None = None,
    ) -> PermissionSet:
        """Store a permission set (not enforced by the engine).

        Raises:
            ObjectNotFoundError: If an object key does not exist
            FieldNotFoundError: If an ``Object.field`` key does not resolve
        """
        ps = self._validate_model(
            PermissionSet,
            {
                "id": self._new_id(),
                "name": name,
                "objectPermissions": dict(object_permissions or {}),
                "fieldPermissions": dict(field_permissions or {}),
            },
        )
        with self._transaction() as schema:
            self._check_permissions(schema, ps.object_permissions, ps.field_permissions)
            schema.permission_sets.append(ps)
        logger.info(f"Created permission set '{name}'")
        return ps.model_copy(deep=True)

    def update_permission_set(
        self,
        permission_set_id: str,
        name: str | None = None,
        object_permissions: Mapping[str, ObjectPermission | Mapping[str, bool]] | None = None,
        field_permissions: Mapping[str, FieldPermission | Mapping[str, bool]] | None = None,
    ) -> PermissionSet:
        with self._transaction() as schema:
            current = self.get_permission_set(permission_set_id)
            data = current.to_wire()
            if name is not None:
                data["name"] = name
            if object_permissions is not None:
                data["objectPermissions"] = dict(object_permissions)
            if field_permissions is not None:
                data["fieldPermissions"] = dict(field_permissions)
            ps = self._validate_model(PermissionSet, data)
            self._check_permissions(schema, ps.object_permissions, ps.field_permissions)
            schema.permission_sets = [ps if p.id == permission_set_id else p for p in schema.permission_sets]
        logger.info(f"Updated permission set '{ps.name}'")
        return ps.model_copy(deep=True)

    def delete_permission_set(self, permission_set_id: str) -> None:
        with self._transaction() as schema:
            self.get_permission_set(permission_set_id)
            schema.permission_sets = [p for p in schema.permission_sets if p.id != permission_set_id]
        logger.info(f"Deleted permission set '{permission_set_id}'")

    # === Versioning ===

    def save(self, changed_by: str | None = None, description: str | None = None) -> OrgSchema:
        """Persist the live schema as the next version.

        The version becomes ``max(current, latest persisted) + 1``. If the
        repository fails, the live schema keeps its previous version.

        Raises:
            RepositoryError: If persisting fails
        """
        with self._lock:
            version = max(self._schema.version, self._repository.latest_version()) + 1
            snapshot = self._schema.model_copy(
                deep=True,
                update={
                    "version": version,
                    "updated_at": self._clock(),
                    "created_by": changed_by or self._schema.created_by,
                },
            )
            self._repository.save(snapshot, changed_by=changed_by, description=description)
            self._schema = snapshot
        logger.info(f"Schema saved as version {version}")
        return snapshot.model_copy(deep=True)

    def history(self) -> list[OrgSchema]:
        """Saved snapshots, most recent first."""
        return self._repository.history()

    def history_info(self) -> list[SchemaVersionInfo]:
        return self._repository.history_info()

    def rollback(self, version: int, changed_by: str | None = None) -> OrgSchema:
        """Make a past version's content live again as a new version.

        Raises:
            VersionNotFoundError: If the version is not in the history
        """
        with self._lock:
            restored = self._repository.rollback(version, changed_by=changed_by)
            self._schema = restored
        logger.info(f"Rolled back to version {version}; live version is {restored.version}")
        return restored.model_copy(deep=True)

    def reset_schema(self) -> OrgSchema:
        """Drop all persisted state and save a fresh sample schema."""
        with self._lock:
            self._repository.reset()
            self._schema = create_sample_schema(self._new_id, self._clock)
            saved = self.save(description="Reset to sample schema")
        logger.info("Schema reset to sample data")
        return saved

    # === Import/export ===

    def export_schema(self, object_api_name: str | None = None) -> str:
        """Serialize the live schema, or one object when ``object_api_name`` is given."""
        if object_api_name:
            return codec.export_object(self.get_object(object_api_name))
        return codec.export_schema(self._schema)

    def import_schema(self, text: str, merge: bool = False) -> OrgSchema:
        """Replace (or extend) the live schema with an imported document.

        Imported ids are always regenerated. With ``merge`` the imported
        objects and permission sets are appended to the live schema.

        Raises:
            InvalidSchemaFormatError: If the document is malformed
            ObjectAlreadyExistsError: If merging would duplicate an object API name
            ObjectNotFoundError: If an imported lookup or rollup targets a missing object
            LayoutValidationError: If an imported layout does not validate
        """
        imported = codec.import_schema(text, self._new_id, self._clock)
        with self._transaction() as schema:
            if merge:
                existing = {o.api_name for o in schema.objects}
                for obj in imported.objects:
                    if obj.api_name in existing:
                        raise ObjectAlreadyExistsError(obj.api_name)
                schema.objects.extend(imported.objects)
                schema.permission_sets.extend(imported.permission_sets)
            else:
                schema.objects = imported.objects
                schema.permission_sets = imported.permission_sets
                schema.version = imported.version
                schema.updated_at = imported.updated_at
            self._check_object_targets(schema, imported.objects)
            result = schema.model_copy(deep=True)
        mode = "merged" if merge else "replaced"
        logger.info(f"Imported {len(imported.objects)} object(s) ({mode})")
        return result

    def import_object(self, text: str) -> ObjectDef:
        """Add one exported object to the live schema with fresh ids.

        Raises:
            InvalidSchemaFormatError: If the document is malformed
            ObjectAlreadyExistsError: If the API name is taken
            ObjectNotFoundError: If a lookup or rollup targets a missing object
            LayoutValidationError: If the object's layouts do not validate
        """
        obj = codec.import_object(text, self._new_id, self._clock)
        with self._transaction() as schema:
            if object_model.find_object(schema.objects, obj.api_name) is not None:
                raise ObjectAlreadyExistsError(obj.api_name)
            schema.objects.append(obj)
            self._check_object_targets(schema, [obj])
        logger.info(f"Imported object '{obj.api_name}'")
        return obj.model_copy(deep=True)
