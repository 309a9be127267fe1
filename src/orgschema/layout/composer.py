"""Layout composer: validate page layouts and resolve them into render trees.

Resolution is pure; the form-rendering side calls it on every render and then
prunes the tree per record with :func:`visible_tree`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from orgschema.core.compat import new_id
from orgschema.core.types import (
    LayoutIssue,
    LayoutIssueCode,
    LayoutType,
    ObjectDef,
    PageField,
    PageLayout,
    PageSection,
    PageTab,
    RenderColumn,
    RenderField,
    RenderSection,
    RenderTab,
    RenderTree,
)
from orgschema.exceptions import LayoutNotFoundError, LayoutValidationError, SectionNotFoundError
from orgschema.rules.visibility import evaluate
from orgschema.schema.objects import custom_fields, find_field

MIN_COLUMNS = 1
MAX_COLUMNS = 3
FALLBACK_COLUMNS = 2


def validate_layout(obj: ObjectDef, layout: PageLayout) -> list[LayoutIssue]:
    """Check a layout against its object.

    Reports dangling field and condition references, columns outside the
    section, bad column counts and fields placed more than once.

    Args:
        obj: Owning object; system fields resolve too
        layout: Layout to check

    Returns:
        Issues in tab/section/field declaration order (empty when valid)
    """
    issues: list[LayoutIssue] = []
    seen: dict[str, PageSection] = {}

    def issue(
        code: LayoutIssueCode,
        message: str,
        tab: PageTab,
        section: PageSection,
        field: str | None = None,
        first_section: PageSection | None = None,
    ) -> None:
        issues.append(
            LayoutIssue(
                code=code,
                message=message,
                layout_id=layout.id,
                tab_id=tab.id,
                section_id=section.id,
                field_api_name=field,
                first_section_id=first_section.id if first_section else None,
            )
        )

    for tab in layout.tabs:
        for section in tab.sections:
            if not MIN_COLUMNS <= section.columns <= MAX_COLUMNS:
                issue(
                    LayoutIssueCode.INVALID_COLUMNS,
                    f"Section '{section.label}' has {section.columns} columns; "
                    f"use {MIN_COLUMNS} to {MAX_COLUMNS}.",
                    tab,
                    section,
                )
            for condition in section.visible_if or []:
                if find_field(obj, condition.left) is None:
                    issue(
                        LayoutIssueCode.DANGLING_CONDITION_REFERENCE,
                        f"Section '{section.label}' is conditioned on unknown field "
                        f"'{condition.left}'.",
                        tab,
                        section,
                        condition.left,
                    )
            for placement in section.fields:
                name = placement.field_api_name
                if find_field(obj, name) is None:
                    issue(
                        LayoutIssueCode.DANGLING_FIELD_REFERENCE,
                        f"Field '{name}' does not exist on '{obj.api_name}'.",
                        tab,
                        section,
                        name,
                    )
                if not 0 <= placement.column < section.columns:
                    issue(
                        LayoutIssueCode.COLUMN_OUT_OF_RANGE,
                        f"Field '{name}' is in column {placement.column} but section "
                        f"'{section.label}' has {section.columns} column(s).",
                        tab,
                        section,
                        name,
                    )
                if name in seen:
                    first = seen[name]
                    issue(
                        LayoutIssueCode.DUPLICATE_FIELD_PLACEMENT,
                        f"Field '{name}' is already placed in section '{first.label}' ({first.id}).",
                        tab,
                        section,
                        name,
                        first,
                    )
                else:
                    seen[name] = section
    return issues


def ensure_valid_layout(obj: ObjectDef, layout: PageLayout) -> None:
    """Raise LayoutValidationError if :func:`validate_layout` reports anything."""
    issues = validate_layout(obj, layout)
    if issues:
        raise LayoutValidationError(layout.name, issues)


def resolve(obj: ObjectDef, layout: PageLayout, is_fallback: bool = False) -> RenderTree:
    """Resolve a layout into an ordered render tree.

    Tabs and sections are sorted by ``order``; fields are grouped by column
    and sorted by ``order`` within the column. Ties keep declaration order.

    Raises:
        LayoutValidationError: If the layout does not validate
    """
    ensure_valid_layout(obj, layout)
    tabs = []
    for tab in sorted(layout.tabs, key=lambda t: t.order):
        sections = []
        for section in sorted(tab.sections, key=lambda s: s.order):
            columns = [RenderColumn(index=i) for i in range(section.columns)]
            for placement in sorted(section.fields, key=lambda p: p.order):
                field = find_field(obj, placement.field_api_name)
                columns[placement.column].fields.append(
                    RenderField(
                        api_name=placement.field_api_name,
                        column=placement.column,
                        order=placement.order,
                        field=field,
                    )
                )
            sections.append(
                RenderSection(
                    id=section.id,
                    label=section.label,
                    columns=section.columns,
                    order=section.order,
                    visible_if=section.visible_if,
                    column_fields=columns,
                )
            )
        tabs.append(RenderTab(id=tab.id, label=tab.label, order=tab.order, sections=sections))
    return RenderTree(
        object_api_name=obj.api_name,
        layout_id=layout.id,
        layout_name=layout.name,
        layout_type=str(layout.layout_type),
        is_fallback=is_fallback,
        tabs=tabs,
    )


def fallback_layout(obj: ObjectDef, layout_type: LayoutType | str = LayoutType.EDIT) -> PageLayout:
    """Single tab, single two-column section holding every custom field."""
    placements = [
        PageField(field_api_name=f.api_name, column=i % FALLBACK_COLUMNS, order=i // FALLBACK_COLUMNS)
        for i, f in enumerate(custom_fields(obj))
    ]
    section = PageSection(
        id=f"{obj.api_name}-fallback-section",
        label="Information",
        columns=FALLBACK_COLUMNS,
        fields=placements,
    )
    tab = PageTab(id=f"{obj.api_name}-fallback-tab", label="Details", sections=[section])
    return PageLayout(
        id=f"{obj.api_name}-fallback",
        name=f"{obj.label} Layout",
        layout_type=LayoutType(layout_type),
        tabs=[tab],
    )


def find_layout(obj: ObjectDef, layout_id: str) -> PageLayout:
    for layout in obj.page_layouts:
        if layout.id == layout_id:
            return layout
    raise LayoutNotFoundError(layout_id, obj.api_name)


def effective_layout(
    obj: ObjectDef,
    layout_type: LayoutType | str = LayoutType.EDIT,
    record_type_id: str | None = None,
) -> tuple[PageLayout, bool]:
    """Pick the layout used for default record entry.

    A record type's assigned layout wins. Otherwise the first layout in
    declaration order with a matching type is used, and an object with none
    gets :func:`fallback_layout`.

    Returns:
        (layout, is_fallback)
    """
    layout_type = LayoutType(layout_type)
    if record_type_id:
        for rt in obj.record_types:
            if rt.id == record_type_id and rt.page_layout_id:
                return find_layout(obj, rt.page_layout_id), False
    for layout in obj.page_layouts:
        if layout.layout_type == layout_type:
            return layout, False
    return fallback_layout(obj, layout_type), True


def resolve_effective(
    obj: ObjectDef,
    layout_type: LayoutType | str = LayoutType.EDIT,
    record_type_id: str | None = None,
) -> RenderTree:
    layout, is_fallback = effective_layout(obj, layout_type, record_type_id)
    return resolve(obj, layout, is_fallback=is_fallback)


def visible_tree(tree: RenderTree, record: Mapping[str, Any]) -> RenderTree:
    """Drop sections and fields whose ``visibleIf`` is false for ``record``."""
    tabs = []
    for tab in tree.tabs:
        sections = []
        for section in tab.sections:
            if not evaluate(section.visible_if, record):
                continue
            columns = [
                RenderColumn(
                    index=col.index,
                    fields=[f for f in col.fields if evaluate(f.field.visible_if, record)],
                )
                for col in section.column_fields
            ]
            sections.append(section.model_copy(update={"column_fields": columns}))
        tabs.append(tab.model_copy(update={"sections": sections}))
    return tree.model_copy(update={"tabs": tabs})


def create_default_layout(
    field_api_names: Sequence[str] = (),
    name: str = "Default Layout",
    layout_type: LayoutType | str = LayoutType.EDIT,
    id_factory: Callable[[], str] = new_id,
) -> PageLayout:
    """A "Details" tab with a two-column "Information" section."""
    placements = [
        PageField(field_api_name=api_name, column=i % 2, order=i // 2)
        for i, api_name in enumerate(field_api_names)
    ]
    section = PageSection(id=id_factory(), label="Information", columns=2, order=0, fields=placements)
    tab = PageTab(id=id_factory(), label="Details", order=0, sections=[section])
    return PageLayout(id=id_factory(), name=name, layout_type=LayoutType(layout_type), tabs=[tab])


def placed_fields(layout: PageLayout) -> list[str]:
    return [pf.field_api_name for tab in layout.tabs for s in tab.sections for pf in s.fields]


def place_field(
    layout: PageLayout,
    section_id: str,
    field_api_name: str,
    column: int = 0,
    order: int | None = None,
) -> PageLayout:
    """Return a copy of ``layout`` with the field placed in a section.

    Without ``order`` the field goes to the end of its column.

    Raises:
        SectionNotFoundError: If no section has ``section_id``
    """
    found = False
    tabs = []
    for tab in layout.tabs:
        sections = []
        for section in tab.sections:
            if section.id == section_id:
                found = True
                position = order
                if position is None:
                    in_column = [pf.order for pf in section.fields if pf.column == column]
                    position = max(in_column) + 1 if in_column else 0
                placement = PageField(field_api_name=field_api_name, column=column, order=position)
                section = section.model_copy(update={"fields": [*section.fields, placement]})
            sections.append(section)
        tabs.append(tab.model_copy(update={"sections": sections}))
    if not found:
        raise SectionNotFoundError(section_id, layout.name)
    return layout.model_copy(update={"tabs": tabs})


def place_in_first_section(layout: PageLayout, field_api_name: str) -> PageLayout:
    """Append a field to the first section of the first tab, spreading across its columns.

    Layouts without a section, or that already place the field, come back unchanged.
    """
    if field_api_name in placed_fields(layout) or not layout.tabs or not layout.tabs[0].sections:
        return layout
    section = layout.tabs[0].sections[0]
    column = len(section.fields) % section.columns if section.columns > 0 else 0
    return place_field(layout, section.id, field_api_name, column)


def unplace_field(layout: PageLayout, field_api_name: str) -> PageLayout:
    """Return a copy of ``layout`` without any placement of the field."""
    tabs = [
        tab.model_copy(
            update={
                "sections": [
                    s.model_copy(
                        update={"fields": [pf for pf in s.fields if pf.field_api_name != field_api_name]}
                    )
                    for s in tab.sections
                ]
            }
        )
        for tab in layout.tabs
    ]
    return layout.model_copy(update={"tabs": tabs})
