"""Core types for the orgschema metadata engine.

All models serialize to the camelCase JSON wire shape used by exported
schema documents (``apiName``, ``picklistValues``, ``pageLayouts`` ...).
Python code uses the snake_case attribute names; both spellings are
accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from orgschema.core.compat import StrEnum, utc_now


class FieldType(StrEnum):
    """Supported field types."""

    AUTO_NUMBER = "AutoNumber"
    FORMULA = "Formula"
    ROLLUP_SUMMARY = "RollupSummary"
    LOOKUP = "Lookup"
    EXTERNAL_LOOKUP = "ExternalLookup"
    CHECKBOX = "Checkbox"
    CURRENCY = "Currency"
    DATE = "Date"
    DATETIME = "DateTime"
    EMAIL = "Email"
    GEOLOCATION = "Geolocation"
    NUMBER = "Number"
    PERCENT = "Percent"
    PHONE = "Phone"
    PICKLIST = "Picklist"
    MULTI_PICKLIST = "MultiPicklist"
    TEXT = "Text"
    TEXT_AREA = "TextArea"
    LONG_TEXT_AREA = "LongTextArea"
    RICH_TEXT_AREA = "RichTextArea"
    ENCRYPTED_TEXT = "EncryptedText"
    TIME = "Time"
    URL = "URL"
    ADDRESS = "Address"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field type values."""
        return [t.value for t in cls]

    @classmethod
    def parse(cls, value: Any) -> FieldType:
        """Resolve a field type ignoring case and ``-``/``_``/space separators.

        ``"text"``, ``"auto-number"``, ``"roll-up-summary"`` and
        ``"datetime"`` all resolve to their canonical members.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid field type {value!r}")
        key = "".join(ch for ch in value if ch not in "-_ ").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        if key in _FIELD_TYPE_ALIASES:
            return _FIELD_TYPE_ALIASES[key]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {', '.join(cls.values())}")


_FIELD_TYPE_ALIASES = {
    "longtext": FieldType.LONG_TEXT_AREA,
    "richtext": FieldType.RICH_TEXT_AREA,
    "rollup": FieldType.ROLLUP_SUMMARY,
    "multiselect": FieldType.MULTI_PICKLIST,
}


class ConditionOperator(StrEnum):
    """Operators allowed in a visibility condition."""

    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    IN = "IN"
    INCLUDES = "INCLUDES"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid operator values."""
        return [op.value for op in cls]


class LayoutType(StrEnum):
    """Which record form a page layout is meant for."""

    CREATE = "create"  # New record
    EDIT = "edit"  # Existing record


class LayoutIssueCode(StrEnum):
    """Problems reported by layout validation."""

    DANGLING_FIELD_REFERENCE = "DANGLING_FIELD_REFERENCE"
    COLUMN_OUT_OF_RANGE = "COLUMN_OUT_OF_RANGE"
    DUPLICATE_FIELD_PLACEMENT = "DUPLICATE_FIELD_PLACEMENT"
    DANGLING_CONDITION_REFERENCE = "DANGLING_CONDITION_REFERENCE"
    INVALID_COLUMNS = "INVALID_COLUMNS"


class ReferenceKind(StrEnum):
    """Places in a schema that can point at a field, layout or object."""

    LAYOUT_PLACEMENT = "layout_placement"
    SECTION_VISIBILITY = "section_visibility"
    FIELD_VISIBILITY = "field_visibility"
    FIELD_DEPENDENCY = "field_dependency"
    VALIDATION_RULE = "validation_rule"
    FORMATTING_RULE = "formatting_rule"
    RECORD_TYPE = "record_type"
    LOOKUP_FIELD = "lookup_field"
    COMPACT_LAYOUT = "compact_layout"
    SEARCH_LAYOUT = "search_layout"
    PERMISSION_SET = "permission_set"
    ROLLUP_SUMMARY = "rollup_summary"


# Closed variant for record values and condition operands.
ScalarValue = Union[bool, int, float, str, None]
FieldValue = Union[bool, int, float, str, list[ScalarValue], None]


class WireModel(BaseModel):
    """Base for models exchanged in the camelCase schema document."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
    }

    def to_wire(self) -> dict[str, Any]:
        """Dump as a JSON-compatible dict using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# === Field Model ===


class ConditionExpr(WireModel):
    """A single ``left op right`` visibility condition."""

    left: str
    op: ConditionOperator
    right: FieldValue = None


class AutoNumberSettings(WireModel):
    """Display template and counter start for auto-number fields."""

    display_format: str | None = None
    starting_number: int | None = None


class RollupSettings(WireModel):
    """Aggregate of a related object's field."""

    related_object: str
    relationship_field: str
    aggregate: str = "COUNT"  # COUNT, SUM, MIN, MAX
    target_field: str | None = None
    filter_expr: str | None = None


class RelationshipSettings(WireModel):
    """Delete behavior for lookup relationships."""

    target_object: str
    behavior: str = "restrict"  # restrict, cascade, nullify


class EncryptionSettings(WireModel):
    strategy: str = "atRest"
    masked: bool = True


class FieldDef(WireModel):
    """One field on one object."""

    id: str = ""
    api_name: str
    label: str
    type: FieldType = FieldType.TEXT
    custom: bool = True
    required: bool = False
    unique: bool = False
    read_only: bool = False
    precision: int | None = None
    scale: int | None = None
    min: float | None = None
    max: float | None = None
    max_length: int | None = None
    min_length: int | None = None
    picklist_values: list[str] | None = None
    default_value: Any = None
    help_text: str | None = None
    controlling_field: str | None = None
    dependent_values: dict[str, list[str]] | None = None
    visible_if: list[ConditionExpr] | None = None
    lookup_object: str | None = None
    relationship_name: str | None = None
    formula_expr: str | None = None
    auto_number: AutoNumberSettings | None = None
    rollup: RollupSettings | None = None
    relationship: RelationshipSettings | None = None
    encryption: EncryptionSettings | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> FieldType:
        return FieldType.parse(value)


# === Object Model ===


class RecordType(WireModel):
    id: str = ""
    name: str
    description: str | None = None
    default: bool = False
    page_layout_id: str | None = None


class ValidationRule(WireModel):
    """Blocks a record save when ``condition`` evaluates true."""

    id: str = ""
    name: str
    error_message: str
    active: bool = True
    condition: str


class PageField(WireModel):
    """Placement of a field inside a section (not a field definition)."""

    field_api_name: str = Field(
        validation_alias=AliasChoices("fieldApiName", "field_api_name", "apiName"),
        serialization_alias="fieldApiName",
    )
    column: int = 0
    order: int = 0


class PageSection(WireModel):
    id: str = ""
    label: str
    columns: int = 1
    order: int = 0
    visible_if: list[ConditionExpr] | None = None
    fields: list[PageField] = Field(default_factory=list)


class PageTab(WireModel):
    id: str = ""
    label: str
    order: int = 0
    sections: list[PageSection] = Field(default_factory=list)


class FormattingRule(WireModel):
    id: str = ""
    name: str
    active: bool = True
    when: str
    effects: dict[str, Any] = Field(default_factory=dict)


class PageLayout(WireModel):
    id: str = ""
    name: str
    layout_type: LayoutType = LayoutType.EDIT
    tabs: list[PageTab] = Field(default_factory=list)
    formatting_rules: list[FormattingRule] | None = None


class SearchLayouts(WireModel):
    default_fields: list[str] = Field(default_factory=list)
    lookup_dialog_fields: list[str] = Field(default_factory=list)
    list_view_fields: list[str] = Field(default_factory=list)


class CompactLayout(WireModel):
    field_api_names: list[str] = Field(default_factory=list)


class ObjectDef(WireModel):
    """One entity type with its fields, record types, layouts and rules."""

    id: str = ""
    api_name: str
    label: str
    plural_label: str | None = None
    description: str | None = None
    fields: list[FieldDef] = Field(default_factory=list)
    record_types: list[RecordType] = Field(default_factory=list)
    page_layouts: list[PageLayout] = Field(default_factory=list)
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    search_layouts: SearchLayouts | None = None
    compact_layout: CompactLayout | None = None
    permission_sets: list[str] | None = None
    default_record_type_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ObjectPermission(WireModel):
    read: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False


class FieldPermission(WireModel):
    read: bool = False
    edit: bool = False


class PermissionSet(WireModel):
    """Stored and versioned; not enforced by the engine."""

    id: str = ""
    name: str
    object_permissions: dict[str, ObjectPermission] = Field(default_factory=dict)
    field_permissions: dict[str, FieldPermission] = Field(default_factory=dict)


class OrgSchema(WireModel):
    """Root aggregate, versioned as one unit."""

    version: int = 0
    objects: list[ObjectDef] = Field(default_factory=list)
    permission_sets: list[PermissionSet] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)
    created_by: str | None = None


# === Layout rendering (output format) ===


class RenderField(BaseModel):
    """A placed field resolved to its definition."""

    api_name: str
    column: int
    order: int
    field: FieldDef


class RenderColumn(BaseModel):
    index: int
    fields: list[RenderField] = Field(default_factory=list)


class RenderSection(BaseModel):
    id: str
    label: str
    columns: int
    order: int
    visible_if: list[ConditionExpr] | None = None
    column_fields: list[RenderColumn] = Field(default_factory=list)

    def iter_fields(self) -> list[RenderField]:
        """Fields in column-major reading order."""
        return [f for col in self.column_fields for f in col.fields]


class RenderTab(BaseModel):
    id: str
    label: str
    order: int
    sections: list[RenderSection] = Field(default_factory=list)


class RenderTree(BaseModel):
    """Ordered tab -> section -> column -> field tree for one layout."""

    object_api_name: str
    layout_id: str
    layout_name: str
    layout_type: str
    is_fallback: bool = False
    tabs: list[RenderTab] = Field(default_factory=list)


class LayoutIssue(BaseModel):
    """A single problem found by layout validation."""

    code: LayoutIssueCode
    message: str
    layout_id: str | None = None
    tab_id: str | None = None
    section_id: str | None = None
    field_api_name: str | None = None
    # Earlier section holding the same field, for duplicate placements
    first_section_id: str | None = None

    model_config = {"use_enum_values": True}


# === Impact analysis (output format) ===


class SchemaReference(BaseModel):
    """One place that refers to a delete target."""

    kind: ReferenceKind
    object_api_name: str
    target_id: str | None = None
    target_name: str | None = None
    detail: str | None = None

    model_config = {"use_enum_values": True}

    def describe(self) -> str:
        """Human-readable one-liner used in warning lists."""
        where = f"{self.object_api_name}"
        if self.target_name:
            where += f" / {self.target_name}"
        text = f"{self.kind}: {where}"
        return f"{text} ({self.detail})" if self.detail else text


class ImpactReport(BaseModel):
    """Dry-run result of a delete: everything a cascade would touch."""

    target: str
    references: list[SchemaReference] = Field(default_factory=list)

    @property
    def has_references(self) -> bool:
        return bool(self.references)

    def warnings(self) -> list[str]:
        """Warning strings describing each cascading side effect."""
        return [ref.describe() for ref in self.references]


class RuleViolation(BaseModel):
    """An active validation rule that blocks a record save."""

    rule_id: str
    rule_name: str
    error_message: str


class SchemaVersionInfo(BaseModel):
    """Summary of one entry in the version history."""

    version: int
    updated_at: datetime
    object_count: int
    changed_by: str | None = None
    description: str | None = None


class SchemaSettings(BaseModel):
    """Configuration for a schema store and its repository."""

    database_url: str = "sqlite:///./orgschema.db"
    history_limit: int = Field(default=10, ge=1, description="Number of saved versions kept")
    seed_defaults: bool = Field(
        default=True, description="Seed sample objects when nothing is persisted yet"
    )
    echo: bool = False
