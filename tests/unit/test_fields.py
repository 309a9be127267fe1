"""Tests for the field model: API names, type parsing and constraints."""

import pytest

from orgschema.core.types import FieldDef, FieldType
from orgschema.exceptions import (
    InvalidApiNameError,
    InvalidConstraintError,
    InvalidSchemaFormatError,
    MissingRequiredConstraintError,
)
from orgschema.schema.fields import (
    SYSTEM_FIELDS,
    allowed_dependent_values,
    build_field,
    derive_api_name_from_label,
    field_type_category,
    is_system_field,
    slugify_label,
    validate_api_name,
)


class TestFieldType:
    """Tests for FieldType parsing."""

    def test_canonical_values(self):
        assert FieldType("Text") == FieldType.TEXT
        assert FieldType.URL.value == "URL"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("text", FieldType.TEXT),
            ("auto-number", FieldType.AUTO_NUMBER),
            ("roll-up-summary", FieldType.ROLLUP_SUMMARY),
            ("datetime", FieldType.DATETIME),
            ("multi_picklist", FieldType.MULTI_PICKLIST),
            ("long text", FieldType.LONG_TEXT_AREA),
        ],
    )
    def test_lenient_parse(self, raw, expected):
        assert FieldType.parse(raw) == expected

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Invalid field type"):
            FieldType.parse("Blob")

    def test_field_def_accepts_lenient_type(self):
        field = FieldDef(api_name="Deal__score", label="Score", type="number")
        assert field.type == "Number"


class TestApiNames:
    """Tests for API name validation and derivation."""

    @pytest.mark.parametrize("name", ["Deal", "Deal__amount", "_private", "a1"])
    def test_valid(self, name):
        assert validate_api_name(name) is True

    @pytest.mark.parametrize("name", ["", "1deal", "deal-name", "deal name", "x" * 41])
    def test_invalid(self, name):
        assert validate_api_name(name) is False

    def test_forty_chars_allowed(self):
        assert validate_api_name("x" * 40) is True

    def test_slugify(self):
        assert slugify_label("Close Date") == "close_date"
        assert slugify_label("Probability (%)") == "probability"
        assert slugify_label("1st Contact") == "_1st_contact"

    def test_derive_custom_field(self):
        assert derive_api_name_from_label("Deal", "Close Date") == "Deal__close_date"

    def test_derive_system_field(self):
        assert derive_api_name_from_label("Deal", "Owner", system=True) == "owner"

    def test_derive_is_capped(self):
        name = derive_api_name_from_label("Opportunity", "A very long label that keeps going on")
        assert len(name) == 40
        assert name.startswith("Opportunity__a_very_long")

    def test_derive_empty_label(self):
        with pytest.raises(InvalidApiNameError):
            derive_api_name_from_label("Deal", "!!!")


class TestSystemFields:
    def test_five_system_fields(self):
        names = [f.api_name for f in SYSTEM_FIELDS]
        assert names == ["Id", "CreatedDate", "LastModifiedDate", "CreatedById", "LastModifiedById"]

    def test_system_fields_are_read_only(self):
        assert all(f.read_only and not f.custom for f in SYSTEM_FIELDS)

    def test_is_system_field(self):
        assert is_system_field("Id") is True
        assert is_system_field("id") is False


class TestBuildField:
    """Tests for build_field defaults and constraint checks."""

    def test_text_defaults(self):
        field = build_field({"apiName": "Deal__code", "label": "Code", "type": "Text"}, lambda: "f1")
        assert field.id == "f1"
        assert field.max_length == 255

    def test_long_text_default(self):
        field = build_field({"apiName": "Deal__notes", "label": "Notes", "type": "LongTextArea"})
        assert field.max_length == 32768

    def test_numeric_defaults(self):
        field = build_field({"apiName": "Deal__amount", "label": "Amount", "type": "Currency"})
        assert field.precision == 18
        assert field.scale == 2

    def test_existing_id_kept(self):
        field = build_field({"id": "keep", "apiName": "Deal__code", "label": "Code"}, lambda: "new")
        assert field.id == "keep"

    def test_spec_not_mutated(self):
        spec = FieldDef(api_name="Deal__code", label="Code")
        field = build_field(spec, lambda: "f1")
        assert spec.id == ""
        assert spec.max_length is None
        assert field is not spec

    def test_snake_case_keys(self):
        field = build_field(
            {"api_name": "Deal__stage", "label": "Stage", "type": "Picklist", "picklist_values": ["A"]}
        )
        assert field.picklist_values == ["A"]

    def test_malformed_spec(self):
        with pytest.raises(InvalidSchemaFormatError) as exc_info:
            build_field({"label": "No API name"})
        assert exc_info.value.errors

    def test_bad_type(self):
        with pytest.raises(InvalidSchemaFormatError):
            build_field({"apiName": "Deal__x", "label": "X", "type": "Blob"})

    def test_bad_api_name(self):
        with pytest.raises(InvalidApiNameError):
            build_field({"apiName": "Deal x", "label": "X"})

    def test_picklist_requires_values(self):
        with pytest.raises(MissingRequiredConstraintError) as exc_info:
            build_field({"apiName": "Deal__stage", "label": "Stage", "type": "Picklist"})
        assert exc_info.value.kind == "picklistValues"

    def test_lookup_requires_target(self):
        with pytest.raises(MissingRequiredConstraintError) as exc_info:
            build_field({"apiName": "Deal__account", "label": "Account", "type": "Lookup"})
        assert exc_info.value.kind == "lookupObject"

    def test_formula_requires_expression(self):
        with pytest.raises(MissingRequiredConstraintError):
            build_field({"apiName": "Deal__f", "label": "F", "type": "Formula", "formulaExpr": "  "})

    def test_auto_number_valid(self):
        field = build_field(
            {
                "apiName": "Deal__number",
                "label": "Number",
                "type": "AutoNumber",
                "autoNumber": {"displayFormat": "D-{0000}", "startingNumber": 1},
            }
        )
        assert field.auto_number.display_format == "D-{0000}"

    def test_auto_number_needs_placeholder(self):
        with pytest.raises(InvalidConstraintError):
            build_field(
                {
                    "apiName": "Deal__number",
                    "label": "Number",
                    "type": "AutoNumber",
                    "autoNumber": {"displayFormat": "D-", "startingNumber": 1},
                }
            )

    def test_auto_number_needs_start(self):
        with pytest.raises(MissingRequiredConstraintError) as exc_info:
            build_field(
                {
                    "apiName": "Deal__number",
                    "label": "Number",
                    "type": "AutoNumber",
                    "autoNumber": {"displayFormat": "D-{000}"},
                }
            )
        assert exc_info.value.kind == "autoNumber.startingNumber"

    def test_text_length_ceiling(self):
        with pytest.raises(InvalidConstraintError, match="exceeds 255"):
            build_field({"apiName": "Deal__code", "label": "Code", "type": "Text", "maxLength": 300})

    def test_min_greater_than_max(self):
        with pytest.raises(InvalidConstraintError):
            build_field({"apiName": "Deal__n", "label": "N", "type": "Number", "min": 5, "max": 1})

    def test_scale_greater_than_precision(self):
        with pytest.raises(InvalidConstraintError):
            build_field({"apiName": "Deal__n", "label": "N", "type": "Number", "scale": 20})

    def test_dependent_values_need_controlling_field(self):
        with pytest.raises(MissingRequiredConstraintError) as exc_info:
            build_field(
                {
                    "apiName": "Deal__reason",
                    "label": "Reason",
                    "type": "Picklist",
                    "picklistValues": ["Price"],
                    "dependentValues": {"Closed Lost": ["Price"]},
                }
            )
        assert exc_info.value.kind == "controllingField"

    def test_field_cannot_control_itself(self):
        with pytest.raises(InvalidConstraintError):
            build_field(
                {
                    "apiName": "Deal__reason",
                    "label": "Reason",
                    "type": "Picklist",
                    "picklistValues": ["Price"],
                    "controllingField": "Deal__reason",
                }
            )


class TestDependentPicklists:
    def test_allowed_values_filtered(self):
        field = FieldDef(
            api_name="Deal__reason",
            label="Reason",
            type="Picklist",
            picklist_values=["Price", "Timing", "Other"],
            controlling_field="Deal__stage",
            dependent_values={"Closed Lost": ["Price", "Other"]},
        )
        assert allowed_dependent_values(field, "Closed Lost") == ["Price", "Other"]
        assert allowed_dependent_values(field, "Prospecting") == []

    def test_independent_picklist(self):
        field = FieldDef(api_name="Deal__x", label="X", type="Picklist", picklist_values=["A", "B"])
        assert allowed_dependent_values(field, "anything") == ["A", "B"]


class TestFieldTypeCategory:
    @pytest.mark.parametrize(
        ("field_type", "category"),
        [
            ("AutoNumber", "Advanced"),
            ("Lookup", "Relationship"),
            ("TextArea", "Text"),
            ("Currency", "Number"),
            ("Date", "Date/Time"),
            ("MultiPicklist", "Selection"),
            ("Checkbox", "Other"),
        ],
    )
    def test_categories(self, field_type, category):
        assert field_type_category(field_type) == category
