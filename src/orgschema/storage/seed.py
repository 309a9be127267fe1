"""Sample schema used the first time a repository loads with nothing persisted."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from orgschema.core.compat import new_id, utc_now
from orgschema.core.types import (
    ObjectDef,
    OrgSchema,
    RecordType,
    ValidationRule,
)
from orgschema.layout.composer import create_default_layout
from orgschema.schema.fields import build_field

MASTER_RECORD_TYPE = "Master"

_ACCOUNT_FIELDS: list[dict[str, Any]] = [
    {"apiName": "Account__name", "label": "Account Name", "type": "Text", "required": True},
    {
        "apiName": "Account__type",
        "label": "Type",
        "type": "Picklist",
        "picklistValues": ["Customer", "Partner", "Prospect"],
    },
    {
        "apiName": "Account__industry",
        "label": "Industry",
        "type": "Picklist",
        "picklistValues": ["Construction", "Real Estate", "Manufacturing", "Other"],
    },
    {"apiName": "Account__annualRevenue", "label": "Annual Revenue", "type": "Currency", "min": 0},
    {"apiName": "Account__website", "label": "Website", "type": "URL"},
    {"apiName": "Account__phone", "label": "Phone", "type": "Phone"},
]

_CONTACT_FIELDS: list[dict[str, Any]] = [
    {"apiName": "Contact__firstName", "label": "First Name", "type": "Text", "maxLength": 80},
    {
        "apiName": "Contact__lastName",
        "label": "Last Name",
        "type": "Text",
        "required": True,
        "maxLength": 80,
    },
    {"apiName": "Contact__email", "label": "Email", "type": "Email", "unique": True},
    {"apiName": "Contact__phone", "label": "Phone", "type": "Phone"},
    {
        "apiName": "Contact__account",
        "label": "Account",
        "type": "Lookup",
        "lookupObject": "Account",
        "relationshipName": "Contacts",
    },
]

_PROPERTY_FIELDS: list[dict[str, Any]] = [
    {"apiName": "Property__address", "label": "Address", "type": "Address", "required": True},
    {"apiName": "Property__city", "label": "City", "type": "Text", "required": True, "maxLength": 100},
    {"apiName": "Property__state", "label": "State/Province", "type": "Text", "maxLength": 50},
    {"apiName": "Property__zipCode", "label": "Zip/Postal Code", "type": "Text", "maxLength": 20},
    {
        "apiName": "Property__propertyNumber",
        "label": "Property Number",
        "type": "AutoNumber",
        "readOnly": True,
        "autoNumber": {"displayFormat": "P-{0000}", "startingNumber": 1},
    },
    {
        "apiName": "Property__status",
        "label": "Status",
        "type": "Picklist",
        "required": True,
        "picklistValues": ["Active", "Inactive"],
        "defaultValue": "Active",
    },
    {
        "apiName": "Property__account",
        "label": "Account",
        "type": "Lookup",
        "lookupObject": "Account",
        "relationshipName": "Properties",
    },
    {
        "apiName": "Property__contact",
        "label": "Contact",
        "type": "Lookup",
        "lookupObject": "Contact",
        "relationshipName": "Properties",
    },
]

_DEAL_FIELDS: list[dict[str, Any]] = [
    {"apiName": "Deal__name", "label": "Deal Name", "type": "Text", "required": True},
    {
        "apiName": "Deal__stage",
        "label": "Stage",
        "type": "Picklist",
        "required": True,
        "picklistValues": ["Prospecting", "Negotiation", "Closed Won", "Closed Lost"],
        "defaultValue": "Prospecting",
    },
    {"apiName": "Deal__amount", "label": "Amount", "type": "Currency", "min": 0},
    {"apiName": "Deal__closeDate", "label": "Close Date", "type": "Date"},
    {
        "apiName": "Deal__lossReason",
        "label": "Loss Reason",
        "type": "TextArea",
        "visibleIf": [{"left": "Deal__stage", "op": "==", "right": "Closed Lost"}],
    },
    {
        "apiName": "Deal__account",
        "label": "Account",
        "type": "Lookup",
        "lookupObject": "Account",
        "relationshipName": "Deals",
    },
    {
        "apiName": "Deal__property",
        "label": "Property",
        "type": "Lookup",
        "lookupObject": "Property",
        "relationshipName": "Deals",
    },
]


def _build_object(
    api_name: str,
    label: str,
    plural_label: str,
    description: str,
    field_specs: list[dict[str, Any]],
    id_factory: Callable[[], str],
    now: datetime,
) -> ObjectDef:
    fields = [build_field({**spec, "custom": True}, id_factory) for spec in field_specs]
    layout = create_default_layout(
        [f.api_name for f in fields], name=f"{label} Layout", id_factory=id_factory
    )
    record_type = RecordType(
        id=id_factory(),
        name=MASTER_RECORD_TYPE,
        description=f"Default record type for {label}",
        default=True,
        page_layout_id=layout.id,
    )
    return ObjectDef(
        id=id_factory(),
        api_name=api_name,
        label=label,
        plural_label=plural_label,
        description=description,
        fields=fields,
        record_types=[record_type],
        page_layouts=[layout],
        default_record_type_id=record_type.id,
        created_at=now,
        updated_at=now,
    )


def create_sample_schema(
    id_factory: Callable[[], str] = new_id,
    clock: Callable[[], datetime] = utc_now,
) -> OrgSchema:
    """Build the default Account/Contact/Property/Deal schema at version 0."""
    now = clock()
    account = _build_object(
        "Account", "Account", "Accounts", "Companies and organizations", _ACCOUNT_FIELDS, id_factory, now
    )
    contact = _build_object(
        "Contact", "Contact", "Contacts", "People you work with", _CONTACT_FIELDS, id_factory, now
    )
    prop = _build_object(
        "Property",
        "Property",
        "Properties",
        "Physical locations and real estate properties",
        _PROPERTY_FIELDS,
        id_factory,
        now,
    )
    deal = _build_object(
        "Deal", "Deal", "Deals", "Sales opportunities", _DEAL_FIELDS, id_factory, now
    )
    deal = deal.model_copy(
        update={
            "validation_rules": [
                ValidationRule(
                    id=id_factory(),
                    name="Amount_Required_When_Won",
                    error_message="Amount is required when a deal is Closed Won.",
                    condition="Deal__stage == 'Closed Won' && ISBLANK(Deal__amount)",
                ),
            ]
        }
    )
    return OrgSchema(version=0, objects=[account, contact, prop, deal], updated_at=now)
