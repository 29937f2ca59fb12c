"""
Maps Teamleader company JSON (`companies.info` data) onto local Company models.

Every field is optional and read individually. Absent fields leave the local
value untouched and malformed list entries are skipped, so partial records
still map.
"""

import json
from datetime import UTC, datetime
from typing import Any

from crm_sync.models.domain.company_domain import (
    Company,
    CompanyAddress,
    ContactInfo,
    CustomFieldValue,
)

ADDRESS_FIELDS = ("line_1", "line_2", "postal_code", "city", "country")


class CompanyMappingError(ValueError):
    """Raised when a record cannot be identified (no usable `id`)."""


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def extract_external_id(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    external_id = data.get("id")
    if external_id in (None, ""):
        return None
    return _text(external_id)


def coerce_custom_value(value: Any) -> CustomFieldValue:
    """Keep scalars as-is, serialize anything structured to JSON text."""
    if value is None or isinstance(value, str | bool | int | float):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def extract_custom_fields(data: dict) -> dict[str, CustomFieldValue]:
    """
    Flatten custom fields from either API shape.

    Array shape: `[{"definition": {"id": ...}, "value": ...}, ...]`.
    Object shape: `{"<definition id>": <value>, ...}`.
    The company `status` is added under the `status` key when present.
    """
    fields: dict[str, CustomFieldValue] = {}
    raw = data.get("custom_fields")

    if isinstance(raw, list):
        for field in raw:
            if not isinstance(field, dict) or "value" not in field:
                continue
            definition = field.get("definition")
            if not isinstance(definition, dict) or definition.get("id") is None:
                continue
            fields[_text(definition["id"])] = coerce_custom_value(field["value"])
    elif isinstance(raw, dict):
        for field_id, value in raw.items():
            fields[_text(field_id)] = coerce_custom_value(value)

    if data.get("status") is not None:
        fields["status"] = _text(data["status"])

    return fields


def extract_contact_info(data: dict) -> list[ContactInfo]:
    contacts: list[ContactInfo] = []

    emails = data.get("emails")
    if isinstance(emails, list):
        for email in emails:
            if isinstance(email, dict) and email.get("type") and email.get("email"):
                contacts.append(
                    ContactInfo(type=f"email-{email['type']}", value=_text(email["email"]))
                )

    telephones = data.get("telephones")
    if isinstance(telephones, list):
        for phone in telephones:
            if isinstance(phone, dict) and phone.get("type") and phone.get("number"):
                contacts.append(
                    ContactInfo(type=f"phone-{phone['type']}", value=_text(phone["number"]))
                )

    return contacts


def extract_primary_address(data: dict) -> CompanyAddress | None:
    """Entry typed `primary`, else the first usable entry."""
    addresses = data.get("addresses")
    if not isinstance(addresses, list):
        return None

    candidates = [entry for entry in addresses if isinstance(entry, dict)]
    if not candidates:
        return None

    chosen = next((entry for entry in candidates if entry.get("type") == "primary"), candidates[0])

    # Teamleader nests the postal fields under "address"; flat entries are accepted too
    fields = chosen.get("address") if isinstance(chosen.get("address"), dict) else chosen
    return CompanyAddress(
        type=_text(chosen.get("type")),
        **{name: _text(fields.get(name)) for name in ADDRESS_FIELDS},
    )


def extract_business_type(data: dict) -> str | None:
    business_type = data.get("business_type")
    if isinstance(business_type, dict):
        for key in ("name", "type", "id"):
            if business_type.get(key):
                return _text(business_type[key])
        return None
    return _text(business_type)


def map_company(
    data: dict, existing: Company | None = None, synced_at: datetime | None = None
) -> Company:
    """
    Build the Company to save for a Teamleader record.

    Args:
        data: `data` object of a companies.info response
        existing: Stored company with the same external id, if any
        synced_at: Sync timestamp (defaults to now)

    Returns:
        Company: New model, or a copy of `existing` with the present fields overwritten

    Raises:
        CompanyMappingError: If the record has no `id`
    """
    external_id = extract_external_id(data)
    if not external_id:
        raise CompanyMappingError("Company record has no id")

    company = existing.model_copy(deep=True) if existing else Company(external_id=external_id)
    company.external_id = external_id

    for field in ("name", "website", "vat_number"):
        if field in data:
            setattr(company, field, _text(data[field]))

    if "business_type" in data:
        company.business_type = extract_business_type(data)

    if "status" in data:
        company.status = _text(data["status"])

    address = extract_primary_address(data)
    if address:
        company.primary_address = address

    contacts = extract_contact_info(data)
    if contacts:
        company.contact_info = contacts

    custom_fields = extract_custom_fields(data)
    if custom_fields:
        company.custom_fields = custom_fields

    company.synced_at = synced_at or datetime.now(UTC)
    return company
