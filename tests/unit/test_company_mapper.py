import json

import pytest

from crm_sync.models.domain.company_domain import Company, ContactInfo
from crm_sync.services.teamleader.company_mapper import (
    CompanyMappingError,
    coerce_custom_value,
    extract_custom_fields,
    map_company,
)

FULL_RECORD = {
    "id": "c-1",
    "name": "Acme NV",
    "website": "https://acme.example",
    "vat_number": "BE0123456789",
    "business_type": {"id": "bt-1", "name": "NV"},
    "status": "active",
    "addresses": [
        {"type": "invoicing", "address": {"line_1": "Billing 1", "city": "Ghent"}},
        {
            "type": "primary",
            "address": {
                "line_1": "Main Street 1",
                "postal_code": "9000",
                "city": "Ghent",
                "country": "BE",
            },
        },
    ],
    "emails": [{"type": "primary", "email": "info@acme.example"}, {"type": "invoicing"}],
    "telephones": [{"type": "phone", "number": "+32 9 123 45 67"}],
    "custom_fields": [
        {"definition": {"id": "cf-access"}, "value": True},
        {"definition": {"id": "cf-seats"}, "value": 12},
        {"definition": {"type": "missing-id"}, "value": "skipped"},
    ],
}


def test_maps_all_present_fields():
    company = map_company(FULL_RECORD)

    assert company.external_id == "c-1"
    assert company.name == "Acme NV"
    assert company.website == "https://acme.example"
    assert company.vat_number == "BE0123456789"
    assert company.business_type == "NV"
    assert company.status == "active"
    assert company.primary_address.line_1 == "Main Street 1"
    assert company.primary_address.postal_code == "9000"
    assert company.contact_info == [
        ContactInfo(type="email-primary", value="info@acme.example"),
        ContactInfo(type="phone-phone", value="+32 9 123 45 67"),
    ]
    assert company.custom_fields == {"cf-access": True, "cf-seats": 12, "status": "active"}
    assert company.synced_at is not None


def test_first_address_used_when_none_is_primary():
    company = map_company(
        {"id": "c-2", "addresses": [{"type": "delivery", "line_1": "Dock 4", "city": "Antwerp"}]}
    )

    assert company.primary_address.type == "delivery"
    assert company.primary_address.line_1 == "Dock 4"
    assert company.primary_address.city == "Antwerp"


def test_minimal_record_maps_without_errors():
    company = map_company({"id": 42})

    assert company.external_id == "42"
    assert company.name is None
    assert company.primary_address is None
    assert company.contact_info == []
    assert company.custom_fields == {}


def test_missing_id_raises_mapping_error():
    with pytest.raises(CompanyMappingError):
        map_company({"name": "Nameless"})


def test_update_keeps_identity_and_untouched_fields():
    existing = Company(id=7, external_id="c-1", name="Old", website="https://old.example")

    company = map_company({"id": "c-1", "name": "New"}, existing=existing)

    assert company.id == 7
    assert company.name == "New"
    assert company.website == "https://old.example"
    assert existing.name == "Old"


def test_custom_fields_object_format():
    fields = extract_custom_fields({"custom_fields": {"cf-1": "gold", "cf-2": None}})

    assert fields == {"cf-1": "gold", "cf-2": None}


def test_structured_custom_values_are_serialized():
    assert coerce_custom_value({"b": 1, "a": [1, 2]}) == json.dumps({"a": [1, 2], "b": 1})
    assert coerce_custom_value(3.5) == 3.5
    assert coerce_custom_value(None) is None


def test_business_type_plain_string():
    assert map_company({"id": "c-3", "business_type": "BV"}).business_type == "BV"
