"""
Local company mirror of Teamleader companies.
"""

from datetime import datetime

from pydantic import BaseModel, Field

CustomFieldValue = str | int | float | bool | None


class CompanyAddress(BaseModel):
    """Primary postal address of a company."""

    type: str | None = None
    line_1: str | None = None
    line_2: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str | None = None


class ContactInfo(BaseModel):
    """One email or phone entry, typed like `email-primary` or `phone-work`."""

    type: str
    value: str


class Company(BaseModel):
    """
    Company as stored locally.

    `external_id` is the Teamleader id and is unique in the store. `id`,
    `created_at` and `updated_at` are assigned by the store and survive
    re-syncs; everything else is overwritten by each sync.
    """

    id: int | None = None
    external_id: str
    name: str | None = None
    website: str | None = None
    vat_number: str | None = None
    business_type: str | None = None
    status: str | None = None
    primary_address: CompanyAddress | None = None
    contact_info: list[ContactInfo] = Field(default_factory=list)
    custom_fields: dict[str, CustomFieldValue] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    synced_at: datetime | None = None
