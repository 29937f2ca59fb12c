"""
Postgres repository for the local company mirror (`teamleader_companies`).
"""

from psycopg.types.json import Jsonb

from crm_sync.db.helpers import fetch_all, fetch_one, with_db_retry
from crm_sync.infrastructure.observability.logging import get_logger
from crm_sync.models.domain.company_domain import Company, CompanyAddress, ContactInfo

logger = get_logger(__name__)

_COLUMNS = """
    id, external_id, name, website, vat_number, business_type, status,
    primary_address, contact_info, custom_fields,
    created_at, updated_at, synced_at
"""


def _row_to_company(row: dict) -> Company:
    address = row.get("primary_address")
    return Company(
        id=row["id"],
        external_id=row["external_id"],
        name=row.get("name"),
        website=row.get("website"),
        vat_number=row.get("vat_number"),
        business_type=row.get("business_type"),
        status=row.get("status"),
        primary_address=CompanyAddress(**address) if address else None,
        contact_info=[ContactInfo(**item) for item in row.get("contact_info") or []],
        custom_fields=row.get("custom_fields") or {},
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        synced_at=row.get("synced_at"),
    )


class CompanyRepository:
    """Find-or-create persistence keyed on the Teamleader id."""

    @with_db_retry(max_retries=2)
    async def find_by_external_id(self, external_id: str) -> Company | None:
        query = f"SELECT {_COLUMNS} FROM teamleader_companies WHERE external_id = %s"
        row = await fetch_one(query, (external_id,))
        return _row_to_company(row) if row else None

    @with_db_retry(max_retries=2)
    async def find_all(self) -> list[Company]:
        query = f"SELECT {_COLUMNS} FROM teamleader_companies ORDER BY id"
        rows = await fetch_all(query)
        return [_row_to_company(row) for row in rows]

    @with_db_retry(max_retries=2)
    async def save(self, company: Company) -> Company:
        """
        Upsert a company by external id.

        `id` and `created_at` of an existing row are kept; all synced
        columns are overwritten.
        """
        query = f"""
            INSERT INTO teamleader_companies (
                external_id, name, website, vat_number, business_type, status,
                primary_address, contact_info, custom_fields,
                created_at, updated_at, synced_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW(), %s
            )
            ON CONFLICT (external_id)
            DO UPDATE SET
                name = EXCLUDED.name,
                website = EXCLUDED.website,
                vat_number = EXCLUDED.vat_number,
                business_type = EXCLUDED.business_type,
                status = EXCLUDED.status,
                primary_address = EXCLUDED.primary_address,
                contact_info = EXCLUDED.contact_info,
                custom_fields = EXCLUDED.custom_fields,
                updated_at = NOW(),
                synced_at = EXCLUDED.synced_at
            RETURNING {_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                company.external_id,
                company.name,
                company.website,
                company.vat_number,
                company.business_type,
                company.status,
                Jsonb(company.primary_address.model_dump()) if company.primary_address else None,
                Jsonb([item.model_dump() for item in company.contact_info]),
                Jsonb(company.custom_fields),
                company.synced_at,
            ),
        )

        saved = _row_to_company(row)
        logger.debug("Company upserted", company_id=saved.id, external_id=saved.external_id)
        return saved
