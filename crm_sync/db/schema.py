"""
Table definitions for the token store and the company mirror.

`ensure_schema()` runs on startup and is safe to repeat.
"""

from crm_sync.db.pool import db_pool
from crm_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS oauth_tokens (
        provider VARCHAR(64) PRIMARY KEY,
        access_token BYTEA NOT NULL,
        refresh_token BYTEA,
        token_type VARCHAR(32) NOT NULL DEFAULT 'Bearer',
        scope TEXT,
        access_token_expires_at TIMESTAMPTZ,
        last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        last_used TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS teamleader_companies (
        id BIGSERIAL PRIMARY KEY,
        external_id VARCHAR(255) NOT NULL UNIQUE,
        name TEXT,
        website TEXT,
        vat_number VARCHAR(64),
        business_type TEXT,
        status VARCHAR(64),
        primary_address JSONB,
        contact_info JSONB NOT NULL DEFAULT '[]'::jsonb,
        custom_fields JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        synced_at TIMESTAMPTZ
    )
    """,
)


async def ensure_schema() -> None:
    async with db_pool.transaction() as conn:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
    logger.info("Database schema ensured", tables=["oauth_tokens", "teamleader_companies"])
