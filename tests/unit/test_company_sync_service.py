import asyncio

import pytest

from crm_sync.services.company_sync_service import CompanySyncService
from crm_sync.services.sync_status_store import SyncStatusStore
from conftest import (
    FakeCompanyClient,
    FakeCompanyStore,
    FakeTokenManager,
    company_record,
)


def build_service(
    client: FakeCompanyClient,
    store: FakeCompanyStore | None = None,
    token_valid: bool = True,
    role_hook=None,
    page_size: int = 50,
) -> CompanySyncService:
    return CompanySyncService(
        company_client=client,
        company_store=store or FakeCompanyStore(),
        token_manager=FakeTokenManager(valid=token_valid),
        status_store=SyncStatusStore(),
        role_hook=role_hook,
        page_size=page_size,
        detail_delay_seconds=0,
        probe_connection=True,
    )


def records(count: int, start: int = 1) -> list[dict]:
    return [company_record(f"c-{i}") for i in range(start, start + count)]


@pytest.mark.asyncio
async def test_not_authorized_makes_no_remote_calls():
    client = FakeCompanyClient(records(3))
    service = build_service(client, token_valid=False)

    summary = await service.sync_all_companies()

    assert summary.success is False
    assert summary.message == "not authorized"
    assert client.probe_calls == 0
    assert client.list_calls == []


@pytest.mark.asyncio
async def test_failed_connection_probe_stops_before_paging():
    client = FakeCompanyClient(records(3), probe_error=True)
    service = build_service(client)

    summary = await service.sync_all_companies()

    assert summary.success is False
    assert summary.message.startswith("connection test failed:")
    assert client.list_calls == []


@pytest.mark.asyncio
async def test_pages_until_a_short_page():
    client = FakeCompanyClient(records(62))
    store = FakeCompanyStore()
    service = build_service(client, store)

    summary = await service.sync_all_companies()

    assert client.list_calls == [(1, 50), (2, 50)]
    assert summary.success is True
    assert summary.created == 62
    assert summary.updated == 0
    assert summary.total_processed == 62
    assert len(store.companies) == 62


@pytest.mark.asyncio
async def test_exact_page_multiple_requests_one_empty_page():
    client = FakeCompanyClient(records(4))
    service = build_service(client, page_size=2)

    summary = await service.sync_all_companies()

    assert client.list_calls == [(1, 2), (2, 2), (3, 2)]
    assert summary.total_processed == 4


@pytest.mark.asyncio
async def test_detail_failure_is_isolated():
    client = FakeCompanyClient(records(62), failing_details={"c-30"})
    store = FakeCompanyStore()
    service = build_service(client, store)

    summary = await service.sync_all_companies()

    assert summary.success is False
    assert summary.errors == 1
    assert summary.total_processed == 61
    assert summary.created == 61
    assert "c-30" not in store.companies
    assert "c-31" in store.companies


@pytest.mark.asyncio
async def test_store_failure_is_isolated():
    client = FakeCompanyClient(records(3))
    store = FakeCompanyStore(fail_on={"c-2"})
    service = build_service(client, store)

    summary = await service.sync_all_companies()

    assert summary.errors == 1
    assert summary.total_processed == 2
    assert sorted(store.companies) == ["c-1", "c-3"]


@pytest.mark.asyncio
async def test_record_without_id_counts_as_error():
    client = FakeCompanyClient([{"name": "No id"}, company_record("c-1")])
    service = build_service(client)

    summary = await service.sync_all_companies()

    assert summary.errors == 1
    assert summary.created == 1
    assert client.detail_calls == ["c-1"]


@pytest.mark.asyncio
async def test_list_error_ends_paging_with_one_error():
    client = FakeCompanyClient(records(60), list_error_on_page=2)
    service = build_service(client)

    summary = await service.sync_all_companies()

    assert client.list_calls == [(1, 50), (2, 50)]
    assert summary.errors == 1
    assert summary.total_processed == 50
    assert summary.success is False


@pytest.mark.asyncio
async def test_second_sync_updates_instead_of_creating():
    client = FakeCompanyClient(records(3))
    store = FakeCompanyStore()
    service = build_service(client, store)

    await service.sync_all_companies()
    ids_before = {key: company.id for key, company in store.companies.items()}
    summary = await service.sync_all_companies()

    assert summary.created == 0
    assert summary.updated == 3
    assert {key: company.id for key, company in store.companies.items()} == ids_before
    assert len(store.companies) == 3


@pytest.mark.asyncio
async def test_unexpected_exception_is_reported_not_raised():
    class ExplodingClient(FakeCompanyClient):
        async def list_companies(self, page=1, page_size=20):
            raise RuntimeError("boom")

    service = build_service(ExplodingClient(records(1)))

    summary = await service.sync_all_companies()

    assert summary.success is False
    assert summary.message == "boom"
    assert summary.error_type == "RuntimeError"
    assert service.get_last_sync_status() is summary
    assert service.is_running is False


@pytest.mark.asyncio
async def test_role_hook_runs_once_after_clean_sync():
    calls = {"count": 0}

    async def hook():
        calls["count"] += 1

    service = build_service(FakeCompanyClient(records(3)), role_hook=hook)

    summary = await service.sync_all_companies()

    assert summary.success is True
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_role_hook_skipped_when_run_has_errors():
    calls = {"count": 0}

    def hook():
        calls["count"] += 1

    service = build_service(
        FakeCompanyClient(records(3), failing_details={"c-1"}), role_hook=hook
    )

    await service.sync_all_companies()

    assert calls["count"] == 0


@pytest.mark.asyncio
async def test_role_hook_failure_marks_run_unsuccessful():
    def hook():
        raise ValueError("roles unavailable")

    service = build_service(FakeCompanyClient(records(2)), role_hook=hook)

    summary = await service.sync_all_companies()

    assert summary.success is False
    assert summary.errors == 0
    assert summary.role_recalculation_error == "roles unavailable"


@pytest.mark.asyncio
async def test_refresh_custom_fields_rewrites_stored_companies():
    store = FakeCompanyStore()
    client = FakeCompanyClient(records(2))
    service = build_service(client, store)
    await service.sync_all_companies()

    client.details["c-1"]["custom_fields"] = {"cf-tier": "gold"}
    client.details["c-2"]["custom_fields"] = [{"definition": {"id": "cf-tier"}, "value": "silver"}]
    client.details["c-2"]["status"] = "inactive"

    hook_calls = {"count": 0}
    service.role_hook = lambda: hook_calls.__setitem__("count", hook_calls["count"] + 1)

    summary = await service.refresh_custom_fields()

    assert summary.operation == "custom_fields_refresh"
    assert summary.success is True
    assert summary.updated == 2
    assert summary.total_processed == 2
    assert store.companies["c-1"].custom_fields == {"cf-tier": "gold"}
    assert store.companies["c-2"].custom_fields == {"cf-tier": "silver", "status": "inactive"}
    assert store.companies["c-2"].status == "inactive"
    assert hook_calls["count"] == 1


@pytest.mark.asyncio
async def test_refresh_custom_fields_isolates_detail_failures():
    store = FakeCompanyStore()
    client = FakeCompanyClient(records(3))
    service = build_service(client, store)
    await service.sync_all_companies()

    client.failing_details = {"c-2"}
    summary = await service.refresh_custom_fields()

    assert summary.errors == 1
    assert summary.updated == 2
    assert summary.success is False


@pytest.mark.asyncio
async def test_overlapping_run_is_rejected_and_does_not_replace_status():
    release = asyncio.Event()

    class SlowClient(FakeCompanyClient):
        async def list_companies(self, page=1, page_size=20):
            await release.wait()
            return await super().list_companies(page, page_size)

    service = build_service(SlowClient(records(1)))

    first = service.start_full_sync()
    await asyncio.sleep(0)
    assert service.is_running is True

    second = await service.sync_all_companies()
    assert second.success is False
    assert second.message == "sync already in progress"
    assert service.get_last_sync_status() is None

    release.set()
    first_summary = await first

    assert first_summary.success is True
    assert service.get_last_sync_status() is first_summary
    assert service.is_running is False


@pytest.mark.asyncio
async def test_start_custom_fields_refresh_records_last_status():
    service = build_service(FakeCompanyClient())

    summary = await service.start_custom_fields_refresh()

    assert summary.operation == "custom_fields_refresh"
    assert service.get_last_sync_status() is summary


@pytest.mark.asyncio
async def test_back_to_back_starts_schedule_only_one_run():
    client = FakeCompanyClient(records(2))
    service = build_service(client)

    first = service.start_full_sync()
    second = service.start_full_sync()
    refresh = service.start_custom_fields_refresh()

    assert first is not None
    assert service.is_running is True
    assert second is None
    assert refresh is None

    summary = await first
    assert summary.success is True
    assert client.probe_calls == 1
    assert service.is_running is False
