"""
Tests del contrato HTTP de los triggers: webhook de Airtable y endpoints de sync.
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.v1.dependencies.use_case_deps import get_sync_engine, get_sync_use_cases
from app.application.dto.sync_dto import (
    BudgetIndexResponseDTO,
    LinkResultDTO,
    SyncErrorDTO,
    SyncRunResponseDTO,
    WebhookResponseDTO,
)
from app.core.config import settings
from app.infrastructure.external.airtable_sync.sync_service import SyncEngine
from app.infrastructure.external.airtable_sync.table_mappings import get_table_sync_configs
from app.shared.constants.sync_constants import TableKind
from app.shared.exceptions.sync import SyncFatalException

WEBHOOK_URL = "/api/v1/webhooks/airtable"
EVENT = {
    "eventType": "recordUpdated",
    "tableKind": "properties",
    "externalId": "recP1",
    "changedFields": ["Reno budget"],
    "timestamp": "2025-03-01T09:05:00Z",
}


@pytest.fixture
def mock_use_cases() -> AsyncMock:
    uc = AsyncMock()
    uc.handle_webhook = AsyncMock(return_value=WebhookResponseDTO(
        success=True, message="Webhook processed successfully", updates=["Updated recP1: budget_amount"]
    ))
    return uc


@pytest.fixture
def app_with_mock(mock_use_cases: AsyncMock):
    """App FastAPI con los casos de uso mockeados via dependency_overrides."""
    from main import create_application
    app = create_application()
    app.dependency_overrides[get_sync_use_cases] = lambda: mock_use_cases
    yield app
    app.dependency_overrides.clear()


async def _post(app, url: str, json: dict, token: str | None = None):
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post(url, json=json, headers=headers)


@pytest.mark.asyncio
async def test_webhook_success(app_with_mock, mock_use_cases: AsyncMock) -> None:
    response = await _post(app_with_mock, WEBHOOK_URL, EVENT)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Webhook processed successfully",
        "updates": ["Updated recP1: budget_amount"],
    }
    dto = mock_use_cases.handle_webhook.call_args.args[0]
    assert dto.table_kind is TableKind.PROPERTIES
    assert dto.changed_fields == ["Reno budget"]


@pytest.mark.asyncio
async def test_webhook_rejects_bad_bearer(app_with_mock, mock_use_cases, monkeypatch) -> None:
    monkeypatch.setattr(settings, "AIRTABLE_WEBHOOK_SECRET", "s3cret")

    missing = await _post(app_with_mock, WEBHOOK_URL, EVENT)
    wrong = await _post(app_with_mock, WEBHOOK_URL, EVENT, token="nope")
    right = await _post(app_with_mock, WEBHOOK_URL, EVENT, token="s3cret")

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.json()["error"] == "UNAUTHORIZED"
    assert right.status_code == 200
    assert mock_use_cases.handle_webhook.await_count == 1


@pytest.mark.asyncio
async def test_webhook_processing_failure_is_500(app_with_mock, mock_use_cases) -> None:
    mock_use_cases.handle_webhook.side_effect = RuntimeError("store caído")

    response = await _post(app_with_mock, WEBHOOK_URL, EVENT)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "store caído"}


@pytest.mark.asyncio
async def test_webhook_rejects_unknown_table_kind(app_with_mock) -> None:
    response = await _post(app_with_mock, WEBHOOK_URL, {**EVENT, "tableKind": "invoices"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_webhook_liveness(app_with_mock) -> None:
    transport = ASGITransport(app=app_with_mock)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(WEBHOOK_URL)

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


@pytest.mark.asyncio
async def test_full_sync_returns_camel_case_run(app_with_mock, mock_use_cases) -> None:
    mock_use_cases.run_full_sync = AsyncMock(return_value=SyncRunResponseDTO(
        table_kind=TableKind.PROJECTS,
        state="done",
        created=2,
        orphaned=["recOld"],
        errors=[SyncErrorDTO(external_id="recX", reason="name: falta el field 'Project Name'")],
    ))

    response = await _post(app_with_mock, "/api/v1/sync/full", {"tableKind": "projects"})

    assert response.status_code == 200
    body = response.json()
    assert body["tableKind"] == "projects"
    assert body["orphaned"] == ["recOld"]
    assert body["errors"] == [{"externalId": "recX", "reason": "name: falta el field 'Project Name'"}]
    mock_use_cases.run_full_sync.assert_awaited_once_with(TableKind.PROJECTS)


@pytest.mark.asyncio
async def test_fatal_run_is_503(app_with_mock, mock_use_cases) -> None:
    mock_use_cases.run_full_sync = AsyncMock(side_effect=SyncFatalException("Airtable: timeout"))

    response = await _post(app_with_mock, "/api/v1/sync/full", {"tableKind": "projects"})

    assert response.status_code == 503
    assert response.json()["error"] == "SYNC_FATAL"


@pytest.mark.asyncio
async def test_sync_triggers_require_cron_secret(app_with_mock, mock_use_cases, monkeypatch) -> None:
    monkeypatch.setattr(settings, "CRON_SECRET", "cron-token")
    mock_use_cases.link = AsyncMock(return_value=LinkResultDTO(linked=3))

    denied = await _post(app_with_mock, "/api/v1/sync/link", {})
    allowed = await _post(app_with_mock, "/api/v1/sync/link", {}, token="cron-token")

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json() == {"linked": 3, "errors": []}
    mock_use_cases.link.assert_awaited_once_with(TableKind.PROPERTIES, TableKind.PROJECTS)


@pytest.mark.asyncio
async def test_unlink_rejects_invalid_entity_id(app_with_mock) -> None:
    response = await _post(app_with_mock, "/api/v1/sync/unlink", {"entityId": 0})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_budget_recompute_route(app_with_mock, mock_use_cases) -> None:
    mock_use_cases.recompute_budget_index = AsyncMock(return_value=BudgetIndexResponseDTO(
        updated=False,
        errors=[SyncErrorDTO(external_id="https://files.test/a.pdf", reason="PDF protegido con contraseña")],
    ))

    response = await _post(app_with_mock, "/api/v1/budget-index/recompute", {"entityId": 7})

    assert response.status_code == 200
    assert response.json() == {
        "updated": False,
        "errors": [{"externalId": "https://files.test/a.pdf", "reason": "PDF protegido con contraseña"}],
    }
    mock_use_cases.recompute_budget_index.assert_awaited_once_with(7)


@pytest.mark.asyncio
async def test_webhook_end_to_end_creates_record(fake_airtable, session_factory, make_record) -> None:
    from main import create_application

    fake_airtable.put(make_record(TableKind.PROPERTIES, "recP1", {"Address": "Calle 1"}))
    engine = SyncEngine(
        airtable=fake_airtable,
        session_factory=session_factory,
        table_configs=get_table_sync_configs(),
        max_workers=1,
    )
    app = create_application()
    app.dependency_overrides[get_sync_engine] = lambda: engine

    first = await _post(app, WEBHOOK_URL, EVENT)
    again = await _post(app, WEBHOOK_URL, EVENT)
    missing = await _post(app, WEBHOOK_URL, {**EVENT, "externalId": "recGone"})

    assert first.status_code == 200
    assert first.json()["updates"] == ["Created recP1"]
    assert again.json()["updates"] == ["No changes for recP1"]
    assert missing.status_code == 500
    assert missing.json()["success"] is False
