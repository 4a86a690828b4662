"""API tests for the Google Sheets connector routes."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from config import settings
from conftest import NOW, make_connection
from database.connection import get_session
from main import app
from api.connector.googlesheets_routes import get_connector
from services.connectors.googlesheets.connection_store import ConnectionStore
from services.connectors.googlesheets.errors import SourceUnavailableError
from services.connectors.googlesheets.scheduler import SheetsSyncWorker
from services.connectors.googlesheets.setup_service import GoogleSheetsSetupService

API_KEY = "test-admin-key"
BASE = "/api/connectors/googlesheets"


@pytest.fixture
def client(engine, session, session_factory, connector, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", API_KEY)

    def override_session():
        with Session(engine) as route_session:
            yield route_session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_connector] = lambda: connector
    app.state.sheets_sync_worker = SheetsSyncWorker(
        session_factory=session_factory,
        connector_factory=lambda: connector,
        process_started_at=NOW,
    )

    yield TestClient(app, headers={"X-Admin-Api-Key": API_KEY})

    app.dependency_overrides.clear()
    del app.state.sheets_sync_worker


def _connection_data():
    return GoogleSheetsSetupService.build_connection_data({
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "expires_at": NOW + timedelta(hours=1),
        "email": "manager@example.com",
    })


def _create_body(**overrides):
    body = {
        "fund_id": "fund-1",
        "name": "Monthly KPIs",
        "spreadsheet_id": "sheet-abc",
        "sheet_name": "KPIs",
        "column_mapping": [{"source_column": "NOI", "kpi_code": "noi", "value_type": "currency"}],
        "sync_frequency": "15m",
        "sync_enabled": True,
        "connection_data": _connection_data(),
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def test_missing_api_key_is_rejected(client):
    response = client.get(f"{BASE}/info", headers={"X-Admin-Api-Key": ""})
    assert response.status_code == 401


def test_wrong_api_key_is_rejected(client):
    response = client.post(f"{BASE}/admin/run-sync", headers={"X-Admin-Api-Key": "nope"})
    assert response.status_code == 401


def test_unset_api_key_rejects_everything(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", None)
    assert client.get(f"{BASE}/info").status_code == 401


def test_info(client):
    data = client.get(f"{BASE}/info").json()

    assert data["provider"] == "google_sheets"
    assert data["is_configured"] is True
    assert data["scheduler_running"] is False


# ---------------------------------------------------------------------------
# OAuth callback
# ---------------------------------------------------------------------------


def test_callback_with_unknown_state_redirects_with_error(client):
    response = client.get(
        f"{BASE}/oauth/callback",
        params={"code": "c", "state": "forged"},
        headers={"X-Admin-Api-Key": ""},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert "google_sheets_error=invalid_state" in response.headers["location"]


def test_callback_provider_error_redirects(client):
    response = client.get(f"{BASE}/oauth/callback", params={"error": "access_denied"}, follow_redirects=False)

    assert response.status_code == 307
    assert "google_sheets_error=access_denied" in response.headers["location"]


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


def test_create_connection(client):
    response = client.post(f"{BASE}/connections", json=_create_body())

    assert response.status_code == 201
    data = response.json()
    assert data["sync_frequency"] == "15m"
    assert data["sync_status"] == "pending"
    assert data["google_email"] == "manager@example.com"
    assert data["next_sync_at"] is not None
    assert data["column_mapping"][0]["kpi_code"] == "noi"
    assert "credentials_encrypted" not in data


def test_create_connection_reuses_fund_credentials(client, session):
    make_connection(session)

    response = client.post(f"{BASE}/connections", json=_create_body(connection_data=None, name="Second tab"))

    assert response.status_code == 201
    assert client.get(f"{BASE}/funds/fund-1/connections").json()["total"] == 2


def test_create_connection_with_bad_connection_data(client):
    response = client.post(f"{BASE}/connections", json=_create_body(connection_data="garbage"))

    assert response.status_code == 502


def test_create_connection_requires_mapping_target(client):
    body = _create_body(column_mapping=[{"source_column": "NOI"}])

    assert client.post(f"{BASE}/connections", json=body).status_code == 422


def test_get_unknown_connection(client):
    assert client.get(f"{BASE}/connections/missing").status_code == 404


def test_fund_status(client, session):
    make_connection(session)

    data = client.get(f"{BASE}/funds/fund-1/status").json()

    assert data["connected"] is True
    assert data["connection_count"] == 1
    assert data["has_credentials"] is True


def test_update_schedule_off_clears_next_sync(client, session):
    connection = make_connection(session)

    response = client.put(
        f"{BASE}/connections/{connection.id}/schedule",
        json={"sync_frequency": "off", "sync_enabled": True},
    )

    assert response.status_code == 200
    assert response.json()["sync_enabled"] is False
    assert response.json()["next_sync_at"] is None


def test_update_mapping(client, session):
    connection = make_connection(session)

    response = client.put(
        f"{BASE}/connections/{connection.id}/mapping",
        json={"column_mapping": [{"source_column": "Pet Fees", "custom_name": "Pet Fees"}]},
    )

    assert response.status_code == 200
    assert response.json()["column_mapping"][0]["kpi_code"] == "custom_pet_fees"


def test_disconnect_revokes_token(client, session, connector):
    connection = make_connection(session)

    response = client.delete(f"{BASE}/connections/{connection.id}")

    assert response.status_code == 200
    assert connector.revoked == ["refresh-1"]
    assert client.get(f"{BASE}/connections/{connection.id}").status_code == 404


def test_disconnect_keeps_token_shared_with_other_connection(client, session, connector):
    connection = make_connection(session, name="first")
    make_connection(session, name="second")

    assert client.delete(f"{BASE}/connections/{connection.id}").status_code == 200
    assert connector.revoked == []


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def test_list_spreadsheets_with_connection_data(client):
    response = client.get(f"{BASE}/spreadsheets", params={"connection_data": _connection_data()})

    assert response.status_code == 200
    assert response.json()["spreadsheets"][0]["id"] == "sheet-abc"


def test_list_spreadsheets_without_credentials(client):
    assert client.get(f"{BASE}/spreadsheets", params={"fund_id": "fund-9"}).status_code == 502


def test_list_sheets(client):
    response = client.get(f"{BASE}/spreadsheets/sheet-abc/sheets", params={"connection_data": _connection_data()})

    assert response.json()["sheets"] == [{"sheet_id": 0, "title": "KPIs", "row_count": 100, "column_count": 10}]


def test_preview_suggests_kpis(client, session):
    make_connection(session)

    response = client.get(f"{BASE}/spreadsheets/sheet-abc/sheets/KPIs/preview", params={"fund_id": "fund-1"})

    assert response.status_code == 200
    data = response.json()
    assert data["preview"]["format"] == "key-value"
    assert data["preview"]["rows"] == [["NOI", "$200,000"], ["Occupancy", "94%"]]
    suggested = {s["source_column"]: s["suggested_kpi_code"] for s in data["suggestions"]}
    assert suggested == {"NOI": "noi", "Occupancy": "physical_occupancy"}


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


def test_manual_sync(client, session):
    connection = make_connection(session)

    response = client.post(f"{BASE}/connections/{connection.id}/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["kpi_count"] == 2
    assert data["sync_status"] == "success"
    assert data["next_sync_at"] is not None


def test_manual_sync_of_busy_connection_conflicts(client, session):
    connection = make_connection(session)
    ConnectionStore(session).claim_for_sync(connection.id, NOW)

    assert client.post(f"{BASE}/connections/{connection.id}/sync").status_code == 409


def test_manual_sync_source_failure(client, session, connector):
    connector.errors.append(SourceUnavailableError("Spreadsheet or sheet not found"))
    connection = make_connection(session)

    response = client.post(f"{BASE}/connections/{connection.id}/sync")

    assert response.status_code == 502
    assert response.json()["detail"] == "Spreadsheet or sheet not found"
    assert client.get(f"{BASE}/connections/{connection.id}").json()["sync_status"] == "error"


def test_admin_run_sync(client, session):
    connection = make_connection(session)
    # Never-run connections are due whatever the wall clock says
    connection.next_sync_at = None
    session.add(connection)
    session.commit()

    data = client.post(f"{BASE}/admin/run-sync").json()

    assert data == {"processed": 1, "succeeded": 1, "failed": 0, "busy": 0, "skipped": False}


def test_admin_sync_connection(client, session):
    connection = make_connection(session, sync_frequency="off")

    response = client.post(f"{BASE}/admin/sync-connection/{connection.id}")

    assert response.status_code == 200
    assert response.json()["kpi_count"] == 2


def test_admin_routes_need_worker(client):
    app.state.sheets_sync_worker = None

    assert client.post(f"{BASE}/admin/run-sync").status_code == 503
