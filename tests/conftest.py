"""Shared fixtures for the KPI sync tests."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import database.models  # noqa: F401
from database.models import DataConnection, Deal
from database.seed import seed_kpi_definitions
from services.connectors.googlesheets.connection_store import ConnectionStore
from services.connectors.googlesheets.errors import TokenExpiredError
from services.sheets.models import SheetInfo

# ---------------------------------------------------------------------------
# Frozen time used by date-dependent tests
# ---------------------------------------------------------------------------
FROZEN_NOW = "2026-01-15 12:00:00"
NOW = datetime(2026, 1, 15, 12, 0, 0)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        seed_kpi_definitions(session)
        yield session


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture
def deal(session) -> Deal:
    deal = Deal(fund_id="fund-1", name="Maple Court Apartments")
    session.add(deal)
    session.commit()
    session.refresh(deal)
    return deal


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------
DEFAULT_MAPPING = [
    {"source_column": "NOI", "kpi_code": "noi", "value_type": "currency"},
    {"source_column": "Occupancy", "kpi_code": "physical_occupancy", "value_type": "percentage"},
]


def make_connection(
    session: Session,
    fund_id: str = "fund-1",
    deal_id: Optional[str] = None,
    column_mapping: Optional[List[Dict]] = None,
    sync_frequency: str = "15m",
    sync_enabled: bool = True,
    token_expiry: Optional[datetime] = None,
    now: datetime = NOW,
    name: str = "Monthly KPIs",
) -> DataConnection:
    """Save a connection with sensible defaults; override only what you need."""
    return ConnectionStore(session).save_connection(
        fund_id=fund_id,
        deal_id=deal_id,
        name=name,
        spreadsheet_id="sheet-abc",
        sheet_name="KPIs",
        column_mapping=column_mapping if column_mapping is not None else DEFAULT_MAPPING,
        access_token="access-1",
        refresh_token="refresh-1",
        token_expiry=token_expiry or now + timedelta(hours=1),
        google_email="manager@example.com",
        sync_frequency=sync_frequency,
        sync_enabled=sync_enabled,
        now=now,
    )


# ---------------------------------------------------------------------------
# Google API stand-in
# ---------------------------------------------------------------------------
class FakeConnector:
    """
    Records calls and serves a fixed grid. `errors` is a list of exceptions
    raised by successive fetch_grid calls before the grid is returned.
    """

    def __init__(self, grid=None, errors=None, refresh_error=None):
        self.grid = grid if grid is not None else [["NOI", "$200,000"], ["Occupancy", "94%"]]
        self.errors = list(errors or [])
        self.refresh_error = refresh_error
        self.fetch_calls = []
        self.refresh_calls = []
        self.revoked = []

    def is_configured(self):
        return True

    async def fetch_grid(self, access_token, spreadsheet_id, sheet_name):
        self.fetch_calls.append(access_token)
        if self.errors:
            raise self.errors.pop(0)
        return self.grid

    async def refresh_access_token(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return {
            "access_token": f"access-{len(self.refresh_calls) + 1}",
            "refresh_token": refresh_token,
            "expires_at": NOW + timedelta(hours=1),
        }

    async def revoke_token(self, token):
        self.revoked.append(token)
        return True

    async def list_spreadsheets(self, access_token):
        if self.errors:
            raise self.errors.pop(0)
        return [{"id": "sheet-abc", "name": "Fund KPIs", "owner": "manager@example.com", "modified_time": ""}]

    async def list_sheet_names(self, access_token, spreadsheet_id):
        return [SheetInfo(sheet_id=0, title="KPIs", row_count=100, column_count=10)]


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def expired_once_connector():
    """Rejects the first fetch with a 401, then serves the grid."""
    return FakeConnector(errors=[TokenExpiredError("Access token expired")])
