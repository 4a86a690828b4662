"""Tests for the sync worker: tick selection, isolation and overlap guards."""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest
from freezegun import freeze_time
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import FROZEN_NOW, NOW, FakeConnector, make_connection
from database.models import ConnectionSyncStatus, DataConnection, DataConnectionSyncLog, SyncTrigger
from services.connectors.googlesheets.connection_store import STALE_LOCK_MESSAGE, ConnectionStore
from services.connectors.googlesheets.errors import ConnectionBusyError, SourceUnavailableError
from services.connectors.googlesheets.scheduler import SYNC_JOB_ID, SheetsSyncWorker, TickResult

LATER = NOW + timedelta(minutes=20)


class ConcurrencyTrackingConnector(FakeConnector):
    """Yields inside fetch_grid and records the peak number of concurrent fetches."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.active = 0
        self.peak = 0

    async def fetch_grid(self, access_token, spreadsheet_id, sheet_name):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0)
            return await super().fetch_grid(access_token, spreadsheet_id, sheet_name)
        finally:
            self.active -= 1


def _worker(session_factory, connector) -> SheetsSyncWorker:
    return SheetsSyncWorker(
        session_factory=session_factory,
        connector_factory=lambda: connector,
        tick_seconds=60,
        process_started_at=NOW,
    )


# ---------------------------------------------------------------------------
# Ticks
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_tick_syncs_due_connections(session, session_factory, connector):
    due = make_connection(session, name="due")
    not_yet = make_connection(session, name="hourly", sync_frequency="1h")
    disabled = make_connection(session, name="disabled", sync_enabled=False)

    result = await _worker(session_factory, connector).run_tick(LATER)

    assert result == TickResult(processed=1, succeeded=1)
    session.expire_all()
    assert session.get(DataConnection, due.id).sync_status == ConnectionSyncStatus.SUCCESS.value
    assert session.get(DataConnection, not_yet.id).sync_status == ConnectionSyncStatus.PENDING.value
    assert session.get(DataConnection, disabled.id).sync_status == ConnectionSyncStatus.PENDING.value

    log = session.exec(select(DataConnectionSyncLog)).one()
    assert log.trigger == SyncTrigger.SCHEDULER.value


@pytest.mark.asyncio
async def test_tick_with_nothing_due(session, session_factory, connector):
    make_connection(session)

    result = await _worker(session_factory, connector).run_tick(NOW)

    assert result == TickResult()
    assert connector.fetch_calls == []


@pytest.mark.asyncio
async def test_failed_connection_does_not_stop_the_tick(session, session_factory):
    connector = FakeConnector(errors=[SourceUnavailableError("Spreadsheet or sheet not found")])
    first = make_connection(session, name="first")
    second = make_connection(session, name="second")

    result = await _worker(session_factory, connector).run_tick(LATER)

    assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
    session.expire_all()
    statuses = sorted(session.get(DataConnection, c.id).sync_status for c in (first, second))
    assert statuses == [ConnectionSyncStatus.ERROR.value, ConnectionSyncStatus.SUCCESS.value]
    # Both are rescheduled, the failed one included
    assert all(session.get(DataConnection, c.id).next_sync_at == LATER + timedelta(minutes=15)
               for c in (first, second))


@pytest.mark.asyncio
async def test_connection_is_due_again_after_failed_status_write(session, session_factory, connector):
    connection = make_connection(session)
    worker = _worker(session_factory, connector)

    with patch(
        "services.connectors.googlesheets.sync_service.ConnectionStore.mark_success",
        side_effect=OperationalError("UPDATE data_connections", {}, Exception("database is locked")),
    ):
        result = await worker.run_tick(LATER)

    assert (result.processed, result.failed) == (1, 1)
    session.expire_all()
    assert session.get(DataConnection, connection.id).sync_status == ConnectionSyncStatus.ERROR.value

    retry = await worker.run_tick(LATER + timedelta(minutes=15))
    assert (retry.processed, retry.succeeded) == (1, 1)


@pytest.mark.asyncio
async def test_due_connections_are_synced_one_at_a_time(session, session_factory):
    connector = ConcurrencyTrackingConnector()
    for i in range(3):
        make_connection(session, name=f"conn-{i}")

    result = await _worker(session_factory, connector).run_tick(LATER)

    assert result.succeeded == 3
    assert connector.peak == 1


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(session, session_factory):
    connector = ConcurrencyTrackingConnector()
    make_connection(session)
    worker = _worker(session_factory, connector)

    first, second = await asyncio.gather(worker.run_tick(LATER), worker.run_tick(LATER))

    assert first.succeeded == 1
    assert second.skipped is True
    assert len(connector.fetch_calls) == 1
    assert worker.is_ticking is False


@pytest.mark.asyncio
async def test_connection_is_not_resynced_within_its_interval(session, session_factory, connector):
    make_connection(session)
    worker = _worker(session_factory, connector)

    await worker.run_tick(LATER)
    second = await worker.run_tick(LATER + timedelta(minutes=5))

    assert second == TickResult()
    assert len(connector.fetch_calls) == 1


@pytest.mark.asyncio
@freeze_time(FROZEN_NOW)
async def test_tick_now_uses_current_time(session, session_factory, connector):
    connection = make_connection(session, now=NOW - timedelta(hours=1))

    result = await _worker(session_factory, connector).tick_now()

    assert result.succeeded == 1
    session.expire_all()
    assert session.get(DataConnection, connection.id).last_synced_at == NOW


# ---------------------------------------------------------------------------
# Forced sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_forced_sync_ignores_schedule(session, session_factory, connector):
    connection = make_connection(session, sync_frequency="off")

    result = await _worker(session_factory, connector).sync_connection(connection.id, NOW)

    assert result.kpi_count == 2
    log = session.exec(select(DataConnectionSyncLog)).one()
    assert log.trigger == SyncTrigger.MANUAL.value
    session.expire_all()
    assert session.get(DataConnection, connection.id).next_sync_at is None


@pytest.mark.asyncio
async def test_forced_sync_rejects_syncing_connection(session, session_factory, connector):
    connection = make_connection(session)
    ConnectionStore(session).claim_for_sync(connection.id, NOW)

    with pytest.raises(ConnectionBusyError):
        await _worker(session_factory, connector).sync_connection(connection.id, NOW)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_reconcile_on_worker(session, session_factory, connector):
    connection = make_connection(session)
    ConnectionStore(session).claim_for_sync(connection.id, NOW - timedelta(minutes=1))

    assert _worker(session_factory, connector).reconcile_stale_locks() == 1

    session.expire_all()
    reconciled = session.get(DataConnection, connection.id)
    assert reconciled.sync_status == ConnectionSyncStatus.ERROR.value
    assert reconciled.sync_error == STALE_LOCK_MESSAGE


@pytest.mark.asyncio
async def test_start_registers_single_interval_job(session_factory, connector):
    worker = _worker(session_factory, connector)

    worker.start()
    try:
        assert worker.is_running
        job = worker._scheduler.get_job(SYNC_JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert job.trigger.interval == timedelta(seconds=60)

        # Starting twice keeps the one job
        worker.start()
        assert len(worker._scheduler.get_jobs()) == 1
    finally:
        worker.stop()

    assert worker.is_running is False


def test_stop_without_start_is_a_no_op(session_factory, connector):
    worker = _worker(session_factory, connector)
    worker.stop()
    assert worker.is_running is False
