"""
Google Sheets sync scheduler.

A SheetsSyncWorker owns one APScheduler interval job. Each tick finds the
connections that are due and syncs them one at a time. Ticks never overlap:
a tick that starts while another is still running is skipped.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from config.settings import SHEETS_SYNC_TICK_SECONDS
from database.connection import get_db_session
from database.models.connector import SyncTrigger
from services.connectors.googlesheets.client import GoogleSheetsConnector
from services.connectors.googlesheets.connection_store import ConnectionStore
from services.connectors.googlesheets.errors import ConnectionBusyError
from services.connectors.googlesheets.sync_service import SheetsSyncService, SyncResult
from utils.logger import get_logger

logger = get_logger(__name__)

SYNC_JOB_ID = "google_sheets_sync_tick"


@dataclass
class TickResult:
    """Counts for one scheduler tick"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    busy: int = 0            # Due but already syncing elsewhere
    skipped: bool = False    # Whole tick skipped because another was running

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "busy": self.busy,
            "skipped": self.skipped,
        }


class SheetsSyncWorker:
    """
    Recurring sync driver with an explicit start / stop / tick-now lifecycle.
    Instances share no state, so tests can run several side by side.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = get_db_session,
        connector_factory: Callable[[], GoogleSheetsConnector] = GoogleSheetsConnector,
        tick_seconds: int = SHEETS_SYNC_TICK_SECONDS,
        process_started_at: Optional[datetime] = None,
    ):
        """
        Initialize the worker.

        Args:
            session_factory: Returns a new Session per tick (closed by the worker)
            connector_factory: Returns the Google API client used for syncs
            tick_seconds: Wall-clock interval between ticks
            process_started_at: Rows left syncing before this time are stale
        """
        self.session_factory = session_factory
        self.connector_factory = connector_factory
        self.tick_seconds = tick_seconds
        self.process_started_at = process_started_at or datetime.utcnow()
        self._tick_lock = asyncio.Lock()
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def is_ticking(self) -> bool:
        return self._tick_lock.locked()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reconcile_stale_locks(self) -> int:
        session = self.session_factory()
        try:
            return ConnectionStore(session).reconcile_stale_locks(self.process_started_at)
        finally:
            session.close()

    def start(self) -> None:
        """Reconcile stale locks, then schedule ticks (first one immediately)"""
        if self.is_running:
            logger.info("[SheetsScheduler] Already running")
            return

        self.reconcile_stale_locks()

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._scheduled_tick,
            "interval",
            seconds=self.tick_seconds,
            id=SYNC_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(f"[SheetsScheduler] Started Google Sheets sync scheduler (every {self.tick_seconds}s)")

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("[SheetsScheduler] Stopped Google Sheets sync scheduler")

    async def _scheduled_tick(self) -> None:
        try:
            await self.run_tick()
        except Exception as e:
            logger.error(f"[SheetsScheduler] Unexpected error in tick: {e}", exc_info=True)

    async def tick_now(self) -> TickResult:
        """Run one tick out of band; shares the no-overlap guard with the timer"""
        return await self.run_tick()

    # =========================================================================
    # Ticks
    # =========================================================================

    async def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Sync every connection due at `now`, sequentially.
        Per-connection failures are counted, never raised.
        """
        # Check and acquire happen without an await in between
        if self._tick_lock.locked():
            logger.info("[SheetsScheduler] Previous tick still running, skipping")
            return TickResult(skipped=True)

        async with self._tick_lock:
            now = now or datetime.utcnow()
            result = TickResult()

            session = self.session_factory()
            try:
                due_ids = [c.id for c in ConnectionStore(session).list_due(now)]
                if not due_ids:
                    return result

                logger.info(f"[SheetsScheduler] Found {len(due_ids)} connection(s) due for sync")
                service = SheetsSyncService(session, self.connector_factory())

                for connection_id in due_ids:
                    try:
                        sync_result = await service.run_sync(connection_id, now, SyncTrigger.SCHEDULER)
                        result.processed += 1
                        result.succeeded += 1
                        logger.info(f"[SheetsScheduler] Synced {connection_id}: {sync_result.row_count} rows")
                    except ConnectionBusyError:
                        result.busy += 1
                    except Exception as e:
                        result.processed += 1
                        result.failed += 1
                        logger.error(f"[SheetsScheduler] Failed {connection_id}: {e}")
            finally:
                session.close()

            logger.info(
                f"[SheetsScheduler] Tick complete: {result.processed} processed, "
                f"{result.succeeded} succeeded, {result.failed} failed"
            )
            return result

    async def sync_connection(self, connection_id: str, now: Optional[datetime] = None) -> SyncResult:
        """
        Forced sync of one connection, bypassing the due-time check.

        Raises:
            ConnectionBusyError: If the connection is already syncing
        """
        session = self.session_factory()
        try:
            service = SheetsSyncService(session, self.connector_factory())
            return await service.run_sync(connection_id, now, SyncTrigger.MANUAL)
        finally:
            session.close()
