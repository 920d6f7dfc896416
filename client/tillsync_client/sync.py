# Overview: Background drain of the pending-submission queue with exponential backoff.

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from .api import ReceiptsApi
from .config import ClientConfig
from .connectivity import ConnectivitySource
from .errors import RemoteApiError, StorageUnavailable
from .models import ReceiptStatus, SyncQueueRecord, SyncQueueStatus
from .repositories import ReceiptsRepo, SyncQueue
from .session import ClientSession
from .time_utils import to_iso, utcnow

logger = logging.getLogger(__name__)

# Backoff growth stops doubling after this many attempts
MAX_BACKOFF_EXPONENT = 6
_LAST_ERROR_LIMIT = 500


@dataclass
class DrainReport:
    synced: int = 0
    failed: int = 0
    # FAILED records past the attempt limit; left for a manual retry
    skipped: int = 0


def backoff_delay_ms(attempts: int, base_backoff_ms: int) -> int:
    """base x 2^min(attempts, 6)"""
    return base_backoff_ms * 2 ** min(attempts, MAX_BACKOFF_EXPONENT)


def _describe(exc: Exception) -> str:
    if isinstance(exc, RemoteApiError):
        text = f"{exc.message}: {exc.details}" if exc.details else exc.message
    else:
        text = f"{type(exc).__name__}: {exc}"
    return text[:_LAST_ERROR_LIMIT]


class SyncManager:
    """
    Drains the sync queue in the background.

    SCHEDULING:
    - start() runs a pass immediately on the worker thread, then one every
      `interval_seconds`, plus one whenever connectivity comes back.
    - At most one pass runs at a time. process_queue() takes a
      non-blocking lock and returns None when a pass is already running.
    - Within a pass, due records are submitted one by one, oldest first.

    PER RECORD:
    - 2xx: receipt takes the server id, number and status; record removed.
    - 409: already processed; same as success without a number.
    - anything else: attempts + 1, next attempt after
      base x 2^min(attempts, 6) ms, FAILED once attempts reach max_attempts.
      Queue record and receipt sync_attempts are written together.
    - Errors never escape a record; one bad receipt does not block the rest.
    - A pass that fails outside a record is logged; the worker keeps its
      schedule.

    stop() cancels the timer and the connectivity subscription. A pass in
    flight finishes and its results are applied.
    """

    def __init__(
        self,
        receipts: ReceiptsRepo,
        queue: SyncQueue,
        receipts_api: ReceiptsApi,
        session: ClientSession,
        connectivity: ConnectivitySource,
        interval_seconds: float = 5.0,
        base_backoff_ms: int = 2000,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.receipts = receipts
        self.queue = queue
        self.receipts_api = receipts_api
        self.session = session
        self.connectivity = connectivity
        self.interval_seconds = interval_seconds
        self.base_backoff_ms = base_backoff_ms
        self.max_attempts = max_attempts
        self.clock = clock

        self._pass_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._wake_event: Optional[threading.Event] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @classmethod
    def from_config(cls, config: ClientConfig, **collaborators) -> "SyncManager":
        return cls(
            interval_seconds=config.sync_interval_seconds,
            base_backoff_ms=config.sync_base_backoff_ms,
            max_attempts=config.sync_max_attempts,
            **collaborators,
        )

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None

    def start(self) -> None:
        with self._state_lock:
            if self._stop_event is not None:
                return
            stop_event = threading.Event()
            wake_event = threading.Event()
            self._stop_event = stop_event
            self._wake_event = wake_event
            self._unsubscribe = self.connectivity.subscribe(wake_event.set)
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event, wake_event),
                name="tillsync-sync",
                daemon=True,
            )
            self._thread.start()
        logger.info("Sync manager started (interval=%ss)", self.interval_seconds)

    def stop(self, join_timeout: Optional[float] = None) -> None:
        with self._state_lock:
            if self._stop_event is None:
                return
            self._stop_event.set()
            self._wake_event.set()
            if self._unsubscribe is not None:
                self._unsubscribe()
            thread = self._thread
            self._stop_event = None
            self._wake_event = None
            self._unsubscribe = None
            self._thread = None
        if join_timeout is not None and thread is not None:
            thread.join(join_timeout)
        logger.info("Sync manager stopped")

    def _run(self, stop_event: threading.Event, wake_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.process_queue()
            except StorageUnavailable:
                logger.exception("Sync pass aborted: local store unavailable")
            except Exception:
                logger.exception("Sync pass aborted; retrying on the next tick")
            wake_event.wait(self.interval_seconds)
            wake_event.clear()

    def process_queue(self) -> Optional[DrainReport]:
        """
        Run one drain pass now.

        Returns None if another pass holds the lock, else what happened.
        Offline or signed out, the pass is a no-op.
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.debug("Sync pass already running; skipping")
            return None

        try:
            report = DrainReport()
            if not self.connectivity.is_online:
                return report
            if not self.session.get_token():
                return report

            due = self.queue.get_due_items(to_iso(self.clock()))
            for item in due:
                if item.status == SyncQueueStatus.FAILED and item.attempts >= self.max_attempts:
                    report.skipped += 1
                    continue
                self._process_item(item, report)

            if report.synced or report.failed:
                logger.info(
                    "Sync pass: %d synced, %d failed, %d skipped",
                    report.synced, report.failed, report.skipped,
                )
            return report
        finally:
            self._pass_lock.release()

    def _process_item(self, item: SyncQueueRecord, report: DrainReport) -> None:
        try:
            self._submit(item)
            report.synced += 1
        except Exception as exc:
            report.failed += 1
            if not isinstance(exc, RemoteApiError):
                logger.warning("Sync of receipt %s failed: %r", item.receipt_id, exc)
            try:
                self._record_failure(item, exc)
            except StorageUnavailable:
                logger.exception("Could not record sync failure for queue item %s", item.id)

    def _submit(self, item: SyncQueueRecord) -> None:
        payload = item.payload.to_create_payload(created_offline=True)
        try:
            result = self.receipts_api.create(payload)
        except RemoteApiError as exc:
            if not exc.is_conflict:
                logger.warning("Sync of receipt %s rejected (%d)", item.receipt_id, exc.status)
                raise
            # the backend already has it; keep whatever number is stored
            self.receipts.mark_as_synced(item.receipt_id, queue_id=item.id)
            logger.info("Receipt %s already processed by server", item.payload.client_receipt_id)
            return

        self.receipts.mark_as_synced(
            item.receipt_id,
            number=result.item.number,
            server_id=result.item.id,
            status=ReceiptStatus(result.item.status),
            queue_id=item.id,
        )

    def _record_failure(self, item: SyncQueueRecord, exc: Exception) -> None:
        attempts = item.attempts + 1
        now = self.clock()
        delay_ms = backoff_delay_ms(attempts, self.base_backoff_ms)
        status = SyncQueueStatus.FAILED if attempts >= self.max_attempts else SyncQueueStatus.PENDING

        record = dataclasses.replace(
            item,
            attempts=attempts,
            next_attempt_at=to_iso(now + timedelta(milliseconds=delay_ms)),
            status=status,
            last_error=_describe(exc),
            updated_at=to_iso(now),
        )
        self.receipts.mark_sync_failed(item.receipt_id, attempts, queue_item=record)

        if status == SyncQueueStatus.FAILED:
            logger.error(
                "Receipt %s gave up after %d attempts; manual retry needed",
                item.payload.client_receipt_id, attempts,
            )
