# Overview: Pending-submission queue over the local store.

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from ..models import SyncQueueRecord, SyncQueueStatus
from ..store import LocalStore
from ..time_utils import now_iso

logger = logging.getLogger(__name__)


class SyncQueue:
    def __init__(self, store: LocalStore):
        self.store = store

    def get_due_items(self, now: Optional[str] = None) -> list[SyncQueueRecord]:
        """PENDING or FAILED records whose next attempt is due, oldest first."""
        return self.store.get_due_sync_queue_items(now or now_iso())

    def get(self, queue_id: str) -> Optional[SyncQueueRecord]:
        return self.store.get_sync_queue_item(queue_id)

    def save(self, record: SyncQueueRecord) -> None:
        self.store.update_sync_queue_item(record)

    def remove(self, queue_id: str) -> None:
        self.store.delete_sync_queue_item(queue_id)

    def list_for_merchant(
        self, merchant_id: str, status: Optional[SyncQueueStatus] = None
    ) -> list[SyncQueueRecord]:
        return self.store.get_sync_queue_items(merchant_id, status)

    def retry_now(self, queue_id: str) -> Optional[SyncQueueRecord]:
        """
        Manual foreground retry.

        Re-arms the record as PENDING and due now. Attempts are kept, so a
        record past the limit is submitted once more by the next pass and
        goes back to FAILED if that attempt fails too.
        """
        record = self.store.get_sync_queue_item(queue_id)
        if record is None:
            return None

        now = now_iso()
        record = dataclasses.replace(
            record,
            status=SyncQueueStatus.PENDING,
            next_attempt_at=now,
            updated_at=now,
        )
        self.store.update_sync_queue_item(record)
        logger.info("Sync queue item %s re-armed for manual retry", queue_id)
        return record
