"""Durable FIFO sync queue backed by the local database"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from ledger_sync.domain.models import Mutation, MutationType, SyncQueueEntry
from ledger_sync.infrastructure.database.models import SyncQueueRecord
from ledger_sync.infrastructure.observability.metrics import sync_queue_depth
from ledger_sync.utils.date_utils import ensure_aware, utc_now


def _to_entry(record: SyncQueueRecord) -> SyncQueueEntry:
    return SyncQueueEntry(
        local_id=record.local_id,
        sequence=record.sequence,
        mutation=Mutation(
            mutation_type=MutationType(record.mutation_type),
            customer_id=record.customer_id,
            payload=dict(record.payload),
        ),
        enqueued_at=ensure_aware(record.enqueued_at),
        attempt=record.attempts,
    )


class SyncQueueRepository:
    """Repository for queued mutations, ordered by insertion sequence"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def enqueue(self, mutation: Mutation, enqueued_at: Optional[datetime] = None) -> SyncQueueEntry:
        """Persist a mutation at the tail of the queue before acknowledging it"""
        with self.session_factory() as db:
            record = SyncQueueRecord(
                local_id=str(uuid.uuid4()),
                mutation_type=mutation.mutation_type.value,
                customer_id=mutation.customer_id,
                payload=mutation.payload,
                enqueued_at=enqueued_at or utc_now(),
                attempts=0,
            )
            db.add(record)
            db.commit()
            db.refresh(record)
            entry = _to_entry(record)
        self._update_depth()
        return entry

    def peek(self) -> Optional[SyncQueueEntry]:
        """Oldest entry, or None when the queue is empty"""
        with self.session_factory() as db:
            record = (
                db.query(SyncQueueRecord)
                .order_by(SyncQueueRecord.sequence.asc())
                .first()
            )
            return _to_entry(record) if record else None

    def list_entries(self) -> List[SyncQueueEntry]:
        with self.session_factory() as db:
            records = db.query(SyncQueueRecord).order_by(SyncQueueRecord.sequence.asc()).all()
            return [_to_entry(r) for r in records]

    def has_pending_for(self, customer_id: str) -> bool:
        with self.session_factory() as db:
            return (
                db.query(SyncQueueRecord.sequence)
                .filter(SyncQueueRecord.customer_id == customer_id)
                .first()
                is not None
            )

    def record_attempt(self, local_id: str) -> int:
        """Bump and persist the attempt counter; returns the new value"""
        with self.session_factory() as db:
            record = db.query(SyncQueueRecord).filter(SyncQueueRecord.local_id == local_id).first()
            if record is None:
                return 0
            record.attempts += 1
            db.commit()
            return record.attempts

    def remove(self, local_id: str) -> None:
        with self.session_factory() as db:
            db.query(SyncQueueRecord).filter(SyncQueueRecord.local_id == local_id).delete()
            db.commit()
        self._update_depth()

    def count(self) -> int:
        with self.session_factory() as db:
            return db.query(SyncQueueRecord).count()

    def _update_depth(self) -> None:
        sync_queue_depth.set(self.count())
