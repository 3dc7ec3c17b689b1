"""SQLAlchemy ORM models for client-side durable state"""

from sqlalchemy import JSON, Column, DateTime, Integer, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SyncQueueRecord(Base):
    """Mutation waiting for commit; sequence preserves submission order across restarts"""

    __tablename__ = "sync_queue"
    # Never reuse a sequence number, even after the queue empties
    __table_args__ = {"sqlite_autoincrement": True}

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    local_id = Column(Text, nullable=False, unique=True, index=True)
    mutation_type = Column(Text, nullable=False)
    customer_id = Column(Text, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    enqueued_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
