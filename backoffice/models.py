from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class StoredEntity(Base):
    """One schema-less record, addressed by (partition_key, row_key).

    `version` is the optimistic concurrency token: every successful write bumps
    it, and updates only apply when the caller presents the version it read.
    """

    __tablename__ = "entities"

    partition_key = Column(String(64), primary_key=True)
    row_key = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    properties = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class OutboxMessage(Base):
    """An event the broker did not accept yet; relayed in id order, then removed."""

    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, index=True)
    topic = Column(String(100), nullable=False, index=True)
    payload = Column(Text, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
