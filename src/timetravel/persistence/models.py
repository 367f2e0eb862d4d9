"""
Two-table schema: `records` holds one identity row per record id,
`record_versions` holds every version of every record.
"""

import time
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    ForeignKey,
    Integer,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on Postgres, JSON-as-text everywhere else
AttributesType = JSON().with_variant(JSONB(), "postgresql")


def now_unix() -> int:  # compact Unix-seconds timestamp
    return int(time.time())


class RecordRow(Base):
    """Identity row; its lock serialises writers of the same record."""

    __tablename__ = "records"

    id = Column(Integer, primary_key=True, autoincrement=False)
    created_ts = Column(BigInteger, default=now_unix, nullable=False)


class RecordVersionRow(Base):
    """One version: the **full** attribute map in force from `effective_ts`."""

    __tablename__ = "record_versions"
    __table_args__ = (
        UniqueConstraint("record_id", "effective_ts", name="uq_record_versions_effective"),
    )

    version_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id = Column(Integer, ForeignKey("records.id"), nullable=False)
    effective_ts = Column(BigInteger, nullable=False)
    reported_ts = Column(BigInteger, nullable=False)
    attributes = Column(AttributesType, nullable=False, default=dict)
