# src/engine/models.py
from sqlalchemy import Column, String, DateTime, Text, JSON
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
from enum import Enum

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, also on backends that store them naive (SQLite)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class ScanKind(str, Enum):
    SAST = "SAST"
    FOSS = "FOSS"
    DAST = "DAST"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED.value, JobStatus.FAILED.value}


class ScanJob(Base):
    __tablename__ = 'scan_jobs'
    id = Column(String(36), primary_key=True)
    external_id = Column(String, nullable=True, index=True)
    scan_kind = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=JobStatus.PENDING.value)
    parameters = Column(JSON, nullable=False, default=dict)
    report_url = Column(String, nullable=True)
    summary = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    job_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    completed_at = Column(UTCDateTime(), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_view(self) -> dict:
        return {
            "id": self.id,
            "externalId": self.external_id,
            "scanKind": self.scan_kind,
            "status": self.status,
            "parameters": self.parameters or {},
            "reportUrl": self.report_url,
            "summary": self.summary,
            "metadata": self.job_metadata,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "completedAt": _isoformat(self.completed_at),
        }


def _isoformat(value):
    return value.isoformat() if value else None
