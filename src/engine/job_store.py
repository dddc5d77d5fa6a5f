# src/engine/job_store.py
"""
JobStore: persistence for scan job records.

Every call opens its own session and commits before returning, so a single
record is never observed half-written. Returned ``ScanJob`` instances are
detached snapshots; mutate records through ``patch`` only.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from engine.errors import ConflictError, NotFoundError
from engine.models import ScanJob, utcnow

PATCHABLE_FIELDS = {
    "external_id",
    "status",
    "report_url",
    "summary",
    "job_metadata",
    "completed_at",
}


class JobStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, job: ScanJob) -> ScanJob:
        db = self._session_factory()
        try:
            now = utcnow()
            job.created_at = job.created_at or now
            job.updated_at = now
            db.add(job)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError(f"Scan job '{job.id}' already exists") from e
        finally:
            db.close()
        return job

    def get_by_id(self, job_id: str) -> Optional[ScanJob]:
        db = self._session_factory()
        try:
            return db.get(ScanJob, job_id)
        finally:
            db.close()

    def find_by_external_id(self, external_id: str) -> Optional[ScanJob]:
        db = self._session_factory()
        try:
            return (
                db.query(ScanJob)
                .filter(ScanJob.external_id == external_id)
                .order_by(ScanJob.created_at.desc())
                .first()
            )
        finally:
            db.close()

    def patch(self, job_id: str, fields: Dict[str, Any], expected_status: Optional[str] = None) -> ScanJob:
        """
        Apply ``fields`` to one record and refresh ``updated_at``.

        With ``expected_status`` the write only happens while the stored status
        still equals it; otherwise the current record is returned untouched.
        The status check and the write are one UPDATE statement.
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be patched: {sorted(unknown)}")
        values = {getattr(ScanJob, name): value for name, value in fields.items()}
        values[ScanJob.updated_at] = utcnow()
        db = self._session_factory()
        try:
            query = db.query(ScanJob).filter(ScanJob.id == job_id)
            if expected_status is not None:
                query = query.filter(ScanJob.status == expected_status)
            matched = query.update(values, synchronize_session=False)
            db.commit()
            job = db.get(ScanJob, job_id)
            if job is None:
                raise NotFoundError("Scan job", job_id)
            if matched:
                logging.debug(f"[job_id={job_id}] Patched fields {sorted(fields)}")
            return job
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_jobs(
        self,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
        scan_kind: Optional[str] = None,
    ) -> List[ScanJob]:
        db = self._session_factory()
        try:
            query = db.query(ScanJob)
            if status:
                query = query.filter(ScanJob.status == status)
            if scan_kind:
                query = query.filter(ScanJob.scan_kind == scan_kind)
            return query.order_by(ScanJob.created_at.desc()).offset(offset).limit(limit).all()
        finally:
            db.close()
