# src/engine/job_manager.py
"""
JobManager: trigger, callback and status operations for scan jobs.

Composes the job store, the runner adapter and the reconciler. Every REST
endpoint delegates here so behaviour is the same regardless of transport.
"""

import uuid
import logging
from typing import Any, Dict, List, Optional

from engine.errors import NotFoundError, ValidationError
from engine.job_store import JobStore
from engine.models import JobStatus, ScanJob, ScanKind
from engine.reconciler import Reconciler
from tools.base import RunnerAdapter

SCAN_KINDS = {kind.value for kind in ScanKind}
CALLBACK_STATUSES = {JobStatus.COMPLETED.value, JobStatus.FAILED.value}
MAX_PAGE_SIZE = 100


class JobManager:
    def __init__(self, store: JobStore, runner: RunnerAdapter):
        self.store = store
        self.runner = runner
        self.reconciler = Reconciler(store, runner)

    def trigger_scan(
        self,
        scan_kind: str,
        parameters: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """
        Record a pending job, hand it to the runner and mark it running.

        If the runner rejects the trigger the record stays pending without an
        external id and the RunnerUnavailableError propagates; a new request
        creates a new job.
        """
        if scan_kind not in SCAN_KINDS:
            raise ValidationError(f"scanKind must be one of {sorted(SCAN_KINDS)}, got '{scan_kind}'")
        if not isinstance(parameters, dict):
            raise ValidationError("parameters must be an object")

        job = self.store.create(ScanJob(
            id=str(uuid.uuid4()),
            scan_kind=scan_kind,
            status=JobStatus.PENDING.value,
            parameters=parameters,
            job_metadata=metadata,
        ))
        logging.info(f"[job_id={job.id}] Created scan job. scan_kind={scan_kind} parameters={parameters}")

        try:
            build = self.runner.trigger(parameters)
        except Exception as e:
            logging.error(f"[job_id={job.id}] Runner trigger failed, job left pending: {e}")
            raise

        job = self.reconciler.mark_running(job, build.external_id)
        logging.info(f"[job_id={job.id}] Scan triggered. external_id={build.external_id}")
        return {
            "jobId": job.id,
            "externalId": job.external_id,
            "status": job.status,
            "scanKind": job.scan_kind,
            "url": build.url,
        }

    def handle_callback(
        self,
        external_id: str,
        status: str,
        report_url: Optional[str] = None,
        summary: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> dict:
        if status not in CALLBACK_STATUSES:
            raise ValidationError(f"status must be one of {sorted(CALLBACK_STATUSES)}, got '{status}'")
        if not external_id:
            raise ValidationError("externalId is required")

        logging.info(f"[external_id={external_id}] Received runner callback status={status} report_url={report_url}")
        job = self.store.find_by_external_id(external_id)
        if job is None:
            logging.warning(f"[external_id={external_id}] No scan job for runner callback")
            raise NotFoundError("Scan job for external id", external_id)

        job = self.reconciler.apply_callback(job, status, report_url, summary, metadata)
        return {"success": True, "jobId": job.id, "status": job.status}

    def get_job(self, job_id: str) -> ScanJob:
        job = self.store.get_by_id(job_id)
        if job is None:
            raise NotFoundError("Scan job", job_id)
        return job

    def get_status(self, job_id: str) -> dict:
        job = self.get_job(job_id)
        if not job.is_terminal and job.external_id:
            job = self.reconciler.reconcile(job)
        return job.to_view()

    def get_log(self, job_id: str) -> dict:
        job = self.get_job(job_id)
        log = self.runner.get_log(job.external_id) if job.external_id else ""
        return {
            "jobId": job.id,
            "externalId": job.external_id,
            "status": job.status,
            "log": log,
        }

    def list_jobs(
        self,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
        scan_kind: Optional[str] = None,
    ) -> List[dict]:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")
        if status and status not in {s.value for s in JobStatus}:
            raise ValidationError(f"Unknown status '{status}'")
        if scan_kind and scan_kind not in SCAN_KINDS:
            raise ValidationError(f"Unknown scanKind '{scan_kind}'")
        return [job.to_view() for job in self.store.list_jobs(limit, offset, status, scan_kind)]
