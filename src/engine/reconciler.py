# src/engine/reconciler.py
"""
Reconciler: the scan job state machine.

    pending -> running -> completed | failed

Three sources move a job forward:

* ``mark_running`` right after the runner accepted a trigger.
* ``apply_callback`` when the runner pushes a terminal outcome. The callback is
  trusted: status and artifacts are applied as sent, last write wins.
* ``reconcile`` when a client polls. The runner is asked for the live build
  status and only SUCCESS/FAILURE move a running job; anything else, or a runner
  outage, leaves the stored record as it is.

Callbacks and polls are not serialized against each other. Both write the same
terminal value for the same build, so whichever lands second rewrites an equal
status. Store errors propagate to the caller.
"""

import logging
from typing import Any, Dict, Optional

from engine.errors import RunnerUnavailableError, ValidationError
from engine.job_store import JobStore
from engine.models import JobStatus, ScanJob, utcnow
from tools.base import FAILURE, SUCCESS, RunnerAdapter

RUNNER_TO_JOB_STATUS = {
    SUCCESS: JobStatus.COMPLETED.value,
    FAILURE: JobStatus.FAILED.value,
}


def merge_metadata(current: Optional[Dict[str, Any]], update: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not update:
        return current
    return {**(current or {}), **update}


class Reconciler:
    def __init__(self, store: JobStore, runner: RunnerAdapter):
        self.store = store
        self.runner = runner

    def mark_running(self, job: ScanJob, external_id: str) -> ScanJob:
        if job.status != JobStatus.PENDING.value:
            raise ValidationError(f"Scan job '{job.id}' is {job.status}, expected pending")
        return self.store.patch(job.id, {
            "external_id": external_id,
            "status": JobStatus.RUNNING.value,
        }, expected_status=JobStatus.PENDING.value)

    def apply_callback(
        self,
        job: ScanJob,
        status: str,
        report_url: Optional[str] = None,
        summary: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ScanJob:
        if status not in (JobStatus.COMPLETED.value, JobStatus.FAILED.value):
            raise ValidationError(f"Callback status must be 'completed' or 'failed', got '{status}'")
        if job.is_terminal and job.status != status:
            logging.warning(
                f"[job_id={job.id}] Callback overrides terminal status {job.status} with {status}"
            )
        fields: Dict[str, Any] = {"status": status, "completed_at": utcnow()}
        # Empty artifacts never erase what an earlier callback stored
        if report_url:
            fields["report_url"] = report_url
        if summary:
            fields["summary"] = summary
        if metadata:
            fields["job_metadata"] = merge_metadata(job.job_metadata, metadata)
        updated = self.store.patch(job.id, fields)
        logging.info(f"[job_id={job.id}] Applied callback status={status} external_id={job.external_id}")
        return updated

    def reconcile(self, job: ScanJob) -> ScanJob:
        if job.status != JobStatus.RUNNING.value or not job.external_id:
            return job
        try:
            build = self.runner.get_status(job.external_id)
        except RunnerUnavailableError as e:
            logging.warning(
                f"[job_id={job.id}] Could not reach runner for build {job.external_id}, "
                f"keeping status {job.status}: {e}"
            )
            return job

        target = RUNNER_TO_JOB_STATUS.get(build.status)
        if target is None or job.status == target:
            return job
        updated = self.store.patch(
            job.id,
            {"status": target, "completed_at": utcnow()},
            expected_status=JobStatus.RUNNING.value,
        )
        if updated.status != target:
            return updated
        logging.info(
            f"[job_id={job.id}] Reconciled with runner build {job.external_id}: {job.status} -> {target}"
        )
        return updated
