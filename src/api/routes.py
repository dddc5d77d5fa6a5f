# src/api/routes.py
from fastapi import APIRouter, Depends, Query, Request
from api.auth import require_api_key
from api.schemas import (
    CallbackRequest,
    CallbackResponse,
    ScanJobListResponse,
    ScanJobResponse,
    ScanLogResponse,
    TriggerResponse,
    TriggerScanRequest,
)
from engine.errors import NotFoundError, ScanPlatformError, ValidationError
from engine.job_manager import JobManager
from typing import Optional
import logging

router = APIRouter()


def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager


@router.post(
    "/scan/trigger",
    summary="Trigger a scan on the build runner",
    response_description="Job ID, runner build ID and runner URL",
    tags=["Scan Jobs"],
    status_code=201,
    response_model=TriggerResponse,
    responses={
        201: {"description": "Scan triggered"},
        400: {"description": "Invalid scan request"},
        401: {"description": "API key missing"},
        403: {"description": "API key invalid"},
        500: {"description": "Failed to trigger scan"},
    },
    dependencies=[Depends(require_api_key)],
)
def trigger_scan(body: TriggerScanRequest, job_manager: JobManager = Depends(get_job_manager)):
    """
    Create a scan job and start the runner build for it.
    """
    try:
        result = job_manager.trigger_scan(body.scanKind, body.parameters, body.metadata)
    except ValidationError:
        raise
    except Exception as e:
        logging.error(f"Failed to trigger scan scan_kind={body.scanKind}: {e}")
        raise ScanPlatformError("TRIGGER_FAILED", "Failed to trigger scan", status_code=500) from e
    return {"success": True, "data": result}


@router.post(
    "/scan/callback",
    summary="Receive a terminal build outcome from the runner",
    tags=["Runner"],
    response_model=CallbackResponse,
    responses={
        200: {"description": "Callback applied"},
        400: {"description": "Invalid callback payload"},
        404: {"description": "No job for this runner build"},
        500: {"description": "Failed to process callback"},
    },
)
def scan_callback(body: CallbackRequest, job_manager: JobManager = Depends(get_job_manager)):
    """
    Apply a completed/failed outcome pushed by the runner.
    """
    try:
        job_manager.handle_callback(
            body.externalId,
            body.status,
            report_url=str(body.reportUrl) if body.reportUrl else None,
            summary=body.summary,
            metadata=body.metadata,
        )
    except (ValidationError, NotFoundError):
        raise
    except Exception as e:
        logging.error(f"[external_id={body.externalId}] Failed to process callback: {e}")
        raise ScanPlatformError("CALLBACK_FAILED", "Failed to process callback", status_code=500) from e
    return {"success": True, "message": "Callback processed successfully"}


@router.get(
    "/scan/status/{job_id}",
    summary="Get scan job status",
    response_description="Full scan job record, reconciled with the runner while running",
    tags=["Scan Jobs"],
    response_model=ScanJobResponse,
    responses={
        200: {"description": "Scan job record"},
        401: {"description": "API key missing"},
        403: {"description": "API key invalid"},
        404: {"description": "Job not found"},
    },
    dependencies=[Depends(require_api_key)],
)
def get_scan_status(job_id: str, job_manager: JobManager = Depends(get_job_manager)):
    """
    Get the status of a scan job. Running jobs are checked against the runner first.
    """
    return {"success": True, "data": job_manager.get_status(job_id)}


@router.get(
    "/scan/log/{job_id}",
    summary="Get the runner console log for a scan job",
    tags=["Scan Jobs"],
    response_model=ScanLogResponse,
    responses={
        200: {"description": "Console log"},
        404: {"description": "Job not found"},
        502: {"description": "Runner unavailable"},
    },
    dependencies=[Depends(require_api_key)],
)
def get_scan_log(job_id: str, job_manager: JobManager = Depends(get_job_manager)):
    return {"success": True, "data": job_manager.get_log(job_id)}


@router.get(
    "/scan/jobs",
    summary="Query scan job history",
    response_description="Scan jobs, newest first",
    tags=["Scan Jobs"],
    response_model=ScanJobListResponse,
    dependencies=[Depends(require_api_key)],
)
def list_scan_jobs(
    limit: int = Query(20),
    offset: int = Query(0),
    status: Optional[str] = None,
    scanKind: Optional[str] = None,
    job_manager: JobManager = Depends(get_job_manager),
):
    """
    Query scan job history by status and/or scan kind.
    """
    return {"success": True, "data": job_manager.list_jobs(limit, offset, status, scanKind)}


@router.get("/health")
def health_check():
    return {"status": "ok"}
