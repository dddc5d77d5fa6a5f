# src/api/schemas.py
from pydantic import AliasChoices, AnyUrl, BaseModel, Field
from typing import Any, Dict, List, Optional


class TriggerScanRequest(BaseModel):
    scanKind: str = Field(..., description="Scan kind: SAST, FOSS or DAST")
    parameters: Dict[str, Any] = Field(..., description="Build parameters forwarded to the runner")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Free-form metadata stored with the job")


class CallbackRequest(BaseModel):
    # Runner pipelines post their build number as jobId
    externalId: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("externalId", "jobId"),
        description="Runner build identifier",
    )
    status: str = Field(..., description="Terminal status: completed or failed")
    reportUrl: Optional[AnyUrl] = None
    summary: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TriggeredScan(BaseModel):
    jobId: str
    externalId: Optional[str] = None
    status: str
    scanKind: str
    url: Optional[str] = None


class ScanJobView(BaseModel):
    id: str
    externalId: Optional[str] = None
    scanKind: str
    status: str
    parameters: Dict[str, Any] = {}
    reportUrl: Optional[str] = None
    summary: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    completedAt: Optional[str] = None


class ScanLog(BaseModel):
    jobId: str
    externalId: Optional[str] = None
    status: str
    log: str


class TriggerResponse(BaseModel):
    success: bool = True
    data: TriggeredScan


class CallbackResponse(BaseModel):
    success: bool = True
    message: str = "Callback processed successfully"


class ScanJobResponse(BaseModel):
    success: bool = True
    data: ScanJobView


class ScanJobListResponse(BaseModel):
    success: bool = True
    data: List[ScanJobView]


class ScanLogResponse(BaseModel):
    success: bool = True
    data: ScanLog
