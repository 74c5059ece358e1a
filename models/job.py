from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .purchase_order import ParsedPurchaseOrder


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class UploadedFile(BaseModel):
    """
    File reference handed over by the upload transport.
    binary_ref is opaque to the pipeline; only extractors interpret it
    (a filesystem path for the bundled extractors).
    """
    name: str
    size: int = 0
    mime_type: str = "application/octet-stream"
    binary_ref: Any = None


class UploadedFileJob(BaseModel):
    """One uploaded file and its processing lifecycle inside a batch."""
    id: str
    file: UploadedFile
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    parsed_data: Optional[ParsedPurchaseOrder] = None   # set on completion only
    error: Optional[str] = None                         # set on failure only
    selected: bool = False
    processing_started: Optional[datetime] = None
    processing_completed: Optional[datetime] = None
