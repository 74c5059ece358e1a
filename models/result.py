from pydantic import BaseModel, Field
from typing import Optional, List, Dict

from .job import UploadedFile


class BatchStats(BaseModel):
    """
    Live batch summary.  Always derived from the current job collection;
    never stored.
    """
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    paused: int = 0
    total_value: float = 0.0              # over jobs with parsed data
    total_items: float = 0                # over jobs with parsed data
    average_confidence: float = 0.0       # over completed jobs; 0 if none


class RejectedFile(BaseModel):
    """A file the batch declined to queue, with the reason."""
    file: UploadedFile
    reason: str


class AddFilesResult(BaseModel):
    """Outcome of add_files(): ids of queued jobs plus anything turned away."""
    added: List[str] = Field(default_factory=list)
    rejected: List[RejectedFile] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Per-order response from a sync collaborator."""
    ok: bool
    reference: Optional[str] = None       # sink-side id, e.g. DB row or HTTP status
    error: Optional[str] = None


class ApprovalResult(BaseModel):
    """
    Outcome of approve_selected().

    noop is True when no job was both selected and completed; that is a
    benign condition, reported through message rather than raised.
    """
    noop: bool = False
    approved: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)   # job id -> sync error
    message: str = ""
