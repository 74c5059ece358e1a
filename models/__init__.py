from .pricing import (
    MarkupType, RoundingStrategy, RoundingTarget,
    PricingConditions, PricingRule, CategoryMapping, PricedItem,
)
from .purchase_order import ParsedItem, ParsedPurchaseOrder
from .job import JobStatus, UploadedFile, UploadedFileJob
from .settings import BulkProcessingConfig
from .result import BatchStats, RejectedFile, AddFilesResult, SyncResult, ApprovalResult

__all__ = [
    "MarkupType", "RoundingStrategy", "RoundingTarget",
    "PricingConditions", "PricingRule", "CategoryMapping", "PricedItem",
    "ParsedItem", "ParsedPurchaseOrder",
    "JobStatus", "UploadedFile", "UploadedFileJob",
    "BulkProcessingConfig",
    "BatchStats", "RejectedFile", "AddFilesResult", "SyncResult", "ApprovalResult",
]
