"""
Sync collaborator interface.  Approved orders leave the batch through an
OrderSink, which owns durable storage and any downstream sync.
"""
from abc import ABC, abstractmethod

from models.purchase_order import ParsedPurchaseOrder
from models.result import SyncResult


class OrderSink(ABC):

    @abstractmethod
    def sync(self, job_id: str, order: ParsedPurchaseOrder) -> SyncResult:
        """Persist/forward one approved order and report the outcome."""
