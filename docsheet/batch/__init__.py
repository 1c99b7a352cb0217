"""Batch pipeline: document queue, orchestration and header reconciliation."""

from .headers import HeaderMapping, apply_mapping, derive_headers
from .orchestrator import BatchInProgressError, BatchOrchestrator
from .queue import DocumentQueue, QueueLockedError, UploadRejectedError

__all__ = [
    "BatchInProgressError",
    "BatchOrchestrator",
    "DocumentQueue",
    "HeaderMapping",
    "QueueLockedError",
    "UploadRejectedError",
    "apply_mapping",
    "derive_headers",
]
