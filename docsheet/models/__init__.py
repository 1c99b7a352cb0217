"""Data models for queued documents, extraction responses and batch results."""

from .document import OCRState, ProcessingState, QueuedDocument
from .extraction import BatchResult, BatchStatus, ExtractedRecord, ExtractionResponse

__all__ = [
    "BatchResult",
    "BatchStatus",
    "ExtractedRecord",
    "ExtractionResponse",
    "OCRState",
    "ProcessingState",
    "QueuedDocument",
]
