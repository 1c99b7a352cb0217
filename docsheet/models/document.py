"""
Queued document model.

A QueuedDocument is an immutable snapshot; the DocumentQueue replaces the
entry for a given id whenever its status changes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ProcessingState(Enum):
    """Extraction status of a queued document."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingState.COMPLETED, ProcessingState.ERROR)


class OCRState(Enum):
    """OCR status of a queued document, independent of ProcessingState."""
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class QueuedDocument:
    """A document waiting in (or processed from) the batch queue."""
    id: str
    content: bytes = field(repr=False)
    media_type: str
    display_name: str
    processing_state: ProcessingState = ProcessingState.PENDING
    ocr_state: OCRState = OCRState.IDLE
    ocr_text: str = field(default="", repr=False)
    error_message: str | None = None
    record_count: int = 0
    added_at: datetime = field(default_factory=datetime.now)

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def is_pdf(self) -> bool:
        return self.media_type == "application/pdf"

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")
