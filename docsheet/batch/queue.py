"""
Document queue for batch extraction.

The queue is the single owner of QueuedDocument entries. Every status change
goes through update(), which replaces exactly one entry by id, so concurrent
tasks in a parallel batch never overwrite each other's fields.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, Optional

from docsheet.config import AppConfig, get_config
from docsheet.models.document import OCRState, ProcessingState, QueuedDocument

logger = logging.getLogger(__name__)


class UploadRejectedError(Exception):
    """File refused at the upload or capture boundary."""

    def __init__(self, display_name: str, reason: str):
        self.display_name = display_name
        self.reason = reason
        super().__init__(f"{display_name}: {reason}")


class QueueLockedError(Exception):
    """Queue mutation attempted while a batch is in flight."""
    pass


class DocumentQueue:
    """
    Ordered store of documents awaiting extraction.

    Documents keep insertion order. While locked (a batch is running)
    documents cannot be added, removed or cleared; only per-document
    status updates are accepted.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or get_config()
        self._documents: dict[str, QueuedDocument] = {}
        self._locked = False

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[QueuedDocument]:
        return iter(list(self._documents.values()))

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    @property
    def documents(self) -> tuple[QueuedDocument, ...]:
        """Snapshot of the queue in insertion order."""
        return tuple(self._documents.values())

    @property
    def is_locked(self) -> bool:
        return self._locked

    def get(self, doc_id: str) -> QueuedDocument:
        """Return the current entry for doc_id (KeyError if unknown)."""
        return self._documents[doc_id]

    def validate_upload(self, display_name: str, content: bytes, media_type: str) -> None:
        """
        Check a file against the media-type allow-list and size limit.

        Raises:
            UploadRejectedError: If either check fails
        """
        if media_type not in self.config.supported_media_types:
            raise UploadRejectedError(
                display_name,
                f"unsupported file type '{media_type or 'unknown'}' "
                f"(allowed: {', '.join(self.config.supported_media_types)})",
            )

        limit = self.config.max_file_size_bytes
        if len(content) > limit:
            raise UploadRejectedError(
                display_name,
                f"file is {len(content) / (1024 * 1024):.1f} MiB, "
                f"limit is {limit / (1024 * 1024):.0f} MiB",
            )

    def add_upload(self, display_name: str, content: bytes, media_type: str) -> QueuedDocument:
        """
        Admit an uploaded file to the queue.

        Args:
            display_name: Original filename
            content: Raw file bytes
            media_type: Declared MIME type

        Returns:
            The new pending QueuedDocument

        Raises:
            UploadRejectedError: On unsupported type or oversized payload
            QueueLockedError: While a batch is running
        """
        self._ensure_unlocked("add documents")
        self.validate_upload(display_name, content, media_type)

        document = QueuedDocument(
            id=uuid.uuid4().hex[:12],
            content=bytes(content),
            media_type=media_type,
            display_name=display_name,
        )
        self._documents[document.id] = document
        logger.info(f"Queued {display_name} ({media_type}, {len(content):,} bytes) as {document.id}")
        return document

    def add_capture(self, content: bytes, captured_at: Optional[datetime] = None) -> QueuedDocument:
        """Admit a camera frame; captures are always JPEG with a timestamp name."""
        captured_at = captured_at or datetime.now()
        display_name = f"Capture_{captured_at.strftime('%Y-%m-%d_%H-%M-%S')}.jpg"
        return self.add_upload(display_name, content, "image/jpeg")

    def remove(self, doc_id: str) -> QueuedDocument:
        """Remove a document by id and return it."""
        self._ensure_unlocked("remove documents")
        document = self._documents.pop(doc_id)
        logger.info(f"Removed {document.display_name} from queue")
        return document

    def clear(self) -> None:
        """Drop every queued document."""
        self._ensure_unlocked("reset the queue")
        self._documents.clear()
        logger.info("Queue cleared")

    def update(self, doc_id: str, **changes) -> QueuedDocument:
        """
        Replace the entry for doc_id with a copy carrying the given changes.

        Only the matching entry is touched; unknown field names raise TypeError.
        """
        document = replace(self._documents[doc_id], **changes)
        self._documents[doc_id] = document
        return document

    def reset_states(self) -> None:
        """Return every document to pending/idle ahead of a new run."""
        for doc_id in list(self._documents):
            self.update(
                doc_id,
                processing_state=ProcessingState.PENDING,
                ocr_state=OCRState.IDLE,
                ocr_text="",
                error_message=None,
                record_count=0,
            )

    @contextmanager
    def locked(self) -> Iterator["DocumentQueue"]:
        """Hold the queue read-only for the duration of a batch."""
        if self._locked:
            raise QueueLockedError("Queue is already locked by a running batch")
        self._locked = True
        try:
            yield self
        finally:
            self._locked = False

    def _ensure_unlocked(self, action: str) -> None:
        if self._locked:
            raise QueueLockedError(f"Cannot {action} while a batch is running")
