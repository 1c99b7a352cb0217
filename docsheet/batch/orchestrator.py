"""
Batch orchestrator.

Drives every queued document through OCR (optional) and vision extraction,
records per-document status in the DocumentQueue and merges the records
into a BatchResult in queue order.

Per document: pending -> processing -> completed | error
- OCR failure only marks ocr_state=error; extraction still runs with ""
- Any extraction failure marks the document error and contributes no rows
- The batch fails only when a non-empty queue yields zero records

Blocking OCR and HTTP calls run in worker threads via asyncio.to_thread so
the event loop stays the single writer of queue state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from docsheet.batch.headers import SOURCE_FILE_KEY
from docsheet.batch.queue import DocumentQueue
from docsheet.config import AppConfig, ExecutionMode, get_config
from docsheet.llm.client import GeminiClient
from docsheet.models.document import OCRState, ProcessingState, QueuedDocument
from docsheet.models.extraction import (
    BatchEmptyResultError,
    BatchResult,
    BatchStatus,
    ExtractedRecord,
)
from docsheet.ocr.extractor import OCRExtractor

logger = logging.getLogger(__name__)

__all__ = [
    "BatchEmptyResultError",
    "BatchInProgressError",
    "BatchOrchestrator",
]

UpdateCallback = Callable[[QueuedDocument], None]


class BatchInProgressError(Exception):
    """A batch was started while another one is still running."""
    pass


@dataclass
class DocumentOutcome:
    """What one document contributed to the batch."""
    index: int
    doc_id: str
    records: list[ExtractedRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class BatchOrchestrator:
    """
    Runs OCR and extraction for every document in a DocumentQueue.

    Only one batch may be in flight per orchestrator; the queue is locked
    for the duration so documents cannot be added or removed mid-run.
    """

    def __init__(
        self,
        queue: DocumentQueue,
        extraction_client: Optional[GeminiClient] = None,
        ocr_extractor: Optional[OCRExtractor] = None,
        config: Optional[AppConfig] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            queue: Document store to process
            extraction_client: Vision model client (Gemini by default)
            ocr_extractor: OCR adapter (built from config by default)
            config: Application configuration
        """
        self.queue = queue
        self.config = config or get_config()
        self.client = extraction_client or GeminiClient(self.config.gemini)
        self.ocr = ocr_extractor or OCRExtractor(self.config)

        self._running = False
        self._current_index = -1
        self._on_update: Optional[UpdateCallback] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_index(self) -> int:
        """Index of the document being worked on in sequential mode, -1 when idle."""
        return self._current_index

    async def run(
        self,
        mode: Optional[ExecutionMode] = None,
        ocr_enabled: Optional[bool] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> BatchResult:
        """
        Process every queued document and merge the results.

        Args:
            mode: Sequential or parallel execution (config default if omitted)
            ocr_enabled: Run OCR before extraction (config default if omitted)
            on_update: Called with the new document snapshot after each state change

        Returns:
            BatchResult with records in queue order

        Raises:
            BatchInProgressError: If a batch is already running
            MissingCredentialError: If no API key is configured; nothing is processed
        """
        if self._running:
            raise BatchInProgressError("A batch is already being processed")

        mode = mode or self.config.execution_mode
        if ocr_enabled is None:
            ocr_enabled = self.config.ocr_enabled

        self.client.check_credentials()

        documents = self.queue.documents
        if not documents:
            logger.info("Batch requested with an empty queue, nothing to do")
            return BatchResult(status=BatchStatus.SKIPPED, message="No documents queued")

        self._running = True
        self._on_update = on_update
        logger.info(
            f"Starting {mode.value} batch of {len(documents)} document(s), "
            f"OCR {'enabled' if ocr_enabled else 'disabled'}"
        )

        try:
            with self.queue.locked():
                self.queue.reset_states()

                if mode == ExecutionMode.PARALLEL:
                    outcomes = await asyncio.gather(
                        *(self._process_document(i, doc, ocr_enabled) for i, doc in enumerate(documents))
                    )
                else:
                    outcomes = []
                    for i, doc in enumerate(documents):
                        self._current_index = i
                        outcomes.append(await self._process_document(i, doc, ocr_enabled))
        finally:
            self._running = False
            self._current_index = -1
            self._on_update = None

        return self._merge(outcomes)

    async def _process_document(
        self,
        index: int,
        document: QueuedDocument,
        ocr_enabled: bool,
    ) -> DocumentOutcome:
        """Run one document through OCR and extraction; never raises."""
        doc_id = document.id
        self._update(doc_id, processing_state=ProcessingState.PROCESSING)

        if ocr_enabled:
            ocr_text = await self._run_ocr(document)
        else:
            ocr_text = ""
            self._update(doc_id, ocr_state=OCRState.SKIPPED)

        try:
            records = await asyncio.to_thread(
                self.client.extract,
                document.content,
                document.media_type,
                ocr_text,
            )
        except Exception as e:
            logger.error(f"Extraction failed for {document.display_name}: {e}", exc_info=True)
            self._update(
                doc_id,
                processing_state=ProcessingState.ERROR,
                error_message=str(e) or type(e).__name__,
            )
            return DocumentOutcome(index=index, doc_id=doc_id, error=str(e) or type(e).__name__)

        if self.config.tag_source_file:
            records = [self._tag_source(record, document.display_name) for record in records]

        self._update(
            doc_id,
            processing_state=ProcessingState.COMPLETED,
            record_count=len(records),
        )
        logger.info(f"{document.display_name}: {len(records)} record(s) extracted")
        return DocumentOutcome(index=index, doc_id=doc_id, records=records)

    async def _run_ocr(self, document: QueuedDocument) -> str:
        """OCR one document; failures downgrade ocr_state only."""
        self._update(document.id, ocr_state=OCRState.RUNNING)

        try:
            result = await asyncio.to_thread(self.ocr.extract, document.content, document.media_type)
        except Exception as e:
            logger.warning(f"OCR step failed for {document.display_name}, continuing without it: {e}")
            self._update(document.id, ocr_state=OCRState.ERROR, ocr_text="")
            return ""

        if result.failed:
            logger.warning(
                f"OCR step failed for {document.display_name}, continuing without it: "
                f"{'; '.join(result.errors)}"
            )
            self._update(document.id, ocr_state=OCRState.ERROR, ocr_text="")
            return ""

        self._update(document.id, ocr_state=OCRState.DONE, ocr_text=result.text)
        return result.text

    def _update(self, doc_id: str, **changes) -> None:
        document = self.queue.update(doc_id, **changes)
        logger.debug(
            f"{document.display_name}: processing={document.processing_state.value} "
            f"ocr={document.ocr_state.value}"
        )
        if self._on_update is not None:
            self._on_update(document)

    @staticmethod
    def _tag_source(record: ExtractedRecord, display_name: str) -> ExtractedRecord:
        tagged = dict(record)
        tagged[SOURCE_FILE_KEY] = display_name
        return tagged

    def _merge(self, outcomes: list[DocumentOutcome]) -> BatchResult:
        """Concatenate outcomes in queue order and decide the batch status."""
        result = BatchResult()

        for outcome in sorted(outcomes, key=lambda o: o.index):
            if outcome.succeeded:
                result.succeeded.append(outcome.doc_id)
                result.records.extend(outcome.records)
            else:
                result.failed.append(outcome.doc_id)
                result.errors[outcome.doc_id] = outcome.error

        if result.records:
            result.status = BatchStatus.SUCCESS
            result.message = (
                f"Extracted {len(result.records)} row(s) from "
                f"{len(result.succeeded)} of {result.document_count} document(s)"
            )
            if result.failed:
                result.message += f"; {len(result.failed)} failed"
        else:
            result.status = BatchStatus.FAILED
            result.message = (
                f"No data could be extracted from {result.document_count} document(s). "
                "Try higher-quality scans or different documents."
            )

        log = logger.info if result.success else logger.error
        log(f"Batch finished: {result.message}")
        return result
