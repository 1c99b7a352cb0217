from datetime import datetime

import pytest

from docsheet.batch.queue import DocumentQueue, QueueLockedError, UploadRejectedError
from docsheet.config import AppConfig
from docsheet.models.document import OCRState, ProcessingState


def test_add_upload_creates_pending_document(queue):
    doc = queue.add_upload("invoice.pdf", b"%PDF-1.4", "application/pdf")

    assert doc.processing_state == ProcessingState.PENDING
    assert doc.ocr_state == OCRState.IDLE
    assert doc.display_name == "invoice.pdf"
    assert doc.size_bytes == 8
    assert doc.is_pdf
    assert doc.id in queue
    assert len(queue) == 1


def test_documents_keep_insertion_order(queue):
    names = ["c.png", "a.png", "b.png"]
    for name in names:
        queue.add_upload(name, name.encode(), "image/png")

    assert [d.display_name for d in queue.documents] == names


def test_unsupported_type_is_rejected(queue):
    with pytest.raises(UploadRejectedError) as exc_info:
        queue.add_upload("notes.txt", b"hello", "text/plain")

    assert exc_info.value.display_name == "notes.txt"
    assert "unsupported" in exc_info.value.reason
    assert len(queue) == 0


def test_file_at_limit_is_accepted_and_over_limit_rejected():
    queue = DocumentQueue(AppConfig(max_file_size_bytes=100))

    queue.add_upload("ok.png", b"x" * 100, "image/png")
    with pytest.raises(UploadRejectedError):
        queue.add_upload("big.png", b"x" * 101, "image/png")

    assert len(queue) == 1


def test_default_limit_is_ten_mebibytes(queue):
    with pytest.raises(UploadRejectedError):
        queue.add_upload("huge.jpg", b"x" * (10 * 1024 * 1024 + 1), "image/jpeg")


def test_capture_gets_timestamped_jpeg_name(queue):
    doc = queue.add_capture(b"\xff\xd8\xff", captured_at=datetime(2024, 3, 9, 14, 5, 7))

    assert doc.display_name == "Capture_2024-03-09_14-05-07.jpg"
    assert doc.media_type == "image/jpeg"


def test_capture_goes_through_size_gate():
    queue = DocumentQueue(AppConfig(max_file_size_bytes=10))

    with pytest.raises(UploadRejectedError):
        queue.add_capture(b"x" * 11)


def test_update_replaces_only_the_matching_document(queue):
    first = queue.add_upload("a.png", b"a", "image/png")
    second = queue.add_upload("b.png", b"b", "image/png")

    queue.update(first.id, processing_state=ProcessingState.ERROR, error_message="boom")

    assert queue.get(first.id).processing_state == ProcessingState.ERROR
    assert queue.get(first.id).error_message == "boom"
    assert queue.get(second.id) == second
    assert first.processing_state == ProcessingState.PENDING


def test_reset_states_returns_documents_to_pending(queue):
    doc = queue.add_upload("a.png", b"a", "image/png")
    queue.update(doc.id, processing_state=ProcessingState.COMPLETED, ocr_state=OCRState.DONE, ocr_text="x", record_count=3)

    queue.reset_states()

    reset = queue.get(doc.id)
    assert reset.processing_state == ProcessingState.PENDING
    assert reset.ocr_state == OCRState.IDLE
    assert reset.ocr_text == ""
    assert reset.record_count == 0


def test_locked_queue_refuses_structural_changes(queue):
    doc = queue.add_upload("a.png", b"a", "image/png")

    with queue.locked():
        assert queue.is_locked
        with pytest.raises(QueueLockedError):
            queue.add_upload("b.png", b"b", "image/png")
        with pytest.raises(QueueLockedError):
            queue.remove(doc.id)
        with pytest.raises(QueueLockedError):
            queue.clear()
        with pytest.raises(QueueLockedError):
            with queue.locked():
                pass
        queue.update(doc.id, processing_state=ProcessingState.PROCESSING)

    assert not queue.is_locked
    assert queue.get(doc.id).processing_state == ProcessingState.PROCESSING


def test_remove_and_clear(queue):
    first = queue.add_upload("a.png", b"a", "image/png")
    queue.add_upload("b.png", b"b", "image/png")

    removed = queue.remove(first.id)
    assert removed.display_name == "a.png"
    assert len(queue) == 1

    queue.clear()
    assert len(queue) == 0
