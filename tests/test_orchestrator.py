import threading

import pytest

from docsheet.batch.orchestrator import BatchInProgressError, BatchOrchestrator
from docsheet.batch.queue import QueueLockedError
from docsheet.config import ExecutionMode
from docsheet.llm.exceptions import LLMConnectionError, MissingCredentialError
from docsheet.models.document import OCRState, ProcessingState
from docsheet.models.extraction import BatchEmptyResultError, BatchStatus
from tests.conftest import FakeExtractionClient, FakeOCR, rows_reply


def make_orchestrator(queue, app_config, client, ocr=None):
    return BatchOrchestrator(queue, extraction_client=client, ocr_extractor=ocr or FakeOCR(), config=app_config)


@pytest.mark.anyio
async def test_empty_queue_is_skipped(queue, app_config):
    client = FakeExtractionClient()
    result = await make_orchestrator(queue, app_config, client).run()

    assert result.status == BatchStatus.SKIPPED
    assert result.records == []
    assert client.calls == []
    result.raise_for_status()


@pytest.mark.anyio
async def test_sequential_batch_merges_in_queue_order(queue, app_config):
    first = queue.add_upload("a.png", b"doc-a", "image/png")
    second = queue.add_upload("b.pdf", b"doc-b", "application/pdf")
    client = FakeExtractionClient(
        replies={
            b"doc-a": rows_reply({"Item": "Bolt", "Qty": 2}, {"Item": "Nut", "Qty": 5}),
            b"doc-b": rows_reply({"Item": "Washer", "Qty": 1}),
        }
    )

    result = await make_orchestrator(queue, app_config, client).run(mode=ExecutionMode.SEQUENTIAL)

    assert result.status == BatchStatus.SUCCESS
    assert [r["Item"] for r in result.records] == ["Bolt", "Nut", "Washer"]
    assert [r["Source_File"] for r in result.records] == ["a.png", "a.png", "b.pdf"]
    assert [call[0] for call in client.calls] == [b"doc-a", b"doc-b"]
    assert result.succeeded == [first.id, second.id]
    assert queue.get(first.id).record_count == 2
    assert all(d.processing_state == ProcessingState.COMPLETED for d in queue)


@pytest.mark.anyio
async def test_parallel_batch_keeps_queue_order(queue, app_config):
    first = queue.add_upload("slow.png", b"slow", "image/png")
    second = queue.add_upload("fast.png", b"fast", "image/png")
    third = queue.add_upload("broken.png", b"broken", "image/png")
    # All three calls must be in flight at once to pass the barrier
    client = FakeExtractionClient(
        replies={
            b"slow": rows_reply({"Name": "slow-1"}, {"Name": "slow-2"}),
            b"fast": rows_reply({"Name": "fast"}),
            b"broken": LLMConnectionError("Gemini returned status 503"),
        },
        delays={b"slow": 0.3},
        barrier=threading.Barrier(3, timeout=5),
    )
    completed = []

    def on_update(document):
        if document.processing_state.is_terminal:
            completed.append(document.id)

    result = await make_orchestrator(queue, app_config, client).run(mode=ExecutionMode.PARALLEL, on_update=on_update)

    assert completed.index(second.id) < completed.index(first.id)
    assert result.status == BatchStatus.SUCCESS
    assert [r["Name"] for r in result.records] == ["slow-1", "slow-2", "fast"]
    assert result.succeeded == [first.id, second.id]
    assert result.failed == [third.id]
    assert queue.get(first.id).processing_state == ProcessingState.COMPLETED
    assert queue.get(second.id).processing_state == ProcessingState.COMPLETED
    assert queue.get(third.id).processing_state == ProcessingState.ERROR


@pytest.mark.anyio
async def test_single_failure_does_not_abort_batch(queue, app_config):
    good = queue.add_upload("good.png", b"good", "image/png")
    bad = queue.add_upload("bad.png", b"bad", "image/png")
    client = FakeExtractionClient(
        replies={
            b"good": rows_reply({"Total": "10.00"}),
            b"bad": LLMConnectionError("Gemini request timed out"),
        }
    )

    result = await make_orchestrator(queue, app_config, client).run()

    assert result.status == BatchStatus.SUCCESS
    assert len(result.records) == 1
    assert result.failed == [bad.id]
    assert "timed out" in result.errors[bad.id]
    assert "1 failed" in result.message
    assert queue.get(good.id).processing_state == ProcessingState.COMPLETED
    assert queue.get(bad.id).processing_state == ProcessingState.ERROR
    assert queue.get(bad.id).error_message == "Gemini request timed out"


@pytest.mark.anyio
async def test_unparseable_reply_marks_document_error(queue, app_config):
    doc = queue.add_upload("scan.png", b"scan", "image/png")
    client = FakeExtractionClient(replies={b"scan": "not json"})

    result = await make_orchestrator(queue, app_config, client).run()

    assert queue.get(doc.id).processing_state == ProcessingState.ERROR
    assert result.status == BatchStatus.FAILED


@pytest.mark.anyio
async def test_all_documents_failing_fails_batch(queue, app_config):
    queue.add_upload("a.png", b"a", "image/png")
    queue.add_upload("b.png", b"b", "image/png")
    client = FakeExtractionClient(replies={b"a": "not json", b"b": rows_reply()})

    result = await make_orchestrator(queue, app_config, client).run()

    assert result.status == BatchStatus.FAILED
    assert result.records == []
    with pytest.raises(BatchEmptyResultError):
        result.raise_for_status()


@pytest.mark.anyio
async def test_ocr_failure_still_runs_extraction(queue, app_config):
    doc = queue.add_upload("photo.jpg", b"photo", "image/jpeg")
    client = FakeExtractionClient(replies={b"photo": rows_reply({"Vendor": "Acme"})})
    ocr = FakeOCR(failures={b"photo"})

    result = await make_orchestrator(queue, app_config, client, ocr).run(ocr_enabled=True)

    stored = queue.get(doc.id)
    assert stored.ocr_state == OCRState.ERROR
    assert stored.ocr_text == ""
    assert stored.processing_state == ProcessingState.COMPLETED
    assert client.calls == [(b"photo", "image/jpeg", "")]
    assert result.records == [{"Vendor": "Acme", "Source_File": "photo.jpg"}]


@pytest.mark.anyio
async def test_ocr_exception_still_runs_extraction(queue, app_config):
    doc = queue.add_upload("photo.jpg", b"photo", "image/jpeg")
    client = FakeExtractionClient(replies={b"photo": rows_reply({"Vendor": "Acme"})})
    ocr = FakeOCR(texts={b"photo": "stale"}, crashes={b"photo"})

    result = await make_orchestrator(queue, app_config, client, ocr).run(ocr_enabled=True)

    stored = queue.get(doc.id)
    assert stored.ocr_state == OCRState.ERROR
    assert stored.ocr_text == ""
    assert stored.processing_state == ProcessingState.COMPLETED
    assert client.calls == [(b"photo", "image/jpeg", "")]
    assert result.success


@pytest.mark.anyio
async def test_ocr_text_is_forwarded_to_extraction(queue, app_config):
    doc = queue.add_upload("invoice.pdf", b"invoice", "application/pdf")
    client = FakeExtractionClient(replies={b"invoice": rows_reply({"Total": "5"})})
    ocr = FakeOCR(texts={b"invoice": "--- Page 1 ---\nTotal 5"})

    await make_orchestrator(queue, app_config, client, ocr).run(ocr_enabled=True)

    assert client.calls[0][2] == "--- Page 1 ---\nTotal 5"
    assert queue.get(doc.id).ocr_state == OCRState.DONE
    assert queue.get(doc.id).ocr_text == "--- Page 1 ---\nTotal 5"


@pytest.mark.anyio
async def test_ocr_disabled_skips_ocr(queue, app_config):
    doc = queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(replies={b"a": rows_reply({"x": 1})})
    ocr = FakeOCR(texts={b"a": "text"})

    await make_orchestrator(queue, app_config, client, ocr).run(ocr_enabled=False)

    assert ocr.calls == []
    assert queue.get(doc.id).ocr_state == OCRState.SKIPPED
    assert client.calls[0][2] == ""


@pytest.mark.anyio
async def test_missing_credential_blocks_batch(queue, app_config):
    doc = queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(api_key="")
    ocr = FakeOCR()

    with pytest.raises(MissingCredentialError):
        await make_orchestrator(queue, app_config, client, ocr).run()

    assert client.calls == []
    assert ocr.calls == []
    assert queue.get(doc.id).processing_state == ProcessingState.PENDING
    assert not queue.is_locked


@pytest.mark.anyio
async def test_queue_is_locked_while_running(queue, app_config):
    queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(replies={b"a": rows_reply({"x": 1})})
    orchestrator = make_orchestrator(queue, app_config, client)
    seen = []

    def on_update(document):
        if document.processing_state == ProcessingState.PROCESSING and not seen:
            seen.append(orchestrator.is_running)
            with pytest.raises(QueueLockedError):
                queue.add_upload("late.png", b"late", "image/png")

    result = await orchestrator.run(on_update=on_update)

    assert seen == [True]
    assert result.success
    assert not orchestrator.is_running
    assert orchestrator.current_index == -1
    assert len(queue) == 1


@pytest.mark.anyio
async def test_run_rejected_when_already_running(queue, app_config):
    queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(replies={b"a": rows_reply({"x": 1})})
    orchestrator = make_orchestrator(queue, app_config, client)
    orchestrator._running = True

    with pytest.raises(BatchInProgressError):
        await orchestrator.run()


@pytest.mark.anyio
async def test_on_update_reports_every_transition(queue, app_config):
    doc = queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(replies={b"a": rows_reply({"x": 1})})
    states = []

    await make_orchestrator(queue, app_config, client).run(
        ocr_enabled=True,
        on_update=lambda d: states.append((d.id, d.processing_state, d.ocr_state)),
    )

    assert states == [
        (doc.id, ProcessingState.PROCESSING, OCRState.IDLE),
        (doc.id, ProcessingState.PROCESSING, OCRState.RUNNING),
        (doc.id, ProcessingState.PROCESSING, OCRState.DONE),
        (doc.id, ProcessingState.COMPLETED, OCRState.DONE),
    ]


@pytest.mark.anyio
async def test_source_file_tagging_can_be_disabled(queue, app_config):
    app_config.tag_source_file = False
    queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(replies={b"a": rows_reply({"x": 1})})

    result = await make_orchestrator(queue, app_config, client).run()

    assert result.records == [{"x": 1}]


@pytest.mark.anyio
async def test_rerun_resets_previous_states(queue, app_config):
    doc = queue.add_upload("a.png", b"a", "image/png")
    client = FakeExtractionClient(replies={b"a": "not json"})
    orchestrator = make_orchestrator(queue, app_config, client)

    await orchestrator.run()
    assert queue.get(doc.id).error_message

    client.replies[b"a"] = rows_reply({"x": 1})
    result = await orchestrator.run()

    assert result.success
    assert queue.get(doc.id).error_message is None
    assert queue.get(doc.id).processing_state == ProcessingState.COMPLETED
