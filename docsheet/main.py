"""
Docsheet - Main Streamlit UI

Turns scanned documents into spreadsheet rows using an optional OCR text
layer and a Gemini vision model, with export to Excel.

Features:
- Multi-file upload (PDF, PNG, JPEG, WEBP) and camera capture
- Per-document OCR and extraction status
- Sequential or parallel batch processing
- Column header renaming
- Excel download
"""

import asyncio
import logging
import sys
from pathlib import Path

import pandas as pd
import streamlit as st

# Add project root to path when launched with `streamlit run docsheet/main.py`
sys.path.insert(0, str(Path(__file__).parent.parent))

from docsheet.batch.headers import HeaderMapping, derive_headers
from docsheet.batch.orchestrator import BatchInProgressError, BatchOrchestrator
from docsheet.batch.queue import DocumentQueue, QueueLockedError, UploadRejectedError
from docsheet.config import (
    ExecutionMode,
    HeaderStrategy,
    PreprocessingLevel,
    get_config,
    validate_system_requirements,
)
from docsheet.export.excel import XLSX_MIME_TYPE, ExcelExporter
from docsheet.llm.client import create_client
from docsheet.llm.exceptions import MissingCredentialError
from docsheet.models.document import OCRState, ProcessingState
from docsheet.models.extraction import BatchEmptyResultError, BatchStatus
from docsheet.ocr.extractor import OCRExtractor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_ICONS = {
    ProcessingState.PENDING: "⏳",
    ProcessingState.PROCESSING: "🔄",
    ProcessingState.COMPLETED: "✅",
    ProcessingState.ERROR: "❌",
}

OCR_BADGES = {
    OCRState.RUNNING: "OCR running",
    OCRState.DONE: "OCR ready",
    OCRState.ERROR: "OCR failed",
    OCRState.SKIPPED: "OCR skipped",
}


def init_session_state():
    """Initialize Streamlit session state."""
    if "config" not in st.session_state:
        st.session_state.config = get_config()

    if "queue" not in st.session_state:
        st.session_state.queue = DocumentQueue(st.session_state.config)

    if "orchestrator" not in st.session_state:
        st.session_state.orchestrator = None

    if "batch_result" not in st.session_state:
        st.session_state.batch_result = None

    if "header_mapping" not in st.session_state:
        st.session_state.header_mapping = None

    if "mapping_strategy" not in st.session_state:
        st.session_state.mapping_strategy = None

    if "seen_file_ids" not in st.session_state:
        st.session_state.seen_file_ids = set()

    if "system_validated" not in st.session_state:
        st.session_state.system_validated = False

    if "validation_results" not in st.session_state:
        st.session_state.validation_results = None


def clear_results():
    """Forget the current batch result and header mapping."""
    st.session_state.batch_result = None
    st.session_state.header_mapping = None
    st.session_state.mapping_strategy = None


def reset_header_mapping(records, strategy: HeaderStrategy):
    """Start an identity header mapping for the current column strategy."""
    headers = derive_headers(records, strategy)
    st.session_state.header_mapping = HeaderMapping.identity(headers)
    st.session_state.mapping_strategy = strategy


def current_header_mapping(result) -> HeaderMapping:
    """Header mapping for result, rebuilt if the column strategy changed since it was made."""
    strategy = st.session_state.config.header_strategy
    if strategy != st.session_state.mapping_strategy:
        # Column set changed in the sidebar; renames start over
        reset_header_mapping(result.records, strategy)
    return st.session_state.header_mapping


def validate_system():
    """Validate system requirements on startup."""
    if not st.session_state.system_validated:
        with st.spinner("Validating system requirements..."):
            st.session_state.validation_results = validate_system_requirements()
            st.session_state.system_validated = True

    return st.session_state.validation_results


def show_validation_status():
    """Display system validation status."""
    results = st.session_state.validation_results
    if not results:
        return

    if not results["tesseract"]["installed"]:
        st.warning(
            "⚠️ **Tesseract not found.** Image OCR will be skipped; PDF text layers "
            "and vision extraction still work.\n\n"
            "Install with:\n"
            "- macOS: `brew install tesseract`\n"
            "- Ubuntu: `sudo apt install tesseract-ocr`"
        )

    if not results["python_deps"]["installed"]:
        st.error(f"⚠️ {results['python_deps']['message']}")


def render_sidebar():
    """Render the settings sidebar."""
    config = st.session_state.config
    locked = st.session_state.queue.is_locked

    with st.sidebar:
        st.header("⚙️ Settings")

        st.subheader("Gemini")

        api_key = st.text_input(
            "API Key",
            value=config.gemini.api_key or "",
            type="password",
            help="Your Gemini API key (or set GEMINI_API_KEY in .env)",
            disabled=locked,
        )
        config.gemini.api_key = api_key

        config.gemini.model = st.text_input(
            "Model",
            value=config.gemini.model,
            help="e.g., gemini-2.5-pro",
            disabled=locked,
        )

        is_valid, message = config.gemini.validate_api_key()
        if is_valid:
            st.success("✅ Gemini API configured")
        else:
            st.warning("⚠️ Gemini API key not set")

        st.divider()

        st.subheader("Processing")

        config.ocr_enabled = st.checkbox(
            "Run OCR before extraction",
            value=config.ocr_enabled,
            help="Adds a text layer to cross-check the vision model",
            disabled=locked,
        )

        mode_labels = {
            ExecutionMode.SEQUENTIAL: "Sequential (one at a time)",
            ExecutionMode.PARALLEL: "Parallel (all at once)",
        }
        config.execution_mode = st.radio(
            "Execution",
            options=list(mode_labels),
            index=list(mode_labels).index(config.execution_mode),
            format_func=lambda x: mode_labels[x],
            disabled=locked,
        )

        level_labels = {
            PreprocessingLevel.NONE: "None (fastest)",
            PreprocessingLevel.LIGHT: "Light (contrast)",
            PreprocessingLevel.STANDARD: "Standard (for poor scans)",
        }
        config.preprocessing_level = st.selectbox(
            "Image Preprocessing",
            options=list(level_labels),
            index=list(level_labels).index(config.preprocessing_level),
            format_func=lambda x: level_labels[x],
            disabled=locked or not config.ocr_enabled,
        )

        config.rasterize_scanned_pdf_pages = st.checkbox(
            "OCR scanned PDF pages",
            value=config.rasterize_scanned_pdf_pages,
            help="Rasterise PDF pages without a text layer and run Tesseract (needs Poppler)",
            disabled=locked or not config.ocr_enabled,
        )

        st.divider()

        st.subheader("Export")

        strategy_labels = {
            HeaderStrategy.FIRST_ROW: "First row's columns",
            HeaderStrategy.UNION: "All columns seen",
        }
        config.header_strategy = st.radio(
            "Columns",
            options=list(strategy_labels),
            index=list(strategy_labels).index(config.header_strategy),
            format_func=lambda x: strategy_labels[x],
            help="With 'First row's columns', fields that only appear in later rows are not exported",
        )

        st.divider()

        st.subheader("System Status")

        if st.button("🔄 Refresh Status"):
            st.session_state.system_validated = False
            st.rerun()

        results = st.session_state.validation_results or {}
        tesseract = results.get("tesseract", {})
        if tesseract.get("installed"):
            st.success(f"✅ {tesseract.get('version') or 'Tesseract installed'}")
        else:
            st.error("❌ Tesseract not found")


def _admit(uploaded_file, capture: bool = False):
    """Add an uploaded or captured file to the queue once per file id."""
    file_id = getattr(uploaded_file, "file_id", None) or f"{uploaded_file.name}-{uploaded_file.size}"
    if file_id in st.session_state.seen_file_ids:
        return

    st.session_state.seen_file_ids.add(file_id)
    queue: DocumentQueue = st.session_state.queue
    content = uploaded_file.getvalue()

    try:
        if capture:
            queue.add_capture(content)
        else:
            queue.add_upload(uploaded_file.name, content, uploaded_file.type or "")
    except UploadRejectedError as e:
        st.error(f"Rejected {e.display_name}: {e.reason}")
    except QueueLockedError as e:
        st.warning(str(e))


def render_upload_section():
    """Render the file upload and camera capture section."""
    st.header("📄 Add Documents")

    config = st.session_state.config
    locked = st.session_state.queue.is_locked

    upload_tab, camera_tab = st.tabs(["Upload", "Camera"])

    with upload_tab:
        uploaded_files = st.file_uploader(
            "Choose documents",
            type=["pdf", "png", "jpg", "jpeg", "webp"],
            accept_multiple_files=True,
            help=f"PDF or image files up to {config.max_file_size_bytes // (1024 * 1024)} MB each",
            disabled=locked,
        )
        for uploaded_file in uploaded_files or []:
            _admit(uploaded_file)

    with camera_tab:
        captured = st.camera_input("Capture a document", disabled=locked)
        if captured is not None:
            _admit(captured, capture=True)


def render_queue_section():
    """Render the queued documents with their status."""
    queue: DocumentQueue = st.session_state.queue
    if not len(queue):
        st.info("Add documents to start a batch")
        return

    st.header(f"🗂️ Queue ({len(queue)})")

    for document in queue.documents:
        cols = st.columns([6, 3, 1])
        with cols[0]:
            st.markdown(
                f"{STATUS_ICONS[document.processing_state]} **{document.display_name}**  \n"
                f"`{document.media_type}` · {document.size_bytes / 1024:,.0f} KB"
            )
            if document.error_message:
                st.caption(f"❌ {document.error_message}")
        with cols[1]:
            badge = OCR_BADGES.get(document.ocr_state)
            if badge:
                st.caption(badge)
            if document.processing_state == ProcessingState.COMPLETED:
                st.caption(f"{document.record_count} row(s)")
        with cols[2]:
            if st.button("🗑️", key=f"remove_{document.id}", disabled=queue.is_locked):
                queue.remove(document.id)
                if not len(queue):
                    clear_results()
                st.rerun()

        if document.ocr_text:
            with st.expander("📄 OCR Text", expanded=False):
                st.text(document.ocr_text)


def run_batch():
    """Run the orchestrator over the queue and store the result."""
    config = st.session_state.config
    queue: DocumentQueue = st.session_state.queue

    orchestrator = BatchOrchestrator(
        queue,
        extraction_client=create_client(config.gemini),
        ocr_extractor=OCRExtractor(config),
        config=config,
    )
    st.session_state.orchestrator = orchestrator

    progress = st.progress(0.0, text="Starting batch...")
    total = len(queue)

    def on_update(document):
        finished = sum(1 for d in queue.documents if d.processing_state.is_terminal)
        if document.ocr_state == OCRState.RUNNING and not document.processing_state.is_terminal:
            text = f"Running OCR on {document.display_name}..."
        else:
            text = f"Gemini analysis: {finished}/{total} document(s) done"
        progress.progress(finished / total, text=text)

    clear_results()
    try:
        result = asyncio.run(orchestrator.run(on_update=on_update))
    except MissingCredentialError as e:
        progress.empty()
        st.error(f"🔑 {e}")
        return
    except BatchInProgressError as e:
        progress.empty()
        st.warning(str(e))
        return

    progress.empty()
    st.session_state.batch_result = result

    if result.status == BatchStatus.SUCCESS:
        reset_header_mapping(result.records, config.header_strategy)


def render_extraction_section():
    """Render the batch controls and aggregate banner."""
    queue: DocumentQueue = st.session_state.queue
    if not len(queue):
        return

    orchestrator = st.session_state.orchestrator
    in_flight = queue.is_locked or (orchestrator is not None and orchestrator.is_running)

    col1, col2 = st.columns([3, 1])
    with col1:
        if st.button(
            f"🔍 Extract Data from {len(queue)} Document(s)",
            type="primary",
            use_container_width=True,
            disabled=in_flight,
        ):
            run_batch()
    with col2:
        if st.button("♻️ Reset", use_container_width=True, disabled=in_flight):
            queue.clear()
            st.session_state.seen_file_ids = set()
            clear_results()
            st.rerun()

    result = st.session_state.batch_result
    if result is None:
        return

    try:
        result.raise_for_status()
    except BatchEmptyResultError as e:
        st.error(f"Batch failed: {e}")
        return

    if result.failed:
        st.warning(result.message)
    elif result.success:
        st.success(result.message)


def render_results_section():
    """Render header renaming, preview and Excel download."""
    result = st.session_state.batch_result
    if result is None or not result.success or st.session_state.header_mapping is None:
        return

    mapping = current_header_mapping(result)

    st.header("✏️ Column Headers")

    with st.form("header_mapping_form"):
        names = {}
        cols = st.columns(3)
        for i, key in enumerate(mapping.keys):
            with cols[i % 3]:
                names[key] = st.text_input(key, value=mapping[key], key=f"header_{key}")

        if st.form_submit_button("💾 Apply Names"):
            updated = HeaderMapping(mapping.as_dict())
            try:
                updated.rename_all(names)
            except ValueError as e:
                st.error(str(e))
            else:
                st.session_state.header_mapping = updated
                mapping = updated
                st.success("Column names updated")

    st.header("📊 Export to Excel")

    rows = mapping.apply(result.records)
    headers = mapping.display_headers()

    st.dataframe(pd.DataFrame(rows, columns=headers), use_container_width=True)

    exporter = ExcelExporter(st.session_state.config)
    try:
        data = exporter.to_bytes(rows, headers)
    except Exception as e:
        st.error(f"Export failed: {e}")
        logger.exception("Excel export failed")
        return

    st.download_button(
        "⬇️ Download Excel File",
        data=data,
        file_name=exporter.build_filename(),
        mime=XLSX_MIME_TYPE,
        type="primary",
    )


def main():
    """Main application entry point."""
    st.set_page_config(
        page_title="Docsheet",
        page_icon="📄",
        layout="wide",
        initial_sidebar_state="expanded",
    )

    init_session_state()

    st.title("📄 Docsheet")
    st.markdown(
        "Turn scanned invoices, receipts and forms into spreadsheet rows "
        "using OCR and Gemini vision. Export to Excel."
    )

    validate_system()
    show_validation_status()

    render_sidebar()

    st.divider()
    render_upload_section()

    st.divider()
    render_queue_section()
    render_extraction_section()

    render_results_section()


if __name__ == "__main__":
    main()
