import json
import threading
import time

import pytest

from docsheet.batch.queue import DocumentQueue
from docsheet.config import AppConfig, GeminiConfig
from docsheet.llm.exceptions import MissingCredentialError
from docsheet.llm.parser import parse_extraction_response
from docsheet.ocr.extractor import OCRResult


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def app_config():
    return AppConfig(gemini=GeminiConfig(api_key="test-key"))


@pytest.fixture
def queue(app_config):
    return DocumentQueue(app_config)


class FakeExtractionClient:
    """Stands in for GeminiClient; replies are raw model text keyed by document content."""

    def __init__(self, replies=None, api_key="test-key", delays=None, barrier=None):
        self.replies = replies or {}
        self.api_key = api_key
        self.delays = delays or {}
        self.barrier = barrier
        self.calls = []
        self._lock = threading.Lock()

    def check_credentials(self):
        if not self.api_key:
            raise MissingCredentialError("Gemini API key not set")

    def extract(self, content, media_type, ocr_text=None):
        with self._lock:
            self.calls.append((content, media_type, ocr_text))
        if self.barrier is not None:
            self.barrier.wait()
        time.sleep(self.delays.get(content, 0))
        reply = self.replies[content]
        if isinstance(reply, Exception):
            raise reply
        return parse_extraction_response(reply)


class FakeOCR:
    """Stands in for OCRExtractor; results keyed by document content."""

    def __init__(self, texts=None, failures=(), crashes=()):
        self.texts = texts or {}
        self.failures = set(failures)
        self.crashes = set(crashes)
        self.calls = []

    def extract(self, content, media_type):
        self.calls.append(content)
        if content in self.crashes:
            raise RuntimeError("OCR engine crashed")
        if content in self.failures:
            return OCRResult(errors=["Tesseract not found"])
        return OCRResult(text=self.texts.get(content, ""), page_count=1)


def rows_reply(*rows) -> str:
    """Model reply text carrying the given records."""
    return json.dumps({"extracted_data": list(rows)})
