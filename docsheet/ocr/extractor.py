"""
OCR text extraction for queued documents.

Best-effort text layer used as supplemental context for the vision model:
- PDF: embedded text layer read page by page with pdfplumber
- Images: Tesseract recognition over the whole image
- Optional Tesseract pass on PDF pages without a text layer

Never raises; failures are logged and reported in OCRResult.errors.
"""

import logging
import time
from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Optional

import pdfplumber
import pytesseract
from pdf2image import convert_from_bytes
from PIL import Image

from docsheet.config import AppConfig, get_config
from docsheet.ocr.preprocessor import ImagePreprocessor

logger = logging.getLogger(__name__)

PAGE_MARKER = "--- Page {number} ---"


@dataclass
class OCRResult:
    """Result of OCR text extraction."""
    text: str = ""
    page_count: int = 0
    processing_time_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


class OCRExtractor:
    """
    Extracts plain text from images and PDFs.

    Supports:
    - PDF text layers (multi-page, page order preserved)
    - PNG, JPEG and WEBP images via Tesseract
    - Optional preprocessing and scanned-page fallback
    """

    def __init__(self, config: Optional[AppConfig] = None):
        """
        Initialize the OCR extractor.

        Args:
            config: Application configuration (uses the global config if omitted)
        """
        self.config = config or get_config()
        self.tesseract = self.config.tesseract
        self.preprocessor = ImagePreprocessor(level=self.config.preprocessing_level)

        # Set Tesseract command path if configured
        if self.tesseract.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract.tesseract_cmd

    def extract(self, content: bytes, media_type: str) -> OCRResult:
        """
        Extract text from a document.

        Args:
            content: Raw document bytes
            media_type: MIME type of the document

        Returns:
            OCRResult; text is empty when OCR failed or was not attempted
        """
        start_time = time.time()
        result = OCRResult()

        try:
            if media_type == "application/pdf":
                result.text, result.page_count = self._extract_from_pdf(content, result.warnings)
            elif media_type.startswith("image/"):
                result.text = self._extract_from_image(Image.open(BytesIO(content)))
                result.page_count = 1
            else:
                result.warnings.append(f"OCR not supported for {media_type or 'unknown type'}")
        except pytesseract.TesseractNotFoundError as e:
            result.text = ""
            result.errors.append(f"Tesseract not found: {e}")
            logger.warning(f"OCR skipped, Tesseract not found: {e}")
        except Exception as e:
            result.text = ""
            result.errors.append(f"OCR extraction error: {e}")
            logger.exception("OCR extraction failed")

        if not result.failed and result.page_count and not result.text.strip():
            result.warnings.append("OCR produced empty result - document may be blank or image-only")

        result.processing_time_seconds = time.time() - start_time
        logger.info(
            f"OCR on {media_type}: {len(result.text):,} chars from {result.page_count} page(s) "
            f"in {result.processing_time_seconds:.2f}s"
        )
        return result

    def extract_text(self, content: bytes, media_type: str) -> str:
        """Return OCR text only; empty string on any failure."""
        return self.extract(content, media_type).text

    def _extract_from_image(self, image: Image.Image) -> str:
        """Run Tesseract over a whole image."""
        image.load()

        processed = self.preprocessor.preprocess(image).image

        text = pytesseract.image_to_string(
            processed,
            lang=self.tesseract.language,
            config=self.tesseract.get_config_string(),
        )
        return text.strip()

    def _extract_from_pdf(self, content: bytes, warnings: List[str]) -> tuple[str, int]:
        """Read the PDF text layer page by page."""
        page_texts = []

        with pdfplumber.open(BytesIO(content)) as pdf:
            page_count = len(pdf.pages)
            for number, page in enumerate(pdf.pages, start=1):
                page_text = page.extract_text() or ""

                if not page_text.strip() and self.config.rasterize_scanned_pdf_pages:
                    page_text = self._ocr_pdf_page(content, number, warnings)

                page_texts.append(f"{PAGE_MARKER.format(number=number)}\n{page_text}")

        if page_count == 0:
            warnings.append("PDF contains no pages")

        return "\n\n".join(page_texts), page_count

    def _ocr_pdf_page(self, content: bytes, number: int, warnings: List[str]) -> str:
        """Rasterise one PDF page and recognise it with Tesseract."""
        try:
            images = convert_from_bytes(
                content,
                dpi=self.config.pdf_raster_dpi,
                first_page=number,
                last_page=number,
                fmt="png",
            )
        except Exception as e:
            warnings.append(f"Could not rasterise page {number}: {e}")
            logger.warning(f"PDF page {number} rasterisation failed: {e}")
            return ""

        if not images:
            return ""
        return self._extract_from_image(images[0])


def extract_text(content: bytes, media_type: str, config: Optional[AppConfig] = None) -> str:
    """
    Convenience function to OCR a document.

    Args:
        content: Raw document bytes
        media_type: MIME type of the document
        config: Application configuration

    Returns:
        Extracted text, or an empty string on failure
    """
    return OCRExtractor(config=config).extract_text(content, media_type)
