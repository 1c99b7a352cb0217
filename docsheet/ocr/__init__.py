"""OCR module for best-effort text extraction from images and PDFs."""

from .extractor import OCRExtractor, OCRResult
from .preprocessor import ImagePreprocessor

__all__ = ["ImagePreprocessor", "OCRExtractor", "OCRResult"]
