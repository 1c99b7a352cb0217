"""
Docsheet - scanned document to spreadsheet extraction.

This package provides functionality for:
- Queuing uploaded and camera-captured images and PDFs
- Best-effort OCR text layers (pdfplumber, Tesseract)
- Vision-model structured extraction (Gemini)
- Batch orchestration, header renaming and Excel export
"""

__version__ = "0.1.0"
__author__ = "Docsheet"
