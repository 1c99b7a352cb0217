"""
Configuration module for the document-to-spreadsheet extractor.

Handles settings for the Gemini vision endpoint, Tesseract OCR,
batch execution and export, with validation helpers used on startup.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

CREDENTIAL_ENV_VAR = "GEMINI_API_KEY"

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MiB

SUPPORTED_MEDIA_TYPES = (
    "image/png",
    "image/jpeg",
    "image/webp",
    "application/pdf",
)


class ExecutionMode(Enum):
    """How the orchestrator schedules documents within a batch."""
    SEQUENTIAL = "sequential"  # One document at a time, queue order
    PARALLEL = "parallel"      # All documents dispatched concurrently


class HeaderStrategy(Enum):
    """How export column headers are derived from batch records."""
    FIRST_ROW = "first_row"  # Keys of the first record only
    UNION = "union"          # Every key seen, in first-seen order


class PreprocessingLevel(Enum):
    """Level of image preprocessing applied before OCR."""
    NONE = "none"          # Original image straight to Tesseract
    LIGHT = "light"        # Grayscale and contrast enhancement
    STANDARD = "standard"  # Light + denoise and Otsu threshold


@dataclass
class TesseractConfig:
    """Configuration for Tesseract OCR engine."""
    tesseract_cmd: Optional[str] = None
    language: str = "eng"
    oem: int = 3  # OCR Engine Mode: 3 = Default, based on what is available
    psm: int = 3  # Page Segmentation Mode: 3 = Fully automatic, no OSD

    def get_config_string(self) -> str:
        """Generate Tesseract configuration string."""
        return f"--oem {self.oem} --psm {self.psm}"

    @staticmethod
    def find_tesseract() -> Optional[str]:
        """Attempt to find Tesseract installation."""
        common_paths = [
            "/usr/local/bin/tesseract",  # macOS Homebrew
            "/opt/homebrew/bin/tesseract",  # macOS Apple Silicon Homebrew
            "/usr/bin/tesseract",  # Linux
            r"C:\Program Files\Tesseract-OCR\tesseract.exe",  # Windows
        ]

        tesseract_path = shutil.which("tesseract")
        if tesseract_path:
            return tesseract_path

        for path in common_paths:
            if Path(path).exists():
                return path

        return None

    @staticmethod
    def validate_installation() -> tuple[bool, str, Optional[str]]:
        """
        Validate Tesseract installation.

        Returns:
            Tuple of (is_valid, message, version)
        """
        tesseract_path = TesseractConfig.find_tesseract()

        if not tesseract_path:
            return False, (
                "Tesseract OCR is not installed or not found in PATH. "
                "OCR will be skipped and extraction will rely on the vision model only."
            ), None

        try:
            result = subprocess.run(
                [tesseract_path, "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode == 0:
                version_info = result.stdout.split("\n")[0]
                return True, f"Tesseract found: {version_info}", version_info
            return False, f"Tesseract found but returned error: {result.stderr}", None
        except subprocess.TimeoutExpired:
            return False, "Tesseract command timed out", None
        except OSError as e:
            return False, f"Error validating Tesseract: {e}", None


@dataclass
class GeminiConfig:
    """Configuration for the Gemini vision/language endpoint."""
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.5-pro"
    api_key: str = field(default_factory=lambda: os.getenv(CREDENTIAL_ENV_VAR, ""))
    temperature: float = 0.1  # Low temperature for near-deterministic structure
    timeout: int = 180  # Seconds; multi-page PDFs take a while
    max_output_tokens: int = 32768

    def validate_api_key(self) -> tuple[bool, str]:
        """Validate the Gemini API key is set."""
        if not self.api_key or not self.api_key.strip():
            return False, (
                "Gemini API key not set.\n"
                f"Set it via environment variable: {CREDENTIAL_ENV_VAR}=your_key\n"
                "Or enter it in the settings panel."
            )
        return True, "Gemini API key is configured"


@dataclass
class AppConfig:
    """Main application configuration."""
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    tesseract: TesseractConfig = field(default_factory=TesseractConfig)

    # Batch settings
    ocr_enabled: bool = True
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    tag_source_file: bool = True

    # OCR settings
    preprocessing_level: PreprocessingLevel = PreprocessingLevel.NONE
    rasterize_scanned_pdf_pages: bool = False
    pdf_raster_dpi: int = 300

    # Upload gate
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES
    supported_media_types: tuple[str, ...] = SUPPORTED_MEDIA_TYPES

    # Export settings
    header_strategy: HeaderStrategy = HeaderStrategy.FIRST_ROW
    export_sheet_title: str = "Data"
    export_filename_prefix: str = "Batch_Extraction"


def validate_system_requirements() -> dict:
    """
    Validate all system requirements on startup.

    Returns:
        Dictionary with validation results for each requirement.
    """
    results = {}

    tesseract_valid, tesseract_msg, version = TesseractConfig.validate_installation()
    results["tesseract"] = {
        "installed": tesseract_valid,
        "message": tesseract_msg,
        "path": TesseractConfig.find_tesseract(),
        "version": version,
    }

    results["poppler"] = {
        "installed": bool(shutil.which("pdfinfo") or shutil.which("pdftoppm")),
    }

    gemini_ok, gemini_msg = get_config().gemini.validate_api_key()
    results["gemini"] = {
        "configured": gemini_ok,
        "message": gemini_msg,
    }

    try:
        import cv2  # noqa: F401
        import openpyxl  # noqa: F401
        import pdfplumber  # noqa: F401
        import pytesseract  # noqa: F401
        import PIL  # noqa: F401
        results["python_deps"] = {
            "installed": True,
            "message": "All Python dependencies installed",
        }
    except ImportError as e:
        results["python_deps"] = {
            "installed": False,
            "message": f"Missing Python dependency: {e.name}",
        }

    return results


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig()
        tesseract_path = TesseractConfig.find_tesseract()
        if tesseract_path:
            _config.tesseract.tesseract_cmd = tesseract_path
    return _config


def update_config(**kwargs) -> AppConfig:
    """Update configuration with new values."""
    config = get_config()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
    return config
