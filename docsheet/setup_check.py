"""
Setup validation for Docsheet.

Checks system requirements and prints guidance for missing components.
Exits non-zero when extraction cannot run.
"""

import sys
from pathlib import Path

from docsheet.config import CREDENTIAL_ENV_VAR, validate_system_requirements

REQUIRED_PYTHON = (3, 10)


def print_header(text: str):
    """Print a formatted header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print("=" * 60)


def print_check(name: str, status: bool, message: str = ""):
    """Print a check result."""
    icon = "✅" if status else "❌"
    print(f"{icon} {name}: {message}")


def print_info(message: str):
    """Print an info message."""
    print(f"ℹ️  {message}")


def check_python_version(version=None) -> bool:
    """Check the interpreter is recent enough."""
    print_header("Python Version")

    version = version or sys.version_info
    is_ok = tuple(version[:2]) >= REQUIRED_PYTHON
    print_check(
        "Python",
        is_ok,
        f"{version[0]}.{version[1]} "
        f"({'OK' if is_ok else f'requires {REQUIRED_PYTHON[0]}.{REQUIRED_PYTHON[1]}+'})",
    )
    return is_ok


def check_tesseract(results: dict) -> bool:
    """Report the Tesseract installation; OCR is optional."""
    print_header("Tesseract OCR (optional)")

    tesseract = results["tesseract"]
    if tesseract["installed"]:
        print_check("Tesseract", True, f"Found at {tesseract['path']}")
        print_info(f"Version: {tesseract['version']}")
        return True

    print_check("Tesseract", False, "Not found, image OCR will be skipped")
    print_info("Install with:")
    print_info("  macOS: brew install tesseract")
    print_info("  Ubuntu: sudo apt install tesseract-ocr")
    print_info("  Windows: Download from https://github.com/UB-Mannheim/tesseract/wiki")
    return False


def check_poppler(results: dict) -> bool:
    """Report Poppler, needed only for scanned-PDF rasterisation."""
    print_header("Poppler (optional)")

    if results["poppler"]["installed"]:
        print_check("Poppler", True, "Found")
        return True

    print_check("Poppler", False, "Not found, scanned PDF pages cannot be rasterised")
    print_info("Install with:")
    print_info("  macOS: brew install poppler")
    print_info("  Ubuntu: sudo apt install poppler-utils")
    return False


def check_python_packages(results: dict) -> bool:
    """Report Python package availability."""
    print_header("Python Packages")

    deps = results["python_deps"]
    print_check("Dependencies", deps["installed"], deps["message"])
    if not deps["installed"]:
        print_info("Install missing packages with:")
        print_info("  pip install -e .")
    return deps["installed"]


def check_credentials(results: dict) -> bool:
    """Report whether the Gemini API key is configured."""
    print_header("Gemini API")

    gemini = results["gemini"]
    if gemini["configured"]:
        print_check("API Key", True, "Configured")
        return True

    print_check("API Key", False, "Not set")
    if Path(".env").exists():
        print_info(f"Add {CREDENTIAL_ENV_VAR}=your_key to .env")
    else:
        print_info(f"Create a .env file containing {CREDENTIAL_ENV_VAR}=your_key")
    return False


def main() -> int:
    """Run all checks and return the process exit code."""
    print("\n" + "=" * 60)
    print("  Docsheet - Setup Validation")
    print("=" * 60)

    results = validate_system_requirements()

    checks = {
        "python": check_python_version(),
        "tesseract": check_tesseract(results),
        "poppler": check_poppler(results),
        "packages": check_python_packages(results),
        "credentials": check_credentials(results),
    }

    print_header("Summary")

    ready = checks["python"] and checks["packages"] and checks["credentials"]
    if ready:
        print("✅ System is ready to run the application!")
        print("\nStart with:")
        print("  streamlit run docsheet/main.py")
        if not checks["tesseract"]:
            print("\nOCR is unavailable; extraction will rely on the vision model only.")
    else:
        print("❌ Some requirements are missing:")
        if not checks["python"]:
            print(f"  - Python {REQUIRED_PYTHON[0]}.{REQUIRED_PYTHON[1]}+ required")
        if not checks["packages"]:
            print("  - Some Python packages missing (run: pip install -e .)")
        if not checks["credentials"]:
            print(f"  - {CREDENTIAL_ENV_VAR} is required for extraction")

    print()
    return 0 if ready else 1


if __name__ == "__main__":
    sys.exit(main())
