from unittest.mock import patch

from docsheet import setup_check


def requirements(tesseract=True, deps=True, gemini=True):
    return {
        "tesseract": {"installed": tesseract, "message": "", "path": "/usr/bin/tesseract", "version": "tesseract 5.3.0"},
        "poppler": {"installed": True},
        "gemini": {"configured": gemini, "message": ""},
        "python_deps": {"installed": deps, "message": "All Python dependencies installed"},
    }


def test_ready_system_exits_zero(capsys):
    with patch("docsheet.setup_check.validate_system_requirements", return_value=requirements()):
        assert setup_check.main() == 0

    assert "ready" in capsys.readouterr().out


def test_missing_tesseract_is_not_fatal():
    with patch("docsheet.setup_check.validate_system_requirements", return_value=requirements(tesseract=False)):
        assert setup_check.main() == 0


def test_missing_api_key_fails(capsys):
    with patch("docsheet.setup_check.validate_system_requirements", return_value=requirements(gemini=False)):
        assert setup_check.main() == 1

    assert "GEMINI_API_KEY" in capsys.readouterr().out


def test_missing_packages_fail():
    with patch("docsheet.setup_check.validate_system_requirements", return_value=requirements(deps=False)):
        assert setup_check.main() == 1


def test_old_python_is_rejected():
    assert not setup_check.check_python_version((3, 9, 18))
    assert setup_check.check_python_version((3, 12, 1))
