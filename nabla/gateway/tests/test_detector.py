import logging

import pytest

from nabla.gateway.core.detector import detect_handler
from nabla.gateway.core.exceptions import DetectionError


def _touch(directory, *names):
    for name in names:
        path = directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("")


def test_detects_python(tmp_path):
    _touch(tmp_path, "main.py", "README.md")

    handler = detect_handler(tmp_path)

    assert handler.filename == "main.py"
    assert handler.language == "python"


def test_detects_golang(tmp_path):
    _touch(tmp_path, "main.go", "go.mod")

    handler = detect_handler(tmp_path)

    assert handler.filename == "main.go"
    assert handler.language == "golang"


def test_no_candidates_raises(tmp_path):
    _touch(tmp_path, "notes.txt", "data.json")

    with pytest.raises(DetectionError):
        detect_handler(tmp_path)


def test_empty_directory_raises(tmp_path):
    with pytest.raises(DetectionError):
        detect_handler(tmp_path)


def test_only_top_level_files_are_considered(tmp_path):
    _touch(tmp_path, "lib/helper.py", "notes.txt")

    with pytest.raises(DetectionError):
        detect_handler(tmp_path)


def test_hidden_files_are_ignored(tmp_path):
    _touch(tmp_path, ".hidden.py", "zz_main.go")

    handler = detect_handler(tmp_path)

    assert handler.filename == "zz_main.go"


def test_multiple_candidates_pick_first_sorted_and_warn(tmp_path, caplog):
    _touch(tmp_path, "zeta.py", "alpha.go", "beta.py")

    with caplog.at_level(logging.WARNING, logger="gateway.detector"):
        handler = detect_handler(tmp_path)

    assert handler.filename == "alpha.go"
    assert handler.language == "golang"
    assert any("Multiple handler candidates" in r.getMessage() for r in caplog.records)


def test_handler_names_with_control_characters_are_skipped(tmp_path, caplog):
    _touch(tmp_path, 'a"b.py\nRUN echo injected #.py', "main.go")

    with caplog.at_level(logging.WARNING, logger="gateway.detector"):
        handler = detect_handler(tmp_path)

    assert handler.filename == "main.go"
    assert any("control characters" in r.getMessage() for r in caplog.records)


def test_only_control_character_handler_is_detection_error(tmp_path):
    _touch(tmp_path, "main\n.py")

    with pytest.raises(DetectionError):
        detect_handler(tmp_path)


def test_quoted_handler_name_is_kept(tmp_path):
    _touch(tmp_path, 'it"s.py')

    assert detect_handler(tmp_path).filename == 'it"s.py'
