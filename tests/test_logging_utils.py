import logging
from pathlib import Path

import pytest

from improvmix.logging_utils import (
    LOG_DIR_ENV,
    configure_logging,
    get_log_dir,
    get_log_path,
    log_exception,
)


def test_log_path_uses_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))

    assert get_log_dir() == tmp_path
    assert get_log_path() == tmp_path / "improvmix.log"


def test_configure_logging_adds_file_handler(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))

    configure_logging(force=True)

    logger = logging.getLogger("improvmix")
    assert any(isinstance(handler, logging.FileHandler) for handler in logger.handlers)
    assert logger.propagate


def test_log_exception_appends_traceback(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))

    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        path = log_exception("load track bass", exc)

    assert path == tmp_path / "improvmix.log"
    text = path.read_text(encoding="utf-8")
    assert "load track bass failed: RuntimeError: boom" in text
    assert "Traceback" in text
