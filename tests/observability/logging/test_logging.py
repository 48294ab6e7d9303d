import json
import logging
import logging.handlers
from unittest.mock import patch

import pytest
import structlog

from relprobe.internal.logging import get_logger, setup_logging

# --- Fixtures ---

@pytest.fixture(autouse=True)
def reset_logging():
    """Ensure logging state is clean for each test."""
    structlog.reset_defaults()
    logging.root.handlers = []
    logging.root.setLevel(logging.NOTSET)

    with patch("relprobe.internal.logging._LOGGING_CONFIGURED", False):
        yield
        for handler in logging.root.handlers[:]:
            if isinstance(handler, logging.handlers.RotatingFileHandler):
                handler.close()
            logging.root.removeHandler(handler)
    structlog.reset_defaults()


@pytest.fixture
def json_log(tmp_path):
    """Configures logging to a JSON file and returns a reader for its entries."""
    log_file = tmp_path / "logs" / "relprobe.log.json"

    def _setup(log_level="DEBUG"):
        setup_logging(log_level_name=log_level, log_file_path=log_file, console_output=False)
        return log_file

    return _setup


def read_entries(log_file):
    with open(log_file, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


# --- Tests ---

def test_logging_is_structured_json(json_log):
    """Log events land in the file as one JSON object per line."""
    log_file = json_log("INFO")
    logger = get_logger("relprobe.test")

    logger.info("fetch finished", url="https://example.test/a.zip", bytes=123)

    entry = read_entries(log_file)[0]
    assert entry["event"] == "fetch finished"
    assert entry["url"] == "https://example.test/a.zip"
    assert entry["bytes"] == 123
    assert entry["level"] == "info"
    assert entry["logger"] == "relprobe.test"
    assert "timestamp" in entry


def test_bound_context_is_kept(json_log):
    log_file = json_log("INFO")
    logger = get_logger("relprobe.pipeline").bind(url="https://example.test/b.tar.gz", format="tar.gz")

    logger.error("fetch failed", error="boom", error_type="NetworkError")

    entry = read_entries(log_file)[0]
    assert entry["level"] == "error"
    assert entry["url"] == "https://example.test/b.tar.gz"
    assert entry["format"] == "tar.gz"
    assert entry["error_type"] == "NetworkError"


def test_logging_level_filtering(json_log):
    log_file = json_log("INFO")
    logger = get_logger("filter.test")

    logger.debug("debug message")
    logger.info("info message")
    logger.warning("warning message")

    events = [entry["event"] for entry in read_entries(log_file)]
    assert events == ["info message", "warning message"]


def test_log_level_env_override(json_log, monkeypatch):
    monkeypatch.setenv("RELPROBE_LOG_LEVEL", "debug")
    log_file = json_log("WARNING")

    get_logger("env.test").debug("decode slot acquired", codec="xz")

    assert [entry["event"] for entry in read_entries(log_file)] == ["decode slot acquired"]


def test_stdlib_records_are_rendered_too(json_log):
    log_file = json_log("INFO")

    logging.getLogger("plain.stdlib").warning("hello from %s", "stdlib")

    entry = read_entries(log_file)[0]
    assert entry["event"] == "hello from stdlib"
    assert entry["level"] == "warning"
    assert entry["logger"] == "plain.stdlib"


def test_setup_logging_is_idempotent(json_log, tmp_path):
    log_file = json_log("INFO")
    other_file = tmp_path / "other.log.json"

    setup_logging(log_level_name="DEBUG", log_file_path=other_file)
    get_logger("idempotent.test").info("still the first file")

    assert not other_file.exists()
    assert read_entries(log_file)[0]["event"] == "still the first file"


def test_plain_text_log_file(tmp_path):
    log_file = tmp_path / "relprobe.log"
    setup_logging(log_level_name="INFO", log_file_path=log_file)

    get_logger("text.test").info("tar salvage", members=3)

    content = log_file.read_text()
    assert "tar salvage" in content
    assert "members=3" in content
    assert not content.lstrip().startswith("{")


def test_console_output_goes_to_stderr(capsys):
    """Console logs must not mix with command output on stdout."""
    setup_logging(log_level_name="INFO", log_file_path=None, console_output=True)

    get_logger("console.test").info("Hello console!")

    captured = capsys.readouterr()
    assert "Hello console!" in captured.err
    assert "Hello console!" not in captured.out


def test_no_handlers_configured_sends_to_null(capsys):
    setup_logging(log_level_name="INFO", log_file_path=None, console_output=False)

    get_logger("null.test").info("This should not be seen.")

    captured = capsys.readouterr()
    assert "This should not be seen." not in captured.out
    assert "This should not be seen." not in captured.err
