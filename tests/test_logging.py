import logging
from logging.handlers import RotatingFileHandler

from reliable_mcp.local.config import effective_settings
from reliable_mcp.log import MainFormatter, setup_logging


def make_record(**extra):
    record = logging.LogRecord("reliable_mcp.test", logging.WARNING, __file__, 1, "something happened", None, None)
    record.__dict__.update(extra)
    return record


def test_formatter_prefix_without_label():
    assert MainFormatter().format(make_record()) == "[reliable-mcp] WARNING: something happened"


def test_formatter_prefix_with_label():
    line = MainFormatter().format(make_record(label="filesystem"))
    assert line == "[reliable-mcp:filesystem] WARNING: something happened"


def test_formatter_with_timestamp():
    line = MainFormatter(with_timestamp=True).format(make_record())
    assert line.endswith(" - [reliable-mcp] WARNING: something happened")


def test_console_handler_writes_to_stderr(monkeypatch, capsys):
    monkeypatch.setattr(effective_settings, "LOG_FILE_PATH", None)
    setup_logging()

    logging.getLogger("reliable_mcp.test").warning("visible")
    logging.getLogger("reliable_mcp.test").info("hidden")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "[reliable-mcp] WARNING: visible" in captured.err
    assert "hidden" not in captured.err


def test_setup_logging_replaces_handlers(monkeypatch):
    monkeypatch.setattr(effective_settings, "LOG_FILE_PATH", None)
    setup_logging()
    setup_logging(logging.DEBUG)

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert handlers[0].level == logging.DEBUG


def test_unknown_level_falls_back_to_warning(monkeypatch):
    monkeypatch.setattr(effective_settings, "LOG_FILE_PATH", None)
    monkeypatch.setattr(effective_settings, "LOG_LEVEL", "CHATTY")
    setup_logging()

    assert logging.getLogger().handlers[0].level == logging.WARNING


def test_file_handler_is_added(monkeypatch, tmp_path):
    log_path = tmp_path / "logs" / "wrapper.log"
    monkeypatch.setattr(effective_settings, "LOG_FILE_PATH", log_path)
    setup_logging()

    file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
    try:
        assert len(file_handlers) == 1
        logging.getLogger("reliable_mcp.test").debug("to file only", extra={"label": "fs"})
        file_handlers[0].flush()
        assert "[reliable-mcp:fs] DEBUG: to file only" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in file_handlers:
            handler.close()
