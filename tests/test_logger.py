import logging

import pytest

from smart_categorizer.logger import ColourizedFormatter, get_logging_config, setup_logging


def test_formatter_colours_level_and_restores_record() -> None:
    formatter = ColourizedFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.WARNING, __file__, 1, "careful", None, None)

    output = formatter.format(record)

    assert output == f"{ColourizedFormatter.YELLOW}WARNING{ColourizedFormatter.RESET} careful"
    assert record.levelname == "WARNING"


def test_logging_config_console_only(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.delenv("LOG_DIR", raising=False)

    config = get_logging_config()

    assert config["loggers"][""]["level"] == "DEBUG"
    assert config["loggers"][""]["handlers"] == ["console"]
    assert config["loggers"]["openai"]["level"] == "WARNING"


def test_logging_config_with_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("LOG_DIR", str(log_dir))

    config = get_logging_config()

    assert config["handlers"]["file"]["filename"] == str(log_dir / "app.log")
    assert config["loggers"][""]["handlers"] == ["console", "file"]
    assert log_dir.is_dir()


def test_setup_logging_installs_colourized_console(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.delenv("LOG_DIR", raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    try:
        setup_logging()
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, ColourizedFormatter) for h in root.handlers)
        assert logging.getLogger("openai").propagate is False
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        for name in ("openai", "httpx"):
            sdk_logger = logging.getLogger(name)
            sdk_logger.handlers.clear()
            sdk_logger.propagate = True
