import logging
import pytest

from .logs import create_log_levels, create_logging_config, get_logger, set_log_level, get_log_levels
from .formatter import Formatter


class TestLogs:
  def test_get_logger_returns_named_logger(self):
    logger = get_logger("runner")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "runner"

    try:
      logger.info("Test info message")
      logger.warning("Test warning message")
      logger.debug("Test debug message")
    except Exception as e:
      pytest.fail(f"Exception: {e}")

  def test_create_log_levels_when_no_variable_is_defined(self):
    result = create_log_levels(None)
    assert result == {"default": "INFO"}, "the default level for every module is info"

  def test_create_log_levels_when_only_a_level_is_defined(self):
    result = create_log_levels("DEBUG")
    assert result == {"default": "DEBUG"}, "the default level becomes debug"

  def test_create_log_levels_when_only_a_module_is_defined(self):
    result = create_log_levels("runner=debug")
    assert result == {"default": "INFO", "runner": "DEBUG"}, (
      "the default level is info, debug for the runner module"
    )

  def test_create_log_levels_when_some_modules_are_defined(self):
    result = create_log_levels("DEBUG, tool=info ,guardrail=warning")

    assert result == {"default": "DEBUG", "tool": "INFO", "guardrail": "WARNING"}
    assert result.get("runner", result.get("default")) == "DEBUG", (
      "the default level can be used for an unspecified module"
    )

  def test_logging_config_uses_module_levels(self):
    config = create_logging_config({"default": "INFO", "runner": "DEBUG"}, "%(message)s")

    assert config["loggers"]["runner"]["level"] == "DEBUG"
    assert config["loggers"]["tool"]["level"] == "INFO", "unspecified engine loggers use the default level"
    assert config["loggers"]["httpx"]["level"] == "WARNING", "third party loggers are quiet by default"
    assert config["formatters"]["default"]["()"] == "baton.logs.formatter.Formatter"

  def test_set_log_level_updates_the_module_level(self):
    set_log_level("transfer", "debug")
    assert get_log_levels()["transfer"] == "DEBUG"
    assert logging.getLogger("transfer").level == logging.DEBUG
    set_log_level("transfer", "info")


class TestFormatter:
  def test_warning_is_shortened(self):
    formatter = Formatter("%(levelname)s %(message)s")
    record = logging.LogRecord("runner", logging.WARNING, __file__, 1, "careful", None, None)

    output = formatter.format(record)
    assert "WARN" in output
    assert "careful" in output
