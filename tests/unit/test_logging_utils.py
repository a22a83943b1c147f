"""Unit tests for signalfusion.utils.logging_utils.

Covers:
- configure_logging applies the bundled YAML at FusionConfig.log_level
- explicit override level and custom log_config_path
- missing or invalid logging config and unknown levels raise ConfigurationError
- cycle logger prefixes messages with the cycle id
"""

from __future__ import annotations

import logging

import pytest

from config.settings import FusionConfig
from signalfusion.errors import ConfigurationError
from signalfusion.utils.logging_utils import (
    BUNDLED_LOGGING_CONFIG,
    configure_logging,
    get_cycle_logger,
    load_logging_config,
)


@pytest.fixture(autouse=True)
def _restore_logging():
    """dictConfig rewires global loggers; put them back after each test."""
    root = logging.getLogger()
    pkg = logging.getLogger("signalfusion")
    saved = (root.level, list(root.handlers), pkg.level, list(pkg.handlers), pkg.propagate)
    yield
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]
    pkg.setLevel(saved[2])
    pkg.handlers[:] = saved[3]
    pkg.propagate = saved[4]


def _config(tmp_path, **kwargs):
    kwargs.setdefault("cache_dir", "")
    kwargs.setdefault("output_root", str(tmp_path))
    kwargs.setdefault("log_config_path", "")
    return FusionConfig(**kwargs)


class TestConfigureLogging:
    def test_bundled_config_at_configured_level(self, tmp_path):
        configure_logging(_config(tmp_path, log_level="debug"))

        pkg = logging.getLogger("signalfusion")
        assert pkg.level == logging.DEBUG
        assert pkg.propagate is False
        assert any(isinstance(h, logging.StreamHandler) for h in pkg.handlers)

    def test_override_beats_config(self, tmp_path):
        configure_logging(_config(tmp_path, log_level="DEBUG"), log_level="error")
        assert logging.getLogger("signalfusion").level == logging.ERROR

    def test_custom_config_path(self, tmp_path):
        path = tmp_path / "logging.yaml"
        path.write_text(
            "version: 1\n"
            "disable_existing_loggers: false\n"
            "handlers:\n"
            "  quiet:\n"
            "    class: logging.NullHandler\n"
            "loggers:\n"
            "  signalfusion:\n"
            "    handlers: [quiet]\n"
            "    propagate: false\n",
            encoding="utf-8",
        )

        configure_logging(_config(tmp_path, log_level="WARNING", log_config_path=str(path)))

        pkg = logging.getLogger("signalfusion")
        assert pkg.level == logging.WARNING
        assert [type(h) for h in pkg.handlers] == [logging.NullHandler]

    def test_missing_config_file(self, tmp_path):
        config = _config(tmp_path, log_config_path=str(tmp_path / "nope.yaml"))
        with pytest.raises(ConfigurationError, match="Cannot read"):
            configure_logging(config)

    def test_not_a_dictconfig(self, tmp_path):
        path = tmp_path / "logging.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="dictConfig"):
            load_logging_config(path)

    def test_unknown_override_level(self, tmp_path):
        with pytest.raises(ConfigurationError, match="LOUD"):
            configure_logging(_config(tmp_path), log_level="loud")

    def test_bundled_file_is_packaged_with_config(self):
        assert BUNDLED_LOGGING_CONFIG.name == "logging.yaml"
        assert load_logging_config(BUNDLED_LOGGING_CONFIG)["loggers"]["signalfusion"]


class TestCycleLogger:
    def test_prefixes_cycle_id(self, caplog):
        log = get_cycle_logger("tests.cycle", "20240115T120000-0007")
        with caplog.at_level(logging.INFO, logger="tests.cycle"):
            log.info("Scoring %d countries", 42)
        assert caplog.messages == ["[20240115T120000-0007] Scoring 42 countries"]
