"""Logging setup for SignalFusion.

Handlers and formats come from a logging.dictConfig YAML file (the bundled
config/logging.yaml unless FusionConfig.log_config_path points elsewhere);
the level of the ``signalfusion`` logger comes from FusionConfig.log_level.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Tuple, Union

import yaml

from config import defaults
from config.settings import FusionConfig
from signalfusion.errors import ConfigurationError

BUNDLED_LOGGING_CONFIG = Path(defaults.__file__).with_name("logging.yaml")


def load_logging_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a dictConfig mapping from YAML.

    Raises:
        ConfigurationError: the file is missing, unparseable or not a dictConfig.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read logging config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in logging config {path}: {exc}") from exc
    if not isinstance(cfg, dict) or "version" not in cfg:
        raise ConfigurationError(f"{path}: not a logging dictConfig mapping")
    return cfg


def configure_logging(
    config: Optional[FusionConfig] = None,
    log_level: Optional[str] = None,
) -> None:
    """Apply the logging YAML with the ``signalfusion`` logger at the run's level.

    Args:
        config: Supplies ``log_level`` and ``log_config_path``; defaults apply
            when omitted.
        log_level: Explicit override, e.g. from ``--log-level``.

    Raises:
        ConfigurationError: unknown level or unusable logging config file.
    """
    config = config or FusionConfig()
    level = (log_level or config.log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"Unknown log level {level!r}")

    path = Path(config.log_config_path) if config.log_config_path else BUNDLED_LOGGING_CONFIG
    cfg = load_logging_config(path)
    cfg.setdefault("loggers", {}).setdefault("signalfusion", {})["level"] = level
    logging.config.dictConfig(cfg)


class CycleLogAdapter(logging.LoggerAdapter):
    """Prefix every message with the fusion cycle id.

    Output: ``[INFO] signalfusion.orchestrator: [20240115T120000-0007] Scoring 42 countries``
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> Tuple[str, MutableMapping[str, Any]]:
        return f"[{self.extra['cycle_id']}] {msg}", kwargs


def get_cycle_logger(name: str, cycle_id: str) -> CycleLogAdapter:
    return CycleLogAdapter(logging.getLogger(name), {"cycle_id": cycle_id})
