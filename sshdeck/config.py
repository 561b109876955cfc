"""Process-wide settings and logging helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field

CONFIG_DIR = Path.home() / ".config" / "sshdeck"
REGISTRY_FILENAME = "servers.toml"
LOG_FILENAME = "sshdeck.log"
DEFAULT_TIMEOUT = 5
LOG_FORMAT = "%(asctime)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class AppConfig(BaseModel):
    """Settings resolved once at startup and handed to each component."""

    config_dir: Path = CONFIG_DIR
    history_file: Path = Field(default_factory=lambda: Path.home() / ".bash_history")
    ssh_binary: str = "ssh"
    ssh_timeout: int = Field(default=DEFAULT_TIMEOUT, gt=0)

    @property
    def registry_file(self) -> Path:
        return self.config_dir / REGISTRY_FILENAME

    @property
    def log_file(self) -> Path:
        return self.config_dir / LOG_FILENAME

    def with_timeout(self, seconds: int) -> AppConfig:
        """Return a copy using a different connect timeout."""

        return self.model_validate({**self.model_dump(), "ssh_timeout": seconds})


def load_config(environ: Mapping[str, str] | None = None, **overrides: object) -> AppConfig:
    """Build the session configuration from defaults, environment and overrides.

    Recognised variables are ``SSHDECK_CONFIG_DIR``, ``SSHDECK_SSH_BINARY``,
    ``SSHDECK_TIMEOUT`` and ``HISTFILE``. Keyword overrides (usually CLI
    flags) win over the environment; ``None`` values are ignored.
    """

    env = os.environ if environ is None else environ
    data: dict[str, object] = {}
    config_dir = env.get("SSHDECK_CONFIG_DIR")
    if config_dir:
        data["config_dir"] = Path(config_dir).expanduser()
    history = env.get("HISTFILE")
    if history:
        data["history_file"] = Path(history).expanduser()
    binary = env.get("SSHDECK_SSH_BINARY")
    if binary:
        data["ssh_binary"] = binary
    timeout = env.get("SSHDECK_TIMEOUT")
    if timeout:
        data["ssh_timeout"] = timeout
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, str) and key in {"config_dir", "history_file"}:
            value = Path(value).expanduser()
        data[key] = value
    return AppConfig(**data)


def configure_logging(config: AppConfig, level: int | str = logging.INFO) -> logging.Handler:
    """Append log records to the session log file.

    The terminal belongs to the UI while a session runs, so records only go to
    ``config.log_file``.
    """

    config.config_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(config.log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger = logging.getLogger("sshdeck")
    logger.setLevel(level)
    for existing in tuple(logger.handlers):
        if isinstance(existing, logging.FileHandler) and existing.baseFilename == handler.baseFilename:
            logger.removeHandler(existing)
            existing.close()
    logger.addHandler(handler)
    return handler


__all__ = [
    "AppConfig",
    "CONFIG_DIR",
    "DEFAULT_TIMEOUT",
    "LOG_FORMAT",
    "configure_logging",
    "load_config",
]
