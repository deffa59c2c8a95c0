"""Configuration loading utilities with JSON and YAML support."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from danmaku.core.config.models import DanmakuSettings, EngineConfig
from danmaku.core.utils.json import read_json
from danmaku.core.utils.logging import configure_logging as _configure_logging

logger = logging.getLogger(__name__)


def detect_format(file_path: Path | str) -> str:
    """Detect config file format from extension.

    Args:
        file_path: Path to config file

    Returns:
        Format string: "json" or "yaml"

    Raises:
        ValueError: If format cannot be determined

    Example:
        >>> detect_format("danmaku.json")
        'json'
        >>> detect_format("danmaku.yml")
        'yaml'
    """
    suffix = Path(file_path).suffix.lower()

    if suffix == ".json":
        return "json"
    elif suffix in [".yaml", ".yml"]:
        return "yaml"
    else:
        raise ValueError(f"Unsupported config format: {suffix}")


def load_config(path: str | Path) -> dict[str, Any]:
    """Load and return a raw configuration dictionary.

    Args:
        path: Path to config file (.json, .yaml, or .yml)

    Returns:
        Raw configuration dictionary

    Raises:
        FileNotFoundError: If config file does not exist
        ValueError: If format is not supported or file content is invalid
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    fmt = detect_format(path)

    if fmt == "json":
        try:
            return read_json(path)
        except Exception as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

    try:
        with path.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    # safe_load returns None for empty files
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Expected a mapping in {path}, got {type(content).__name__}")
    return content


def load_engine_config(path: str | Path | None = None) -> EngineConfig:
    """Load and validate the engine configuration.

    Args:
        path: Config file path; None uses ``EngineConfig.default_path()`` when
            it exists, otherwise all defaults.

    Returns:
        Validated EngineConfig

    Raises:
        ValidationError: If config is invalid
    """
    config = EngineConfig.load_or_default(path)
    logger.debug(f"Loaded engine config (density_level={config.settings.density_level})")
    return config


def load_settings(path: str | Path) -> DanmakuSettings:
    """Load viewer settings from a standalone file.

    The file may hold the settings mapping directly, or an engine config with
    a ``settings`` section.

    Example:
        >>> settings = load_settings("danmaku_settings.json")
    """
    raw = load_config(path)
    if isinstance(raw.get("settings"), dict):
        raw = raw["settings"]
    return DanmakuSettings.model_validate(raw)


def configure_logging(config: EngineConfig | None = None) -> None:
    """Configure Python logging from engine config.

    Args:
        config: EngineConfig instance (loads default if None)
    """
    if config is None:
        config = load_engine_config()

    _configure_logging(
        level=config.logging.level,
        format_string=config.logging.format,
        filename=config.logging.filename,
        structured=config.logging.structured,
    )
