"""Configuration management for Danmaku."""

from danmaku.core.config.loader import (
    configure_logging,
    detect_format,
    load_config,
    load_engine_config,
    load_settings,
)
from danmaku.core.config.models import (
    AllocatorPolicy,
    ConfigBase,
    DanmakuSettings,
    EngineConfig,
    LayoutPolicy,
    LoggingConfig,
    PipelinePolicy,
    SchedulerPolicy,
)

__all__ = [
    "AllocatorPolicy",
    "ConfigBase",
    "DanmakuSettings",
    "EngineConfig",
    "LayoutPolicy",
    "LoggingConfig",
    "PipelinePolicy",
    "SchedulerPolicy",
    "configure_logging",
    "detect_format",
    "load_config",
    "load_engine_config",
    "load_settings",
]
