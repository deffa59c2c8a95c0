"""Configuration models for Danmaku.

User-facing display settings (``DanmakuSettings``) are kept apart from the
engine tuning knobs (layout, allocation, density, scheduling). Settings are
hot-swappable mid-session; the policies are normally fixed per session.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = '"Microsoft YaHei", "PingFang SC", "Noto Sans CJK SC", sans-serif'


class DanmakuSettings(BaseModel):
    """Viewer-adjustable display settings.

    Accepts snake_case names, the camelCase names used by host apps, and the
    keys the mobile player persisted (``danmakuFilter``, ``curEpOffset``,
    ``fontOptions`` ...), so stored settings blobs load unchanged.

    Example:
        >>> DanmakuSettings.model_validate({"danmakuFilter": 1, "fontSize": 24})
        DanmakuSettings(opacity=0.8, speed=100.0, font_size=24, ...)
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    opacity: float = Field(default=0.8, ge=0.0, le=1.0, description="Overlay opacity")
    speed: float = Field(
        default=100.0, gt=0.0, description="Base scroll speed in px/s before rate and width factors"
    )
    font_size: int = Field(
        default=20,
        gt=0,
        validation_alias=AliasChoices("font_size", "fontSize"),
        description="Font size in px",
    )
    height_ratio: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        validation_alias=AliasChoices("height_ratio", "heightRatio", "heightRatioOfScreen"),
        description="Fraction of the screen height available to comments",
    )
    source_filter: int = Field(
        default=0,
        ge=0,
        le=15,
        validation_alias=AliasChoices("source_filter", "sourceFilterMask", "danmakuFilter"),
        description="SourceFilter bit mask; set bits exclude that source",
    )
    motion_filter: int = Field(
        default=0,
        ge=0,
        le=7,
        validation_alias=AliasChoices(
            "motion_filter", "motionClassFilterMask", "danmakuModeFilter"
        ),
        description="MotionFilter bit mask; set bits exclude that motion family",
    )
    density_level: int = Field(
        default=0,
        ge=0,
        le=3,
        validation_alias=AliasChoices("density_level", "densityLevel", "danmakuDensityLimit"),
        description="0 disables density limiting; 3 is the sparsest",
    )
    episode_offset_seconds: float = Field(
        default=0.0,
        validation_alias=AliasChoices(
            "episode_offset_seconds", "perEpisodeOffsetSeconds", "curEpOffset"
        ),
        description="Seconds added to every authored comment time",
    )
    font_family: str = Field(
        default=DEFAULT_FONT_FAMILY,
        validation_alias=AliasChoices("font_family", "fontFamily"),
    )
    font_weight: str = Field(
        default="",
        validation_alias=AliasChoices("font_weight", "fontWeight", "fontOptions"),
        description="Free-form style options, e.g. 'bold italic'",
    )


class LayoutPolicy(BaseModel):
    """Row layout and text measurement knobs."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    line_padding_px: int = Field(default=8, ge=0, description="Added to font size for row height")
    min_rows: int = Field(default=6, ge=1, description="Minimum rows per lane pool")
    row_density: float = Field(
        default=1.0, gt=0.0, description="Multiplier on the rows that fit the usable height"
    )
    width_cache_size: int = Field(default=10000, gt=0, description="Max cached text widths")
    cjk_width_ratio: float = Field(default=1.0, gt=0.0, description="CJK glyph width / font size")
    other_width_ratio: float = Field(
        default=0.6, gt=0.0, description="Non-CJK glyph width / font size"
    )
    text_padding_px: float = Field(default=16.0, ge=0.0, description="Padding added to each text")
    max_width_screens: float = Field(
        default=2.0, gt=0.0, description="Estimated widths are capped at this many screen widths"
    )


class AllocatorPolicy(BaseModel):
    """Lane allocation tuning.

    The gap and probe constants were chosen empirically; only the no-overlap
    guarantee depends on them being positive.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    min_rate: float = Field(default=0.25, gt=0.0, description="Floor applied to playback rate")

    # Fixed (top/bottom) lanes
    fixed_dwell_ms: float = Field(default=4000.0, gt=0.0, description="Dwell at 1x, host ms")
    min_fixed_dwell_ms: float = Field(default=800.0, gt=0.0)

    # Scrolling motion
    min_speed: float = Field(default=50.0, gt=0.0, description="Floor on settings.speed, px/s")
    max_velocity_px_s: float = Field(default=900.0, gt=0.0)
    width_speedup: float = Field(
        default=0.4, ge=0.0, description="Extra speed per screen-width of text"
    )
    width_ratio_cap: float = Field(default=2.0, gt=0.0, description="Cap on text width / screen")
    scroll_buffer_px: float = Field(default=300.0, ge=0.0, description="Extra travel off-screen")
    min_scroll_duration_ms: float = Field(default=3000.0, gt=0.0)

    # Collision guards
    min_gap_px: float = Field(default=50.0, ge=0.0, description="Minimum same-row gap")
    gap_ratio: float = Field(default=0.15, ge=0.0, description="Gap as a share of occupant width")
    new_width_gap_ratio: float = Field(
        default=0.05, ge=0.0, description="Gap as a share of the new comment width"
    )
    catch_up_slack_ms: float = Field(default=30.0, ge=0.0)

    # Probing
    probe_step_ratio: float = Field(
        default=0.5, gt=0.0, description="Probe step as text widths travelled"
    )
    min_probe_step_ms: float = Field(default=30.0, gt=0.0)
    lookahead_ms: float = Field(default=6000.0, gt=0.0, description="Max wait before dropping")


class PipelinePolicy(BaseModel):
    """Density limiting knobs."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    grace_seconds: float = Field(
        default=8.0, ge=0.0, description="Comments at or before this time skip density caps"
    )
    height_margin_px: float = Field(default=18.0, ge=0.0)
    scroll_cap_base: int = Field(default=9, ge=1)
    scroll_cap_step: int = Field(default=2, ge=0)


class SchedulerPolicy(BaseModel):
    """Tick, catch-up and seek handling knobs."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    tick_interval_ms: float = Field(default=100.0, gt=0.0, description="Driver tick interval")
    large_window_ms: float = Field(
        default=300.0, gt=0.0, description="Windows at least this long use catch-up spawning"
    )
    max_catch_up_ms: float = Field(
        default=5000.0, ge=0.0, description="Comments older than this are skipped"
    )
    max_natural_jump_ms: float = Field(
        default=5000.0, gt=0.0, description="Forward jumps beyond this are treated as seeks"
    )
    backward_tolerance_ms: float = Field(
        default=100.0, ge=0.0, description="Backward jitter tolerated before declaring a seek"
    )
    seek_catch_up_grace_ms: float = Field(
        default=3000.0, ge=0.0, description="Re-admit comments this far behind a seek target"
    )
    fixed_max_offset_ms: float = Field(default=3700.0, ge=0.0)
    scroll_min_offset_base_ms: float = Field(default=4000.0, ge=0.0)
    scroll_offset_margin_ms: float = Field(default=300.0, ge=0.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    structured: bool = Field(default=False, description="Emit JSON lines")
    filename: str | None = Field(default=None, description="Log file; stdout when None")


class ConfigBase(BaseModel):
    """Base class for Danmaku configurations.

    Provides loading from files with defaults. Subclasses implement
    default_path() to name their default location.
    """

    model_config = ConfigDict(extra="ignore")  # Forward compatibility

    @classmethod
    def default_path(cls) -> Path:
        """Return the default config file path for this config type.

        Returns:
            Path to the default config file
        """
        raise NotImplementedError(f"{cls.__name__} must implement default_path()")

    @classmethod
    def load_or_default(cls, path: Path | str | None = None) -> Self:
        """Load config from path, or fall back to defaults.

        An explicit path must exist. The default path is optional; when it is
        missing the model defaults are used.

        Args:
            path: Path to config file, or None to use default

        Returns:
            Loaded config instance

        Raises:
            FileNotFoundError: If an explicit config file doesn't exist
            ValidationError: If config is invalid
        """
        from danmaku.core.config.loader import load_config

        if path is None:
            path = cls.default_path()
            if not Path(path).exists():
                logger.debug(f"No {cls.__name__} at {path}, using defaults")
                return cls()
        raw = load_config(path)
        return cls.model_validate(raw)


class EngineConfig(ConfigBase):
    """Complete engine configuration: settings plus every policy section."""

    settings: DanmakuSettings = Field(default_factory=DanmakuSettings)
    layout: LayoutPolicy = Field(default_factory=LayoutPolicy)
    allocator: AllocatorPolicy = Field(default_factory=AllocatorPolicy)
    pipeline: PipelinePolicy = Field(default_factory=PipelinePolicy)
    scheduler: SchedulerPolicy = Field(default_factory=SchedulerPolicy)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default_path(cls) -> Path:
        return Path("danmaku.yaml")
