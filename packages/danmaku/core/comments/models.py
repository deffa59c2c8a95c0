"""Comment models and the filter flag vocabularies.

Motion classes use the dandanplay / bilibili mode codes so that comment
payloads can be validated without a translation table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
import math

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class MotionClass(IntEnum):
    """Movement pattern of a comment.

    Attributes:
        SCROLL_LEFT: Enters at the right edge and moves left.
        BOTTOM: Fixed at the bottom of the usable area for a dwell period.
        TOP: Fixed at the top for a dwell period.
        SCROLL_RIGHT: Enters at the left edge and moves right.
    """

    SCROLL_LEFT = 1
    BOTTOM = 4
    TOP = 5
    SCROLL_RIGHT = 6

    @property
    def is_scrolling(self) -> bool:
        return self in (MotionClass.SCROLL_LEFT, MotionClass.SCROLL_RIGHT)

    @property
    def is_fixed(self) -> bool:
        return not self.is_scrolling


class SourceFilter(IntFlag):
    """Comment source categories, OR'd into ``DanmakuSettings.source_filter``.

    A set bit excludes comments attributed to that source. Attribution is
    read from the comment's source tag (the user field of the comment feed).
    """

    NONE = 0
    BILIBILI = 1
    GAMER = 2
    DANDANPLAY = 4
    OTHER = 8


class MotionFilter(IntFlag):
    """Motion families, OR'd into ``DanmakuSettings.motion_filter``."""

    NONE = 0
    BOTTOM = 1
    TOP = 2
    SCROLL = 4


def motion_filter_bit(motion: MotionClass) -> MotionFilter:
    """Return the MotionFilter bit covering ``motion``."""
    if motion == MotionClass.BOTTOM:
        return MotionFilter.BOTTOM
    if motion == MotionClass.TOP:
        return MotionFilter.TOP
    return MotionFilter.SCROLL


def source_matches(source_tag: str, flag: SourceFilter) -> bool:
    """Check whether a source tag is attributable to a single source flag.

    Args:
        source_tag: Raw user / source field of the comment.
        flag: One SourceFilter bit.

    Returns:
        True if the tag belongs to that source.
    """
    tag = source_tag or ""
    if flag == SourceFilter.BILIBILI:
        return "[BiliBili]" in tag
    if flag == SourceFilter.GAMER:
        return "[Gamer]" in tag
    if flag == SourceFilter.DANDANPLAY:
        return tag.startswith("[") and tag.endswith("]")
    if flag == SourceFilter.OTHER:
        return "[BiliBili]" not in tag and "[Gamer]" not in tag and not tag.startswith("[")
    return False


class Comment(BaseModel):
    """An authored comment as supplied by the comment source.

    Immutable; created once per session and never mutated. The scheduled
    appearance time is derived later by the pipeline (see TimedComment).
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: int = Field(description="Unique per session")
    time_seconds: float = Field(
        validation_alias=AliasChoices("time_seconds", "appearAtSeconds", "timeInSeconds"),
        description="Authored appearance time in video seconds",
    )
    text: str = Field(min_length=1)
    color_hex: str = Field(
        default="#ffffff",
        validation_alias=AliasChoices("color_hex", "colorHex"),
        pattern="^#[0-9a-fA-F]{6}$",
    )
    motion_class: MotionClass = Field(
        default=MotionClass.SCROLL_LEFT,
        validation_alias=AliasChoices("motion_class", "motionClass", "mode"),
    )
    source_tag: str = Field(
        default="", validation_alias=AliasChoices("source_tag", "sourceTag", "user")
    )

    @field_validator("time_seconds")
    @classmethod
    def _finite_time(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("time_seconds must be finite")
        return v


@dataclass(frozen=True, slots=True)
class TimedComment:
    """A comment admitted by the pipeline, with its resolved appearance time.

    Attributes:
        comment: The authored comment.
        appear_at_ms: Authored time plus the episode offset, in video ms.
    """

    comment: Comment
    appear_at_ms: int

    @property
    def id(self) -> int:
        return self.comment.id

    @property
    def text(self) -> str:
        return self.comment.text

    @property
    def motion_class(self) -> MotionClass:
        return self.comment.motion_class
