"""Comment records, ingestion and synthetic generation.

The schedule builder lives in ``danmaku.core.comments.pipeline`` and is not
re-exported here, since it depends on the layout package.
"""

from danmaku.core.comments.generator import generate_comments
from danmaku.core.comments.ingest import (
    CommentParseError,
    group_comments_by_second,
    load_comments,
    parse_comments,
    parse_payload,
)
from danmaku.core.comments.models import (
    Comment,
    MotionClass,
    MotionFilter,
    SourceFilter,
    TimedComment,
)

__all__ = [
    "Comment",
    "CommentParseError",
    "MotionClass",
    "MotionFilter",
    "SourceFilter",
    "TimedComment",
    "generate_comments",
    "group_comments_by_second",
    "load_comments",
    "parse_comments",
    "parse_payload",
]
