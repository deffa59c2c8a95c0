"""Comment ingestion: turn comment-source payloads into Comment records.

Two record shapes are accepted:

- dandanplay wire records ``{"cid": 1, "p": "12.5,1,16777215,[BiliBili]abc", "m": "text"}``
  where ``p`` is ``time,mode,color,user``
- plain records ``{"appearAtSeconds": 12.5, "text": "...", "colorHex": "#ffffff",
  "motionClass": 1, "sourceTag": "..."}`` (snake_case names also work)

Malformed records are discarded and logged at DEBUG; they never surface as
errors to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import math
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from danmaku.core.comments.models import Comment, MotionClass
from danmaku.core.utils.json import read_json_any

logger = logging.getLogger(__name__)

DEFAULT_COLOR = 0xFFFFFF


class CommentParseError(ValueError):
    """Raised when a single comment record cannot be parsed."""

    pass


def color_to_hex(value: Any) -> str:
    """Normalize a decimal RGB integer (or numeric string) to ``#rrggbb``.

    Example:
        >>> color_to_hex(16711680)
        '#ff0000'
    """
    try:
        number = int(str(value).strip() or DEFAULT_COLOR)
    except ValueError as e:
        raise CommentParseError(f"Invalid color: {value!r}") from e
    if not 0 <= number <= 0xFFFFFF:
        raise CommentParseError(f"Color out of range: {value!r}")
    return f"#{number:06x}"


def parse_dandanplay_record(record: Mapping[str, Any], fallback_id: int) -> Comment:
    """Parse one dandanplay ``{cid, p, m}`` record.

    Args:
        record: Raw record from the comment API.
        fallback_id: Id to use when the record has no ``cid``.

    Returns:
        Parsed Comment

    Raises:
        CommentParseError: If the record is malformed.
    """
    params = record.get("p")
    if not params:
        raise CommentParseError("Missing 'p' field")

    text = str(record.get("m") or "").strip()
    if not text:
        raise CommentParseError("Missing comment text")

    parts = str(params).split(",")
    try:
        time_seconds = float(parts[0])
    except ValueError as e:
        raise CommentParseError(f"Unparseable time: {parts[0]!r}") from e

    try:
        mode = int(parts[1]) if len(parts) > 1 and parts[1] else int(MotionClass.SCROLL_LEFT)
    except ValueError as e:
        raise CommentParseError(f"Unparseable mode: {parts[1]!r}") from e

    color_hex = color_to_hex(parts[2]) if len(parts) > 2 else f"#{DEFAULT_COLOR:06x}"
    user = parts[3] if len(parts) > 3 else ""

    return _build_comment(
        {
            "id": record.get("cid", fallback_id),
            "time_seconds": time_seconds,
            "text": text,
            "color_hex": color_hex,
            "motion_class": mode,
            "source_tag": user,
        }
    )


def parse_plain_record(record: Mapping[str, Any], fallback_id: int) -> Comment:
    """Parse one plain comment record.

    Raises:
        CommentParseError: If the record is malformed.
    """
    data = dict(record)
    data.setdefault("id", fallback_id)
    if isinstance(data.get("text"), str):
        data["text"] = data["text"].strip()
    for key in ("color", "colorHex", "color_hex"):
        if isinstance(data.get(key), int):
            data["color_hex"] = color_to_hex(data.pop(key))
            break
    return _build_comment(data)


def _build_comment(data: Mapping[str, Any]) -> Comment:
    try:
        return Comment.model_validate(data)
    except ValidationError as e:
        raise CommentParseError(str(e)) from e


def parse_comments(records: Iterable[Mapping[str, Any]]) -> list[Comment]:
    """Parse a sequence of records, discarding malformed ones and duplicate ids.

    Args:
        records: dandanplay or plain records, in source order.

    Returns:
        Comments in source order.
    """
    comments: list[Comment] = []
    seen: set[int] = set()
    discarded = 0

    for index, record in enumerate(records):
        fallback_id = index + 1
        try:
            if not isinstance(record, Mapping):
                raise CommentParseError(f"Expected a mapping, got {type(record).__name__}")
            if "p" in record:
                comment = parse_dandanplay_record(record, fallback_id)
            else:
                comment = parse_plain_record(record, fallback_id)
        except CommentParseError as e:
            discarded += 1
            logger.debug(f"Discarding comment record {index}: {e}")
            continue

        if comment.id in seen:
            discarded += 1
            logger.debug(f"Discarding duplicate comment id {comment.id}")
            continue
        seen.add(comment.id)
        comments.append(comment)

    if discarded:
        logger.info(f"Ingested {len(comments)} comments, discarded {discarded} malformed")
    return comments


def parse_payload(payload: Any) -> list[Comment]:
    """Parse a whole comment payload.

    Accepts the dandanplay envelope ``{"count": n, "comments": [...]}`` or a
    bare list of records. Anything else yields no comments.
    """
    if isinstance(payload, Mapping):
        records = payload.get("comments")
        if isinstance(records, list):
            return parse_comments(records)
        logger.warning("Comment payload has no 'comments' list")
        return []
    if isinstance(payload, list):
        return parse_comments(payload)
    logger.warning(f"Unsupported comment payload type: {type(payload).__name__}")
    return []


def load_comments(path: str | Path) -> list[Comment]:
    """Load comments from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Comment file does not exist: {path}")
    try:
        payload = read_json_any(path)
    except ValueError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e
    return parse_payload(payload)


def group_comments_by_second(comments: Iterable[Comment]) -> dict[int, list[Comment]]:
    """Group comments by the whole second of their authored time."""
    groups: dict[int, list[Comment]] = {}
    for comment in comments:
        groups.setdefault(math.floor(comment.time_seconds), []).append(comment)
    return groups
