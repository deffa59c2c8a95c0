"""Lane pools and the allocator that assigns comments to rows."""

from danmaku.core.lanes.allocator import DropReason, LaneAllocator, Placement
from danmaku.core.lanes.pool import LanePool

__all__ = [
    "DropReason",
    "LaneAllocator",
    "LanePool",
    "Placement",
]
