"""
Placement Engine — find a free spot for a new node.

Steps rightwards from the requested point in fixed increments; after a
full row it returns to the starting x and moves up one row. Overlap is
checked on bounding boxes of the fixed node footprint. When the attempt
budget runs out the last candidate is returned anyway.
"""

from __future__ import annotations

from logging import getLogger
from typing import Iterable

from flowcanvas.workflow.workflow_model import Position

logger = getLogger(__name__)


def boxes_overlap(
    a: Position, b: Position, width: float = 160, height: float = 80,
) -> bool:
    """Whether two equally sized node footprints intersect."""
    return abs(a.x - b.x) < width and abs(a.y - b.y) < height


def find_free_position(
    existing: Iterable[Position],
    desired: Position,
    width: float = 160,
    height: float = 80,
    step: float = 200,
    columns: int = 5,
    max_attempts: int = 50,
) -> Position:
    occupied = list(existing)
    candidate = desired
    for attempt in range(max_attempts):
        row, col = divmod(attempt, columns)
        candidate = Position(x=desired.x + col * step, y=desired.y - row * step)
        if not any(boxes_overlap(candidate, p, width, height) for p in occupied):
            return candidate

    logger.debug(
        f"No free position after {max_attempts} attempts from "
        f"({desired.x}, {desired.y}); using ({candidate.x}, {candidate.y})"
    )
    return candidate
