"""
Angular layout of players and boss on a notional 0-100 square.

Pure functions: the session caches the result, nothing here holds state.
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from raid_engine.models import Position


VERSUS = "versus"
CIRCULAR = "circular"
LAYOUTS = (VERSUS, CIRCULAR)

BOSS_ID = "boss"

CENTER = 50.0
MIN_COORD = 5.0
MAX_COORD = 95.0

VERSUS_START_ANGLE = 15.0
VERSUS_END_ANGLE = 75.0
VERSUS_SINGLE_ANGLE = 45.0
VERSUS_BOSS_ANGLE = 270.0
VERSUS_RADIUS = 35.0

CIRCULAR_START_ANGLE = 45.0
CIRCULAR_RADIUS = 30.0


def _clamp(v: float) -> float:
    return max(MIN_COORD, min(MAX_COORD, v))


def versus_angles(count: int) -> List[float]:
    if count <= 0:
        return []
    if count == 1:
        return [VERSUS_SINGLE_ANGLE]
    spread = VERSUS_END_ANGLE - VERSUS_START_ANGLE
    return [VERSUS_START_ANGLE + spread * i / (count - 1) for i in range(count)]


def circular_angles(count: int) -> List[float]:
    if count <= 0:
        return []
    step = 360.0 / count
    return [(CIRCULAR_START_ANGLE + step * i) % 360.0 for i in range(count)]


def layout_radius(count: int, layout: str) -> float:
    if layout == VERSUS:
        return VERSUS_RADIUS
    # Spread out past four players so cards don't overlap.
    return CIRCULAR_RADIUS * max(1.0, count / 4.0)


def polar_to_square(angle: float, radius: float) -> Tuple[float, float]:
    """Screen coordinates: y grows downward, so sine is subtracted."""
    radians = math.radians(angle)
    x = CENTER + radius * math.cos(radians)
    y = CENTER - radius * math.sin(radians)
    return round(_clamp(x), 3), round(_clamp(y), 3)


def boss_position(layout: str) -> Position:
    if layout == VERSUS:
        x, y = polar_to_square(VERSUS_BOSS_ANGLE, VERSUS_RADIUS)
        return Position(owner_id=BOSS_ID, angle=VERSUS_BOSS_ANGLE, x=x, y=y)
    return Position(owner_id=BOSS_ID, angle=0.0, x=CENTER, y=CENTER)


def compute_positions(player_ids: Sequence[str], layout: str) -> Tuple[List[Position], Position]:
    """
    Return (player positions in roster order, boss position).
    Unknown layouts raise ValueError; callers validate layout names first.
    """
    if layout not in LAYOUTS:
        raise ValueError(f"Unknown layout: {layout}")
    count = len(player_ids)
    angles = versus_angles(count) if layout == VERSUS else circular_angles(count)
    radius = layout_radius(count, layout)
    players = []
    for pid, angle in zip(player_ids, angles):
        x, y = polar_to_square(angle, radius)
        players.append(Position(owner_id=pid, angle=angle, x=x, y=y))
    return players, boss_position(layout)
