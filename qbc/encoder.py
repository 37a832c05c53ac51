"""M2: Path Encoder — fold normalized text over a lattice into pen events.

A revisited symbol draws a short perpendicular tick (when the rules allow it)
so that the glyph records the revisit instead of silently retracing.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

import numpy as np

from qbc.charset import normalize
from qbc.lattice import Coordinate, Lattice, Rules
from qbc.logging import get_logger, trace

log = get_logger("encoder")

UP = np.array([0.0, 1.0, 0.0])
RIGHT = np.array([1.0, 0.0, 0.0])
# |travel.y| above this counts as parallel to UP
UP_PARALLEL_THRESHOLD = 0.9


class EventKind(Enum):
    MOVE = "move"
    LINE = "line"
    TICK = "tick"


@dataclass(frozen=True)
class PathEvent:
    """One pen instruction. ``tick_end`` is set only for TICK events."""

    kind: EventKind
    symbol: str
    pos: Coordinate
    tick_end: Coordinate | None = None


@dataclass(frozen=True)
class EncodedPath:
    """Encoder output: events, the (non-deduplicated) visit order and per-symbol counts."""

    events: tuple[PathEvent, ...] = ()
    visited: tuple[str, ...] = ()
    visit_counts: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "events", tuple(self.events))
        object.__setattr__(self, "visited", tuple(self.visited))
        object.__setattr__(self, "visit_counts", MappingProxyType(dict(self.visit_counts)))

    def __len__(self) -> int:
        return len(self.events)

    @property
    def dimensions(self) -> int:
        return len(self.events[0].pos) if self.events else 0

    @property
    def symbol_count(self) -> int:
        return len(self.visited)

    @property
    def unique_symbols(self) -> int:
        return len(self.visit_counts)

    def distinct_symbols(self) -> list[str]:
        """Visited symbols, first-visit order, each once."""
        return list(dict.fromkeys(self.visited))

    @classmethod
    def from_events(cls, events) -> "EncodedPath":
        """Rebuild visit bookkeeping from an event sequence (used by decoders)."""
        events = tuple(events)
        counts: dict[str, int] = {}
        for event in events:
            counts[event.symbol] = counts.get(event.symbol, 0) + 1
        return cls(events=events, visited=tuple(e.symbol for e in events), visit_counts=counts)


# ---------------------------------------------------------------------------
# Tick geometry
# ---------------------------------------------------------------------------

def tick_end_2d(pen: Coordinate, target: Coordinate, rules: Rules) -> Coordinate | None:
    """Perpendicular tick end for a 2D revisit, or None for a zero-length approach."""
    dx = target[0] - pen[0]
    dy = target[1] - pen[1]
    length = float(np.hypot(dx, dy))
    if length == 0:
        return None
    sign = 1.0 if rules.inside_boundary_preference else -1.0
    scale = rules.tick_length_factor * sign
    return (target[0] + (-dy / length) * scale, target[1] + (dx / length) * scale)


def tick_end_3d(pen: Coordinate, target: Coordinate, rules: Rules) -> Coordinate | None:
    """Perpendicular tick end for a 3D revisit, or None for a zero-length approach.

    The perpendicular is travel x UP, or travel x RIGHT when the travel
    direction is close to UP.
    """
    travel = np.asarray(target, dtype=float) - np.asarray(pen, dtype=float)
    length = float(np.linalg.norm(travel))
    if length == 0:
        return None
    direction = travel / length
    axis = RIGHT if abs(direction[1]) > UP_PARALLEL_THRESHOLD else UP
    perp = np.cross(direction, axis)
    norm = float(np.linalg.norm(perp)) or 1.0
    end = np.asarray(target, dtype=float) + perp / norm * rules.tick_length_factor
    return tuple(float(v) for v in end)


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------

@trace
def encode(text: str, lattice: Lattice, rules: Rules | None = None) -> EncodedPath:
    """Encode *text* as a pen path over *lattice*.

    The first placed symbol is a MOVE; a revisit becomes a TICK when ticks
    are enabled and the approach has non-zero length; everything else is a
    LINE. Characters without an anchor contribute nothing.
    """
    rules = rules or Rules()
    tick_end = tick_end_3d if lattice.dimensions == 3 else tick_end_2d

    events: list[PathEvent] = []
    visited: list[str] = []
    counts: dict[str, int] = {}
    pen: Coordinate | None = None

    for symbol in normalize(text, lattice.symbols):
        target = lattice.get(symbol)
        if target is None:
            continue
        counts[symbol] = counts.get(symbol, 0) + 1

        if pen is None:
            events.append(PathEvent(EventKind.MOVE, symbol, target))
            pen = target
        else:
            end = tick_end(pen, target, rules) if counts[symbol] > 1 and rules.enable_tick else None
            if end is not None:
                events.append(PathEvent(EventKind.TICK, symbol, target, end))
                pen = end
            else:
                events.append(PathEvent(EventKind.LINE, symbol, target))
                pen = target
        visited.append(symbol)

    return EncodedPath(events=events, visited=visited, visit_counts=counts)
