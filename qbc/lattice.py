"""M1: Lattice Generator — deterministic symbol -> anchor coordinate maps.

Implements:
    1.1  Encoding rules (per-request, with wire/legacy key aliases)
    1.2  Square lattice (2D, A-Z + space)
    1.3  Grid lattice (n x n x n, strategic placements then outside-in fill)
    1.4  Metatron's-cube lattice (sacred-geometry skeleton + spiral + seeded fallback)
    1.5  Lattice records and the built-in lookup
"""

import functools
import itertools
import json
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

import numpy as np

from qbc.charset import BASIC_CHARSET, EXTENDED_CHARSET, resolve_charset
from qbc.errors import ConfigurationError
from qbc.logging import audit, get_logger, trace

log = get_logger("lattice")

Coordinate = tuple[float, ...]

# Coordinates are stored rounded so every run and platform sees identical values
_PRECISION = 6


# ---------------------------------------------------------------------------
# 1.1  Encoding rules
# ---------------------------------------------------------------------------

_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off"})


def _as_bool(key: str, raw) -> bool:
    """Strict boolean: real bools, 0/1, or true/false-style strings."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        word = raw.strip().lower()
        if word in _TRUE:
            return True
        if word in _FALSE:
            return False
    raise ConfigurationError(f"Rule {key!r} expects a boolean, got {raw!r}", kind="invalid-record")


def _as_float(key: str, raw) -> float:
    if isinstance(raw, bool):
        raise ConfigurationError(f"Rule {key!r} expects a number, got {raw!r}", kind="invalid-record")
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Rule {key!r} expects a number, got {raw!r}", kind="invalid-record") from e


@dataclass(frozen=True)
class Rules:
    """Per-request encoding rules read by the path encoder."""

    enable_tick: bool = True
    tick_length_factor: float = 0.08
    inside_boundary_preference: bool = True
    # Forwarded to renderers only
    node_spacing: float = 0.2

    # Accepted keys per field, in priority order
    _KEYS = {
        "enable_tick": ("enable_tick", "enableTick", "enableRestartNotch"),
        "tick_length_factor": ("tick_length_factor", "tickLengthFactor", "notchLengthFactor"),
        "inside_boundary_preference": (
            "inside_boundary_preference", "insideBoundaryPreference", "insideSquarePreference",
        ),
        "node_spacing": ("node_spacing", "nodeSpacing"),
    }

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "Rules":
        """Build rules from a lattice record; missing fields keep their defaults."""
        if not data:
            return cls()
        values = {}
        for f in fields(cls):
            for key in cls._KEYS[f.name]:
                if data.get(key) is not None:
                    raw = data[key]
                    values[f.name] = _as_bool(key, raw) if f.type in (bool, "bool") else _as_float(key, raw)
                    break
        return cls(**values)

    def to_dict(self) -> dict:
        """Camel-case wire form."""
        return {
            "enableTick": self.enable_tick,
            "tickLengthFactor": self.tick_length_factor,
            "insideBoundaryPreference": self.inside_boundary_preference,
            "nodeSpacing": self.node_spacing,
        }


# ---------------------------------------------------------------------------
# Lattice value
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Lattice:
    """Immutable symbol -> coordinate map, 2D or 3D, components in [0, 1]."""

    key: str
    anchors: Mapping[str, Coordinate]
    charset: tuple[str, ...]
    dimensions: int
    symbols: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "anchors", MappingProxyType(dict(self.anchors)))
        object.__setattr__(self, "symbols", frozenset(self.anchors))

    def __len__(self) -> int:
        return len(self.anchors)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self.anchors

    def get(self, symbol: str) -> Coordinate | None:
        return self.anchors.get(symbol)

    def missing(self) -> list[str]:
        """Charset symbols that received no coordinate (over-provisioned charset)."""
        return [s for s in self.charset if s not in self.anchors]


def _clean(point: Iterable[float]) -> Coordinate:
    """Round and clamp a point into the unit cube."""
    return tuple(min(1.0, max(0.0, round(float(v), _PRECISION))) for v in point)


@trace
def lattice_from_anchors(
    key: str,
    anchors: Mapping[str, Iterable[float]],
    charset: Iterable[str] | None = None,
) -> Lattice:
    """Validate externally supplied anchors and wrap them as a Lattice.

    Raises:
        ConfigurationError: symbol is not a single character, a coordinate has
            the wrong arity, a component is outside [0, 1], or the anchors mix
            2D and 3D points.
    """
    cleaned: dict[str, Coordinate] = {}
    dims = None
    for symbol, point in anchors.items():
        if not isinstance(symbol, str) or len(symbol) != 1:
            raise ConfigurationError(f"Anchor symbol must be one character, got {symbol!r}",
                                     kind="invalid-anchor")
        coords = tuple(float(v) for v in point)
        if len(coords) not in (2, 3):
            raise ConfigurationError(f"Anchor {symbol!r} must have 2 or 3 components, got {len(coords)}",
                                     kind="invalid-anchor")
        if dims is None:
            dims = len(coords)
        elif len(coords) != dims:
            raise ConfigurationError(f"Anchor {symbol!r} mixes {len(coords)}D into a {dims}D lattice",
                                     kind="invalid-anchor")
        if not all(0.0 <= v <= 1.0 for v in coords):
            raise ConfigurationError(f"Anchor {symbol!r} lies outside the unit cube: {coords}",
                                     kind="invalid-anchor")
        cleaned[symbol] = coords

    order = tuple(cleaned) if charset is None else resolve_charset(charset)
    return Lattice(key=key, anchors=cleaned, charset=order, dimensions=dims or 2)


# ---------------------------------------------------------------------------
# 1.2  Square lattice (2D)
# ---------------------------------------------------------------------------

@trace
def generate_square_lattice(charset: Iterable[str] = BASIC_CHARSET) -> Lattice:
    """Lay the charset row-major on the smallest near-square grid."""
    symbols = resolve_charset(charset)
    cols = max(1, math.ceil(math.sqrt(len(symbols))))
    rows = max(1, math.ceil(len(symbols) / cols))

    def axis(index: int, count: int) -> float:
        return index / (count - 1) if count > 1 else 0.5

    anchors = {}
    for idx, symbol in enumerate(symbols):
        row, col = divmod(idx, cols)
        anchors[symbol] = _clean((axis(col, cols), axis(row, rows)))

    audit("lattice.generated", logger=log, kind="square", symbols=len(symbols),
          placed=len(anchors), grid=f"{cols}x{rows}")
    return Lattice(key="square", anchors=anchors, charset=symbols, dimensions=2)


# ---------------------------------------------------------------------------
# 1.3  Grid lattice (3D)
# ---------------------------------------------------------------------------

GRID_SIZE = 7

# Strategic cells, expressed on the 7x7x7 grid (i, j, k)
STRATEGIC_CELLS: dict[str, tuple[int, int, int]] = {
    # vowels on face centres
    "A": (3, 3, 0), "E": (3, 3, 6), "I": (3, 0, 3),
    "O": (3, 6, 3), "U": (0, 3, 3), "Y": (6, 3, 3),
    # common consonants on the 8 corners
    "T": (0, 0, 0), "N": (6, 0, 0), "S": (0, 6, 0), "R": (6, 6, 0),
    "H": (0, 0, 6), "L": (6, 0, 6), "D": (0, 6, 6), "C": (6, 6, 6),
    # punctuation at fixed interior points
    " ": (3, 3, 3), ".": (2, 2, 2), ",": (4, 4, 4), "?": (2, 4, 3),
    "!": (4, 2, 3), "-": (3, 3, 2), "'": (3, 3, 4),
}
# digits along the anti-diagonal of layers 1 and 5
STRATEGIC_CELLS.update({
    str(d): (1 + d % 5, 5 - d % 5, 1 if d < 5 else 5) for d in range(10)
})


def _scale_cell(cell: tuple[int, int, int], n: int) -> tuple[int, int, int]:
    if n == GRID_SIZE:
        return cell
    return tuple(round(c * (n - 1) / (GRID_SIZE - 1)) for c in cell)


def ordered_free_cells(n: int, claimed: set) -> list[tuple[int, int, int]]:
    """Unclaimed cells, layer by layer (k), each layer outside-in.

    Within a layer cells are sorted by descending Manhattan distance from the
    layer centre; equal distances keep generation order (stable sort).
    """
    centre = (n - 1) / 2
    cells = [
        (i, j, k)
        for k in range(n) for j in range(n) for i in range(n)
        if (i, j, k) not in claimed
    ]
    cells.sort(key=lambda c: (c[2], -(abs(c[0] - centre) + abs(c[1] - centre))))
    return cells


@trace
def generate_grid_lattice(charset: Iterable[str] = EXTENDED_CHARSET, n: int = GRID_SIZE) -> Lattice:
    """Place the charset on an n x n x n grid.

    Strategic symbols claim their cells first; everything else consumes the
    outside-in cell order in charset order. Symbols beyond the cell count get
    no coordinate and are treated as unsupported by the encoder.
    """
    if n < 2:
        raise ConfigurationError(f"Grid lattice needs n >= 2, got {n}", kind="unsupported-lattice")
    symbols = resolve_charset(charset)
    present = set(symbols)

    cells: dict[str, tuple[int, int, int]] = {}
    claimed: set = set()
    for symbol, cell in STRATEGIC_CELLS.items():
        if symbol not in present:
            continue
        cell = _scale_cell(cell, n)
        if cell in claimed:
            continue
        claimed.add(cell)
        cells[symbol] = cell

    remaining = [s for s in symbols if s not in cells]
    for symbol, cell in zip(remaining, ordered_free_cells(n, claimed)):
        cells[symbol] = cell

    span = n - 1
    anchors = {s: _clean(v / span for v in cells[s]) for s in symbols if s in cells}
    lattice = Lattice(key="grid", anchors=anchors, charset=symbols, dimensions=3)

    if len(anchors) < len(symbols):
        log.warning("grid %dx%dx%d has %d cells for %d symbols; %d left unplaced",
                    n, n, n, n ** 3, len(symbols), len(symbols) - len(anchors))
    audit("lattice.generated", logger=log, kind="grid", n=n, symbols=len(symbols),
          placed=len(anchors), strategic=len(claimed))
    return lattice


# ---------------------------------------------------------------------------
# 1.4  Metatron's-cube lattice (3D)
# ---------------------------------------------------------------------------

CENTRE = 0.5
BASE_RADIUS = 0.4
NESTED_LAYERS = 3
LAYER_TWIST_DEG = 15.0
DODECA_SCALE = 0.22
PHI = (1 + math.sqrt(5)) / 2

SPIRAL_POINTS = 145
SPIRAL_HEIGHT = 0.8
SPIRAL_RADIUS = 0.35
SPIRAL_STEP = math.radians(137.508)  # golden angle

RANDOM_LOW, RANDOM_HIGH = 0.1, 0.9
DEFAULT_SEED = 7


def _hex_ring(radius: float, z: float, rotation_deg: float = 0.0) -> list[np.ndarray]:
    angles = np.radians(rotation_deg + 60.0 * np.arange(6))
    return [np.array([CENTRE + radius * np.cos(a), CENTRE + radius * np.sin(a), z]) for a in angles]


def dodecahedron_vertices() -> np.ndarray:
    """20 unit dodecahedron vertices: 8 cube corners + 12 golden-rectangle points."""
    inv = 1 / PHI
    cube = [np.array(v, dtype=float) for v in itertools.product((-1.0, 1.0), repeat=3)]
    golden = []
    for a, b in itertools.product((-1.0, 1.0), repeat=2):
        golden.append(np.array([0.0, a * inv, b * PHI]))
    for a, b in itertools.product((-1.0, 1.0), repeat=2):
        golden.append(np.array([a * inv, b * PHI, 0.0]))
    for a, b in itertools.product((-1.0, 1.0), repeat=2):
        golden.append(np.array([a * PHI, 0.0, b * inv]))
    return np.vstack(cube + golden)


def metatron_skeleton() -> list[np.ndarray]:
    """Fixed skeleton points in placement order (71 points)."""
    points = [np.array([CENTRE, CENTRE, CENTRE])]
    points += _hex_ring(0.5 * BASE_RADIUS, CENTRE)
    points += _hex_ring(BASE_RADIUS, CENTRE, rotation_deg=30.0)
    points += [np.array([CENTRE, CENTRE, CENTRE + BASE_RADIUS]),
               np.array([CENTRE, CENTRE, CENTRE - BASE_RADIUS])]
    for direction in (1, -1):
        for layer in range(1, NESTED_LAYERS + 1):
            z = CENTRE + direction * layer * BASE_RADIUS / (NESTED_LAYERS + 1)
            radius = BASE_RADIUS * (1 - layer / (NESTED_LAYERS + 1))
            points += _hex_ring(radius, z, rotation_deg=layer * LAYER_TWIST_DEG)
    points += list(CENTRE + DODECA_SCALE * dodecahedron_vertices())
    return points


def spiral_points(count: int = SPIRAL_POINTS) -> Iterator[np.ndarray]:
    """Z-ascending spiral; radius follows |sin(5 (z - centre))|, so the middle point is the centre."""
    half = (count - 1) // 2
    dz = SPIRAL_HEIGHT / (count - 1)
    for i in range(count):
        z = CENTRE + (i - half) * dz
        radius = SPIRAL_RADIUS * abs(math.sin(5 * (z - CENTRE)))
        angle = i * SPIRAL_STEP
        yield np.array([CENTRE + radius * math.cos(angle), CENTRE + radius * math.sin(angle), z])


def _metatron_points(rng: np.random.Generator) -> Iterator[np.ndarray]:
    yield from metatron_skeleton()
    yield from spiral_points()
    while True:
        yield rng.uniform(RANDOM_LOW, RANDOM_HIGH, size=3)


@trace
def generate_metatron_lattice(charset: Iterable[str] = EXTENDED_CHARSET, seed: int | None = DEFAULT_SEED) -> Lattice:
    """Place the charset onto Metatron's cube.

    Order: centre, two hexagonal rings, polar caps, three upper and three
    lower nested rings, dodecahedron, spiral, then seeded random interior
    points. Placement stops as soon as the symbols run out.
    """
    symbols = resolve_charset(charset)
    rng = np.random.default_rng(seed)
    capacity = len(metatron_skeleton()) + SPIRAL_POINTS

    anchors = {symbol: _clean(point) for symbol, point in zip(symbols, _metatron_points(rng))}

    audit("lattice.generated", logger=log, kind="metatron", symbols=len(symbols),
          placed=len(anchors), random_points=max(0, len(symbols) - capacity), seed=seed)
    return Lattice(key="metatron", anchors=anchors, charset=symbols, dimensions=3)


# ---------------------------------------------------------------------------
# Kind dispatch + memoization
# ---------------------------------------------------------------------------

LATTICE_KINDS = {
    "square": "2D near-square grid, A-Z + space",
    "grid": "7x7x7 cubic grid, extended charset",
    "metatron": "Metatron's cube, extended charset",
}


def generate(kind: str, charset: str | Iterable[str] | None = None, seed: int | None = DEFAULT_SEED) -> Lattice:
    """Generate a lattice by kind.

    Raises:
        ConfigurationError: unknown kind.
    """
    if kind == "square":
        return generate_square_lattice(BASIC_CHARSET if charset is None else charset)
    if kind == "grid":
        return generate_grid_lattice(EXTENDED_CHARSET if charset is None else charset)
    if kind == "metatron":
        return generate_metatron_lattice(EXTENDED_CHARSET if charset is None else charset, seed=seed)
    raise ConfigurationError(
        f"Unknown lattice kind: {kind!r}. Choose from {list(LATTICE_KINDS)}",
        kind="unsupported-lattice",
    )


@functools.lru_cache(maxsize=None)
def _cached_lattice(kind: str, charset) -> Lattice:
    return generate(kind, charset)


def get_lattice(kind: str, charset: str | Iterable[str] | None = None) -> Lattice:
    """Shared, generate-once lattice for *kind* (read-only, safe to share across callers)."""
    if charset is not None and not isinstance(charset, str):
        charset = tuple(charset)
    return _cached_lattice(kind, charset)


# ---------------------------------------------------------------------------
# 1.5  Lattice records and lookup
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LatticeRecord:
    """What the lattice lookup hands the encoder: anchors + rules (+ optional style)."""

    lattice: Lattice
    rules: Rules = field(default_factory=Rules)
    style: Mapping = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.lattice.key


def record_from_dict(data: Mapping) -> LatticeRecord:
    """Parse a stored lattice definition.

    Accepts ``anchors``/``anchors_json``, ``rules``/``rules_json`` and
    ``style``/``style_json``; an optional ``charset`` list fixes symbol order.
    """
    anchors = data.get("anchors", data.get("anchors_json"))
    if not isinstance(anchors, Mapping) or not anchors:
        raise ConfigurationError("Lattice record has no anchors", kind="invalid-record")
    key = data.get("lattice_key") or data.get("key") or "custom"
    lattice = lattice_from_anchors(key, anchors, charset=data.get("charset"))
    rules = Rules.from_dict(data.get("rules", data.get("rules_json")))
    style = data.get("style", data.get("style_json")) or {}
    return LatticeRecord(lattice=lattice, rules=rules, style=dict(style))


def record_to_dict(record: LatticeRecord) -> dict:
    lattice = record.lattice
    return {
        "lattice_key": lattice.key,
        "dimensions": lattice.dimensions,
        "charset": list(lattice.charset),
        "anchors": {s: list(p) for s, p in lattice.anchors.items()},
        "rules": record.rules.to_dict(),
        "style": dict(record.style),
    }


@trace
def load_record(path: str | Path) -> LatticeRecord:
    """Read a lattice definition from a JSON file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    record = record_from_dict(data)
    audit("lattice.loaded", logger=log, path=str(path), key=record.key,
          anchors=len(record.lattice), dims=record.lattice.dimensions)
    return record


class LatticeLookup(Protocol):
    def lookup(self, key: str) -> LatticeRecord: ...


class BuiltinLatticeLookup:
    """Resolves the built-in lattice kinds to records with default rules."""

    def __init__(self, rules: Rules | None = None):
        self.rules = rules or Rules()

    def lookup(self, key: str) -> LatticeRecord:
        return LatticeRecord(lattice=get_lattice(key), rules=self.rules)

    def keys(self) -> list[str]:
        return list(LATTICE_KINDS)
