"""M4: Glyph Renderers — SVG markup and PNG raster output for encoded paths.

Implements:
    4.1  Glyph style + orientation (rotation / mirror / vertical flip, 3D yaw and pitch)
    4.2  SVG renderer: one <path> plus one node circle per distinct symbol
    4.3  PNG renderer: same geometry drawn with Pillow
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields

import svgwrite
from PIL import Image, ImageColor, ImageDraw

from qbc.encoder import EncodedPath, EventKind
from qbc.lattice import Coordinate, Lattice
from qbc.logging import audit, get_logger, trace

log = get_logger("svg")

DEFAULT_SIZE = 200
MARGIN = 20


# ---------------------------------------------------------------------------
# 4.1  Style & orientation
# ---------------------------------------------------------------------------

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class GlyphStyle:
    stroke_width: float = 2
    stroke_color: str = "#000000"
    node_size: float = 6
    node_color: str = "#000000"
    node_fill_color: str = "#ffffff"
    show_nodes: bool = True
    background_color: str = "#ffffff"

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "GlyphStyle":
        """Accepts snake_case or camelCase keys; unknown keys are ignored."""
        if not data:
            return cls()
        values = {}
        for f in fields(cls):
            for key in (f.name, _camel(f.name)):
                if key in data and data[key] is not None:
                    values[f.name] = data[key]
                    break
        return cls(**values)


@dataclass(frozen=True)
class Orientation:
    """Glyph orientation about the lattice centre.

    ``yaw`` and ``pitch`` (degrees) turn 3D points about the cube centre
    (0.5, 0.5, 0.5) before the z axis is dropped: yaw about the vertical (y)
    axis first, then pitch about the horizontal (x) axis. 2D points ignore
    them. ``mirror``, ``flip_vertical`` and ``rotation`` then act on the
    projection about (0.5, 0.5).
    """

    rotation: float = 0.0
    mirror: bool = False
    flip_vertical: bool = False
    yaw: float = 0.0
    pitch: float = 0.0

    @property
    def is_identity(self) -> bool:
        return not (self.mirror or self.flip_vertical or self.rotation % 360
                    or self.yaw % 360 or self.pitch % 360)

    def _tilt(self, point: Coordinate) -> tuple[float, float]:
        x, y, z = point[0] - 0.5, point[1] - 0.5, point[2] - 0.5
        yaw, pitch = math.radians(self.yaw), math.radians(self.pitch)
        x, z = x * math.cos(yaw) + z * math.sin(yaw), -x * math.sin(yaw) + z * math.cos(yaw)
        y = y * math.cos(pitch) - z * math.sin(pitch)
        return x + 0.5, y + 0.5

    def apply(self, point: Coordinate) -> tuple[float, float]:
        """Orient the (x, y) projection of a normalized point."""
        if self.is_identity:
            return point[0], point[1]
        if len(point) == 3 and (self.yaw % 360 or self.pitch % 360):
            px, py = self._tilt(point)
        else:
            px, py = point[0], point[1]
        x, y = px - 0.5, py - 0.5
        if self.mirror:
            x = -x
        if self.flip_vertical:
            y = -y
        angle = math.radians(self.rotation)
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        x, y = x * cos_a - y * sin_a, x * sin_a + y * cos_a
        return x + 0.5, y + 0.5


def _fmt(value: float) -> str:
    """Compact number for markup: 20.0 -> "20", 33.3333 -> "33.333"."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


class _Projector:
    """Normalized coordinate -> pixel, after orientation."""

    def __init__(self, size: float, margin: float, orientation: Orientation | None):
        self.margin = margin
        self.inner = size - 2 * margin
        self.orientation = orientation or Orientation()

    def __call__(self, point: Coordinate) -> tuple[float, float]:
        x, y = self.orientation.apply(point)
        return self.margin + x * self.inner, self.margin + y * self.inner


def path_commands(path: EncodedPath, project: _Projector) -> list[str]:
    """SVG path tokens: M for move, L for line, L + M (pen-lift) for tick."""
    tokens: list[str] = []
    for event in path.events:
        x, y = project(event.pos)
        if event.kind is EventKind.MOVE:
            tokens += ["M", _fmt(x), _fmt(y)]
        else:
            tokens += ["L", _fmt(x), _fmt(y)]
            if event.kind is EventKind.TICK:
                tx, ty = project(event.tick_end)
                tokens += ["M", _fmt(tx), _fmt(ty)]
    return tokens


def pen_runs(path: EncodedPath, project: _Projector) -> list[list[tuple[float, float]]]:
    """Connected polylines: a MOVE or a tick pen-lift starts a new run."""
    runs: list[list[tuple[float, float]]] = []
    for event in path.events:
        point = project(event.pos)
        if event.kind is EventKind.MOVE or not runs:
            runs.append([point])
            continue
        runs[-1].append(point)
        if event.kind is EventKind.TICK:
            runs.append([project(event.tick_end)])
    return runs


def node_points(path: EncodedPath, lattice: Lattice, project: _Projector) -> list[tuple[str, tuple[float, float]]]:
    """One point per distinct visited symbol, first-visit order."""
    nodes = []
    for symbol in path.distinct_symbols():
        anchor = lattice.get(symbol)
        if anchor is not None:
            nodes.append((symbol, project(anchor)))
    return nodes


# ---------------------------------------------------------------------------
# 4.2  SVG
# ---------------------------------------------------------------------------

def draw_glyph(
    dwg: svgwrite.Drawing,
    parent,
    path: EncodedPath,
    lattice: Lattice,
    style: GlyphStyle,
    size: float,
    orientation: Orientation | None = None,
    background_size=("100%", "100%"),
):
    """Add background, path and nodes for one glyph to *parent* (drawing or group)."""
    project = _Projector(size, MARGIN, orientation)
    parent.add(dwg.rect(insert=(0, 0), size=background_size, fill=style.background_color))
    parent.add(dwg.path(
        d=" ".join(path_commands(path, project)),
        fill="none",
        stroke=style.stroke_color,
        stroke_width=style.stroke_width,
        stroke_linecap="round",
        stroke_linejoin="round",
    ))
    if style.show_nodes:
        for _, (x, y) in node_points(path, lattice, project):
            parent.add(dwg.circle(
                center=(_fmt(x), _fmt(y)),
                r=_fmt(style.node_size / 2),
                fill=style.node_fill_color,
                stroke=style.node_color,
                stroke_width=1,
            ))


@trace
def render_svg(
    path: EncodedPath,
    lattice: Lattice,
    style: GlyphStyle | None = None,
    size: int = DEFAULT_SIZE,
    orientation: Orientation | None = None,
) -> str:
    """Render an encoded path as a standalone SVG document string."""
    style = style or GlyphStyle()
    dwg = svgwrite.Drawing(size=(size, size), debug=False)
    dwg.viewbox(0, 0, size, size)
    draw_glyph(dwg, dwg, path, lattice, style, size, orientation)
    markup = dwg.tostring()
    audit("svg.rendered", logger=log, events=len(path), nodes=path.unique_symbols if style.show_nodes else 0,
          size=size, bytes=len(markup))
    return markup


# ---------------------------------------------------------------------------
# 4.3  PNG
# ---------------------------------------------------------------------------

@trace
def render_png(
    path: EncodedPath,
    lattice: Lattice,
    style: GlyphStyle | None = None,
    size: int = 512,
    orientation: Orientation | None = None,
) -> Image.Image:
    """Rasterize the glyph at *size* x *size* pixels.

    Stroke width, node size and margin scale with size relative to the
    200px SVG reference.
    """
    style = style or GlyphStyle()
    factor = size / DEFAULT_SIZE
    project = _Projector(size, MARGIN * factor, orientation)

    img = Image.new("RGB", (size, size), ImageColor.getrgb(style.background_color))
    draw = ImageDraw.Draw(img)
    stroke = ImageColor.getrgb(style.stroke_color)
    width = max(1, round(style.stroke_width * factor))
    cap = width / 2

    for run in pen_runs(path, project):
        if len(run) < 2:
            continue
        draw.line(run, fill=stroke, width=width, joint="curve")
        # round caps
        for x, y in (run[0], run[-1]):
            draw.ellipse([x - cap, y - cap, x + cap, y + cap], fill=stroke)

    if style.show_nodes:
        r = style.node_size / 2 * factor
        fill = ImageColor.getrgb(style.node_fill_color)
        outline = ImageColor.getrgb(style.node_color)
        for _, (x, y) in node_points(path, lattice, project):
            draw.ellipse([x - r, y - r, x + r, y + r], fill=fill, outline=outline, width=max(1, round(factor)))

    audit("png.rendered", logger=log, events=len(path), size=f"{size}x{size}")
    return img
