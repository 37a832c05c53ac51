"""M6: Composite Glyphs — split long text into chunks and tile their glyphs.

Layout engine: grid, hierarchical, mosaic.
"""

import math
from dataclasses import dataclass

import svgwrite

from qbc.encoder import EncodedPath, encode
from qbc.errors import ConfigurationError
from qbc.lattice import Lattice, Rules
from qbc.logging import audit, get_logger, trace
from qbc.package import glyph_hash
from qbc.svg import GlyphStyle, Orientation, draw_glyph

log = get_logger("composite")

LAYOUTS = {
    "grid": "rows of grid_columns tiles",
    "hierarchical": "one large primary tile, smaller secondaries beside it",
    "mosaic": "near-square grid, odd rows shifted half a tile",
}

DEFAULT_CHUNK_SIZE = 12
DEFAULT_GRID_COLUMNS = 3
GRID_COLUMN_RANGE = (2, 6)
DEFAULT_PRIMARY_SCALE = 0.5
PRIMARY_SCALE_RANGE = (0.3, 0.7)


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Greedily pack whitespace-separated words into chunks of <= chunk_size chars.

    Words are joined with single spaces; a word longer than chunk_size is
    hard-split.
    """
    if chunk_size < 1:
        raise ConfigurationError(f"chunk_size must be >= 1, got {chunk_size}", kind="invalid-chunk-size")
    chunks: list[str] = []
    current = ""
    for word in text.split():
        pieces = [word[i:i + chunk_size] for i in range(0, len(word), chunk_size)]
        for piece in pieces:
            if not current:
                current = piece
            elif len(current) + 1 + len(piece) <= chunk_size:
                current = f"{current} {piece}"
            else:
                chunks.append(current)
                current = piece
    if current:
        chunks.append(current)
    return chunks


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

Tile = tuple[int, int, int]  # (x, y, edge) in pixels


def _check_range(name: str, value: float, low: float, high: float, kind: str):
    if not low <= value <= high:
        raise ConfigurationError(f"{name} must be within [{low}, {high}], got {value}", kind=kind)


def _grid_tiles(n_tiles: int, tile_size: int, gap: int, cols: int, stagger: bool = False) -> list[Tile]:
    stride = tile_size + gap
    tiles = []
    for idx in range(n_tiles):
        row, col = divmod(idx, cols)
        offset = stride // 2 if stagger and row % 2 else 0
        tiles.append((col * stride + offset, row * stride, tile_size))
    return tiles


def _hierarchical_tiles(n_tiles: int, tile_size: int, gap: int, primary_scale: float) -> list[Tile]:
    """Primary tile at the origin; secondaries fill columns to its right.

    Secondary stride is ``(primary + gap) * (1 - primary_scale)``, rounded; each
    column holds as many secondaries as fit beside the primary edge.
    """
    if n_tiles == 0:
        return []
    primary = tile_size
    secondary = max(1, round((primary + gap) * (1 - primary_scale)) - gap)
    rows = max(1, (primary + gap) // (secondary + gap))
    stride = secondary + gap
    tiles = [(0, 0, primary)]
    for idx in range(n_tiles - 1):
        col, row = divmod(idx, rows)
        tiles.append((primary + gap + col * stride, row * stride, secondary))
    return tiles


@trace
def compute_layout_positions(
    layout: str,
    n_tiles: int,
    tile_size: int,
    gap: int = 10,
    grid_columns: int = DEFAULT_GRID_COLUMNS,
    primary_scale: float = DEFAULT_PRIMARY_SCALE,
) -> list[Tile]:
    """(x, y, edge) of each tile for the given layout.

    ``grid``: row-major, ``grid_columns`` wide (2-6).
    ``hierarchical``: the first chunk as a ``tile_size`` primary, the rest as
    smaller secondaries beside it; ``primary_scale`` (0.3-0.7) sets how much
    larger the primary is.
    ``mosaic``: near-square grid with every other row shifted half a tile.
    """
    if layout == "grid":
        _check_range("grid_columns", grid_columns, *GRID_COLUMN_RANGE, kind="invalid-grid-columns")
        return _grid_tiles(n_tiles, tile_size, gap, int(grid_columns))

    if layout == "hierarchical":
        _check_range("primary_scale", primary_scale, *PRIMARY_SCALE_RANGE, kind="invalid-primary-scale")
        return _hierarchical_tiles(n_tiles, tile_size, gap, primary_scale)

    if layout == "mosaic":
        cols = max(1, math.ceil(math.sqrt(n_tiles)))
        return _grid_tiles(n_tiles, tile_size, gap, cols, stagger=True)

    raise ConfigurationError(f"Unknown layout: {layout!r}. Choose from {list(LAYOUTS)}",
                             kind="unsupported-layout")


def canvas_size(tiles: list[Tile]) -> tuple[int, int]:
    """Minimum canvas that holds every tile."""
    if not tiles:
        return (0, 0)
    return (max(x + edge for x, _, edge in tiles), max(y + edge for _, y, edge in tiles))


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompositeGlyph:
    text: str
    lattice_key: str
    chunks: tuple[str, ...]
    paths: tuple[EncodedPath, ...]
    tiles: tuple[Tile, ...]
    layout: str

    @property
    def size(self) -> tuple[int, int]:
        return canvas_size(list(self.tiles))

    @property
    def hash(self) -> str:
        return glyph_hash(self.text, self.lattice_key)

    def metadata(self) -> dict:
        return {
            "text": self.text.upper(),
            "latticeKey": self.lattice_key,
            "layout": self.layout,
            "totalChunks": len(self.chunks),
            "hash": self.hash,
            "chunks": [
                {"text": chunk, "charCount": p.symbol_count, "uniqueChars": p.unique_symbols, "size": tile[2]}
                for chunk, p, tile in zip(self.chunks, self.paths, self.tiles)
            ],
        }


@trace
def encode_composite(
    text: str,
    lattice: Lattice,
    rules: Rules | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    layout: str = "grid",
    tile_size: int = 200,
    gap: int = 10,
    grid_columns: int = DEFAULT_GRID_COLUMNS,
    primary_scale: float = DEFAULT_PRIMARY_SCALE,
) -> CompositeGlyph:
    """Encode each chunk independently and place the tiles."""
    chunks = chunk_text(text, chunk_size)
    tiles = compute_layout_positions(layout, len(chunks), tile_size, gap,
                                     grid_columns=grid_columns, primary_scale=primary_scale)
    paths = tuple(encode(chunk, lattice, rules) for chunk in chunks)
    composite = CompositeGlyph(
        text=text,
        lattice_key=lattice.key,
        chunks=tuple(chunks),
        paths=paths,
        tiles=tuple(tiles),
        layout=layout,
    )
    audit("composite.encoded", logger=log, chunks=len(chunks), layout=layout,
          canvas=f"{composite.size[0]}x{composite.size[1]}", hash=composite.hash)
    return composite


@trace
def render_composite_svg(
    composite: CompositeGlyph,
    lattice: Lattice,
    style: GlyphStyle | None = None,
    orientation: Orientation | None = None,
    show_border: bool = True,
) -> str:
    """Render every tile with the single-glyph renderer inside a translated group."""
    style = style or GlyphStyle()
    width, height = composite.size
    dwg = svgwrite.Drawing(size=(width, height), debug=False)
    dwg.viewbox(0, 0, width, height)

    for path, (x, y, edge) in zip(composite.paths, composite.tiles):
        group = dwg.g(class_="qbc-tile")
        group.translate(x, y)
        draw_glyph(dwg, group, path, lattice, style, edge, orientation, background_size=(edge, edge))
        if show_border:
            group.add(dwg.rect(insert=(0, 0), size=(edge, edge), fill="none",
                               stroke=style.stroke_color, stroke_width=1, stroke_opacity=0.25))
        dwg.add(group)

    markup = dwg.tostring()
    audit("composite.rendered", logger=log, tiles=len(composite.paths), size=f"{width}x{height}")
    return markup
