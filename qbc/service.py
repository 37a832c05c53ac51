"""M7: Encode Service — one request in, one serialized glyph out, usage reported to a sink.

This is the caller side of the pure core: it looks nothing up and
authenticates nobody. The lattice record and sink are handed in.
"""

import base64
from dataclasses import asdict, dataclass
from typing import Protocol

from qbc.binary import FORMAT_V1, FORMAT_V2, encode_binary
from qbc.encoder import EncodedPath, encode
from qbc.errors import ConfigurationError
from qbc.lattice import LatticeRecord
from qbc.logging import audit, get_logger, trace
from qbc.package import path_to_dict
from qbc.svg import DEFAULT_SIZE, GlyphStyle, Orientation, render_svg

log = get_logger("service")

FORMATS = ("json", "svg", "binary")


@dataclass(frozen=True)
class UsageReport:
    symbol_count: int
    unique_symbols: int
    word_count: int
    format: str


def usage_report(text: str, path: EncodedPath, fmt: str) -> UsageReport:
    """Usage facts derivable from one encode call."""
    return UsageReport(
        symbol_count=path.symbol_count,
        unique_symbols=path.unique_symbols,
        word_count=len(text.split()),
        format=fmt,
    )


class UsageSink(Protocol):
    def record(self, report: UsageReport) -> None: ...


class LoggingUsageSink:
    """Reports usage as an ``encode.usage`` audit event."""

    def __init__(self, lattice_key: str | None = None):
        self.lattice_key = lattice_key

    def record(self, report: UsageReport) -> None:
        audit("encode.usage", logger=log, lattice=self.lattice_key, **asdict(report))


class MemoryUsageSink:
    """Keeps reports in memory."""

    def __init__(self):
        self.reports: list[UsageReport] = []

    def record(self, report: UsageReport) -> None:
        self.reports.append(report)


@trace
def encode_request(
    text: str,
    record: LatticeRecord,
    fmt: str = "json",
    style: GlyphStyle | None = None,
    orientation: Orientation | None = None,
    size: int = DEFAULT_SIZE,
    sink: UsageSink | None = None,
) -> dict:
    """Encode *text* with *record* and build the response for *fmt*.

    Usage is reported to *sink* only after the serializer succeeded.

    Raises:
        ConfigurationError: unknown format.
    """
    if fmt not in FORMATS:
        raise ConfigurationError(f"Unknown format: {fmt!r}. Choose from {list(FORMATS)}",
                                 kind="unsupported-format")

    lattice = record.lattice
    path = encode(text, lattice, record.rules)
    wire_path = path_to_dict(path)

    if fmt == "svg":
        style = style or GlyphStyle.from_dict(record.style)
        response = {
            "svg": render_svg(path, lattice, style, size=size, orientation=orientation),
            "path": wire_path,
            "text": text,
            "lattice_key": record.key,
        }
    elif fmt == "binary":
        if lattice.dimensions == 2 and all(s == " " or "A" <= s <= "Z" for s in path.visited):
            version, charset = FORMAT_V1, None
        else:
            version, charset = FORMAT_V2, lattice.charset
        blob = encode_binary(path, version=version, charset=charset)
        response = {
            "binary": base64.b64encode(blob).decode("ascii"),
            "version": version,
            "path": wire_path,
            "text": text,
            "lattice_key": record.key,
        }
    else:
        response = {
            "path": wire_path,
            "text": text,
            "lattice_key": record.key,
            "metadata": {
                "wordCount": len(text.split()),
                "charCount": path.symbol_count,
                "uniqueChars": path.unique_symbols,
            },
        }

    if sink is not None:
        sink.record(usage_report(text, path, fmt))
    return response
