"""M5: Binary Glyph Codec — compact big-endian wire format for encoded paths.

Version 1 (A-Z + space, 2D)::

    [version=1][event_count:u16]
    per event: [type:u8][symbol:u8][x:u16][y:u16]            (6 bytes)
               + [tick_x:u16][tick_y:u16] for ticks          (10 bytes)

    symbol: ' ' -> 0, 'A'..'Z' -> 1..26

Version 2 (any charset, 2D or 3D)::

    [version=2][event_count:u16][dimensions:u8]
    per event: [type:u8][symbol index: LEB128 varint][coord:u16 x dims]
               + [tick coord:u16 x dims] for ticks

Coordinates are clamped to [0, 1] and stored as round(v * 65535).
"""

import math
import struct
from collections.abc import Sequence

from qbc.encoder import EncodedPath, EventKind, PathEvent
from qbc.errors import ConfigurationError, DecodeError, EncodeError
from qbc.logging import audit, get_logger, trace

log = get_logger("binary")

FORMAT_V1 = 1
FORMAT_V2 = 2
SUPPORTED_VERSIONS = (FORMAT_V1, FORMAT_V2)

MAX_EVENTS = 0xFFFF
COORD_SCALE = 65535

_TYPE_CODES = {EventKind.MOVE: 0, EventKind.LINE: 1, EventKind.TICK: 2}
_CODE_TYPES = {code: kind for kind, code in _TYPE_CODES.items()}

_U16 = struct.Struct(">H")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def quantize(value: float) -> int:
    """Unit-interval float -> u16 (half-up rounding, clamped)."""
    return math.floor(min(1.0, max(0.0, value)) * COORD_SCALE + 0.5)


def dequantize(code: int) -> float:
    return code / COORD_SCALE


def symbol_code_v1(symbol: str) -> int:
    if symbol == " ":
        return 0
    if len(symbol) == 1 and "A" <= symbol <= "Z":
        return ord(symbol) - 64
    raise EncodeError(f"Symbol {symbol!r} has no version-1 code (A-Z and space only)",
                      kind="symbol-out-of-range")


def symbol_from_code_v1(code: int) -> str:
    if code == 0:
        return " "
    if 1 <= code <= 26:
        return chr(code + 64)
    raise DecodeError(f"Invalid version-1 symbol code {code}", kind="invalid-symbol")


def write_varint(value: int) -> bytes:
    """Unsigned LEB128."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class _Reader:
    """Bounds-checked cursor over the input buffer."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise DecodeError(
                f"Truncated glyph: need {n} byte(s) at offset {self.pos}, only {len(self.data) - self.pos} left",
                kind="truncated-input",
            )
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return _U16.unpack(self.take(2))[0]

    def varint(self) -> int:
        value = shift = 0
        while True:
            byte = self.u8()
            value |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return value
            shift += 7

    def remaining(self) -> int:
        return len(self.data) - self.pos


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _coords(point) -> bytes:
    return b"".join(_U16.pack(quantize(v)) for v in point)


@trace
def encode_binary(path: EncodedPath, version: int = FORMAT_V1, charset: Sequence[str] | None = None) -> bytes:
    """Serialize *path* to the binary wire format.

    Raises:
        EncodeError: too many events, a symbol the format cannot represent,
            or a 3D path requested as version 1.
        ConfigurationError: unknown version, or version 2 without a charset.
    """
    if version not in SUPPORTED_VERSIONS:
        raise ConfigurationError(f"Unknown binary format version {version}", kind="unsupported-version")
    if len(path.events) > MAX_EVENTS:
        raise EncodeError(f"{len(path.events)} events exceed the u16 event count", kind="too-many-events")

    out = bytearray([version])
    out += _U16.pack(len(path.events))

    if version == FORMAT_V1:
        if path.dimensions not in (0, 2):
            raise EncodeError("Version 1 carries 2D coordinates only; use version 2",
                              kind="dimension-mismatch")
        for event in path.events:
            out.append(_TYPE_CODES[event.kind])
            out.append(symbol_code_v1(event.symbol))
            out += _coords(event.pos)
            if event.kind is EventKind.TICK:
                out += _coords(event.tick_end)
    else:
        if charset is None:
            raise ConfigurationError("Version 2 needs the lattice charset order", kind="missing-charset")
        index = {symbol: i for i, symbol in enumerate(charset)}
        out.append(path.dimensions or 2)
        for event in path.events:
            if event.symbol not in index:
                raise EncodeError(f"Symbol {event.symbol!r} is not in the charset", kind="symbol-out-of-range")
            out.append(_TYPE_CODES[event.kind])
            out += write_varint(index[event.symbol])
            out += _coords(event.pos)
            if event.kind is EventKind.TICK:
                out += _coords(event.tick_end)

    audit("binary.encoded", logger=log, version=version, events=len(path.events), bytes=len(out))
    return bytes(out)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _read_point(reader: _Reader, dims: int) -> tuple[float, ...]:
    return tuple(dequantize(reader.u16()) for _ in range(dims))


def _read_kind(reader: _Reader) -> EventKind:
    code = reader.u8()
    try:
        return _CODE_TYPES[code]
    except KeyError:
        raise DecodeError(f"Unknown event type {code} at offset {reader.pos - 1}",
                          kind="invalid-event-type") from None


@trace
def decode_binary(data: bytes, charset: Sequence[str] | None = None) -> EncodedPath:
    """Parse the binary wire format back into an EncodedPath.

    Raises:
        DecodeError: truncated input, unsupported version, unknown event
            type, invalid symbol code or trailing bytes.
        ConfigurationError: version 2 input without a charset.
    """
    reader = _Reader(bytes(data))
    version = reader.u8()
    if version not in SUPPORTED_VERSIONS:
        raise DecodeError(f"Unsupported glyph format version {version}", kind="unsupported-version")
    count = reader.u16()

    events = []
    if version == FORMAT_V1:
        for _ in range(count):
            kind = _read_kind(reader)
            symbol = symbol_from_code_v1(reader.u8())
            pos = _read_point(reader, 2)
            tick_end = _read_point(reader, 2) if kind is EventKind.TICK else None
            events.append(PathEvent(kind, symbol, pos, tick_end))
    else:
        if charset is None:
            raise ConfigurationError("Version 2 needs the lattice charset order", kind="missing-charset")
        dims = reader.u8()
        if dims not in (2, 3):
            raise DecodeError(f"Invalid dimension count {dims}", kind="invalid-header")
        for _ in range(count):
            kind = _read_kind(reader)
            idx = reader.varint()
            if idx >= len(charset):
                raise DecodeError(f"Symbol index {idx} outside charset of {len(charset)}", kind="invalid-symbol")
            pos = _read_point(reader, dims)
            tick_end = _read_point(reader, dims) if kind is EventKind.TICK else None
            events.append(PathEvent(kind, charset[idx], pos, tick_end))

    if reader.remaining():
        raise DecodeError(f"{reader.remaining()} trailing byte(s) after {count} events", kind="trailing-bytes")

    audit("binary.decoded", logger=log, version=version, events=count, bytes=len(reader.data))
    return EncodedPath.from_events(events)


def quantize_path(path: EncodedPath) -> EncodedPath:
    """The path a decoder reproduces: every coordinate snapped to the u16 grid."""
    def snap(point):
        return tuple(dequantize(quantize(v)) for v in point)

    return EncodedPath(
        events=[
            PathEvent(e.kind, e.symbol, snap(e.pos), snap(e.tick_end) if e.tick_end is not None else None)
            for e in path.events
        ],
        visited=path.visited,
        visit_counts=path.visit_counts,
    )


def binary_size(path: EncodedPath) -> int:
    """Expected version-1 size: 3 + 6 per move/line + 10 per tick."""
    return 3 + sum(10 if e.kind is EventKind.TICK else 6 for e in path.events)
