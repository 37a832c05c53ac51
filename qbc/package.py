"""M3: Glyph Package — canonical JSON form of an encoded path plus glyph metadata."""

import hashlib
import json
from collections.abc import Mapping
from dataclasses import asdict
from datetime import datetime, timezone

from qbc.encoder import EncodedPath, EventKind, PathEvent
from qbc.errors import DecodeError
from qbc.logging import audit, get_logger, trace

log = get_logger("package")

PACKAGE_VERSION = "1.0"

_AXES = ("x", "y", "z")
_TICK_AXES = ("tickEndX", "tickEndY", "tickEndZ")


def event_to_dict(event: PathEvent) -> dict:
    entry = {"type": event.kind.value, "char": event.symbol}
    entry.update(zip(_AXES, event.pos))
    if event.tick_end is not None:
        entry.update(zip(_TICK_AXES, event.tick_end))
    return entry


def event_from_dict(entry: Mapping) -> PathEvent:
    try:
        kind = EventKind(entry["type"])
        symbol = entry["char"]
        pos = tuple(float(entry[a]) for a in _AXES if a in entry)
        tick_end = None
        if kind is EventKind.TICK:
            tick_end = tuple(float(entry[a]) for a in _TICK_AXES if a in entry)
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"Malformed path event {dict(entry)!r}: {e}", kind="invalid-event") from e
    if len(pos) < 2 or (tick_end is not None and len(tick_end) != len(pos)):
        raise DecodeError(f"Path event has inconsistent coordinates: {dict(entry)!r}", kind="invalid-event")
    return PathEvent(kind, symbol, pos, tick_end)


def path_to_dict(path: EncodedPath) -> dict:
    """Canonical wire form (camelCase keys, one dict per event)."""
    return {
        "events": [event_to_dict(e) for e in path.events],
        "visitedChars": list(path.visited),
        "visitCounts": dict(path.visit_counts),
    }


def path_from_dict(data: Mapping) -> EncodedPath:
    """Inverse of :func:`path_to_dict`."""
    events = [event_from_dict(e) for e in data.get("events", [])]
    if "visitedChars" not in data and "visitCounts" not in data:
        return EncodedPath.from_events(events)
    return EncodedPath(
        events=events,
        visited=data.get("visitedChars", []),
        visit_counts=data.get("visitCounts", {}),
    )


def glyph_hash(text: str, lattice_key: str) -> str:
    """16 hex chars of SHA-256 over ``"<lattice_key>:<TEXT>"``."""
    digest = hashlib.sha256(f"{lattice_key}:{text.upper()}".encode("utf-8")).digest()
    return digest[:8].hex()


@trace
def build_package(
    text: str,
    lattice_key: str,
    path: EncodedPath,
    style=None,
    orientation=None,
    timestamp: str | None = None,
) -> dict:
    """Self-describing glyph package: metadata + canonical path."""
    package = {
        "version": PACKAGE_VERSION,
        "metadata": {
            "text": text.upper(),
            "latticeKey": lattice_key,
            "orientation": asdict(orientation) if orientation is not None else None,
            "style": asdict(style) if style is not None else None,
            "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
            "hash": glyph_hash(text, lattice_key),
        },
        "path": path_to_dict(path),
    }
    audit("package.built", logger=log, lattice=lattice_key, events=len(path),
          hash=package["metadata"]["hash"])
    return package


def dumps_package(package: Mapping) -> str:
    return json.dumps(package, indent=2, sort_keys=True, ensure_ascii=False)


def loads_package(raw: str) -> tuple[dict, EncodedPath]:
    """Parse a package; returns (metadata, path)."""
    try:
        package = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Glyph package is not valid JSON: {e}", kind="invalid-json") from e
    if package.get("version") != PACKAGE_VERSION:
        raise DecodeError(f"Unsupported glyph package version: {package.get('version')!r}",
                          kind="unsupported-version")
    return package.get("metadata", {}), path_from_dict(package.get("path", {}))
