"""Canonical JSON form and glyph packages."""

import json

import pytest

from qbc.encoder import EventKind, PathEvent, encode
from qbc.errors import DecodeError
from qbc.package import (
    build_package,
    dumps_package,
    event_from_dict,
    event_to_dict,
    glyph_hash,
    loads_package,
    path_from_dict,
    path_to_dict,
)
from qbc.svg import GlyphStyle, Orientation

FIXED_TS = "2024-01-01T00:00:00+00:00"


class TestPathDict:

    def test_cat(self, square):
        data = path_to_dict(encode("CAT", square))
        assert data["events"][0] == {"type": "move", "char": "C", "x": 0.4, "y": 0.0}
        assert data["events"][1]["type"] == "line"
        assert data["visitedChars"] == ["C", "A", "T"]
        assert data["visitCounts"] == {"C": 1, "A": 1, "T": 1}

    def test_tick_fields(self, square, rules):
        entry = path_to_dict(encode("AXA", square, rules))["events"][2]
        assert entry["type"] == "tick"
        assert entry["tickEndX"] == pytest.approx(0.048)
        assert entry["tickEndY"] == pytest.approx(-0.064)
        assert "tickEndZ" not in entry

    def test_3d_fields(self, grid, rules):
        entry = path_to_dict(encode("TNT", grid, rules))["events"][2]
        assert set(entry) == {"type", "char", "x", "y", "z", "tickEndX", "tickEndY", "tickEndZ"}

    @pytest.mark.parametrize("text", ["CAT", "BANANA", "HELLO WORLD"])
    def test_round_trip_2d(self, square, rules, text):
        path = encode(text, square, rules)
        wire = json.loads(json.dumps(path_to_dict(path)))
        assert path_from_dict(wire) == path

    def test_round_trip_3d(self, grid, rules):
        path = encode("Mississippi", grid, rules)
        assert path_from_dict(json.loads(json.dumps(path_to_dict(path)))) == path

    def test_events_only(self, square):
        path = encode("BANANA", square)
        data = {"events": path_to_dict(path)["events"]}
        assert path_from_dict(data) == path

    def test_event_round_trip(self):
        event = PathEvent(EventKind.TICK, "Q", (0.1, 0.2), (0.3, 0.4))
        assert event_from_dict(event_to_dict(event)) == event

    @pytest.mark.parametrize("entry", [
        {"type": "jump", "char": "A", "x": 0, "y": 0},
        {"type": "line", "x": 0, "y": 0},
        {"type": "line", "char": "A", "x": 0},
        {"type": "tick", "char": "A", "x": 0, "y": 0},
        {"type": "line", "char": "A", "x": "left", "y": 0},
    ])
    def test_malformed_event(self, entry):
        with pytest.raises(DecodeError) as exc:
            event_from_dict(entry)
        assert exc.value.kind == "invalid-event"


class TestGlyphHash:

    def test_stable_and_case_insensitive(self):
        assert glyph_hash("cat", "square") == glyph_hash("CAT", "square")
        assert len(glyph_hash("cat", "square")) == 16

    def test_depends_on_lattice(self):
        assert glyph_hash("CAT", "square") != glyph_hash("CAT", "grid")


class TestPackage:

    def test_build(self, square):
        path = encode("cat", square)
        package = build_package("cat", "square", path, style=GlyphStyle(), orientation=Orientation(rotation=90),
                                timestamp=FIXED_TS)
        assert package["version"] == "1.0"
        meta = package["metadata"]
        assert meta["text"] == "CAT"
        assert meta["latticeKey"] == "square"
        assert meta["timestamp"] == FIXED_TS
        assert meta["orientation"] == {"rotation": 90, "mirror": False, "flip_vertical": False,
                                       "yaw": 0.0, "pitch": 0.0}
        assert meta["style"]["stroke_color"] == "#000000"
        assert meta["hash"] == glyph_hash("cat", "square")
        assert package["path"] == path_to_dict(path)

    def test_default_timestamp(self, square):
        package = build_package("CAT", "square", encode("CAT", square))
        assert package["metadata"]["timestamp"].endswith("+00:00")
        assert package["metadata"]["style"] is None

    def test_dump_and_load(self, square, rules):
        path = encode("BANANA", square, rules)
        raw = dumps_package(build_package("BANANA", "square", path, timestamp=FIXED_TS))
        meta, loaded = loads_package(raw)
        assert meta["hash"] == glyph_hash("BANANA", "square")
        assert loaded == path

    def test_dump_is_canonical(self, square):
        package = build_package("CAT", "square", encode("CAT", square), timestamp=FIXED_TS)
        assert dumps_package(package) == dumps_package(json.loads(dumps_package(package)))

    def test_invalid_json(self):
        with pytest.raises(DecodeError) as exc:
            loads_package("{not json")
        assert exc.value.kind == "invalid-json"

    def test_unsupported_version(self):
        with pytest.raises(DecodeError) as exc:
            loads_package(json.dumps({"version": "9.9", "path": {}}))
        assert exc.value.kind == "unsupported-version"
