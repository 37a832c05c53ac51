"""Path encoder: event kinds, tick geometry, bookkeeping."""

import pytest

from qbc.encoder import EncodedPath, EventKind, PathEvent, encode, tick_end_2d, tick_end_3d
from qbc.lattice import Rules, get_lattice

MOVE, LINE, TICK = EventKind.MOVE, EventKind.LINE, EventKind.TICK


def kinds(path: EncodedPath) -> list[EventKind]:
    return [e.kind for e in path.events]


class TestBasicPaths:

    def test_cat(self, square):
        path = encode("CAT", square)
        assert kinds(path) == [MOVE, LINE, LINE]
        assert [e.symbol for e in path.events] == ["C", "A", "T"]
        assert [e.pos for e in path.events] == [(0.4, 0.0), (0.0, 0.0), (0.2, 0.75)]
        assert all(e.tick_end is None for e in path.events)

    def test_lowercase_is_folded(self, square):
        assert encode("cat", square) == encode("CAT", square)

    def test_first_event_is_always_move(self, square, grid):
        for text, lattice in (("Q", square), ("HELLO", square), ("ΑΒΓ", grid), ("你好", grid)):
            path = encode(text, lattice)
            assert path.events[0].kind is MOVE
            assert all(e.kind is not MOVE for e in path.events[1:])

    def test_empty_and_unsupported(self, square):
        for text in ("", "123", "!!!", "你好"):
            path = encode(text, square)
            assert len(path) == 0
            assert path.visited == ()
            assert dict(path.visit_counts) == {}
            assert path.dimensions == 0

    def test_unsupported_characters_are_skipped(self, square):
        assert encode("C-A@T!", square) == encode("CAT", square)

    def test_symbol_without_anchor_is_skipped(self):
        from qbc.lattice import lattice_from_anchors

        lattice = lattice_from_anchors("partial", {"A": (0.1, 0.1), "C": (0.9, 0.9)}, charset=list("ABC"))
        path = encode("ABC", lattice)
        assert [e.symbol for e in path.events] == ["A", "C"]
        assert path.visited == ("A", "C")

    def test_deterministic(self, grid):
        text = "The quick brown fox jumps over the lazy dog."
        assert encode(text, grid) == encode(text, grid)


class TestTicks:

    def test_revisit_draws_tick(self, square, rules):
        path = encode("AXA", square, rules)
        assert kinds(path) == [MOVE, LINE, TICK]
        tick = path.events[2]
        assert tick.pos == (0.0, 0.0)
        assert tick.tick_end == pytest.approx((0.048, -0.064))

    def test_outside_preference_flips_tick(self, square):
        rules = Rules(inside_boundary_preference=False)
        tick = encode("AXA", square, rules).events[2]
        assert tick.tick_end == pytest.approx((-0.048, 0.064))

    def test_tick_length_factor(self, square):
        tick = encode("AXA", square, Rules(tick_length_factor=0.16)).events[2]
        assert tick.tick_end == pytest.approx((0.096, -0.128))

    def test_ticks_disabled(self, square):
        path = encode("AXA", square, Rules(enable_tick=False))
        assert kinds(path) == [MOVE, LINE, LINE]
        assert path.events[2].tick_end is None

    def test_pen_continues_from_tick_end(self, square, rules):
        path = encode("AXAA", square, rules)
        assert kinds(path) == [MOVE, LINE, TICK, TICK]
        # approach from (0.048, -0.064) to (0, 0)
        assert path.events[3].tick_end == pytest.approx((-0.064, -0.048))

    def test_immediate_repeat_is_zero_length(self, square, rules):
        path = encode("AA", square, rules)
        assert kinds(path) == [MOVE, LINE]

    def test_shared_anchor_falls_back_to_line(self, twin, rules):
        path = encode("ABA", twin, rules)
        assert kinds(path) == [MOVE, LINE, LINE]
        assert path.events[2].tick_end is None

    def test_shared_anchor_still_ticks_from_elsewhere(self, twin, rules):
        path = encode("ACA", twin, rules)
        assert kinds(path) == [MOVE, LINE, TICK]

    def test_banana(self, square, rules):
        path = encode("BANANA", square, rules)
        assert kinds(path) == [MOVE, LINE, LINE, TICK, TICK, TICK]
        assert path.visit_counts["A"] == 3
        assert path.visit_counts["N"] == 2
        assert path.visit_counts["B"] == 1


class TestTicks3D:

    def test_tick_perpendicular_to_up(self, grid, rules):
        path = encode("TNT", grid, rules)
        assert kinds(path) == [MOVE, LINE, TICK]
        assert path.events[2].tick_end == pytest.approx((0.0, 0.0, -0.08))

    def test_travel_parallel_to_up_uses_right(self, grid, rules):
        path = encode("TST", grid, rules)
        assert path.events[2].tick_end == pytest.approx((0.0, 0.0, 0.08))

    def test_tick_length(self, grid, rules):
        tick = encode("HELLO WORLD", grid, rules).events
        for event in tick:
            if event.kind is TICK:
                length = sum((a - b) ** 2 for a, b in zip(event.tick_end, event.pos)) ** 0.5
                assert length == pytest.approx(rules.tick_length_factor)

    def test_zero_length_3d(self, rules):
        assert tick_end_3d((0.5, 0.5, 0.5), (0.5, 0.5, 0.5), rules) is None

    def test_metatron_path_is_3d(self):
        path = encode("Привет мир", get_lattice("metatron"))
        assert path.dimensions == 3
        assert path.symbol_count == 10


class TestTickHelpers:

    def test_2d_zero_length(self, rules):
        assert tick_end_2d((0.3, 0.3), (0.3, 0.3), rules) is None

    def test_2d_horizontal_approach(self, rules):
        # moving +x, perpendicular (-dy, dx) points +y
        assert tick_end_2d((0.0, 0.5), (1.0, 0.5), rules) == pytest.approx((1.0, 0.58))


class TestBookkeeping:

    def test_visited_is_not_deduplicated(self, square):
        path = encode("HELLO", square)
        assert path.visited == ("H", "E", "L", "L", "O")
        assert path.symbol_count == 5
        assert path.unique_symbols == 4
        assert path.distinct_symbols() == ["H", "E", "L", "O"]

    def test_counts_sum_to_events(self, grid):
        path = encode("to be or not to be, that is the question", grid)
        assert sum(path.visit_counts.values()) == len(path) == len(path.visited)

    def test_counts_are_read_only(self, square):
        path = encode("CAT", square)
        with pytest.raises(TypeError):
            path.visit_counts["C"] = 5

    def test_from_events(self):
        events = [
            PathEvent(MOVE, "A", (0.0, 0.0)),
            PathEvent(LINE, "B", (1.0, 0.0)),
            PathEvent(TICK, "A", (0.0, 0.0), (0.0, 0.08)),
        ]
        path = EncodedPath.from_events(events)
        assert path.visited == ("A", "B", "A")
        assert dict(path.visit_counts) == {"A": 2, "B": 1}
        assert path.dimensions == 2
