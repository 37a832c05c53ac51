"""SVG and PNG renderers."""

import xml.etree.ElementTree as ET

import pytest

from qbc.encoder import encode
from qbc.lattice import Rules, lattice_from_anchors
from qbc.svg import GlyphStyle, Orientation, _fmt, render_png, render_svg

NS = "{http://www.w3.org/2000/svg}"


def parse(markup: str) -> ET.Element:
    return ET.fromstring(markup)


def path_d(markup: str) -> str:
    return parse(markup).find(f"{NS}path").get("d")


def circles(markup: str) -> list[ET.Element]:
    return parse(markup).findall(f"{NS}circle")


class TestFormatting:

    @pytest.mark.parametrize("value,text", [
        (20.0, "20"), (84.0, "84"), (33.33333, "33.333"), (0.5, "0.5"), (-0.0001, "0"), (140.1004, "140.1"),
    ])
    def test_fmt(self, value, text):
        assert _fmt(value) == text


class TestSvg:

    def test_cat_path(self, square):
        markup = render_svg(encode("CAT", square), square)
        assert path_d(markup) == "M 84 20 L 20 20 L 52 140"

    def test_document_shape(self, square):
        root = parse(render_svg(encode("CAT", square), square, size=300))
        assert root.tag == f"{NS}svg"
        assert root.get("width") == "300"
        assert root.get("height") == "300"
        rect = root.find(f"{NS}rect")
        assert rect.get("fill") == "#ffffff"
        path = root.find(f"{NS}path")
        assert path.get("fill") == "none"
        assert path.get("stroke") == "#000000"
        assert path.get("stroke-linecap") == "round"

    def test_tick_lifts_pen(self, square, rules):
        d = path_d(render_svg(encode("AXA", square, rules), square))
        # L to the revisited anchor, then M to the tick end
        assert d == "M 20 20 L 180 140 L 20 20 M 27.68 9.76"

    def test_one_node_per_distinct_symbol(self, square, rules):
        markup = render_svg(encode("BANANA", square, rules), square)
        assert len(circles(markup)) == 3
        d = path_d(markup)
        assert d.split().count("M") == 4
        assert d.split().count("L") == 5

    def test_node_attributes(self, square):
        style = GlyphStyle(node_size=10, node_color="#123456", node_fill_color="#abcdef")
        nodes = circles(render_svg(encode("CA", square), square, style))
        assert [(c.get("cx"), c.get("cy")) for c in nodes] == [("84", "20"), ("20", "20")]
        assert nodes[0].get("r") == "5"
        assert nodes[0].get("stroke") == "#123456"
        assert nodes[0].get("fill") == "#abcdef"

    def test_hide_nodes(self, square):
        markup = render_svg(encode("CAT", square), square, GlyphStyle(show_nodes=False))
        assert circles(markup) == []

    def test_empty_path(self, square):
        markup = render_svg(encode("123", square), square)
        assert path_d(markup) in ("", None)
        assert circles(markup) == []

    def test_style_colours(self, square):
        style = GlyphStyle(stroke_color="#ff0000", stroke_width=4, background_color="#000000")
        root = parse(render_svg(encode("CAT", square), square, style))
        assert root.find(f"{NS}rect").get("fill") == "#000000"
        assert root.find(f"{NS}path").get("stroke") == "#ff0000"
        assert root.find(f"{NS}path").get("stroke-width") == "4"

    def test_3d_paths_project_onto_xy(self, grid):
        d = path_d(render_svg(encode("TN", grid), grid))
        assert d == "M 20 20 L 180 20"


class TestOrientation:

    def test_identity(self):
        assert Orientation().is_identity
        assert Orientation(rotation=360).is_identity
        assert not Orientation(mirror=True).is_identity

    def test_mirror(self, square):
        d = path_d(render_svg(encode("C", square), square, orientation=Orientation(mirror=True)))
        assert d == "M 116 20"

    def test_flip_vertical(self, square):
        d = path_d(render_svg(encode("A", square), square, orientation=Orientation(flip_vertical=True)))
        assert d == "M 20 180"

    def test_rotation(self, square):
        d = path_d(render_svg(encode("A", square), square, orientation=Orientation(rotation=90)))
        assert d == "M 180 20"

    def test_orientation_moves_nodes_too(self, square):
        markup = render_svg(encode("A", square), square, orientation=Orientation(mirror=True))
        node = circles(markup)[0]
        assert (node.get("cx"), node.get("cy")) == ("180", "20")


class TestTilt:
    """Yaw and pitch turn 3D lattices before projection."""

    @pytest.fixture()
    def front(self):
        # one anchor on the near face of the cube, straight above the centre
        return lattice_from_anchors("front", {"A": (0.5, 0.5, 1.0)})

    def test_untilted_drops_z(self, front):
        assert path_d(render_svg(encode("A", front), front)) == "M 100 100"

    def test_yaw_turns_depth_into_x(self, front):
        d = path_d(render_svg(encode("A", front), front, orientation=Orientation(yaw=90)))
        assert d == "M 180 100"

    def test_pitch_turns_depth_into_y(self, front):
        d = path_d(render_svg(encode("A", front), front, orientation=Orientation(pitch=90)))
        assert d == "M 100 20"

    def test_yaw_applies_before_pitch(self):
        lattice = lattice_from_anchors("edge", {"A": (1.0, 0.5, 0.5)})
        # yaw sends +x to -z, pitch then lifts -z to +y
        d = path_d(render_svg(encode("A", lattice), lattice, orientation=Orientation(yaw=90, pitch=90)))
        assert d == "M 100 180"

    def test_full_turns_are_identity(self):
        assert Orientation(yaw=360, pitch=-360).is_identity
        assert not Orientation(yaw=45).is_identity

    def test_2d_points_ignore_tilt(self, square):
        d = path_d(render_svg(encode("A", square), square, orientation=Orientation(yaw=90, pitch=30)))
        assert d == "M 20 20"


class TestStyle:

    def test_from_dict_accepts_camel_case(self):
        style = GlyphStyle.from_dict({"strokeColor": "#ff0000", "node_size": 8, "showNodes": False, "bogus": 1})
        assert style.stroke_color == "#ff0000"
        assert style.node_size == 8
        assert style.show_nodes is False

    def test_from_dict_defaults(self):
        assert GlyphStyle.from_dict(None) == GlyphStyle()


class TestPng:

    def test_size_and_mode(self, square):
        img = render_png(encode("CAT", square), square, size=256)
        assert img.size == (256, 256)
        assert img.mode == "RGB"

    def test_node_fill_at_anchor(self, square):
        style = GlyphStyle(node_fill_color="#00ff00", node_size=12)
        img = render_png(encode("AC", square, Rules()), square, style, size=200)
        assert img.getpixel((20, 20)) == (0, 255, 0)

    def test_background_away_from_glyph(self, square):
        img = render_png(encode("AC", square), square, GlyphStyle(background_color="#0000ff"), size=200)
        assert img.getpixel((150, 150)) == (0, 0, 255)

    def test_stroke_between_anchors(self, square):
        style = GlyphStyle(show_nodes=False, stroke_color="#ff0000", stroke_width=4)
        img = render_png(encode("AC", square), square, style, size=200)
        # midpoint of A (20, 20) -> C (84, 20)
        assert img.getpixel((52, 20)) == (255, 0, 0)
