"""QBC CLI — command-line interface for the glyph encoder."""

import argparse
import base64
import json
import sys
from pathlib import Path

from qbc.errors import QBCError
from qbc.lattice import LATTICE_KINDS, BuiltinLatticeLookup, get_lattice, load_record, record_to_dict
from qbc.logging import audit, get_logger, setup_logging

log = get_logger("cli")


def _write_text(content: str, output: str | None):
    if output is None:
        sys.stdout.write(content if content.endswith("\n") else content + "\n")
        return
    out = Path(output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(content, encoding="utf-8")
    print(f"Saved to: {out}", file=sys.stderr)


def _record(args):
    if args.lattice_file:
        return load_record(args.lattice_file)
    return BuiltinLatticeLookup().lookup(args.lattice)


def _style_and_orientation(args, record):
    from qbc.svg import GlyphStyle, Orientation

    overrides = dict(record.style)
    for key in ("stroke_width", "stroke_color", "node_size", "background_color"):
        value = getattr(args, key, None)
        if value is not None:
            overrides[key] = value
    if args.no_nodes:
        overrides["show_nodes"] = False
    style = GlyphStyle.from_dict(overrides)
    orientation = Orientation(rotation=args.rotation, mirror=args.mirror, flip_vertical=args.flip_vertical,
                              yaw=args.yaw, pitch=args.pitch)
    return style, orientation


def cmd_encode(args):
    """Encode text into a glyph."""
    from qbc.encoder import encode
    from qbc.package import build_package, dumps_package
    from qbc.service import LoggingUsageSink, encode_request
    from qbc.svg import render_png

    record = _record(args)
    style, orientation = _style_and_orientation(args, record)

    if args.format == "png":
        if not args.output:
            raise SystemExit("png output needs -o/--output")
        path = encode(args.text, record.lattice, record.rules)
        img = render_png(path, record.lattice, style, size=args.size, orientation=orientation)
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        img.save(out)
        print(f"Generated: {out} ({img.size[0]}x{img.size[1]}, {len(path)} events)", file=sys.stderr)
        return

    if args.format == "package":
        path = encode(args.text, record.lattice, record.rules)
        package = build_package(args.text, record.key, path, style=style, orientation=orientation)
        _write_text(dumps_package(package), args.output)
        return

    response = encode_request(
        args.text, record, fmt=args.format, style=style, orientation=orientation,
        size=args.size, sink=LoggingUsageSink(record.key),
    )
    if args.format == "svg":
        _write_text(response["svg"], args.output)
    elif args.format == "binary" and args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(base64.b64decode(response["binary"]))
        print(f"Saved to: {out} (format v{response['version']})", file=sys.stderr)
    else:
        _write_text(json.dumps(response, indent=2, ensure_ascii=False), args.output)


def cmd_decode(args):
    """Decode a binary glyph back to its path JSON."""
    from qbc.binary import decode_binary
    from qbc.package import path_to_dict

    data = Path(args.input).read_bytes()
    charset = _record(args).lattice.charset if data[:1] == b"\x02" else None
    path = decode_binary(data, charset=charset)
    _write_text(json.dumps(path_to_dict(path), indent=2, ensure_ascii=False), args.output)


def cmd_lattice(args):
    """Dump a built-in lattice definition."""
    from qbc.lattice import LatticeRecord

    lattice = get_lattice(args.kind)
    missing = lattice.missing()
    if missing:
        log.warning("%d symbol(s) received no coordinate", len(missing))
    _write_text(json.dumps(record_to_dict(LatticeRecord(lattice)), indent=2, ensure_ascii=False), args.output)


def cmd_composite(args):
    """Encode long text as a tiled composite SVG."""
    from qbc.composite import encode_composite, render_composite_svg

    record = _record(args)
    style, orientation = _style_and_orientation(args, record)
    composite = encode_composite(
        args.text, record.lattice, record.rules,
        chunk_size=args.chunk_size, layout=args.layout, tile_size=args.size,
        grid_columns=args.grid_columns, primary_scale=args.primary_scale,
    )
    _write_text(render_composite_svg(composite, record.lattice, style, orientation), args.output)
    print(f"Composite: {len(composite.chunks)} tile(s), {composite.size[0]}x{composite.size[1]}, "
          f"hash {composite.hash}", file=sys.stderr)


def _add_lattice_args(p):
    p.add_argument("-l", "--lattice", default="square", choices=list(LATTICE_KINDS), help="Built-in lattice")
    p.add_argument("--lattice-file", default=None, help="Lattice definition JSON (overrides --lattice)")


def _add_style_args(p, default_size: int):
    p.add_argument("-s", "--size", type=int, default=default_size, help="Output size in pixels")
    p.add_argument("--stroke-width", type=float, default=None)
    p.add_argument("--stroke-color", default=None, help="Stroke colour (e.g. '#000000')")
    p.add_argument("--node-size", type=float, default=None)
    p.add_argument("--background-color", default=None)
    p.add_argument("--no-nodes", action="store_true", help="Do not draw anchor nodes")
    p.add_argument("--rotation", type=float, default=0.0, help="Rotation in degrees")
    p.add_argument("--mirror", action="store_true", help="Mirror horizontally")
    p.add_argument("--flip-vertical", action="store_true", help="Flip vertically")
    p.add_argument("--yaw", type=float, default=0.0, help="3D lattices: turn about the vertical axis, degrees")
    p.add_argument("--pitch", type=float, default=0.0, help="3D lattices: tilt about the horizontal axis, degrees")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qbc", description="QBC: text to lattice-path glyphs")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- encode ---
    p_enc = subparsers.add_parser("encode", help="Encode text into a glyph")
    p_enc.add_argument("text", help="Text to encode")
    p_enc.add_argument("-f", "--format", default="json",
                       choices=["json", "svg", "binary", "png", "package"], help="Output format")
    p_enc.add_argument("-o", "--output", default=None, help="Output file (stdout if omitted)")
    _add_lattice_args(p_enc)
    _add_style_args(p_enc, default_size=200)

    # --- decode ---
    p_dec = subparsers.add_parser("decode", help="Decode a binary glyph")
    p_dec.add_argument("input", help="Binary glyph file")
    p_dec.add_argument("-o", "--output", default=None, help="Output file (stdout if omitted)")
    _add_lattice_args(p_dec)

    # --- lattice ---
    p_lat = subparsers.add_parser("lattice", help="Dump a built-in lattice definition")
    p_lat.add_argument("kind", choices=list(LATTICE_KINDS))
    p_lat.add_argument("-o", "--output", default=None, help="Output file (stdout if omitted)")

    # --- composite ---
    p_comp = subparsers.add_parser("composite", help="Tile long text as several glyphs")
    p_comp.add_argument("text", help="Text to encode")
    p_comp.add_argument("-o", "--output", default=None, help="Output SVG (stdout if omitted)")
    p_comp.add_argument("--chunk-size", type=int, default=12, help="Max characters per tile")
    p_comp.add_argument("--layout", default="grid", choices=["grid", "hierarchical", "mosaic"])
    p_comp.add_argument("--grid-columns", type=int, default=3, help="Tiles per row for the grid layout (2-6)")
    p_comp.add_argument("--primary-scale", type=float, default=0.5,
                        help="Hierarchical layout: primary tile weight (0.3-0.7)")
    _add_lattice_args(p_comp)
    _add_style_args(p_comp, default_size=200)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging before any command runs
    level = "DEBUG" if args.verbose else "INFO"
    setup_logging(level=level, log_file=args.log_file)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    commands = {
        "encode": cmd_encode,
        "decode": cmd_decode,
        "lattice": cmd_lattice,
        "composite": cmd_composite,
    }
    try:
        commands[args.command](args)
    except QBCError as e:
        audit("cli.error", logger=log, command=args.command, kind=e.kind, error=str(e))
        print(f"error ({e.kind}): {e}", file=sys.stderr)
        sys.exit(2)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
