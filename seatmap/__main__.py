from __future__ import annotations

import argparse
import csv
import sys
from dataclasses import replace
from pathlib import Path

from .chart import Category, SeatMapError, parse_seat_id, row_label
from .layout import build_row_distribution, generate_seat_list, seat_categories
from .render import render_ascii, render_diagram
from .storage import load_seat_map, maybe_init_seat_map, save_seat_map


DEFAULT_FILE = "seat_map.json"


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--file",
        default=DEFAULT_FILE,
        help=f"Path to seat map JSON file (default: {DEFAULT_FILE})",
    )


def _seat_list(value: str) -> list[str]:
    return [s.strip().upper() for s in (value or "").split(",") if s.strip()]


def cmd_init(args: argparse.Namespace) -> int:
    maybe_init_seat_map(
        args.file,
        rows=args.rows,
        cols=args.cols,
        aisle_after_col=args.aisle_after_col,
        overwrite=args.overwrite,
    )
    print(f"Initialized seat map at {args.file} ({args.rows} rows x {args.cols} cols)")
    return 0


def cmd_add_category(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    cats = [c for c in seat_map.categories if c.name != args.name]
    cats.append(Category(name=args.name, color=args.color, row_count=args.rows))
    seat_map = replace(seat_map, categories=tuple(cats))
    save_seat_map(seat_map, args.file)
    print(f"Category {args.name!r} now claims {args.rows} row(s)")
    return 0


def cmd_block(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    seat = args.seat.strip().upper()
    if not seat_map.contains(seat):
        raise SeatMapError(f"seat {seat} is outside the {seat_map.rows}x{seat_map.cols} map")
    seat_map = replace(seat_map, unavailable_seats=seat_map.unavailable_seats | {seat})
    save_seat_map(seat_map, args.file)
    print(f"Blocked {seat}")
    return 0


def cmd_unblock(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    seat = args.seat.strip().upper()
    parse_seat_id(seat)
    seat_map = replace(seat_map, unavailable_seats=seat_map.unavailable_seats - {seat})
    save_seat_map(seat_map, args.file)
    print(f"Unblocked {seat}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    print(render_ascii(seat_map, _seat_list(args.booked), cell_width=args.width))
    return 0


def cmd_svg(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    diagram = render_diagram(seat_map, _seat_list(args.booked))
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(diagram.svg + "\n", encoding="utf-8")
    print(f"Wrote {len(diagram.seats)} seats to {out}")
    return 0


def cmd_seats(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    categories = seat_categories(seat_map)
    out = open(args.output, "w", newline="", encoding="utf-8") if args.output else sys.stdout
    try:
        w = csv.writer(out)
        w.writerow(["seat", "category", "blocked"])
        for seat in generate_seat_list(seat_map):
            sid = seat["id"]
            w.writerow([sid, categories[sid], "yes" if sid in seat_map.unavailable_seats else ""])
    finally:
        if out is not sys.stdout:
            out.close()
    return 0


def cmd_distribution(args: argparse.Namespace) -> int:
    seat_map = load_seat_map(args.file)
    for i, name in enumerate(build_row_distribution(seat_map.rows, seat_map.categories)):
        print(f"{row_label(i)}\t{name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="seatmap", description="Venue seat map layout tool (CLI).")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="Create a new seat map JSON file")
    _add_common_args(p_init)
    p_init.add_argument("--rows", type=int, required=True)
    p_init.add_argument("--cols", type=int, required=True)
    p_init.add_argument("--aisle-after-col", type=int, help="1-based column after which an aisle is drawn")
    p_init.add_argument("--overwrite", action="store_true", help="Overwrite existing seat map file")
    p_init.set_defaults(func=cmd_init)

    p_cat = sub.add_parser("add-category", help="Add or replace a seating category")
    _add_common_args(p_cat)
    p_cat.add_argument("--name", required=True)
    p_cat.add_argument("--color", required=True)
    p_cat.add_argument("--rows", type=int, required=True, help="Rows claimed by this category")
    p_cat.set_defaults(func=cmd_add_category)

    p_block = sub.add_parser("block", help="Mark a seat as permanently unavailable")
    _add_common_args(p_block)
    p_block.add_argument("--seat", required=True)
    p_block.set_defaults(func=cmd_block)

    p_unblock = sub.add_parser("unblock", help="Clear a blocked seat")
    _add_common_args(p_unblock)
    p_unblock.add_argument("--seat", required=True)
    p_unblock.set_defaults(func=cmd_unblock)

    p_show = sub.add_parser("show", help="Print the seat map")
    _add_common_args(p_show)
    p_show.add_argument("--width", type=int, default=3, help="Cell width for display")
    p_show.add_argument("--booked", default="", help="Comma-separated booked seat ids")
    p_show.set_defaults(func=cmd_show)

    p_svg = sub.add_parser("svg", help="Write the SVG diagram")
    _add_common_args(p_svg)
    p_svg.add_argument("--output", required=True)
    p_svg.add_argument("--booked", default="", help="Comma-separated booked seat ids")
    p_svg.set_defaults(func=cmd_svg)

    p_seats = sub.add_parser("seats", help="List seats with their categories as CSV")
    _add_common_args(p_seats)
    p_seats.add_argument("--output", help="CSV output path (default: stdout)")
    p_seats.set_defaults(func=cmd_seats)

    p_dist = sub.add_parser("distribution", help="Print the row-to-category assignment")
    _add_common_args(p_dist)
    p_dist.set_defaults(func=cmd_distribution)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        return int(args.func(args))
    except SeatMapError as e:
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
