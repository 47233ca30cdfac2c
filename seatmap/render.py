from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional
from xml.sax.saxutils import quoteattr

from .chart import SeatMap, row_label, seat_id
from .layout import UNKNOWN_CATEGORY, build_row_distribution


SEAT_WIDTH = 30
SEAT_HEIGHT = 30
SPACING = 5
AISLE_WIDTH = 40
STAGE_HEIGHT = 40
STAGE_PADDING = 10
ROW_LABEL_WIDTH = 20
TOP_OFFSET = STAGE_HEIGHT + STAGE_PADDING + 20

UNAVAILABLE_FILL = "#757575"
UNKNOWN_FILL = "#cccccc"


@dataclass(frozen=True)
class DiagramSeat:
    id: str
    row: str
    col: int
    category: str
    color: str
    available: bool
    x: float
    y: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "row": self.row,
            "col": self.col,
            "category": self.category,
            "color": self.color,
            "available": self.available,
            "x": self.x,
            "y": self.y,
        }


@dataclass(frozen=True)
class Diagram:
    svg: str
    width: float
    height: float
    seats: list[DiagramSeat] = field(default_factory=list)
    categories: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "svg": self.svg,
            "width": self.width,
            "height": self.height,
            "seats": [s.to_dict() for s in self.seats],
            "categories": self.categories,
        }


def _num(v: float) -> str:
    # Stable formatting: 47.0 -> "47", 47.5 -> "47.5"
    v = float(v)
    return str(int(v)) if v.is_integer() else repr(v)


def _aisle_gap(seat_map: SeatMap) -> int:
    if seat_map.aisle_after_col and seat_map.cols > seat_map.aisle_after_col:
        return AISLE_WIDTH - SPACING
    return 0


def render_diagram(
    seat_map: SeatMap,
    booked: Iterable[str] = (),
    prices: Optional[Mapping[str, float]] = None,
) -> Diagram:
    """
    Render the seat map as SVG markup plus the flat seat list behind it.

    A seat is unavailable when it is statically blocked on the map or present in
    `booked`; otherwise it takes the colour of its row's category. Output depends
    only on the arguments.
    """
    booked_ids = frozenset(booked)
    gap = _aisle_gap(seat_map)
    layout_width = seat_map.cols * (SEAT_WIDTH + SPACING) - SPACING + gap
    width = layout_width + ROW_LABEL_WIDTH
    height = TOP_OFFSET + seat_map.rows * (SEAT_HEIGHT + SPACING) - SPACING

    parts = [
        f'<svg width="{_num(width)}" height="{_num(height)}" xmlns="http://www.w3.org/2000/svg" '
        f'viewBox="0 0 {_num(width)} {_num(height)}">',
        f'<rect x="{ROW_LABEL_WIDTH}" y="{STAGE_PADDING}" width="{_num(layout_width)}" height="{STAGE_HEIGHT}" '
        f'fill="#333" rx="3" />',
        f'<text x="{_num(ROW_LABEL_WIDTH + layout_width / 2)}" y="{_num(STAGE_PADDING + STAGE_HEIGHT / 2)}" '
        f'text-anchor="middle" fill="white" font-size="14" font-weight="bold" dominant-baseline="middle">STAGE</text>',
    ]

    distribution = build_row_distribution(seat_map.rows, seat_map.categories)
    seats: list[DiagramSeat] = []
    for r in range(seat_map.rows):
        label = row_label(r)
        category = seat_map.category(distribution[r])
        category_name = category.name if category else UNKNOWN_CATEGORY
        label_y = TOP_OFFSET + r * (SEAT_HEIGHT + SPACING) + SEAT_HEIGHT / 2
        parts.append(
            f'<text x="{_num(ROW_LABEL_WIDTH / 2)}" y="{_num(label_y)}" text-anchor="middle" font-size="12" '
            f'fill="#333" dominant-baseline="middle">{label}</text>'
        )
        for c in range(seat_map.cols):
            sid = seat_id(r, c)
            unavailable = sid in seat_map.unavailable_seats or sid in booked_ids
            x = ROW_LABEL_WIDTH + c * (SEAT_WIDTH + SPACING)
            if seat_map.aisle_after_col and c >= seat_map.aisle_after_col:
                x += gap
            y = TOP_OFFSET + r * (SEAT_HEIGHT + SPACING)
            if unavailable:
                fill = UNAVAILABLE_FILL
            else:
                fill = category.color if category else UNKNOWN_FILL
            parts.append(
                f'<g class="seat-group" data-seat="{sid}">'
                f'<rect x="{_num(x)}" y="{_num(y)}" width="{SEAT_WIDTH}" height="{SEAT_HEIGHT}" rx="3" '
                f'fill={quoteattr(fill)} stroke="#333" stroke-width="1" '
                f'class="seat {"unavailable" if unavailable else "available"}" '
                f'data-category={quoteattr(category_name)} data-row="{label}" data-col="{c + 1}" />'
                f'<text x="{_num(x + SEAT_WIDTH / 2)}" y="{_num(y + SEAT_HEIGHT / 2 + 1)}" text-anchor="middle" '
                f'font-size="10" fill="{"#fff" if unavailable else "#333"}" dominant-baseline="middle">{c + 1}</text>'
                f"</g>"
            )
            seats.append(
                DiagramSeat(
                    id=sid,
                    row=label,
                    col=c + 1,
                    category=category_name,
                    color=fill,
                    available=not unavailable,
                    x=x,
                    y=y,
                )
            )
    parts.append("</svg>")

    categories = []
    for cat in seat_map.categories:
        item = {"name": cat.name, "color": cat.color, "row_count": cat.row_count}
        if prices is not None:
            item["price"] = prices.get(cat.name, 0)
        categories.append(item)

    return Diagram(svg="".join(parts), width=width, height=height, seats=seats, categories=categories)


def _cell(text: str, width: int) -> str:
    return text[:width].center(width)


def render_ascii(seat_map: SeatMap, booked: Iterable[str] = (), *, cell_width: int = 3) -> str:
    cell_width = max(1, int(cell_width))
    booked_ids = frozenset(booked)
    distribution = build_row_distribution(seat_map.rows, seat_map.categories)
    label_width = len(row_label(seat_map.rows - 1)) + 2

    def join_row(cells: list[str]) -> str:
        if seat_map.aisle_after_col and seat_map.cols > seat_map.aisle_after_col:
            cut = seat_map.aisle_after_col
            return " ".join(cells[:cut]) + " | " + " ".join(cells[cut:])
        return " ".join(cells)

    header = " " * label_width + join_row([_cell(str(c + 1), cell_width) for c in range(seat_map.cols)])
    stage = " " * label_width + "STAGE".center(len(header) - label_width, "=")
    lines = [stage, header]
    for r in range(seat_map.rows):
        initial = distribution[r][:1].upper() or "?"
        cells = []
        for c in range(seat_map.cols):
            sid = seat_id(r, c)
            blocked = sid in seat_map.unavailable_seats or sid in booked_ids
            cells.append(_cell("x" if blocked else initial, cell_width))
        lines.append(row_label(r).ljust(label_width) + join_row(cells))
    return "\n".join(lines)
