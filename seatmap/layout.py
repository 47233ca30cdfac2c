from __future__ import annotations

from collections.abc import Mapping
from typing import Optional, Sequence, Union

from .chart import Category, SeatMap, SeatMapError, seat_id, total_category_rows


UNKNOWN_CATEGORY = "Unknown"
FALLBACK_CATEGORY = "general"


def fallback_category(categories: Sequence[Category]) -> str:
    for c in categories:
        if c.name.lower() == FALLBACK_CATEGORY:
            return c.name
    return UNKNOWN_CATEGORY


def validate_category_rows(rows: int, categories: Sequence[Category]) -> None:
    if total_category_rows(categories) > rows:
        raise SeatMapError("Total category rows exceed venue rows")


def build_row_distribution(rows: int, categories: Sequence[Category]) -> list[str]:
    """
    Map every row index to a category name.

    Categories are consumed in reverse declared order, each claiming `row_count`
    consecutive rows starting from row 0 (nearest the stage), so the last declared
    category sits closest to the stage. Rows nobody claims fall to the "General"
    tier when one is declared, otherwise to "Unknown".
    """
    distribution: list[str] = []
    for category in reversed(list(categories)):
        for _ in range(category.row_count):
            if len(distribution) >= rows:
                break
            distribution.append(category.name)
    fallback = fallback_category(categories)
    while len(distribution) < rows:
        distribution.append(fallback)
    return distribution


def seat_categories(seat_map: SeatMap) -> dict[str, str]:
    distribution = build_row_distribution(seat_map.rows, seat_map.categories)
    return {seat_id(r, c): distribution[r] for r in range(seat_map.rows) for c in range(seat_map.cols)}


SeatMapLike = Union[SeatMap, Mapping, None]


def _dimensions(seat_map: SeatMapLike) -> Optional[tuple[int, int]]:
    if seat_map is None:
        return None
    if isinstance(seat_map, SeatMap):
        return seat_map.rows, seat_map.cols
    try:
        rows = int(seat_map.get("rows") or 0)
        cols = int(seat_map.get("cols") or 0)
    except (TypeError, ValueError):
        return None
    if rows <= 0 or cols <= 0:
        return None
    return rows, cols


def generate_seat_list(seat_map: SeatMapLike) -> list[dict]:
    """Row-major `{id, isBooked: False}` records; empty when the map has no usable size."""
    dims = _dimensions(seat_map)
    if dims is None:
        return []
    rows, cols = dims
    return [{"id": seat_id(r, c), "isBooked": False} for r in range(rows) for c in range(cols)]
