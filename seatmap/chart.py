from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional


class SeatMapError(Exception):
    pass


_SEAT_ID_RE = re.compile(r"^([A-Z]+)([1-9][0-9]*)$")


def row_label(index: int) -> str:
    """
    0 -> A, 25 -> Z, 26 -> AA, 27 -> AB ...
    Row A is the row nearest the stage.
    """
    if index < 0:
        raise SeatMapError(f"row index must be non-negative: {index}")
    label = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        label = chr(65 + rem) + label
    return label


def row_index(label: str) -> int:
    n = 0
    for ch in label:
        if not "A" <= ch <= "Z":
            raise SeatMapError(f"invalid row label: {label!r}")
        n = n * 26 + (ord(ch) - 64)
    if n == 0:
        raise SeatMapError("row label must be non-empty")
    return n - 1


def seat_id(row: int, col: int) -> str:
    # col is 0-based here, seat numbers are 1-based
    return f"{row_label(row)}{col + 1}"


def parse_seat_id(value: str) -> tuple[int, int]:
    m = _SEAT_ID_RE.match((value or "").strip())
    if not m:
        raise SeatMapError(f"invalid seat id: {value!r}")
    return row_index(m.group(1)), int(m.group(2)) - 1


@dataclass(frozen=True)
class Category:
    name: str
    color: str
    row_count: int = 0

    def __post_init__(self) -> None:
        if not (self.name or "").strip():
            raise SeatMapError("category name must be a non-empty string")
        if not isinstance(self.row_count, int) or isinstance(self.row_count, bool) or self.row_count < 0:
            raise SeatMapError(f"category {self.name!r}: rowCount must be a non-negative integer")

    def to_dict(self) -> dict:
        return {"name": self.name, "color": self.color, "row_count": self.row_count}

    @classmethod
    def from_dict(cls, data: dict) -> "Category":
        raw_count = data.get("row_count", data.get("rowCount", 0))
        try:
            count = int(raw_count or 0)
        except (TypeError, ValueError) as e:
            raise SeatMapError(f"invalid rowCount for category {data.get('name')!r}: {raw_count!r}") from e
        return cls(name=str(data.get("name") or ""), color=str(data.get("color") or ""), row_count=count)


def total_category_rows(categories: Iterable[Category]) -> int:
    return sum(c.row_count for c in categories)


@dataclass(frozen=True)
class SeatMap:
    """
    Rectangular venue layout: rows x cols seats, an optional visual aisle after
    a 1-based column, ordered seating categories and statically blocked seats.
    """

    rows: int
    cols: int
    aisle_after_col: Optional[int] = None
    categories: tuple[Category, ...] = ()
    unavailable_seats: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.rows <= 0 or self.cols <= 0:
            raise SeatMapError("rows and cols must be positive integers")
        if self.aisle_after_col is not None and self.aisle_after_col < 1:
            raise SeatMapError("aisleAfterCol must be a positive column number")
        # Normalise list/set inputs so the instance stays hashable.
        object.__setattr__(self, "categories", tuple(self.categories))
        object.__setattr__(self, "unavailable_seats", frozenset(self.unavailable_seats))

        names = [c.name for c in self.categories]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise SeatMapError(f"duplicate category names: {dupes}")
        if total_category_rows(self.categories) > self.rows:
            raise SeatMapError("Total category rows exceed venue rows")

    @property
    def total_seats(self) -> int:
        return self.rows * self.cols

    def category(self, name: str) -> Optional[Category]:
        for c in self.categories:
            if c.name == name:
                return c
        return None

    def contains(self, value: str) -> bool:
        try:
            r, c = parse_seat_id(value)
        except SeatMapError:
            return False
        return r < self.rows and c < self.cols

    def to_dict(self) -> dict:
        return {
            "rows": self.rows,
            "cols": self.cols,
            "aisle_after_col": self.aisle_after_col,
            "categories": [c.to_dict() for c in self.categories],
            "unavailable_seats": sorted(self.unavailable_seats),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SeatMap":
        try:
            rows = int(data["rows"])
            cols = int(data["cols"])
            aisle = data.get("aisle_after_col", data.get("aisleAfterCol"))
            aisle = int(aisle) if aisle not in (None, "", 0, "0") else None
            categories = tuple(Category.from_dict(c) for c in data.get("categories") or [])
            blocked = data.get("unavailable_seats", data.get("unavailableSeats")) or []
        except SeatMapError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise SeatMapError(f"invalid seat map data: {e}") from e
        return cls(
            rows=rows,
            cols=cols,
            aisle_after_col=aisle,
            categories=categories,
            unavailable_seats=frozenset(str(s) for s in blocked),
        )
