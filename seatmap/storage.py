from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from .chart import SeatMap, SeatMapError


def load_seat_map(path: str | Path) -> SeatMap:
    """Read a seat map file. Legacy camelCase keys (rowCount, aisleAfterCol, ...) are accepted."""
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise SeatMapError(f"seat map file not found: {p}") from e
    except OSError as e:
        raise SeatMapError(f"cannot read {p}: {e}") from e

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise SeatMapError(f"{p} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SeatMapError(f"{p}: expected a JSON object at the top level")
    return SeatMap.from_dict(data)


def save_seat_map(seat_map: SeatMap, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    body = json.dumps(seat_map.to_dict(), indent=2, sort_keys=True) + "\n"
    # write-then-rename so a crash never leaves a half-written map behind
    fd, tmp = tempfile.mkstemp(dir=p.parent, prefix=f".{p.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(body)
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def maybe_init_seat_map(
    path: str | Path,
    *,
    rows: Optional[int] = None,
    cols: Optional[int] = None,
    aisle_after_col: Optional[int] = None,
    overwrite: bool = False,
) -> SeatMap:
    """Load `path`, or create an empty rows x cols map there when it is missing (or `overwrite`)."""
    p = Path(path)
    if p.exists() and not overwrite:
        return load_seat_map(p)
    if rows is None or cols is None:
        raise SeatMapError("--rows and --cols are required to create a new seat map")

    seat_map = SeatMap(rows=rows, cols=cols, aisle_after_col=aisle_after_col)
    save_seat_map(seat_map, p)
    return seat_map
