"""Excel mirror of matrix experiments.

One row per cell in the "experiments" sheet. Workbooks written by older
versions keep their columns; headers they lack are appended on the right.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.worksheet.worksheet import Worksheet

import config

DEFAULT_XLSX = config.XLSX_PATH

EXPERIMENTS_SHEET = "experiments"

Cell = Dict[str, Any]


def _judge(cell: Cell) -> Dict[str, Any]:
    return (cell.get("evaluation") or {}).get("ai") or {}


# Header -> value for one matrix cell. Run-level values (timestamp, ids, input)
# are filled in by append_experiment_rows.
_CELL_COLUMNS: List[Tuple[str, Callable[[Cell], Any]]] = [
    ("tone", lambda c: (c.get("config") or {}).get("tone")),
    ("length", lambda c: (c.get("config") or {}).get("length")),
    ("format", lambda c: (c.get("config") or {}).get("format")),
    ("blueprint", lambda c: c.get("blueprint") or ""),
    ("execution_model", lambda c: c.get("execution_model_id")),
    ("execution_result", lambda c: c.get("execution_result")),
    ("judge_model", lambda c: c.get("judge_model_id")),
    ("judge_score", lambda c: _judge(c).get("score")),
    ("judge_critique", lambda c: _judge(c).get("critique")),
    ("error", lambda c: c.get("error") or c.get("execution_error")),
]

EXPERIMENT_HEADERS = [
    "timestamp", "experiment_id", "cell_index", "user_input", "output_type",
] + [name for name, _ in _CELL_COLUMNS]


def _ensure_sheet(wb: Workbook, title: str, headers: List[str]) -> Worksheet:
    if title not in wb.sheetnames:
        ws = wb.create_sheet(title)
        ws.append(headers)
        return ws

    ws = wb[title]
    if ws.cell(1, 1).value is None:
        for col, h in enumerate(headers, start=1):
            ws.cell(1, col).value = h
        return ws

    present = {c.value for c in ws[1]}
    for h in headers:
        if h not in present:
            ws.cell(1, ws.max_column + 1).value = h
    return ws


def _open_workbook(path: str) -> Workbook:
    if os.path.exists(path):
        return load_workbook(path)
    wb = Workbook()
    wb.remove(wb.active)
    return wb


@contextmanager
def _exclusive(path: str) -> Iterator[None]:
    """Hold `<path>.lock` while writing. A second writer gets RuntimeError."""
    lock_path = path + ".lock"
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
    except FileExistsError:
        name = os.path.basename(path)
        raise RuntimeError(f"{name} is being written by another run. Try again shortly.") from None
    try:
        yield
    finally:
        os.close(fd)
        try:
            os.remove(lock_path)
        except FileNotFoundError:
            pass


def append_experiment_rows(
    *,
    experiment_id: str,
    user_input: str,
    output_type: str,
    results: List[Cell],
    path: str = DEFAULT_XLSX,
) -> int:
    """Append one row per matrix cell. Returns rows written."""
    with _exclusive(path):
        wb = _open_workbook(path)
        ws = _ensure_sheet(wb, EXPERIMENTS_SHEET, EXPERIMENT_HEADERS)
        ts = datetime.now().isoformat(timespec="seconds")

        columns = [c.value for c in ws[1]]

        for idx, cell in enumerate(results):
            values = {
                "timestamp": ts,
                "experiment_id": experiment_id,
                "cell_index": idx,
                "user_input": user_input,
                "output_type": output_type,
            }
            values.update((name, get(cell)) for name, get in _CELL_COLUMNS)
            ws.append([values.get(col) for col in columns])

        wb.save(path)
    return len(results)


def workbook_bytes(path: str = DEFAULT_XLSX) -> Optional[bytes]:
    if not os.path.exists(path):
        return None
    with open(path, "rb") as f:
        return f.read()
