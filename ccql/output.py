"""Output formats, a box-drawn table and the writer used by commands."""

from __future__ import annotations

import json
import os
import unicodedata
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, TextIO


class OutputFormat(str, Enum):
    JSON = "json"
    TABLE = "table"
    RAW = "raw"
    JSONL = "jsonl"

    def __str__(self) -> str:
        return self.value


def _display_width(text: str) -> int:
    width = 0
    for ch in text:
        if unicodedata.combining(ch):
            continue
        width += 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1
    return width


def _cell_text(value: Any) -> str:
    return "" if value is None else str(value)


class Table:
    """A table drawn with Unicode box characters, header separated by a double line."""

    def __init__(self) -> None:
        self.header: list[str] | None = None
        self.rows: list[list[str]] = []

    def set_header(self, headers: Iterable[Any]) -> "Table":
        self.header = [_cell_text(h) for h in headers]
        return self

    def add_row(self, cells: Iterable[Any]) -> "Table":
        self.rows.append([_cell_text(c) for c in cells])
        return self

    def render(self) -> str:
        all_rows = ([self.header] if self.header is not None else []) + self.rows
        columns = max((len(row) for row in all_rows), default=0)
        if columns == 0:
            return ""
        widths = [0] * columns
        for row in all_rows:
            for i, cell in enumerate(row):
                for line in cell.split("\n"):
                    widths[i] = max(widths[i], _display_width(line))

        def border(left: str, fill: str, mid: str, right: str) -> str:
            return left + mid.join(fill * (w + 2) for w in widths) + right

        def body(row: list[str]) -> list[str]:
            cells = [c.split("\n") for c in row] + [[""]] * (columns - len(row))
            height = max(len(c) for c in cells)
            lines = []
            for n in range(height):
                parts = []
                for lines_of_cell, width in zip(cells, widths):
                    text = lines_of_cell[n] if n < len(lines_of_cell) else ""
                    parts.append(" " + text + " " * (width - _display_width(text)) + " ")
                lines.append("│" + "┆".join(parts) + "│")
            return lines

        out = [border("┌", "─", "┬", "┐")]
        if self.header is not None:
            out.extend(body(self.header))
            out.append(border("╞", "═", "╪", "╡"))
        for row in self.rows:
            out.extend(body(row))
        out.append(border("└", "─", "┴", "┘"))
        return "\n".join(out)

    def __str__(self) -> str:
        return self.render()


def _json_default(obj: Any) -> Any:
    to_json = getattr(obj, "to_json", None)
    if callable(to_json):
        return to_json()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, os.PathLike):
        return os.fspath(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class OutputWriter:
    """Writes JSON, tables and plain lines to a text stream."""

    def __init__(self, stream: TextIO, fmt: OutputFormat = OutputFormat.TABLE) -> None:
        self.stream = stream
        self.format = OutputFormat(fmt)

    def write_json(self, data: Any) -> None:
        if self.format in (OutputFormat.RAW, OutputFormat.JSONL):
            text = json.dumps(data, separators=(",", ":"), ensure_ascii=False,
                              default=_json_default)
        else:
            text = json.dumps(data, indent=2, ensure_ascii=False, default=_json_default)
        self.writeln(text)

    def write_table(self, table: Table) -> None:
        self.writeln(str(table))

    def writeln(self, text: str) -> None:
        self.stream.write(f"{text}\n")


def create_table() -> Table:
    return Table()


def truncate_string(s: str, max_len: int) -> str:
    if len(s) > max_len:
        return s[: max(max_len - 3, 0)] + "..."
    return s


def format_timestamp(ts: int) -> str:
    """Format milliseconds since the epoch as UTC, or 'unknown' if out of range."""
    try:
        moment = datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=ts)
    except OverflowError:
        return "unknown"
    return moment.strftime("%Y-%m-%d %H:%M:%S")