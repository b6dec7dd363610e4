"""Delimited table export and typed column loading."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence


class CsvWriter:
    """Persist a table as CSV: one header row, one row per record."""

    def __init__(self, path: str | Path, delimiter: str = ",") -> None:
        self.path = Path(path)
        self.delimiter = delimiter

    def write(self, field_names: Sequence[str], rows: Iterable[Sequence[Any]]) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        width = len(field_names)
        with self.path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh, delimiter=self.delimiter)
            writer.writerow(list(field_names))
            for row in rows:
                if len(row) != width:
                    raise ValueError(f"Row has {len(row)} values, header has {width}")
                writer.writerow([str(value) for value in row])
        return self.path


def load_csv(
    path: str | Path,
    converters: Mapping[str, Callable[[str], Any]],
    delimiter: str = ",",
) -> dict[str, list[Any]]:
    """Read typed columns from a CSV file with a header row.

    Args:
        path: CSV file path.
        converters: Column name to parser (``int``, ``float``...). Only these
            columns are returned, in this order.

    Returns:
        Mapping of column name to parsed values, suitable as
        ``input_parameters`` for a matched-mode sweep.
    """
    columns: dict[str, list[Any]] = {name: [] for name in converters}
    with Path(path).open("r", newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh, delimiter=delimiter)
        missing = [name for name in converters if name not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"CSV file {path} is missing column(s): {missing}")
        for line_number, row in enumerate(reader, start=2):
            for name, convert in converters.items():
                try:
                    columns[name].append(convert(row[name]))
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"{path}:{line_number}: cannot parse column '{name}': {exc}") from exc
    return columns
