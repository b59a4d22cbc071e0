"""CSV reading helpers for payroll spreadsheets."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from .config import ColumnMapping
from .models import PayrollEntry, ReadError

Row = Dict[str, str]


def read_rows(path: Path | str) -> List[Row]:
    """Parse the CSV at *path* into one mapping per data line.

    The first line provides the keys. Everything is read before returning so a
    malformed file fails as a whole instead of after some rows were used.
    """

    rows: List[Row] = []
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as fp:
            reader = csv.DictReader(fp, strict=True)
            if reader.fieldnames is None:
                return rows
            reader.fieldnames = [(name or "").strip() for name in reader.fieldnames]
            for raw in reader:
                # Surplus values land under the None key; short rows yield None values.
                rows.append({key: (value or "").strip() for key, value in raw.items() if key is not None})
    except OSError as exc:
        raise ReadError(f"Could not open spreadsheet {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ReadError(f"Spreadsheet {path} is not valid UTF-8 text") from exc
    except csv.Error as exc:
        raise ReadError(f"Spreadsheet {path} could not be parsed: {exc}") from exc

    return rows


def _first_value(row: Mapping[str, str], names: Sequence[str]) -> str:
    for name in names:
        value = (row.get(name) or "").strip()
        if value:
            return value
    return ""


def extract_entry(row: Mapping[str, str], columns: ColumnMapping) -> PayrollEntry | None:
    """Return the payroll fields of *row*, or None when recipient or salary is blank."""

    recipient_id = _first_value(row, columns.recipient)
    salary = _first_value(row, columns.salary)
    if not recipient_id or not salary:
        return None

    return PayrollEntry(
        recipient_id=recipient_id,
        salary=salary,
        name=_first_value(row, columns.name) or recipient_id,
        absences=_first_value(row, columns.absences) or "0",
        holidays_worked=_first_value(row, columns.holidays_worked) or "0",
    )
