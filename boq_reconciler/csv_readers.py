# boq_reconciler/csv_readers.py
# CSV readers used by the UI (stand-ins for the workbook parsers)
#
# Each reader takes the upload's file name and raw bytes and returns
# (records, errors); a bad row is skipped and reported, never raised.

import csv
import io
from typing import List, Tuple

from .models import CatalogueEntry, LineItem, StageForecast


def _rows(data: bytes) -> List[dict]:
    return list(csv.DictReader(io.StringIO(data.decode("utf-8-sig"))))


def _number(raw: str) -> float:
    return float(raw.strip().replace(",", "."))


def read_boq(name: str, data: bytes) -> Tuple[List[LineItem], List[str]]:
    """Columns: stage, name, unit, quantity."""
    items, errors = [], []
    for row_no, row in enumerate(_rows(data), start=2):
        try:
            items.append(
                LineItem(
                    stage_code=row["stage"].strip(),
                    name=row["name"],
                    unit=row["unit"],
                    quantity=_number(row["quantity"]),
                    source_file_id=name,
                    source_row=row_no,
                )
            )
        except (KeyError, ValueError, AttributeError) as exc:
            errors.append(f"{name} row {row_no}: {exc}")
    return items, errors


def read_catalogue(name: str, data: bytes) -> Tuple[List[CatalogueEntry], List[str]]:
    """Columns: name, unit, base_price, optional aliases (';'-separated), optional category."""
    entries, errors = [], []
    for row_no, row in enumerate(_rows(data), start=2):
        try:
            aliases = [a.strip() for a in (row.get("aliases") or "").split(";") if a.strip()]
            entries.append(
                CatalogueEntry(
                    name=row["name"],
                    unit=row["unit"],
                    base_price=_number(row["base_price"]),
                    aliases=tuple(aliases),
                    category=row.get("category") or None,
                )
            )
        except (KeyError, ValueError, AttributeError) as exc:
            errors.append(f"{name} row {row_no}: {exc}")
    return entries, errors


def read_forecasts(name: str, data: bytes) -> Tuple[List[StageForecast], List[str]]:
    """Columns: stage, forecast."""
    out, errors = [], []
    for row_no, row in enumerate(_rows(data), start=2):
        try:
            out.append(StageForecast(row["stage"].strip(), _number(row["forecast"])))
        except (KeyError, ValueError, AttributeError) as exc:
            errors.append(f"{name} row {row_no}: {exc}")
    return out, errors
