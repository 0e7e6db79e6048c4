"""Built-in CSV weight importers: delimiter sniffing, quoted-field splitting, header matching, unit inference."""

from __future__ import annotations

from typing import Optional

from .models import ImportHandler, RawWeightRow
from .normalize import normalize_date, parse_weight_value

DEFAULT_DELIMITER = ","
DELIMITER_CANDIDATES = (",", "\t", ";", "|")
BOM = "\ufeff"

REQUIRED_HEADERS = ("date", "weight")
DATE_COLUMNS = ("date",)
WEIGHT_COLUMNS = ("weight", "weight (lbs)", "weight (kg)")
FITBIT_HINTS = ("fitbit body fat %", "fitbit steps", "fitbit body fat")


# --- Tokenizing ---

def _split_lines(text: str) -> list[str]:
    return [line.lstrip(BOM) for line in text.replace("\r\n", "\n").split("\n")]


def first_non_empty_line(text: str) -> Optional[str]:
    for line in _split_lines(text):
        if line.strip():
            return line
    return None


def detect_delimiter(line: str | None) -> str:
    """Most frequent candidate in the line; ',' on an empty line or when nothing beats it."""
    if not line:
        return DEFAULT_DELIMITER
    best, best_count = DEFAULT_DELIMITER, -1
    for candidate in DELIMITER_CANDIDATES:
        count = line.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def split_csv_line(line: str, delimiter: str) -> list[str]:
    """
    Split one line on delimiter outside quotes. A quote toggles quoted state;
    a doubled quote inside quotes is a literal quote. Cells are stripped.
    """
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    cells.append("".join(current).strip())
    return cells


def extract_csv_rows(text: str) -> list[list[str]]:
    """All non-blank rows, split with the delimiter sniffed from the first content line."""
    lines = _split_lines(text)
    delimiter = detect_delimiter(next((line for line in lines if line.strip()), ""))
    rows = [split_csv_line(line, delimiter) for line in lines]
    return [cells for cells in rows if any(c.strip() for c in cells)]


# --- Headers & units ---

def sanitize_header(value: str) -> str:
    return value.replace('"', "").strip().lower()


def _matches(header: str, candidate: str) -> bool:
    # "weight (lbs)" still counts as a weight column
    return header == candidate or header.startswith(f"{candidate} ")


def find_column_index(headers: list[str], candidates: tuple[str, ...]) -> int:
    for i, header in enumerate(headers):
        if any(_matches(header, c) for c in candidates):
            return i
    return -1


def has_required_headers(headers: list[str], required: tuple[str, ...] = REQUIRED_HEADERS) -> bool:
    return all(any(_matches(h, keyword) for h in headers) for keyword in required)


def read_header_cells(text: str) -> list[str]:
    """Sanitized header cells of the first non-empty line ([] when there is none)."""
    if not text or not text.strip():
        return []
    header_line = first_non_empty_line(text)
    if header_line is None:
        return []
    return [sanitize_header(c) for c in split_csv_line(header_line, detect_delimiter(header_line))]


def infer_unit_from_header(header: str | None) -> Optional[str]:
    if not header:
        return None
    if "kg" in header:
        return "kg"
    if "lb" in header:
        return "lb"
    return None


def infer_unit_from_value(cell: str, fallback: str | None = None) -> str:
    """A unit marker in the cell itself wins over the header default."""
    lowered = cell.lower()
    if "kg" in lowered:
        return "kg"
    if "lb" in lowered:
        return "lb"
    return fallback or "lb"


# --- Shared parse ---

def parse_weight_csv(text: str) -> list[RawWeightRow]:
    """
    Rows with a usable date and a positive weight, as raw candidate rows.
    Missing date/weight columns -> []; bad rows are skipped.
    """
    rows = extract_csv_rows(text)
    if not rows:
        return []
    headers = [sanitize_header(c) for c in rows[0]]
    date_idx = find_column_index(headers, DATE_COLUMNS)
    weight_idx = find_column_index(headers, WEIGHT_COLUMNS)
    if date_idx == -1 or weight_idx == -1:
        return []
    header_unit = infer_unit_from_header(headers[weight_idx])

    out: list[RawWeightRow] = []
    for row in rows[1:]:
        date_cell = row[date_idx] if date_idx < len(row) else ""
        weight_cell = row[weight_idx] if weight_idx < len(row) else ""
        if not date_cell or not weight_cell:
            continue
        recorded_at = normalize_date(date_cell)
        if not recorded_at:
            continue
        weight = parse_weight_value(weight_cell)
        if weight is None:
            continue
        out.append({
            "weight": round(weight, 1),
            "unit": infer_unit_from_value(weight_cell, header_unit),
            "recordedAt": recorded_at,
        })
    return out


# --- Handlers ---

def detect_fitbit_weight_csv(text: str) -> float:
    """1 when date/weight headers and a Fitbit-specific column are present, else 0."""
    headers = read_header_cells(text)
    if not headers or not has_required_headers(headers):
        return 0
    has_hint = any(hint in cell for cell in headers for hint in FITBIT_HINTS)
    return 1 if has_hint else 0


GENERIC_SCORE = 0.5


def detect_generic_weight_csv(text: str) -> float:
    headers = read_header_cells(text)
    if not headers or not has_required_headers(headers):
        return 0
    return GENERIC_SCORE


fitbit_weight_csv = ImportHandler(
    id="fitbit-weight-csv",
    label="Fitbit weight export",
    detect=detect_fitbit_weight_csv,
    parse=parse_weight_csv,
)

generic_weight_csv = ImportHandler(
    id="generic-weight-csv",
    label="Date/weight CSV",
    detect=detect_generic_weight_csv,
    parse=parse_weight_csv,
)
