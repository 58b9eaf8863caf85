# jmplan/spreadsheets.py
"""
Excel/CSV glue: read an uploaded sheet into rows of strings, map its header
onto known columns, validate cells, and write exports/templates back out.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zipfile import BadZipFile

import pandas as pd
from openpyxl import load_workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils.exceptions import InvalidFileException

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADER_FONT = Font(bold=True, color="FF2743E3", size=12)
TRUTHY = {"oui", "yes", "1", "true"}

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-()+.]+$")
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

# (1-based line in the sheet, trimmed cells)
SheetRow = Tuple[int, List[str]]


class UnsupportedFileFormat(ValueError):
    pass


@dataclass
class ImportColumn:
    key: str
    label: str
    required: bool = False
    type: str = "text"  # text | email | phone | date | time | number
    example: str = ""
    aliases: List[str] = field(default_factory=list)


CLIENT_IMPORT_COLUMNS = [
    ImportColumn("name", "Nom du client", True, example="Jean Dupont",
                 aliases=["nom", "client", "name", "prénom", "prenom"]),
    ImportColumn("email", "Email", type="email", example="jean@example.com",
                 aliases=["email", "courriel", "mail", "e-mail"]),
    ImportColumn("phone", "Téléphone", type="phone", example="514-123-4567",
                 aliases=["téléphone", "telephone", "phone", "tel", "cellulaire"]),
    ImportColumn("street", "Adresse (rue)", example="123 rue Principale",
                 aliases=["adresse", "rue", "street", "address"]),
    ImportColumn("city", "Ville", example="Montréal", aliases=["ville", "city"]),
    ImportColumn("province", "Province", example="QC", aliases=["province", "état", "state", "region"]),
    ImportColumn("postal_code", "Code postal", example="H2X 1Y2", aliases=["code postal", "postal", "zip", "cp"]),
    ImportColumn("notes", "Notes", example="Client VIP", aliases=["notes", "commentaires", "remarques"]),
]

APPOINTMENT_IMPORT_COLUMNS = [
    ImportColumn("client_name", "Nom du client", True, example="Jean Dupont",
                 aliases=["client", "nom client", "customer"]),
    ImportColumn("service_name", "Service", True, example="Consultation Premium",
                 aliases=["service", "prestation", "type"]),
    ImportColumn("date", "Date", True, type="date", example="2024-01-15", aliases=["date", "jour"]),
    ImportColumn("start_time", "Heure de début", True, type="time", example="09:00",
                 aliases=["début", "heure début", "start", "heure"]),
    ImportColumn("end_time", "Heure de fin", True, type="time", example="10:30",
                 aliases=["fin", "heure fin", "end"]),
    ImportColumn("notes", "Notes", example="Première consultation",
                 aliases=["notes", "commentaires", "remarques"]),
    ImportColumn("send_reminder", "Envoyer rappel", example="Oui/Non", aliases=["rappel", "reminder"]),
    ImportColumn("send_confirmation", "Envoyer confirmation", example="Oui/Non", aliases=["confirmation"]),
]

SERVICE_IMPORT_COLUMNS = [
    ImportColumn("name", "Nom", True, example="Consultation Premium", aliases=["nom", "name", "service"]),
    ImportColumn("description", "Description", example="Consultation approfondie", aliases=["description", "desc"]),
    ImportColumn("price", "Prix", True, type="number", example="150", aliases=["prix", "price", "cost"]),
    ImportColumn("duration", "Durée", True, type="number", example="90",
                 aliases=["duree", "durée", "duration", "minutes"]),
    ImportColumn("color", "Couleur", example="#E91E63", aliases=["couleur", "color", "colour"]),
    ImportColumn("category", "Catégorie", example="Consultation", aliases=["categorie", "catégorie", "category"]),
]


# ──────────────────────────────────────────────────────────────────────────────
# Reading
# ──────────────────────────────────────────────────────────────────────────────
def _clean(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    # Excel hands back typed cells
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == time.min else value.isoformat(sep=" ")
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _xlsx_rows(content: bytes) -> List[tuple]:
    try:
        ws = load_workbook(BytesIO(content), data_only=True).worksheets[0]
    except (BadZipFile, InvalidFileException) as e:
        raise ValueError(f"not a valid .xlsx workbook: {e}") from e
    return list(ws.iter_rows(values_only=True))


def parse_file(filename: str, content: bytes) -> List[SheetRow]:
    """Non-blank rows with their sheet line number, header first."""
    extension = (filename or "").lower().rsplit(".", 1)[-1]
    if extension == "csv":
        df = pd.read_csv(BytesIO(content), header=None, dtype=str, keep_default_na=False,
                         skip_blank_lines=False, encoding="utf-8-sig")
        raw = list(df.itertuples(index=False, name=None))
    elif extension == "xlsx":
        raw = _xlsx_rows(content)
    elif extension == "xls":
        # legacy workbooks go through pandas; its reader drops blank rows
        raw = list(pd.read_excel(BytesIO(content), sheet_name=0, header=None, dtype=str)
                   .itertuples(index=False, name=None))
    else:
        raise UnsupportedFileFormat("Unsupported file format. Use .xlsx, .xls or .csv")

    rows = [(line, [_clean(v) for v in row]) for line, row in enumerate(raw, start=1)]
    return [(line, cells) for line, cells in rows if any(cells)]


def split_header(rows: Sequence[SheetRow]) -> Tuple[List[str], List[SheetRow]]:
    if not rows:
        return [], []
    return rows[0][1], list(rows[1:])


def detect_columns(header: Sequence[str], columns: Sequence[ImportColumn]) -> Dict[str, int]:
    """Map column keys to header positions by key, label or alias, in column order."""
    headers = [h.lower().strip() for h in header]
    mapping: Dict[str, int] = {}
    for column in columns:
        candidates = [column.key.lower(), column.key.replace("_", " "), column.label.lower(), *column.aliases]
        for index, title in enumerate(headers):
            if not title or index in mapping.values():
                continue
            if any(c in title or title in c for c in candidates):
                mapping[column.key] = index
                break
    return mapping


def cell(row: Sequence[str], mapping: Dict[str, int], key: str) -> str:
    index = mapping.get(key)
    if index is None or index >= len(row):
        return ""
    return row[index]


def parse_date(value: str) -> date:
    return datetime.fromisoformat(value.strip()).date()


def parse_time(value: str) -> time:
    parts = [int(p) for p in value.strip().split(":")]
    return time(*parts)


def parse_number(value: str) -> float:
    """Decimal comma allowed; nan and inf are rejected."""
    number = float(value.strip().replace(",", "."))
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value}")
    return number


def is_truthy(value: str) -> bool:
    return value.strip().lower() in TRUTHY


def validate_row(row: Sequence[str], mapping: Dict[str, int], columns: Sequence[ImportColumn]) -> List[str]:
    errors = []
    for column in columns:
        value = cell(row, mapping, column.key)
        if column.required and not value:
            errors.append(f"{column.label} is required")
            continue
        if not value:
            continue
        if column.type == "email" and not EMAIL_RE.match(value):
            errors.append(f"{column.label} invalid: {value}")
        elif column.type == "phone" and not PHONE_RE.match(value):
            errors.append(f"{column.label} invalid: {value}")
        elif column.type == "date":
            try:
                parse_date(value)
            except ValueError:
                errors.append(f"{column.label} invalid: {value}")
        elif column.type == "time" and not TIME_RE.match(value):
            errors.append(f"{column.label} invalid: {value}")
        elif column.type == "number":
            try:
                parse_number(value)
            except ValueError:
                errors.append(f"{column.label} invalid: {value}")
    return errors


# ──────────────────────────────────────────────────────────────────────────────
# Writing
# ──────────────────────────────────────────────────────────────────────────────
def to_csv_bytes(records: List[Dict[str, Any]], columns: Optional[List[str]] = None) -> bytes:
    df = pd.DataFrame(records, columns=columns)
    return df.to_csv(index=False).encode("utf-8")


def _style_sheet(ws) -> None:
    for c in ws[1]:
        c.font = HEADER_FONT
        c.alignment = Alignment(horizontal="center")
    for col in ws.columns:
        longest = max((len(str(c.value)) for c in col if c.value is not None), default=0)
        ws.column_dimensions[col[0].column_letter].width = max(longest, 10) + 2


def to_xlsx_bytes(records: List[Dict[str, Any]], sheet_name: str = "Données",
                  columns: Optional[List[str]] = None) -> bytes:
    df = pd.DataFrame(records, columns=columns)
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        _style_sheet(writer.sheets[sheet_name])
    return buf.getvalue()


def build_template(columns: Sequence[ImportColumn], sheet_name: str) -> bytes:
    labels = [c.label for c in columns]
    example = {c.label: c.example for c in columns}
    return to_xlsx_bytes([example], sheet_name=sheet_name, columns=labels)
