# jmplan/imports.py
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Literal

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from .appointments import check_slot, fetch_appointments, insert_appointment
from .auth import current_user_id
from .clients import fetch_clients, insert_client
from .deps import db_error, get_supabase
from .models import (
    COLOR_PATTERN,
    DEFAULT_SERVICE_COLOR,
    ClientIn,
    ImportResult,
    row_to_expense,
    row_to_hours,
    row_to_task,
)
from .premium import select_rows
from .scheduling import as_aware
from .services import fetch_services
from .spreadsheets import (
    APPOINTMENT_IMPORT_COLUMNS,
    CLIENT_IMPORT_COLUMNS,
    SERVICE_IMPORT_COLUMNS,
    XLSX_MEDIA_TYPE,
    SheetRow,
    UnsupportedFileFormat,
    build_template,
    cell,
    detect_columns,
    is_truthy,
    parse_date,
    parse_file,
    parse_number,
    parse_time,
    split_header,
    to_csv_bytes,
    to_xlsx_bytes,
    validate_row,
)

log = logging.getLogger("uvicorn.error")

_auth = [Depends(current_user_id)]
router = APIRouter(prefix="/import", tags=["import"], dependencies=_auth)
export_router = APIRouter(prefix="/export", tags=["export"], dependencies=_auth)
data_router = APIRouter(prefix="/data", tags=["data"], dependencies=_auth)

COLOR_RE = re.compile(COLOR_PATTERN)


async def _read_rows(file: UploadFile) -> List[SheetRow]:
    content = await file.read()
    try:
        return parse_file(file.filename or "", content)
    except UnsupportedFileFormat as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        log.error(f"Could not read {file.filename}: {e}")
        raise HTTPException(status_code=400, detail=f"Could not read file: {e}")


def _names_match(a: str, b: str) -> bool:
    a, b = a.lower().strip(), b.lower().strip()
    return bool(a and b) and (a in b or b in a)


def _finish(result: ImportResult, kind: str) -> ImportResult:
    result.success = not result.errors
    log.info(f"Imported {result.imported}/{result.total} {kind} ({len(result.errors)} errors)")
    return result


# ──────────────────────────────────────────────────────────────────────────────
# Import
# ──────────────────────────────────────────────────────────────────────────────
def import_clients(supabase: Client, rows: List[SheetRow]) -> ImportResult:
    header, data = split_header(rows)
    mapping = detect_columns(header, CLIENT_IMPORT_COLUMNS)
    result = ImportResult(success=True, imported=0, total=len(data))
    for line, row in data:
        problems = validate_row(row, mapping, CLIENT_IMPORT_COLUMNS)
        if problems:
            result.errors.append(f"Line {line}: {', '.join(problems)}")
            continue
        try:
            payload = ClientIn(**{
                c.key: cell(row, mapping, c.key) or None for c in CLIENT_IMPORT_COLUMNS
            })
            insert_client(supabase, payload)
        except (ValidationError, HTTPException) as e:
            detail = e.detail if isinstance(e, HTTPException) else e.errors()[0]["msg"]
            result.errors.append(f"Line {line}: {detail}")
            continue
        result.imported += 1
    return _finish(result, "clients")


def import_appointments(supabase: Client, rows: List[SheetRow]) -> ImportResult:
    header, data = split_header(rows)
    mapping = detect_columns(header, APPOINTMENT_IMPORT_COLUMNS)
    result = ImportResult(success=True, imported=0, total=len(data))
    clients = fetch_clients(supabase)
    services = fetch_services(supabase)

    for line, row in data:
        problems = validate_row(row, mapping, APPOINTMENT_IMPORT_COLUMNS)
        if problems:
            result.errors.append(f"Line {line}: {', '.join(problems)}")
            continue

        client_name = cell(row, mapping, "client_name")
        client = next((c for c in clients if _names_match(c.full_name, client_name)
                       or _names_match(c.name, client_name)), None)
        if not client:
            result.errors.append(f'Line {line}: Client "{client_name}" not found')
            continue
        service_name = cell(row, mapping, "service_name")
        service = next((s for s in services if _names_match(s.name, service_name)), None)
        if not service:
            result.errors.append(f'Line {line}: Service "{service_name}" not found')
            continue

        day = parse_date(cell(row, mapping, "date"))
        start = as_aware(datetime.combine(day, parse_time(cell(row, mapping, "start_time"))))
        end = as_aware(datetime.combine(day, parse_time(cell(row, mapping, "end_time"))))
        duration = int((end - start).total_seconds() // 60)
        if duration <= 0:
            result.errors.append(f"Line {line}: end time must be after start time")
            continue

        try:
            check_slot(supabase, start, duration, None, service.room_id)
            insert_appointment(supabase, {
                "client_id": client.id,
                "service_id": service.id,
                "salle_id": service.room_id,
                "date_heure": start.isoformat(),
                "duree": duration,
                "prix": service.price,
                "statut": "pending",
                "notes": cell(row, mapping, "notes") or None,
                "send_reminder": is_truthy(cell(row, mapping, "send_reminder")),
                "send_confirmation": is_truthy(cell(row, mapping, "send_confirmation")),
            })
        except HTTPException as e:
            result.errors.append(f"Line {line}: {e.detail}")
            continue
        result.imported += 1
    return _finish(result, "appointments")


def import_services(supabase: Client, rows: List[SheetRow]) -> ImportResult:
    header, data = split_header(rows)
    mapping = detect_columns(header, SERVICE_IMPORT_COLUMNS)
    result = ImportResult(success=True, imported=0, total=len(data))
    valid: List[Dict[str, Any]] = []

    for line, row in data:
        name = cell(row, mapping, "name")
        if not name:
            result.errors.append(f"Line {line}: Service name required")
            continue
        try:
            price = parse_number(cell(row, mapping, "price"))
        except ValueError:
            result.errors.append(f"Line {line}: Valid price required")
            continue
        try:
            duration = int(parse_number(cell(row, mapping, "duration")))
        except ValueError:
            result.errors.append(f"Line {line}: Valid duration required (minutes)")
            continue
        if price < 0 or duration <= 0:
            result.errors.append(f"Line {line}: Price and duration must be positive")
            continue

        color = cell(row, mapping, "color")
        if color and not COLOR_RE.match(color):
            result.warnings.append(f"Line {line}: Invalid colour format ({color}), default colour applied")
            color = ""
        valid.append({
            "nom": name,
            "description": cell(row, mapping, "description") or None,
            "categorie": cell(row, mapping, "category") or None,
            "prix": price,
            "duree": duration,
            "couleur": color or DEFAULT_SERVICE_COLOR,
        })

    if not valid:
        raise HTTPException(status_code=400, detail="No valid service found in the file")
    try:
        inserted = supabase.table("services").insert(valid).execute().data or []
    except APIError as e:
        if e.code == "23505":
            raise HTTPException(status_code=409, detail="Duplicates detected - some services already exist")
        raise db_error(e, "services insert")
    result.imported = len(inserted)
    return _finish(result, "services")


@router.post("/clients", response_model=ImportResult)
async def import_clients_file(file: UploadFile = File(...), supabase: Client = Depends(get_supabase)):
    return import_clients(supabase, await _read_rows(file))


@router.post("/appointments", response_model=ImportResult)
async def import_appointments_file(file: UploadFile = File(...), supabase: Client = Depends(get_supabase)):
    return import_appointments(supabase, await _read_rows(file))


@router.post("/services", response_model=ImportResult)
async def import_services_file(file: UploadFile = File(...), supabase: Client = Depends(get_supabase)):
    return import_services(supabase, await _read_rows(file))


def _download(content: bytes, filename: str, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}", "Cache-Control": "no-cache"},
    )


@router.get("/templates/{kind}")
def import_template(kind: Literal["clients", "appointments"]):
    if kind == "clients":
        content = build_template(CLIENT_IMPORT_COLUMNS, "Clients")
    else:
        content = build_template(APPOINTMENT_IMPORT_COLUMNS, "Rendez-vous")
    return _download(content, f"{kind}_template.xlsx", XLSX_MEDIA_TYPE)


# ──────────────────────────────────────────────────────────────────────────────
# Export + snapshot
# ──────────────────────────────────────────────────────────────────────────────
def _appointment_record(a) -> Dict[str, Any]:
    data = a.model_dump(mode="json", exclude={"client", "service"})
    data["client_name"] = a.client.full_name if a.client else None
    data["service_name"] = a.service.name if a.service else None
    return data


COLLECTIONS: Dict[str, Callable[[Client], List[Dict[str, Any]]]] = {
    "clients": lambda sb: [c.model_dump(mode="json") for c in fetch_clients(sb)],
    "services": lambda sb: [s.model_dump(mode="json") for s in fetch_services(sb)],
    "appointments": lambda sb: [_appointment_record(a) for a in fetch_appointments(sb)],
    "tasks": lambda sb: [row_to_task(r).model_dump(mode="json") for r in select_rows(sb, "taches", "date_echeance")],
    "expenses": lambda sb: [row_to_expense(r).model_dump(mode="json")
                            for r in select_rows(sb, "depenses", "date", desc=True)],
    "hours_entries": lambda sb: [row_to_hours(r).model_dump(mode="json")
                                 for r in select_rows(sb, "heures", "date", desc=True)],
}
EXPORT_NAMES = {"clients": "clients", "services": "services", "appointments": "appointments",
                "tasks": "tasks", "expenses": "expenses", "hours": "hours_entries"}


@export_router.get("/{collection}")
def export_collection(
    collection: Literal["clients", "services", "appointments", "expenses", "hours", "tasks"],
    format: Literal["csv", "xlsx"] = Query(default="xlsx"),
    supabase: Client = Depends(get_supabase),
):
    records = COLLECTIONS[EXPORT_NAMES[collection]](supabase)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log.info(f"Exporting {len(records)} {collection} as {format}")
    if format == "csv":
        return _download(to_csv_bytes(records), f"{collection}_export_{stamp}.csv", "text/csv")
    return _download(to_xlsx_bytes(records), f"{collection}_export_{stamp}.xlsx", XLSX_MEDIA_TYPE)


@data_router.get("")
def data_snapshot(supabase: Client = Depends(get_supabase)):
    return {name: load(supabase) for name, load in COLLECTIONS.items()}
