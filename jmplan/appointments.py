# jmplan/appointments.py
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from postgrest.exceptions import APIError
from supabase import Client

from .auth import current_user_id
from .clients import get_client_row
from .deps import db_error, get_supabase
from .models import (
    APPOINTMENT_COLUMNS,
    ApiAppointment,
    AppointmentCreate,
    AppointmentStatus,
    AppointmentUpdate,
    CalendarOut,
    row_to_appointment,
    row_to_client,
    row_to_service,
    to_row,
)
from .scheduling import (
    WORKDAY_HOURS,
    SlotUnavailable,
    as_aware,
    day_bounds,
    ensure_available,
    group_by_day,
    local_tz,
    view_range,
)
from .services import get_service_row
from .sms import SmsError, normalize_phone, send_sms

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/appointments", tags=["appointments"], dependencies=[Depends(current_user_id)])
calendar_router = APIRouter(prefix="/calendar", tags=["calendar"], dependencies=[Depends(current_user_id)])

# Join syntax: rendez_vous.client_id -> clients.id, rendez_vous.service_id -> services.id
APPOINTMENT_SELECT = "*,client:clients(*),service:services(*)"

# longest booking we expect; bounds the conflict lookup window
MAX_BOOKING = timedelta(hours=24)


def fetch_appointments(
    supabase: Client,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[str] = None,
) -> List[ApiAppointment]:
    q = supabase.table("rendez_vous").select(APPOINTMENT_SELECT)
    if start:
        q = q.gte("date_heure", as_aware(start).isoformat())
    if end:
        q = q.lt("date_heure", as_aware(end).isoformat())
    if status:
        q = q.eq("statut", status)
    try:
        resp = q.order("date_heure").execute()
    except APIError as e:
        raise db_error(e, "rendez_vous select")
    return [row_to_appointment(r) for r in resp.data or []]


def get_appointment_row(supabase: Client, appointment_id: int) -> dict:
    try:
        resp = (
            supabase.table("rendez_vous")
            .select(APPOINTMENT_SELECT)
            .eq("id", appointment_id)
            .limit(1)
            .execute()
        )
    except APIError as e:
        raise db_error(e, "rendez_vous select")
    if not resp.data:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return resp.data[0]


def check_slot(
    supabase: Client,
    start: datetime,
    duration: int,
    employee_id: Optional[int],
    room_id: Optional[int],
    ignore_id: Optional[int] = None,
) -> None:
    if employee_id is None and room_id is None:
        return
    start = as_aware(start)
    nearby = fetch_appointments(supabase, start - MAX_BOOKING, start + timedelta(minutes=duration))
    try:
        ensure_available(nearby, start, duration, employee_id, room_id, ignore_id)
    except SlotUnavailable as e:
        log.info(f"Booking refused: {e}")
        raise HTTPException(status_code=409, detail="Slot unavailable - conflict detected")


def send_confirmation(appt: ApiAppointment) -> None:
    """Best effort: a failed SMS never fails the booking."""
    client = appt.client
    if not client or not client.phone:
        return
    service_name = appt.service.name if appt.service else "your appointment"
    when = as_aware(appt.start).astimezone(local_tz())
    message = f"Hello {client.full_name}, your {service_name} is confirmed for {when:%Y-%m-%d} at {when:%H:%M}."
    try:
        send_sms(normalize_phone(client.phone), message)
    except SmsError as e:
        log.warning(f"Confirmation SMS for appointment {appt.id} not sent: {e}")


def insert_appointment(supabase: Client, row: dict) -> ApiAppointment:
    try:
        resp = supabase.table("rendez_vous").insert(row).execute()
    except APIError as e:
        raise db_error(e, "rendez_vous insert")
    return row_to_appointment(resp.data[0])


@router.get("", response_model=List[ApiAppointment])
def list_appointments(
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    status: Optional[AppointmentStatus] = Query(default=None),
    supabase: Client = Depends(get_supabase),
):
    return fetch_appointments(supabase, start, end, status)


@router.get("/{appointment_id}", response_model=ApiAppointment)
def get_appointment(appointment_id: int, supabase: Client = Depends(get_supabase)):
    return row_to_appointment(get_appointment_row(supabase, appointment_id))


@router.post("", response_model=ApiAppointment, status_code=201)
def create_appointment(payload: AppointmentCreate, supabase: Client = Depends(get_supabase)):
    client_row = get_client_row(supabase, payload.client_id)
    service_row = get_service_row(supabase, payload.service_id)

    # duration, price and room default from the catalogue
    duration = payload.duration or service_row.get("duree") or 60
    price = payload.price if payload.price is not None else service_row.get("prix")
    room_id = payload.room_id if payload.room_id is not None else service_row.get("salle_id")
    start = as_aware(payload.start)

    check_slot(supabase, start, duration, payload.employee_id, room_id)

    row = to_row(payload, APPOINTMENT_COLUMNS)
    row.update({"date_heure": start.isoformat(), "duree": duration, "prix": price, "salle_id": room_id})
    appt = insert_appointment(supabase, row)
    appt.client = row_to_client(client_row)
    appt.service = row_to_service(service_row)

    log.info(f"Appointment {appt.id} booked for client {appt.client_id} at {start.isoformat()}")
    if appt.send_confirmation:
        send_confirmation(appt)
    return appt


@router.put("/{appointment_id}", response_model=ApiAppointment)
def update_appointment(appointment_id: int, payload: AppointmentUpdate, supabase: Client = Depends(get_supabase)):
    current = row_to_appointment(get_appointment_row(supabase, appointment_id))
    changes = to_row(payload, APPOINTMENT_COLUMNS, exclude_unset=True)
    if not changes:
        return current

    # moving, resizing or reassigning re-runs the conflict check against everyone else
    fields = payload.model_fields_set
    if fields & {"start", "duration", "employee_id", "room_id"}:
        start = as_aware(payload.start or current.start)
        duration = payload.duration or current.duration
        employee_id = payload.employee_id if "employee_id" in fields else current.employee_id
        room_id = payload.room_id if "room_id" in fields else current.room_id
        check_slot(supabase, start, duration, employee_id, room_id, ignore_id=appointment_id)
        if payload.start is not None:
            changes["date_heure"] = start.isoformat()

    try:
        supabase.table("rendez_vous").update(changes).eq("id", appointment_id).execute()
    except APIError as e:
        raise db_error(e, "rendez_vous update")
    log.info(f"Appointment {appointment_id} updated: {sorted(changes)}")
    return row_to_appointment(get_appointment_row(supabase, appointment_id))


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(appointment_id: int, supabase: Client = Depends(get_supabase)):
    get_appointment_row(supabase, appointment_id)
    try:
        supabase.table("rendez_vous").delete().eq("id", appointment_id).execute()
    except APIError as e:
        raise db_error(e, "rendez_vous delete")
    return Response(status_code=204)


@calendar_router.get("", response_model=CalendarOut)
def calendar(
    view: str = Query(default="week"),
    day: Optional[date] = Query(default=None, alias="date"),
    supabase: Client = Depends(get_supabase),
):
    view, first, last = view_range(view, day or datetime.now(local_tz()).date())
    start, end = day_bounds(first, last)
    appointments = fetch_appointments(supabase, start, end)
    days = group_by_day(appointments, first, last)
    return {
        "view": view,
        "start": first,
        "end": last,
        "hours": WORKDAY_HOURS,
        "days": [{"date": d, "appointments": appts} for d, appts in days.items()],
    }
