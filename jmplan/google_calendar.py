# jmplan/google_calendar.py
"""
Google Calendar integration: OAuth token exchange/refresh and a two-way
sync between Google events and appointments.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from postgrest.exceptions import APIError
from pydantic import TypeAdapter
from supabase import Client

from . import config
from .appointments import fetch_appointments, insert_appointment
from .auth import current_user_id
from .clients import fetch_clients
from .deps import db_error, get_http_client, get_supabase
from .models import ApiAppointment, GoogleStatus, GoogleSyncIn, GoogleSyncOut
from .scheduling import as_aware
from .services import fetch_services

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/google", tags=["google-calendar"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
DEFAULT_TOKEN_LIFETIME = 3600
SYNC_WINDOW = timedelta(days=90)

_timestamp = TypeAdapter(datetime)


class GoogleAuthError(Exception):
    pass


def _parse_rfc3339(value: str) -> datetime:
    # Postgres trims fractional seconds ("...00.12+00:00"), Google sends "Z"
    return _timestamp.validate_python(value)


def build_auth_url(state: str) -> str:
    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": config.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


# ──────────────────────────────────────────────────────────────────────────────
# Tokens
# ──────────────────────────────────────────────────────────────────────────────
async def _token_request(http: httpx.AsyncClient, data: Dict[str, str]) -> Dict[str, Any]:
    payload = {"client_id": config.GOOGLE_CLIENT_ID, "client_secret": config.GOOGLE_CLIENT_SECRET, **data}
    response = await http.post(GOOGLE_TOKEN_URL, data=payload)
    if response.status_code != 200:
        log.error(f"Google token request ({data['grant_type']}) failed: {response.text}")
        raise GoogleAuthError(f"token endpoint returned {response.status_code}")
    tokens = response.json()
    if not tokens.get("access_token"):
        raise GoogleAuthError("No access token received")
    return tokens


async def exchange_code(http: httpx.AsyncClient, code: str) -> Dict[str, Any]:
    return await _token_request(http, {
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": config.GOOGLE_REDIRECT_URI,
    })


async def refresh_access_token(http: httpx.AsyncClient, refresh_token: str) -> Dict[str, Any]:
    return await _token_request(http, {"refresh_token": refresh_token, "grant_type": "refresh_token"})


def save_tokens(supabase: Client, user_id: str, tokens: Dict[str, Any],
                previous: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=tokens.get("expires_in") or DEFAULT_TOKEN_LIFETIME)
    previous = previous or {}
    row = {
        "user_id": user_id,
        "access_token": tokens["access_token"],
        # Google only returns a refresh token on first consent
        "refresh_token": tokens.get("refresh_token") or previous.get("refresh_token"),
        "expires_at": expires_at.isoformat(),
        "scope": tokens.get("scope") or previous.get("scope") or " ".join(GOOGLE_CALENDAR_SCOPES),
    }
    try:
        supabase.table("google_tokens").upsert(row, on_conflict="user_id").execute()
    except APIError as e:
        raise db_error(e, "google_tokens upsert")
    return row


def load_tokens(supabase: Client, user_id: str) -> Optional[Dict[str, Any]]:
    try:
        resp = supabase.table("google_tokens").select("*").eq("user_id", user_id).limit(1).execute()
    except APIError as e:
        raise db_error(e, "google_tokens select")
    return resp.data[0] if resp.data else None


async def valid_access_token(http: httpx.AsyncClient, supabase: Client, user_id: str) -> str:
    tokens = load_tokens(supabase, user_id)
    if not tokens:
        raise GoogleAuthError("No Google token found. Please reconnect.")
    if _parse_rfc3339(tokens["expires_at"]) <= datetime.now(timezone.utc) and tokens.get("refresh_token"):
        log.info(f"Google token expired for {user_id}, refreshing")
        fresh = await refresh_access_token(http, tokens["refresh_token"])
        tokens = save_tokens(supabase, user_id, fresh, previous=tokens)
    return tokens["access_token"]


# ──────────────────────────────────────────────────────────────────────────────
# Calendar API
# ──────────────────────────────────────────────────────────────────────────────
async def list_events(http: httpx.AsyncClient, token: str, calendar_id: str,
                      time_min: datetime, time_max: datetime) -> List[Dict[str, Any]]:
    response = await http.get(
        f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events",
        headers={"Authorization": f"Bearer {token}"},
        params={
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        },
    )
    response.raise_for_status()
    return response.json().get("items") or []


async def insert_event(http: httpx.AsyncClient, token: str, calendar_id: str, event: Dict[str, Any]) -> Optional[str]:
    response = await http.post(
        f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events",
        headers={"Authorization": f"Bearer {token}"},
        json=event,
    )
    response.raise_for_status()
    return response.json().get("id")


def build_event(appt: ApiAppointment) -> Dict[str, Any]:
    client = appt.client
    client_name = client.full_name if client else ""
    service_name = appt.service.name if appt.service else ""
    event: Dict[str, Any] = {
        "summary": f"{service_name} - {client_name}",
        "description": f"Service: {service_name}\nClient: {client_name}\nNotes: {appt.notes or 'None'}",
        "start": {"dateTime": as_aware(appt.start).isoformat(), "timeZone": config.TIMEZONE},
        "end": {"dateTime": as_aware(appt.end).isoformat(), "timeZone": config.TIMEZONE},
        "reminders": {
            "useDefault": False,
            "overrides": [{"method": "email", "minutes": 60}, {"method": "popup", "minutes": 15}],
        },
    }
    if client and client.email:
        event["attendees"] = [{"email": client.email, "displayName": client_name}]
    if client and client.address:
        event["location"] = client.address
    return event


# ──────────────────────────────────────────────────────────────────────────────
# Sync
# ──────────────────────────────────────────────────────────────────────────────
def _linked_event_ids(supabase: Client) -> set:
    try:
        rows = supabase.table("rendez_vous").select("id,google_event_id").execute().data or []
    except APIError as e:
        raise db_error(e, "rendez_vous select")
    return {r["google_event_id"] for r in rows if r.get("google_event_id")}


async def sync_from_google(http: httpx.AsyncClient, supabase: Client, token: str, calendar_id: str,
                           time_min: datetime, time_max: datetime) -> Tuple[int, List[str]]:
    synced, errors = 0, []
    try:
        events = await list_events(http, token, calendar_id, time_min, time_max)
    except httpx.HTTPError as e:
        log.error(f"Could not list Google events: {e}")
        return 0, ["Could not fetch Google Calendar events"]

    linked = _linked_event_ids(supabase)
    clients = fetch_clients(supabase)
    services = fetch_services(supabase)
    by_email = {}
    for c in clients:
        if c.email:
            by_email.setdefault(c.email.lower(), c)

    for event in events:
        start = (event.get("start") or {}).get("dateTime")
        end = (event.get("end") or {}).get("dateTime")
        if not start or not end or event.get("id") in linked:
            continue  # all-day or already synced

        attendees = [(a.get("email") or "").lower() for a in event.get("attendees") or []]
        client = next((by_email[e] for e in attendees if e in by_email), None)
        client = client or (clients[0] if clients else None)

        summary = event.get("summary") or ""
        service = next((s for s in services if s.name.lower() in summary.lower()), None)
        service = service or (services[0] if services else None)
        if not client or not service:
            continue

        start_dt, end_dt = _parse_rfc3339(start), _parse_rfc3339(end)
        try:
            insert_appointment(supabase, {
                "client_id": client.id,
                "service_id": service.id,
                "date_heure": start_dt.isoformat(),
                "duree": round((end_dt - start_dt).total_seconds() / 60),
                "statut": "confirmed",
                "prix": service.price,
                "notes": event.get("description") or f"Imported from Google Calendar: {summary}",
                "google_event_id": event["id"],
            })
        except HTTPException as e:
            errors.append(f'Event "{summary}": {e.detail}')
            continue
        synced += 1
    return synced, errors


async def sync_to_google(http: httpx.AsyncClient, supabase: Client, token: str, calendar_id: str,
                         time_min: datetime, time_max: datetime) -> Tuple[int, List[str]]:
    synced, errors = 0, []
    for appt in fetch_appointments(supabase, time_min, time_max):
        if appt.google_event_id or appt.status == "cancelled":
            continue
        try:
            event_id = await insert_event(http, token, calendar_id, build_event(appt))
        except httpx.HTTPError as e:
            log.error(f"Could not create Google event for appointment {appt.id}: {e}")
            errors.append(f"Appointment {appt.id}: {e}")
            continue
        if not event_id:
            continue
        try:
            supabase.table("rendez_vous").update({"google_event_id": event_id}).eq("id", appt.id).execute()
        except APIError as e:
            errors.append(f"Appointment {appt.id}: {e.message}")
            continue
        synced += 1
    return synced, errors


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────
def _settings_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(f"{config.FRONTEND_URL.rstrip('/')}/parametres?{urlencode(params)}", status_code=302)


@router.get("/connect")
def connect(user_id: str = Depends(current_user_id)):
    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")
    log.info(f"Google Calendar OAuth initiated for user {user_id}")
    return {"auth_url": build_auth_url(user_id)}


@router.get("/callback")
async def callback(
    code: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    supabase: Client = Depends(get_supabase),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    if error:
        return _settings_redirect(google_error=error)
    if not code:
        return _settings_redirect(google_error="no_code")
    if not state:
        return _settings_redirect(google_error="invalid_state")
    try:
        tokens = await exchange_code(http, code)
        save_tokens(supabase, state, tokens)
    except (GoogleAuthError, httpx.HTTPError, HTTPException) as e:
        log.error(f"Google callback failed for {state}: {e}")
        return _settings_redirect(google_error="auth_failed")
    log.info(f"Google Calendar connected for user {state}")
    return _settings_redirect(google_success="true")


POPUP_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>Google Calendar authentication</title>
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
             display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0;
             background: linear-gradient(135deg, #E91E63, #FF6EC7); color: white; }}
      .container {{ text-align: center; padding: 2rem; border-radius: 1rem; background: rgba(255, 255, 255, 0.1); }}
    </style>
  </head>
  <body>
    <div class="container">
      <h2>Authentication successful!</h2>
      <p>Closing window...</p>
    </div>
    <script>
      if (window.opener) {{
        window.opener.postMessage({{ type: 'GOOGLE_AUTH_SUCCESS', code: {code} }}, window.location.origin);
        window.close();
      }} else {{
        window.location.href = '/parametres?google_auth=success';
      }}
    </script>
  </body>
</html>
"""


@router.get("/popup-callback")
def popup_callback(code: Optional[str] = Query(default=None), error: Optional[str] = Query(default=None)):
    """Page shown in the OAuth popup: hands the code to the opener window and closes."""
    if error:
        return _settings_redirect(error=error)
    if not code:
        return _settings_redirect()
    # json.dumps quotes the code; "</" is escaped so it cannot close the script tag
    return HTMLResponse(POPUP_PAGE.format(code=json.dumps(code).replace("</", "<\\/")))


@router.get("/status", response_model=GoogleStatus)
def status(user_id: str = Depends(current_user_id), supabase: Client = Depends(get_supabase)):
    tokens = load_tokens(supabase, user_id)
    if not tokens:
        return {"connected": False}
    return {"connected": True, "expires_at": tokens.get("expires_at"), "scope": tokens.get("scope")}


@router.delete("/disconnect", status_code=204)
def disconnect(user_id: str = Depends(current_user_id), supabase: Client = Depends(get_supabase)):
    try:
        supabase.table("google_tokens").delete().eq("user_id", user_id).execute()
    except APIError as e:
        raise db_error(e, "google_tokens delete")
    log.info(f"Google Calendar disconnected for user {user_id}")
    return Response(status_code=204)


@router.post("/sync", response_model=GoogleSyncOut)
async def sync(
    payload: GoogleSyncIn,
    user_id: str = Depends(current_user_id),
    supabase: Client = Depends(get_supabase),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    try:
        token = await valid_access_token(http, supabase, user_id)
    except GoogleAuthError as e:
        raise HTTPException(status_code=401, detail=str(e))

    calendar_id = payload.calendar_id or "primary"
    time_min = as_aware(payload.time_min) if payload.time_min else datetime.now(timezone.utc)
    time_max = as_aware(payload.time_max) if payload.time_max else time_min + SYNC_WINDOW

    synced, errors = 0, []
    if payload.direction in ("from_google", "both"):
        count, errs = await sync_from_google(http, supabase, token, calendar_id, time_min, time_max)
        synced += count
        errors += errs
    if payload.direction in ("to_google", "both"):
        count, errs = await sync_to_google(http, supabase, token, calendar_id, time_min, time_max)
        synced += count
        errors += errs

    log.info(f"Google sync ({payload.direction}) for {user_id}: {synced} events, {len(errors)} errors")
    return {
        "success": True,
        "synced_events": synced,
        "errors": errors,
        "message": f"{synced} events synchronised",
    }
