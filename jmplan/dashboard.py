# jmplan/dashboard.py
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from postgrest.exceptions import APIError
from supabase import Client

from .auth import current_user_id
from .deps import db_error, get_supabase
from .models import DashboardStats
from .scheduling import local_tz, view_range

router = APIRouter(prefix="/dashboard", tags=["dashboard"], dependencies=[Depends(current_user_id)])


def _rows(supabase: Client, table: str, columns: str) -> List[Dict[str, Any]]:
    try:
        return supabase.table(table).select(columns).execute().data or []
    except APIError as e:
        raise db_error(e, f"{table} select")


def compute_stats(supabase: Client, today: Optional[date] = None) -> DashboardStats:
    today = today or datetime.now(local_tz()).date()
    _, week_start, week_end = view_range("week", today)

    clients = _rows(supabase, "clients", "id,actif")
    appointments = _rows(supabase, "rendez_vous", "id,statut,prix")
    tasks = _rows(supabase, "taches", "id,complete")
    expenses = _rows(supabase, "depenses", "id,montant")
    hours = _rows(supabase, "heures", "id,service_id,date,duree_minutes,facture")
    prices = {s["id"]: float(s.get("prix") or 0) for s in _rows(supabase, "services", "id,prix")}

    week_minutes = 0
    unbilled = 0.0
    for entry in hours:
        minutes = entry.get("duree_minutes") or 0
        if week_start <= date.fromisoformat(str(entry["date"])[:10]) <= week_end:
            week_minutes += minutes
        if not entry.get("facture"):
            unbilled += minutes / 60 * prices.get(entry.get("service_id"), 0)

    return DashboardStats(
        total_clients=sum(1 for c in clients if c.get("actif", True)),
        total_appointments=len(appointments),
        total_revenue=sum(float(a.get("prix") or 0) for a in appointments if a.get("statut") == "completed"),
        pending_appointments=sum(1 for a in appointments if a.get("statut") == "pending"),
        completed_tasks=sum(1 for t in tasks if t.get("complete")),
        total_expenses=sum(float(e.get("montant") or 0) for e in expenses),
        week_hours=round(week_minutes / 60, 2),
        unbilled_amount=round(unbilled, 2),
    )


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(supabase: Client = Depends(get_supabase)):
    return compute_stats(supabase)
