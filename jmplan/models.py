# jmplan/models.py
from __future__ import annotations

import datetime as dt
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

AppointmentStatus = Literal["pending", "confirmed", "completed", "cancelled"]
SyncDirection = Literal["both", "from_google", "to_google"]

DEFAULT_SERVICE_COLOR = "#3B82F6"
COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"

# ──────────────────────────────────────────────────────────────────────────────
# Clients
# ──────────────────────────────────────────────────────────────────────────────
class ApiClient(BaseModel):
    id: int
    name: str
    first_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    address: str = ""
    notes: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.name) if p)


class ClientIn(BaseModel):
    name: str = Field(..., min_length=1)
    first_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    notes: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    first_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None


# ──────────────────────────────────────────────────────────────────────────────
# Service catalogue + staff
# ──────────────────────────────────────────────────────────────────────────────
class ApiService(BaseModel):
    id: int
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    duration: int
    price: float
    color: str = DEFAULT_SERVICE_COLOR
    room_id: Optional[int] = None
    active: bool = True


class ServiceIn(BaseModel):
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    duration: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    color: str = Field(default=DEFAULT_SERVICE_COLOR, pattern=COLOR_PATTERN)
    room_id: Optional[int] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[int] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    room_id: Optional[int] = None
    active: Optional[bool] = None


class ApiEmployee(BaseModel):
    id: int
    name: str
    initials: Optional[str] = None
    color: Optional[str] = None
    active: bool = True


class ApiRoom(BaseModel):
    id: int
    description: Optional[str] = None
    active: bool = True


# ──────────────────────────────────────────────────────────────────────────────
# Appointments + calendar
# ──────────────────────────────────────────────────────────────────────────────
class ApiAppointment(BaseModel):
    id: int
    client_id: int
    service_id: int
    employee_id: Optional[int] = None
    room_id: Optional[int] = None
    start: datetime
    duration: int
    status: str = "pending"
    notes: Optional[str] = None
    price: Optional[float] = None
    send_reminder: bool = False
    send_confirmation: bool = False
    google_event_id: Optional[str] = None
    client: Optional[ApiClient] = None
    service: Optional[ApiService] = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)


class AppointmentCreate(BaseModel):
    client_id: int
    service_id: int
    employee_id: Optional[int] = None
    room_id: Optional[int] = None
    start: datetime
    duration: Optional[int] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    status: AppointmentStatus = "pending"
    notes: Optional[str] = None
    send_reminder: bool = False
    send_confirmation: bool = False


class AppointmentUpdate(BaseModel):
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    employee_id: Optional[int] = None
    room_id: Optional[int] = None
    start: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None
    send_reminder: Optional[bool] = None
    send_confirmation: Optional[bool] = None


class CalendarDay(BaseModel):
    date: dt.date
    appointments: List[ApiAppointment] = []


class CalendarOut(BaseModel):
    view: Literal["month", "week", "day"]
    start: date
    end: date
    hours: List[int]
    days: List[CalendarDay]


class DashboardStats(BaseModel):
    total_clients: int = 0
    total_appointments: int = 0
    total_revenue: float = 0
    pending_appointments: int = 0
    completed_tasks: int = 0
    total_expenses: float = 0
    week_hours: float = 0
    unbilled_amount: float = 0


# ──────────────────────────────────────────────────────────────────────────────
# Premium areas: expenses, hours, tasks
# ──────────────────────────────────────────────────────────────────────────────
class ApiExpense(BaseModel):
    id: int
    description: str
    amount: float
    date: dt.date
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    details: Optional[str] = None
    receipt_url: Optional[str] = None
    synced_to_quickbooks: bool = False


class ExpenseIn(BaseModel):
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    date: dt.date
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    details: Optional[str] = None
    receipt_url: Optional[str] = None


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = Field(default=None, ge=0)
    date: Optional[dt.date] = None
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    details: Optional[str] = None
    receipt_url: Optional[str] = None
    synced_to_quickbooks: Optional[bool] = None


class ApiHoursEntry(BaseModel):
    id: int
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    date: dt.date
    duration_minutes: int
    billed: bool = False
    notes: Optional[str] = None


class HoursEntryIn(BaseModel):
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    date: dt.date
    duration_minutes: int = Field(..., gt=0)
    billed: bool = False
    notes: Optional[str] = None


class HoursEntryUpdate(BaseModel):
    client_id: Optional[int] = None
    service_id: Optional[int] = None
    date: Optional[dt.date] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    billed: Optional[bool] = None
    notes: Optional[str] = None


class ApiTask(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    completed: bool = False
    due_date: Optional[date] = None
    location: Optional[str] = None
    client_id: Optional[int] = None
    custom_price: Optional[float] = None


class TaskIn(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    completed: bool = False
    due_date: Optional[date] = None
    location: Optional[str] = None
    client_id: Optional[int] = None
    custom_price: Optional[float] = Field(default=None, ge=0)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    completed: Optional[bool] = None
    due_date: Optional[date] = None
    location: Optional[str] = None
    client_id: Optional[int] = None
    custom_price: Optional[float] = Field(default=None, ge=0)


# ──────────────────────────────────────────────────────────────────────────────
# Integrations + import
# ──────────────────────────────────────────────────────────────────────────────
class SmsIn(BaseModel):
    to: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    media_url: Optional[str] = None


class SmsOut(BaseModel):
    success: bool
    sid: str


class ImportResult(BaseModel):
    success: bool
    imported: int
    total: int
    errors: List[str] = []
    warnings: List[str] = []


class GoogleSyncIn(BaseModel):
    calendar_id: Optional[str] = None
    direction: SyncDirection = "both"
    time_min: Optional[datetime] = None
    time_max: Optional[datetime] = None


class GoogleSyncOut(BaseModel):
    success: bool
    synced_events: int
    errors: List[str] = []
    message: str


class GoogleStatus(BaseModel):
    connected: bool
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Row <-> model mapping (tables keep their French column names)
# ──────────────────────────────────────────────────────────────────────────────
def format_address(*parts: Optional[str]) -> str:
    return ", ".join(p.strip() for p in parts if p and p.strip())


def row_to_client(row: Dict[str, Any]) -> ApiClient:
    return ApiClient(
        id=row["id"],
        name=row["nom"],
        first_name=row.get("prenom"),
        email=row.get("courriel"),
        phone=row.get("telephone"),
        street=row.get("adresse"),
        city=row.get("ville"),
        province=row.get("province"),
        postal_code=row.get("codepostal"),
        address=format_address(
            row.get("adresse"), row.get("ville"), row.get("province"), row.get("codepostal")
        ),
        notes=row.get("notes"),
        active=row.get("actif", True),
        created_at=row.get("created_at"),
    )


CLIENT_COLUMNS = {
    "name": "nom",
    "first_name": "prenom",
    "email": "courriel",
    "phone": "telephone",
    "street": "adresse",
    "city": "ville",
    "province": "province",
    "postal_code": "codepostal",
    "notes": "notes",
    "active": "actif",
}


def row_to_service(row: Dict[str, Any]) -> ApiService:
    return ApiService(
        id=row["id"],
        name=row["nom"],
        category=row.get("categorie"),
        description=row.get("description"),
        duration=row.get("duree") or 0,
        price=row.get("prix") or 0,
        color=row.get("couleur") or DEFAULT_SERVICE_COLOR,
        room_id=row.get("salle_id"),
        active=row.get("actif", True),
    )


SERVICE_COLUMNS = {
    "name": "nom",
    "category": "categorie",
    "description": "description",
    "duration": "duree",
    "price": "prix",
    "color": "couleur",
    "room_id": "salle_id",
    "active": "actif",
}


def row_to_employee(row: Dict[str, Any]) -> ApiEmployee:
    return ApiEmployee(
        id=row["id"],
        name=row["nom_employe"],
        initials=row.get("initiales"),
        color=row.get("couleur_secondaire"),
        active=row.get("actif", True),
    )


def row_to_room(row: Dict[str, Any]) -> ApiRoom:
    return ApiRoom(id=row["id"], description=row.get("description"), active=row.get("actif", True))


def row_to_appointment(row: Dict[str, Any]) -> ApiAppointment:
    # PostgREST embeds relations under their alias
    client = row_to_client(row["client"]) if isinstance(row.get("client"), dict) else None
    service = row_to_service(row["service"]) if isinstance(row.get("service"), dict) else None
    return ApiAppointment(
        id=row["id"],
        client_id=row["client_id"],
        service_id=row["service_id"],
        employee_id=row.get("employe_id"),
        room_id=row.get("salle_id"),
        start=row["date_heure"],
        duration=row.get("duree") or 0,
        status=row.get("statut") or "pending",
        notes=row.get("notes"),
        price=row.get("prix"),
        send_reminder=bool(row.get("send_reminder")),
        send_confirmation=bool(row.get("send_confirmation")),
        google_event_id=row.get("google_event_id"),
        client=client,
        service=service,
    )


APPOINTMENT_COLUMNS = {
    "client_id": "client_id",
    "service_id": "service_id",
    "employee_id": "employe_id",
    "room_id": "salle_id",
    "start": "date_heure",
    "duration": "duree",
    "status": "statut",
    "notes": "notes",
    "price": "prix",
    "send_reminder": "send_reminder",
    "send_confirmation": "send_confirmation",
}


def row_to_expense(row: Dict[str, Any]) -> ApiExpense:
    return ApiExpense(
        id=row["id"],
        description=row["description"],
        amount=row.get("montant") or 0,
        date=row["date"],
        client_id=row.get("client_id"),
        service_id=row.get("service_id"),
        details=row.get("details"),
        receipt_url=row.get("recu_url"),
        synced_to_quickbooks=bool(row.get("synchro_quickbooks")),
    )


EXPENSE_COLUMNS = {
    "description": "description",
    "amount": "montant",
    "date": "date",
    "client_id": "client_id",
    "service_id": "service_id",
    "details": "details",
    "receipt_url": "recu_url",
    "synced_to_quickbooks": "synchro_quickbooks",
}


def row_to_hours(row: Dict[str, Any]) -> ApiHoursEntry:
    return ApiHoursEntry(
        id=row["id"],
        client_id=row.get("client_id"),
        service_id=row.get("service_id"),
        date=row["date"],
        duration_minutes=row.get("duree_minutes") or 0,
        billed=bool(row.get("facture")),
        notes=row.get("notes"),
    )


HOURS_COLUMNS = {
    "client_id": "client_id",
    "service_id": "service_id",
    "date": "date",
    "duration_minutes": "duree_minutes",
    "billed": "facture",
    "notes": "notes",
}


def row_to_task(row: Dict[str, Any]) -> ApiTask:
    return ApiTask(
        id=row["id"],
        title=row["titre"],
        description=row.get("description"),
        completed=bool(row.get("complete")),
        due_date=row.get("date_echeance"),
        location=row.get("lieu"),
        client_id=row.get("client_id"),
        custom_price=row.get("prix_personnalise"),
    )


TASK_COLUMNS = {
    "title": "titre",
    "description": "description",
    "completed": "complete",
    "due_date": "date_echeance",
    "location": "lieu",
    "client_id": "client_id",
    "custom_price": "prix_personnalise",
}


def to_row(payload: BaseModel, columns: Dict[str, str], exclude_unset: bool = False) -> Dict[str, Any]:
    """Map an API payload onto table columns; dates become ISO strings for PostgREST."""
    data = payload.model_dump(mode="json", exclude_unset=exclude_unset)
    return {columns[k]: v for k, v in data.items() if k in columns}
