# jmplan/premium.py
# Premium areas (expenses, hours, tasks): plain CRUD over their tables.
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client

from .auth import current_user_id
from .deps import db_error, get_supabase
from .models import (
    EXPENSE_COLUMNS,
    HOURS_COLUMNS,
    TASK_COLUMNS,
    ApiExpense,
    ApiHoursEntry,
    ApiTask,
    ExpenseIn,
    ExpenseUpdate,
    HoursEntryIn,
    HoursEntryUpdate,
    TaskIn,
    TaskUpdate,
    row_to_expense,
    row_to_hours,
    row_to_task,
    to_row,
)

_auth = [Depends(current_user_id)]
expenses_router = APIRouter(prefix="/expenses", tags=["premium"], dependencies=_auth)
hours_router = APIRouter(prefix="/hours", tags=["premium"], dependencies=_auth)
tasks_router = APIRouter(prefix="/tasks", tags=["premium"], dependencies=_auth)


def select_rows(supabase: Client, table: str, order: str, desc: bool = False, **filters) -> List[Dict[str, Any]]:
    q = supabase.table(table).select("*")
    for column, value in filters.items():
        if value is not None:
            q = q.eq(column, value)
    try:
        return q.order(order, desc=desc).execute().data or []
    except APIError as e:
        raise db_error(e, f"{table} select")


def _insert(supabase: Client, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return supabase.table(table).insert(row).execute().data[0]
    except APIError as e:
        raise db_error(e, f"{table} insert")


def _update(supabase: Client, table: str, row_id: int, payload: BaseModel,
            columns: Dict[str, str], mapper: Callable):
    changes = to_row(payload, columns, exclude_unset=True)
    try:
        if changes:
            resp = supabase.table(table).update(changes).eq("id", row_id).execute()
        else:
            resp = supabase.table(table).select("*").eq("id", row_id).limit(1).execute()
    except APIError as e:
        raise db_error(e, f"{table} update")
    if not resp.data:
        raise HTTPException(status_code=404, detail=f"{table} row {row_id} not found")
    return mapper(resp.data[0])


def _delete(supabase: Client, table: str, row_id: int) -> Response:
    try:
        resp = supabase.table(table).delete().eq("id", row_id).execute()
    except APIError as e:
        raise db_error(e, f"{table} delete")
    if not resp.data:
        raise HTTPException(status_code=404, detail=f"{table} row {row_id} not found")
    return Response(status_code=204)


# ── Expenses ─────────────────────────────────────────────────────────────────
@expenses_router.get("", response_model=List[ApiExpense])
def list_expenses(client_id: Optional[int] = Query(default=None), supabase: Client = Depends(get_supabase)):
    return [row_to_expense(r) for r in select_rows(supabase, "depenses", "date", desc=True, client_id=client_id)]


@expenses_router.post("", response_model=ApiExpense, status_code=201)
def create_expense(payload: ExpenseIn, supabase: Client = Depends(get_supabase)):
    return row_to_expense(_insert(supabase, "depenses", to_row(payload, EXPENSE_COLUMNS)))


@expenses_router.patch("/{expense_id}", response_model=ApiExpense)
def update_expense(expense_id: int, payload: ExpenseUpdate, supabase: Client = Depends(get_supabase)):
    return _update(supabase, "depenses", expense_id, payload, EXPENSE_COLUMNS, row_to_expense)


@expenses_router.delete("/{expense_id}", status_code=204)
def delete_expense(expense_id: int, supabase: Client = Depends(get_supabase)):
    return _delete(supabase, "depenses", expense_id)


# ── Hours ────────────────────────────────────────────────────────────────────
@hours_router.get("", response_model=List[ApiHoursEntry])
def list_hours(
    client_id: Optional[int] = Query(default=None),
    billed: Optional[bool] = Query(default=None),
    supabase: Client = Depends(get_supabase),
):
    rows = select_rows(supabase, "heures", "date", desc=True, client_id=client_id, facture=billed)
    return [row_to_hours(r) for r in rows]


@hours_router.post("", response_model=ApiHoursEntry, status_code=201)
def create_hours(payload: HoursEntryIn, supabase: Client = Depends(get_supabase)):
    return row_to_hours(_insert(supabase, "heures", to_row(payload, HOURS_COLUMNS)))


@hours_router.patch("/{entry_id}", response_model=ApiHoursEntry)
def update_hours(entry_id: int, payload: HoursEntryUpdate, supabase: Client = Depends(get_supabase)):
    return _update(supabase, "heures", entry_id, payload, HOURS_COLUMNS, row_to_hours)


@hours_router.delete("/{entry_id}", status_code=204)
def delete_hours(entry_id: int, supabase: Client = Depends(get_supabase)):
    return _delete(supabase, "heures", entry_id)


# ── Tasks ────────────────────────────────────────────────────────────────────
@tasks_router.get("", response_model=List[ApiTask])
def list_tasks(completed: Optional[bool] = Query(default=None), supabase: Client = Depends(get_supabase)):
    return [row_to_task(r) for r in select_rows(supabase, "taches", "date_echeance", complete=completed)]


@tasks_router.post("", response_model=ApiTask, status_code=201)
def create_task(payload: TaskIn, supabase: Client = Depends(get_supabase)):
    return row_to_task(_insert(supabase, "taches", to_row(payload, TASK_COLUMNS)))


@tasks_router.patch("/{task_id}", response_model=ApiTask)
def update_task(task_id: int, payload: TaskUpdate, supabase: Client = Depends(get_supabase)):
    return _update(supabase, "taches", task_id, payload, TASK_COLUMNS, row_to_task)


@tasks_router.delete("/{task_id}", status_code=204)
def delete_task(task_id: int, supabase: Client = Depends(get_supabase)):
    return _delete(supabase, "taches", task_id)
