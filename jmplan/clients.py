# jmplan/clients.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from postgrest.exceptions import APIError
from supabase import Client

from .auth import current_user_id
from .deps import db_error, get_supabase
from .models import (
    CLIENT_COLUMNS,
    ApiClient,
    ClientIn,
    ClientUpdate,
    row_to_client,
    to_row,
)

router = APIRouter(prefix="/clients", tags=["clients"], dependencies=[Depends(current_user_id)])


def fetch_clients(supabase: Client, search: Optional[str] = None) -> List[ApiClient]:
    q = supabase.table("clients").select("*").eq("actif", True)
    if search:
        term = search.replace(",", " ").strip()
        q = q.or_(f"nom.ilike.%{term}%,prenom.ilike.%{term}%,courriel.ilike.%{term}%")
    try:
        resp = q.order("nom").execute()
    except APIError as e:
        raise db_error(e, "clients select")
    return [row_to_client(r) for r in resp.data or []]


def get_client_row(supabase: Client, client_id: int) -> dict:
    try:
        resp = supabase.table("clients").select("*").eq("id", client_id).limit(1).execute()
    except APIError as e:
        raise db_error(e, "clients select")
    if not resp.data:
        raise HTTPException(status_code=404, detail="Client not found")
    return resp.data[0]


def insert_client(supabase: Client, payload: ClientIn) -> ApiClient:
    try:
        resp = supabase.table("clients").insert(to_row(payload, CLIENT_COLUMNS)).execute()
    except APIError as e:
        raise db_error(e, "clients insert")
    return row_to_client(resp.data[0])


@router.get("", response_model=List[ApiClient])
def list_clients(search: Optional[str] = Query(default=None), supabase: Client = Depends(get_supabase)):
    return fetch_clients(supabase, search)


@router.get("/{client_id}", response_model=ApiClient)
def get_client(client_id: int, supabase: Client = Depends(get_supabase)):
    return row_to_client(get_client_row(supabase, client_id))


@router.post("", response_model=ApiClient, status_code=201)
def create_client(payload: ClientIn, supabase: Client = Depends(get_supabase)):
    return insert_client(supabase, payload)


@router.patch("/{client_id}", response_model=ApiClient)
def update_client(client_id: int, payload: ClientUpdate, supabase: Client = Depends(get_supabase)):
    row = get_client_row(supabase, client_id)
    changes = to_row(payload, CLIENT_COLUMNS, exclude_unset=True)
    if not changes:
        return row_to_client(row)
    try:
        resp = supabase.table("clients").update(changes).eq("id", client_id).execute()
    except APIError as e:
        raise db_error(e, "clients update")
    return row_to_client(resp.data[0])


@router.delete("/{client_id}", status_code=204)
def delete_client(client_id: int, supabase: Client = Depends(get_supabase)):
    # soft delete: appointments keep pointing at the row
    get_client_row(supabase, client_id)
    try:
        supabase.table("clients").update({"actif": False}).eq("id", client_id).execute()
    except APIError as e:
        raise db_error(e, "clients delete")
    return Response(status_code=204)
