# jmplan/services.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from postgrest.exceptions import APIError
from supabase import Client

from .auth import current_user_id
from .deps import db_error, get_supabase
from .models import (
    SERVICE_COLUMNS,
    ApiEmployee,
    ApiRoom,
    ApiService,
    ServiceIn,
    ServiceUpdate,
    row_to_employee,
    row_to_room,
    row_to_service,
    to_row,
)

router = APIRouter(prefix="/services", tags=["services"], dependencies=[Depends(current_user_id)])
staff_router = APIRouter(prefix="/staff", tags=["staff"], dependencies=[Depends(current_user_id)])


def fetch_services(supabase: Client) -> List[ApiService]:
    try:
        resp = supabase.table("services").select("*").eq("actif", True).order("nom").execute()
    except APIError as e:
        raise db_error(e, "services select")
    return [row_to_service(r) for r in resp.data or []]


def get_service_row(supabase: Client, service_id: int) -> dict:
    try:
        resp = supabase.table("services").select("*").eq("id", service_id).limit(1).execute()
    except APIError as e:
        raise db_error(e, "services select")
    if not resp.data:
        raise HTTPException(status_code=404, detail="Service not found")
    return resp.data[0]


@router.get("", response_model=List[ApiService])
def list_services(supabase: Client = Depends(get_supabase)):
    return fetch_services(supabase)


@router.get("/{service_id}", response_model=ApiService)
def get_service(service_id: int, supabase: Client = Depends(get_supabase)):
    return row_to_service(get_service_row(supabase, service_id))


@router.post("", response_model=ApiService, status_code=201)
def create_service(payload: ServiceIn, supabase: Client = Depends(get_supabase)):
    try:
        resp = supabase.table("services").insert(to_row(payload, SERVICE_COLUMNS)).execute()
    except APIError as e:
        raise db_error(e, "services insert")
    return row_to_service(resp.data[0])


@router.patch("/{service_id}", response_model=ApiService)
def update_service(service_id: int, payload: ServiceUpdate, supabase: Client = Depends(get_supabase)):
    row = get_service_row(supabase, service_id)
    changes = to_row(payload, SERVICE_COLUMNS, exclude_unset=True)
    if not changes:
        return row_to_service(row)
    try:
        resp = supabase.table("services").update(changes).eq("id", service_id).execute()
    except APIError as e:
        raise db_error(e, "services update")
    return row_to_service(resp.data[0])


@router.delete("/{service_id}", status_code=204)
def delete_service(service_id: int, supabase: Client = Depends(get_supabase)):
    get_service_row(supabase, service_id)
    try:
        supabase.table("services").update({"actif": False}).eq("id", service_id).execute()
    except APIError as e:
        raise db_error(e, "services delete")
    return Response(status_code=204)


@staff_router.get("/employees", response_model=List[ApiEmployee])
def list_employees(supabase: Client = Depends(get_supabase)):
    try:
        resp = supabase.table("employes").select("*").eq("actif", True).order("nom_employe").execute()
    except APIError as e:
        raise db_error(e, "employes select")
    return [row_to_employee(r) for r in resp.data or []]


@staff_router.get("/rooms", response_model=List[ApiRoom])
def list_rooms(supabase: Client = Depends(get_supabase)):
    try:
        resp = supabase.table("salles").select("*").eq("actif", True).order("description").execute()
    except APIError as e:
        raise db_error(e, "salles select")
    return [row_to_room(r) for r in resp.data or []]
