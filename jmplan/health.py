# jmplan/health.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from .db import get_session
from .deps import get_supabase

log = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["health"])

# table -> columns the API relies on
TABLE_CHECKS = {
    "clients": "id,nom,prenom,courriel,telephone,adresse,actif",
    "services": "id,nom,duree,prix,couleur,actif",
    "rendez_vous": "id,client_id,service_id,date_heure,duree,statut,google_event_id",
    "depenses": "id,description,montant,date",
    "heures": "id,date,duree_minutes,facture",
    "taches": "id,titre,complete",
    "google_tokens": "user_id,access_token,expires_at",
}


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/health/db")
async def health_db(db: AsyncSession = Depends(get_session)):
    try:
        result = await db.execute(text("select 1"))
    except SQLAlchemyError as e:
        log.error(f"DB check failed: {e}")
        raise HTTPException(status_code=503, detail=f"DB check failed: {e}")
    return {"ok": True, "db": result.scalar_one()}


@router.get("/diag")
def diag():
    """Explain 500s quickly: which settings are present and which tables answer."""
    out = {
        "supabase_url_set": bool(config.SUPABASE_URL),
        "service_role_set": bool(config.SUPABASE_SERVICE_ROLE),
        "google_configured": bool(config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET),
        "twilio_configured": bool(config.TWILIO_SID and config.TWILIO_AUTH and config.TWILIO_PHONE),
        "errors": [],
    }
    try:
        client = get_supabase()
    except RuntimeError as e:
        out["errors"].append(f"supabase init: {e}")
        return out

    for table, cols in TABLE_CHECKS.items():
        try:
            client.table(table).select(cols).limit(1).execute()
        except Exception as e:
            out["errors"].append(f"{table} select exception: {e}")
    return out
