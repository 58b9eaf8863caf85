# jmplan/auth.py
import time
from typing import Optional

import requests
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from . import config

security = HTTPBearer()
_cache = {"jwks": None, "fetched_at": 0}


def _project_url() -> str:
    if config.SUPABASE_PROJECT_REF:
        return f"https://{config.SUPABASE_PROJECT_REF}.supabase.co"
    if config.SUPABASE_URL:
        return config.SUPABASE_URL.rstrip("/")
    raise HTTPException(status_code=500, detail="SUPABASE_PROJECT_REF or SUPABASE_URL not set")


def _anon_headers() -> dict:
    if not config.SUPABASE_ANON_KEY:
        return {}
    return {"apikey": config.SUPABASE_ANON_KEY, "Authorization": f"Bearer {config.SUPABASE_ANON_KEY}"}


def _get_jwks():
    now = time.time()
    if not _cache["jwks"] or now - _cache["fetched_at"] > 600:
        resp = requests.get(
            f"{_project_url()}/auth/v1/.well-known/jwks.json", headers=_anon_headers(), timeout=10
        )
        resp.raise_for_status()
        _cache["jwks"] = resp.json()
        _cache["fetched_at"] = now
    return _cache["jwks"]


def _fetch_user_id_from_supabase(token: str) -> str:
    """Fallback: ask Supabase who this token belongs to."""
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": config.SUPABASE_ANON_KEY or "",
    }
    r = requests.get(f"{_project_url()}/auth/v1/user", headers=headers, timeout=10)
    if r.status_code != 200:
        raise HTTPException(status_code=401, detail="Could not verify token with Supabase")
    data = r.json() or {}
    uid = data.get("id") or (data.get("user") or {}).get("id")
    if not uid:
        raise HTTPException(status_code=401, detail="User id not found from Supabase")
    return uid


def _subject(claims: dict) -> str:
    sub = claims.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing subject (sub)")
    return sub


def verify_token(token: str) -> str:
    """
    Return the Supabase user id for an access token signed with:
      - HS256 (JWT secret)  -> verify with SUPABASE_JWT_SECRET
      - RS256 (JWKS)        -> verify with JWKS
    Falls back to /auth/v1/user otherwise.
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
        alg = (unverified_header.get("alg") or "").upper()
    except JWTError:
        return _fetch_user_id_from_supabase(token)

    issuer: Optional[str] = f"{_project_url()}/auth/v1"

    if alg == "HS256":
        if not config.SUPABASE_JWT_SECRET:
            return _fetch_user_id_from_supabase(token)
        try:
            claims = jwt.decode(
                token,
                config.SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                options={"verify_aud": False},
                issuer=issuer,
            )
        except JWTError as e:
            raise HTTPException(status_code=401, detail=f"Invalid token (HS256): {e}")
        return _subject(claims)

    if alg == "RS256":
        jwks = _get_jwks()
        kid = unverified_header.get("kid")
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise HTTPException(status_code=401, detail="Signing key not found")
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                options={"verify_aud": False},
                issuer=issuer,
            )
        except JWTError as e:
            raise HTTPException(status_code=401, detail=f"Invalid token (RS256): {e}")
        return _subject(claims)

    return _fetch_user_id_from_supabase(token)


def current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    return verify_token(credentials.credentials)
