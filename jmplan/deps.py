# jmplan/deps.py
import logging
from functools import lru_cache
from typing import AsyncIterator

import httpx
from fastapi import HTTPException
from postgrest.exceptions import APIError
from supabase import create_client, Client

from . import config

log = logging.getLogger("uvicorn.error")


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    url = config.SUPABASE_URL
    key = config.SUPABASE_SERVICE_ROLE
    if not url or not key:
        raise RuntimeError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE")
    return create_client(url, key)


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=10) as client:
        yield client


def db_error(e: APIError, what: str) -> HTTPException:
    """Turn a PostgREST error into an HTTP error, logging it on the way."""
    log.error(f"{what} failed: {e.message} (code={e.code})")
    if e.code == "23505":
        return HTTPException(status_code=409, detail=f"{what}: duplicate entry")
    return HTTPException(status_code=500, detail=f"{what}: {e.message}")
