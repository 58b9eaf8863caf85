# jmplan/main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .appointments import calendar_router, router as appointments_router
from .clients import router as clients_router
from .dashboard import router as dashboard_router
from .db import dispose_engine
from .google_calendar import router as google_router
from .health import router as health_router
from .imports import data_router, export_router, router as import_router
from .premium import expenses_router, hours_router, tasks_router
from .services import router as services_router, staff_router
from .sms import router as sms_router

log = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(f"JM Plan API starting (timezone {config.TIMEZONE})")
    yield
    await dispose_engine()


app = FastAPI(
    lifespan=lifespan,
    title="JM Plan API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["default"])
def read_root():
    return {"ok": True, "service": "jmplan-api"}


# routers
app.include_router(health_router)
app.include_router(clients_router)
app.include_router(services_router)
app.include_router(staff_router)
app.include_router(appointments_router)
app.include_router(calendar_router)
app.include_router(dashboard_router)
app.include_router(expenses_router)
app.include_router(hours_router)
app.include_router(tasks_router)
app.include_router(import_router)
app.include_router(export_router)
app.include_router(data_router)
app.include_router(sms_router)
app.include_router(google_router)


# ──────────────────────────────────────────────────────────────────────────────
# Local dev entrypoint
# ──────────────────────────────────────────────────────────────────────────────
def run():
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "jmplan.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )


if __name__ == "__main__":
    run()
