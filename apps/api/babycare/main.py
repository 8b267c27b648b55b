from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .db import initialize_db
from .routes import schedule as schedule_routes

initialize_db()

app = FastAPI(
    title="BabyCare Routine API",
    version="0.1.0",
    description="Derives a baby's daily EASY routine and keeps per-day adjustments",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.cors_origins,
    allow_methods=["GET", "PUT", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(schedule_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "override_store": CONFIG.override_store}


@app.get("/")
async def root() -> dict:
    return {"message": "BabyCare Routine API ready"}
