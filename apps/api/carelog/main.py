from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .routes import timeline as timeline_routes

logging.basicConfig(
    level=CONFIG.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Carelog Timeline API",
    version="0.1.0",
    description="Unified per-child timeline of incidents, notes and daily habits",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(timeline_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "store_backend": CONFIG.store_backend}
