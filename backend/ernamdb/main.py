# backend/ernamdb/main.py
import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.training.router import router as training_router

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

# Vite dev server and preview ports of the ERNAM portal frontend.
_DEV_ORIGINS = [
    "http://127.0.0.1:5173",
    "http://localhost:5173",
    "http://localhost:4173",
]


def _allowed_origins() -> List[str]:
    """CORS_ALLOWED_ORIGINS is a comma-separated list; dev ports when unset."""
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or list(_DEV_ORIGINS)


app = FastAPI(
    title="ERNAM Training API",
    version="1.0.0",
    description="Training sessions, rosters, assessments, certificates and compliance.",
)

cors_origins = _allowed_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Browsers reject credentials with a wildcard origin.
    allow_credentials="*" not in cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "service": "ernam-training"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(training_router)
