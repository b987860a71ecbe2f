from __future__ import annotations

"""
groceries/main.py

FastAPI app for the groceries persistence core.

Run with the app factory, e.g.:
    uvicorn --factory groceries.main:create_app
"""

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from . import db as gdb
from .errors import IntegrityViolation
from .router import accounts_router, health_router, items_router, lists_router


# ----------------------------
# Environment & configuration
# ----------------------------

DB_PATH = os.getenv("GROCERIES_DB_PATH", "/app/data/groceries.db")
API_KEY = os.getenv("GROCERIES_API_KEY")
LOG_LEVEL = os.getenv("GROCERIES_LOG_LEVEL", "INFO").upper()

logger = logging.getLogger(__name__)


# ----------------------------
# Database helpers
# ----------------------------


def init_db(db_path: str) -> None:
    """
    Initialize the SQLite database with required tables.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = gdb.connect(db_path)
    conn.close()


# ----------------------------
# API key dependency
# ----------------------------


def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    """
    Simple header-based API key check. If GROCERIES_API_KEY is not set,
    this becomes a no-op (open access).
    """
    if not API_KEY:
        return

    if x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ----------------------------
# Exception handlers
# ----------------------------


async def integrity_violation_handler(request: Request, exc: IntegrityViolation) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": {
                "error": "INTEGRITY_VIOLATION",
                "kind": exc.kind,
                "owner_id": exc.owner_id,
                "message": str(exc),
            }
        },
    )


# ----------------------------
# FastAPI app setup
# ----------------------------


def create_app(db_path: Optional[str] = None) -> FastAPI:
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))

    resolved = str(db_path or DB_PATH)
    init_db(resolved)
    logger.info("Groceries database ready at %s", resolved)

    app = FastAPI(
        title="Groceries",
        version="1.0.0",
    )
    app.state.db_path = resolved

    app.add_exception_handler(IntegrityViolation, integrity_violation_handler)

    app.include_router(health_router)
    for r in (accounts_router, lists_router, items_router):
        app.include_router(r, dependencies=[Depends(require_api_key)])

    return app
