"""Health endpoints.

- /health: process is up
- /health/ready: database reachable and the review schema migrated
"""

import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reviewflow import __version__
from reviewflow.api.deps import get_db
from reviewflow.db.base import Base

router = APIRouter(tags=["health"])


def check_database(db: Session) -> Dict[str, Any]:
    """Round-trip a trivial query and report its latency."""
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1")).scalar()
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}


def check_schema(db: Session) -> Dict[str, Any]:
    """Every review table must exist; a missing one means migrations have not run."""
    try:
        present = set(inspect(db.get_bind()).get_table_names())
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        return {"status": "unhealthy", "missing_tables": missing}
    return {"status": "healthy"}


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """Returns 503 until the engine can serve review traffic."""
    checks = {"database": check_database(db)}
    if checks["database"]["status"] == "healthy":
        checks["schema"] = check_schema(db)
    ready = all(c["status"] == "healthy" for c in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
