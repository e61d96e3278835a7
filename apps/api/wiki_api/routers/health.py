from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wiki_api.core.crypto import EncryptionKeyError, get_state_codec
from wiki_api.db.session import get_session

router = APIRouter(tags=["health"])
logger = logging.getLogger("wiki.api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def readyz(session: Session = Depends(get_session)) -> dict[str, object]:
    """Ready once the database answers and Discord state can be sealed."""
    checks: dict[str, str] = {}

    try:
        session.execute(text("select 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        logger.warning("Readiness: database check failed: %s", type(e).__name__)
        checks["database"] = "failed"

    try:
        get_state_codec()
        checks["state_key"] = "ok"
    except EncryptionKeyError as e:
        logger.warning("Readiness: %s", e)
        checks["state_key"] = "failed"

    failed = sorted(name for name, result in checks.items() if result != "ok")
    if failed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"not ready: {', '.join(failed)}",
        )
    return {"status": "ready", "checks": checks}
