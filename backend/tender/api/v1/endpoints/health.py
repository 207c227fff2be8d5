"""
Health check: verifies the database answers.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tender.core.logger import logger
from tender.db import schemas
from tender.db.database import get_db

router = APIRouter()


def _check_database(db: Session) -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    try:
        db.execute(text("SELECT 1"))
        return "ok", "reachable"
    except SQLAlchemyError as e:
        logger.error("Health check: database unreachable: %s", e)
        return "error", str(e)


@router.get("/health", response_model=schemas.HealthResponse, responses={503: {"description": "Database unreachable"}})
def health(db: Session = Depends(get_db)):
    db_status, detail = _check_database(db)
    body = {"status": "healthy" if db_status == "ok" else "degraded", "database": db_status}
    if db_status != "ok":
        body["detail"] = detail
        return JSONResponse(status_code=503, content=body)
    return body
