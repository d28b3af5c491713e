# motelhub/api/health.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlmodel import Session

from ..db.engine import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["System"])
def get_system_health(session: Session = Depends(get_session)):
    """
    Returns the service health, including database reachability.
    """
    try:
        session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error(f"Health check: database unreachable: {e}")
        database = "unavailable"

    return {"status": "ok" if database == "ok" else "degraded", "database": database}
