"""
TA Allocation Service Health Check
==================================
Reports service status, database reachability and outcome table presence.
"""

from datetime import datetime
from typing import Any, Dict
import logging

from fastapi import APIRouter
from pydantic import BaseModel

from ta_allocation import config
from ta_allocation.matching import __version__ as matching_version
from ta_allocation.storage.outcome_store import get_db_connection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/health", tags=["Health"])


class HealthCheckResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    matching_version: str
    source_configured: bool
    database_connected: bool
    outcome_table_exists: bool
    details: Dict[str, Any] = {}


@router.get("", response_model=HealthCheckResponse)
def check_health():
    """
    Service health.

    Status is "degraded" when the database is unreachable; matching itself
    needs no database.
    """
    result = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "matching_version": matching_version,
        "source_configured": bool(config.ALLOCATION_API_URL),
        "database_connected": False,
        "outcome_table_exists": False,
        "details": {},
    }

    conn = None
    try:
        conn = get_db_connection()
        result["database_connected"] = True
        with conn.cursor() as cur:
            cur.execute(
                "SELECT EXISTS (SELECT FROM information_schema.tables WHERE table_name = %s) AS exists",
                (config.ALLOCATION_OUTCOME_TABLE,),
            )
            row = cur.fetchone()
            result["outcome_table_exists"] = bool(row["exists"])
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        result["status"] = "degraded"
        result["details"]["database_error"] = str(e)
    finally:
        if conn is not None:
            conn.close()

    return HealthCheckResponse(**result)
