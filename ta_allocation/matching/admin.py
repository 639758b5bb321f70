"""
Allocation Admin Endpoints

GET  /api/v1/allocation/health   - Health check
POST /api/v1/allocation/resolve  - Run both rounds on records in the request body
POST /api/v1/allocation/run      - Download records, run both rounds, optionally save

Security: /run requires the X-Admin-API-Key header when ADMIN_API_KEY is set.

Version: allocation_matching_v1
"""

import os
from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ta_allocation.integrations.source_client import AllocationSourceClient, AllocationSourceError
from ta_allocation.storage.outcome_store import OutcomeStoreError, save_matching

from .errors import AllocationError, RecordValidationError, UnstableMatchingError
from .models import AllocationRecords, AllocationResult
from .rounds import run_allocation


router = APIRouter(
    prefix="/api/v1/allocation",
    tags=["allocation"],
)


def verify_admin_key(x_admin_api_key: str = Header(None, alias="X-Admin-API-Key")) -> str:
    """
    Verify admin API key from header.

    Raises 401 if missing or invalid.
    """
    expected_key = os.environ.get("ADMIN_API_KEY")

    if not expected_key:
        return "dev_mode"

    if not x_admin_api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-API-Key header"
        )

    if x_admin_api_key != expected_key:
        raise HTTPException(
            status_code=401,
            detail="Invalid admin API key"
        )

    return x_admin_api_key


# Request/Response models

class ResolveAllocationRequest(AllocationRecords):
    """Records plus run options."""
    verbose: bool = Field(
        default=False,
        description="Attach per-agent reports to each round"
    )
    require_stable: bool = Field(
        default=False,
        description="Fail with 409 instead of returning an unstable matching"
    )

    def records(self) -> AllocationRecords:
        return AllocationRecords(
            students=self.students,
            courses=self.courses,
            student_preferences=self.student_preferences,
            course_preferences=self.course_preferences,
        )


class RunAllocationRequest(BaseModel):
    verbose: bool = False
    require_stable: bool = False
    save: bool = Field(
        default=False,
        description="Replace the outcome table with the merged matching"
    )


class AllocationResponse(BaseModel):
    success: bool = True
    result: AllocationResult
    outcome: List[Tuple[str, str]] = Field(
        description="Merged matching as (student_id or 'none', course_id or 'none')"
    )
    rows_saved: Optional[int] = None
    generated_at: datetime = Field(default_factory=datetime.utcnow)


class AllocationHealthResponse(BaseModel):
    status: str = "ok"
    module: str = "allocation_matching"
    version: str = "allocation_matching_v1"
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


def _raise_for(e: AllocationError):
    if isinstance(e, RecordValidationError):
        raise HTTPException(status_code=400, detail={"message": str(e), "errors": e.errors})
    if isinstance(e, UnstableMatchingError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (AllocationSourceError, OutcomeStoreError)):
        raise HTTPException(status_code=502, detail=str(e))
    raise HTTPException(status_code=500, detail=f"Allocation error: {str(e)}")


# Endpoints

@router.get("/health", response_model=AllocationHealthResponse)
def allocation_health():
    """Health check for the allocation module. No authentication."""
    return AllocationHealthResponse()


@router.post("/resolve", response_model=AllocationResponse)
def resolve_allocation(request: ResolveAllocationRequest):
    """
    Run the two-round allocation on the records in the body.

    Nothing is downloaded or saved.
    """
    try:
        result = run_allocation(
            request.records(),
            verbose=request.verbose,
            require_stable=request.require_stable,
        )
        return AllocationResponse(result=result, outcome=result.as_tuples())
    except HTTPException:
        raise
    except AllocationError as e:
        _raise_for(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Allocation error: {str(e)}")


@router.post("/run", response_model=AllocationResponse)
def run_allocation_endpoint(
    request: RunAllocationRequest,
    admin_key: str = Depends(verify_admin_key),
):
    """
    Download records from the configured source and run the allocation.

    With save=true the outcome table is replaced.
    """
    try:
        records = AllocationSourceClient().fetch_records()
        result = run_allocation(
            records,
            verbose=request.verbose,
            require_stable=request.require_stable,
        )
        rows_saved = save_matching(result.pairs) if request.save else None
        return AllocationResponse(
            result=result,
            outcome=result.as_tuples(),
            rows_saved=rows_saved,
        )
    except HTTPException:
        raise
    except AllocationError as e:
        _raise_for(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Allocation error: {str(e)}")
