"""
Allocation Record Source Client
===============================
Downloads the four record collections an allocation needs from the
allocation site's JSON API (HTTP basic auth).

Environment Variables:
- ALLOCATION_API_URL: Base URL without endpoint (e.g., https://match.example.org/api)
- ALLOCATION_API_USER / ALLOCATION_API_PASSWORD: API credentials

Usage:
    from ta_allocation.integrations.source_client import AllocationSourceClient

    client = AllocationSourceClient()
    records = client.fetch_records()

No retries here: a failed download surfaces as AllocationSourceError.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ta_allocation import config
from ta_allocation.matching.compile import parse_records
from ta_allocation.matching.errors import AllocationError
from ta_allocation.matching.models import AllocationRecords

logger = logging.getLogger(__name__)

# Collection name -> endpoint
ENDPOINTS = {
    "students": "student_allocations",
    "courses": "course_allocations",
    "student_preferences": "student_preferences",
    "course_preferences": "course_preferences",
}


class AllocationSourceError(AllocationError):
    """Record retrieval failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AllocationSourceClient:
    """Client for the allocation record API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or config.ALLOCATION_API_URL).rstrip("/")
        self.username = username if username is not None else config.ALLOCATION_API_USER
        self.password = password if password is not None else config.ALLOCATION_API_PASSWORD
        self.timeout = timeout or config.ALLOCATION_API_TIMEOUT
        self.transport = transport

        if not self.base_url:
            raise AllocationSourceError("ALLOCATION_API_URL not configured")

    def _auth(self) -> Optional[httpx.BasicAuth]:
        if not self.username:
            return None
        return httpx.BasicAuth(self.username, self.password)

    def _get(self, endpoint: str) -> List[Dict[str, Any]]:
        """GET one collection and return its JSON list."""
        url = f"{self.base_url}/{endpoint}"
        try:
            with httpx.Client(timeout=self.timeout, auth=self._auth(), transport=self.transport) as client:
                response = client.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Allocation API error: {e.response.status_code} - {endpoint}")
            raise AllocationSourceError(
                f"GET {endpoint} returned {e.response.status_code}",
                status_code=e.response.status_code,
                endpoint=endpoint,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Allocation API request failed: {endpoint}: {e}")
            raise AllocationSourceError(f"GET {endpoint} failed: {e}", endpoint=endpoint) from e
        except ValueError as e:
            raise AllocationSourceError(f"GET {endpoint} returned invalid JSON", endpoint=endpoint) from e

        if not isinstance(data, list):
            raise AllocationSourceError(f"GET {endpoint} did not return a list", endpoint=endpoint)
        return data

    def fetch_raw(self) -> Dict[str, List[Dict[str, Any]]]:
        """Download all four collections without validating them."""
        raw = {name: self._get(endpoint) for name, endpoint in ENDPOINTS.items()}
        logger.info(
            f"Downloaded {len(raw['students'])} students, {len(raw['courses'])} courses, "
            f"{len(raw['student_preferences'])} student and "
            f"{len(raw['course_preferences'])} course preferences"
        )
        return raw

    def fetch_records(self) -> AllocationRecords:
        """Download and validate all four collections."""
        return parse_records(self.fetch_raw())
