"""
TA Allocation configuration.

Everything comes from the environment; defaults suit local development.
"""

import os

# Record source (HTTP, basic auth)
ALLOCATION_API_URL = os.getenv("ALLOCATION_API_URL", "")
ALLOCATION_API_USER = os.getenv("ALLOCATION_API_USER", "")
ALLOCATION_API_PASSWORD = os.getenv("ALLOCATION_API_PASSWORD", "")
ALLOCATION_API_TIMEOUT = float(os.getenv("ALLOCATION_API_TIMEOUT", "30"))

# Outcome storage
DATABASE_URL = os.getenv("DATABASE_URL")
ALLOCATION_OUTCOME_TABLE = os.getenv("ALLOCATION_OUTCOME_TABLE", "deferred_acceptance_outcome")

# Reporting
ALLOCATION_COURSE_PREFIX = os.getenv("ALLOCATION_COURSE_PREFIX", "ECON")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
