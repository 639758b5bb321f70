"""Record source integrations."""

from .source_client import AllocationSourceClient, AllocationSourceError

__all__ = ["AllocationSourceClient", "AllocationSourceError"]
