"""
TA Allocation

Stable assignment of teaching assistants to course positions.
"""

__version__ = "1.0.0"
