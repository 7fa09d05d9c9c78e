"""
Governor Client SDK
Python client library for the outbound governor operations API.
"""

from .client import GovernorClient
from .models import BucketStatus, ErrorStats, QuotaWindow

__version__ = "0.1.0"
__all__ = [
    "GovernorClient",
    "BucketStatus",
    "ErrorStats",
    "QuotaWindow",
]
