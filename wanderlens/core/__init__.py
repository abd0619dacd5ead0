"""
Core building blocks for the location service.
Provides error types, cancellation, caching, logging and metrics.
"""

from .cache_client import CacheClient, CacheClientError
from .cancellation import CancellableOperation, OperationRegistry, OperationToken
from .exceptions import ErrorCode, WanderlensException

__all__ = [
    "CacheClient",
    "CacheClientError",
    "CancellableOperation",
    "OperationRegistry",
    "OperationToken",
    "ErrorCode",
    "WanderlensException",
]
