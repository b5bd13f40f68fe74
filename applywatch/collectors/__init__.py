"""Data collection interfaces for applywatch."""

from .client_pool import ClientPool, MissingClientError
from .join_client import (
    JoinClient,
    JoinError,
    JoinParseError,
    TokenExpiredError,
)
from .progress import ApplicationProgress, Step, UnknownStepError

__all__ = [
    "ApplicationProgress",
    "ClientPool",
    "JoinClient",
    "JoinError",
    "JoinParseError",
    "MissingClientError",
    "Step",
    "TokenExpiredError",
    "UnknownStepError",
]
