# Base exception class
from .base import SingleTableError

from .domain_exceptions import (
    ConfigurationError,
    ConflictError,
    CryptoError,
    ErrorKind,
    StoreError,
    TamperError,
    ValidationError,
)

__all__ = [
    # Base exception
    "SingleTableError",

    # Domain exceptions (alphabetically ordered)
    "ConfigurationError",
    "ConflictError",
    "CryptoError",
    "ErrorKind",
    "StoreError",
    "TamperError",
    "ValidationError",
]
