"""
Domain-Specific Exceptions for the single-table engine

Organized by category:
1. Configuration and Validation Errors
2. Conflict Errors
3. Store Faults
4. Crypto Errors
"""

from enum import Enum
from typing import Any, Dict, Optional

from .base import SingleTableError


# =============================================================================
# Configuration and Validation Errors
# =============================================================================

class ConfigurationError(SingleTableError):
    """Raised when a precondition on configuration is violated.

    Used for:
    - Local secondary indexes declaring a projection
    - Missing confirmation phrase for table removal
    - Unknown crypto profiles, ciphers, models or operations

    Always raised before any network call.
    """

    def __init__(self, message: str, setting: Optional[str] = None, original_error: Optional[Exception] = None):
        self.setting = setting
        context = {}
        if setting:
            context['setting'] = setting
        super().__init__(message, original_error, context)


class ValidationError(SingleTableError):
    """Raised when item, schema or payload data is invalid."""

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None, original_error: Optional[Exception] = None):
        """Initialize validation error.

        Args:
            message: Human-readable error message
            errors: Dictionary of field-level validation errors
            original_error: The original exception that caused this error
        """
        self.errors = errors or {}
        context = {}
        if self.errors:
            context['validation_errors'] = self.errors
        super().__init__(message, original_error, context)


# =============================================================================
# Conflict Errors
# =============================================================================

class ConflictError(SingleTableError):
    """Raised when a conditional create fails because the item already exists.

    This is an expected outcome of uniqueness enforcement, not a systemic
    fault. Callers branch on it to handle "already exists".
    """

    def __init__(self, model: str, operation: str, original_error: Optional[Exception] = None):
        self.model = model
        self.operation = operation
        message = f'Conditional create failed for "{model}"'
        context = {
            'model': model,
            'operation': operation,
        }
        super().__init__(message, original_error, context)


# =============================================================================
# Store Faults
# =============================================================================

class ErrorKind(str, Enum):
    """Classification of store failures, assigned by the client adapter."""
    CONDITION_FAILED = "condition_failed"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    THROTTLED = "throttled"
    UNAVAILABLE = "unavailable"
    AUTH = "auth"
    TRANSACTION_CANCELED = "transaction_canceled"
    TRANSPORT = "transport"


class StoreError(SingleTableError):
    """Raised by a store client adapter when the underlying call fails.

    Used for every fault coming back from the store. The ``kind`` tag lets
    the dispatcher classify the failure without inspecting vendor codes.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.TRANSPORT,
        operation: Optional[str] = None,
        code: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """Initialize store error.

        Args:
            message: Human-readable error message
            kind: Classification of the failure
            operation: The dispatched operation kind (e.g. "put")
            code: The vendor error code, kept for diagnostics only
            original_error: The original exception that caused this error
        """
        self.kind = kind
        self.operation = operation
        self.code = code
        context = {'kind': kind.value}
        if operation:
            context['operation'] = operation
        if code:
            context['code'] = code
        super().__init__(message, original_error, context)


# =============================================================================
# Crypto Errors
# =============================================================================

class CryptoError(SingleTableError):
    """Raised when an encrypt or decrypt operation fails."""


class TamperError(CryptoError):
    """Raised when ciphertext fails authentication or cannot be decoded.

    Never suppressed and never treated as plaintext.
    """

    def __init__(self, message: str, profile: Optional[str] = None, original_error: Optional[Exception] = None):
        context = {}
        if profile:
            context['profile'] = profile
        super().__init__(message, original_error, context)
