"""Error handling framework for DocChat.

This package provides:
- Error code registry with E-XXXX format codes
- DocChatError and its asset-store subclasses
- Error formatting and grouping utilities
- Domain exceptions mapped to HTTP status codes

Error categories:
- E-1xxx: Asset payload errors
- E-2xxx: Identifier validation errors
- E-4xxx: Storage/system errors
"""

from docchat.errors.domain import DomainError, NotFoundError, ValidationError
from docchat.errors.formatter import (
    AssetDecodeError,
    DocChatError,
    InvalidIdentifierError,
    format_error,
    format_error_summary,
    group_errors,
)
from docchat.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "DocChatError",
    "AssetDecodeError",
    "InvalidIdentifierError",
    "format_error",
    "group_errors",
    "format_error_summary",
    # Domain
    "DomainError",
    "NotFoundError",
    "ValidationError",
]
