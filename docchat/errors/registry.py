"""Error code registry with E-XXXX format codes.

This module defines the error code system for DocChat, organizing errors
into categories:
- E-1xxx: Asset payload errors
- E-2xxx: Identifier validation errors
- E-4xxx: Storage/system errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    PAYLOAD = "payload"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    STORAGE = "storage"  # E-4xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether the operation can be retried without changes.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Payload errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.PAYLOAD,
        title="Invalid Base64 Payload",
        message_template="Asset '{asset_id}' is not valid base64: {reason}.",
        remediation="Re-export the image as base64 or a data URI and retry.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.PAYLOAD,
        title="Empty Payload",
        message_template="Asset '{asset_id}' has no image data.",
        remediation="Remove the entry or supply the encoded image bytes.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Session ID",
        message_template="Session ID '{value}' is not allowed: {reason}.",
        remediation="Use letters, digits, '.', '_' or '-' only, or omit the ID to generate one.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Invalid Asset ID",
        message_template="Asset ID '{value}' is not allowed: {reason}.",
        remediation="Use letters, digits, '.', '_' or '-' only in asset IDs.",
    ),
    # Storage errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.STORAGE,
        title="Asset Write Failed",
        message_template="Could not write asset '{asset_id}': {reason}.",
        remediation="Check free disk space and permissions on the asset directory.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.STORAGE,
        title="Catalog Write Failed",
        message_template="Could not write catalog for session '{session_id}': {reason}.",
        remediation="Check permissions on the session directory and re-run the ingestion.",
        is_retryable=True,
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.STORAGE,
        title="Session Delete Failed",
        message_template="Could not fully delete session '{session_id}': {reason}.",
        remediation="Close any process holding files in the session directory and retry.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
