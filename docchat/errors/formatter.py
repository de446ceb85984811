"""Error formatting and grouping utilities.

This module provides:
- DocChatError exception class for application errors
- Error formatting for CLI and API display
- Error grouping to combine the same failure across several assets
"""

from dataclasses import dataclass, field

from docchat.errors.registry import get_error


@dataclass
class DocChatError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action the caller should take to resolve.
        asset_ids: Logical asset IDs affected by the error.
        is_retryable: Whether the operation can be retried without changes.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    asset_ids: list[str] = field(default_factory=list)
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "DocChatError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                Special keys 'asset_ids' and 'details' populate the
                matching fields instead of the message.

        Returns:
            Error instance (of the calling class) with formatted message.
        """
        asset_ids = kwargs.get("asset_ids", [])
        if not isinstance(asset_ids, list):
            asset_ids = []
        details = kwargs.get("details", {})
        if not isinstance(details, dict):
            details = {}

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                asset_ids=asset_ids,
                details=details,
            )

        message = error_def.message_template
        try:
            template_kwargs = {
                k: v for k, v in kwargs.items() if k not in ("asset_ids", "details")
            }
            message = message.format(**template_kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            pass

        return cls(
            code=error_def.code,
            message=message,
            remediation=error_def.remediation,
            asset_ids=asset_ids,
            is_retryable=error_def.is_retryable,
            details=details,
        )

    def to_dict(self) -> dict:
        """Serialize for JSON responses."""
        return {
            "error_code": self.code,
            "message": self.message,
            "remediation": self.remediation,
            "asset_ids": list(self.asset_ids),
            "details": self.details or None,
        }


class AssetDecodeError(DocChatError):
    """Encoded payload could not be turned into bytes (E-1xxx)."""


class InvalidIdentifierError(DocChatError):
    """Session or asset ID would escape the storage root (E-2xxx)."""


def format_error(error: DocChatError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The DocChatError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for terminal display.
    """
    lines = [f"{error.code}: {error.message}"]

    if error.asset_ids:
        if len(error.asset_ids) == 1:
            lines.append(f"  Asset: {error.asset_ids[0]}")
        else:
            ids_str = ", ".join(error.asset_ids[:10])
            if len(error.asset_ids) > 10:
                ids_str += f" (and {len(error.asset_ids) - 10} more)"
            lines.append(f"  Affected assets: {ids_str}")

    if include_remediation:
        lines.append(f"  Action: {error.remediation}")

    return "\n".join(lines)


def group_errors(errors: list[DocChatError]) -> list[DocChatError]:
    """Group errors by code, combining affected asset IDs.

    Messages embed the asset ID, so grouping keys on code alone and keeps
    the first message as representative.

    Example:
        3 "Invalid Base64" errors on img-1, img-2, img-3
        -> 1 error with asset_ids=["img-1", "img-2", "img-3"]
    """
    groups: dict[str, DocChatError] = {}

    for error in errors:
        if error.code in groups:
            groups[error.code].asset_ids.extend(error.asset_ids)
        else:
            groups[error.code] = DocChatError(
                code=error.code,
                message=error.message,
                remediation=error.remediation,
                asset_ids=list(error.asset_ids),
                is_retryable=error.is_retryable,
                details=error.details.copy(),
            )

    result = list(groups.values())
    for error in result:
        error.asset_ids = sorted(set(error.asset_ids))

    return result


def format_error_summary(errors: list[DocChatError]) -> str:
    """Format a list of errors for display, grouping duplicates.

    Args:
        errors: List of DocChatError objects.

    Returns:
        Summary suitable for CLI output.
    """
    if not errors:
        return "No errors."

    grouped = group_errors(errors)

    if len(grouped) == 1:
        return format_error(grouped[0])

    lines = [f"{len(grouped)} error type(s) found:\n"]
    for i, error in enumerate(grouped, 1):
        lines.append(f"{i}. {format_error(error)}")
        lines.append("")

    return "\n".join(lines)
