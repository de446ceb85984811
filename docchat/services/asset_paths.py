"""Filesystem and public path resolution for session assets.

Layout under the storage root::

    <root>/<session_id>/<logical_id>-<suffix>.<ext>
    <root>/<session_id>/session-info.json

Public paths mirror the layout under a fixed URL prefix so the static
file mount can serve assets without any lookup.
"""

import re
import uuid
from pathlib import Path

from docchat.errors import InvalidIdentifierError

PUBLIC_PREFIX = "/assets/ocr-images"
CATALOG_FILENAME = "session-info.json"
SUFFIX_LENGTH = 8
MAX_IDENTIFIER_LENGTH = 128

_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9._\-]+")
_SUFFIX_PATTERN = re.compile(r"^(?P<original>.+)-(?P<suffix>[0-9a-f]{%d})$" % SUFFIX_LENGTH)


def _identifier_problem(value: str) -> str | None:
    if not value:
        return "must not be empty"
    if len(value) > MAX_IDENTIFIER_LENGTH:
        return f"longer than {MAX_IDENTIFIER_LENGTH} characters"
    if "/" in value or "\\" in value or "\x00" in value:
        return "contains a path separator"
    if ".." in value:
        return "contains '..'"
    if value.startswith("."):
        return "starts with '.'"
    if not _IDENTIFIER_PATTERN.fullmatch(value):
        return "contains characters outside [A-Za-z0-9._-]"
    return None


def validate_identifier(value: str, kind: str = "session") -> str:
    """Check that an ID is safe to use as a single path component.

    Args:
        value: Session or logical asset ID.
        kind: ``"session"`` (E-2001) or ``"asset"`` (E-2002).

    Returns:
        The value, unchanged.

    Raises:
        InvalidIdentifierError: If the ID could escape its directory.
    """
    problem = _identifier_problem(value) if isinstance(value, str) else "must be a string"
    if problem is None:
        return value
    code = "E-2002" if kind == "asset" else "E-2001"
    asset_ids = [str(value)] if kind == "asset" else []
    raise InvalidIdentifierError.from_code(
        code, value=value, reason=problem, asset_ids=asset_ids
    )


def is_valid_identifier(value: str) -> bool:
    return isinstance(value, str) and _identifier_problem(value) is None


def ensure_within(root: Path, path: Path) -> Path:
    """Return ``path`` resolved, raising if it is not strictly inside ``root``."""
    resolved_root = root.resolve()
    resolved = path.resolve()
    if resolved == resolved_root or resolved_root not in resolved.parents:
        raise InvalidIdentifierError.from_code(
            "E-2001",
            value=str(path),
            reason=f"resolves outside {resolved_root}",
        )
    return resolved


def session_dir(root: Path, session_id: str) -> Path:
    """Directory holding every asset of one session."""
    validate_identifier(session_id, "session")
    return ensure_within(root, Path(root) / session_id)


def catalog_path(directory: Path) -> Path:
    return directory / CATALOG_FILENAME


def new_suffix() -> str:
    return uuid.uuid4().hex[:SUFFIX_LENGTH]


def asset_filename(logical_id: str, extension: str, suffix: str | None = None) -> str:
    """Build ``<logical_id>-<suffix>.<extension>``."""
    validate_identifier(logical_id, "asset")
    return f"{logical_id}-{suffix or new_suffix()}.{extension}"


def asset_file_path(directory: Path, logical_id: str, extension: str, suffix: str | None = None) -> Path:
    """Destination path for a new asset file inside ``directory``."""
    return ensure_within(directory, directory / asset_filename(logical_id, extension, suffix))


def public_path(session_id: str, filename: str, prefix: str = PUBLIC_PREFIX) -> str:
    """URL path under which the static mount serves the file."""
    return f"{prefix.rstrip('/')}/{session_id}/{filename}"


def split_asset_filename(filename: str) -> tuple[str, str, str]:
    """Reverse the filename construction.

    Returns:
        ``(asset_id, original_id, extension)``. ``original_id`` falls back to
        ``asset_id`` when the name carries no ``-<suffix>`` segment.
    """
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, "png"
    extension = extension or "png"

    match = _SUFFIX_PATTERN.match(stem)
    if match:
        return stem, match.group("original"), extension

    # Names not written by this store: drop whatever follows the last '-'
    original, sep, _ = stem.rpartition("-")
    return stem, (original if sep and original else stem), extension
