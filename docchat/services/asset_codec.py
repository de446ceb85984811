"""Encode/decode helpers for base64 and data-URI image payloads.

OCR engines hand back extracted images either as bare base64 or as
``data:<media-type>;base64,<payload>`` strings. These helpers never touch
the filesystem; ``decode_payload`` is the only one that can fail.
"""

import base64
import binascii
import re

from docchat.errors import AssetDecodeError

DEFAULT_MEDIA_TYPE = "image/png"
DEFAULT_EXTENSION = "png"

_MEDIA_TYPE_PATTERN = re.compile(r"^data:([a-zA-Z0-9]+/[a-zA-Z0-9\-.+]+);base64,")
_DATA_URI_PREFIX_PATTERN = re.compile(r"^data:[^;,]*;base64,", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")


def media_type_of(encoded: str) -> str:
    """Return the media type declared by a data-URI prefix.

    Falls back to ``image/png`` when there is no prefix or it is malformed.
    """
    match = _MEDIA_TYPE_PATTERN.match(encoded)
    if match:
        return match.group(1).lower()
    return DEFAULT_MEDIA_TYPE


def payload_of(encoded: str) -> str:
    """Strip a ``data:...;base64,`` prefix, returning the bare base64 text.

    Inputs without a prefix are returned unchanged.
    """
    match = _DATA_URI_PREFIX_PATTERN.match(encoded)
    if match:
        return encoded[match.end():]
    return encoded


def extension_for(media_type: str) -> str:
    """Derive a file extension from a media type.

    ``image/jpeg`` -> ``jpeg``, ``image/svg+xml`` -> ``svg``; anything
    without a usable subtype becomes ``png``.
    """
    _, _, subtype = media_type.partition("/")
    subtype = subtype.split("+", 1)[0].strip().lower()
    if not subtype or not re.fullmatch(r"[a-z0-9][a-z0-9.\-]*", subtype):
        return DEFAULT_EXTENSION
    return subtype


def decode_payload(encoded: str, asset_id: str = "") -> bytes:
    """Decode a base64 or data-URI payload to raw bytes.

    Whitespace (line-wrapped base64) is ignored and missing ``=`` padding
    is restored before strict decoding.

    Args:
        encoded: Bare base64 text or a data URI.
        asset_id: Logical asset ID, used only for error context.

    Returns:
        Decoded bytes.

    Raises:
        AssetDecodeError: If the payload is empty (E-1002) or is not valid
            base64 (E-1001).
    """
    payload = _WHITESPACE_PATTERN.sub("", payload_of(encoded))
    if not payload:
        raise AssetDecodeError.from_code("E-1002", asset_id=asset_id, asset_ids=[asset_id])

    remainder = len(payload) % 4
    if remainder:
        payload += "=" * (4 - remainder)

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AssetDecodeError.from_code(
            "E-1001",
            asset_id=asset_id,
            reason=str(exc),
            asset_ids=[asset_id],
        ) from exc
