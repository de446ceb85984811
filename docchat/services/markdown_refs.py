"""Point OCR markdown image references at stored asset URLs.

OCR engines emit markdown such as ``![img-0.jpeg](img-0.jpeg)`` where the
link target is the logical image ID. Once the images are ingested the
targets are swapped for their public paths so the chat UI can render them.
"""

import re
from typing import Mapping

from docchat.services.asset_store import StoredAsset

_IMAGE_REF_PATTERN = re.compile(
    r"!\[(?P<alt>[^\]]*)\]\((?P<target>[^)\s]+)(?P<title>\s+\"[^\"]*\")?\)"
)


def collect_image_refs(markdown: str) -> list[str]:
    """Image link targets in document order."""
    return [m.group("target") for m in _IMAGE_REF_PATTERN.finditer(markdown)]


def rewrite_image_refs(markdown: str, stored: Mapping[str, StoredAsset]) -> str:
    """Replace image targets that name a stored logical ID with its public path.

    Targets that do not match a stored asset are left as they are.
    """

    def _replace(match: re.Match) -> str:
        asset = stored.get(match.group("target"))
        if asset is None:
            return match.group(0)
        title = match.group("title") or ""
        return f"![{match.group('alt')}]({asset.public_path}{title})"

    return _IMAGE_REF_PATTERN.sub(_replace, markdown)
