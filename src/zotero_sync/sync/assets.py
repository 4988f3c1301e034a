"""Derived assets: images cut out of PDFs by Zotero image annotations.

Images are stored next to the notes at
``<image_folder>/<citekey>/image-<page>-x<x>-y<y>.png``.  The bytes come
from the Web API file endpoint when the server has them, otherwise from the
local Zotero cache directory configured for this machine.  A note rendered
while neither source had the image shows ``IMAGE_PLACEHOLDER`` instead,
which ``MissingAnnotationImages`` later picks up.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Sequence

from ..core.async_utils import run_sync
from ..errors import ZoteroSyncError
from ..filenames import build_annotation_image_path, parse_annotation_position
from .models import RemoteRecord

if TYPE_CHECKING:
    from .ports import DocumentStore, RemoteLibrary

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[Image - see PDF]"
# Written by older releases of the note layout.
_LEGACY_PLACEHOLDERS = ("[Image — see PDF]", "[Area highlight")


def has_image_placeholder(content: str) -> bool:
    """True when *content* still references an image that was never saved."""
    return IMAGE_PLACEHOLDER in content or any(
        p in content for p in _LEGACY_PLACEHOLDERS
    )


def resolve_cache_dir(
    cache_dirs: Mapping[str, str], hostname: str | None = None
) -> Path | None:
    """Local Zotero cache directory configured for this host, if any."""
    configured = cache_dirs.get(hostname or socket.gethostname())
    return Path(configured).expanduser() if configured else None


def _read_cached_image(cache_dir: Path, annotation_key: str) -> bytes | None:
    path = cache_dir / f"{annotation_key}.png"
    try:
        return path.read_bytes()
    except OSError:
        return None


class AnnotationImageCollector:
    """Materialise image annotations as files in the document store.

    Args:
        remote: Source of image bytes via the Web API.
        store: Where images are written.
        image_folder: Store-relative folder for images.
        cache_dir: Local Zotero cache directory, or ``None``.
    """

    def __init__(
        self,
        remote: RemoteLibrary,
        store: DocumentStore,
        image_folder: str,
        cache_dir: Path | None = None,
    ) -> None:
        self.remote = remote
        self.store = store
        self.image_folder = image_folder.rstrip("/")
        self.cache_dir = cache_dir

    async def collect(
        self, citekey: str, annotations: Sequence[RemoteRecord]
    ) -> dict[str, str]:
        """Save missing images and map annotation key to image path.

        Annotations whose image cannot be found anywhere are left out of
        the mapping; a failure on one image never fails the record.
        """
        images: dict[str, str] = {}
        for ann in annotations:
            if ann.data.get("annotationType") != "image":
                continue
            position = parse_annotation_position(
                ann.data.get("annotationPosition")
            )
            if position is None:
                logger.warning(
                    "Could not parse position for annotation %s", ann.key
                )
                continue

            path = build_annotation_image_path(
                self.image_folder, citekey, position
            )
            try:
                if await self.store.exists(path):
                    images[ann.key] = path
                    continue

                data = await self.remote.fetch_annotation_image(ann.key)
                if not data and self.cache_dir is not None:
                    data = await run_sync(
                        _read_cached_image, self.cache_dir, ann.key
                    )
                if not data:
                    logger.info("No image data for annotation %s", ann.key)
                    continue

                await self.store.write_bytes(path, data)
                images[ann.key] = path
            except (OSError, ZoteroSyncError) as e:
                logger.warning(
                    "Failed to save image for annotation %s: %s", ann.key, e
                )
        return images
