"""Lookups that turn stale references into current ones."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, Optional, Protocol
from urllib.parse import unquote

from .images import image_mime_type, original_path
from .models import AssetRecord, ImageMatch
from .store import DocumentStore
from .utils import encode_url, split_filename, transliterate_url, upload_relative_path

logger = logging.getLogger("import_fixers")


class Prober(Protocol):
    def exists(self, url: str) -> bool:
        ...


def sanitize_key(key: str) -> str:
    """Lowercase a metadata key and drop characters outside ``[a-z0-9_-]``."""
    return re.sub(r"[^a-z0-9_\-]", "", key.lower())


def resolve_current_url(store: DocumentStore, old_url: str, meta_key: str) -> str:
    """Return the live URL of the document that used to live at ``old_url``.

    The match on the metadata value is exact. An empty string means no
    document claims ``old_url``.
    """
    document_id = store.find_one_by_metadata(sanitize_key(meta_key), old_url)
    if document_id is None:
        return ""
    return store.get_canonical_url(document_id)


def resolve_asset_by_src(store: DocumentStore, src: str) -> Optional[AssetRecord]:
    """Find the asset an ``<img src>`` points at, including resized variants."""
    asset = store.find_asset_by_url(src)
    if asset is None:
        full_size = original_path(src)
        if full_size != src:
            asset = store.find_asset_by_url(full_size)
    return asset


@dataclass(frozen=True)
class AssetRepair:
    """How an image URL was (or, in a dry run, would be) made reachable."""

    url: str
    created: bool = False
    asset: Optional[AssetRecord] = None


class AssetResolver:
    """Repairs image URLs whose accented filenames no longer exist upstream.

    Uploads are sometimes stored under a transliterated filename while the
    content still references the accented original. When the transliterated
    file exists, the matching asset record is pointed at it, or created if
    there is none.
    """

    def __init__(
        self,
        store: DocumentStore,
        prober: Prober,
        upload_base_url: str,
        dry_run: bool = True,
    ) -> None:
        self.store = store
        self.prober = prober
        self.upload_base_url = upload_base_url.rstrip("/")
        self.dry_run = dry_run
        self._repairs: Dict[str, Optional[AssetRepair]] = {}

    def resolve_or_repair(
        self, image: ImageMatch, parent_document_id: Optional[int] = None
    ) -> Optional[AssetRepair]:
        """Return the repair for ``image`` or ``None`` when nothing can be found."""
        if image.url not in self._repairs:
            self._repairs[image.url] = self._repair(image, parent_document_id)
        return self._repairs[image.url]

    def _repair(
        self, image: ImageMatch, parent_document_id: Optional[int]
    ) -> Optional[AssetRepair]:
        if self.prober.exists(encode_url(image.url)):
            return AssetRepair(url=image.url)

        fixed_url = transliterate_url(image.url)
        if fixed_url == image.url:
            logger.info("%s is missing and has no transliterated variant", image.url)
            return None
        if not self.prober.exists(encode_url(fixed_url)):
            logger.info("Neither %s nor %s exist", image.url, fixed_url)
            return None

        old_filename = unquote(split_filename(image.original_path)[1])
        fixed_original = transliterate_url(image.original_path)
        new_path = upload_relative_path(fixed_original, self.upload_base_url)

        asset = self.store.find_asset_by_path_pattern(old_filename)
        if asset is not None:
            if self.dry_run:
                logger.info("Would move asset #%d to %s", asset.id, new_path)
            else:
                asset = self.store.update_asset(asset.id, {"file_path": new_path})
                logger.info("Moved asset #%d to %s", asset.id, new_path)
            return AssetRepair(url=fixed_url, created=False, asset=asset)

        # An earlier document in this run may already have created it.
        asset = self.store.find_asset_by_path_pattern(split_filename(new_path)[1])
        if asset is not None:
            return AssetRepair(url=fixed_url, created=False, asset=asset)

        if self.dry_run:
            logger.info("Would create an asset for %s", new_path)
            return AssetRepair(url=fixed_url, created=True)

        asset = self.store.create_asset(
            self._asset_metadata(image, fixed_original), new_path, parent_document_id
        )
        logger.info("Created asset #%d for %s", asset.id, new_path)
        return AssetRepair(url=fixed_url, created=True, asset=asset)

    @staticmethod
    def _asset_metadata(image: ImageMatch, fixed_original: str) -> Dict[str, Any]:
        return {
            "title": PurePosixPath(split_filename(fixed_original)[1]).stem,
            "alt": image.alt_text,
            "mime_type": image_mime_type(fixed_original) or "",
            "source_url": image.original_path,
        }
