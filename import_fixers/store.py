"""Document stores the fixers read from and write back to."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .models import AssetRecord, Document

logger = logging.getLogger("import_fixers")

_UPDATABLE_DOCUMENT_FIELDS = {"content"}
_UPDATABLE_ASSET_FIELDS = {"file_path", "alt", "title", "metadata"}


class StoreError(RuntimeError):
    """A store operation failed; the message is meant for the operator."""


class DocumentUpdateError(StoreError):
    """The store rejected an update to a document."""


@dataclass(frozen=True)
class DocumentQuery:
    """Filter applied to paginated document reads."""

    search: Optional[str] = None
    post_type: str = "post"
    before: Optional[datetime] = None
    after: Optional[datetime] = None
    after_id: Optional[int] = None

    def matches(self, document: Document) -> bool:
        if self.post_type != "any" and document.post_type != self.post_type:
            return False
        if self.after_id is not None and document.id <= self.after_id:
            return False
        if self.before is not None and document.date > self.before:
            return False
        if self.after is not None and document.date < self.after:
            return False
        if self.search and self.search.lower() not in document.content.lower():
            return False
        return True


class DocumentStore(Protocol):
    """Operations the batch pipeline needs from a content store."""

    def list_documents(self, query: DocumentQuery, offset: int, limit: int) -> List[Document]:
        ...

    def update_document(self, document_id: int, fields: Dict[str, Any]) -> None:
        ...

    def find_one_by_metadata(self, meta_key: str, meta_value: str) -> Optional[int]:
        ...

    def get_canonical_url(self, document_id: int) -> str:
        ...

    def find_asset_by_path_pattern(self, filename: str) -> Optional[AssetRecord]:
        ...

    def find_asset_by_url(self, url: str) -> Optional[AssetRecord]:
        ...

    def create_asset(
        self,
        metadata: Dict[str, Any],
        file_path: str,
        parent_document_id: Optional[int],
    ) -> AssetRecord:
        ...

    def update_asset(self, asset_id: int, fields: Dict[str, Any]) -> AssetRecord:
        ...

    def can_import(self, user: str) -> bool:
        ...

    def clear_caches(self) -> None:
        ...


class MemoryDocumentStore:
    """Store holding documents and assets in dictionaries keyed by id."""

    def __init__(
        self,
        site_url: str,
        documents: Iterable[Document] = (),
        assets: Iterable[AssetRecord] = (),
        upload_base_url: Optional[str] = None,
        importers: Optional[Iterable[str]] = None,
    ) -> None:
        self.site_url = site_url.rstrip("/")
        self.upload_base_url = (upload_base_url or f"{self.site_url}/wp-content/uploads").rstrip("/")
        self.importers = set(importers) if importers is not None else None
        self.documents: Dict[int, Document] = {doc.id: doc for doc in documents}
        self.assets: Dict[int, AssetRecord] = {}
        for asset in assets:
            self.assets[asset.id] = self._decorate_asset(asset)
        self._meta_index: Optional[Dict[str, Dict[str, List[int]]]] = None

    # Reads

    def list_documents(self, query: DocumentQuery, offset: int, limit: int) -> List[Document]:
        matching = [doc for _, doc in sorted(self.documents.items()) if query.matches(doc)]
        return [
            replace(doc, meta=dict(doc.meta)) for doc in matching[offset: offset + limit]
        ]

    def find_one_by_metadata(self, meta_key: str, meta_value: str) -> Optional[int]:
        if self._meta_index is None:
            self._meta_index = self._build_meta_index()
        ids = self._meta_index.get(meta_key, {}).get(meta_value)
        if not ids:
            return None
        if len(ids) > 1:
            logger.debug(
                "%d documents share %s=%s; using #%d", len(ids), meta_key, meta_value, ids[0]
            )
        return ids[0]

    def get_canonical_url(self, document_id: int) -> str:
        document = self.documents.get(document_id)
        if document is None:
            return ""
        if document.slug:
            return f"{self.site_url}/{document.slug}/"
        return f"{self.site_url}/?p={document.id}"

    def find_asset_by_path_pattern(self, filename: str) -> Optional[AssetRecord]:
        for _, asset in sorted(self.assets.items()):
            if asset.file_path == filename or asset.file_path.endswith("/" + filename):
                return asset
        return None

    def find_asset_by_url(self, url: str) -> Optional[AssetRecord]:
        for _, asset in sorted(self.assets.items()):
            if asset.url == url:
                return asset
        return None

    def can_import(self, user: str) -> bool:
        if not user:
            return False
        return self.importers is None or user in self.importers

    # Writes

    def update_document(self, document_id: int, fields: Dict[str, Any]) -> None:
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentUpdateError(f"Invalid document ID {document_id}.")
        unknown = set(fields) - _UPDATABLE_DOCUMENT_FIELDS
        if unknown:
            raise DocumentUpdateError(f"Cannot update field(s): {', '.join(sorted(unknown))}.")
        self.documents[document_id] = replace(document, modified=datetime.now(), **fields)
        self._meta_index = None
        try:
            self._persist()
        except StoreError:
            self.documents[document_id] = document
            raise

    def create_asset(
        self,
        metadata: Dict[str, Any],
        file_path: str,
        parent_document_id: Optional[int],
    ) -> AssetRecord:
        if not file_path:
            raise StoreError("Cannot create an asset without a file path.")
        asset = self._decorate_asset(
            AssetRecord(
                id=self._next_id(),
                url="",
                file_path=file_path,
                alt=metadata.get("alt", ""),
                title=metadata.get("title", ""),
                parent_id=parent_document_id,
                metadata=dict(metadata),
            )
        )
        self.assets[asset.id] = asset
        try:
            self._persist()
        except StoreError:
            del self.assets[asset.id]
            raise
        return asset

    def update_asset(self, asset_id: int, fields: Dict[str, Any]) -> AssetRecord:
        asset = self.assets.get(asset_id)
        if asset is None:
            raise StoreError(f"Invalid asset ID {asset_id}.")
        unknown = set(fields) - _UPDATABLE_ASSET_FIELDS
        if unknown:
            raise StoreError(f"Cannot update asset field(s): {', '.join(sorted(unknown))}.")
        updated = self._decorate_asset(replace(asset, **fields))
        self.assets[asset_id] = updated
        try:
            self._persist()
        except StoreError:
            self.assets[asset_id] = asset
            raise
        return updated

    def clear_caches(self) -> None:
        self._meta_index = None

    # Internals

    def _build_meta_index(self) -> Dict[str, Dict[str, List[int]]]:
        index: Dict[str, Dict[str, List[int]]] = {}
        for doc_id, document in sorted(self.documents.items()):
            for key, value in document.meta.items():
                index.setdefault(key, {}).setdefault(value, []).append(doc_id)
        return index

    def _decorate_asset(self, asset: AssetRecord) -> AssetRecord:
        return replace(
            asset,
            url=f"{self.upload_base_url}/{asset.file_path.lstrip('/')}",
            permalink=f"{self.site_url}/?attachment_id={asset.id}",
        )

    def _next_id(self) -> int:
        return max([0, *self.documents, *self.assets]) + 1

    def _persist(self) -> None:
        """Hook for stores backed by durable storage."""


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.min
    # Wall-clock comparison: offsets are dropped.
    return datetime.fromisoformat(value).replace(tzinfo=None)


def _document_from_json(data: Dict[str, Any]) -> Document:
    date = _parse_timestamp(data.get("date"))
    return Document(
        id=int(data["id"]),
        content=data.get("content", ""),
        date=date,
        modified=_parse_timestamp(data.get("modified")) if data.get("modified") else date,
        post_type=data.get("post_type", "post"),
        slug=data.get("slug", ""),
        meta={str(k): str(v) for k, v in (data.get("meta") or {}).items()},
    )


def _document_to_json(document: Document) -> Dict[str, Any]:
    return {
        "id": document.id,
        "content": document.content,
        "date": document.date.isoformat(),
        "modified": document.modified.isoformat(),
        "post_type": document.post_type,
        "slug": document.slug,
        "meta": document.meta,
    }


def _asset_from_json(data: Dict[str, Any]) -> AssetRecord:
    return AssetRecord(
        id=int(data["id"]),
        url="",
        file_path=data["file_path"],
        alt=data.get("alt", ""),
        title=data.get("title", ""),
        parent_id=data.get("parent_id"),
        metadata=data.get("metadata") or {},
    )


def _asset_to_json(asset: AssetRecord) -> Dict[str, Any]:
    return {
        "id": asset.id,
        "file_path": asset.file_path,
        "alt": asset.alt,
        "title": asset.title,
        "parent_id": asset.parent_id,
        "metadata": asset.metadata,
    }


class JsonDocumentStore(MemoryDocumentStore):
    """Store backed by a single JSON corpus file.

    The file holds ``site_url``, optional ``upload_base_url`` and
    ``importers``, and ``documents`` / ``assets`` lists. Every mutation
    rewrites the file atomically.
    """

    def __init__(self, path: Path, **kwargs: Any) -> None:
        self.path = Path(path)
        super().__init__(**kwargs)

    @classmethod
    def load(cls, path: Path) -> "JsonDocumentStore":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StoreError(f"Cannot read corpus file {path}: {exc}") from exc
        except ValueError as exc:
            raise StoreError(f"Corpus file {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict) or not data.get("site_url"):
            raise StoreError(f"Corpus file {path} must be an object with a site_url")
        try:
            documents = [_document_from_json(item) for item in data.get("documents", [])]
            assets = [_asset_from_json(item) for item in data.get("assets", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Malformed record in {path}: {exc}") from exc
        logger.debug("Loaded %d documents and %d assets from %s", len(documents), len(assets), path)
        return cls(
            path,
            site_url=data["site_url"],
            documents=documents,
            assets=assets,
            upload_base_url=data.get("upload_base_url"),
            importers=data.get("importers"),
        )

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "site_url": self.site_url,
            "upload_base_url": self.upload_base_url,
        }
        if self.importers is not None:
            data["importers"] = sorted(self.importers)
        data["documents"] = [_document_to_json(doc) for _, doc in sorted(self.documents.items())]
        data["assets"] = [_asset_to_json(asset) for _, asset in sorted(self.assets.items())]
        return data

    def _persist(self) -> None:
        payload = json.dumps(self.to_json(), indent=2, ensure_ascii=False)
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        os.close(fd)
        try:
            Path(temp_path).write_text(payload, encoding="utf-8")
            os.replace(temp_path, self.path)
        except OSError as exc:
            Path(temp_path).unlink(missing_ok=True)
            raise StoreError(f"Cannot write corpus file {self.path}: {exc}") from exc

