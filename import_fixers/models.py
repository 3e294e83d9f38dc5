"""Data models used throughout the fixer pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class Document:
    """A stored unit of content, as fetched for one processing pass."""

    id: int
    content: str
    date: datetime
    modified: datetime
    post_type: str = "post"
    slug: str = ""
    meta: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LinkMatch:
    """An ``href=`` attribute found in raw markup."""

    raw: str
    quote: str
    href: str


@dataclass(frozen=True)
class ImageMatch:
    """An uploaded image referenced by an ``<img>`` tag."""

    url: str
    size: str
    original_path: str
    attachment_id: Optional[int]
    alt_text: str


@dataclass
class AssetRecord:
    """Stored reference to an uploaded file."""

    id: int
    url: str
    file_path: str
    alt: str = ""
    title: str = ""
    parent_id: Optional[int] = None
    permalink: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FixOutcome:
    """Result of processing a single document."""

    document_id: int
    changed: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class UnresolvedItem:
    """A reference that no strategy could repair, kept for manual follow-up."""

    document_id: int
    reference: str


@dataclass
class RunSummary:
    """Counters and lists accumulated over a whole run."""

    dry_run: bool
    scanned_count: int = 0
    changed_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    failures: List[FixOutcome] = field(default_factory=list)
    unresolved: List[UnresolvedItem] = field(default_factory=list)

    def describe(self) -> str:
        """Return the one-line, human readable summary of the run."""
        if self.dry_run:
            head = f"Dry run complete: {self.changed_count} document(s) would be updated"
        else:
            head = f"Complete: {self.updated_count} document(s) updated"
        return (
            f"{head}, {self.skipped_count} skipped, {len(self.failures)} failed, "
            f"{len(self.unresolved)} unresolved ({self.scanned_count} scanned)."
        )
