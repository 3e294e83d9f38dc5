"""Shared fixtures for the fixer tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Set

import pytest

from import_fixers.models import Document
from import_fixers.store import MemoryDocumentStore

SITE_URL = "https://new.example.com"
UPLOADS = f"{SITE_URL}/wp-content/uploads"


def make_document(doc_id: int, content: str = "", **kwargs) -> Document:
    kwargs.setdefault("date", datetime(2016, 1, 1) + timedelta(days=doc_id))
    kwargs.setdefault("modified", kwargs["date"])
    return Document(id=doc_id, content=content, **kwargs)


class FakeProber:
    """Answers existence probes from a fixed set of URLs."""

    def __init__(self, existing: Iterable[str] = ()) -> None:
        self.existing: Set[str] = set(existing)
        self.probed: List[str] = []

    def exists(self, url: str) -> bool:
        self.probed.append(url)
        return url in self.existing


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore(SITE_URL)


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()
