"""Paginated orchestration of a fixer over the whole corpus."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import replace
from typing import List, Optional

from .config import RunConfig
from .fixers import Fixer
from .models import Document, FixOutcome, RunSummary, UnresolvedItem
from .store import DocumentStore, StoreError

logger = logging.getLogger("import_fixers")


class DriverState(enum.Enum):
    IDLE = "idle"
    PAGING = "paging"
    PROCESSING_PAGE = "processing_page"
    DONE = "done"


class BatchDriver:
    """Runs one fixer over every matching document, a page at a time.

    Pages are fetched with a cursor on the last document id seen, so
    documents that drop out of the query once fixed do not shift later pages.
    With ``paginate_by_cursor`` disabled the offset advances by exactly one
    page per iteration instead.
    """

    def __init__(self, store: DocumentStore, fixer: Fixer, config: RunConfig) -> None:
        self.store = store
        self.fixer = fixer
        self.config = config
        self.page_size = config.page_size or fixer.page_size
        self.state = DriverState.IDLE

    def run(self) -> RunSummary:
        self.fixer.validate()
        summary = RunSummary(dry_run=self.config.dry_run)
        query = self.fixer.build_query()
        offset = 0
        cursor: Optional[int] = None
        start = time.perf_counter()

        self.state = DriverState.PAGING
        while True:
            self.store.clear_caches()
            page = self.store.list_documents(
                replace(query, after_id=cursor), offset=offset, limit=self.page_size
            )
            if not page:
                break

            self.state = DriverState.PROCESSING_PAGE
            logger.info("Searching %d documents (from #%d)...", len(page), page[0].id)
            self._process_page(page, summary)

            if self.config.paginate_by_cursor:
                cursor = page[-1].id
            else:
                offset += self.page_size
            self.state = DriverState.PAGING

        self.state = DriverState.DONE
        logger.debug(
            "%s run finished in %.2fs", self.fixer.name, time.perf_counter() - start
        )
        return summary

    def _process_page(self, page: List[Document], summary: RunSummary) -> None:
        for document in page:
            outcome = self._process_document(document, summary)
            if outcome is None:
                summary.skipped_count += 1
            elif outcome.error:
                summary.failures.append(outcome)

    def _process_document(
        self, document: Document, summary: RunSummary
    ) -> Optional[FixOutcome]:
        summary.scanned_count += 1
        if not self.fixer.needs_fix(document):
            return None

        try:
            result = self.fixer.fix(document)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("[#%d] Unexpected error while fixing document", document.id)
            return FixOutcome(document.id, changed=False, error=str(exc) or type(exc).__name__)

        summary.unresolved.extend(
            UnresolvedItem(document.id, reference) for reference in result.unresolved
        )
        if result.content == document.content:
            return None

        summary.changed_count += 1
        if self.config.dry_run:
            logger.info("\t[#%d] Would update document (dry run).", document.id)
            return FixOutcome(document.id, changed=True)

        try:
            self.store.update_document(document.id, {"content": result.content})
        except StoreError as exc:
            logger.warning("\t[#%d] Failed updating document: %s", document.id, exc)
            return FixOutcome(document.id, changed=False, error=str(exc))

        summary.updated_count += 1
        logger.info("\t[#%d] Document updated.", document.id)
        return FixOutcome(document.id, changed=True)


def run_fixer(store: DocumentStore, fixer: Fixer, config: RunConfig) -> RunSummary:
    """Convenience wrapper around :class:`BatchDriver`."""
    return BatchDriver(store, fixer, config).run()
