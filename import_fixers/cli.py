"""Command-line entry point for the import fixers."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime, time as dt_time
from pathlib import Path
from typing import Optional, Sequence

from .config import (
    DEFAULT_META_KEY,
    DEFAULT_POST_TYPE,
    REPLACE_WITH_CHOICES,
    AuthorizationError,
    ConfigurationError,
    RunConfig,
)
from .driver import BatchDriver
from .fixers import build_fixer
from .network import DEFAULT_TIMEOUT, UrlProber
from .store import JsonDocumentStore, StoreError

logger = logging.getLogger("import_fixers.cli")

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_FAILURES = 2


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO date: {value!r}") from None
    # Stored dates are wall-clock; offsets are dropped the same way.
    return parsed.replace(tzinfo=None)


def _parse_end_date(value: str) -> datetime:
    """Like ``_parse_date`` but a bare date covers the whole day."""
    parsed = _parse_date(value)
    if len(value.strip()) == 10:
        return datetime.combine(parsed.date(), dt_time.max)
    return parsed


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store",
        type=Path,
        default=Path(os.getenv("IMPORT_FIXERS_STORE", "corpus.json")),
        help="JSON corpus file to read and update (default: $IMPORT_FIXERS_STORE or corpus.json)",
    )
    parser.add_argument(
        "--user",
        default="",
        help="User to run as; must be allowed to run imports",
    )
    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Report planned changes without writing them (default: on)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Do not ask for confirmation before writing changes",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Number of documents fetched per page (default depends on the fixer)",
    )
    parser.add_argument(
        "--post-type",
        default=DEFAULT_POST_TYPE,
        help="Only process documents of this type ('any' for all types)",
    )
    parser.add_argument(
        "--after",
        type=_parse_date,
        default=None,
        help="Only process documents published on or after this ISO date",
    )
    parser.add_argument(
        "--before",
        type=_parse_end_date,
        default=None,
        help="Only process documents published on or before this ISO date",
    )
    parser.add_argument(
        "--offset-paging",
        action="store_true",
        help="Page by numeric offset instead of by document id",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fix up links and images in imported content.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    links_parser = subparsers.add_parser(
        "internal-links",
        help="Replace links on an old domain with the current URL of the linked document",
    )
    links_parser.add_argument(
        "--old-domain",
        required=True,
        help="Previous domain name in links that need updating",
    )
    links_parser.add_argument(
        "--meta-key",
        default=DEFAULT_META_KEY,
        help="Metadata key holding each document's previous URL",
    )

    subparsers.add_parser(
        "img-src-from-links",
        help="Repair empty <img src> attributes wrapped in a link to an image",
    )

    hrefs_parser = subparsers.add_parser(
        "image-hrefs",
        help="Point links around images at the image's attachment",
    )
    hrefs_parser.add_argument(
        "--replace-with",
        choices=REPLACE_WITH_CHOICES,
        default="permalink",
        help="Link to the attachment page (permalink) or the file itself (src)",
    )

    unicode_parser = subparsers.add_parser(
        "unicode-images",
        help="Repair accented image filenames that no longer resolve",
    )
    unicode_parser.add_argument(
        "--upload-base-url",
        default=None,
        help="Base URL of uploaded files (default: taken from the store)",
    )
    unicode_parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="Seconds to wait for each existence probe",
    )

    for subparser in subparsers.choices.values():
        _add_common_arguments(subparser)

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RunConfig:
    return RunConfig(
        dry_run=args.dry_run,
        meta_key=getattr(args, "meta_key", DEFAULT_META_KEY),
        old_domain=getattr(args, "old_domain", ""),
        post_type=args.post_type,
        before=args.before,
        after=args.after,
        replace_with=getattr(args, "replace_with", "permalink"),
        page_size=args.page_size,
        upload_base_url=getattr(args, "upload_base_url", None),
        paginate_by_cursor=not args.offset_paging,
    )


def _confirm(message: str) -> bool:
    try:
        answer = input(f"{message} [y/n] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    prober: Optional[UrlProber] = None
    try:
        config = build_config(args)
        store = JsonDocumentStore.load(args.store)
        if not store.can_import(args.user):
            raise AuthorizationError(
                "You must run this command with a --user that is allowed to run imports."
            )
        if args.command == "unicode-images":
            prober = UrlProber(timeout=args.timeout)
        fixer = build_fixer(args.command, store, config, prober=prober)
        fixer.validate()
    except (ConfigurationError, StoreError) as exc:
        logger.error("%s", exc)
        return EXIT_ABORTED

    if not config.dry_run and not args.yes:
        if not _confirm(f"Write {args.command} fixes to {args.store}?"):
            logger.info("Aborted; nothing was changed.")
            return EXIT_ABORTED

    mode = "dry run" if config.dry_run else "enact"
    logger.info("Running %s (%s) against %s", args.command, mode, args.store)
    try:
        summary = BatchDriver(store, fixer, config).run()
    finally:
        if prober is not None:
            prober.close()

    for item in summary.unresolved:
        logger.info("Unresolved: [#%d] %s", item.document_id, item.reference)
    for failure in summary.failures:
        logger.warning("Failed: [#%d] %s", failure.document_id, failure.error)
    logger.info("%s", summary.describe())
    return EXIT_FAILURES if summary.failures else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
