"""Defect-specific detection and patching plugged into the batch driver."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Tuple, Type

from .config import ConfigurationError, RunConfig
from .dom import fill_empty_image_srcs, raw_attribute_values, retarget_image_hrefs
from .images import extract_images, original_path
from .links import extract_links, link_host, normalise_domain
from .models import AssetRecord, Document
from .resolvers import AssetResolver, Prober, resolve_asset_by_src, resolve_current_url
from .store import DocumentQuery, DocumentStore
from .utils import needs_transliteration, transliterate_url

logger = logging.getLogger("import_fixers")


@dataclass
class FixResult:
    """Rewritten content plus references that could not be repaired."""

    content: str
    unresolved: List[str] = field(default_factory=list)


class Fixer:
    """Base class: one defect shape, detected and patched per document."""

    name: ClassVar[str] = ""
    page_size: ClassVar[int] = 50
    required_options: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, store: DocumentStore, config: RunConfig) -> None:
        self.store = store
        self.config = config

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when a required option is missing."""
        for option in self.required_options:
            if not getattr(self.config, option):
                raise ConfigurationError(f"The {self.name} fixer requires --{option.replace('_', '-')}")

    def search_term(self) -> Optional[str]:
        """Free-text term used to narrow the store query."""
        return None

    def build_query(self) -> DocumentQuery:
        return DocumentQuery(
            search=self.search_term(),
            post_type=self.config.post_type,
            before=self.config.before,
            after=self.config.after,
        )

    def needs_fix(self, document: Document) -> bool:
        """Cheap check that rules out documents which cannot contain the defect."""
        return True

    def fix(self, document: Document) -> FixResult:
        raise NotImplementedError


class InternalLinksFixer(Fixer):
    """Repoint links on a retired domain at the current URL of the same post."""

    name = "internal-links"
    required_options = ("old_domain",)

    def __init__(self, store: DocumentStore, config: RunConfig) -> None:
        super().__init__(store, config)
        self.old_domain = normalise_domain(config.old_domain)

    def validate(self) -> None:
        super().validate()
        if not self.old_domain:
            raise ConfigurationError(f"Cannot work out a host name from {self.config.old_domain!r}")

    def search_term(self) -> Optional[str]:
        return self.old_domain

    def needs_fix(self, document: Document) -> bool:
        return self.old_domain in document.content.lower()

    def fix(self, document: Document) -> FixResult:
        text = document.content
        unresolved: List[str] = []
        for link in extract_links(text):
            if link_host(link.href) != self.old_domain:
                continue
            new_link = resolve_current_url(self.store, link.href, self.config.meta_key)
            if not new_link:
                logger.info("[#%d] Could not find current URL for: %s", document.id, link.href)
                unresolved.append(link.href)
                continue
            text = text.replace(link.raw, f'href="{new_link}"')
            logger.info("[#%d] Found [%s] replacing with [%s]", document.id, link.href, new_link)
        return FixResult(text, unresolved)


class ImgSrcFromLinksFixer(Fixer):
    """Fill empty ``<img src="">`` from the image URL of the wrapping link."""

    name = "img-src-from-links"

    def search_term(self) -> Optional[str]:
        return "src="

    def needs_fix(self, document: Document) -> bool:
        return 'src=""' in document.content or "src=''" in document.content

    def fix(self, document: Document) -> FixResult:
        text, changed = fill_empty_image_srcs(document.content)
        if changed:
            logger.info("[#%d] Found empty <img src>, fixing it.", document.id)
        return FixResult(text)


class ImageHrefsFixer(Fixer):
    """Point image links at the attachment page (or file) of the image they wrap."""

    name = "image-hrefs"
    page_size = 100

    def __init__(self, store: DocumentStore, config: RunConfig) -> None:
        super().__init__(store, config)
        base = config.upload_base_url or getattr(store, "upload_base_url", "") or ""
        self.upload_prefix = base.rstrip("/") + "/" if base else ""

    def search_term(self) -> Optional[str]:
        return "<img"

    def needs_fix(self, document: Document) -> bool:
        lowered = document.content.lower()
        return "<a" in lowered and "<img" in lowered

    def fix(self, document: Document) -> FixResult:
        unresolved: List[str] = []

        def lookup(src: str) -> Optional[AssetRecord]:
            asset = resolve_asset_by_src(self.store, src)
            if asset is None:
                logger.debug("[#%d] No asset found for %s", document.id, src)
                # Off-site images never had an asset to begin with.
                is_upload = bool(self.upload_prefix) and src.startswith(self.upload_prefix)
                if is_upload and src not in unresolved:
                    unresolved.append(src)
            return asset

        text, changed = retarget_image_hrefs(document.content, lookup, self.config.replace_with)
        if changed:
            logger.info("[#%d] Retargeted image links to %s.", document.id, self.config.replace_with)
        return FixResult(text, unresolved)


class UnicodeImagesFixer(Fixer):
    """Rewrite accented image filenames that 404 to their transliterated uploads."""

    name = "unicode-images"
    page_size = 100

    def __init__(
        self,
        store: DocumentStore,
        config: RunConfig,
        prober: Optional[Prober] = None,
    ) -> None:
        super().__init__(store, config)
        self.upload_base_url = (
            config.upload_base_url or getattr(store, "upload_base_url", "") or ""
        ).rstrip("/")
        self.resolver = (
            AssetResolver(store, prober, self.upload_base_url, dry_run=config.dry_run)
            if prober is not None
            else None
        )

    def validate(self) -> None:
        super().validate()
        if not self.upload_base_url:
            raise ConfigurationError("The unicode-images fixer requires --upload-base-url")
        if self.resolver is None:
            raise ConfigurationError("The unicode-images fixer needs a URL prober")

    def search_term(self) -> Optional[str]:
        return self.upload_base_url

    def needs_fix(self, document: Document) -> bool:
        return self.upload_base_url in document.content

    def fix(self, document: Document) -> FixResult:
        text = document.content
        unresolved: List[str] = []
        raw_srcs = raw_attribute_values(text, "img", "src")
        for image in extract_images(text, self.upload_base_url):
            if not needs_transliteration(image.url):
                continue
            repair = self.resolver.resolve_or_repair(image, document.id)
            if repair is None:
                unresolved.append(image.url)
                continue
            if repair.url == image.url:
                continue
            spellings = raw_srcs.get(image.url, [image.url])
            if not any(raw in text or transliterate_url(raw) in text for raw in spellings):
                logger.warning("[#%d] Could not locate %s in the content", document.id, image.url)
                unresolved.append(image.url)
                continue
            for raw in spellings:
                text = text.replace(raw, transliterate_url(raw))
                raw_original = original_path(raw)
                if raw_original != raw:
                    text = text.replace(raw_original, transliterate_url(raw_original))
            if repair.asset is not None and image.attachment_id not in (None, repair.asset.id):
                text = re.sub(
                    rf"(?<![\w-])wp-image-{image.attachment_id}(?![\w-])",
                    f"wp-image-{repair.asset.id}",
                    text,
                )
            logger.info("[#%d] Replacing [%s] with [%s]", document.id, image.url, repair.url)
        return FixResult(text, unresolved)


FIXERS: Dict[str, Type[Fixer]] = {
    fixer.name: fixer
    for fixer in (InternalLinksFixer, ImgSrcFromLinksFixer, ImageHrefsFixer, UnicodeImagesFixer)
}


def build_fixer(
    name: str,
    store: DocumentStore,
    config: RunConfig,
    prober: Optional[Prober] = None,
) -> Fixer:
    """Instantiate the fixer registered under ``name``."""
    try:
        fixer_cls = FIXERS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown fixer {name!r}; choose from {', '.join(FIXERS)}") from None
    if fixer_cls is UnicodeImagesFixer:
        return UnicodeImagesFixer(store, config, prober=prober)
    return fixer_cls(store, config)
