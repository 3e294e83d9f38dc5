"""Uploaded-image detection and image type helpers."""

from __future__ import annotations

import re
import warnings
from typing import Dict, List, Optional
from urllib.parse import unquote, urlparse

import filetype
from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning
from bs4.builder import ParserRejectedMarkup

from .models import ImageMatch

SUPPORTED_EXTENSIONS = ("jpg", "jpeg", "png", "bmp")

_SIZED_FILENAME = re.compile(r"-(?P<width>\d+)x(?P<height>\d+)(?=\.[A-Za-z0-9]+$)")
_ATTACHMENT_CLASS = re.compile(r"^wp-image-(?P<id>\d+)$")

# The registry only knows one spelling per type.
_EXTENSION_ALIASES = {"jpeg": "jpg", "jpe": "jpg", "tiff": "tif"}


def parse_fragment(text: str) -> Optional[BeautifulSoup]:
    """Parse a markup fragment, returning ``None`` when the parser gives up."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        try:
            return BeautifulSoup(text, "html.parser")
        except ParserRejectedMarkup:
            return None


def url_extension(url: str) -> str:
    path = unquote(urlparse(url).path)
    filename = path.rsplit("/", 1)[-1]
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def image_mime_type(url: str) -> Optional[str]:
    """Infer an image MIME type from the extension of ``url``."""
    extension = url_extension(url)
    if not extension:
        return None
    kind = filetype.get_type(ext=_EXTENSION_ALIASES.get(extension, extension))
    if kind and kind.mime.startswith("image/"):
        return kind.mime
    return None


def original_path(url: str) -> str:
    """Strip a ``-WIDTHxHEIGHT`` size suffix to get the full-size upload URL."""
    return _SIZED_FILENAME.sub("", url, count=1)


def image_size(url: str) -> str:
    match = _SIZED_FILENAME.search(url)
    if not match:
        return "full"
    return f"{match.group('width')}x{match.group('height')}"


def attachment_id_hint(classes) -> Optional[int]:
    """Return the id carried by a ``wp-image-<id>`` class token, if any."""
    if isinstance(classes, str):
        classes = classes.split()
    for token in classes or ():
        match = _ATTACHMENT_CLASS.match(token)
        if match:
            return int(match.group("id"))
    return None


def is_upload_image(src: str, upload_base_url: str) -> bool:
    base = upload_base_url.rstrip("/") + "/"
    if not src.startswith(base) or len(src) == len(base):
        return False
    return url_extension(src) in SUPPORTED_EXTENSIONS


def extract_images(text: str, upload_base_url: str) -> List[ImageMatch]:
    """Find uploaded images referenced by ``<img>`` tags, unique by URL."""
    if not upload_base_url or "<img" not in text.lower():
        return []
    soup = parse_fragment(text)
    if soup is None:
        return []

    found: Dict[str, ImageMatch] = {}
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if not src or src in found or not is_upload_image(src, upload_base_url):
            continue
        found[src] = ImageMatch(
            url=src,
            size=image_size(src),
            original_path=original_path(src),
            attachment_id=attachment_id_hint(img.get("class")),
            alt_text=(img.get("alt") or "").strip(),
        )
    return list(found.values())
