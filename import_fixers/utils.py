"""Utility helpers for filename transliteration and upload paths."""

from __future__ import annotations

import unicodedata
from typing import Tuple
from urllib.parse import quote, unquote

# Letters that do not decompose into a base letter plus combining marks.
_LIGATURES = str.maketrans(
    {
        "ß": "ss",
        "æ": "ae",
        "Æ": "AE",
        "œ": "oe",
        "Œ": "OE",
        "ø": "o",
        "Ø": "O",
        "đ": "d",
        "Đ": "D",
        "ð": "d",
        "Ð": "D",
        "ł": "l",
        "Ł": "L",
        "þ": "th",
        "Þ": "TH",
    }
)

_URL_SAFE_CHARS = ":/?#[]@!$&'()*+,;=%~"


def remove_accents(value: str) -> str:
    """Strip accents from Latin characters, leaving other characters alone."""
    if value.isascii():
        return value
    decomposed = unicodedata.normalize("NFKD", value.translate(_LIGATURES))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def split_filename(url: str) -> Tuple[str, str]:
    """Split a URL into its directory part and its final path segment."""
    head, sep, filename = url.rpartition("/")
    if not sep:
        return "", url
    return head, filename


def transliterate_url(url: str) -> str:
    """Return ``url`` with an accent-free (and unescaped) filename."""
    head, filename = split_filename(url)
    cleaned = remove_accents(unquote(filename))
    return f"{head}/{cleaned}" if head else cleaned


def needs_transliteration(url: str) -> bool:
    return transliterate_url(url) != url


def encode_url(url: str) -> str:
    """Percent-encode non-ASCII characters while keeping existing escapes."""
    return quote(url, safe=_URL_SAFE_CHARS)


def upload_relative_path(url: str, upload_base_url: str) -> str:
    """Return the path of ``url`` relative to the upload base URL."""
    base = upload_base_url.rstrip("/") + "/"
    if url.startswith(base):
        return url[len(base):]
    return split_filename(url)[1]
