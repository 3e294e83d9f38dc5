"""Hyperlink detection in raw document markup."""

from __future__ import annotations

import re
from typing import Iterator, List
from urllib.parse import urlparse

from .models import LinkMatch

# The closing quote must match the opening one, so an apostrophe inside a
# double-quoted href (or after a single-quoted one) does not end the match.
LINK_PATTERN = re.compile(r"""href=(['"])(?P<href>(?!\1).+?)\1""", re.IGNORECASE)


def iter_links(text: str) -> Iterator[LinkMatch]:
    """Yield every ``href=`` attribute in ``text``, first to last."""
    for match in LINK_PATTERN.finditer(text):
        yield LinkMatch(raw=match.group(0), quote=match.group(1), href=match.group("href"))


def extract_links(text: str) -> List[LinkMatch]:
    """Return all links found in ``text`` in document order."""
    return list(iter_links(text))


def link_host(href: str) -> str:
    """Return the lowercase host of ``href`` or an empty string for relative links."""
    try:
        return urlparse(href.strip()).hostname or ""
    except ValueError:
        return ""


def normalise_domain(value: str) -> str:
    """Return the host name of a bare domain (``example.com``) or a full URL."""
    value = value.strip()
    if not value:
        return ""
    if "//" not in value:
        value = f"http://{value}"
    return link_host(value)
