"""Structural fixes on HTML fragments.

Markup is parsed with BeautifulSoup only to *find* the tags that need to
change. The changes themselves are spliced into the original string at the
source position of each start tag, so everything outside the rewritten
attribute values (quoting, entities, whitespace, void-tag style) survives
byte for byte.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from .images import image_mime_type, parse_fragment
from .models import AssetRecord

logger = logging.getLogger("import_fixers")

_TAG_SPAN = re.compile(r"""<(?P<name>[^\s/>]+)(?:"[^"]*"|'[^']*'|[^'">])*>""")
_ATTR_GAP = re.compile(r"[\s/]*")
_ATTR = re.compile(r"""(?P<name>[^\s"'>/=]+)(?:\s*=\s*(?P<value>"[^"]*"|'[^']*'|[^\s"'>]+))?""")
_ATTACHMENT_TOKEN = re.compile(r"(?<![\w-])wp-image-\d+(?![\w-])")

AssetLookup = Callable[[str], Optional[AssetRecord]]


def _find_attribute(tag_text: str, name: str) -> Optional[re.Match]:
    """Locate attribute ``name`` inside the raw text of a start tag."""
    head = _TAG_SPAN.match(tag_text)
    if head is None:
        return None
    pos = head.start() + 1 + len(head.group("name"))
    while pos < len(tag_text):
        pos = _ATTR_GAP.match(tag_text, pos).end()
        attr = _ATTR.match(tag_text, pos)
        if attr is None:
            return None
        if attr.group("name").lower() == name:
            return attr
        pos = attr.end()
    return None


def read_attribute(tag_text: str, name: str) -> Optional[str]:
    """Return the raw (still entity-encoded) value of an attribute."""
    attr = _find_attribute(tag_text, name)
    if attr is None:
        return None
    value = attr.group("value") or ""
    if value[:1] in ("'", '"'):
        value = value[1:-1]
    return value


def set_attribute(tag_text: str, name: str, value: str, raw: bool = False) -> str:
    """Rewrite the value of an existing attribute, keeping its quote style.

    ``value`` is entity-encoded unless ``raw`` is set. Tags without the
    attribute are returned unchanged.
    """
    attr = _find_attribute(tag_text, name)
    if attr is None:
        return tag_text
    old_value = attr.group("value") or ""
    quote = old_value[0] if old_value[:1] in ("'", '"') else '"'
    if not raw:
        value = html.escape(value, quote=False)
    value = value.replace(quote, "&quot;" if quote == '"' else "&#39;")
    replacement = f"{attr.group('name')}={quote}{value}{quote}"
    return tag_text[: attr.start()] + replacement + tag_text[attr.end():]


@dataclass
class Fragment:
    """Original markup plus the parse tree used to address its tags."""

    text: str
    soup: BeautifulSoup
    _line_starts: List[int] = field(default_factory=list)
    _edits: Dict[int, Tuple[int, str]] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> Optional["Fragment"]:
        soup = parse_fragment(text)
        if soup is None:
            return None
        line_starts = [0] + [i + 1 for i, ch in enumerate(text) if ch == "\n"]
        return cls(text=text, soup=soup, _line_starts=line_starts)

    def tag_span(self, tag: Tag) -> Optional[Tuple[int, int]]:
        """Return the ``(start, end)`` offsets of ``tag``'s start tag."""
        if tag.sourceline is None or tag.sourcepos is None:
            return None
        if tag.sourceline > len(self._line_starts):
            return None
        start = self._line_starts[tag.sourceline - 1] + tag.sourcepos
        match = _TAG_SPAN.match(self.text, start)
        if match is None or match.group("name").lower() != tag.name:
            logger.debug("Could not locate <%s> at line %s", tag.name, tag.sourceline)
            return None
        return start, match.end()

    def current_tag_text(self, tag: Tag) -> Optional[str]:
        span = self.tag_span(tag)
        if span is None:
            return None
        start, end = span
        if start in self._edits:
            return self._edits[start][1]
        return self.text[start:end]

    def replace_tag_text(self, tag: Tag, new_text: str) -> bool:
        """Schedule a replacement for ``tag``'s start tag; ``False`` if a no-op."""
        span = self.tag_span(tag)
        if span is None:
            return False
        start, end = span
        if new_text == self.text[start:end]:
            self._edits.pop(start, None)
            return False
        self._edits[start] = (end, new_text)
        return True

    @property
    def changed(self) -> bool:
        return bool(self._edits)

    def render(self) -> str:
        """Return the original text with all scheduled tag replacements applied."""
        if not self._edits:
            return self.text
        pieces = []
        cursor = 0
        for start in sorted(self._edits):
            end, new_text = self._edits[start]
            if start < cursor:
                continue
            pieces.append(self.text[cursor:start])
            pieces.append(new_text)
            cursor = end
        pieces.append(self.text[cursor:])
        return "".join(pieces)


def raw_attribute_values(fragment: str, tag_name: str, attribute: str) -> Dict[str, List[str]]:
    """Map each decoded attribute value to its spellings in the source text.

    Values containing character references (``&amp;``, ``&#038;``) are
    decoded by the parser, so the source has to be searched for the raw form.
    """
    parsed = Fragment.parse(fragment)
    if parsed is None:
        return {}
    values: Dict[str, List[str]] = {}
    for tag in parsed.soup.find_all(tag_name):
        decoded = tag.get(attribute)
        raw = read_attribute(parsed.current_tag_text(tag) or "", attribute)
        if not decoded or raw is None:
            continue
        spellings = values.setdefault(decoded.strip(), [])
        if raw.strip() not in spellings:
            spellings.append(raw.strip())
    return values


def _wrapped_images(anchor: Tag) -> List[Tag]:
    return anchor.find_all("img", recursive=False)


def fill_empty_image_srcs(fragment: str) -> Tuple[str, bool]:
    """Give ``<img src="">`` tags the URL of the image their anchor links to.

    Only images that are direct children of an anchor whose ``href`` points
    at an image file are touched. When nothing qualifies the input is
    returned as-is with ``changed=False``.
    """
    parsed = Fragment.parse(fragment)
    if parsed is None:
        return fragment, False

    for anchor in parsed.soup.find_all("a", href=True):
        href = anchor.get("href", "").strip()
        if not href:
            continue
        empty_images = [img for img in _wrapped_images(anchor) if img.get("src") == ""]
        if not empty_images:
            continue
        mime_type = image_mime_type(href)
        if not mime_type:
            continue
        for img in empty_images:
            tag_text = parsed.current_tag_text(img)
            if tag_text is None:
                continue
            raw_href = read_attribute(parsed.current_tag_text(anchor) or "", "href")
            if raw_href is not None and raw_href.strip():
                new_tag = set_attribute(tag_text, "src", raw_href.strip(), raw=True)
            else:
                new_tag = set_attribute(tag_text, "src", href)
            parsed.replace_tag_text(img, new_tag)

    if not parsed.changed:
        return fragment, False
    return parsed.render(), True


def retarget_image_hrefs(
    fragment: str,
    resolve_asset: AssetLookup,
    replace_with: str = "permalink",
) -> Tuple[str, bool]:
    """Point anchors that wrap an uploaded image at that image's asset.

    ``resolve_asset`` maps an image ``src`` to its :class:`AssetRecord` (or
    ``None``). The anchor's ``href`` becomes the asset permalink or its file
    URL depending on ``replace_with``, and any ``wp-image-<id>`` class on the
    image is renumbered to the asset id. Unresolvable images are left alone.
    """
    parsed = Fragment.parse(fragment)
    if parsed is None:
        return fragment, False

    for anchor in parsed.soup.find_all("a", href=True):
        target: Optional[AssetRecord] = None
        for img in _wrapped_images(anchor):
            src = (img.get("src") or "").strip()
            if not src:
                continue
            asset = resolve_asset(src)
            if asset is None:
                continue
            if target is None:
                target = asset
            img_text = parsed.current_tag_text(img)
            raw_class = read_attribute(img_text or "", "class")
            if img_text is None or raw_class is None:
                continue
            new_class = _ATTACHMENT_TOKEN.sub(f"wp-image-{asset.id}", raw_class)
            parsed.replace_tag_text(img, set_attribute(img_text, "class", new_class, raw=True))

        if target is None:
            continue
        new_href = target.permalink if replace_with == "permalink" else target.url
        anchor_text = parsed.current_tag_text(anchor)
        if not new_href or anchor_text is None:
            continue
        if html.unescape(read_attribute(anchor_text, "href") or "") == new_href:
            continue
        parsed.replace_tag_text(anchor, set_attribute(anchor_text, "href", new_href))

    if not parsed.changed:
        return fragment, False
    return parsed.render(), True
