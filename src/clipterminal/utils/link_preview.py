"""Link classification and a best-effort Open Graph extractor.

The extractor is deliberately narrow. A ``<meta>`` tag is recognised only
when its ``property``/``name`` attribute is directly followed by ``content``
or ``content`` is directly followed by ``property``/``name`` (whitespace
between them, any attributes before them). Tags whose key attributes are
split by other attributes are missed.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urljoin, urlparse

OG_KEYS = ("og:title", "og:description", "og:image")

_KEY_ATTR = r"(?:property|name)\s*=\s*[\"']%s[\"']"
_CONTENT_ATTR = r"content\s*=\s*(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)')"

_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&amp;", "&"),
)


def _patterns(key: str):
    key_attr = _KEY_ATTR % re.escape(key)
    flags = re.IGNORECASE | re.DOTALL
    key_first = re.compile(r"<meta\b[^>]*?\b" + key_attr + r"\s+" + _CONTENT_ATTR, flags)
    content_first = re.compile(r"<meta\b[^>]*?\b" + _CONTENT_ATTR + r"\s+" + key_attr, flags)
    return key_first, content_first


_PATTERNS = {key: _patterns(key) for key in OG_KEYS}


@dataclass(frozen=True)
class LinkPreview:
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.title or self.description or self.image_url)


def is_link(text: Optional[str]) -> bool:
    """True for an absolute http(s) URL with a host, e.g. ``https://example.com/page``."""
    if not text:
        return False
    candidate = text.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return False
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return False
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.hostname)


def decode_entities(value: str) -> str:
    for entity, char in _ENTITIES:
        value = value.replace(entity, char)
    return value


def _match(markup: str, key: str) -> Optional[str]:
    key_first, content_first = _PATTERNS[key]
    match = key_first.search(markup) or content_first.search(markup)
    if not match:
        return None
    raw = match.group("dq") if match.group("dq") is not None else match.group("sq")
    value = decode_entities(raw).strip()
    return value or None


def extract_og_tags(markup: str) -> Dict[str, str]:
    found = {}
    for key in OG_KEYS:
        value = _match(markup, key)
        if value is not None:
            found[key] = value
    return found


def _resolve_image_url(image_url: str, page_url: Optional[str]) -> Optional[str]:
    try:
        if page_url:
            image_url = urljoin(page_url, image_url)
        scheme = urlparse(image_url).scheme.lower()
    except ValueError:
        return None
    return image_url if scheme in {"http", "https"} else None


def extract_preview(markup: str, page_url: Optional[str] = None) -> LinkPreview:
    tags = extract_og_tags(markup)
    image_url = tags.get("og:image")
    if image_url:
        image_url = _resolve_image_url(image_url, page_url)
    return LinkPreview(
        title=tags.get("og:title"),
        description=tags.get("og:description"),
        image_url=image_url,
    )
