"""
Content extraction from fetched markup.
Pulls title, links, images, meta tags, favicons and visible text out of raw HTML.

Matching is pattern based, so broken markup simply yields fewer matches.
Nothing in this module performs network access or raises on bad input.
"""

import html as htmllib
import re
from dataclasses import dataclass
from typing import Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from scraper.models import Favicon, Image, Link, MetaTag
from scraper.normalizer import host_of

NO_TITLE = "No title found"

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_ANCHOR_RE = re.compile(
    r"<a\b[^>]*?\bhref\s*=\s*[\"']([^\"']+)[\"'][^>]*>(.*?)</a\s*>",
    re.IGNORECASE | re.DOTALL,
)
_IMG_RE = re.compile(r"<img\b[^>]*?\bsrc\s*=\s*[\"']([^\"']+)[\"'][^>]*>", re.IGNORECASE | re.DOTALL)
_META_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE | re.DOTALL)
_LINK_TAG_RE = re.compile(r"<link\b[^>]*>", re.IGNORECASE | re.DOTALL)
_INVISIBLE_RE = re.compile(
    r"<(script|style|noscript|template)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")

FAVICON_RELS = {"icon", "shortcut icon", "apple-touch-icon"}
SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")


@dataclass(frozen=True)
class ExtractedPage:
    title: str
    links: Tuple[Link, ...]
    images: Tuple[Image, ...]
    meta_tags: Tuple[MetaTag, ...]
    favicons: Tuple[Favicon, ...]
    text: str


def _attr(tag: str, name: str) -> str | None:
    """Value of attribute name inside a single tag string, quoted or bare."""
    match = re.search(
        rf"\b{re.escape(name)}\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'>]+))",
        tag,
        re.IGNORECASE,
    )
    if not match:
        return None
    value = next(group for group in match.groups() if group is not None)
    return htmllib.unescape(value)


def _flatten(fragment: str) -> str:
    """Markup fragment -> single-line text with entities decoded."""
    if not fragment:
        return ""
    try:
        text = BeautifulSoup(fragment, "html.parser").get_text(" ")
    except Exception:
        text = htmllib.unescape(_TAG_RE.sub(" ", fragment))
    return _SPACE_RE.sub(" ", text).strip()


def _strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def resolve_href(href: str, page_url: str) -> str | None:
    """
    Absolute form of href as seen from page_url.
    '/path' resolves against the page origin, anything else against the page URL.
    Returns None for refs that do not point at a page (mailto:, tel:, #anchor, ...).
    """
    href = htmllib.unescape((href or "").strip())
    if not href or href.startswith("#") or href.lower().startswith(SKIPPED_SCHEMES):
        return None
    try:
        if href.startswith("/") and not href.startswith("//"):
            page = urlsplit(page_url)
            absolute = f"{page.scheme}://{page.netloc}{href}"
        else:
            absolute = urljoin(page_url, href)
        return _strip_fragment(absolute)
    except ValueError:
        return None


# === EXTRACTORS ===

def extract_title(html: str) -> str:
    match = _TITLE_RE.search(html or "")
    if not match:
        return NO_TITLE
    return _flatten(match.group(1)) or NO_TITLE


def extract_links(html: str, page_url: str, seed_url: str | None = None) -> Tuple[Link, ...]:
    """
    Every <a href> on the page as an absolute Link.
    A link is external iff its host differs from the seed host (the page host by default).
    """
    seed_host = host_of(seed_url or page_url)
    links = []
    for match in _ANCHOR_RE.finditer(html or ""):
        href = resolve_href(match.group(1), page_url)
        if not href:
            continue
        links.append(Link(
            href=href,
            text=_flatten(match.group(2)),
            is_external=host_of(href) != seed_host,
        ))
    return tuple(links)


def extract_images(html: str, page_url: str) -> Tuple[Image, ...]:
    images = []
    for match in _IMG_RE.finditer(html or ""):
        raw = htmllib.unescape(match.group(1).strip())
        if not raw:
            continue
        if raw.lower().startswith("data:"):
            src = raw
        else:
            try:
                src = urljoin(page_url, raw)
            except ValueError:
                src = raw
        tag = match.group(0)
        images.append(Image(src=src, alt=_attr(tag, "alt") or "", full_tag=tag))
    return tuple(images)


def extract_meta_tags(html: str) -> Tuple[MetaTag, ...]:
    tags = []
    for match in _META_RE.finditer(html or ""):
        tag = match.group(0)
        name = _attr(tag, "name") or _attr(tag, "property")
        content = _attr(tag, "content")
        if name and content:
            tags.append(MetaTag(name=name, content=content, full_tag=tag))
    return tuple(tags)


def extract_favicons(html: str, page_url: str) -> Tuple[Favicon, ...]:
    """Declared icons plus the conventional /favicon.ico when the page does not declare it."""
    favicons = []
    for match in _LINK_TAG_RE.finditer(html or ""):
        tag = match.group(0)
        rel = (_attr(tag, "rel") or "").strip()
        if rel.lower() not in FAVICON_RELS:
            continue
        href = resolve_href(_attr(tag, "href") or "", page_url)
        if not href:
            continue
        favicons.append(Favicon(
            href=href,
            rel=rel,
            sizes=_attr(tag, "sizes"),
            type=_attr(tag, "type"),
            full_tag=tag,
        ))

    try:
        page = urlsplit(page_url)
        default = f"{page.scheme}://{page.netloc}/favicon.ico"
    except ValueError:
        return tuple(favicons)
    if page.scheme and page.netloc and not any(f.href == default for f in favicons):
        favicons.append(Favicon(href=default, rel="icon", type="image/x-icon", is_default=True))
    return tuple(favicons)


def extract_text(html: str) -> str:
    """Visible text: scripts, styles and comments removed, whitespace collapsed."""
    stripped = _COMMENT_RE.sub(" ", _INVISIBLE_RE.sub(" ", html or ""))
    return _flatten(stripped)


def extract_page(html: str, page_url: str, seed_url: str | None = None, *,
                 images: bool = True, meta: bool = True) -> ExtractedPage:
    """
    Full extraction for one page. Links are always extracted because the
    crawl needs them for discovery; images and meta tags follow the flags.
    """
    html = html or ""
    return ExtractedPage(
        title=extract_title(html),
        links=extract_links(html, page_url, seed_url),
        images=extract_images(html, page_url) if images else (),
        meta_tags=extract_meta_tags(html) if meta else (),
        favicons=extract_favicons(html, page_url),
        text=extract_text(html),
    )
