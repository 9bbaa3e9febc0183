from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from scraper.config import DEFAULT_MAX_PAGES, MAX_PAGES_CAP
from scraper.normalizer import is_http_url


class CrawlMode(str, Enum):
    SINGLE = "single"
    MULTIPAGE = "multipage"


class RunState(str, Enum):
    SEEDING = "SEEDING"
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    SEALED = "SEALED"


class StopReason(str, Enum):
    PAGE_BUDGET = "page_budget"
    DEADLINE = "deadline"
    ERROR_BUDGET = "error_budget"
    FRONTIER_EXHAUSTED = "frontier_exhausted"
    NATIVE_COMPLETE = "native_complete"
    SINGLE_MODE = "single_mode"


class InvalidCrawlRequest(ValueError):
    """Rejected before any run starts. code is one of the API error codes."""

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message


class RunSealedError(RuntimeError):
    """Raised on any attempt to mutate a CrawlRun after seal()."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class CrawlRequest:
    """
    Input schema for one crawl run.
    Validated once in from_payload() and never changed afterwards.
    """
    url: str
    mode: CrawlMode = CrawlMode.SINGLE
    max_pages: int = DEFAULT_MAX_PAGES
    extract_links: bool = True
    extract_images: bool = True
    extract_meta: bool = True
    detect_technologies: bool = True
    detect_cms: bool = True

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]], *, default_max_pages=DEFAULT_MAX_PAGES,
                     max_pages_cap=MAX_PAGES_CAP) -> "CrawlRequest":
        payload = payload if isinstance(payload, dict) else {}

        url = payload.get("url")
        if url is None or (isinstance(url, str) and not url.strip()):
            raise InvalidCrawlRequest("MISSING_URL", "URL is required")
        if not isinstance(url, str) or not is_http_url(url):
            raise InvalidCrawlRequest("INVALID_URL", "Invalid URL format")

        mode = payload.get("mode") or CrawlMode.SINGLE.value
        if mode not in (CrawlMode.SINGLE.value, CrawlMode.MULTIPAGE.value):
            raise InvalidCrawlRequest("INVALID_MODE", 'Mode must be either "single" or "multipage"')

        max_pages = payload.get("maxPages", default_max_pages)
        if max_pages is None:
            max_pages = default_max_pages
        if isinstance(max_pages, bool) or (isinstance(max_pages, float) and not max_pages.is_integer()):
            raise InvalidCrawlRequest("PAGE_LIMIT_EXCEEDED", "maxPages must be a positive integer")
        try:
            max_pages = int(max_pages)
        except (TypeError, ValueError):
            raise InvalidCrawlRequest("PAGE_LIMIT_EXCEEDED", "maxPages must be a positive integer")
        if max_pages < 1:
            raise InvalidCrawlRequest("PAGE_LIMIT_EXCEEDED", "maxPages must be a positive integer")
        if max_pages > max_pages_cap:
            raise InvalidCrawlRequest("PAGE_LIMIT_EXCEEDED", f"maxPages cannot exceed {max_pages_cap}")

        def flag(name):
            return bool(payload.get(name, True))

        return cls(
            url=url.strip(),
            mode=CrawlMode(mode),
            max_pages=max_pages,
            extract_links=flag("extractLinks"),
            extract_images=flag("extractImages"),
            extract_meta=flag("extractMeta"),
            detect_technologies=flag("detectTechnologies"),
            detect_cms=flag("detectCMS"),
        )


@dataclass(frozen=True)
class Link:
    href: str
    text: str
    is_external: bool

    def to_dict(self):
        return {"href": self.href, "text": self.text, "isExternal": self.is_external}


@dataclass(frozen=True)
class Image:
    src: str
    alt: str
    full_tag: str

    def to_dict(self):
        return {"src": self.src, "alt": self.alt, "fullTag": self.full_tag}


@dataclass(frozen=True)
class MetaTag:
    name: str
    content: str
    full_tag: str

    def to_dict(self):
        return {"name": self.name, "content": self.content, "fullTag": self.full_tag}


@dataclass(frozen=True)
class Favicon:
    href: str
    rel: str = "icon"
    sizes: Optional[str] = None
    type: Optional[str] = None
    full_tag: Optional[str] = None
    is_default: bool = False

    def to_dict(self):
        return {
            "href": self.href,
            "rel": self.rel,
            "sizes": self.sizes,
            "type": self.type,
            "fullTag": self.full_tag,
            "isDefault": self.is_default,
        }


@dataclass(frozen=True)
class PageResult:
    """One successfully fetched page. Created once, never modified."""
    url: str
    final_url: str
    status: int
    title: str
    html: str
    content: str
    links: Tuple[Link, ...] = ()
    images: Tuple[Image, ...] = ()
    meta_tags: Tuple[MetaTag, ...] = ()
    favicons: Tuple[Favicon, ...] = ()
    technologies: Tuple[str, ...] = ()
    fetched_at: str = field(default_factory=utc_now_iso)

    def to_dict(self):
        return {
            "url": self.url,
            "finalUrl": self.final_url,
            "statusCode": self.status,
            "title": self.title,
            "html": self.html,
            "content": self.content,
            "links": [l.to_dict() for l in self.links],
            "images": [i.to_dict() for i in self.images],
            "metaTags": [m.to_dict() for m in self.meta_tags],
            "technologies": list(self.technologies),
            "favicons": [f.to_dict() for f in self.favicons],
            "timestamp": self.fetched_at,
        }


def _unique(items):
    seen, out = set(), []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def empty_cms() -> Dict[str, Any]:
    return {"type": "unknown", "version": None, "plugins": []}


@dataclass
class CrawlRun:
    """
    Aggregate state of one crawl run.

    Mutated only by the orchestrator's control loop. seal() freezes the
    collections and any later assignment raises RunSealedError.
    """
    request: CrawlRequest
    strategy: str
    started_at: datetime
    started_clock: float
    deadline: float
    error_budget: int
    state: RunState = RunState.SEEDING
    pages: List[PageResult] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    meta_tags: List[MetaTag] = field(default_factory=list)
    technologies: List[str] = field(default_factory=list)
    favicons: List[Favicon] = field(default_factory=list)
    cms: Dict[str, Any] = field(default_factory=empty_cms)
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    visited_count: int = 0
    fell_back: bool = False
    aborted: bool = False
    stop_reason: Optional[StopReason] = None
    ended_at: Optional[datetime] = None
    elapsed: float = 0.0

    def __setattr__(self, name, value):
        if self.__dict__.get("_sealed"):
            raise RunSealedError(f"CrawlRun is sealed; cannot set {name}")
        super().__setattr__(name, value)

    @property
    def sealed(self) -> bool:
        return bool(self.__dict__.get("_sealed"))

    def _ensure_open(self):
        if self.sealed:
            raise RunSealedError("CrawlRun is sealed")

    def add_page(self, page: PageResult) -> None:
        self._ensure_open()
        self.pages.append(page)
        self.success_count += 1
        self.links.extend(link.href for link in page.links)
        self.images.extend(image.src for image in page.images)
        self.meta_tags.extend(page.meta_tags)
        self.technologies.extend(page.technologies)
        self.favicons.extend(page.favicons)

    def drain(self, ended_at: datetime, elapsed: float) -> None:
        """Deduplicate the aggregate collections and record timing."""
        self._ensure_open()
        self.state = RunState.DRAINING
        self.links = _unique(self.links)
        self.images = _unique(self.images)
        self.meta_tags = _unique(self.meta_tags)
        self.technologies = _unique(self.technologies)
        self.favicons = _unique(self.favicons)
        self.ended_at = ended_at
        self.elapsed = max(0.0, elapsed)

    def seal(self) -> "CrawlRun":
        self._ensure_open()
        self.state = RunState.SEALED
        for name in ("pages", "links", "images", "meta_tags", "technologies", "favicons"):
            super().__setattr__(name, tuple(getattr(self, name)))
        super().__setattr__("cms", dict(self.cms))
        super().__setattr__("_sealed", True)
        return self

    @property
    def pages_per_second(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return len(self.pages) / self.elapsed

    def to_response(self) -> Dict[str, Any]:
        request = self.request
        ended_at = self.ended_at or self.started_at
        total_ms = int(round(self.elapsed * 1000))
        favicons = [f.to_dict() for f in self.favicons]
        cms = dict(self.cms)
        return {
            "url": request.url,
            "mode": request.mode.value,
            "summary": {
                "totalPages": len(self.pages),
                "totalLinks": len(self.links),
                "totalImages": len(self.images),
                "totalMetaTags": len(self.meta_tags),
                "totalFavicons": len(self.favicons),
                "technologiesFound": len(self.technologies),
                "technologies": list(self.technologies),
                "favicons": favicons,
                "cmsDetected": cms.get("type", "unknown") != "unknown",
            },
            "pages": [p.to_dict() for p in self.pages],
            "extractedData": {
                "links": list(self.links),
                "images": list(self.images),
                "metaTags": [m.to_dict() for m in self.meta_tags],
                "technologies": list(self.technologies),
                "favicons": favicons,
                "cms": cms,
            },
            "performance": {
                "startTime": self.started_at.isoformat().replace("+00:00", "Z"),
                "endTime": ended_at.isoformat().replace("+00:00", "Z"),
                "totalTime": total_ms,
                "pagesPerSecond": round(self.pages_per_second, 3),
            },
            "crawlStats": {
                "strategy": self.strategy,
                "fellBack": self.fell_back,
                "successCount": self.success_count,
                "errorCount": self.error_count,
                "errorBudget": self.error_budget,
                "skippedCount": self.skipped_count,
                "visitedCount": self.visited_count,
                "stopReason": self.stop_reason.value if self.stop_reason else None,
            },
        }

