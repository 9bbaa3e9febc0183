"""
HTTP fetching for the scraper.

Two interchangeable strategies, chosen once per crawl run:
- DirectHTTPStrategy: one URL per call through requests, bounded redirects,
  browser-like headers and a hard response size cap.
- NativeCrawlerStrategy: hands the seed and page budget to the native crawling
  engine and streams back the pages it collected.

Every failure is raised as a FetchError subclass so the orchestrator can
classify it without looking at requests internals.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator

import requests

from scraper.config import MAX_REDIRECTS, MAX_RESPONSE_BYTES, REQUEST_TIMEOUT, USER_AGENT
from scraper.policy import FailureKind

logger = logging.getLogger(__name__)

# Content types that can carry links and markup
TEXTUAL_CONTENT_TYPES = ("text/", "application/xhtml", "application/xml", "application/json", "+xml")


# === FAILURES ===

class FetchError(Exception):
    """Base class for a failed page fetch."""
    kind = FailureKind.OTHER
    # Skips mark the URL visited but neither retry nor count against the error budget
    skip = False

    def __init__(self, url, message=""):
        super().__init__(message or self.__class__.__name__)
        self.url = url


class FetchTimeout(FetchError):
    kind = FailureKind.TIMEOUT


class NetworkError(FetchError):
    pass


class HTTPStatusError(FetchError):
    def __init__(self, url, status, message=""):
        super().__init__(url, message or f"http error: {status}")
        self.status = status


class RateLimited(HTTPStatusError):
    kind = FailureKind.RATE_LIMITED

    def __init__(self, url, status=429, message=""):
        super().__init__(url, status, message or "http error: 429 (rate limited)")


class TooLarge(FetchError):
    skip = True

    def __init__(self, url, size, limit):
        super().__init__(url, f"response larger than {limit} bytes ({size} read)")
        self.size = size
        self.limit = limit


class UnsupportedContent(FetchError):
    skip = True

    def __init__(self, url, content_type):
        super().__init__(url, f"ignored content type: {content_type}")
        self.content_type = content_type


@dataclass(frozen=True)
class FetchResponse:
    url: str
    final_url: str
    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)


def _is_textual(content_type: str) -> bool:
    return any(marker in content_type for marker in TEXTUAL_CONTENT_TYPES)


def _charset(content_type: str) -> str | None:
    for part in content_type.split(";"):
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip("\"' ")
    return None


# === DIRECT HTTP ===

class DirectHTTPStrategy:
    """
    FLOW: GET with fixed browser headers -> follow up to max_redirects ->
    reject non-2xx -> stream the body and abort once max_bytes is exceeded ->
    decode to text.
    """
    name = "direct_http"

    HEADERS = {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }
    CHUNK_SIZE = 64 * 1024

    def __init__(self, timeout=REQUEST_TIMEOUT, max_bytes=MAX_RESPONSE_BYTES,
                 max_redirects=MAX_REDIRECTS, session=None):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects
        self.session.headers.update(self.HEADERS)

    def fetch(self, url, timeout=None, max_bytes=None) -> FetchResponse:
        timeout = self.timeout if timeout is None else timeout
        max_bytes = self.max_bytes if max_bytes is None else max_bytes

        try:
            with self.session.get(url, timeout=timeout, stream=True, allow_redirects=True) as r:
                if r.status_code == 429:
                    raise RateLimited(url)
                if not 200 <= r.status_code < 300:
                    raise HTTPStatusError(url, r.status_code)

                content_type = (r.headers.get("Content-Type") or "").lower()
                if content_type and not _is_textual(content_type):
                    raise UnsupportedContent(url, content_type)

                declared = str(r.headers.get("Content-Length") or "")
                if declared.isdigit() and int(declared) > max_bytes:
                    raise TooLarge(url, int(declared), max_bytes)

                body = self._read_capped(r, url, max_bytes)
                return FetchResponse(
                    url=url,
                    final_url=r.url or url,
                    status=r.status_code,
                    body=self._decode(body, content_type),
                    headers=dict(r.headers),
                )
        except requests.exceptions.Timeout as e:
            raise FetchTimeout(url, str(e)) from e
        except requests.exceptions.TooManyRedirects as e:
            raise NetworkError(url, f"more than {self.session.max_redirects} redirects") from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(url, str(e)) from e

    def _read_capped(self, response, url, max_bytes) -> bytes:
        chunks, total = [], 0
        for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
            if not chunk:
                continue
            total += len(chunk)
            if total > max_bytes:
                raise TooLarge(url, total, max_bytes)
            chunks.append(chunk)
        return b"".join(chunks)

    @staticmethod
    def _decode(body: bytes, content_type: str) -> str:
        encoding = _charset(content_type) or "utf-8"
        try:
            return body.decode(encoding, errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")


# === NATIVE CRAWLER ===

@dataclass(frozen=True)
class PageEvent:
    """One page reported by the native crawling engine."""
    url: str
    status: int
    body: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status < 400


class _PageCollector:
    """Subscription callable handed to the engine; keeps pages in arrival order."""

    def __init__(self, pages):
        self.pages = pages

    def __call__(self, page):
        self.pages.append(page)


def build_spider_website(seed: str, page_budget: int, timeout: float = REQUEST_TIMEOUT,
                         user_agent: str = USER_AGENT):
    """
    Build a budgeted spider_rs Website (installed with the 'native' extra).
    The per-request timeout is given to the engine in milliseconds.
    """
    from spider_rs import Website

    return (
        Website(seed)
        .with_budget({"*": page_budget})
        .with_request_timeout(int(timeout * 1000))
        .with_user_agent(user_agent)
        .build()
    )


class NativeCrawlerStrategy:
    """
    FLOW: Builds the engine for (seed, budget) -> runs its crawl with a page
    subscription -> yields a PageEvent per collected page.
    Setup and crawl errors propagate; the orchestrator decides on fallback.
    """
    name = "native"

    def __init__(self, engine_factory: Callable[..., object] = build_spider_website,
                 timeout=REQUEST_TIMEOUT, user_agent=USER_AGENT):
        self.engine_factory = engine_factory
        self.timeout = timeout
        self.user_agent = user_agent

    def crawl(self, seed: str, page_budget: int) -> Iterator[PageEvent]:
        website = self.engine_factory(seed, page_budget, timeout=self.timeout, user_agent=self.user_agent)
        pages = []
        website.crawl(_PageCollector(pages))
        logger.info(f"Native engine returned {len(pages)} pages for {seed}")

        for page in pages:
            status = getattr(page, "status_code", None)
            yield PageEvent(
                url=str(getattr(page, "url", "") or ""),
                status=int(status) if status is not None else 200,
                body=getattr(page, "content", "") or "",
            )
