"""
Offline stand-ins shared by the test modules: a clock, a direct strategy that
serves canned pages, and a native engine that replays scripted events.
"""

from scraper.fetcher import FetchResponse, HTTPStatusError, PageEvent
from scraper.models import CrawlMode, CrawlRequest
from scraper.policy import BackoffPolicy, FetchPolicy

SEED = "https://site.test/"


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSite:
    """
    Direct strategy serving pages from a dict keyed by URL.
    A value is either HTML, a (final_url, html) pair, or an exception to raise.
    Unknown URLs answer 404.
    """
    name = "direct_http"

    def __init__(self, pages, clock=None, step=0.0):
        self.pages = pages
        self.clock = clock
        self.step = step
        self.calls = []

    def fetch(self, url, timeout=None, max_bytes=None):
        self.calls.append(url)
        if self.clock is not None:
            self.clock.advance(self.step)
        outcome = self.pages.get(url)
        if outcome is None:
            raise HTTPStatusError(url, 404)
        if isinstance(outcome, Exception):
            raise outcome
        final_url, body = outcome if isinstance(outcome, tuple) else (url, outcome)
        return FetchResponse(url=url, final_url=final_url, status=200, body=body)


class FakeNative:
    """Native engine replaying events; an Exception in the script is raised at that point."""
    name = "native"

    def __init__(self, script):
        self.script = script
        self.calls = 0

    def crawl(self, seed, page_budget):
        self.calls += 1
        return self._replay()

    def _replay(self):
        for item in self.script:
            if isinstance(item, Exception):
                raise item
            yield item


def event(url, body="<html><title>t</title></html>", status=200, error=None):
    return PageEvent(url=url, status=status, body=body, error=error)


def page(*hrefs, title="Page"):
    links = "".join(f'<a href="{href}">{href}</a>' for href in hrefs)
    return f"<html><head><title>{title}</title></head><body>{links}</body></html>"


def make_request(url=SEED, mode=CrawlMode.MULTIPAGE, max_pages=10, **flags):
    return CrawlRequest(url=url, mode=mode, max_pages=max_pages, **flags)


def quick_policy(attempts=2, strict_attempts=3):
    return FetchPolicy(
        strict_hosts=["github.com"],
        attempts=attempts,
        strict_attempts=strict_attempts,
        backoff=BackoffPolicy(base_delay=1.0, rate_limit_delay=5.0),
    )
