"""
Crawl orchestration for one request.

FLOW: SEEDING (validate, seed frontier, budgets, deadline, pick strategy) ->
RUNNING (pop frontier -> fetch with retry -> extract -> enqueue internal links,
until a budget, the deadline or the frontier runs out) -> DRAINING (dedupe
aggregates, timing) -> SEALED (read-only CrawlRun handed back).

Pages inside one run are fetched strictly one after another.
"""

import logging
import math
import time
import uuid
from datetime import datetime, timezone

from scraper.config import (
    MAX_CRAWL_DURATION,
    MAX_RESPONSE_BYTES,
    NATIVE_CRAWLER_ENABLED,
    REQUEST_TIMEOUT,
)
from scraper.extractor import extract_page
from scraper.fetcher import DirectHTTPStrategy, FetchError, NativeCrawlerStrategy
from scraper.frontier import Frontier
from scraper.models import (
    CrawlMode,
    CrawlRun,
    InvalidCrawlRequest,
    PageResult,
    RunState,
    StopReason,
)
from scraper.normalizer import is_http_url, normalize_url
from scraper.policy import FetchPolicy
from scraper.signatures import SignatureMatcher

logger = logging.getLogger(__name__)

ERROR_BUDGET_RATIO = 0.3
ERROR_BUDGET_MAX = 100


class NativeEngineError(RuntimeError):
    """The native engine finished without delivering a single page."""


def error_budget_for(page_budget):
    """min(30% of the page budget, 100), rounded up so the stop point matches the fractional form."""
    return math.ceil(min(page_budget * ERROR_BUDGET_RATIO, ERROR_BUDGET_MAX))


class CrawlOrchestrator:
    """
    Drives a single crawl run. Owns its Frontier and CrawlRun exclusively;
    one instance is used for exactly one run.
    """

    def __init__(self, request, *, direct=None, native=None, policy=None, signatures=None,
                 clock=time.monotonic, sleep=time.sleep, max_duration=MAX_CRAWL_DURATION,
                 timeout=REQUEST_TIMEOUT, max_bytes=MAX_RESPONSE_BYTES,
                 native_enabled=NATIVE_CRAWLER_ENABLED, run_id=None):
        self.request = request
        self.direct = direct or DirectHTTPStrategy()
        self.native = native if native is not None else (NativeCrawlerStrategy(timeout=timeout) if native_enabled else None)
        self.native_enabled = native_enabled
        self.policy = policy or FetchPolicy()
        self.signatures = signatures or SignatureMatcher()
        self.clock = clock
        self.sleep = sleep
        self.max_duration = max_duration
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.run_id = run_id or uuid.uuid4().hex[:8]
        self.frontier = Frontier()
        self.run = None

    def log(self, level, msg, **kwargs):
        getattr(logger, level)(msg, extra={"context": f"run-{self.run_id}"}, **kwargs)

    # === ENTRY POINT ===

    def execute(self) -> CrawlRun:
        if self.run is not None:
            raise RuntimeError("CrawlOrchestrator instances are single-use")
        run = self._seed()
        reason = self._run_loop(run)
        self._drain(run, reason)
        return run.seal()

    # === SEEDING ===

    def _seed(self) -> CrawlRun:
        request = self.request
        if not is_http_url(request.url):
            raise InvalidCrawlRequest("INVALID_URL", "Invalid URL format")
        if not isinstance(request.mode, CrawlMode):
            raise InvalidCrawlRequest("INVALID_MODE", 'Mode must be either "single" or "multipage"')

        # single mode always goes through direct HTTP; the choice is fixed for the run
        use_native = (
            request.mode is CrawlMode.MULTIPAGE
            and self.native_enabled
            and self.native is not None
        )
        strategy = self.native.name if use_native else self.direct.name

        now = self.clock()
        run = CrawlRun(
            request=request,
            strategy=strategy,
            started_at=datetime.now(timezone.utc),
            started_clock=now,
            deadline=now + self.max_duration,
            error_budget=error_budget_for(request.max_pages),
        )
        self.run = run
        self.frontier.offer(request.url)
        self.log(
            "info",
            f"Starting {request.mode.value} crawl of {request.url} "
            f"(strategy={strategy}, max_pages={request.max_pages}, error_budget={run.error_budget}, "
            f"deadline={self.max_duration:.0f}s)",
        )
        return run

    # === RUNNING ===

    def _budget_stop(self, run):
        """Stop conditions that apply to every strategy."""
        if len(run.pages) >= run.request.max_pages:
            return StopReason.PAGE_BUDGET
        if self.clock() > run.deadline:
            return StopReason.DEADLINE
        if run.error_count >= run.error_budget:
            return StopReason.ERROR_BUDGET
        return None

    def _run_loop(self, run):
        run.state = RunState.RUNNING
        if run.strategy == getattr(self.native, "name", None):
            reason = self._run_native(run)
            if reason is not None:
                return reason
        return self._run_direct(run)

    def _run_native(self, run):
        """
        Consume page events from the native engine. Returns a stop reason, or
        None after switching the run to direct HTTP for good.
        """
        request = self.request
        delivered = 0
        try:
            events = iter(self.native.crawl(request.url, request.max_pages))
        except Exception as e:
            return self._fall_back(run, delivered, e)

        while True:
            reason = self._budget_stop(run)
            if reason is not None:
                return reason
            # only the engine is guarded; errors from our own page handling propagate
            try:
                event = next(events)
            except StopIteration:
                break
            except Exception as e:
                return self._fall_back(run, delivered, e)
            delivered += 1
            self._handle_event(run, event)

        if delivered == 0:
            return self._fall_back(run, delivered, NativeEngineError("native engine delivered no pages"))
        return self._budget_stop(run) or StopReason.NATIVE_COMPLETE

    def _fall_back(self, run, delivered, error):
        self.log("warning", f"Native engine failed after {delivered} pages ({error!r}). Falling back to direct HTTP for the rest of this run.")
        run.strategy = self.direct.name
        run.fell_back = True
        return None

    def _handle_event(self, run, event):
        if not event.url or self.frontier.is_visited(event.url):
            return
        self.frontier.mark_visited(event.url)

        if not event.ok:
            run.error_count += 1
            self.log("warning", f"Native fetch failed for {event.url}: {event.error or event.status}")
            return
        if len(event.body.encode("utf-8", errors="ignore")) > self.max_bytes:
            run.skipped_count += 1
            self.log("info", f"Skipping large page: {event.url}")
            return
        self._record_page(run, event.url, event.url, event.status, event.body)

    def _run_direct(self, run):
        single = self.request.mode is CrawlMode.SINGLE
        while True:
            reason = self._budget_stop(run)
            if reason is not None:
                return reason
            if self.frontier.is_empty():
                return StopReason.FRONTIER_EXHAUSTED

            url = self.frontier.next()
            self.log(
                "info",
                f"Crawling page {len(run.pages) + 1}/{run.request.max_pages}: {url} "
                f"({run.success_count} ok, {run.error_count} errors, queue={len(self.frontier)})",
            )
            response = self._fetch_with_retry(run, url)
            if response is not None:
                self._record_page(run, url, response.final_url, response.status, response.body)

            if single:
                return StopReason.SINGLE_MODE

    def _fetch_with_retry(self, run, url):
        """
        Up to policy.attempts_for(url) attempts. Exhausting them counts as one
        error. Skips (oversized, non-textual) are neither retried nor counted.
        """
        attempts = self.policy.attempts_for(url)
        for attempt in range(1, attempts + 1):
            try:
                return self.direct.fetch(url, timeout=self.timeout, max_bytes=self.max_bytes)
            except FetchError as e:
                if e.skip:
                    run.skipped_count += 1
                    self.log("info", f"Skipping {url}: {e}")
                    return None
                if attempt < attempts:
                    delay = self.policy.delay_after(e.kind, attempt)
                    # never sleep past the run deadline
                    delay = min(delay, max(0.0, run.deadline - self.clock()))
                    self.log("warning", f"[RETRY {attempt}/{attempts - 1}] {e.kind.value} for {url}: {e}. Waiting {delay:.1f}s...")
                    if delay > 0:
                        self.sleep(delay)
                    continue
                run.error_count += 1
                self.log("error", f"Final attempt failed for {url}: {e} (errors {run.error_count}/{run.error_budget})")
                return None
        return None

    def _record_page(self, run, url, final_url, status, body):
        request = self.request
        extracted = extract_page(
            body,
            final_url,
            seed_url=request.url,
            images=request.extract_images,
            meta=request.extract_meta,
        )
        technologies = self.signatures.technologies(body, final_url) if request.detect_technologies else []
        if not run.pages and request.detect_cms:
            run.cms = self.signatures.detect_cms(body)

        run.add_page(PageResult(
            url=url,
            final_url=final_url,
            status=status,
            title=extracted.title,
            html=body,
            content=extracted.text,
            links=extracted.links if request.extract_links else (),
            images=extracted.images,
            meta_tags=extracted.meta_tags,
            favicons=extracted.favicons,
            technologies=tuple(technologies),
        ))
        if normalize_url(final_url) != normalize_url(url):
            self.frontier.mark_visited(final_url)

        if request.mode is CrawlMode.MULTIPAGE:
            added = 0
            for link in extracted.links:
                if not link.is_external and self.frontier.offer(link.href):
                    added += 1
            if added:
                self.log("info", f"Added {added} new links from {final_url}")

    # === DRAINING ===

    def _drain(self, run, reason):
        run.stop_reason = reason
        run.aborted = reason in (StopReason.DEADLINE, StopReason.ERROR_BUDGET)
        run.visited_count = len(self.frontier.visited)
        run.drain(datetime.now(timezone.utc), self.clock() - run.started_clock)
        self.log(
            "info",
            f"Crawl finished: {reason.value} | {len(run.pages)} pages, {run.error_count} errors, "
            f"{run.skipped_count} skipped, {run.visited_count} visited, {len(self.frontier)} left in frontier, "
            f"{run.elapsed:.2f}s",
        )


def crawl(request, **kwargs) -> CrawlRun:
    """Run one crawl to completion and return the sealed CrawlRun."""
    return CrawlOrchestrator(request, **kwargs).execute()
