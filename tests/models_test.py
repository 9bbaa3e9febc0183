import unittest
from datetime import datetime, timezone

from scraper.config import DEFAULT_MAX_PAGES
from scraper.models import (
    CrawlMode,
    CrawlRequest,
    CrawlRun,
    InvalidCrawlRequest,
    Link,
    PageResult,
    RunSealedError,
    RunState,
    StopReason,
)


class TestCrawlRequest(unittest.TestCase):

    def assertCode(self, payload, code):
        with self.assertRaises(InvalidCrawlRequest) as cm:
            CrawlRequest.from_payload(payload, max_pages_cap=500)
        self.assertEqual(cm.exception.code, code)

    def test_defaults(self):
        request = CrawlRequest.from_payload({"url": "https://example.com"})
        self.assertEqual(request.mode, CrawlMode.SINGLE)
        self.assertEqual(request.max_pages, DEFAULT_MAX_PAGES)
        self.assertTrue(request.extract_links and request.detect_cms)

    def test_flags_and_mode(self):
        request = CrawlRequest.from_payload({
            "url": " https://example.com/ ",
            "mode": "multipage",
            "maxPages": "25",
            "extractImages": False,
            "detectCMS": False,
        })
        self.assertEqual(request.url, "https://example.com/")
        self.assertEqual(request.mode, CrawlMode.MULTIPAGE)
        self.assertEqual(request.max_pages, 25)
        self.assertFalse(request.extract_images)
        self.assertFalse(request.detect_cms)
        self.assertTrue(request.extract_meta)

    def test_validation_codes(self):
        self.assertCode(None, "MISSING_URL")
        self.assertCode({}, "MISSING_URL")
        self.assertCode({"url": "  "}, "MISSING_URL")
        self.assertCode({"url": "example.com"}, "INVALID_URL")
        self.assertCode({"url": "ftp://example.com"}, "INVALID_URL")
        self.assertCode({"url": 42}, "INVALID_URL")
        self.assertCode({"url": "https://example.com", "mode": "deep"}, "INVALID_MODE")
        self.assertCode({"url": "https://example.com", "maxPages": 501}, "PAGE_LIMIT_EXCEEDED")
        self.assertCode({"url": "https://example.com", "maxPages": 0}, "PAGE_LIMIT_EXCEEDED")
        self.assertCode({"url": "https://example.com", "maxPages": "many"}, "PAGE_LIMIT_EXCEEDED")
        self.assertCode({"url": "https://example.com", "maxPages": True}, "PAGE_LIMIT_EXCEEDED")
        self.assertCode({"url": "https://example.com", "maxPages": 2.7}, "PAGE_LIMIT_EXCEEDED")
        self.assertCode({"url": "https://example.com", "maxPages": "2.5"}, "PAGE_LIMIT_EXCEEDED")

    def test_integral_float_accepted(self):
        request = CrawlRequest.from_payload({"url": "https://example.com", "maxPages": 3.0})
        self.assertEqual(request.max_pages, 3)


def make_run():
    return CrawlRun(
        request=CrawlRequest(url="https://example.com/", mode=CrawlMode.MULTIPAGE, max_pages=5),
        strategy="direct_http",
        started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        started_clock=0.0,
        deadline=600.0,
        error_budget=2,
    )


def make_page(url, *hrefs):
    return PageResult(
        url=url,
        final_url=url,
        status=200,
        title="t",
        html="<html></html>",
        content="",
        links=tuple(Link(href=h, text="", is_external=False) for h in hrefs),
        technologies=("jQuery",),
    )


class TestCrawlRun(unittest.TestCase):

    def test_aggregates_deduplicated_on_drain(self):
        run = make_run()
        run.add_page(make_page("https://example.com/", "https://example.com/a", "https://example.com/b"))
        run.add_page(make_page("https://example.com/a", "https://example.com/b"))
        run.drain(datetime(2026, 1, 1, 0, 0, 2, tzinfo=timezone.utc), 2.0)

        self.assertEqual(run.state, RunState.DRAINING)
        self.assertEqual(run.links, ["https://example.com/a", "https://example.com/b"])
        self.assertEqual(run.technologies, ["jQuery"])
        self.assertEqual(run.success_count, 2)
        self.assertEqual(run.pages_per_second, 1.0)

    def test_sealed_run_rejects_changes(self):
        run = make_run()
        run.add_page(make_page("https://example.com/"))
        run.drain(datetime.now(timezone.utc), 0.5)
        run.seal()

        self.assertTrue(run.sealed)
        self.assertIsInstance(run.pages, tuple)
        with self.assertRaises(RunSealedError):
            run.error_count += 1
        with self.assertRaises(RunSealedError):
            run.add_page(make_page("https://example.com/x"))
        with self.assertRaises(RunSealedError):
            run.seal()

    def test_response_shape(self):
        run = make_run()
        run.add_page(make_page("https://example.com/", "https://example.com/a"))
        run.stop_reason = StopReason.FRONTIER_EXHAUSTED
        run.drain(datetime(2026, 1, 1, 0, 0, 1, tzinfo=timezone.utc), 1.0)
        response = run.seal().to_response()

        self.assertEqual(set(response), {"url", "mode", "summary", "pages", "extractedData", "performance", "crawlStats"})
        self.assertEqual(response["summary"]["totalPages"], 1)
        self.assertEqual(response["summary"]["totalLinks"], 1)
        self.assertFalse(response["summary"]["cmsDetected"])
        self.assertEqual(response["performance"]["totalTime"], 1000)
        self.assertEqual(response["performance"]["startTime"], "2026-01-01T00:00:00Z")
        self.assertEqual(response["crawlStats"]["stopReason"], "frontier_exhausted")
        self.assertEqual(response["pages"][0]["statusCode"], 200)
        self.assertEqual(response["pages"][0]["links"][0]["isExternal"], False)


if __name__ == "__main__":
    unittest.main()
