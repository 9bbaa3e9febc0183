"""
Command line entry point.

    site-scraper scrape https://example.com --mode multipage --max-pages 20
    site-scraper serve --port 3001
"""

import argparse
import json
import logging
import sys

from tabulate import tabulate

from scraper.config import DEFAULT_MAX_PAGES, HOST, MAX_PAGES_CAP, PORT
from scraper.models import CrawlRequest, InvalidCrawlRequest
from scraper.orchestrator import crawl

logger = logging.getLogger(__name__)


def print_summary(run):
    """Terminal summary of a sealed run, one table for the run and one for its pages."""
    response = run.to_response()
    stats = response["crawlStats"]
    summary = response["summary"]
    cms = response["extractedData"]["cms"]

    print("\n" + "=" * 100)
    print("CRAWL SUMMARY")
    print("=" * 100)
    print(tabulate([
        ["URL", response["url"]],
        ["Mode", response["mode"]],
        ["Strategy", stats["strategy"] + (" (fell back)" if stats["fellBack"] else "")],
        ["Stop reason", stats["stopReason"]],
        ["Pages", f"{summary['totalPages']} / {run.request.max_pages}"],
        ["Errors", f"{stats['errorCount']} / {stats['errorBudget']}"],
        ["Skipped", stats["skippedCount"]],
        ["Visited", stats["visitedCount"]],
        ["Links", summary["totalLinks"]],
        ["Images", summary["totalImages"]],
        ["Technologies", ", ".join(summary["technologies"]) or "-"],
        ["CMS", cms["type"] + (f" {cms['version']}" if cms.get("version") else "")],
        ["Total time", f"{response['performance']['totalTime']} ms"],
        ["Pages/sec", response["performance"]["pagesPerSecond"]],
    ], tablefmt="grid"))

    if run.pages:
        rows = [
            [i, page.status, page.url, page.title[:60], len(page.links), len(page.images)]
            for i, page in enumerate(run.pages, 1)
        ]
        print(tabulate(rows, headers=["#", "Status", "URL", "Title", "Links", "Images"], tablefmt="simple"))
    print("=" * 100 + "\n")


def cmd_scrape(args):
    payload = {"url": args.url, "mode": args.mode, "maxPages": args.max_pages}
    try:
        request = CrawlRequest.from_payload(payload, default_max_pages=DEFAULT_MAX_PAGES, max_pages_cap=MAX_PAGES_CAP)
    except InvalidCrawlRequest as e:
        print(f"[{e.code}] {e.message}", file=sys.stderr)
        return 2

    run = crawl(request)
    if args.json:
        print(json.dumps(run.to_response(), indent=2))
    else:
        print_summary(run)
    return 0


def cmd_serve(args):
    from scraper.app import create_app

    app = create_app()
    logger.info(f"Scraper service listening on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, threaded=True)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="site-scraper", description="Website scraping service")
    sub = parser.add_subparsers(dest="command", required=True)

    scrape = sub.add_parser("scrape", help="Crawl a site once and print the result")
    scrape.add_argument("url", help="Seed URL (http or https)")
    scrape.add_argument("--mode", choices=["single", "multipage"], default="single", help="Crawl mode")
    scrape.add_argument("--max-pages", type=int, default=DEFAULT_MAX_PAGES, help=f"Page budget (max {MAX_PAGES_CAP})")
    scrape.add_argument("--json", action="store_true", help="Print the full JSON response instead of a summary")
    scrape.set_defaults(func=cmd_scrape)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=HOST)
    serve.add_argument("--port", type=int, default=PORT)
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
