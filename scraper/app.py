"""
HTTP surface of the scraper service.
POST /scrap runs one crawl; /health and /status report on the process.
"""

import logging
import os
import time

import psutil
from flask import Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from scraper.config import CLIENT_RATE_LIMIT, DEFAULT_MAX_PAGES, MAX_CONCURRENT_REQUESTS, MAX_PAGES_CAP
from scraper.gate import ConcurrencyGate
from scraper.models import CrawlRequest, InvalidCrawlRequest, utc_now_iso
from scraper.orchestrator import crawl

logger = logging.getLogger(__name__)


def _error(code, error, status, **extra):
    body = {"error": error, "code": code, "timestamp": utc_now_iso()}
    body.update(extra)
    return jsonify(body), status


def create_app(gate=None, run_crawl=crawl, rate_limit=CLIENT_RATE_LIMIT):
    """
    Build the Flask app. gate and run_crawl are injectable so tests can
    drive the routes without touching the network. rate_limit applies per
    client IP to every route.
    """
    app = Flask(__name__)
    app.json.sort_keys = False
    gate = gate or ConcurrencyGate(MAX_CONCURRENT_REQUESTS)
    started = time.monotonic()
    process = psutil.Process(os.getpid())

    app.extensions["scraper_gate"] = gate

    Limiter(
        get_remote_address,
        app=app,
        default_limits=[rate_limit],
        storage_uri="memory://",
        headers_enabled=True,
    )

    # ============================================================
    # SCRAPE
    # ============================================================

    @app.route("/scrap", methods=["POST"])
    def scrap():
        received = time.monotonic()
        payload = request.get_json(silent=True)
        try:
            crawl_request = CrawlRequest.from_payload(
                payload,
                default_max_pages=DEFAULT_MAX_PAGES,
                max_pages_cap=MAX_PAGES_CAP,
            )
        except InvalidCrawlRequest as e:
            logger.warning(f"Rejected scrape request: {e.code} ({e.message})")
            return _error(e.code, e.message, 400)

        try:
            with gate.admit():
                run = run_crawl(crawl_request)
        except InvalidCrawlRequest as e:
            return _error(e.code, e.message, 400)
        except Exception as e:
            logger.exception(f"Scraping failed for {crawl_request.url}")
            return _error("SCRAPING_ERROR", "Scraping failed", 500, message=str(e))

        body = run.to_response()
        body["responseTime"] = int(round((time.monotonic() - received) * 1000))
        body["timestamp"] = utc_now_iso()
        return jsonify(body)

    # ============================================================
    # MONITORING
    # ============================================================

    @app.route("/health")
    def health():
        return jsonify({
            "status": "OK",
            "message": "Scraper service is running",
            "timestamp": utc_now_iso(),
            "uptime": round(time.monotonic() - started, 3),
        })

    @app.route("/status")
    def status():
        stats = gate.stats()
        memory = process.memory_info()
        return jsonify({
            "status": "OK",
            "activeRequests": stats["active"],
            "maxConcurrentRequests": stats["limit"],
            "queuedRequests": stats["queued"],
            "memoryUsage": {"rss": memory.rss, "vms": memory.vms},
            "uptime": round(time.monotonic() - started, 3),
            "timestamp": utc_now_iso(),
        })

    @app.after_request
    def log_request(response):
        logger.info(f"{request.method} {request.path} -> {response.status_code}")
        return response

    # ============================================================
    # ERROR HANDLERS
    # ============================================================

    @app.errorhandler(404)
    def not_found(error):
        return _error("NOT_FOUND", "Endpoint not found", 404)

    @app.errorhandler(429)
    def rate_limited(error):
        logger.warning(f"Rate limit exceeded for {get_remote_address()} on {request.path}")
        return _error("RATE_LIMITED", "Rate limit exceeded", 429, retryAfter=str(error.description))

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error("METHOD_NOT_ALLOWED", "Method not allowed", 405)

    @app.errorhandler(500)
    def internal_error(error):
        return _error("INTERNAL_ERROR", "Internal server error", 500)

    return app
