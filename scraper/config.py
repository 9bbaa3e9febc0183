"""
Configuration for the scraper service.
Defines crawl limits, network timeouts, retry policy and server settings.
Every value can be overridden through the environment or a local .env file.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name, default):
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip().lower() for item in value.split(",") if item.strip()]


# "production" shortens network timeouts and the crawl deadline
SCRAPER_ENV = os.getenv("SCRAPER_ENV", "development")
IS_PRODUCTION = SCRAPER_ENV == "production"

# HTTP server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

# Network timeout for a single HTTP request (seconds)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 10 if IS_PRODUCTION else 15))

# Wall-clock budget for a whole crawl run (seconds)
MAX_CRAWL_DURATION = float(os.getenv("MAX_CRAWL_DURATION", 300 if IS_PRODUCTION else 600))

# Response bodies above this size are discarded (bytes)
MAX_RESPONSE_BYTES = int(os.getenv("MAX_RESPONSE_BYTES", 2 * 1024 * 1024))
MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", 5))

# Page budget limits for a single request
MAX_PAGES_CAP = int(os.getenv("MAX_PAGES_CAP", 500))
DEFAULT_MAX_PAGES = min(int(os.getenv("DEFAULT_MAX_PAGES", 500)), MAX_PAGES_CAP)

# Simultaneously active crawl runs; the rest wait in arrival order
MAX_CONCURRENT_REQUESTS = int(os.getenv("MAX_CONCURRENT_REQUESTS", 50))

# Requests allowed per client IP, in flask-limiter notation
CLIENT_RATE_LIMIT = os.getenv("CLIENT_RATE_LIMIT", "300 per minute")

# Retry policy. Strict hosts rate-limit aggressively and get one extra attempt.
RETRY_ATTEMPTS = int(os.getenv("RETRY_ATTEMPTS", 2))
STRICT_RETRY_ATTEMPTS = int(os.getenv("STRICT_RETRY_ATTEMPTS", 3))
STRICT_HOSTS = _env_list("STRICT_HOSTS", ["github.com"])
RETRY_BACKOFF = float(os.getenv("RETRY_BACKOFF", 1.0))
RATE_LIMIT_BACKOFF = float(os.getenv("RATE_LIMIT_BACKOFF", 5.0))

# Multipage runs try the native crawling engine first when it is enabled
NATIVE_CRAWLER_ENABLED = _env_bool("NATIVE_CRAWLER_ENABLED", True)

USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
)

LOG_FILE = os.getenv("LOG_FILE") or None
