"""
Retry and backoff policy for page fetches.

All attempt counts and delays live here. The orchestrator asks the policy how
many attempts a URL gets and how long to wait between them instead of hard
coding sleeps in its loop.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import tldextract

from scraper.config import (
    RATE_LIMIT_BACKOFF,
    RETRY_ATTEMPTS,
    RETRY_BACKOFF,
    STRICT_HOSTS,
    STRICT_RETRY_ATTEMPTS,
)
from scraper.normalizer import host_of

# Offline extractor: uses the bundled public suffix snapshot, never the network
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


class FailureKind(Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Delay before the next attempt, growing geometrically with the attempt number.
    A 429 starts from rate_limit_delay, everything else from base_delay.
    """
    base_delay: float = RETRY_BACKOFF
    rate_limit_delay: float = RATE_LIMIT_BACKOFF
    multiplier: float = 2.0

    def delay(self, kind: FailureKind, attempt: int) -> float:
        start = self.rate_limit_delay if kind is FailureKind.RATE_LIMITED else self.base_delay
        return max(0.0, start * (self.multiplier ** max(0, attempt - 1)))


class FetchPolicy:
    """
    Per-URL retry budget.

    Methods:
    - is_strict_host(url): True for hosts on the strict allow-list (and their subdomains)
    - attempts_for(url): total attempts, including the first one
    - delay_after(kind, attempt): backoff before attempt + 1
    """

    def __init__(
        self,
        strict_hosts: Iterable[str] = STRICT_HOSTS,
        attempts: int = RETRY_ATTEMPTS,
        strict_attempts: int = STRICT_RETRY_ATTEMPTS,
        backoff: BackoffPolicy | None = None,
    ):
        self.strict_hosts = {h.strip().lower() for h in strict_hosts if h and h.strip()}
        self.attempts = max(1, int(attempts))
        self.strict_attempts = max(1, int(strict_attempts))
        self.backoff = backoff or BackoffPolicy()

    def is_strict_host(self, url: str) -> bool:
        host = host_of(url)
        if not host:
            return False
        if host in self.strict_hosts:
            return True
        if any(host.endswith("." + strict) for strict in self.strict_hosts):
            return True
        extracted = _EXTRACT(host)
        if extracted.domain and extracted.suffix:
            return f"{extracted.domain}.{extracted.suffix}" in self.strict_hosts
        return False

    def attempts_for(self, url: str) -> int:
        return self.strict_attempts if self.is_strict_host(url) else self.attempts

    def delay_after(self, kind: FailureKind, attempt: int) -> float:
        return self.backoff.delay(kind, attempt)
