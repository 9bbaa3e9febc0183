"""
Process-wide admission control for crawl runs.

At most `limit` runs are active at once. Further callers wait and are admitted
strictly in arrival order as slots free up.
"""

import itertools
import logging
import threading
from collections import deque
from contextlib import contextmanager

from scraper.config import MAX_CONCURRENT_REQUESTS

logger = logging.getLogger(__name__)


class ConcurrencyGate:

    def __init__(self, limit=MAX_CONCURRENT_REQUESTS):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.active = 0
        self.waiting = deque()          # tickets in arrival order
        self._tickets = itertools.count()
        self._cond = threading.Condition()

    def acquire(self):
        """Block until this caller holds a slot."""
        with self._cond:
            ticket = next(self._tickets)
            self.waiting.append(ticket)
            if self.active >= self.limit:
                logger.info(f"Request queued ({len(self.waiting)} waiting, {self.active}/{self.limit} active)")
            # only the oldest waiter may take a free slot
            while self.waiting[0] != ticket or self.active >= self.limit:
                self._cond.wait()
            self.waiting.popleft()
            self.active += 1
            # another slot may still be free for the next waiter
            self._cond.notify_all()

    def release(self):
        with self._cond:
            if self.active <= 0:
                raise RuntimeError("release() called without a matching acquire()")
            self.active -= 1
            self._cond.notify_all()

    @contextmanager
    def admit(self):
        self.acquire()
        try:
            yield self
        finally:
            self.release()

    def stats(self):
        with self._cond:
            return {
                "active": self.active,
                "queued": len(self.waiting),
                "limit": self.limit,
            }
