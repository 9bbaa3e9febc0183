"""
Frontier for a single crawl run.
Keeps the FIFO queue of discovered URLs and the visited set.

Responsibilities:
- maintain discovery order (FIFO, newly found links go to the tail)
- reject duplicates by normalized form at insert time
- never hold a URL that was already visited
One orchestrator owns one Frontier, so there is no locking here.
"""

import logging
from collections import deque

from scraper.normalizer import is_http_url, normalize_url

logger = logging.getLogger(__name__)


class Frontier:

    def __init__(self):
        self.queue = deque()      # (normalized, original url) in discovery order
        self.queued = set()       # normalized URLs currently in the queue
        self.visited = set()      # normalized URLs popped or seen via the native engine

    def offer(self, url):
        """
        Enqueue url unless it is not http(s), already visited or already queued.
        Returns True if enqueued.
        """
        if not is_http_url(url):
            return False
        normalized = normalize_url(url)
        if normalized in self.visited or normalized in self.queued:
            return False
        self.queue.append((normalized, url))
        self.queued.add(normalized)
        return True

    def next(self):
        """
        Pop the oldest URL and mark it visited immediately so it cannot be
        re-queued while the fetch is in flight. Returns None when empty.
        """
        if not self.queue:
            return None
        normalized, url = self.queue.popleft()
        self.queued.discard(normalized)
        self.visited.add(normalized)
        return url

    def mark_visited(self, url):
        """Record url as visited and drop it from the queue if it was waiting there."""
        normalized = normalize_url(url)
        self.visited.add(normalized)
        if normalized in self.queued:
            self.queued.discard(normalized)
            self.queue = deque(item for item in self.queue if item[0] != normalized)

    def is_visited(self, url):
        return normalize_url(url) in self.visited

    def is_empty(self):
        return not self.queue

    def __len__(self):
        return len(self.queue)

    def stats(self):
        return {
            "queue_size": len(self.queue),
            "visited_count": len(self.visited),
        }
