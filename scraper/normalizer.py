"""
URL canonicalization for deduplication.
Two URLs point at the same page iff their normalized forms are equal.
Fragments are dropped; query strings are kept because they select distinct pages.
"""

from urllib.parse import urljoin, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str, base: str | None = None) -> str:
    """
    Canonical form used for visited/queued comparisons:
    - resolved against base when relative
    - scheme, host and path lowercased
    - fragment removed, query preserved
    - trailing slash stripped, except for the bare origin (scheme://host/)
    - default ports dropped
    Never raises. Unparseable input comes back lowercased as-is.
    """
    raw = (url or "").strip()
    try:
        if base:
            raw = urljoin(base, raw)
        parts = urlsplit(raw)
        if not parts.scheme or not parts.netloc:
            return raw.lower()

        scheme = parts.scheme.lower()
        host = (parts.hostname or "").lower()
        port = parts.port
        netloc = f"[{host}]" if ":" in host else host
        if port is not None and port != _DEFAULT_PORTS.get(scheme):
            netloc = f"{netloc}:{port}"

        # rstrip keeps the function idempotent for paths like /a//
        path = parts.path.lower().rstrip("/") or "/"

        return urlunsplit((scheme, netloc, path, parts.query, ""))
    except ValueError:
        # Bad ports, unbalanced IPv6 brackets and similar
        return raw.lower()


def host_of(url: str) -> str:
    """Lowercased hostname of url, or an empty string when there is none."""
    try:
        return (urlsplit((url or "").strip()).hostname or "").lower()
    except ValueError:
        return ""


def is_http_url(url: str) -> bool:
    try:
        parts = urlsplit((url or "").strip())
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc)
