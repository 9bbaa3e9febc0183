"""
Technology and CMS signatures.

Detection is table driven: each rule is a (pattern, label, target) triple
checked in order against the page markup or the page URL. Adding a signature
means adding a row to one of the tables below; the orchestrator only ever sees
SignatureMatcher.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence

from scraper.models import empty_cms

MARKUP = "markup"
URL = "url"


@dataclass(frozen=True)
class Rule:
    pattern: Pattern
    label: str
    target: str = MARKUP

    def matches(self, html: str, url: str) -> bool:
        subject = url if self.target == URL else html
        return bool(self.pattern.search(subject or ""))


@dataclass(frozen=True)
class CMSRule:
    pattern: Pattern
    label: str
    version: Optional[Pattern] = None
    plugins: Optional[Pattern] = None


def _rx(expr, flags=re.IGNORECASE):
    return re.compile(expr, flags)


TECHNOLOGY_RULES: Sequence[Rule] = (
    # JavaScript frameworks
    Rule(_rx(r"react"), "React"),
    Rule(_rx(r"vue"), "Vue.js"),
    Rule(_rx(r"angular"), "Angular"),
    Rule(_rx(r"jquery"), "jQuery"),
    # CSS frameworks
    Rule(_rx(r"bootstrap"), "Bootstrap"),
    Rule(_rx(r"tailwind"), "Tailwind CSS"),
    Rule(_rx(r"bulma"), "Bulma"),
    # Analytics
    Rule(_rx(r"google-analytics|gtag"), "Google Analytics"),
    Rule(_rx(r"facebook.*pixel|pixel.*facebook", re.IGNORECASE | re.DOTALL), "Facebook Pixel"),
    # CDNs
    Rule(_rx(r"cdnjs|jsdelivr"), "CDN"),
    Rule(_rx(r"cloudflare"), "Cloudflare"),
    # Server side, inferred from the URL
    Rule(_rx(r"\.php"), "PHP", URL),
    Rule(_rx(r"\.aspx?"), "ASP.NET", URL),
    Rule(_rx(r"\.jsp"), "Java/JSP", URL),
)

CMS_RULES: Sequence[CMSRule] = (
    CMSRule(
        _rx(r"wp-content|wp-includes|wordpress"),
        "WordPress",
        version=_rx(r"<meta[^>]+name=[\"']generator[\"'][^>]+content=[\"']WordPress ([^\"']+)[\"']"),
        plugins=_rx(r"wp-content/plugins/([^/\"'\s]+)"),
    ),
    CMSRule(
        _rx(r"drupal"),
        "Drupal",
        version=_rx(r"<meta[^>]+name=[\"']generator[\"'][^>]+content=[\"']Drupal ([^\"']+)[\"']"),
    ),
    CMSRule(
        _rx(r"joomla"),
        "Joomla",
        version=_rx(r"<meta[^>]+name=[\"']generator[\"'][^>]+content=[\"']Joomla! ([^\"']+)[\"']"),
    ),
    CMSRule(_rx(r"shopify"), "Shopify"),
    CMSRule(_rx(r"magento"), "Magento"),
)


class SignatureMatcher:
    """Evaluates the ordered rule tables against a page."""

    def __init__(self, technology_rules: Iterable[Rule] = TECHNOLOGY_RULES,
                 cms_rules: Iterable[CMSRule] = CMS_RULES):
        self.technology_rules = tuple(technology_rules)
        self.cms_rules = tuple(cms_rules)

    def technologies(self, html: str, url: str = "") -> List[str]:
        labels = []
        for rule in self.technology_rules:
            if rule.label not in labels and rule.matches(html, url):
                labels.append(rule.label)
        return labels

    def detect_cms(self, html: str) -> Dict[str, Any]:
        """First matching CMS rule wins; version and plugins come from its extra patterns."""
        html = html or ""
        for rule in self.cms_rules:
            if not rule.pattern.search(html):
                continue
            version = None
            if rule.version:
                match = rule.version.search(html)
                version = match.group(1) if match else None
            plugins = []
            if rule.plugins:
                for slug in rule.plugins.findall(html):
                    if slug not in plugins:
                        plugins.append(slug)
            return {"type": rule.label, "version": version, "plugins": plugins}
        return empty_cms()
