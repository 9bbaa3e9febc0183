import re
import unittest

from scraper.signatures import URL, CMSRule, Rule, SignatureMatcher


class TestTechnologies(unittest.TestCase):

    def setUp(self):
        self.matcher = SignatureMatcher()

    def test_markup_and_url_rules_in_table_order(self):
        html = '<script src="/js/jquery.min.js"></script><link href="/css/bootstrap.css" rel="stylesheet">'
        found = self.matcher.technologies(html, "https://shop.test/index.php")
        self.assertEqual(found, ["jQuery", "Bootstrap", "PHP"])

    def test_nothing_detected(self):
        self.assertEqual(self.matcher.technologies("<p>plain</p>", "https://plain.test/"), [])

    def test_custom_tables(self):
        matcher = SignatureMatcher(
            technology_rules=[Rule(re.compile("htmx"), "htmx"), Rule(re.compile(r"\.cfm"), "ColdFusion", URL)],
            cms_rules=[],
        )
        self.assertEqual(matcher.technologies('<script src="htmx.js">', "https://x.test/a.cfm"), ["htmx", "ColdFusion"])
        self.assertEqual(matcher.detect_cms("<p>x</p>")["type"], "unknown")


class TestCMS(unittest.TestCase):

    def setUp(self):
        self.matcher = SignatureMatcher()

    def test_wordpress_version_and_plugins(self):
        html = (
            '<meta name="generator" content="WordPress 6.4.2">'
            '<script src="/wp-content/plugins/akismet/a.js"></script>'
            '<script src="/wp-content/plugins/akismet/b.js"></script>'
            '<link href="/wp-content/plugins/yoast-seo/s.css">'
        )
        cms = self.matcher.detect_cms(html)
        self.assertEqual(cms, {"type": "WordPress", "version": "6.4.2", "plugins": ["akismet", "yoast-seo"]})

    def test_drupal_version(self):
        cms = self.matcher.detect_cms('<meta name="Generator" content="Drupal 10 (https://www.drupal.org)">')
        self.assertEqual(cms["type"], "Drupal")
        self.assertEqual(cms["version"], "10 (https://www.drupal.org)")

    def test_first_match_wins(self):
        cms = self.matcher.detect_cms("wp-content and shopify both present")
        self.assertEqual(cms["type"], "WordPress")

    def test_unknown(self):
        self.assertEqual(self.matcher.detect_cms("<html></html>"), {"type": "unknown", "version": None, "plugins": []})

    def test_version_missing(self):
        cms = SignatureMatcher(cms_rules=[CMSRule(re.compile("ghost"), "Ghost")]).detect_cms("ghost theme")
        self.assertEqual(cms, {"type": "Ghost", "version": None, "plugins": []})


if __name__ == "__main__":
    unittest.main()
