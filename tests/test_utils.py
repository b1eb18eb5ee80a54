"""
Tests for URL normalization and link filtering (utils.py).
"""

import pytest

from sitemapper.utils import (
    URLNormalizer,
    is_denied_host,
    is_same_origin,
    path_segments,
    resolve_link,
)


# ====================================================================
# Normalization
# ====================================================================

class TestURLNormalizer:
    """Equivalent spellings of a page collapse onto one key."""

    def setup_method(self):
        self.norm = URLNormalizer()

    @pytest.mark.parametrize("url", [
        "https://example.com/docs",
        "https://example.com/docs/",
        "https://Example.com/DOCS",
        "https://example.com/docs#intro",
        "https://example.com/docs?page=2",
        "https://example.com:443/docs",
        "https://example.com//docs",
    ])
    def test_variants_share_key(self, url):
        """Case, trailing slash, fragment, query and default port are ignored."""
        assert self.norm.normalize(url) == "https://example.com/docs"

    def test_root_keeps_slash(self):
        """The root path is '/' whether or not it was written."""
        assert self.norm.normalize("https://example.com") == "https://example.com/"
        assert self.norm.normalize("https://example.com/") == "https://example.com/"

    def test_non_default_port_kept(self):
        assert self.norm.normalize("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_scheme_distinguishes(self):
        """http and https are different keys."""
        assert self.norm("http://example.com/a") != self.norm("https://example.com/a")

    @pytest.mark.parametrize("url", [
        "https://Example.com/A/b/",
        "https://example.com",
        "https://example.com:443//x//y#z",
        "relative/path",
        "https://[broken",
    ])
    def test_idempotent(self, url):
        """Normalizing a key again returns the same key."""
        once = self.norm.normalize(url)
        assert self.norm.normalize(once) == once

    def test_malformed_never_raises(self):
        """Unparseable input degrades to a lower-cased raw key."""
        assert self.norm.normalize("https://[Broken") == "https://[broken"
        assert self.norm.normalize("Not A URL") == "not a url"
        assert self.norm.normalize(None) == ""

    def test_include_query_sorts_and_drops_tracking(self):
        """With queries kept, parameter order and tracking params do not matter."""
        norm = URLNormalizer(include_query=True)
        a = norm.normalize("https://example.com/list?b=2&a=1&utm_source=mail")
        b = norm.normalize("https://example.com/list?a=1&b=2")
        assert a == b == "https://example.com/list?a=1&b=2"
        assert norm.normalize("https://example.com/list?a=2") != a


# ====================================================================
# Link helpers
# ====================================================================

class TestLinkHelpers:

    def test_same_origin_by_host(self):
        assert is_same_origin("https://example.com/a", "https://example.com/")
        assert is_same_origin("https://EXAMPLE.com/a", "https://example.com/")
        assert not is_same_origin("https://other.com/a", "https://example.com/")
        assert not is_same_origin("https://docs.example.com/a", "https://example.com/")

    def test_same_origin_rejects_malformed(self):
        assert not is_same_origin("not a url", "https://example.com/")

    def test_resolve_relative(self):
        assert resolve_link("../b", "https://example.com/x/y/") == "https://example.com/x/b"
        assert resolve_link("/c", "https://example.com/x/y") == "https://example.com/c"

    @pytest.mark.parametrize("href", [
        "", "#top", "javascript:void(0)", "mailto:a@b.c", "tel:123", "ftp://example.com/f",
    ])
    def test_resolve_skips_non_pages(self, href):
        """Fragments and non-http schemes are not links to follow."""
        assert resolve_link(href, "https://example.com/") is None

    def test_denied_host_includes_subdomains(self):
        """Subdomains of a denied host are denied too."""
        deny = ["facebook.com"]
        assert is_denied_host("https://facebook.com/share", deny)
        assert is_denied_host("https://m.facebook.com/share", deny)
        assert not is_denied_host("https://notfacebook.com/", deny)

    def test_path_segments(self):
        assert path_segments("https://example.com/a//b/c/") == ["a", "b", "c"]
        assert path_segments("https://example.com") == []
