"""
Tests for the collapsible HTML tree documents (tree_html.py).
"""

from bs4 import BeautifulSoup

from sitemapper.structure import PageTree, PathTrie
from sitemapper.tree_html import (
    render_page_tree_document,
    render_path_tree,
    render_path_tree_document,
)

BASE = "https://example.com/"
GENERATED = "2024-05-01T12:00:00+00:00"


def build_trie(*paths):
    trie = PathTrie(BASE)
    for path in paths:
        trie.add_url("https://example.com" + path)
    return trie


def soup_of(markup):
    return BeautifulSoup(markup, "html.parser")


class TestPathTreeDocument:

    def setup_method(self):
        self.trie = build_trie("/docs/guide", "/docs/api", "/about")
        self.html = render_path_tree_document(self.trie, BASE, 3, 2, generated_at=GENERATED)
        self.soup = soup_of(self.html)

    def test_one_toggle_per_parent_node(self):
        """Root and /docs have children; the three leaves do not."""
        parents = [n for n in self.trie if n.children]
        assert len(self.soup.select(".tree .toggle")) == len(parents) == 2

    def test_everything_starts_collapsed(self):
        """Every child list is hidden and every toggle reads [+]."""
        assert len(self.soup.select("li.collapsed")) == 2
        for ul in self.soup.select("ul.children"):
            assert "display: none" in ul["style"]
        for toggle in self.soup.select(".toggle"):
            assert toggle.get_text() == "[+]"
            assert toggle["aria-expanded"] == "false"

    def test_toggle_is_first_child_of_its_item(self):
        """Each toggle controls the list directly inside its own item."""
        for toggle in self.soup.select(".toggle"):
            li = toggle.parent
            assert li.name == "li"
            assert li.find("ul", recursive=False) is not None

    def test_links_and_labels(self):
        hrefs = [a["href"] for a in self.soup.select("a.node")]
        assert hrefs[0] == "https://example.com"
        assert "https://example.com/docs/api" in hrefs
        assert self.soup.select_one(".node-title").get_text() == "Home"

    def test_header_stats(self):
        assert self.soup.h1.get_text() == "URL Structure - example.com"
        values = [s.get_text() for s in self.soup.select(".stat-value")]
        assert values == ["3", BASE, "2"]
        assert GENERATED in self.html

    def test_deterministic(self):
        """Same structure and timestamp give the same text."""
        again = render_path_tree_document(self.trie, BASE, 3, 2, generated_at=GENERATED)
        assert again == self.html


class TestEscaping:

    def test_segment_markup_is_escaped(self):
        """Markup in a path segment is shown as text."""
        trie = build_trie("/%3Cscript%3Ealert(1)%3C%2Fscript%3E")
        html = render_path_tree_document(trie, BASE, 1, 1, generated_at=GENERATED)
        soup = soup_of(html)
        # Only the document's own toggle script
        assert len(soup.find_all("script")) == 1
        assert "&lt;script&gt;" in html

    def test_page_title_is_escaped(self):
        """Untrusted page titles cannot inject elements."""
        tree = PageTree()
        tree.add(BASE, "https://example.com/", 'Tom & "Jerry" <b>', "/", 0)
        html = render_page_tree_document(tree, BASE, "example.com", 0, generated_at=GENERATED)
        soup = soup_of(html)
        assert soup.select_one(".node-title").get_text() == 'Tom & "Jerry" <b>'
        assert soup.find("b") is None


class TestPageTreeDocument:

    def test_nested_records(self):
        tree = PageTree()
        tree.add(BASE, "https://example.com/", "Home", "/", 0)
        tree.add("https://example.com/a", "https://example.com/a", "A", "/a", 1,
                 parent_key="https://example.com/")
        tree.add("https://example.com/a/b", "https://example.com/a/b", "B", "/a/b", 2,
                 parent_key="https://example.com/a")
        tree.add("https://example.com/c", "https://example.com/c", "C", "/c", 1,
                 parent_key="https://example.com/")

        soup = soup_of(render_page_tree_document(tree, BASE, "example.com", 2))

        assert soup.h1.get_text() == "Site Map - example.com"
        assert len(soup.select(".toggle")) == 2
        assert [s.get_text() for s in soup.select(".node-path")] == ["/", "/a", "/a/b", "/c"]

    def test_empty_trie_renders_empty_list(self):
        assert render_path_tree(PathTrie(BASE)) == '<ul class="tree-root"></ul>'
