"""
Structure Builder
=================
Two structures are built per run:

- ``PathTrie``: a trie keyed by URL path segments. A node stands for a path
  prefix, so ``/docs/guide/install`` creates ``docs`` and ``guide`` even if
  only the leaf was ever seen. Fed by both the sitemap path and traversal.
- ``PageTree``: one ``PageRecord`` per crawled page, linked to the page
  that first discovered it. Only traversal produces records.

Both are arenas: nodes live in a list and refer to each other by index (trie)
or by normalized key (page tree), so there are no reference cycles and
serialization is a flat walk. Nothing is ever removed during a run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from .utils import path_segments

logger = logging.getLogger(__name__)


ROOT_SEGMENT = '/'
ROOT_ICON = '🏠'
FOLDER_ICON = '📁'
DEFAULT_FILE_ICON = '📄'

FILE_ICONS = {
    'pdf': '📄',
    'doc': '📝', 'docx': '📝',
    'xls': '📊', 'xlsx': '📊',
    'ppt': '📈', 'pptx': '📈',
    'txt': '📃',
    'csv': '📉',
    'zip': '🗜️', 'rar': '🗜️',
    'jpg': '🏷️', 'jpeg': '🏷️', 'png': '🏷️', 'gif': '🏷️',
    'mp4': '🎥',
    'mp3': '🎵',
    'html': '🌐', 'htm': '🌐',
    'css': '🎨',
    'js': '⚙️',
    'json': '📦',
}


def get_file_icon(url: str) -> str:
    """
    Pick an icon from the extension of the URL's last path segment.

    Known extensions get their own icon, unknown short extensions get a
    generic file icon, and directory-like or extensionless paths get a folder.
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return FOLDER_ICON
    if not path or path.endswith('/'):
        return FOLDER_ICON

    last = path.rsplit('/', 1)[-1]
    if '.' not in last:
        return FOLDER_ICON

    extension = last.rsplit('.', 1)[-1].lower()
    if extension and len(extension) <= 4 and extension.isalnum():
        return FILE_ICONS.get(extension, DEFAULT_FILE_ICON)
    return FOLDER_ICON


def title_from_segment(segment: str) -> str:
    """Readable label for a path segment: ``getting-started`` → ``getting started``."""
    text = unquote(segment)
    return text.replace('-', ' ').replace('_', ' ').strip() or segment


# ---------------------------------------------------------------------------
# Path trie
# ---------------------------------------------------------------------------

@dataclass
class PathTrieNode:
    """One path prefix in the structural trie."""
    index: int
    segment: str
    url: str
    title: str
    icon: str
    parent: Optional[int] = None
    # True when some discovered URL ends exactly at this prefix
    discovered: bool = False
    children: List[int] = field(default_factory=list)


class PathTrie:
    """
    Trie of URL path segments under a synthesized root ``/``.

    Children are addressed through ``(parent_index, segment_key)`` where the
    key is the lower-cased segment, matching the case-insensitive URL keys
    used for deduplication. The first spelling seen is kept for display.
    """

    def __init__(self, base_url: str):
        parsed = urlparse(base_url)
        self.origin = f"{parsed.scheme}://{parsed.netloc}"
        self.hostname = parsed.hostname or parsed.netloc
        self._nodes: List[PathTrieNode] = []
        self._edges: Dict[Tuple[int, str], int] = {}

    # -- construction -------------------------------------------------------

    def _ensure_root(self) -> PathTrieNode:
        if not self._nodes:
            self._nodes.append(PathTrieNode(
                index=0,
                segment=ROOT_SEGMENT,
                url=self.origin,
                title=self.hostname,
                icon=ROOT_ICON,
            ))
        return self._nodes[0]

    def _child(self, parent: PathTrieNode, segment: str, url: str) -> PathTrieNode:
        key = (parent.index, segment.lower())
        existing = self._edges.get(key)
        if existing is not None:
            return self._nodes[existing]

        node = PathTrieNode(
            index=len(self._nodes),
            segment=segment,
            url=url,
            title=title_from_segment(segment),
            icon=get_file_icon(url),
            parent=parent.index,
        )
        self._nodes.append(node)
        self._edges[key] = node.index
        parent.children.append(node.index)
        return node

    def add_url(self, url: str) -> int:
        """
        Insert every path prefix of ``url`` and return the index of the node
        for the full path. Re-inserting a known path changes nothing.
        """
        current = self._ensure_root()
        accumulated = ''
        for segment in path_segments(url):
            accumulated += '/' + segment
            current = self._child(current, segment, self.origin + accumulated)
        current.discovered = True
        return current.index

    # -- access -------------------------------------------------------------

    @property
    def root(self) -> Optional[PathTrieNode]:
        return self._nodes[0] if self._nodes else None

    def node(self, index: int) -> PathTrieNode:
        return self._nodes[index]

    def children_of(self, index: int) -> List[PathTrieNode]:
        return [self._nodes[i] for i in self._nodes[index].children]

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[PathTrieNode]:
        return iter(self._nodes)

    @property
    def discovered_count(self) -> int:
        return sum(1 for node in self._nodes if node.discovered)

    # -- serialization ------------------------------------------------------

    def _node_to_dict(self, node: PathTrieNode) -> Dict[str, Any]:
        return {
            'url': node.url,
            'title': node.title,
            'icon': node.icon,
            'discovered': node.discovered,
            'children': {
                child.segment: self._node_to_dict(child)
                for child in self.children_of(node.index)
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        """Nested ``{"/": {url, title, icon, discovered, children}}`` form."""
        if self.root is None:
            return {}
        return {ROOT_SEGMENT: self._node_to_dict(self.root)}

    @classmethod
    def from_dict(cls, base_url: str, data: Dict[str, Any]) -> "PathTrie":
        """Rebuild a trie from ``to_dict`` output."""
        trie = cls(base_url)
        root_data = data.get(ROOT_SEGMENT)
        if root_data is None:
            return trie

        root = trie._ensure_root()
        root.discovered = bool(root_data.get('discovered', False))
        stack = [(root, root_data.get('children', {}))]
        while stack:
            parent, children = stack.pop()
            for segment, child_data in children.items():
                child = trie._child(parent, segment, child_data.get('url', ''))
                child.title = child_data.get('title', child.title)
                child.icon = child_data.get('icon', child.icon)
                child.discovered = bool(child_data.get('discovered', False))
                stack.append((child, child_data.get('children', {})))
        return trie


# ---------------------------------------------------------------------------
# Page tree
# ---------------------------------------------------------------------------

@dataclass
class PageRecord:
    """A crawled page and its place in the discovery tree."""
    url: str
    normalized_key: str
    title: str = ""
    path: str = "/"
    depth: int = 0
    parent_url: Optional[str] = None
    parent_key: Optional[str] = None
    # Keys of pages first discovered from this one, in discovery order
    children: List[str] = field(default_factory=list)
    # Keys of already-recorded pages this page also links to
    cross_links: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'normalized': self.normalized_key,
            'title': self.title,
            'path': self.path,
            'depth': self.depth,
            'parent': self.parent_url,
            'children': list(self.children),
            'crossLinks': list(self.cross_links),
        }


class PageTree:
    """Page-identity tree: one record per normalized key, rooted at depth 0."""

    def __init__(self):
        self._records: Dict[str, PageRecord] = {}

    def add(
        self,
        url: str,
        key: str,
        title: str,
        path: str,
        depth: int,
        parent_key: Optional[str] = None,
    ) -> Tuple[PageRecord, bool]:
        """
        Create the record for ``key`` unless it exists.

        Returns ``(record, created)``. An existing record is never replaced;
        a new parent relationship is kept as a cross-link on that parent.
        """
        existing = self._records.get(key)
        if existing is not None:
            if parent_key and parent_key != existing.parent_key:
                self.add_cross_link(parent_key, key)
            return existing, False

        parent = self._records.get(parent_key) if parent_key else None
        record = PageRecord(
            url=url,
            normalized_key=key,
            title=title,
            path=path,
            depth=depth,
            parent_url=parent.url if parent else None,
            parent_key=parent.normalized_key if parent else None,
        )
        self._records[key] = record
        if parent is not None and key not in parent.children:
            parent.children.append(key)
        return record, True

    def add_cross_link(self, parent_key: str, key: str) -> None:
        """Remember that ``parent_key`` links to an already-placed page."""
        parent = self._records.get(parent_key)
        if parent is None or key == parent_key:
            return
        if key not in parent.children and key not in parent.cross_links:
            parent.cross_links.append(key)

    def get(self, key: str) -> Optional[PageRecord]:
        return self._records.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PageRecord]:
        return iter(self._records.values())

    def roots(self) -> List[PageRecord]:
        return [r for r in self._records.values() if r.parent_key is None]

    def children_of(self, record: PageRecord) -> List[PageRecord]:
        return [self._records[k] for k in record.children if k in self._records]

    def to_list(self) -> List[Dict[str, Any]]:
        """Records sorted by depth, then path."""
        records = sorted(self._records.values(), key=lambda r: (r.depth, r.path))
        return [r.to_dict() for r in records]

    @classmethod
    def from_list(cls, items: List[Dict[str, Any]]) -> "PageTree":
        """Rebuild a tree from ``to_list`` output."""
        tree = cls()
        for item in items:
            record = PageRecord(
                url=item['url'],
                normalized_key=item['normalized'],
                title=item.get('title', ''),
                path=item.get('path', '/'),
                depth=item.get('depth', 0),
                parent_url=item.get('parent'),
                children=list(item.get('children', [])),
                cross_links=list(item.get('crossLinks', [])),
            )
            tree._records[record.normalized_key] = record
        for record in tree._records.values():
            for child_key in record.children:
                child = tree._records.get(child_key)
                if child is not None:
                    child.parent_key = record.normalized_key
        return tree
