"""
Tree Renderer
=============
Serializes a finished ``PathTrie`` or ``PageTree`` into a self-contained
HTML document with a collapsible nested list.

Behaviour of the rendered tree:
- every node with children has one toggle and starts collapsed;
- a toggle shows/hides only the ``<ul>`` directly under its own ``<li>``;
- toggles are independent, siblings and descendants keep their state.

Rendering is a pure function of the structure: nothing is mutated and the
same input (and timestamp) always gives the same text. Every label and URL
is HTML-escaped before it is embedded.
"""

import html
from datetime import datetime, timezone
from string import Template
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .structure import ROOT_SEGMENT, PageRecord, PageTree, PathTrie, PathTrieNode

COLLAPSED_MARK = '[+]'
EXPANDED_MARK = '[-]'

_TOGGLE = (
    f'<span class="toggle" role="button" aria-expanded="false">{COLLAPSED_MARK}</span>'
)


def escape(text) -> str:
    """Escape ``& < > " '`` for use in element text and attribute values."""
    return html.escape(str(text if text is not None else ''), quote=True)


def _render_items(
    roots: Iterable,
    children_of: Callable[[object], Sequence],
    node_markup: Callable[[object], str],
) -> str:
    """
    Nested ``<li>`` markup for a forest, built with an explicit stack.

    A node reachable twice is rendered once, so a malformed (cyclic)
    structure still terminates.
    """
    parts: List[str] = []
    seen = set()
    stack: List[Tuple[object, bool]] = [(node, False) for node in reversed(list(roots))]

    while stack:
        node, closing = stack.pop()
        if closing:
            parts.append('</ul></li>')
            continue
        if id(node) in seen:
            continue
        seen.add(id(node))

        kids = [kid for kid in children_of(node) if id(kid) not in seen]
        if kids:
            parts.append(
                f'<li class="collapsed">{_TOGGLE}{node_markup(node)}'
                f'<ul class="children" style="display: none">'
            )
            stack.append((node, True))
            stack.extend((kid, False) for kid in reversed(kids))
        else:
            parts.append(f'<li>{node_markup(node)}</li>')

    return ''.join(parts)


# ---------------------------------------------------------------------------
# Structure-specific markup
# ---------------------------------------------------------------------------

def _trie_node_markup(node: PathTrieNode) -> str:
    is_root = node.segment == ROOT_SEGMENT and node.parent is None
    label = 'Home' if is_root else node.title
    indicator = '/' if is_root else node.segment
    return (
        f'<a href="{escape(node.url)}" target="_blank" rel="noopener" class="node">'
        f'<span class="node-icon">{escape(node.icon)}</span> '
        f'<span class="node-title">{escape(label)}</span>'
        f'<span class="path-indicator">{escape(indicator)}</span>'
        f'</a>'
    )


def _page_markup(record: PageRecord) -> str:
    return (
        f'<a href="{escape(record.url)}" target="_blank" rel="noopener" class="node">'
        f'<span class="node-title">{escape(record.title)}</span>'
        f'<span class="node-path">{escape(record.path)}</span>'
        f'</a>'
    )


def render_path_tree(trie: PathTrie) -> str:
    """``<ul>`` markup for a path trie."""
    roots = [trie.root] if trie.root is not None else []
    items = _render_items(roots, lambda n: trie.children_of(n.index), _trie_node_markup)
    return f'<ul class="tree-root">{items}</ul>'


def render_page_tree(tree: PageTree) -> str:
    """``<ul>`` markup for a page-identity tree."""
    items = _render_items(tree.roots(), tree.children_of, _page_markup)
    return f'<ul class="tree-root">{items}</ul>'


# ---------------------------------------------------------------------------
# Document shell
# ---------------------------------------------------------------------------

_DOCUMENT = Template("""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>$title</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               line-height: 1.6; margin: 0; padding: 20px; background: #f4f5fb; }
        .container { max-width: 1200px; margin: 0 auto; background: white;
                     border-radius: 12px; padding: 30px; box-shadow: 0 10px 30px rgba(0,0,0,0.15); }
        h1 { color: #333; border-bottom: 3px solid #667eea; padding-bottom: 10px; }
        .stats { display: flex; gap: 30px; background: #f8f9fa; padding: 15px;
                 border-radius: 8px; margin-bottom: 20px; }
        .stat { display: flex; flex-direction: column; }
        .stat-label { font-size: 12px; color: #666; text-transform: uppercase; letter-spacing: 1px; }
        .stat-value { font-size: 18px; font-weight: bold; color: #667eea; word-break: break-all; }
        .tree { background: #fafafa; border-radius: 8px; padding: 20px; overflow-x: auto; }
        .tree ul { list-style: none; padding-left: 20px; margin: 5px 0; }
        .tree > ul { padding-left: 0; }
        .tree li { padding: 4px 0; }
        .node { display: inline-block; padding: 6px 12px; background: white; border: 1px solid #ddd;
                border-radius: 6px; text-decoration: none; color: #333; }
        .node:hover { background: #667eea; color: white; border-color: #667eea; }
        .node-path, .path-indicator { color: #999; font-size: 12px; margin-left: 10px; }
        .toggle { cursor: pointer; user-select: none; display: inline-block; width: 24px;
                  text-align: center; margin-right: 5px; color: #667eea; font-weight: bold; }
        .footer { margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee;
                  text-align: center; color: #666; font-size: 14px; }
    </style>
</head>
<body>
    <div class="container">
        <h1>$heading</h1>
        <div class="stats">
$stats
        </div>
        <div class="tree">
            $tree
        </div>
        <div class="footer">
            Generated on <time datetime="$generated">$generated</time> |
            Click on any page to visit |
            Click $collapsed_mark/$expanded_mark to expand/collapse
        </div>
    </div>
    <script>
        document.addEventListener('DOMContentLoaded', function () {
            document.querySelectorAll('.tree .toggle').forEach(function (toggle) {
                toggle.addEventListener('click', function (e) {
                    e.preventDefault();
                    e.stopPropagation();
                    const li = this.parentElement;
                    const ul = li.querySelector(':scope > ul');
                    if (!ul) return;
                    const collapsed = ul.style.display === 'none';
                    ul.style.display = collapsed ? 'block' : 'none';
                    li.classList.toggle('collapsed', !collapsed);
                    this.textContent = collapsed ? '$expanded_mark' : '$collapsed_mark';
                    this.setAttribute('aria-expanded', collapsed ? 'true' : 'false');
                });
            });
        });
    </script>
</body>
</html>
""")


def render_document(
    heading: str,
    tree_markup: str,
    stats: Sequence[Tuple[str, object]],
    generated_at: Optional[str] = None,
) -> str:
    """
    Wrap tree markup in the full page.

    ``tree_markup`` must already be escaped (it comes from ``render_*_tree``);
    ``heading`` and the stat labels/values are escaped here.
    """
    generated = generated_at or datetime.now(timezone.utc).isoformat()
    stats_html = '\n'.join(
        f'            <div class="stat"><span class="stat-label">{escape(label)}</span>'
        f'<span class="stat-value">{escape(value)}</span></div>'
        for label, value in stats
    )
    return _DOCUMENT.substitute(
        title=escape(heading),
        heading=escape(heading),
        stats=stats_html,
        tree=tree_markup,
        generated=escape(generated),
        collapsed_mark=COLLAPSED_MARK,
        expanded_mark=EXPANDED_MARK,
    )


def render_path_tree_document(
    trie: PathTrie,
    base_url: str,
    total_pages: int,
    max_depth: int,
    generated_at: Optional[str] = None,
) -> str:
    """Full ``url-structure.html`` for a path trie."""
    return render_document(
        heading=f"URL Structure - {trie.hostname}",
        tree_markup=render_path_tree(trie),
        stats=[('Total Pages', total_pages), ('Base URL', base_url), ('Max Depth', max_depth)],
        generated_at=generated_at,
    )


def render_page_tree_document(
    tree: PageTree,
    base_url: str,
    hostname: str,
    max_depth: int,
    generated_at: Optional[str] = None,
) -> str:
    """Full ``site-map.html`` for a page-identity tree."""
    return render_document(
        heading=f"Site Map - {hostname}",
        tree_markup=render_page_tree(tree),
        stats=[('Total Pages', len(tree)), ('Base URL', base_url), ('Max Depth', max_depth)],
        generated_at=generated_at,
    )
