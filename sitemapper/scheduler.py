"""
Crawl Scheduler
===============
Depth-bounded, loop-protected traversal over same-origin links.

The frontier is an explicit LIFO stack of ``WorkItem(url, depth, parent_key)``
so there is no recursion, however deep or cyclic the site is. Children are
pushed shallowest-last, which makes the pop order a depth-first walk that
visits structural (short-path) links first.

Per item::

    over depth?            → OVER_DEPTH    (no record)
    loop counter >= limit? → LOOP          (skipped for good)
    already visited?       → DUPLICATE
    other host?            → CROSS_ORIGIN  (not marked visited)
    render                 → RECORDED | FAILED

All run state lives on a ``CrawlContext`` owned by exactly one run. With
``max_concurrency > 1`` several items are admitted and fetched together;
admission and recording never straddle an ``await``, so the visited set,
loop counter and parent/child edges stay consistent on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urldefrag

from .errors import FetchFailure
from .progress import CRAWL_RANGE, ProgressReporter
from .renderer import BaseRenderer, PageLink, RenderedPage
from .run_config import ExtractorRunConfig
from .structure import PageTree, PathTrie
from .utils import (
    URLNormalizer,
    extract_host,
    is_denied_host,
    is_same_origin,
    path_segments,
    resolve_link,
)

logger = logging.getLogger(__name__)

# Extra seconds granted past the renderer's own timeout before giving up
_FETCH_GRACE_SECONDS = 5


class VisitOutcome(str, Enum):
    """Terminal state of one work item."""
    ADMITTED = "admitted"          # transient: passed every check, fetch pending
    RECORDED = "recorded"
    DUPLICATE = "skipped-duplicate"
    LOOP = "skipped-loop"
    CROSS_ORIGIN = "skipped-cross-origin"
    OVER_DEPTH = "skipped-over-depth"
    MALFORMED = "skipped-malformed"
    FAILED = "failed"


@dataclass
class WorkItem:
    """A pending visit."""
    url: str
    depth: int
    parent_key: Optional[str] = None
    # Anchor text of the link that queued this item
    link_text: str = ""


@dataclass
class CrawlContext:
    """Everything one run's traversal reads and writes."""
    base_url: str
    normalizer: URLNormalizer
    page_tree: PageTree = field(default_factory=PageTree)
    path_trie: Optional[PathTrie] = None
    visited: Set[str] = field(default_factory=set)
    loop_counter: Dict[str, int] = field(default_factory=dict)
    failed: Set[str] = field(default_factory=set)
    # Keys in the order they were handed to the renderer
    fetch_log: List[str] = field(default_factory=list)
    stats: Counter = field(default_factory=Counter)
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    def __post_init__(self):
        if self.path_trie is None:
            self.path_trie = PathTrie(self.base_url)

    @property
    def recorded_keys(self) -> Set[str]:
        """Visited keys that produced a record (failed fetches excluded)."""
        return self.visited - self.failed


class CrawlScheduler:
    """
    Drives a renderer over a site.

    Usage::

        ctx = CrawlContext(base_url, URLNormalizer())
        scheduler = CrawlScheduler(renderer, config, reporter)
        await scheduler.traverse(ctx)
    """

    def __init__(
        self,
        renderer: BaseRenderer,
        config: ExtractorRunConfig = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.renderer = renderer
        self.config = config or ExtractorRunConfig()
        self.progress = progress

    # ------------------------------------------------------------------
    # Admission (steps before the fetch)
    # ------------------------------------------------------------------

    def admit(self, ctx: CrawlContext, item: WorkItem) -> Tuple[VisitOutcome, str]:
        """
        Decide whether ``item`` gets fetched. Marks it visited if so.

        Returns ``(outcome, key)``; ``key`` is empty for over-depth items.
        """
        if item.depth > self.config.max_depth:
            return VisitOutcome.OVER_DEPTH, ""

        key = ctx.normalizer.normalize(item.url)

        attempts = ctx.loop_counter.get(key, 0)
        if attempts >= self.config.loop_threshold:
            logger.debug(f"{'  ' * item.depth}[LOOP] Loop detected for {key}, skipping")
            return VisitOutcome.LOOP, key
        ctx.loop_counter[key] = attempts + 1

        if key in ctx.visited:
            if item.parent_key:
                ctx.page_tree.add_cross_link(item.parent_key, key)
            return VisitOutcome.DUPLICATE, key

        if not extract_host(item.url):
            return VisitOutcome.MALFORMED, key
        if not is_same_origin(item.url, ctx.base_url):
            return VisitOutcome.CROSS_ORIGIN, key

        ctx.visited.add(key)
        return VisitOutcome.ADMITTED, key

    # ------------------------------------------------------------------
    # Link selection (steps after the fetch)
    # ------------------------------------------------------------------

    def select_links(
        self,
        ctx: CrawlContext,
        page: RenderedPage,
        depth: int,
        page_key: str,
    ) -> List[PageLink]:
        """
        Same-origin content links of ``page`` worth expanding, shallowest
        path first, capped at the depth's link budget. Excess is dropped.
        Each link keeps its anchor text as a title fallback for the page.
        """
        base = page.resolved_url or page.url
        candidates: List[PageLink] = []
        seen: Set[str] = set()

        for link in page.links:
            absolute = resolve_link(link.href, base)
            if absolute is None:
                continue
            absolute = urldefrag(absolute)[0]
            if is_denied_host(absolute, self.config.deny_hosts):
                continue
            if not is_same_origin(absolute, ctx.base_url):
                continue

            key = ctx.normalizer.normalize(absolute)
            if key in seen or key == page_key:
                continue
            seen.add(key)
            if key in ctx.visited:
                ctx.page_tree.add_cross_link(page_key, key)
                continue
            candidates.append(PageLink(href=absolute, text=link.text))

        candidates.sort(key=lambda link: len(path_segments(link.href)))
        budget = self.config.link_budget(depth)
        if len(candidates) > budget:
            logger.debug(
                f"{'  ' * depth}[CRAWL] Budget {budget} drops "
                f"{len(candidates) - budget} of {len(candidates)} links"
            )
        return candidates[:budget]

    # ------------------------------------------------------------------
    # Fetch + record
    # ------------------------------------------------------------------

    async def _fetch(self, item: WorkItem) -> Optional[RenderedPage]:
        timeout_ms = self.config.page_timeout_ms
        try:
            return await asyncio.wait_for(
                self.renderer.render(item.url, timeout_ms),
                timeout=timeout_ms / 1000 + _FETCH_GRACE_SECONDS,
            )
        except FetchFailure as e:
            logger.warning(f"{'  ' * item.depth}[CRAWL] Failed: {e.url}: {e.reason}")
        except asyncio.TimeoutError:
            logger.warning(f"{'  ' * item.depth}[CRAWL] Failed: {item.url}: fetch timed out")
        return None

    def _record(
        self,
        ctx: CrawlContext,
        item: WorkItem,
        key: str,
        page: RenderedPage,
    ) -> List[WorkItem]:
        ctx.page_tree.add(
            url=item.url,
            key=key,
            title=page.title or item.link_text or "Untitled",
            path=page.path or "/",
            depth=item.depth,
            parent_key=item.parent_key,
        )
        ctx.path_trie.add_url(item.url)

        if self.progress is not None:
            self.progress.page_processed(f"Scanning: {page.path or '/'}", *CRAWL_RANGE)

        links = self.select_links(ctx, page, item.depth, key)
        logger.info(
            f"{'  ' * item.depth}[CRAWL] {page.path or '/'}: "
            f"{len(page.links)} links, expanding {len(links)}"
        )
        return [WorkItem(link.href, item.depth + 1, key, link.text) for link in links]

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def traverse(self, ctx: CrawlContext) -> Counter:
        """
        Crawl from ``ctx.base_url`` until the frontier is empty or the
        context is cancelled. Returns outcome counts.
        """
        stack: List[WorkItem] = [WorkItem(ctx.base_url, 0, None)]
        batch_size = self.config.max_concurrency

        while stack:
            if ctx.cancelled.is_set():
                logger.info("[CRAWL] Stop requested, no further fetches")
                break

            admitted: List[Tuple[WorkItem, str]] = []
            while stack and len(admitted) < batch_size:
                item = stack.pop()
                outcome, key = self.admit(ctx, item)
                if outcome is VisitOutcome.ADMITTED:
                    admitted.append((item, key))
                else:
                    ctx.stats[outcome.value] += 1

            if not admitted:
                continue

            for item, key in admitted:
                ctx.fetch_log.append(key)
            pages = await asyncio.gather(*(self._fetch(item) for item, _ in admitted))

            children: List[WorkItem] = []
            for (item, key), page in zip(admitted, pages):
                if page is None:
                    ctx.failed.add(key)
                    ctx.stats[VisitOutcome.FAILED.value] += 1
                    continue
                ctx.stats[VisitOutcome.RECORDED.value] += 1
                children.extend(self._record(ctx, item, key, page))

            # First child ends up on top of the stack
            stack.extend(reversed(children))

        return ctx.stats
