"""
Extraction Run
==============
One run = one base URL, one depth limit, one set of state.

    initializing ─► discovering ─┬─ sitemap found ─► processing (10-85%)
                                 └─ no sitemap ───► processing (crawl, 15-85%)
                 ─► finalizing (88/92/96%) ─► completed (100%)
                 └─► failed (last percentage held)

Output is written into a hidden staging directory and renamed into place
only when every artifact is on disk, so a failed or stopped run never
leaves an artifact set that looks complete.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import ExtractionCancelled, RunFailure
from .progress import (
    DISCOVERING_PERCENT,
    DISCOVERY_DONE_PERCENT,
    FINALIZING_CHECKPOINTS,
    INITIALIZING_PERCENT,
    SITEMAP_RANGE,
    ProgressEvent,
    ProgressPhase,
    ProgressReporter,
)
from .renderer import BaseRenderer, PlaywrightRenderer
from .run_config import ExtractorRunConfig, validate_run_trigger
from .scheduler import CrawlContext, CrawlScheduler
from .sitemap import SitemapDiscoverer
from .structure import PageTree, PathTrie
from .tree_html import render_page_tree_document, render_path_tree_document
from .utils import URLNormalizer, is_same_origin

logger = logging.getLogger(__name__)


STRUCTURE_FILE = 'structure.json'
URL_STRUCTURE_FILE = 'url-structure.html'
SITE_MAP_FILE = 'site-map.html'

METHOD_SITEMAP = 'sitemap'
METHOD_CRAWL = 'crawl'


def _run_timestamp() -> str:
    """Filesystem-safe UTC timestamp, e.g. ``2024-05-01T12-30-05``."""
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S')


@dataclass
class ExtractionResult:
    """Summary of a completed run."""
    run_id: str
    base_url: str
    timestamp: str
    method: str
    total_urls: int
    output_dir: str
    files: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'runId': self.run_id,
            'baseUrl': self.base_url,
            'timestamp': self.timestamp,
            'method': self.method,
            'totalUrls': self.total_urls,
            'outputDir': self.output_dir,
            'files': dict(self.files),
            'stats': dict(self.stats),
        }


class ExtractionRun:
    """
    Discover and render the structure of one site.

    Usage::

        run = ExtractionRun("https://example.com", ExtractorRunConfig(max_depth=2))
        result = await run.execute()

    ``renderer`` and ``discoverer`` default to Playwright and HTTP sitemap
    probing; tests pass in-memory stand-ins. ``progress_sink`` receives a
    ``ProgressEvent`` at every state transition.
    """

    def __init__(
        self,
        base_url: str,
        config: ExtractorRunConfig = None,
        renderer: Optional[BaseRenderer] = None,
        discoverer: Optional[SitemapDiscoverer] = None,
        progress_sink: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        self.config = (config or ExtractorRunConfig()).validate()
        self.base_url = validate_run_trigger(base_url, self.config.max_depth)
        self.run_id = str(uuid.uuid4())
        self.timestamp = _run_timestamp()
        self.method: Optional[str] = None

        self.renderer = renderer or PlaywrightRenderer(
            headless=self.config.headless,
            user_agent=self.config.user_agent,
            viewport_width=self.config.viewport_width,
            viewport_height=self.config.viewport_height,
        )
        self.discoverer = discoverer
        if self.discoverer is None and self.config.use_sitemap:
            self.discoverer = SitemapDiscoverer(
                timeout=self.config.sitemap_timeout_seconds,
                user_agent=self.config.user_agent,
            )

        self.progress = ProgressReporter(progress_sink)
        self.context = CrawlContext(
            base_url=self.base_url,
            normalizer=URLNormalizer(include_query=self.config.include_query),
        )
        self.output_root = Path(self.config.output_dir)

    # ------------------------------------------------------------------
    # Public accessors
    # ------------------------------------------------------------------

    @property
    def path_trie(self) -> PathTrie:
        return self.context.path_trie

    @property
    def page_tree(self) -> PageTree:
        return self.context.page_tree

    @property
    def visited(self):
        return self.context.visited

    @property
    def run_name(self) -> str:
        """Directory name of this run's output, unique even within one second."""
        return f"{self.timestamp}-{self.run_id[:8]}"

    @property
    def final_dir(self) -> Path:
        return self.output_root / self.run_name

    @property
    def _staging_dir(self) -> Path:
        return self.output_root / f".{self.run_name}.partial"

    @property
    def cancelled(self) -> bool:
        return self.context.cancelled.is_set()

    @property
    def total_urls(self) -> int:
        if self.method == METHOD_SITEMAP:
            return self.path_trie.discovered_count
        return len(self.context.recorded_keys)

    def cancel(self) -> None:
        """Request a stop: no new fetches, renderer released, output discarded."""
        if not self.cancelled:
            logger.info(f"[RUN {self.run_id[:8]}] Stop requested")
        self.context.cancelled.set()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _discover(self) -> List[str]:
        if self.discoverer is None:
            return []
        self.progress.update(
            ProgressPhase.DISCOVERING, DISCOVERING_PERCENT, "Checking for sitemap..."
        )
        urls = await asyncio.to_thread(self.discoverer.discover, self.base_url)
        same_origin = [u for u in urls if is_same_origin(u, self.base_url)]
        if len(same_origin) < len(urls):
            logger.info(
                f"[SITEMAP] Ignoring {len(urls) - len(same_origin)} URLs "
                f"outside {self.base_url}"
            )
        return same_origin

    def _build_from_sitemap(self, urls: List[str]) -> None:
        self.method = METHOD_SITEMAP
        state = self.progress.state
        state.estimated_total = len(urls)
        self.progress.update(
            ProgressPhase.PROCESSING,
            DISCOVERY_DONE_PERCENT,
            f"Processing {len(urls)} URLs from sitemap...",
        )
        normalizer = self.context.normalizer
        for i, url in enumerate(urls, 1):
            if self.cancelled:
                return
            self.context.visited.add(normalizer.normalize(url))
            self.path_trie.add_url(url)
            self.progress.page_processed(
                f"Processing URL {i} of {len(urls)}...", *SITEMAP_RANGE
            )

    async def _crawl(self) -> None:
        self.method = METHOD_CRAWL
        self.progress.state.estimated_total = self.config.estimated_total
        self.progress.update(
            ProgressPhase.PROCESSING,
            DISCOVERY_DONE_PERCENT,
            "No sitemap found, starting crawl...",
        )
        if self.cancelled:
            return
        scheduler = CrawlScheduler(self.renderer, self.config, self.progress)
        await self.renderer.start()
        try:
            await scheduler.traverse(self.context)
        finally:
            await self.renderer.close()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def structure_index(self) -> dict:
        """The ``structure.json`` payload."""
        return {
            'runId': self.run_id,
            'baseUrl': self.base_url,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'method': self.method,
            'maxDepth': self.config.max_depth,
            'totalUrls': self.total_urls,
            'stats': dict(self.context.stats),
            'structure': self.path_trie.to_dict(),
            'pages': self.page_tree.to_list(),
        }

    def _write_outputs(self) -> Dict[str, str]:
        staging = self._staging_dir
        staging.mkdir(parents=True, exist_ok=False)
        generated = datetime.now(timezone.utc).isoformat()

        documents = {
            URL_STRUCTURE_FILE: render_path_tree_document(
                self.path_trie, self.base_url, self.total_urls,
                self.config.max_depth, generated_at=generated,
            ),
        }
        if self.method == METHOD_CRAWL and len(self.page_tree):
            documents[SITE_MAP_FILE] = render_page_tree_document(
                self.page_tree, self.base_url, self.path_trie.hostname,
                self.config.max_depth, generated_at=generated,
            )

        self.progress.update(ProgressPhase.FINALIZING, FINALIZING_CHECKPOINTS[0], "Generating reports...")
        for name, text in documents.items():
            (staging / name).write_text(text, encoding='utf-8')

        self.progress.update(ProgressPhase.FINALIZING, FINALIZING_CHECKPOINTS[1], "Finalizing structure...")
        with open(staging / STRUCTURE_FILE, 'w', encoding='utf-8') as f:
            json.dump(self.structure_index(), f, indent=2, ensure_ascii=False)

        self.progress.update(ProgressPhase.FINALIZING, FINALIZING_CHECKPOINTS[2], "Saving files...")
        if self.final_dir.exists():
            raise RunFailure(f"Output directory already exists: {self.final_dir}")
        staging.rename(self.final_dir)

        names = [STRUCTURE_FILE, *documents]
        return {name: str((self.final_dir / name).absolute()) for name in names}

    def _discard_outputs(self) -> None:
        if self._staging_dir.exists():
            shutil.rmtree(self._staging_dir, ignore_errors=True)
            logger.info(f"[OUTPUT] Discarded partial output {self._staging_dir}")

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def execute(self) -> ExtractionResult:
        """
        Run every phase and publish the artifact set.

        Raises:
            RunFailure: Renderer start-up or output I/O failed.
            ExtractionCancelled: ``cancel()`` was called before completion.
        """
        logger.info(f"[RUN {self.run_id[:8]}] Extracting {self.base_url} (depth {self.config.max_depth})")
        self.progress.update(ProgressPhase.INITIALIZING, INITIALIZING_PERCENT, "Initializing extraction...")

        try:
            urls = await self._discover() if self.config.use_sitemap else []
            if urls:
                logger.info(f"[RUN {self.run_id[:8]}] Found sitemap with {len(urls)} URLs")
                self._build_from_sitemap(urls)
            else:
                await self._crawl()

            if self.cancelled:
                raise ExtractionCancelled(f"Extraction of {self.base_url} was stopped")

            files = self._write_outputs()
            if self.cancelled:
                shutil.rmtree(self.final_dir, ignore_errors=True)
                raise ExtractionCancelled(f"Extraction of {self.base_url} was stopped")

        except ExtractionCancelled as e:
            self._discard_outputs()
            self.progress.fail(str(e))
            raise
        except asyncio.CancelledError:
            # Task cancelled from outside (e.g. Ctrl-C under asyncio.run)
            self.context.cancelled.set()
            self._discard_outputs()
            self.progress.fail("Extraction stopped")
            raise
        except RunFailure as e:
            self._discard_outputs()
            logger.error(f"[RUN {self.run_id[:8]}] Failed: {e}", exc_info=True)
            self.progress.fail(f"Error: {e}")
            raise
        except OSError as e:
            self._discard_outputs()
            logger.error(f"[RUN {self.run_id[:8]}] Output failed: {e}", exc_info=True)
            self.progress.fail(f"Error: {e}")
            raise RunFailure(f"Could not write output: {e}") from e

        self.progress.update(ProgressPhase.COMPLETED, 100, "Extraction completed!")
        logger.info(
            f"[RUN {self.run_id[:8]}] Completed: {self.total_urls} URLs via {self.method}, "
            f"saved to {self.final_dir}"
        )
        return ExtractionResult(
            run_id=self.run_id,
            base_url=self.base_url,
            timestamp=self.timestamp,
            method=self.method,
            total_urls=self.total_urls,
            output_dir=str(self.final_dir.absolute()),
            files=files,
            stats=dict(self.context.stats),
        )

    def run(self) -> ExtractionResult:
        """Run the extraction from synchronous code."""
        return asyncio.run(self.execute())


def load_structure(path) -> dict:
    """
    Read a ``structure.json`` and rebuild its structures.

    Returns a dict with ``baseUrl``, ``maxDepth``, ``totalUrls``, ``method``,
    ``path_trie`` (``PathTrie``) and ``page_tree`` (``PageTree``), enough to
    render the documents again without crawling.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    base_url = data['baseUrl']
    return {
        'baseUrl': base_url,
        'maxDepth': data.get('maxDepth', 0),
        'totalUrls': data.get('totalUrls', 0),
        'method': data.get('method'),
        'path_trie': PathTrie.from_dict(base_url, data.get('structure', {})),
        'page_tree': PageTree.from_list(data.get('pages', [])),
    }


def run_extraction(url: str, max_depth: int = 2, **kwargs) -> ExtractionResult:
    """
    One-shot synchronous extraction.

    Extra keyword arguments are ``ExtractorRunConfig`` fields, except
    ``renderer``, ``discoverer`` and ``progress_sink`` which go to the run.
    """
    run_kwargs = {
        name: kwargs.pop(name)
        for name in ('renderer', 'discoverer', 'progress_sink')
        if name in kwargs
    }
    config = ExtractorRunConfig(max_depth=max_depth, **kwargs)
    return ExtractionRun(url, config, **run_kwargs).run()
