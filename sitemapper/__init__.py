"""
Site structure extractor: sitemap discovery with a rendered-crawl fallback,
producing a path trie, a page tree and collapsible HTML views of both.
"""

__version__ = "1.0.0"

from .errors import (
    ConfigError,
    DiscoveryFailure,
    ExtractionCancelled,
    FetchFailure,
    RunFailure,
    RunTriggerError,
    SiteMapperError,
)
from .extractor import ExtractionResult, ExtractionRun, load_structure, run_extraction
from .progress import ProgressEvent, ProgressPhase, ProgressReporter, QueueSink, calculate_progress
from .renderer import BaseRenderer, PageLink, PlaywrightRenderer, RenderedPage
from .run_config import ExtractorRunConfig, validate_run_trigger
from .scheduler import CrawlContext, CrawlScheduler, VisitOutcome, WorkItem
from .sitemap import SitemapDiscoverer
from .structure import PageRecord, PageTree, PathTrie, PathTrieNode, get_file_icon
from .utils import URLNormalizer

__all__ = [
    "BaseRenderer",
    "ConfigError",
    "CrawlContext",
    "CrawlScheduler",
    "DiscoveryFailure",
    "ExtractionCancelled",
    "ExtractionResult",
    "ExtractionRun",
    "ExtractorRunConfig",
    "FetchFailure",
    "PageLink",
    "PageRecord",
    "PageTree",
    "PathTrie",
    "PathTrieNode",
    "PlaywrightRenderer",
    "ProgressEvent",
    "ProgressPhase",
    "ProgressReporter",
    "QueueSink",
    "RenderedPage",
    "RunFailure",
    "RunTriggerError",
    "SiteMapperError",
    "SitemapDiscoverer",
    "URLNormalizer",
    "VisitOutcome",
    "WorkItem",
    "calculate_progress",
    "get_file_icon",
    "load_structure",
    "run_extraction",
    "validate_run_trigger",
]
