"""
Error Types
Exceptions raised across the extractor.

Per-node problems (malformed links, cross-origin links, loops) never raise;
they are reported as ``VisitOutcome`` values by the scheduler. Only
``RunFailure`` and ``ExtractionCancelled`` escape a run.
"""


class SiteMapperError(Exception):
    """Base class for all extractor errors."""


class ConfigError(SiteMapperError):
    """Invalid configuration value."""


class RunTriggerError(ConfigError):
    """Invalid run request (missing or non-absolute URL, negative depth)."""


class FetchFailure(SiteMapperError):
    """A single page could not be rendered (timeout, network error)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class DiscoveryFailure(SiteMapperError):
    """A sitemap/robots probe failed. Always handled by the discoverer."""


class RunFailure(SiteMapperError):
    """The run cannot continue (renderer start-up or output I/O)."""


class ExtractionCancelled(SiteMapperError):
    """The run was stopped before completion; its output was discarded."""
