"""
Run Configuration
=================
Single source of truth for every extractor default.

The CLI, environment variables and library callers all build an
``ExtractorRunConfig``; nothing else in the package hard-codes a limit.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from .errors import ConfigError, RunTriggerError
from .utils import DEFAULT_DENY_HOSTS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_depth": 2,
    "include_query": False,
    "loop_threshold": 5,
    "link_budget_base": 50,          # links expanded at depth 0
    "link_budget_step": 10,          # fewer per extra level
    "link_budget_floor": 10,         # never fewer than this
    "max_concurrency": 1,            # renderer fetches in flight
    "page_timeout_seconds": 20,
    "sitemap_timeout_seconds": 10,
    "use_sitemap": True,
    "estimated_total": 50,           # assumed page count while crawling
    "headless": True,
    "viewport_width": 1920,
    "viewport_height": 1080,
    "output_dir": "./extractions",
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
}

# Per-fetch timeout bounds (seconds)
MIN_PAGE_TIMEOUT = 10
MAX_PAGE_TIMEOUT = 30

ENV_PREFIX = "SITEMAPPER_"


def validate_run_trigger(url: Optional[str], max_depth: int = _DEFAULTS["max_depth"]) -> str:
    """
    Check a run request and return the stripped URL.

    Raises:
        RunTriggerError: Missing URL, non-absolute URL, or negative depth.
    """
    if not url or not url.strip():
        raise RunTriggerError("URL is required")
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise RunTriggerError(f"Invalid URL: {url}") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise RunTriggerError(f"URL must be absolute http(s): {url}")
    if max_depth is None or int(max_depth) < 0:
        raise RunTriggerError(f"Depth must be >= 0, got {max_depth}")
    return url


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExtractorRunConfig:
    """
    Configuration for one extraction run.

    Populate via:
      - ``ExtractorRunConfig()``                → all defaults
      - ``ExtractorRunConfig(max_depth=3)``     → override one value
      - ``ExtractorRunConfig.from_env()``       → ``SITEMAPPER_*`` variables
      - ``ExtractorRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Traversal ----
    max_depth: int = _DEFAULTS["max_depth"]
    include_query: bool = _DEFAULTS["include_query"]
    loop_threshold: int = _DEFAULTS["loop_threshold"]
    link_budget_base: int = _DEFAULTS["link_budget_base"]
    link_budget_step: int = _DEFAULTS["link_budget_step"]
    link_budget_floor: int = _DEFAULTS["link_budget_floor"]
    max_concurrency: int = _DEFAULTS["max_concurrency"]
    deny_hosts: List[str] = field(default_factory=lambda: list(DEFAULT_DENY_HOSTS))

    # ---- Timeouts ----
    page_timeout_seconds: int = _DEFAULTS["page_timeout_seconds"]
    sitemap_timeout_seconds: int = _DEFAULTS["sitemap_timeout_seconds"]

    # ---- Discovery / progress ----
    use_sitemap: bool = _DEFAULTS["use_sitemap"]
    estimated_total: int = _DEFAULTS["estimated_total"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    viewport_width: int = _DEFAULTS["viewport_width"]
    viewport_height: int = _DEFAULTS["viewport_height"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Output ----
    output_dir: str = _DEFAULTS["output_dir"]

    def link_budget(self, depth: int) -> int:
        """How many links a page at ``depth`` may expand."""
        return max(
            self.link_budget_base - self.link_budget_step * depth,
            self.link_budget_floor,
        )

    @property
    def page_timeout_ms(self) -> int:
        seconds = min(max(self.page_timeout_seconds, MIN_PAGE_TIMEOUT), MAX_PAGE_TIMEOUT)
        return seconds * 1000

    def validate(self) -> "ExtractorRunConfig":
        """Raise ``ConfigError`` for values the extractor cannot honour."""
        if self.max_depth < 0:
            raise ConfigError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.loop_threshold < 1:
            raise ConfigError(f"loop_threshold must be >= 1, got {self.loop_threshold}")
        if self.max_concurrency < 1:
            raise ConfigError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.link_budget_floor < 0:
            raise ConfigError("link_budget_floor must be >= 0")
        if self.estimated_total < 0:
            raise ConfigError("estimated_total must be >= 0")
        return self

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ=None) -> "ExtractorRunConfig":
        """Build config from ``SITEMAPPER_*`` environment variables."""
        environ = os.environ if environ is None else environ
        kwargs = {}
        for name, default in _DEFAULTS.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            try:
                if isinstance(default, bool):
                    kwargs[name] = _env_bool(raw)
                elif isinstance(default, int):
                    kwargs[name] = int(raw)
                else:
                    kwargs[name] = raw
            except ValueError as e:
                raise ConfigError(f"{ENV_PREFIX}{name.upper()}={raw!r}: {e}") from e
        deny = environ.get(ENV_PREFIX + "DENY_HOSTS")
        if deny:
            kwargs["deny_hosts"] = [h.strip() for h in deny.split(",") if h.strip()]
        return cls(**kwargs)

    @classmethod
    def from_cli_args(cls, args, base: "ExtractorRunConfig" = None) -> "ExtractorRunConfig":
        """Overlay an argparse Namespace (``__main__.py``) onto ``base``."""
        cfg = base or cls()
        overrides = {
            "max_depth": getattr(args, "depth", None),
            "output_dir": getattr(args, "output_dir", None),
            "max_concurrency": getattr(args, "concurrency", None),
            "page_timeout_seconds": getattr(args, "timeout", None),
            "estimated_total": getattr(args, "estimated_total", None),
        }
        for name, value in overrides.items():
            if value is not None:
                setattr(cfg, name, value)
        if getattr(args, "include_query", False):
            cfg.include_query = True
        if getattr(args, "no_sitemap", False):
            cfg.use_sitemap = False
        if getattr(args, "headed", False):
            cfg.headless = False
        extra_deny = getattr(args, "deny_host", None) or []
        for host in extra_deny:
            if host not in cfg.deny_hosts:
                cfg.deny_hosts.append(host)
        return cfg

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("EXTRACTION RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Sitemap Probe:    {'on' if self.use_sitemap else 'off'}")
        logger.info(f"  Concurrency:      {self.max_concurrency}")
        logger.info(f"  Timeout:          {self.page_timeout_ms // 1000}s per page")
        logger.info(f"  Loop Threshold:   {self.loop_threshold}")
        logger.info(f"  Link Budget:      {self.link_budget(0)} at depth 0, floor {self.link_budget_floor}")
        logger.info(f"  Query Strings:    {'kept in key' if self.include_query else 'stripped'}")
        logger.info(f"  Output Dir:       {self.output_dir}")
        logger.info("=" * 60)
