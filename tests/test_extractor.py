"""
Tests for whole extraction runs (extractor.py): sitemap path, crawl
fallback, output artifacts, cancellation and failure.
"""

import asyncio
import json

import pytest

from sitemapper.errors import ExtractionCancelled, RunFailure, RunTriggerError
from sitemapper.extractor import ExtractionRun, load_structure, run_extraction
from sitemapper.progress import ProgressPhase
from sitemapper.run_config import ExtractorRunConfig

from helpers import FakeDiscoverer, FakeRenderer

BASE = "https://example.com/"

SITE = {
    BASE: ("Home", ["/docs", "/about", "https://other.com/"]),
    "https://example.com/docs": ("Docs", ["/docs/intro", "/"]),
    "https://example.com/docs/intro": ("Intro", []),
    "https://example.com/about": ("About", []),
}


def make_run(tmp_path, renderer=None, discoverer=None, events=None, **config):
    config.setdefault("max_depth", 2)
    cfg = ExtractorRunConfig(output_dir=str(tmp_path / "out"), **config)
    return ExtractionRun(
        BASE,
        cfg,
        renderer=renderer or FakeRenderer(SITE),
        discoverer=discoverer or FakeDiscoverer(),
        progress_sink=events.append if events is not None else None,
    )


class TestSitemapPath:

    def test_sitemap_skips_rendering(self, tmp_path):
        """A usable sitemap means no page is rendered and the browser never starts."""
        renderer = FakeRenderer(SITE)
        discoverer = FakeDiscoverer([
            "https://example.com/",
            "https://example.com/docs/intro",
            "https://example.com/about",
            "https://other.com/elsewhere",
        ])
        run = make_run(tmp_path, renderer, discoverer)

        result = asyncio.run(run.execute())

        assert result.method == "sitemap"
        assert renderer.fetched == []
        assert renderer.started == 0
        assert result.total_urls == 3
        assert len(run.page_tree) == 0
        assert sorted(result.files) == ["structure.json", "url-structure.html"]

    def test_structure_json(self, tmp_path):
        """structure.json carries the run header and the nested trie."""
        discoverer = FakeDiscoverer(["https://example.com/docs/intro"])
        result = asyncio.run(make_run(tmp_path, discoverer=discoverer).execute())

        with open(result.files["structure.json"], encoding="utf-8") as f:
            data = json.load(f)
        assert data["baseUrl"] == BASE
        assert data["method"] == "sitemap"
        assert data["totalUrls"] == 1
        assert data["maxDepth"] == 2
        assert "docs" in data["structure"]["/"]["children"]


class TestCrawlPath:

    def test_fallback_crawl_writes_site_map(self, tmp_path):
        """An empty sitemap result falls back to traversal and adds site-map.html."""
        renderer = FakeRenderer(SITE)
        result = asyncio.run(make_run(tmp_path, renderer).execute())

        assert result.method == "crawl"
        assert result.total_urls == 4
        assert renderer.started == 1
        assert renderer.closed == 1
        assert sorted(result.files) == ["site-map.html", "structure.json", "url-structure.html"]
        assert result.stats["recorded"] == 4

    def test_output_directory_layout(self, tmp_path):
        """Only the published run directory is left behind, no staging directory."""
        result = asyncio.run(make_run(tmp_path).execute())
        out = tmp_path / "out"
        entries = [p.name for p in out.iterdir()]
        assert entries == [f"{result.timestamp}-{result.run_id[:8]}"]
        assert not any(name.startswith(".") for name in entries)

    def test_runs_in_the_same_second_do_not_collide(self, tmp_path):
        """Two runs sharing a timestamp and output directory both publish."""
        first = make_run(tmp_path)
        second = make_run(tmp_path)
        second.timestamp = first.timestamp

        first_result = asyncio.run(first.execute())
        second_result = asyncio.run(second.execute())

        assert first_result.output_dir != second_result.output_dir
        out = tmp_path / "out"
        assert len([p for p in out.iterdir() if p.is_dir()]) == 2

    def test_load_structure_round_trip(self, tmp_path):
        """A saved structure can be re-rendered without crawling."""
        run = make_run(tmp_path)
        result = asyncio.run(run.execute())

        loaded = load_structure(result.files["structure.json"])

        assert loaded["baseUrl"] == BASE
        assert loaded["method"] == "crawl"
        assert len(loaded["page_tree"]) == len(run.page_tree)
        assert loaded["path_trie"].to_dict() == run.path_trie.to_dict()

    def test_use_sitemap_off_never_probes(self, tmp_path):
        """Disabling sitemap discovery goes straight to traversal."""
        discoverer = FakeDiscoverer([BASE])
        run = make_run(tmp_path, discoverer=discoverer, use_sitemap=False)
        result = asyncio.run(run.execute())
        assert discoverer.calls == []
        assert result.method == "crawl"


class TestProgressEvents:

    def test_phase_sequence_and_monotonic(self, tmp_path):
        """Phases run in order and the percentage ends at exactly 100."""
        events = []
        asyncio.run(make_run(tmp_path, events=events).execute())

        percentages = [e.percentage for e in events]
        assert percentages == sorted(percentages)
        assert events[0].phase is ProgressPhase.INITIALIZING
        assert events[0].percentage == 2
        assert events[-1].phase is ProgressPhase.COMPLETED
        assert events[-1].percentage == 100
        finalizing = [e.percentage for e in events if e.phase is ProgressPhase.FINALIZING]
        assert finalizing == [88, 92, 96]
        scanning = [e for e in events if e.message.startswith("Scanning:")]
        assert len(scanning) == 4
        assert all(15 <= e.percentage <= 85 for e in scanning)


class TestCancellationAndFailure:

    def test_cancel_discards_output(self, tmp_path):
        """Stopping mid-crawl issues no more fetches, closes the renderer and publishes nothing."""
        events = []
        holder = {}
        renderer = FakeRenderer(SITE, on_render=lambda url: holder["run"].cancel())
        run = make_run(tmp_path, renderer, events=events)
        holder["run"] = run

        with pytest.raises(ExtractionCancelled):
            asyncio.run(run.execute())

        assert renderer.fetched == [BASE]
        assert renderer.closed == 1
        out = tmp_path / "out"
        assert not out.exists() or not any(out.iterdir())
        assert events[-1].phase is ProgressPhase.FAILED

    def test_cancel_before_crawl_never_starts_browser(self, tmp_path):
        """A stop that arrives during discovery keeps the browser closed."""
        renderer = FakeRenderer(SITE)
        run = make_run(tmp_path, renderer)
        run.cancel()

        with pytest.raises(ExtractionCancelled):
            asyncio.run(run.execute())

        assert renderer.started == 0
        assert renderer.fetched == []

    def test_renderer_start_failure(self, tmp_path):
        """A browser that cannot start fails the run without leaving output."""
        events = []
        renderer = FakeRenderer(SITE, fail_start=True)
        run = make_run(tmp_path, renderer, events=events)

        with pytest.raises(RunFailure):
            asyncio.run(run.execute())

        out = tmp_path / "out"
        assert not out.exists() or not any(out.iterdir())
        assert events[-1].phase is ProgressPhase.FAILED
        assert events[-1].message.startswith("Error:")

    def test_invalid_trigger(self, tmp_path):
        """Runs need an absolute http(s) URL."""
        with pytest.raises(RunTriggerError, match="URL is required"):
            ExtractionRun("", ExtractorRunConfig(output_dir=str(tmp_path)))
        with pytest.raises(RunTriggerError):
            ExtractionRun("example.com/no-scheme", ExtractorRunConfig(output_dir=str(tmp_path)))


class TestRunExtraction:

    def test_sync_wrapper(self, tmp_path):
        """run_extraction runs a whole extraction from synchronous code."""
        result = run_extraction(
            BASE,
            max_depth=1,
            output_dir=str(tmp_path / "out"),
            renderer=FakeRenderer(SITE),
            discoverer=FakeDiscoverer(),
        )
        assert result.method == "crawl"
        # Home plus its two same-origin links
        assert result.total_urls == 3
        assert result.to_dict()["totalUrls"] == 3
