#!/usr/bin/env python3
"""
Command-line entry point for the site mapper
============================================
Maps a site's structure, by sitemap when it has one and by rendering its
pages otherwise, and writes ``structure.json`` plus the HTML tree views.

All configuration flows through ``ExtractorRunConfig``: ``SITEMAPPER_*``
environment variables (a ``.env`` file is loaded first) are overlaid by
command-line flags.

Run with: python -m sitemapper https://example.com
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Project-root .env first, then the working directory
_env_path = Path(__file__).resolve().parent.parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()

from .errors import ConfigError, ExtractionCancelled, RunFailure
from .extractor import ExtractionResult, ExtractionRun
from .progress import QueueSink
from .run_config import ExtractorRunConfig, validate_run_trigger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def format_progress(event) -> str:
    """One console line per progress event."""
    return f"[{event.percentage:3d}%] {event.phase.value:<12} {event.message}"


async def _print_progress(sink: QueueSink) -> None:
    async for event in sink:
        print(format_progress(event))


def print_summary(result: ExtractionResult) -> None:
    """Print a completed run."""
    stats = result.stats
    print("\n" + "=" * 60)
    print("EXTRACTION COMPLETE")
    print("=" * 60)
    print(f"  Base URL:            {result.base_url}")
    print(f"  Method:              {result.method}")
    print(f"  Total URLs:          {result.total_urls}")
    if result.method == 'crawl':
        print(f"  Pages recorded:      {stats.get('recorded', 0)}")
        print(f"  Failed pages:        {stats.get('failed', 0)}")
        print(f"  Duplicates skipped:  {stats.get('skipped-duplicate', 0)}")
        print(f"  Loops skipped:       {stats.get('skipped-loop', 0)}")
    print(f"  Output:              {result.output_dir}")
    for name, path in result.files.items():
        print(f"    {name:<20} {path}")
    print("=" * 60)


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

async def _run(url: str, cfg: ExtractorRunConfig) -> ExtractionResult:
    sink = QueueSink()
    run = ExtractionRun(url, cfg, progress_sink=sink)
    printer = asyncio.create_task(_print_progress(sink))
    try:
        return await run.execute()
    finally:
        if run.progress.state.phase not in QueueSink.TERMINAL:
            sink.close()
        await printer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sitemapper',
        description='Site mapper - sitemap discovery with rendered-crawl fallback',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m sitemapper https://example.com
  python -m sitemapper https://example.com --depth 3 --output-dir ./maps
  python -m sitemapper https://example.com --no-sitemap --concurrency 4
        """
    )
    parser.add_argument('url', nargs='?', help='Base URL to map')
    parser.add_argument('--depth', type=int, help='Maximum crawl depth (default: 2)')
    parser.add_argument('--output-dir', type=str, help='Directory for run output (default: ./extractions)')
    parser.add_argument('--include-query', action='store_true',
                        help='Treat URLs that differ only in query string as different pages')
    parser.add_argument('--concurrency', type=int, help='Pages rendered at once (default: 1)')
    parser.add_argument('--timeout', type=int, help='Timeout per page in seconds, 10-30 (default: 20)')
    parser.add_argument('--no-sitemap', action='store_true', help='Skip sitemap discovery and always crawl')
    parser.add_argument('--estimated-total', type=int,
                        help='Assumed page count for crawl progress (default: 50)')
    parser.add_argument('--deny-host', type=str, action='append', default=[],
                        help='Never follow links to this host (repeatable)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def main(argv=None) -> int:
    """Parse argv, build ExtractorRunConfig, run. Returns the exit code."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    url = (args.url or '').strip()
    if url and not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    try:
        cfg = ExtractorRunConfig.from_cli_args(args, base=ExtractorRunConfig.from_env())
        url = validate_run_trigger(url, cfg.max_depth)
        cfg.validate()
    except ConfigError as e:
        print(f"Error: {e}")
        return EXIT_FAILED

    cfg.log_summary(url)

    try:
        result = asyncio.run(_run(url, cfg))
    except KeyboardInterrupt:
        print("\nExtraction interrupted, partial output discarded.")
        return EXIT_INTERRUPTED
    except ExtractionCancelled as e:
        print(f"\n{e}")
        return EXIT_INTERRUPTED
    except RunFailure as e:
        print(f"\nError: {e}")
        return EXIT_FAILED

    print_summary(result)
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
