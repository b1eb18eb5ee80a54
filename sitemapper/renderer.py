"""
Page Renderer
=============
The renderer turns a URL into the data the scheduler needs: title, final
URL/path after redirects, and every outbound anchor. Page script runs
before links are read, so client-rendered navigation is discoverable.

``BaseRenderer`` is the contract; ``PlaywrightRenderer`` is the headless
Chromium implementation. Tests substitute in-memory renderers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from playwright.async_api import Browser, BrowserContext, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .errors import FetchFailure, RunFailure
from .utils import clean_text

logger = logging.getLogger(__name__)


@dataclass
class PageLink:
    """An anchor found on a rendered page."""
    href: str
    text: str = ""


@dataclass
class RenderedPage:
    """What a renderer returns for one URL."""
    url: str                       # the URL that was requested
    resolved_url: str              # final URL after redirects
    title: str = ""
    path: str = "/"
    links: List[PageLink] = field(default_factory=list)


# Collect every anchor in one evaluation; ``a.href`` is already absolute
_EXTRACT_PAGE_JS = """
() => {
    const seen = new Set();
    const links = [];
    document.querySelectorAll('a[href]').forEach(a => {
        const href = a.href;
        if (href && !seen.has(href)) {
            seen.add(href);
            links.push({href: href, text: (a.textContent || '').trim()});
        }
    });
    return {
        title: document.title || '',
        url: window.location.href,
        path: window.location.pathname,
        links: links,
    };
}
"""


class BaseRenderer(ABC):
    """
    Contract for page renderers.

    Usable as an async context manager::

        async with PlaywrightRenderer() as renderer:
            page = await renderer.render(url, timeout_ms=20000)
    """

    async def start(self) -> None:
        """Acquire resources. Raise ``RunFailure`` if that is impossible."""

    async def close(self) -> None:
        """Release resources. Must be safe to call more than once."""

    @abstractmethod
    async def render(self, url: str, timeout_ms: int) -> RenderedPage:
        """Render ``url``; raise ``FetchFailure`` on timeout or network error."""
        ...

    async def __aenter__(self) -> "BaseRenderer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class PlaywrightRenderer(BaseRenderer):
    """Headless Chromium renderer: one browser, one context, a page per fetch."""

    def __init__(
        self,
        headless: bool = True,
        user_agent: Optional[str] = None,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = {'width': viewport_width, 'height': viewport_height}
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def start(self) -> None:
        if self._context is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=['--no-sandbox', '--disable-setuid-sandbox', '--disable-dev-shm-usage'],
            )
            ctx_kwargs = dict(viewport=self.viewport)
            if self.user_agent:
                ctx_kwargs['user_agent'] = self.user_agent
            self._context = await self._browser.new_context(**ctx_kwargs)
        except Exception as e:
            await self.close()
            raise RunFailure(f"Failed to start browser: {e}") from e
        logger.info(f"Playwright browser initialized (headless={self.headless})")

    async def close(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Context close: {e}")
            self._context = None
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"Browser close: {e}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def render(self, url: str, timeout_ms: int) -> RenderedPage:
        if self._context is None:
            raise FetchFailure(url, "renderer not started")

        try:
            page = await self._context.new_page()
        except PlaywrightError as e:
            reason = str(e).split("\n")[0]
            raise FetchFailure(url, f"could not open page: {reason}") from e

        try:
            await page.goto(url, wait_until='domcontentloaded', timeout=timeout_ms)
            data = await page.evaluate(_EXTRACT_PAGE_JS)
        except PlaywrightTimeout as e:
            raise FetchFailure(url, "navigation timeout") from e
        except PlaywrightError as e:
            # First line only; Playwright appends a long call log
            raise FetchFailure(url, str(e).split('\n')[0]) from e
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"Page close: {e}")

        return RenderedPage(
            url=url,
            resolved_url=data.get('url') or url,
            title=clean_text(data.get('title', '')),
            path=data.get('path') or '/',
            links=[
                PageLink(href=link['href'], text=clean_text(link.get('text', '')))
                for link in data.get('links', [])
            ],
        )
