"""In-memory stand-ins for the browser renderer and the sitemap discoverer."""

from urllib.parse import urldefrag, urlparse

from sitemapper.errors import FetchFailure, RunFailure
from sitemapper.renderer import BaseRenderer, PageLink, RenderedPage


class FakeRenderer(BaseRenderer):
    """
    Serves pages from a dict ``{url: (title, [href, ...])}``; an href may
    also be an ``(href, anchor_text)`` pair.

    Unknown URLs raise ``FetchFailure``. Every requested URL is appended
    to ``fetched``; ``on_render`` is called before each page is returned.
    """

    def __init__(self, pages, on_render=None, fail_start=False):
        self.pages = pages
        self.on_render = on_render
        self.fail_start = fail_start
        self.fetched = []
        self.started = 0
        self.closed = 0

    async def start(self):
        self.started += 1
        if self.fail_start:
            raise RunFailure("Failed to start browser: no chromium")

    async def close(self):
        self.closed += 1

    async def render(self, url, timeout_ms):
        self.fetched.append(url)
        url = urldefrag(url)[0]
        if url not in self.pages:
            raise FetchFailure(url, "net::ERR_NAME_NOT_RESOLVED")
        if self.on_render is not None:
            self.on_render(url)
        title, hrefs = self.pages[url]
        return RenderedPage(
            url=url,
            resolved_url=url,
            title=title,
            path=urlparse(url).path or "/",
            links=[PageLink(*h) if isinstance(h, tuple) else PageLink(href=h) for h in hrefs],
        )


class FakeDiscoverer:
    """Returns a fixed URL list, or raises nothing and returns []."""

    def __init__(self, urls=None):
        self.urls = list(urls or [])
        self.calls = []

    def discover(self, base_url):
        self.calls.append(base_url)
        return list(self.urls)
