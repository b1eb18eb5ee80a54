"""
Sitemap Discoverer
Tries to get a site's URL list cheaply from sitemap.xml / robots.txt before
any page is rendered.
"""

import gzip
import logging
import re
import zlib
from typing import List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup, ParserRejectedMarkup

from .errors import DiscoveryFailure

logger = logging.getLogger(__name__)


# Probed in this order; the first one that yields URLs wins
PROBE_PATHS = (
    '/sitemap.xml',
    '/sitemap_index.xml',
    '/sitemap.xml.gz',
    '/robots.txt',
)

MAX_PROBE_TIMEOUT = 10

_GZIP_MAGIC = b'\x1f\x8b'
_SITEMAP_DIRECTIVE_RE = re.compile(r'^\s*sitemap:\s*(\S+)', re.IGNORECASE | re.MULTILINE)


def find_sitemap_directive(robots_text: str) -> Optional[str]:
    """Return the first ``Sitemap:`` URL in a robots.txt body, if any."""
    if not robots_text:
        return None
    match = _SITEMAP_DIRECTIVE_RE.search(robots_text)
    return match.group(1).strip() if match else None


def parse_sitemap_urls(content: bytes) -> List[str]:
    """
    Extract ``<url><loc>`` entries from a sitemap document.

    Gzip-compressed bodies are detected by their magic bytes. ``<sitemap>``
    entries of a sitemap index are not followed.

    Raises:
        DiscoveryFailure: The body is corrupt gzip data or unparseable XML.
    """
    if not content:
        return []
    if content[:2] == _GZIP_MAGIC:
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError, zlib.error) as e:
            raise DiscoveryFailure(f"Corrupt gzip sitemap: {e}") from e

    try:
        soup = BeautifulSoup(content, 'xml')
    except (ParserRejectedMarkup, ValueError) as e:
        raise DiscoveryFailure(f"Unparseable sitemap: {e}") from e

    urls: List[str] = []
    seen = set()
    for url_tag in soup.find_all('url'):
        loc = url_tag.find('loc')
        if loc is None:
            continue
        text = loc.get_text(strip=True)
        if text and text not in seen:
            seen.add(text)
            urls.append(text)
    return urls


class SitemapDiscoverer:
    """
    Probes well-known sitemap locations for a site.

    Every probe failure (network error, timeout, bad status, unparseable
    body) is swallowed and the next location is tried. An empty result means
    the caller should fall back to traversal.
    """

    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    )

    def __init__(
        self,
        timeout: int = MAX_PROBE_TIMEOUT,
        user_agent: str = None,
        session: requests.Session = None,
    ):
        self.timeout = min(timeout, MAX_PROBE_TIMEOUT)
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': self.user_agent,
            'Accept': 'application/xml,text/xml,text/plain;q=0.9,*/*;q=0.8',
        })
        return session

    def _get(self, url: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise DiscoveryFailure(f"{url}: {e}") from e
        if not response.ok:
            raise DiscoveryFailure(f"{url}: status {response.status_code}")
        return response

    def fetch_sitemap(self, sitemap_url: str) -> List[str]:
        """Fetch one sitemap URL and return its entries."""
        response = self._get(sitemap_url)
        return parse_sitemap_urls(response.content)

    def _probe(self, base_url: str, probe_path: str) -> List[str]:
        probe_url = urljoin(base_url, probe_path)
        response = self._get(probe_url)

        if probe_path == '/robots.txt':
            sitemap_url = find_sitemap_directive(response.text)
            if not sitemap_url:
                logger.info("[SITEMAP] robots.txt has no Sitemap directive")
                return []
            logger.info(f"[SITEMAP] Found sitemap in robots.txt: {sitemap_url}")
            try:
                target = urljoin(probe_url, sitemap_url)
            except ValueError as e:
                raise DiscoveryFailure(f"Bad Sitemap directive {sitemap_url!r}: {e}") from e
            return self.fetch_sitemap(target)

        content_type = response.headers.get('Content-Type', '').lower()
        if 'xml' not in content_type and response.content[:2] != _GZIP_MAGIC:
            raise DiscoveryFailure(f"{probe_url}: not a sitemap (content-type '{content_type}')")
        return parse_sitemap_urls(response.content)

    def discover(self, base_url: str) -> List[str]:
        """
        Return the URLs listed by the first usable sitemap, in document order.

        Args:
            base_url: Any URL of the target site; probes go to its origin.

        Returns:
            List of URLs, empty when no sitemap could be used.
        """
        for probe_path in PROBE_PATHS:
            try:
                urls = self._probe(base_url, probe_path)
            except DiscoveryFailure as e:
                logger.debug(f"[SITEMAP] Probe {probe_path} failed: {e}")
                continue
            if urls:
                logger.info(f"[SITEMAP] {probe_path} yielded {len(urls)} URLs")
                return urls
            logger.debug(f"[SITEMAP] Probe {probe_path} yielded no URLs")

        logger.info(f"[SITEMAP] No usable sitemap for {base_url}")
        return []
