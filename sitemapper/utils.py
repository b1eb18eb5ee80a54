"""
Utility Functions
URL normalization, origin checks and link filtering.
"""

import logging
import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse

logger = logging.getLogger(__name__)


# Link prefixes that never point at a crawlable page
SKIP_PREFIXES = ('javascript:', 'mailto:', 'tel:', 'data:', '#')

# Social / share hosts that carry no site content
DEFAULT_DENY_HOSTS = (
    'facebook.com', 'twitter.com', 'x.com', 'linkedin.com',
    'instagram.com', 'youtube.com', 'pinterest.com', 'tiktok.com',
)


class URLNormalizer:
    """
    Canonicalizes URLs into comparison keys.

    The key is ``scheme://host/path`` lower-cased, with the fragment dropped,
    the trailing slash removed (except for the root ``/``), default ports
    stripped and duplicate slashes collapsed. Display strings are never
    derived from the key; callers keep the original URL for that.
    """

    # Common tracking parameters, dropped when query strings are kept
    TRACKING_PARAMS = {
        'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
        'fbclid', 'gclid', 'mc_cid', 'mc_eid', '_ga', '_gid', 'dclid',
    }

    DEFAULT_PORTS = {'http': '80', 'https': '443'}

    def __init__(self, include_query: bool = False):
        """
        Initialize the URL normalizer.

        Args:
            include_query: Keep the query string in the key. Traversal should
                leave this off so query-parameter variants (pagination,
                session ids) collapse onto one page.
        """
        self.include_query = include_query

    def normalize(self, url: str) -> str:
        """
        Normalize a URL to its deduplication key.

        Never raises. Unparseable or relative input comes back lower-cased
        as a degraded key, which simply never matches a real page.
        """
        if url is None:
            return ''
        raw = url.strip()

        try:
            parsed = urlparse(raw)
            port = parsed.port
        except ValueError:
            logger.debug(f"[NORMALIZE] Malformed URL kept as raw key: {raw[:80]}")
            return raw.lower()

        if not parsed.scheme or not parsed.netloc:
            return raw.lower()

        scheme = parsed.scheme.lower()
        netloc = parsed.netloc.lower()
        if port is not None and str(port) == self.DEFAULT_PORTS.get(scheme):
            netloc = netloc.rsplit(':', 1)[0]

        path = re.sub(r'/+', '/', parsed.path or '/')
        if path != '/':
            path = path.rstrip('/') or '/'

        key = f"{scheme}://{netloc}{path}"

        if self.include_query and parsed.query:
            params = [
                (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
                if k.lower() not in self.TRACKING_PARAMS
            ]
            if params:
                key += '?' + urlencode(sorted(params))

        return key.lower()

    __call__ = normalize


def extract_host(url: str) -> str:
    """Lower-cased hostname of a URL, or an empty string if it has none."""
    try:
        return (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''


def is_valid_url(url: str) -> bool:
    """Check if URL is an absolute http(s) URL."""
    try:
        parsed = urlparse(url)
        return all([parsed.scheme in ('http', 'https'), parsed.hostname])
    except ValueError:
        return False


def is_same_origin(url: str, base_url: str) -> bool:
    """True when both URLs share a host. Malformed URLs never match."""
    host = extract_host(url)
    return bool(host) and host == extract_host(base_url)


def is_denied_host(url: str, deny_hosts: Iterable[str]) -> bool:
    """True when the URL's host is (a subdomain of) one of ``deny_hosts``."""
    host = extract_host(url)
    for denied in deny_hosts:
        denied = denied.lower()
        if host == denied or host.endswith('.' + denied):
            return True
    return False


def resolve_link(href: str, page_url: str) -> Optional[str]:
    """
    Resolve an anchor href against the page it was found on.

    Returns None for empty hrefs, fragment-only anchors and
    ``javascript:``/``mailto:``/``tel:`` targets.
    """
    if not href:
        return None
    href = href.strip()
    if href.lower().startswith(SKIP_PREFIXES):
        return None
    try:
        absolute = urljoin(page_url, href)
    except ValueError:
        return None
    if urlparse(absolute).scheme not in ('http', 'https'):
        return None
    return absolute


def path_segments(url: str) -> list:
    """Non-empty path segments of a URL."""
    try:
        path = urlparse(url).path
    except ValueError:
        return []
    return [segment for segment in path.split('/') if segment]


def clean_text(text: str) -> str:
    """Collapse whitespace runs and strip."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()
