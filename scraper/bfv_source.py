"""HTTP access to the BFV website with host allow-list enforcement."""
import logging
import re
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import requests

from processor.models import PipelineSettings, RawContent
from scraper.exceptions import (
    HostNotAllowed,
    InvalidUrl,
    UnsupportedScheme,
    UpstreamFetchFailed,
)

logger = logging.getLogger(__name__)

ICS_MARKER = re.compile(r'BEGIN:VCALENDAR', re.IGNORECASE)
TEAM_ID_PATTERN = re.compile(r'/([0-9A-Z]{24,32})/?$')
MORE_URL_TEMPLATE = (
    'https://www.bfv.de/partial/mannschaftsprofil/spielplan/{team_id}/naechste'
    '?wettbewerbsart=1&spieltyp=ALLE&from=0&size=5'
)


def is_allowed_host(host: str, settings: PipelineSettings) -> bool:
    """Check a hostname against the exact hosts and trusted parent domains."""
    h = (host or '').lower().rstrip('.')
    if not h:
        return False
    if h in settings.allowed_hosts:
        return True
    return any(h == parent or h.endswith('.' + parent) for parent in settings.allowed_parent_domains)


def validate_url(url: str, settings: PipelineSettings) -> str:
    """
    Validate an upstream URL and return it in canonical https form.

    A ``webcal://`` URL is rewritten to ``https://`` before the scheme check.

    Args:
        url: URL as received from the caller
        settings: Pipeline settings carrying the allow-list

    Returns:
        The URL to fetch

    Raises:
        InvalidUrl: If the string is not an absolute URL
        UnsupportedScheme: If the scheme is not https
        HostNotAllowed: If the host is not on the allow-list
    """
    candidate = (url or '').strip()
    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
    except ValueError as e:
        raise InvalidUrl(f"Invalid url: {e}")

    if not parts.scheme or not parts.netloc or not hostname:
        raise InvalidUrl('Invalid url')

    scheme = parts.scheme.lower()
    if scheme == 'webcal':
        scheme = 'https'
    if scheme != 'https':
        raise UnsupportedScheme('Only https allowed')

    if not is_allowed_host(hostname, settings):
        raise HostNotAllowed('Host not allowed')

    return urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment))


def looks_like_ics(text: str) -> bool:
    """Cheap calendar-format check; not a full parse."""
    return bool(ICS_MARKER.search(text or ''))


def extract_team_id(team_url: str) -> str:
    """Return the BFV team identifier at the end of a team page URL, or ''."""
    try:
        path = urlsplit(team_url).path
    except ValueError:
        return ''
    match = TEAM_ID_PATTERN.search(path)
    return match.group(1) if match else ''


def build_default_more_url(team_id: str) -> str:
    """Build the partial "load more" endpoint URL for a team."""
    return MORE_URL_TEMPLATE.format(team_id=team_id)


class BfvSource:
    """Fetches raw documents from allow-listed BFV hosts."""

    HEADERS = {
        'User-Agent': (
            'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
            '(KHTML, like Gecko) Chrome/124.0 Safari/537.36'
        ),
        'Accept-Language': 'de-DE,de;q=0.9,en;q=0.8',
        'Accept': 'text/html,text/calendar,*/*',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
    }

    def __init__(self, settings: Optional[PipelineSettings] = None):
        """
        Initialize the source.

        Args:
            settings: Pipeline settings (allow-list, timeout)
        """
        self.settings = settings or PipelineSettings()

    def fetch(self, url: str) -> RawContent:
        """
        Validate and fetch a URL with a single GET.

        Args:
            url: Upstream URL (https or webcal)

        Returns:
            RawContent with the decoded body

        Raises:
            BfvError subclass describing the validation or fetch failure
        """
        target = validate_url(url, self.settings)
        status, text = self._get(target)
        if not 200 <= status < 300:
            logger.error(
                f"Upstream returned HTTP {status}",
                extra={'url': target, 'status': status}
            )
            raise UpstreamFetchFailed('BFV fetch failed', upstream_status=status, body=text)

        logger.info(f"Fetched {len(text)} characters", extra={'url': target})
        return RawContent(url=target, text=text, status=status)

    def _get(self, url: str) -> Tuple[int, str]:
        """
        Issue the GET request without retries.

        Returns:
            Tuple of (HTTP status, decoded body)
        """
        try:
            response = requests.get(
                url,
                headers=self.HEADERS,
                timeout=self.settings.timeout,
                allow_redirects=True
            )
        except requests.RequestException as e:
            logger.error(f"Request to upstream failed: {e}", extra={'url': url})
            raise UpstreamFetchFailed(f"BFV fetch failed: {e}") from e

        return response.status_code, self._decode(response)

    @staticmethod
    def _decode(response: requests.Response) -> str:
        # requests falls back to ISO-8859-1 for text/* without charset
        content_type = response.headers.get('Content-Type', '')
        if 'charset' not in content_type.lower():
            return response.content.decode('utf-8', errors='replace')
        return response.text
