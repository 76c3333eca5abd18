"""Loader for the paginated "Mehr anzeigen" partial schedule endpoint."""
import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from processor.models import PipelineSettings
from scraper.bfv_source import BfvSource, validate_url
from scraper.exceptions import BfvError, PaginationAborted

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 5
MIN_PAGE_LENGTH = 50


@dataclass
class PaginationResult:
    """Concatenated partial HTML and the reason loading stopped."""
    html: str
    pages: int
    stop_reason: str


def page_size(url: str) -> int:
    """Read the ``size`` query parameter, defaulting to 5."""
    params = dict(parse_qsl(urlsplit(url).query))
    try:
        size = int(params.get('size', DEFAULT_PAGE_SIZE))
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE
    return size if size > 0 else DEFAULT_PAGE_SIZE


def with_offset(url: str, offset: int) -> str:
    """Return ``url`` with its ``from`` query parameter set to ``offset``."""
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    replaced = False
    updated = []
    for key, value in params:
        if key == 'from':
            if replaced:
                continue
            value = str(offset)
            replaced = True
        updated.append((key, value))
    if not replaced:
        updated.append(('from', str(offset)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(updated), parts.fragment))


class PartialScheduleLoader:
    """Fetches successive pages of a partial endpoint until data runs out."""

    def __init__(self, source: BfvSource, settings: Optional[PipelineSettings] = None):
        self.source = source
        self.settings = settings or source.settings

    def load_all(self, more_url: str) -> PaginationResult:
        """
        Fetch pages sequentially, stopping on failure, short bodies or repeats.

        The endpoint keeps returning its last page past the end of real data,
        so a body whose hash was already seen ends the loop.

        Args:
            more_url: Partial endpoint URL carrying ``from``/``size`` parameters

        Returns:
            PaginationResult with the newline-joined page bodies

        Raises:
            PaginationAborted: If the endpoint is not an allowed https URL
        """
        try:
            base_url = validate_url(more_url, self.settings)
        except BfvError as e:
            raise PaginationAborted(f"Pagination aborted: {e.message}") from e

        size = page_size(base_url)
        parts: List[str] = []
        seen_hashes = set()
        stop_reason = 'max_pages'

        for page in range(self.settings.max_pages):
            url = with_offset(base_url, page * size)
            try:
                text = self.source.fetch(url).text
            except BfvError as e:
                logger.warning(f"Stopping pagination at page {page}: {e.message}")
                stop_reason = 'fetch_failed'
                break

            if len(text) < MIN_PAGE_LENGTH:
                stop_reason = 'short_page'
                break

            digest = hashlib.sha1(text.encode('utf-8')).hexdigest()
            if digest in seen_hashes:
                stop_reason = 'repeated_page'
                break
            seen_hashes.add(digest)
            parts.append(text)

        logger.info(
            f"Loaded {len(parts)} partial pages ({stop_reason})",
            extra={'url': base_url}
        )
        return PaginationResult(html='\n'.join(parts), pages=len(parts), stop_reason=stop_reason)
