"""End-to-end BFV calendar pipeline: fetch, extract, normalize, classify."""
import logging
from typing import Dict, Optional

from processor.classifier import identity_from_team_url
from processor.event_processor import EventProcessor
from processor.ics_parser import IcsEventExtractor
from processor.models import (
    CalendarEvent,
    PipelineResult,
    PipelineSettings,
    RawContent,
    TeamIdentity,
)
from scraper.bfv_source import (
    BfvSource,
    build_default_more_url,
    extract_team_id,
    looks_like_ics,
)
from scraper.exceptions import PaginationAborted, UnrecognizedResponseFormat
from scraper.html_extractor import HtmlEventExtractor
from scraper.pagination import PartialScheduleLoader

logger = logging.getLogger(__name__)

DEBUG_EVENT_COUNT = 5


class BfvPipeline:
    """Runs one request through fetching, extraction and normalization."""

    def __init__(self, settings: Optional[PipelineSettings] = None, source: Optional[BfvSource] = None):
        self.settings = settings or PipelineSettings()
        self.source = source or BfvSource(self.settings)
        self.processor = EventProcessor(self.settings)

    def run(
        self,
        url: str,
        more_url: Optional[str] = None,
        identity: Optional[TeamIdentity] = None,
        home_only: bool = False
    ) -> PipelineResult:
        """
        Fetch ``url`` and turn it into a normalized event list.

        Calendar documents go through the ICS extractor; anything else is
        scraped as HTML, including the "load more" pages.

        Args:
            url: Source ICS or HTML page URL
            more_url: Explicit pagination endpoint for the HTML path
            identity: Team hint; required for classification on the ICS path
            home_only: Drop events classified as away games

        Returns:
            PipelineResult with events and diagnostics

        Raises:
            BfvError: If the primary URL is rejected or cannot be fetched
        """
        raw = self.source.fetch(url)
        if looks_like_ics(raw.text):
            result = self._run_ics(raw, identity)
        else:
            result = self._run_html(raw, more_url, identity)

        if home_only:
            result.events = self.processor.filter_home_only(result.events)
        result.diagnostics['events'] = len(result.events)
        result.diagnostics['firstFive'] = [
            self._describe(event) for event in result.events[:DEBUG_EVENT_COUNT]
        ]
        return result

    def _run_ics(self, raw: RawContent, identity: Optional[TeamIdentity]) -> PipelineResult:
        extraction = IcsEventExtractor().extract(raw, identity)
        events = self.processor.normalize(extraction.events)
        events, dupes = self.processor.deduplicate(events)
        if identity is not None and not identity.is_empty:
            events = self.processor.classify(events, identity)

        diagnostics: Dict[str, object] = {
            'format': 'ics',
            'bodyLen': len(raw.text),
            'matches': extraction.stats.matches,
            'skippedIncomplete': extraction.stats.skipped_incomplete,
            'skippedDupes': dupes,
            'teamKey': identity.key if identity else '',
        }
        return PipelineResult(
            events=events, source_format='ics', diagnostics=diagnostics, timezones=extraction.timezones
        )

    def _run_html(
        self,
        raw: RawContent,
        more_url: Optional[str],
        identity: Optional[TeamIdentity]
    ) -> PipelineResult:
        more_url_auto = False
        if not more_url:
            team_id = extract_team_id(raw.url)
            if team_id:
                more_url = build_default_more_url(team_id)
                more_url_auto = True

        combined_html = raw.text
        partial_len = 0
        pagination_error = None
        if more_url:
            try:
                partial = PartialScheduleLoader(self.source, self.settings).load_all(more_url)
                partial_len = len(partial.html)
                if partial.html:
                    combined_html += '\n' + partial.html
            except PaginationAborted as e:
                logger.warning(f"Ignoring pagination endpoint: {e.message}")
                pagination_error = e.message

        if identity is None or identity.is_empty:
            identity = identity_from_team_url(raw.url, self.settings)

        extraction = HtmlEventExtractor().extract(
            RawContent(url=raw.url, text=combined_html, status=raw.status), identity
        )
        events, dupes = self.processor.deduplicate(extraction.events)
        events = self.processor.classify(events, identity)
        events = self.processor.sort_by_start(events)
        stats = extraction.stats
        stats.skipped_dupes = dupes

        diagnostics: Dict[str, object] = {
            'format': 'html',
            'baseHtmlLen': len(raw.text),
            'partialLen': partial_len,
            'combinedHtmlLen': len(combined_html),
            'hasMoreUrl': bool(more_url),
            'moreUrlAuto': more_url_auto,
            'matches': stats.matches,
            'hasUhr': stats.has_uhr,
            'skippedSeasonHistory': stats.skipped_season_history,
            'skippedDupes': stats.skipped_dupes,
            'skippedAbgesetzt': stats.skipped_abgesetzt,
            'teamKey': identity.key,
        }
        if pagination_error:
            diagnostics['paginationError'] = pagination_error
        if not events:
            warning = UnrecognizedResponseFormat('Response is not a calendar and yielded no events')
            logger.warning(warning.message, extra={'url': raw.url})
            diagnostics['warning'] = warning.to_dict()

        return PipelineResult(events=events, source_format='html', diagnostics=diagnostics)

    @staticmethod
    def _describe(event: CalendarEvent) -> Dict[str, object]:
        return {
            'summary': event.summary,
            'location': event.location,
            'start': event.start.isoformat(),
            'isHome': event.is_home,
        }

