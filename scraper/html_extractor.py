"""Extraction of fixtures from BFV schedule HTML."""
import hashlib
import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from processor.classifier import extract_location
from processor.models import (
    CalendarEvent,
    ExtractionResult,
    ExtractionStats,
    RawContent,
    TeamIdentity,
)
from processor.text_cleaner import clean_summary, clean_text

logger = logging.getLogger(__name__)

KICKOFF_PATTERN = re.compile(
    r'(\d{2})\.(\d{2})\.(\d{4})[^0-9]{0,120}?(\d{1,2})[:.](\d{2})(?:\s*Uhr)?',
    re.IGNORECASE
)
CARVE_PATTERN = re.compile(
    r'^.*?\d{2}\.\d{2}\.\d{4}[^0-9]{0,120}?\d{1,2}[:.]\d{2}(?:\s*Uhr)?',
    re.IGNORECASE | re.DOTALL
)
TRAILING_MARKER = re.compile(
    r'(?:Zum Spiel|Zur Spielinfo|Spielinfo|Mehr Infos|\d{2}\.\d{2}\.\d{4}).*$',
    re.IGNORECASE | re.DOTALL
)
WINDOW_SIZE = 5200
FALLBACK_LENGTH = 220
DATE_PATTERN = re.compile(r'\d{2}\.\d{2}\.\d{4}')
MATCH_DURATION = timedelta(minutes=90)
NOISE_WORDS = ('historie', 'saison')
CANCELLED_WORD = 'abgesetzt'


def event_uid(start: datetime, summary: str) -> str:
    """Deterministic identity for an extracted fixture."""
    key = f"{start.isoformat()}|{summary}"
    return hashlib.sha1(key.encode('utf-8')).hexdigest()


def fixture_scope(text_window: str) -> str:
    """Part of a text window that belongs to its first fixture."""
    dates = list(DATE_PATTERN.finditer(text_window))
    if len(dates) < 2:
        return text_window
    return text_window[:dates[1].start()]


def carve_summary(text_window: str) -> str:
    """
    Cut the match description out of a text window.

    Everything up to the kickoff time and everything from the first trailing
    marker on is removed; if nothing is left the start of the window is used.
    """
    after_time = CARVE_PATTERN.sub('', text_window, count=1)
    after_time = TRAILING_MARKER.sub('', after_time).strip()
    summary = clean_summary(after_time)
    if summary:
        return summary
    return clean_summary(text_window[:FALLBACK_LENGTH])


class HtmlEventExtractor:
    """Finds kickoff date/time anchors in raw HTML and builds events around them."""

    def extract(self, raw: RawContent, identity: Optional[TeamIdentity] = None) -> ExtractionResult:
        """
        Extract candidate fixtures from HTML.

        Locations found in the page are attached; missing locations and
        home/away status are left for the classifier.

        Args:
            raw: Fetched HTML, possibly concatenated from several pages
            identity: Unused here; accepted for the common extractor interface

        Returns:
            ExtractionResult with events in page order
        """
        html = raw.text or ''
        stats = ExtractionStats(has_uhr='uhr' in html.lower())
        events: List[CalendarEvent] = []

        for match in KICKOFF_PATTERN.finditer(html):
            stats.matches += 1
            day, month, year, hour, minute = (int(g) for g in match.groups())
            try:
                start = datetime(year, month, day, hour, minute)
            except ValueError:
                logger.debug(f"Skipping impossible kickoff {match.group(0)!r}")
                continue

            text_window = clean_text(html[match.start():match.start() + WINDOW_SIZE])
            summary = carve_summary(text_window)
            if not summary:
                continue

            lowered = summary.lower()
            if any(word in lowered for word in NOISE_WORDS):
                stats.skipped_season_history += 1
                continue
            if CANCELLED_WORD in lowered:
                stats.skipped_abgesetzt += 1
                continue

            events.append(CalendarEvent(
                uid=event_uid(start, summary),
                start=start,
                end=start + MATCH_DURATION,
                summary=summary,
                location=extract_location(fixture_scope(text_window)),
            ))

        logger.info(
            f"Extracted {len(events)} candidate events from {stats.matches} date matches",
            extra={
                'skipped_season_history': stats.skipped_season_history,
                'skipped_abgesetzt': stats.skipped_abgesetzt
            }
        )
        return ExtractionResult(events=events, stats=stats)
