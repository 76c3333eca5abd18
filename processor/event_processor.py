"""Event processor for de-duplicating, classifying and filtering events."""
import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Tuple

from processor.classifier import HomeAwayClassifier
from processor.models import CalendarEvent, Matched, PipelineSettings, TeamIdentity
from processor.text_cleaner import clean_text

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor applying the post-extraction stages to a list of events."""

    def __init__(self, settings: Optional[PipelineSettings] = None):
        """
        Initialize the processor.

        Args:
            settings: Pipeline settings (location sentinels, city tokens)
        """
        self.settings = settings or PipelineSettings()
        self.classifier = HomeAwayClassifier(self.settings)

    def deduplicate(self, events: List[CalendarEvent]) -> Tuple[List[CalendarEvent], int]:
        """
        Drop events whose UID was already seen in this run.

        The first occurrence wins.

        Args:
            events: Events in pipeline order

        Returns:
            Tuple of (unique events, number of dropped duplicates)
        """
        seen = set()
        unique = []
        for event in events:
            if event.uid in seen:
                logger.debug(f"Dropping duplicate event '{event.summary}'")
                continue
            seen.add(event.uid)
            unique.append(event)
        return unique, len(events) - len(unique)

    def normalize(self, events: List[CalendarEvent]) -> List[CalendarEvent]:
        """Run summary and location text of calendar events through the text cleaner."""
        return [
            replace(event, summary=clean_text(event.summary), location=clean_text(event.location))
            for event in events
        ]

    def classify(self, events: List[CalendarEvent], identity: TeamIdentity) -> List[CalendarEvent]:
        """
        Attach home/away status and fill in missing locations.

        Args:
            events: Events with cleaned summaries
            identity: Team the calendar belongs to

        Returns:
            New event values with ``is_home`` and ``location`` set
        """
        classified = []
        for event in events:
            outcome = self.classifier.classify(event.summary, identity)
            classified.append(replace(
                event,
                is_home=outcome.value if isinstance(outcome, Matched) else None,
                location=self.classifier.infer_location(event.location, outcome),
            ))

        home = sum(1 for e in classified if e.is_home is True)
        unknown = sum(1 for e in classified if e.is_home is None)
        logger.info(
            f"Classified {len(classified)} events: {home} home, "
            f"{len(classified) - home - unknown} away, {unknown} unknown"
        )
        return classified

    @staticmethod
    def filter_home_only(events: List[CalendarEvent]) -> List[CalendarEvent]:
        """Keep home games and games whose status is unknown."""
        return [event for event in events if event.is_home is not False]

    @staticmethod
    def sort_by_start(events: List[CalendarEvent]) -> List[CalendarEvent]:
        return sorted(events, key=lambda e: _sort_key(e.start))


def _sort_key(value: datetime) -> datetime:
    # Aware and naive datetimes cannot be compared; compare wall-clock times.
    return value.replace(tzinfo=None)
