"""Serializer emitting CalendarEvent objects as an iCalendar document."""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from processor.models import CalendarEvent, PipelineSettings

CRLF = '\r\n'


def escape_text(value: str) -> str:
    """
    Escape a text value for an iCalendar content line.

    Backslashes are escaped first so that the later substitutions are not
    escaped twice.
    """
    return (
        (value or '')
        .replace('\\', '\\\\')
        .replace('\n', '\\n')
        .replace(';', '\\;')
        .replace(',', '\\,')
    )


def format_ics_date(name: str, value: datetime) -> str:
    return f"{name};VALUE=DATE:{value.strftime('%Y%m%d')}"


def format_ics_datetime(name: str, value: datetime, known_tzids: Iterable[str] = ()) -> str:
    """
    Format a DTSTART/DTEND/DTSTAMP content line.

    Naive values are written as floating local time. Zoned values keep their
    ``TZID`` only when a VTIMEZONE for it is available; all other aware values
    are written in UTC with a trailing ``Z``.
    """
    stamp = value.strftime('%Y%m%dT%H%M%S')
    if value.tzinfo is None:
        return f"{name}:{stamp}"
    if isinstance(value.tzinfo, ZoneInfo) and value.tzinfo.key in known_tzids:
        return f"{name};TZID={value.tzinfo.key}:{stamp}"
    return f"{name}:{value.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%S')}Z"


def referenced_tzids(events: List[CalendarEvent], timezones: Dict[str, List[str]]) -> List[str]:
    """TZIDs used by ``events`` that have a VTIMEZONE definition, in first-use order."""
    used: List[str] = []
    for event in events:
        if event.all_day:
            continue
        for value in (event.start, event.end):
            key = getattr(value.tzinfo, 'key', None)
            if key in timezones and key not in used:
                used.append(key)
    return used


class IcsSerializer:
    """Builds calendar documents from normalized events."""

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or PipelineSettings()

    def serialize(
        self,
        events: Iterable[CalendarEvent],
        now: Optional[datetime] = None,
        timezones: Optional[Dict[str, List[str]]] = None
    ) -> str:
        """
        Emit a complete VCALENDAR document.

        Lines are CRLF terminated and not folded. Every TZID referenced by an
        event is preceded by its VTIMEZONE component.

        Args:
            events: Events in output order
            now: Generation time used for DTSTAMP (defaults to the current time)
            timezones: VTIMEZONE lines by TZID, as collected from the source

        Returns:
            Calendar document text
        """
        events = list(events)
        timezones = timezones or {}
        tzids = referenced_tzids(events, timezones)

        lines: List[str] = [
            'BEGIN:VCALENDAR',
            'VERSION:2.0',
            f"PRODID:{self.settings.prodid}",
            'CALSCALE:GREGORIAN',
        ]
        for tzid in tzids:
            lines.extend(timezones[tzid])
        dtstamp = self._dtstamp(now)

        for event in events:
            lines.append('BEGIN:VEVENT')
            lines.append(f"UID:{escape_text(event.uid)}")
            lines.append(dtstamp)
            if event.all_day:
                lines.append(format_ics_date('DTSTART', event.start))
                lines.append(format_ics_date('DTEND', event.end))
            else:
                lines.append(format_ics_datetime('DTSTART', event.start, tzids))
                lines.append(format_ics_datetime('DTEND', event.end, tzids))
            lines.append(f"SUMMARY:{escape_text(event.summary)}")
            if event.location:
                lines.append(f"LOCATION:{escape_text(event.location)}")
            if event.description:
                lines.append(f"DESCRIPTION:{escape_text(event.description)}")
            if event.status:
                lines.append(f"STATUS:{escape_text(event.status)}")
            lines.append('END:VEVENT')

        lines.append('END:VCALENDAR')
        return CRLF.join(lines) + CRLF

    def _dtstamp(self, now: Optional[datetime]) -> str:
        if self.settings.dtstamp_utc:
            moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
            return f"DTSTAMP:{moment.strftime('%Y%m%dT%H%M%S')}Z"
        local = ZoneInfo(self.settings.local_timezone)
        moment = (now or datetime.now(local)).astimezone(local)
        return f"DTSTAMP:{moment.strftime('%Y%m%dT%H%M%S')}"
