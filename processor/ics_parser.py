"""Parser turning iCalendar text into CalendarEvent objects."""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.models import (
    CalendarEvent,
    ExtractionResult,
    ExtractionStats,
    RawContent,
    TeamIdentity,
)

logger = logging.getLogger(__name__)

FIELDS = ('UID', 'DTSTART', 'DTEND', 'SUMMARY', 'LOCATION', 'DESCRIPTION', 'STATUS')
TEXT_FIELDS = ('SUMMARY', 'LOCATION', 'DESCRIPTION', 'STATUS')
MAX_UID_LENGTH = 200

PROPERTY_LINE = re.compile(r'^([A-Za-z][A-Za-z0-9-]*)([;:])')
UNESCAPE_PATTERN = re.compile(r'\\([\\,;nN])')
UNESCAPE_MAP = {'\\': '\\', ',': ',', ';': ';', 'n': '\n', 'N': '\n'}
DATETIME_PATTERN = re.compile(r'^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?$', re.IGNORECASE)
DATE_ONLY_PATTERN = re.compile(r'^\d{8}$')


def unfold_lines(text: str) -> List[str]:
    """
    Split calendar text into logical lines.

    Line breaks are normalized to ``\\n`` first; a line starting with a single
    space or tab continues the previous line.

    Args:
        text: Raw calendar text

    Returns:
        List of unfolded lines
    """
    normalized = (text or '').replace('\r\n', '\n').replace('\r', '\n')
    lines: List[str] = []
    for line in normalized.split('\n'):
        if line[:1] in (' ', '\t') and lines:
            lines[-1] += line[1:]
        else:
            lines.append(line)
    return lines


def unescape_text(value: str) -> str:
    """Undo iCalendar text escaping in a single ordered pass."""
    return UNESCAPE_PATTERN.sub(lambda m: UNESCAPE_MAP[m.group(1)], value)


def split_property(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    """
    Split a content line into name, parameters and value.

    The value starts after the first colon that is not inside a quoted
    parameter value.

    Returns:
        Tuple of (upper-case name, parameters, value) or None for non-property lines
    """
    match = PROPERTY_LINE.match(line)
    if not match:
        return None

    name = match.group(1).upper()
    if match.group(2) == ':':
        return name, {}, line[match.end():]

    in_quotes = False
    for index in range(match.end(), len(line)):
        char = line[index]
        if char == '"':
            in_quotes = not in_quotes
        elif char == ':' and not in_quotes:
            return name, _parse_params(line[match.end():index]), line[index + 1:]
    return None


def _parse_params(text: str) -> Dict[str, str]:
    params = {}
    for chunk in re.findall(r'([^;=]+)=("[^"]*"|[^;]*)', text):
        params[chunk[0].strip().upper()] = chunk[1].strip('"')
    return params


def parse_ics_datetime(value: str, params: Optional[Dict[str, str]] = None) -> Optional[datetime]:
    """
    Parse DTSTART/DTEND values.

    Supports UTC (``...Z``), floating local time, ``TZID`` zoned time and
    date-only values (midnight, floating).

    Returns:
        datetime or None if the value cannot be parsed
    """
    match = DATETIME_PATTERN.match((value or '').strip())
    if not match:
        return None

    year, month, day, hour, minute, second, utc = match.groups()
    try:
        parsed = datetime(
            int(year), int(month), int(day),
            int(hour or 0), int(minute or 0), int(second or 0)
        )
    except ValueError:
        return None

    if utc:
        return parsed.replace(tzinfo=timezone.utc)

    tzid = (params or {}).get('TZID')
    if tzid and hour is not None:
        try:
            return parsed.replace(tzinfo=ZoneInfo(tzid))
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug(f"Unknown TZID '{tzid}', keeping floating time")
    return parsed


def is_date_only(value: str) -> bool:
    return bool(DATE_ONLY_PATTERN.match((value or '').strip()))


def timezone_blocks(lines: List[str]) -> Dict[str, List[str]]:
    """
    Collect VTIMEZONE components by TZID.

    Lines are kept verbatim (unfolded) so they can be written back unchanged;
    the first definition of a TZID wins.
    """
    blocks: Dict[str, List[str]] = {}
    current: Optional[List[str]] = None
    tzid = ''

    for line in lines:
        upper = line.strip().upper()
        if upper == 'BEGIN:VTIMEZONE':
            current = [line.strip()]
            tzid = ''
            continue
        if current is None:
            continue
        if not upper:
            continue
        current.append(line.rstrip())
        if upper == 'END:VTIMEZONE':
            if tzid and tzid not in blocks:
                blocks[tzid] = current
            current = None
            continue
        prop = split_property(line)
        if prop is not None and prop[0] == 'TZID' and not tzid:
            tzid = prop[2].strip()

    return blocks


class IcsEventExtractor:
    """Extracts events from calendar-format documents."""

    def extract(self, raw: RawContent, identity: Optional[TeamIdentity] = None) -> ExtractionResult:
        """
        Parse all VEVENT blocks of a calendar document.

        Events without a usable DTSTART or DTEND are dropped silently.

        Args:
            raw: Fetched calendar document
            identity: Unused; events are classified later in the pipeline

        Returns:
            ExtractionResult with events in document order
        """
        stats = ExtractionStats()
        events: List[CalendarEvent] = []
        lines = unfold_lines(raw.text)

        for block in self._event_blocks(lines):
            stats.matches += 1
            event = self._build_event(block)
            if event is None:
                stats.skipped_incomplete += 1
                continue
            events.append(event)

        logger.info(
            f"Parsed {len(events)} events from calendar "
            f"({stats.skipped_incomplete} incomplete)"
        )
        return ExtractionResult(events=events, stats=stats, timezones=timezone_blocks(lines))

    def parse(self, text: str) -> List[CalendarEvent]:
        return self.extract(RawContent(url='', text=text)).events

    def _event_blocks(self, lines: List[str]) -> List[Dict[str, Tuple[Dict[str, str], str]]]:
        blocks = []
        current: Optional[Dict[str, Tuple[Dict[str, str], str]]] = None
        last_field: Optional[str] = None

        for line in lines:
            upper = line.strip().upper()
            if upper == 'BEGIN:VEVENT':
                current = {}
                last_field = None
                continue
            if upper == 'END:VEVENT':
                if current is not None:
                    blocks.append(current)
                current = None
                continue
            if current is None or not upper:
                continue

            prop = split_property(line)
            if prop is None:
                # Stray text continues the previous recognized field
                if last_field is not None:
                    params, value = current[last_field]
                    current[last_field] = (params, value + '\n' + line)
                continue

            name, params, value = prop
            if name in FIELDS and name not in current:
                current[name] = (params, value)
                last_field = name
            else:
                last_field = None

        return blocks

    def _build_event(self, block: Dict[str, Tuple[Dict[str, str], str]]) -> Optional[CalendarEvent]:
        if 'DTSTART' not in block or 'DTEND' not in block:
            return None

        start_params, start_value = block['DTSTART']
        end_params, end_value = block['DTEND']
        start = parse_ics_datetime(start_value, start_params)
        end = parse_ics_datetime(end_value, end_params)
        if start is None or end is None:
            logger.debug(f"Dropping event with unparseable dates: {start_value!r} / {end_value!r}")
            return None
        try:
            if end <= start:
                logger.debug(f"Dropping event ending before it starts: {start_value}")
                return None
        except TypeError:
            # floating vs. zoned values cannot be compared
            return None

        text = {
            name: unescape_text(block[name][1]).strip() if name in block else ''
            for name in TEXT_FIELDS
        }

        uid = unescape_text(block['UID'][1]).strip() if 'UID' in block else ''
        if not uid:
            uid = f"{start_value.strip()}-{text['SUMMARY']}"[:MAX_UID_LENGTH]

        return CalendarEvent(
            uid=uid,
            start=start,
            end=end,
            summary=text['SUMMARY'],
            location=text['LOCATION'],
            description=text['DESCRIPTION'],
            status=text['STATUS'].upper(),
            all_day=is_date_only(start_value) and is_date_only(end_value),
        )
