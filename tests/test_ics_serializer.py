"""Unit tests for the ICS serializer."""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from processor.ics_parser import IcsEventExtractor, unescape_text
from processor.ics_serializer import IcsSerializer, escape_text, format_ics_date, format_ics_datetime
from processor.models import CalendarEvent, PipelineSettings, RawContent

NOW = datetime(2026, 2, 1, 8, 30, tzinfo=timezone.utc)


def make_event(**overrides) -> CalendarEvent:
    values = {
        'uid': 'abc',
        'start': datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc),
        'end': datetime(2026, 3, 1, 11, 30, tzinfo=timezone.utc),
        'summary': 'FC Stern U9-I - FC Bayern U9-I',
    }
    values.update(overrides)
    return CalendarEvent(**values)


class TestEscaping:
    """Test cases for text escaping."""

    def test_escape_special_characters(self):
        """Test escaping of backslash, newline, semicolon and comma."""
        assert escape_text('a\\b\nc;d,e') == 'a\\\\b\\nc\\;d\\,e'

    def test_unescape_reverses_escape(self):
        """Test that unescaping restores the original text."""
        for text in ('Feldbergstr. 65, 81825 München', 'a;b', 'C:\\new\nline', ''):
            assert unescape_text(escape_text(text)) == text


class TestDatetimes:
    """Test cases for date-time content lines."""

    def test_utc(self):
        """Test that aware non-zone values are written in UTC."""
        assert format_ics_datetime('DTSTART', datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)) == 'DTSTART:20260301T100000Z'

    def test_zoned(self):
        """Test that ZoneInfo values keep their TZID when it is defined."""
        value = datetime(2026, 3, 1, 10, 0, tzinfo=ZoneInfo('Europe/Berlin'))
        assert format_ics_datetime('DTSTART', value, ['Europe/Berlin']) == 'DTSTART;TZID=Europe/Berlin:20260301T100000'

    def test_zoned_without_definition_is_utc(self):
        """Test that a TZID without VTIMEZONE is converted to UTC."""
        value = datetime(2026, 3, 1, 10, 0, tzinfo=ZoneInfo('Europe/Berlin'))
        assert format_ics_datetime('DTSTART', value) == 'DTSTART:20260301T090000Z'

    def test_date(self):
        """Test DATE values for all-day events."""
        assert format_ics_date('DTSTART', datetime(2026, 3, 1)) == 'DTSTART;VALUE=DATE:20260301'

    def test_floating(self):
        """Test that naive values are written as floating time."""
        assert format_ics_datetime('DTEND', datetime(2026, 3, 1, 11, 30)) == 'DTEND:20260301T113000'


class TestIcsSerializer:
    """Test cases for IcsSerializer.serialize."""

    def test_document_structure(self):
        """Test header, event block order and CRLF line endings."""
        ics = IcsSerializer().serialize([make_event()], now=NOW)

        assert ics.endswith('END:VCALENDAR\r\n')
        assert '\n' not in ics.replace('\r\n', '')
        lines = ics.split('\r\n')
        assert lines[:4] == [
            'BEGIN:VCALENDAR',
            'VERSION:2.0',
            'PRODID:-//FC Stern Pitch Planner//BFV ICS//DE',
            'CALSCALE:GREGORIAN',
        ]
        assert lines[4:11] == [
            'BEGIN:VEVENT',
            'UID:abc',
            'DTSTAMP:20260201T083000Z',
            'DTSTART:20260301T100000Z',
            'DTEND:20260301T113000Z',
            'SUMMARY:FC Stern U9-I - FC Bayern U9-I',
            'END:VEVENT',
        ]

    def test_optional_fields(self):
        """Test that optional fields are emitted only when set."""
        event = make_event(location='Feldbergstr. 65, 81825 München', description='Anstoß', status='CONFIRMED')

        ics = IcsSerializer().serialize([event], now=NOW)

        assert 'LOCATION:Feldbergstr. 65\\, 81825 München\r\n' in ics
        assert 'DESCRIPTION:Anstoß\r\n' in ics
        assert 'STATUS:CONFIRMED\r\n' in ics

    def test_empty_calendar(self):
        """Test that an empty event list yields a valid document."""
        ics = IcsSerializer().serialize([], now=NOW)

        assert ics.startswith('BEGIN:VCALENDAR\r\n')
        assert 'BEGIN:VEVENT' not in ics

    def test_local_dtstamp(self):
        """Test the floating local DTSTAMP variant."""
        settings = PipelineSettings(dtstamp_utc=False)

        ics = IcsSerializer(settings).serialize([make_event()], now=NOW)

        assert 'DTSTAMP:20260201T093000\r\n' in ics

    def test_parse_after_serialize_keeps_fields(self):
        """Test that serialized events parse back with the same content."""
        event = make_event(location='BSA Feldbergstraße, Feldbergstr. 65, 81825 München', description='a;b\nc')

        parsed = IcsEventExtractor().parse(IcsSerializer().serialize([event], now=NOW))

        assert len(parsed) == 1
        assert parsed[0].uid == event.uid
        assert parsed[0].start == event.start
        assert parsed[0].end == event.end
        assert parsed[0].summary == event.summary
        assert parsed[0].location == event.location
        assert parsed[0].description == event.description


BERLIN_VTIMEZONE = (
    'BEGIN:VTIMEZONE\r\n'
    'TZID:Europe/Berlin\r\n'
    'BEGIN:STANDARD\r\n'
    'DTSTART:19701025T030000\r\n'
    'RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU\r\n'
    'TZOFFSETFROM:+0200\r\n'
    'TZOFFSETTO:+0100\r\n'
    'END:STANDARD\r\n'
    'END:VTIMEZONE\r\n'
)


def pass_through(source: str) -> str:
    result = IcsEventExtractor().extract(RawContent(url='', text=source))
    return IcsSerializer().serialize(result.events, now=NOW, timezones=result.timezones)


class TestPassThrough:
    """Test cases for parsing a calendar and writing it back."""

    def test_all_day_event_stays_all_day(self):
        """Test that DATE values are written back as DATE values."""
        source = (
            'BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:1\r\n'
            'DTSTART;VALUE=DATE:20250101\r\nDTEND;VALUE=DATE:20250102\r\n'
            'SUMMARY:Hallenturnier\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n'
        )

        out = pass_through(source)

        assert 'DTSTART;VALUE=DATE:20250101\r\n' in out
        assert 'DTEND;VALUE=DATE:20250102\r\n' in out
        assert 'T000000' not in out
        assert IcsEventExtractor().parse(out)[0].all_day is True

    def test_uid_with_separators_is_stable(self):
        """Test that UIDs with commas and semicolons survive repeated passes."""
        event = make_event(uid='20250101T100000-FC Stern U9-I, FC Bayern; U9-I')

        once = IcsEventExtractor().parse(IcsSerializer().serialize([event], now=NOW))
        twice = IcsEventExtractor().parse(IcsSerializer().serialize(once, now=NOW))

        assert once[0].uid == event.uid
        assert twice[0].uid == event.uid

    def test_zoned_events_keep_their_vtimezone(self):
        """Test that referenced time zones are defined in the output."""
        source = (
            'BEGIN:VCALENDAR\r\n' + BERLIN_VTIMEZONE
            + 'BEGIN:VEVENT\r\nUID:1\r\n'
            'DTSTART;TZID=Europe/Berlin:20250101T100000\r\n'
            'DTEND;TZID=Europe/Berlin:20250101T120000\r\n'
            'SUMMARY:FC Stern U9-I - FC Bayern U9-I\r\nEND:VEVENT\r\n'
            'BEGIN:VEVENT\r\nUID:2\r\n'
            'DTSTART;TZID=Europe/Berlin:20250108T100000\r\n'
            'DTEND;TZID=Europe/Berlin:20250108T120000\r\n'
            'SUMMARY:FC Bayern U9-I - FC Stern U9-I\r\nEND:VEVENT\r\n'
            'END:VCALENDAR\r\n'
        )

        out = pass_through(source)

        assert out.count('BEGIN:VTIMEZONE') == 1
        assert BERLIN_VTIMEZONE in out
        assert out.index('BEGIN:VTIMEZONE') < out.index('BEGIN:VEVENT')
        assert 'DTSTART;TZID=Europe/Berlin:20250101T100000\r\n' in out
        assert 'DTEND;TZID=Europe/Berlin:20250108T120000\r\n' in out

    def test_zoned_events_without_vtimezone_become_utc(self):
        """Test that no TZID is referenced without a definition."""
        source = (
            'BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:1\r\n'
            'DTSTART;TZID=Europe/Berlin:20250101T100000\r\n'
            'DTEND;TZID=Europe/Berlin:20250101T120000\r\n'
            'SUMMARY:x\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n'
        )

        out = pass_through(source)

        assert 'TZID' not in out
        assert 'DTSTART:20250101T090000Z\r\n' in out
        assert 'DTEND:20250101T110000Z\r\n' in out

    def test_unused_vtimezone_is_dropped(self):
        """Test that definitions no event refers to are not emitted."""
        source = (
            'BEGIN:VCALENDAR\r\n' + BERLIN_VTIMEZONE
            + 'BEGIN:VEVENT\r\nUID:1\r\nDTSTART:20250101T100000Z\r\n'
            'DTEND:20250101T120000Z\r\nSUMMARY:x\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n'
        )

        assert 'VTIMEZONE' not in pass_through(source)
