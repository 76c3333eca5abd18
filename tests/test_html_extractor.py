"""Unit tests for the BFV schedule HTML extractor."""
from datetime import datetime

import pytest

from processor.models import RawContent
from scraper.html_extractor import HtmlEventExtractor, carve_summary, event_uid, fixture_scope

ROW = (
    '<div class="bfv-spieltag">'
    '<span>{date}</span> <span>{time} Uhr</span>'
    '<span class="team">{home}</span> - <span class="team">{away}</span>'
    '{extra}<a href="/spiele/1">Zum Spiel</a>'
    '</div>'
)


def row(date='01.03.2026', time='10:00', home='FC Stern U9-I', away='FC Bayern U9-I', extra=''):
    return ROW.format(date=date, time=time, home=home, away=away, extra=extra)


@pytest.fixture
def extractor():
    return HtmlEventExtractor()


def extract(extractor, html):
    return extractor.extract(RawContent(url='https://www.bfv.de/mannschaften/x/ABC', text=html))


class TestHelpers:
    """Test cases for summary carving helpers."""

    def test_carve_summary(self):
        """Test that the date, time and trailing link text are removed."""
        window = '01.03.2026 10:00 Uhr FC Stern U9-I - FC Bayern U9-I Zum Spiel 08.03.2026'
        assert carve_summary(window) == 'FC Stern U9-I - FC Bayern U9-I'

    def test_carve_summary_fallback(self):
        """Test that an empty carve falls back to the start of the window."""
        assert carve_summary('01.03.2026 10:00 Uhr Zum Spiel') == 'Zum Spiel'

    def test_fixture_scope_stops_at_next_date(self):
        """Test that the scope ends before the following fixture."""
        window = '01.03.2026 10:00 A - B 08.03.2026 11:00 C - D'
        assert fixture_scope(window) == '01.03.2026 10:00 A - B '

    def test_event_uid_is_stable(self):
        """Test that the same start and summary give the same UID."""
        start = datetime(2026, 3, 1, 10, 0)
        assert event_uid(start, 'A - B') == event_uid(start, 'A - B')
        assert event_uid(start, 'A - B') != event_uid(start, 'A - C')
        assert len(event_uid(start, 'A - B')) == 40


class TestHtmlEventExtractor:
    """Test cases for HtmlEventExtractor.extract."""

    def test_single_fixture(self, extractor):
        """Test a scraped row with date, time and teams."""
        result = extract(extractor, row())

        assert len(result.events) == 1
        event = result.events[0]
        assert event.summary == 'FC Stern U9-I - FC Bayern U9-I'
        assert event.start == datetime(2026, 3, 1, 10, 0)
        assert event.end == datetime(2026, 3, 1, 11, 30)
        assert event.location == ''
        assert event.is_home is None
        assert result.stats.matches == 1
        assert result.stats.has_uhr is True

    def test_multiple_fixtures_in_order(self, extractor):
        """Test that every row becomes its own event in page order."""
        html = row() + row(date='08.03.2026', time='11:15', home='TSV Forstenried U9', away='FC Stern U9-I')

        events = extract(extractor, html).events

        assert [e.summary for e in events] == [
            'FC Stern U9-I - FC Bayern U9-I',
            'TSV Forstenried U9 - FC Stern U9-I',
        ]
        assert events[1].start == datetime(2026, 3, 8, 11, 15)

    def test_row_location(self, extractor):
        """Test that an address inside the row is attached."""
        html = row(extra='<span>BSA Feldbergstraße, Feldbergstr. 65, 81825 München</span>')

        event = extract(extractor, html).events[0]

        assert event.location == 'BSA Feldbergstraße, Feldbergstr. 65, 81825 München'

    def test_row_location_without_attribute_debris(self, extractor):
        """Test that image attribute leftovers do not end up in the location."""
        html = row(extra='<span>Sportpark Nord</span> data-module=BfvImage <span>Musterweg 12, 80331 München</span>')

        location = extract(extractor, html).events[0].location

        assert location.endswith('Musterweg 12, 80331 München')
        assert 'data-module' not in location
        assert 'BfvImage' not in location

    def test_skips_season_history(self, extractor):
        """Test that season and history rows are filtered."""
        result = extract(extractor, '<div>01.03.2026 10:00 Saison 2024/2025 Historie</div>')

        assert result.events == []
        assert result.stats.skipped_season_history == 1

    def test_skips_cancelled(self, extractor):
        """Test that cancelled fixtures are filtered."""
        result = extract(extractor, row(away='TSV Forstenried U9 abgesetzt'))

        assert result.events == []
        assert result.stats.skipped_abgesetzt == 1

    def test_skips_impossible_date(self, extractor):
        """Test that invalid calendar dates are ignored."""
        result = extract(extractor, row(date='31.02.2026'))

        assert result.events == []
        assert result.stats.matches == 1

    def test_dot_time_separator(self, extractor):
        """Test kickoff times written with a dot."""
        event = extract(extractor, row(time='9.30')).events[0]

        assert event.start == datetime(2026, 3, 1, 9, 30)
        assert event.summary == 'FC Stern U9-I - FC Bayern U9-I'

    def test_extraction_is_deterministic(self, extractor):
        """Test that the same page always yields the same UIDs."""
        html = row() + row(date='08.03.2026')

        first = [e.uid for e in extract(extractor, html).events]
        second = [e.uid for e in extract(extractor, html).events]

        assert first == second
        assert len(set(first)) == 2

    def test_page_without_dates(self, extractor):
        """Test that pages without fixtures yield nothing."""
        result = extract(extractor, '<html><body>Keine Spiele</body></html>')

        assert result.events == []
        assert result.stats.matches == 0
        assert result.stats.has_uhr is False
