"""Data models for BFV calendar event processing."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class CalendarEvent:
    """A single calendar entry flowing through the pipeline."""
    uid: str
    start: datetime
    end: datetime
    summary: str
    location: str = ''
    description: str = ''
    status: str = ''
    is_home: Optional[bool] = None
    all_day: bool = False


@dataclass(frozen=True)
class Matched:
    """Classification that produced a definite answer."""
    value: bool


@dataclass(frozen=True)
class Unknown:
    """Classification that could not decide."""


UNKNOWN = Unknown()

HomeAwayOutcome = Union[Matched, Unknown]


@dataclass(frozen=True)
class TeamIdentity:
    """Normalized token set describing the team the calendar belongs to."""
    key: str
    tokens: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.tokens


@dataclass(frozen=True)
class RawContent:
    """Body fetched from an upstream URL."""
    url: str
    text: str
    status: int = 200


@dataclass
class ExtractionStats:
    """Counters collected while extracting events, used for diagnostics."""
    matches: int = 0
    has_uhr: bool = False
    skipped_season_history: int = 0
    skipped_abgesetzt: int = 0
    skipped_dupes: int = 0
    skipped_incomplete: int = 0


@dataclass
class ExtractionResult:
    """Events produced by an extractor, its counters and any VTIMEZONE blocks keyed by TZID."""
    events: List[CalendarEvent]
    stats: ExtractionStats = field(default_factory=ExtractionStats)
    timezones: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""
    events: List[CalendarEvent]
    source_format: str
    diagnostics: Dict[str, object] = field(default_factory=dict)
    timezones: Dict[str, List[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class TeamFeed:
    """A team whose calendar is checked during a day scan."""
    team_id: str
    team_name: str
    club_id: str
    club_name: str
    ics_url: str
    age_u: Optional[int] = None


@dataclass(frozen=True)
class GameRow:
    """Event found during a day scan together with its team."""
    event: CalendarEvent
    feed: TeamFeed


@dataclass(frozen=True)
class PipelineSettings:
    """Fixed configuration shared by all pipeline stages."""
    timeout: int = 30
    allowed_hosts: Tuple[str, ...] = ('bfv.de', 'www.bfv.de', 'service.bfv.de', 'app.bfv.de')
    allowed_parent_domains: Tuple[str, ...] = ('bfv.de',)
    home_location: str = 'BSA Feldbergstraße, Feldbergstr. 65, 81825 München'
    away_location: str = 'Auswärts'
    unknown_location: str = 'Ort nicht im BFV-ICS'
    unknown_location_policy: str = 'unknown'
    home_city_tokens: Tuple[str, ...] = ('muenchen', 'munchen', 'muench')
    max_pages: int = 12
    scan_workers: int = 4
    dtstamp_utc: bool = True
    local_timezone: str = 'Europe/Berlin'
    prodid: str = '-//FC Stern Pitch Planner//BFV ICS//DE'
