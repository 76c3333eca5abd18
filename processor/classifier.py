"""Home/away classification and venue inference for BFV fixtures."""
import logging
import re
import unicodedata
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from processor.models import (
    UNKNOWN,
    HomeAwayOutcome,
    Matched,
    PipelineSettings,
    TeamIdentity,
    Unknown,
)

logger = logging.getLogger(__name__)

CLUB_STOPWORDS = frozenset([
    'fc', 'sv', 'tsv', 'sc', 'spvgg', 'sg', 'jfg', 'dj', 'ev', 'u',
    'junioren', 'juniorinnen',
])
ROMAN_NUMERALS = frozenset(['i', 'ii', 'iii', 'iv', 'v', 'vi', 'vii', 'viii', 'ix', 'x'])
AGE_GROUP = re.compile(r'^u\d{1,2}$')
MIN_TOKEN_LENGTH = 3

FESTIVAL_MARKER = re.compile(r'^(.*?)\s*-\s*kinderfestival\b\s*-?\s*(.*)$', re.IGNORECASE)
PLACEHOLDER_SEPARATOR = re.compile(r'^(.*?)\s*-\s*:\s*-\s*(.*)$')
ROMAN_SUFFIX = re.compile(r'-(i|ii|iii|iv|v|vi|vii|viii|ix|x)$', re.IGNORECASE)

VENUE_KEYWORDS = r'(?:BSA|Sportanlage|Sportzentrum|Sportpark|Stadion|Platz|Anlage)'
STREET_SUFFIX = r'(?:straße|strasse|str\.|weg|allee|platz|ring|gasse)'
STREET_PART = rf'[A-Za-zÄÖÜäöüß0-9 .\-]{{0,80}}?{STREET_SUFFIX}\s*\d{{1,4}}[a-z]?'
CITY_PART = r'(\d{5})\s+([A-ZÄÖÜ][A-Za-zÄÖÜäöüß\-]+)'
VENUE_ADDRESS = re.compile(
    rf'({VENUE_KEYWORDS}[^,]{{0,90}}?)(?:,\s*|\s+)({STREET_PART}),?\s*{CITY_PART}',
    re.IGNORECASE
)
STREET_ADDRESS = re.compile(
    rf'([A-Za-zÄÖÜäöüß.\-]*{STREET_SUFFIX}\s*\d{{1,4}}[a-z]?),?\s*{CITY_PART}',
    re.IGNORECASE
)
POSTAL_CODE = re.compile(r'\b\d{5}\b')
ADDRESS_HINT = re.compile(rf'\b(?:str\.|(?:straße|strasse|weg|platz|allee)\b)|{VENUE_KEYWORDS}', re.IGNORECASE)
MAX_LOCATION_LENGTH = 200
ADDRESS_STOP_WORDS = re.compile(r'\s+(?:Zum Spiel|Spielinfo|\d{2}\.\d{2}\.\d{4})\b.*$', re.IGNORECASE)


def normalize_name(text: str) -> str:
    """Lowercase, fold diacritics and reduce to space-separated alphanumerics."""
    value = (text or '').lower().replace('ß', 'ss')
    value = unicodedata.normalize('NFD', value)
    value = ''.join(char for char in value if not unicodedata.combining(char))
    value = re.sub(r'[^a-z0-9]+', ' ', value)
    return value.strip()


def match_tokens(names: Iterable[str], city_tokens: Iterable[str] = ()) -> Tuple[str, ...]:
    """Extract identity tokens from club and team names, keeping first-seen order."""
    stop = CLUB_STOPWORDS | ROMAN_NUMERALS | frozenset(city_tokens)
    tokens: List[str] = []
    for name in names:
        for token in normalize_name(name).split():
            if token in stop or AGE_GROUP.match(token) or len(token) < MIN_TOKEN_LENGTH:
                continue
            if token not in tokens:
                tokens.append(token)
    return tuple(tokens)


def identity_from_names(*names: Optional[str], settings: Optional[PipelineSettings] = None) -> TeamIdentity:
    settings = settings or PipelineSettings()
    present = [n for n in names if n]
    key = normalize_name(' '.join(present))
    return TeamIdentity(key=key, tokens=match_tokens(present, settings.home_city_tokens))


def identity_from_team_url(team_url: str, settings: Optional[PipelineSettings] = None) -> TeamIdentity:
    """
    Build a team identity from the slug of a BFV team page URL.

    ``https://www.bfv.de/mannschaften/fc-stern-muenchen-u9-i/<id>`` yields the
    key ``fc stern muenchen u9`` and the token ``stern``.
    """
    settings = settings or PipelineSettings()
    slug = ''
    try:
        segments = [s for s in urlsplit(team_url).path.split('/') if s]
    except ValueError:
        segments = []
    if 'mannschaften' in segments:
        index = segments.index('mannschaften')
        if index + 1 < len(segments):
            slug = segments[index + 1]

    slug = ROMAN_SUFFIX.sub('', slug)
    key = normalize_name(slug)
    return TeamIdentity(key=key, tokens=match_tokens([key], settings.home_city_tokens))


def is_festival(summary: str) -> bool:
    return 'kinderfestival' in (summary or '').lower()


def split_sides(summary: str) -> Tuple[str, str]:
    """
    Split a summary into host and visiting text.

    Handles the Kinderfestival form ``Host - Kinderfestival - Visitor``, the
    placeholder form ``Home - : - Away`` and plain ``Home - Away``.

    Returns:
        Tuple of (host, visitor); visitor is '' when the summary has one side
    """
    text = re.sub(r'[–—]', '-', summary or '').strip()

    festival = FESTIVAL_MARKER.match(text)
    if festival and festival.group(1):
        return festival.group(1).strip(), festival.group(2).strip()

    placeholder = PLACEHOLDER_SEPARATOR.match(text)
    if placeholder and placeholder.group(1):
        return placeholder.group(1).strip(), placeholder.group(2).strip()

    parts = text.split(' - ', 1)
    if len(parts) == 2:
        return parts[0].strip(), parts[1].strip()
    return text, ''


def club_portion(team_text: str) -> str:
    """Normalized club name with age group and team suffix removed."""
    words = []
    for token in normalize_name(team_text).split():
        if AGE_GROUP.match(token) or token == 'kinderfestival':
            break
        words.append(token)
    while words and (words[-1] in ROMAN_NUMERALS or words[-1].isdigit()):
        words.pop()
    return ' '.join(words)


def side_matches(text: str, identity: TeamIdentity) -> bool:
    """True if enough identity tokens occur in ``text``: 2 hits, or 1 for a single-token identity."""
    if identity.is_empty or not text:
        return False
    normalized = normalize_name(text)
    hits = sum(1 for token in identity.tokens if token in normalized)
    needed = 1 if len(identity.tokens) == 1 else 2
    return hits >= needed


class HomeAwayClassifier:
    """Decides whether the calendar's team plays at home and fills missing venues."""

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or PipelineSettings()

    def classify(self, summary: str, identity: TeamIdentity) -> HomeAwayOutcome:
        """
        Classify a cleaned summary.

        Args:
            summary: Normalized "Home - Away" summary
            identity: Team the calendar belongs to

        Returns:
            Matched(True) for home, Matched(False) for away, UNKNOWN otherwise
        """
        host, visitor = split_sides(summary)

        if is_festival(summary):
            return self._classify_festival(host, visitor)

        host_hit = side_matches(host, identity)
        visitor_hit = side_matches(visitor, identity)
        if host_hit:
            return Matched(True)
        if visitor_hit:
            return Matched(False)
        return UNKNOWN

    def _classify_festival(self, host: str, visitor: str) -> HomeAwayOutcome:
        host_club = club_portion(host)
        visitor_club = club_portion(visitor)
        if not host_club or not visitor_club:
            return UNKNOWN
        return Matched(host_club == visitor_club)

    def infer_location(self, location: str, outcome: HomeAwayOutcome) -> str:
        """
        Return the source location, or a sentinel when the source has none.

        Home games get the configured home venue, away games the away
        sentinel; unknown games follow ``unknown_location_policy``.
        """
        if location:
            return location
        if isinstance(outcome, Unknown):
            if self.settings.unknown_location_policy == 'away':
                return self.settings.away_location
            return self.settings.unknown_location
        return self.settings.home_location if outcome.value else self.settings.away_location


def extract_location(text_window: str) -> str:
    """
    Find a venue address in a plain-text window.

    Tries venue keyword plus street address, then a bare street address, then
    the surroundings of a postal code that look like an address.

    Returns:
        The address or '' if none was found
    """
    text = re.sub(r'\s+', ' ', text_window or '').strip()

    match = VENUE_ADDRESS.search(text)
    if match:
        venue, street, postal_code, city = match.groups()
        return _tidy_location(f"{venue}, {street}, {postal_code} {city}")

    match = STREET_ADDRESS.search(text)
    if match:
        street, postal_code, city = match.groups()
        return _tidy_location(f"{street}, {postal_code} {city}")

    postal = POSTAL_CODE.search(text)
    if postal:
        around = text[max(0, postal.start() - 120):postal.end() + 120]
        if ADDRESS_HINT.search(around):
            return _tidy_location(around)

    return ''


def _tidy_location(value: str) -> str:
    value = ADDRESS_STOP_WORDS.sub('', value)
    value = re.sub(r'\s+', ' ', value).strip(' ,-')
    return value[:MAX_LOCATION_LENGTH]
