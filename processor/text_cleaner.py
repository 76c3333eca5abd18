"""Ordered text-cleaning rules for text scraped from BFV HTML."""
import re
from typing import Callable, List, Tuple

from bs4 import BeautifulSoup

Rule = Tuple[str, Callable[[str], str]]

# Known UTF-8-read-as-CP437/Latin-1 sequences, whole words before single letters.
MOJIBAKE_REPAIRS = [
    ('Feldbergstra├ƒe', 'Feldbergstraße'),
    ('M├╝nchen', 'München'),
    ('Stra├ƒe', 'Straße'),
    ('FeldbergstraÃŸe', 'Feldbergstraße'),
    ('MÃ¼nchen', 'München'),
    ('StraÃŸe', 'Straße'),
    ('├ñ', 'ä'),
    ('├Â', 'ö'),
    ('├╝', 'ü'),
    ('├ƒ', 'ß'),
    ('Ã¤', 'ä'),
    ('Ã¶', 'ö'),
    ('Ã¼', 'ü'),
    ('ÃŸ', 'ß'),
    ('Ã„', 'Ä'),
    ('Ã–', 'Ö'),
    ('Ãœ', 'Ü'),
]

BLOCK_PATTERN = re.compile(r'<(script|style|svg)\b[\s\S]*?</\1\s*>', re.IGNORECASE)
NBSP_PATTERN = re.compile(r'&nbsp;|&#160;|\u00a0', re.IGNORECASE)
WHITESPACE_PATTERN = re.compile(r'\s+')
ATTRIBUTE_DEBRIS_PATTERNS = [
    re.compile(r'\bdata-[a-z0-9_-]+\s*=\s*(?:"[^"]*"|\'[^\']*\'|\S+)(?:\s*/(?=\s|$))?', re.IGNORECASE),
    re.compile(r'\bloading\s*=\s*(?:"[^"]*"|\S+)', re.IGNORECASE),
    re.compile(r'\b(?:class|alt|title|src|href)\s*=\s*"[^"]*"', re.IGNORECASE),
    re.compile(r'\bBfvImage\b', re.IGNORECASE),
    re.compile(r'(?<![\w-])lazy(?![\w-])', re.IGNORECASE),
]
LEADING_DATETIME_PATTERN = re.compile(
    r'^(?:\s*(?:\d{1,2}\.\d{1,2}\.(?:\d{2,4})?|\d{1,2}[:.]\d{2}(?:\s*Uhr)?)\s*[,|]?)+\s*',
    re.IGNORECASE
)
SLASH_SEPARATOR_PATTERN = re.compile(r'\s+/\s+')
DASH_VARIANTS_PATTERN = re.compile(r'[–—]')
SPACED_DASH_PATTERN = re.compile(r'\s+-\s*|\s*-\s+')
LEADING_PUNCTUATION_PATTERN = re.compile(r'^[-\s:,;/|]+')
TRAILING_PUNCTUATION_PATTERN = re.compile(r'[-\s:,;/|]+$')


def strip_blocks(text: str) -> str:
    """Drop script, style and svg elements including their content."""
    return BLOCK_PATTERN.sub(' ', text)


def strip_tags(text: str) -> str:
    """Replace every remaining tag with a space and decode entities."""
    if '<' not in text and '&' not in text:
        return text
    soup = BeautifulSoup(text, 'html.parser')
    for element in soup(['script', 'style', 'svg']):
        element.decompose()
    return soup.get_text(' ')


def decode_nbsp(text: str) -> str:
    return NBSP_PATTERN.sub(' ', text)


def repair_mojibake(text: str) -> str:
    """Repair German characters that were decoded with the wrong charset."""
    for broken, fixed in MOJIBAKE_REPAIRS:
        if broken in text:
            text = text.replace(broken, fixed)
    return text


def strip_attribute_debris(text: str) -> str:
    """Remove attribute fragments left over from partially flattened markup."""
    for pattern in ATTRIBUTE_DEBRIS_PATTERNS:
        text = pattern.sub(' ', text)
    return text


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def strip_leading_datetime(text: str) -> str:
    """Drop date and time fragments that leaked in front of the summary."""
    return LEADING_DATETIME_PATTERN.sub('', text, count=1)


def strip_layout_separators(text: str) -> str:
    """Turn pipes into spaces and spaced slashes into dashes."""
    text = text.replace('|', ' ')
    return SLASH_SEPARATOR_PATTERN.sub(' - ', text)


def normalize_dashes(text: str) -> str:
    """Map en/em dashes to '-' and space out separating dashes.

    Dashes inside a word such as ``U9-I`` stay untouched.
    """
    text = DASH_VARIANTS_PATTERN.sub('-', text)
    return SPACED_DASH_PATTERN.sub(' - ', text)


def strip_edge_punctuation(text: str) -> str:
    text = LEADING_PUNCTUATION_PATTERN.sub('', text)
    return TRAILING_PUNCTUATION_PATTERN.sub('', text)


TEXT_RULES: List[Rule] = [
    ('strip_blocks', strip_blocks),
    ('strip_tags', strip_tags),
    ('decode_nbsp', decode_nbsp),
    ('strip_attribute_debris', strip_attribute_debris),
    ('repair_mojibake', repair_mojibake),
    ('collapse_whitespace', collapse_whitespace),
]

SUMMARY_RULES: List[Rule] = TEXT_RULES + [
    ('strip_leading_datetime', strip_leading_datetime),
    ('strip_layout_separators', strip_layout_separators),
    ('normalize_dashes', normalize_dashes),
    ('strip_edge_punctuation', strip_edge_punctuation),
    ('collapse_remaining_whitespace', collapse_whitespace),
]


def apply_rules(text: str, rules: List[Rule]) -> str:
    """Apply each rule once, in order."""
    result = text or ''
    for _name, rule in rules:
        result = rule(result)
    return result


def clean_text(text: str) -> str:
    """Turn an HTML fragment into a single line of plain text."""
    return apply_rules(text, TEXT_RULES)


def clean_summary(text: str) -> str:
    """Clean carved HTML text into a "Home - Away" style summary."""
    return apply_rules(text, SUMMARY_RULES)
