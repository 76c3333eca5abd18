"""AWS Lambda handler for the BFV calendar proxy."""
import json
import logging
import os
import time
from datetime import date
from typing import Any, Dict, List, Tuple

from processor.classifier import identity_from_names
from processor.ics_serializer import IcsSerializer
from processor.models import GameRow, PipelineSettings, TeamFeed
from processor.pipeline import BfvPipeline
from scraper.exceptions import BfvError, InvalidRequest, MissingParameter
from scraper.team_scan import TeamDayScanner

LOG_EXTRA_FIELDS = (
    'error_type', 'url', 'status', 'events', 'duration_seconds',
    'skipped_season_history', 'skipped_abgesetzt',
)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key in LOG_EXTRA_FIELDS:
            if key in record.__dict__:
                log_data[key] = record.__dict__[key]

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.environ.get(name)
    if not raw:
        return default
    return tuple(item.strip().lower() for item in raw.split(',') if item.strip())


def load_settings() -> PipelineSettings:
    """Read pipeline settings from environment variables."""
    defaults = PipelineSettings()
    return PipelineSettings(
        timeout=_env_int('TIMEOUT_SECONDS', defaults.timeout),
        allowed_hosts=_env_list('ALLOWED_HOSTS', defaults.allowed_hosts),
        allowed_parent_domains=_env_list('ALLOWED_PARENT_DOMAINS', defaults.allowed_parent_domains),
        home_location=os.environ.get('HOME_LOCATION', defaults.home_location),
        away_location=os.environ.get('AWAY_LOCATION', defaults.away_location),
        unknown_location=os.environ.get('UNKNOWN_LOCATION', defaults.unknown_location),
        unknown_location_policy=os.environ.get(
            'UNKNOWN_LOCATION_POLICY', defaults.unknown_location_policy
        ).lower(),
        home_city_tokens=_env_list('HOME_CITY_TOKENS', defaults.home_city_tokens),
        max_pages=_env_int('MAX_PAGES', defaults.max_pages),
        scan_workers=_env_int('SCAN_WORKERS', defaults.scan_workers),
        dtstamp_utc=os.environ.get('DTSTAMP_UTC', '1') != '0',
        local_timezone=os.environ.get('LOCAL_TIMEZONE', defaults.local_timezone),
        prodid=os.environ.get('PRODID', defaults.prodid),
    )


def _json_response(status_code: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json; charset=utf-8',
            'Cache-Control': 'no-store'
        },
        'body': json.dumps(payload, default=str)
    }


def _calendar_response(ics: str) -> Dict[str, Any]:
    return {
        'statusCode': 200,
        'headers': {
            'Content-Type': 'text/calendar; charset=utf-8',
            'Cache-Control': 'no-store',
            'Content-Disposition': 'inline; filename="bfv.ics"'
        },
        'body': ics
    }


def _flag(value: Any) -> bool:
    return str(value).lower() in ('1', 'true', 'yes')


def handle_calendar_request(params: Dict[str, str], settings: PipelineSettings) -> Dict[str, Any]:
    """
    Convert the BFV page or calendar behind ``params['url']`` into ICS.

    Args:
        params: Query string parameters (url, moreUrl, debug, club, team, homeOnly)
        settings: Pipeline settings

    Returns:
        API Gateway proxy response

    Raises:
        BfvError: If the primary URL is rejected or cannot be fetched
    """
    url = params.get('url')
    if not url:
        raise MissingParameter('Missing url query param')

    identity = None
    if params.get('club') or params.get('team'):
        identity = identity_from_names(params.get('club'), params.get('team'), settings=settings)

    result = BfvPipeline(settings).run(
        url,
        more_url=params.get('moreUrl') or None,
        identity=identity,
        home_only=_flag(params.get('homeOnly', ''))
    )

    if params.get('debug') == '1':
        return _json_response(200, result.diagnostics)

    return _calendar_response(IcsSerializer(settings).serialize(result.events, timezones=result.timezones))


def _parse_feeds(teams: List[Dict[str, Any]]) -> List[TeamFeed]:
    feeds = []
    for team in teams:
        feeds.append(TeamFeed(
            team_id=str(team.get('id', '')),
            team_name=team.get('name') or '',
            club_id=str(team.get('club_id', '')),
            club_name=team.get('club_name') or '',
            ics_url=team.get('ics_url') or '',
            age_u=team.get('age_u')
        ))
    return feeds


def _describe_row(row: GameRow) -> Dict[str, Any]:
    return {
        'uid': row.event.uid,
        'summary': row.event.summary,
        'start': row.event.start.isoformat(),
        'end': row.event.end.isoformat(),
        'location': row.event.location,
        'isHome': row.event.is_home,
        'bfvTeamId': row.feed.team_id,
        'bfvTeamName': row.feed.team_name,
        'bfvClubId': row.feed.club_id,
        'bfvClubName': row.feed.club_name,
        'bfvAgeU': row.feed.age_u,
        'icsUrl': row.feed.ics_url
    }


def handle_day_scan(event: Dict[str, Any], settings: PipelineSettings) -> Dict[str, Any]:
    """
    Plan one day across all team calendars.

    Args:
        event: Direct invocation payload with ``date``, ``teams`` and ``homeOnly``
        settings: Pipeline settings

    Returns:
        Response dict with the games of the day
    """
    day_text = event.get('date')
    if not day_text:
        raise MissingParameter('Missing date')
    try:
        day = date.fromisoformat(day_text)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid date: {str(day_text)[:40]}")

    feeds = [feed for feed in _parse_feeds(event.get('teams') or []) if feed.ics_url]
    if not feeds:
        raise MissingParameter('No teams with a calendar URL')

    result = TeamDayScanner(settings).scan_day(feeds, day, home_only=_flag(event.get('homeOnly', True)))
    return _json_response(200, {
        'date': day.isoformat(),
        'games': [_describe_row(row) for row in result.games],
        'failedTeams': result.failed_teams
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the BFV calendar proxy.

    API Gateway requests carry ``queryStringParameters``; direct invocations
    with a ``teams`` list run the day scan.

    Args:
        event: API Gateway proxy event or day-scan payload
        context: Lambda context object

    Returns:
        API Gateway proxy response dict
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    logger = logging.getLogger(__name__)
    settings = load_settings()

    event = event or {}
    start_time = time.time()
    try:
        if 'teams' in event:
            logger.info("Day scan started")
            response = handle_day_scan(event, settings)
        else:
            params = event.get('queryStringParameters') or {}
            logger.info("Calendar request started", extra={'url': (params.get('url') or '')[:300]})
            response = handle_calendar_request(params, settings)

        logger.info(
            "Request completed",
            extra={'duration_seconds': round(time.time() - start_time, 2), 'status': response['statusCode']}
        )
        return response

    except BfvError as e:
        logger.error(
            f"Request failed: {e.message}",
            extra={'error_type': type(e).__name__, 'status': e.status_code}
        )
        return _json_response(e.status_code, e.to_dict())

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _json_response(500, {
            'error': str(e)[:500],
            'error_type': type(e).__name__
        })
