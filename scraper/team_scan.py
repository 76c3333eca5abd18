"""Day planning: check every team's BFV calendar for games on one day."""
import concurrent.futures
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from processor.classifier import identity_from_names
from processor.models import GameRow, PipelineSettings, TeamFeed
from processor.pipeline import BfvPipeline
from scraper.exceptions import BfvError

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Rows found for the day plus the teams whose feed failed."""
    games: List[GameRow]
    failed_teams: List[str] = field(default_factory=list)


def local_wall_clock(value: datetime, tz: ZoneInfo) -> datetime:
    """Naive local wall-clock time of ``value``; floating times are kept as they are."""
    if value.tzinfo is None:
        return value
    return value.astimezone(tz).replace(tzinfo=None)


class TeamDayScanner:
    """Runs the pipeline for many team feeds through a fixed-size worker pool."""

    def __init__(self, settings: Optional[PipelineSettings] = None, pipeline: Optional[BfvPipeline] = None):
        self.settings = settings or PipelineSettings()
        self.pipeline = pipeline or BfvPipeline(self.settings)

    def scan_day(self, feeds: List[TeamFeed], day: date, home_only: bool = True) -> ScanResult:
        """
        Collect all games of all teams on ``day``.

        Each worker handles one team's calendar to completion; at most
        ``scan_workers`` fetches run at the same time. A failing feed is
        skipped and reported in ``failed_teams``.

        Args:
            feeds: Teams with a calendar URL
            day: Local calendar day to plan
            home_only: Drop games classified as away

        Returns:
            ScanResult with rows sorted by start, club and team name
        """
        feeds = [feed for feed in feeds if feed.ics_url]
        logger.info(f"Scanning {len(feeds)} team calendars for {day.isoformat()}")

        rows: List[GameRow] = []
        failed: List[str] = []
        workers = max(1, self.settings.scan_workers)
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix='bfv-scan') as executor:
            futures = {
                executor.submit(self._scan_feed, feed, day, home_only): feed
                for feed in feeds
            }
            for future in concurrent.futures.as_completed(futures):
                feed = futures[future]
                try:
                    rows.extend(future.result())
                except BfvError as e:
                    logger.warning(
                        f"Skipping team '{feed.team_name}': {e.message}",
                        extra={'error_type': type(e).__name__}
                    )
                    failed.append(feed.team_id)

        tz = ZoneInfo(self.settings.local_timezone)
        rows.sort(key=lambda row: (
            local_wall_clock(row.event.start, tz),
            row.feed.club_name,
            row.feed.team_name,
        ))
        logger.info(f"Day scan found {len(rows)} games ({len(failed)} teams failed)")
        return ScanResult(games=rows, failed_teams=sorted(failed))

    def _scan_feed(self, feed: TeamFeed, day: date, home_only: bool) -> List[GameRow]:
        identity = identity_from_names(feed.club_name, feed.team_name, settings=self.settings)
        result = self.pipeline.run(feed.ics_url, identity=identity, home_only=home_only)
        tz = ZoneInfo(self.settings.local_timezone)
        return [
            GameRow(event=event, feed=feed)
            for event in result.events
            if local_wall_clock(event.start, tz).date() == day
        ]
