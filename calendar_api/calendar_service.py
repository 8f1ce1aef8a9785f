"""Calendar service: cached, normalized event lists for a calendar and date range."""
import calendar
import hashlib
import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from calendar_api.errors import CalendarAPIError, ConfigurationError
from calendar_api.google_calendar import GoogleCalendarClient
from processor.calendar_id import extract_calendar_id
from processor.event_transformer import EventTransformer
from processor.models import FetchResult
from settings import Settings
from storage.dynamodb_cache import CACHE_MISS

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = 'gcal_events_'


def cache_key(calendar_id: str, start_date: str, end_date: str) -> str:
    """
    Build the cache key for an events request.

    The triple is hashed as a JSON array so differing triples can never
    produce the same hash input.

    Args:
        calendar_id: Resolved calendar ID
        start_date: Window start (YYYY-MM-DD)
        end_date: Window end (YYYY-MM-DD)

    Returns:
        Cache key string
    """
    composite = json.dumps([calendar_id, start_date, end_date])
    return CACHE_KEY_PREFIX + hashlib.sha256(composite.encode('utf-8')).hexdigest()


def format_rfc3339(day: str) -> str:
    """
    Convert a YYYY-MM-DD date to the UTC timestamp format the API expects.

    Args:
        day: Date string (YYYY-MM-DD)

    Returns:
        Timestamp string (YYYY-MM-DDT00:00:00Z)

    Raises:
        ConfigurationError: If the date cannot be parsed
    """
    try:
        parsed = datetime.strptime(day.strip(), '%Y-%m-%d')
    except (AttributeError, ValueError) as e:
        raise ConfigurationError(f"Invalid date: {day!r}") from e
    return parsed.strftime('%Y-%m-%dT%H:%M:%SZ')


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last day of the target month
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


class CalendarService:
    """Fetches calendar events through the cache, falling back to the API."""

    def __init__(
        self,
        settings: Settings,
        cache,
        client: Optional[GoogleCalendarClient] = None,
        transformer: Optional[EventTransformer] = None
    ):
        """
        Initialize the service.

        Args:
            settings: Service settings (API key, TTL, timeouts)
            cache: Cache store with get/set/clear_all/stats
            client: Optional Google Calendar client (built from settings)
            transformer: Optional event transformer (built around the client)
        """
        self.settings = settings
        self.cache = cache
        self.client = client or GoogleCalendarClient(
            api_key=settings.api_key,
            timeout=settings.timeout_seconds
        )
        self.transformer = transformer or EventTransformer(
            fetch_event=self.client.get_event,
            max_workers=settings.max_lookup_workers,
            legacy_duplicates=settings.legacy_duplicates
        )

    def resolve_calendar_id(self, value: str) -> str:
        return extract_calendar_id(value)

    def get_events(
        self,
        calendar_id_or_url: str,
        start_date: str,
        end_date: str
    ) -> FetchResult:
        """
        Get canonical events for a calendar and date range.

        Errors are returned in the result rather than raised, and are never
        cached. There are no retries.

        Args:
            calendar_id_or_url: Calendar ID, share URL or base64 token
            start_date: Window start (YYYY-MM-DD)
            end_date: Window end (YYYY-MM-DD)

        Returns:
            FetchResult with event dicts or an error description
        """
        try:
            return self._get_events(calendar_id_or_url, start_date, end_date)
        except CalendarAPIError as e:
            logger.warning(
                f"Calendar request failed: {e}",
                extra={'error_type': e.error_type}
            )
            return FetchResult.failure(e)

    def _get_events(self, calendar_id_or_url: str, start_date: str, end_date: str) -> FetchResult:
        if not self.settings.api_key:
            raise ConfigurationError("Google Calendar API key is not configured.")

        calendar_id = extract_calendar_id(calendar_id_or_url)
        if not calendar_id:
            raise ConfigurationError("Calendar ID is required.")

        time_min = format_rfc3339(start_date)
        time_max = format_rfc3339(end_date)

        key = cache_key(calendar_id, start_date, end_date)
        cached = self.cache.get(key)
        if cached is not CACHE_MISS:
            logger.info(f"Cache hit for {start_date}..{end_date}")
            return FetchResult(events=cached, from_cache=True)

        logger.info(f"Cache miss for {start_date}..{end_date}, fetching from API")
        raw_events = self.client.list_events(calendar_id, time_min, time_max)

        events = [
            event.to_dict()
            for event in self.transformer.transform(raw_events, calendar_id)
        ]

        if not self.cache.set(key, events, self.settings.cache_ttl_seconds):
            logger.warning("Failed to cache transformed events")

        return FetchResult(events=events)

    def test_connection(self, calendar_id: str, today: Optional[date] = None) -> FetchResult:
        """
        Fetch a one-day window starting today (UTC) to check access.

        Args:
            calendar_id: Calendar ID or share URL
            today: Override for the current date

        Returns:
            FetchResult from get_events
        """
        today = today or datetime.now(timezone.utc).date()
        tomorrow = today + timedelta(days=1)
        return self.get_events(calendar_id, today.isoformat(), tomorrow.isoformat())

    def get_default_window_events(
        self,
        calendar_id: str,
        today: Optional[date] = None
    ) -> FetchResult:
        """
        Fetch events from one month back to three months ahead.

        Args:
            calendar_id: Calendar ID or share URL
            today: Override for the current date

        Returns:
            FetchResult from get_events
        """
        today = today or datetime.now(timezone.utc).date()
        start = _add_months(today, -1)
        end = _add_months(today, 3)
        return self.get_events(calendar_id, start.isoformat(), end.isoformat())

    def clear_cache(self) -> int:
        deleted = self.cache.clear_all()
        logger.info(f"Cleared {deleted} cached event lists")
        return deleted

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()
