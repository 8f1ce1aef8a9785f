"""Event transformer converting Google Calendar events to canonical events."""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from processor.models import ACCENT_COLOR, CanonicalEvent, RawEvent

logger = logging.getLogger(__name__)

# Recurring instance IDs look like <base_id>_20240115T090000Z
RECURRING_INSTANCE_PATTERN = re.compile(r'^(.+)_\d{8}T\d{6}Z$')

FetchEvent = Callable[[str, str], Optional[Dict[str, Any]]]


def recurring_base_id(event_id: str) -> Optional[str]:
    """
    Return the series ID of a recurring instance, or None for other events.

    Args:
        event_id: Provider event ID

    Returns:
        Base ID prefix before the timestamp suffix, or None
    """
    match = RECURRING_INSTANCE_PATTERN.match(event_id or '')
    return match.group(1) if match else None


class EventTransformer:
    """Transformer for Google Calendar events, resolving recurring titles."""

    DESCRIPTION_TITLE_LENGTH = 50
    DEFAULT_TITLE = 'No Title'

    def __init__(
        self,
        fetch_event: FetchEvent,
        max_workers: int = 1,
        legacy_duplicates: bool = False
    ):
        """
        Initialize the transformer.

        Args:
            fetch_event: Callable looking up a single event by
                (calendar_id, event_id), used to find master event titles
            max_workers: Number of concurrent master lookups (default: 1)
            legacy_duplicates: Emit standalone events before the full list,
                as the original widget backend did (default: False)
        """
        self.fetch_event = fetch_event
        self.max_workers = max(1, max_workers)
        self.legacy_duplicates = legacy_duplicates

    def transform(
        self,
        raw_events: Iterable[Union[RawEvent, Dict[str, Any]]],
        calendar_id: str
    ) -> List[CanonicalEvent]:
        """
        Transform provider events into canonical events.

        Recurring instances are given the title of their master event when
        the master can be looked up. Events without a start are dropped.

        Args:
            raw_events: Provider events (RawEvent objects or API dicts)
            calendar_id: Calendar the events belong to

        Returns:
            List of CanonicalEvent objects in original order
        """
        events = []
        for event in raw_events:
            if isinstance(event, RawEvent):
                events.append(event)
            elif isinstance(event, dict):
                events.append(RawEvent.from_api(event))
            else:
                logger.warning(f"Skipping malformed event record: {event!r}")
        if not events:
            return []

        # Partition into standalone events and recurring instances
        standalone = []
        base_ids = []
        for event in events:
            base_id = recurring_base_id(event.id)
            if base_id is None:
                standalone.append(event)
            elif base_id not in base_ids:
                base_ids.append(base_id)

        transformed = []
        if self.legacy_duplicates:
            transformed.extend(self._map_all(standalone))

        master_titles = self.resolve_master_titles(calendar_id, base_ids)

        for event in events:
            base_id = recurring_base_id(event.id)
            if base_id is not None and base_id in master_titles:
                event = replace(event, summary=master_titles[base_id])
            canonical = self.transform_single_event(event)
            if canonical:
                transformed.append(canonical)

        logger.info(
            f"Transformed {len(transformed)} events out of {len(events)} "
            f"({len(base_ids)} recurring series, {len(master_titles)} resolved)"
        )
        return transformed

    def resolve_master_titles(
        self,
        calendar_id: str,
        base_ids: List[str]
    ) -> Dict[str, str]:
        """
        Look up master event titles for recurring series.

        Lookup failures leave the series unresolved; they are never raised.

        Args:
            calendar_id: Calendar the series belong to
            base_ids: Distinct recurring series IDs

        Returns:
            Dictionary mapping base ID to master title
        """
        if not base_ids:
            return {}

        if self.max_workers > 1 and len(base_ids) > 1:
            workers = min(self.max_workers, len(base_ids))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                titles = list(executor.map(
                    lambda base_id: self._master_title(calendar_id, base_id),
                    base_ids
                ))
        else:
            titles = [self._master_title(calendar_id, base_id) for base_id in base_ids]

        return {
            base_id: title
            for base_id, title in zip(base_ids, titles)
            if title
        }

    def _master_title(self, calendar_id: str, base_id: str) -> Optional[str]:
        try:
            master = self.fetch_event(calendar_id, base_id)
        except Exception as e:
            logger.debug(f"Master event lookup failed for '{base_id}': {e}")
            return None

        if not isinstance(master, dict) or not master.get('summary'):
            logger.debug(f"No master title available for '{base_id}'")
            return None
        return str(master['summary'])

    def _map_all(self, events: List[RawEvent]) -> List[CanonicalEvent]:
        mapped = (self.transform_single_event(event) for event in events)
        return [event for event in mapped if event]

    def transform_single_event(self, event: RawEvent) -> Optional[CanonicalEvent]:
        """
        Map a single provider event to a canonical event.

        Args:
            event: RawEvent object

        Returns:
            CanonicalEvent object or None if the event has no start
        """
        start = event.start.value if event.start else None
        if not start:
            logger.debug(f"Dropping event '{event.id}' without start")
            return None

        end = event.end.value if event.end else None
        color = event.background_color or ACCENT_COLOR

        return CanonicalEvent(
            id=event.id,
            title=self._resolve_title(event, start),
            start=start,
            end=end,
            all_day=event.start.is_all_day,
            description=event.description or '',
            location=event.location or '',
            url=event.html_link or '',
            background_color=color,
            border_color=color,
            original_summary=event.summary or '',
            original_title=event.title or ''
        )

    def _resolve_title(self, event: RawEvent, start: str) -> str:
        """
        Pick a title: summary, title, truncated description, then a
        synthesized "Event on <date> at <time>" label.
        """
        if event.summary:
            return event.summary
        if event.title:
            return event.title
        if event.description:
            title = event.description[:self.DESCRIPTION_TITLE_LENGTH]
            if len(event.description) > self.DESCRIPTION_TITLE_LENGTH:
                title += '...'
            return title
        return self._fallback_title(start)

    def _fallback_title(self, start: str) -> str:
        parsed = _parse_timestamp(start)
        if parsed is None:
            return self.DEFAULT_TITLE

        hour = parsed.hour % 12 or 12
        meridiem = 'AM' if parsed.hour < 12 else 'PM'
        return (
            f"Event on {parsed.strftime('%b')} {parsed.day} "
            f"at {hour}:{parsed.minute:02d} {meridiem}"
        )


def _parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp or bare date, keeping its UTC offset."""
    text = value.strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
