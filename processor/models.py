"""Data models for calendar event normalization."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ACCENT_COLOR = '#3b82f6'


def _text(value: Any) -> Optional[str]:
    """Coerce a provider field to text, keeping None (absent) as None."""
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


@dataclass
class EventTime:
    """Start or end of a provider event (either a datetime or a bare date)."""
    date_time: Optional[str] = None
    date: Optional[str] = None
    time_zone: Optional[str] = None

    @property
    def value(self) -> Optional[str]:
        return self.date_time or self.date

    @property
    def is_all_day(self) -> bool:
        return bool(self.date)

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> Optional['EventTime']:
        if not isinstance(data, dict):
            return None
        return cls(
            date_time=_text(data.get('dateTime')),
            date=_text(data.get('date')),
            time_zone=_text(data.get('timeZone'))
        )


@dataclass
class RawEvent:
    """Event record as returned by the Google Calendar API."""
    id: str = ''
    summary: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    html_link: Optional[str] = None
    background_color: Optional[str] = None
    recurring_event_id: Optional[str] = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> 'RawEvent':
        """
        Build a RawEvent from an API item, tolerating missing fields.

        Args:
            item: Event resource dictionary from the provider

        Returns:
            RawEvent object
        """
        return cls(
            id=str(item.get('id') or ''),
            summary=_text(item.get('summary')),
            title=_text(item.get('title')),
            description=_text(item.get('description')),
            location=_text(item.get('location')),
            html_link=_text(item.get('htmlLink')),
            background_color=_text(item.get('backgroundColor')),
            recurring_event_id=_text(item.get('recurringEventId')),
            start=EventTime.from_api(item.get('start')),
            end=EventTime.from_api(item.get('end'))
        )


@dataclass
class CanonicalEvent:
    """Normalized, renderer-ready event."""
    id: str
    title: str
    start: str
    end: Optional[str] = None
    all_day: bool = False
    description: str = ''
    location: str = ''
    url: str = ''
    background_color: str = ACCENT_COLOR
    border_color: str = ACCENT_COLOR
    original_summary: str = ''
    original_title: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the calendar widget's field names."""
        return {
            'id': self.id,
            'title': self.title,
            'start': self.start,
            'end': self.end,
            'allDay': self.all_day,
            'description': self.description,
            'location': self.location,
            'url': self.url,
            'backgroundColor': self.background_color,
            'borderColor': self.border_color,
            'originalSummary': self.original_summary,
            'originalTitle': self.original_title
        }


@dataclass
class FetchResult:
    """Result of an events request: either a list of events or an error."""
    events: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, exc: Exception) -> 'FetchResult':
        return cls(
            error=str(exc),
            error_type=getattr(exc, 'error_type', type(exc).__name__)
        )

    def to_payload(self) -> Any:
        """Return the event list, or an ``{'error': message}`` dict."""
        if self.ok:
            return self.events
        return {'error': self.error}
