"""HTTP client for the Google Calendar API v3."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from calendar_api.errors import MalformedResponseError, TransportError, UpstreamError

logger = logging.getLogger(__name__)


class GoogleCalendarClient:
    """Client for read-only access to public Google Calendars via API key."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"
    MAX_RESULTS = 2500

    def __init__(
        self,
        api_key: str,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None
    ):
        """
        Initialize the API client.

        Args:
            api_key: Google API key
            timeout: HTTP request timeout in seconds (default: 15)
            session: Optional requests session to reuse
            base_url: Override for the API root URL
        """
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.base_url = (base_url or self.BASE_URL).rstrip('/')

    def list_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
        max_results: int = MAX_RESULTS
    ) -> List[Dict[str, Any]]:
        """
        Fetch events in a time window, expanding recurring events.

        Args:
            calendar_id: Google Calendar ID
            time_min: Window start (RFC 3339, UTC)
            time_max: Window end (RFC 3339, UTC)
            max_results: Page size (default: provider maximum, 2500)

        Returns:
            List of event resource dictionaries ordered by start time

        Raises:
            TransportError: If the provider cannot be reached
            UpstreamError: If the provider returns a non-200 status
            MalformedResponseError: If the response has no 'items' list
        """
        params = {
            'timeMin': time_min,
            'timeMax': time_max,
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': max_results
        }
        data = self._get(self._events_path(calendar_id), params)

        items = data.get('items')
        if not isinstance(items, list):
            raise MalformedResponseError("Invalid API response format")

        logger.info(f"Fetched {len(items)} events for calendar")
        return items

    def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        """
        Fetch a single event, typically the master of a recurring series.

        Args:
            calendar_id: Google Calendar ID
            event_id: Event ID

        Returns:
            Event resource dictionary
        """
        path = f"{self._events_path(calendar_id)}/{quote(event_id, safe='')}"
        return self._get(path)

    def _events_path(self, calendar_id: str) -> str:
        return f"/calendars/{quote(calendar_id, safe='')}/events"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Issue a GET request and decode the JSON body.

        Args:
            path: API path below the base URL
            params: Query parameters (the API key is added)

        Returns:
            Decoded JSON object

        Raises:
            TransportError: On connection failures and timeouts
            UpstreamError: On non-200 responses
            MalformedResponseError: If the body is not a JSON object
        """
        query = {'key': self.api_key}
        query.update(params or {})

        try:
            response = self.session.get(
                f"{self.base_url}{path}",
                params=query,
                headers={'Accept': 'application/json'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Request to Google Calendar API failed: {e}")
            raise TransportError(str(e)) from e

        if response.status_code != 200:
            message = self._error_message(response)
            logger.warning(
                f"Google Calendar API returned {response.status_code}: {message}"
            )
            raise UpstreamError(
                f"API Error {response.status_code}: {message}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Invalid API response format") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("Invalid API response format")
        return data

    def _error_message(self, response: requests.Response) -> str:
        """Extract the provider's error message from an error response."""
        try:
            message = response.json()['error']['message']
        except (ValueError, KeyError, TypeError):
            return 'Unknown API error'
        return message or 'Unknown API error'
