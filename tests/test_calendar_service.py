"""Integration tests for CalendarService with mocked API and DynamoDB."""
import json
from datetime import date
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import boto3
import pytest
import responses
from botocore.exceptions import EndpointConnectionError
from moto import mock_aws
from requests.exceptions import Timeout

from calendar_api.calendar_service import CalendarService, cache_key, format_rfc3339
from calendar_api.errors import ConfigurationError
from settings import Settings
from storage.dynamodb_cache import CACHE_MISS, DynamoDBCache

TABLE_NAME = 'test-calendar-cache'
CALENDAR_ID = 'cal@example.com'
EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/cal%40example.com/events"


@pytest.fixture
def cache():
    """Create a DynamoDBCache backed by a mock table."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{'AttributeName': 'cache_key', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'cache_key', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )
        yield DynamoDBCache(TABLE_NAME, dynamodb=dynamodb)


@pytest.fixture
def settings():
    return Settings(api_key='test-key', max_lookup_workers=1)


@pytest.fixture
def service(settings, cache):
    return CalendarService(settings=settings, cache=cache)


@pytest.fixture
def api_items():
    """Provider response with a standalone event and two recurring instances."""
    return {
        'items': [
            {
                'id': 'series1_20240301T090000Z',
                'start': {'dateTime': '2024-03-01T09:00:00Z'},
                'end': {'dateTime': '2024-03-01T09:30:00Z'}
            },
            {
                'id': 'lunch1',
                'summary': 'Team Lunch',
                'start': {'dateTime': '2024-03-02T12:00:00Z'},
                'end': {'dateTime': '2024-03-02T13:00:00Z'}
            },
            {
                'id': 'series1_20240308T090000Z',
                'start': {'dateTime': '2024-03-08T09:00:00Z'},
                'end': {'dateTime': '2024-03-08T09:30:00Z'}
            },
            {'id': 'broken', 'summary': 'No start'}
        ]
    }


class TestCacheKey:
    """Test cases for cache key derivation."""

    def test_deterministic(self):
        assert cache_key('a@b.c', '2024-01-01', '2024-02-01') == \
            cache_key('a@b.c', '2024-01-01', '2024-02-01')

    def test_differs_by_any_field(self):
        base = cache_key('a@b.c', '2024-01-01', '2024-02-01')

        assert cache_key('a@b.d', '2024-01-01', '2024-02-01') != base
        assert cache_key('a@b.c', '2024-01-02', '2024-02-01') != base
        assert cache_key('a@b.c', '2024-01-01', '2024-02-02') != base

    def test_no_concatenation_collision(self):
        """Test that shifting characters between fields changes the key."""
        assert cache_key('ab', 'c', 'd') != cache_key('a', 'bc', 'd')

    def test_format(self):
        key = cache_key('a@b.c', '2024-01-01', '2024-02-01')

        assert key.startswith('gcal_events_')
        assert len(key) == len('gcal_events_') + 64


class TestFormatRfc3339:

    def test_valid_date(self):
        assert format_rfc3339('2024-03-01') == '2024-03-01T00:00:00Z'

    def test_invalid_date(self):
        with pytest.raises(ConfigurationError):
            format_rfc3339('03/01/2024')


class TestCalendarService:
    """Test cases for CalendarService class."""

    @responses.activate
    def test_get_events_fetches_transforms_and_caches(self, service, cache, api_items):
        """Test a cache miss: fetch, resolve master titles, cache, return."""
        responses.add(responses.GET, EVENTS_URL, json=api_items, status=200)
        responses.add(
            responses.GET,
            f"{EVENTS_URL}/series1",
            json={'id': 'series1', 'summary': 'Weekly Sync'},
            status=200
        )

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.ok
        assert result.from_cache is False
        assert [event['id'] for event in result.events] == [
            'series1_20240301T090000Z', 'lunch1', 'series1_20240308T090000Z'
        ]
        assert [event['title'] for event in result.events] == [
            'Weekly Sync', 'Team Lunch', 'Weekly Sync'
        ]

        list_query = parse_qs(urlparse(responses.calls[0].request.url).query)
        assert list_query['timeMin'] == ['2024-03-01T00:00:00Z']
        assert list_query['timeMax'] == ['2024-04-01T00:00:00Z']

        assert cache.get(cache_key(CALENDAR_ID, '2024-03-01', '2024-04-01')) == result.events

    @responses.activate
    def test_second_call_served_from_cache(self, service, api_items):
        """Test repeated calls perform exactly one upstream fetch."""
        responses.add(responses.GET, EVENTS_URL, json=api_items, status=200)
        responses.add(
            responses.GET,
            f"{EVENTS_URL}/series1",
            json={'summary': 'Weekly Sync'},
            status=200
        )

        first = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')
        calls_after_first = len(responses.calls)
        second = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert second.from_cache is True
        assert json.dumps(second.events) == json.dumps(first.events)
        assert len(responses.calls) == calls_after_first
        assert sum(1 for call in responses.calls if call.request.url.startswith(EVENTS_URL + '?')) == 1

    @responses.activate
    def test_cache_hit_makes_no_upstream_calls(self, service, cache):
        stored = [{'id': 'cached', 'title': 'From cache', 'start': '2024-03-01'}]
        cache.set(cache_key(CALENDAR_ID, '2024-03-01', '2024-04-01'), stored)

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.events == stored
        assert result.from_cache is True
        assert len(responses.calls) == 0

    @responses.activate
    def test_share_url_resolved_before_cache_lookup(self, service, cache):
        stored = [{'id': 'cached'}]
        cache.set(cache_key('abc@example.com', '2024-03-01', '2024-04-01'), stored)

        result = service.get_events(
            'https://calendar.google.com/calendar/u/0?cid=YWJjQGV4YW1wbGUuY29t',
            '2024-03-01',
            '2024-04-01'
        )

        assert result.events == stored

    @responses.activate
    def test_empty_calendar_is_cached(self, service):
        responses.add(responses.GET, EVENTS_URL, json={'items': []}, status=200)

        first = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')
        second = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert first.events == [] and second.events == []
        assert second.from_cache is True
        assert len(responses.calls) == 1

    def test_missing_api_key(self, cache):
        """Test configuration errors are returned, not raised."""
        service = CalendarService(settings=Settings(api_key=''), cache=cache)

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert not result.ok
        assert result.error == 'Google Calendar API key is not configured.'
        assert result.error_type == 'ConfigurationError'
        assert result.to_payload() == {'error': 'Google Calendar API key is not configured.'}

    def test_missing_calendar_id(self, service):
        result = service.get_events('', '2024-03-01', '2024-04-01')

        assert result.error == 'Calendar ID is required.'
        assert result.error_type == 'ConfigurationError'

    def test_invalid_date(self, service):
        result = service.get_events(CALENDAR_ID, 'yesterday', '2024-04-01')

        assert result.error_type == 'ConfigurationError'

    @responses.activate
    def test_upstream_error_not_cached(self, service, cache):
        """Test upstream errors are returned and never cached."""
        responses.add(
            responses.GET,
            EVENTS_URL,
            json={'error': {'code': 403, 'message': 'API key not valid'}},
            status=403
        )

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.error == 'API Error 403: API key not valid'
        assert result.error_type == 'UpstreamError'
        assert cache.get(cache_key(CALENDAR_ID, '2024-03-01', '2024-04-01')) is CACHE_MISS
        assert cache.stats()['total_cached'] == 0

    @responses.activate
    def test_transport_error(self, service):
        responses.add(responses.GET, EVENTS_URL, body=Timeout('timed out'))

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.error_type == 'TransportError'
        assert len(responses.calls) == 1

    @responses.activate
    def test_malformed_response(self, service):
        responses.add(responses.GET, EVENTS_URL, json={'kind': 'calendar#events'}, status=200)

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.error == 'Invalid API response format'
        assert result.error_type == 'MalformedResponseError'

    @responses.activate
    def test_master_lookup_failure_keeps_instance_title(self, service):
        responses.add(
            responses.GET,
            EVENTS_URL,
            json={'items': [{
                'id': 'series1_20240301T090000Z',
                'summary': 'Busy',
                'start': {'dateTime': '2024-03-01T09:00:00Z'}
            }]},
            status=200
        )
        responses.add(responses.GET, f"{EVENTS_URL}/series1", body=Timeout('timed out'))

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.ok
        assert result.events[0]['title'] == 'Busy'

    @responses.activate
    def test_unreachable_cache_falls_through_to_api(self, service, cache, api_items):
        """Test that a cache endpoint failure does not fail the request."""
        responses.add(responses.GET, EVENTS_URL, json=api_items, status=200)
        responses.add(responses.GET, f"{EVENTS_URL}/series1", json={'summary': 'Weekly Sync'})
        unreachable = EndpointConnectionError(
            endpoint_url='https://dynamodb.us-east-1.amazonaws.com'
        )
        cache.table = Mock()
        cache.table.get_item.side_effect = unreachable
        cache.table.put_item.side_effect = unreachable

        result = service.get_events(CALENDAR_ID, '2024-03-01', '2024-04-01')

        assert result.ok
        assert result.from_cache is False
        assert [event['title'] for event in result.events] == \
            ['Weekly Sync', 'Team Lunch', 'Weekly Sync']
        cache.table.put_item.assert_called_once()

    @responses.activate
    def test_test_connection_uses_one_day_window(self, service):
        responses.add(responses.GET, EVENTS_URL, json={'items': []}, status=200)

        result = service.test_connection(CALENDAR_ID, today=date(2024, 12, 31))

        assert result.ok
        query = parse_qs(urlparse(responses.calls[0].request.url).query)
        assert query['timeMin'] == ['2024-12-31T00:00:00Z']
        assert query['timeMax'] == ['2025-01-01T00:00:00Z']

    @responses.activate
    def test_default_window(self, service):
        """Test the default window spans one month back to three ahead."""
        responses.add(responses.GET, EVENTS_URL, json={'items': []}, status=200)

        service.get_default_window_events(CALENDAR_ID, today=date(2024, 5, 31))

        query = parse_qs(urlparse(responses.calls[0].request.url).query)
        assert query['timeMin'] == ['2024-04-30T00:00:00Z']
        assert query['timeMax'] == ['2024-08-31T00:00:00Z']

    def test_clear_cache_and_stats(self, service, cache):
        cache.set('a', [])
        cache.set('b', [])

        assert service.cache_stats() == {'total_cached': 2, 'prefix': 'gcal_cache_'}
        assert service.clear_cache() == 2
        assert cache.get('a') is CACHE_MISS
        assert service.cache_stats()['total_cached'] == 0

    def test_resolve_calendar_id(self, service):
        assert service.resolve_calendar_id('user@example.com') == 'user@example.com'
