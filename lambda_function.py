"""AWS Lambda handler for the cached Google Calendar events service."""
import json
import logging
import time
from typing import Dict, Any

from calendar_api.calendar_service import CalendarService
from processor.calendar_id import extract_calendar_id
from settings import Settings
from storage.dynamodb_cache import DynamoDBCache


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

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


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


# HTTP status per error type returned by the service
ERROR_STATUS = {
    'ConfigurationError': 400,
    'TransportError': 502,
    'UpstreamError': 502,
    'MalformedResponseError': 502
}

ACTIONS = ('get_events', 'test_connection', 'extract_calendar_id', 'clear_cache', 'cache_stats')


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _events_response(result, duration: float) -> Dict[str, Any]:
    if not result.ok:
        return _response(ERROR_STATUS.get(result.error_type, 500), {
            'message': 'Failed to fetch calendar events',
            'error': result.error,
            'error_type': result.error_type,
            'duration_seconds': round(duration, 2)
        })

    return _response(200, {
        'events': result.events,
        'count': len(result.events),
        'from_cache': result.from_cache,
        'duration_seconds': round(duration, 2)
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the calendar events service.

    Args:
        event: Invocation payload with an 'action' and its parameters
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    start_time = time.time()
    logger = logging.getLogger(__name__)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {str(e)}", exc_info=True)
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(time.time() - start_time, 2)
        })

    # Initialize logging
    setup_logging(settings.log_level)

    event = event or {}
    action = event.get('action', 'get_events')
    logger.info(
        f"Lambda execution started",
        extra={'action': action, 'table_name': settings.table_name}
    )

    if action not in ACTIONS:
        logger.warning(f"Unknown action: {action}")
        return _response(400, {
            'message': f"Unknown action: {action}",
            'allowed_actions': list(ACTIONS)
        })

    calendar_id = event.get('calendar_id') or ''
    if not isinstance(calendar_id, str):
        logger.warning(f"Invalid calendar_id type: {type(calendar_id).__name__}")
        return _response(400, {
            'message': 'calendar_id must be a string',
            'error_type': 'ConfigurationError'
        })

    # Pure string transformation, no AWS resources needed
    if action == 'extract_calendar_id':
        return _response(200, {'calendar_id': extract_calendar_id(calendar_id)})

    try:
        cache = DynamoDBCache(
            table_name=settings.table_name,
            prefix=settings.cache_prefix
        )
        service = CalendarService(settings=settings, cache=cache)

        if action == 'clear_cache':
            deleted = service.clear_cache()
            return _response(200, {
                'message': 'Cache cleared successfully',
                'deleted': deleted
            })

        if action == 'cache_stats':
            return _response(200, service.cache_stats())

        if action == 'test_connection':
            result = service.test_connection(calendar_id)
        elif event.get('start_date') and event.get('end_date'):
            result = service.get_events(
                calendar_id,
                event['start_date'],
                event['end_date']
            )
        else:
            result = service.get_default_window_events(calendar_id)

        duration = time.time() - start_time
        logger.info(
            f"Lambda execution completed",
            extra={
                'duration_seconds': round(duration, 2),
                'events': len(result.events),
                'from_cache': result.from_cache,
                'error_type': result.error_type
            }
        )
        return _events_response(result, duration)

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
