"""Calendar ID extraction from user input (IDs, share URLs, base64 tokens)."""
import base64
import binascii
import logging
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)

SHARE_URL_HOST = 'calendar.google.com'
BASE64_PATTERN = re.compile(r'^[A-Za-z0-9+/]+={0,2}$')
MIN_ENCODED_LENGTH = 20


def extract_calendar_id(value: Optional[str]) -> str:
    """
    Extract a Google Calendar ID from a calendar ID, share URL or base64 token.

    Resolution never fails: input that matches none of the known shapes is
    returned unchanged and treated as an opaque identifier.

    Args:
        value: Raw user input

    Returns:
        Calendar ID string (empty for empty input)
    """
    if not value or not isinstance(value, str):
        return ''

    # Already a calendar ID
    if '@' in value:
        return value

    if SHARE_URL_HOST in value:
        cid = _share_url_cid(value)
        if cid:
            decoded = _b64decode(cid)
            if decoded is not None:
                logger.debug("Extracted calendar ID from share URL")
                return decoded

    if BASE64_PATTERN.match(value) and len(value) > MIN_ENCODED_LENGTH:
        decoded = _b64decode(value)
        if decoded is not None and '@' in decoded:
            logger.debug("Decoded base64 calendar ID")
            return decoded

    return value


def _share_url_cid(url: str) -> Optional[str]:
    query = urlparse(url).query
    if not query:
        return None
    values = parse_qs(query).get('cid')
    return values[0] if values else None


def _b64decode(data: str) -> Optional[str]:
    """
    Decode base64 text, restoring missing padding.

    Args:
        data: Base64 encoded string

    Returns:
        Decoded UTF-8 text or None if decoding fails
    """
    # parse_qs turns '+' into a space
    data = data.strip().replace(' ', '+')
    data += '=' * (-len(data) % 4)
    try:
        return base64.b64decode(data, validate=True).decode('utf-8')
    except (binascii.Error, ValueError):
        return None
