"""DynamoDB-backed TTL cache for transformed calendar events."""
import json
import logging
import time
from typing import Any, Dict, List

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


# Returned by get() when nothing usable is cached; compare with `is`
CACHE_MISS = object()


class DynamoDBCache:
    """
    Key/value cache with per-entry expiry, stored in a DynamoDB table.

    Every entry is a single item keyed by ``<prefix><key>`` holding the JSON
    value and its ``expires_at`` timestamp. ``expires_at`` doubles as the
    table's DynamoDB TTL attribute, so expired items are eventually reaped
    by DynamoDB; reads check it directly since reaping is not immediate.
    """

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    DEFAULT_TTL = 1800
    DEFAULT_PREFIX = 'gcal_cache_'

    def __init__(self, table_name: str, prefix: str = DEFAULT_PREFIX, dynamodb=None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            prefix: Namespace prefix for all cache keys
            dynamodb: Optional boto3 DynamoDB resource
        """
        self.table_name = table_name
        self.prefix = prefix
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBCache for table: {table_name}")

    def get(self, key: str) -> Any:
        """
        Read a cached value.

        Args:
            key: Cache key (without prefix)

        Returns:
            Cached value, or CACHE_MISS if absent, expired or unreadable
        """
        try:
            response = self.table.get_item(
                Key={'cache_key': self._full_key(key)},
                ConsistentRead=True
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Error reading cache key '{key}': {e}")
            return CACHE_MISS

        item = response.get('Item')
        if not item:
            return CACHE_MISS

        if int(item.get('expires_at', 0)) <= int(time.time()):
            logger.debug(f"Cache entry '{key}' expired")
            return CACHE_MISS

        try:
            return json.loads(item['value'])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache entry '{key}': {e}")
            return CACHE_MISS

    def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL) -> bool:
        """
        Write a value with an expiry.

        Args:
            key: Cache key (without prefix)
            value: JSON-serializable value
            ttl_seconds: Seconds until the entry expires (default: 1800)

        Returns:
            True on success, False on failure
        """
        now = int(time.time())
        try:
            self.table.put_item(Item={
                'cache_key': self._full_key(key),
                'value': json.dumps(value),
                'created_at': now,
                'expires_at': now + int(ttl_seconds)
            })
        except (ClientError, BotoCoreError, TypeError, ValueError) as e:
            logger.error(f"Error writing cache key '{key}': {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        """
        Delete a single entry.

        Args:
            key: Cache key (without prefix)

        Returns:
            True on success, False on failure
        """
        try:
            self.table.delete_item(Key={'cache_key': self._full_key(key)})
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting cache key '{key}': {e}")
            return False
        return True

    def clear_all(self) -> int:
        """
        Delete every entry under this cache's prefix.

        Returns:
            Count of deleted entries
        """
        keys = self._scan_keys()
        if not keys:
            logger.info(f"No cache entries to clear for prefix '{self.prefix}'")
            return 0

        logger.info(f"Clearing {len(keys)} cache entries")
        deleted = 0

        # Process in batches of 25 (DynamoDB limit)
        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]
            with self.table.batch_writer() as writer:
                for cache_key in batch:
                    writer.delete_item(Key={'cache_key': cache_key})
            deleted += len(batch)

        logger.info(f"Cleared {deleted} cache entries")
        return deleted

    def stats(self) -> Dict[str, Any]:
        """
        Count live (unexpired) entries under this cache's prefix.

        Returns:
            Dict with 'total_cached' and 'prefix'
        """
        condition = (
            Attr('cache_key').begins_with(self.prefix) &
            Attr('expires_at').gt(int(time.time()))
        )
        total = 0
        scan_kwargs = {'FilterExpression': condition, 'Select': 'COUNT'}

        while True:
            response = self.table.scan(**scan_kwargs)
            total += response.get('Count', 0)
            if 'LastEvaluatedKey' not in response:
                break
            scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

        return {'total_cached': total, 'prefix': self.prefix}

    def _scan_keys(self) -> List[str]:
        """Collect all item keys under the prefix (paginated scan)."""
        scan_kwargs = {
            'FilterExpression': Attr('cache_key').begins_with(self.prefix),
            'ProjectionExpression': 'cache_key'
        }
        keys = []

        while True:
            try:
                response = self.table.scan(**scan_kwargs)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error scanning cache table: {e}")
                raise
            keys.extend(item['cache_key'] for item in response.get('Items', []))
            if 'LastEvaluatedKey' not in response:
                break
            scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

        return keys

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"
