"""Local cache of imported calendar matches."""
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Callable, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.exceptions import CacheReadError
from processor.models import ImportedMatch

logger = logging.getLogger(__name__)

CacheListener = Callable[[List[ImportedMatch]], None]


class JsonFileCacheBackend:
    """Stores the whole cache as one JSON document on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    def read(self) -> List[dict]:
        if not self.path.exists():
            return []
        with self.path.open('r', encoding='utf-8') as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"Import cache {self.path} is corrupt: {e}")
                raise CacheReadError(f"Import cache {self.path} is corrupt: {e}") from e

    def write(self, items: List[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with tmp_path.open('w', encoding='utf-8') as f:
            json.dump(items, f, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)


class S3CacheBackend:
    """Stores the whole cache as one JSON object in S3."""

    def __init__(self, bucket: str, key: str):
        """
        Initialize S3 client for the cache object.

        Args:
            bucket: Bucket holding the cache
            key: Object key of the JSON document
        """
        self.bucket = bucket
        self.key = key
        self.s3 = boto3.client('s3')

    def read(self) -> List[dict]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                return []
            logger.error(f"Error reading import cache s3://{self.bucket}/{self.key}: {e}")
            raise
        try:
            return json.loads(response['Body'].read().decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Import cache s3://{self.bucket}/{self.key} is corrupt: {e}")
            raise CacheReadError(
                f"Import cache s3://{self.bucket}/{self.key} is corrupt: {e}"
            ) from e

    def write(self, items: List[dict]) -> None:
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=json.dumps(items, ensure_ascii=False).encode('utf-8'),
                ContentType='application/json'
            )
        except ClientError as e:
            logger.error(f"Error writing import cache s3://{self.bucket}/{self.key}: {e}")
            raise


class ImportedMatchCache:
    """
    Owned store for imported matches.

    The collection is always read and written as a whole. Subscribers are
    notified with the new content after every successful save.
    """

    def __init__(self, backend):
        """
        Initialize the cache.

        Args:
            backend: Object exposing read() -> list of dicts and write(list of dicts)
        """
        self.backend = backend
        self._matches: Optional[List[ImportedMatch]] = None
        self._listeners: List[CacheListener] = []

    def load(self) -> List[ImportedMatch]:
        """
        Load the cache from the backend.

        Returns:
            List of ImportedMatch objects in stored order
        """
        matches = []
        for item in self.backend.read():
            match = self._item_to_match(item)
            if match:
                matches.append(match)
        self._matches = matches
        logger.info(f"Loaded {len(matches)} imported matches from cache")
        return list(matches)

    def get_all(self) -> List[ImportedMatch]:
        """Current content, loading it on first access."""
        if self._matches is None:
            return self.load()
        return list(self._matches)

    def save(self, matches: List[ImportedMatch]) -> None:
        """
        Replace the whole cache content.

        Args:
            matches: New cache content
        """
        self.backend.write([asdict(m) for m in matches])
        self._matches = list(matches)
        logger.info(f"Saved {len(matches)} imported matches to cache")
        self._notify()

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """
        Register a listener called with the cache content after each save.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = list(self._matches or [])
        for listener in list(self._listeners):
            try:
                listener(list(snapshot))
            except Exception as e:
                logger.warning(f"Import cache listener failed: {e}")

    def _item_to_match(self, item: dict) -> Optional[ImportedMatch]:
        """
        Convert a stored dict to an ImportedMatch.

        Args:
            item: Stored cache entry

        Returns:
            ImportedMatch or None if the entry is invalid
        """
        try:
            return ImportedMatch(
                id=item['id'],
                team=item.get('team') or '',
                opponent=item.get('opponent') or '',
                date=item['date'],
                time=item.get('time'),
                location=item.get('location'),
                description=item.get('description'),
                canceled=bool(item.get('canceled', False)),
                ics_uid=item.get('ics_uid'),
                fingerprint=item.get('fingerprint') or '',
                source_file=item.get('source_file'),
                imported_at=item.get('imported_at'),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping invalid import cache entry: {e}")
            return None
