"""AWS Lambda handler for club match calendar import."""
import json
import logging
import os
import time
from datetime import date, datetime
from typing import Dict, Any

import requests

from fetcher.ics_fetcher import IcsFetcher
from processor.exceptions import IcsReadError
from processor.match_service import MatchService
from processor.models import Match
from processor.reconciliation import filter_matches, upcoming_matches
from storage.dynamodb_match_store import DynamoDBMatchStore
from storage.import_cache import ImportedMatchCache, JsonFileCacheBackend, S3CacheBackend


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


def build_cache() -> ImportedMatchCache:
    """Create the import cache from CACHE_BUCKET/CACHE_KEY or CACHE_PATH."""
    bucket = os.environ.get('CACHE_BUCKET')
    if bucket:
        key = os.environ.get('CACHE_KEY', 'imported-matches.json')
        return ImportedMatchCache(S3CacheBackend(bucket=bucket, key=key))
    path = os.environ.get('CACHE_PATH', '/tmp/imported-matches.json')
    return ImportedMatchCache(JsonFileCacheBackend(path))


def match_to_dict(match: Match) -> Dict[str, Any]:
    return {
        'id': match.id,
        'source': match.source.value,
        'team': match.team_label,
        'opponent': match.opponent,
        'date': match.date,
        'time': match.time,
        'location': match.location,
        'home_score': match.home_score,
        'away_score': match.away_score,
        'status': match.status.value,
        'ics_uid': getattr(match, 'ics_uid', None),
    }


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _error(status_code: int, message: str, e: Exception, start_time: float) -> Dict[str, Any]:
    return _response(status_code, {
        'message': message,
        'error': str(e),
        'error_type': type(e).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    })


def handle_import(event: Dict[str, Any], service: MatchService,
                  fetcher: IcsFetcher, start_time: float) -> Dict[str, Any]:
    """Fetch or take the calendar text from the event and merge it into the cache."""
    logger = logging.getLogger(__name__)
    default_team = event.get('default_team')

    if event.get('ics_url'):
        try:
            file_name, content = fetcher.fetch_url(event['ics_url'])
        except requests.RequestException as e:
            logger.error(
                f"Failed to fetch calendar after retries: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error(502, 'Failed to fetch calendar', e, start_time)
        except IcsReadError as e:
            logger.error(f"Downloaded calendar rejected: {str(e)}")
            return _error(400, 'Calendar is not readable', e, start_time)
        file_name = event.get('file_name') or file_name
    elif event.get('ics_text') is not None:
        content = event['ics_text']
        file_name = event.get('file_name') or 'upload.ics'
    else:
        return _response(400, {'message': 'Either ics_url or ics_text is required'})

    try:
        result = service.import_calendar(content, file_name, default_team=default_team)
    except IcsReadError as e:
        logger.error(f"Calendar is not readable: {str(e)}")
        return _error(400, 'Calendar is not readable', e, start_time)

    duration = time.time() - start_time
    logger.info(
        f"Import of '{file_name}' finished: {result.outcome.value}",
        extra={
            'events_parsed': result.parsed,
            'events_added': len(result.added),
            'duplicates_skipped': result.duplicates
        }
    )
    return _response(200, {
        'message': 'Import completed',
        'outcome': result.outcome.value,
        'statistics': {
            'file_name': result.file_name,
            'events_parsed': result.parsed,
            'events_added': len(result.added),
            'duplicates_skipped': result.duplicates,
            'cached_matches': len(result.cache),
            'duration_seconds': round(duration, 2)
        },
        'added': [match_to_dict(m) for m in result.added]
    })


def handle_overview(event: Dict[str, Any], service: MatchService) -> Dict[str, Any]:
    """
    Return the unified matchday view.

    Optional event keys: "today" (YYYY-MM-DD), "search" (team/opponent term)
    and "upcoming" (number of next scheduled matches to list).
    """
    today = date.today()
    if event.get('today'):
        today = datetime.strptime(event['today'], '%Y-%m-%d').date()

    view = service.unified_view(today=today)
    body = {
        'current_matchday': view.current_matchday.isoformat() if view.current_matchday else None,
        'overview': [match_to_dict(m) for m in view.overview],
        'teams': {
            team: [match_to_dict(m) for m in matches]
            for team, matches in view.by_team.items()
        },
        'total_matches': len(view.matches)
    }

    if event.get('search'):
        body['search_results'] = [
            match_to_dict(m) for m in filter_matches(view.matches, event['search'])
        ]
    if event.get('upcoming'):
        limit = int(event['upcoming'])
        if limit < 1:
            raise ValueError(f"upcoming must be positive, got {limit}")
        body['upcoming'] = [
            match_to_dict(m) for m in upcoming_matches(view.matches, today, limit=limit)
        ]

    return _response(200, body)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for calendar import and match overview.

    Args:
        event: Request payload with "action" ("import" or "overview")
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('MATCHES_TABLE_NAME', 'club-matches')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    tz_name = os.environ.get('DEFAULT_TIMEZONE', 'Europe/Berlin')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = (event or {}).get('action', 'import')
    logger.info(
        f"Lambda execution started: {action}",
        extra={'table_name': table_name, 'timeout_seconds': timeout_seconds}
    )

    try:
        service = MatchService(
            cache=build_cache(),
            store=DynamoDBMatchStore(table_name=table_name),
            tz_name=tz_name
        )

        if action == 'import':
            return handle_import(event, service, IcsFetcher(timeout=timeout_seconds), start_time)
        if action == 'overview':
            return handle_overview(event, service)
        return _response(400, {'message': f"Unknown action '{action}'"})

    except ValueError as e:
        logger.error(f"Invalid request: {str(e)}")
        return _error(400, 'Invalid request', e, start_time)

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
        return _error(500, 'Request failed', e, start_time)
