"""Import, promotion and view orchestration over the cache and remote store."""
import logging
import time
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional, Tuple, Union

from processor.exceptions import ImportedMatchEditError, PromotionError
from processor.ics_parser import IcsParser
from processor.models import (
    ImportedMatch,
    ImportMeta,
    ImportResult,
    Match,
    MatchdayView,
    RemoteMatch,
)
from processor.reconciliation import build_unified_view, merge_on_import, remove_from_cache

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    'team', 'opponent', 'date', 'time', 'location', 'description',
    'home_score', 'away_score', 'canceled',
}


class MatchService:
    """
    Coordinates the imported-match cache with the remote match store.

    Calls mutating the cache are not safe to interleave; callers must run one
    import or promotion at a time.
    """

    def __init__(self, cache, store, tz_name: str = IcsParser.DEFAULT_TIMEZONE):
        """
        Initialize the service.

        Args:
            cache: ImportedMatchCache holding imported matches
            store: Remote match store (DynamoDBMatchStore)
            tz_name: Timezone used when parsing calendar files
        """
        self.cache = cache
        self.store = store
        self.tz_name = tz_name

    def import_calendar(self, content: Union[str, bytes], file_name: str,
                        default_team: Optional[str] = None,
                        imported_at: Optional[int] = None) -> ImportResult:
        """
        Parse one calendar file and merge it into the cache.

        Args:
            content: Raw calendar content
            file_name: Name of the file, kept as provenance
            default_team: Team for events whose summary names none
            imported_at: Import timestamp (defaults to now)

        Returns:
            ImportResult for this file

        Raises:
            IcsReadError: If the content is not text
        """
        parser = IcsParser(default_team=default_team, tz_name=self.tz_name)
        events = parser.parse(content)
        meta = ImportMeta(
            file_name=file_name,
            imported_at=imported_at if imported_at is not None else int(time.time())
        )

        result = merge_on_import(events, meta, self.cache.get_all())
        if result.added:
            self.cache.save(result.cache)
        return result

    def import_files(self, files: Iterable[Tuple[str, Union[str, bytes]]],
                     default_team: Optional[str] = None) -> List[ImportResult]:
        """
        Import several calendar files strictly in the given order.

        Args:
            files: Pairs of (file name, content)
            default_team: Team for events whose summary names none

        Returns:
            One ImportResult per file
        """
        imported_at = int(time.time())
        results = []
        for file_name, content in files:
            results.append(
                self.import_calendar(content, file_name, default_team, imported_at)
            )
        return results

    def promote(self, match: ImportedMatch, **changes) -> RemoteMatch:
        """
        Turn an imported match into a remote match.

        The remote insert happens first; the cache entry is only removed once
        the insert succeeded.

        Args:
            match: Imported match to promote
            **changes: Field edits or result to apply (home_score, away_score, ...)

        Returns:
            The created RemoteMatch

        Raises:
            PromotionError: If the match is no longer cached, or the remote
                write or the cache update fails
        """
        self._check_changes(changes)
        current = self.cache.get_all()
        remaining = remove_from_cache(current, match)
        if len(remaining) == len(current):
            # Already promoted or deleted
            logger.warning(f"Imported match '{match.id}' is not in the cache, not promoting")
            raise PromotionError(
                f"Imported match '{match.id}' is no longer in the import cache", match
            )

        try:
            remote = RemoteMatch(
                id='',
                team=match.team,
                opponent=match.opponent,
                date=match.date,
                time=match.time,
                location=match.location,
                description=match.description,
                canceled=match.canceled,
            )
            remote = replace(remote, **changes)
        except ValueError as e:
            raise PromotionError(f"Invalid changes for match '{match.id}': {e}", match) from e

        try:
            created = self.store.create_match(remote)
        except Exception as e:
            logger.error(f"Promotion of imported match '{match.id}' failed: {e}")
            raise PromotionError(
                f"Could not store match '{match.id}' remotely: {e}", match
            ) from e

        try:
            self.cache.save(remaining)
        except Exception as e:
            logger.error(
                f"Removing promoted match '{match.id}' from cache failed, "
                f"rolling back remote match {created.id}: {e}"
            )
            try:
                self.store.delete_match(created.id)
            except Exception as rollback_error:
                logger.error(f"Rollback of remote match {created.id} failed: {rollback_error}")
            raise PromotionError(
                f"Could not update import cache for match '{match.id}': {e}", match
            ) from e

        logger.info(f"Promoted imported match '{match.id}' to remote match {created.id}")
        return created

    def record_result(self, match: Match, home_score: int, away_score: int) -> RemoteMatch:
        """Enter a result; imported matches are promoted."""
        return self.update_details(match, home_score=home_score, away_score=away_score)

    def clear_result(self, match: RemoteMatch) -> RemoteMatch:
        return self.update_details(match, home_score=None, away_score=None)

    def update_details(self, match: Match, **changes) -> RemoteMatch:
        """
        Apply edits to a match.

        Args:
            match: RemoteMatch to update, or ImportedMatch to promote
            **changes: Fields to change

        Returns:
            The stored RemoteMatch
        """
        if isinstance(match, ImportedMatch):
            return self.promote(match, **changes)
        self._check_changes(changes)
        updated = replace(match, **changes)
        return self.store.update_match(updated)

    def create_match(self, match: RemoteMatch) -> RemoteMatch:
        return self.store.create_match(match)

    def delete_remote(self, match: RemoteMatch) -> None:
        if isinstance(match, ImportedMatch):
            raise ImportedMatchEditError(
                f"'{match.id}' is an imported match; use delete_imported"
            )
        self.store.delete_match(match.id)

    def delete_imported(self, match: ImportedMatch) -> bool:
        """
        Remove an imported match from the cache.

        Returns:
            True if an entry was removed
        """
        current = self.cache.get_all()
        remaining = remove_from_cache(current, match)
        if len(remaining) == len(current):
            logger.warning(f"Imported match '{match.id}' not found in cache")
            return False
        self.cache.save(remaining)
        logger.info(f"Deleted imported match '{match.id}' from cache")
        return True

    def unified_view(self, today: Optional[date] = None) -> MatchdayView:
        """
        Build the combined view of remote and imported matches.

        Args:
            today: Reference date (defaults to the current date)
        """
        remote = list(self.store.get_all_matches().values())
        return build_unified_view(remote, self.cache.get_all(), today or date.today())

    def _check_changes(self, changes: dict) -> None:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown match fields: {', '.join(sorted(unknown))}")

