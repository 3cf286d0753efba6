"""Merge, sort and group logic across imported and remote matches."""
import hashlib
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from processor.models import (
    CalendarEvent,
    ImportedMatch,
    ImportMeta,
    ImportResult,
    Match,
    MatchdayView,
    MatchStatus,
)

logger = logging.getLogger(__name__)


def event_fingerprint(team: str, opponent: str, event_date: str,
                      event_time: Optional[str]) -> str:
    """SHA256 over the fields that identify a fixture without a UID."""
    composite = '|'.join([
        (team or '').strip().lower(),
        (opponent or '').strip().lower(),
        event_date or '',
        event_time or '',
    ])
    return hashlib.sha256(composite.encode('utf-8')).hexdigest()


def build_candidate(event: CalendarEvent, meta: ImportMeta) -> ImportedMatch:
    """
    Convert a parsed event into an imported match.

    The identifier is "ics-<uid>" when the event carries a UID; otherwise it is
    derived from a content fingerprint, so re-importing the same fixture
    reproduces the same identifier whichever file carries it.
    """
    fingerprint = event_fingerprint(event.team, event.opponent, event.date, event.time)
    if event.ics_uid:
        match_id = f"ics-{event.ics_uid}"
    else:
        match_id = f"ics-gen-{fingerprint[:20]}"

    return ImportedMatch(
        id=match_id,
        team=event.team or '',
        opponent=event.opponent,
        date=event.date,
        time=event.time,
        location=event.location,
        description=event.description,
        canceled=event.status == MatchStatus.CANCELED,
        ics_uid=event.ics_uid,
        fingerprint=fingerprint,
        source_file=meta.file_name,
        imported_at=meta.imported_at,
    )


def merge_on_import(events: Iterable[CalendarEvent], meta: ImportMeta,
                    current_cache: Sequence[ImportedMatch]) -> ImportResult:
    """
    Merge parsed events into the imported-match cache.

    Args:
        events: Parsed events in parser output order
        meta: File name and timestamp of this import
        current_cache: Cache content before the import

    Returns:
        ImportResult with the newly added matches and the full updated cache
    """
    cache = list(current_cache)
    known_uids = {m.ics_uid for m in cache if m.ics_uid}
    known_ids = {m.id for m in cache}
    known_fingerprints = {m.fingerprint for m in cache if not m.ics_uid and m.fingerprint}

    added: List[ImportedMatch] = []
    parsed = 0
    duplicates = 0

    for event in events:
        parsed += 1
        candidate = build_candidate(event, meta)

        if candidate.ics_uid:
            is_duplicate = candidate.ics_uid in known_uids or candidate.id in known_ids
        else:
            is_duplicate = (
                candidate.id in known_ids or candidate.fingerprint in known_fingerprints
            )

        if is_duplicate:
            duplicates += 1
            logger.debug(f"Skipping duplicate calendar event '{candidate.id}'")
            continue

        cache.append(candidate)
        added.append(candidate)
        known_ids.add(candidate.id)
        if candidate.ics_uid:
            known_uids.add(candidate.ics_uid)
        else:
            known_fingerprints.add(candidate.fingerprint)

    logger.info(
        f"Merged '{meta.file_name}': {parsed} parsed, {len(added)} added, "
        f"{duplicates} duplicates skipped"
    )
    return ImportResult(
        file_name=meta.file_name,
        parsed=parsed,
        added=added,
        duplicates=duplicates,
        cache=cache,
    )


def remove_from_cache(cache: Sequence[ImportedMatch],
                      match: ImportedMatch) -> List[ImportedMatch]:
    """Return the cache without the entry matching by UID, or by id without UID."""
    if match.ics_uid:
        return [m for m in cache if m.ics_uid != match.ics_uid]
    return [m for m in cache if m.id != match.id]


def sort_matches(matches: Iterable[Match]) -> List[Match]:
    """
    Sort ascending by calendar date, then time.

    Matches with unparsable dates go last, keeping their relative order.
    """
    dated = []
    undated = []
    for match in matches:
        if match.match_date is None:
            undated.append(match)
        else:
            dated.append(match)
    dated.sort(key=lambda m: (m.match_date, m.time or ''))
    return dated + undated


def group_by_team(matches: Iterable[Match]) -> Dict[str, List[Match]]:
    """Group matches by trimmed team label; blank teams share one bucket."""
    groups: Dict[str, List[Match]] = {}
    for match in matches:
        groups.setdefault(match.team_label, []).append(match)
    return groups


def current_matchday(sorted_matches: Sequence[Match], today: date) -> Optional[date]:
    """
    Pick the matchday to show by default.

    Args:
        sorted_matches: Matches as returned by sort_matches
        today: Reference date

    Returns:
        Earliest date on or after today, else the latest past date, else None
    """
    dates = [m.match_date for m in sorted_matches if m.match_date is not None]
    if not dates:
        return None
    for match_date in dates:
        if match_date >= today:
            return match_date
    return dates[-1]


def build_unified_view(remote_matches: Iterable[Match],
                       imported_matches: Iterable[Match],
                       today: date) -> MatchdayView:
    """
    Combine remote and imported matches into one sorted, grouped view.

    Args:
        remote_matches: Authoritative matches from the remote store
        imported_matches: Matches held in the local import cache
        today: Reference date for the current matchday

    Returns:
        MatchdayView
    """
    combined = list(remote_matches) + list(imported_matches)
    ordered = sort_matches(combined)
    matchday = current_matchday(ordered, today)
    overview = []
    if matchday is not None:
        overview = [m for m in ordered if m.match_date == matchday]

    return MatchdayView(
        matches=ordered,
        by_team=group_by_team(ordered),
        current_matchday=matchday,
        overview=overview,
    )


def filter_matches(matches: Iterable[Match], term: str) -> List[Match]:
    """Case-insensitive search on team and opponent."""
    needle = (term or '').strip().lower()
    if not needle:
        return list(matches)
    return [
        m for m in matches
        if needle in (m.team or '').lower() or needle in (m.opponent or '').lower()
    ]


def upcoming_matches(matches: Iterable[Match], today: date,
                     limit: int = 5) -> List[Match]:
    """Next scheduled matches from today on, soonest first."""
    upcoming = [
        m for m in sort_matches(matches)
        if m.match_date is not None and m.match_date >= today
        and m.status == MatchStatus.SCHEDULED
    ]
    return upcoming[:limit]
