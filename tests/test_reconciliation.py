"""Unit tests for merge, sort and grouping logic."""
from datetime import date

import pytest

from processor.exceptions import ImportedMatchEditError, InvalidScoreError
from processor.ics_parser import IcsParser
from processor.models import (
    UNKNOWN_TEAM,
    CalendarEvent,
    ImportedMatch,
    ImportMeta,
    ImportOutcome,
    MatchSource,
    MatchStatus,
    RemoteMatch,
)
from processor.reconciliation import (
    build_candidate,
    build_unified_view,
    current_matchday,
    filter_matches,
    group_by_team,
    merge_on_import,
    remove_from_cache,
    sort_matches,
    upcoming_matches,
)


def remote(match_id, team, match_date, **kwargs):
    return RemoteMatch(id=match_id, team=team, opponent=kwargs.pop('opponent', 'Gegner'),
                       date=match_date, **kwargs)


def imported(match_id, team, match_date, **kwargs):
    return ImportedMatch(id=match_id, team=team, opponent=kwargs.pop('opponent', 'Gegner'),
                         date=match_date, **kwargs)


@pytest.fixture
def meta():
    return ImportMeta(file_name='herren1_spielplan.ics', imported_at=1732000000)


class TestMergeOnImport:
    """Test cases for merge_on_import."""

    def test_first_import_adds_everything(self, two_event_ics, meta):
        """Test that an empty cache accepts all parsed events."""
        events = IcsParser().parse(two_event_ics)

        result = merge_on_import(events, meta, [])

        assert result.parsed == 2
        assert len(result.added) == 2
        assert result.duplicates == 0
        assert result.cache == result.added
        assert result.outcome == ImportOutcome.IMPORTED
        assert result.added[1].id == 'ics-evt-42'
        assert result.added[0].id.startswith('ics-gen-')
        assert all(m.source == MatchSource.ICS for m in result.cache)

    def test_reimport_is_idempotent(self, two_event_ics, meta):
        """Test that importing the same file twice adds nothing."""
        first = merge_on_import(IcsParser().parse(two_event_ics), meta, [])
        later_meta = ImportMeta(file_name=meta.file_name, imported_at=meta.imported_at + 3600)

        second = merge_on_import(IcsParser().parse(two_event_ics), later_meta, first.cache)

        assert second.added == []
        assert second.duplicates == 2
        assert second.cache == first.cache
        assert second.outcome == ImportOutcome.ALL_DUPLICATES

    def test_uid_wins_over_changed_details(self, meta):
        """Test that a corrected event with the same UID is not added again."""
        original = CalendarEvent(team='Herren I', opponent='TTC', date='2025-01-10',
                                 time='19:00', location='Halle A', ics_uid='evt-7')
        corrected = CalendarEvent(team='Herren I', opponent='TTC', date='2025-01-10',
                                  time='20:00', location='Halle B', ics_uid='evt-7')

        first = merge_on_import([original], meta, [])
        second = merge_on_import([corrected], meta, first.cache)

        assert len(second.cache) == 1
        assert second.duplicates == 1
        assert second.cache[0].location == 'Halle A'

    def test_repeated_uid_within_one_file(self, meta):
        """Test that a UID repeated inside one import yields one entry."""
        event = CalendarEvent(team='Damen I', opponent='SV', date='2025-02-01', ics_uid='x1')

        result = merge_on_import([event, event], meta, [])

        assert len(result.added) == 1
        assert result.duplicates == 1

    def test_order_independence_across_files(self):
        """Test that A then B equals one combined file."""
        a_events = [
            CalendarEvent(team='Herren I', opponent='TTC', date='2025-01-10', ics_uid='a1'),
            CalendarEvent(team='Herren I', opponent='SV', date='2025-01-17'),
        ]
        b_events = [
            CalendarEvent(team='Damen I', opponent='TSV', date='2025-01-11', ics_uid='b1'),
            CalendarEvent(team='Damen I', opponent='DJK', date='2025-01-18', time='18:00'),
        ]

        step_a = merge_on_import(a_events, ImportMeta('a.ics', 1), [])
        step_b = merge_on_import(b_events, ImportMeta('b.ics', 2), step_a.cache)
        combined = merge_on_import(a_events + b_events, ImportMeta('ab.ics', 3), [])

        assert {m.id for m in step_b.cache} == {m.id for m in combined.cache}

    def test_nothing_found_outcome(self, meta):
        """Test that zero parsed events is reported distinctly."""
        result = merge_on_import([], meta, [])

        assert result.outcome == ImportOutcome.NOTHING_FOUND

    def test_does_not_mutate_input_cache(self, meta):
        """Test that the caller's cache list is left unchanged."""
        cache = [imported('ics-old', 'Herren I', '2025-01-01', ics_uid='old')]
        event = CalendarEvent(team='Herren I', opponent='TTC', date='2025-01-10', ics_uid='new')

        result = merge_on_import([event], meta, cache)

        assert len(cache) == 1
        assert len(result.cache) == 2

    def test_candidate_keeps_provenance(self, meta):
        """Test that imported matches carry source file and timestamp."""
        event = CalendarEvent(team='Herren I', opponent='TTC', date='2025-01-10',
                              status=MatchStatus.CANCELED)

        candidate = build_candidate(event, meta)

        assert candidate.source_file == 'herren1_spielplan.ics'
        assert candidate.imported_at == 1732000000
        assert candidate.status == MatchStatus.CANCELED
        assert candidate.ics_uid is None


class TestRemoveFromCache:
    """Test cases for remove_from_cache."""

    def test_remove_by_uid(self):
        cache = [
            imported('ics-a', 'Herren I', '2025-01-10', ics_uid='a'),
            imported('ics-b', 'Herren I', '2025-01-11', ics_uid='b'),
        ]
        stale_copy = imported('other-id', 'Herren I', '2025-01-10', ics_uid='a')

        remaining = remove_from_cache(cache, stale_copy)

        assert [m.id for m in remaining] == ['ics-b']

    def test_remove_by_id_without_uid(self):
        cache = [
            imported('ics-gen-1', 'Herren I', '2025-01-10'),
            imported('ics-gen-2', 'Herren I', '2025-01-11'),
        ]

        remaining = remove_from_cache(cache, cache[0])

        assert [m.id for m in remaining] == ['ics-gen-2']


class TestMatchModel:
    """Test cases for score and status rules."""

    def test_single_score_rejected(self):
        with pytest.raises(InvalidScoreError):
            remote('m1', 'Herren I', '2025-01-10', home_score=3)

    def test_negative_score_rejected(self):
        with pytest.raises(InvalidScoreError):
            remote('m1', 'Herren I', '2025-01-10', home_score=-1, away_score=2)

    def test_completed_only_with_both_scores(self):
        assert remote('m1', 'Herren I', '2025-01-10').status == MatchStatus.SCHEDULED
        assert remote('m2', 'Herren I', '2025-01-10',
                      home_score=3, away_score=2).status == MatchStatus.COMPLETED

    def test_canceled_without_result(self):
        match = remote('m1', 'Herren I', '2025-01-10', canceled=True)

        assert match.status == MatchStatus.CANCELED

    def test_imported_match_cannot_carry_result(self):
        with pytest.raises(ImportedMatchEditError):
            imported('ics-1', 'Herren I', '2025-01-10', home_score=3, away_score=2)


class TestUnifiedView:
    """Test cases for sorting, grouping and matchday derivation."""

    def test_sort_puts_unparsable_dates_last_in_order(self):
        matches = [
            remote('bad1', 'Herren I', 'unbekannt'),
            remote('late', 'Herren I', '2025-03-01'),
            remote('bad2', 'Herren I', ''),
            remote('early', 'Herren I', '2025-01-01'),
        ]

        ordered = sort_matches(matches)

        assert [m.id for m in ordered] == ['early', 'late', 'bad1', 'bad2']

    def test_blank_teams_share_unknown_bucket(self):
        matches = [
            remote('m1', '', '2025-01-01'),
            imported('m2', '   ', '2025-01-02'),
            remote('m3', ' Herren I ', '2025-01-03'),
        ]

        groups = group_by_team(matches)

        assert set(groups) == {UNKNOWN_TEAM, 'Herren I'}
        assert [m.id for m in groups[UNKNOWN_TEAM]] == ['m1', 'm2']
        assert '' not in groups

    def test_current_matchday_next_future_date(self):
        view = build_unified_view(
            [remote('past', 'Herren I', '2024-01-10')],
            [imported('future', 'Damen I', '2024-01-20'),
             imported('future2', 'Herren II', '2024-01-20')],
            today=date(2024, 1, 15),
        )

        assert view.current_matchday == date(2024, 1, 20)
        assert {m.id for m in view.overview} == {'future', 'future2'}

    def test_current_matchday_includes_today(self):
        ordered = sort_matches([
            remote('today', 'Herren I', '2024-01-15'),
            remote('later', 'Herren I', '2024-01-20'),
        ])

        assert current_matchday(ordered, date(2024, 1, 15)) == date(2024, 1, 15)

    def test_current_matchday_falls_back_to_latest_past(self):
        view = build_unified_view(
            [remote('a', 'Herren I', '2024-01-03'), remote('b', 'Herren I', '2024-01-10')],
            [],
            today=date(2024, 2, 1),
        )

        assert view.current_matchday == date(2024, 1, 10)
        assert [m.id for m in view.overview] == ['b']

    def test_empty_collection_has_no_matchday(self):
        view = build_unified_view([], [], today=date(2024, 1, 15))

        assert view.current_matchday is None
        assert view.overview == []
        assert view.by_team == {}

    def test_overview_compares_calendar_day_only(self):
        view = build_unified_view(
            [remote('evening', 'Herren I', '2024-01-20', time='19:30'),
             remote('morning', 'Damen I', '2024-01-20T10:00:00')],
            [],
            today=date(2024, 1, 15),
        )

        assert {m.id for m in view.overview} == {'evening', 'morning'}

    def test_view_keeps_provenance(self):
        view = build_unified_view(
            [remote('r', 'Herren I', '2024-01-20')],
            [imported('i', 'Herren I', '2024-01-21')],
            today=date(2024, 1, 15),
        )

        assert [m.source for m in view.by_team['Herren I']] == [
            MatchSource.REMOTE, MatchSource.ICS
        ]


class TestScheduleHelpers:
    """Test cases for search and upcoming lists."""

    def test_filter_matches_by_team_or_opponent(self):
        matches = [
            remote('m1', 'Herren I', '2025-01-01', opponent='TTC Musterstadt'),
            remote('m2', 'Damen I', '2025-01-02', opponent='SV Beispiel'),
        ]

        assert [m.id for m in filter_matches(matches, 'muster')] == ['m1']
        assert [m.id for m in filter_matches(matches, 'DAMEN')] == ['m2']
        assert len(filter_matches(matches, '  ')) == 2

    def test_upcoming_matches_skips_past_and_completed(self):
        matches = [
            remote('past', 'Herren I', '2025-01-01'),
            remote('done', 'Herren I', '2025-02-01', home_score=9, away_score=3),
            remote('next', 'Herren I', '2025-02-08'),
            imported('later', 'Damen I', '2025-02-15'),
        ]

        upcoming = upcoming_matches(matches, today=date(2025, 1, 15), limit=5)

        assert [m.id for m in upcoming] == ['next', 'later']
