"""Data models for calendar import and match reconciliation."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Dict, List, Optional

from processor.exceptions import ImportedMatchEditError, InvalidScoreError

UNKNOWN_TEAM = "Unknown team"


class MatchStatus(str, Enum):
    """Lifecycle status of a match."""
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED = "canceled"


class MatchSource(str, Enum):
    """Provenance of a match record."""
    REMOTE = "remote"
    ICS = "ics"


class ImportOutcome(str, Enum):
    """Summary outcome of importing one calendar file."""
    IMPORTED = "imported"
    NOTHING_FOUND = "nothing_found"
    ALL_DUPLICATES = "all_duplicates"


def parse_match_date(value: Optional[str]) -> Optional[date]:
    """Resolve an ISO date string to a calendar date, None if unparsable."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip()[:10], '%Y-%m-%d').date()
    except ValueError:
        return None


@dataclass
class CalendarEvent:
    """Event parsed from a single VEVENT block."""
    opponent: str
    date: str
    team: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    status: MatchStatus = MatchStatus.SCHEDULED
    ics_uid: Optional[str] = None


@dataclass
class Match:
    """Fields shared by remote and imported matches."""
    id: str
    team: str
    opponent: str
    date: str
    time: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    canceled: bool = False

    source: ClassVar[MatchSource]

    def __post_init__(self):
        scores = (self.home_score, self.away_score)
        if (scores[0] is None) != (scores[1] is None):
            raise InvalidScoreError(
                f"Match '{self.id}' must have both scores or none, got "
                f"{self.home_score}:{self.away_score}"
            )
        for score in scores:
            if score is None:
                continue
            if isinstance(score, bool) or not isinstance(score, int) or score < 0:
                raise InvalidScoreError(
                    f"Match '{self.id}' has invalid score {score!r}"
                )

    @property
    def has_result(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    @property
    def status(self) -> MatchStatus:
        if self.has_result:
            return MatchStatus.COMPLETED
        if self.canceled:
            return MatchStatus.CANCELED
        return MatchStatus.SCHEDULED

    @property
    def team_label(self) -> str:
        label = (self.team or '').strip()
        return label or UNKNOWN_TEAM

    @property
    def match_date(self) -> Optional[date]:
        return parse_match_date(self.date)


@dataclass
class RemoteMatch(Match):
    """Authoritative match held in the remote store."""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    source: ClassVar[MatchSource] = MatchSource.REMOTE


@dataclass
class ImportedMatch(Match):
    """Match derived from a calendar file, held in the local cache."""
    ics_uid: Optional[str] = None
    fingerprint: str = ''
    source_file: Optional[str] = None
    imported_at: Optional[int] = None

    source: ClassVar[MatchSource] = MatchSource.ICS

    def __post_init__(self):
        if self.home_score is not None or self.away_score is not None:
            raise ImportedMatchEditError(
                f"Imported match '{self.id}' cannot carry a result; promote it instead"
            )
        super().__post_init__()

    @property
    def cache_key(self) -> str:
        """Identity used to locate the entry in the cache."""
        return self.ics_uid or self.id


@dataclass
class ImportMeta:
    """Context of one import call."""
    file_name: str
    imported_at: int


@dataclass
class ImportResult:
    """Result of merging one parsed calendar file into the cache."""
    file_name: str
    parsed: int
    added: List[ImportedMatch]
    duplicates: int
    cache: List[ImportedMatch]

    @property
    def outcome(self) -> ImportOutcome:
        if self.parsed == 0:
            return ImportOutcome.NOTHING_FOUND
        if not self.added:
            return ImportOutcome.ALL_DUPLICATES
        return ImportOutcome.IMPORTED


@dataclass
class MatchdayView:
    """Unified, sorted and grouped view over remote and imported matches."""
    matches: List[Match]
    by_team: Dict[str, List[Match]] = field(default_factory=dict)
    current_matchday: Optional[date] = None
    overview: List[Match] = field(default_factory=list)
