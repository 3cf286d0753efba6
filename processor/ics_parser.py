"""Parser turning ICS calendar text into CalendarEvent records."""
import logging
import re
from datetime import date, datetime
from typing import Iterator, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup
from icalendar import Calendar

from processor.exceptions import IcsReadError
from processor.models import UNKNOWN_TEAM, CalendarEvent, MatchStatus

logger = logging.getLogger(__name__)

# Tried in order; "SG Rot - Weiss vs TTC" splits on "vs", not on the hyphen
TEAM_SEPARATORS = [
    re.compile(r'\s+(?:vs\.?|gegen)\s+', re.IGNORECASE),
    re.compile(r'\s+[-–]\s+'),
    re.compile(r'\s+:\s+'),
]


class IcsParser:
    """Tolerant parser for user-supplied calendar files."""

    DEFAULT_TIMEZONE = 'Europe/Berlin'

    def __init__(self, default_team: Optional[str] = None,
                 tz_name: str = DEFAULT_TIMEZONE):
        """
        Initialize the parser.

        Args:
            default_team: Team assigned to events whose summary names none
            tz_name: Timezone zoned start times are converted into
        """
        self.default_team = default_team.strip() if default_team else None
        self.tz = ZoneInfo(tz_name)

    def parse(self, content: Union[str, bytes]) -> List[CalendarEvent]:
        """
        Parse calendar text into events, in file order.

        Args:
            content: Raw calendar file content

        Returns:
            List of CalendarEvent objects (empty if no valid event was found)

        Raises:
            IcsReadError: If the content is not text or not a calendar
        """
        events = list(self.iter_events(content))
        logger.info(f"Parsed {len(events)} events from calendar")
        return events

    def iter_events(self, content: Union[str, bytes]) -> Iterator[CalendarEvent]:
        """Lazily yield events; malformed VEVENTs are skipped."""
        text = self._to_text(content)
        try:
            # multiple=True also accepts bare VEVENTs without a VCALENDAR wrapper
            components = Calendar.from_ical(text, multiple=True)
        except ValueError as e:
            raise IcsReadError(f"Calendar content could not be parsed: {e}") from e

        index = 0
        for component in components:
            for vevent in component.walk('VEVENT'):
                index += 1
                try:
                    event = self._parse_event(vevent)
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping malformed event {index}: {e}")
                    continue
                if event is None:
                    logger.warning(f"Skipping event {index}: missing or invalid DTSTART")
                    continue
                yield event

    def _to_text(self, content: Union[str, bytes]) -> str:
        if isinstance(content, str):
            return content.lstrip('\ufeff')
        if isinstance(content, (bytes, bytearray)):
            if b'\x00' in content:
                raise IcsReadError("Calendar content is binary, not text")
            try:
                return bytes(content).decode('utf-8-sig')
            except UnicodeDecodeError:
                # Some club exports are still Windows-1252
                try:
                    return bytes(content).decode('cp1252')
                except UnicodeDecodeError as e:
                    raise IcsReadError(f"Calendar content is not text: {e}") from e
        raise IcsReadError(
            f"Calendar content must be text, got {type(content).__name__}"
        )

    def _parse_event(self, vevent) -> Optional[CalendarEvent]:
        start = self._parse_start(vevent.get('DTSTART'))
        if start is None:
            return None
        event_date, event_time = start

        summary = self._text(vevent, 'SUMMARY') or ''
        team, opponent = self._split_summary(summary)

        status = MatchStatus.SCHEDULED
        if (self._text(vevent, 'STATUS') or '').upper() == 'CANCELLED':
            status = MatchStatus.CANCELED

        return CalendarEvent(
            team=team,
            opponent=opponent,
            date=event_date,
            time=event_time,
            location=self._text(vevent, 'LOCATION'),
            description=self._description(vevent),
            status=status,
            ics_uid=self._text(vevent, 'UID'),
        )

    def _text(self, vevent, name: str) -> Optional[str]:
        value = vevent.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            value = value[0]
        return str(value).strip() or None

    def _description(self, vevent) -> Optional[str]:
        description = self._text(vevent, 'DESCRIPTION') or self._text(vevent, 'X-ALT-DESC')
        if description and '<' in description:
            soup = BeautifulSoup(description, 'html.parser')
            description = soup.get_text('\n', strip=True)
        return description or None

    def _parse_start(self, prop) -> Optional[Tuple[str, Optional[str]]]:
        """
        Convert a decoded DTSTART into (ISO date, HH:MM or None for all-day).

        Zoned start times (UTC or TZID) are converted into the configured
        timezone; floating times keep their wall-clock value.
        """
        if prop is None:
            return None
        value = getattr(prop, 'dt', None)

        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(self.tz)
            return value.strftime('%Y-%m-%d'), value.strftime('%H:%M')
        if isinstance(value, date):
            return value.isoformat(), None
        return None

    def _split_summary(self, summary: str) -> Tuple[str, str]:
        """Derive (team, opponent) from an event summary."""
        fallback = self.default_team or UNKNOWN_TEAM
        summary = summary.strip()
        for separator in TEAM_SEPARATORS:
            parts = separator.split(summary, maxsplit=1)
            if len(parts) == 2 and parts[1].strip():
                return parts[0].strip() or fallback, parts[1].strip()
        return fallback, summary
