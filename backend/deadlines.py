import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from errors import InvalidDeadlineFormat

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# First match wins. "day after tomorrow" goes before "tomorrow", otherwise it could never match.
RELATIVE_RULES = [
    (re.compile(r"\bday after tomorrow\b"), lambda m: 2),
    (re.compile(r"\btoday\b"), lambda m: 0),
    (re.compile(r"\btomorrow\b"), lambda m: 1),
    (re.compile(r"\bnext week\b"), lambda m: 7),
    (re.compile(r"\bin (\d+) days?\b"), lambda m: int(m.group(1))),
    (re.compile(r"\bin (\d+) weeks?\b"), lambda m: int(m.group(1)) * 7),
]

WEEKDAY_RE = re.compile(r"\b(?:on\s+)?(" + "|".join(WEEKDAYS) + r")\b")

NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[/\-](\d{1,2})(?:[/\-](\d{2,4}))?\b")


def reference_now(now: Optional[datetime] = None) -> datetime:
    """Timezone-aware reference instant; defaults to the local wall clock."""
    if now is None:
        return datetime.now().astimezone()
    if now.tzinfo is None:
        return now.astimezone()
    return now


def days_until_weekday(now: datetime, weekday: int) -> int:
    """Days to the next given weekday (Mon=0), strictly after today."""
    days = (weekday - now.weekday()) % 7
    return days or 7


def parse_numeric_date(match: re.Match, now: datetime) -> datetime:
    """Turn an M/D[/YY[YY]] match into midnight of that date in the reference timezone."""
    month = int(match.group(1))
    day = int(match.group(2))
    year = now.year
    if match.group(3):
        year = int(match.group(3))
        if year < 100:
            year += 2000
    try:
        return datetime(year, month, day, tzinfo=now.tzinfo)
    except ValueError as e:
        raise InvalidDeadlineFormat(f"Invalid date {match.group(0)!r}: {e}") from e


def default_deadline(now: Optional[datetime] = None) -> str:
    """Tomorrow at 18:00, used when a model response carries no deadline."""
    now = reference_now(now)
    tomorrow = (now + timedelta(days=1)).replace(hour=18, minute=0, second=0, microsecond=0)
    return tomorrow.isoformat()


def extract_deadline(text: str, now: Optional[datetime] = None) -> str:
    """
    Map temporal phrases in lower-cased text to an absolute ISO timestamp.

    Defaults to tomorrow at the current time of day. The relative rules are tried
    in order; a numeric date anywhere in the text overrides whatever they found.
    """
    now = reference_now(now)
    deadline = now + timedelta(days=1)

    try:
        for pattern, offset in RELATIVE_RULES:
            match = pattern.search(text)
            if match:
                deadline = now + timedelta(days=offset(match))
                break
        else:
            match = WEEKDAY_RE.search(text)
            if match:
                weekday = WEEKDAYS.index(match.group(1))
                deadline = now + timedelta(days=days_until_weekday(now, weekday))
    except (OverflowError, ValueError):
        logger.warning(f"Ignoring out-of-range relative deadline in {text[:100]!r}")

    date_match = NUMERIC_DATE_RE.search(text)
    if date_match:
        try:
            deadline = parse_numeric_date(date_match, now)
        except InvalidDeadlineFormat as e:
            logger.warning(f"Ignoring numeric date: {e}")

    return deadline.isoformat()
