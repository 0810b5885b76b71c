"""Date range selectors and UTC normalization.

Every timestamp the service stores or compares is a naive datetime in UTC.
Aware datetimes coming from callers are converted to UTC and stripped of their
tzinfo before they reach the database.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from analytics_server.lib.errors import ValidationError

RANGE_SELECTORS = ('today', '7d', '30d', '90d')
DEFAULT_RANGE = '7d'

_RANGE_DAYS = {'7d': 7, '30d': 30, '90d': 90}


@dataclass(frozen=True)
class DateRange:
  """Inclusive [start, end] window in naive UTC."""

  start: datetime
  end: datetime

  @property
  def duration(self) -> timedelta:
    return self.end - self.start

  def previous(self) -> 'DateRange':
    """The immediately preceding window of equal length, [start - (end - start), start)."""
    return DateRange(start=self.start - self.duration, end=self.start)

  def to_dict(self) -> dict:
    return {'start_date': self.start.isoformat() + 'Z', 'end_date': self.end.isoformat() + 'Z'}


def to_utc_naive(value: datetime) -> datetime:
  """Normalize a datetime to naive UTC (naive input is assumed to be UTC already)."""
  if value.tzinfo is not None:
    value = value.astimezone(timezone.utc).replace(tzinfo=None)
  return value


def parse_datetime(value: str) -> datetime:
  """Parse an ISO 8601 string (a trailing 'Z' is accepted) into naive UTC.

  Raises:
      ValidationError: If the value is not a valid ISO 8601 timestamp
  """
  text = value.strip()
  if text.endswith('Z') or text.endswith('z'):
    text = text[:-1] + '+00:00'
  try:
    return to_utc_naive(datetime.fromisoformat(text))
  except ValueError as e:
    raise ValidationError(f'Invalid ISO 8601 timestamp: {value}') from e


def day_start(day: date) -> datetime:
  """Midnight UTC at the start of a calendar day."""
  return datetime.combine(day, time.min)


def resolve_range(
  range_name: Optional[str] = DEFAULT_RANGE,
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  now: Optional[datetime] = None,
) -> DateRange:
  """Turn a dashboard range selector into concrete bounds.

  Explicit bounds win over the selector. When only one explicit bound is
  given, the other comes from the selector window ending now.

  Args:
      range_name: 'today', '7d', '30d' or '90d' (defaults to '7d')
      start_date: Optional explicit start
      end_date: Optional explicit end
      now: Reference instant (naive UTC); defaults to the current time

  Returns:
      DateRange with naive UTC bounds

  Raises:
      ValidationError: Unknown selector or start after end
  """
  if now is None:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
  range_name = range_name or DEFAULT_RANGE

  if range_name == 'today':
    start, end = day_start(now.date()), now
  elif range_name in _RANGE_DAYS:
    start, end = now - timedelta(days=_RANGE_DAYS[range_name]), now
  else:
    raise ValidationError(
      f"Invalid range '{range_name}'. Expected one of: {', '.join(RANGE_SELECTORS)}"
    )

  if end_date is not None:
    end = to_utc_naive(end_date)
    if start_date is None:
      start = end - (now - start)
  if start_date is not None:
    start = to_utc_naive(start_date)

  if start > end:
    raise ValidationError('start_date must not be after end_date')

  return DateRange(start=start, end=end)


def percent_change(current: int, previous: int) -> float:
  """Relative change in percent, rounded to 2 decimals.

  Defined as 0 when the previous value is 0 rather than infinity.
  """
  if previous == 0:
    return 0.0
  return round((current - previous) / previous * 100, 2)
