"""Calendar value types shared by the appointment coordinator.

Dates cross every boundary as normalized ``YYYY-MM-DD`` strings and times as
one of the fixed half-hour slot labels. All parsing of either lives here.
"""

import enum
import re
from datetime import date, datetime, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .config import get_settings

SLOT_LABEL_PATTERN = re.compile(r"(\d+):(\d+)\s*([AP]M)", re.IGNORECASE)
_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

VIDEO_CALL_KEYWORDS = ("follow", "virtual", "video", "tele")

DateLike = Union[str, date, datetime, None]


class InvalidDateError(ValueError):
    """Raised when a value cannot be read as a calendar date."""


class InvalidTimeSlotError(ValueError):
    """Raised when a time label is not one of the bookable slots."""


class TimeSlot(str, enum.Enum):
    """The fourteen bookable half-hour windows of a clinic day."""
    AM_0900 = "9:00 AM"
    AM_0930 = "9:30 AM"
    AM_1000 = "10:00 AM"
    AM_1030 = "10:30 AM"
    AM_1100 = "11:00 AM"
    AM_1130 = "11:30 AM"
    PM_0100 = "1:00 PM"
    PM_0130 = "1:30 PM"
    PM_0200 = "2:00 PM"
    PM_0230 = "2:30 PM"
    PM_0300 = "3:00 PM"
    PM_0330 = "3:30 PM"
    PM_0400 = "4:00 PM"
    PM_0430 = "4:30 PM"

    @classmethod
    def labels(cls) -> list[str]:
        return [slot.value for slot in cls]

    @classmethod
    def parse(cls, label: str) -> "TimeSlot":
        """Accept a slot label with loose spacing/case, e.g. ``"2:00pm"``."""
        match = SLOT_LABEL_PATTERN.fullmatch((label or "").strip())
        if not match:
            raise InvalidTimeSlotError(f"'{label}' is not a valid time slot")
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        canonical = f"{hour}:{minute:02d} {meridiem}"
        try:
            return cls(canonical)
        except ValueError:
            raise InvalidTimeSlotError(f"'{label}' is not a bookable time slot") from None


def clinic_timezone() -> tzinfo:
    return ZoneInfo(get_settings().clinic_timezone)


def normalize_date(value: DateLike, tz: Optional[tzinfo] = None) -> str:
    """Return ``value`` as a ``YYYY-MM-DD`` string using the clinic's calendar fields.

    Empty input gives ``""``. Timezone-aware datetimes are converted to the
    clinic timezone first so late-evening instants do not shift a day.
    Applying the function to its own output returns the same string.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz or clinic_timezone())
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return ""
        if _ISO_DATE_PATTERN.match(text):
            try:
                return date.fromisoformat(text).isoformat()
            except ValueError as exc:
                raise InvalidDateError(f"Invalid date '{value}': {exc}") from exc
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidDateError(f"Invalid date '{value}'") from exc
        return normalize_date(parsed, tz)
    raise InvalidDateError(f"Unsupported date value of type {type(value).__name__}")


def to_date(value: DateLike) -> date:
    return date.fromisoformat(normalize_date(value))


def format_date_for_display(value: DateLike) -> str:
    """Human readable date for message bodies, e.g. ``March 10, 2025``."""
    if not value:
        return ""
    day = to_date(value)
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def parse_appointment_datetime(date_str: DateLike, time_str: Optional[str],
                               tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Combine a date and an ``H:MM AM|PM`` label into an aware instant.

    Returns None when either part cannot be read; callers skip such records.
    """
    try:
        normalized = normalize_date(date_str)
    except InvalidDateError:
        return None
    if not normalized or not time_str:
        return None

    match = SLOT_LABEL_PATTERN.search(time_str)
    if not match:
        return None

    hours, minutes, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if meridiem == "PM" and hours < 12:
        hours += 12
    elif meridiem == "AM" and hours == 12:
        hours = 0

    try:
        day = date.fromisoformat(normalized)
        return datetime(day.year, day.month, day.day, hours, minutes, tzinfo=tz or clinic_timezone())
    except ValueError:
        return None


def is_video_call_type(appointment_type: Optional[str]) -> bool:
    lowered = (appointment_type or "").lower()
    return any(keyword in lowered for keyword in VIDEO_CALL_KEYWORDS)
