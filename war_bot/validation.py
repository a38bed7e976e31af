from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta

from .errors import InvalidFieldValueError
from .maps import DECIDER_MAPS, MAX_ROUND_SCORE, SIDES, canonical_map_name
from .models import TEAM_SIZES, MatchFormat

DEFAULT_WINDOW_DAYS = 14
DEFAULT_EVENING_START = time(17, 0)
DEFAULT_EVENING_END = time(23, 30)
DEFAULT_STEP_MINUTES = 30
MAX_OPPONENT_LENGTH = 50
MAX_TIME_OVERRIDE_LENGTH = 50

_SPLIT_PATTERN = re.compile(r"[\s,]+")
_MENTION_PATTERN = re.compile(r"^<@!?(\d+)>$")
_TEAM_SIZE_PATTERN = re.compile(r"^(\d+)(?:v\1)?$", re.IGNORECASE)
_CLOCK_PATTERN = re.compile(
    r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<meridiem>am|pm)?$",
    re.IGNORECASE,
)
_SUBSTITUTION_PATTERN = re.compile(r"^(.+?)\s*->\s*(.+?)(?:\s*\((.+)\))?$")
_URL_PATTERN = re.compile(r"^https?://\S+$", re.IGNORECASE)


def validate_team_size(value: int | str) -> int:
    if isinstance(value, str):
        match = _TEAM_SIZE_PATTERN.match(value.strip())
        if not match:
            raise InvalidFieldValueError("Team size must be 6, 7, or 8.")
        value = int(match.group(1))
    if value not in TEAM_SIZES:
        raise InvalidFieldValueError("Team size must be 6, 7, or 8.")
    return value


def parse_match_format(raw: MatchFormat | str) -> MatchFormat:
    if isinstance(raw, MatchFormat):
        return raw
    if not isinstance(raw, str):
        raise InvalidFieldValueError("Format must be Bo3 or Bo5.")
    cleaned = raw.strip().upper().replace(" ", "")
    aliases = {"BESTOF3": "BO3", "BESTOF5": "BO5"}
    cleaned = aliases.get(cleaned, cleaned)
    try:
        return MatchFormat(cleaned)
    except ValueError as exc:
        raise InvalidFieldValueError("Format must be Bo3 or Bo5.") from exc


def validate_opponent(raw: str) -> str:
    name = " ".join(raw.split())
    if not name:
        raise InvalidFieldValueError("Opponent name cannot be empty.")
    if len(name) > MAX_OPPONENT_LENGTH:
        raise InvalidFieldValueError(
            f"Opponent name must be {MAX_OPPONENT_LENGTH} characters or fewer."
        )
    return name


def date_choices(today: date, window_days: int = DEFAULT_WINDOW_DAYS) -> list[date]:
    return [today + timedelta(days=offset) for offset in range(window_days + 1)]


def parse_start_date(
    raw: date | str, *, today: date, window_days: int = DEFAULT_WINDOW_DAYS
) -> date:
    if isinstance(raw, datetime):
        parsed = raw.date()
    elif isinstance(raw, date):
        parsed = raw
    elif not isinstance(raw, str):
        raise InvalidFieldValueError("Use a date such as 2024-05-01 or 05/01.")
    else:
        value = raw.strip()
        if not value:
            raise InvalidFieldValueError("A start date is required.")
        parsed = _parse_date_text(value, today)
    latest = today + timedelta(days=window_days)
    if parsed < today or parsed > latest:
        raise InvalidFieldValueError(
            f"Start date must be between {today:%b %d} and {latest:%b %d}."
        )
    return parsed


def _parse_date_text(value: str, today: date) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        month_day = datetime.strptime(value, "%m/%d")
    except ValueError as exc:
        raise InvalidFieldValueError(
            "Use a date such as 2024-05-01 or 05/01."
        ) from exc
    candidate = date(today.year, month_day.month, month_day.day)
    if candidate < today:
        candidate = date(today.year + 1, month_day.month, month_day.day)
    return candidate


def parse_clock(raw: time | str) -> time:
    if isinstance(raw, time):
        return raw
    if not isinstance(raw, str):
        raise InvalidFieldValueError("Use a time such as 20:30 or 8:30 PM.")
    match = _CLOCK_PATTERN.match(raw.strip())
    if not match:
        raise InvalidFieldValueError("Use a time such as 20:30 or 8:30 PM.")
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    meridiem = (match.group("meridiem") or "").lower()
    if meridiem:
        if hour < 1 or hour > 12:
            raise InvalidFieldValueError("Use a time such as 20:30 or 8:30 PM.")
        hour = hour % 12 + (12 if meridiem == "pm" else 0)
    if hour > 23 or minute > 59:
        raise InvalidFieldValueError("Use a time such as 20:30 or 8:30 PM.")
    return time(hour, minute)


def format_clock(value: time) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def evening_time_choices(
    window_start: time = DEFAULT_EVENING_START,
    window_end: time = DEFAULT_EVENING_END,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> list[str]:
    choices: list[str] = []
    minutes = window_start.hour * 60 + window_start.minute
    last = window_end.hour * 60 + window_end.minute
    while minutes <= last:
        choices.append(format_clock(time(minutes // 60, minutes % 60)))
        minutes += step_minutes
    return choices


def parse_start_time(
    raw: time | str,
    *,
    window_start: time = DEFAULT_EVENING_START,
    window_end: time = DEFAULT_EVENING_END,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> str:
    clock = parse_clock(raw)
    if clock < window_start or clock > window_end:
        raise InvalidFieldValueError(
            f"Start time must be between {format_clock(window_start)} "
            f"and {format_clock(window_end)}."
        )
    if (clock.hour * 60 + clock.minute) % step_minutes or clock.second:
        raise InvalidFieldValueError(
            f"Start time must be on a {step_minutes}-minute boundary."
        )
    return format_clock(clock)


def validate_time_override(raw: str) -> str:
    text = " ".join(raw.split())
    if not text:
        raise InvalidFieldValueError("Custom start time cannot be empty.")
    if len(text) > MAX_TIME_OVERRIDE_LENGTH:
        raise InvalidFieldValueError(
            f"Custom start time must be {MAX_TIME_OVERRIDE_LENGTH} characters or fewer."
        )
    return text


def validate_map_plan(names: Sequence[str], match_format: MatchFormat) -> list[str]:
    needed = match_format.required_maps
    if len(names) != needed:
        raise InvalidFieldValueError(f"A {match_format.value} war needs exactly {needed} maps.")
    plan: list[str] = []
    for raw in names:
        name = canonical_map_name(raw)
        if name is None:
            raise InvalidFieldValueError(f"Unknown map: {raw}")
        plan.append(name)
    if plan[-1] not in DECIDER_MAPS:
        raise InvalidFieldValueError(
            "The last map must be " + " or ".join(DECIDER_MAPS) + "."
        )
    return plan


def validate_map_name(raw: str) -> str:
    name = canonical_map_name(raw)
    if name is None:
        raise InvalidFieldValueError(f"Unknown map: {raw}")
    return name


def validate_score(raw: int | str, *, label: str = "Score") -> int:
    try:
        score = int(str(raw).strip())
    except ValueError as exc:
        raise InvalidFieldValueError(f"{label} must be a whole number.") from exc
    if score < 0 or score > MAX_ROUND_SCORE:
        raise InvalidFieldValueError(f"{label} must be between 0 and {MAX_ROUND_SCORE}.")
    return score


def parse_side(raw: str) -> str:
    cleaned = raw.strip().lower()
    for side in SIDES:
        if side.lower() == cleaned or side.lower().rstrip("s") == cleaned:
            return side
    raise InvalidFieldValueError("Side must be SEALs or Terrorists.")


def validate_vod_url(raw: str | None) -> str | None:
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    if not _URL_PATTERN.match(value):
        raise InvalidFieldValueError("VOD link must start with http:// or https://")
    return value


def parse_participant_tokens(raw: str) -> list[str]:
    tokens: list[str] = []
    for part in _SPLIT_PATTERN.split(raw.strip()):
        if not part:
            continue
        match = _MENTION_PATTERN.match(part)
        tokens.append(match.group(1) if match else part)
    return tokens


def parse_substitutions(raw: str | None) -> list[tuple[str, str, str]]:
    """Parse ``IN -> OUT (note)`` lines into (in, out, note) tuples."""
    if not raw:
        return []
    entries: list[tuple[str, str, str]] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        match = _SUBSTITUTION_PATTERN.match(line)
        if not match:
            raise InvalidFieldValueError(
                f"Could not read substitution '{line}'. Use IN -> OUT (note)."
            )
        entries.append(
            (match.group(1).strip(), match.group(2).strip(), (match.group(3) or "").strip())
        )
    return entries


def dedupe(values: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


__all__ = [
    "DEFAULT_WINDOW_DAYS",
    "DEFAULT_EVENING_START",
    "DEFAULT_EVENING_END",
    "DEFAULT_STEP_MINUTES",
    "date_choices",
    "dedupe",
    "evening_time_choices",
    "format_clock",
    "parse_clock",
    "parse_match_format",
    "parse_participant_tokens",
    "parse_side",
    "parse_start_date",
    "parse_start_time",
    "parse_substitutions",
    "validate_map_name",
    "validate_map_plan",
    "validate_opponent",
    "validate_score",
    "validate_team_size",
    "validate_time_override",
    "validate_vod_url",
]
