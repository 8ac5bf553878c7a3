from datetime import datetime, timedelta, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from battles.errors import ValidationError

MIN_START_LEAD = timedelta(seconds=30)
MIN_DURATION_MIN = 10
MAX_DURATION_MIN = 300
MIN_RATING_SPAN = 100
MIN_PROBLEMS = 3
MAX_PROBLEMS = 10

REQUIRED_FIELDS = ("name", "startTime", "duration", "minRating", "maxRating", "problemCount")


def _parse_start_time(value):
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as sent by browser clients.
        parsed = datetime.fromtimestamp(value / 1000, tz=dt_timezone.utc)
    elif isinstance(value, str):
        parsed = parse_datetime(value)
    else:
        parsed = None
    if parsed is None:
        raise ValidationError("Invalid start time")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _as_int(details, key):
    value = details.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


def validate_battle_details(details, now=None) -> dict:
    if not isinstance(details, dict) or any(details.get(key) in (None, "") for key in REQUIRED_FIELDS):
        raise ValidationError("All fields are required")

    now = now or timezone.now()
    start_time = _parse_start_time(details["startTime"])
    if start_time < now + MIN_START_LEAD:
        raise ValidationError("Start time must be at least 30 seconds in the future")

    duration = _as_int(details, "duration")
    if duration <= MIN_DURATION_MIN or duration >= MAX_DURATION_MIN:
        raise ValidationError(
            f"Duration must be more than {MIN_DURATION_MIN} minutes and less than {MAX_DURATION_MIN} minutes"
        )

    min_rating = _as_int(details, "minRating")
    max_rating = _as_int(details, "maxRating")
    if min_rating < 0 or max_rating < 0:
        raise ValidationError("Ratings must be non-negative")
    if min_rating > max_rating - MIN_RATING_SPAN:
        raise ValidationError(f"Rating range should be at least {MIN_RATING_SPAN} rating points.")

    problem_count = _as_int(details, "problemCount")
    if problem_count < MIN_PROBLEMS or problem_count > MAX_PROBLEMS:
        raise ValidationError(f"Problem count must be between {MIN_PROBLEMS} and {MAX_PROBLEMS}")

    return {
        "title": str(details["name"]).strip()[:200],
        "start_time": start_time,
        "duration_min": duration,
        "min_rating": min_rating,
        "max_rating": max_rating,
        "num_problems": problem_count,
    }
