"""
Label and annotation policy shared by the validators.

Label checks raise NotAllowedError with the denial reason. Annotation format
checks are plain predicates so validators can word their own messages.
"""

import datetime
import re
from typing import Any, Mapping

import isodate

from . import label
from .errors import NotAllowedError
from .models import Annotated

MAX_PAUSE_TIME = datetime.timedelta(hours=1)

_INT_PATTERN = re.compile(r"^[+-]?[0-9]+$")
_FLOAT_PATTERN = re.compile(r"^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$")


def is_protected_label(name: str) -> bool:
    """Controller-owned labels; provider tags and service priority stay user editable."""
    if label.PROTECTED_LABEL_PART not in name:
        return False
    if label.PROVIDER_TAG_LABEL_PART in name:
        return False
    return name != label.SERVICE_PRIORITY


def is_version_label(name: str) -> bool:
    return name in label.VERSION_LABELS


def validate_label_keys(old: Mapping[str, str], new: Mapping[str, str]) -> None:
    for name in old:
        if is_protected_label(name) and name not in new:
            raise NotAllowedError(f"User is not allowed to rename or delete label key {name}.")


def validate_label_values(old: Mapping[str, str], new: Mapping[str, str]) -> None:
    for name, value in old.items():
        if not is_protected_label(name) or is_version_label(name):
            continue
        changed = new.get(name, "")
        if changed != value:
            raise NotAllowedError(
                f"User is not allowed to change label {name} value from {value} to {changed}."
            )


def parse_int(value: Any):
    """Strict integer parsing; returns None instead of raising."""
    if not isinstance(value, str) or not _INT_PATTERN.match(value):
        return None
    return int(value)


def parse_float(value: Any):
    if not isinstance(value, str) or not _FLOAT_PATTERN.match(value):
        return None
    return float(value)


def max_batch_size_is_valid(value: str) -> bool:
    """A node count greater than zero or a ratio in (0, 1]."""
    count = parse_int(value)
    if count is not None:
        return count > 0
    ratio = parse_float(value)
    return ratio is not None and 0 < ratio <= 1


def pause_time_is_valid(value: str) -> bool:
    """An ISO-8601 duration between zero and one hour."""
    try:
        duration = isodate.parse_duration(value)
    except (isodate.ISO8601Error, ValueError, TypeError):
        return False
    if isinstance(duration, isodate.Duration):
        if duration.years or duration.months:
            return False
        duration = duration.tdelta
    return datetime.timedelta(0) <= duration <= MAX_PAUSE_TIME


def is_boolean_flag(value: str) -> bool:
    return value in ("true", "false")


def is_integer_greater_than_zero(value: str) -> bool:
    number = parse_int(value)
    return number is not None and number > 0


def is_integer_in_range(value: str, low: int, high: int) -> bool:
    number = parse_int(value)
    return number is not None and low <= number <= high


def validate_annotation(obj: Annotated, name: str, check, expectation: str) -> None:
    """Deny when annotation ``name`` is present but ``check`` rejects its value."""
    if name not in obj.annotations:
        return
    value = obj.annotations[name]
    if not check(value):
        raise NotAllowedError(f"Annotation {name} value {value!r} is invalid: {expectation}.")


UPGRADE_TIME_FORMAT = "%d %b %y %H:%M UTC"
MIN_UPGRADE_LEAD_TIME = datetime.timedelta(minutes=16)
MAX_UPGRADE_LEAD_TIME = datetime.timedelta(hours=4380)


def upgrade_time_is_valid(value: str, now: datetime.datetime = None) -> bool:
    """An RFC 822 UTC timestamp (e.g. ``30 Jan 21 15:04 UTC``) 16 minutes to 6 months ahead."""
    try:
        target = datetime.datetime.strptime(value, UPGRADE_TIME_FORMAT)
    except (ValueError, TypeError):
        return False
    target = target.replace(tzinfo=datetime.timezone.utc)
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now + MIN_UPGRADE_LEAD_TIME <= target and target - now <= MAX_UPGRADE_LEAD_TIME
