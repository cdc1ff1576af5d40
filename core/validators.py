#!/usr/bin/env python3
"""
DocShift Identifier & Field Validators
======================================

Pure functions that check identifiers and normalize scalar fields of the
legacy document. Nothing in this module touches the target store, and
nothing raises for an expected shape problem: every check returns a
ValidationResult carrying either the normalized value or the reasons the
entry was rejected.

The per-entity validators (validate_user_entry, validate_role_entry, ...)
are shared by the transformers, the verifier and the dry run, so that the
three always agree on which source entries are migratable.

Author: DocShift maintainers
Version: 1.0.0
"""

import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.errors import ValidationError

# Platform identifiers are fixed-width numeric strings
SNOWFLAKE_PATTERN = re.compile(r'[0-9]{17,20}')

MAX_NAME_LENGTH = 255
DEFAULT_DISPLAY_NAME = "Unknown User"
DEFAULT_CHANNEL_NAME = "Unknown Channel"

VALID_EVENT_TYPES = ('JOIN', 'LEAVE', 'MOVE', 'DISCONNECT', 'TIMEOUT')
UNKNOWN_EVENT_TYPE = 'UNKNOWN'

# (min_hours threshold, priority); lower number = higher priority
ROLE_PRIORITY_THRESHOLDS = ((100, 1), (50, 2), (20, 3), (10, 4))
LOWEST_ROLE_PRIORITY = 5

INVALID_IDENTIFIER = "invalid identifier format"


@dataclass
class ValidationResult:
    """Tagged result: a normalized value, or the reasons it was rejected"""
    value: Any = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def reason(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None

    @classmethod
    def success(cls, value: Any) -> 'ValidationResult':
        return cls(value=value)

    @classmethod
    def failure(cls, *errors: str) -> 'ValidationResult':
        return cls(errors=list(errors))

    def unwrap(self, key: Any = None) -> Any:
        """Return the value or raise ValidationError with the joined reasons"""
        if self.errors:
            raise ValidationError(self.reason, key=None if key is None else str(key))
        return self.value


def _is_number(raw: Any) -> bool:
    # bool is an int subclass but never a valid numeric field
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return False
    return not (isinstance(raw, float) and (math.isnan(raw) or math.isinf(raw)))


def validate_id(raw: Any) -> ValidationResult:
    """Accept a 17-20 digit identifier (string or int); never repair it."""
    if isinstance(raw, bool):
        return ValidationResult.failure(INVALID_IDENTIFIER)
    if isinstance(raw, int):
        raw = str(raw)
    if not isinstance(raw, str) or not SNOWFLAKE_PATTERN.fullmatch(raw):
        return ValidationResult.failure(INVALID_IDENTIFIER)
    return ValidationResult.success(raw)


def _sanitize_name(raw: Any, fallback: str) -> str:
    if not isinstance(raw, str):
        return fallback
    cleaned = raw.strip()[:MAX_NAME_LENGTH]
    return cleaned or fallback


def sanitize_display_name(raw: Any) -> str:
    """Trim, truncate to 255 characters, fall back to 'Unknown User'."""
    return _sanitize_name(raw, DEFAULT_DISPLAY_NAME)


def sanitize_channel_name(raw: Any) -> str:
    return _sanitize_name(raw, DEFAULT_CHANNEL_NAME)


def parse_timestamp(raw: Any, field_name: str = "timestamp") -> ValidationResult:
    """
    Convert epoch milliseconds to an aware UTC datetime.

    None passes through as None. Strings, booleans, negative numbers and
    values outside the representable range are errors, not clamped.
    """
    if raw is None:
        return ValidationResult.success(None)
    if not _is_number(raw):
        return ValidationResult.failure(f"invalid {field_name}: not a number")
    if raw < 0:
        return ValidationResult.failure(f"invalid {field_name}: negative value")
    try:
        instant = datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return ValidationResult.failure(f"invalid {field_name}: out of range")
    return ValidationResult.success(instant)


def parse_non_negative_int(raw: Any, field_name: str, default: Optional[int] = None) -> ValidationResult:
    if raw is None:
        if default is None:
            return ValidationResult.failure(f"missing {field_name}")
        return ValidationResult.success(default)
    if not _is_number(raw) or (isinstance(raw, float) and not raw.is_integer()):
        return ValidationResult.failure(f"invalid {field_name}: not an integer")
    if raw < 0:
        return ValidationResult.failure(f"invalid {field_name}: negative value")
    return ValidationResult.success(int(raw))


def parse_non_negative_number(raw: Any, field_name: str, default: Optional[float] = None) -> ValidationResult:
    if raw is None:
        if default is None:
            return ValidationResult.failure(f"missing {field_name}")
        return ValidationResult.success(default)
    if not _is_number(raw):
        return ValidationResult.failure(f"invalid {field_name}: not a number")
    if raw < 0:
        return ValidationResult.failure(f"invalid {field_name}: negative value")
    return ValidationResult.success(raw)


def role_priority(min_hours: float) -> int:
    """Map a role's minimum hours to its priority (1 = highest)."""
    for threshold, priority in ROLE_PRIORITY_THRESHOLDS:
        if min_hours >= threshold:
            return priority
    return LOWEST_ROLE_PRIORITY


def normalize_event_type(raw: Any) -> str:
    if not isinstance(raw, str):
        return UNKNOWN_EVENT_TYPE
    normalized = raw.strip().upper()
    return normalized if normalized in VALID_EVENT_TYPES else UNKNOWN_EVENT_TYPE


def validate_role_name(raw: Any) -> ValidationResult:
    if not isinstance(raw, str) or not raw.strip():
        return ValidationResult.failure("invalid role name")
    name = raw.strip()
    if len(name) > MAX_NAME_LENGTH:
        return ValidationResult.failure("invalid role name: longer than 255 characters")
    return ValidationResult.success(name)


def _collect(*results: ValidationResult) -> List[str]:
    errors = []
    for result in results:
        errors.extend(result.errors)
    return errors


def _require_record(record: Any) -> Optional[ValidationResult]:
    if not isinstance(record, dict):
        return ValidationResult.failure("invalid record: expected an object")
    return None


# =============================================================================
# Per-entity validators
# =============================================================================

def validate_user_entry(key: Any, record: Any) -> ValidationResult:
    """user_activity[key] -> normalized principal + activity record"""
    identifier = validate_id(key)
    if not identifier.ok:
        return identifier
    shape = _require_record(record)
    if shape:
        return shape

    total_time = parse_non_negative_int(record.get('totalTime'), 'totalTime', default=0)
    start_time = parse_timestamp(record.get('startTime'), 'startTime')
    errors = _collect(total_time, start_time)
    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult.success({
        'id': identifier.value,
        'display_name': sanitize_display_name(record.get('displayName')),
        'total_time_ms': total_time.value,
        'current_session_start': start_time.value,
        'is_currently_active': start_time.value is not None,
    })


def validate_role_entry(key: Any, record: Any) -> ValidationResult:
    """role_config[name] -> normalized role record with derived priority"""
    name = validate_role_name(key)
    if not name.ok:
        return name
    shape = _require_record(record)
    if shape:
        return shape

    min_hours = parse_non_negative_number(record.get('minHours'), 'minHours')
    report_cycle = parse_non_negative_int(record.get('reportCycle'), 'reportCycle', default=1)
    reset_time = parse_timestamp(record.get('resetTime'), 'resetTime')
    errors = _collect(min_hours, report_cycle, reset_time)
    if report_cycle.ok and report_cycle.value < 1:
        errors.append("invalid reportCycle: must be at least 1")
    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult.success({
        'name': name.value,
        'min_hours': min_hours.value,
        'report_cycle_weeks': report_cycle.value,
        'priority': role_priority(min_hours.value),
        'reset_time': reset_time.value,
    })


def validate_reset_entry(key: Any, record: Any) -> ValidationResult:
    """reset_history[role name] -> one reset event"""
    shape = _require_record(record)
    if shape:
        return shape
    name = validate_role_name(record.get('roleName', key))
    if not name.ok:
        return name

    reset_time = parse_timestamp(record.get('resetTime'), 'resetTime')
    if not reset_time.ok:
        return reset_time
    if reset_time.value is None:
        return ValidationResult.failure("missing resetTime")

    reason = record.get('reason')
    admin = record.get('adminUser')
    return ValidationResult.success({
        'role_name': name.value,
        'reset_timestamp': reset_time.value,
        'reason': reason.strip() if isinstance(reason, str) and reason.strip() else 'Manual reset',
        'admin_username': admin.strip() if isinstance(admin, str) and admin.strip() else None,
    })


def validate_afk_entry(key: Any, record: Any) -> ValidationResult:
    """afk_status[principal id] -> afk window"""
    identifier = validate_id(key)
    if not identifier.ok:
        return identifier
    shape = _require_record(record)
    if shape:
        return shape

    afk_until = parse_timestamp(record.get('afkUntil'), 'afkUntil')
    created_at = parse_timestamp(record.get('createdAt'), 'createdAt')
    errors = _collect(afk_until, created_at)
    if errors:
        return ValidationResult(errors=errors)

    # Without createdAt the window start falls back to afkUntil so reruns
    # keep hitting the same (user_id, afk_start) row
    afk_start = created_at.value or afk_until.value
    if afk_start is None:
        return ValidationResult.failure("missing createdAt and afkUntil")

    reason = record.get('reason')
    return ValidationResult.success({
        'user_id': identifier.value,
        'afk_start': afk_start,
        'afk_until': afk_until.value,
        'reason': reason.strip()[:MAX_NAME_LENGTH] if isinstance(reason, str) and reason.strip() else None,
    })


def validate_forum_message(thread_id: Any, message_type: Any, message_id: Any) -> ValidationResult:
    thread = validate_id(thread_id)
    if not thread.ok:
        return ValidationResult.failure(f"{INVALID_IDENTIFIER} (thread)")
    if message_type is None:
        return ValidationResult.failure("invalid record: expected an object")
    if not isinstance(message_type, str) or not message_type.strip():
        return ValidationResult.failure("invalid message type")
    message = validate_id(message_id)
    if not message.ok:
        return ValidationResult.failure(f"{INVALID_IDENTIFIER} (message)")

    return ValidationResult.success({
        'thread_id': thread.value,
        'message_type': message_type.strip().upper()[:50],
        'message_id': message.value,
    })


def validate_voice_mapping(key: Any, record: Any) -> ValidationResult:
    """voice_channel_mappings[channel id] -> forum post mapping"""
    channel = validate_id(key)
    if not channel.ok:
        return channel
    shape = _require_record(record)
    if shape:
        return shape

    forum_post = validate_id(record.get('forumPostId'))
    if not forum_post.ok:
        return ValidationResult.failure(f"{INVALID_IDENTIFIER} (forumPostId)")

    participants = parse_non_negative_int(record.get('lastParticipantCount'), 'lastParticipantCount', default=0)
    created_at = parse_timestamp(record.get('createdAt'), 'createdAt')
    updated_at = parse_timestamp(record.get('lastUpdated'), 'lastUpdated')
    errors = _collect(participants, created_at, updated_at)
    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult.success({
        'voice_channel_id': channel.value,
        'forum_post_id': forum_post.value,
        'last_participant_count': participants.value,
        'created_at': created_at.value,
        'updated_at': updated_at.value,
    })


def event_key(user_id: str, event_type: str, timestamp: datetime, channel_id: Optional[str]) -> str:
    """Natural key for an activity event; stable across reruns."""
    millis = int(round(timestamp.timestamp() * 1000))
    return f"{user_id}:{event_type}:{millis}:{channel_id or ''}"


def validate_activity_event(record: Any) -> ValidationResult:
    """activity_logs[i] -> normalized activity event"""
    shape = _require_record(record)
    if shape:
        return shape

    user = validate_id(record.get('userId'))
    if not user.ok:
        return user

    timestamp = parse_timestamp(record.get('timestamp'), 'timestamp')
    if not timestamp.ok:
        return timestamp
    if timestamp.value is None:
        return ValidationResult.failure("missing timestamp")

    channel_id = None
    if record.get('channelId') is not None:
        channel = validate_id(record.get('channelId'))
        if not channel.ok:
            return ValidationResult.failure(f"{INVALID_IDENTIFIER} (channelId)")
        channel_id = channel.value

    duration = parse_non_negative_int(record.get('durationMs'), 'durationMs', default=0)
    if not duration.ok:
        return duration

    extra = record.get('extra')
    try:
        extra_json = json.dumps(extra, sort_keys=True) if extra is not None else None
    except (TypeError, ValueError):
        return ValidationResult.failure("invalid extra: not serializable")

    event_type = normalize_event_type(record.get('eventType'))
    return ValidationResult.success({
        'event_key': event_key(user.value, event_type, timestamp.value, channel_id),
        'user_id': user.value,
        'event_type': event_type,
        'event_timestamp': timestamp.value,
        'channel_id': channel_id,
        'channel_name': sanitize_channel_name(record.get('channelName')),
        'duration_ms': duration.value,
        'extra': extra_json,
    })


def iter_reset_records(collection: Dict[str, Any]):
    """Yield (label, key, record) triples; a role may carry one reset or a list of them."""
    for key, value in collection.items():
        if isinstance(value, list):
            for position, record in enumerate(value):
                yield f"{key}[{position}]", key, record
        else:
            yield key, key, value


def iter_forum_messages(collection: Dict[str, Any]):
    """Flatten thread -> {type: [ids]} into one (label, thread, type, id) per message."""
    for thread_id, types in collection.items():
        if not isinstance(types, dict):
            yield thread_id, thread_id, None, None
            continue
        for message_type, message_ids in types.items():
            ids = message_ids if isinstance(message_ids, list) else [message_ids]
            for message_id in ids:
                yield f"{thread_id}/{message_id}", thread_id, message_type, message_id
