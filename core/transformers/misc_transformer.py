#!/usr/bin/env python3
"""
Auxiliary collections

- reset_history          role name -> reset event(s)      -> role_reset_history
- afk_status             principal id -> afk window       -> afk_status
- forum_messages         thread id -> {type: [msg ids]}   -> forum_messages
- voice_channel_mappings channel id -> forum post mapping -> voice_channel_mappings

Reset history and AFK rows reference roles and principals; those parents
are looked up, never created here.
"""

from core.transformers.base import EntityTransformer, require_principal, resolve_role_id
from core.validators import (
    iter_forum_messages,
    iter_reset_records,
    validate_afk_entry,
    validate_forum_message,
    validate_reset_entry,
    validate_voice_mapping,
)

INSERT_RESET = """
    INSERT INTO role_reset_history (role_id, reset_timestamp, reset_reason, admin_username, notes)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (role_id, reset_timestamp) DO NOTHING
"""

UPSERT_AFK = """
    INSERT INTO afk_status (user_id, afk_start, afk_until, reason, is_active, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (user_id, afk_start) DO UPDATE SET
        afk_until = excluded.afk_until,
        reason = excluded.reason,
        is_active = excluded.is_active,
        updated_at = excluded.updated_at
"""

UPSERT_FORUM_MESSAGE = """
    INSERT INTO forum_messages (thread_id, message_type, message_id, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (thread_id, message_id) DO UPDATE SET
        message_type = excluded.message_type,
        updated_at = excluded.updated_at
"""

UPSERT_VOICE_MAPPING = """
    INSERT INTO voice_channel_mappings (voice_channel_id, forum_post_id, last_participant_count, created_at, updated_at)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (voice_channel_id) DO UPDATE SET
        forum_post_id = excluded.forum_post_id,
        last_participant_count = excluded.last_participant_count,
        updated_at = excluded.updated_at
"""


class ResetHistoryTransformer(EntityTransformer):
    group = "reset_history"
    source_key = "reset_history"

    def entries(self, collection):
        for label, key, record in iter_reset_records(collection):
            yield label, (key, record)

    def validate(self, label, payload):
        key, record = payload
        return validate_reset_entry(key, record)

    def identity(self, record):
        return record['role_name'], record['reset_timestamp']

    def write(self, handle, record):
        role_id = resolve_role_id(handle, record['role_name'])
        handle.execute(INSERT_RESET, (
            role_id,
            record['reset_timestamp'],
            record['reason'],
            record['admin_username'],
            'Imported from reset_history',
        ))


class AfkStatusTransformer(EntityTransformer):
    group = "afk_status"
    source_key = "afk_status"

    def validate(self, label, payload):
        key, record = payload
        return validate_afk_entry(key, record)

    def identity(self, record):
        return record['user_id'], record['afk_start']

    def write(self, handle, record):
        require_principal(handle, record['user_id'])
        now = self.clock()
        is_active = record['afk_until'] is not None and record['afk_until'] > now
        handle.execute(UPSERT_AFK, (
            record['user_id'],
            record['afk_start'],
            record['afk_until'],
            record['reason'],
            is_active,
            now,
            now,
        ))


class ForumMessageTransformer(EntityTransformer):
    """Each message id under a thread is its own entry"""

    group = "forum_messages"
    source_key = "forum_messages"

    def entries(self, collection):
        for label, thread_id, message_type, message_id in iter_forum_messages(collection):
            yield label, (thread_id, message_type, message_id)

    def validate(self, label, payload):
        return validate_forum_message(*payload)

    def identity(self, record):
        return record['thread_id'], record['message_id']

    def write(self, handle, record):
        now = self.clock()
        handle.execute(UPSERT_FORUM_MESSAGE, (
            record['thread_id'], record['message_type'], record['message_id'], now, now,
        ))


class VoiceChannelMappingTransformer(EntityTransformer):
    group = "voice_channel_mappings"
    source_key = "voice_channel_mappings"

    def validate(self, label, payload):
        key, record = payload
        return validate_voice_mapping(key, record)

    def identity(self, record):
        return record['voice_channel_id']

    def write(self, handle, record):
        now = self.clock()
        handle.execute(UPSERT_VOICE_MAPPING, (
            record['voice_channel_id'],
            record['forum_post_id'],
            record['last_participant_count'],
            record['created_at'] or now,
            record['updated_at'] or now,
        ))
