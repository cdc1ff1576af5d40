"""Bundled target schema scripts, one per supported dialect."""

from pathlib import Path

SCHEMA_DIR = Path(__file__).parent

REQUIRED_TABLES = (
    'users',
    'user_activities',
    'roles',
    'role_reset_history',
    'afk_status',
    'forum_messages',
    'voice_channel_mappings',
    'activity_events',
    'schema_migrations',
)


def default_schema_path(dialect: str) -> Path:
    return SCHEMA_DIR / f"{dialect}.sql"
