"""SQLite schema for the host-owned tables.

Extension-owned tables (``roku_devices``) are not listed here; they are
created from their registered model schema at install time.

Every statement is ``IF NOT EXISTS``, so the whole script is reapplied on
each start. The layout revision is stamped into SQLite's own
``user_version`` header field rather than a bookkeeping table.
"""

from __future__ import annotations

import aiosqlite

# Bump whenever HOST_TABLES_SQL changes shape
SCHEMA_VERSION = 1

HOST_TABLES: tuple[str, ...] = (
    "events",
    "device_registry",
    "entity_states",
    "extension_config",
)


class SchemaVersionError(RuntimeError):
    """The database was written by a newer host than this one."""


async def schema_version(db: aiosqlite.Connection) -> int:
    """Layout revision stamped on *db*; 0 for a database never prepared."""
    cursor = await db.execute("PRAGMA user_version")
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def ensure_schema(db: aiosqlite.Connection) -> int:
    """Create any missing host tables and stamp :data:`SCHEMA_VERSION`.

    Existing rows are left untouched. Refuses to open a database stamped
    with a later revision, since this build cannot know its layout.
    """
    found = await schema_version(db)
    if found > SCHEMA_VERSION:
        raise SchemaVersionError(
            f"Database schema v{found} is newer than supported v{SCHEMA_VERSION}"
        )
    await db.executescript(HOST_TABLES_SQL)
    if found != SCHEMA_VERSION:
        # PRAGMA does not accept bound parameters
        await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION:d}")
    await db.commit()
    return SCHEMA_VERSION




HOST_TABLES_SQL = """
-- Monotonic event log (replay + audit trail)
CREATE TABLE IF NOT EXISTS events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    payload TEXT NOT NULL,
    source_id TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);

-- Canonical device registry shared by all extensions
CREATE TABLE IF NOT EXISTS device_registry (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    friendly_name TEXT,
    device_type TEXT NOT NULL,
    extension_source TEXT,
    ip_address TEXT,
    mac_address TEXT,
    model TEXT,
    manufacturer TEXT,
    serial_number TEXT,
    firmware_version TEXT,
    capabilities TEXT NOT NULL DEFAULT '[]',
    metadata TEXT NOT NULL DEFAULT '{}',
    online INTEGER NOT NULL DEFAULT 0,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    discovered_at TEXT NOT NULL,
    last_seen_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_registry_type ON device_registry(device_type);
CREATE INDEX IF NOT EXISTS idx_registry_ip ON device_registry(ip_address);

-- Latest state per entity, written by the polling manager
CREATE TABLE IF NOT EXISTS entity_states (
    entity_id TEXT PRIMARY KEY,
    device_id TEXT,
    state TEXT,
    attributes TEXT NOT NULL DEFAULT '{}',
    friendly_name TEXT,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_entity_states_device ON entity_states(device_id);

-- Per-extension key/value settings
CREATE TABLE IF NOT EXISTS extension_config (
    extension_name TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (extension_name, key)
);
"""
