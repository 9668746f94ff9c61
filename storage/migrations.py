"""Ad-hoc database migrations for the outbox database."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_outbox_columns(conn) -> None:
    columns = {
        "target_id": "TEXT",
        "revision": "INTEGER NOT NULL DEFAULT 0",
        "synced_at": "DATETIME",
        "error_kind": "TEXT",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "outbox_item", name):
            conn.execute(text(f"ALTER TABLE outbox_item ADD COLUMN {name} {ddl_type}"))


def ensure_outbox_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_outbox_item_selection
            ON outbox_item (status, next_attempt_at, created_at)
            """
        )
    )
    # at most one non-terminal item per dedupe key
    conn.execute(
        text(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS ux_outbox_item_active_dedupe
            ON outbox_item (dedupe_key)
            WHERE status != 'SYNCED'
            """
        )
    )


def ensure_mirror_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_mirror_record_status
            ON mirror_record (entity, sync_status)
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_outbox_columns(conn)
        ensure_outbox_indexes(conn)
        ensure_mirror_indexes(conn)


__all__ = ["run_all"]
