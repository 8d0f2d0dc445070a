"""
Loose foreign keys: record deletions from a parent table instead of cascading.

A statement-level trigger on a tracked table writes the primary key of
every deleted row into ``loose_foreign_keys_deleted_records``; a cleanup
job later removes or nullifies the dependent rows, which may live in
another database.
"""

import logging
from typing import Any

from django.db import connection as default_connection

logger = logging.getLogger(__name__)

INSERT_FUNCTION_NAME = "insert_into_loose_foreign_keys_deleted_records"
DELETED_RECORDS_TABLE = "loose_foreign_keys_deleted_records"


def record_deletion_trigger_name(table: str) -> str:
    return f"{table}_loose_fk_trigger"


def create_insert_function_sql() -> str:
    return (
        f"CREATE OR REPLACE FUNCTION {INSERT_FUNCTION_NAME}()\n"
        "RETURNS TRIGGER AS\n"
        "$$\n"
        "BEGIN\n"
        f"  INSERT INTO {DELETED_RECORDS_TABLE}\n"
        "  (fully_qualified_table_name, primary_key_value, status, created_at)\n"
        "  SELECT TG_TABLE_SCHEMA || '.' || TG_TABLE_NAME, old_table.id, 1, NOW() FROM old_table;\n"
        "\n"
        "  RETURN NULL;\n"
        "END\n"
        "$$ LANGUAGE PLPGSQL"
    )


def drop_insert_function_sql() -> str:
    return f"DROP FUNCTION IF EXISTS {INSERT_FUNCTION_NAME}()"


def track_record_deletions_sql(table: str, quote=lambda name: f'"{name}"') -> list[str]:
    trigger = quote(record_deletion_trigger_name(table))
    return [
        f"DROP TRIGGER IF EXISTS {trigger} ON {quote(table)}",
        f"CREATE TRIGGER {trigger}\n"
        f"AFTER DELETE ON {quote(table)} REFERENCING OLD TABLE AS old_table\n"
        "FOR EACH STATEMENT\n"
        f"EXECUTE FUNCTION {INSERT_FUNCTION_NAME}()",
    ]


def untrack_record_deletions_sql(table: str, quote=lambda name: f'"{name}"') -> list[str]:
    return [f"DROP TRIGGER IF EXISTS {quote(record_deletion_trigger_name(table))} ON {quote(table)}"]


def _execute_all(connection: Any, statements: list[str]) -> None:
    with connection.cursor() as cursor:
        for statement in statements:
            cursor.execute(statement)


def track_record_deletions(table: str, connection: Any = None) -> None:
    """Start recording deletions from ``table`` for loose foreign key cleanup."""
    connection = connection or default_connection
    _execute_all(connection, track_record_deletions_sql(table, connection.ops.quote_name))
    logger.info("Tracking record deletions on %s", table)


def untrack_record_deletions(table: str, connection: Any = None) -> None:
    connection = connection or default_connection
    _execute_all(connection, untrack_record_deletions_sql(table, connection.ops.quote_name))
    logger.info("Stopped tracking record deletions on %s", table)
