"""
Django migration operations wrapping the partitioning and loose foreign key helpers.

    class Migration(migrations.Migration):
        atomic = False

        operations = [
            PartitionTableByDate("audit_events", "created_at"),
        ]

The operations only touch PostgreSQL databases; on other vendors they log
and do nothing so test databases can still be migrated.
"""

import logging
from typing import Optional

from django.db.migrations.operations.base import Operation

from . import loose_foreign_keys
from .partitioning.table_management import TableManagementHelper

logger = logging.getLogger(__name__)


def _supported(schema_editor, operation: Operation) -> bool:
    if schema_editor.connection.vendor == "postgresql":
        return True
    logger.info(
        "Skipping %s on %s database", operation.describe(), schema_editor.connection.vendor
    )
    return False


class DatabaseOnlyOperation(Operation):
    reduces_to_sql = False
    reversible = True

    def state_forwards(self, app_label, state):
        pass


class PartitionTableByDate(DatabaseOnlyOperation):
    """Create the partitioned copy of ``table`` and enqueue the backfill."""

    def __init__(
        self,
        table: str,
        column: str,
        min_date=None,
        max_date=None,
        enqueue_backfill: bool = True,
    ):
        self.table = table
        self.column = column
        self.min_date = min_date
        self.max_date = max_date
        self.enqueue_backfill = enqueue_backfill

    def deconstruct(self):
        kwargs = {"table": self.table, "column": self.column}
        if self.min_date is not None:
            kwargs["min_date"] = self.min_date
        if self.max_date is not None:
            kwargs["max_date"] = self.max_date
        if not self.enqueue_backfill:
            kwargs["enqueue_backfill"] = False
        return self.__class__.__name__, [], kwargs

    def database_forwards(self, app_label, schema_editor, from_state, to_state):
        if not _supported(schema_editor, self):
            return
        helper = TableManagementHelper(schema_editor.connection)
        helper.partition_table_by_date(
            self.table, self.column, min_date=self.min_date, max_date=self.max_date
        )
        if self.enqueue_backfill:
            helper.enqueue_partitioning_data_migration(self.table)

    def database_backwards(self, app_label, schema_editor, from_state, to_state):
        if not _supported(schema_editor, self):
            return
        helper = TableManagementHelper(schema_editor.connection)
        if self.enqueue_backfill:
            helper.cleanup_partitioning_data_migration(self.table)
        helper.drop_partitioned_table_for(self.table)

    def describe(self):
        return f"Partition {self.table} by {self.column}"


class DropPartitionedTable(DatabaseOnlyOperation):
    """Drop the partitioned copy of ``table``; not reversible."""

    reversible = False

    def __init__(self, table: str):
        self.table = table

    def deconstruct(self):
        return self.__class__.__name__, [], {"table": self.table}

    def database_forwards(self, app_label, schema_editor, from_state, to_state):
        if not _supported(schema_editor, self):
            return
        helper = TableManagementHelper(schema_editor.connection)
        helper.cleanup_partitioning_data_migration(self.table)
        helper.drop_partitioned_table_for(self.table)

    def describe(self):
        return f"Drop partitioned copy of {self.table}"


class CreateLooseForeignKeysFunction(DatabaseOnlyOperation):
    def deconstruct(self):
        return self.__class__.__name__, [], {}

    def database_forwards(self, app_label, schema_editor, from_state, to_state):
        if _supported(schema_editor, self):
            schema_editor.execute(loose_foreign_keys.create_insert_function_sql())

    def database_backwards(self, app_label, schema_editor, from_state, to_state):
        if _supported(schema_editor, self):
            schema_editor.execute(loose_foreign_keys.drop_insert_function_sql())

    def describe(self):
        return "Create the loose foreign keys deletion function"


class TrackRecordDeletions(DatabaseOnlyOperation):
    """Record deletions from ``table`` in ``loose_foreign_keys_deleted_records``."""

    def __init__(self, table: str, connection_alias: Optional[str] = None):
        self.table = table
        self.connection_alias = connection_alias

    def deconstruct(self):
        kwargs = {"table": self.table}
        if self.connection_alias:
            kwargs["connection_alias"] = self.connection_alias
        return self.__class__.__name__, [], kwargs

    def database_forwards(self, app_label, schema_editor, from_state, to_state):
        if self._applies(schema_editor):
            loose_foreign_keys.track_record_deletions(self.table, schema_editor.connection)

    def database_backwards(self, app_label, schema_editor, from_state, to_state):
        if self._applies(schema_editor):
            loose_foreign_keys.untrack_record_deletions(self.table, schema_editor.connection)

    def _applies(self, schema_editor) -> bool:
        if self.connection_alias and schema_editor.connection.alias != self.connection_alias:
            return False
        return _supported(schema_editor, self)

    def describe(self):
        return f"Track record deletions on {self.table}"
