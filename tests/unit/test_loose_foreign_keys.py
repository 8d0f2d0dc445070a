"""
Unit tests for loose foreign key triggers and the migration operations.
"""

from datetime import date
from unittest import mock

import pytest

from rail_ci.database import loose_foreign_keys
from rail_ci.database.operations import (
    CreateLooseForeignKeysFunction,
    DropPartitionedTable,
    PartitionTableByDate,
    TrackRecordDeletions,
)

pytestmark = pytest.mark.unit


def make_schema_editor(vendor="postgresql", alias="default"):
    connection = mock.MagicMock(vendor=vendor, alias=alias)
    connection.ops.quote_name.side_effect = lambda name: f'"{name}"'
    cursor = connection.cursor.return_value.__enter__.return_value
    return mock.Mock(connection=connection), cursor


class TestLooseForeignKeysSql:
    def test_track_record_deletions_sql(self):
        assert loose_foreign_keys.track_record_deletions_sql("ci_runners") == [
            'DROP TRIGGER IF EXISTS "ci_runners_loose_fk_trigger" ON "ci_runners"',
            'CREATE TRIGGER "ci_runners_loose_fk_trigger"\n'
            'AFTER DELETE ON "ci_runners" REFERENCING OLD TABLE AS old_table\n'
            "FOR EACH STATEMENT\n"
            "EXECUTE FUNCTION insert_into_loose_foreign_keys_deleted_records()",
        ]

    def test_insert_function_writes_deleted_records(self):
        sql = loose_foreign_keys.create_insert_function_sql()

        assert sql.startswith("CREATE OR REPLACE FUNCTION insert_into_loose_foreign_keys_deleted_records()")
        assert "INSERT INTO loose_foreign_keys_deleted_records" in sql
        assert "FROM old_table;" in sql
        assert loose_foreign_keys.drop_insert_function_sql() == (
            "DROP FUNCTION IF EXISTS insert_into_loose_foreign_keys_deleted_records()"
        )

    def test_track_record_deletions_executes_statements(self):
        schema_editor, cursor = make_schema_editor()

        loose_foreign_keys.track_record_deletions("ci_runners", schema_editor.connection)

        executed = [call.args[0] for call in cursor.execute.call_args_list]
        assert executed == loose_foreign_keys.track_record_deletions_sql("ci_runners")

    def test_untrack_record_deletions(self):
        schema_editor, cursor = make_schema_editor()

        loose_foreign_keys.untrack_record_deletions("ci_runners", schema_editor.connection)

        cursor.execute.assert_called_once_with(
            'DROP TRIGGER IF EXISTS "ci_runners_loose_fk_trigger" ON "ci_runners"'
        )


class TestTrackRecordDeletionsOperation:
    def test_forwards_and_backwards(self):
        schema_editor, cursor = make_schema_editor()
        operation = TrackRecordDeletions("ci_runners")

        operation.database_forwards("rail_ci", schema_editor, None, None)
        assert cursor.execute.call_count == 2

        operation.database_backwards("rail_ci", schema_editor, None, None)
        assert cursor.execute.call_count == 3

    def test_skips_other_vendors(self):
        schema_editor, cursor = make_schema_editor(vendor="sqlite")

        TrackRecordDeletions("ci_runners").database_forwards("rail_ci", schema_editor, None, None)

        cursor.execute.assert_not_called()

    def test_skips_other_connections(self):
        schema_editor, cursor = make_schema_editor(alias="default")

        TrackRecordDeletions("ci_runners", connection_alias="ci").database_forwards(
            "rail_ci", schema_editor, None, None
        )

        cursor.execute.assert_not_called()

    def test_deconstruct(self):
        assert TrackRecordDeletions("ci_runners").deconstruct() == (
            "TrackRecordDeletions",
            [],
            {"table": "ci_runners"},
        )
        assert TrackRecordDeletions("ci_runners", "ci").deconstruct()[2] == {
            "table": "ci_runners",
            "connection_alias": "ci",
        }


class TestCreateLooseForeignKeysFunction:
    def test_forwards_and_backwards(self):
        schema_editor, _ = make_schema_editor()
        operation = CreateLooseForeignKeysFunction()

        operation.database_forwards("rail_ci", schema_editor, None, None)
        operation.database_backwards("rail_ci", schema_editor, None, None)

        assert [call.args[0] for call in schema_editor.execute.call_args_list] == [
            loose_foreign_keys.create_insert_function_sql(),
            loose_foreign_keys.drop_insert_function_sql(),
        ]

    def test_skips_other_vendors(self):
        schema_editor, _ = make_schema_editor(vendor="sqlite")

        CreateLooseForeignKeysFunction().database_forwards("rail_ci", schema_editor, None, None)

        schema_editor.execute.assert_not_called()


class TestPartitionOperations:
    @pytest.fixture
    def helper_class(self):
        with mock.patch("rail_ci.database.operations.TableManagementHelper") as patched:
            yield patched

    def test_partition_forwards(self, helper_class):
        schema_editor, _ = make_schema_editor()
        operation = PartitionTableByDate("audit_events", "created_at", min_date=date(2020, 1, 1))

        operation.database_forwards("rail_ci", schema_editor, None, None)

        helper = helper_class.return_value
        helper_class.assert_called_once_with(schema_editor.connection)
        helper.partition_table_by_date.assert_called_once_with(
            "audit_events", "created_at", min_date=date(2020, 1, 1), max_date=None
        )
        helper.enqueue_partitioning_data_migration.assert_called_once_with("audit_events")

    def test_partition_without_backfill(self, helper_class):
        schema_editor, _ = make_schema_editor()

        PartitionTableByDate("audit_events", "created_at", enqueue_backfill=False).database_forwards(
            "rail_ci", schema_editor, None, None
        )

        helper_class.return_value.enqueue_partitioning_data_migration.assert_not_called()

    def test_partition_backwards(self, helper_class):
        schema_editor, _ = make_schema_editor()

        PartitionTableByDate("audit_events", "created_at").database_backwards(
            "rail_ci", schema_editor, None, None
        )

        helper = helper_class.return_value
        helper.cleanup_partitioning_data_migration.assert_called_once_with("audit_events")
        helper.drop_partitioned_table_for.assert_called_once_with("audit_events")

    def test_partition_skips_other_vendors(self, helper_class):
        schema_editor, _ = make_schema_editor(vendor="sqlite")

        PartitionTableByDate("audit_events", "created_at").database_forwards(
            "rail_ci", schema_editor, None, None
        )

        helper_class.assert_not_called()

    def test_drop_partitioned_table(self, helper_class):
        schema_editor, _ = make_schema_editor()
        operation = DropPartitionedTable("audit_events")

        operation.database_forwards("rail_ci", schema_editor, None, None)

        assert not operation.reversible
        helper_class.return_value.drop_partitioned_table_for.assert_called_once_with("audit_events")

    def test_deconstruct(self):
        operation = PartitionTableByDate("audit_events", "created_at", enqueue_backfill=False)

        assert operation.deconstruct() == (
            "PartitionTableByDate",
            [],
            {"table": "audit_events", "column": "created_at", "enqueue_backfill": False},
        )
        assert operation.describe() == "Partition audit_events by created_at"
