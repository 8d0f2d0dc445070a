"""
Unit tests for the partitioning helpers.

The helpers only need a small connection surface, so a recording fake
stands in for PostgreSQL and introspection methods are patched.
"""

from datetime import date
from unittest import mock

import pytest
from django.db import DatabaseError

from rail_ci.database.partitioning import (
    BackfillPartitionedTable,
    PartitioningError,
    PartitioningSettings,
    TableManagementHelper,
)
from rail_ci.database.partitioning.table_management import add_months, object_name, to_sql_timestamp

pytestmark = pytest.mark.unit


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.rowcount = -1
        self._row = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.connection.executed.append((sql, params))
        if self.connection.fail_on and self.connection.fail_on in sql and self.connection.failures:
            self.connection.failures -= 1
            raise DatabaseError("canceling statement due to lock timeout")
        self._row = self.connection.rows.pop(0) if self.connection.rows else None
        self.rowcount = self.connection.rowcount

    def fetchone(self):
        return self._row

    def fetchall(self):
        return []


class FakeConnection:
    vendor = "postgresql"

    def __init__(self, rows=None, rowcount=0, fail_on=None, failures=0):
        self.in_atomic_block = False
        self.executed = []
        self.rows = list(rows or [])
        self.rowcount = rowcount
        self.fail_on = fail_on
        self.failures = failures
        self.ops = mock.Mock(quote_name=lambda name: f'"{name}"')

    def cursor(self):
        return FakeCursor(self)

    @property
    def statements(self):
        return [sql for sql, _ in self.executed]


def make_settings(**overrides):
    values = {
        "allowed_tables": ("audit_events",),
        "dynamic_schema": "partitions_dynamic",
        "static_schema": "partitions_static",
        "batch_size": 2,
        "sub_batch_size": 2,
        "batch_interval_seconds": 120,
        "pause_seconds": 0.5,
        "lock_retries": 3,
        "lock_timeout_ms": 100,
    }
    values.update(overrides)
    return PartitioningSettings(**values)


COLUMN_TYPES = {"id": "integer", "created_at": "timestamp without time zone"}


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def helper(connection, sleeps):
    helper = TableManagementHelper(connection, make_settings(), sleep=sleeps.append)
    with mock.patch.object(helper, "primary_key", return_value="id"), mock.patch.object(
        helper, "column_type", side_effect=lambda table, column: COLUMN_TYPES.get(column)
    ), mock.patch.object(helper, "column_names", return_value=["id", "created_at"]), mock.patch.object(
        helper, "table_exists", return_value=False
    ), mock.patch.object(
        helper, "earliest_value", return_value=None
    ):
        yield helper


class TestDateHelpers:
    def test_add_months_clamps_day(self):
        assert add_months(date(2020, 1, 31), 1) == date(2020, 2, 29)
        assert add_months(date(2020, 1, 15), -1) == date(2019, 12, 15)
        assert add_months(date(2019, 11, 30), 14) == date(2021, 1, 30)

    def test_to_sql_timestamp(self):
        assert to_sql_timestamp(date(2019, 12, 1)) == "'2019-12-01 00:00:00'"

    def test_object_names_are_stable(self, helper):
        name = helper.make_sync_function_name("audit_events")

        assert name == object_name("audit_events", "table_sync_function")
        assert name.startswith("table_sync_function_")
        assert len(name) == len("table_sync_function_") + 10
        assert helper.make_sync_trigger_name("audit_events").startswith("table_sync_trigger_")
        assert helper.make_partitioned_table_name("audit_events") == "audit_events_part"


class TestPartitionTableByDate:
    def test_table_must_be_allowed(self, helper):
        with pytest.raises(PartitioningError) as exc:
            helper.partition_table_by_date("users", "created_at")

        assert str(exc.value) == "users is not allowed for use, must be one of: audit_events"

    def test_refuses_to_run_in_transaction(self, helper, connection):
        connection.in_atomic_block = True

        with pytest.raises(PartitioningError) as exc:
            helper.partition_table_by_date("audit_events", "created_at")

        assert str(exc.value) == (
            "partition_table_by_date can not be run inside a transaction, "
            "set atomic = False on the migration using it"
        )

    def test_max_date_must_follow_min_date(self, helper):
        with pytest.raises(PartitioningError) as exc:
            helper.partition_table_by_date(
                "audit_events", "created_at", min_date=date(2020, 2, 1), max_date=date(2020, 1, 1)
            )

        assert str(exc.value) == "max_date 2020-01-01 must be greater than min_date 2020-02-01"

    def test_primary_key_is_required(self, helper):
        helper.primary_key.return_value = None

        with pytest.raises(PartitioningError, match="primary key not defined for audit_events"):
            helper.partition_table_by_date("audit_events", "created_at", min_date=date(2020, 1, 1))

    def test_partition_column_must_exist(self, helper):
        with pytest.raises(PartitioningError, match="partition column updated_at does not exist on audit_events"):
            helper.partition_table_by_date("audit_events", "updated_at", min_date=date(2020, 1, 1))

    def test_creates_partitioned_copy_partitions_and_trigger(self, helper, connection):
        name = helper.partition_table_by_date(
            "audit_events", "created_at", min_date=date(2019, 12, 15), max_date=date(2020, 2, 10)
        )
        statements = connection.statements

        assert name == "audit_events_part"
        assert statements[0] == (
            'CREATE TABLE "audit_events_part" (\n'
            '  LIKE "audit_events" INCLUDING ALL EXCLUDING INDEXES,\n'
            '  PRIMARY KEY ("id", "created_at")\n'
            ') PARTITION BY RANGE ("created_at")'
        )
        assert statements[1] == 'ALTER TABLE "audit_events_part" ALTER COLUMN "id" DROP DEFAULT'
        assert statements[2] == 'ALTER TABLE "audit_events_part" ALTER COLUMN "id" TYPE bigint'

        partitions = [sql for sql in statements if "PARTITION OF" in sql]
        assert partitions == [
            'CREATE TABLE IF NOT EXISTS "partitions_dynamic"."audit_events_part_000000" '
            'PARTITION OF "audit_events_part" FOR VALUES FROM (MINVALUE) TO (\'2019-12-01 00:00:00\')',
            'CREATE TABLE IF NOT EXISTS "partitions_dynamic"."audit_events_part_201912" '
            'PARTITION OF "audit_events_part" '
            "FOR VALUES FROM ('2019-12-01 00:00:00') TO ('2020-01-01 00:00:00')",
            'CREATE TABLE IF NOT EXISTS "partitions_dynamic"."audit_events_part_202001" '
            'PARTITION OF "audit_events_part" '
            "FOR VALUES FROM ('2020-01-01 00:00:00') TO ('2020-02-01 00:00:00')",
            'CREATE TABLE IF NOT EXISTS "partitions_dynamic"."audit_events_part_202002" '
            'PARTITION OF "audit_events_part" '
            "FOR VALUES FROM ('2020-02-01 00:00:00') TO ('2020-03-01 00:00:00')",
        ]

        function_sql = next(sql for sql in statements if sql.startswith("CREATE OR REPLACE FUNCTION"))
        assert f'"{helper.make_sync_function_name("audit_events")}"()' in function_sql
        assert 'DELETE FROM "audit_events_part" WHERE "id" = OLD."id";' in function_sql
        assert 'INSERT INTO "audit_events_part" ("id", "created_at")' in function_sql
        assert 'VALUES (NEW."id", NEW."created_at");' in function_sql

        trigger = helper.make_sync_trigger_name("audit_events")
        assert statements[-5:] == [
            "BEGIN",
            "SET LOCAL lock_timeout TO '100ms'",
            f'DROP TRIGGER IF EXISTS "{trigger}" ON "audit_events"',
            f'CREATE TRIGGER "{trigger}"\n'
            'AFTER INSERT OR UPDATE OR DELETE ON "audit_events"\n'
            "FOR EACH ROW\n"
            f'EXECUTE FUNCTION "{helper.make_sync_function_name("audit_events")}"()',
            "COMMIT",
        ]

    def test_bigint_primary_keys_are_kept(self, helper, connection):
        helper.column_type.side_effect = lambda table, column: {
            "id": "bigint",
            "created_at": "timestamp with time zone",
        }.get(column)

        helper.partition_table_by_date("audit_events", "created_at", min_date=date(2020, 1, 1), max_date=date(2020, 2, 1))

        assert not any("TYPE bigint" in sql for sql in connection.statements)

    def test_default_date_range(self, helper, connection):
        with mock.patch(
            "rail_ci.database.partitioning.table_management.timezone.localdate",
            return_value=date(2020, 1, 15),
        ):
            helper.partition_table_by_date("audit_events", "created_at")

        suffixes = [
            sql.split('"partitions_dynamic"."audit_events_part_')[1].split('"')[0]
            for sql in connection.statements
            if "PARTITION OF" in sql
        ]
        assert suffixes == ["000000", "202001", "202002"]

    def test_min_date_defaults_to_earliest_row(self, helper, connection):
        helper.earliest_value.return_value = date(2019, 11, 1)

        helper.partition_table_by_date("audit_events", "created_at", max_date=date(2020, 1, 5))

        partitions = [sql for sql in connection.statements if "PARTITION OF" in sql]
        assert len(partitions) == 4
        assert "audit_events_part_201911" in partitions[1]
        assert "audit_events_part_202001" in partitions[-1]

    def test_existing_partitioned_table_is_not_recreated(self, helper, connection):
        helper.table_exists.return_value = True

        helper.partition_table_by_date("audit_events", "created_at", min_date=date(2020, 1, 1), max_date=date(2020, 2, 1))

        assert not any(sql.startswith('CREATE TABLE "audit_events_part"') for sql in connection.statements)
        assert any("PARTITION OF" in sql for sql in connection.statements)


class TestDropPartitionedTable:
    def test_drops_trigger_function_and_table(self, helper, connection):
        helper.drop_partitioned_table_for("audit_events")

        trigger = helper.make_sync_trigger_name("audit_events")
        function = helper.make_sync_function_name("audit_events")
        assert connection.statements == [
            "BEGIN",
            "SET LOCAL lock_timeout TO '100ms'",
            f'DROP TRIGGER IF EXISTS "{trigger}" ON "audit_events"',
            f'DROP FUNCTION IF EXISTS "{function}"()',
            "COMMIT",
            'DROP TABLE IF EXISTS "audit_events_part" CASCADE',
        ]

    def test_refuses_disallowed_tables(self, helper, connection):
        with pytest.raises(PartitioningError):
            helper.drop_partitioned_table_for("users")
        assert connection.statements == []


class TestLockRetries:
    def test_retries_after_lock_timeout(self, sleeps):
        connection = FakeConnection(fail_on="DROP TRIGGER", failures=2)
        helper = TableManagementHelper(connection, make_settings(), sleep=sleeps.append)

        helper.with_lock_retries(["DROP TRIGGER IF EXISTS t ON audit_events"])

        assert sleeps == [0.5, 1.0]
        assert connection.statements.count("ROLLBACK") == 2
        assert connection.statements[-3:] == ["BEGIN", "DROP TRIGGER IF EXISTS t ON audit_events", "COMMIT"]

    def test_last_failure_is_raised(self, sleeps):
        connection = FakeConnection(fail_on="DROP TRIGGER", failures=10)
        helper = TableManagementHelper(connection, make_settings(), sleep=sleeps.append)

        with pytest.raises(DatabaseError):
            helper.with_lock_retries(["DROP TRIGGER IF EXISTS t ON audit_events"])

        assert connection.statements.count("ROLLBACK") == 3
        assert sleeps == [0.5, 1.0]


class TestHashPartitions:
    @pytest.mark.parametrize(
        "count,expected",
        [
            (8, ["events_0", "events_7"]),
            (16, ["events_00", "events_15"]),
            (100, ["events_00", "events_99"]),
            (101, ["events_000", "events_100"]),
        ],
    )
    def test_partition_names_are_zero_padded(self, helper, count, expected):
        names = helper.create_hash_partitions("events", count)

        assert len(names) == count
        assert [names[0], names[-1]] == expected

    def test_partition_sql(self, helper, connection):
        helper.create_hash_partitions("events", 16)

        assert connection.statements[0] == (
            'CREATE TABLE "partitions_static"."events_00" PARTITION OF "events" '
            "FOR VALUES WITH (MODULUS 16, REMAINDER 0)"
        )


class TestIntrospection:
    def test_id_ranges(self):
        connection = FakeConnection(rows=[(1, 2), (3, 3), (None, None)])
        helper = TableManagementHelper(connection, make_settings())

        assert list(helper.id_ranges("audit_events", "id", 2)) == [(1, 2), (3, 3)]
        assert connection.executed[1][1] == [2]
        assert "LIMIT 2" in connection.executed[0][0]

    def test_primary_key_from_constraints(self):
        connection = FakeConnection()
        connection.introspection = mock.Mock()
        connection.introspection.get_constraints.return_value = {
            "audit_events_pkey": {"primary_key": True, "columns": ["id"]},
            "audit_events_created_at": {"primary_key": False, "columns": ["created_at"]},
        }

        assert TableManagementHelper(connection, make_settings()).primary_key("audit_events") == "id"

    def test_composite_primary_key_is_ignored(self):
        connection = FakeConnection()
        connection.introspection = mock.Mock()
        connection.introspection.get_constraints.return_value = {
            "pkey": {"primary_key": True, "columns": ["id", "created_at"]},
        }

        assert TableManagementHelper(connection, make_settings()).primary_key("audit_events") is None


class TestBackfillPartitionedTable:
    def make_job(self, connection, sleeps, trigger_exists=True):
        job = BackfillPartitionedTable(connection, make_settings(), sleep=sleeps.append)
        job.helper.sync_trigger_exists = mock.Mock(return_value=trigger_exists)
        job.helper.column_names = mock.Mock(return_value=["id", "created_at"])
        return job

    def test_copies_in_sub_batches(self, sleeps):
        connection = FakeConnection(rowcount=2)
        job = self.make_job(connection, sleeps)

        copied = job.perform(1, 5, "audit_events", "audit_events_part", "id")

        assert copied == 6
        assert [params for _, params in connection.executed] == [[1, 2], [3, 4], [5, 5]]
        assert sleeps == [0.5, 0.5]
        sql = connection.statements[0]
        assert sql.startswith('INSERT INTO "audit_events_part" ("id", "created_at")')
        assert 'WHERE "id" BETWEEN %s AND %s' in sql
        assert sql.endswith("ON CONFLICT DO NOTHING")

    def test_skips_without_sync_trigger(self, sleeps):
        connection = FakeConnection()
        job = self.make_job(connection, sleeps, trigger_exists=False)

        assert job.perform(1, 5, "audit_events", "audit_events_part", "id") == 0
        assert connection.executed == []

    def test_refuses_to_run_in_transaction(self, sleeps):
        connection = FakeConnection()
        connection.in_atomic_block = True
        job = self.make_job(connection, sleeps)

        with pytest.raises(PartitioningError, match="Do not run inside a transaction"):
            job.perform(1, 5, "audit_events", "audit_events_part", "id")
