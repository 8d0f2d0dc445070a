"""
Helpers for moving an existing PostgreSQL table onto a partitioned copy.

The workflow for a table ``audit_events`` partitioned by ``created_at``:

1. ``partition_table_by_date("audit_events", "created_at")`` creates
   ``audit_events_part`` (range partitioned, one partition per month in the
   dynamic partitions schema) and a trigger copying every write on the
   source table to the copy.
2. ``enqueue_partitioning_data_migration("audit_events")`` schedules
   :class:`~rail_ci.database.partitioning.backfill.BackfillPartitionedTable`
   jobs copying existing rows in id ranges.
3. ``cleanup_partitioning_data_migration("audit_events")`` removes the
   tracking rows once the backfill is done.

``drop_partitioned_table_for`` undoes step 1. All helpers refuse to run
inside a transaction: the Django migration using them must set
``atomic = False``.
"""

import hashlib
import logging
import time
from calendar import monthrange
from datetime import date, datetime
from typing import Any, Callable, Optional, Union

from django.db import DatabaseError, connection as default_connection
from django.utils import timezone

from ..background_migrations import queue_background_migration_jobs_by_range_at_intervals
from ..models import BackgroundMigrationJob
from .config import PartitioningSettings, get_partitioning_settings

logger = logging.getLogger(__name__)

MIGRATION_CLASS_NAME = "BackfillPartitionedTable"
INTEGER_TYPES = ("integer", "smallint")

DateLike = Union[date, datetime]


class PartitioningError(Exception):
    """Raised when a table can not be (un)partitioned as requested."""


def beginning_of_month(value: DateLike) -> date:
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def add_months(value: DateLike, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""
    if isinstance(value, datetime):
        value = value.date()
    year, month = divmod(value.year * 12 + value.month - 1 + months, 12)
    month += 1
    return value.replace(year=year, month=month, day=min(value.day, monthrange(year, month)[1]))


def to_sql_timestamp(value: date) -> str:
    return f"'{value:%Y-%m-%d} 00:00:00'"


def object_name(table: str, prefix: str) -> str:
    digest = hashlib.sha256(table.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:10]}"


class TableManagementHelper:
    """Partitioning DDL for one database connection."""

    def __init__(
        self,
        connection: Any = None,
        settings: Optional[PartitioningSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.connection = connection or default_connection
        self.settings = settings or get_partitioning_settings()
        self.sleep = sleep

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def partition_table_by_date(
        self,
        table_name: str,
        column_name: str,
        min_date: Optional[DateLike] = None,
        max_date: Optional[DateLike] = None,
    ) -> str:
        """
        Create a monthly range partitioned copy of ``table_name`` kept in sync by a trigger.

        ``max_date`` defaults to a month from today; ``min_date`` to the
        month of the earliest ``column_name`` value, or a month before
        ``max_date`` for an empty table. Returns the partitioned table name.
        """
        table_name = str(table_name)
        column_name = str(column_name)
        self.assert_table_is_allowed(table_name)
        self.assert_not_in_transaction_block("partition_table_by_date")

        if max_date is None:
            max_date = add_months(timezone.localdate(), 1)
        if min_date is None:
            min_date = self.earliest_value(table_name, column_name) or add_months(max_date, -1)

        if self._as_date(min_date) >= self._as_date(max_date):
            raise PartitioningError(f"max_date {max_date} must be greater than min_date {min_date}")

        primary_key = self.primary_key(table_name)
        if primary_key is None:
            raise PartitioningError(f"primary key not defined for {table_name}")

        if self.column_type(table_name, column_name) is None:
            raise PartitioningError(f"partition column {column_name} does not exist on {table_name}")

        partitioned_table_name = self.make_partitioned_table_name(table_name)
        self.create_range_partitioned_copy(table_name, partitioned_table_name, column_name, primary_key)
        self.create_daterange_partitions(partitioned_table_name, min_date, max_date)
        self.create_trigger_to_sync_tables(table_name, partitioned_table_name, primary_key)
        return partitioned_table_name

    def drop_partitioned_table_for(self, table_name: str) -> None:
        table_name = str(table_name)
        self.assert_table_is_allowed(table_name)
        self.assert_not_in_transaction_block("drop_partitioned_table_for")

        self.with_lock_retries(self.drop_sync_trigger_statements(table_name))
        partitioned_table_name = self.make_partitioned_table_name(table_name)
        self.execute(f"DROP TABLE IF EXISTS {self.quote(partitioned_table_name)} CASCADE")
        logger.info("Dropped partitioned table %s", partitioned_table_name)

    def enqueue_partitioning_data_migration(self, table_name: str) -> float:
        table_name = str(table_name)
        self.assert_table_is_allowed(table_name)
        self.assert_not_in_transaction_block("enqueue_partitioning_data_migration")

        partitioned_table_name = self.make_partitioned_table_name(table_name)
        primary_key = self.primary_key(table_name)
        if primary_key is None:
            raise PartitioningError(f"primary key not defined for {table_name}")

        return queue_background_migration_jobs_by_range_at_intervals(
            self.id_ranges(table_name, primary_key, self.settings.batch_size),
            MIGRATION_CLASS_NAME,
            self.settings.batch_interval_seconds,
            batch_size=self.settings.batch_size,
            other_job_arguments=[table_name, partitioned_table_name, primary_key],
            track_jobs=True,
        )

    def cleanup_partitioning_data_migration(self, table_name: str) -> int:
        table_name = str(table_name)
        self.assert_table_is_allowed(table_name)

        deleted, _ = BackgroundMigrationJob.objects.for_partitioning_migration(
            MIGRATION_CLASS_NAME, table_name
        ).delete()
        return deleted

    def create_hash_partitions(self, table_name: str, number_of_partitions: int) -> list[str]:
        """Create ``number_of_partitions`` hash partitions of ``table_name`` in the static schema."""
        width = len(str(number_of_partitions - 1))
        names = []
        for remainder in range(number_of_partitions):
            partition_name = f"{table_name}_{remainder:0{width}d}"
            self.execute(
                f"CREATE TABLE {self.quote(self.settings.static_schema)}.{self.quote(partition_name)} "
                f"PARTITION OF {self.quote(table_name)} "
                f"FOR VALUES WITH (MODULUS {number_of_partitions}, REMAINDER {remainder})"
            )
            names.append(partition_name)
        logger.info("Created %s hash partitions for %s", number_of_partitions, table_name)
        return names

    # ------------------------------------------------------------------ #
    # Naming and guards
    # ------------------------------------------------------------------ #

    def make_partitioned_table_name(self, table_name: str) -> str:
        return f"{table_name}_part"

    def make_sync_function_name(self, table_name: str) -> str:
        return object_name(table_name, "table_sync_function")

    def make_sync_trigger_name(self, table_name: str) -> str:
        return object_name(table_name, "table_sync_trigger")

    def assert_table_is_allowed(self, table_name: str) -> None:
        if table_name not in self.settings.allowed_tables:
            raise PartitioningError(
                f"{table_name} is not allowed for use, must be one of: "
                f"{', '.join(self.settings.allowed_tables)}"
            )

    def transaction_open(self) -> bool:
        return bool(getattr(self.connection, "in_atomic_block", False))

    def assert_not_in_transaction_block(self, helper: str) -> None:
        if self.transaction_open():
            raise PartitioningError(
                f"{helper} can not be run inside a transaction, "
                "set atomic = False on the migration using it"
            )

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def primary_key(self, table_name: str) -> Optional[str]:
        """Name of the single-column primary key of ``table_name``, if any."""
        with self.connection.cursor() as cursor:
            constraints = self.connection.introspection.get_constraints(cursor, table_name)
        for constraint in constraints.values():
            if constraint.get("primary_key") and len(constraint.get("columns") or []) == 1:
                return constraint["columns"][0]
        return None

    def column_names(self, table_name: str) -> list[str]:
        return [name for name, _ in self._columns(table_name)]

    def column_type(self, table_name: str, column_name: str) -> Optional[str]:
        for name, data_type in self._columns(table_name):
            if name == column_name:
                return data_type
        return None

    def earliest_value(self, table_name: str, column_name: str) -> Optional[date]:
        row = self.select_one(
            f"SELECT date_trunc('MONTH', MIN({self.quote(column_name)})) FROM {self.quote(table_name)}"
        )
        value = row[0] if row else None
        return self._as_date(value) if value is not None else None

    def id_ranges(self, table_name: str, primary_key: str, batch_size: int):
        """Yield ``(start, end)`` primary key ranges of at most ``batch_size`` rows."""
        start = None
        while True:
            where = "" if start is None else f"WHERE {self.quote(primary_key)} > %s "
            row = self.select_one(
                f"SELECT MIN(id_batch.pk), MAX(id_batch.pk) FROM ("
                f"SELECT {self.quote(primary_key)} AS pk FROM {self.quote(table_name)} {where}"
                f"ORDER BY {self.quote(primary_key)} LIMIT {int(batch_size)}) id_batch",
                [] if start is None else [start],
            )
            if not row or row[0] is None:
                return
            yield row[0], row[1]
            start = row[1]

    def _columns(self, table_name: str) -> list[tuple[str, str]]:
        return self.select_all(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = %s "
            "ORDER BY ordinal_position",
            [table_name],
        )

    # ------------------------------------------------------------------ #
    # DDL
    # ------------------------------------------------------------------ #

    def create_range_partitioned_copy(
        self, source_table_name: str, partitioned_table_name: str, column_name: str, primary_key: str
    ) -> None:
        if self.table_exists(partitioned_table_name):
            logger.warning("Partitioned table %s already exists, skipping", partitioned_table_name)
            return

        table = self.quote(partitioned_table_name)
        self.execute(
            f"CREATE TABLE {table} (\n"
            f"  LIKE {self.quote(source_table_name)} INCLUDING ALL EXCLUDING INDEXES,\n"
            f"  PRIMARY KEY ({self.quote(primary_key)}, {self.quote(column_name)})\n"
            f") PARTITION BY RANGE ({self.quote(column_name)})"
        )
        self.execute(f"ALTER TABLE {table} ALTER COLUMN {self.quote(primary_key)} DROP DEFAULT")
        if self.column_type(source_table_name, primary_key) in INTEGER_TYPES:
            self.execute(f"ALTER TABLE {table} ALTER COLUMN {self.quote(primary_key)} TYPE bigint")

    def create_daterange_partitions(
        self, partitioned_table_name: str, min_date: DateLike, max_date: DateLike
    ) -> list[str]:
        lower_bound = beginning_of_month(min_date)
        upper_bound = beginning_of_month(add_months(max_date, 1))

        names = [
            self.create_range_partition(
                partitioned_table_name, "000000", "MINVALUE", to_sql_timestamp(lower_bound)
            )
        ]
        current = lower_bound
        while current < upper_bound:
            next_month = add_months(current, 1)
            names.append(
                self.create_range_partition(
                    partitioned_table_name,
                    f"{current:%Y%m}",
                    to_sql_timestamp(current),
                    to_sql_timestamp(next_month),
                )
            )
            current = next_month
        return names

    def create_range_partition(self, partitioned_table_name: str, suffix: str, lower: str, upper: str) -> str:
        partition_name = f"{partitioned_table_name}_{suffix}"
        self.execute(
            f"CREATE TABLE IF NOT EXISTS "
            f"{self.quote(self.settings.dynamic_schema)}.{self.quote(partition_name)} "
            f"PARTITION OF {self.quote(partitioned_table_name)} "
            f"FOR VALUES FROM ({lower}) TO ({upper})"
        )
        return partition_name

    def create_trigger_to_sync_tables(
        self, source_table_name: str, partitioned_table_name: str, primary_key: str
    ) -> None:
        function_name = self.make_sync_function_name(source_table_name)
        trigger_name = self.make_sync_trigger_name(source_table_name)

        self.execute(self.sync_function_sql(function_name, partitioned_table_name, source_table_name, primary_key))
        self.with_lock_retries(
            [
                f"DROP TRIGGER IF EXISTS {self.quote(trigger_name)} ON {self.quote(source_table_name)}",
                f"CREATE TRIGGER {self.quote(trigger_name)}\n"
                f"AFTER INSERT OR UPDATE OR DELETE ON {self.quote(source_table_name)}\n"
                f"FOR EACH ROW\n"
                f"EXECUTE FUNCTION {self.quote(function_name)}()",
            ]
        )

    def sync_function_sql(
        self, function_name: str, partitioned_table_name: str, source_table_name: str, primary_key: str
    ) -> str:
        columns = [self.quote(name) for name in self.column_names(source_table_name)]
        key = self.quote(primary_key)
        target = self.quote(partitioned_table_name)
        assignments = ",\n    ".join(f"{name} = NEW.{name}" for name in columns)
        values = ", ".join(f"NEW.{name}" for name in columns)

        return (
            f"CREATE OR REPLACE FUNCTION {self.quote(function_name)}()\n"
            "RETURNS TRIGGER AS\n"
            "$$\n"
            "BEGIN\n"
            "IF (TG_OP = 'DELETE') THEN\n"
            f"  DELETE FROM {target} WHERE {key} = OLD.{key};\n"
            "ELSIF (TG_OP = 'UPDATE') THEN\n"
            f"  UPDATE {target}\n"
            f"  SET {assignments}\n"
            f"  WHERE {target}.{key} = NEW.{key};\n"
            "ELSIF (TG_OP = 'INSERT') THEN\n"
            f"  INSERT INTO {target} ({', '.join(columns)})\n"
            f"  VALUES ({values});\n"
            "END IF;\n"
            "RETURN NULL;\n"
            "END\n"
            "$$ LANGUAGE PLPGSQL"
        )

    def drop_sync_trigger_statements(self, table_name: str) -> list[str]:
        trigger_name = self.make_sync_trigger_name(table_name)
        function_name = self.make_sync_function_name(table_name)
        return [
            f"DROP TRIGGER IF EXISTS {self.quote(trigger_name)} ON {self.quote(table_name)}",
            f"DROP FUNCTION IF EXISTS {self.quote(function_name)}()",
        ]

    def sync_trigger_exists(self, table_name: str) -> bool:
        row = self.select_one(
            "SELECT 1 FROM pg_catalog.pg_trigger trgr "
            "INNER JOIN pg_catalog.pg_class rel ON trgr.tgrelid = rel.oid "
            "WHERE rel.relname = %s AND trgr.tgname = %s",
            [table_name, self.make_sync_trigger_name(table_name)],
        )
        return row is not None

    def table_exists(self, table_name: str) -> bool:
        row = self.select_one("SELECT to_regclass(%s)", [table_name])
        return bool(row and row[0])

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def with_lock_retries(self, statements: list[str]) -> None:
        """
        Run ``statements`` in one transaction with a short ``lock_timeout``.

        A lock timeout rolls back and retries after a growing pause; the
        last attempt runs without a timeout.
        """
        attempts = self.settings.lock_retries
        for attempt in range(1, attempts + 1):
            last_attempt = attempt == attempts
            with self.connection.cursor() as cursor:
                try:
                    cursor.execute("BEGIN")
                    if not last_attempt:
                        cursor.execute(f"SET LOCAL lock_timeout TO '{self.settings.lock_timeout_ms}ms'")
                    for statement in statements:
                        cursor.execute(statement)
                    cursor.execute("COMMIT")
                    return
                except DatabaseError as exc:
                    cursor.execute("ROLLBACK")
                    if last_attempt:
                        raise
                    logger.warning(
                        "Lock timeout on attempt %s of %s, retrying: %s", attempt, attempts, exc
                    )
            self.sleep(self.settings.pause_seconds * attempt)

    def execute(self, sql: str, params: Optional[list[Any]] = None) -> None:
        logger.debug("Partitioning DDL: %s", sql)
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)

    def select_one(self, sql: str, params: Optional[list[Any]] = None):
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.fetchone()

    def select_all(self, sql: str, params: Optional[list[Any]] = None) -> list[tuple]:
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            return [tuple(row) for row in cursor.fetchall()]

    def quote(self, name: str) -> str:
        return self.connection.ops.quote_name(name)

    @staticmethod
    def _as_date(value: DateLike) -> date:
        return value.date() if isinstance(value, datetime) else value
