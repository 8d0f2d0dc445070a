"""
Background migration copying rows of a source table into its partitioned copy.
"""

import logging
import time
from typing import Any, Callable, Optional

from django.db import connection as default_connection

from .config import PartitioningSettings, get_partitioning_settings
from .table_management import PartitioningError, TableManagementHelper

logger = logging.getLogger(__name__)


class BackfillPartitionedTable:
    """
    Copy ``[start_id, stop_id]`` of ``source_table`` into ``partitioned_table``.

    Rows are copied ``sub_batch_size`` at a time with ``ON CONFLICT DO
    NOTHING`` so rows already written by the sync trigger are left alone.
    The job does nothing when the sync trigger is missing, since rows copied
    without it would go stale.
    """

    def __init__(
        self,
        connection: Any = None,
        settings: Optional[PartitioningSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.connection = connection or default_connection
        self.settings = settings or get_partitioning_settings()
        self.sleep = sleep
        self.helper = TableManagementHelper(self.connection, self.settings, sleep=sleep)

    def perform(
        self,
        start_id: int,
        stop_id: int,
        source_table: str,
        partitioned_table: str,
        source_column: str,
    ) -> int:
        if self.helper.transaction_open():
            raise PartitioningError(
                "Aborting job to backfill partitioned tables. Do not run inside a transaction"
            )

        if not self.helper.sync_trigger_exists(source_table):
            logger.info(
                "Table sync trigger was not found, skipping backfill of %s to %s",
                source_table,
                partitioned_table,
            )
            return 0

        return self.bulk_copy(start_id, stop_id, source_table, partitioned_table, source_column)

    def bulk_copy(
        self,
        start_id: int,
        stop_id: int,
        source_table: str,
        partitioned_table: str,
        source_column: str,
    ) -> int:
        quote = self.helper.quote
        columns = ", ".join(quote(name) for name in self.helper.column_names(source_table))
        column = quote(source_column)
        sql = (
            f"INSERT INTO {quote(partitioned_table)} ({columns})\n"
            f"SELECT {columns} FROM {quote(source_table)}\n"
            f"WHERE {column} BETWEEN %s AND %s\n"
            "FOR UPDATE\n"
            "ON CONFLICT DO NOTHING"
        )

        copied = 0
        sub_batch_size = self.settings.sub_batch_size
        lower = start_id
        while lower <= stop_id:
            upper = min(lower + sub_batch_size - 1, stop_id)
            with self.connection.cursor() as cursor:
                cursor.execute(sql, [lower, upper])
                copied += max(cursor.rowcount or 0, 0)
            lower = upper + 1
            if lower <= stop_id:
                self.sleep(self.settings.pause_seconds)

        logger.info(
            "Copied %s rows of %s (%s..%s) into %s", copied, source_table, start_id, stop_id, partitioned_table
        )
        return copied
