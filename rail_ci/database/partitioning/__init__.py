from .backfill import BackfillPartitionedTable
from .config import PartitioningSettings, get_partitioning_settings
from .table_management import PartitioningError, TableManagementHelper

__all__ = [
    "BackfillPartitionedTable",
    "PartitioningError",
    "PartitioningSettings",
    "TableManagementHelper",
    "get_partitioning_settings",
]
