"""
Resolution of ``include:`` entries (local, remote and project files).
"""

from .context import Context
from .mapper import Mapper
from .processor import Processor

__all__ = ["Context", "Mapper", "Processor"]
