"""
CI configuration: YAML loading, includes, extends and entry validation.
"""

from .config import Config
from .errors import ConfigError, ConfigFormatError, ExtendsError, IncludeError

__all__ = ["Config", "ConfigError", "ConfigFormatError", "ExtendsError", "IncludeError"]
