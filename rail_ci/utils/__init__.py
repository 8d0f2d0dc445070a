"""
Utility helpers shared across rail-ci.
"""

from .coercion import coerce_bool, coerce_float, coerce_int, coerce_list, coerce_str

__all__ = [
    "coerce_bool",
    "coerce_float",
    "coerce_int",
    "coerce_list",
    "coerce_str",
]
