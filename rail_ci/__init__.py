"""
rail-ci: CI/CD pipelines, schedules and releases for Django projects.
"""

from .defaults import LIBRARY_VERSION

__version__ = LIBRARY_VERSION
