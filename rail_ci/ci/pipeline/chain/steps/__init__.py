"""
Chain steps for pipeline creation.

Each step is a focused unit of work; see ``..builder`` for the default order.
"""

from .build import BuildStep
from .config import ConfigContentStep, ConfigProcessStep
from .create import CreateCrossDatabaseAssociationsStep, CreateStep
from .populate import PopulateStep, StopDryRunStep
from .process import MetricsStep, ProcessStep
from .seed import SeedStep
from .skip import SkipStep
from .validate import ValidateAbilitiesStep, ValidateRepositoryStep

__all__ = [
    "BuildStep",
    "ValidateAbilitiesStep",
    "ValidateRepositoryStep",
    "SkipStep",
    "ConfigContentStep",
    "ConfigProcessStep",
    "SeedStep",
    "PopulateStep",
    "StopDryRunStep",
    "CreateStep",
    "CreateCrossDatabaseAssociationsStep",
    "ProcessStep",
    "MetricsStep",
]
