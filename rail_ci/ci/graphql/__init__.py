from .mutations import CiMutation
from .queries import CiQuery

__all__ = ["CiQuery", "CiMutation"]
