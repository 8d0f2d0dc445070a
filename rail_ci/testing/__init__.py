"""
Public test utilities for rail-ci.
"""

from .harness import CIGraphQLTestClient, build_request, override_rail_ci_settings

__all__ = [
    "CIGraphQLTestClient",
    "build_request",
    "override_rail_ci_settings",
]
