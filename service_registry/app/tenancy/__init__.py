"""
Tenancy helpers for the Registry Service.
"""

from .resolver import OrganizationMapping, resolve_organizations

__all__ = [
    "OrganizationMapping",
    "resolve_organizations",
]
