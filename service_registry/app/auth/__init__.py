"""
Authentication helpers for the Registry Service.
"""

from .gate import AuthGate, AuthToken

__all__ = [
    "AuthGate",
    "AuthToken",
]
