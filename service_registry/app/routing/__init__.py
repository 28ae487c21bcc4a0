"""
Request routing for the Registry Service.

- params: Raw path to CanonicalRequestParams normalization.
- table: Declarative route table and pattern generation.
- dispatcher: Binds the table to FastAPI, gating mutations behind auth.
"""

from .params import CanonicalRequestParams, Shape, normalize
from .table import ROUTES, RouteSpec, RouteTable

__all__ = [
    "CanonicalRequestParams",
    "ROUTES",
    "RouteSpec",
    "RouteTable",
    "Shape",
    "normalize",
]
