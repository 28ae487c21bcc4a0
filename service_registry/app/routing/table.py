"""
Declarative route table for the Registry Service.

One RouteSpec per logical operation. The HTTP patterns for every kind and
for scoped/unscoped names are generated from it, so each variant of an
operation shares exactly the same normalization, auth and projection.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from .params import CanonicalRequestParams, Shape

ALL_KINDS = ("pkg", "npm", "map")
PACKAGE_KINDS = ("pkg", "npm")


class Projection:
    """How a handler result is turned into an HTTP response."""
    STREAM = "stream"
    REDIRECT = "redirect"
    JSON = "json"


@dataclass(frozen=True)
class RouteSpec:
    """One logical registry operation."""
    operation: str
    method: str
    kinds: Tuple[str, ...]
    shape: str
    handler: str
    projection: str
    mutating: bool = False


ROUTES: Tuple[RouteSpec, ...] = (
    # Versions
    RouteSpec("versions", "GET", ALL_KINDS, Shape.NAME, "versions_get", Projection.STREAM),

    # Packages
    RouteSpec("package_overview", "GET", PACKAGE_KINDS, Shape.VERSION, "pkg_log", Projection.STREAM),
    RouteSpec("package_content", "GET", PACKAGE_KINDS, Shape.VERSION_EXTRAS, "pkg_get", Projection.STREAM),
    RouteSpec("package_upload", "PUT", PACKAGE_KINDS, Shape.VERSION, "pkg_put", Projection.REDIRECT, True),

    # Import maps
    RouteSpec("map_get", "GET", ("map",), Shape.VERSION, "map_get", Projection.STREAM),
    RouteSpec("map_upload", "PUT", ("map",), Shape.VERSION, "map_put", Projection.REDIRECT, True),

    # Aliases
    RouteSpec("alias_get", "GET", ALL_KINDS, Shape.ALIAS, "alias_get", Projection.REDIRECT),
    RouteSpec("alias_content", "GET", PACKAGE_KINDS, Shape.ALIAS_EXTRAS, "alias_get", Projection.REDIRECT),
    RouteSpec("alias_update", "PUT", ALL_KINDS, Shape.ALIAS, "alias_put", Projection.REDIRECT, True),
    RouteSpec("alias_create", "POST", ALL_KINDS, Shape.ALIAS, "alias_post", Projection.REDIRECT, True),
    RouteSpec("alias_delete", "DELETE", ALL_KINDS, Shape.ALIAS, "alias_del", Projection.JSON, True),
)

_SHAPE_SUFFIXES = {
    Shape.NAME: "",
    Shape.VERSION: "/{version}",
    Shape.VERSION_EXTRAS: "/{version}/{extras:path}",
    Shape.ALIAS: "/v{alias}",
    Shape.ALIAS_EXTRAS: "/v{alias}/{extras:path}",
}

# Alias patterns must be tried before the version patterns they overlap with
_SHAPE_ORDER = (Shape.ALIAS_EXTRAS, Shape.ALIAS, Shape.VERSION_EXTRAS, Shape.VERSION, Shape.NAME)


def build_pattern(kind: str, shape: str, scoped: bool) -> str:
    """Build the framework path pattern for a kind, shape and scoping."""
    name = "@{scope}/{name}" if scoped else "{name}"
    return f"/{kind}/{name}{_SHAPE_SUFFIXES[shape]}"


def iter_patterns(routes: Tuple[RouteSpec, ...] = ROUTES) -> Iterator[Tuple[str, RouteSpec]]:
    """Yield (pattern, route) pairs in registration order.

    Scoped patterns come first, since an unscoped "{name}" would otherwise
    capture the "@scope" segment.
    """
    for scoped in (True, False):
        for shape in _SHAPE_ORDER:
            for route in routes:
                if route.shape != shape:
                    continue
                for kind in route.kinds:
                    yield build_pattern(kind, shape, scoped), route


class RouteTable:
    """Lookup of operations by (method, kind, normalized shape)."""

    def __init__(self, routes: Tuple[RouteSpec, ...] = ROUTES):
        self.routes = routes
        self._index: Dict[Tuple[str, str, str], RouteSpec] = {}
        for route in routes:
            for kind in route.kinds:
                key = (route.method, kind, route.shape)
                if key in self._index:
                    raise ValueError(f"Duplicate route for {key}")
                self._index[key] = route

    def resolve(self, method: str, params: CanonicalRequestParams) -> Optional[RouteSpec]:
        return self._index.get((method.upper(), params.kind, params.shape))

    def __iter__(self) -> Iterator[RouteSpec]:
        return iter(self.routes)
