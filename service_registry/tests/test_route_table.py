"""
Unit tests for the declarative route table.
"""

import pytest

from service_registry.app.routing.params import Shape, normalize
from service_registry.app.routing.table import (
    ROUTES,
    RouteSpec,
    RouteTable,
    build_pattern,
    iter_patterns,
)


class TestRouteTable:
    """Test cases for RouteTable."""

    @pytest.fixture
    def table(self):
        return RouteTable()

    @pytest.mark.parametrize("method,path,operation", [
        ("GET", "/pkg/fuzz", "versions"),
        ("GET", "/map/@cuz/buzz", "versions"),
        ("GET", "/npm/@cuz/fuzz/8.4.1", "package_overview"),
        ("GET", "/pkg/fuzz/8.4.1/main/index.js", "package_content"),
        ("PUT", "/pkg/@cuz/fuzz/8.4.1", "package_upload"),
        ("GET", "/map/buzz/4.2.2", "map_get"),
        ("PUT", "/map/buzz/4.2.2", "map_upload"),
        ("GET", "/map/buzz/v4", "alias_get"),
        ("GET", "/npm/fuzz/v8/index.js", "alias_content"),
        ("PUT", "/pkg/fuzz/v8", "alias_update"),
        ("POST", "/pkg/fuzz/v8", "alias_create"),
        ("DELETE", "/map/@cuz/buzz/v4", "alias_delete"),
    ])
    def test_resolve(self, table, method, path, operation):
        route = table.resolve(method, normalize(path))

        assert route is not None
        assert route.operation == operation

    @pytest.mark.parametrize("method,path", [
        ("GET", "/map/buzz/4.2.2/extra.json"),
        ("GET", "/map/buzz/v4/extra.json"),
        ("PUT", "/pkg/fuzz/8.4.1/index.js"),
        ("DELETE", "/pkg/fuzz/8.4.1"),
        ("POST", "/pkg/fuzz"),
    ])
    def test_unsupported_combinations(self, table, method, path):
        assert table.resolve(method, normalize(path)) is None

    def test_pkg_and_npm_share_handlers(self, table):
        pkg = table.resolve("GET", normalize("/pkg/fuzz/8.4.1/a.js"))
        npm = table.resolve("GET", normalize("/npm/fuzz/8.4.1/a.js"))

        assert pkg is npm

    def test_every_mutation_is_marked(self):
        for route in ROUTES:
            assert route.mutating == (route.method in ("PUT", "POST", "DELETE"))

    def test_duplicate_routes_are_rejected(self):
        duplicate = RouteSpec("again", "GET", ("pkg",), Shape.NAME, "versions_get", "stream")

        with pytest.raises(ValueError):
            RouteTable(ROUTES + (duplicate,))


class TestPatterns:
    """Test cases for pattern generation."""

    def test_build_pattern(self):
        assert build_pattern("pkg", Shape.VERSION_EXTRAS, scoped=True) == "/pkg/@{scope}/{name}/{version}/{extras:path}"
        assert build_pattern("map", Shape.ALIAS, scoped=False) == "/map/{name}/v{alias}"
        assert build_pattern("npm", Shape.NAME, scoped=False) == "/npm/{name}"

    def test_scoped_patterns_precede_unscoped(self):
        patterns = [pattern for pattern, _ in iter_patterns()]
        last_scoped = max(i for i, pattern in enumerate(patterns) if "@{scope}" in pattern)
        first_unscoped = min(i for i, pattern in enumerate(patterns) if "@{scope}" not in pattern)

        assert last_scoped < first_unscoped

    def test_alias_patterns_precede_version_patterns(self):
        patterns = [pattern for pattern, _ in iter_patterns() if "@{scope}" not in pattern]

        assert patterns.index("/pkg/{name}/v{alias}") < patterns.index("/pkg/{name}/{version}")
