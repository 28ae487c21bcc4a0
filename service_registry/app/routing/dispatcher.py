"""
Dispatcher binding the registry route table onto a FastAPI application.
"""

import json
from http import HTTPStatus
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse

from shared.errors import (
    AccessLayerException,
    InternalServiceError,
    MalformedPathError,
    RegistryHandlerError,
)
from shared.logging import get_logger, set_user_context
from ..auth import AuthGate
from ..engine.base import HandlerResponse, RegistryEngine
from ..tenancy import OrganizationMapping
from .params import Shape, normalize
from .table import Projection, RouteSpec, RouteTable, iter_patterns

_EXTRAS_SHAPES = (Shape.VERSION_EXTRAS, Shape.ALIAS_EXTRAS)


class Dispatcher:
    """Runs every registry request through normalize -> auth -> handler -> projection."""

    def __init__(
        self,
        engine: RegistryEngine,
        auth_gate: AuthGate,
        organizations: OrganizationMapping,
        table: Optional[RouteTable] = None,
    ):
        self.engine = engine
        self.auth_gate = auth_gate
        self.organizations = organizations
        self.table = table or RouteTable()
        self.logger = get_logger("registry.dispatcher")

    def register(self, app: FastAPI):
        """Add the login route and every generated registry route to the app."""
        app.add_api_route("/auth/login", self.login, methods=["POST"], name="auth_login")

        count = 0
        for pattern, route in iter_patterns(self.table.routes):
            endpoint = self._endpoint(route)
            methods = _with_head([route.method])
            app.add_api_route(pattern, endpoint, methods=methods, name=route.operation)
            count += 1
            if route.shape not in _EXTRAS_SHAPES:
                app.add_api_route(
                    pattern + "/", endpoint, methods=methods,
                    name=route.operation, include_in_schema=False,
                )

        # Anything else under a kind prefix still goes through normalization,
        # so unsupported shapes answer 400 rather than 404
        for kind in sorted({kind for route in self.table.routes for kind in route.kinds}):
            app.add_api_route(
                f"/{kind}/{{rest:path}}", self.dispatch,
                methods=_with_head(sorted({route.method for route in self.table.routes})),
                name=f"{kind}_unmatched", include_in_schema=False,
            )

        self.logger.debug("Registry routes registered", patterns=count)

    def _endpoint(self, route: RouteSpec):
        async def endpoint(request: Request) -> Response:
            return await self.dispatch(request)

        endpoint.__name__ = route.operation
        return endpoint

    async def login(self, request: Request) -> JSONResponse:
        """Exchange the bootstrap credential for a bearer token."""
        credential = await self._read_credential(request)
        token = self.auth_gate.issue_token(credential)
        return JSONResponse(
            {"token": token.token},
            headers={"cache-control": "private, no-cache"},
        )

    async def dispatch(self, request: Request) -> Response:
        """Handle one registry request.

        The operation is re-derived from the normalized parameters rather
        than trusted from the matched pattern, so overlapping patterns all
        behave the same way.
        """
        params = normalize(self._raw_path(request))
        method = "GET" if request.method == "HEAD" else request.method
        route = self.table.resolve(method, params)
        if route is None:
            raise MalformedPathError(
                "Request path does not address a registry operation",
                details={"kind": params.kind, "shape": params.shape, "method": method},
            )

        user = None
        if route.mutating:
            user = self.auth_gate.verify(request.headers.get("authorization"))
            set_user_context(user.get("name"), user.get("org"))

        handler = self.engine.handler(route.handler)
        try:
            outgoing = await handler.handle(request, params, self.organizations, user)
        except AccessLayerException:
            raise
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            if isinstance(status, int) and 400 <= status < 600:
                self.logger.debug("Delegated handler error relayed", operation=route.operation, status_code=status)
                raise RegistryHandlerError(status, _message(exc, status)) from exc
            self.logger.debug(
                "Delegated handler failed",
                operation=route.operation,
                error=str(exc),
                exc_info=True,
            )
            raise InternalServiceError() from exc

        return self.project(route, outgoing)

    def project(self, route: RouteSpec, outgoing: HandlerResponse) -> Response:
        """Turn a handler result into the HTTP response for its operation."""
        headers = {"cache-control": outgoing.cache_control}

        if route.projection == Projection.REDIRECT:
            if not outgoing.location:
                self.logger.debug("Redirecting handler returned no location", operation=route.operation)
                raise InternalServiceError()
            status = outgoing.status_code if 300 <= outgoing.status_code < 400 else 302
            return RedirectResponse(outgoing.location, status_code=status, headers=headers)

        if route.projection == Projection.JSON:
            body = outgoing.body if outgoing.body is not None else {}
            return JSONResponse(body, status_code=outgoing.status_code, headers=headers)

        if outgoing.etag:
            headers["etag"] = outgoing.etag
        if outgoing.stream is not None:
            return StreamingResponse(
                outgoing.stream,
                status_code=outgoing.status_code,
                media_type=outgoing.mime_type,
                headers=headers,
            )
        return Response(
            content=_encode(outgoing.body),
            status_code=outgoing.status_code,
            media_type=outgoing.mime_type,
            headers=headers,
        )

    @staticmethod
    def _raw_path(request: Request) -> str:
        raw_path = request.scope.get("raw_path")
        if raw_path:
            return raw_path.decode("latin-1")
        return request.url.path

    @staticmethod
    async def _read_credential(request: Request) -> Any:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                payload = await request.json()
            except ValueError:
                return None
            return payload.get("key") if isinstance(payload, dict) else None

        form = await request.form()
        return form.get("key")


def _with_head(methods: List[str]) -> List[str]:
    return methods + ["HEAD"] if "GET" in methods else methods


def _message(exc: Exception, status: int) -> str:
    # Errors that carry a client status are meant for the client; prefer their own text
    detail = getattr(exc, "detail", None)
    if isinstance(detail, str) and detail:
        return detail
    return str(exc) or _reason(status)


def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def _encode(body: Any) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")
