"""
Interface between the dispatcher and the package registry engine.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Request

from shared.errors import RegistryHandlerError
from ..routing.params import CanonicalRequestParams
from ..streams import MetricsEvent, MetricsStream
from ..tenancy import OrganizationMapping


@dataclass
class HandlerResponse:
    """Result of a delegated handler, projected onto HTTP by the dispatcher."""
    status_code: int = 200
    mime_type: str = "application/json"
    cache_control: str = "no-cache"
    etag: Optional[str] = None
    location: Optional[str] = None
    body: Any = None
    stream: Optional[AsyncIterator[bytes]] = None


class RegistryHandler(ABC):
    """One delegated registry operation with its own metrics stream."""

    def __init__(self, name: str):
        self.name = name
        self.metrics = MetricsStream(name)

    @abstractmethod
    async def handle(
        self,
        request: Request,
        params: CanonicalRequestParams,
        organizations: OrganizationMapping,
        user: Optional[Dict[str, Any]] = None,
    ) -> HandlerResponse:
        """Execute the operation."""

    def resolve_organization(
        self,
        request: Request,
        organizations: OrganizationMapping,
        default: Optional[str] = None,
    ) -> str:
        """Pick the organization for a request from its Host header."""
        if not organizations.restricted:
            return default or "local"
        organization = organizations.organization_for(request.headers.get("host"))
        if organization is None:
            raise RegistryHandlerError(400, "Organization could not be resolved from the Host header")
        return organization

    def record(self, kind: Optional[str], outcome: str, start_time: float, organization: Optional[str] = None):
        """Emit one MetricsEvent for a completed operation."""
        self.metrics.push(MetricsEvent(
            source=self.name,
            kind=kind,
            outcome=outcome,
            duration_ms=(time.time() - start_time) * 1000,
            organization=organization,
        ))


@dataclass
class RegistryEngine:
    """The handler set the dispatcher delegates to."""
    versions_get: RegistryHandler
    pkg_log: RegistryHandler
    pkg_get: RegistryHandler
    pkg_put: RegistryHandler
    map_get: RegistryHandler
    map_put: RegistryHandler
    alias_get: RegistryHandler
    alias_put: RegistryHandler
    alias_post: RegistryHandler
    alias_del: RegistryHandler

    def handler(self, role: str) -> RegistryHandler:
        return getattr(self, role)

    def handlers(self) -> List[RegistryHandler]:
        return [getattr(self, f.name) for f in fields(self)]
