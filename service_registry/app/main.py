"""
Registry service for the asset registry access layer.
"""

import asyncio
from typing import Any, Dict, Optional

from shared.base_service import BaseService
from shared.config import RegistryConfig, get_config
from shared.errors import ConfigurationError
from .auth import AuthGate
from .engine import RegistryEngine, create_memory_engine
from .routing.dispatcher import Dispatcher
from .streams import merge
from .tenancy import resolve_organizations


class RegistryService(BaseService):
    """Registry service implementation."""

    def __init__(self, config: Optional[RegistryConfig] = None, engine: Optional[RegistryEngine] = None):
        super().__init__(config or get_config())

        self.organizations = resolve_organizations(
            self.config.organization_hostnames,
            self.config.organization_name,
        )
        self.engine = engine or self._create_engine()
        self.auth_gate = AuthGate(self.config)
        self.auth_gate.check_security_posture()

        self.metrics_stream = merge(
            *(handler.metrics for handler in self.engine.handlers()),
            self.auth_gate.metrics,
        )
        self._metrics_consumer: Optional[asyncio.Task] = None

        self.dispatcher = Dispatcher(self.engine, self.auth_gate, self.organizations)
        self._setup_registry_routes()

        hosts = ", ".join(self.organizations.hostnames) or "any host"
        self.logger.info(
            f'Files for "{hosts}" will be stored in the "{self.config.organization_name}" organization space'
        )

        @self.app.on_event("startup")
        async def _startup():
            await self.metrics_stream.start()
            self._metrics_consumer = asyncio.create_task(self._consume_metrics())

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.metrics_stream.stop()
            if self._metrics_consumer:
                await self._metrics_consumer
                self._metrics_consumer = None

        self.app.state.registry_service = self

    def _create_engine(self) -> RegistryEngine:
        """Create the engine selected by the sink configuration."""
        if self.config.sink_type == "mem":
            self.logger.warning(
                "Server is running with a in memory sink. Uploaded files will be lost on restart!"
            )
            return create_memory_engine(self.config.organization_name)
        raise ConfigurationError(
            f"Unknown sink type '{self.config.sink_type}'; inject a RegistryEngine to use other storage"
        )

    def _setup_registry_routes(self):
        """Set up registry-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Asset registry access layer - Registry Service",
                "version": "1.0.0",
                "organization": self.config.organization_name,
            }

        self.dispatcher.register(self.app)

    async def _consume_metrics(self):
        """Feed the merged handler metrics into Prometheus."""
        async for event in self.metrics_stream:
            self.metrics.record_registry_event(event)

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report sink and metrics stream state."""
        stats = self.metrics_stream.get_stats()
        self.metrics.set_metrics_sources(stats["attached"])
        return {
            "sink": self.config.sink_type,
            "metrics_sources": stats["attached"],
            "metrics_relayed": stats["relayed"],
        }


def create_app(config: Optional[RegistryConfig] = None, engine: Optional[RegistryEngine] = None):
    """Create FastAPI application."""
    service = RegistryService(config, engine)
    return service.app


if __name__ == "__main__":
    service = RegistryService()
    service.run()
