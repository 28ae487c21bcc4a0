"""
Registry Service package for the asset registry access layer.

The service is the HTTP-facing dispatch layer in front of a package
registry engine. It fronts client requests, enforcing:
- Tenancy: Host header to organization mapping built once at startup
- Normalization: raw request paths turned into canonical parameters
- Authentication: bootstrap login and bearer verification on mutation
- Observability: handler telemetry merged into one metrics stream

Structure:
- app.main: FastAPI app, service wiring, and lifecycle.
- app.tenancy: Hostname to organization resolution.
- app.routing: Parameter normalizer, route table, and dispatcher.
- app.auth: Token issuance and verification gate.
- app.streams: Metrics events, per-handler streams, and the multiplexer.
- app.engine: Delegated handler interface and the in-memory engine.
"""
