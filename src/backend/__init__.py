"""
Push Relay - Real-time session enforcement and notification fan-out
===================================================================

FastAPI backend that pushes session and notification events to browsers over
Server-Sent Events, with PostgreSQL persistence.

Key Features:
    - **Single active session**: Conflicting logins are refused unless forced;
      forced logins sign the previous device out over its session stream
    - **Connection registries**: Per-channel fan-out with dead-connection
      cleanup and a liveness sweeper
    - **Notifications**: Broadcast or targeted, persisted then pushed
    - **Admin read models**: TTL-cached online users and dashboard statistics
    - **Enterprise Logging**: Structured JSON logs with rotation and request correlation

Modules:
    api: FastAPI routes, services, middleware, and push registries
    core: Settings and constants
    models: Pydantic models for API payloads and push events
    utils: Logging, caching, metrics, database helpers
    integrations: Reconnecting push stream client
"""
