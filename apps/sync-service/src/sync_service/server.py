"""Socket.IO server setup for the sync service.

Creates a FastAPI app (health, metrics, room statistics) combined with a
Socket.IO AsyncServer that carries room membership, playback control, clock
probes and sync beacons.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import socketio
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sync_service.config import SyncServiceConfig, get_config
from sync_service.handlers import (
    register_clock_handlers,
    register_lifecycle_handlers,
    register_playback_handlers,
    register_room_handlers,
)
from sync_service.models.messages import SyncBeacon
from sync_service.session import ContextFactory, RoomStore
from sync_service.sync.authority import HostPredicate
from sync_service.sync.context import RoomSyncContext

logger = logging.getLogger(__name__)

SERVICE_NAME = "sync-service"


def make_context_factory(sio: Any, config: SyncServiceConfig) -> ContextFactory:
    """Build the per-room RoomSyncContext factory.

    Beacons are broadcast to the Socket.IO room named after the room code.
    """

    def factory(room_id: str, is_host: HostPredicate) -> RoomSyncContext:
        async def emit_beacon(beacon: SyncBeacon) -> None:
            await sio.emit("sync:beacon", beacon.model_dump(mode="json"), to=room_id)

        return RoomSyncContext(
            room_id,
            is_host,
            emit_beacon,
            beacon_interval_sec=config.playback.beacon_interval_sec,
            max_report_transit_ms=config.playback.max_report_transit_ms,
        )

    return factory


def _cors_origins(config: SyncServiceConfig) -> list[str] | str:
    origins = config.server.cors_allowed_origins.strip()
    if origins == "*":
        return "*"
    return [o.strip() for o in origins.split(",") if o.strip()]


def create_app(config: SyncServiceConfig | None = None) -> socketio.ASGIApp:
    """Create FastAPI + Socket.IO ASGI application.

    Args:
        config: Service configuration (defaults to the environment config).

    Returns:
        Combined ASGI app with FastAPI and Socket.IO. The FastAPI app is
        reachable as ``other_asgi_app`` and keeps the room store and Socket.IO
        server on its ``state``.
    """
    config = config or get_config()
    origins = _cors_origins(config)

    # Create Socket.IO AsyncServer
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=origins,
        logger=False,  # Use our own logger
        engineio_logger=False,
        ping_interval=config.server.ping_interval,
        ping_timeout=config.server.ping_timeout,
        max_http_buffer_size=config.server.max_buffer_size,
    )

    room_store = RoomStore(make_context_factory(sio, config))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await room_store.close_all()

    # Create FastAPI app for HTTP endpoints
    fastapi_app = FastAPI(
        title="Sync Service",
        description="Clock synchronization and host-authoritative playback for listening rooms",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.room_store = room_store
    fastapi_app.state.sio = sio

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if origins == "*" else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @fastapi_app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": SERVICE_NAME, "rooms": room_store.count()}

    @fastapi_app.get("/metrics")
    async def metrics_endpoint():
        """
        Prometheus metrics endpoint.

        Returns metrics in Prometheus text format including:
        - Control operations by op and outcome
        - Beacons emitted by reason
        - Active room gauge
        - Clock calibration and drift correction counters (client processes)
        """
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @fastapi_app.get("/rooms")
    async def rooms_endpoint():
        """Room statistics (debugging aid)."""
        return room_store.stats()

    # Register event handlers
    register_lifecycle_handlers(sio, room_store)
    register_room_handlers(sio, room_store)
    register_playback_handlers(sio, room_store)
    register_clock_handlers(sio)

    logger.info("Sync service handlers registered")

    # Combine FastAPI and Socket.IO into single ASGI app
    return socketio.ASGIApp(
        socketio_server=sio,
        other_asgi_app=fastapi_app,
    )
