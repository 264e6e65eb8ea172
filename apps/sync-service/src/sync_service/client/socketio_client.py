"""
Socket.IO client for the sync service.

Wraps a python-socketio AsyncClient with typed request/acknowledgement
helpers:

- room:create / room:join / room:leave / room:state
- playback:control (ControlAck, or a raised SyncError on rejection)
- clock:probe (server receive / send stamps)
- sync:beacon, room:host_changed, room:participants callbacks
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

import socketio
from pydantic import BaseModel
from socketio.exceptions import TimeoutError as SocketIOTimeoutError

from sync_service.errors import error_from_response
from sync_service.models.messages import (
    ClockProbeResponse,
    ControlAck,
    HostChangedEvent,
    ParticipantInfo,
    RoomJoinedAck,
    SyncBeacon,
)

logger = logging.getLogger(__name__)

# Type aliases
BeaconCallback = Callable[[SyncBeacon], Coroutine[Any, Any, None]]
HostChangedCallback = Callable[[HostChangedEvent], Coroutine[Any, Any, None]]
ParticipantsCallback = Callable[[list[ParticipantInfo]], Coroutine[Any, Any, None]]


class SyncSocketIOClient:
    """Socket.IO client for the sync service.

    Attributes:
        server_url: Sync service URL
        namespace: Socket.IO namespace
        request_timeout: Acknowledgement timeout for room and control requests
    """

    def __init__(
        self,
        server_url: str,
        namespace: str = "/",
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        request_timeout: float = 5.0,
    ) -> None:
        """Initialize the sync Socket.IO client.

        Args:
            server_url: Sync service URL (e.g., "http://sync-service:8000")
            namespace: Socket.IO namespace (default /)
            reconnect_attempts: Max reconnection attempts
            reconnect_delay: Initial reconnect delay in seconds
            request_timeout: Seconds to wait for an acknowledgement
        """
        self.server_url = server_url
        self.namespace = namespace
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.request_timeout = request_timeout

        self._sio: socketio.AsyncClient | None = None
        self._connected = False

        # Callbacks
        self._on_beacon: BeaconCallback | None = None
        self._on_host_changed: HostChangedCallback | None = None
        self._on_participants: ParticipantsCallback | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Connect to the sync service.

        Returns:
            True if connection succeeded

        Raises:
            ConnectionError: If connection fails
        """
        self._sio = socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=self.reconnect_attempts,
            reconnection_delay=self.reconnect_delay,
            reconnection_delay_max=30.0,
        )

        self._register_handlers()

        try:
            await self._sio.connect(
                self.server_url,
                namespaces=[self.namespace],
                transports=["websocket"],
            )
            self._connected = True
            logger.info(f"Connected to sync service at {self.server_url}")
            return True

        except Exception as e:
            logger.error(f"Failed to connect to sync service: {e}")
            raise ConnectionError(f"Failed to connect to sync service: {e}") from e

    def _register_handlers(self) -> None:
        """Register Socket.IO event handlers."""
        if self._sio is None:
            return

        @self._sio.on("connect", namespace=self.namespace)
        async def on_connect() -> None:
            logger.info("Socket.IO connected")
            self._connected = True

        @self._sio.on("disconnect", namespace=self.namespace)
        async def on_disconnect(*args: Any) -> None:
            logger.warning("Socket.IO disconnected")
            self._connected = False

        @self._sio.on("sync:beacon", namespace=self.namespace)
        async def on_sync_beacon(data: dict) -> None:
            await self._handle_beacon(data)

        @self._sio.on("room:host_changed", namespace=self.namespace)
        async def on_host_changed(data: dict) -> None:
            await self._handle_host_changed(data)

        @self._sio.on("room:participants", namespace=self.namespace)
        async def on_participants(data: dict) -> None:
            await self._handle_participants(data)

    async def _handle_beacon(self, data: dict) -> None:
        beacon = SyncBeacon.model_validate(data)
        logger.debug(
            f"Beacon received: sequence={beacon.sequence}, position={beacon.position_sec:.3f}, "
            f"is_playing={beacon.is_playing}, reason={beacon.reason.value}"
        )
        if self._on_beacon:
            await self._on_beacon(beacon)

    async def _handle_host_changed(self, data: dict) -> None:
        event = HostChangedEvent.model_validate(data)
        logger.info(f"Host changed: room_id={event.room_id}, host_id={event.host_id}")
        if self._on_host_changed:
            await self._on_host_changed(event)

    async def _handle_participants(self, data: dict) -> None:
        participants = [ParticipantInfo.model_validate(p) for p in data.get("participants", [])]
        if self._on_participants:
            await self._on_participants(participants)

    async def _call(self, event: str, data: Any = None, timeout: float | None = None) -> dict:
        """Emit an event and wait for its acknowledgement.

        Raises:
            ConnectionError: If not connected
            SyncError: If the server answers with an error acknowledgement
            pydantic.ValidationError: If the acknowledgement is malformed
            TimeoutError: If no acknowledgement arrives in time
            SyncError: If the acknowledgement is an error response
        """
        if not self._connected or self._sio is None:
            raise ConnectionError("Not connected to sync service")

        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")

        try:
            ack = await self._sio.call(
                event,
                data,
                namespace=self.namespace,
                timeout=timeout if timeout is not None else self.request_timeout,
            )
        except SocketIOTimeoutError as e:
            raise TimeoutError(f"No acknowledgement for {event}") from e

        if isinstance(ack, dict) and ack.get("success") is False:
            raise error_from_response(ack)
        return ack

    async def create_room(self, device_name: str = "Device") -> RoomJoinedAck:
        ack = await self._call("room:create", {"device_name": device_name})
        joined = RoomJoinedAck.model_validate(ack)
        logger.info(f"Room created: room_id={joined.room.room_id}")
        return joined

    async def join_room(
        self,
        room_id: str,
        device_name: str = "Device",
        participant_id: str | None = None,
    ) -> RoomJoinedAck:
        payload: dict[str, Any] = {"room_id": room_id, "device_name": device_name}
        if participant_id:
            payload["participant_id"] = participant_id
        ack = await self._call("room:join", payload)
        joined = RoomJoinedAck.model_validate(ack)
        logger.info(f"Joined room: room_id={joined.room.room_id}, is_host={joined.is_host}")
        return joined

    async def leave_room(self) -> None:
        await self._call("room:leave")

    async def request_state(self) -> RoomJoinedAck:
        """Fetch the current room snapshot (used to refresh a stale view)."""
        return RoomJoinedAck.model_validate(await self._call("room:state"))

    async def probe_clock(self, client_send_time: float) -> tuple[float, float]:
        """Issue one clock probe.

        Args:
            client_send_time: Local send time t0 in milliseconds

        Returns:
            (server_receive_time, server_send_time)

        Raises:
            TimeoutError: If the server does not answer in time
            ConnectionError: If not connected
            SyncError: If the server answers with an error acknowledgement
            pydantic.ValidationError: If the acknowledgement is malformed
        """
        ack = await self._call("clock:probe", {"client_send_time": client_send_time})
        response = ClockProbeResponse.model_validate(ack)
        return response.server_receive_time, response.server_send_time

    async def send_control(self, message: BaseModel) -> ControlAck:
        """Send a playback control message.

        Raises:
            SyncError: If the server rejects the message
        """
        return ControlAck.model_validate(await self._call("playback:control", message))

    async def disconnect(self) -> None:
        """Disconnect from the sync service."""
        if self._sio is not None:
            await self._sio.disconnect()
            self._sio = None

        self._connected = False
        logger.info("Disconnected from sync service")

    def set_beacon_callback(self, callback: BeaconCallback) -> None:
        """Set callback for sync:beacon events.

        Args:
            callback: Async function receiving SyncBeacon
        """
        self._on_beacon = callback

    def set_host_changed_callback(self, callback: HostChangedCallback) -> None:
        """Set callback for room:host_changed events.

        Args:
            callback: Async function receiving HostChangedEvent
        """
        self._on_host_changed = callback

    def set_participants_callback(self, callback: ParticipantsCallback) -> None:
        self._on_participants = callback
