"""Unit tests for the sync Socket.IO client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from socketio.exceptions import TimeoutError as SocketIOTimeoutError

from sync_service.client.socketio_client import SyncSocketIOClient
from sync_service.errors import UnauthorizedError
from sync_service.models.messages import PauseRequest

SNAPSHOT = {
    "room_id": "ROOM01",
    "host_id": "p-1",
    "participants": [
        {"participant_id": "p-1", "device_name": "Laptop", "is_host": True, "joined_at": 1.0}
    ],
    "track": None,
    "is_playing": False,
    "position_sec": 0.0,
    "beacon": {
        "room_id": "ROOM01",
        "sequence": 0,
        "position_sec": 0.0,
        "is_playing": False,
        "server_send_time": 1000.0,
        "reason": "join",
    },
}


@pytest.fixture
def mock_socketio():
    """Create a mock Socket.IO client."""
    with patch("sync_service.client.socketio_client.socketio") as mock_sio_module:
        mock_client = AsyncMock()
        mock_client.connect = AsyncMock()
        mock_client.disconnect = AsyncMock()
        mock_client.call = AsyncMock()
        mock_client.on = MagicMock()
        mock_sio_module.AsyncClient.return_value = mock_client
        yield mock_client


@pytest.fixture
def sync_client():
    return SyncSocketIOClient(server_url="http://sync-service:8000", request_timeout=1.0)


class TestConnection:
    """Tests for connect / disconnect."""

    def test_starts_disconnected(self, sync_client):
        assert not sync_client.is_connected
        assert sync_client.namespace == "/"

    @pytest.mark.asyncio
    async def test_connect(self, mock_socketio, sync_client):
        assert await sync_client.connect() is True

        mock_socketio.connect.assert_awaited_once_with(
            "http://sync-service:8000", namespaces=["/"], transports=["websocket"]
        )
        assert sync_client.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure(self, mock_socketio, sync_client):
        mock_socketio.connect.side_effect = OSError("refused")

        with pytest.raises(ConnectionError, match="refused"):
            await sync_client.connect()
        assert not sync_client.is_connected

    @pytest.mark.asyncio
    async def test_disconnect(self, mock_socketio, sync_client):
        await sync_client.connect()

        await sync_client.disconnect()

        mock_socketio.disconnect.assert_awaited_once()
        assert not sync_client.is_connected

    @pytest.mark.asyncio
    async def test_call_requires_connection(self, sync_client):
        with pytest.raises(ConnectionError):
            await sync_client.send_control(PauseRequest())


class TestRequests:
    """Tests for acknowledged requests."""

    @pytest.mark.asyncio
    async def test_probe_clock(self, mock_socketio, sync_client):
        await sync_client.connect()
        mock_socketio.call.return_value = {
            "client_send_time": 100.0,
            "server_receive_time": 5100.0,
            "server_send_time": 5101.0,
        }

        stamps = await sync_client.probe_clock(100.0)

        assert stamps == (5100.0, 5101.0)
        mock_socketio.call.assert_awaited_once_with(
            "clock:probe", {"client_send_time": 100.0}, namespace="/", timeout=1.0
        )

    @pytest.mark.asyncio
    async def test_send_control_serializes_message(self, mock_socketio, sync_client):
        await sync_client.connect()
        mock_socketio.call.return_value = {"success": True, "beacon": None}

        ack = await sync_client.send_control(PauseRequest())

        assert ack.success is True
        assert mock_socketio.call.await_args.args[:2] == ("playback:control", {"type": "pause"})

    @pytest.mark.asyncio
    async def test_error_ack_raises_sync_error(self, mock_socketio, sync_client):
        await sync_client.connect()
        mock_socketio.call.return_value = UnauthorizedError().to_response().model_dump()

        with pytest.raises(UnauthorizedError):
            await sync_client.send_control(PauseRequest())

    @pytest.mark.asyncio
    async def test_timeout(self, mock_socketio, sync_client):
        await sync_client.connect()
        mock_socketio.call.side_effect = SocketIOTimeoutError()

        with pytest.raises(TimeoutError):
            await sync_client.probe_clock(0.0)

    @pytest.mark.asyncio
    async def test_join_room(self, mock_socketio, sync_client):
        await sync_client.connect()
        mock_socketio.call.return_value = {
            "success": True,
            "participant_id": "p-2",
            "is_host": False,
            "room": SNAPSHOT,
        }

        joined = await sync_client.join_room("room01", "Phone", participant_id="p-2")

        assert joined.room.room_id == "ROOM01"
        assert joined.is_host is False
        assert mock_socketio.call.await_args.args[1] == {
            "room_id": "room01",
            "device_name": "Phone",
            "participant_id": "p-2",
        }


class TestEvents:
    """Tests for server-pushed events."""

    @pytest.mark.asyncio
    async def test_beacon_callback(self, sync_client, make_beacon):
        callback = AsyncMock()
        sync_client.set_beacon_callback(callback)
        beacon = make_beacon()

        await sync_client._handle_beacon(beacon.model_dump(mode="json"))

        callback.assert_awaited_once_with(beacon)

    @pytest.mark.asyncio
    async def test_host_changed_callback(self, sync_client):
        callback = AsyncMock()
        sync_client.set_host_changed_callback(callback)

        await sync_client._handle_host_changed({"room_id": "ROOM01", "host_id": "p-2"})

        assert callback.await_args.args[0].host_id == "p-2"

    @pytest.mark.asyncio
    async def test_participants_callback(self, sync_client):
        callback = AsyncMock()
        sync_client.set_participants_callback(callback)

        await sync_client._handle_participants(
            {"room_id": "ROOM01", "participants": SNAPSHOT["participants"]}
        )

        assert callback.await_args.args[0][0].device_name == "Laptop"

    @pytest.mark.asyncio
    async def test_events_without_callbacks(self, sync_client, make_beacon):
        await sync_client._handle_beacon(make_beacon().model_dump(mode="json"))
