"""Clock probe handler.

Answers clock:probe with the server receive (t1) and send (t2) stamps. t1 is
taken on entry and t2 immediately before returning, so any time spent in the
handler is excluded from the client's rtt.
"""

import logging
from typing import Any

from pydantic import ValidationError

from sync_service.models.error import ErrorResponse
from sync_service.models.messages import ClockProbeRequest, ClockProbeResponse
from sync_service.timing import TimeSource, now_ms

logger = logging.getLogger(__name__)


async def handle_clock_probe(
    sio: Any,
    sid: str,
    data: dict[str, Any],
    time_source: TimeSource = now_ms,
) -> dict[str, Any]:
    """Handle clock:probe event.

    Args:
        sio: Socket.IO server instance.
        sid: Socket.IO session ID.
        data: The clock:probe payload.
        time_source: Server clock in milliseconds.

    Returns:
        ClockProbeResponse (or ErrorResponse) as the acknowledgement.
    """
    server_receive_time = time_source()
    try:
        request = ClockProbeRequest(**(data or {}))
    except (ValidationError, TypeError) as e:
        logger.debug(f"Invalid clock probe: sid={sid}, error={e}")
        return ErrorResponse.invalid_payload(str(e)).model_dump(mode="json")

    response = ClockProbeResponse(
        client_send_time=request.client_send_time,
        server_receive_time=server_receive_time,
        server_send_time=time_source(),
    )
    return response.model_dump(mode="json")


def register_clock_handlers(sio: Any, time_source: TimeSource = now_ms) -> None:
    """Register the clock:probe RPC handler.

    Args:
        sio: Socket.IO server instance.
        time_source: Server clock in milliseconds.
    """

    @sio.on("clock:probe")
    async def on_clock_probe(sid: str, data: dict[str, Any]) -> dict[str, Any]:
        return await handle_clock_probe(sio, sid, data, time_source)
