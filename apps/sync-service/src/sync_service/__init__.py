"""Clock synchronization and host-authoritative playback for listening rooms.

Server side: RoomStore / RoomSyncContext / PlaybackAuthority behind a
Socket.IO server (``python -m sync_service``).
Client side: ClockSynchronizer, DriftReconciler and HostReporter driven by
ClientSyncSession over SyncSocketIOClient.
"""

__version__ = "0.1.0"
