"""Client side of the sync service.

- player.py: MediaPlayer capability the engine drives
- socketio_client.py: SyncSocketIOClient transport
- session.py: ClientSyncSession, the per-room client engine
"""
