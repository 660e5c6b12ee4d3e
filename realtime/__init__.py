"""
Realtime sync package.

Public API:
- Models: BroadcastRecord, Connectivity
- Channel: SyncChannel, ChannelSubscription and the channel errors
- Store: RealtimeStore contract, InMemoryRealtimeStore
"""
from .models import BroadcastRecord, Connectivity
from .store import RealtimeStore, InMemoryRealtimeStore, StoreError, SUBSCRIBED, CHANNEL_ERROR, TIMED_OUT, CLOSED
from .channel import SyncChannel, ChannelSubscription, ChannelError, BroadcastFailed, ChannelDisconnected

__all__ = [
    "BroadcastRecord",
    "Connectivity",
    "RealtimeStore",
    "InMemoryRealtimeStore",
    "StoreError",
    "SUBSCRIBED",
    "CHANNEL_ERROR",
    "TIMED_OUT",
    "CLOSED",
    "SyncChannel",
    "ChannelSubscription",
    "ChannelError",
    "BroadcastFailed",
    "ChannelDisconnected",
]
