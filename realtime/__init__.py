"""
Realtime event multiplexing.

- events: domains, event kinds, channel status and the subscription registry
- transport: the transport boundary and an in-process implementation
- multiplexer: channel lifecycle, health tracking and dispatch
"""

from realtime.events import (
    ChannelStatus,
    EventKind,
    RealtimeDomain,
    RealtimeEvent,
    Subscription,
    SubscriptionRegistry,
)
from realtime.multiplexer import RealtimeMultiplexer
from realtime.transport import InMemoryTransport, RealtimeTransport

__all__ = [
    "ChannelStatus",
    "EventKind",
    "RealtimeDomain",
    "RealtimeEvent",
    "Subscription",
    "SubscriptionRegistry",
    "RealtimeMultiplexer",
    "InMemoryTransport",
    "RealtimeTransport",
]
