"""
Realtime transport boundary.

The multiplexer asks the transport for named channels, registers a handler per
event kind on each, and subscribes with a status callback. The transport reports
status strings (`SUBSCRIBED`, `CHANNEL_ERROR`, `TIMED_OUT`, `CLOSED`) and holds a
live resource per channel until `remove_channel` is called.

`InMemoryTransport` is an in-process pub/sub used by the demo, the API and the
tests: the "server" side calls `broadcast()` and every handler registered for that
channel and kind receives the payload.

Design decisions:
- Synchronous delivery (handlers run inside `broadcast`)
- Channels can be told to fail, or to hold their status until released, so the
  connecting state and partial outages can be exercised
- Removed channels stop receiving broadcasts
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Optional, Protocol

from realtime.events import EventKind

logger = logging.getLogger("transport")

SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
TIMED_OUT = "TIMED_OUT"
CLOSED = "CLOSED"

PayloadHandler = Callable[[dict[str, Any]], None]
StatusCallback = Callable[[str], None]


class ChannelHandle(Protocol):
    name: str

    def on(self, kind: EventKind, handler: PayloadHandler) -> "ChannelHandle": ...

    def subscribe(self, status_callback: Optional[StatusCallback] = None) -> "ChannelHandle": ...


class RealtimeTransport(Protocol):
    def channel(self, name: str, private: bool = True) -> ChannelHandle: ...

    def remove_channel(self, handle: ChannelHandle) -> None: ...


class InMemoryChannel:
    """One channel opened on an `InMemoryTransport`."""

    def __init__(self, transport: "InMemoryTransport", name: str, private: bool):
        self.transport = transport
        self.name = name
        self.private = private
        self.handlers: dict[EventKind, list[PayloadHandler]] = defaultdict(list)
        self.status_callback: Optional[StatusCallback] = None
        self.subscribed = False
        self.removed = False

    def on(self, kind: EventKind, handler: PayloadHandler) -> "InMemoryChannel":
        self.handlers[EventKind(kind)].append(handler)
        return self

    def subscribe(self, status_callback: Optional[StatusCallback] = None) -> "InMemoryChannel":
        self.status_callback = status_callback
        self.transport._on_subscribe(self)
        return self

    def report(self, status: str) -> None:
        """Deliver a status string to the subscriber."""
        if status == SUBSCRIBED:
            self.subscribed = True
        if self.status_callback is not None:
            self.status_callback(status)

    def __repr__(self) -> str:
        return f"InMemoryChannel({self.name!r}, subscribed={self.subscribed})"


class InMemoryTransport:
    """
    In-process realtime transport.

    Example:
        transport = InMemoryTransport(failing={"stories_changes"})
        ... multiplexer.setup(registry) ...
        transport.broadcast("rewards_changes", EventKind.CREATED, {"new": {...}})
    """

    def __init__(self, failing: Optional[set[str]] = None, hold_status: bool = False):
        """
        Initialize the transport.

        Args:
            failing: Channel names whose subscription reports CHANNEL_ERROR.
            hold_status: Queue status reports until `release_statuses()` is called.
        """
        self.failing: set[str] = set(failing or ())
        self.hold_status = hold_status
        self._channels: dict[str, list[InMemoryChannel]] = defaultdict(list)
        self._held: list[tuple[InMemoryChannel, str]] = []
        self.removed: list[str] = []

    def channel(self, name: str, private: bool = True) -> InMemoryChannel:
        handle = InMemoryChannel(self, name, private)
        self._channels[name].append(handle)
        logger.debug(f"Opened channel '{name}' (private={private})")
        return handle

    def remove_channel(self, handle: InMemoryChannel) -> None:
        handles = self._channels.get(handle.name, [])
        if handle in handles:
            handles.remove(handle)
            if not handles:
                del self._channels[handle.name]
        handle.removed = True
        self.removed.append(handle.name)
        logger.debug(f"Removed channel '{handle.name}'")

    def _on_subscribe(self, handle: InMemoryChannel) -> None:
        status = CHANNEL_ERROR if handle.name in self.failing else SUBSCRIBED
        if self.hold_status:
            self._held.append((handle, status))
        else:
            handle.report(status)

    def release_statuses(self) -> int:
        """Deliver queued status reports. Returns how many were delivered."""
        held, self._held = self._held, []
        for handle, status in held:
            if not handle.removed:
                handle.report(status)
        return len(held)

    def push_status(self, name: str, status: str) -> None:
        """Report an arbitrary status on every open channel called `name`."""
        for handle in list(self._channels.get(name, [])):
            handle.report(status)

    def broadcast(self, name: str, kind: EventKind, payload: dict[str, Any]) -> int:
        """
        Push an event to every handler on channel `name` for `kind`.

        Returns the number of handlers called. Handler exceptions are logged and do
        not stop delivery to other handlers.
        """
        kind = EventKind(kind)
        called = 0
        for handle in list(self._channels.get(name, [])):
            if not handle.subscribed:
                continue
            for handler in list(handle.handlers.get(kind, [])):
                called += 1
                try:
                    handler(payload)
                except Exception as e:
                    logger.error(f"Handler raised exception on '{name}' {kind.value}: {e}")
        if called == 0:
            logger.warning(f"No handlers for '{name}' {kind.value}")
        return called

    def open_channel_names(self) -> list[str]:
        return sorted(self._channels)

    def get_channel_count(self) -> int:
        return sum(len(handles) for handles in self._channels.values())
