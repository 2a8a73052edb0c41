"""
Realtime multiplexer.

Keeps one independent channel per subscribed domain open on the transport, tracks
each channel's health, and routes (kind, payload) pushes to the registry.

Design decisions:
- One channel per domain that has subscribers; the points channel only for a
  known user, and points pushes addressed to anyone else are dropped
- Per-channel status map is the primary health signal; `is_connected` is "total
  readiness" (every opened channel subscribed), not "something works"
- Fail-stable: a channel that errors stays errored until `setup` runs again
- Transport failures never raise; they only show up in the status map
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from realtime.events import (
    ChannelStatus,
    EventKind,
    RealtimeDomain,
    RealtimeEvent,
    SubscriptionRegistry,
)
from realtime.transport import (
    CHANNEL_ERROR,
    SUBSCRIBED,
    TIMED_OUT,
    ChannelHandle,
    RealtimeTransport,
)

logger = logging.getLogger("realtime")

_STATUS_MAP = {
    SUBSCRIBED: ChannelStatus.SUBSCRIBED,
    CHANNEL_ERROR: ChannelStatus.ERROR,
    TIMED_OUT: ChannelStatus.ERROR,
}


def addressed_user(payload: dict[str, Any]) -> Optional[str]:
    """User a points push is addressed to (`payload["new"]["user_id"]`)."""
    record = payload.get("new") or payload.get("old") or {}
    if not isinstance(record, dict):
        return None
    return record.get("user_id")


class RealtimeMultiplexer:
    """
    Owner of the app's realtime channels.

    Example:
        registry = SubscriptionRegistry()
        registry.subscribe(RealtimeDomain.REWARDS, on_reward)
        mux = RealtimeMultiplexer(transport)
        mux.setup(registry, user_id="user-1")
        ...
        mux.cleanup()   # on unmount / logout
    """

    def __init__(self, transport: RealtimeTransport):
        self.transport = transport
        self._registry: Optional[SubscriptionRegistry] = None
        self._user_id: Optional[str] = None
        self._channels: dict[str, ChannelHandle] = {}
        self._status: dict[str, ChannelStatus] = {}
        self._tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def setup(
        self, registry: SubscriptionRegistry, user_id: Optional[str] = None
    ) -> dict[str, ChannelStatus]:
        """
        Open one channel per domain in `registry`.

        Any channels from a previous setup are cleaned up first. Returns the status
        map as it stands once every subscription attempt has been issued.
        """
        if self._channels:
            logger.info("Realtime already set up, starting from scratch")
            self.cleanup()

        self._registry = registry
        self._user_id = user_id

        for domain in registry.domains():
            if domain.user_scoped and not user_id:
                logger.info(f"Skipping '{domain.value}' channel: no user id")
                continue
            self._open(domain)

        logger.info(
            f"Realtime setup: {len(self._channels)} channel(s), connected={self.is_connected}"
        )
        return self.connection_status

    def _open(self, domain: RealtimeDomain) -> None:
        name = domain.channel_name(self._user_id)
        self._status[name] = ChannelStatus.CONNECTING
        try:
            handle = self.transport.channel(name, private=True)
            for kind in EventKind:
                handle.on(kind, self._forwarder(handle, domain, kind))
            self._channels[name] = handle
            handle.subscribe(self._status_callback(handle))
        except Exception as e:
            logger.error(f"Could not open realtime channel '{name}': {e}")
            self._status[name] = ChannelStatus.ERROR

    def cleanup(self) -> None:
        """
        Release every channel and forget all status.

        Safe to call when nothing is open. In-flight async handlers are not
        cancelled.
        """
        if self._channels:
            logger.info(f"Cleaning up {len(self._channels)} realtime channel(s)")
        for name, handle in list(self._channels.items()):
            self._status[name] = ChannelStatus.CLOSED
            try:
                self.transport.remove_channel(handle)
            except Exception as e:
                logger.error(f"Error removing channel '{name}': {e}")
        self._channels.clear()
        self._status.clear()
        self._registry = None
        self._user_id = None

    async def drain(self) -> None:
        """Wait for async handlers that are still running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Health
    # =========================================================================

    @property
    def connection_status(self) -> dict[str, ChannelStatus]:
        """Per-channel status, keyed by channel name."""
        return dict(self._status)

    @property
    def is_connected(self) -> bool:
        """True iff at least one channel is open and every open channel is subscribed."""
        if not self._status:
            return False
        return all(s == ChannelStatus.SUBSCRIBED for s in self._status.values())

    @property
    def any_connected(self) -> bool:
        return any(s == ChannelStatus.SUBSCRIBED for s in self._status.values())

    @property
    def connected_channels(self) -> list[str]:
        return [n for n, s in self._status.items() if s == ChannelStatus.SUBSCRIBED]

    @property
    def failed_channels(self) -> list[str]:
        return [n for n, s in self._status.items() if s == ChannelStatus.ERROR]

    @property
    def channel_names(self) -> list[str]:
        return list(self._channels)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def _is_current(self, handle: ChannelHandle) -> bool:
        """The handle is still the one open under its name (not a released one)."""
        return self._channels.get(handle.name) is handle

    def _status_callback(self, handle: ChannelHandle):
        name = handle.name

        def on_status(raw_status: str) -> None:
            current = self._status.get(name)
            if current is None or not self._is_current(handle):
                logger.debug(f"Status '{raw_status}' for released channel '{name}' ignored")
                return
            new = _STATUS_MAP.get(raw_status)
            if new is None:
                logger.debug(f"Channel '{name}' reported '{raw_status}', ignored")
                return
            if current != ChannelStatus.CONNECTING:
                logger.warning(
                    f"Channel '{name}' is {current.value}, ignoring '{raw_status}'"
                )
                return
            self._status[name] = new
            if new == ChannelStatus.SUBSCRIBED:
                logger.info(f"Realtime channel '{name}' connected")
            else:
                logger.error(f"Realtime channel '{name}' failed: {raw_status}")

        return on_status

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _forwarder(self, handle: ChannelHandle, domain: RealtimeDomain, kind: EventKind):
        name = handle.name

        def forward(payload: dict[str, Any]) -> None:
            if not self._is_current(handle) or self._registry is None:
                return
            if domain.user_scoped and addressed_user(payload) != self._user_id:
                logger.warning(f"Dropped {kind.value} on '{name}' addressed to another user")
                return
            event = RealtimeEvent(domain=domain, kind=kind, payload=payload)
            logger.info(f"Received: {event}")
            for pending in self._registry.dispatch(event):
                self._schedule(pending, event)

        return forward

    def _schedule(self, pending: Awaitable[None], event: RealtimeEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"No running event loop for async handler of {event}")
            if hasattr(pending, "close"):
                pending.close()
            return
        task = asyncio.ensure_future(pending, loop=loop)
        self._tasks.add(task)

        def done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Async handler raised exception for {event}: {t.exception()}")

        task.add_done_callback(done)
