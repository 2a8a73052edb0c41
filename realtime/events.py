"""
Realtime event vocabulary.

Server pushes arrive on one channel per domain and carry one of three kinds of
change. Consumers describe what they want to hear about with `Subscription`
descriptors collected in a `SubscriptionRegistry`; the multiplexer opens channels
for the domains the registry mentions and dispatches through it.
"""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import uuid4

logger = logging.getLogger("realtime")


class RealtimeDomain(str, Enum):
    """The closed set of domains the server pushes changes for."""
    SCHEDULE = "schedule"
    STORIES = "stories"
    REWARDS = "rewards"
    SPECIAL_OFFERS = "special_offers"
    PROMOTIONS = "promotions"
    POINTS = "points"

    @property
    def user_scoped(self) -> bool:
        return self is RealtimeDomain.POINTS

    def channel_name(self, user_id: Optional[str] = None) -> str:
        """Transport channel name for this domain."""
        if self is RealtimeDomain.POINTS:
            if not user_id:
                raise ValueError("points channel requires a user id")
            return f"points_changes_{user_id}"
        if self is RealtimeDomain.SCHEDULE:
            return "game_schedule_changes"
        return f"{self.value}_changes"


class EventKind(str, Enum):
    """Change kinds delivered on every channel."""
    CREATED = "INSERT"
    UPDATED = "UPDATE"
    DELETED = "DELETE"


class ChannelStatus(str, Enum):
    """
    Lifecycle of one channel.

    connecting -> subscribed, connecting -> error; only cleanup closes a channel.
    """
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    CLOSED = "closed"


@dataclass
class RealtimeEvent:
    """A server push routed to consumers."""
    domain: RealtimeDomain
    kind: EventKind
    payload: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    received_at: datetime = field(default_factory=datetime.utcnow)

    def __str__(self) -> str:
        return f"RealtimeEvent({self.domain.value}.{self.kind.value}, id={self.event_id[:8]})"


RealtimeHandler = Callable[[RealtimeEvent], Union[None, Awaitable[None]]]

ALL_KINDS = frozenset(EventKind)


@dataclass(frozen=True)
class Subscription:
    """Interest in some kinds of change for one domain."""
    domain: RealtimeDomain
    handler: RealtimeHandler
    kinds: frozenset[EventKind] = ALL_KINDS

    def wants(self, kind: EventKind) -> bool:
        return kind in self.kinds


class SubscriptionRegistry:
    """
    Closed registry of subscriptions, keyed by domain.

    Adding a domain to the app means adding a `RealtimeDomain` member; consumers
    never grow ad hoc callback fields.

    Example:
        registry = SubscriptionRegistry()
        registry.subscribe(RealtimeDomain.SCHEDULE, on_schedule_change)
        registry.subscribe(RealtimeDomain.POINTS, on_points, kinds={EventKind.CREATED})
    """

    def __init__(self):
        self._subscriptions: dict[RealtimeDomain, list[Subscription]] = {}

    def subscribe(
        self,
        domain: RealtimeDomain,
        handler: RealtimeHandler,
        kinds: Optional[set[EventKind]] = None,
    ) -> Subscription:
        subscription = Subscription(
            domain=RealtimeDomain(domain),
            handler=handler,
            kinds=frozenset(kinds) if kinds else ALL_KINDS,
        )
        self._subscriptions.setdefault(subscription.domain, []).append(subscription)
        logger.debug(f"Subscribed handler to '{subscription.domain.value}' events")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        subs = self._subscriptions.get(subscription.domain, [])
        try:
            subs.remove(subscription)
        except ValueError:
            return False
        if not subs:
            del self._subscriptions[subscription.domain]
        return True

    def domains(self) -> list[RealtimeDomain]:
        """Domains with at least one subscription, in declaration order."""
        return [d for d in RealtimeDomain if self._subscriptions.get(d)]

    def handlers_for(self, domain: RealtimeDomain, kind: EventKind) -> list[RealtimeHandler]:
        return [s.handler for s in self._subscriptions.get(domain, []) if s.wants(kind)]

    def dispatch(self, event: RealtimeEvent) -> list[Awaitable[None]]:
        """
        Call every handler interested in `event`.

        Handler exceptions are logged and do not stop other handlers. Coroutines
        returned by async handlers are handed back for the caller to schedule.
        """
        pending = []
        for handler in self.handlers_for(event.domain, event.kind):
            try:
                result = handler(event)
            except Exception as e:
                logger.error(f"Handler raised exception for {event}: {e}")
                continue
            if inspect.isawaitable(result):
                pending.append(result)
        return pending

    def __len__(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())
