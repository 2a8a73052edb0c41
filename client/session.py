"""
Client state container.

`ClientState` owns the store, the cart, the notification center and the realtime
multiplexer for one app process and funnels session changes through one place:
logging in binds all of them to the user, logging out resets all of them together.

It also wires realtime pushes to the rest of the state: points pushes refresh the
store, and every domain produces an inbox entry the way the app's notification
layer words them.
"""

import logging
from typing import Optional

from client.cart import CartCache
from client.notifications import NotificationCenter, NotificationType
from client.store import UserStore
from core.config import SyncSettings
from core.data_service import DataService
from core.models import Session
from core.storage import KeyValueStorage
from realtime.events import EventKind, RealtimeDomain, RealtimeEvent, SubscriptionRegistry
from realtime.multiplexer import RealtimeMultiplexer
from realtime.transport import RealtimeTransport

logger = logging.getLogger("session")


def _record(event: RealtimeEvent) -> dict:
    return event.payload.get("new") or {}


def describe_event(event: RealtimeEvent) -> Optional[tuple[str, str]]:
    """
    Inbox (title, message) for a realtime push, or None if it is not worth one.

    Schedule changes are always announced; the other domains only announce new
    records.
    """
    record = _record(event)
    domain, kind = event.domain, event.kind

    if domain == RealtimeDomain.SCHEDULE:
        if kind == EventKind.CREATED:
            return "New Game Scheduled", "A new game has been added to the schedule"
        if kind == EventKind.UPDATED:
            if record.get("status") == "live":
                return "Game Started!", "A game is now live"
            return "Game Updated", "Game information has been updated"
        return "Game Cancelled", "A scheduled game has been cancelled"

    if kind != EventKind.CREATED:
        return None
    if domain == RealtimeDomain.REWARDS:
        return "New Reward Available!", f"Check out: {record.get('title')}"
    if domain == RealtimeDomain.SPECIAL_OFFERS:
        return "Limited Time Offer!", f"{record.get('title')}"
    if domain == RealtimeDomain.STORIES:
        return "Breaking News!", f"{record.get('title')}"
    if domain == RealtimeDomain.PROMOTIONS:
        return (
            "New Promotion!",
            f"{record.get('title')} - {record.get('discount_value')}% off",
        )
    if domain == RealtimeDomain.POINTS:
        change = record.get("points_change") or 0
        if change > 0:
            return "Points Earned!", f"You earned {change} points: {record.get('description')}"
    return None


class ClientState:
    """
    Everything the client holds for the signed-in user.

    Example:
        state = ClientState(data_service, storage, transport)
        await state.login("user-1", "fan@example.com")
        await state.store.add_points(25, "Halftime quiz")
        state.cart.add_to_cart(item)
        await state.logout()
    """

    def __init__(
        self,
        data_service: DataService,
        storage: KeyValueStorage,
        transport: RealtimeTransport,
        settings: Optional[SyncSettings] = None,
    ):
        self.settings = settings or SyncSettings()
        self.store = UserStore(data_service, storage, self.settings)
        self.cart = CartCache(storage, self.settings)
        self.notifications = NotificationCenter(self.settings)
        self.realtime = RealtimeMultiplexer(transport)
        self._session: Optional[Session] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    async def login(
        self, user_id: str, email: Optional[str] = None, remember_me: bool = False
    ) -> Optional[Session]:
        """
        Start a session: load the user's data and cart, open realtime channels.

        Returns None if the session was ended (logout or another login) before it
        finished starting; nothing is bound to the user in that case.
        """
        if self._session is not None and self._session.user_id != user_id:
            await self.logout()

        session = Session(user_id=user_id, email=email)
        self._session = session
        logger.info(f"Logging in {user_id}")

        await self.store.initialize_user(user_id, email, remember_me=remember_me)
        if self._session is not session:
            logger.info(f"Login for {user_id} superseded while loading user data")
            return None
        await self.cart.load(user_id)
        if self._session is not session:
            logger.info(f"Login for {user_id} superseded while loading the cart")
            return None
        self.realtime.setup(self.build_realtime_registry(), user_id=user_id)
        return session

    async def resume(self) -> Optional[Session]:
        """Log back in as the remembered user, if the last session asked for it."""
        remembered = await self.store.remembered_user()
        if remembered is None:
            return None
        logger.info(f"Resuming remembered session for {remembered.user_id}")
        return await self.login(remembered.user_id, remembered.email, remember_me=True)

    async def logout(self) -> None:
        """End the session and reset every piece of user state together."""
        if self._session is None:
            return
        logger.info(f"Logging out {self._session.user_id}")
        await self.cart.flush()

        self.realtime.cleanup()
        self.store.clear_user_data()
        self.notifications.reset()
        self._session = None
        await self.cart.load(None)
        await self.store.flush()

    async def close(self) -> None:
        """Release channels and timers (process or UI scope going away)."""
        self.realtime.cleanup()
        await self.cart.flush()
        await self.store.flush()
        self.cart.close()
        self.store.close()
        self.notifications.toasts.clear_all_toasts()

    # =========================================================================
    # Realtime wiring
    # =========================================================================

    def build_realtime_registry(self) -> SubscriptionRegistry:
        registry = SubscriptionRegistry()
        for domain in RealtimeDomain:
            registry.subscribe(domain, self._announce)
        registry.subscribe(RealtimeDomain.POINTS, self._on_points_change)
        return registry

    def _announce(self, event: RealtimeEvent) -> None:
        described = describe_event(event)
        if described is None:
            return
        title, message = described
        self.notifications.inbox.add_notification(
            NotificationType.INFO,
            title,
            message,
            data={"domain": event.domain.value, "kind": event.kind.value},
        )

    async def _on_points_change(self, event: RealtimeEvent) -> None:
        await self.store.refresh_user_data()
