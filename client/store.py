"""
Optimistic mutation store for the signed-in user's points, preferences and scans.

Every mutator changes local state first, then calls the data service, then
reconciles. The reconciliation policy differs per field:

- points (add/redeem): exact inverse of the delta, applied to the current balance
- notification switches: set the switch to the negation of the requested value
- favorite teams: re-fetch preferences from the data service

Design decisions:
- Explicitly owned container (no module-level singleton); pass it by reference
- No locks: concurrent mutations compose additively on the local balance and the
  remote calls race; last response wins
- Remote failures are logged and reconciled, never raised to the caller
- A call whose token is cancelled is reconciled like a failed one while the session
  lasts; once the session ends (logout, user switch) late results are ignored
- With device storage attached, a snapshot of the state is saved after every change;
  the user id is only part of it when the session was started with `remember_me`
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from core.cancellation import CancellationToken, OperationCancelled
from core.config import SyncSettings
from core.data_service import DataService
from core.models import (
    NOTIFICATION_PREFERENCE_KEYS,
    PointsDirection,
    Preferences,
    ScanHistoryEntry,
    merge_preferences,
)
from core.storage import KeyValueStorage

logger = logging.getLogger("user_store")


def _capitalize(name: str) -> str:
    return " ".join(part.capitalize() for part in name.lower().split(" "))


class UserState(BaseModel):
    """Snapshot of everything the store holds."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    points: int = Field(default=0, ge=0)
    scan_history: list[ScanHistoryEntry] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    remember_me: bool = False
    is_loading: bool = False
    is_points_loading: bool = False


class PersistedUserState(BaseModel):
    """The part of `UserState` kept on the device between app launches."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    points: int = Field(default=0, ge=0)
    scan_history: list[ScanHistoryEntry] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    remember_me: bool = False

    @classmethod
    def from_state(cls, state: UserState) -> "PersistedUserState":
        data = state.model_dump(include=set(cls.model_fields))
        if not state.remember_me:
            data["user_id"] = None
        return cls(**data)


StateListener = Callable[[UserState], None]


class UserStore:
    """
    Points balance, preferences and scan history for one user session.

    Example:
        store = UserStore(data_service, storage)
        await store.initialize_user("user-1", "fan@example.com", remember_me=True)
        await store.add_points(50, "Stadium QR code")
        ok = await store.redeem_points(30)
    """

    def __init__(
        self,
        data_service: DataService,
        storage: Optional[KeyValueStorage] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self.data_service = data_service
        self.storage = storage
        self.settings = settings or SyncSettings()
        self._state = UserState()
        self._listeners: list[StateListener] = []
        self._scope = CancellationToken()

        self._save_pending = False
        self._save_tasks: set[asyncio.Task] = set()

    # =========================================================================
    # State access
    # =========================================================================

    @property
    def state(self) -> UserState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._state.user_id

    @property
    def points(self) -> int:
        return self._state.points

    @property
    def preferences(self) -> Preferences:
        return self._state.preferences

    @property
    def scan_history(self) -> list[ScanHistoryEntry]:
        return list(self._state.scan_history)

    @property
    def is_logged_in(self) -> bool:
        return self._state.user_id is not None

    @property
    def first_name_display(self) -> str:
        if self._state.first_name:
            return _capitalize(self._state.first_name)
        return "User"

    @property
    def display_name(self) -> str:
        names = [n for n in (self._state.first_name, self._state.last_name) if n]
        if not names:
            return "User"
        return " ".join(_capitalize(n) for n in names)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call `listener` with the new state after every change. Returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"State listener raised: {e}")
        self._schedule_save()

    def _token(self, token: Optional[CancellationToken]) -> CancellationToken:
        if token is None:
            return self._scope.child()
        return token

    def _session_gone(self, user_id: str) -> bool:
        """True once the session that started a call has ended."""
        return self._scope.cancelled or self._state.user_id != user_id

    def _is_stale(self, token: CancellationToken, user_id: str) -> bool:
        """A loaded result is stale if its token was cancelled or the session changed."""
        return token.cancelled or self._session_gone(user_id)

    # =========================================================================
    # Device persistence
    # =========================================================================

    def _schedule_save(self) -> None:
        # Changes made in the same loop iteration share one write
        if self.storage is None or self._save_pending:
            return
        self._save_pending = True
        task = asyncio.get_running_loop().create_task(self._save())
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)

    async def _save(self) -> None:
        self._save_pending = False
        snapshot = PersistedUserState.from_state(self._state)
        try:
            await self.storage.set(self.settings.user_state_key, snapshot.model_dump_json())
        except Exception as e:
            logger.error(f"Error saving user state: {e}")

    async def flush(self) -> None:
        """Wait for pending snapshot writes."""
        if self._save_tasks:
            await asyncio.gather(*list(self._save_tasks))

    async def load_persisted(self) -> Optional[PersistedUserState]:
        """Read the saved snapshot; None if there is none or it is unreadable."""
        if self.storage is None:
            return None
        key = self.settings.user_state_key
        try:
            raw = await self.storage.get(key)
        except Exception as e:
            logger.error(f"Error reading user state: {e}")
            return None
        if not raw:
            return None
        try:
            return PersistedUserState.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Stored user state under '{key}' is malformed, ignoring: {e}")
            return None

    async def remembered_user(self) -> Optional[PersistedUserState]:
        """Snapshot of a remembered session, used to log back in on launch."""
        snapshot = await self.load_persisted()
        if snapshot is None or not snapshot.remember_me or not snapshot.user_id:
            return None
        return snapshot

    def _restore(self, user_id: str, snapshot: Optional[PersistedUserState]) -> None:
        # Only a snapshot that names this user may be shown before the remote pull
        if snapshot is None or snapshot.user_id != user_id:
            return
        self._set(
            first_name=snapshot.first_name,
            last_name=snapshot.last_name,
            username=snapshot.username,
            points=snapshot.points,
            scan_history=list(snapshot.scan_history),
            preferences=snapshot.preferences,
        )
        logger.info(f"Restored cached state for {user_id}: {snapshot.points} points")

    # =========================================================================
    # Session loading
    # =========================================================================

    async def initialize_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        *,
        remember_me: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Bind the store to `user_id` and load everything from the data service."""
        scope = self._scope
        token = self._token(token)
        # Read the cache before binding the user, whose own snapshot write would replace it
        snapshot = await self.load_persisted()
        if scope.cancelled or token.cancelled:
            logger.debug(f"Login for {user_id} cancelled before loading")
            return
        self._set(user_id=user_id, email=email, remember_me=remember_me, is_loading=True)
        self._restore(user_id, snapshot)
        await self._pull(user_id, token, include_history=True)

    async def refresh_user_data(self, *, token: Optional[CancellationToken] = None) -> None:
        """Overwrite balance, preferences and history with the authoritative values."""
        user_id = self._state.user_id
        if user_id is None:
            return
        await self._pull(user_id, self._token(token), include_history=True)

    async def _pull(
        self, user_id: str, token: CancellationToken, include_history: bool
    ) -> None:
        ds = self.data_service
        try:
            profile, preferences, history = await asyncio.gather(
                ds.fetch_profile(user_id, token=token),
                ds.fetch_preferences(user_id, token=token),
                ds.fetch_scan_history(user_id, token=token),
            )
            merged = merge_preferences(preferences)
        except OperationCancelled:
            logger.debug(f"Load for {user_id} cancelled")
            return
        except Exception as e:
            logger.error(f"Failed to load user data for {user_id}: {e}")
            if not self._is_stale(token, user_id):
                self._set(is_loading=False)
            return

        if self._is_stale(token, user_id):
            logger.debug(f"Ignoring late user data for {user_id}")
            return

        changes: dict[str, Any] = {
            "points": profile.points if profile else 0,
            "first_name": profile.first_name if profile else None,
            "last_name": profile.last_name if profile else None,
            "username": profile.username if profile else None,
            "preferences": merged,
            "is_loading": False,
        }
        if include_history:
            changes["scan_history"] = list(history or [])
        self._set(**changes)
        logger.info(f"Loaded user {user_id}: {changes['points']} points")

    async def refresh_preferences(self, *, token: Optional[CancellationToken] = None) -> None:
        """Replace local preferences with the data service's copy."""
        user_id = self._state.user_id
        if user_id is None:
            return
        token = self._token(token)
        try:
            remote = await self.data_service.fetch_preferences(user_id, token=token)
            merged = merge_preferences(remote)
        except OperationCancelled:
            return
        except Exception as e:
            logger.error(f"Failed to refresh preferences for {user_id}: {e}")
            return
        if not self._is_stale(token, user_id):
            self._set(preferences=merged)

    def clear_user_data(self) -> None:
        """Drop everything (logout). Late results for the old session are ignored."""
        self._scope.cancel()
        self._scope = CancellationToken()
        self._set(**dict(UserState()))

    def close(self) -> None:
        """Cancel the store's scope; in-flight calls will not touch state."""
        self._scope.cancel()

    # =========================================================================
    # Points
    # =========================================================================

    async def add_points(
        self,
        delta: int,
        description: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> bool:
        """
        Credit `delta` points optimistically.

        The balance and a provisional history entry are updated before the remote
        call. On failure exactly `delta` is subtracted from whatever the balance is
        by then (never below zero); the history entry is kept.

        Returns:
            True if the data service accepted the delta.
        """
        if delta <= 0:
            raise ValueError(f"delta must be positive, got {delta}")
        user_id = self._state.user_id
        if user_id is None:
            logger.warning("add_points called without a session")
            return False

        token = self._token(token)
        entry = ScanHistoryEntry(points=delta, description=description)
        self._set(
            points=self._state.points + delta,
            scan_history=[*self._state.scan_history, entry],
            is_points_loading=True,
        )

        try:
            await self.data_service.apply_points_delta(
                user_id, delta, PointsDirection.ADD, token=token
            )
        except Exception as e:
            if isinstance(e, OperationCancelled):
                logger.info(f"add_points({delta}) cancelled")
            else:
                logger.error(f"Failed to add points: {e}")
            if not self._session_gone(user_id):
                self._set(
                    points=max(self._state.points - delta, 0),
                    is_points_loading=False,
                )
            return False

        if self._session_gone(user_id):
            return True
        self._set(is_points_loading=False)

        try:
            await self.data_service.append_scan(user_id, entry, token=token)
        except Exception as e:
            logger.error(f"Failed to record scan {entry.id}: {e}")
        return True

    async def redeem_points(
        self, delta: int, *, token: Optional[CancellationToken] = None
    ) -> bool:
        """
        Spend `delta` points.

        Rejected up front (no remote call, no change) when the balance is too low.
        Otherwise subtracted optimistically and added back if the remote call fails.

        Returns:
            True only if the data service accepted the redemption.
        """
        if delta <= 0:
            raise ValueError(f"delta must be positive, got {delta}")
        user_id = self._state.user_id
        if user_id is None:
            return False
        if delta > self._state.points:
            logger.info(f"Redeem {delta} rejected: balance is {self._state.points}")
            return False

        token = self._token(token)
        self._set(points=self._state.points - delta, is_points_loading=True)

        try:
            await self.data_service.apply_points_delta(
                user_id, delta, PointsDirection.SUBTRACT, token=token
            )
        except Exception as e:
            if isinstance(e, OperationCancelled):
                logger.info(f"redeem_points({delta}) cancelled")
            else:
                logger.error(f"Failed to redeem points: {e}")
            if not self._session_gone(user_id):
                self._set(points=self._state.points + delta, is_points_loading=False)
            return False

        if not self._session_gone(user_id):
            self._set(is_points_loading=False)
        return True

    async def add_scan(
        self,
        points: int,
        description: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> Optional[ScanHistoryEntry]:
        """Record a scan; the entry is removed again if the data service rejects it."""
        user_id = self._state.user_id
        if user_id is None:
            return None
        token = self._token(token)
        entry = ScanHistoryEntry(points=points, description=description)
        self._set(scan_history=[*self._state.scan_history, entry])
        try:
            await self.data_service.append_scan(user_id, entry, token=token)
        except Exception as e:
            logger.error(f"Failed to add scan: {e}")
            if not self._session_gone(user_id):
                self._set(
                    scan_history=[s for s in self._state.scan_history if s.id != entry.id]
                )
            return None
        return entry

    # =========================================================================
    # Preferences
    # =========================================================================

    async def toggle_favorite_team(
        self, team_id: str, *, token: Optional[CancellationToken] = None
    ) -> bool:
        """
        Add or remove a favorite team.

        On failure the optimistic set is discarded by re-fetching preferences from
        the data service rather than inverting the toggle.
        """
        user_id = self._state.user_id
        if user_id is None:
            return False
        token = self._token(token)
        new_preferences = self._state.preferences.with_team_toggled(team_id)
        self._set(preferences=new_preferences)

        try:
            await self.data_service.persist_preferences(user_id, new_preferences, token=token)
        except Exception as e:
            logger.error(f"Failed to toggle favorite team {team_id}: {e}")
            if not self._session_gone(user_id):
                await self.refresh_preferences()
            return False
        return True

    async def update_notification_preference(
        self,
        key: str,
        enabled: bool,
        *,
        token: Optional[CancellationToken] = None,
    ) -> bool:
        """
        Set one notification switch.

        On failure the switch is set to `not enabled`, whatever it held before.
        """
        if key not in NOTIFICATION_PREFERENCE_KEYS:
            raise ValueError(f"Unknown notification preference: {key}")
        user_id = self._state.user_id
        if user_id is None:
            logger.error(f"No session when updating {key}")
            return False
        token = self._token(token)
        new_preferences = self._state.preferences.model_copy(update={key: enabled})
        self._set(preferences=new_preferences)

        try:
            await self.data_service.persist_preferences(user_id, new_preferences, token=token)
        except Exception as e:
            logger.error(f"Failed to update {key}: {e}")
            if not self._session_gone(user_id):
                self._set(
                    preferences=self._state.preferences.model_copy(update={key: not enabled})
                )
            return False
        return True

    async def set_notifications_enabled(self, enabled: bool, **kwargs: Any) -> bool:
        return await self.update_notification_preference("notifications_enabled", enabled, **kwargs)

    async def set_push_notifications(self, enabled: bool, **kwargs: Any) -> bool:
        return await self.update_notification_preference("push_notifications", enabled, **kwargs)

    async def set_email_notifications(self, enabled: bool, **kwargs: Any) -> bool:
        return await self.update_notification_preference("email_notifications", enabled, **kwargs)

    async def set_game_notifications(self, enabled: bool, **kwargs: Any) -> bool:
        return await self.update_notification_preference("game_notifications", enabled, **kwargs)

    async def set_news_notifications(self, enabled: bool, **kwargs: Any) -> bool:
        return await self.update_notification_preference("news_notifications", enabled, **kwargs)

    async def set_special_offers(self, enabled: bool, **kwargs: Any) -> bool:
        return await self.update_notification_preference("special_offers", enabled, **kwargs)
