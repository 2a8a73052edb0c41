"""
Remote data service boundary.

The store talks to the backend only through the `DataService` protocol: six
request/response calls, no streaming. `InMemoryDataService` is the implementation
used by the demo, the API and the tests. It keeps per-user records in dictionaries,
can be seeded from a JSON fixture file, and can simulate failures and slow responses.

Design decisions:
- Every call takes an optional cancellation token and checks it before and after
  the (simulated) network round-trip
- Failures are raised as `DataServiceError`; the store decides how to reconcile
- Calls are recorded so tests can assert on what was (or was not) sent
"""

import asyncio
import json
import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

from core.cancellation import CancellationToken
from core.models import (
    PointsDirection,
    Preferences,
    ScanHistoryEntry,
    UserProfile,
)

logger = logging.getLogger("data_service")


class DataServiceError(Exception):
    """A remote call failed."""


class DataService(Protocol):
    """Remote operations the client state depends on."""

    async def fetch_profile(
        self, user_id: str, *, token: Optional[CancellationToken] = None
    ) -> Optional[UserProfile]: ...

    async def apply_points_delta(
        self,
        user_id: str,
        delta: int,
        direction: PointsDirection,
        *,
        token: Optional[CancellationToken] = None,
    ) -> int: ...

    async def fetch_preferences(
        self, user_id: str, *, token: Optional[CancellationToken] = None
    ) -> Optional[dict[str, Any]]: ...

    async def persist_preferences(
        self,
        user_id: str,
        prefs: Preferences,
        *,
        token: Optional[CancellationToken] = None,
    ) -> None: ...

    async def fetch_scan_history(
        self, user_id: str, *, token: Optional[CancellationToken] = None
    ) -> list[ScanHistoryEntry]: ...

    async def append_scan(
        self,
        user_id: str,
        scan: ScanHistoryEntry,
        *,
        token: Optional[CancellationToken] = None,
    ) -> None: ...


@dataclass
class RemoteCall:
    """Record of one call made against the in-memory service."""
    operation: str
    user_id: str
    args: dict[str, Any] = field(default_factory=dict)
    succeeded: bool = True
    timestamp: datetime = field(default_factory=datetime.utcnow)


class InMemoryDataService:
    """
    In-memory stand-in for the backend.

    Example:
        service = InMemoryDataService()
        service.seed_user("user-1", points=100, favorite_teams=["team-a"])
        service.fail_next("apply_points_delta")   # next points call raises
    """

    def __init__(
        self,
        fail_rate: float = 0.0,
        latency: float = 0.0,
        fixtures_path: Optional[Path] = None,
    ):
        """
        Initialize the service.

        Args:
            fail_rate: Probability (0.0 to 1.0) that any call fails.
            latency: Seconds each call sleeps before answering.
            fixtures_path: Optional JSON file with a list of user records to seed.
        """
        self.fail_rate = fail_rate
        self.latency = latency

        self._profiles: dict[str, UserProfile] = {}
        self._preferences: dict[str, dict[str, Any]] = {}
        self._scans: dict[str, list[ScanHistoryEntry]] = defaultdict(list)

        self._forced_failures: dict[str, int] = defaultdict(int)
        self._gate = asyncio.Event()
        self._gate.set()

        self.calls: list[RemoteCall] = []

        if fixtures_path is not None:
            self.load_fixtures(fixtures_path)

    # =========================================================================
    # Seeding
    # =========================================================================

    def seed_user(
        self,
        user_id: str,
        points: int = 0,
        favorite_teams: Optional[list[str]] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
        **preference_overrides: Any,
    ) -> UserProfile:
        """Create or replace a user's remote records."""
        profile = UserProfile(
            user_id=user_id,
            points=points,
            first_name=first_name,
            last_name=last_name,
            username=username,
        )
        self._profiles[user_id] = profile
        self._preferences[user_id] = {
            "favorite_teams": list(favorite_teams or []),
            **preference_overrides,
        }
        self._scans[user_id] = []
        return profile

    def load_fixtures(self, path: Path) -> int:
        """Seed users from a JSON list of records. Returns how many were loaded."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Fixture file not found: {path}")
            return 0
        with open(path, "r") as f:
            records = json.load(f)
        for record in records:
            self.seed_user(**record)
        return len(records)

    def get_points(self, user_id: str) -> int:
        """Authoritative balance (0 for unknown users)."""
        profile = self._profiles.get(user_id)
        return profile.points if profile else 0

    def get_preferences(self, user_id: str) -> dict[str, Any]:
        return dict(self._preferences.get(user_id, {}))

    def get_scans(self, user_id: str) -> list[ScanHistoryEntry]:
        return list(self._scans.get(user_id, []))

    # =========================================================================
    # Failure & Latency Simulation
    # =========================================================================

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `DataServiceError`."""
        self._forced_failures[operation] += times

    def pause(self) -> None:
        """Hold every call at the network boundary until `resume()`."""
        self._gate.clear()

    def resume(self) -> None:
        self._gate.set()

    def calls_to(self, operation: str) -> list[RemoteCall]:
        return [c for c in self.calls if c.operation == operation]

    def clear_history(self) -> None:
        self.calls.clear()

    async def _round_trip(
        self,
        operation: str,
        user_id: str,
        token: Optional[CancellationToken],
        **args: Any,
    ) -> None:
        """Simulate the network hop; raise if the call should fail."""
        call = RemoteCall(operation=operation, user_id=user_id, args=args)
        self.calls.append(call)

        if token is not None:
            token.raise_if_cancelled()
        if self.latency:
            await asyncio.sleep(self.latency)
        await self._gate.wait()
        if token is not None:
            token.raise_if_cancelled()

        if self._forced_failures[operation] > 0:
            self._forced_failures[operation] -= 1
            call.succeeded = False
            logger.error(f"[{operation} FAILED] user={user_id} (forced)")
            raise DataServiceError(f"{operation} failed for {user_id}")
        if random.random() < self.fail_rate:
            call.succeeded = False
            logger.error(f"[{operation} FAILED] user={user_id} (simulated)")
            raise DataServiceError(f"{operation} failed for {user_id}")

        logger.debug(f"[{operation}] user={user_id} {args}")

    # =========================================================================
    # DataService Operations
    # =========================================================================

    async def fetch_profile(
        self, user_id: str, *, token: Optional[CancellationToken] = None
    ) -> Optional[UserProfile]:
        await self._round_trip("fetch_profile", user_id, token)
        profile = self._profiles.get(user_id)
        return profile.model_copy() if profile else None

    async def apply_points_delta(
        self,
        user_id: str,
        delta: int,
        direction: PointsDirection,
        *,
        token: Optional[CancellationToken] = None,
    ) -> int:
        """Apply a delta to the stored balance and return the new balance."""
        await self._round_trip(
            "apply_points_delta", user_id, token, delta=delta, direction=direction.value
        )
        profile = self._profiles.get(user_id) or UserProfile(user_id=user_id)
        signed = delta if direction == PointsDirection.ADD else -delta
        if profile.points + signed < 0:
            raise DataServiceError(
                f"Insufficient points for {user_id}: {profile.points} < {delta}"
            )
        profile = profile.model_copy(update={"points": profile.points + signed})
        self._profiles[user_id] = profile
        return profile.points

    async def fetch_preferences(
        self, user_id: str, *, token: Optional[CancellationToken] = None
    ) -> Optional[dict[str, Any]]:
        await self._round_trip("fetch_preferences", user_id, token)
        prefs = self._preferences.get(user_id)
        if prefs is None:
            return None
        return {**prefs, "favorite_teams": list(prefs.get("favorite_teams", []))}

    async def persist_preferences(
        self,
        user_id: str,
        prefs: Preferences,
        *,
        token: Optional[CancellationToken] = None,
    ) -> None:
        await self._round_trip(
            "persist_preferences", user_id, token, prefs=prefs.model_dump()
        )
        self._preferences[user_id] = prefs.model_dump()

    async def fetch_scan_history(
        self, user_id: str, *, token: Optional[CancellationToken] = None
    ) -> list[ScanHistoryEntry]:
        await self._round_trip("fetch_scan_history", user_id, token)
        return [s.model_copy() for s in self._scans.get(user_id, [])]

    async def append_scan(
        self,
        user_id: str,
        scan: ScanHistoryEntry,
        *,
        token: Optional[CancellationToken] = None,
    ) -> None:
        await self._round_trip("append_scan", user_id, token, scan_id=scan.id)
        scans = self._scans[user_id]
        if all(s.id != scan.id for s in scans):
            scans.append(scan.model_copy())
