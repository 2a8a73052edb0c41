"""
Domain models for the rewards client state-sync core.

These are the shapes of the data the client holds locally and exchanges with the
remote data service: the session, the user's profile and points balance, preferences,
scan history and the reward items placed in the cart.

Design decisions:
- Using Pydantic for validation and serialization
- The cart item is the persisted shape (it round-trips through device storage as JSON)
- Preferences keep favorite teams as an ordered, duplicate-free list
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================

class PointsDirection(str, Enum):
    """Direction of a points delta sent to the data service."""
    ADD = "add"
    SUBTRACT = "subtract"


# =============================================================================
# Session & Profile
# =============================================================================

class Session(BaseModel):
    """
    The authenticated user.

    Exists only while logged in. Everything user-scoped (store, cart, inbox,
    the points channel) hangs off this.
    """
    user_id: str = Field(..., min_length=1, description="Authenticated user id")
    email: Optional[str] = Field(default=None, description="Login email")

    model_config = ConfigDict(frozen=True)


class UserProfile(BaseModel):
    """Profile row as returned by the data service."""
    user_id: str = Field(..., description="Owner of this profile")
    first_name: Optional[str] = Field(default=None)
    last_name: Optional[str] = Field(default=None)
    username: Optional[str] = Field(default=None)
    points: int = Field(default=0, ge=0, description="Authoritative points balance")


# =============================================================================
# Preferences
# =============================================================================

class Preferences(BaseModel):
    """
    User preferences.

    `favorite_teams` behaves as a set but keeps insertion order so the UI can
    render favorites in the order they were picked.
    """
    favorite_teams: list[str] = Field(default_factory=list)
    notifications_enabled: bool = Field(default=True, description="Master switch")
    push_notifications: bool = Field(default=True)
    email_notifications: bool = Field(default=True)
    game_notifications: bool = Field(default=True)
    news_notifications: bool = Field(default=True)
    special_offers: bool = Field(default=False)

    @field_validator("favorite_teams")
    @classmethod
    def _dedupe_teams(cls, teams: list[str]) -> list[str]:
        return list(dict.fromkeys(teams))

    def with_team_toggled(self, team_id: str) -> "Preferences":
        """Return a copy with `team_id` added if absent, removed if present."""
        if team_id in self.favorite_teams:
            teams = [t for t in self.favorite_teams if t != team_id]
        else:
            teams = [*self.favorite_teams, team_id]
        return self.model_copy(update={"favorite_teams": teams})


# Boolean switches that `update_notification_preference` may flip
NOTIFICATION_PREFERENCE_KEYS = frozenset({
    "notifications_enabled",
    "push_notifications",
    "email_notifications",
    "game_notifications",
    "news_notifications",
    "special_offers",
})


def merge_preferences(remote: Optional[dict]) -> Preferences:
    """Lay remote preference values over the defaults."""
    return Preferences(**{**Preferences().model_dump(), **(remote or {})})


# =============================================================================
# Scan History
# =============================================================================

class ScanHistoryEntry(BaseModel):
    """One points-earning scan. Append-only."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    points: int = Field(..., description="Points credited by this scan")
    description: str = Field(default="")
    scanned_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# Cart
# =============================================================================

class CartItem(BaseModel):
    """
    A reward item in the cart.

    Only `id`, `points_required` and `quantity` drive cart behavior; the rest is
    carried along for display.
    """
    id: str = Field(..., description="Reward id, unique within a cart")
    title: str = Field(default="")
    description: str = Field(default="")
    points_required: int = Field(..., ge=0, description="Cost of one unit")
    category: Optional[str] = Field(default=None)
    image_url: Optional[str] = Field(default=None)
    quantity: int = Field(default=1, ge=1, description="Units in cart")

    @property
    def line_points(self) -> int:
        return self.points_required * self.quantity
