"""
Runtime settings for the state-sync core.

Defaults match the behavior the mobile client ships with. Every field can be
overridden from the environment with a `REWARDS_SYNC_` prefix, e.g.
`REWARDS_SYNC_CART_DEBOUNCE_SECONDS=0.1`.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "REWARDS_SYNC_"


class SyncSettings(BaseModel):
    """Tunables for the cart cache, toast scheduler and storage."""
    cart_key_prefix: str = Field(
        default="@rewards_cart_",
        description="Storage key prefix; the user id is appended",
    )
    cart_debounce_seconds: float = Field(
        default=0.5, ge=0, description="Quiet period before a cart write"
    )
    toast_duration_seconds: float = Field(
        default=4.0, gt=0, description="Lifetime of a non-persistent toast"
    )
    max_toasts: int = Field(default=5, ge=1, description="Visible toast cap")
    storage_path: Optional[Path] = Field(
        default=None,
        description="JSON file backing device storage; in-memory when unset",
    )
    user_state_key: str = Field(
        default="user-storage",
        description="Storage key for the saved user state snapshot",
    )
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "SyncSettings":
        """Build settings from `REWARDS_SYNC_*` variables, ignoring unknown ones."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        return cls(**values)
