"""
User-scoped persistent cart cache.

The cart lives in memory as an ordered list of `CartItem`s and is written to device
storage under `<prefix><user_id>`. Writes are debounced (trailing edge) except for
`clear_cart`, which removes the stored cart before returning.

Design decisions:
- No session, no key: the cart is forced empty, mutators are ignored and
  nothing is written
- Switching users is a full reload, never a merge; a pending write for the
  previous user is flushed to that user's key first
- Loading the same user twice is a no-op until `refresh_cart()`
- Nothing is written back while restoring from storage
- Corrupt stored JSON resets the cart to empty instead of failing
- `version` increases on every change so consumers can detect updates without
  comparing lists
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import TypeAdapter, ValidationError

from core.cancellation import CancellationToken
from core.config import SyncSettings
from core.models import CartItem
from core.storage import KeyValueStorage

logger = logging.getLogger("cart")

_cart_adapter = TypeAdapter(list[CartItem])

CartListener = Callable[["CartCache"], None]


class WritePolicy(str, Enum):
    """How a cart change reaches storage."""
    DEBOUNCED = "debounced"
    IMMEDIATE = "immediate"


class CartCache:
    """
    Reward cart for the signed-in user.

    Example:
        cart = CartCache(storage)
        await cart.load("user-1")
        cart.add_to_cart(CartItem(id="r1", title="Jersey", points_required=500))
        cart.total_points        # 500
        await cart.clear_cart()  # written immediately
        cart.close()             # on unmount
    """

    def __init__(self, storage: KeyValueStorage, settings: Optional[SyncSettings] = None):
        self.storage = storage
        self.settings = settings or SyncSettings()

        self._items: list[CartItem] = []
        self._user_id: Optional[str] = None
        self._initialized_for: Optional[str] = None
        self._is_loading = False
        self._version = 0

        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._pending_key: Optional[str] = None
        self._write_tasks: set[asyncio.Task] = set()
        self._scope = CancellationToken()
        self._listeners: list[CartListener] = []

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def storage_key(self) -> Optional[str]:
        if not self._user_id:
            return None
        return f"{self.settings.cart_key_prefix}{self._user_id}"

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def total_points(self) -> int:
        return sum(item.line_points for item in self._items)

    @property
    def has_pending_write(self) -> bool:
        return self._save_handle is not None

    def is_in_cart(self, item_id: str) -> bool:
        return any(item.id == item_id for item in self._items)

    def get_item_quantity(self, item_id: str) -> int:
        for item in self._items:
            if item.id == item_id:
                return item.quantity
        return 0

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Call `listener` after every change. Returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace(self, items: list[CartItem], persist: bool = True) -> None:
        self._items = items
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Cart listener raised: {e}")
        if persist:
            self.persist(WritePolicy.DEBOUNCED)

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self, user_id: Optional[str]) -> None:
        """
        Point the cart at `user_id` and restore it from storage.

        A no-op if the cart is already initialized for this user. With no user the
        cart is emptied and nothing is read or written.
        """
        if self._scope.cancelled:
            return
        if user_id and user_id == self._initialized_for:
            return

        if self._user_id != user_id:
            await self.flush()

        self._user_id = user_id
        self._initialized_for = None

        if not user_id:
            self._replace([], persist=False)
            self._is_loading = False
            return

        key = self.storage_key
        self._is_loading = True
        token = self._scope
        try:
            raw = await self.storage.get(key)
        except Exception as e:
            logger.error(f"Error loading cart from storage: {e}")
            raw = None

        if token.cancelled or self._user_id != user_id:
            logger.debug(f"Ignoring late cart load for {user_id}")
            return

        self._replace(self._parse(raw, key), persist=False)
        self._initialized_for = user_id
        self._is_loading = False
        logger.info(f"Cart loaded for {user_id}: {self.total_items} item(s)")

    @staticmethod
    def _parse(raw: Optional[str], key: str) -> list[CartItem]:
        if not raw:
            return []
        try:
            return _cart_adapter.validate_python(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Stored cart under '{key}' is malformed, resetting: {e}")
            return []

    async def refresh_cart(self) -> None:
        """Force a reload from storage for the current user."""
        logger.info("Refreshing cart")
        user_id = self._user_id
        await self.flush()
        self._initialized_for = None
        await self.load(user_id)

    # =========================================================================
    # Mutators
    # =========================================================================

    def _has_user(self, action: str) -> bool:
        if self._user_id is None:
            logger.warning(f"Ignoring {action}: no user, the cart stays empty")
            return False
        return True

    def add_to_cart(self, item: Union[CartItem, dict[str, Any]]) -> None:
        """Add one unit of `item`; increments quantity if it is already in the cart."""
        if not self._has_user("add_to_cart"):
            return
        item = item if isinstance(item, CartItem) else CartItem(**item)
        if self.is_in_cart(item.id):
            items = [
                i.model_copy(update={"quantity": i.quantity + 1}) if i.id == item.id else i
                for i in self._items
            ]
        else:
            items = [*self._items, item.model_copy(update={"quantity": 1})]
        logger.info(f"Added to cart: {item.title or item.id}")
        self._replace(items)

    def remove_from_cart(self, item_id: str) -> None:
        if not self._has_user("remove_from_cart"):
            return
        logger.info(f"Removing from cart: {item_id}")
        self._replace([i for i in self._items if i.id != item_id])

    def remove_one_from_cart(self, item_id: str) -> None:
        """Decrement quantity; the entry goes away instead of reaching zero."""
        if not self._has_user("remove_one_from_cart"):
            return
        items = []
        for i in self._items:
            if i.id == item_id:
                if i.quantity <= 1:
                    continue
                i = i.model_copy(update={"quantity": i.quantity - 1})
            items.append(i)
        self._replace(items)

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set an item's quantity; zero or less removes it."""
        if not self._has_user("update_quantity"):
            return
        if quantity <= 0:
            self.remove_from_cart(item_id)
            return
        self._replace([
            i.model_copy(update={"quantity": quantity}) if i.id == item_id else i
            for i in self._items
        ])

    async def clear_cart(self) -> None:
        """Empty the cart and remove it from storage before returning."""
        logger.info("Clearing cart")
        self._replace([], persist=False)
        write = self.persist(WritePolicy.IMMEDIATE)
        if write is not None:
            await write

    # =========================================================================
    # Persistence
    # =========================================================================

    def persist(self, policy: WritePolicy = WritePolicy.DEBOUNCED) -> Optional[asyncio.Task]:
        """
        Write the cart to storage.

        DEBOUNCED (re)arms a timer and returns None. IMMEDIATE cancels any pending
        timer and returns the write as a task the caller can await. Nothing is
        written while loading, without a user, or after `close()`.
        """
        key = self.storage_key
        if key is None or self._is_loading or self._scope.cancelled:
            return None

        self._cancel_timer()
        loop = asyncio.get_running_loop()
        if policy == WritePolicy.IMMEDIATE:
            return self._start_write(loop, key)

        self._pending_key = key
        self._save_handle = loop.call_later(
            self.settings.cart_debounce_seconds, self._debounce_fired, key
        )
        return None

    def _debounce_fired(self, key: str) -> None:
        self._save_handle = None
        self._pending_key = None
        if self._scope.cancelled:
            return
        self._start_write(asyncio.get_running_loop(), key)

    def _start_write(self, loop: asyncio.AbstractEventLoop, key: str) -> asyncio.Task:
        task = loop.create_task(self._write(key, list(self._items)))
        self._write_tasks.add(task)
        task.add_done_callback(self._write_tasks.discard)
        return task

    async def _write(self, key: str, items: list[CartItem]) -> None:
        try:
            if items:
                await self.storage.set(key, _cart_adapter.dump_json(items).decode())
                logger.debug(f"Saved cart under '{key}': {len(items)} item(s)")
            else:
                await self.storage.remove(key)
                logger.debug(f"Removed cart under '{key}'")
        except Exception as e:
            logger.error(f"Error saving cart to storage: {e}")

    async def flush(self) -> None:
        """Write a pending debounced save now and wait for in-flight writes."""
        if self._save_handle is not None and self._pending_key is not None:
            key = self._pending_key
            self._cancel_timer()
            self._start_write(asyncio.get_running_loop(), key)
        if self._write_tasks:
            await asyncio.gather(*list(self._write_tasks))

    def _cancel_timer(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
        self._save_handle = None
        self._pending_key = None

    def close(self) -> None:
        """Unmount: drop the pending write and ignore any late load result."""
        self._cancel_timer()
        self._scope.cancel()
