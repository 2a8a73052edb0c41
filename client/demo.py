"""
Demonstration scripts for the state-sync core.

Each scenario builds a fresh `ClientState` over in-memory collaborators and
prints what happened. Run them through `cli.py demo <scenario>`.
"""

import asyncio

from client.session import ClientState
from core.config import SyncSettings
from core.data_service import InMemoryDataService
from core.log import configure_logging
from core.models import CartItem
from core.storage import MemoryStorage
from realtime.events import EventKind
from realtime.transport import InMemoryTransport

DEMO_USER = "user-001"


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"DEMO: {title}")
    print("=" * 70 + "\n")


def _build(points: int = 100, **transport_kwargs) -> tuple[ClientState, InMemoryDataService, InMemoryTransport]:
    data_service = InMemoryDataService()
    data_service.seed_user(DEMO_USER, points=points, first_name="alex", favorite_teams=["team-hawks"])
    transport = InMemoryTransport(**transport_kwargs)
    state = ClientState(
        data_service,
        MemoryStorage(),
        transport,
        SyncSettings(cart_debounce_seconds=0.05, toast_duration_seconds=0.2),
    )
    return state, data_service, transport


async def points_rollback_demo() -> None:
    """
    Optimistic points with rollback.

    balance 100 -> redeem 150 (rejected) -> add 50 (150 at once) -> remote
    failure -> back to 100.
    """
    _banner("Optimistic points with rollback")
    state, data_service, _ = _build(points=100)
    await state.login(DEMO_USER, "alex@example.com")
    store = state.store

    print(f"Balance: {store.points}")
    ok = await store.redeem_points(150)
    print(f"redeem_points(150) -> {ok}, balance {store.points}")

    data_service.fail_next("apply_points_delta")
    data_service.pause()
    pending = asyncio.create_task(store.add_points(50, "bonus"))
    await asyncio.sleep(0)
    print(f"add_points(50) in flight, balance reads {store.points}")
    data_service.resume()
    ok = await pending
    print(f"add_points(50) -> {ok}, balance {store.points}")
    print(f"History kept: {[e.description for e in store.scan_history]}")
    await state.close()


async def cart_demo() -> None:
    """Debounced, user-scoped cart persistence."""
    _banner("User-scoped cart cache")
    state, _, _ = _build()
    await state.login(DEMO_USER)
    cart = state.cart

    jersey = CartItem(id="reward-1", title="Team Jersey", points_required=500)
    cart.add_to_cart(jersey)
    cart.add_to_cart(jersey)
    cart.add_to_cart(CartItem(id="reward-2", title="Foam Finger", points_required=50))
    print(f"Cart: {cart.total_items} item(s), {cart.total_points} points, version {cart.version}")
    print(f"Pending debounced write: {cart.has_pending_write}")
    await cart.flush()
    print(f"Stored under {cart.storage_key}: {await cart.storage.get(cart.storage_key)}")

    await state.logout()
    print(f"After logout: {cart.total_items} item(s), key={cart.storage_key}")
    await state.login(DEMO_USER)
    print(f"After login again: {[(i.id, i.quantity) for i in cart.items]}")
    await state.close()


async def realtime_demo() -> None:
    """Channel health and event routing, with one failing channel."""
    _banner("Realtime multiplexer")
    state, _, transport = _build(failing={"stories_changes"})
    await state.login(DEMO_USER)
    mux = state.realtime

    for name, status in mux.connection_status.items():
        print(f"  {name:<32} {status.value}")
    print(f"is_connected (total readiness): {mux.is_connected}")
    print(f"connected channels: {len(mux.connected_channels)}/{len(mux.connection_status)}")

    transport.broadcast("game_schedule_changes", EventKind.UPDATED, {"new": {"id": "g1", "status": "live"}})
    transport.broadcast(
        f"points_changes_{DEMO_USER}",
        EventKind.CREATED,
        {"new": {"user_id": "someone-else", "points_change": 999}},
    )
    await mux.drain()
    for n in state.notifications.inbox.notifications:
        print(f"  inbox: {n.title} - {n.message}")

    mux.cleanup()
    print(f"After cleanup: status={mux.connection_status}, is_connected={mux.is_connected}")
    await state.close()


async def toast_demo() -> None:
    """Toast cap and self-expiry."""
    _banner("Toast scheduler")
    state, _, _ = _build()
    toasts = state.notifications.toasts
    for i in range(6):
        toasts.show_info(f"Toast {i + 1}")
    toasts.show_toast(title="Pinned", persistent=True)
    print(f"Visible: {[t.title for t in toasts.toasts]}")
    await asyncio.sleep(0.3)
    print(f"After expiry: {[t.title for t in toasts.toasts]}")


SCENARIOS = {
    "points": points_rollback_demo,
    "cart": cart_demo,
    "realtime": realtime_demo,
    "toasts": toast_demo,
}


async def run_all() -> None:
    for scenario in SCENARIOS.values():
        await scenario()


def run_demo(scenario: str, log_level: str = "WARNING") -> None:
    configure_logging(log_level)
    if scenario == "all":
        asyncio.run(run_all())
    else:
        asyncio.run(SCENARIOS[scenario]())
