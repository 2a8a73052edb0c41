"""
Shared pytest fixtures for the state-sync core tests.

These fixtures provide in-memory collaborators and a seeded user so every test
starts from a known state.
"""

import pytest
import pytest_asyncio

from client.cart import CartCache
from client.notifications import ToastScheduler
from client.session import ClientState
from client.store import UserStore
from core.config import SyncSettings
from core.data_service import InMemoryDataService
from core.models import CartItem
from core.storage import MemoryStorage
from realtime.multiplexer import RealtimeMultiplexer
from realtime.transport import InMemoryTransport


@pytest.fixture
def settings() -> SyncSettings:
    """Fast timers so debounce and expiry tests run quickly."""
    return SyncSettings(cart_debounce_seconds=0.05, toast_duration_seconds=0.05)


# =============================================================================
# User Fixtures
# =============================================================================

@pytest.fixture
def alice_user_id() -> str:
    """User with 100 points and one favorite team."""
    return "user-alice"


@pytest.fixture
def bob_user_id() -> str:
    """User with 20 points and no favorites."""
    return "user-bob"


@pytest.fixture
def data_service(alice_user_id: str, bob_user_id: str) -> InMemoryDataService:
    """Fresh in-memory backend seeded with Alice and Bob."""
    service = InMemoryDataService()
    service.seed_user(
        alice_user_id,
        points=100,
        favorite_teams=["team-hawks"],
        first_name="alice",
        last_name="johnson",
    )
    service.seed_user(bob_user_id, points=20)
    return service


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def store(data_service: InMemoryDataService) -> UserStore:
    return UserStore(data_service)


@pytest_asyncio.fixture
async def alice_store(store: UserStore, alice_user_id: str) -> UserStore:
    """Store already initialized for Alice (100 points)."""
    await store.initialize_user(alice_user_id, "alice@example.com")
    return store


@pytest.fixture
def cart(storage: MemoryStorage, settings: SyncSettings):
    cart = CartCache(storage, settings)
    yield cart
    cart.close()


@pytest.fixture
def multiplexer(transport: InMemoryTransport) -> RealtimeMultiplexer:
    return RealtimeMultiplexer(transport)


@pytest.fixture
def toasts(settings: SyncSettings) -> ToastScheduler:
    return ToastScheduler(settings)


@pytest.fixture
def client_state(
    data_service: InMemoryDataService,
    storage: MemoryStorage,
    transport: InMemoryTransport,
    settings: SyncSettings,
) -> ClientState:
    return ClientState(data_service, storage, transport, settings)


# =============================================================================
# Cart Item Fixtures
# =============================================================================

@pytest.fixture
def jersey() -> CartItem:
    """Reward costing 500 points."""
    return CartItem(id="reward-jersey", title="Team Jersey", points_required=500)


@pytest.fixture
def foam_finger() -> CartItem:
    """Reward costing 50 points."""
    return CartItem(id="reward-foam", title="Foam Finger", points_required=50)
