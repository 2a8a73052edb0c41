"""
FastAPI demo surface for the state-sync core.

Exposes one in-process `ClientState` (in-memory data service, realtime transport
and device storage) over HTTP so the behavior can be poked at interactively:
log in, mutate points/preferences/cart, push realtime events as the "server",
and watch toasts and the inbox.

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from client.notifications import NotificationType
from client.session import ClientState
from core.config import SyncSettings
from core.data_service import InMemoryDataService
from core.log import configure_logging
from core.models import CartItem, Preferences, ScanHistoryEntry
from core.storage import create_storage
from realtime.events import ChannelStatus, EventKind, RealtimeDomain
from realtime.transport import InMemoryTransport

logger = logging.getLogger("api")


# Request / response models
class LoginRequest(BaseModel):
    user_id: str
    email: Optional[str] = None
    points: int = Field(default=100, ge=0, description="Seed balance for unknown users")
    remember_me: bool = False


class PointsRequest(BaseModel):
    delta: int = Field(..., gt=0)
    description: str = ""


class ToggleRequest(BaseModel):
    enabled: bool


class QuantityRequest(BaseModel):
    quantity: int


class BroadcastRequest(BaseModel):
    domain: RealtimeDomain
    kind: EventKind
    payload: dict[str, Any] = Field(default_factory=dict)


class ToastRequest(BaseModel):
    type: NotificationType = NotificationType.DEFAULT
    title: str
    message: Optional[str] = None
    duration: Optional[float] = None
    persistent: bool = False


class StateResponse(BaseModel):
    user_id: Optional[str]
    points: int
    preferences: Preferences
    scan_history: list[ScanHistoryEntry]


class CartResponse(BaseModel):
    items: list[CartItem]
    total_items: int
    total_points: int
    version: int
    is_loading: bool


class RealtimeResponse(BaseModel):
    is_connected: bool
    connection_status: dict[str, ChannelStatus]


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the client state on startup, release it on shutdown."""
    settings = SyncSettings.from_env()
    configure_logging(settings.log_level)
    logger.info("Starting rewards state-sync demo API")

    app.state.data_service = InMemoryDataService()
    app.state.transport = InMemoryTransport()
    app.state.client = ClientState(
        app.state.data_service,
        create_storage(settings.storage_path),
        app.state.transport,
        settings,
    )
    yield
    await app.state.client.close()
    logger.info("Shutting down")


app = FastAPI(
    title="Rewards State-Sync Demo",
    description="""
    Optimistic store, realtime multiplexer, persistent cart and toasts behind HTTP.

    ## Endpoints

    - `/session/*` - Log in and out
    - `/points/*`, `/preferences/*` - Optimistic mutations
    - `/cart/*` - User-scoped cart cache
    - `/realtime/*` - Channel health and simulated server pushes
    - `/notifications/*` - Toasts and inbox
    """,
    version="1.0.0",
    lifespan=lifespan,
)


def _client(request: Request) -> ClientState:
    return request.app.state.client


def _require_session(client: ClientState) -> None:
    if client.session is None:
        raise HTTPException(status_code=401, detail="Not logged in")


def _state_response(client: ClientState) -> StateResponse:
    state = client.store.state
    return StateResponse(
        user_id=state.user_id,
        points=state.points,
        preferences=state.preferences,
        scan_history=state.scan_history,
    )


def _cart_response(client: ClientState) -> CartResponse:
    cart = client.cart
    return CartResponse(
        items=cart.items,
        total_items=cart.total_items,
        total_points=cart.total_points,
        version=cart.version,
        is_loading=cart.is_loading,
    )


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "rewards-state-sync"}


# =============================================================================
# Session
# =============================================================================

@app.post("/session/login", response_model=StateResponse, tags=["Session"])
async def login(body: LoginRequest, request: Request):
    """Log in, seeding the in-memory backend for users it has not seen."""
    data_service: InMemoryDataService = request.app.state.data_service
    if await data_service.fetch_profile(body.user_id) is None:
        data_service.seed_user(body.user_id, points=body.points)
    client = _client(request)
    await client.login(body.user_id, body.email, remember_me=body.remember_me)
    return _state_response(client)


@app.post("/session/resume", response_model=StateResponse, tags=["Session"])
async def resume(request: Request):
    """Log back in as the remembered user; 404 if no session was remembered."""
    client = _client(request)
    if await client.resume() is None:
        raise HTTPException(status_code=404, detail="No remembered session")
    return _state_response(client)


@app.post("/session/logout", tags=["Session"])
async def logout(request: Request):
    await _client(request).logout()
    return {"logged_in": False}


@app.get("/state", response_model=StateResponse, tags=["Session"])
async def get_state(request: Request):
    return _state_response(_client(request))


# =============================================================================
# Points & Preferences
# =============================================================================

@app.post("/points/add", tags=["Points"])
async def add_points(body: PointsRequest, request: Request):
    client = _client(request)
    _require_session(client)
    ok = await client.store.add_points(body.delta, body.description)
    return {"ok": ok, "points": client.store.points}


@app.post("/points/redeem", tags=["Points"])
async def redeem_points(body: PointsRequest, request: Request):
    client = _client(request)
    _require_session(client)
    ok = await client.store.redeem_points(body.delta)
    return {"ok": ok, "points": client.store.points}


@app.post("/preferences/teams/{team_id}/toggle", response_model=Preferences, tags=["Preferences"])
async def toggle_team(team_id: str, request: Request):
    client = _client(request)
    _require_session(client)
    await client.store.toggle_favorite_team(team_id)
    return client.store.preferences


@app.put("/preferences/notifications/{key}", response_model=Preferences, tags=["Preferences"])
async def set_notification_preference(key: str, body: ToggleRequest, request: Request):
    client = _client(request)
    _require_session(client)
    try:
        await client.store.update_notification_preference(key, body.enabled)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return client.store.preferences


# =============================================================================
# Cart
# =============================================================================

@app.get("/cart", response_model=CartResponse, tags=["Cart"])
async def get_cart(request: Request):
    return _cart_response(_client(request))


@app.post("/cart/items", response_model=CartResponse, tags=["Cart"])
async def add_to_cart(item: CartItem, request: Request):
    client = _client(request)
    _require_session(client)
    client.cart.add_to_cart(item)
    return _cart_response(client)


@app.post("/cart/items/{item_id}/remove-one", response_model=CartResponse, tags=["Cart"])
async def remove_one(item_id: str, request: Request):
    client = _client(request)
    client.cart.remove_one_from_cart(item_id)
    return _cart_response(client)


@app.put("/cart/items/{item_id}", response_model=CartResponse, tags=["Cart"])
async def update_quantity(item_id: str, body: QuantityRequest, request: Request):
    client = _client(request)
    client.cart.update_quantity(item_id, body.quantity)
    return _cart_response(client)


@app.delete("/cart/items/{item_id}", response_model=CartResponse, tags=["Cart"])
async def remove_from_cart(item_id: str, request: Request):
    client = _client(request)
    client.cart.remove_from_cart(item_id)
    return _cart_response(client)


@app.delete("/cart", response_model=CartResponse, tags=["Cart"])
async def clear_cart(request: Request):
    client = _client(request)
    await client.cart.clear_cart()
    return _cart_response(client)


# =============================================================================
# Realtime
# =============================================================================

@app.get("/realtime", response_model=RealtimeResponse, tags=["Realtime"])
async def realtime_status(request: Request):
    mux = _client(request).realtime
    return RealtimeResponse(is_connected=mux.is_connected, connection_status=mux.connection_status)


@app.post("/realtime/broadcast", tags=["Realtime"])
async def broadcast(body: BroadcastRequest, request: Request):
    """Act as the server: push an event onto a domain's channel."""
    client = _client(request)
    user_id = client.session.user_id if client.session else None
    try:
        name = body.domain.channel_name(user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    delivered = request.app.state.transport.broadcast(name, body.kind, body.payload)
    await client.realtime.drain()
    return {"channel": name, "delivered": delivered}


# =============================================================================
# Notifications
# =============================================================================

@app.get("/notifications", tags=["Notifications"])
async def list_notifications(request: Request):
    center = _client(request).notifications
    return {
        "toasts": [
            {"id": t.id, "type": t.type.value, "title": t.title, "message": t.message}
            for t in center.toasts.toasts
        ],
        "inbox": [
            {"id": n.id, "type": n.type.value, "title": n.title, "message": n.message, "read": n.read}
            for n in center.inbox.notifications
        ],
        "unread_count": center.unread_count,
    }


@app.post("/notifications/toasts", tags=["Notifications"])
async def show_toast(body: ToastRequest, request: Request):
    toast = _client(request).notifications.toasts.show_toast(
        type=body.type,
        title=body.title,
        message=body.message,
        duration=body.duration,
        persistent=body.persistent,
    )
    return {"id": toast.id}


@app.post("/notifications/inbox/read-all", tags=["Notifications"])
async def mark_all_read(request: Request):
    center = _client(request).notifications
    center.inbox.mark_all_as_read()
    return {"unread_count": center.unread_count}
