"""
Resource views: fetch a collection or a single resource and settle it into one
of four render states (loading, error, empty, populated), plus the handful of
client-side form checks the lab performs before submitting.

Loaders never raise for upstream or transport failures. The error state holds
the raw message from the API, stack traces included.
"""

import logging
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Generic, List, Literal, Optional, TypeVar

import httpx
from pydantic import BaseModel

from api_client import ApiClient, ApiError
from auth import Session
from schemas import (
    Auction,
    AuctionImage,
    Bid,
    CreateAuctionRequest,
    Notification,
    RegisterImageRequest,
    UpdateUserRequest,
    User,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

WORKFLOW_STATES = ("active", "pending_sale", "shipping", "complete")
MIGRATION_HINT = (
    "Database migration required. Please run migration 003_workflow_states.sql "
    "to add the workflow_state column."
)


class FormError(ValueError):
    """Client-side check failed; nothing was sent"""


class LoginRequired(FormError):
    pass


class ViewState(BaseModel, Generic[T]):
    status: Literal["loading", "error", "empty", "populated"] = "loading"
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def settled(cls, data: Any) -> "ViewState":
        if data is None or (isinstance(data, list) and not data):
            return cls(status="empty", data=data)
        return cls(status="populated", data=data)

    @classmethod
    def failed(cls, message: str) -> "ViewState":
        return cls(status="error", error=message)


async def _load(what: str, fetch: Awaitable[Any]) -> ViewState:
    try:
        data = await fetch
    except ApiError as e:
        logger.error("Failed to fetch %s: %s", what, e.message)
        return ViewState.failed(e.message)
    except httpx.HTTPError as e:
        logger.error("Failed to fetch %s: %r", what, e)
        return ViewState.failed(str(e) or e.__class__.__name__)
    return ViewState.settled(data)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Loaders

async def load_auction_list(
    api: ApiClient,
    status: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ViewState:
    # Expired auctions keep status=active until someone closes them, so the
    # time-based filters run here instead of on the server.
    client_side = status in ("active", "ended")
    state = await _load(
        "auctions",
        api.get_auctions(
            status=None if client_side else status,
            search=search,
            min_price=min_price,
            max_price=max_price,
            limit=None if client_side else limit,
        ),
    )
    if state.status != "populated" or not client_side:
        return state

    now = now or _utcnow()
    auctions: List[Auction] = state.data
    if status == "ended":
        auctions = [a for a in auctions if a.status == "ended" or (a.end_time and a.end_time < now)]
    else:
        auctions = [a for a in auctions if a.status == "active" and a.end_time and a.end_time > now]
    if limit:
        auctions = auctions[:limit]
    return ViewState.settled(auctions)


async def load_auction(api: ApiClient, auction_id: str) -> ViewState:
    return await _load("auction", api.get_auction(auction_id))


def sort_bids(bids: List[Bid]) -> List[Bid]:
    """Highest amount first, newest first among equal amounts"""
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(bids, key=lambda b: (b.amount, b.created_at or oldest), reverse=True)


async def load_bid_history(api: ApiClient, auction_id: str) -> ViewState:
    state = await _load("bids", api.get_bids(auction_id))
    if state.status == "populated":
        state.data = sort_bids(state.data)
    return state


async def load_orders(api: ApiClient, session: Session, role: str = "all") -> ViewState:
    user = session.get_auth_user()
    if user is None:
        return ViewState.failed("Not authenticated")
    # the ids come from client storage; nothing stops a forged user_data cookie
    buyer_id = user.id if role == "buyer" else None
    seller_id = user.id if role == "seller" else None
    return await _load("orders", api.get_orders(buyer_id=buyer_id, seller_id=seller_id))


async def load_order(api: ApiClient, order_id: str) -> ViewState:
    return await _load("order", api.get_order(order_id))


async def load_user(api: ApiClient, user_id: str) -> ViewState:
    return await _load("user", api.get_user(user_id))


async def load_images(api: ApiClient, auction_id: str) -> ViewState:
    return await _load("images", api.get_images(auction_id))


async def load_disputes(api: ApiClient, auction_id: str) -> ViewState:
    return await _load("disputes", api.get_disputes(auction_id=auction_id))


async def load_notifications(api: ApiClient, limit: int = 20) -> ViewState:
    return await _load("notifications", api.get_notifications(limit=limit))


async def load_unread_count(api: ApiClient, session: Session) -> int:
    if not session.is_authenticated():
        return 0
    try:
        return await api.get_unread_count()
    except (ApiError, httpx.HTTPError) as e:
        logger.error("Failed to fetch unread count: %s", e)
        return 0


async def load_dashboard(api: ApiClient, workflow_state: str = "all", role: str = "all") -> ViewState:
    state = await _load(
        "dashboard auctions",
        api.get_auctions_by_workflow(
            workflow_state=None if workflow_state == "all" else workflow_state,
            role=None if role == "all" else role,
        ),
    )
    if state.status == "error" and ("workflow_state" in state.error or "column" in state.error):
        return ViewState.failed(MIGRATION_HINT)
    return state


def group_by_workflow(auctions: List[Auction]) -> Dict[str, List[Auction]]:
    groups: Dict[str, List[Auction]] = defaultdict(list)
    for state in WORKFLOW_STATES:
        groups[state] = []
    for auction in auctions:
        groups[auction.workflow_state or "active"].append(auction)
    return dict(groups)


# Form submissions

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_number(raw: Optional[str]) -> Optional[float]:
    """Lenient parse of a leading number: '12abc' -> 12.0, 'abc' -> None"""
    if raw is None:
        return None
    match = _LEADING_NUMBER.match(str(raw))
    if not match:
        return None
    return float(match.group(1))


def parse_end_time(raw: str) -> Optional[datetime]:
    try:
        value = datetime.fromisoformat(raw.strip())
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


async def place_bid(
    api: ApiClient,
    session: Session,
    auction_id: str,
    raw_amount: str,
    current_bid: float,
) -> Any:
    if not session.is_authenticated():
        raise LoginRequired("Please log in to place a bid")

    amount = parse_number(raw_amount)
    if amount is None:
        raise FormError("Please enter a valid number")
    if amount <= current_bid:
        raise FormError(f"Bid must be greater than current bid of ${current_bid:.2f}")

    logger.info("Placing bid: auction=%s amount=%s", auction_id, amount)
    return await api.place_bid(auction_id, amount)


async def create_auction(
    api: ApiClient,
    session: Session,
    title: str,
    description: str,
    starting_price: str,
    end_time: str,
    now: Optional[datetime] = None,
) -> Auction:
    if not session.is_authenticated():
        raise LoginRequired("Please log in to create an auction")

    price = parse_number(starting_price)
    if price is None or price <= 0:
        raise FormError("Starting price must be a positive number")

    end = parse_end_time(end_time)
    if end is None:
        raise FormError("Invalid end time format")
    if end <= (now or _utcnow()):
        raise FormError("End time must be in the future")

    payload = CreateAuctionRequest(
        title=title,
        description=description,
        starting_price=price,
        end_time=end.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )
    logger.info("Creating auction: %s", payload.model_dump())
    return await api.create_auction(payload)


async def update_profile(
    api: ApiClient,
    user: User,
    name: str,
    email: str,
    password: str = "",
) -> User:
    """Send only the fields that changed; any user id is accepted"""
    changes = UpdateUserRequest()
    if name != user.name:
        changes.name = name
    if email != user.email:
        changes.email = email
    if password:
        changes.password = password
    logger.info("Updating user %s: %s", user.id, changes.model_dump(exclude_none=True))
    return await api.update_user(user.id, changes)


async def upload_image(
    api: ApiClient,
    auction_id: str,
    filename: str,
    content_type: str,
    content: bytes,
    current_count: int = 0,
    max_images: int = 10,
) -> AuctionImage:
    if current_count + 1 > max_images:
        raise FormError(
            f"Maximum {max_images} images allowed. You can add {max_images - current_count} more."
        )

    logger.info("Uploading file: name=%s type=%s size=%d", filename, content_type, len(content))
    ticket = await api.request_upload_url(auction_id, filename, content_type)
    await api.upload_to_presigned_url(ticket.upload_url, content, content_type)
    return await api.register_image(
        RegisterImageRequest(
            auction_id=auction_id,
            s3_key=ticket.s3_key,
            original_filename=filename,
            content_type=content_type,
            file_size=len(content),
            is_primary=current_count == 0,
        )
    )


async def mark_notification_read(api: ApiClient, notification: Notification) -> None:
    if notification.read:
        return
    await api.mark_notification_read(notification)


def order_status_variant(status: Optional[str]) -> str:
    if status in ("completed", "delivered"):
        return "success"
    if status in ("shipped", "paid"):
        return "info"
    if status in ("pending_payment", "pending"):
        return "warning"
    if status == "cancelled":
        return "error"
    return "default"
