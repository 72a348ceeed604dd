"""
Post-auction workflow: active -> pending_sale -> shipping -> complete.

Every transition is client initiated. The phases are only as trustworthy as the
buttons that drive them; the remote API does not guard any of these moves.
Transitions made of two calls (close or order update, then workflow update)
run as one unit here, and a half-applied unit surfaces as
PartialTransitionError instead of leaving the two records silently out of step.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, List, NamedTuple, Optional

import httpx

from api_client import ApiClient, ApiError
from schemas import Auction, CreateDisputeRequest, Dispute, Order, UpdateOrderRequest, User
from views import FormError

logger = logging.getLogger(__name__)

ACTIVE = "active"
PENDING_SALE = "pending_sale"
SHIPPING = "shipping"
COMPLETE = "complete"

STEPS = [
    (ACTIVE, "Active Bidding"),
    (PENDING_SALE, "Pending Sale Completion"),
    (SHIPPING, "Shipped"),
    (COMPLETE, "Complete"),
]
STATE_ORDER = [key for key, _ in STEPS]

CLOSE_CONFIRM = "Are you sure you want to close this auction early? This will end bidding immediately."
RECEIPT_CONFIRM = "Confirm that you have received the item?"
DISPUTE_CONFIRM = "File a dispute? This will be reviewed by our support team."
DISPUTE_UNAVAILABLE = "Dispute filing will be available soon. For now, please contact support."

AUTO_COMPLETE_DAYS = 30


class Roles(NamedTuple):
    is_seller: bool = False
    is_buyer: bool = False

    @classmethod
    def for_user(cls, auction: Auction, user: Optional[User]) -> "Roles":
        if user is None:
            return cls()
        return cls(
            is_seller=bool(auction.created_by) and auction.created_by == user.id,
            is_buyer=bool(auction.winner_id) and auction.winner_id == user.id,
        )

    @property
    def party(self) -> str:
        return "seller" if self.is_seller else "buyer"


class PartialTransitionError(ApiError):
    """The first call of a transition landed but the workflow update did not"""

    def __init__(self, auction_id: str, target_state: str, cause: Exception):
        message = getattr(cause, "message", None) or str(cause)
        super().__init__(
            f"Step one succeeded, but moving auction {auction_id} to {target_state} failed: {message}",
            status_code=getattr(cause, "status_code", None),
            payload=getattr(cause, "payload", None),
        )
        self.auction_id = auction_id
        self.target_state = target_state
        self.cause = cause


def resolve_phase(auction: Auction) -> str:
    if auction.workflow_state:
        return auction.workflow_state
    return ACTIVE if auction.status == "active" else PENDING_SALE


def step_statuses(current: str) -> List[tuple]:
    """(key, label, completed|active|pending) for each step"""
    current_index = STATE_ORDER.index(current) if current in STATE_ORDER else -1
    result = []
    for index, (key, label) in enumerate(STEPS):
        if index < current_index:
            status = "completed"
        elif index == current_index:
            status = "active"
        else:
            status = "pending"
        result.append((key, label, status))
    return result


def badge_variant(step_status: str) -> str:
    return {"completed": "success", "active": "info"}.get(step_status, "default")


def days_until_auto_complete(
    order: Optional[Order],
    now: Optional[datetime] = None,
    window: int = AUTO_COMPLETE_DAYS,
) -> Optional[int]:
    """Advisory countdown only; nothing ever completes the order automatically"""
    if order is None or order.shipped_at is None:
        return None
    now = now or datetime.now(timezone.utc)
    days_since = (now - order.shipped_at).days
    return max(0, window - days_since)


def available_actions(auction: Auction, order: Optional[Order], roles: Roles) -> List[str]:
    phase = resolve_phase(auction)
    if phase == ACTIVE:
        return ["close_auction"] if roles.is_seller else ["place_bid"]
    if phase == PENDING_SALE:
        actions = []
        if roles.is_buyer and order is None:
            actions.append("submit_shipping_address")
        if roles.is_seller and order is not None:
            actions.append("mark_shipped")
        return actions
    if phase == SHIPPING:
        return ["confirm_receipt"] if roles.is_buyer else []
    if phase == COMPLETE:
        return ["file_dispute"]
    return []


async def _then_workflow(
    api: ApiClient,
    auction_id: str,
    first_step: Awaitable[Any],
    target_state: str,
) -> Any:
    result = await first_step
    try:
        await api.update_workflow_state(auction_id, target_state)
    except (ApiError, httpx.HTTPError) as e:
        logger.error("Workflow update to %s failed for auction %s after the first step: %s", target_state, auction_id, e)
        raise PartialTransitionError(auction_id, target_state, e) from e
    return result


# Transitions

async def close_auction(api: ApiClient, auction: Auction) -> Any:
    logger.info("Closing auction %s", auction.id)
    return await _then_workflow(api, auction.id, api.close_auction(auction.id), PENDING_SALE)


async def submit_shipping_address(api: ApiClient, auction: Auction, shipping_address: str) -> Order:
    if not shipping_address.strip():
        raise FormError("Please enter a shipping address")
    return await api.create_order(auction.id, shipping_address)


async def mark_shipped(
    api: ApiClient,
    auction: Auction,
    order: Optional[Order],
    tracking_number: str = "",
    tracking_url: str = "",
) -> None:
    if order is None:
        raise FormError("No order exists for this auction yet")
    if not tracking_number.strip() and not tracking_url.strip():
        raise FormError("Please enter a tracking number or tracking URL")

    changes = UpdateOrderRequest(tracking_number=tracking_number, shipping_status="shipped", status="shipped")
    if tracking_url.strip():
        changes.tracking_url = tracking_url
    await _then_workflow(api, auction.id, api.update_order(order.id, changes), SHIPPING)


async def confirm_receipt(api: ApiClient, auction: Auction, order: Optional[Order]) -> None:
    if order is None:
        raise FormError("No order exists for this auction yet")
    changes = UpdateOrderRequest(shipping_status="delivered", status="completed")
    await _then_workflow(api, auction.id, api.update_order(order.id, changes), COMPLETE)


async def file_dispute(
    api: ApiClient,
    auction: Auction,
    order: Optional[Order],
    reason: str,
    roles: Roles,
) -> Dispute:
    if not reason.strip():
        raise FormError("Please enter a reason for the dispute")

    payload = CreateDisputeRequest(
        auction_id=auction.id,
        order_id=order.id if order else None,
        reason=reason,
        filed_by_role=roles.party,
    )
    try:
        return await api.create_dispute(payload)
    except ApiError as e:
        if e.status_code == 404:
            raise ApiError(DISPUTE_UNAVAILABLE, status_code=404, payload=e.payload) from e
        raise


async def set_workflow_state(api: ApiClient, auction_id: str, state: str) -> Any:
    """Move an auction straight to any state; used by the dashboard and for retries"""
    if state not in STATE_ORDER:
        raise FormError(f"Unknown workflow state: {state}")
    return await api.update_workflow_state(auction_id, state)
