"""
HTML fragments for every page of the lab.

Free text coming back from the API (titles, descriptions, names, addresses,
dispute reasons, notification messages) is interpolated as raw markup. That
is the point of the exercise: do not escape it here.
"""

from datetime import datetime
from typing import Dict, List, Optional

from schemas import Auction, Bid, Notification, Order, User
from views import ViewState, WORKFLOW_STATES, order_status_variant
import workflow
from workflow import Roles


def money(value: Optional[float]) -> str:
    return f"${(value or 0):,.2f}"


def when(value: Optional[datetime], with_time: bool = True) -> str:
    if value is None:
        return "N/A"
    return value.strftime("%Y-%m-%d %H:%M" if with_time else "%Y-%m-%d")


def badge(text: str, variant: str = "default") -> str:
    return f'<span class="badge badge-{variant}">{text}</span>'


def confirm_form(action: str, label: str, question: str, fields: str = "", variant: str = "primary") -> str:
    return (
        f'<form method="post" action="{action}" onsubmit="return confirm(\'{question}\')">'
        f'{fields}<button type="submit" class="btn btn-{variant}">{label}</button></form>'
    )


def error_box(message: Optional[str]) -> str:
    return f'<div class="error" role="alert">{message}</div>' if message else ""


def layout(title: str, body: str, user: Optional[User] = None, unread: int = 0, refresh: Optional[int] = None) -> str:
    if user is not None:
        account = (
            f'<a href="/dashboard">Dashboard</a> <a href="/orders">Orders</a> '
            f'<a href="/notifications">Notifications ({unread})</a> '
            f'<a href="/profile">{user.name or user.email}</a> <a href="/logout">Logout</a>'
        )
    else:
        account = '<a href="/login">Login</a> <a href="/register">Register</a>'
    meta = f'<meta http-equiv="refresh" content="{refresh}">' if refresh else ""
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8">{meta}<title>{title} - Auction Lab</title></head>
<body>
<nav><a href="/">Home</a> <a href="/auctions">Auctions</a> <a href="/auctions/new">Create Auction</a> {account}</nav>
<main>
{body}
</main>
</body>
</html>"""


def error_page(message: str) -> str:
    return f'<h1>Something went wrong</h1>{error_box(message)}<p><a href="/">Back to home</a></p>'


# Auctions

def auction_card(auction: Auction) -> str:
    return f"""<article class="auction-card">
<h3><a href="/auctions/{auction.id}">{auction.title}</a></h3>
<div class="description">{auction.description or ''}</div>
<p>Current Bid: {money(auction.display_price)}</p>
<p>Starting Price: {money(auction.starting_price)}</p>
<p>{badge(auction.status, 'error' if auction.status == 'ended' else 'success')}</p>
</article>"""


def search_form(search: str = "", min_price: str = "", max_price: str = "", status: str = "") -> str:
    clear = '<a href="/auctions">Clear</a>' if (search or min_price or max_price) else ""
    return f"""<form method="get" action="/auctions" class="search">
<input name="search" value="{search}" placeholder="Search auctions">
<input name="min_price" value="{min_price}" placeholder="Min price">
<input name="max_price" value="{max_price}" placeholder="Max price">
<input type="hidden" name="status" value="{status}">
<button type="submit">Search</button> {clear}
</form>"""


def auction_list(state: ViewState) -> str:
    if state.status == "loading":
        return "<p>Loading auctions...</p>"
    if state.status == "error":
        return f"<p>Error: {state.error}</p>"
    if state.status == "empty":
        return "<p>No auctions found.</p>"
    return '<div class="auction-grid">' + "".join(auction_card(a) for a in state.data) + "</div>"


def bid_history(state: ViewState) -> str:
    if state.status == "loading":
        return "<p>Loading bid history...</p>"
    if state.status == "error":
        return f"<p>Error: {state.error}</p>"
    if state.status == "empty":
        return "<p>No bids yet. Be the first to bid!</p>"
    rows = "".join(_bid_row(bid) for bid in state.data)
    return f"<table><thead><tr><th>Bidder</th><th>Amount</th><th>Time</th></tr></thead><tbody>{rows}</tbody></table>"


def _bid_row(bid: Bid) -> str:
    bidder = (bid.user and (bid.user.name or bid.user.email)) or f"User {bid.user_id}"
    return f"<tr><td>{bidder}</td><td>{money(bid.amount)}</td><td>{when(bid.created_at)}</td></tr>"


def bid_form(auction_id: str, current_bid: float, authenticated: bool, error: Optional[str] = None) -> str:
    if not authenticated:
        return '<p>Please <a href="/login">log in</a> to place a bid.</p>'
    return f"""<form method="post" action="/auctions/{auction_id}/bids">
<label for="bid-amount">Bid Amount</label>
<input id="bid-amount" name="amount" type="text" placeholder="{current_bid:.2f}">
<p>Current bid: ${current_bid:.2f}</p>
{error_box(error)}
<button type="submit">Place Bid</button>
</form>"""


def create_auction_form(values: Optional[Dict[str, str]] = None, error: Optional[str] = None) -> str:
    values = values or {}
    return f"""<h1>Create New Auction</h1>
<form method="post" action="/auctions/new">
<label for="title">Auction Title</label>
<input id="title" name="title" value="{values.get('title', '')}" placeholder="e.g., Vintage Camera Collection">
<label for="description">Description</label>
<textarea id="description" name="description" rows="6">{values.get('description', '')}</textarea>
<label for="starting_price">Starting Price ($)</label>
<input id="starting_price" name="starting_price" type="text" value="{values.get('starting_price', '')}" placeholder="0.00">
<label for="end_time">End Time</label>
<input id="end_time" name="end_time" type="datetime-local" value="{values.get('end_time', '')}">
{error_box(error)}
<button type="submit">Create Auction</button> <a href="/auctions">Cancel</a>
</form>"""


def workflow_visualization(current: str) -> str:
    parts = []
    for key, label, status in workflow.step_statuses(current):
        marker = "&#10003;" if status == "completed" else ("&#9679;" if status == "active" else "")
        parts.append(f'<div class="step step-{status}" data-step="{key}">{marker} {badge(label, workflow.badge_variant(status))}</div>')
    return '<div class="workflow">' + '<span class="arrow">&rarr;</span>'.join(parts) + "</div>"


def auction_detail(
    auction: Auction,
    bids: ViewState,
    phase_panel: str,
    now: datetime,
    live_feed: bool = False,
) -> str:
    phase = workflow.resolve_phase(auction)
    ended = auction.status == "ended" or (auction.end_time is not None and auction.end_time < now)
    phase_badge = badge(phase.replace("_", " "), "warning") if phase != workflow.ACTIVE else ""
    creator = f"<p>Created by {auction.creator.name or auction.creator.email}</p>" if auction.creator else ""
    if ended:
        timing = f"<p>Closed: {when(auction.closed_at, with_time=False)}</p>" if auction.closed_at else "<p>Ended</p>"
    else:
        timing = f"<p>Ends: {when(auction.end_time)}</p>"
    feed = (
        f'<script>new WebSocket((location.protocol === "https:" ? "wss://" : "ws://") + location.host + '
        f'"/ws/auctions/{auction.id}").onmessage = function () {{ location.reload(); }};</script>'
        if live_feed and phase == workflow.ACTIVE
        else ""
    )
    return f"""<header>
<h1>{auction.title}</h1>
{creator}
{badge(auction.status, 'error' if ended else 'success')} {phase_badge}
<p>Current Bid: {money(auction.display_price)}</p>
<p>Starting Price: {money(auction.starting_price)}</p>
{timing}
</header>
<section><h2>Workflow Progress</h2>{workflow_visualization(phase)}</section>
<section><h2>Description</h2><div class="description">{auction.description or ''}</div></section>
<section><h2>Bid History</h2>{bid_history(bids)}</section>
<aside>{phase_panel}</aside>
{feed}"""


def phase_panel(
    auction: Auction,
    roles: Roles,
    authenticated: bool,
    now: datetime,
    error: Optional[str] = None,
    auto_complete_days: int = workflow.AUTO_COMPLETE_DAYS,
    disputes: Optional[ViewState] = None,
) -> str:
    phase = workflow.resolve_phase(auction)
    order = auction.order
    if phase == workflow.ACTIVE:
        body = _active_phase(auction, roles, authenticated, error)
    elif phase == workflow.PENDING_SALE:
        body = _pending_sale_phase(auction, order, roles, error)
    elif phase == workflow.SHIPPING:
        body = _shipped_phase(auction, order, roles, now, error, auto_complete_days)
    elif phase == workflow.COMPLETE:
        body = _complete_phase(auction, order, error, disputes)
    else:
        body = f"<p>Unknown workflow state: {phase}</p>"
    return f'<div class="phase phase-{phase}">{body}</div>'


def _active_phase(auction: Auction, roles: Roles, authenticated: bool, error: Optional[str]) -> str:
    if roles.is_seller:
        return f"""<h2>Seller View - Active Bidding</h2>
<p>Current Bid: {money(auction.display_price)}</p>
<p>Bids: {auction.bid_count or 0}</p>
{error_box(error)}
{confirm_form(f'/auctions/{auction.id}/close', 'Stop Sale / Close Auction', workflow.CLOSE_CONFIRM, variant='danger')}"""
    return f"""<h2>Place Your Bid</h2>
<p>Current Bid: <strong>{money(auction.display_price)}</strong></p>
<p>Starting Price: {money(auction.starting_price)}</p>
{bid_form(auction.id, auction.display_price, authenticated, error)}"""


def _pending_sale_phase(auction: Auction, order: Optional[Order], roles: Roles, error: Optional[str]) -> str:
    if roles.is_buyer and order is None:
        return f"""<h2>Action Required: Complete Your Purchase</h2>
<p>The seller is waiting for you to complete payment and shipping details.</p>
<p>Item: <strong>{auction.title}</strong></p>
<p>Winning Bid: <strong>{money(auction.current_bid)}</strong></p>
<form method="post" action="/auctions/{auction.id}/order">
<label for="shipping_address">Shipping Address</label>
<textarea id="shipping_address" name="shipping_address" rows="4" placeholder="Enter your full shipping address"></textarea>
{error_box(error)}
<button type="submit">Complete Purchase &amp; Submit Shipping Details</button>
</form>"""
    parts = []
    if roles.is_buyer and order is not None:
        next_step = (
            "Your order has been created. Please complete payment to proceed."
            if order.status == "pending_payment"
            else "Waiting for seller to add tracking information and mark as shipped."
        )
        tracking = f"<p>Tracking: {order.tracking_number}</p>" if order.tracking_number else ""
        parts.append(f"""<h2>Review Order Details</h2>
<p>Status: {badge(order.status, 'warning')}</p>
<p>Total: <strong>{money(order.total_amount)}</strong></p>
<p>Shipping Address: {order.shipping_address or 'Not provided'}</p>
{tracking}
<p>{next_step}</p>""")
    if roles.is_seller and order is None:
        parts.append(f"""<h2>Waiting for Buyer</h2>
<p>Waiting for the buyer to complete payment and provide shipping details.</p>
<p>Winning Bid: <strong>{money(auction.current_bid)}</strong></p>
<p>{badge('Pending Buyer Action', 'warning')}</p>""")
    if roles.is_seller and order is not None:
        buyer = (order.buyer and (order.buyer.name or order.buyer.email)) or f"User {order.buyer_id}"
        parts.append(f"""<h2>Prepare for Shipping</h2>
<p>Buyer: {buyer}</p>
<p>Shipping Address: {order.shipping_address or 'Not provided'}</p>
<p>Total: <strong>{money(order.total_amount)}</strong></p>
<form method="post" action="/auctions/{auction.id}/ship">
<label for="tracking_number">Tracking Number</label>
<input id="tracking_number" name="tracking_number" value="{order.tracking_number or ''}">
<label for="tracking_url">Tracking URL (optional)</label>
<input id="tracking_url" name="tracking_url" value="{order.tracking_url or ''}" placeholder="https://tracking.example.com/...">
<button type="submit">Mark as Shipped</button>
</form>""")
    if not parts:
        parts.append("<h2>Pending Sale</h2><p>Bidding has ended. The sale is being completed.</p>")
    return error_box(error) + "".join(parts)


def _shipped_phase(
    auction: Auction,
    order: Optional[Order],
    roles: Roles,
    now: datetime,
    error: Optional[str],
    auto_complete_days: int,
) -> str:
    details = []
    if order is not None and order.tracking_number:
        details.append(f"<p>Tracking Number: <strong>{order.tracking_number}</strong></p>")
    if order is not None and order.tracking_url:
        details.append(f'<p><a href="{order.tracking_url}" target="_blank" rel="noopener noreferrer">Track Package</a></p>')
    if order is not None and order.shipped_at:
        details.append(f"<p>Shipped: {when(order.shipped_at, with_time=False)}</p>")

    actions = ""
    if roles.is_buyer:
        days = workflow.days_until_auto_complete(order, now, auto_complete_days)
        if days:
            hint = f"Please confirm receipt. Order will auto-complete in {days} days if not confirmed."
        else:
            hint = "Please confirm that you have received the item."
        actions = f"<p>{hint}</p>" + confirm_form(
            f"/auctions/{auction.id}/confirm-receipt", "Confirm Receipt", workflow.RECEIPT_CONFIRM
        )
    elif roles.is_seller:
        actions = (
            "<p>Waiting for buyer to confirm receipt. Order will automatically complete "
            f"after {auto_complete_days} days if not confirmed.</p>"
        )
    return f"<h2>Item Shipped</h2>{''.join(details)}{error_box(error)}{actions}"


def _complete_phase(
    auction: Auction,
    order: Optional[Order],
    error: Optional[str],
    disputes: Optional[ViewState] = None,
) -> str:
    total = order.total_amount if order is not None and order.total_amount else auction.current_bid
    completed = f"<p>Completed: {when(order.completed_at, with_time=False)}</p>" if order is not None and order.completed_at else ""
    dispute = confirm_form(
        f"/auctions/{auction.id}/dispute",
        "File Dispute",
        workflow.DISPUTE_CONFIRM,
        fields=(
            '<label for="reason">Dispute Reason</label>'
            '<textarea id="reason" name="reason" rows="4" placeholder="Describe the issue..."></textarea>'
        ),
        variant="danger",
    )
    return f"""<h2>Transaction Complete</h2>
<p>{badge('&#10003; Completed', 'success')}</p>
<p>Final Amount: <strong>{money(total)}</strong></p>
{completed}
<p>If you have any issues with this transaction, you can file a dispute.</p>
{error_box(error)}
{dispute}
{dispute_list(disputes)}"""


def dispute_list(state: Optional[ViewState]) -> str:
    if state is None or state.status == "empty":
        return ""
    if state.status == "error":
        return f"<p>Error: {state.error}</p>"
    items = "".join(
        f"<li>{badge(d.status, 'warning' if d.status == 'open' else 'default')} "
        f"<strong>{d.filed_by_role or 'party'}</strong>: {d.reason} <small>{when(d.created_at)}</small></li>"
        for d in state.data
    )
    return f"<h3>Disputes</h3><ul class=\"disputes\">{items}</ul>"


def partial_transition_notice(auction_id: str, target_state: str, message: str) -> str:
    return f"""<div class="error" role="alert">{message}</div>
<form method="post" action="/auctions/{auction_id}/workflow">
<input type="hidden" name="workflow_state" value="{target_state}">
<button type="submit">Retry workflow update</button>
</form>"""


def image_gallery(state: ViewState, auction_id: str, editable: bool) -> str:
    if state.status == "error":
        return f"<p>Error: {state.error}</p>"
    images = state.data or []
    items = []
    for image in images:
        controls = ""
        if editable:
            controls = (
                f'<form method="post" action="/auctions/{auction_id}/images/{image.id}/primary"><button>Make primary</button></form>'
                f'<form method="post" action="/auctions/{auction_id}/images/{image.id}/delete"><button>Delete</button></form>'
            )
        primary = badge("Primary", "info") if image.is_primary else ""
        items.append(f'<figure><img src="{image.cdn_url or image.url or ""}" alt="{image.original_filename or ""}">{primary}{controls}</figure>')
    upload = ""
    if editable:
        upload = (
            f'<form method="post" action="/auctions/{auction_id}/images" enctype="multipart/form-data">'
            '<input type="file" name="file"><button type="submit">Upload</button></form>'
        )
    return '<div class="gallery">' + "".join(items) + "</div>" + upload


# Dashboard

def dashboard(state: ViewState, tab: str, role: str, user: User, groups: Dict[str, List[Auction]]) -> str:
    tabs = " ".join(
        f'<a href="/dashboard?tab={key}&role={role}" class="{"active" if key == tab else ""}">{key.replace("_", " ")}</a>'
        for key in ("all",) + WORKFLOW_STATES
    )
    roles = " ".join(f'<a href="/dashboard?tab={tab}&role={key}">{key}</a>' for key in ("all", "seller", "buyer"))
    if state.status == "error":
        content = error_box(state.error)
    else:
        auctions = state.data or []
        if tab != "all":
            auctions = groups.get(tab, [])
        content = _dashboard_rows(auctions, user)
    return f"<h1>My Auctions</h1><div class=\"tabs\">{tabs}</div><div class=\"roles\">{roles}</div>{content}"


def _dashboard_rows(auctions: List[Auction], user: User) -> str:
    if not auctions:
        return "<p>No auctions found in this category.</p>"
    rows = []
    for auction in auctions:
        roles = Roles.for_user(auction, user)
        role = "Seller" if roles.is_seller else "Buyer" if roles.is_buyer else ""
        actions = []
        if roles.is_seller and auction.workflow_state == workflow.PENDING_SALE:
            actions.append(_workflow_button(auction.id, workflow.SHIPPING, "Mark as Shipping"))
        elif roles.is_seller and auction.workflow_state == workflow.SHIPPING:
            actions.append(_workflow_button(auction.id, workflow.COMPLETE, "Mark as Complete"))
        if roles.is_buyer and auction.workflow_state == workflow.PENDING_SALE and auction.order is None:
            actions.append(f'<a href="/auctions/{auction.id}">Complete Purchase</a>')
        order = (
            f"<p>Order Status: {badge(auction.order.status, 'success' if auction.order.status == 'completed' else 'warning')}</p>"
            if auction.order
            else ""
        )
        if not auction.workflow_state or auction.workflow_state == workflow.ACTIVE:
            timing = f"Ends: {when(auction.end_time)}"
        else:
            timing = f"Ended: {when(auction.closed_at)}"
        rows.append(f"""<article>
<h3><a href="/auctions/{auction.id}">{auction.title}</a> {badge(role) if role else ''}</h3>
{badge((auction.workflow_state or 'active').replace('_', ' '))}
<p>{auction.description or 'No description'}</p>
<p>Current Bid: {money(auction.current_bid)} Bids: {auction.bid_count or 0}</p>
{order}
<p>{timing}</p>
{''.join(actions)} <a href="/auctions/{auction.id}">View Details</a>
</article>""")
    return "".join(rows)


def _workflow_button(auction_id: str, state: str, label: str) -> str:
    return (
        f'<form method="post" action="/auctions/{auction_id}/workflow">'
        f'<input type="hidden" name="workflow_state" value="{state}">'
        f'<input type="hidden" name="next" value="/dashboard">'
        f"<button type=\"submit\">{label}</button></form>"
    )


# Orders

def order_list(state: ViewState, role: str) -> str:
    filters = " ".join(f'<a href="/orders?role={key}">{key}</a>' for key in ("all", "buyer", "seller"))
    if state.status == "error":
        content = f"<p>Error: {state.error}</p>"
    elif state.status == "empty":
        content = "<p>No orders found.</p>"
    else:
        content = "".join(
            f'<article><h3><a href="/orders/{o.id}">Order #{o.id}</a></h3>'
            f"<p>{badge(o.status, order_status_variant(o.status))}</p>"
            f"<p>Total: {money(o.total_amount)}</p><p>Ship to: {o.shipping_address or 'Not provided'}</p></article>"
            for o in state.data
        )
    return f"<h1>My Orders</h1><div class=\"filters\">{filters} (showing {role})</div>{content}"


def order_detail(state: ViewState, order_id: str, error: Optional[str] = None) -> str:
    if state.status == "error":
        return f"<h1>Order</h1>{error_box(state.error)}"
    if state.status == "empty":
        return "<h1>Order not found</h1>"
    order: Order = state.data
    auction = f'<p>Auction: <a href="/auctions/{order.auction_id}">{order.auction.title if order.auction else order.auction_id}</a></p>'
    return f"""<h1>Order #{order.id}</h1>
{auction}
<p>Status: {badge(order.status, order_status_variant(order.status))}</p>
<p>Payment: {order.payment_status or 'N/A'}</p>
<p>Shipping: {order.shipping_status or 'N/A'}</p>
<p>Total: {money(order.total_amount)}</p>
<p>Shipping Address: {order.shipping_address or 'Not provided'}</p>
{error_box(error)}
<form method="post" action="/orders/{order_id}">
<label for="tracking_number">Tracking Number</label>
<input id="tracking_number" name="tracking_number" value="{order.tracking_number or ''}">
<button type="submit">Update Shipping</button>
</form>"""


# Users

def user_profile(state: ViewState, error: Optional[str] = None) -> str:
    if state.status == "loading":
        return "<p>Loading profile...</p>"
    if state.status == "error":
        return f"<p>Error: {state.error}</p>"
    if state.status == "empty":
        return "<p>User not found</p>"
    user: User = state.data
    if user.bids:
        rows = "".join(
            f'<tr><td><a href="/auctions/{b.auction_id}">Auction #{b.auction_id}</a></td>'
            f"<td>{money(b.amount)}</td><td>{when(b.created_at)}</td></tr>"
            for b in user.bids
        )
        bids = f"<table><thead><tr><th>Auction</th><th>Bid Amount</th><th>Date</th></tr></thead><tbody>{rows}</tbody></table>"
    else:
        bids = "<p>No bids yet. Start bidding on auctions!</p>"
    created = ""
    if user.auctions:
        rows = "".join(
            f'<tr><td><a href="/auctions/{a.id}">{a.title}</a></td><td>{money(a.current_bid)}</td>'
            f"<td>{a.status.upper()}</td><td>{when(a.created_at, with_time=False)}</td></tr>"
            for a in user.auctions
        )
        created = f"<h2>Created Auctions</h2><table><tbody>{rows}</tbody></table>"
    return f"""<h1>{user.name}</h1>
<p>Email: {user.email}</p>
<p>Role: {user.role}</p>
<p>Member since: {when(user.created_at, with_time=False)}</p>
<form method="post" action="/profile/{user.id}">
<label for="name">Name</label><input id="name" name="name" value="{user.name}">
<label for="email">Email</label><input id="email" name="email" value="{user.email}">
<label for="password">New Password</label><input id="password" name="password" type="password">
{error_box(error)}
<button type="submit">Save Changes</button>
</form>
<h2>Bidding History</h2>{bids}
{created}"""


def notifications(state: ViewState) -> str:
    if state.status == "error":
        return f"<h1>Notifications</h1><p>Error: {state.error}</p>"
    if state.status == "empty":
        return "<h1>Notifications</h1><p>No notifications</p>"
    items = "".join(_notification(n) for n in state.data)
    return f"<h1>Notifications</h1><ul>{items}</ul>"


def _notification(item: Notification) -> str:
    stamp = item.created_at.isoformat() if item.created_at else ""
    mark = "" if item.read else (
        f'<form method="post" action="/notifications/{item.id}/read">'
        f'<input type="hidden" name="created_at" value="{stamp}"><button>Mark read</button></form>'
    )
    css = "read" if item.read else "unread"
    return f'<li class="{css}"><strong>{item.title}</strong> {item.message} <small>{when(item.created_at)}</small>{mark}</li>'


# Auth forms

def login_form(email: str = "", error: Optional[str] = None) -> str:
    return f"""<h1>Login</h1>
<form method="post" action="/login">
<label for="email">Email</label><input id="email" name="email" type="text" value="{email}">
<label for="password">Password</label><input id="password" name="password" type="password">
{error_box(error)}
<button type="submit">Login</button>
</form>
<p>Don't have an account? <a href="/register">Register</a></p>"""


def register_form(email: str = "", name: str = "", error: Optional[str] = None) -> str:
    return f"""<h1>Register</h1>
<form method="post" action="/register">
<label for="name">Name</label><input id="name" name="name" value="{name}">
<label for="email">Email</label><input id="email" name="email" type="text" value="{email}">
<label for="password">Password</label><input id="password" name="password" type="password">
{error_box(error)}
<button type="submit">Register</button>
</form>
<p>Already have an account? <a href="/login">Login</a></p>"""
