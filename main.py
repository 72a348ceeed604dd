import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

import pages
import views
import workflow
from api_client import ApiClient, ApiError
from auth import Session, login, logout, register
from config import load_settings
from realtime import BidFeed
from schemas import Notification, UpdateOrderRequest
from storage import CookieStorage
from views import FormError, LoginRequired, parse_number
from workflow import PartialTransitionError, Roles

settings = load_settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Auction Lab")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.settings = settings
# tests swap in an httpx.MockTransport / a fake feed here
app.state.transport = None
app.state.feed_factory = BidFeed


class PageContext:
    """Per-request session, storage and API client"""

    def __init__(self, request: Request, storage: CookieStorage, session: Session, api: ApiClient):
        self.request = request
        self.storage = storage
        self.session = session
        self.api = api
        self.settings = request.app.state.settings


async def get_context(request: Request):
    storage = CookieStorage(request.cookies)
    session = Session(storage)
    async with ApiClient(
        request.app.state.settings.api_url,
        session=session,
        transport=request.app.state.transport,
    ) as api:
        yield PageContext(request, storage, session, api)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def render(
    ctx: PageContext,
    title: str,
    body: str,
    status_code: int = 200,
    refresh: Optional[int] = None,
) -> HTMLResponse:
    unread = await views.load_unread_count(ctx.api, ctx.session)
    html = pages.layout(title, body, ctx.session.get_auth_user(), unread, refresh)
    return ctx.storage.apply(HTMLResponse(html, status_code=status_code))


def redirect(ctx: PageContext, url: str) -> RedirectResponse:
    return ctx.storage.apply(RedirectResponse(url, status_code=303))


# Error handlers

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    logger.error("Unhandled API error on %s: %s", request.url.path, exc.message)
    return HTMLResponse(pages.layout("Error", pages.error_page(exc.message)), status_code=502)


@app.exception_handler(httpx.HTTPError)
async def transport_error_handler(request: Request, exc: httpx.HTTPError):
    logger.error("API unreachable on %s: %r", request.url.path, exc)
    return HTMLResponse(pages.layout("Error", pages.error_page(str(exc) or "API unreachable")), status_code=502)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return HTMLResponse(pages.layout("Error", pages.error_page(f"Unexpected error: {exc}")), status_code=500)


# Service endpoints

@app.get("/health")
def health():
    return {"status": "ok", "service": "Auction Lab"}


@app.get("/test")
async def test_api(request: Request):
    current = request.app.state.settings
    response = {
        "frontend": "✅ Running",
        "api": "❌ Not Reachable",
        "api_url": current.api_url,
        "ws_url": "✅ Set" if current.ws_url else "❌ Not Set",
        "analytics": "✅ Set" if current.analytics_key else "❌ Not Set",
        "feature_flags": "✅ Set" if current.feature_flag_key else "❌ Not Set",
        "payments": "✅ Set" if current.stripe_publishable_key else "❌ Not Set",
    }
    try:
        async with ApiClient(current.api_url, transport=request.app.state.transport) as api:
            await api.get_auctions(limit=1)
        response["api"] = "✅ Reachable"
    except ApiError as e:
        response["api"] = f"⚠️  Reachable but Error: {e.message[:50]}"
    except httpx.HTTPError as e:
        response["api"] = f"❌ Error: {str(e)[:50]}"
    return JSONResponse(response)


# Auctions

@app.get("/", response_class=HTMLResponse)
async def home(ctx: PageContext = Depends(get_context)):
    state = await views.load_auction_list(ctx.api, status="active", limit=6)
    body = (
        "<h1>Welcome to Auction Lab</h1>"
        '<p><a href="/auctions">Browse Auctions</a> <a href="/auctions/new">Create Auction</a></p>'
        f"<h2>Active Auctions</h2>{pages.auction_list(state)}"
    )
    return await render(ctx, "Home", body)


@app.get("/auctions", response_class=HTMLResponse)
async def list_auctions(
    status: Optional[str] = None,
    search: str = "",
    min_price: str = "",
    max_price: str = "",
    limit: Optional[int] = None,
    ctx: PageContext = Depends(get_context),
):
    state = await views.load_auction_list(
        ctx.api,
        status=status or None,
        search=search or None,
        min_price=parse_number(min_price),
        max_price=parse_number(max_price),
        limit=limit,
    )
    body = f"<h1>Auctions</h1>{pages.search_form(search, min_price, max_price, status or '')}{pages.auction_list(state)}"
    return await render(ctx, "Auctions", body)


@app.get("/auctions/new", response_class=HTMLResponse)
async def new_auction_form(ctx: PageContext = Depends(get_context)):
    if not ctx.session.is_authenticated():
        return redirect(ctx, "/login")
    return await render(ctx, "Create Auction", pages.create_auction_form())


@app.post("/auctions/new", response_class=HTMLResponse)
async def create_auction(
    title: str = Form(""),
    description: str = Form(""),
    starting_price: str = Form(""),
    end_time: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    values = {"title": title, "description": description, "starting_price": starting_price, "end_time": end_time}
    try:
        auction = await views.create_auction(ctx.api, ctx.session, title, description, starting_price, end_time)
    except LoginRequired:
        return redirect(ctx, "/login")
    except FormError as e:
        return await render(ctx, "Create Auction", pages.create_auction_form(values, str(e)), status_code=400)
    except ApiError as e:
        return await render(ctx, "Create Auction", pages.create_auction_form(values, e.message), status_code=400)
    except httpx.HTTPError as e:
        return await render(ctx, "Create Auction", pages.create_auction_form(values, str(e)), status_code=400)
    return redirect(ctx, f"/auctions/{auction.id}" if auction.id else "/auctions")


async def auction_page(
    ctx: PageContext,
    auction_id: str,
    error: Optional[str] = None,
    notice: str = "",
    status_code: int = 200,
) -> HTMLResponse:
    state = await views.load_auction(ctx.api, auction_id)
    if state.status == "error":
        body = (
            f"<h1>Error loading auction</h1>{pages.error_box(state.error)}"
            f'<p><a href="/auctions/{auction_id}">Retry</a></p>'
        )
        return await render(ctx, "Auction", body, status_code=status_code)
    if state.status == "empty":
        body = (
            "<h1>Auction Not Found</h1>"
            "<p>The auction you're looking for doesn't exist or has been removed.</p>"
            '<p><a href="/auctions">Browse Auctions</a></p>'
        )
        return await render(ctx, "Auction Not Found", body, status_code=404)

    auction = state.data
    now = _now()
    user = ctx.session.get_auth_user()
    roles = Roles.for_user(auction, user)
    bids = await views.load_bid_history(ctx.api, auction_id)
    images = await views.load_images(ctx.api, auction_id)
    disputes = None
    if workflow.resolve_phase(auction) == workflow.COMPLETE:
        disputes = await views.load_disputes(ctx.api, auction_id)
    panel = notice + pages.phase_panel(
        auction,
        roles,
        ctx.session.is_authenticated(),
        now,
        error,
        ctx.settings.auto_complete_days,
        disputes,
    )
    body = pages.auction_detail(auction, bids, panel, now, live_feed=bool(ctx.settings.ws_url))
    body += f"<section><h2>Images</h2>{pages.image_gallery(images, auction.id, roles.is_seller)}</section>"
    return await render(ctx, auction.title or "Auction", body, status_code=status_code)


@app.get("/auctions/{auction_id}", response_class=HTMLResponse)
async def auction_detail(auction_id: str, ctx: PageContext = Depends(get_context)):
    return await auction_page(ctx, auction_id)


async def _require_auction(ctx: PageContext, auction_id: str):
    auction = await ctx.api.get_auction(auction_id)
    if auction is None:
        raise ApiError("Auction not found", status_code=404)
    return auction


async def submit_action(ctx: PageContext, auction_id: str, action, next_url: Optional[str] = None):
    """Run one phase action, then either reload the auction or re-render it with the failure"""
    try:
        await action
    except LoginRequired:
        return redirect(ctx, "/login")
    except FormError as e:
        return await auction_page(ctx, auction_id, error=str(e), status_code=400)
    except PartialTransitionError as e:
        notice = pages.partial_transition_notice(auction_id, e.target_state, e.message)
        return await auction_page(ctx, auction_id, notice=notice, status_code=409)
    except ApiError as e:
        return await auction_page(ctx, auction_id, error=e.message, status_code=400)
    except httpx.HTTPError as e:
        return await auction_page(ctx, auction_id, error=str(e) or e.__class__.__name__, status_code=400)
    return redirect(ctx, next_url or f"/auctions/{auction_id}")


@app.post("/auctions/{auction_id}/bids")
async def place_bid(auction_id: str, amount: str = Form(""), ctx: PageContext = Depends(get_context)):
    async def action():
        auction = await _require_auction(ctx, auction_id)
        await views.place_bid(ctx.api, ctx.session, auction_id, amount, auction.display_price)

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/close")
async def close_auction(auction_id: str, ctx: PageContext = Depends(get_context)):
    async def action():
        await workflow.close_auction(ctx.api, await _require_auction(ctx, auction_id))

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/order")
async def submit_shipping_address(
    auction_id: str,
    shipping_address: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    async def action():
        auction = await _require_auction(ctx, auction_id)
        await workflow.submit_shipping_address(ctx.api, auction, shipping_address)

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/ship")
async def mark_shipped(
    auction_id: str,
    tracking_number: str = Form(""),
    tracking_url: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    async def action():
        auction = await _require_auction(ctx, auction_id)
        await workflow.mark_shipped(ctx.api, auction, auction.order, tracking_number, tracking_url)

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/confirm-receipt")
async def confirm_receipt(auction_id: str, ctx: PageContext = Depends(get_context)):
    async def action():
        auction = await _require_auction(ctx, auction_id)
        await workflow.confirm_receipt(ctx.api, auction, auction.order)

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/dispute")
async def file_dispute(auction_id: str, reason: str = Form(""), ctx: PageContext = Depends(get_context)):
    async def action():
        auction = await _require_auction(ctx, auction_id)
        roles = Roles.for_user(auction, ctx.session.get_auth_user())
        await workflow.file_dispute(ctx.api, auction, auction.order, reason, roles)

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/workflow")
async def update_workflow(
    auction_id: str,
    workflow_state: str = Form(""),
    next: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    action = workflow.set_workflow_state(ctx.api, auction_id, workflow_state)
    return await submit_action(ctx, auction_id, action, next_url=next or None)


@app.post("/auctions/{auction_id}/images")
async def upload_image(auction_id: str, file: UploadFile = File(...), ctx: PageContext = Depends(get_context)):
    async def action():
        existing = await ctx.api.get_images(auction_id)
        content = await file.read()
        await views.upload_image(
            ctx.api,
            auction_id,
            file.filename or "upload",
            file.content_type or "application/octet-stream",
            content,
            current_count=len(existing),
        )

    return await submit_action(ctx, auction_id, action())


@app.post("/auctions/{auction_id}/images/{image_id}/primary")
async def set_primary_image(auction_id: str, image_id: str, ctx: PageContext = Depends(get_context)):
    return await submit_action(ctx, auction_id, ctx.api.set_primary_image(image_id))


@app.post("/auctions/{auction_id}/images/{image_id}/delete")
async def delete_image(auction_id: str, image_id: str, ctx: PageContext = Depends(get_context)):
    return await submit_action(ctx, auction_id, ctx.api.delete_image(image_id))


@app.websocket("/ws/auctions/{auction_id}")
async def auction_feed(websocket: WebSocket, auction_id: str):
    await websocket.accept()
    current = websocket.app.state.settings

    async def forward(message):
        await websocket.send_text(message.model_dump_json(exclude_none=True))

    feed = websocket.app.state.feed_factory(
        auction_id,
        current.ws_url,
        reconnect_delay=current.reconnect_delay,
        on_message=forward,
    )
    runner = asyncio.create_task(feed.run())
    try:
        while True:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except ValueError:
                logger.warning("Ignoring non-JSON frame from browser for auction %s", auction_id)
                continue
            await feed.send(data)
    except WebSocketDisconnect:
        logger.info("Browser left live feed for auction %s", auction_id)
    finally:
        await feed.close()
        runner.cancel()
        await asyncio.gather(runner, return_exceptions=True)


# Dashboard

@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard(tab: str = "all", role: str = "all", ctx: PageContext = Depends(get_context)):
    user = ctx.session.get_auth_user()
    if not ctx.session.is_authenticated() or user is None:
        return redirect(ctx, "/login")
    state = await views.load_dashboard(ctx.api, workflow_state=tab, role=role)
    groups = views.group_by_workflow(state.data or [])
    return await render(ctx, "Dashboard", pages.dashboard(state, tab, role, user, groups))


# Orders

@app.get("/orders", response_class=HTMLResponse)
async def list_orders(role: str = "all", ctx: PageContext = Depends(get_context)):
    if not ctx.session.is_authenticated():
        return redirect(ctx, "/login")
    state = await views.load_orders(ctx.api, ctx.session, role)
    return await render(ctx, "Orders", pages.order_list(state, role))


@app.get("/orders/{order_id}", response_class=HTMLResponse)
async def order_detail(order_id: str, ctx: PageContext = Depends(get_context)):
    if not ctx.session.is_authenticated():
        return redirect(ctx, "/login")
    state = await views.load_order(ctx.api, order_id)
    return await render(ctx, f"Order {order_id}", pages.order_detail(state, order_id))


@app.post("/orders/{order_id}", response_class=HTMLResponse)
async def update_order_shipping(
    order_id: str,
    tracking_number: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    state = await views.load_order(ctx.api, order_id)
    if state.status != "populated":
        return await render(ctx, f"Order {order_id}", pages.order_detail(state, order_id), status_code=400)
    changes = UpdateOrderRequest(
        tracking_number=tracking_number,
        shipping_status="shipped" if tracking_number else state.data.shipping_status,
    )
    try:
        await ctx.api.update_order(order_id, changes)
    except ApiError as e:
        return await render(ctx, f"Order {order_id}", pages.order_detail(state, order_id, e.message), status_code=400)
    except httpx.HTTPError as e:
        return await render(ctx, f"Order {order_id}", pages.order_detail(state, order_id, str(e)), status_code=400)
    return redirect(ctx, f"/orders/{order_id}")


# Users

@app.get("/profile", response_class=HTMLResponse)
async def profile(id: Optional[str] = None, ctx: PageContext = Depends(get_context)):
    user_id = id
    if not user_id:
        current = ctx.session.get_auth_user()
        if current is None:
            return redirect(ctx, "/login")
        user_id = current.id
    state = await views.load_user(ctx.api, user_id)
    return await render(ctx, "Profile", pages.user_profile(state))


@app.post("/profile/{user_id}", response_class=HTMLResponse)
async def update_profile(
    user_id: str,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    state = await views.load_user(ctx.api, user_id)
    if state.status != "populated":
        return await render(ctx, "Profile", pages.user_profile(state), status_code=400)
    try:
        updated = await views.update_profile(ctx.api, state.data, name, email, password)
    except ApiError as e:
        return await render(ctx, "Profile", pages.user_profile(state, e.message), status_code=400)
    except httpx.HTTPError as e:
        return await render(ctx, "Profile", pages.user_profile(state, str(e)), status_code=400)
    return await render(ctx, "Profile", pages.user_profile(views.ViewState.settled(updated)))


# Notifications

@app.get("/notifications", response_class=HTMLResponse)
async def notifications(ctx: PageContext = Depends(get_context)):
    if not ctx.session.is_authenticated():
        return redirect(ctx, "/login")
    state = await views.load_notifications(ctx.api)
    return await render(ctx, "Notifications", pages.notifications(state), refresh=30)


@app.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    created_at: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    notification = Notification(id=notification_id, created_at=created_at or None)
    await views.mark_notification_read(ctx.api, notification)
    return redirect(ctx, "/notifications")


# Auth

@app.get("/login", response_class=HTMLResponse)
async def login_form(ctx: PageContext = Depends(get_context)):
    return await render(ctx, "Login", pages.login_form())


@app.post("/login", response_class=HTMLResponse)
async def login_submit(email: str = Form(""), password: str = Form(""), ctx: PageContext = Depends(get_context)):
    try:
        await login(ctx.api, email, password)
    except ApiError as e:
        return await render(ctx, "Login", pages.login_form(email, e.message), status_code=400)
    except httpx.HTTPError as e:
        return await render(ctx, "Login", pages.login_form(email, str(e)), status_code=400)
    return redirect(ctx, "/")


@app.get("/register", response_class=HTMLResponse)
async def register_form(ctx: PageContext = Depends(get_context)):
    return await render(ctx, "Register", pages.register_form())


@app.post("/register", response_class=HTMLResponse)
async def register_submit(
    email: str = Form(""),
    password: str = Form(""),
    name: str = Form(""),
    ctx: PageContext = Depends(get_context),
):
    try:
        await register(ctx.api, email, password, name)
    except ApiError as e:
        return await render(ctx, "Register", pages.register_form(email, name, e.message), status_code=400)
    except httpx.HTTPError as e:
        return await render(ctx, "Register", pages.register_form(email, name, str(e)), status_code=400)
    return redirect(ctx, "/")


@app.get("/logout")
async def logout_route(ctx: PageContext = Depends(get_context)):
    logout(ctx.session)
    return redirect(ctx, "/")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
