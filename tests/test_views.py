"""
Resource view and form submission tests
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

import views
from auth import TOKEN_KEY
from schemas import Auction, Bid, Notification
from views import FormError, LoginRequired, ViewState, parse_number

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _iso(value):
    return value.isoformat().replace("+00:00", "Z")


def test_settled_states():
    assert ViewState.settled([]).status == "empty"
    assert ViewState.settled(None).status == "empty"
    assert ViewState.settled([1]).status == "populated"
    failed = ViewState.failed("boom")
    assert failed.status == "error"
    assert failed.error == "boom"


async def test_auction_list_error_keeps_server_message(api, fake_api):
    fake_api.add("GET", "/auctions", {"error": "relation \"auctions\" does not exist"}, status=500)

    state = await views.load_auction_list(api)

    assert state.status == "error"
    assert state.error == 'relation "auctions" does not exist'


async def test_auction_list_empty(api, fake_api):
    fake_api.add("GET", "/auctions", [])

    state = await views.load_auction_list(api)

    assert state.status == "empty"


async def test_active_filter_runs_client_side(api, fake_api):
    fake_api.add(
        "GET",
        "/auctions",
        [
            {"id": "live", "status": "active", "end_time": _iso(NOW + timedelta(days=1))},
            {"id": "expired", "status": "active", "end_time": _iso(NOW - timedelta(days=1))},
            {"id": "ended", "status": "ended", "end_time": _iso(NOW - timedelta(days=2))},
        ],
    )

    active = await views.load_auction_list(api, status="active", now=NOW)
    ended = await views.load_auction_list(api, status="ended", now=NOW)

    assert [a.id for a in active.data] == ["live"]
    assert [a.id for a in ended.data] == ["expired", "ended"]
    assert "status" not in fake_api.requests[-1].url.params


async def test_transport_failure_becomes_error_state(api, fake_api):
    fake_api.fail("GET", "/auctions/a1", httpx.ConnectError("connection refused"))

    state = await views.load_auction(api, "a1")

    assert state.status == "error"
    assert "connection refused" in state.error


def test_sort_bids_amount_then_newest():
    bids = [
        Bid(id="1", amount=100, created_at=NOW - timedelta(hours=2)),
        Bid(id="2", amount=150, created_at=NOW - timedelta(hours=3)),
        Bid(id="3", amount=100, created_at=NOW - timedelta(hours=1)),
    ]

    assert [b.id for b in views.sort_bids(bids)] == ["2", "3", "1"]


@pytest.mark.parametrize(
    "raw,expected",
    [("12abc", 12.0), ("150", 150.0), (" 3.5 ", 3.5), (".5", 0.5), ("-4", -4.0), ("1e3", 1000.0), ("abc", None), ("", None)],
)
def test_parse_number_is_lenient(raw, expected):
    assert parse_number(raw) == expected


async def test_place_bid_requires_login(api):
    with pytest.raises(LoginRequired, match="Please log in to place a bid"):
        await views.place_bid(api, api.session, "a1", "150", 100)


async def test_place_bid_rejects_non_numbers(api, storage):
    storage.set_item(TOKEN_KEY, "tok")

    with pytest.raises(FormError, match="Please enter a valid number"):
        await views.place_bid(api, api.session, "a1", "lots", 100)


async def test_place_bid_must_beat_current_bid(api, fake_api, storage):
    storage.set_item(TOKEN_KEY, "tok")

    with pytest.raises(FormError) as exc_info:
        await views.place_bid(api, api.session, "a1", "100", 100)

    assert str(exc_info.value) == "Bid must be greater than current bid of $100.00"
    assert fake_api.requests == []


async def test_place_bid_sends_leading_number(api, fake_api, storage):
    storage.set_item(TOKEN_KEY, "tok")
    fake_api.add("POST", "/auctions/a1/bids", {"id": "b1"})

    await views.place_bid(api, api.session, "a1", "12abc", 10)

    assert json.loads(fake_api.requests[-1].content) == {"amount": 12.0}


async def test_create_auction_checks(api, storage):
    storage.set_item(TOKEN_KEY, "tok")

    with pytest.raises(FormError, match="Starting price must be a positive number"):
        await views.create_auction(api, api.session, "Lamp", "", "0", "2030-01-01T12:00", now=NOW)
    with pytest.raises(FormError, match="Invalid end time format"):
        await views.create_auction(api, api.session, "Lamp", "", "10", "tomorrow", now=NOW)
    with pytest.raises(FormError, match="End time must be in the future"):
        await views.create_auction(api, api.session, "Lamp", "", "10", "2020-01-01T12:00", now=NOW)


async def test_create_auction_posts_utc_end_time(api, fake_api, storage):
    storage.set_item(TOKEN_KEY, "tok")
    fake_api.add("POST", "/auctions", {"id": "a9", "title": "<b>Lamp</b>"})

    auction = await views.create_auction(
        api, api.session, "<b>Lamp</b>", "<script>x()</script>", "25.50", "2030-01-01T12:00", now=NOW
    )

    assert auction.id == "a9"
    assert json.loads(fake_api.requests[-1].content) == {
        "title": "<b>Lamp</b>",
        "description": "<script>x()</script>",
        "starting_price": 25.5,
        "end_time": "2030-01-01T12:00:00.000Z",
    }


async def test_orders_need_a_stored_user(api, fake_api):
    state = await views.load_orders(api, api.session)

    assert state.status == "error"
    assert state.error == "Not authenticated"
    assert fake_api.requests == []


async def test_orders_filtered_by_role(api, fake_api, session, buyer):
    session.set_auth("tok", buyer)
    fake_api.add("GET", "/orders", [{"id": "o1", "buyer_id": "u2"}])

    state = await views.load_orders(api, session, role="buyer")

    assert state.status == "populated"
    params = fake_api.requests[-1].url.params
    assert params["buyer_id"] == "u2"
    assert "seller_id" not in params


async def test_dashboard_schema_error_becomes_migration_hint(api, fake_api):
    fake_api.add("GET", "/auctions/workflow", {"error": 'column "workflow_state" does not exist'}, status=500)

    state = await views.load_dashboard(api)

    assert state.error == views.MIGRATION_HINT


def test_group_by_workflow():
    auctions = [
        Auction(id="1", workflow_state="shipping"),
        Auction(id="2"),
        Auction(id="3", workflow_state="shipping"),
    ]

    groups = views.group_by_workflow(auctions)

    assert [a.id for a in groups["shipping"]] == ["1", "3"]
    assert [a.id for a in groups["active"]] == ["2"]
    assert groups["complete"] == []


async def test_update_profile_sends_only_changes(api, fake_api, buyer):
    fake_api.add("PUT", "/users/u2", {"id": "u2", "email": "new@example.com", "name": "Bob Buyer"})

    updated = await views.update_profile(api, buyer, "Bob Buyer", "new@example.com")

    assert updated.email == "new@example.com"
    assert json.loads(fake_api.requests[-1].content) == {"email": "new@example.com"}


async def test_upload_image_three_steps(api, fake_api):
    fake_api.add("POST", "/images/upload-url", {"upload_url": "http://s3.test/bucket/k1", "s3_key": "k1"})
    fake_api.add("PUT", "/bucket/k1", None)
    fake_api.add("POST", "/images", {"id": "i1", "s3_key": "k1", "is_primary": True})

    image = await views.upload_image(api, "a1", "lamp.png", "image/png", b"\x89PNG")

    assert image.id == "i1"
    registered = json.loads(fake_api.requests[-1].content)
    assert registered["is_primary"] is True
    assert registered["file_size"] == 4
    assert fake_api.calls("PUT", "/bucket/k1")[0].content == b"\x89PNG"


async def test_upload_image_limit(api, fake_api):
    with pytest.raises(FormError, match="Maximum 10 images allowed"):
        await views.upload_image(api, "a1", "lamp.png", "image/png", b"x", current_count=10)
    assert fake_api.requests == []


async def test_unread_count_falls_back_to_zero(api, fake_api, storage):
    assert await views.load_unread_count(api, api.session) == 0

    storage.set_item(TOKEN_KEY, "tok")
    fake_api.add("GET", "/notifications/unread-count", {"error": "boom"}, status=500)
    assert await views.load_unread_count(api, api.session) == 0


async def test_mark_read_skips_already_read(api, fake_api):
    await views.mark_notification_read(api, Notification(id="n1", read=True))

    assert fake_api.requests == []


def test_order_status_variant():
    assert views.order_status_variant("completed") == "success"
    assert views.order_status_variant("shipped") == "info"
    assert views.order_status_variant("pending_payment") == "warning"
    assert views.order_status_variant("cancelled") == "error"
    assert views.order_status_variant(None) == "default"


async def test_place_bid_exactly_one_post_with_bare_amount(api, fake_api, storage):
    storage.set_item(TOKEN_KEY, "tok")
    fake_api.add("POST", "/auctions/a1/bids", {"id": "b2"})

    await views.place_bid(api, api.session, "a1", "200.999999999", 150)

    posts = fake_api.calls("POST", "/auctions/a1/bids")
    assert len(posts) == 1
    assert posts[0].content == b'{"amount":200.999999999}'


async def test_disputes_loaded_for_auction(api, fake_api):
    fake_api.add("GET", "/disputes", {"data": [{"id": "d1", "reason": "<b>Broken</b>", "filed_by_role": "seller"}]})

    state = await views.load_disputes(api, "a1")

    assert state.status == "populated"
    assert state.data[0].reason == "<b>Broken</b>"
    assert fake_api.requests[-1].url.params["auction_id"] == "a1"
