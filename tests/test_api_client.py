"""
API client tests: headers, payload encoding, error passthrough
"""

import json

import httpx
import pytest

from api_client import ApiClient, ApiError
from schemas import Notification, UpdateOrderRequest


async def test_bearer_header_sent_when_token_stored(api, fake_api, storage):
    storage.set_item("auth_token", "abc.def.ghi")
    fake_api.add("GET", "/auctions", [])

    await api.get_auctions()

    request = fake_api.requests[-1]
    assert request.headers["Authorization"] == "Bearer abc.def.ghi"
    assert request.headers["Content-Type"] == "application/json"


async def test_no_authorization_header_without_token(api, fake_api):
    fake_api.add("POST", "/auctions/a1/bids", {"id": "b1"})

    # require_auth without a token still goes out, unauthenticated
    await api.place_bid("a1", 10)

    assert "Authorization" not in fake_api.requests[-1].headers


async def test_bid_amount_sent_as_bare_number(api, fake_api):
    fake_api.add("POST", "/auctions/a1/bids", {"id": "b1"})

    await api.place_bid("a1", 200.999999999)

    assert json.loads(fake_api.requests[-1].content) == {"amount": 200.999999999}


async def test_auction_filters_become_query_params(api, fake_api):
    fake_api.add("GET", "/auctions", {"data": []})

    await api.get_auctions(status="active", search="camera", min_price=10, limit=5)

    params = fake_api.requests[-1].url.params
    assert params["status"] == "active"
    assert params["search"] == "camera"
    assert params["minPrice"] == "10"
    assert params["limit"] == "5"
    assert "maxPrice" not in params


async def test_list_payloads_unwrapped(api, fake_api):
    fake_api.add("GET", "/auctions", {"data": [{"id": 1, "title": "Lamp", "starting_price": "5"}]})
    fake_api.add("GET", "/auctions/a1/bids", [{"id": "b1", "amount": 12}])

    auctions = await api.get_auctions()
    bids = await api.get_bids("a1")

    assert auctions[0].id == "1"
    assert auctions[0].starting_price == 5.0
    assert bids[0].amount == 12.0


async def test_single_auction_unwrapped_and_extra_fields_kept(api, fake_api):
    fake_api.add("GET", "/auctions/a1", {"data": {"id": "a1", "title": "Lamp", "internal_notes": "secret"}})

    auction = await api.get_auction("a1")

    assert auction.title == "Lamp"
    assert auction.model_extra["internal_notes"] == "secret"


async def test_empty_auction_body_reads_as_none(api, fake_api):
    fake_api.add("GET", "/auctions/missing", None)

    assert await api.get_auction("missing") is None


async def test_identifier_forwarded_unmodified(api, fake_api):
    fake_api.add("GET", "/auctions/1' OR '1'='1", {"id": "1"})

    await api.get_auction("1' OR '1'='1")

    assert fake_api.requests[-1].url.path == "/api/auctions/1' OR '1'='1"


@pytest.mark.parametrize(
    "body,expected",
    [
        ({"message": "Bid too low"}, "Bid too low"),
        ({"error": "Auction has ended"}, "Auction has ended"),
        ({"error": "Error: boom\n    at placeBid (server.js:42)"}, "Error: boom\n    at placeBid (server.js:42)"),
        ({}, "API request failed"),
        ({"detail": "nope"}, "API request failed"),
    ],
)
async def test_error_message_passed_through_verbatim(api, fake_api, body, expected):
    fake_api.add("POST", "/auctions/a1/bids", body, status=400)

    with pytest.raises(ApiError) as exc_info:
        await api.place_bid("a1", 10)

    assert exc_info.value.message == expected
    assert exc_info.value.status_code == 400


async def test_non_json_error_uses_status_line(api, fake_api):
    fake_api.add("GET", "/auctions", "<html>upstream down</html>", status=502)

    with pytest.raises(ApiError) as exc_info:
        await api.get_auctions()

    assert exc_info.value.message == "HTTP 502: Bad Gateway"
    assert exc_info.value.payload is None


async def test_network_failure_propagates(api, fake_api):
    fake_api.fail("GET", "/auctions", httpx.ConnectError("connection refused"))

    with pytest.raises(httpx.ConnectError):
        await api.get_auctions()


async def test_empty_success_body_returns_none(api, fake_api):
    fake_api.add("DELETE", "/images/i1", None, status=204)

    assert await api.delete_image("i1") is None


async def test_update_order_omits_unset_fields(api, fake_api):
    fake_api.add("PUT", "/orders/o1", {"id": "o1"})

    await api.update_order("o1", UpdateOrderRequest(tracking_number="1Z999"))

    assert json.loads(fake_api.requests[-1].content) == {"tracking_number": "1Z999"}


async def test_workflow_update_body(api, fake_api):
    fake_api.add("PUT", "/auctions/a1/workflow", {"ok": True})

    await api.update_workflow_state("a1", "shipping")

    assert json.loads(fake_api.requests[-1].content) == {"workflow_state": "shipping"}


async def test_workflow_listing_accepts_single_object(api, fake_api):
    fake_api.add("GET", "/auctions/workflow", {"data": {"id": "a1", "workflow_state": "shipping"}})

    auctions = await api.get_auctions_by_workflow(workflow_state="shipping", role="seller")

    assert [a.id for a in auctions] == ["a1"]
    params = fake_api.requests[-1].url.params
    assert params["workflow_state"] == "shipping"
    assert params["role"] == "seller"


async def test_unread_count(api, fake_api):
    fake_api.add("GET", "/notifications/unread-count", {"count": 3})

    assert await api.get_unread_count() == 3


async def test_mark_notification_read_sends_timestamp(api, fake_api):
    fake_api.add("PUT", "/notifications/n1/read", {"ok": True})
    notification = Notification(id="n1", created_at="2024-05-01T10:00:00Z")

    await api.mark_notification_read(notification)

    assert json.loads(fake_api.requests[-1].content) == {"timestamp": "2024-05-01T10:00:00Z"}


async def test_presigned_upload_failure(api, fake_api):
    fake_api.add("PUT", "/bucket/key.png", None, status=403)

    with pytest.raises(ApiError, match="Upload failed: Forbidden"):
        await api.upload_to_presigned_url("http://s3.test/bucket/key.png", b"png", "image/png")

    assert fake_api.requests[-1].headers["Content-Type"] == "image/png"


async def test_base_url_trailing_slash_ignored(fake_api):
    fake_api.add("GET", "/auctions", [])
    async with ApiClient("http://api.test/api/", transport=httpx.MockTransport(fake_api)) as client:
        await client.get_auctions()

    assert fake_api.requests[-1].url.path == "/api/auctions"
