"""
HTTP client for the remote Auction Lab API.

Thin JSON-over-HTTP wrapper: no retries, no timeouts, no cancellation and no
input checks. Identifiers go into request paths exactly as given, and error
messages from the server are passed through verbatim.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from schemas import (
    Auction,
    AuctionImage,
    AuthResponse,
    Bid,
    CreateAuctionRequest,
    CreateDisputeRequest,
    CreateOrderRequest,
    Dispute,
    LoginRequest,
    MarkReadRequest,
    Notification,
    Order,
    PlaceBidRequest,
    RegisterImageRequest,
    RegisterRequest,
    UnreadCount,
    UpdateOrderRequest,
    UpdateUserRequest,
    UploadTicket,
    UploadUrlRequest,
    User,
    VerifyResponse,
    WorkflowUpdate,
)

if TYPE_CHECKING:
    from auth import Session

logger = logging.getLogger(__name__)

API_FAILED = "API request failed"


class ApiError(Exception):
    """Non-2xx response from the API, message taken verbatim from the body"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def _error_message(response: httpx.Response) -> tuple:
    fallback = f"HTTP {response.status_code}: {response.reason_phrase}"
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        preview = response.text[:200]
        logger.error("Non-JSON error response preview: %s", preview)
        return fallback, None
    try:
        body = response.json()
    except ValueError:
        return fallback, None
    if not isinstance(body, dict):
        return API_FAILED, body
    return body.get("message") or body.get("error") or API_FAILED, body


def _encode_body(body: Any) -> str:
    if isinstance(body, str):
        return body
    if isinstance(body, BaseModel):
        return body.model_dump_json(exclude_none=True)
    return json.dumps(body, default=str)


def _clean_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not params:
        return None
    return {key: value for key, value in params.items() if value}


def _unwrap_list(payload: Any, allow_single: bool = False) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
        if allow_single and data:
            return [data]
    return []


def _unwrap_one(payload: Any) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


class ApiClient:
    """Async client bound to one base URL and, optionally, one session"""

    def __init__(
        self,
        base_url: str,
        session: Optional["Session"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=None)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _token(self) -> Optional[str]:
        if self.session is None:
            return None
        return self.session.token

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        require_auth: bool = False,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        token = self._token()
        headers = {"Content-Type": "application/json"}
        # require_auth without a token still sends the request, unauthenticated
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.info(
            "API Request: %s %s has_token=%s token_preview=%s require_auth=%s",
            method,
            path,
            bool(token),
            f"{token[:20]}..." if token else None,
            require_auth,
        )

        content = _encode_body(body) if body is not None else None
        try:
            response = await self._http.request(
                method,
                path,
                headers=headers,
                content=content,
                params=_clean_params(params),
            )
        except httpx.HTTPError as e:
            logger.error("API Request Error: %s %s: %r", method, path, e)
            raise

        if not response.is_success:
            message, payload = _error_message(response)
            logger.error(
                "API Error: status=%s reason=%s endpoint=%s body=%s",
                response.status_code,
                response.reason_phrase,
                path,
                payload,
            )
            raise ApiError(message, status_code=response.status_code, payload=payload)

        if not response.content:
            return None
        return response.json()

    # Generic helpers

    async def get(self, path: str, require_auth: bool = False, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request(path, "GET", require_auth=require_auth, params=params)

    async def post(self, path: str, body: Any = None, require_auth: bool = False) -> Any:
        return await self.request(path, "POST", body=body, require_auth=require_auth)

    async def put(self, path: str, body: Any = None, require_auth: bool = True) -> Any:
        return await self.request(path, "PUT", body=body, require_auth=require_auth)

    async def delete(self, path: str, require_auth: bool = True) -> Any:
        return await self.request(path, "DELETE", require_auth=require_auth)

    # Auth

    async def register(self, email: str, password: str, name: str) -> AuthResponse:
        data = await self.post("/auth/register", RegisterRequest(email=email, password=password, name=name))
        return AuthResponse.model_validate(data)

    async def login(self, email: str, password: str) -> AuthResponse:
        data = await self.post("/auth/login", LoginRequest(email=email, password=password))
        return AuthResponse.model_validate(data)

    async def verify(self) -> VerifyResponse:
        data = await self.post("/auth/verify", {}, require_auth=True)
        return VerifyResponse.model_validate(data or {})

    # Auctions

    async def get_auctions(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Auction]:
        params = {
            "status": status,
            "search": search,
            "minPrice": min_price,
            "maxPrice": max_price,
            "limit": limit,
            "offset": offset,
        }
        data = await self.get("/auctions", params=params)
        return [Auction.model_validate(item) for item in _unwrap_list(data)]

    async def get_auction(self, auction_id: str) -> Optional[Auction]:
        data = _unwrap_one(await self.get(f"/auctions/{auction_id}"))
        return Auction.model_validate(data) if data else None

    async def create_auction(self, payload: CreateAuctionRequest) -> Auction:
        data = await self.post("/auctions", payload, require_auth=True)
        return Auction.model_validate(_unwrap_one(data))

    async def close_auction(self, auction_id: str) -> Any:
        return await self.post(f"/auctions/{auction_id}/close", require_auth=True)

    # Workflow

    async def update_workflow_state(self, auction_id: str, workflow_state: str) -> Any:
        return await self.put(
            f"/auctions/{auction_id}/workflow",
            WorkflowUpdate(workflow_state=workflow_state),
        )

    async def get_auctions_by_workflow(
        self,
        workflow_state: Optional[str] = None,
        role: Optional[str] = None,
    ) -> List[Auction]:
        params = {"workflow_state": workflow_state, "role": role}
        data = await self.get("/auctions/workflow", require_auth=True, params=params)
        return [Auction.model_validate(item) for item in _unwrap_list(data, allow_single=True)]

    # Bids

    async def get_bids(self, auction_id: str) -> List[Bid]:
        data = await self.get(f"/auctions/{auction_id}/bids")
        return [Bid.model_validate(item) for item in _unwrap_list(data)]

    async def place_bid(self, auction_id: str, amount: float) -> Any:
        return await self.post(f"/auctions/{auction_id}/bids", PlaceBidRequest(amount=amount), require_auth=True)

    # Orders

    async def get_orders(
        self,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        shipping_status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Order]:
        params = {
            "buyer_id": buyer_id,
            "seller_id": seller_id,
            "status": status,
            "payment_status": payment_status,
            "shipping_status": shipping_status,
            "limit": limit,
            "offset": offset,
        }
        data = await self.get("/orders", params=params)
        return [Order.model_validate(item) for item in _unwrap_list(data)]

    async def get_order(self, order_id: str) -> Optional[Order]:
        data = _unwrap_one(await self.get(f"/orders/{order_id}"))
        return Order.model_validate(data) if data else None

    async def create_order(self, auction_id: str, shipping_address: str) -> Order:
        payload = CreateOrderRequest(auction_id=auction_id, shipping_address=shipping_address)
        data = await self.post("/orders", payload, require_auth=True)
        return Order.model_validate(_unwrap_one(data))

    async def update_order(self, order_id: str, changes: UpdateOrderRequest) -> Any:
        return await self.put(f"/orders/{order_id}", changes)

    # Users

    async def get_user(self, user_id: str) -> Optional[User]:
        data = _unwrap_one(await self.get(f"/users/{user_id}"))
        return User.model_validate(data) if data else None

    async def update_user(self, user_id: str, changes: UpdateUserRequest) -> User:
        data = await self.put(f"/users/{user_id}", changes)
        return User.model_validate(_unwrap_one(data))

    # Images

    async def get_images(self, auction_id: str) -> List[AuctionImage]:
        data = await self.get(f"/images/auction/{auction_id}")
        return [AuctionImage.model_validate(item) for item in _unwrap_list(data)]

    async def request_upload_url(self, auction_id: str, filename: str, content_type: str) -> UploadTicket:
        payload = UploadUrlRequest(auction_id=auction_id, filename=filename, content_type=content_type)
        data = await self.post("/images/upload-url", payload, require_auth=True)
        return UploadTicket.model_validate(data)

    async def upload_to_presigned_url(self, upload_url: str, content: bytes, content_type: str) -> None:
        """PUT the raw bytes straight to object storage, bypassing the API"""
        logger.info("Uploading %d bytes (%s) to presigned URL", len(content), content_type)
        response = await self._http.put(upload_url, content=content, headers={"Content-Type": content_type})
        if not response.is_success:
            raise ApiError(f"Upload failed: {response.reason_phrase}", status_code=response.status_code)

    async def register_image(self, payload: RegisterImageRequest) -> AuctionImage:
        data = await self.post("/images", payload, require_auth=True)
        return AuctionImage.model_validate(_unwrap_one(data))

    async def set_primary_image(self, image_id: str) -> Any:
        return await self.put(f"/images/{image_id}/primary", {})

    async def delete_image(self, image_id: str) -> Any:
        return await self.delete(f"/images/{image_id}")

    # Disputes

    async def create_dispute(self, payload: CreateDisputeRequest) -> Dispute:
        data = await self.post("/disputes", payload, require_auth=True)
        return Dispute.model_validate(_unwrap_one(data))

    async def get_disputes(
        self,
        auction_id: Optional[str] = None,
        order_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dispute]:
        params = {"auction_id": auction_id, "order_id": order_id, "status": status}
        data = await self.get("/disputes", params=params)
        return [Dispute.model_validate(item) for item in _unwrap_list(data)]

    # Notifications

    async def get_notifications(self, limit: int = 20) -> List[Notification]:
        data = await self.get("/notifications", require_auth=True, params={"limit": limit})
        return [Notification.model_validate(item) for item in _unwrap_list(data)]

    async def get_unread_count(self) -> int:
        data = await self.get("/notifications/unread-count", require_auth=True)
        return UnreadCount.model_validate(data or {}).count

    async def mark_notification_read(self, notification: Notification) -> Any:
        payload = MarkReadRequest(timestamp=notification.created_at)
        return await self.put(f"/notifications/{notification.id}/read", payload)
