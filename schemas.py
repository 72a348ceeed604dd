"""
Wire schemas for the Auction Lab API

Each Pydantic model mirrors one payload shape the remote auction service sends
or accepts. Unknown fields are kept on the model rather than dropped, so
whatever the server chooses to leak (password hashes included) stays visible.
Numeric identifiers are coerced to strings; absent optional fields are None.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _assume_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Timestamp = Annotated[datetime, AfterValidator(_assume_utc)]

WorkflowState = Literal["active", "pending_sale", "shipping", "complete"]
PartyRole = Literal["seller", "buyer"]


class WireModel(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class UserSummary(WireModel):
    """Bidder/buyer/seller summary embedded in other payloads"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class User(WireModel):
    """Account record as returned by /auth and /users"""
    id: str = Field(..., description="User ID")
    email: str = Field("", description="Login email")
    name: str = Field("", description="Display name, rendered as raw markup")
    role: str = Field("user", description="user | admin")
    phone: Optional[str] = None
    address: Optional[str] = None
    password_hash: Optional[str] = Field(None, description="Leaked by the API and kept as-is")
    created_at: Optional[Timestamp] = None
    bids: Optional[List["Bid"]] = None
    auctions: Optional[List["Auction"]] = None


class AuthResponse(WireModel):
    token: str
    user: User


class VerifyResponse(WireModel):
    valid: bool = False
    user: Optional[User] = None


class Bid(WireModel):
    """A bid placed on an auction"""
    id: str = Field(..., description="Bid ID")
    auction_id: Optional[str] = Field(None, description="Auction ID")
    user_id: str = Field("", description="Bidder ID")
    amount: float = Field(..., description="Bid amount")
    created_at: Optional[Timestamp] = None
    user: Optional[UserSummary] = None


class Order(WireModel):
    """Purchase record created once the winning buyer submits an address"""
    id: str = Field(..., description="Order ID")
    auction_id: Optional[str] = None
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    winning_bid_id: Optional[str] = None
    total_amount: Optional[float] = None
    payment_status: Optional[str] = None
    shipping_address: Optional[str] = Field(None, description="Free text, rendered as raw markup")
    shipping_status: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    status: str = Field(
        "pending_payment",
        description="pending_payment | paid | shipped | delivered | completed | cancelled",
    )
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None
    shipped_at: Optional[Timestamp] = None
    completed_at: Optional[Timestamp] = None
    auction: Optional["Auction"] = None
    buyer: Optional[UserSummary] = None
    seller: Optional[UserSummary] = None


class Auction(WireModel):
    """Auction metadata"""
    id: str = Field(..., description="Auction ID")
    title: str = Field("", description="Auction title, rendered as raw markup")
    description: Optional[str] = Field(None, description="Auction description, rendered as raw markup")
    starting_price: float = Field(0, description="Starting price")
    current_bid: Optional[float] = Field(None, description="Highest accepted bid")
    end_time: Optional[Timestamp] = None
    status: str = Field("active", description="active | ended | cancelled")
    workflow_state: Optional[str] = Field(None, description="active | pending_sale | shipping | complete")
    created_by: Optional[str] = None
    winner_id: Optional[str] = None
    closed_at: Optional[Timestamp] = None
    created_at: Optional[Timestamp] = None
    bid_count: Optional[int] = None
    creator: Optional[UserSummary] = None
    bids: Optional[List[Bid]] = None
    order: Optional[Order] = None

    @property
    def display_price(self) -> float:
        return self.current_bid or self.starting_price


class Dispute(WireModel):
    id: str
    auction_id: Optional[str] = None
    order_id: Optional[str] = None
    filed_by: Optional[str] = None
    filed_by_role: Optional[str] = Field(None, description="seller | buyer")
    reason: str = Field("", description="Free text, rendered as raw markup")
    status: str = Field("open", description="open | in_review | resolved | closed")
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None


class Notification(WireModel):
    id: str
    type: str = "info"
    title: str = ""
    message: str = ""
    read: bool = False
    created_at: Optional[Timestamp] = None


class UnreadCount(WireModel):
    count: int = 0


class AuctionImage(WireModel):
    id: str
    auction_id: Optional[str] = None
    s3_key: Optional[str] = None
    cdn_url: Optional[str] = None
    url: Optional[str] = None
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    is_primary: bool = False
    sort_order: int = 0


class UploadTicket(WireModel):
    """Presigned object-storage upload target"""
    upload_url: str
    s3_key: str
    cdn_url: Optional[str] = None


# Request payloads

class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class CreateAuctionRequest(BaseModel):
    title: str
    description: str
    starting_price: float
    end_time: str


class PlaceBidRequest(BaseModel):
    amount: float


class CreateOrderRequest(BaseModel):
    auction_id: str
    shipping_address: str


class UpdateOrderRequest(BaseModel):
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipping_status: Optional[str] = None
    shipping_address: Optional[str] = None
    status: Optional[str] = None


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class WorkflowUpdate(BaseModel):
    workflow_state: WorkflowState


class CreateDisputeRequest(BaseModel):
    auction_id: str
    order_id: Optional[str] = None
    reason: str
    filed_by_role: PartyRole


class UploadUrlRequest(BaseModel):
    auction_id: str
    filename: str
    content_type: str


class RegisterImageRequest(BaseModel):
    auction_id: str
    s3_key: str
    original_filename: str
    content_type: str
    file_size: int
    is_primary: bool = False


class MarkReadRequest(BaseModel):
    timestamp: Optional[Any] = None


User.model_rebuild()
Order.model_rebuild()
