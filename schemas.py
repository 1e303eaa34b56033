"""
Database Schemas

MongoDB collection schemas for the marketplace, defined as Pydantic models.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection
- Order -> "order" collection
- Proposal -> "proposal" collection
- Dispute -> "dispute" collection
- PromoCode -> "promocode" collection
- Review -> "review" collection
- Collection -> "collection" collection

Request payloads sit next to the collection they feed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from order_status import OrderAction, OrderStatus

AttributeValue = Union[str, int, float]

# -----------------------------
# Category schema tree
# -----------------------------

class CategoryField(BaseModel):
    name: Optional[str] = Field(None, description="Key used in dynamic_attributes; derived from label when empty")
    label: str = Field(..., description="Human-facing prompt")
    type: Literal["text", "number", "select"] = "text"
    options: Optional[List[str]] = None
    required: bool = False

class CategorySchema(BaseModel):
    """
    Category tree node
    Stored as a whole tree in the "category_tree" collection
    """
    id: Optional[str] = None
    name: str
    fields: List[CategoryField] = []
    subcategories: List[CategorySchema] = []
    resolved_fields: Optional[List[CategoryFieldWithMeta]] = Field(None, description="Precomputed output of the field resolver")

class CategoryFieldWithMeta(CategoryField):
    name: str
    inherited: bool = False
    source_category_id: Optional[str] = None
    source_category_name: Optional[str] = None

CategorySchema.model_rebuild()

# -----------------------------
# Users
# -----------------------------

class ShippingAddress(BaseModel):
    city: str
    post_office: str
    recipient_name: str
    phone_number: str

class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    telegram_id: Optional[int] = None
    name: str = Field(..., description="Display name")
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Literal["user", "admin"] = "user"
    verification_level: Literal["NONE", "BASIC", "PRO"] = "NONE"
    rating: float = 0
    balance: float = 0
    default_shipping_address: Optional[ShippingAddress] = None
    wishlist: List[str] = Field([], description="Saved product ids")

class UserUpdate(BaseModel):
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    default_shipping_address: Optional[ShippingAddress] = None
    # admin only
    role: Optional[Literal["user", "admin"]] = None
    verification_level: Optional[Literal["NONE", "BASIC", "PRO"]] = None
    balance: Optional[float] = None

# -----------------------------
# Products
# -----------------------------

AuthenticationStatus = Literal["NONE", "PENDING", "AUTHENTICATED", "REJECTED"]

class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    title: str = Field(..., description="Product title")
    description: str = ""
    price: Optional[float] = Field(None, ge=0, description="Price in USDT")
    sale_price: Optional[float] = Field(None, ge=0)
    image_urls: List[str] = []
    category: str = Field(..., description="Category name from the category tree")
    seller_id: Optional[str] = None
    dynamic_attributes: Dict[str, AttributeValue] = {}
    is_promoted: bool = False
    weight: Optional[int] = Field(None, ge=0, description="Weight in grams")

    # Auction
    is_auction: bool = False
    auction_ends: Optional[int] = Field(None, description="Auction end, ms since epoch")
    starting_bid: Optional[float] = Field(None, ge=0)
    current_bid: Optional[float] = None
    bidders: List[str] = []

    # Authentication
    is_authentication_available: bool = False
    authentication_status: AuthenticationStatus = "NONE"

class ProductCreate(BaseModel):
    title: str
    description: str = ""
    price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    image_urls: List[str] = []
    category: str
    dynamic_attributes: Dict[str, Any] = {}
    weight: Optional[int] = Field(None, ge=0)
    is_auction: bool = False
    auction_ends: Optional[int] = None
    starting_bid: Optional[float] = Field(None, ge=0)
    is_authentication_available: bool = False

class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    image_urls: Optional[List[str]] = None
    category: Optional[str] = None
    dynamic_attributes: Optional[Dict[str, Any]] = None
    weight: Optional[int] = Field(None, ge=0)
    is_promoted: Optional[bool] = None

class ProductFilters(BaseModel):
    category: Optional[str] = None
    special_filter: Optional[Literal["sold", "verified"]] = None
    dynamic: Dict[str, List[str]] = {}
    sort_by: Optional[Literal["priceAsc", "priceDesc", "newest"]] = None

class BidPayload(BaseModel):
    amount: float = Field(..., gt=0)

# -----------------------------
# Orders
# -----------------------------

PaymentMethod = Literal["ESCROW", "DIRECT"]
ShippingMethod = Literal["NOVA_POSHTA", "UKRPOSHTA"]

class OrderItem(BaseModel):
    product_id: str
    title: str
    price: float = Field(..., ge=0, description="Price per item at the time of purchase")
    quantity: int = Field(..., ge=1)
    purchase_type: Literal["RETAIL", "WHOLESALE"] = "RETAIL"
    variant: Optional[Dict[str, Any]] = None

class StatusEvent(BaseModel):
    status: OrderStatus
    action: Optional[OrderAction] = None
    timestamp: int
    comment: Optional[str] = None

class Order(BaseModel):
    """
    Orders collection schema
    Collection: "order"
    """
    buyer_id: str
    seller_id: str
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PAID
    order_date: int = Field(..., description="ms since epoch")
    shipping_address: ShippingAddress
    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    tracking_number: Optional[str] = None
    transaction_hash: Optional[str] = None
    authentication_requested: bool = False
    authentication_events: List[StatusEvent] = []
    status_history: List[StatusEvent] = []
    dispute_id: Optional[str] = None
    promo_code: Optional[str] = None
    discount_amount: float = 0

class CartItem(BaseModel):
    product_id: str
    seller_id: str
    title: str = ""
    quantity: int = Field(..., ge=1)
    price_at_time_of_addition: float = Field(..., ge=0)
    purchase_type: Literal["RETAIL", "WHOLESALE"] = "RETAIL"
    variant: Optional[Dict[str, Any]] = None
    weight: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, description="Filled in from the product on the server")

class CreateOrdersPayload(BaseModel):
    cart_items: List[CartItem] = Field(..., min_length=1)
    payment_method: PaymentMethod
    shipping_method: ShippingMethod
    shipping_address: ShippingAddress
    transaction_hash: Optional[str] = None
    authentication_requested: bool = False
    promo_codes: Dict[str, str] = Field({}, description="seller_id -> promo code")

class ShippingCostPayload(BaseModel):
    items: List[CartItem]
    method: ShippingMethod

class TransitionPayload(BaseModel):
    action: OrderAction
    comment: Optional[str] = None

# -----------------------------
# Disputes
# -----------------------------

DisputeStatus = Literal["OPEN", "UNDER_REVIEW", "RESOLVED_BUYER", "RESOLVED_SELLER"]

class DisputeMessage(BaseModel):
    id: str
    sender_id: str
    sender_name: str
    sender_avatar: Optional[str] = None
    timestamp: int
    text: Optional[str] = None
    image_url: Optional[str] = None

class Dispute(BaseModel):
    """
    Disputes collection schema
    Collection: "dispute"; order_id doubles as the dispute id
    """
    order_id: str
    buyer_id: str
    seller_id: str
    status: DisputeStatus = "OPEN"
    messages: List[DisputeMessage] = []
    resolution: Optional[str] = None

class DisputeMessagePayload(BaseModel):
    text: Optional[str] = None
    image_url: Optional[str] = None

class OpenDisputePayload(BaseModel):
    reason: str = Field(..., min_length=1)
    image_url: Optional[str] = None

class ResolveDisputePayload(BaseModel):
    in_favor_of: Literal["buyer", "seller"]
    resolution: str = Field(..., min_length=1)

# -----------------------------
# Promo codes
# -----------------------------

DiscountType = Literal["PERCENTAGE", "FIXED_AMOUNT"]
PromoScope = Literal["ENTIRE_ORDER", "CATEGORY", "SPECIFIC_PRODUCTS"]

class PromoCode(BaseModel):
    """
    Seller promo codes
    Collection: "promocode"
    """
    code: str = Field(..., description="Stored upper-case, unique per seller")
    seller_id: str
    is_active: bool = True
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0, description="Percent or USDT depending on discount_type")
    scope: PromoScope = "ENTIRE_ORDER"
    applicable_category: Optional[str] = None
    applicable_product_ids: List[str] = []
    min_purchase_amount: Optional[float] = Field(None, ge=0, description="Minimum subtotal of the seller's items")
    valid_from: Optional[int] = None
    valid_until: Optional[int] = None
    max_uses: Optional[int] = Field(None, ge=1)
    uses: int = 0

class CreatePromoCodePayload(BaseModel):
    code: str = Field(..., min_length=1)
    is_active: bool = True
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0)
    scope: PromoScope = "ENTIRE_ORDER"
    applicable_category: Optional[str] = None
    applicable_product_ids: List[str] = []
    min_purchase_amount: Optional[float] = Field(None, ge=0)
    valid_from: Optional[int] = None
    valid_until: Optional[int] = None
    max_uses: Optional[int] = Field(None, ge=1)

class ValidatePromoCodePayload(BaseModel):
    code: str = Field(..., min_length=1)
    seller_id: str
    items: List[CartItem] = Field(..., min_length=1)

# -----------------------------
# Reviews
# -----------------------------

class ReviewAttachment(BaseModel):
    type: Literal["image", "video"] = "image"
    url: str

class Review(BaseModel):
    """
    Product reviews
    Collection: "review"
    """
    product_id: str
    order_id: str
    seller_id: str
    author_id: str
    author_name: str
    author_avatar: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    text: str = ""
    attachments: List[ReviewAttachment] = []
    timestamp: int

class CreateReviewPayload(BaseModel):
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    text: str = ""
    attachments: List[ReviewAttachment] = []

# -----------------------------
# Collections
# -----------------------------

class Collection(BaseModel):
    """
    Named product collections a user saves
    Collection: "collection"
    """
    user_id: str
    name: str
    product_ids: List[str] = []

class CreateCollectionPayload(BaseModel):
    name: str = Field(..., min_length=1)

class CollectionProductPayload(BaseModel):
    product_id: str

# -----------------------------
# Governance
# -----------------------------

ProposalStatus = Literal["ACTIVE", "PASSED", "REJECTED", "EXECUTED"]
VoteChoice = Literal["FOR", "AGAINST"]

class Proposal(BaseModel):
    """
    DAO proposals collection schema
    Collection: "proposal"
    """
    title: str
    description: str
    proposer_id: str
    status: ProposalStatus = "ACTIVE"
    created_at_ms: int
    ends_at: int = Field(..., description="Voting deadline, ms since epoch")
    votes_for: int = 0
    votes_against: int = 0
    voters: Dict[str, VoteChoice] = {}

class CreateProposalPayload(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    ends_at: int

class VotePayload(BaseModel):
    choice: VoteChoice

# -----------------------------
# Auth
# -----------------------------

class TelegramInitDataPayload(BaseModel):
    init_data: str = Field(..., min_length=1)

class TelegramWidgetPayload(BaseModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    photo_url: Optional[str] = None
    auth_date: int
    hash: str
