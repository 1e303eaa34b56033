import os
import shutil
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

import structlog
from fastapi import Depends, FastAPI, File, Header, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import auctions
import config
import database
import disputes
import favorites
import governance
import order_status
import promocodes
import reviews
from auth import (
    InvalidSession,
    SessionService,
    TelegramAuthError,
    telegram_display_name,
    validate_init_data,
    validate_widget_data,
)
from categories import (
    DEFAULT_CATEGORIES,
    find_category_by_name,
    normalize_dynamic_attributes_for_category,
    resolve_fields_for_category,
    validate_category_tree,
    with_resolved_fields,
    without_resolved_fields,
)
from database import (
    DatabaseUnavailable,
    create_document,
    delete_document,
    find_document,
    get_document,
    get_documents,
    get_documents_by_ids,
    update_document,
)
from orders import build_orders, calculate_shipping_cost, generate_tracking_number
from products import clean_attributes, filter_products
from schemas import (
    BidPayload,
    CategorySchema,
    Collection,
    CollectionProductPayload,
    CreateCollectionPayload,
    CreateOrdersPayload,
    CreatePromoCodePayload,
    CreateProposalPayload,
    CreateReviewPayload,
    DisputeMessagePayload,
    OpenDisputePayload,
    Product,
    ProductCreate,
    ProductFilters,
    ProductUpdate,
    PromoCode,
    Proposal,
    ResolveDisputePayload,
    ShippingCostPayload,
    TelegramInitDataPayload,
    TelegramWidgetPayload,
    TransitionPayload,
    User,
    UserUpdate,
    ValidatePromoCodePayload,
    VotePayload,
)

config.configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="CryptoCraft API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")


@app.exception_handler(DatabaseUnavailable)
def database_unavailable_handler(request, exc):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def now_ms() -> int:
    return int(time.time() * 1000)


@app.get("/")
def read_root():
    return {"message": "CryptoCraft Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
            response["database_name"] = database.db.name if hasattr(database.db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    return response


# -----------------------------
# Sessions
# -----------------------------

session_service = SessionService(config.SECRET_KEY, config.SESSION_MAX_AGE)


def get_session_service() -> SessionService:
    return session_service


def get_current_user(
    authorization: Optional[str] = Header(None),
    sessions: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user_id = sessions.verify(authorization[len("Bearer "):])
    except InvalidSession as e:
        raise HTTPException(status_code=401, detail=str(e))
    user = get_document("user", user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User no longer exists")
    return user


def get_optional_user(
    authorization: Optional[str] = Header(None),
    sessions: SessionService = Depends(get_session_service),
) -> Optional[Dict[str, Any]]:
    if not authorization:
        return None
    return get_current_user(authorization, sessions)


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def get_or_404(collection: str, document_id: str) -> Dict[str, Any]:
    doc = get_document(collection, document_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"{collection.capitalize()} not found")
    return doc


# -----------------------------
# Auth: Telegram
# -----------------------------

def _telegram_bot_token() -> str:
    if not config.TELEGRAM_BOT_TOKEN:
        raise HTTPException(status_code=500, detail="TELEGRAM_BOT_TOKEN is not configured")
    return config.TELEGRAM_BOT_TOKEN


def _upsert_telegram_user(tg_user: Dict[str, Any]) -> Dict[str, Any]:
    name = telegram_display_name(tg_user)
    avatar_url = tg_user.get("photo_url")
    existing = find_document("user", {"telegram_id": int(tg_user["id"])})
    if existing:
        return update_document("user", existing["id"], {"name": name, "avatar_url": avatar_url or existing.get("avatar_url")})

    user = User(telegram_id=int(tg_user["id"]), name=name, username=tg_user.get("username"), avatar_url=avatar_url)
    user_id = create_document("user", user)
    logger.info("user_created", user_id=user_id, telegram_id=user.telegram_id)
    return get_document("user", user_id)


def _login(tg_user: Dict[str, Any], sessions: SessionService) -> Dict[str, Any]:
    user = _upsert_telegram_user(tg_user)
    logger.info("user_logged_in", user_id=user["id"])
    return {"access_token": sessions.issue(user["id"]), "user": user}


@app.post("/api/auth/telegram")
def login_with_telegram(payload: TelegramInitDataPayload, sessions: SessionService = Depends(get_session_service)):
    try:
        tg_user = validate_init_data(payload.init_data, _telegram_bot_token(), config.TELEGRAM_AUTH_MAX_AGE)
    except TelegramAuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return _login(tg_user, sessions)


@app.post("/api/auth/telegram/widget")
def login_with_telegram_widget(payload: TelegramWidgetPayload, sessions: SessionService = Depends(get_session_service)):
    try:
        tg_user = validate_widget_data(payload.model_dump(), _telegram_bot_token(), config.TELEGRAM_AUTH_MAX_AGE)
    except TelegramAuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return _login(tg_user, sessions)


# -----------------------------
# Users
# -----------------------------

@app.get("/api/users")
def list_users(limit: Optional[int] = 50):
    return get_documents("user", {}, limit)


@app.get("/api/users/me")
def get_me(user: Dict[str, Any] = Depends(get_current_user)):
    return user


@app.get("/api/users/{user_id}")
def get_user(user_id: str):
    return get_or_404("user", user_id)


@app.patch("/api/users/{user_id}")
def update_user(user_id: str, payload: UserUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    is_admin = user.get("role") == "admin"
    if user["id"] != user_id and not is_admin:
        raise HTTPException(status_code=403, detail="Cannot edit another user")
    updates = payload.model_dump(exclude_unset=True)
    privileged = {"role", "verification_level", "balance"} & set(updates)
    if privileged and not is_admin:
        raise HTTPException(status_code=403, detail=f"Admin access required for: {', '.join(sorted(privileged))}")
    get_or_404("user", user_id)
    return update_document("user", user_id, updates)


# -----------------------------
# Categories
# -----------------------------

def load_categories() -> List[CategorySchema]:
    try:
        doc = database.get_singleton("category_tree")
    except DatabaseUnavailable:
        doc = None
    if not doc:
        return DEFAULT_CATEGORIES
    return [CategorySchema.model_validate(c) for c in doc["categories"]]


@app.get("/api/categories")
def list_categories():
    return [c.model_dump() for c in with_resolved_fields(load_categories())]


@app.put("/api/categories")
def replace_categories(categories: List[CategorySchema], admin: Dict[str, Any] = Depends(require_admin)):
    categories = without_resolved_fields(categories)
    problems = validate_category_tree(categories)
    if problems:
        raise HTTPException(status_code=422, detail=problems)
    database.replace_singleton("category_tree", {"categories": [c.model_dump() for c in categories]})
    logger.info("category_tree_replaced", admin_id=admin["id"], roots=len(categories))
    return [c.model_dump() for c in categories]


@app.get("/api/categories/{name}/fields")
def category_fields(name: str):
    categories = load_categories()
    category = find_category_by_name(categories, name)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return [f.model_dump() for f in resolve_fields_for_category(categories, category)]


@app.post("/api/categories/{name}/normalize")
def normalize_attributes(name: str, attributes: Dict[str, Any]):
    categories = load_categories()
    category = find_category_by_name(categories, name)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    fields = resolve_fields_for_category(categories, category)
    return normalize_dynamic_attributes_for_category(attributes, fields)


# -----------------------------
# Products
# -----------------------------

def _require_known_category(categories: List[CategorySchema], name: str) -> None:
    if find_category_by_name(categories, name) is None:
        raise HTTPException(status_code=422, detail=f"Unknown category: {name}")


def _require_owner(product: Dict[str, Any], user: Dict[str, Any]) -> None:
    if product.get("seller_id") != user["id"] and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Only the seller can change this listing")


@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    sort_by: Optional[Literal["priceAsc", "priceDesc", "newest"]] = None,
    special_filter: Optional[Literal["sold", "verified"]] = None,
    limit: Optional[int] = None,
):
    filters = ProductFilters(category=category, sort_by=sort_by, special_filter=special_filter)
    products = filter_products(get_documents("product"), filters)
    return products[:limit] if limit else products


@app.post("/api/products/search")
def search_products(filters: ProductFilters):
    return filter_products(get_documents("product"), filters)


@app.get("/api/products/promoted")
def list_promoted_products():
    return get_documents("product", {"is_promoted": True})


@app.get("/api/auctions")
def list_auctions():
    return get_documents("product", {"is_auction": True})


@app.post("/api/products")
def create_product(payload: ProductCreate, user: Dict[str, Any] = Depends(get_current_user)):
    categories = load_categories()
    _require_known_category(categories, payload.category)
    if payload.is_auction and (payload.starting_bid is None or payload.auction_ends is None):
        raise HTTPException(status_code=422, detail="Auctions need starting_bid and auction_ends")

    product = Product(
        **payload.model_dump(exclude={"dynamic_attributes"}),
        seller_id=user["id"],
        dynamic_attributes=clean_attributes(categories, payload.category, payload.dynamic_attributes),
    )
    product_id = create_document("product", product)
    logger.info("product_created", product_id=product_id, seller_id=user["id"], category=product.category)
    return get_document("product", product_id)


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return get_or_404("product", product_id)


# Required on Product or list-valued; PATCH may not set them to null
_NON_NULLABLE_PRODUCT_FIELDS = {"title", "category", "description", "image_urls", "dynamic_attributes", "is_promoted"}


@app.patch("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    product = get_or_404("product", product_id)
    _require_owner(product, user)

    updates = payload.model_dump(exclude_unset=True)
    nulls = sorted(k for k in _NON_NULLABLE_PRODUCT_FIELDS if k in updates and updates[k] is None)
    if nulls:
        raise HTTPException(status_code=422, detail=f"Cannot clear: {', '.join(nulls)}")
    if "is_promoted" in updates and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Promotion is managed by admins")
    if "category" in updates or "dynamic_attributes" in updates:
        categories = load_categories()
        category = updates.get("category") or product["category"]
        _require_known_category(categories, category)
        raw = updates.get("dynamic_attributes", product.get("dynamic_attributes") or {})
        updates["dynamic_attributes"] = clean_attributes(categories, category, raw)
    return update_document("product", product_id, updates)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    product = get_or_404("product", product_id)
    _require_owner(product, user)
    delete_document("product", product_id)
    logger.info("product_deleted", product_id=product_id)
    return {"status": "ok"}


@app.get("/api/products/{product_id}/bids/min")
def minimum_bid(product_id: str):
    product = get_or_404("product", product_id)
    return {"min_next_bid": auctions.min_next_bid(product), "suggested": auctions.suggested_bids(product)}


@app.post("/api/products/{product_id}/bids")
def place_bid(product_id: str, payload: BidPayload, user: Dict[str, Any] = Depends(get_current_user)):
    product = get_or_404("product", product_id)
    try:
        updates = auctions.place_bid(product, payload.amount, user["id"], now_ms())
    except auctions.BidRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    return update_document("product", product_id, updates)


@app.post("/api/products/{product_id}/request-authentication")
def request_authentication(product_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    product = get_or_404("product", product_id)
    _require_owner(product, user)
    if product.get("authentication_status") in ("PENDING", "AUTHENTICATED"):
        raise HTTPException(status_code=409, detail="Authentication already requested")
    return update_document("product", product_id, {"authentication_status": "PENDING"})


# -----------------------------
# Orders
# -----------------------------

def _order_role(order: Dict[str, Any], user: Dict[str, Any]) -> Optional[str]:
    if user.get("role") == "admin":
        return "admin"
    if order["buyer_id"] == user["id"]:
        return "buyer"
    if order["seller_id"] == user["id"]:
        return "seller"
    return None


def _get_order_for(order_id: str, user: Dict[str, Any]) -> tuple:
    order = get_or_404("order", order_id)
    role = _order_role(order, user)
    if role is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order, role


def _transition(order: Dict[str, Any], role: str, action, comment: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
    if not order_status.can_perform(action, role, order["status"]):
        raise HTTPException(status_code=403, detail=f"{role} cannot perform {order_status.OrderAction(action).value}")
    try:
        updates = order_status.apply_action(order, action, comment=comment, now=now_ms())
    except order_status.InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    updates.update(extra or {})
    return update_document("order", order["id"], updates)


@app.post("/api/orders")
def create_orders(payload: CreateOrdersPayload, user: Dict[str, Any] = Depends(get_current_user)):
    for item in payload.cart_items:
        product = get_document("product", item.product_id)
        if product is None:
            raise HTTPException(status_code=404, detail=f"Product {item.product_id} not found")
        if product.get("seller_id") != item.seller_id:
            raise HTTPException(status_code=400, detail=f"Product {item.product_id} is not sold by {item.seller_id}")
        if not item.title:
            item.title = product["title"]
        item.category = product.get("category")

    promos = {}
    for seller_id, code in payload.promo_codes.items():
        promos[seller_id] = _get_promo(seller_id, code)
    try:
        orders = build_orders(payload, user["id"], now_ms(), promos)
    except promocodes.PromoRejected as e:
        raise HTTPException(status_code=400, detail=str(e))

    order_ids = []
    for order in orders:
        order_ids.append(create_document("order", order.model_dump(mode="json")))
        if order.promo_code:
            promo = promos[order.seller_id]
            update_document("promocode", promo["id"], {"uses": promo.get("uses", 0) + 1})
    logger.info("orders_created", buyer_id=user["id"], order_ids=order_ids)
    return {"success": True, "order_ids": order_ids}


@app.get("/api/orders/purchases")
def list_purchases(user: Dict[str, Any] = Depends(get_current_user)):
    return get_documents("order", {"buyer_id": user["id"]}, sort=[("order_date", -1)])


@app.get("/api/orders/sales")
def list_sales(user: Dict[str, Any] = Depends(get_current_user)):
    return get_documents("order", {"seller_id": user["id"]}, sort=[("order_date", -1)])


@app.get("/api/orders/authentication")
def list_authentication_orders(user: Dict[str, Any] = Depends(get_current_user)):
    query: Dict[str, Any] = {"authentication_requested": True}
    if user.get("role") != "admin":
        query["$or"] = [{"buyer_id": user["id"]}, {"seller_id": user["id"]}]
    return get_documents("order", query, sort=[("order_date", -1)])


@app.post("/api/orders/shipping-cost")
def shipping_cost(payload: ShippingCostPayload):
    return {"cost": calculate_shipping_cost(payload.items, payload.method)}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    order, _ = _get_order_for(order_id, user)
    return order


@app.get("/api/orders/{order_id}/actions")
def order_actions(order_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    order, role = _get_order_for(order_id, user)
    return [
        action.value
        for action in order_status.allowed_actions(order["status"])
        if order_status.can_perform(action, role, order["status"])
    ]


# Actions with side effects beyond the order document have their own routes.
_ROUTED_ACTIONS = {
    order_status.OrderAction.OPEN_DISPUTE: "/api/orders/{id}/dispute",
    order_status.OrderAction.RESOLVE_FOR_BUYER: "/api/disputes/{id}/resolve",
    order_status.OrderAction.RESOLVE_FOR_SELLER: "/api/disputes/{id}/resolve",
}


@app.post("/api/orders/{order_id}/transition")
def transition_order(order_id: str, payload: TransitionPayload, user: Dict[str, Any] = Depends(get_current_user)):
    if payload.action in _ROUTED_ACTIONS:
        raise HTTPException(status_code=400, detail=f"Use {_ROUTED_ACTIONS[payload.action]} for {payload.action.value}")
    order, role = _get_order_for(order_id, user)
    extra = None
    if payload.action == order_status.OrderAction.SHIP and not order.get("tracking_number"):
        extra = {"tracking_number": generate_tracking_number()}
    return _transition(order, role, payload.action, payload.comment, extra)


@app.post("/api/orders/{order_id}/generate-waybill")
def generate_waybill(order_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    order, role = _get_order_for(order_id, user)
    return _transition(order, role, order_status.OrderAction.SHIP, extra={"tracking_number": generate_tracking_number()})


# -----------------------------
# Disputes
# -----------------------------

def _dispute_out(dispute: Dict[str, Any]) -> Dict[str, Any]:
    return {**dispute, "id": dispute["order_id"]}


def _get_dispute_for(order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    dispute = find_document("dispute", {"order_id": order_id})
    if dispute is None:
        raise HTTPException(status_code=404, detail="Dispute not found")
    if user.get("role") != "admin" and user["id"] not in (dispute["buyer_id"], dispute["seller_id"]):
        raise HTTPException(status_code=404, detail="Dispute not found")
    return dispute


@app.post("/api/orders/{order_id}/dispute")
def open_dispute(order_id: str, payload: OpenDisputePayload, user: Dict[str, Any] = Depends(get_current_user)):
    order, role = _get_order_for(order_id, user)
    if not order_status.can_perform(order_status.OrderAction.OPEN_DISPUTE, role, order["status"]):
        raise HTTPException(status_code=403, detail="Only the buyer can open a dispute")
    try:
        order_updates, dispute = disputes.open_dispute(order, user, payload.reason, payload.image_url, now_ms())
    except order_status.InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    create_document("dispute", dispute)
    update_document("order", order_id, order_updates)
    return _dispute_out(find_document("dispute", {"order_id": order_id}))


@app.get("/api/disputes/{order_id}")
def get_dispute(order_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return _dispute_out(_get_dispute_for(order_id, user))


@app.post("/api/disputes/{order_id}/messages")
def add_dispute_message(order_id: str, payload: DisputeMessagePayload, user: Dict[str, Any] = Depends(get_current_user)):
    dispute = _get_dispute_for(order_id, user)
    try:
        updates, message = disputes.add_message(dispute, user, payload.text, payload.image_url, now_ms())
    except disputes.DisputeClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    update_document("dispute", dispute["id"], updates)
    return message


@app.post("/api/disputes/{order_id}/resolve")
def resolve_dispute(order_id: str, payload: ResolveDisputePayload, admin: Dict[str, Any] = Depends(require_admin)):
    dispute = _get_dispute_for(order_id, admin)
    order = get_or_404("order", order_id)
    try:
        dispute_updates, order_updates = disputes.resolve_dispute(dispute, order, payload.in_favor_of, payload.resolution, now_ms())
    except disputes.DisputeClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except order_status.InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    update_document("order", order_id, order_updates)
    return _dispute_out(update_document("dispute", dispute["id"], dispute_updates))


# -----------------------------
# Governance
# -----------------------------

def _settle(proposal: Dict[str, Any]) -> Dict[str, Any]:
    updates = governance.close_proposal(proposal, now_ms())
    if updates:
        return update_document("proposal", proposal["id"], updates)
    return proposal


@app.get("/api/governance/proposals")
def list_proposals():
    return [_settle(p) for p in get_documents("proposal", {}, sort=[("created_at_ms", -1)])]


@app.post("/api/governance/proposals")
def create_proposal(payload: CreateProposalPayload, user: Dict[str, Any] = Depends(get_current_user)):
    created = now_ms()
    if payload.ends_at <= created:
        raise HTTPException(status_code=422, detail="ends_at must be in the future")
    proposal = Proposal(
        title=payload.title,
        description=payload.description,
        proposer_id=user["id"],
        created_at_ms=created,
        ends_at=payload.ends_at,
    )
    proposal_id = create_document("proposal", proposal)
    logger.info("proposal_created", proposal_id=proposal_id, proposer_id=user["id"])
    return get_document("proposal", proposal_id)


@app.get("/api/governance/proposals/{proposal_id}")
def get_proposal(proposal_id: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    proposal = _settle(get_or_404("proposal", proposal_id))
    can_vote = governance.can_vote(proposal, user, now_ms()) if user else False
    return {**proposal, "can_vote": can_vote}


@app.post("/api/governance/proposals/{proposal_id}/vote")
def cast_vote(proposal_id: str, payload: VotePayload, user: Dict[str, Any] = Depends(get_current_user)):
    proposal = _settle(get_or_404("proposal", proposal_id))
    try:
        updates = governance.cast_vote(proposal, user, payload.choice, now_ms())
    except governance.VoteRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    return update_document("proposal", proposal_id, updates)


# -----------------------------
# Promo codes
# -----------------------------

def _get_promo(seller_id: str, code: str) -> Dict[str, Any]:
    promo = find_document("promocode", {"seller_id": seller_id, "code": promocodes.normalize_code(code)})
    if promo is None:
        raise HTTPException(status_code=404, detail=f"Promo code {code} not found")
    return promo


@app.post("/api/promocodes")
def create_promo_code(payload: CreatePromoCodePayload, user: Dict[str, Any] = Depends(get_current_user)):
    if payload.discount_type == "PERCENTAGE" and payload.discount_value > 100:
        raise HTTPException(status_code=422, detail="Percentage discount cannot exceed 100")
    if payload.scope == "CATEGORY" and not payload.applicable_category:
        raise HTTPException(status_code=422, detail="Category scope needs applicable_category")
    if payload.scope == "SPECIFIC_PRODUCTS" and not payload.applicable_product_ids:
        raise HTTPException(status_code=422, detail="Product scope needs applicable_product_ids")

    code = promocodes.normalize_code(payload.code)
    if find_document("promocode", {"seller_id": user["id"], "code": code}):
        raise HTTPException(status_code=409, detail=f"Promo code {code} already exists")
    promo = PromoCode(**payload.model_dump(exclude={"code"}), code=code, seller_id=user["id"])
    promo_id = create_document("promocode", promo)
    logger.info("promo_code_created", promo_id=promo_id, seller_id=user["id"], code=code)
    return get_document("promocode", promo_id)


@app.get("/api/promocodes/seller/{seller_id}")
def list_promo_codes(seller_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if user["id"] != seller_id and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Cannot view another seller's promo codes")
    return get_documents("promocode", {"seller_id": seller_id})


@app.delete("/api/promocodes/{promo_id}")
def delete_promo_code(promo_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    promo = get_or_404("promocode", promo_id)
    if promo["seller_id"] != user["id"] and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Only the seller can delete this promo code")
    delete_document("promocode", promo_id)
    return {"status": "ok"}


@app.post("/api/promocodes/validate")
def validate_promo_code(payload: ValidatePromoCodePayload):
    promo = _get_promo(payload.seller_id, payload.code)
    for item in payload.items:
        product = get_document("product", item.product_id)
        item.category = product.get("category") if product else None
    try:
        amount = promocodes.check_promo(promo, payload.seller_id, payload.items, now_ms())
    except promocodes.PromoRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "code": promo["code"],
        "discount_type": promo["discount_type"],
        "discount_value": promo["discount_value"],
        "discount_amount": amount,
    }


# -----------------------------
# Reviews
# -----------------------------

@app.post("/api/reviews")
def create_review(payload: CreateReviewPayload, user: Dict[str, Any] = Depends(get_current_user)):
    order = get_or_404("order", payload.order_id)
    try:
        review = reviews.build_review(order, user, payload, now_ms())
    except reviews.ReviewRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    if find_document("review", {"order_id": payload.order_id, "product_id": payload.product_id}):
        raise HTTPException(status_code=409, detail="This product was already reviewed for this order")

    review_id = create_document("review", review)
    ratings = [r["rating"] for r in get_documents("review", {"seller_id": review.seller_id})]
    update_document("user", review.seller_id, {"rating": reviews.average_rating(ratings)})
    return get_document("review", review_id)


@app.get("/api/reviews/product/{product_id}")
def list_product_reviews(product_id: str):
    return get_documents("review", {"product_id": product_id}, sort=[("timestamp", -1)])


@app.get("/api/reviews/user/{user_id}")
def list_seller_reviews(user_id: str):
    return get_documents("review", {"seller_id": user_id}, sort=[("timestamp", -1)])


# -----------------------------
# Wishlist & collections
# -----------------------------

@app.get("/api/wishlist")
def get_wishlist(user: Dict[str, Any] = Depends(get_current_user)):
    return get_documents_by_ids("product", user.get("wishlist") or [])


@app.put("/api/wishlist/{product_id}")
def add_to_wishlist(product_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    get_or_404("product", product_id)
    wishlist = favorites.with_product(user.get("wishlist"), product_id)
    return update_document("user", user["id"], {"wishlist": wishlist})["wishlist"]


@app.delete("/api/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    wishlist = favorites.without_product(user.get("wishlist"), product_id)
    return update_document("user", user["id"], {"wishlist": wishlist})["wishlist"]


def _get_collection_for(collection_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    collection = get_or_404("collection", collection_id)
    if not favorites.owned_by(collection, user):
        raise HTTPException(status_code=404, detail="Collection not found")
    return collection


@app.get("/api/collections")
def list_collections(user: Dict[str, Any] = Depends(get_current_user)):
    return get_documents("collection", {"user_id": user["id"]})


@app.post("/api/collections")
def create_collection(payload: CreateCollectionPayload, user: Dict[str, Any] = Depends(get_current_user)):
    collection_id = create_document("collection", Collection(user_id=user["id"], name=payload.name))
    return get_document("collection", collection_id)


@app.get("/api/collections/{collection_id}")
def get_collection(collection_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    collection = _get_collection_for(collection_id, user)
    return {"collection": collection, "products": get_documents_by_ids("product", collection["product_ids"])}


@app.post("/api/collections/{collection_id}/products")
def add_to_collection(collection_id: str, payload: CollectionProductPayload, user: Dict[str, Any] = Depends(get_current_user)):
    collection = _get_collection_for(collection_id, user)
    get_or_404("product", payload.product_id)
    product_ids = favorites.with_product(collection["product_ids"], payload.product_id)
    return update_document("collection", collection_id, {"product_ids": product_ids})


@app.delete("/api/collections/{collection_id}/products/{product_id}")
def remove_from_collection(collection_id: str, product_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    collection = _get_collection_for(collection_id, user)
    product_ids = favorites.without_product(collection["product_ids"], product_id)
    return update_document("collection", collection_id, {"product_ids": product_ids})


# -----------------------------
# Upload
# -----------------------------

@app.post("/api/upload")
def upload_file(file: UploadFile = File(...), user: Dict[str, Any] = Depends(get_current_user)):
    _, ext = os.path.splitext(file.filename or "")
    name = f"{uuid.uuid4().hex}{ext.lower()}"
    with open(os.path.join(config.UPLOAD_DIR, name), "wb") as out:
        shutil.copyfileobj(file.file, out)
    logger.info("file_uploaded", user_id=user["id"], name=name)
    return {"url": f"{config.PUBLIC_BASE_URL}/uploads/{name}"}


# -----------------------------
# Seller analytics
# -----------------------------

@app.get("/api/analytics/seller")
def seller_analytics(user: Dict[str, Any] = Depends(get_current_user)):
    if database.db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    now = datetime.now(timezone.utc)
    start_today = int(datetime(now.year, now.month, now.day, tzinfo=timezone.utc).timestamp() * 1000)
    counted = {"$nin": ["PENDING", "CANCELLED"]}

    pipeline_today = [
        {"$match": {"seller_id": user["id"], "status": counted, "order_date": {"$gte": start_today}}},
        {"$group": {"_id": None, "revenue": {"$sum": "$total"}, "orders": {"$sum": 1}}},
    ]
    today = next(iter(database.db.order.aggregate(pipeline_today)), None) or {"revenue": 0, "orders": 0}

    pipeline_top_products = [
        {"$match": {"seller_id": user["id"], "status": counted}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "title": {"$first": "$items.title"},
            "quantity": {"$sum": "$items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
        }},
        {"$sort": {"revenue": -1}},
        {"$limit": 5}
    ]
    top_products = [
        {
            "product_id": p["_id"],
            "title": p.get("title"),
            "quantity": p.get("quantity", 0),
            "revenue": round(p.get("revenue", 0), 2),
        }
        for p in database.db.order.aggregate(pipeline_top_products)
    ]

    open_disputes = database.db.dispute.count_documents(
        {"seller_id": user["id"], "status": {"$in": ["OPEN", "UNDER_REVIEW"]}}
    )
    awaiting_shipment = database.db.order.count_documents({"seller_id": user["id"], "status": "PAID"})

    return {
        "revenue_today": round(float(today.get("revenue", 0)), 2),
        "sales_today": int(today.get("orders", 0)),
        "awaiting_shipment": awaiting_shipment,
        "open_disputes": open_disputes,
        "top_products": top_products,
    }


# -----------------------------
# Seed demo data
# -----------------------------

@app.post("/api/seed")
def seed_demo_data(admin: Dict[str, Any] = Depends(require_admin)):
    if database.get_singleton("category_tree") is None:
        database.replace_singleton("category_tree", {"categories": [c.model_dump() for c in DEFAULT_CATEGORIES]})

    if database.db.product.count_documents({}) == 0:
        categories = load_categories()
        demo = [
            ProductCreate(title="Серебряное кольцо", price=45.0, category="Ювелирные изделия",
                          dynamic_attributes={"metal": "Серебро", "Вес (граммы)": "4.5"}),
            ProductCreate(title="Винтажная камера", price=120.0, category="Винтаж",
                          dynamic_attributes={"period": "1970-е"}),
            ProductCreate(title="Картина маслом", category="Искусство и коллекционирование",
                          dynamic_attributes={"artist": "Неизвестен", "year": "1998"},
                          is_auction=True, starting_bid=100.0, auction_ends=now_ms() + 3 * 24 * 3600 * 1000),
        ]
        for p in demo:
            product = Product(
                **p.model_dump(exclude={"dynamic_attributes"}),
                seller_id=admin["id"],
                dynamic_attributes=clean_attributes(categories, p.category, p.dynamic_attributes),
            )
            create_document("product", product)

    return {"status": "ok", "message": "Seeded demo data"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
