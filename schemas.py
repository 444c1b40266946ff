"""
Request bodies for the JSON API.

Bodies are validated straight from the raw JSON in strict mode: "12.50"
is not a price and 2.5 is not a quantity. Any mismatch becomes InvalidInput
before a request reaches the sales or shopping logic.
"""
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import InvalidInput

Platform = Literal["amazon", "ebay", "facebook", "mercari", "poshmark", "other"]
Priority = Literal["high", "medium", "low"]
MessageStatus = Literal["new", "in_progress", "resolved"]


class StrictBody(BaseModel):
    model_config = ConfigDict(
        strict=True,
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
    )


# -----------------------------
# Sales
# -----------------------------
class SaleFields(StrictBody):
    platform: Platform
    sale_price: float = Field(ge=0)
    sale_date: date
    quantity_sold: int = Field(gt=0)
    platform_fees: float = Field(default=0.0, ge=0)
    shipping_cost: float = Field(default=0.0, ge=0)
    other_fees: float = Field(default=0.0, ge=0)
    notes: Optional[str] = None

    @field_validator("platform_fees", "shipping_cost", "other_fees", mode="before")
    @classmethod
    def _blank_fee_is_zero(cls, v):
        return 0.0 if v is None else v

    @field_validator("notes")
    @classmethod
    def _blank_notes_are_none(cls, v):
        return v or None


class SaleCreate(SaleFields):
    item_id: int


class SaleReplace(SaleFields):
    """Full replacement of a sale's mutable fields. Omitted fees reset to 0."""
    id: int


# -----------------------------
# Shopping list
# -----------------------------
class ShoppingEntryCreate(StrictBody):
    item_id: Optional[int] = None
    item_name: str = Field(min_length=1)
    last_purchase_price: Optional[float] = Field(default=None, ge=0)
    last_purchase_location: Optional[str] = None
    priority: Priority = "medium"
    reason: str = Field(default="manual", min_length=1)
    target_quantity: int = Field(default=1, gt=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class PurchaseInput(StrictBody):
    shopping_list_id: int
    actual_price: float = Field(gt=0)
    actual_location: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    purchase_date: date


# -----------------------------
# Store settings
# -----------------------------
class StoreSettingsUpdate(StrictBody):
    store_name: Optional[str] = Field(default=None, min_length=1)
    store_slug: Optional[str] = Field(default=None, min_length=1)
    store_description: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    business_name: Optional[str] = None
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    flat_shipping_rate: Optional[float] = Field(default=None, ge=0)
    free_shipping_threshold: Optional[float] = Field(default=None, ge=0)
    ships_from_zip: Optional[str] = None
    ships_from_city: Optional[str] = None
    ships_from_state: Optional[str] = None
    processing_days: Optional[int] = Field(default=None, ge=0)
    return_policy: Optional[str] = None
    shipping_policy: Optional[str] = None
    terms_of_service: Optional[str] = None
    is_active: Optional[bool] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None


class StoreSettingsCreate(StoreSettingsUpdate):
    store_name: str = Field(min_length=1)
    store_slug: str = Field(min_length=1)


# -----------------------------
# Products
# -----------------------------
class ProductImageInput(StrictBody):
    url: str = Field(min_length=1)
    alt: Optional[str] = None


class ProductFields(StrictBody):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    compare_at_price: Optional[float] = Field(default=None, ge=0)
    weight_oz: Optional[float] = Field(default=None, ge=0)
    requires_shipping: Optional[bool] = None
    is_published: Optional[bool] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    images: Optional[List[ProductImageInput]] = None


class ProductCreate(ProductFields):
    item_id: int
    title: str = Field(min_length=1)
    price: float = Field(ge=0)


class ProductUpdate(ProductFields):
    id: int


# -----------------------------
# Customer service
# -----------------------------
class ContactInput(StrictBody):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    order_number: Optional[str] = Field(default=None, alias="orderNumber")
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)


class MessageStatusInput(StrictBody):
    message_id: int = Field(alias="messageId")
    status: MessageStatus


# -----------------------------
# Reviews / wishlist
# -----------------------------
class ReviewCreate(StrictBody):
    product_id: int = Field(alias="productId")
    customer_id: int = Field(alias="customerId")
    order_id: Optional[str] = Field(default=None, alias="orderId")
    rating: int = Field(ge=1, le=5)
    title: Optional[str] = None
    content: str = Field(min_length=1)


class ReviewUpdate(StrictBody):
    review_id: int = Field(alias="reviewId")
    customer_id: int = Field(alias="customerId")
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    title: Optional[str] = None
    content: Optional[str] = Field(default=None, min_length=1)


class ReplyInput(StrictBody):
    review_id: int = Field(alias="reviewId")
    content: str = Field(min_length=1)


class ModerationInput(StrictBody):
    review_id: int = Field(alias="reviewId")
    is_approved: bool = Field(alias="isApproved")


class WishlistInput(StrictBody):
    customer_id: int = Field(alias="customerId")
    product_id: int = Field(alias="productId")


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    if first.get("type") == "missing":
        return f"Missing required field: {loc}"
    return f"{loc}: {first['msg']}" if loc else first["msg"]


def parse_body(model, raw):
    """Validate a raw JSON request body against `model` or raise InvalidInput."""
    if not raw or not raw.strip():
        raise InvalidInput("Request body must be a JSON object")
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        details = [
            {"loc": list(e.get("loc", ())), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors()
        ]
        raise InvalidInput(_describe(exc), details=details) from exc
