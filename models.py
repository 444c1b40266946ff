from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _iso(v):
    return v.isoformat() if v else None


class Profile(db.Model):
    """A seller account. Every item, sale and store row hangs off one."""
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {"id": self.id, "email": self.email, "full_name": self.full_name}


class Item(db.Model):
    """
    One batch of purchased inventory.
    on_hand + sold == purchased while only sales touch the counters.
    """
    __tablename__ = "items"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(120), nullable=True)

    purchase_price = db.Column(db.Float, nullable=False, default=0.0)
    purchase_location = db.Column(db.String(120), nullable=True)
    purchase_date = db.Column(db.Date, nullable=True)

    quantity_purchased = db.Column(db.Integer, nullable=False, default=0)
    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)
    quantity_sold = db.Column(db.Integer, nullable=False, default=0)

    is_archived = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("quantity_on_hand >= 0", name="ck_items_on_hand_nonneg"),
        db.CheckConstraint("quantity_sold >= 0", name="ck_items_sold_nonneg"),
    )

    def summary(self):
        return {
            "id": self.id,
            "name": self.name,
            "purchase_price": self.purchase_price,
            "category": self.category,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "purchase_price": self.purchase_price,
            "purchase_location": self.purchase_location,
            "purchase_date": _iso(self.purchase_date),
            "quantity_purchased": self.quantity_purchased,
            "quantity_on_hand": self.quantity_on_hand,
            "quantity_sold": self.quantity_sold,
            "is_archived": self.is_archived,
        }


class Sale(db.Model):
    __tablename__ = "sales"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    platform = db.Column(db.String(20), nullable=False)
    sale_price = db.Column(db.Float, nullable=False)
    sale_date = db.Column(db.Date, nullable=False)
    quantity_sold = db.Column(db.Integer, nullable=False)

    platform_fees = db.Column(db.Float, nullable=False, default=0.0)
    shipping_cost = db.Column(db.Float, nullable=False, default=0.0)
    other_fees = db.Column(db.Float, nullable=False, default=0.0)

    # derived, always written together by the sales module
    gross_profit = db.Column(db.Float, nullable=False, default=0.0)
    net_profit = db.Column(db.Float, nullable=False, default=0.0)
    profit_margin = db.Column(db.Float, nullable=False, default=0.0)

    notes = db.Column(db.Text, nullable=True)
    is_synced_from_api = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    item = db.relationship("Item", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_item=True):
        out = {
            "id": self.id,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "platform": self.platform,
            "sale_price": self.sale_price,
            "sale_date": _iso(self.sale_date),
            "quantity_sold": self.quantity_sold,
            "platform_fees": self.platform_fees,
            "shipping_cost": self.shipping_cost,
            "other_fees": self.other_fees,
            "gross_profit": self.gross_profit,
            "net_profit": self.net_profit,
            "profit_margin": self.profit_margin,
            "notes": self.notes,
            "is_synced_from_api": self.is_synced_from_api,
            "created_at": _iso(self.created_at),
        }
        if include_item:
            out["item"] = self.item.summary() if self.item else None
        return out


class ShoppingListEntry(db.Model):
    __tablename__ = "shopping_list"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True)

    item_name = db.Column(db.String(255), nullable=False)
    last_purchase_price = db.Column(db.Float, nullable=True)
    last_purchase_location = db.Column(db.String(120), nullable=True)
    priority = db.Column(db.String(10), nullable=False, default="medium")
    reason = db.Column(db.String(40), nullable=False, default="manual")
    target_quantity = db.Column(db.Integer, nullable=False, default=1)
    max_price = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_purchased = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    item = db.relationship("Item")

    __table_args__ = (
        db.UniqueConstraint("user_id", "item_id", name="uq_shopping_list_user_item"),
    )

    def to_dict(self):
        item = None
        if self.item is not None:
            item = {
                "id": self.item.id,
                "name": self.item.name,
                "category": self.item.category,
                "quantity_on_hand": self.item.quantity_on_hand,
                "purchase_price": self.item.purchase_price,
                "purchase_location": self.item.purchase_location,
            }
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "last_purchase_price": self.last_purchase_price,
            "last_purchase_location": self.last_purchase_location,
            "priority": self.priority,
            "reason": self.reason,
            "target_quantity": self.target_quantity,
            "max_price": self.max_price,
            "notes": self.notes,
            "is_purchased": self.is_purchased,
            "created_at": _iso(self.created_at),
            "item": item,
        }


class StoreSettings(db.Model):
    __tablename__ = "store_settings"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, unique=True)

    store_name = db.Column(db.String(255), nullable=False)
    store_slug = db.Column(db.String(120), nullable=False, unique=True, index=True)
    store_description = db.Column(db.Text, nullable=True)
    logo_url = db.Column(db.String(500), nullable=True)
    banner_url = db.Column(db.String(500), nullable=True)

    business_name = db.Column(db.String(255), nullable=True)
    business_email = db.Column(db.String(255), nullable=True)
    business_phone = db.Column(db.String(40), nullable=True)

    flat_shipping_rate = db.Column(db.Float, nullable=False, default=5.0)
    free_shipping_threshold = db.Column(db.Float, nullable=True)
    ships_from_zip = db.Column(db.String(20), nullable=True)
    ships_from_city = db.Column(db.String(120), nullable=True)
    ships_from_state = db.Column(db.String(60), nullable=True)
    processing_days = db.Column(db.Integer, nullable=False, default=2)

    return_policy = db.Column(db.Text, nullable=True)
    shipping_policy = db.Column(db.Text, nullable=True)
    terms_of_service = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, default=False, nullable=False)
    seo_title = db.Column(db.String(255), nullable=True)
    seo_description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    EDITABLE_FIELDS = (
        "store_name",
        "store_slug",
        "store_description",
        "logo_url",
        "banner_url",
        "business_name",
        "business_email",
        "business_phone",
        "flat_shipping_rate",
        "free_shipping_threshold",
        "ships_from_zip",
        "ships_from_city",
        "ships_from_state",
        "processing_days",
        "return_policy",
        "shipping_policy",
        "terms_of_service",
        "is_active",
        "seo_title",
        "seo_description",
    )

    def to_dict(self):
        out = {"id": self.id, "user_id": self.user_id}
        for field in self.EDITABLE_FIELDS:
            out[field] = getattr(self, field)
        out["created_at"] = _iso(self.created_at)
        return out


class Product(db.Model):
    """Storefront listing backed by an inventory item."""
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Float, nullable=False)
    compare_at_price = db.Column(db.Float, nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    weight_oz = db.Column(db.Float, nullable=False, default=0.0)
    requires_shipping = db.Column(db.Boolean, default=True, nullable=False)
    is_published = db.Column(db.Boolean, default=False, nullable=False)
    seo_title = db.Column(db.String(255), nullable=True)
    seo_description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    item = db.relationship("Item")
    images = db.relationship(
        "ProductImage",
        backref="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.position",
    )
    wishlist_entries = db.relationship("Wishlist", backref="product", cascade="all, delete-orphan")
    reviews = db.relationship("Review", backref="product", cascade="all, delete-orphan")

    def to_dict(self, include_item=True):
        out = {
            "id": self.id,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "price": self.price,
            "compare_at_price": self.compare_at_price,
            "sku": self.sku,
            "weight_oz": self.weight_oz,
            "requires_shipping": self.requires_shipping,
            "is_published": self.is_published,
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "created_at": _iso(self.created_at),
            "images": [img.to_dict() for img in self.images],
        }
        if include_item and self.item is not None:
            out["item"] = {
                "id": self.item.id,
                "name": self.item.name,
                "quantity_on_hand": self.item.quantity_on_hand,
                "purchase_price": self.item.purchase_price,
                "category": self.item.category,
            }
        return out


class ProductImage(db.Model):
    __tablename__ = "product_images"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    alt_text = db.Column(db.String(255), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "image_url": self.image_url,
            "alt_text": self.alt_text,
            "position": self.position,
        }


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class CustomerMessage(db.Model):
    __tablename__ = "customer_messages"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    order_number = db.Column(db.String(64), nullable=True)
    subject = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="new")
    resolved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "order_number": self.order_number,
            "subject": self.subject,
            "message": self.message,
            "status": self.status,
            "resolved_at": _iso(self.resolved_at),
            "created_at": _iso(self.created_at),
        }


class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    order_id = db.Column(db.String(64), nullable=True)

    rating = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(255), nullable=True)
    content = db.Column(db.Text, nullable=False)
    is_verified_purchase = db.Column(db.Boolean, default=False, nullable=False)
    is_approved = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = db.relationship("Customer")
    reply = db.relationship("ReviewReply", backref="review", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_reviews_customer_product"),
    )

    def to_dict(self, include_product=False):
        out = {
            "id": self.id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "rating": self.rating,
            "title": self.title,
            "content": self.content,
            "is_verified_purchase": self.is_verified_purchase,
            "is_approved": self.is_approved,
            "created_at": _iso(self.created_at),
            "customer": {
                "id": self.customer.id,
                "full_name": self.customer.full_name,
            } if self.customer else None,
            "reply": self.reply.to_dict() if self.reply else None,
        }
        if include_product and self.product is not None:
            out["product"] = {
                "id": self.product.id,
                "title": self.product.title,
                "slug": self.product.slug,
            }
        return out


class ReviewReply(db.Model):
    __tablename__ = "review_replies"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    review_id = db.Column(db.Integer, db.ForeignKey("reviews.id"), nullable=False, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "review_id": self.review_id,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }


class Wishlist(db.Model):
    __tablename__ = "wishlists"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_wishlists_customer_product"),
    )
