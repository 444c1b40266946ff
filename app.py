import logging
import os
import re
from datetime import datetime
from functools import wraps

import click
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_httpauth import HTTPBasicAuth
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash, generate_password_hash

import sales as sales_engine
import shopping
from errors import Conflict, InvalidInput, NotFound, ProfitablyError
from logging_setup import setup_logger
from models import (
    db,
    CustomerMessage,
    Item,
    Product,
    ProductImage,
    Profile,
    Review,
    ReviewReply,
    StoreSettings,
)
from schemas import (
    MessageStatusInput,
    ModerationInput,
    ProductCreate,
    ProductUpdate,
    PurchaseInput,
    ReplyInput,
    SaleCreate,
    SaleReplace,
    ShoppingEntryCreate,
    StoreSettingsCreate,
    StoreSettingsUpdate,
    parse_body,
)
from storefront import bp as storefront_bp

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

PRODUCT_FIELDS = (
    "title",
    "description",
    "price",
    "compare_at_price",
    "weight_oz",
    "requires_shipping",
    "is_published",
    "seo_title",
    "seo_description",
)

# columns a PATCH may change but never clear
PRODUCT_REQUIRED_FIELDS = ("title", "price", "weight_oz", "requires_shipping", "is_published")
STORE_REQUIRED_FIELDS = ("store_name", "store_slug", "flat_shipping_rate", "processing_days", "is_active")

log = logging.getLogger("profitably.app")


def slugify(title: str) -> str:
    """'Vintage Levi's 501 (W32)' -> 'vintage-levi-s-501-w32'"""
    return re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")


def validate_slug(slug: str):
    if not SLUG_RE.match(slug or ""):
        raise InvalidInput("Slug must be lowercase letters, numbers, and hyphens only")


def ensure_slug_available(slug: str, owner_id: int):
    taken = (
        StoreSettings.query
        .filter(StoreSettings.store_slug == slug)
        .filter(StoreSettings.user_id != owner_id)
        .first()
    )
    if taken is not None:
        raise Conflict("This store slug is already taken")


def reject_nulls(updates: dict, fields):
    for field in fields:
        if field in updates and updates[field] is None:
            raise InvalidInput(f"{field} cannot be empty")


def replace_product_images(product: Product, images, default_alt: str):
    product.images.clear()
    for index, img in enumerate(images):
        product.images.append(
            ProductImage(image_url=img.url, alt_text=img.alt or default_alt, position=index)
        )


def current_owner_id() -> int:
    return g.profile.id


def create_app(test_config=None):
    load_dotenv()

    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-change-me")

    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get(
        "SQLALCHEMY_DATABASE_URI",
        "sqlite:///profitably.db"
    )
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config["AUTH_MODE"] = (os.environ.get("AUTH_MODE", "off") or "off").lower()
    app.config["DEV_USER_ID"] = int(os.environ.get("DEV_USER_ID", "1"))

    # Restock alerts fire at or below this many units on hand
    app.config["RESTOCK_THRESHOLD"] = int(os.environ.get("RESTOCK_THRESHOLD", "2"))
    app.config["DEFAULT_FLAT_SHIPPING_RATE"] = float(os.environ.get("DEFAULT_FLAT_SHIPPING_RATE", "5.0"))  # $
    app.config["DEFAULT_PROCESSING_DAYS"] = int(os.environ.get("DEFAULT_PROCESSING_DAYS", "2"))

    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO").upper()
    app.config["LOG_DIR"] = os.environ.get("LOG_DIR", "logs")

    if test_config:
        app.config.update(test_config)

    setup_logger(log_level=app.config["LOG_LEVEL"], log_dir=app.config["LOG_DIR"])

    db.init_app(app)

    with app.app_context():
        db.create_all()

        if app.config["AUTH_MODE"] == "off" and db.session.get(Profile, app.config["DEV_USER_ID"]) is None:
            db.session.add(Profile(id=app.config["DEV_USER_ID"], email="dev@localhost", full_name="Developer"))
            db.session.commit()

    app.register_blueprint(storefront_bp)

    # -----------------------------
    # Errors
    # -----------------------------
    @app.errorhandler(ProfitablyError)
    def handle_app_error(err):
        if err.status_code >= 500:
            log.error("%s: %s", type(err).__name__, err.message)
        else:
            log.warning("%s %s rejected: %s", request.method, request.path, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err):
        db.session.rollback()
        log.exception("Database error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({"error": err.description}), err.code

    # -----------------------------
    # Auth config
    # -----------------------------
    basic_auth = HTTPBasicAuth()

    @basic_auth.verify_password
    def verify_password(username, password):
        if app.config["AUTH_MODE"] != "basic":
            return None
        profile = Profile.query.filter_by(email=(username or "").strip().lower()).first()
        if profile and profile.password_hash and check_password_hash(profile.password_hash, password or ""):
            return profile
        return None

    @basic_auth.error_handler
    def auth_error(status):
        return jsonify({"error": "Unauthorized"}), status

    def auth_required(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            mode = app.config["AUTH_MODE"]

            if mode == "off":
                g.profile = db.session.get(Profile, app.config["DEV_USER_ID"])
                if g.profile is None:
                    return jsonify({"error": "Unauthorized"}), 401
                return view_func(*args, **kwargs)

            if mode == "basic":
                @basic_auth.login_required
                def guarded():
                    g.profile = basic_auth.current_user()
                    return view_func(*args, **kwargs)
                return guarded()

            return jsonify({"error": "Auth misconfigured"}), 500
        return wrapper

    @app.cli.command("create-profile")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", default=None, help="Display name")
    def create_profile(email, password, name):
        """Create a seller profile that can sign in with basic auth."""
        profile = Profile(
            email=email.strip().lower(),
            full_name=name,
            password_hash=generate_password_hash(password),
        )
        db.session.add(profile)
        db.session.commit()
        click.echo(f"Created profile #{profile.id} ({profile.email})")

    # -----------------------------
    # Inventory
    # -----------------------------
    @app.get("/items")
    @auth_required
    def list_items():
        category = request.args.get("category", "").strip()
        q = request.args.get("q", "").strip()
        include_archived = request.args.get("archived", "") == "Y"

        query = Item.query.filter(Item.user_id == current_owner_id())
        if not include_archived:
            query = query.filter(Item.is_archived.is_(False))
        if category:
            query = query.filter(Item.category == category)
        if q:
            like = f"%{q}%"
            query = query.filter(
                (Item.name.ilike(like)) |
                (Item.category.ilike(like)) |
                (Item.purchase_location.ilike(like)) |
                (Item.sku.ilike(like))
            )

        items = query.order_by(Item.id.desc()).all()
        return jsonify({"items": [it.to_dict() for it in items]})

    # -----------------------------
    # Sales
    # -----------------------------
    @app.get("/sales")
    @auth_required
    def list_sales():
        rows = sales_engine.list_sales(current_owner_id())
        return jsonify({"sales": [s.to_dict() for s in rows]})

    @app.get("/sales/summary")
    @auth_required
    def sales_summary():
        range_key, start_date, end_date = sales_engine.resolve_range(
            request.args.get("range"),
            request.args.get("start"),
            request.args.get("end"),
        )
        summary = sales_engine.sales_summary(current_owner_id(), start_date, end_date)
        summary.update(
            {
                "range": range_key,
                "start": start_date.isoformat() if start_date else "",
                "end": end_date.isoformat() if end_date else "",
            }
        )
        return jsonify(summary)

    @app.post("/sales")
    @auth_required
    def create_sale():
        data = parse_body(SaleCreate, request.get_data())
        sale = sales_engine.record_sale(current_owner_id(), data)
        return jsonify({"sale": sale.to_dict()}), 201

    @app.patch("/sales")
    @auth_required
    def replace_sale():
        data = parse_body(SaleReplace, request.get_data())
        sale = sales_engine.update_sale(current_owner_id(), data.id, data)
        return jsonify({"sale": sale.to_dict()})

    @app.delete("/sales")
    @auth_required
    def delete_sale():
        sale_id = request.args.get("id", type=int)
        if sale_id is None:
            raise InvalidInput("Sale ID is required")
        sales_engine.delete_sale(current_owner_id(), sale_id)
        return jsonify({"message": "Sale deleted successfully"})

    # -----------------------------
    # Shopping list
    # -----------------------------
    @app.get("/shopping-list")
    @auth_required
    def get_shopping_list():
        owner_id = current_owner_id()
        entries = shopping.list_entries(owner_id)

        alerts = []
        if request.args.get("include_restock") == "true":
            alerts = shopping.restock_alerts(owner_id, app.config["RESTOCK_THRESHOLD"])

        return jsonify({
            "shopping_list": [e.to_dict() for e in entries],
            "restock_alerts": alerts,
        })

    @app.post("/shopping-list")
    @auth_required
    def add_shopping_item():
        data = parse_body(ShoppingEntryCreate, request.get_data())
        entry = shopping.add_entry(current_owner_id(), data)
        return jsonify({"shopping_item": entry.to_dict()}), 201

    @app.delete("/shopping-list")
    @auth_required
    def remove_shopping_item():
        entry_id = request.args.get("id", type=int)
        if entry_id is None:
            raise InvalidInput("Shopping list item ID is required")
        shopping.remove_entry(current_owner_id(), entry_id)
        return jsonify({"message": "Item removed from shopping list"})

    @app.post("/shopping-list/purchase")
    @auth_required
    def purchase_shopping_item():
        data = parse_body(PurchaseInput, request.get_data())
        new_item_id = shopping.mark_shopping_item_purchased(current_owner_id(), data)
        return jsonify({
            "message": "Item marked as purchased and added to inventory",
            "new_item_id": new_item_id,
        })

    # -----------------------------
    # Store settings
    # -----------------------------
    @app.get("/store-settings")
    @auth_required
    def get_store_settings():
        settings = StoreSettings.query.filter_by(user_id=current_owner_id()).first()
        return jsonify({"settings": settings.to_dict() if settings else None})

    @app.post("/store-settings")
    @auth_required
    def create_store_settings():
        data = parse_body(StoreSettingsCreate, request.get_data())
        owner_id = current_owner_id()

        validate_slug(data.store_slug)
        if StoreSettings.query.filter_by(user_id=owner_id).first() is not None:
            raise InvalidInput("Store settings already exist. Use PATCH to update.")
        ensure_slug_available(data.store_slug, owner_id)

        fields = data.model_dump(exclude_none=True)
        fields.setdefault("flat_shipping_rate", app.config["DEFAULT_FLAT_SHIPPING_RATE"])
        fields.setdefault("processing_days", app.config["DEFAULT_PROCESSING_DAYS"])
        fields.setdefault("is_active", False)

        settings = StoreSettings(user_id=owner_id, **fields)
        db.session.add(settings)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise Conflict("This store slug is already taken") from exc
        log.info("Store settings created for profile %s (%s)", owner_id, settings.store_slug)
        return jsonify({"settings": settings.to_dict()}), 201

    @app.patch("/store-settings")
    @auth_required
    def update_store_settings():
        data = parse_body(StoreSettingsUpdate, request.get_data())
        owner_id = current_owner_id()

        settings = StoreSettings.query.filter_by(user_id=owner_id).first()
        if settings is None:
            raise NotFound("Store settings not found")

        updates = data.model_dump(exclude_unset=True)
        reject_nulls(updates, STORE_REQUIRED_FIELDS)
        if "store_slug" in updates:
            validate_slug(updates["store_slug"])
            ensure_slug_available(updates["store_slug"], owner_id)

        for field, value in updates.items():
            if field in StoreSettings.EDITABLE_FIELDS:
                setattr(settings, field, value)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise Conflict("This store slug is already taken") from exc
        return jsonify({"settings": settings.to_dict()})

    # -----------------------------
    # Products
    # -----------------------------
    @app.get("/products")
    @auth_required
    def list_products():
        products = (
            Product.query
            .filter_by(user_id=current_owner_id())
            .order_by(Product.created_at.desc(), Product.id.desc())
            .all()
        )
        return jsonify({"products": [p.to_dict() for p in products]})

    @app.post("/products")
    @auth_required
    def create_product():
        data = parse_body(ProductCreate, request.get_data())
        owner_id = current_owner_id()

        item = Item.query.filter_by(id=data.item_id, user_id=owner_id).first()
        if item is None:
            raise NotFound("Item not found or does not belong to user")

        product = Product(
            user_id=owner_id,
            item_id=item.id,
            title=data.title,
            slug=slugify(data.title),
            description=data.description or None,
            price=data.price,
            compare_at_price=data.compare_at_price,
            sku=item.sku,
            weight_oz=data.weight_oz or 0.0,
            requires_shipping=data.requires_shipping is not False,
            is_published=bool(data.is_published),
            seo_title=data.seo_title or None,
            seo_description=data.seo_description or None,
        )
        if data.images:
            replace_product_images(product, data.images, data.title)

        db.session.add(product)
        db.session.commit()
        return jsonify({"product": product.to_dict()}), 201

    @app.patch("/products")
    @auth_required
    def update_product():
        data = parse_body(ProductUpdate, request.get_data())

        product = Product.query.filter_by(id=data.id, user_id=current_owner_id()).first()
        if product is None:
            raise NotFound("Product not found")

        updates = data.model_dump(exclude_unset=True, include=set(PRODUCT_FIELDS))
        reject_nulls(updates, PRODUCT_REQUIRED_FIELDS)

        for field, value in updates.items():
            setattr(product, field, value)
        if updates.get("title"):
            product.slug = slugify(updates["title"])
        if data.images is not None:
            replace_product_images(product, data.images, product.title)

        db.session.commit()
        return jsonify({"product": product.to_dict()})

    @app.delete("/products")
    @auth_required
    def delete_product():
        product_id = request.args.get("id", type=int)
        if product_id is None:
            raise InvalidInput("Product ID is required")

        product = Product.query.filter_by(id=product_id, user_id=current_owner_id()).first()
        if product is None:
            raise NotFound("Product not found")

        db.session.delete(product)
        db.session.commit()
        return jsonify({"message": "Product deleted successfully"})

    # -----------------------------
    # Customer service
    # -----------------------------
    @app.get("/customer-service")
    @auth_required
    def list_messages():
        status = request.args.get("status", "").strip()
        query = CustomerMessage.query.filter_by(user_id=current_owner_id())
        if status and status != "all":
            query = query.filter(CustomerMessage.status == status)
        rows = query.order_by(CustomerMessage.created_at.desc(), CustomerMessage.id.desc()).all()
        return jsonify({"messages": [m.to_dict() for m in rows]})

    @app.post("/customer-service/update")
    @auth_required
    def update_message_status():
        data = parse_body(MessageStatusInput, request.get_data())

        msg = CustomerMessage.query.filter_by(id=data.message_id, user_id=current_owner_id()).first()
        if msg is None:
            raise NotFound("Message not found")

        msg.status = data.status
        if data.status == "resolved":
            msg.resolved_at = datetime.utcnow()
        db.session.commit()
        return jsonify({"success": True, "message": msg.to_dict()})

    # -----------------------------
    # Review replies (seller side)
    # -----------------------------
    def _seller_review(review_id):
        review = (
            Review.query
            .join(Product, Review.product_id == Product.id)
            .filter(Review.id == review_id)
            .filter(Product.user_id == current_owner_id())
            .first()
        )
        if review is None:
            raise NotFound("Review not found or unauthorized")
        return review

    @app.get("/reviews/reply")
    @auth_required
    def seller_reviews():
        reviews = (
            Review.query
            .join(Product, Review.product_id == Product.id)
            .filter(Product.user_id == current_owner_id())
            .order_by(Review.created_at.desc(), Review.id.desc())
            .all()
        )
        return jsonify({"reviews": [r.to_dict(include_product=True) for r in reviews]})

    @app.post("/reviews/reply")
    @auth_required
    def reply_to_review():
        data = parse_body(ReplyInput, request.get_data())
        review = _seller_review(data.review_id)

        if review.reply is not None:
            review.reply.content = data.content
            review.reply.updated_at = datetime.utcnow()
            db.session.commit()
            return jsonify({"reply": review.reply.to_dict(), "updated": True})

        reply = ReviewReply(review_id=review.id, user_id=current_owner_id(), content=data.content)
        db.session.add(reply)
        db.session.commit()
        return jsonify({"reply": reply.to_dict()}), 201

    @app.patch("/reviews/reply")
    @auth_required
    def moderate_review():
        data = parse_body(ModerationInput, request.get_data())
        review = _seller_review(data.review_id)

        review.is_approved = data.is_approved
        review.updated_at = datetime.utcnow()
        db.session.commit()
        return jsonify({"review": review.to_dict()})

    @app.delete("/reviews/reply")
    @auth_required
    def delete_reply():
        reply_id = request.args.get("replyId", type=int)
        if reply_id is None:
            raise InvalidInput("Reply ID required")

        reply = ReviewReply.query.filter_by(id=reply_id, user_id=current_owner_id()).first()
        if reply is None:
            raise NotFound("Reply not found or unauthorized")

        db.session.delete(reply)
        db.session.commit()
        return jsonify({"message": "Reply deleted"})

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=5055, debug=True)
