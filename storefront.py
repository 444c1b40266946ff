"""
Public storefront endpoints: contact form, product reviews and wishlists.

Shoppers are not sellers and do not authenticate through the dashboard;
they identify themselves with a customer id in the request.
"""
import logging
from datetime import datetime

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from errors import Conflict, InvalidInput, NotFound
from models import db, Customer, CustomerMessage, Product, Review, StoreSettings, Wishlist
from schemas import ContactInput, ReviewCreate, ReviewUpdate, WishlistInput, parse_body

log = logging.getLogger("profitably.storefront")

bp = Blueprint("storefront", __name__)


def _get_customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    return customer


def average_rating(ratings) -> float:
    """Mean rating rounded to one decimal, 0 when there are none."""
    ratings = list(ratings)
    if not ratings:
        return 0.0
    return round(sum(ratings) / len(ratings), 1)


# -----------------------------
# Contact
# -----------------------------
@bp.post("/store/<slug>/contact")
def submit_contact(slug):
    data = parse_body(ContactInput, request.get_data())

    store = StoreSettings.query.filter_by(store_slug=slug).first()
    if store is None:
        raise NotFound("Store not found")

    msg = CustomerMessage(
        user_id=store.user_id,
        customer_name=data.name,
        customer_email=data.email,
        order_number=data.order_number or None,
        subject=data.subject,
        message=data.message,
        status="new",
    )
    db.session.add(msg)
    db.session.commit()
    log.info("New customer message %s for store %s", msg.id, slug)
    return jsonify({"success": True, "id": msg.id}), 201


# -----------------------------
# Reviews
# -----------------------------
@bp.get("/reviews")
def get_reviews():
    product_id = request.args.get("productId", type=int)
    customer_id = request.args.get("customerId", type=int)

    if customer_id is not None and product_id is not None:
        review = Review.query.filter_by(customer_id=customer_id, product_id=product_id).first()
        return jsonify({"review": review.to_dict() if review else None})

    if product_id is None:
        raise InvalidInput("Product ID required")

    reviews = (
        Review.query
        .filter_by(product_id=product_id, is_approved=True)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
    return jsonify({
        "reviews": [r.to_dict() for r in reviews],
        "averageRating": average_rating(r.rating for r in reviews),
        "totalReviews": len(reviews),
    })


@bp.post("/reviews")
def create_review():
    data = parse_body(ReviewCreate, request.get_data())

    product = db.session.get(Product, data.product_id)
    if product is None or not product.is_published:
        raise NotFound("Product not found")
    _get_customer(data.customer_id)

    existing = Review.query.filter_by(customer_id=data.customer_id, product_id=data.product_id).first()
    if existing is not None:
        raise InvalidInput("You have already reviewed this product")

    review = Review(
        product_id=data.product_id,
        customer_id=data.customer_id,
        order_id=data.order_id or None,
        rating=data.rating,
        title=data.title or None,
        content=data.content,
        # TODO: verify the order against checkout records once orders are stored here
        is_verified_purchase=bool(data.order_id),
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise InvalidInput("You have already reviewed this product") from exc
    return jsonify({"review": review.to_dict()}), 201


@bp.patch("/reviews")
def update_review():
    data = parse_body(ReviewUpdate, request.get_data())

    review = Review.query.filter_by(id=data.review_id, customer_id=data.customer_id).first()
    if review is None:
        raise NotFound("Review not found")

    fields = data.model_dump(exclude_unset=True, include={"rating", "title", "content"})
    for k, v in fields.items():
        if k in ("rating", "content") and v is None:
            continue
        setattr(review, k, v)
    review.updated_at = datetime.utcnow()
    db.session.commit()
    return jsonify({"review": review.to_dict()})


@bp.delete("/reviews")
def delete_review():
    review_id = request.args.get("reviewId", type=int)
    customer_id = request.args.get("customerId", type=int)
    if review_id is None or customer_id is None:
        raise InvalidInput("Review ID and Customer ID required")

    review = Review.query.filter_by(id=review_id, customer_id=customer_id).first()
    if review is not None:
        db.session.delete(review)
        db.session.commit()
    return jsonify({"message": "Review deleted"})


# -----------------------------
# Wishlist
# -----------------------------
@bp.get("/wishlist")
def get_wishlist():
    customer_id = request.args.get("customerId", type=int)
    product_id = request.args.get("productId", type=int)
    if customer_id is None:
        raise InvalidInput("Customer ID required")

    if product_id is not None:
        exists = Wishlist.query.filter_by(customer_id=customer_id, product_id=product_id).first() is not None
        return jsonify({"inWishlist": exists})

    rows = (
        Wishlist.query
        .filter_by(customer_id=customer_id)
        .order_by(Wishlist.created_at.desc(), Wishlist.id.desc())
        .all()
    )
    items = []
    for w in rows:
        p = w.product
        items.append(
            {
                "id": w.id,
                "created_at": w.created_at.isoformat() if w.created_at else None,
                "product": {
                    "id": p.id,
                    "title": p.title,
                    "slug": p.slug,
                    "price": p.price,
                    "compare_at_price": p.compare_at_price,
                    "is_published": p.is_published,
                    "user_id": p.user_id,
                    "images": [img.to_dict() for img in p.images],
                    "quantity_on_hand": p.item.quantity_on_hand if p.item else 0,
                },
            }
        )
    return jsonify({"wishlistItems": items})


@bp.post("/wishlist")
def add_to_wishlist():
    data = parse_body(WishlistInput, request.get_data())

    existing = Wishlist.query.filter_by(customer_id=data.customer_id, product_id=data.product_id).first()
    if existing is not None:
        return jsonify({"message": "Already in wishlist", "id": existing.id})

    _get_customer(data.customer_id)
    if db.session.get(Product, data.product_id) is None:
        raise NotFound("Product not found")

    entry = Wishlist(customer_id=data.customer_id, product_id=data.product_id)
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Already in wishlist") from exc
    return jsonify({"message": "Added to wishlist", "id": entry.id}), 201


@bp.delete("/wishlist")
def remove_from_wishlist():
    customer_id = request.args.get("customerId", type=int)
    product_id = request.args.get("productId", type=int)
    if customer_id is None or product_id is None:
        raise InvalidInput("Customer ID and Product ID required")

    Wishlist.query.filter_by(customer_id=customer_id, product_id=product_id).delete()
    db.session.commit()
    return jsonify({"message": "Removed from wishlist"})
