import logging
import math

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import Conflict, NotFound, PersistenceFailure
from models import db, Item, ShoppingListEntry

log = logging.getLogger("profitably.shopping")

_PRIORITY_ORDER = case(
    {"high": 0, "medium": 1, "low": 2},
    value=ShoppingListEntry.priority,
    else_=3,
)


def list_entries(owner_id: int):
    """Open (unpurchased) entries, high priority first, then newest."""
    return (
        ShoppingListEntry.query
        .filter_by(user_id=owner_id, is_purchased=False)
        .order_by(_PRIORITY_ORDER, ShoppingListEntry.created_at.desc(), ShoppingListEntry.id.desc())
        .all()
    )


def add_entry(owner_id: int, data) -> ShoppingListEntry:
    if data.item_id is not None:
        item = Item.query.filter_by(id=data.item_id, user_id=owner_id).first()
        if item is None:
            raise NotFound("Item not found")

    entry = ShoppingListEntry(
        user_id=owner_id,
        item_id=data.item_id,
        item_name=data.item_name,
        last_purchase_price=data.last_purchase_price,
        last_purchase_location=data.last_purchase_location or None,
        priority=data.priority,
        reason=data.reason,
        target_quantity=data.target_quantity,
        max_price=data.max_price,
        notes=data.notes or None,
    )
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict("Item already in shopping list") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Error adding to shopping list")
        raise PersistenceFailure("Failed to add item") from exc
    return entry


def remove_entry(owner_id: int, entry_id: int) -> None:
    entry = ShoppingListEntry.query.filter_by(id=entry_id, user_id=owner_id).first()
    if entry is None:
        raise NotFound("Shopping list item not found")
    db.session.delete(entry)
    db.session.commit()


def restock_alerts(owner_id: int, threshold: int):
    """
    Items that have sold before and are down to `threshold` units or fewer.
    Items already sitting on the shopping list are left out.
    """
    listed = (
        select(ShoppingListEntry.item_id)
        .where(ShoppingListEntry.user_id == owner_id)
        .where(ShoppingListEntry.is_purchased.is_(False))
        .where(ShoppingListEntry.item_id.isnot(None))
    )

    items = (
        Item.query
        .filter(Item.user_id == owner_id)
        .filter(Item.is_archived.is_(False))
        .filter(Item.quantity_sold > 0)
        .filter(Item.quantity_on_hand <= threshold)
        .filter(Item.id.not_in(listed))
        .order_by(Item.quantity_on_hand.asc(), Item.quantity_sold.desc(), Item.id.asc())
        .all()
    )

    alerts = []
    for it in items:
        out_of_stock = it.quantity_on_hand == 0
        alerts.append(
            {
                "item_id": it.id,
                "name": it.name,
                "category": it.category,
                "quantity_on_hand": it.quantity_on_hand,
                "purchase_price": it.purchase_price,
                "purchase_location": it.purchase_location,
                "times_sold": it.quantity_sold,
                "priority": "high" if out_of_stock else "medium",
                "reason": "out_of_stock" if out_of_stock else "low_stock",
                "suggested_quantity": max(1, math.ceil(it.quantity_sold / 30)),
            }
        )
    return alerts


def mark_shopping_item_purchased(owner_id: int, data) -> int:
    """
    Turn a shopping list entry into a new inventory batch.

    The new item takes the entry's name (and the linked item's category and
    SKU), the price actually paid as its cost, and `quantity` units on hand.
    The entry is deleted in the same commit. Returns the new item id.
    """
    entry = ShoppingListEntry.query.filter_by(
        id=data.shopping_list_id, user_id=owner_id, is_purchased=False
    ).first()
    if entry is None:
        raise NotFound("Shopping list item not found")

    source = entry.item
    item = Item(
        user_id=owner_id,
        name=entry.item_name,
        category=source.category if source is not None else None,
        sku=source.sku if source is not None else None,
        purchase_price=data.actual_price,
        purchase_location=data.actual_location,
        purchase_date=data.purchase_date,
        quantity_purchased=data.quantity,
        quantity_on_hand=data.quantity,
        quantity_sold=0,
    )

    try:
        db.session.add(item)
        db.session.delete(entry)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Error marking shopping list item %s as purchased", data.shopping_list_id)
        raise PersistenceFailure("Failed to mark item as purchased") from exc

    log.info("Shopping list item %s purchased: new item %s with %s units",
             data.shopping_list_id, item.id, data.quantity)
    return item.id
