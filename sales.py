"""
Sale recording and the item quantity bookkeeping that goes with it.

Every mutation runs as one unit of work on the session: look up the item,
check stock, move units between quantity_on_hand and quantity_sold with a
single relative UPDATE, write the sale, commit. Stock is consumed with an
UPDATE guarded by `quantity_on_hand >= n` and the affected row count is
checked, so two concurrent sales of the last unit cannot both succeed.
"""
import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from errors import Conflict, InsufficientStock, InvalidInput, NotFound, PersistenceFailure
from models import db, Item, Sale

log = logging.getLogger("profitably.sales")


def compute_profit(sale_price, purchase_price, quantity_sold, platform_fees=0.0, shipping_cost=0.0, other_fees=0.0):
    """Return (gross_profit, net_profit, profit_margin) for one sale."""
    gross = (sale_price - purchase_price) * quantity_sold
    net = gross - platform_fees - shipping_cost - other_fees
    # gate on price only: a $0 sale has margin 0 whatever the loss
    margin = (net / (sale_price * quantity_sold)) * 100 if sale_price > 0 else 0.0
    return gross, net, margin


def find_item(owner_id: int, item_id: int) -> Item:
    item = Item.query.filter_by(id=item_id, user_id=owner_id).first()
    if item is None:
        raise NotFound("Item not found")
    return item


def find_sale(owner_id: int, sale_id: int) -> Sale:
    sale = Sale.query.filter_by(id=sale_id, user_id=owner_id).first()
    if sale is None:
        raise NotFound("Sale not found")
    return sale


def adjust_item_quantities(item_id: int, on_hand_delta: int, sold_delta: int) -> bool:
    """
    Relative update of an item's counters inside the current transaction.

    When on_hand_delta is negative the row only changes if enough stock is
    left. Returns False when no row was updated.
    """
    stmt = (
        update(Item)
        .where(Item.id == item_id)
        .values(
            quantity_on_hand=Item.quantity_on_hand + on_hand_delta,
            quantity_sold=Item.quantity_sold + sold_delta,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if on_hand_delta < 0:
        stmt = stmt.where(Item.quantity_on_hand >= -on_hand_delta)

    result = db.session.execute(stmt)
    return result.rowcount == 1


def _on_hand_now(item_id: int) -> int:
    value = db.session.query(Item.quantity_on_hand).filter(Item.id == item_id).scalar()
    return int(value or 0)


def _item_for_sale(sale) -> Item:
    item = db.session.get(Item, sale.item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def _profit_for(data, purchase_price: float):
    profit = compute_profit(
        data.sale_price,
        purchase_price,
        data.quantity_sold,
        data.platform_fees,
        data.shipping_cost,
        data.other_fees,
    )
    if not all(math.isfinite(v) for v in profit):
        raise InvalidInput("Sale amounts are too large")
    return profit


def _apply_fields(sale: Sale, data, profit):
    gross, net, margin = profit
    sale.platform = data.platform
    sale.sale_price = data.sale_price
    sale.sale_date = data.sale_date
    sale.quantity_sold = data.quantity_sold
    sale.platform_fees = data.platform_fees
    sale.shipping_cost = data.shipping_cost
    sale.other_fees = data.other_fees
    sale.notes = data.notes
    sale.gross_profit = gross
    sale.net_profit = net
    sale.profit_margin = margin


def record_sale(owner_id: int, data) -> Sale:
    """Create a sale and move its units from on-hand to sold."""
    item = find_item(owner_id, data.item_id)

    if item.quantity_on_hand < data.quantity_sold:
        log.warning("Sale rejected for item %s: wanted %s, on hand %s",
                    item.id, data.quantity_sold, item.quantity_on_hand)
        raise InsufficientStock(
            f"Only {item.quantity_on_hand} units available",
            available=item.quantity_on_hand,
            requested=data.quantity_sold,
        )

    profit = _profit_for(data, float(item.purchase_price or 0.0))
    item_id = item.id

    try:
        if not adjust_item_quantities(item_id, -data.quantity_sold, data.quantity_sold):
            # someone else sold units between our read and the update
            db.session.rollback()
            available = _on_hand_now(item_id)
            raise InsufficientStock(
                f"Only {available} units available",
                available=available,
                requested=data.quantity_sold,
            )

        sale = Sale(user_id=owner_id, item_id=item_id, is_synced_from_api=False)
        _apply_fields(sale, data, profit)
        db.session.add(sale)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Error creating sale for item %s", item_id)
        raise PersistenceFailure("Failed to create sale") from exc

    log.info("Recorded sale %s: %s x item %s on %s", sale.id, sale.quantity_sold, item_id, sale.platform)
    return sale


def update_sale(owner_id: int, sale_id: int, data) -> Sale:
    """
    Replace a sale's mutable fields and reconcile the quantity change.

    Profit is recomputed against the item's current purchase price. Growing
    the quantity needs the extra units on hand; shrinking always succeeds.
    The sale row only changes if its quantity is still the one the diff was
    computed from, so two edits of the same sale cannot both move stock.
    """
    sale = find_sale(owner_id, sale_id)
    item = _item_for_sale(sale)

    old_quantity = sale.quantity_sold
    quantity_diff = data.quantity_sold - old_quantity
    if quantity_diff > 0 and item.quantity_on_hand < quantity_diff:
        log.warning("Sale %s update rejected: needs %s more, on hand %s",
                    sale.id, quantity_diff, item.quantity_on_hand)
        raise InsufficientStock(
            f"Not enough stock. You need {quantity_diff} more, but only have {item.quantity_on_hand}.",
            available=item.quantity_on_hand,
            requested=quantity_diff,
        )

    profit = _profit_for(data, float(item.purchase_price or 0.0))
    item_id = item.id

    try:
        claimed = db.session.execute(
            update(Sale)
            .where(Sale.id == sale_id, Sale.quantity_sold == old_quantity)
            .values(quantity_sold=data.quantity_sold, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            db.session.rollback()
            log.warning("Sale %s changed while being updated, refusing stale edit", sale_id)
            raise Conflict("Sale was changed by another request. Reload and try again.")

        if quantity_diff != 0 and not adjust_item_quantities(item_id, -quantity_diff, quantity_diff):
            db.session.rollback()
            available = _on_hand_now(item_id)
            raise InsufficientStock(
                f"Not enough stock. You need {quantity_diff} more, but only have {available}.",
                available=available,
                requested=quantity_diff,
            )

        _apply_fields(sale, data, profit)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Error updating sale %s", sale_id)
        raise PersistenceFailure("Failed to update sale") from exc

    log.info("Updated sale %s (quantity change %+d)", sale_id, quantity_diff)
    return sale


def delete_sale(owner_id: int, sale_id: int) -> None:
    """Delete a sale and put its units back on hand."""
    sale = find_sale(owner_id, sale_id)
    quantity = sale.quantity_sold
    item_id = sale.item_id

    try:
        if not adjust_item_quantities(item_id, quantity, -quantity):
            log.warning("Sale %s references missing item %s, deleting sale only", sale_id, item_id)
        db.session.delete(sale)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Error deleting sale %s", sale_id)
        raise PersistenceFailure("Failed to delete sale") from exc

    log.info("Deleted sale %s, restored %s units to item %s", sale_id, quantity, item_id)


def list_sales(owner_id: int):
    return (
        Sale.query.filter_by(user_id=owner_id)
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .all()
    )


def parse_date(value):
    if not value:
        return None
    v = value.strip()
    if not v:
        return None
    try:
        return datetime.strptime(v, "%Y-%m-%d").date()
    except ValueError:
        return None


def resolve_range(range_key, start_s=None, end_s=None, today=None):
    """Turn a named reporting range into (range_key, start_date, end_date)."""
    range_key = (range_key or "all").strip().lower()
    today = today or datetime.utcnow().date()

    start_date = None
    end_date = None

    if range_key == "30d":
        start_date = today - timedelta(days=30)
        end_date = today
    elif range_key == "90d":
        start_date = today - timedelta(days=90)
        end_date = today
    elif range_key == "this_month":
        start_date = today.replace(day=1)
        end_date = today
    elif range_key == "last_month":
        first_this_month = today.replace(day=1)
        last_month_end = first_this_month - timedelta(days=1)
        start_date = last_month_end.replace(day=1)
        end_date = last_month_end
    elif range_key == "this_year":
        start_date = today.replace(month=1, day=1)
        end_date = today
    elif range_key == "last_year":
        start_date = today.replace(year=today.year - 1, month=1, day=1)
        end_date = today.replace(year=today.year - 1, month=12, day=31)
    elif range_key == "custom":
        start_date = parse_date(start_s)
        end_date = parse_date(end_s)
        if start_date and end_date and start_date > end_date:
            start_date, end_date = end_date, start_date
    else:
        range_key = "all"

    return range_key, start_date, end_date


def sales_summary(owner_id: int, start_date=None, end_date=None) -> dict:
    """Revenue, profit and unit totals, overall and per platform."""
    filters = [Sale.user_id == owner_id]
    if start_date:
        filters.append(Sale.sale_date >= start_date)
    if end_date:
        filters.append(Sale.sale_date <= end_date)

    revenue_expr = Sale.sale_price * Sale.quantity_sold

    totals = (
        db.session.query(
            func.coalesce(func.sum(revenue_expr), 0.0).label("revenue"),
            func.coalesce(func.sum(Sale.net_profit), 0.0).label("profit"),
            func.coalesce(func.sum(Sale.quantity_sold), 0).label("units"),
            func.avg(Sale.profit_margin).label("avg_margin"),
            func.count(Sale.id).label("sale_count"),
        )
        .filter(*filters)
        .one()
    )

    rows = (
        db.session.query(
            Sale.platform.label("platform"),
            func.coalesce(func.sum(revenue_expr), 0.0).label("revenue"),
            func.coalesce(func.sum(Sale.net_profit), 0.0).label("profit"),
            func.coalesce(func.sum(Sale.quantity_sold), 0).label("units"),
        )
        .filter(*filters)
        .group_by(Sale.platform)
        .all()
    )

    by_platform = [
        {
            "platform": r.platform,
            "revenue": float(r.revenue or 0.0),
            "profit": float(r.profit or 0.0),
            "sales": int(r.units or 0),
        }
        for r in rows
    ]
    by_platform.sort(key=lambda x: (x["revenue"], x["profit"]), reverse=True)

    return {
        "total_revenue": float(totals.revenue or 0.0),
        "total_profit": float(totals.profit or 0.0),
        "total_sales": int(totals.units or 0),
        "sale_count": int(totals.sale_count or 0),
        "avg_profit_margin": float(totals.avg_margin) if totals.avg_margin is not None else 0.0,
        "by_platform": by_platform,
    }
