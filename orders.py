"""
Order placement

Placing an order turns the caller's requested items into one immutable
order document:

1. every product is checked for existence and sufficient stock before
   anything is written;
2. stock is reserved item by item with a conditional decrement
   (``stock >= quantity`` is part of the update filter), so two concurrent
   placements can never drive stock below zero;
3. if a reservation loses a race, or the order cannot be saved, every
   reservation already made by this request is given back;
4. the order is saved with price/name/image snapshots and the caller's whole
   cart is cleared.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from auth import ensure_owner
from catalog import find_product
from database import create_document, parse_object_id, to_str_id, utcnow
from errors import (
    Internal,
    InsufficientStock,
    NotFound,
    ProductNotFound,
    ShopError,
    ValidationError,
)
from schemas import Order, OrderItem, OrderItemRequest

logger = logging.getLogger(__name__)


def _check_request(
    items: Sequence[OrderItemRequest],
    total_amount: float,
    shipping_address: str,
    payment_method: str,
) -> None:
    if not items:
        raise ValidationError("No items in order")
    for item in items:
        if item.quantity < 1:
            raise ValidationError(f"Quantity for product {item.product_id} must be at least 1")
    if total_amount is None or total_amount < 0:
        raise ValidationError("Total amount must be zero or more")
    if not shipping_address or not shipping_address.strip():
        raise ValidationError("Shipping address is required")
    if not payment_method or not payment_method.strip():
        raise ValidationError("Payment method is required")


def _snapshot(db: Database, items: Sequence[OrderItemRequest]) -> Tuple[List[OrderItem], Dict[str, dict]]:
    """Validate every item against the catalog without writing anything."""
    products: Dict[str, dict] = {}
    wanted: Dict[ObjectId, int] = {}
    line_items: List[OrderItem] = []

    for item in items:
        prod = products.get(item.product_id) or find_product(db, item.product_id)
        if not prod:
            raise ProductNotFound(item.product_id)
        products[item.product_id] = prod

        # The same product may appear on several lines, possibly spelled differently.
        wanted[prod["_id"]] = wanted.get(prod["_id"], 0) + item.quantity
        if prod.get("stock", 0) < wanted[prod["_id"]]:
            raise InsufficientStock(item.product_id, prod.get("stock", 0), prod.get("name"))

        line_items.append(OrderItem(
            product_id=item.product_id,
            quantity=item.quantity,
            price=float(prod.get("price", 0)),
            name=prod.get("name", ""),
            image_url=prod.get("image_url"),
        ))

    return line_items, products


def _reserve(db: Database, product_oid: ObjectId, item: OrderItem) -> None:
    updated = db["product"].find_one_and_update(
        {"_id": product_oid, "stock": {"$gte": item.quantity}},
        {"$inc": {"stock": -item.quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is not None:
        return
    current = db["product"].find_one({"_id": product_oid})
    if current is None:
        raise ProductNotFound(item.product_id)
    logger.warning(
        "Stock for %s changed during placement (have %s, need %d)",
        item.product_id, current.get("stock"), item.quantity,
    )
    raise InsufficientStock(item.product_id, current.get("stock", 0), current.get("name"))


def _release(db: Database, reserved: List[Tuple[ObjectId, int]]) -> None:
    for product_oid, quantity in reversed(reserved):
        db["product"].update_one({"_id": product_oid}, {"$inc": {"stock": quantity}})
    if reserved:
        logger.info("Released %d stock reservation(s)", len(reserved))


def _with_products(db: Database, order: dict) -> dict:
    out = to_str_id(order)
    items = []
    for item in out.get("items", []):
        prod = find_product(db, item["product_id"])
        items.append({**item, "product": to_str_id(prod) if prod else None})
    out["items"] = items
    return out


def place_order(
    db: Database,
    user_id: str,
    items: Sequence[OrderItemRequest],
    total_amount: float,
    shipping_address: str,
    payment_method: str,
) -> dict:
    """Create an order for ``user_id`` and return it with products resolved.

    Either the whole order is placed or no stock changes. The total is
    stored as supplied by the caller.
    """
    _check_request(items, total_amount, shipping_address, payment_method)
    line_items, products = _snapshot(db, items)

    subtotal = round(sum(li.price * li.quantity for li in line_items), 2)
    if total_amount + 0.005 < subtotal:
        logger.warning(
            "Order total %.2f for user %s is below the item subtotal %.2f",
            total_amount, user_id, subtotal,
        )

    reserved: List[Tuple[ObjectId, int]] = []
    try:
        for li in line_items:
            product_oid = products[li.product_id]["_id"]
            _reserve(db, product_oid, li)
            reserved.append((product_oid, li.quantity))

        order = Order(
            user_id=user_id,
            items=line_items,
            total_amount=total_amount,
            status="Pending",
            shipping_address=shipping_address.strip(),
            payment_method=payment_method.strip(),
            order_date=utcnow(),
        )
        order_id = create_document(db, "order", order)
    except ShopError:
        _release(db, reserved)
        raise
    except PyMongoError as exc:
        _release(db, reserved)
        logger.exception("Placing order for user %s failed", user_id)
        raise Internal("Order could not be saved") from exc

    try:
        cleared = db["cart"].delete_many({"user_id": user_id}).deleted_count
    except PyMongoError:
        # The order is already saved; report it regardless.
        logger.exception("Order %s placed but cart of user %s was not cleared", order_id, user_id)
        cleared = 0

    logger.info(
        "Order %s placed by %s: %d item(s), total %.2f, cleared %d cart entries",
        order_id, user_id, len(line_items), total_amount, cleared,
    )
    saved = db["order"].find_one({"_id": ObjectId(order_id)})
    return _with_products(db, saved)


def list_orders(db: Database, user_id: str) -> List[dict]:
    docs = db["order"].find({"user_id": user_id}).sort("order_date", DESCENDING)
    return [_with_products(db, d) for d in docs]


def get_order(db: Database, user_id: str, order_id: str) -> dict:
    not_found = NotFound("Order not found")
    order = db["order"].find_one({"_id": parse_object_id(order_id, not_found)})
    return _with_products(db, ensure_owner(order, user_id, not_found))
