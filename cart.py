"""
Cart mutations

Each user holds at most one entry per product. Quantities are never stored
as zero or below: setting a non-positive quantity deletes the entry.
"""

import logging
from typing import List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database

from auth import ensure_owner
from catalog import find_product
from database import parse_object_id, to_str_id, utcnow
from errors import NotFound, ProductNotFound, ValidationError

logger = logging.getLogger(__name__)


def _entry_not_found() -> NotFound:
    return NotFound("Cart item not found")


def _with_product(db: Database, entry: dict) -> dict:
    out = to_str_id(entry)
    prod = find_product(db, entry["product_id"])
    out["product"] = to_str_id(prod) if prod else None
    return out


def _load_owned_entry(db: Database, user_id: str, entry_id: str) -> dict:
    not_found = _entry_not_found()
    entry = db["cart"].find_one({"_id": parse_object_id(entry_id, not_found)})
    return ensure_owner(entry, user_id, not_found)


def get_cart(db: Database, user_id: str) -> List[dict]:
    entries = db["cart"].find({"user_id": user_id}).sort("created_at", 1)
    return [_with_product(db, e) for e in entries]


def add_item(db: Database, user_id: str, product_id: str, quantity: int = 1) -> Tuple[dict, bool]:
    """Add ``quantity`` of a product, accumulating into an existing entry.

    Returns the entry (product expanded) and whether it was newly created.
    Stock is not checked here; order placement enforces it.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be positive")
    if not find_product(db, product_id):
        raise ProductNotFound(product_id)

    now = utcnow()
    # Single upsert so concurrent adds land in one entry.
    result = db["cart"].update_one(
        {"user_id": user_id, "product_id": product_id},
        {
            "$inc": {"quantity": quantity},
            "$set": {"updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    created = result.upserted_id is not None
    entry = db["cart"].find_one({"user_id": user_id, "product_id": product_id})
    logger.debug("Cart %s: %s x%d (%s)", user_id, product_id, quantity, "new" if created else "merged")
    return _with_product(db, entry), created


def set_quantity(db: Database, user_id: str, entry_id: str, quantity: int) -> Optional[dict]:
    """Replace an entry's quantity. Returns None when the entry was removed."""
    entry = _load_owned_entry(db, user_id, entry_id)
    if quantity <= 0:
        db["cart"].delete_one({"_id": entry["_id"]})
        return None
    updated = db["cart"].find_one_and_update(
        {"_id": entry["_id"]},
        {"$set": {"quantity": quantity, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise _entry_not_found()
    return _with_product(db, updated)


def remove_item(db: Database, user_id: str, entry_id: str) -> None:
    entry = _load_owned_entry(db, user_id, entry_id)
    db["cart"].delete_one({"_id": entry["_id"]})


def clear_cart(db: Database, user_id: str) -> int:
    result = db["cart"].delete_many({"user_id": user_id})
    return result.deleted_count
