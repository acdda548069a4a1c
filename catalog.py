"""
Catalog queries

Products are read-mostly: listing composes optional filters into a single
MongoDB query, and the only writer besides seeding is order placement.
"""

import logging
import re
from typing import List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import get_documents, to_str_id, utcnow
from errors import ProductNotFound
from schemas import SORT_OPTIONS, Product, ProductFilter

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"


def build_query(filters: ProductFilter) -> dict:
    query: dict = {}

    if filters.category and filters.category != ALL_CATEGORIES:
        query["category"] = filters.category

    # Bounds are independent; an empty range simply matches nothing.
    if filters.min_price is not None or filters.max_price is not None:
        price: dict = {}
        if filters.min_price is not None:
            price["$gte"] = filters.min_price
        if filters.max_price is not None:
            price["$lte"] = filters.max_price
        query["price"] = price

    if filters.search:
        pattern = re.escape(filters.search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]

    return query


def build_sort(sort_by):
    if sort_by == "price_asc":
        return [("price", ASCENDING)]
    if sort_by == "price_desc":
        return [("price", DESCENDING)]
    if sort_by == "rating":
        return [("rating", DESCENDING)]
    if sort_by and sort_by not in SORT_OPTIONS:
        logger.debug("Unknown sortBy %r, falling back to newest first", sort_by)
    return [("created_at", DESCENDING)]


def list_products(db: Database, filters: ProductFilter) -> List[dict]:
    docs = get_documents(db, "product", build_query(filters), sort=build_sort(filters.sort_by))
    return [to_str_id(d) for d in docs]


def find_product(db: Database, product_id: str) -> Optional[dict]:
    if not ObjectId.is_valid(product_id):
        return None
    return db["product"].find_one({"_id": ObjectId(product_id)})


def get_product(db: Database, product_id: str) -> dict:
    prod = find_product(db, product_id)
    if not prod:
        raise ProductNotFound(product_id)
    return to_str_id(prod)


def list_categories(db: Database) -> List[str]:
    return sorted(db["product"].distinct("category"))


SAMPLE_PRODUCTS = [
    # Electronics
    {
        "name": "Wireless Headphones",
        "description": "Premium noise-cancelling wireless headphones with 30-hour battery life",
        "price": 199.99,
        "image_url": "https://images.unsplash.com/photo-1505740420928-5e560c06d30e?w=500",
        "category": "Electronics",
        "stock": 50,
        "rating": 4.5,
        "reviews": [
            {"user": "John Doe", "comment": "Excellent sound quality!", "rating": 5},
            {"user": "Jane Smith", "comment": "Very comfortable", "rating": 4},
        ],
    },
    {
        "name": "Smart Watch",
        "description": "Fitness tracker with heart rate monitor and GPS",
        "price": 299.99,
        "image_url": "https://images.unsplash.com/photo-1523275335684-37898b6baf30?w=500",
        "category": "Electronics",
        "stock": 35,
        "rating": 4.3,
    },
    {
        "name": "Wireless Mouse",
        "description": "Ergonomic wireless mouse with precision tracking",
        "price": 29.99,
        "image_url": "https://images.unsplash.com/photo-1527814050087-3793815479db?w=500",
        "category": "Electronics",
        "stock": 150,
        "rating": 4.4,
    },
    # Clothing
    {
        "name": "Classic T-Shirt",
        "description": "100% cotton comfortable t-shirt in various colors",
        "price": 24.99,
        "image_url": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=500",
        "category": "Clothing",
        "stock": 200,
        "rating": 4.2,
    },
    {
        "name": "Denim Jeans",
        "description": "Slim fit stretch denim jeans",
        "price": 59.99,
        "image_url": "https://images.unsplash.com/photo-1542272604-787c3835535d?w=500",
        "category": "Clothing",
        "stock": 80,
        "rating": 4.1,
    },
    # Home & Garden
    {
        "name": "Ceramic Plant Pot",
        "description": "Minimal matte ceramic pot with drainage hole",
        "price": 18.5,
        "image_url": "https://images.unsplash.com/photo-1485955900006-10f4d324d411?w=500",
        "category": "Home & Garden",
        "stock": 120,
        "rating": 4.6,
    },
    {
        "name": "Scented Candle Set",
        "description": "Set of three soy wax candles",
        "price": 32.0,
        "image_url": "https://images.unsplash.com/photo-1602874801007-bd458bb1b8b6?w=500",
        "category": "Home & Garden",
        "stock": 60,
        "rating": 4.7,
    },
    # Sports
    {
        "name": "Yoga Mat",
        "description": "Non-slip exercise mat with carrying strap",
        "price": 39.99,
        "image_url": "https://images.unsplash.com/photo-1601925260368-ae2f83cf8b7f?w=500",
        "category": "Sports",
        "stock": 75,
        "rating": 4.6,
    },
    {
        "name": "Running Shoes",
        "description": "Lightweight breathable running shoes",
        "price": 89.99,
        "image_url": "https://images.unsplash.com/photo-1542291026-7eec264c27ff?w=500",
        "category": "Sports",
        "stock": 60,
        "rating": 4.5,
    },
    # Books
    {
        "name": "The Art of Programming",
        "description": "A practical guide to writing clean code",
        "price": 34.99,
        "image_url": "https://images.unsplash.com/photo-1544716278-ca5e3f4abd8c?w=500",
        "category": "Books",
        "stock": 40,
        "rating": 4.8,
    },
    {
        "name": "Mystery Novel",
        "description": "Bestselling page-turner thriller",
        "price": 14.99,
        "image_url": "https://images.unsplash.com/photo-1512820790803-83ca734da794?w=500",
        "category": "Books",
        "stock": 90,
        "rating": 4.3,
    },
    # Toys
    {
        "name": "Building Blocks Set",
        "description": "500-piece creative building blocks for kids",
        "price": 44.99,
        "image_url": "https://images.unsplash.com/photo-1587654780291-39c9404d746b?w=500",
        "category": "Toys",
        "stock": 55,
        "rating": 4.7,
    },
    {
        "name": "Plush Teddy Bear",
        "description": "Soft and cuddly teddy bear",
        "price": 19.99,
        "image_url": "https://images.unsplash.com/photo-1559454403-b8fb88521f11?w=500",
        "category": "Toys",
        "stock": 100,
        "rating": 4.9,
    },
    # Beauty
    {
        "name": "Face Moisturizer",
        "description": "Hydrating daily moisturizer with SPF 30",
        "price": 27.5,
        "image_url": "https://images.unsplash.com/photo-1556228578-8c89e6adf883?w=500",
        "category": "Beauty",
        "stock": 85,
        "rating": 4.4,
    },
    {
        "name": "Lipstick Collection",
        "description": "Set of five long-lasting matte lipsticks",
        "price": 36.0,
        "image_url": "https://images.unsplash.com/photo-1586495777744-4413f21062fa?w=500",
        "category": "Beauty",
        "stock": 45,
        "rating": 4.2,
    },
    # Food
    {
        "name": "Organic Coffee Beans",
        "description": "Single-origin medium roast, 1kg bag",
        "price": 22.99,
        "image_url": "https://images.unsplash.com/photo-1559056199-641a0ac8b55e?w=500",
        "category": "Food",
        "stock": 130,
        "rating": 4.8,
    },
    {
        "name": "Dark Chocolate Box",
        "description": "Assorted 70% cocoa artisan chocolates",
        "price": 16.5,
        "image_url": "https://images.unsplash.com/photo-1549007994-cb92caebd54b?w=500",
        "category": "Food",
        "stock": 70,
        "rating": 4.6,
    },
]


def seed_products(db: Database, force: bool = False) -> dict:
    count = db["product"].count_documents({})
    if count > 0 and not force:
        return {"inserted": 0, "message": "Products already exist"}

    if force:
        db["product"].delete_many({})

    now = utcnow()
    docs = []
    for sample in SAMPLE_PRODUCTS:
        doc = Product(**sample).model_dump()
        doc["created_at"] = now
        doc["updated_at"] = now
        docs.append(doc)
    res = db["product"].insert_many(docs)
    logger.info("Seeded %d products", len(res.inserted_ids))
    return {"inserted": len(res.inserted_ids), "message": "Seeded products"}
