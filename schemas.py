"""
Database Schemas

MongoDB collection schemas as Pydantic models. Each model represents a
collection; the model name lower-cased is the collection name:
- Product -> "product" collection
- CartItem -> "cart" collection
- Order -> "order" collection
- User -> "user" collection

References between documents (user_id, product_id) are stored as the
referenced ObjectId rendered to a string.
"""

from datetime import datetime
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

Category = Literal[
    "Electronics",
    "Clothing",
    "Home & Garden",
    "Sports",
    "Books",
    "Toys",
    "Beauty",
    "Food",
]
CATEGORIES = get_args(Category)

OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]

SORT_OPTIONS = ("price_asc", "price_desc", "rating")


class Review(BaseModel):
    user: str
    comment: str
    rating: float = Field(..., ge=0, le=5)
    date: Optional[datetime] = None


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    Stock is only ever decremented by order placement.
    """
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., description="Product description")
    price: float = Field(..., ge=0, description="Price in dollars")
    image_url: str = Field(..., description="Image URL")
    category: Category = Field(..., description="One of the fixed categories")
    stock: int = Field(0, ge=0, description="Units in stock")
    rating: float = Field(0, ge=0, le=5, description="Average rating")
    reviews: List[Review] = Field(default_factory=list)


class CartItem(BaseModel):
    """
    Cart collection schema
    Collection name: "cart"
    One entry per (user_id, product_id).
    """
    user_id: str = Field(..., description="Owner user id")
    product_id: str = Field(..., description="Product ObjectId as string")
    quantity: int = Field(1, ge=1, description="Quantity of the product")


class OrderItem(BaseModel):
    """Line item snapshot taken when the order is placed."""
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    name: str
    image_url: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    user_id: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = "Pending"
    shipping_address: str
    payment_method: str = Field(..., description="Free-text label, e.g. Credit Card")
    order_date: datetime


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    ``password`` holds the salted hash and is never returned.
    """
    name: str
    email: EmailStr
    password: str
    address: Optional[str] = None
    phone: Optional[str] = None


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class ProductFilter(BaseModel):
    """Optional, independently composable catalog filters."""
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
