import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

import cart
import catalog
import orders
import users
from auth import current_user_id
from database import db, ensure_indexes, get_db
from errors import Internal, ShopError
from schemas import OrderItemRequest, ProductFilter

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
)
logger = logging.getLogger("shop")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        ensure_indexes(db)
    yield


app = FastAPI(title="E-commerce API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors

@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("%s %s database error", request.method, request.url.path, exc_info=exc)
    error = Internal("Database error")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())[1:])
        problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid request"))
    message = "; ".join(problems) or "Invalid request"
    logger.warning("%s %s -> 400 %s", request.method, request.url.path, message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"kind": "validation_error", "detail": message, "errors": jsonable_encoder(exc.errors())},
    )


# Request bodies

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    address: Optional[str] = None
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartRequest(BaseModel):
    quantity: int


class CreateOrderRequest(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    shipping_address: str = Field(..., min_length=1)
    payment_method: str = Field(..., min_length=1)


class SeedRequest(BaseModel):
    force: bool = False


@app.get("/")
def read_root():
    return {"message": "E-commerce Backend is running"}


# Auth

@app.post("/api/auth/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, database: Database = Depends(get_db)):
    token, user = users.register(
        database,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        address=payload.address,
        phone=payload.phone,
    )
    return {"token": token, "user": user}


@app.post("/api/auth/login")
def login(payload: LoginRequest, database: Database = Depends(get_db)):
    token, user = users.login(database, payload.email, payload.password)
    return {"token": token, "user": user}


# Products

@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    database: Database = Depends(get_db),
):
    filters = ProductFilter(
        category=category,
        min_price=min_price,
        max_price=max_price,
        search=search,
        sort_by=sort_by,
    )
    return catalog.list_products(database, filters)


@app.get("/api/products/categories/list")
def list_categories(database: Database = Depends(get_db)):
    return catalog.list_categories(database)


@app.post("/api/products/seed")
def seed_products(payload: SeedRequest, database: Database = Depends(get_db)):
    return catalog.seed_products(database, force=payload.force)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, database: Database = Depends(get_db)):
    return catalog.get_product(database, product_id)


# Cart

@app.get("/api/cart")
def get_cart(user_id: str = Depends(current_user_id), database: Database = Depends(get_db)):
    return cart.get_cart(database, user_id)


@app.post("/api/cart/add")
def add_to_cart(
    payload: AddToCartRequest,
    response: Response,
    user_id: str = Depends(current_user_id),
    database: Database = Depends(get_db),
):
    entry, created = cart.add_item(database, user_id, payload.product_id, payload.quantity)
    if created:
        response.status_code = status.HTTP_201_CREATED
        return {"message": "Item added to cart", "cart_item": entry}
    return {"message": "Cart updated", "cart_item": entry}


@app.put("/api/cart/update/{entry_id}")
def update_cart(
    entry_id: str,
    payload: UpdateCartRequest,
    user_id: str = Depends(current_user_id),
    database: Database = Depends(get_db),
):
    entry = cart.set_quantity(database, user_id, entry_id, payload.quantity)
    if entry is None:
        return {"message": "Item removed from cart"}
    return {"message": "Cart updated", "cart_item": entry}


@app.delete("/api/cart/remove/{entry_id}")
def remove_from_cart(
    entry_id: str,
    user_id: str = Depends(current_user_id),
    database: Database = Depends(get_db),
):
    cart.remove_item(database, user_id, entry_id)
    return {"message": "Item removed from cart"}


@app.delete("/api/cart/clear")
def clear_cart(user_id: str = Depends(current_user_id), database: Database = Depends(get_db)):
    deleted = cart.clear_cart(database, user_id)
    return {"message": "Cart cleared", "deleted": deleted}


# Orders

@app.get("/api/orders")
def list_orders(user_id: str = Depends(current_user_id), database: Database = Depends(get_db)):
    return orders.list_orders(database, user_id)


@app.post("/api/orders/create", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderRequest,
    user_id: str = Depends(current_user_id),
    database: Database = Depends(get_db),
):
    order = orders.place_order(
        database,
        user_id,
        items=payload.items,
        total_amount=payload.total_amount,
        shipping_address=payload.shipping_address,
        payment_method=payload.payment_method,
    )
    return {"message": "Order created successfully", "order": order}


@app.get("/api/orders/{order_id}")
def get_order(
    order_id: str,
    user_id: str = Depends(current_user_id),
    database: Database = Depends(get_db),
):
    return orders.get_order(database, user_id, order_id)


# Profile

@app.get("/api/profile")
def get_profile(user_id: str = Depends(current_user_id), database: Database = Depends(get_db)):
    return users.get_profile(database, user_id)


@app.put("/api/profile/update")
def update_profile(
    payload: ProfileUpdateRequest,
    user_id: str = Depends(current_user_id),
    database: Database = Depends(get_db),
):
    user = users.update_profile(
        database, user_id, name=payload.name, address=payload.address, phone=payload.phone
    )
    return {"message": "Profile updated successfully", "user": user}


@app.get("/test")
def test_database():
    """Test endpoint to check if database is available and accessible"""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"

    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
