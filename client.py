"""
Shop API client

``ShopClient`` wraps every backend route and carries the caller's bearer
token. ``CartStore`` keeps a client-side mirror of the cart as an immutable
``CartState`` driven by a pure reducer.

Cache contract: any cart mutation on the server marks the mirror stale
(``CartInvalidated``) and is followed by a re-fetch. Placing an order
clears the mirror without a round trip, since the server clears the cart as
part of the same request.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

logger = logging.getLogger(__name__)

API_URL = os.getenv("SHOP_API_URL", "http://localhost:8000")

SHIPPING_COST = 5.99
TAX_RATE = 0.10


class ApiError(Exception):
    """Non-2xx response from the backend."""

    def __init__(self, status_code: int, kind: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind
        self.message = message

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return cls(
            response.status_code,
            body.get("kind", "unknown"),
            body.get("detail") or response.reason_phrase or "Request failed",
        )


class CartUnavailable(Exception):
    """The cart mirror could not be brought up to date."""


class ShopClient:
    def __init__(self, base_url: str = API_URL, token: Optional[str] = None, http: Optional[httpx.Client] = None):
        self.http = http or httpx.Client(base_url=base_url, timeout=10.0)
        self.token = token

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = self.http.request(method, path, headers=headers, **kwargs)
        if response.is_error:
            error = ApiError.from_response(response)
            logger.debug("%s %s -> %d %s", method, path, error.status_code, error.message)
            raise error
        return response.json()

    # Auth

    def register(self, name: str, email: str, password: str, **extra) -> dict:
        data = self._request("POST", "/api/auth/register", json={"name": name, "email": email, "password": password, **extra})
        self.token = data["token"]
        return data["user"]

    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    def logout(self) -> None:
        self.token = None

    # Products

    def list_products(
        self,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
    ) -> List[dict]:
        params = {
            "category": category,
            "minPrice": min_price,
            "maxPrice": max_price,
            "search": search,
            "sortBy": sort_by,
        }
        return self._request("GET", "/api/products", params={k: v for k, v in params.items() if v is not None})

    def get_product(self, product_id: str) -> dict:
        return self._request("GET", f"/api/products/{product_id}")

    def get_categories(self) -> List[str]:
        return self._request("GET", "/api/products/categories/list")

    # Cart

    def get_cart(self) -> List[dict]:
        return self._request("GET", "/api/cart")

    def add_to_cart(self, product_id: str, quantity: int = 1) -> dict:
        return self._request("POST", "/api/cart/add", json={"product_id": product_id, "quantity": quantity})

    def update_cart(self, entry_id: str, quantity: int) -> dict:
        return self._request("PUT", f"/api/cart/update/{entry_id}", json={"quantity": quantity})

    def remove_from_cart(self, entry_id: str) -> dict:
        return self._request("DELETE", f"/api/cart/remove/{entry_id}")

    def clear_cart(self) -> dict:
        return self._request("DELETE", "/api/cart/clear")

    # Orders

    def get_orders(self) -> List[dict]:
        return self._request("GET", "/api/orders")

    def get_order(self, order_id: str) -> dict:
        return self._request("GET", f"/api/orders/{order_id}")

    def create_order(self, items: List[dict], total_amount: float, shipping_address: str, payment_method: str) -> dict:
        data = self._request("POST", "/api/orders/create", json={
            "items": items,
            "total_amount": total_amount,
            "shipping_address": shipping_address,
            "payment_method": payment_method,
        })
        return data["order"]

    # Profile

    def get_profile(self) -> dict:
        return self._request("GET", "/api/profile")

    def update_profile(self, **fields) -> dict:
        return self._request("PUT", "/api/profile/update", json=fields)["user"]


# Cart mirror

@dataclass(frozen=True)
class CartState:
    items: Tuple[dict, ...] = ()
    loading: bool = False
    error: Optional[str] = None
    stale: bool = True

    @property
    def total(self) -> float:
        return round(sum((i.get("product") or {}).get("price", 0) * i["quantity"] for i in self.items), 2)

    @property
    def count(self) -> int:
        return sum(i["quantity"] for i in self.items)


@dataclass(frozen=True)
class CartRequested:
    pass


@dataclass(frozen=True)
class CartLoaded:
    items: Tuple[dict, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CartFailed:
    message: str


@dataclass(frozen=True)
class CartInvalidated:
    pass


@dataclass(frozen=True)
class CartCleared:
    pass


CartAction = Union[CartRequested, CartLoaded, CartFailed, CartInvalidated, CartCleared]


def cart_reducer(state: CartState, action: CartAction) -> CartState:
    if isinstance(action, CartRequested):
        return replace(state, loading=True, error=None)
    if isinstance(action, CartLoaded):
        return CartState(items=tuple(action.items), loading=False, error=None, stale=False)
    if isinstance(action, CartFailed):
        return replace(state, loading=False, error=action.message)
    if isinstance(action, CartInvalidated):
        return replace(state, stale=True)
    if isinstance(action, CartCleared):
        return CartState(items=(), loading=False, error=None, stale=False)
    raise TypeError(f"Unknown cart action: {action!r}")


@dataclass(frozen=True)
class MutationResult:
    success: bool
    message: Optional[str] = None


class CartStore:
    def __init__(self, client: ShopClient):
        self.client = client
        self.state = CartState()

    def dispatch(self, action: CartAction) -> CartState:
        self.state = cart_reducer(self.state, action)
        return self.state

    def refresh(self) -> CartState:
        self.dispatch(CartRequested())
        try:
            items = self.client.get_cart()
        except ApiError as e:
            logger.warning("Fetching cart failed: %s", e.message)
            return self.dispatch(CartFailed(e.message))
        return self.dispatch(CartLoaded(tuple(items)))

    def _mutate(self, call, *args) -> MutationResult:
        try:
            call(*args)
        except ApiError as e:
            return MutationResult(False, e.message)
        self.dispatch(CartInvalidated())
        self.refresh()
        return MutationResult(True)

    def add(self, product_id: str, quantity: int = 1) -> MutationResult:
        return self._mutate(self.client.add_to_cart, product_id, quantity)

    def update(self, entry_id: str, quantity: int) -> MutationResult:
        return self._mutate(self.client.update_cart, entry_id, quantity)

    def remove(self, entry_id: str) -> MutationResult:
        return self._mutate(self.client.remove_from_cart, entry_id)

    def clear(self) -> MutationResult:
        try:
            self.client.clear_cart()
        except ApiError as e:
            return MutationResult(False, e.message)
        self.dispatch(CartCleared())
        return MutationResult(True)

    def checkout_total(self) -> float:
        subtotal = self.state.total
        return round(subtotal + SHIPPING_COST + subtotal * TAX_RATE, 2)

    def checkout(self, shipping_address: str, payment_method: str = "Credit Card") -> Dict[str, Any]:
        """Place an order for everything in the mirror.

        Raises ApiError when the backend rejects the order, and
        CartUnavailable when a stale mirror cannot be re-fetched. The mirror
        is left untouched in both cases.
        """
        if not shipping_address.strip():
            raise ValueError("Please enter a shipping address")
        if self.state.stale:
            self.refresh()
        if self.state.stale or self.state.error:
            raise CartUnavailable(self.state.error or "Cart could not be loaded")
        items = [{"product_id": i["product_id"], "quantity": i["quantity"]} for i in self.state.items]
        order = self.client.create_order(items, self.checkout_total(), shipping_address, payment_method)
        self.dispatch(CartCleared())
        return order
