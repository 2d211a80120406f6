"""Async client for the store backend.

Every method either returns parsed models or raises one of
NetworkError, HttpError or DecodeError. There are no retries.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, List, Optional, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from api import schemas
from db import models
from utils.errors import DecodeError, HttpError, NetworkError
from utils.logger import get_logger
from utils.session import TokenHolder

_logger = get_logger(__name__)

T = TypeVar("T")

BASE_URL = os.getenv("LEVELUP_API_URL", "http://localhost:8081")
TIMEOUT = os.getenv("LEVELUP_API_TIMEOUT")  # seconds; httpx default when unset

# requests to these paths never carry the bearer header
AUTH_PATH_MARKER = "/auth/"


class ApiClient:
    def __init__(
        self,
        tokens: TokenHolder,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tokens = tokens
        kwargs: Dict[str, Any] = {}
        if TIMEOUT:
            kwargs["timeout"] = float(TIMEOUT)
        self._client = httpx.AsyncClient(
            base_url=base_url or BASE_URL,
            transport=transport,
            event_hooks={"request": [self._attach_bearer]},
            **kwargs,
        )

    async def _attach_bearer(self, request: httpx.Request) -> None:
        """Interceptor: add Authorization to every non-auth request when logged in."""
        if AUTH_PATH_MARKER in request.url.path:
            return
        token = self.tokens.get()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            _logger.warning(f"{method} {path} failed: {e!r}")
            raise NetworkError(f"Could not reach the server: {e}") from e

        if response.is_error:
            _logger.error(f"{method} {path} -> {response.status_code}")
            raise HttpError(response.status_code, response.text)
        _logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    async def _json(
        self, method: str, path: str, schema: TypeAdapter[T], **kwargs
    ) -> T:
        """Request, then validate the JSON body against schema."""
        response = await self._request(method, path, **kwargs)
        try:
            return schema.validate_json(response.content)
        except ValidationError as e:
            _logger.error(f"{method} {path}: unexpected body ({e.error_count()} errors)")
            raise DecodeError(f"Malformed response from {path}.") from e

    # ---------------------------
    # Auth
    # ---------------------------

    async def login(self, request: schemas.LoginRequest) -> schemas.LoginResponse:
        return await self._json(
            "POST", "/api/auth/login", schemas.LOGIN, json=request.to_json()
        )

    async def register(self, request: schemas.RegisterRequest) -> str:
        response = await self._request(
            "POST", "/api/auth/register", json=request.to_json()
        )
        return response.text

    # ---------------------------
    # Products
    # ---------------------------

    async def get_products(self) -> List[models.Product]:
        products = await self._json("GET", "/api/products", schemas.PRODUCTS)
        return [p.to_model() for p in products]

    # ---------------------------
    # Profile
    # ---------------------------

    async def get_profile(self) -> models.User:
        profile = await self._json("GET", "/api/profile/me", schemas.PROFILE)
        return profile.to_model()

    async def update_profile(self, updates: Dict[str, str]) -> models.User:
        profile = await self._json(
            "PUT", "/api/profile/me", schemas.PROFILE, json=updates
        )
        return profile.to_model()

    async def upload_profile_picture(self, path: str) -> Optional[str]:
        """Upload a JPEG as multipart 'file'; returns the new picture URL."""
        content = await asyncio.to_thread(_read_bytes, path)
        files = {"file": (os.path.basename(path), content, "image/jpeg")}
        picture = await self._json(
            "POST", "/api/profile/picture", schemas.PICTURE, files=files
        )
        return picture.profile_picture_url

    async def change_password(self, old_password: str, new_password: str) -> None:
        await self._request(
            "PUT",
            "/api/profile/password",
            json={"oldPassword": old_password, "newPassword": new_password},
        )

    # ---------------------------
    # Cart
    # ---------------------------

    async def get_cart(self) -> schemas.RemoteCart:
        cart = await self._json("GET", "/api/cart", schemas.CART)
        return cart.to_model()

    async def add_cart_item(self, request: schemas.CartItemRequest) -> None:
        await self._request("POST", "/api/cart/items", json=request.to_json())

    async def update_cart_item(self, product_id: int, quantity: int) -> None:
        await self._request(
            "PUT", f"/api/cart/items/{product_id}", json={"quantity": quantity}
        )

    async def remove_cart_item(self, product_id: int) -> None:
        await self._request("DELETE", f"/api/cart/items/{product_id}")

    async def clear_cart(self) -> None:
        await self._request("DELETE", "/api/cart")

    # ---------------------------
    # Orders
    # ---------------------------

    async def checkout(self) -> models.Order:
        order = await self._json("POST", "/api/orders/checkout", schemas.ORDER)
        return order.to_model()

    async def get_my_orders(self) -> List[models.Order]:
        orders = await self._json("GET", "/api/orders/my-orders", schemas.ORDERS)
        return [o.to_model() for o in orders]


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()
