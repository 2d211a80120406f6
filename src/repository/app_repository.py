"""
Single mediator between the screens, the local cache and the backend.

Reads are served as live queries over the cache; commands go to the backend
first when a session token is held and are mirrored into the cache on
success. Every fallible command returns a Result instead of raising.
"""

from __future__ import annotations

import asyncio
import dataclasses
import hmac
import json
from functools import partial
from typing import Awaitable, Callable, List, Optional, TypeVar

import db.crud as crud
from api.client import ApiClient
from api.schemas import CartItemRequest, LoginRequest, RegisterRequest, RemoteCart
from db.models import CartItemWithDetails, Order, Product, User
from db.observe import LiveQuery
from repository.results import Result
from utils.errors import (
    AuthenticationFailed,
    ConstraintViolation,
    EmailAlreadyRegistered,
    HttpError,
    InvalidCredentials,
    LevelUpError,
    NotAuthenticated,
    StorageUnavailable,
)
from utils.logger import get_logger
from utils.session import TokenHolder, TokenStore
from utils.state import StateCell

_logger = get_logger(__name__)

T = TypeVar("T")


async def _write(coro: Awaitable[T]) -> T:
    """Run a cache write so that cancelling the caller does not abort it."""
    return await asyncio.shield(coro)


def _server_message(error: HttpError) -> Optional[str]:
    """Pull a readable message out of an error body (JSON or plain text)."""
    body = (error.body or "").strip()
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return body
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if isinstance(data.get(key), str):
                return data[key]
    return body


class AppRepository:
    def __init__(
        self,
        api: ApiClient,
        tokens: TokenHolder,
        token_store: Optional[TokenStore] = None,
    ):
        self.api = api
        self.tokens = tokens
        self.token_store = token_store or TokenStore()
        self.current_user: StateCell[Optional[User]] = StateCell(None)

    @property
    def current_username(self):
        return self.current_user.map(lambda user: user.username if user else None)

    @property
    def is_logged_in(self) -> bool:
        return self.current_user.value is not None

    # ---------------------------
    # Local auth (legacy path)
    # ---------------------------

    async def register_local(self, user: User) -> Result[User]:
        try:
            if await crud.get_user_by_email(user.email) is not None:
                return Result.failure(EmailAlreadyRegistered())
            saved = await _write(crud.insert_user(user))
        except ConstraintViolation:
            return Result.failure(EmailAlreadyRegistered())
        except LevelUpError as e:
            return Result.failure(e)
        _logger.info(f"Registered local user {saved.email}.")
        return Result.success(saved)

    async def login_local(self, email: str, password_hash: str) -> Result[User]:
        try:
            user = await crud.get_user_by_email(email)
        except StorageUnavailable as e:
            self.current_user.set(None)
            return Result.failure(e)

        if (
            user is None
            or user.password_hash is None
            or not hmac.compare_digest(user.password_hash, password_hash)
        ):
            self.current_user.set(None)
            return Result.failure(InvalidCredentials())

        self.current_user.set(user)
        return Result.success(user)

    # ---------------------------
    # Remote auth and profile
    # ---------------------------

    async def register_remote(self, request: RegisterRequest) -> Result[str]:
        try:
            await self.api.register(request)
        except HttpError as e:
            return Result.failure(HttpError(e.status, _server_message(e) or ""))
        except LevelUpError as e:
            return Result.failure(e)
        return Result.success("Registration successful.")

    async def login_remote(self, username: str, password: str) -> Result[User]:
        try:
            response = await self.api.login(
                LoginRequest(username=username, password=password)
            )
        except HttpError as e:
            self._drop_session()
            _logger.info(f"Login rejected for {username}: {e.status}")
            return Result.failure(AuthenticationFailed(_server_message(e)))
        except LevelUpError as e:
            self._drop_session()
            return Result.failure(e)

        self.tokens.set(response.token)
        self._persist_token(response.token)

        try:
            user = await self.api.get_profile()
        except LevelUpError as e:
            # token is valid but the profile endpoint failed
            _logger.warning(f"Profile fetch failed: {e}")
            user = User(id=0, username=username, email="")
            self.current_user.set(user)
            return Result.success(user)

        self.current_user.set(user)
        await self._mirror_user(user)
        await self._sync_cart_from_backend()
        _logger.info(f"Logged in as {user.username}.")
        return Result.success(user)

    async def load_user_profile(self) -> bool:
        """
        Restore the session from the persisted token (e.g. after a restart).
        Returns True if the profile was loaded.

        On failure the session is dropped, so the app continues as a guest.
        A token the backend rejects (401/403) is also removed from disk; after
        a network failure it is kept for the next start.
        """
        if self.tokens.get() is None:
            token = self.token_store.load()
            if token is None:
                return False
            self.tokens.set(token)

        try:
            user = await self.api.get_profile()
        except HttpError as e:
            self._drop_session()
            if e.status in (401, 403):
                _logger.info("Persisted session was rejected, continuing as guest.")
                self._forget_token()
            else:
                _logger.warning(f"Session restore failed: {e}")
            return False
        except LevelUpError as e:
            self._drop_session()
            _logger.warning(f"Session restore failed: {e}")
            return False

        self.current_user.set(user)
        await self._mirror_user(user)
        await self._sync_cart_from_backend()
        return True

    def logout(self) -> None:
        """Drop the session. Product and cart cache are kept."""
        self._drop_session()
        self._forget_token()
        _logger.info("Logged out.")

    async def update_user_details(
        self, username: Optional[str], email: Optional[str]
    ) -> Result[None]:
        user = self.current_user.value
        if user is None:
            return Result.failure(NotAuthenticated())

        updates = {}
        if username and username.strip() and username != user.username:
            updates["username"] = username.strip()
        if email and email.strip() and email != user.email:
            updates["email"] = email.strip()
        if not updates:
            return Result.success()

        try:
            profile = await self.api.update_profile(updates)
        except LevelUpError as e:
            return Result.failure(e)

        updated = dataclasses.replace(
            user, username=profile.username, email=profile.email
        )
        if user.id:
            try:
                await _write(
                    crud.update_profile_details(
                        user.id, updated.username, updated.email
                    )
                )
            except LevelUpError as e:
                _logger.warning(f"Cached profile not updated: {e}")
        self.current_user.set(updated)
        return Result.success()

    async def update_profile_picture(self, path: Optional[str]) -> Result[None]:
        """Upload a new picture, or clear it when path is None."""
        user = self.current_user.value
        if user is None:
            return Result.failure(NotAuthenticated())

        url: Optional[str] = None
        if path is not None:
            try:
                url = await self.api.upload_profile_picture(path)
            except OSError as e:
                return Result.failure(LevelUpError(f"Cannot read {path}: {e}"))
            except LevelUpError as e:
                return Result.failure(e)
            if url is None:
                return Result.success()

        if user.id:
            try:
                await _write(crud.update_profile_picture(user.id, url))
            except LevelUpError as e:
                _logger.warning(f"Cached picture not updated: {e}")
        self.current_user.set(dataclasses.replace(user, profile_picture_url=url))
        return Result.success()

    async def change_password(self, old_password: str, new_password: str) -> Result[None]:
        if not self.tokens.is_authenticated:
            return Result.failure(NotAuthenticated())
        try:
            await self.api.change_password(old_password, new_password)
        except HttpError as e:
            return Result.failure(HttpError(e.status, _server_message(e) or ""))
        except LevelUpError as e:
            return Result.failure(e)
        return Result.success()

    def _persist_token(self, token: str) -> None:
        try:
            self.token_store.save(token)
        except OSError as e:
            _logger.warning(f"Could not persist token: {e}")

    def _forget_token(self) -> None:
        try:
            self.token_store.clear()
        except OSError as e:
            _logger.warning(f"Could not remove persisted token: {e}")

    def _drop_session(self) -> None:
        """Anonymous state and no bearer token, always together."""
        self.current_user.set(None)
        self.tokens.clear()

    async def _refresh_profile(self) -> None:
        """Re-read points and level; failures keep the current user."""
        try:
            user = await self.api.get_profile()
        except LevelUpError as e:
            _logger.warning(f"Profile refresh failed: {e}")
            return
        self.current_user.set(user)
        await self._mirror_user(user)

    async def _mirror_user(self, user: User) -> None:
        try:
            await _write(crud.upsert_profile(user))
        except LevelUpError as e:
            _logger.warning(f"Could not cache profile of {user.username}: {e}")

    # ---------------------------
    # Products
    # ---------------------------

    async def refresh_products(self) -> bool:
        """
        Replace the cached catalog with the backend's.

        Failures are logged and swallowed: the cache stays as it was and
        readers keep seeing the old catalog. Returns False on failure so the
        caller can show a non-blocking notice.
        """
        try:
            products = await self.api.get_products()
            await _write(crud.replace_all_products(products))
        except LevelUpError as e:
            _logger.warning(f"Product refresh failed, keeping cached catalog: {e}")
            return False
        _logger.info(f"Product cache refreshed with {len(products)} products.")
        return True

    @property
    def all_products(self) -> LiveQuery[List[Product]]:
        return crud.observe_products()

    @property
    def all_categories(self) -> LiveQuery[List[str]]:
        return crud.observe_categories()

    def products_by_category(self, category: str) -> LiveQuery[List[Product]]:
        return crud.observe_products_by_category(category)

    async def get_product(self, product_id: int) -> Optional[Product]:
        return await crud.get_product(product_id)

    # ---------------------------
    # Cart
    # ---------------------------

    @property
    def cart_items(self) -> LiveQuery[List[CartItemWithDetails]]:
        return crud.observe_cart_with_details()

    async def _remote_then_local(
        self,
        remote: Optional[Callable[[], Awaitable[None]]],
        local: Callable[[], Awaitable[object]],
    ) -> Result[None]:
        """
        Apply a cart change on the backend (only when logged in), then locally.
        A backend failure leaves the cache untouched.
        """
        if remote is not None and self.tokens.is_authenticated:
            try:
                await remote()
            except LevelUpError as e:
                _logger.error(f"Cart change rejected by backend: {e}")
                return Result.failure(e)
        try:
            await _write(local())
        except LevelUpError as e:
            return Result.failure(e)
        return Result.success()

    async def add_to_cart(self, product_id: int) -> Result[None]:
        return await self._remote_then_local(
            partial(
                self.api.add_cart_item,
                CartItemRequest(product_id=product_id, quantity=1),
            ),
            partial(crud.add_cart_quantity, product_id, 1),
        )

    async def increase_quantity(self, product_id: int) -> Result[None]:
        """No-op when the product is not in the cart."""
        remote = None
        if self.tokens.is_authenticated:
            try:
                item = await crud.get_cart_item(product_id)
            except LevelUpError as e:
                return Result.failure(e)
            if item is None:
                return Result.success()
            remote = partial(self.api.update_cart_item, product_id, item.quantity + 1)
        return await self._remote_then_local(
            remote,
            partial(crud.add_cart_quantity, product_id, 1, insert_missing=False),
        )

    async def decrease_quantity(self, product_id: int) -> Result[None]:
        """No-op when absent; a quantity of 1 removes the row."""
        remote = None
        if self.tokens.is_authenticated:
            try:
                item = await crud.get_cart_item(product_id)
            except LevelUpError as e:
                return Result.failure(e)
            if item is None:
                return Result.success()
            if item.quantity > 1:
                remote = partial(
                    self.api.update_cart_item, product_id, item.quantity - 1
                )
            else:
                remote = partial(self.api.remove_cart_item, product_id)
        return await self._remote_then_local(
            remote, partial(crud.decrement_cart_quantity, product_id)
        )

    async def remove_from_cart(self, product_id: int) -> Result[None]:
        return await self._remote_then_local(
            partial(self.api.remove_cart_item, product_id),
            partial(crud.delete_cart_item, product_id),
        )

    async def clear_cart(self) -> Result[None]:
        return await self._remote_then_local(self.api.clear_cart, crud.clear_cart)

    async def _apply_remote_cart(self, cart: RemoteCart) -> None:
        await crud.upsert_products(cart.products)
        await crud.replace_cart(cart.items)

    async def _sync_cart_from_backend(self) -> None:
        try:
            cart = await self.api.get_cart()
            await _write(self._apply_remote_cart(cart))
        except LevelUpError as e:
            _logger.error(f"Cart sync failed: {e}")
            return
        _logger.debug(f"Cart synced: {len(cart.items)} items")

    # ---------------------------
    # Orders
    # ---------------------------

    async def checkout(self) -> Result[Order]:
        if not self.tokens.is_authenticated:
            return Result.failure(NotAuthenticated("You must log in to check out."))
        try:
            order = await self.api.checkout()
        except HttpError as e:
            return Result.failure(HttpError(e.status, _server_message(e) or ""))
        except LevelUpError as e:
            return Result.failure(e)

        try:
            await _write(crud.clear_cart())
        except LevelUpError as e:
            _logger.warning(f"Order {order.id} placed but local cart not cleared: {e}")
        # points and level change with every order
        await self._refresh_profile()
        return Result.success(order)

    async def order_history(self) -> Result[List[Order]]:
        if not self.tokens.is_authenticated:
            return Result.failure(NotAuthenticated())
        try:
            return Result.success(await self.api.get_my_orders())
        except LevelUpError as e:
            return Result.failure(e)
