# src/db/crud.py
from __future__ import annotations

import dataclasses
from typing import Iterable, List, Optional

from db import models
from db.database import connect, transaction
from db.observe import LiveQuery, tracker
from utils.errors import NotFound

PRODUCTS = "products"
CART = "cart_items"
USERS = "users"
PROFILES = "profiles"

_PRODUCT_COLUMNS = (
    "id, name, price, category, image_url, description, manufacturer, distributor"
)
_USER_COLUMNS = (
    "id, username, email, password_hash, profile_picture_url,"
    " user_role, points_balance, user_level"
)
_PROFILE_COLUMNS = (
    "id, username, email, profile_picture_url, user_role, points_balance, user_level"
)

_UPSERT_PRODUCT_SET = """
    name = excluded.name,
    price = excluded.price,
    category = excluded.category,
    image_url = excluded.image_url,
    description = excluded.description,
    manufacturer = excluded.manufacturer,
    distributor = excluded.distributor
"""


def _row_to_product(row) -> models.Product:
    return models.Product(
        id=int(row[0]),
        name=row[1],
        price=float(row[2]),
        category=row[3],
        image_url=row[4],
        description=row[5],
        manufacturer=row[6],
        distributor=row[7],
    )


def _row_to_user(row) -> models.User:
    return models.User(
        id=int(row[0]),
        username=row[1],
        email=row[2],
        password_hash=row[3],
        profile_picture_url=row[4],
        user_role=row[5],
        points_balance=int(row[6]),
        user_level=int(row[7]),
    )


def _row_to_profile(row) -> models.User:
    return models.User(
        id=int(row[0]),
        username=row[1],
        email=row[2],
        profile_picture_url=row[3],
        user_role=row[4],
        points_balance=int(row[5]),
        user_level=int(row[6]),
    )


def _product_params(products: Iterable[models.Product]) -> List[tuple]:
    return [
        (
            p.id,
            p.name,
            p.price,
            p.category,
            p.image_url,
            p.description,
            p.manufacturer,
            p.distributor,
        )
        for p in products
    ]


def _user_params(user: models.User) -> tuple:
    return (
        user.id,
        user.username,
        user.email,
        user.password_hash,
        user.profile_picture_url,
        user.user_role,
        user.points_balance,
        user.user_level,
    )


def _profile_params(user: models.User) -> tuple:
    return (
        user.id,
        user.username,
        user.email,
        user.profile_picture_url,
        user.user_role,
        user.points_balance,
        user.user_level,
    )


# ---------------------------
# Products
# ---------------------------


async def replace_all_products(products: List[models.Product]) -> None:
    """
    Make the products table mirror exactly the given list, in one transaction.

    Rows missing from the list are deleted (their cart rows go with them via
    the FK cascade); the rest are upserted in place, so cart rows of products
    that survive the refresh are kept. Listing order is stored in `position`.
    """
    ids = [p.id for p in products]
    async with transaction() as conn:
        if ids:
            placeholders = ", ".join("?" for _ in ids)
            await conn.execute(
                f"DELETE FROM products WHERE id NOT IN ({placeholders});", ids
            )
        else:
            await conn.execute("DELETE FROM products;")
        await conn.executemany(
            f"""
            INSERT INTO products(id, name, price, category, image_url,
                                 description, manufacturer, distributor, position)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET {_UPSERT_PRODUCT_SET},
                position = excluded.position;
            """,
            [params + (pos,) for pos, params in enumerate(_product_params(products))],
        )
    tracker.notify(PRODUCTS, CART)


async def upsert_products(products: List[models.Product]) -> None:
    """Insert or update single products without touching the rest (cart sync)."""
    if not products:
        return
    async with transaction() as conn:
        await conn.executemany(
            f"""
            INSERT INTO products(id, name, price, category, image_url,
                                 description, manufacturer, distributor, position)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?,
                    (SELECT COALESCE(MAX(position), -1) + 1 FROM products))
            ON CONFLICT(id) DO UPDATE SET {_UPSERT_PRODUCT_SET};
            """,
            _product_params(products),
        )
    tracker.notify(PRODUCTS)


async def list_products() -> List[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY position, id;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def list_products_by_category(category: str) -> List[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLUMNS}
            FROM products
            WHERE category = ?
            ORDER BY position, id;
            """,
            (category,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def list_categories() -> List[str]:
    """Unique category labels, lexicographically ordered."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT DISTINCT category FROM products ORDER BY category ASC;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [row[0] for row in rows]


async def get_product(product_id: int) -> Optional[models.Product]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?;", (product_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_product(row) if row else None


def observe_products() -> LiveQuery[List[models.Product]]:
    return LiveQuery([PRODUCTS], list_products)


def observe_products_by_category(category: str) -> LiveQuery[List[models.Product]]:
    return LiveQuery([PRODUCTS], lambda: list_products_by_category(category))


def observe_categories() -> LiveQuery[List[str]]:
    return LiveQuery([PRODUCTS], list_categories)


# ---------------------------
# Cart
# ---------------------------


async def get_cart_item(product_id: int) -> Optional[models.CartItem]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT product_id, quantity FROM cart_items WHERE product_id = ?;",
            (product_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.CartItem(product_id=int(row[0]), quantity=int(row[1]))


async def upsert_cart_item(item: models.CartItem) -> None:
    """Insert or replace by product_id. Quantity must be >= 1."""
    if item.quantity < 1:
        raise ValueError("Cart quantity must be at least 1.")
    async with transaction() as conn:
        await conn.execute(
            """
            INSERT INTO cart_items(product_id, quantity) VALUES (?, ?)
            ON CONFLICT(product_id) DO UPDATE SET quantity = excluded.quantity;
            """,
            (item.product_id, item.quantity),
        )
    tracker.notify(CART)


async def set_cart_quantity(product_id: int, quantity: int) -> bool:
    """
    Set quantity of an existing row. A quantity below 1 deletes the row.
    Returns True if a row was changed.
    """
    if quantity < 1:
        return await delete_cart_item(product_id)
    async with transaction() as conn:
        cur = await conn.execute(
            "UPDATE cart_items SET quantity = ? WHERE product_id = ?;",
            (quantity, product_id),
        )
        changed = cur.rowcount > 0
        await cur.close()
    if changed:
        tracker.notify(CART)
    return changed


async def add_cart_quantity(
    product_id: int, delta: int = 1, insert_missing: bool = True
) -> Optional[int]:
    """
    Atomically add delta to a row's quantity, in a single statement.

    With insert_missing, an absent row is created with quantity=delta;
    otherwise an absent row is left alone. Returns the new quantity, or
    None if nothing was written.
    """
    if delta < 1:
        raise ValueError("delta must be positive; use decrement_cart_quantity.")
    async with transaction() as conn:
        if insert_missing:
            cur = await conn.execute(
                """
                INSERT INTO cart_items(product_id, quantity) VALUES (?, ?)
                ON CONFLICT(product_id) DO UPDATE SET quantity = quantity + excluded.quantity
                RETURNING quantity;
                """,
                (product_id, delta),
            )
        else:
            cur = await conn.execute(
                """
                UPDATE cart_items SET quantity = quantity + ?
                WHERE product_id = ?
                RETURNING quantity;
                """,
                (delta, product_id),
            )
        row = await cur.fetchone()
        await cur.close()
    if row is None:
        return None
    tracker.notify(CART)
    return int(row[0])


async def decrement_cart_quantity(product_id: int) -> Optional[int]:
    """
    Atomically take one off a row's quantity; a row at 1 is deleted instead.

    Returns the new quantity (0 when the row was removed), or None if the
    row did not exist.
    """
    new_qty: Optional[int] = None
    async with transaction() as conn:
        cur = await conn.execute(
            "DELETE FROM cart_items WHERE product_id = ? AND quantity <= 1;",
            (product_id,),
        )
        removed = cur.rowcount > 0
        await cur.close()
        if removed:
            new_qty = 0
        else:
            cur = await conn.execute(
                """
                UPDATE cart_items SET quantity = quantity - 1
                WHERE product_id = ?
                RETURNING quantity;
                """,
                (product_id,),
            )
            row = await cur.fetchone()
            await cur.close()
            if row is not None:
                new_qty = int(row[0])
    if new_qty is not None:
        tracker.notify(CART)
    return new_qty


async def delete_cart_item(product_id: int) -> bool:
    async with transaction() as conn:
        cur = await conn.execute(
            "DELETE FROM cart_items WHERE product_id = ?;", (product_id,)
        )
        changed = cur.rowcount > 0
        await cur.close()
    if changed:
        tracker.notify(CART)
    return changed


async def clear_cart() -> None:
    async with transaction() as conn:
        await conn.execute("DELETE FROM cart_items;")
    tracker.notify(CART)


async def replace_cart(items: List[models.CartItem]) -> None:
    """Swap the whole cart for items in one transaction (server cart sync)."""
    async with transaction() as conn:
        await conn.execute("DELETE FROM cart_items;")
        await conn.executemany(
            "INSERT INTO cart_items(product_id, quantity) VALUES (?, ?);",
            [(i.product_id, i.quantity) for i in items if i.quantity >= 1],
        )
    tracker.notify(CART)


async def list_cart_with_details() -> List[models.CartItemWithDetails]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT product_id, quantity, name, price, image_url
            FROM cart_items_with_details
            ORDER BY product_id;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.CartItemWithDetails(
            product_id=int(row[0]),
            quantity=int(row[1]),
            name=row[2],
            price=float(row[3]),
            image_url=row[4],
        )
        for row in rows
    ]


def observe_cart_with_details() -> LiveQuery[List[models.CartItemWithDetails]]:
    return LiveQuery([CART, PRODUCTS], list_cart_with_details)


# ---------------------------
# Users
# ---------------------------


async def insert_user(user: models.User) -> models.User:
    """
    Insert a locally registered user and return it with its assigned id.
    Raises ConstraintViolation if the email is already taken.
    """
    async with transaction() as conn:
        cur = await conn.execute(
            f"""
            INSERT INTO users({_USER_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            _user_params(user),
        )
        new_id = cur.lastrowid
        await cur.close()
    tracker.notify(USERS)
    return dataclasses.replace(user, id=int(new_id))


async def get_user_by_email(email: str) -> Optional[models.User]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = ? LIMIT 1;", (email,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_user(row) if row else None


async def get_user(user_id: int) -> Optional[models.User]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?;", (user_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_user(row) if row else None


# ---------------------------
# Server profiles
# ---------------------------


async def upsert_profile(user: models.User) -> None:
    """Mirror a server profile into the cache, keyed by its server id."""
    if user.id is None:
        raise ValueError("upsert_profile needs a server-assigned id.")
    async with transaction() as conn:
        await conn.execute(
            f"""
            INSERT INTO profiles({_PROFILE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                username = excluded.username,
                email = excluded.email,
                profile_picture_url = excluded.profile_picture_url,
                user_role = excluded.user_role,
                points_balance = excluded.points_balance,
                user_level = excluded.user_level;
            """,
            _profile_params(user),
        )
    tracker.notify(PROFILES)


async def get_profile(user_id: int) -> Optional[models.User]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE id = ?;", (user_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_profile(row) if row else None


async def _update_profile(user_id: int, assignments: str, params: tuple) -> None:
    async with transaction() as conn:
        cur = await conn.execute(
            f"UPDATE profiles SET {assignments} WHERE id = ?;", params + (user_id,)
        )
        changed = cur.rowcount > 0
        await cur.close()
    if not changed:
        raise NotFound(f"No cached profile with id {user_id}.")
    tracker.notify(PROFILES)


async def update_profile_details(user_id: int, username: str, email: str) -> None:
    """Raises NotFound if the profile is not cached."""
    await _update_profile(user_id, "username = ?, email = ?", (username, email))


async def update_profile_picture(user_id: int, url: Optional[str]) -> None:
    """Raises NotFound if the profile is not cached."""
    await _update_profile(user_id, "profile_picture_url = ?", (url,))
