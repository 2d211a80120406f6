# provide dataclass models

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class User:
    id: Optional[int]  # None until inserted for locally registered users
    username: str
    email: str
    password_hash: Optional[str] = None  # local-auth path only
    profile_picture_url: Optional[str] = None
    user_role: str = "ROLE_USER"
    points_balance: int = 0
    user_level: int = 1


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: float
    category: str
    image_url: str
    description: str
    manufacturer: str
    distributor: str


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int  # always >= 1


@dataclass(frozen=True)
class CartItemWithDetails:
    product_id: int
    quantity: int
    name: str
    price: float
    image_url: str

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


# remote-only read models, never cached


@dataclass(frozen=True)
class OrderItem:
    id: int
    product: Product
    quantity: int
    price_at_purchase: float

    @property
    def line_total(self) -> float:
        return self.price_at_purchase * self.quantity


@dataclass(frozen=True)
class Order:
    id: int
    order_date: str
    original_price: float
    final_price: float
    points_earned: int
    items: List[OrderItem] = field(default_factory=list)
