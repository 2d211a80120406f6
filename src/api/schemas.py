# wire formats of the store backend (camelCase JSON) and their mapping to models

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from db import models


class WireModel(BaseModel):
    """Backend payloads: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------
# Requests
# ---------------------------


class LoginRequest(WireModel):
    username: str
    password: str


class RegisterRequest(WireModel):
    username: str
    email: str
    password: str
    # backend expects YYYY-MM-DD
    date_of_birth: date = Field(..., alias="dateOfBirth")


class CartItemRequest(WireModel):
    product_id: int = Field(..., alias="productId")
    quantity: int


# ---------------------------
# Responses
# ---------------------------


class LoginResponse(WireModel):
    token: str


class ProductDto(WireModel):
    id: int
    name: str
    price: float
    category: str
    image_url: Optional[str] = Field(None, alias="imageUrl")
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    distributor: Optional[str] = None

    def to_model(self) -> models.Product:
        return models.Product(
            id=self.id,
            name=self.name,
            price=self.price,
            category=self.category,
            image_url=self.image_url or "",
            description=self.description or "",
            manufacturer=self.manufacturer or "",
            distributor=self.distributor or "",
        )


class ProfileDto(WireModel):
    id: int
    username: str
    email: str
    profile_picture_url: Optional[str] = Field(None, alias="profilePictureUrl")
    user_role: Optional[str] = Field(None, alias="userRole")
    points_balance: Optional[int] = Field(None, alias="pointsBalance")
    user_level: Optional[int] = Field(None, alias="userLevel")

    def to_model(self) -> models.User:
        return models.User(
            id=self.id,
            username=self.username,
            email=self.email,
            profile_picture_url=self.profile_picture_url,
            user_role=self.user_role or "ROLE_USER",
            points_balance=self.points_balance or 0,
            user_level=self.user_level or 1,
        )


class PictureDto(WireModel):
    profile_picture_url: Optional[str] = Field(None, alias="profilePictureUrl")


class CartItemDto(WireModel):
    id: Optional[int] = None
    product: ProductDto
    quantity: int


@dataclass(frozen=True)
class RemoteCart:
    id: int
    items: List[models.CartItem]
    products: List[models.Product]
    total: float


class CartDto(WireModel):
    id: int
    items: List[CartItemDto]
    total: Optional[float] = None

    def to_model(self) -> RemoteCart:
        return RemoteCart(
            id=self.id,
            items=[
                models.CartItem(product_id=i.product.id, quantity=i.quantity)
                for i in self.items
            ],
            products=[i.product.to_model() for i in self.items],
            total=self.total or 0.0,
        )


class OrderItemDto(WireModel):
    id: int
    product: ProductDto
    quantity: int
    price_at_purchase: float = Field(..., alias="priceAtPurchase")


class OrderDto(WireModel):
    id: int
    order_date: str = Field(..., alias="orderDate")
    original_price: float = Field(..., alias="originalPrice")
    final_price: float = Field(..., alias="finalPrice")
    points_earned: Optional[int] = Field(None, alias="pointsEarned")
    order_items: List[OrderItemDto] = Field(..., alias="orderItems")

    def to_model(self) -> models.Order:
        return models.Order(
            id=self.id,
            order_date=self.order_date,
            original_price=self.original_price,
            final_price=self.final_price,
            points_earned=self.points_earned or 0,
            items=[
                models.OrderItem(
                    id=line.id,
                    product=line.product.to_model(),
                    quantity=line.quantity,
                    price_at_purchase=line.price_at_purchase,
                )
                for line in self.order_items
            ],
        )


# validators for whole response bodies, used by ApiClient._json
LOGIN = TypeAdapter(LoginResponse)
PRODUCTS = TypeAdapter(List[ProductDto])
PROFILE = TypeAdapter(ProfileDto)
PICTURE = TypeAdapter(PictureDto)
CART = TypeAdapter(CartDto)
ORDER = TypeAdapter(OrderDto)
ORDERS = TypeAdapter(List[OrderDto])
