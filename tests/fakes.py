import json
import re
from typing import Dict, List, Optional, Set, Tuple

import httpx

TOKEN = "tok-123"


def product_json(pid: int, name: str, price: float, category: str) -> dict:
    return {
        "id": pid,
        "name": name,
        "price": price,
        "category": category,
        "imageUrl": f"https://img.example.com/{pid}.png",
        "description": f"{name} description",
        "manufacturer": "ACME",
        "distributor": "LevelUp",
    }


SAMPLE_PRODUCTS = [
    product_json(1, "Mouse", 20, "Accessories"),
    product_json(2, "Keyboard", 50, "Accessories"),
    product_json(3, "Game", 60, "Games"),
]


class FakeBackend:
    """
    In-memory stand-in for the store backend, served via httpx.MockTransport.

    Set `offline` to simulate a connect failure, or put (method, path) pairs
    into `failing` to make them answer 500.
    """

    def __init__(self, products: Optional[List[dict]] = None):
        self.products: List[dict] = list(products or SAMPLE_PRODUCTS)
        self.cart: Dict[int, int] = {}
        self.passwords = {"player1": "secret"}
        self.profile = {
            "id": 7,
            "username": "player1",
            "email": "player1@example.com",
            "profilePictureUrl": None,
            "userRole": "ROLE_USER",
            "pointsBalance": 100,
            "userLevel": 2,
        }
        self.orders: List[dict] = []
        self.requests: List[httpx.Request] = []
        self.failing: Set[Tuple[str, str]] = set()
        self.offline = False

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def _product(self, pid: int) -> Optional[dict]:
        return next((p for p in self.products if p["id"] == pid), None)

    def _cart_json(self) -> dict:
        items = [
            {"id": i, "product": self._product(pid), "quantity": qty}
            for i, (pid, qty) in enumerate(sorted(self.cart.items()), start=1)
        ]
        total = sum(i["product"]["price"] * i["quantity"] for i in items)
        return {"id": 1, "items": items, "total": total}

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        if (method, path) in self.failing:
            return httpx.Response(500, text="boom")

        body = None
        if "json" in request.headers.get("content-type", ""):
            body = json.loads(request.content)

        if path == "/api/auth/login":
            if self.passwords.get(body["username"]) != body["password"]:
                return httpx.Response(401, json={"message": "Bad credentials"})
            return httpx.Response(200, json={"token": TOKEN})
        if path == "/api/auth/register":
            if body["username"] in self.passwords:
                return httpx.Response(400, text="Username is already taken!")
            self.passwords[body["username"]] = body["password"]
            return httpx.Response(200, text="User registered successfully!")
        if path == "/api/products":
            return httpx.Response(200, json=self.products)

        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, text="Unauthorized")

        if path == "/api/profile/me":
            if method == "PUT":
                self.profile.update(body)
            return httpx.Response(200, json=self.profile)
        if path == "/api/profile/password":
            if self.passwords["player1"] != body["oldPassword"]:
                return httpx.Response(400, json={"message": "Wrong password"})
            self.passwords["player1"] = body["newPassword"]
            return httpx.Response(200, text="Password changed")
        if path == "/api/profile/picture":
            url = "https://img.example.com/avatar/7.jpg"
            self.profile["profilePictureUrl"] = url
            return httpx.Response(200, json=self.profile)
        if path == "/api/cart":
            if method == "DELETE":
                self.cart.clear()
            return httpx.Response(200, json=self._cart_json())
        if path == "/api/cart/items" and method == "POST":
            pid = body["productId"]
            self.cart[pid] = self.cart.get(pid, 0) + body["quantity"]
            return httpx.Response(200, json=self._cart_json())
        match = re.fullmatch(r"/api/cart/items/(\d+)", path)
        if match:
            pid = int(match.group(1))
            if pid not in self.cart:
                return httpx.Response(404, text="Item not in cart")
            if method == "PUT":
                self.cart[pid] = body["quantity"]
            elif method == "DELETE":
                del self.cart[pid]
            return httpx.Response(200, json=self._cart_json())
        if path == "/api/orders/checkout":
            return self._checkout()
        if path == "/api/orders/my-orders":
            return httpx.Response(200, json=self.orders)
        return httpx.Response(404, text=f"No route for {method} {path}")

    def _checkout(self) -> httpx.Response:
        if not self.cart:
            return httpx.Response(400, json={"message": "Cart is empty"})
        lines = [
            {
                "id": i,
                "product": self._product(pid),
                "quantity": qty,
                "priceAtPurchase": self._product(pid)["price"],
            }
            for i, (pid, qty) in enumerate(sorted(self.cart.items()), start=1)
        ]
        total = sum(line["priceAtPurchase"] * line["quantity"] for line in lines)
        points = int(total // 10)
        order = {
            "id": len(self.orders) + 1,
            "orderDate": f"2024-05-0{len(self.orders) + 1}T10:00:00",
            "originalPrice": total,
            "finalPrice": total,
            "pointsEarned": points,
            "orderItems": lines,
        }
        self.orders.append(order)
        self.cart.clear()
        self.profile["pointsBalance"] += points
        return httpx.Response(200, json=order)

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [
            r.url.path for r in self.requests if method is None or r.method == method
        ]
