import itertools
import json
from contextlib import asynccontextmanager

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cartsync.db.database import init_db
from cartsync.schemas.cart import LineItem, Variant
from cartsync.services.cart_client import ServerCartClient


def variant_payload(variant_id="v-1", mrp=100, selling=80, stock=None, grocery_id="g-1", category="c-1", label="1 kg"):
    payload = {
        "_id": variant_id,
        "label": label,
        "price": {"mrp": mrp, "selling": selling},
        "grocery": {"_id": grocery_id, "name": "Basmati Rice", "category": category},
    }
    if stock is not None:
        payload["countInStock"] = stock
    return payload


def make_variant(**kwargs) -> Variant:
    return Variant.model_validate(variant_payload(**kwargs))


def make_item(item_id="line-1", quantity=1, mrp=100, selling=80, price_at_add=True, variant_id=None, **kwargs) -> LineItem:
    payload = {
        "_id": item_id,
        "variant": variant_payload(variant_id=variant_id or f"v-{item_id}", mrp=mrp, selling=selling, **kwargs),
        "quantity": quantity,
    }
    if price_at_add:
        payload["priceAtAdd"] = {"mrp": mrp, "selling": selling}
    return LineItem.model_validate(payload)


@asynccontextmanager
async def guest_sessions(database_url):
    """Session factory over a fresh guest cart database"""
    engine = create_async_engine(database_url, poolclass=NullPool)
    await init_db(engine)
    try:
        yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


def coupon_payload(code, discount_type="PERCENTAGE", value=10, max_amount=None, min_cart=None):
    return {
        "_id": f"coupon-{code}",
        "code": code,
        "discountType": discount_type,
        "discountValue": value,
        "maxDiscountAmount": max_amount,
        "minCartValue": min_cart,
    }


class FakeCartApi:
    """
    In-memory stand-in for the storefront cart and coupon endpoints.

    Mirrors the real routes: mutations echo the item list, only the update
    route echoes the coupon (without restating discountValue unless
    echo_discount_value is set), and unless enforce_min_cart is cleared the
    update route drops a coupon whose minimum cart value is no longer met.
    """

    def __init__(self, catalog=None, coupons=None):
        self.catalog = {v["_id"]: v for v in (catalog or [])}
        self.coupons = {c["code"]: c for c in (coupons or [])}
        self.cart_id = "cart-1"
        self.items = []
        self.coupon = None
        self.echo_discount_value = False
        self.enforce_min_cart = True
        self.calls = []
        self.failures = {}
        self.network_errors = set()
        self._ids = itertools.count(1)

    def client(self) -> ServerCartClient:
        transport = httpx.MockTransport(self.handle)
        return ServerCartClient(client=httpx.AsyncClient(transport=transport, base_url="http://storefront.test"))

    def fail(self, path, message="Request failed", status_code=500):
        self.failures[path] = (status_code, message)

    def sub_total(self):
        return sum(i["priceAtAdd"]["selling"] * i["quantity"] for i in self.items)

    def _cart_body(self, message=""):
        return {"success": True, "message": message, "cartId": self.cart_id, "items": list(self.items)}

    def _find(self, item_id):
        return next((i for i in self.items if i["_id"] == item_id), None)

    def _add(self, variant_id, quantity):
        existing = next((i for i in self.items if i["variant"]["_id"] == variant_id), None)
        if existing:
            existing["quantity"] += quantity
            return
        variant = self.catalog[variant_id]
        self.items.append({
            "_id": f"line-{next(self._ids)}",
            "variant": variant,
            "quantity": quantity,
            "priceAtAdd": {"mrp": variant["price"]["mrp"], "selling": variant["price"]["selling"]},
        })

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        body = json.loads(request.content) if request.content else {}

        if path in self.network_errors:
            raise httpx.ConnectError("connection refused", request=request)
        if path in self.failures:
            status_code, message = self.failures[path]
            return httpx.Response(status_code, json={"success": False, "message": message})

        if request.method == "GET" and path == "/api/cart":
            return httpx.Response(200, json={
                "success": True,
                "cart": {"_id": self.cart_id},
                "items": list(self.items),
                "coupon": self.coupon,
            })

        if path == "/api/cart/add":
            self._add(body["variantId"], body.get("quantity", 1))
            return httpx.Response(200, json=self._cart_body("Item added to cart"))

        if path == "/api/cart/update":
            item = self._find(body["cartItemId"])
            if item is None:
                return httpx.Response(404, json={"success": False, "message": "Cart item not found"})
            if body["quantity"] <= 0:
                self.items.remove(item)
            else:
                item["quantity"] = body["quantity"]
            response = self._cart_body("Quantity updated")
            if self.coupon is not None:
                if self.enforce_min_cart and self.coupon.get("minCartValue") and self.sub_total() < self.coupon["minCartValue"]:
                    self.coupon = None
                else:
                    echoed = {
                        "code": self.coupon["code"],
                        "discountType": self.coupon["discountType"],
                        "discountAmount": self.coupon["discountAmount"],
                        "minCartValue": self.coupon.get("minCartValue"),
                        "maxDiscountAmount": self.coupon.get("maxDiscountAmount"),
                    }
                    if self.echo_discount_value:
                        echoed["discountValue"] = self.coupon["discountValue"]
                    response["coupon"] = echoed
            return httpx.Response(200, json=response)

        if path == "/api/cart/remove":
            item = self._find(body["cartItemId"])
            if item is not None:
                self.items.remove(item)
            return httpx.Response(200, json=self._cart_body("Item removed from cart"))

        if path == "/api/cart/clear":
            self.items = []
            self.coupon = None
            return httpx.Response(200, json=self._cart_body("Cart cleared"))

        if path == "/api/cart/merge":
            for line in body["items"]:
                self._add(line["variantId"], line["quantity"])
            return httpx.Response(200, json=self._cart_body("Cart merged"))

        if path == "/api/coupon/apply-coupon":
            coupon = self.coupons.get(body["code"].upper())
            if coupon is None:
                return httpx.Response(400, json={"message": "Invalid coupon"})
            if not self.items:
                return httpx.Response(400, json={"message": "Cart is empty"})
            if coupon.get("minCartValue") and self.sub_total() < coupon["minCartValue"]:
                return httpx.Response(400, json={"message": f"Minimum cart value ₹{coupon['minCartValue']}"})
            if coupon["discountType"] == "PERCENTAGE":
                amount = self.sub_total() * coupon["discountValue"] // 100
            else:
                amount = coupon["discountValue"]
            self.coupon = {**coupon, "discountAmount": amount}
            return httpx.Response(200, json={
                "success": True,
                "message": "Coupon applied successfully",
                "discountAmount": amount,
            })

        if path == "/api/coupon/remove-coupon":
            self.coupon = None
            return httpx.Response(200, json={"success": True, "message": "Coupon removed"})

        if path == "/api/coupon/available":
            cart_total = body.get("cartTotal") or 0
            offered = [
                c for c in self.coupons.values()
                if not cart_total or not c.get("minCartValue") or c["minCartValue"] <= cart_total
            ]
            return httpx.Response(200, json={"success": True, "coupons": offered, "count": len(offered)})

        return httpx.Response(404, json={"success": False, "message": f"No route {path}"})
