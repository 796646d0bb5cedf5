import logging
from abc import ABC, abstractmethod
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import Any, Dict, List, Optional

from ..exceptions import CouponRejectedException
from ..schemas.cart import CartResponse, CartSnapshot, CartState, LineItem, Variant
from ..schemas.coupon import CouponDescriptor
from .cart_client import ServerCartClient, normalize_server_coupon
from .cart_store import CartStore
from .guest_cart_service import GuestCartService
from .pricing import calculate_totals


logger = logging.getLogger(__name__)


def catalog_refs(items: List[LineItem]):
    """Distinct category ids and product ids of the cart, in cart order"""
    category_ids: List[str] = []
    product_ids: List[str] = []
    for item in items:
        grocery = item.variant.grocery
        if grocery is None:
            continue
        if grocery.category and grocery.category not in category_ids:
            category_ids.append(grocery.category)
        if grocery.id not in product_ids:
            product_ids.append(grocery.id)
    return category_ids, product_ids


class CartBackend(ABC):
    """
    Where one cart action is carried out.

    Every mutation returns the authoritative post-mutation CartSnapshot so
    the reconciliation flow never has to trust its in-memory copy.
    """

    is_guest: bool = False

    def __init__(self, store: CartStore, client: Optional[ServerCartClient] = None):
        self.store = store
        self.client = client or ServerCartClient()

    @abstractmethod
    async def fetch(self) -> CartSnapshot:
        ...

    @abstractmethod
    async def add(self, variant: Variant, quantity: int) -> CartSnapshot:
        ...

    @abstractmethod
    async def update_quantity(self, item: LineItem, quantity: int) -> CartSnapshot:
        ...

    @abstractmethod
    async def remove(self, item: LineItem) -> CartSnapshot:
        ...

    @abstractmethod
    async def clear(self) -> CartSnapshot:
        ...

    @abstractmethod
    async def apply_coupon(self, code: str, descriptor: Optional[CouponDescriptor] = None) -> CartSnapshot:
        ...

    @abstractmethod
    async def remove_coupon(self) -> None:
        ...

    async def discard_coupon(self) -> None:
        """Forget a coupon the cart store dropped as no longer eligible"""
        return None

    async def list_available_coupons(self, state: CartState) -> List[CouponDescriptor]:
        if state.is_empty:
            return []
        category_ids, product_ids = catalog_refs(state.items)
        return await self.client.list_available_coupons(state.totals.sub_total, category_ids, product_ids)


class ServerCartBackend(CartBackend):
    """Cart of an authenticated user, persisted by the storefront API"""

    is_guest = False

    def _snapshot(self, response: CartResponse, message: Optional[str] = None) -> CartSnapshot:
        coupon = None
        if response.items:
            coupon = normalize_server_coupon(response.coupon, self.store.state.applied_coupon)

        fields: Dict[str, Any] = {
            "items": response.items,
            "coupon": coupon,
            "message": message or response.message,
        }
        cart_id = response.resolved_cart_id
        if cart_id is not None or not response.items:
            fields["cart_id"] = cart_id

        return CartSnapshot(**fields)

    async def _after_mutation(self, response: CartResponse) -> CartSnapshot:
        if not response.items:
            await self.client.discard_coupon_best_effort()
        return self._snapshot(response)

    async def fetch(self) -> CartSnapshot:
        return self._snapshot(await self.client.fetch_cart())

    async def add(self, variant: Variant, quantity: int) -> CartSnapshot:
        return await self._after_mutation(await self.client.add(variant.id, quantity))

    async def update_quantity(self, item: LineItem, quantity: int) -> CartSnapshot:
        return await self._after_mutation(await self.client.update_quantity(item.id, quantity))

    async def remove(self, item: LineItem) -> CartSnapshot:
        return await self._after_mutation(await self.client.remove(item.id))

    async def clear(self) -> CartSnapshot:
        response = await self.client.clear()
        return CartSnapshot(
            items=[],
            cart_id=response.resolved_cart_id,
            coupon=None,
            message=response.message,
        )

    async def merge(self, lines: List[Dict[str, Any]]) -> CartSnapshot:
        return self._snapshot(await self.client.merge(lines))

    async def apply_coupon(self, code: str, descriptor: Optional[CouponDescriptor] = None) -> CartSnapshot:
        """Apply server side, then re-fetch: the apply endpoint does not echo the cart"""
        result = await self.client.apply_coupon(code)
        return self._snapshot(await self.client.fetch_cart(), message=result.message)

    async def remove_coupon(self) -> None:
        await self.client.remove_coupon()


class GuestCartBackend(CartBackend):
    """Cart of a session without an account, persisted locally"""

    is_guest = True

    def __init__(
        self,
        store: CartStore,
        session_factory: Optional[async_sessionmaker] = None,
        service: Optional[GuestCartService] = None,
        client: Optional[ServerCartClient] = None,
    ):
        super().__init__(store, client)
        if session_factory is None:
            from ..db.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory
        self.service = service or GuestCartService()

    async def _snapshot(self, db: AsyncSession, message: str = "") -> CartSnapshot:
        items = await self.service.get_items(db)

        if not items:
            await self.service.discard_coupon(db)
            coupon = None
        else:
            coupon = await self.service.load_coupon(db)

        return CartSnapshot(items=items, cart_id=None, coupon=coupon, message=message)

    async def fetch(self) -> CartSnapshot:
        async with self.session_factory() as db:
            return await self._snapshot(db)

    async def add(self, variant: Variant, quantity: int) -> CartSnapshot:
        async with self.session_factory() as db:
            await self.service.add_item(variant, quantity, db)
            return await self._snapshot(db, "Item added to cart")

    async def update_quantity(self, item: LineItem, quantity: int) -> CartSnapshot:
        async with self.session_factory() as db:
            await self.service.set_quantity(item.variant.id, quantity, db)
            return await self._snapshot(db, "Quantity updated")

    async def remove(self, item: LineItem) -> CartSnapshot:
        async with self.session_factory() as db:
            await self.service.set_quantity(item.variant.id, 0, db)
            return await self._snapshot(db, "Item removed from cart")

    async def clear(self) -> CartSnapshot:
        async with self.session_factory() as db:
            await self.service.clear(db)
        return CartSnapshot(items=[], cart_id=None, coupon=None, message="Cart cleared successfully!")

    async def export_lines(self) -> List[Dict[str, Any]]:
        """Guest lines in the shape the merge endpoint takes"""
        async with self.session_factory() as db:
            items = await self.service.get_items(db)
        return [{"variantId": item.variant.id, "quantity": item.quantity} for item in items]

    async def apply_coupon(self, code: str, descriptor: Optional[CouponDescriptor] = None) -> CartSnapshot:
        """
        Validate a coupon against the coupons the storefront offers and keep it locally.

        Raises:
            CouponRejectedException: The cart is empty, the code is not offered,
                or the cart is below the coupon's minimum value.
        """
        async with self.session_factory() as db:
            items = await self.service.get_items(db)
            if not items:
                raise CouponRejectedException("Cart is empty")

            sub_total = calculate_totals(items).sub_total

            if descriptor is None:
                category_ids, product_ids = catalog_refs(items)
                offered = await self.client.list_available_coupons(sub_total, category_ids, product_ids)
                descriptor = next((c for c in offered if c.code.strip().upper() == code), None)
                if descriptor is None:
                    raise CouponRejectedException("Invalid coupon code")

            if descriptor.min_cart_value and sub_total < descriptor.min_cart_value:
                raise CouponRejectedException(f"Minimum cart value ₹{descriptor.min_cart_value:g} required")

            await self.service.save_coupon(descriptor.to_applied_coupon(), db)
            return await self._snapshot(db, "Coupon applied successfully!")

    async def remove_coupon(self) -> None:
        async with self.session_factory() as db:
            await self.service.discard_coupon(db)

    async def discard_coupon(self) -> None:
        await self.remove_coupon()
