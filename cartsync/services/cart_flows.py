import itertools
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import Config
from ..exceptions import CartException
from ..schemas.cart import CartSnapshot, CartState, Variant
from ..schemas.coupon import CouponDescriptor, sanitize_coupon_code
from .backends import CartBackend, GuestCartBackend, ServerCartBackend
from .cart_store import CartStore
from .notifications import Notifier


logger = logging.getLogger(__name__)

# Failures a cart action reports to the user instead of raising
EXPECTED_FAILURES = (httpx.HTTPError, CartException, SQLAlchemyError)


class RequestSequencer:
    """
    Hands out increasing tokens per line item so that a response overtaken by
    a newer request for the same line can be recognised and dropped.

    A cart-wide token (key None) supersedes every token issued before it, and
    is itself only current while no later request has been issued. One that
    was overtaken by line tokens only is still the latest cart-wide token.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._counter = itertools.count(1)
        self._latest: Dict[str, int] = {}
        self._barrier = 0
        self._last = 0

    def issue(self, key: Optional[str] = None) -> int:
        token = next(self._counter)
        self._last = token
        if key is None:
            self._barrier = token
        else:
            self._latest[key] = token
        return token

    def is_current(self, key: Optional[str], token: int) -> bool:
        if not self.enabled:
            return True
        if key is None:
            return token == self._last
        return token > self._barrier and self._latest.get(key) == token

    def is_latest_cart_wide(self, token: int) -> bool:
        """True while no newer cart-wide token exists, whatever line tokens came after"""
        return token == self._barrier


class CartFlows:
    """
    Reconciliation of user cart actions with whichever backend owns the cart.

    Each action mutates through the backend, takes the authoritative cart it
    returns and commits it to the store with set_cart. Coupon eligibility is
    left to the store. When the backend fails the store is left untouched and
    an error notification is raised.
    """

    def __init__(
        self,
        store: CartStore,
        backend: CartBackend,
        notifier: Optional[Notifier] = None,
        sequencing: Optional[bool] = None,
    ):
        self.store = store
        self.backend = backend
        self.notifier = notifier or Notifier()
        if sequencing is None:
            sequencing = Config.REQUEST_SEQUENCING
        self.sequencer = RequestSequencer(enabled=sequencing)

    @property
    def state(self) -> CartState:
        return self.store.state

    async def _attempt(self, action: str, operation: Callable[[], Awaitable]) -> Tuple[bool, object]:
        try:
            return True, await operation()
        except EXPECTED_FAILURES as e:
            message = e.message if isinstance(e, CartException) else "Something went wrong"
            logger.warning("Cart action %s failed: %r", action, e)
            self.notifier.error(message)
            return False, None

    async def _reconcile(
        self,
        action: str,
        key: Optional[str],
        operation: Callable[[], Awaitable[CartSnapshot]],
        success_message: Optional[str] = None,
    ) -> CartState:
        token = self.sequencer.issue(key)
        backend = self.backend

        ok, snapshot = await self._attempt(action, operation)
        if not ok:
            return self.store.state

        if backend is not self.backend:
            logger.info("Dropping %s response from the previous backend", action)
            return self.store.state

        if not self.sequencer.is_current(key, token):
            logger.info("Dropping superseded %s response", action)
            if key is None and self.sequencer.is_latest_cart_wide(token):
                # overtaken by line actions only, resync from the backend
                state = await self.load()
                if success_message is not None:
                    self.notifier.success(snapshot.message or success_message)
                return state
            return self.store.state

        state = self._commit(snapshot)

        if snapshot.coupon is not None and state.applied_coupon is None:
            try:
                await backend.discard_coupon()
            except EXPECTED_FAILURES as e:
                logger.warning("Could not forget ineligible coupon %s: %r", snapshot.coupon.code, e)

        if success_message is not None:
            self.notifier.success(snapshot.message or success_message)

        return state

    def _commit(self, snapshot: CartSnapshot) -> CartState:
        fields = {"is_guest": self.backend.is_guest}
        if "cart_id" in snapshot.model_fields_set:
            fields["cart_id"] = snapshot.cart_id
        return self.store.set_cart(snapshot.items, applied_coupon=snapshot.coupon, **fields)

    async def load(self) -> CartState:
        """Fetch the cart from the current backend and rebuild the store from it"""
        return await self._reconcile("load", None, self.backend.fetch)

    async def add_item(self, variant: Variant, quantity: int = 1) -> CartState:
        if quantity <= 0:
            logger.debug("Ignoring add of %s with quantity %s", variant.id, quantity)
            return self.store.state

        return await self._reconcile(
            "add", variant.id, lambda: self.backend.add(variant, quantity), "Item added to cart"
        )

    async def update_quantity(self, item_id: str, quantity: int) -> CartState:
        """Set a line's quantity; 0 or less removes the line"""
        item = self.store.state.find_item(item_id)
        if item is None:
            logger.debug("Ignoring quantity change for unknown line %s", item_id)
            return self.store.state

        if quantity <= 0:
            return await self.remove_item(item_id)

        return await self._reconcile(
            "update_quantity",
            item.variant.id,
            lambda: self.backend.update_quantity(item, quantity),
            "Quantity updated",
        )

    async def increase(self, item_id: str) -> CartState:
        item = self.store.state.find_item(item_id)
        if item is None:
            return self.store.state
        return await self.update_quantity(item_id, item.quantity + 1)

    async def decrease(self, item_id: str) -> CartState:
        item = self.store.state.find_item(item_id)
        if item is None:
            return self.store.state
        return await self.update_quantity(item_id, item.quantity - 1)

    async def remove_item(self, item_id: str) -> CartState:
        item = self.store.state.find_item(item_id)
        if item is None:
            return self.store.state

        return await self._reconcile(
            "remove", item.variant.id, lambda: self.backend.remove(item), "Item removed from cart"
        )

    async def clear(self) -> CartState:
        return await self._reconcile("clear", None, self.backend.clear, "Cart cleared successfully!")

    async def apply_coupon(self, code: str) -> CartState:
        """Apply a typed coupon code; rejections are reported, never committed"""
        code = sanitize_coupon_code(code)
        if not code:
            self.notifier.error("Please enter a coupon code")
            return self.store.state

        return await self._reconcile(
            "apply_coupon", None, lambda: self.backend.apply_coupon(code), "Coupon applied successfully!"
        )

    async def apply_suggested_coupon(self, descriptor: CouponDescriptor) -> CartState:
        """Apply a coupon picked from the available coupons list"""
        return await self._reconcile(
            "apply_coupon",
            None,
            lambda: self.backend.apply_coupon(sanitize_coupon_code(descriptor.code), descriptor),
            "Coupon applied successfully!",
        )

    async def remove_coupon(self) -> CartState:
        """Remove the coupon; only a newer cart-wide action can overrule it"""
        token = self.sequencer.issue(None)

        ok, _ = await self._attempt("remove_coupon", self.backend.remove_coupon)
        if not ok:
            return self.store.state

        if not (self.sequencer.is_current(None, token) or self.sequencer.is_latest_cart_wide(token)):
            logger.info("Dropping superseded remove_coupon response")
            return self.store.state

        state = self.store.remove_coupon()
        self.notifier.success("Coupon removed")
        return state

    async def available_coupons(self) -> List[CouponDescriptor]:
        """Coupons offered for the current cart; an empty list when they cannot be loaded"""
        try:
            return await self.backend.list_available_coupons(self.store.state)
        except EXPECTED_FAILURES as e:
            logger.error("Failed to load coupons: %r", e)
            return []

    async def hand_off(self, backend: CartBackend, merge_guest_items: bool = False) -> CartState:
        """
        Switch the session to another backend, typically guest to authenticated after login.

        The guest cart is left where it is unless merge_guest_items is set, in
        which case its lines are posted to the authenticated cart and the
        local copy is cleared. The store is then rebuilt from the new backend.
        Once the merge went through the switch happens even if the local
        copy could not be cleared.
        """
        previous = self.backend
        self.sequencer.issue(None)

        if merge_guest_items and isinstance(previous, GuestCartBackend) and isinstance(backend, ServerCartBackend):
            async def merge():
                lines = await previous.export_lines()
                if lines:
                    await backend.merge(lines)
                return lines

            ok, lines = await self._attempt("merge", merge)
            if not ok:
                return self.store.state

            if lines:
                try:
                    await previous.clear()
                except EXPECTED_FAILURES as e:
                    logger.warning("Merged guest cart could not be cleared locally: %r", e)

        self.backend = backend
        self.store.clear_cart()
        return await self.load()
