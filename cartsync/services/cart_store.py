import logging
from typing import Callable, Iterable, List, Optional

from ..schemas.cart import CartState, LineItem
from ..schemas.coupon import AppliedCoupon
from .pricing import calculate_totals


logger = logging.getLogger(__name__)

UNSET = object()

Listener = Callable[[CartState], None]


class CartStore:
    """
    Single owner of the session cart.

    The state is replaced, never patched, by exactly four writes: set_cart,
    apply_coupon, remove_coupon and clear_cart. Totals are recomputed on
    each of them and listeners are told about the new state afterwards.
    """

    def __init__(self):
        self._state = CartState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> CartState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with every new state; returns the unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_cart(
        self,
        items: Optional[Iterable[LineItem]],
        cart_id=UNSET,
        is_guest=UNSET,
        applied_coupon: Optional[AppliedCoupon] = None,
    ) -> CartState:
        """
        Replace the line items and recompute everything derived from them.

        cart_id and is_guest keep their current value unless passed. The
        supplied coupon wins over the stored one; whichever is used is kept
        only if it still yields a discount, otherwise the cart loses its
        coupon. An empty cart never keeps one.
        """
        kept_items = [item for item in (items or []) if item.quantity > 0]
        coupon = (applied_coupon or self._state.applied_coupon) if kept_items else None
        totals = calculate_totals(kept_items, coupon)

        if coupon is not None and totals.coupon_discount <= 0:
            logger.debug("Dropping coupon %s, it no longer yields a discount", coupon.code)

        return self._commit(CartState(
            items=kept_items,
            cart_id=self._state.cart_id if cart_id is UNSET else cart_id,
            is_guest=self._state.is_guest if is_guest is UNSET else bool(is_guest),
            applied_coupon=coupon if totals.coupon_discount > 0 else None,
            totals=totals,
        ))

    def apply_coupon(self, coupon: AppliedCoupon) -> CartState:
        """Attach a coupon if it discounts the current items; a non qualifying coupon leaves the cart without one"""
        totals = calculate_totals(self._state.items, coupon)
        if not self._state.items or totals.coupon_discount <= 0:
            totals = calculate_totals(self._state.items, None)

        return self._commit(self._state.model_copy(update={
            "applied_coupon": coupon if totals.coupon_discount > 0 else None,
            "totals": totals,
        }))

    def remove_coupon(self) -> CartState:
        return self._commit(self._state.model_copy(update={
            "applied_coupon": None,
            "totals": calculate_totals(self._state.items, None),
        }))

    def clear_cart(self) -> CartState:
        return self._commit(CartState())

    def _commit(self, state: CartState) -> CartState:
        self._state = state
        for listener in list(self._listeners):
            listener(state)
        return state
