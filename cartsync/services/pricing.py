from typing import Iterable, Optional

from ..enums import CouponType
from ..schemas.cart import CartTotals, LineItem
from ..schemas.coupon import AppliedCoupon


# Must stay identical to the delivery charge the checkout API bills
FREE_DELIVERY_THRESHOLD = 500
DELIVERY_FEE = 40


def calculate_delivery_fee(sub_total: float) -> float:
    """Delivery is free for an empty cart and for carts of FREE_DELIVERY_THRESHOLD and above"""
    if sub_total >= FREE_DELIVERY_THRESHOLD or sub_total == 0:
        return 0
    return DELIVERY_FEE


def calculate_coupon_discount(sub_total: float, coupon: Optional[AppliedCoupon]) -> float:
    """
    Discount a coupon grants against a subtotal.

    Args:
        sub_total (float): Sum of selling prices times quantities.
        coupon (Optional[AppliedCoupon]): Coupon to evaluate, if any.

    Returns:
        float: 0 when there is no coupon or its minimum cart value is not met.
            Percentage coupons are capped by max_discount; flat coupons are
            not capped by the subtotal.
    """
    if coupon is None:
        return 0
    if coupon.min_cart_value and sub_total < coupon.min_cart_value:
        return 0

    if coupon.type == CouponType.PERCENTAGE:
        discount = sub_total * coupon.discount_value / 100
        if coupon.max_discount and discount > coupon.max_discount:
            discount = coupon.max_discount
    else:
        discount = coupon.discount_value

    return max(discount, 0)


def calculate_totals(items: Iterable[LineItem], coupon: Optional[AppliedCoupon] = None) -> CartTotals:
    """
    Derive every monetary figure of a cart from its line items and coupon.

    Prices captured at add time win over the live variant price so a price
    change after adding does not alter what the customer was shown.
    """
    total_mrp = 0
    sub_total = 0
    total_items = 0

    for item in items:
        price = item.price_at_add or item.variant.price
        total_mrp += price.mrp * item.quantity
        sub_total += price.selling * item.quantity
        total_items += item.quantity

    delivery_fee = calculate_delivery_fee(sub_total)
    coupon_discount = calculate_coupon_discount(sub_total, coupon)

    return CartTotals(
        total_mrp=total_mrp,
        sub_total=sub_total,
        savings=total_mrp - sub_total,
        delivery_fee=delivery_fee,
        total_items=total_items,
        coupon_discount=coupon_discount,
        final_total=max(sub_total + delivery_fee - coupon_discount, 0),
    )
