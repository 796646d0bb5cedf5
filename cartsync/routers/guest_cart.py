from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..schemas.coupon import GuestCouponRecord
from ..schemas.guest_cart import (
    GuestCartContents,
    GuestCartItemCreate,
    GuestCartItemUpdate,
    GuestCartMutationResponse,
    GuestCartResponse,
)
from ..services.guest_cart_service import GuestCartService
from ..services.pricing import calculate_coupon_discount, calculate_totals

router = APIRouter()
guest_cart_service = GuestCartService()


@router.get("/", response_model=GuestCartResponse)
async def get_guest_cart(db: AsyncSession = Depends(get_db)):
    """Get the guest cart, dropping a stored coupon the cart no longer qualifies for"""
    items = await guest_cart_service.get_items(db)
    coupon = await guest_cart_service.load_coupon(db)

    if coupon is not None:
        sub_total = calculate_totals(items).sub_total
        if not items or calculate_coupon_discount(sub_total, coupon) <= 0:
            await guest_cart_service.discard_coupon(db)
            coupon = None

    return GuestCartResponse(
        cart=GuestCartContents(items=items),
        coupon=GuestCouponRecord.from_applied_coupon(coupon) if coupon else None,
        totals=calculate_totals(items, coupon),
    )


@router.post("/", response_model=GuestCartMutationResponse)
async def add_to_guest_cart(item: GuestCartItemCreate, db: AsyncSession = Depends(get_db)):
    """Add a variant to the guest cart"""
    await guest_cart_service.add_item(item.variant, item.quantity, db)
    return GuestCartMutationResponse(
        message="Item added to cart",
        cart_count=await guest_cart_service.cart_count(db),
    )


@router.patch("/", response_model=GuestCartMutationResponse)
async def update_guest_cart(item: GuestCartItemUpdate, db: AsyncSession = Depends(get_db)):
    """Set the quantity of a guest line; 0 removes it"""
    await guest_cart_service.set_quantity(item.variant_id, item.quantity, db)
    return GuestCartMutationResponse(
        message="Quantity updated" if item.quantity else "Item removed from cart",
        cart_count=await guest_cart_service.cart_count(db),
    )


@router.delete("/", response_model=GuestCartMutationResponse)
async def clear_guest_cart(db: AsyncSession = Depends(get_db)):
    """Clear all items and the coupon from the guest cart"""
    await guest_cart_service.clear(db)
    return GuestCartMutationResponse(message="Cart cleared", cart_count=0)
