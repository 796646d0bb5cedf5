from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from .cart import CartTotals, LineItem, Variant
from .coupon import GuestCouponRecord


class GuestCartItemCreate(BaseModel):
    """Schema for adding a variant to the guest cart"""
    variant: Variant
    quantity: int = Field(ge=1, default=1)


class GuestCartItemUpdate(BaseModel):
    """Schema for setting a guest line's quantity; 0 removes the line"""
    variant_id: str = Field(alias="variantId")
    quantity: int = Field(ge=0)

    model_config = ConfigDict(populate_by_name=True)


class GuestCartContents(BaseModel):
    items: List[LineItem] = []


class GuestCartResponse(BaseModel):
    """Schema for the guest cart read"""
    success: bool = True
    cart: GuestCartContents
    coupon: Optional[GuestCouponRecord] = None
    totals: CartTotals


class GuestCartMutationResponse(BaseModel):
    """Schema for guest cart writes"""
    success: bool = True
    message: str
    cart_count: int = Field(alias="cartCount")

    model_config = ConfigDict(populate_by_name=True)
