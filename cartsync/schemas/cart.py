from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional

from .coupon import AppliedCoupon, CouponDescriptor, ServerCoupon


class PriceSnapshot(BaseModel):
    """Price captured when the variant was put in the cart"""
    mrp: float
    selling: float


class VariantPrice(PriceSnapshot):
    """Live catalog price of a variant"""
    discount_percent: Optional[float] = Field(None, alias="discountPercent")

    model_config = ConfigDict(populate_by_name=True)


class ImageRef(BaseModel):
    url: str


class GroceryRef(BaseModel):
    """Display copy of the parent product"""
    id: str = Field(alias="_id")
    name: str
    category: Optional[str] = None
    images: List[ImageRef] = []

    model_config = ConfigDict(populate_by_name=True)


class Variant(BaseModel):
    """Purchasable SKU as joined from the catalog"""
    id: str = Field(alias="_id")
    label: str = ""
    price: VariantPrice
    grocery: Optional[GroceryRef] = None
    count_in_stock: Optional[int] = Field(None, alias="countInStock")

    model_config = ConfigDict(populate_by_name=True)


class LineItem(BaseModel):
    """One cart entry; guest lines use the variant id as their identity"""
    id: str = Field(alias="_id")
    variant: Variant
    quantity: int
    price_at_add: Optional[PriceSnapshot] = Field(None, alias="priceAtAdd")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CartTotals(BaseModel):
    """Derived monetary figures; only services.pricing builds these"""
    total_mrp: float = Field(0, alias="totalMRP")
    sub_total: float = Field(0, alias="subTotal")
    savings: float = 0
    delivery_fee: float = Field(0, alias="deliveryFee")
    total_items: int = Field(0, alias="totalItems")
    coupon_discount: float = Field(0, alias="couponDiscount")
    final_total: float = Field(0, alias="finalTotal")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CartState(BaseModel):
    """Immutable snapshot of the session cart held by the cart store"""
    items: List[LineItem] = []
    cart_id: Optional[str] = Field(None, alias="cartId")
    is_guest: bool = Field(False, alias="isGuest")
    applied_coupon: Optional[AppliedCoupon] = Field(None, alias="appliedCoupon")
    totals: CartTotals = CartTotals()

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def find_item(self, item_id: str) -> Optional[LineItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def is_empty(self) -> bool:
        return not self.items


class CartSnapshot(BaseModel):
    """
    Authoritative cart contents returned by one backend round trip.

    cart_id is only meaningful when it was explicitly set; check
    ``"cart_id" in snapshot.model_fields_set`` before using it.
    """
    items: List[LineItem] = []
    cart_id: Optional[str] = None
    coupon: Optional[AppliedCoupon] = None
    message: str = ""


class CartDocument(BaseModel):
    id: Optional[str] = Field(None, alias="_id")

    model_config = ConfigDict(populate_by_name=True)


class ApiMessage(BaseModel):
    """Bare {success, message} answer of the coupon endpoints"""
    success: bool = False
    message: str = ""


class CartResponse(ApiMessage):
    """Cart API answer, for both fetch and mutations"""
    success: bool = True
    items: List[LineItem] = []
    cart_id: Optional[str] = Field(None, alias="cartId")
    cart: Optional[CartDocument] = None
    coupon: Optional[ServerCoupon] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("items", mode="before")
    @classmethod
    def null_items(cls, value):
        return value or []

    @property
    def resolved_cart_id(self) -> Optional[str]:
        if self.cart_id:
            return self.cart_id
        if self.cart is not None:
            return self.cart.id
        return None


class AvailableCouponsResponse(ApiMessage):
    success: bool = True
    coupons: List[CouponDescriptor] = []
    count: int = 0

    @field_validator("coupons", mode="before")
    @classmethod
    def null_coupons(cls, value):
        return value or []
