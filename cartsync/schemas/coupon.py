import html

import bleach
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional

from ..enums import CouponType


def sanitize_coupon_code(raw: Optional[str]) -> str:
    """Strip markup and whitespace from a user typed coupon code and upper-case it"""
    if not raw:
        return ""
    # bleach escapes the bare & < > it leaves behind
    cleaned = html.unescape(bleach.clean(raw, tags=[], attributes={}, strip=True))
    return cleaned.strip().upper()


class AppliedCoupon(BaseModel):
    """Coupon currently attached to the cart, in the shape the totals calculator understands"""
    code: str
    type: CouponType
    discount_value: float = Field(alias="discountValue")
    min_cart_value: Optional[float] = Field(None, alias="minCartValue")
    max_discount: Optional[float] = Field(None, alias="maxDiscount", description="Cap for percentage coupons only")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("code")
    @classmethod
    def upper_case_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, value):
        return CouponType.from_wire(value)


class ServerCoupon(BaseModel):
    """Coupon block echoed by the cart API; every numeric field is optional on the wire"""
    code: str = ""
    discount_type: Optional[str] = Field(None, alias="discountType")
    discount_value: Optional[float] = Field(None, alias="discountValue")
    discount_amount: Optional[float] = Field(None, alias="discountAmount")
    discount: Optional[float] = None
    max_discount_amount: Optional[float] = Field(None, alias="maxDiscountAmount")
    max_discount: Optional[float] = Field(None, alias="maxDiscount")
    min_cart_value: Optional[float] = Field(None, alias="minCartValue")

    model_config = ConfigDict(populate_by_name=True)


class CouponDescriptor(BaseModel):
    """Entry of the available coupons list, used to populate the coupon picker"""
    id: Optional[str] = Field(None, alias="_id")
    code: str
    discount_type: str = Field(alias="discountType")
    discount_value: float = Field(alias="discountValue")
    max_discount_amount: Optional[float] = Field(None, alias="maxDiscountAmount")
    min_cart_value: Optional[float] = Field(0, alias="minCartValue")
    description: Optional[str] = None
    days_left: Optional[int] = Field(None, alias="daysLeft")

    model_config = ConfigDict(populate_by_name=True)

    def to_applied_coupon(self) -> AppliedCoupon:
        return AppliedCoupon(
            code=self.code,
            type=CouponType.from_wire(self.discount_type),
            discount_value=self.discount_value,
            max_discount=self.max_discount_amount,
            min_cart_value=self.min_cart_value,
        )


class GuestCouponRecord(BaseModel):
    """
    Coupon record kept in the guest key/value slot.

    Version 1 records written before versioning carry no "version" key and
    may store the magnitude under the legacy "discount" key. Anything that
    does not validate is treated as no coupon at all.
    """
    version: Literal[1] = 1
    code: str = Field(min_length=1)
    discount_value: float = Field(
        gt=0,
        validation_alias=AliasChoices("discountValue", "discount"),
        serialization_alias="discountValue",
    )
    type: CouponType
    max_discount: Optional[float] = Field(None, alias="maxDiscount")
    min_cart_value: Optional[float] = Field(None, alias="minCartValue")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value):
        if not isinstance(value, str):
            raise ValueError("coupon type must be a string")
        return CouponType(value.strip().lower())

    @classmethod
    def from_applied_coupon(cls, coupon: AppliedCoupon) -> "GuestCouponRecord":
        return cls(
            code=coupon.code,
            discount_value=coupon.discount_value,
            type=coupon.type,
            max_discount=coupon.max_discount,
            min_cart_value=coupon.min_cart_value,
        )

    def to_applied_coupon(self) -> AppliedCoupon:
        return AppliedCoupon(
            code=self.code,
            type=self.type,
            discount_value=self.discount_value,
            max_discount=self.max_discount,
            min_cart_value=self.min_cart_value,
        )
