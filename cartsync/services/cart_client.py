import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from ..core.config import Config
from ..enums import CouponType
from ..exceptions import CartOperationException
from ..schemas.cart import ApiMessage, AvailableCouponsResponse, CartResponse
from ..schemas.coupon import AppliedCoupon, CouponDescriptor, ServerCoupon


logger = logging.getLogger(__name__)


def normalize_server_coupon(
    payload: Optional[ServerCoupon],
    previous: Optional[AppliedCoupon] = None,
) -> Optional[AppliedCoupon]:
    """
    Turn the coupon block of a cart API answer into an AppliedCoupon.

    The magnitude is read from discountValue, then discountAmount, then the
    legacy discount key. When discountValue is missing and the code is the
    one already applied, the previously known magnitude is reused: the API
    echoes percentage coupons without restating the percentage.

    discountAmount is a currency amount, so it is only a magnitude for flat
    coupons. A percentage coupon echoed with neither its rate nor a matching
    previous coupon normalizes to None and the store keeps what it holds.

    Args:
        payload (Optional[ServerCoupon]): Coupon block of the response.
        previous (Optional[AppliedCoupon]): Coupon currently held by the cart store.

    Returns:
        Optional[AppliedCoupon]: None when the response carries no usable coupon.
    """
    if payload is None or not payload.code:
        return None

    coupon_type = CouponType.from_wire(payload.discount_type)

    if payload.discount_value is not None:
        discount_value = payload.discount_value
    elif previous is not None and previous.code == payload.code.strip().upper():
        discount_value = previous.discount_value
    elif coupon_type is CouponType.FLAT and payload.discount_amount is not None:
        discount_value = payload.discount_amount
    elif payload.discount is not None:
        discount_value = payload.discount
    elif coupon_type is CouponType.FLAT:
        discount_value = 0
    else:
        logger.info("Percentage coupon %s echoed without its rate, ignoring it", payload.code)
        return None

    max_discount = payload.max_discount_amount
    if max_discount is None:
        max_discount = payload.max_discount

    try:
        return AppliedCoupon(
            code=payload.code,
            type=coupon_type,
            discount_value=discount_value,
            max_discount=max_discount,
            min_cart_value=payload.min_cart_value,
        )
    except ValidationError as e:
        logger.warning("Ignoring unusable coupon %s in cart response: %s", payload.code, e)
        return None


class ServerCartClient:
    """Request wrappers around the authenticated cart and coupon API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=base_url or Config.API_BASE_URL,
            timeout=Config.REQUEST_TIMEOUT,
            headers=headers,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.client.request(method, path, json=payload)

        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise CartOperationException(f"Unexpected response from {path}")

        if not isinstance(data, dict):
            raise CartOperationException(f"Unexpected response from {path}")

        if data.get("success") is False or (response.is_error and not data.get("success")):
            message = data.get("message") or f"{path} failed with status {response.status_code}"
            logger.info("%s %s rejected: %s", method, path, message)
            raise CartOperationException(message)

        return data

    async def fetch_cart(self) -> CartResponse:
        """Get the authenticated user's cart with its items and coupon"""
        data = await self._request("GET", "/api/cart")
        return CartResponse.model_validate(data)

    async def add(self, variant_id: str, quantity: int = 1) -> CartResponse:
        data = await self._request("POST", "/api/cart/add", {"variantId": variant_id, "quantity": quantity})
        return CartResponse.model_validate(data)

    async def update_quantity(self, cart_item_id: str, quantity: int) -> CartResponse:
        """Set a line item's quantity by its server id; the API deletes the line for 0"""
        data = await self._request("PATCH", "/api/cart/update", {"cartItemId": cart_item_id, "quantity": quantity})
        return CartResponse.model_validate(data)

    async def remove(self, cart_item_id: str) -> CartResponse:
        data = await self._request("DELETE", "/api/cart/remove", {"cartItemId": cart_item_id})
        return CartResponse.model_validate(data)

    async def clear(self) -> CartResponse:
        data = await self._request("DELETE", "/api/cart/clear")
        return CartResponse.model_validate(data)

    async def merge(self, items: Iterable[Dict[str, Any]]) -> CartResponse:
        """Post guest lines ({variantId, quantity}) into the authenticated cart"""
        data = await self._request("POST", "/api/cart/merge", {"items": list(items)})
        return CartResponse.model_validate(data)

    async def apply_coupon(self, code: str) -> ApiMessage:
        """Attach a coupon server side; the resulting discount is only known after a fetch"""
        data = await self._request("POST", "/api/coupon/apply-coupon", {"code": code})
        return ApiMessage.model_validate(data)

    async def remove_coupon(self) -> ApiMessage:
        data = await self._request("DELETE", "/api/coupon/remove-coupon")
        return ApiMessage.model_validate(data)

    async def discard_coupon_best_effort(self) -> None:
        """Remove the server coupon of an emptied cart; a failure is logged and ignored"""
        try:
            await self.remove_coupon()
        except (httpx.HTTPError, CartOperationException) as e:
            logger.warning("Could not remove coupon from emptied cart: %s", e)

    async def list_available_coupons(
        self,
        cart_total: float,
        category_ids: Optional[List[str]] = None,
        product_ids: Optional[List[str]] = None,
    ) -> List[CouponDescriptor]:
        """List the coupons the current cart can use, for the coupon picker only"""
        payload = {
            "cartTotal": max(cart_total, 0),
            "categoryIds": category_ids or [],
            "productIds": product_ids or [],
        }
        data = await self._request("POST", "/api/coupon/available", payload)
        return AvailableCouponsResponse.model_validate(data).coupons
