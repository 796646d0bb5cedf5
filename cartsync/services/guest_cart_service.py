import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete, func
from pydantic import ValidationError
from typing import List, Optional

from ..core.config import Config
from ..models import GuestCartItem, LocalStorageEntry
from ..schemas.cart import LineItem, PriceSnapshot, Variant
from ..schemas.coupon import AppliedCoupon, GuestCouponRecord
from ..exceptions import CartItemNotFoundException, StockExceededException


logger = logging.getLogger(__name__)


class GuestCartService:
    """Cart persistence for sessions without an account: line items by variant id plus a coupon slot"""

    def __init__(self, coupon_key: Optional[str] = None):
        self.coupon_key = coupon_key or Config.GUEST_COUPON_KEY

    async def get_items(self, db: AsyncSession) -> List[LineItem]:
        """Get the guest line items joined with the variant copy stored alongside them"""
        query = select(GuestCartItem).order_by(GuestCartItem.id)
        result = await db.execute(query)
        rows = result.scalars().all()

        items = []
        for row in rows:
            try:
                variant = Variant.model_validate(row.variant)
            except ValidationError:
                logger.warning("Skipping guest line %s with an unreadable variant copy", row.variant_id)
                continue

            items.append(LineItem(
                id=row.variant_id,
                variant=variant,
                quantity=row.quantity,
                price_at_add=PriceSnapshot(mrp=row.mrp_at_add, selling=row.selling_at_add),
            ))

        return items

    async def cart_count(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.coalesce(func.sum(GuestCartItem.quantity), 0)))
        return result.scalar_one()

    async def add_item(self, variant: Variant, quantity: int, db: AsyncSession) -> GuestCartItem:
        """Add units of a variant, capturing its price the first time it enters the cart"""
        if variant.count_in_stock is not None and variant.count_in_stock <= 0:
            raise StockExceededException("Variant unavailable")

        query = select(GuestCartItem).where(GuestCartItem.variant_id == variant.id)
        result = await db.execute(query)
        existing_item = result.scalars().first()

        if existing_item:
            new_quantity = existing_item.quantity + quantity
            if variant.count_in_stock is not None and new_quantity > variant.count_in_stock:
                raise StockExceededException("Stock exceeded")

            existing_item.quantity = new_quantity
            await db.commit()
            await db.refresh(existing_item)

            return existing_item

        if variant.count_in_stock is not None and quantity > variant.count_in_stock:
            raise StockExceededException(f"Only {variant.count_in_stock} items available")

        new_item = GuestCartItem(
            variant_id=variant.id,
            quantity=quantity,
            mrp_at_add=variant.price.mrp,
            selling_at_add=variant.price.selling,
            variant=variant.model_dump(mode="json", by_alias=True),
        )
        db.add(new_item)

        await db.commit()
        await db.refresh(new_item)

        return new_item

    async def set_quantity(self, variant_id: str, quantity: int, db: AsyncSession) -> Optional[GuestCartItem]:
        """Set the quantity of a variant already in the cart; 0 or less removes it"""
        query = select(GuestCartItem).where(GuestCartItem.variant_id == variant_id)
        result = await db.execute(query)
        item = result.scalars().first()

        if not item:
            raise CartItemNotFoundException(f"Variant {variant_id} is not in the cart")

        if quantity <= 0:
            await db.delete(item)
            await db.commit()
            return None

        count_in_stock = (item.variant or {}).get("countInStock")
        if count_in_stock is not None and quantity > count_in_stock:
            raise StockExceededException("Stock exceeded")

        item.quantity = quantity
        await db.commit()
        await db.refresh(item)

        return item

    async def clear(self, db: AsyncSession) -> bool:
        """Remove every guest line item and the stored coupon"""
        await db.execute(delete(GuestCartItem))
        await db.execute(delete(LocalStorageEntry).where(LocalStorageEntry.key == self.coupon_key))
        await db.commit()

        return True

    async def load_coupon(self, db: AsyncSession) -> Optional[AppliedCoupon]:
        """
        Read the stored guest coupon.

        Returns:
            Optional[AppliedCoupon]: None when nothing is stored. A record that
                is not valid JSON or fails GuestCouponRecord validation is
                deleted and also yields None.
        """
        entry = await db.get(LocalStorageEntry, self.coupon_key)
        if entry is None:
            return None

        try:
            record = GuestCouponRecord.model_validate_json(entry.value)
        except ValidationError as e:
            logger.warning("Discarding malformed guest coupon record: %s", e.errors(include_url=False))
            await db.delete(entry)
            await db.commit()
            return None

        return record.to_applied_coupon()

    async def save_coupon(self, coupon: AppliedCoupon, db: AsyncSession) -> None:
        record = GuestCouponRecord.from_applied_coupon(coupon)
        value = record.model_dump_json(by_alias=True)

        entry = await db.get(LocalStorageEntry, self.coupon_key)
        if entry is None:
            db.add(LocalStorageEntry(key=self.coupon_key, value=value))
        else:
            entry.value = value

        await db.commit()

    async def discard_coupon(self, db: AsyncSession) -> None:
        await db.execute(delete(LocalStorageEntry).where(LocalStorageEntry.key == self.coupon_key))
        await db.commit()
