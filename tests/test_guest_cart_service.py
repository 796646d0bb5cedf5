import asyncio

import pytest

from cartsync.exceptions import CartItemNotFoundException, StockExceededException
from cartsync.models import LocalStorageEntry
from cartsync.schemas.coupon import AppliedCoupon
from cartsync.services.guest_cart_service import GuestCartService
from helpers import guest_sessions, make_variant


service = GuestCartService(coupon_key="test_coupon")


def run(database_url, scenario):
    """Run scenario(db) against a fresh guest database"""
    async def main():
        async with guest_sessions(database_url) as sessions:
            async with sessions() as db:
                return await scenario(db)

    return asyncio.run(main())


def test_add_captures_price_and_keys_line_by_variant(guest_db_url):
    async def scenario(db):
        await service.add_item(make_variant(variant_id="v-1", mrp=100, selling=80, stock=5), 2, db)
        return await service.get_items(db)

    [item] = run(guest_db_url, scenario)

    assert item.id == "v-1"
    assert item.quantity == 2
    assert item.price_at_add.mrp == 100
    assert item.price_at_add.selling == 80
    assert item.variant.grocery.name == "Basmati Rice"


def test_adding_again_increments_and_keeps_first_price(guest_db_url):
    async def scenario(db):
        await service.add_item(make_variant(variant_id="v-1", selling=80, stock=5), 1, db)
        await service.add_item(make_variant(variant_id="v-1", selling=95, stock=5), 2, db)
        return await service.get_items(db), await service.cart_count(db)

    items, count = run(guest_db_url, scenario)

    assert len(items) == 1
    assert items[0].quantity == 3
    assert items[0].price_at_add.selling == 80
    assert count == 3


def test_items_come_back_in_insertion_order(guest_db_url):
    async def scenario(db):
        for variant_id in ("v-b", "v-a", "v-c"):
            await service.add_item(make_variant(variant_id=variant_id), 1, db)
        return await service.get_items(db)

    assert [item.id for item in run(guest_db_url, scenario)] == ["v-b", "v-a", "v-c"]


@pytest.mark.parametrize("stock, first, second, message", [
    (0, 1, None, "Variant unavailable"),
    (2, 3, None, "Only 2 items available"),
    (2, 2, 1, "Stock exceeded"),
])
def test_stock_is_enforced(guest_db_url, stock, first, second, message):
    async def scenario(db):
        variant = make_variant(variant_id="v-1", stock=stock)
        await service.add_item(variant, first, db)
        if second is not None:
            await service.add_item(variant, second, db)

    with pytest.raises(StockExceededException) as excinfo:
        run(guest_db_url, scenario)

    assert excinfo.value.message == message


def test_set_quantity_checks_stock_of_the_stored_copy(guest_db_url):
    async def scenario(db):
        await service.add_item(make_variant(variant_id="v-1", stock=3), 1, db)
        await service.set_quantity("v-1", 3, db)
        with pytest.raises(StockExceededException):
            await service.set_quantity("v-1", 4, db)
        return await service.get_items(db)

    [item] = run(guest_db_url, scenario)

    assert item.quantity == 3


def test_set_quantity_to_zero_removes_line(guest_db_url):
    async def scenario(db):
        await service.add_item(make_variant(variant_id="v-1"), 2, db)
        await service.add_item(make_variant(variant_id="v-2"), 1, db)
        removed = await service.set_quantity("v-1", 0, db)
        return removed, await service.get_items(db)

    removed, items = run(guest_db_url, scenario)

    assert removed is None
    assert [item.id for item in items] == ["v-2"]


def test_set_quantity_of_unknown_variant(guest_db_url):
    async def scenario(db):
        await service.set_quantity("missing", 1, db)

    with pytest.raises(CartItemNotFoundException):
        run(guest_db_url, scenario)


def test_coupon_slot_round_trip(guest_db_url):
    coupon = AppliedCoupon(code="SAVE10", type="percentage", discount_value=10, max_discount=50)

    async def scenario(db):
        assert await service.load_coupon(db) is None
        await service.save_coupon(coupon, db)
        await service.save_coupon(coupon.model_copy(update={"max_discount": 60}), db)
        return await service.load_coupon(db)

    loaded = run(guest_db_url, scenario)

    assert loaded.code == "SAVE10"
    assert loaded.max_discount == 60


def test_legacy_coupon_record_is_read(guest_db_url):
    async def scenario(db):
        db.add(LocalStorageEntry(key="test_coupon", value='{"code": "flat50", "discount": 50, "type": "flat"}'))
        await db.commit()
        return await service.load_coupon(db)

    loaded = run(guest_db_url, scenario)

    assert loaded == AppliedCoupon(code="FLAT50", type="flat", discount_value=50)


def test_malformed_coupon_record_is_dropped(guest_db_url, caplog):
    async def scenario(db):
        db.add(LocalStorageEntry(key="test_coupon", value='{"code": "SAVE10", "type": "percentage"'))
        await db.commit()
        loaded = await service.load_coupon(db)
        return loaded, await db.get(LocalStorageEntry, "test_coupon")

    loaded, entry = run(guest_db_url, scenario)

    assert loaded is None
    assert entry is None
    assert "malformed guest coupon" in caplog.text


def test_clear_removes_items_and_coupon(guest_db_url):
    async def scenario(db):
        await service.add_item(make_variant(variant_id="v-1"), 2, db)
        await service.save_coupon(AppliedCoupon(code="SAVE10", type="percentage", discount_value=10), db)
        await service.clear(db)
        return await service.get_items(db), await service.cart_count(db), await service.load_coupon(db)

    items, count, coupon = run(guest_db_url, scenario)

    assert items == []
    assert count == 0
    assert coupon is None
