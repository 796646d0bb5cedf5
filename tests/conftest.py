import pytest

from cartsync.services.cart_store import CartStore
from cartsync.services.notifications import Notifier


@pytest.fixture
def store():
    return CartStore()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def guest_db_url(tmp_path):
    """SQLite file per test so every event loop opens its own connections"""
    return f"sqlite+aiosqlite:///{tmp_path / 'guest_cart.db'}"
