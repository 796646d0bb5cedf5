from .guest_cart_item import GuestCartItem
from .local_storage import LocalStorageEntry
