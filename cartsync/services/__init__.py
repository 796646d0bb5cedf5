from .cart_store import CartStore
from .cart_client import ServerCartClient
from .guest_cart_service import GuestCartService
from .backends import CartBackend, GuestCartBackend, ServerCartBackend
from .cart_flows import CartFlows
from .notifications import Notifier
