# Re-export all models from a single entry point so the rest of the app
# can import cleanly:
#   from storefront.models import User, Product, Order
#
# Importing all models here also ensures they are registered with Base.metadata
# before any call to Base.metadata.create_all().

from storefront.models.cart import CartItem
from storefront.models.catalog import Category, Product, ProductVariant
from storefront.models.content import HeroSlide, SettingsDocument
from storefront.models.engagement import Review, WishlistItem
from storefront.models.order import Order, OrderItem, ReturnRequest
from storefront.models.user import Address, User

__all__ = [
    "User",
    "Address",
    "Category",
    "Product",
    "ProductVariant",
    "CartItem",
    "Order",
    "OrderItem",
    "ReturnRequest",
    "Review",
    "WishlistItem",
    "HeroSlide",
    "SettingsDocument",
]
