from storefront.routes.addresses import addresses_bp
from storefront.routes.carts import carts_bp
from storefront.routes.categories import categories_bp
from storefront.routes.content import content_bp
from storefront.routes.dashboard import dashboard_bp
from storefront.routes.orders import orders_bp
from storefront.routes.products import products_bp
from storefront.routes.returns import returns_bp
from storefront.routes.reviews import reviews_bp
from storefront.routes.settings import settings_bp
from storefront.routes.users import users_bp
from storefront.routes.webhooks import webhooks_bp
from storefront.routes.wishlist import wishlist_bp

__all__ = [
    "addresses_bp",
    "carts_bp",
    "categories_bp",
    "content_bp",
    "dashboard_bp",
    "orders_bp",
    "products_bp",
    "returns_bp",
    "reviews_bp",
    "settings_bp",
    "users_bp",
    "webhooks_bp",
    "wishlist_bp",
]
