"""
Seed script -- populates the database with realistic development data.

Run with:
    python -m storefront.seed

Idempotent: categories, products and variants are matched by slug/SKU,
users by auth subject and settings by key, so re-running only fills gaps.
"""
from sqlalchemy import select

from storefront import db
from storefront.core.config import Config
from storefront.models import Category, HeroSlide, Product, ProductVariant, User
from storefront.repositories.content_repository import SettingsRepository
from storefront.schemas.settings import PaymentSettings, ShippingSettings, SiteSettings, TaxSettings
from storefront.utils.date_utils import DateUtils
from storefront.utils.validators import ValidationUtils

CATEGORIES = [
    {"name": "Clothing", "children": ["T-Shirts", "Hoodies"]},
    {"name": "Accessories", "children": ["Bags"]},
]

PRODUCTS = [
    {
        "name": "Classic Cotton T-Shirt",
        "category": "T-Shirts",
        "description": "100% organic cotton, unisex fit.",
        "base_price": 2999,
        "weight": 200,
        "dimensions": {"length": 30, "width": 25, "height": 2},
        "color_options": [{"id": "white", "name": "White", "hex": "#ffffff"},
                          {"id": "black", "name": "Black", "hex": "#000000"}],
        "size_options": ["S", "M", "L"],
        "images": [{"url": "https://images.example.com/tshirt.jpg", "alt": "T-shirt", "is_main": True}],
        "is_featured": True,
        "variants": [
            {"sku": "TSHIRT-S-WHT", "color_id": "white", "size": "S", "stock_count": 100, "is_default": True},
            {"sku": "TSHIRT-M-WHT", "color_id": "white", "size": "M", "stock_count": 150},
            {"sku": "TSHIRT-L-BLK", "color_id": "black", "size": "L", "stock_count": 8, "price_adjustment": 200},
        ],
    },
    {
        "name": "Heavyweight Hoodie",
        "category": "Hoodies",
        "description": "Brushed fleece, kangaroo pocket.",
        "base_price": 6999,
        "weight": 750,
        "dimensions": {"length": 40, "width": 30, "height": 8},
        "size_options": ["M", "L", "XL"],
        "images": [{"url": "https://images.example.com/hoodie.jpg", "alt": "Hoodie", "is_main": True}],
        "variants": [
            {"sku": "HOODIE-M", "size": "M", "stock_count": 40, "is_default": True},
            {"sku": "HOODIE-XL", "size": "XL", "stock_count": 0, "price_adjustment": 500},
        ],
    },
    {
        "name": "Canvas Tote Bag",
        "category": "Bags",
        "description": "Sturdy everyday tote.",
        "base_price": 1999,
        "weight": 300,
        "is_free_shipping": True,
        "images": [{"url": "https://images.example.com/tote.jpg", "alt": "Tote", "is_main": True}],
        "variants": [],
    },
]

SETTINGS = {
    "site": SiteSettings(
        store_name="Storefront",
        store_url="http://localhost:3000",
        contact_email="support@example.com",
    ),
    "payment": PaymentSettings(),
    "tax": TaxSettings(method="manual", default_rate=8.5, tax_on_shipping=False,
                       rules=[{"region": "CA", "rate": 13}]),
    "shipping": ShippingSettings(
        free_shipping_threshold=10000,
        zones=[
            {"id": "us", "name": "United States", "regions": ["US"], "rate_type": "weight",
             "base_rate": 500, "per_kg_rate": 200, "delivery_time": "3-5 business days"},
            {"id": "row", "name": "Rest of world", "regions": ["*"], "rate_type": "flat",
             "base_rate": 2500, "delivery_time": "7-14 business days"},
        ],
    ),
}


def seed() -> None:
    with db.session_scope() as session:
        # ------------------------------------------------------------------ #
        # Categories                                                           #
        # ------------------------------------------------------------------ #
        categories = {}
        for position, entry in enumerate(CATEGORIES):
            parent = _category(session, entry["name"], None, position)
            categories[entry["name"]] = parent
            for child_position, child in enumerate(entry["children"]):
                categories[child] = _category(session, child, parent.id, child_position)
        print("  [+] Categories seeded")

        # ------------------------------------------------------------------ #
        # Products and variants                                                #
        # ------------------------------------------------------------------ #
        for data in PRODUCTS:
            slug = ValidationUtils.generate_slug(data["name"])
            product = session.scalar(select(Product).where(Product.slug == slug))
            if product is None:
                fields = {k: v for k, v in data.items() if k not in ("category", "variants")}
                product = Product(
                    slug=slug,
                    status="active",
                    published_at=DateUtils.now_utc(),
                    category_id=categories[data["category"]].id,
                    featured_image=data["images"][0]["url"],
                    **fields,
                )
                session.add(product)
                session.flush()

            for variant in data["variants"]:
                exists = session.scalar(select(ProductVariant).where(ProductVariant.sku == variant["sku"]))
                if exists is None:
                    session.add(ProductVariant(product_id=product.id, **variant))
        print("  [+] Products and variants seeded")

        # ------------------------------------------------------------------ #
        # Users                                                                #
        # ------------------------------------------------------------------ #
        for subject, email, role in [
            ("user_admin_dev", "admin@example.com", "admin"),
            ("user_customer_dev", "customer@example.com", "customer"),
        ]:
            if session.scalar(select(User).where(User.auth_subject == subject)) is None:
                session.add(User(auth_subject=subject, email=email, role=role, first_name=role.title()))
        print("  [+] Users seeded")

        # ------------------------------------------------------------------ #
        # Content and settings                                                 #
        # ------------------------------------------------------------------ #
        if session.scalar(select(HeroSlide).limit(1)) is None:
            session.add(HeroSlide(
                title="New season", description="Fresh fits for the cold months.",
                image_url="https://images.example.com/hero.jpg",
                cta_text="Shop now", cta_href="/products", sort_order=0, location="hero",
            ))

        settings_repo = SettingsRepository(session)
        for key, document in SETTINGS.items():
            if settings_repo.get_document(key) is None:
                settings_repo.upsert_document(key, document.model_dump(mode="json"))
        print("  [+] Content and settings seeded")


def _category(session, name: str, parent_id, sort_order: int) -> Category:
    slug = ValidationUtils.generate_slug(name)
    category = session.scalar(select(Category).where(Category.slug == slug))
    if category is None:
        category = Category(name=name, slug=slug, parent_id=parent_id, sort_order=sort_order)
        session.add(category)
        session.flush()
    return category


if __name__ == "__main__":
    config = Config()
    config.validate()
    db.init_engine(config.database)
    db.create_all()
    print("Seeding database...")
    seed()
    print("Done.")
