import json
from itertools import count

import jwt
import pytest

from storefront import db
from storefront.app import create_app
from storefront.core.config import Config
from storefront.core.exceptions import ValidationError
from storefront.models import Address, Order, OrderItem, Product, ProductVariant, User
from storefront.routes.utils import CONTAINER_KEY
from storefront.services.gateways import PaymentGateway, UserWebhookVerifier

JWT_SECRET = "storefront-test-jwt-secret-0123456789"
VALID_SIGNATURE = "valid-signature"

_sequence = count(1)


class FakePaymentGateway(PaymentGateway):
    """Records checkout sessions; events are the JSON payload itself."""

    def __init__(self):
        self.sessions = []

    def create_checkout_session(self, line_items, metadata, customer_email, success_url, cancel_url):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({
            "id": session_id,
            "line_items": line_items,
            "metadata": metadata,
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
        })
        return {"id": session_id, "url": f"https://checkout.test/{session_id}"}

    def construct_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise ValidationError("Invalid signature")
        return json.loads(payload)


class FakeUserWebhookVerifier(UserWebhookVerifier):

    def verify(self, payload, headers):
        if headers.get("svix-signature") != VALID_SIGNATURE:
            raise ValidationError("Error occurred -- could not verify webhook")
        return json.loads(payload)


@pytest.fixture
def config(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "testing")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("JWT_SECRET_KEY", JWT_SECRET)
    monkeypatch.setenv("JWT_ALGORITHM", "HS256")
    monkeypatch.delenv("JWT_AUDIENCE", raising=False)
    monkeypatch.setenv("SESSION_SECRET_KEY", "test-session-secret")
    monkeypatch.setenv("HOST_URL", "http://shop.test")
    monkeypatch.setenv("STRIPE_CURRENCY", "usd")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    return Config()


@pytest.fixture
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture
def app(config, payment_gateway):
    app = create_app(config)
    app.config["TESTING"] = True
    container = app.extensions[CONTAINER_KEY]
    container.register_singleton(PaymentGateway, payment_gateway)
    container.register_singleton(UserWebhookVerifier, FakeUserWebhookVerifier())

    db.create_all()
    yield app
    db.Base.metadata.drop_all(db.engine)
    db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    session = db.SessionLocal()
    yield session
    session.close()


# ---------------------------------------------------------------------- #
# Factories                                                              #
# ---------------------------------------------------------------------- #

@pytest.fixture
def make_user(db_session):
    def _make_user(role="customer", **fields):
        n = next(_sequence)
        user = User(
            auth_subject=fields.pop("auth_subject", f"user_{n}"),
            email=fields.pop("email", f"user{n}@example.com"),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{n}"),
            role=role,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", first_name="Ada", last_name="Admin")


@pytest.fixture
def make_product(db_session):
    def _make_product(name=None, base_price=1000, variants=(), **fields):
        n = next(_sequence)
        name = name or f"Product {n}"
        product = Product(
            name=name,
            slug=fields.pop("slug", f"product-{n}"),
            base_price=base_price,
            status=fields.pop("status", "active"),
            images=fields.pop("images", [{"url": f"https://img.test/{n}.jpg", "alt": name, "is_main": True}]),
            **fields,
        )
        for index, variant in enumerate(variants):
            product.variants.append(ProductVariant(
                sku=variant.get("sku", f"SKU-{n}-{index}"),
                stock_count=variant.get("stock_count", 10),
                price_adjustment=variant.get("price_adjustment", 0),
                color_id=variant.get("color_id"),
                size=variant.get("size"),
                image_url=variant.get("image_url"),
                is_default=variant.get("is_default", index == 0),
            ))
        db_session.add(product)
        db_session.commit()
        return product
    return _make_product


@pytest.fixture
def make_order(db_session):
    def _make_order(user, product, status="delivered", quantity=1, variant=None):
        n = next(_sequence)
        order = Order(
            user_id=user.id,
            order_number=f"ORD-TEST-{n}",
            status=status,
            subtotal=product.base_price * quantity,
            total=product.base_price * quantity,
            items=[OrderItem(
                product_id=product.id,
                variant_id=variant.id if variant is not None else None,
                name=product.name,
                sku=variant.sku if variant is not None else "N/A",
                quantity=quantity,
                price=product.base_price,
                image=product.main_image_url,
            )],
        )
        db_session.add(order)
        db_session.commit()
        return order
    return _make_order


@pytest.fixture
def make_address(db_session):
    def _make_address(user, is_default=False, **fields):
        address = Address(
            user_id=user.id,
            label=fields.pop("label", "Home"),
            recipient_name=fields.pop("recipient_name", "Test User"),
            street=fields.pop("street", "1 Main St"),
            city=fields.pop("city", "Springfield"),
            state=fields.pop("state", "IL"),
            zip_code=fields.pop("zip_code", "62701"),
            country=fields.pop("country", "US"),
            is_default=is_default,
            **fields,
        )
        db_session.add(address)
        db_session.commit()
        return address
    return _make_address


# ---------------------------------------------------------------------- #
# Auth                                                                   #
# ---------------------------------------------------------------------- #

def make_token(subject: str, email: str = None, secret: str = JWT_SECRET) -> str:
    claims = {"sub": subject}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {make_token(user.auth_subject, user.email)}"}
    return _auth_headers
