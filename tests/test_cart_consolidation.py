import pytest
from sqlalchemy import select

from storefront.core.exceptions import DatabaseError, NotFoundError, ValidationError
from storefront.domain.cart import GuestCart, LineKey
from storefront.models import CartItem
from storefront.repositories.cart_repository import CartRepository
from storefront.services.cart_service import CartService
from storefront.services.settings_service import SettingsService


def server_cart(db_session, user):
    db_session.expire_all()
    rows = db_session.scalars(
        select(CartItem).where(CartItem.user_id == user.id).order_by(CartItem.id)
    )
    return {LineKey(row.product_id, row.variant_id): row.quantity for row in rows}


@pytest.fixture
def service(db_session):
    return CartService(db_session)


@pytest.fixture
def shirt(make_product):
    return make_product("Shirt", base_price=2000, variants=[
        {"sku": "SHIRT-RED-M", "color_id": "red", "size": "M", "stock_count": 5},
        {"sku": "SHIRT-BLUE-M", "color_id": "blue", "size": "M", "price_adjustment": 500},
    ])


class TestConsolidate:

    def test_matching_pair_is_incremented_by_guest_quantity(self, service, db_session, customer, shirt):
        """server 2 + guest 3 = 5, one row"""
        # Arrange
        red = shirt.variants[0]
        db_session.add(CartItem(user_id=customer.id, product_id=shirt.id, variant_id=red.id, quantity=2))
        db_session.commit()
        guest = GuestCart()
        guest.add(shirt.id, red.id, 3)

        # Act
        result = service.consolidate(customer.id, guest)

        # Assert
        assert server_cart(db_session, customer) == {LineKey(shirt.id, red.id): 5}
        assert result.to_dict() == {"merged": 1, "inserted": 0, "incremented": 1, "skipped": 0}
        assert guest.is_empty

    def test_new_pairs_are_inserted_and_server_only_pairs_kept(self, service, db_session, customer, shirt, make_product):
        red, blue = shirt.variants
        mug = make_product("Mug", base_price=800)
        db_session.add(CartItem(user_id=customer.id, product_id=mug.id, quantity=1))
        db_session.commit()
        guest = GuestCart()
        guest.add(shirt.id, red.id, 1)
        guest.add(shirt.id, blue.id, 2)

        result = service.consolidate(customer.id, guest)

        assert server_cart(db_session, customer) == {
            LineKey(mug.id): 1,
            LineKey(shirt.id, red.id): 1,
            LineKey(shirt.id, blue.id): 2,
        }
        assert result.inserted == 2

    def test_variant_less_line_matches_only_variant_less_row(self, service, db_session, customer, make_product):
        poster = make_product("Poster", variants=[{"sku": "POSTER-A2"}])
        variant = poster.variants[0]
        db_session.add(CartItem(user_id=customer.id, product_id=poster.id, variant_id=variant.id, quantity=1))
        db_session.commit()
        guest = GuestCart()
        guest.add(poster.id, None, 4)

        service.consolidate(customer.id, guest)

        assert server_cart(db_session, customer) == {
            LineKey(poster.id, variant.id): 1,
            LineKey(poster.id, None): 4,
        }

    def test_missing_products_are_dropped(self, service, db_session, customer, shirt):
        guest = GuestCart()
        guest.add(999999, None, 1)
        guest.add(shirt.id, 888888, 1)
        guest.add(shirt.id, None, 1)

        result = service.consolidate(customer.id, guest)

        assert result.skipped == 2
        assert result.inserted == 1
        assert server_cart(db_session, customer) == {LineKey(shirt.id): 1}
        assert guest.is_empty

    def test_empty_guest_cart_is_a_no_op(self, service, db_session, customer):
        result = service.consolidate(customer.id, GuestCart())

        assert result.merged == 0
        assert server_cart(db_session, customer) == {}

    def test_failure_leaves_only_unmerged_lines_in_guest_cart(
        self, service, db_session, customer, shirt, monkeypatch
    ):
        """Each pair commits on its own, so a failure part-way keeps earlier merges."""
        # Arrange
        red, blue = shirt.variants
        guest = GuestCart()
        guest.add(shirt.id, red.id, 1)
        guest.add(shirt.id, blue.id, 2)

        original = CartRepository.increment_or_insert
        calls = []

        def flaky(self, user_id, key, delta):
            calls.append(key)
            if len(calls) == 2:
                raise DatabaseError("INSERT failed", "INSERT")
            return original(self, user_id, key, delta)

        monkeypatch.setattr(CartRepository, "increment_or_insert", flaky)

        # Act
        with pytest.raises(DatabaseError):
            service.consolidate(customer.id, guest)

        # Assert
        assert server_cart(db_session, customer) == {LineKey(shirt.id, red.id): 1}
        assert [line.key for line in guest.lines] == [LineKey(shirt.id, blue.id)]

    def test_retry_after_failure_does_not_double_count(
        self, service, db_session, customer, shirt, monkeypatch
    ):
        red, blue = shirt.variants
        guest = GuestCart()
        guest.add(shirt.id, red.id, 1)
        guest.add(shirt.id, blue.id, 2)

        original = CartRepository.increment_or_insert
        state = {"fail": True}

        def fail_on_blue(self, user_id, key, delta):
            if key.variant_id == blue.id and state["fail"]:
                raise DatabaseError("INSERT failed", "INSERT")
            return original(self, user_id, key, delta)

        monkeypatch.setattr(CartRepository, "increment_or_insert", fail_on_blue)
        with pytest.raises(DatabaseError):
            service.consolidate(customer.id, guest)

        state["fail"] = False
        service.consolidate(customer.id, guest)

        assert server_cart(db_session, customer) == {
            LineKey(shirt.id, red.id): 1,
            LineKey(shirt.id, blue.id): 2,
        }


class TestSyncItems:

    def test_client_list_is_merged_by_sum(self, service, db_session, customer, shirt):
        red = shirt.variants[0]
        db_session.add(CartItem(user_id=customer.id, product_id=shirt.id, variant_id=red.id, quantity=1))
        db_session.commit()

        result = service.sync_items(customer.id, [
            {"product_id": shirt.id, "variant_id": red.id, "quantity": 2},
            {"product_id": shirt.id, "variant_id": red.id, "quantity": 1},
        ])

        assert result.incremented == 1
        assert server_cart(db_session, customer) == {LineKey(shirt.id, red.id): 4}

    def test_resending_the_same_list_counts_twice(self, service, db_session, customer, shirt):
        items = [{"product_id": shirt.id, "variant_id": None, "quantity": 2}]

        service.sync_items(customer.id, items)
        service.sync_items(customer.id, items)

        assert server_cart(db_session, customer) == {LineKey(shirt.id): 4}


class TestServerCart:

    def test_adding_same_pair_twice_keeps_one_row(self, service, db_session, customer, shirt):
        red = shirt.variants[0]

        first = service.add_item(customer.id, shirt.id, red.id, 1)
        second = service.add_item(customer.id, shirt.id, red.id, 2)

        assert first == second
        assert server_cart(db_session, customer) == {LineKey(shirt.id, red.id): 3}

    def test_variant_must_belong_to_product(self, service, customer, shirt, make_product):
        other = make_product("Other", variants=[{"sku": "OTHER-1"}])

        with pytest.raises(NotFoundError):
            service.add_item(customer.id, shirt.id, other.variants[0].id, 1)

    def test_non_positive_quantity_rejected(self, service, customer, shirt):
        with pytest.raises(ValidationError):
            service.add_item(customer.id, shirt.id, None, 0)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_update_to_non_positive_deletes_row(self, service, db_session, customer, shirt, quantity):
        item_id = service.add_item(customer.id, shirt.id, None, 2)

        assert service.update_item(customer.id, item_id, quantity) is None
        assert server_cart(db_session, customer) == {}

    def test_rows_of_other_users_are_not_found(self, service, customer, make_user, shirt):
        item_id = service.add_item(customer.id, shirt.id, None, 1)
        stranger = make_user()

        with pytest.raises(NotFoundError):
            service.update_item(stranger.id, item_id, 5)
        with pytest.raises(NotFoundError):
            service.remove_item(stranger.id, item_id)

    def test_view_prices_variants_live(self, service, db_session, customer, shirt):
        blue = shirt.variants[1]
        service.add_item(customer.id, shirt.id, blue.id, 2)

        blue.price_adjustment = 1000
        db_session.commit()
        view = service.get_user_cart(customer.id)

        assert view.items[0].price_cents == 3000
        assert view.subtotal_cents == 6000
        assert view.items[0].variant_name == "blue M"


class TestGuestCartService:

    def test_guest_add_validates_product(self, service):
        with pytest.raises(NotFoundError):
            service.add_guest_item(GuestCart(), 424242, None, 1)

    def test_guest_view_skips_deleted_products(self, service, shirt):
        guest = GuestCart()
        guest.add(shirt.id, None, 1)
        guest.add(424242, None, 1)

        view = service.get_guest_cart(guest)

        assert [line.product_id for line in view.items] == [shirt.id]
        assert view.items[0].line_id == f"guest-{shirt.id}-base"
        assert view.is_guest

    def test_malformed_guest_line_id_is_a_validation_error(self, service):
        with pytest.raises(ValidationError):
            service.update_guest_item(GuestCart(), "42", 1)

    def test_unknown_guest_line_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.remove_guest_item(GuestCart(), "guest-1-base")


class TestQuote:

    def test_total_adds_shipping_and_tax(self, service, db_session, customer, shirt):
        # Arrange
        settings = SettingsService(db_session)
        settings.update("tax", {"default_rate": 10})
        settings.update("shipping", {"zones": [
            {"id": "us", "name": "United States", "regions": ["US"], "base_rate": 500, "delivery_time": "3 days"},
        ]})
        service.add_item(customer.id, shirt.id, None, 2)

        # Act
        quote = service.quote(service.get_user_cart(customer.id), "us")

        # Assert
        assert quote["country_code"] == "US"
        assert quote["subtotal"] == 4000
        assert quote["shipping"]["rate"] == 500
        assert quote["tax"]["amount"] == 400
        assert quote["total"] == 4900

    def test_unconfigured_store_charges_subtotal_only(self, service, customer, shirt):
        service.add_item(customer.id, shirt.id, None, 1)

        quote = service.quote(service.get_user_cart(customer.id), "US")

        assert quote["shipping"] is None
        assert quote["tax"]["is_configured"] is False
        assert quote["total"] == 2000
