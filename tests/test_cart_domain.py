import pytest

from storefront.domain.cart import CartLine, CartView, GuestCart, GuestLine, LineKey, plan_merge


class TestLineKey:

    def test_guest_id_uses_base_for_missing_variant(self):
        """Guest line ids are guest-<product>-<variant or base>"""
        assert LineKey(7).guest_id == "guest-7-base"
        assert LineKey(7, 3).guest_id == "guest-7-3"

    def test_guest_id_parses_back(self):
        assert LineKey.from_guest_id("guest-7-base") == LineKey(7, None)
        assert LineKey.from_guest_id("guest-7-3") == LineKey(7, 3)

    @pytest.mark.parametrize("bad", ["7-3", "guest-x-3", "guest-7-y", "guest-"])
    def test_malformed_guest_ids_are_rejected(self, bad):
        with pytest.raises(ValueError):
            LineKey.from_guest_id(bad)

    def test_lines_differing_only_in_variant_are_distinct(self):
        assert LineKey(1, None) != LineKey(1, 2)
        assert LineKey(1, 2) != LineKey(1, 3)


class TestGuestCart:

    def test_adding_same_pair_twice_increments_one_line(self):
        """One guest line per (product, variant) pair"""
        # Arrange
        cart = GuestCart()

        # Act
        cart.add(1, None, 2)
        cart.add(1, None, 3)

        # Assert
        assert len(cart) == 1
        assert cart.get(LineKey(1)).quantity == 5

    def test_variant_makes_a_separate_line(self):
        cart = GuestCart()
        cart.add(1, None, 1)
        cart.add(1, 4, 1)

        assert len(cart) == 2

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_update_to_zero_or_below_removes_line(self, quantity):
        # Arrange
        cart = GuestCart()
        cart.add(1, 2, 3)

        # Act
        result = cart.update_quantity(LineKey(1, 2), quantity)

        # Assert
        assert result is None
        assert cart.is_empty

    def test_update_unknown_line_raises_key_error(self):
        with pytest.raises(KeyError):
            GuestCart().update_quantity(LineKey(9), 1)

    def test_add_rejects_non_positive_quantity(self):
        with pytest.raises(ValueError):
            GuestCart().add(1, None, 0)

    def test_storage_round_trip_keeps_order(self):
        cart = GuestCart()
        cart.add(3, None, 1)
        cart.add(1, 5, 2)

        restored = GuestCart.from_storage(cart.to_storage())

        assert [line.key for line in restored.lines] == [LineKey(3), LineKey(1, 5)]

    def test_from_storage_drops_malformed_entries(self):
        """A tampered cookie never breaks the cart"""
        raw = [
            {"product_id": 1, "quantity": 2},
            {"product_id": "abc", "quantity": 1},
            {"quantity": 1},
            {"product_id": 2, "quantity": 0},
            {"product_id": 3, "variant_id": "4", "quantity": "2"},
        ]

        cart = GuestCart.from_storage(raw)

        assert [line.key for line in cart.lines] == [LineKey(1), LineKey(3, 4)]

    def test_from_storage_merges_duplicate_pairs(self):
        cart = GuestCart.from_storage([
            {"product_id": 1, "quantity": 1},
            {"product_id": 1, "quantity": 2},
        ])

        assert cart.get(LineKey(1)).quantity == 3


class TestPlanMerge:

    def test_matching_pair_is_incremented_by_guest_quantity(self):
        """Merge by sum, not overwrite"""
        # Arrange
        server = {LineKey(1, 2): 3}
        guest = [GuestLine(product_id=1, variant_id=2, quantity=4)]

        # Act
        plan = plan_merge(guest, server)

        # Assert
        assert plan.merged[LineKey(1, 2)] == 7
        assert len(plan.operations) == 1
        op = plan.operations[0]
        assert (op.key, op.delta, op.quantity, op.is_insert) == (LineKey(1, 2), 4, 7, False)

    def test_new_pair_is_inserted(self):
        plan = plan_merge([GuestLine(product_id=5, quantity=2)], {})

        assert plan.merged == {LineKey(5): 2}
        assert plan.operations[0].is_insert
        assert plan.inserts == 1
        assert plan.increments == 0

    def test_server_only_pairs_carry_through_unchanged(self):
        server = {LineKey(1): 1, LineKey(2): 2}

        plan = plan_merge([GuestLine(product_id=3, quantity=1)], server)

        assert list(plan.merged.items()) == [(LineKey(1), 1), (LineKey(2), 2), (LineKey(3), 1)]
        assert [op.key for op in plan.operations] == [LineKey(3)]

    def test_merged_quantity_is_prior_plus_guest_for_every_pair(self):
        # Arrange
        server = {LineKey(1): 2, LineKey(2, 1): 1}
        guest = [
            GuestLine(product_id=1, quantity=3),
            GuestLine(product_id=2, variant_id=1, quantity=1),
            GuestLine(product_id=2, variant_id=2, quantity=5),
        ]

        # Act
        plan = plan_merge(guest, server)

        # Assert
        for line in guest:
            assert plan.merged[line.key] == server.get(line.key, 0) + line.quantity

    def test_repeated_guest_pairs_become_one_operation(self):
        guest = [GuestLine(product_id=1, quantity=1), GuestLine(product_id=1, quantity=2)]

        plan = plan_merge(guest, {LineKey(1): 1})

        assert len(plan.operations) == 1
        assert plan.operations[0].delta == 3
        assert plan.merged[LineKey(1)] == 4

    def test_non_positive_guest_lines_are_ignored(self):
        plan = plan_merge([GuestLine(product_id=1, quantity=0)], {})

        assert plan.operations == []
        assert plan.merged == {}

    def test_empty_guest_cart_changes_nothing(self):
        server = {LineKey(1): 2}

        plan = plan_merge([], server)

        assert plan.operations == []
        assert dict(plan.merged) == server


class TestCartView:

    def _line(self, line_id, quantity, price, stock=None):
        return CartLine(
            line_id=line_id, product_id=1, variant_id=None, quantity=quantity,
            name="Shirt", slug="shirt", price_cents=price, stock_count=stock,
        )

    def test_totals(self):
        view = CartView(items=[self._line("a", 2, 1250), self._line("b", 1, 500)], is_guest=False)

        data = view.to_dict()

        assert data["subtotal_cents"] == 3000
        assert data["subtotal_dollars"] == "30"
        assert data["total_quantity"] == 3
        assert data["is_guest"] is False

    def test_in_stock_flag(self):
        assert self._line("a", 2, 100, stock=2).in_stock
        assert not self._line("a", 3, 100, stock=2).in_stock
        assert self._line("a", 3, 100, stock=None).in_stock

    def test_empty_view(self):
        assert CartView().to_dict()["is_empty"] is True
