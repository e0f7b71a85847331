import pytest

from storefront.models import Category
from storefront.services.catalog_service import unique_slug

PRODUCTS_URL = "/api/v1/products"
CATEGORIES_URL = "/api/v1/categories"


@pytest.fixture
def make_category(db_session):
    def _make_category(name, parent=None, sort_order=0):
        category = Category(
            name=name,
            slug=name.lower().replace(" ", "-"),
            parent_id=parent.id if parent is not None else None,
            sort_order=sort_order,
        )
        db_session.add(category)
        db_session.commit()
        return category
    return _make_category


class TestSlugs:

    def test_taken_slugs_get_numeric_suffix(self):
        taken = {"summer-dress", "summer-dress-1"}

        assert unique_slug("Summer Dress", taken.__contains__) == "summer-dress-2"

    def test_products_with_same_name_get_distinct_slugs(self, client, admin, auth_headers):
        body = {"name": "Linen Shirt", "base_price": 4500, "status": "active"}

        first = client.post(PRODUCTS_URL, json=body, headers=auth_headers(admin)).get_json()["data"]
        second = client.post(PRODUCTS_URL, json=body, headers=auth_headers(admin)).get_json()["data"]

        assert first["slug"] == "linen-shirt"
        assert second["slug"] == "linen-shirt-1"


class TestProductListing:

    def test_only_active_products_are_listed(self, client, make_product):
        active = make_product("Visible")
        make_product("Hidden", status="draft")

        data = client.get(PRODUCTS_URL).get_json()["data"]

        assert [p["id"] for p in data["products"]] == [active.id]
        assert data["total_items"] == 1

    def test_category_filter_includes_descendants(self, client, make_category, make_product):
        # Arrange
        clothing = make_category("Clothing")
        shirts = make_category("Shirts", parent=clothing)
        shoes = make_category("Shoes")
        shirt = make_product("Oxford", category_id=shirts.id)
        make_product("Runner", category_id=shoes.id)

        # Act
        data = client.get(f"{PRODUCTS_URL}?category=clothing").get_json()["data"]

        # Assert
        assert [p["id"] for p in data["products"]] == [shirt.id]
        assert data["products"][0]["category_name"] == "Shirts"

    def test_unknown_category_is_an_empty_page(self, client, make_product):
        make_product()

        data = client.get(f"{PRODUCTS_URL}?category=nope").get_json()["data"]

        assert data["products"] == []
        assert data["total_pages"] == 0

    def test_colors_and_sizes_filters(self, client, make_product):
        red = make_product("Red tee", color_options=[{"id": "c1", "name": "Red"}], size_options=["S", "M"])
        make_product("Blue tee", color_options=[{"id": "c2", "name": "Blue"}], size_options=["M"])

        by_color = client.get(f"{PRODUCTS_URL}?colors=red,green").get_json()["data"]
        by_size = client.get(f"{PRODUCTS_URL}?sizes=s").get_json()["data"]

        assert [p["id"] for p in by_color["products"]] == [red.id]
        assert [p["id"] for p in by_size["products"]] == [red.id]

    def test_price_range_and_sort(self, client, make_product):
        cheap = make_product(base_price=500)
        mid = make_product(base_price=1500)
        make_product(base_price=5000)

        data = client.get(f"{PRODUCTS_URL}?min_price=100&max_price=2000&sort_by=price_desc").get_json()["data"]

        assert [p["id"] for p in data["products"]] == [mid.id, cheap.id]

    @pytest.mark.parametrize("query", ["min_price=500&max_price=100", "sort_by=popular", "min_price=abc"])
    def test_invalid_query_is_400(self, client, query):
        assert client.get(f"{PRODUCTS_URL}?{query}").status_code == 400

    def test_pagination(self, client, make_product):
        for _ in range(3):
            make_product()

        data = client.get(f"{PRODUCTS_URL}?page=1&limit=2").get_json()["data"]

        assert len(data["products"]) == 2
        assert data["total_pages"] == 2
        assert data["has_more"] is True

    def test_stock_summary(self, client, make_product):
        product = make_product(variants=[{"stock_count": 3}, {"stock_count": 2}])

        data = client.get(f"{PRODUCTS_URL}/{product.id}").get_json()["data"]

        assert data["total_stock"] == 5
        assert data["stock_status"] == "low-stock"
        assert data["default_variant_id"] == product.variants[0].id
        assert len(data["variants"]) == 2

    def test_product_by_slug(self, client, make_product):
        product = make_product(slug="canvas-tote")

        found = client.get(f"{PRODUCTS_URL}/slug/canvas-tote")
        missing = client.get(f"{PRODUCTS_URL}/slug/not-here")

        assert found.get_json()["data"]["id"] == product.id
        assert missing.status_code == 404

    def test_featured_is_active_only(self, client, make_product):
        featured = make_product(is_featured=True)
        make_product(is_featured=True, status="draft")

        data = client.get(f"{PRODUCTS_URL}/featured").get_json()["data"]

        assert [p["id"] for p in data] == [featured.id]


class TestProductAdmin:

    def test_customer_cannot_create(self, client, customer, auth_headers):
        response = client.post(PRODUCTS_URL, json={"name": "X", "base_price": 1}, headers=auth_headers(customer))

        assert response.status_code == 403

    def test_anonymous_cannot_create(self, client):
        response = client.post(PRODUCTS_URL, json={"name": "X", "base_price": 1})

        assert response.status_code == 401

    def test_publishing_stamps_published_at(self, client, admin, auth_headers):
        created = client.post(
            PRODUCTS_URL, json={"name": "Draft item", "base_price": 100}, headers=auth_headers(admin)
        ).get_json()["data"]

        updated = client.patch(
            f"{PRODUCTS_URL}/{created['id']}", json={"status": "active"}, headers=auth_headers(admin)
        ).get_json()["data"]

        assert created["status"] == "draft"
        assert created["published_at"] is None
        assert updated["published_at"] is not None
        assert updated["name"] == "Draft item"

    def test_archive_and_hard_delete(self, client, admin, make_product, auth_headers):
        product = make_product()

        archived = client.post(f"{PRODUCTS_URL}/{product.id}/archive", headers=auth_headers(admin))
        deleted = client.delete(f"{PRODUCTS_URL}/{product.id}", headers=auth_headers(admin))
        again = client.delete(f"{PRODUCTS_URL}/{product.id}", headers=auth_headers(admin))

        assert archived.get_json()["data"]["status"] == "archived"
        assert deleted.status_code == 200
        assert again.status_code == 404

    def test_admin_listing_includes_drafts(self, client, admin, make_product, auth_headers):
        make_product(status="draft")
        make_product()

        data = client.get(f"{PRODUCTS_URL}/admin?status=draft", headers=auth_headers(admin)).get_json()["data"]

        assert [p["status"] for p in data] == ["draft"]


class TestVariants:

    def test_duplicate_sku_conflicts(self, client, admin, make_product, auth_headers):
        product = make_product(variants=[{"sku": "TEE-RED-S"}])

        response = client.post(
            f"{PRODUCTS_URL}/{product.id}/variants", json={"sku": "TEE-RED-S"}, headers=auth_headers(admin)
        )

        assert response.status_code == 409
        assert response.get_json()["error"]["details"] == {"conflict_field": "sku"}

    def test_new_default_variant_replaces_old(self, client, admin, make_product, auth_headers):
        product = make_product(variants=[{"sku": "MUG-1"}])

        client.post(
            f"{PRODUCTS_URL}/{product.id}/variants",
            json={"sku": "MUG-2", "is_default": True},
            headers=auth_headers(admin),
        )
        variants = client.get(f"{PRODUCTS_URL}/{product.id}/variants").get_json()["data"]

        assert {v["sku"]: v["is_default"] for v in variants} == {"MUG-1": False, "MUG-2": True}

    def test_stock_never_goes_below_zero(self, client, admin, make_product, auth_headers):
        product = make_product(variants=[{"stock_count": 3}])
        variant_id = product.variants[0].id

        response = client.post(
            f"{PRODUCTS_URL}/variants/{variant_id}/stock", json={"adjustment": -10}, headers=auth_headers(admin)
        )

        assert response.get_json()["data"] == {"id": variant_id, "stock_count": 0}

    def test_zero_adjustment_is_400(self, client, admin, make_product, auth_headers):
        product = make_product(variants=[{"stock_count": 3}])

        response = client.post(
            f"{PRODUCTS_URL}/variants/{product.variants[0].id}/stock",
            json={"adjustment": 0},
            headers=auth_headers(admin),
        )

        assert response.status_code == 400

    def test_lookup_by_sku(self, client, admin, make_product, auth_headers):
        product = make_product(variants=[{"sku": "LAMP-OAK"}])

        found = client.get(f"{PRODUCTS_URL}/variants/sku/LAMP-OAK", headers=auth_headers(admin))
        missing = client.get(f"{PRODUCTS_URL}/variants/sku/LAMP-PINE", headers=auth_headers(admin))

        assert found.get_json()["data"]["product_id"] == product.id
        assert missing.status_code == 404


class TestCategories:

    def test_tree_nests_children(self, client, make_category):
        parent = make_category("Home")
        make_category("Kitchen", parent=parent)

        tree = client.get(CATEGORIES_URL).get_json()["data"]

        assert tree[0]["name"] == "Home"
        assert [child["name"] for child in tree[0]["children"]] == ["Kitchen"]

    def test_create_appends_after_siblings(self, client, admin, make_category, auth_headers):
        make_category("First")
        make_category("Second", sort_order=1)

        data = client.post(CATEGORIES_URL, json={"name": "Third"}, headers=auth_headers(admin)).get_json()["data"]

        assert data["slug"] == "third"
        assert data["sort_order"] == 2

    def test_category_with_children_cannot_be_deleted(self, client, admin, make_category, auth_headers):
        parent = make_category("Garden")
        make_category("Tools", parent=parent)

        response = client.delete(f"{CATEGORIES_URL}/{parent.id}", headers=auth_headers(admin))

        assert response.status_code == 422
        assert response.get_json()["error"]["message"] == "Cannot delete category with subcategories"

    def test_delete_unlinks_products(self, client, db_session, admin, make_category, make_product, auth_headers):
        category = make_category("Sale")
        product = make_product(category_id=category.id)

        response = client.delete(f"{CATEGORIES_URL}/{category.id}", headers=auth_headers(admin))

        assert response.status_code == 200
        db_session.expire_all()
        assert product.category_id is None

    def test_subcategory_ids_are_reported(self, client, make_category):
        root = make_category("Outdoor")
        camping = make_category("Camping", parent=root)
        tents = make_category("Tents", parent=camping)

        data = client.get(f"{CATEGORIES_URL}/{root.id}").get_json()["data"]

        assert data["subcategory_ids"] == [camping.id, tents.id]

    def test_reorder(self, client, admin, make_category, auth_headers):
        a = make_category("A", sort_order=0)
        b = make_category("B", sort_order=1)

        client.post(
            f"{CATEGORIES_URL}/reorder",
            json={"items": [{"id": a.id, "sort_order": 1}, {"id": b.id, "sort_order": 0}]},
            headers=auth_headers(admin),
        )
        tree = client.get(CATEGORIES_URL).get_json()["data"]

        assert [c["name"] for c in tree] == ["B", "A"]
