from backoffice.errors import TransientFailure
from backoffice.references import dashboard_summary, get_product_info, list_active_customers_and_products


class TestReferenceLists:
    def test_lists_current_customers_and_products(self, repo, customer, product, other_product):
        customers, products = list_active_customers_and_products(repo)

        assert [c.username for c in customers] == ["thandi.n"]
        assert [p.name for p in products] == ["Kettle", "Toaster"]

    def test_store_outage_degrades_to_empty_lists(self, repo, customer, monkeypatch):
        def unavailable(entity_type):
            raise TransientFailure("store unavailable")

        monkeypatch.setattr(repo, "list_all", unavailable)

        assert list_active_customers_and_products(repo) == ([], [])


class TestProductInfo:
    def test_formats_price_for_display(self, repo, product):
        assert get_product_info(repo, product.id) == {
            "id": "prod-1",
            "name": "Kettle",
            "price": "249.99",
            "stock": 10,
            "image_url": "",
        }

    def test_unknown_product(self, repo):
        assert get_product_info(repo, "ghost") is None


class TestDashboard:
    def test_counts_and_featured_products(self, manager, repo, customer, product, other_product):
        manager.create(customer.id, product.id, 1)

        summary = dashboard_summary(repo, featured=1)

        assert summary["product_count"] == 2
        assert summary["customer_count"] == 1
        assert summary["order_count"] == 1
        assert [p.id for p in summary["featured_products"]] == ["prod-1"]
