import datetime as dt
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from backoffice.entities import Customer, Order, Product
from backoffice.errors import DuplicateKey, EntityNotFound, StaleVersion, TransientFailure
from backoffice.models import StoredEntity
from backoffice.repository import EntityRepository


class TestReadsAndInserts:
    def test_insert_assigns_first_version(self, repo):
        saved = repo.insert(Product(id="p", name="Mug", unit_price=Decimal("35.00"), stock_available=3))
        assert saved.version == 1

        loaded = repo.get(Product, "p")
        assert loaded.name == "Mug"
        assert loaded.unit_price == Decimal("35.00")
        assert loaded.stock_available == 3
        assert loaded.version == 1

    def test_get_missing_returns_none(self, repo):
        assert repo.get(Product, "nope") is None

    def test_partitions_are_separate(self, repo, product, customer):
        assert repo.get(Customer, product.id) is None
        assert [p.id for p in repo.list_all(Product)] == [product.id]
        assert [c.id for c in repo.list_all(Customer)] == [customer.id]

    def test_duplicate_key_is_rejected(self, repo, product):
        with pytest.raises(DuplicateKey):
            repo.insert(Product(id=product.id, name="Other", unit_price=Decimal("1"), stock_available=1))
        assert repo.get(Product, product.id).name == "Kettle"

    def test_order_round_trips_as_utc_with_computed_total(self, repo):
        local = dt.datetime(2025, 3, 1, 10, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))
        repo.insert(
            Order(
                id="o",
                customer_id="c",
                product_id="p",
                unit_price=Decimal("10.10"),
                quantity=3,
                order_date=local,
            )
        )
        loaded = repo.get(Order, "o")
        assert loaded.order_date == dt.datetime(2025, 3, 1, 8, 0, tzinfo=dt.timezone.utc)
        assert loaded.total_price == Decimal("30.30")

    def test_properties_are_schema_less_json(self, repo, db, product):
        row = db.query(StoredEntity).filter_by(partition_key="Product", row_key=product.id).one()
        assert row.properties["name"] == "Kettle"
        assert "id" not in row.properties
        assert "version" not in row.properties


class TestOptimisticUpdates:
    def test_update_with_current_version_bumps_it(self, repo, product):
        saved = repo.update(product.model_copy(update={"stock_available": 9}))
        assert saved.version == 2
        assert repo.get(Product, product.id).stock_available == 9

    def test_stale_version_is_a_conflict(self, repo, product):
        repo.update(product.model_copy(update={"stock_available": 9}))
        with pytest.raises(StaleVersion):
            repo.update(product.model_copy(update={"stock_available": 1}))
        assert repo.get(Product, product.id).stock_available == 9

    def test_explicit_expected_version_wins(self, repo, product):
        with pytest.raises(StaleVersion):
            repo.update(product, expected_version=7)

    def test_update_missing_entity(self, repo):
        ghost = Product(id="ghost", name="Ghost", unit_price=Decimal("1"), stock_available=1, version=1)
        with pytest.raises(EntityNotFound):
            repo.update(ghost)

    def test_update_needs_a_version(self, repo):
        with pytest.raises(ValueError):
            repo.update(Product(name="Unsaved", unit_price=Decimal("1"), stock_available=1))


class TestDeletes:
    def test_delete_removes_entity(self, repo, product):
        repo.delete(Product, product.id)
        assert repo.get(Product, product.id) is None

    def test_delete_missing_entity(self, repo):
        with pytest.raises(EntityNotFound):
            repo.delete(Product, "nope")

    def test_delete_with_stale_version(self, repo, product):
        repo.update(product.model_copy(update={"stock_available": 2}))
        with pytest.raises(StaleVersion):
            repo.delete(Product, product.id, expected_version=1)
        assert repo.get(Product, product.id) is not None


class TestTransientFailures:
    def test_reads_are_retried_then_surface(self, db, monkeypatch):
        repo = EntityRepository(db, max_attempts=3, backoff_seconds=0)
        calls = []

        def broken_query(*args, **kwargs):
            calls.append(1)
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(db, "query", broken_query)
        with pytest.raises(TransientFailure):
            repo.get(Product, "p")
        assert len(calls) == 3

    def test_missed_update_check_surfaces_as_transient(self, db, product, monkeypatch):
        repo = EntityRepository(db, max_attempts=2, backoff_seconds=0)
        real_query = db.query

        def query(*entities, **kwargs):
            if len(entities) == 1 and entities[0] is StoredEntity.row_key:
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return real_query(*entities, **kwargs)

        monkeypatch.setattr(db, "query", query)
        with pytest.raises(TransientFailure):
            repo.update(product, expected_version=7)
        with pytest.raises(TransientFailure):
            repo.delete(Product, product.id, expected_version=7)

    def test_read_recovers_after_a_blip(self, db, product, monkeypatch):
        repo = EntityRepository(db, max_attempts=3, backoff_seconds=0)
        real_query = db.query
        failures = [OperationalError("SELECT", {}, Exception("blip"))]

        def flaky_query(*args, **kwargs):
            if failures:
                raise failures.pop()
            return real_query(*args, **kwargs)

        monkeypatch.setattr(db, "query", flaky_query)
        assert repo.get(Product, product.id).name == "Kettle"
