"""Tests for partition and index queries."""

from datetime import datetime, timezone

import pytest

from tablespine import EntityRepository, MetadataRegistry, SchemaBuilder
from tablespine.core.errors import InvalidQueryError, ResolutionError
from tablespine.entity import BelongsToLink
from tablespine.operations import Query
from tests._support.models import Customer, Order, PaymentMethod, build_store


async def _customer_with_orders(repo, count=2):
    customer = await repo.create(Customer, {"name": "Ada"})
    orders = []
    for n in range(count):
        orders.append(
            await repo.create(
                Order,
                {
                    "customer_id": customer.id,
                    "total": n + 1,
                    "status": "shipped" if n % 2 else "pending",
                    "ordered_at": datetime(2024, 1, n + 1, tzinfo=timezone.utc),
                },
            )
        )
    return customer, orders


class TestPartitionQuery:
    @pytest.mark.asyncio
    async def test_by_id_returns_entity_and_links(self, repo):
        customer, orders = await _customer_with_orders(repo)
        results = await repo.query(Customer, customer.id)

        entities = [r for r in results if isinstance(r, Customer)]
        links = [r for r in results if isinstance(r, BelongsToLink)]
        assert entities == [customer]
        assert sorted(l.foreign_key for l in links) == sorted(o.id for o in orders)
        assert {l.foreign_entity_type for l in links} == {"Order"}

    @pytest.mark.asyncio
    async def test_sort_key_prefix(self, repo):
        customer, orders = await _customer_with_orders(repo)
        await repo.create(PaymentMethod, {"customer_id": customer.id, "last_four": "4242"})

        results = await repo.query(Customer, customer.id, sk_condition={"$beginsWith": "Order"})
        assert len(results) == len(orders)
        assert all(isinstance(r, BelongsToLink) for r in results)

    @pytest.mark.asyncio
    async def test_explicit_key_condition(self, repo):
        customer, _ = await _customer_with_orders(repo)
        results = await repo.query(Customer, {"pk": f"Customer#{customer.id}", "sk": "Customer"})
        assert results == [customer]

    @pytest.mark.asyncio
    async def test_consistent_read_only_on_base_table(self, registry, recording_store):
        query = Query(registry, recording_store, Order)
        await query.run("o1", consistent_read=True)
        await query.run({"status": "pending"}, index_name="ByStatus", consistent_read=True)
        base, index = recording_store.calls_to("query")
        assert base.consistent_read is True
        assert index.consistent_read is False
        assert index.index_name == "ByStatus"

    @pytest.mark.asyncio
    async def test_invalid_filter_fails_before_io(self, registry, recording_store):
        with pytest.raises(InvalidQueryError):
            await Query(registry, recording_store, Customer).run("c1", filter={"age": 3})
        assert recording_store.calls == []


class TestIndexQuery:
    @pytest.mark.asyncio
    async def test_index_with_filter(self, repo):
        _, orders = await _customer_with_orders(repo, count=5)

        pending = await repo.query(Order, {"status": "pending"}, index_name="ByStatus")
        assert [o.total for o in pending] == [1, 3, 5]

        filtered = await repo.query(
            Order,
            {"status": "pending"},
            index_name="ByStatus",
            filter={"$or": [{"total": 1}, {"total": [5, 7]}]},
        )
        assert [o.id for o in filtered] == [orders[0].id, orders[4].id]


class TestResolution:
    @pytest.mark.asyncio
    async def test_unknown_type_tag(self, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        await store.put_item(
            "app", {"PK": f"Customer#{customer.id}", "SK": "Audit#1", "type": "Audit"}
        )
        with pytest.raises(ResolutionError, match="unknown type 'Audit'"):
            await repo.query(Customer, customer.id)


class TestPlaceholderCollisions:
    @pytest.mark.asyncio
    async def test_filter_on_alias_ending_in_digit(self):
        registry = MetadataRegistry()
        schema = SchemaBuilder(registry)
        schema.table("app")
        schema.entity("Address", table="app").string("line").string("line1")
        repo = EntityRepository(build_store(), registry)

        address = await repo.create("Address", {"line": "v10", "line1": "other"})
        results = await repo.query(
            "Address",
            address.id,
            filter={"line": [f"v{n}" for n in range(11)], "line1": "other"},
        )
        assert [r.id for r in results] == [address.id]
