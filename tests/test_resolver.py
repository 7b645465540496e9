"""Tests for RelationshipResolver fan-out."""

import pytest

from tablespine.core.errors import ResolutionError
from tablespine.resolver import RelationshipResolver
from tests._support.models import Customer, Order


def _order_item(order_id, customer_id="c1"):
    return {
        "PK": f"Order#{order_id}",
        "SK": "Order",
        "id": order_id,
        "type": "Order",
        "customer_id": customer_id,
        "total": 1,
        "status": "pending",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }


def _customer_item(customer_id="c1"):
    return {
        "PK": f"Customer#{customer_id}",
        "SK": "Customer",
        "id": customer_id,
        "type": "Customer",
        "name": "Ada",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }


def _link_item(order_id, customer_id="c1"):
    return {
        "PK": f"Customer#{customer_id}",
        "SK": f"Order#{order_id}",
        "id": f"link-{order_id}",
        "type": "BelongsToLink",
        "foreignEntityType": "Order",
        "foreignKey": order_id,
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }


async def _seed(store, items):
    for item in items:
        await store.put_item("app", item)


class TestResolveOne:
    def test_builds_typed_entity(self, registry, store):
        resolver = RelationshipResolver(registry, store, registry.lookup("Customer"))
        customer = resolver.resolve_one(_customer_item())
        assert isinstance(customer, Customer)
        assert customer.name == "Ada"
        assert customer.email is None

    def test_type_mismatch(self, registry, store):
        resolver = RelationshipResolver(registry, store, registry.lookup("Customer"))
        with pytest.raises(ResolutionError):
            resolver.resolve_one(_order_item("o1"))


class TestFanOut:
    @pytest.mark.asyncio
    async def test_duplicate_links_fetch_once(self, registry, store, recording_store):
        await _seed(store, [_order_item("o1")])
        definition = registry.lookup("Customer")
        resolver = RelationshipResolver(registry, recording_store, definition)

        customer = await resolver.resolve_with_includes(
            [_customer_item(), _link_item("o1"), _link_item("o1")],
            [definition.relationships["orders"]],
        )
        assert [o.id for o in customer.orders] == ["o1"]
        assert len(recording_store.calls_to("get_item")) == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_capped(self, registry, store, recording_store):
        order_ids = [f"o{n}" for n in range(5)]
        await _seed(store, [_order_item(order_id) for order_id in order_ids])
        definition = registry.lookup("Customer")
        resolver = RelationshipResolver(
            registry, recording_store, definition, max_concurrency=2
        )

        customer = await resolver.resolve_with_includes(
            [_customer_item(), *(_link_item(order_id) for order_id in order_ids)],
            [definition.relationships["orders"]],
        )
        assert [o.id for o in customer.orders] == order_ids
        assert len(recording_store.calls_to("get_item")) == 5
        assert recording_store.peak_in_flight == 2

    @pytest.mark.asyncio
    async def test_unbounded_runs_all_reads_together(self, registry, store, recording_store):
        order_ids = [f"o{n}" for n in range(4)]
        await _seed(store, [_order_item(order_id) for order_id in order_ids])
        definition = registry.lookup("Customer")
        resolver = RelationshipResolver(registry, recording_store, definition)

        await resolver.resolve_with_includes(
            [_customer_item(), *(_link_item(order_id) for order_id in order_ids)],
            [definition.relationships["orders"]],
        )
        assert recording_store.peak_in_flight == 4

    @pytest.mark.asyncio
    async def test_links_for_unrequested_types_are_ignored(self, registry, store, recording_store):
        definition = registry.lookup("Customer")
        resolver = RelationshipResolver(registry, recording_store, definition)

        customer = await resolver.resolve_with_includes(
            [_customer_item(), _link_item("o1")],
            [definition.relationships["contact_information"]],
        )
        assert customer.contact_information is None
        assert recording_store.calls == []

    @pytest.mark.asyncio
    async def test_no_root_item(self, registry, store):
        definition = registry.lookup("Customer")
        resolver = RelationshipResolver(registry, store, definition)
        assert await resolver.resolve_with_includes([_link_item("o1")], []) is None

    @pytest.mark.asyncio
    async def test_belongs_to_fetches_by_foreign_key(self, registry, store, recording_store):
        await _seed(store, [_customer_item("c9")])
        definition = registry.lookup("Order")
        resolver = RelationshipResolver(registry, recording_store, definition)

        order = await resolver.resolve_with_includes(
            [_order_item("o1", customer_id="c9")],
            [definition.relationships["customer"]],
        )
        assert isinstance(order.customer, Customer)
        assert order.customer.id == "c9"
        assert isinstance(order, Order)
