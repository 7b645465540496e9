"""Tests for the delete operation."""

import pytest

from tablespine.core.errors import (
    ConditionalWriteFailedError,
    NotFoundError,
    NullConstraintViolationError,
)
from tablespine.core.protocols import DeleteAction, UpdateAction
from tablespine.operations import Delete
from tests._support.models import ContactInformation, Customer, Order, PaymentMethod, Product


# ── Helpers ──────────────────────────────────────────────────────────────


def _keys(store):
    return sorted((item["PK"], item["SK"]) for item in store.items("app"))


class TestDelete:
    @pytest.mark.asyncio
    async def test_removes_entity_and_its_link(self, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        before = _keys(store)
        order = await repo.create(Order, {"customer_id": customer.id, "total": 1, "status": "pending"})
        assert len(_keys(store)) == len(before) + 2

        await repo.delete(Order, order.id)
        assert _keys(store) == before

    @pytest.mark.asyncio
    async def test_not_found(self, repo):
        with pytest.raises(NotFoundError):
            await repo.delete(Customer, "ghost")

    @pytest.mark.asyncio
    async def test_rejects_non_nullable_children(self, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        await repo.create(Order, {"customer_id": customer.id, "total": 1, "status": "pending"})
        before = _keys(store)

        with pytest.raises(NullConstraintViolationError, match="customer_id"):
            await repo.delete(Customer, customer.id)
        assert _keys(store) == before

    @pytest.mark.asyncio
    async def test_nullifies_nullable_children(self, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        info = await repo.create(ContactInformation, {"customer_id": customer.id, "phone": "1"})

        await repo.delete(Customer, customer.id)

        assert _keys(store) == [(f"ContactInformation#{info.id}", "ContactInformation")]
        child = await repo.find_by_id(ContactInformation, info.id)
        assert child.customer_id is None
        assert child.updated_at >= info.updated_at

    @pytest.mark.asyncio
    async def test_nullify_is_conditioned_on_child_still_referencing(self, registry, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        info = await repo.create(ContactInformation, {"customer_id": customer.id, "phone": "1"})

        builder = await Delete(registry, store, Customer).stage(customer.id)
        nullify = next(a for a in builder.actions if isinstance(a, UpdateAction))
        assert nullify.key == {"PK": f"ContactInformation#{info.id}", "SK": "ContactInformation"}
        assert nullify.update_expression == "SET #updatedAt = :updatedAt1 REMOVE #customer_id"
        assert nullify.condition == "#customer_id = :customer_id1"
        assert nullify.values[":customer_id1"] == customer.id

    @pytest.mark.asyncio
    async def test_nullable_foreign_key_on_many_side(self, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        method = await repo.create(PaymentMethod, {"customer_id": customer.id, "last_four": "4242"})
        order = await repo.create(
            Order,
            {"customer_id": customer.id, "payment_method_id": method.id, "total": 1, "status": "pending"},
        )

        await repo.delete(PaymentMethod, method.id)

        reloaded = await repo.find_by_id(Order, order.id)
        assert reloaded.payment_method_id is None
        assert reloaded.customer_id == customer.id
        # the payment method's own link in the customer partition is gone too
        assert (f"Customer#{customer.id}", f"PaymentMethod#{method.id}") not in _keys(store)
        assert (f"Customer#{customer.id}", f"Order#{order.id}") in _keys(store)

    @pytest.mark.asyncio
    async def test_removes_reciprocal_many_to_many_links(self, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        order = await repo.create(Order, {"customer_id": customer.id, "total": 1, "status": "pending"})
        product = await repo.create(Product, {"name": "Lamp", "price": 20})
        await repo.link("OrderProduct", {"order_id": order.id, "product_id": product.id})

        await repo.delete(Product, product.id)

        assert (f"Order#{order.id}", f"Product#{product.id}") not in _keys(store)
        assert not any(pk == f"Product#{product.id}" for pk, _ in _keys(store))

    @pytest.mark.asyncio
    async def test_stage_reads_partition_consistently(self, registry, recording_store, repo):
        customer = await repo.create(Customer, {"name": "Ada"})
        builder = await Delete(registry, recording_store, Customer).stage(customer.id)
        (request,) = recording_store.calls_to("query")
        assert request.consistent_read is True
        assert [type(a) for a in builder.actions] == [DeleteAction]

    @pytest.mark.asyncio
    async def test_concurrent_delete_fails_cleanly(self, registry, repo, store):
        customer = await repo.create(Customer, {"name": "Ada"})
        builder = await Delete(registry, store, Customer).stage(customer.id)
        await repo.delete(Customer, customer.id)
        with pytest.raises(ConditionalWriteFailedError, match="does not exist"):
            await builder.execute(store)
