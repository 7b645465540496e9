"""
End-to-end flow over the in-memory store.

Walks one customer through the whole lifecycle: create, relate, read with
includes, move a foreign key, link/unlink many-to-many, and delete.
"""

from datetime import datetime, timezone

import pytest

from tablespine.core.errors import ConditionalWriteFailedError, NotFoundError
from tests._support.models import Customer, Order, PaymentMethod, Product


@pytest.mark.asyncio
async def test_order_lifecycle(repo, store):
    customer = await repo.create(Customer, {"name": "Ada", "tier": "gold"})
    order = await repo.create(
        Order,
        {
            "customer_id": customer.id,
            "total": 42.5,
            "status": "pending",
            "ordered_at": datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc),
            "shipping": {"street": "1 Main St", "geo": {"lat": 51.5, "lng": -0.1}},
        },
    )

    found = await repo.find_by_id(Order, order.id, include=[{"association": "customer"}])
    assert found.customer == customer
    assert found.ordered_at == datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert found.shipping["geo"] == {"lat": 51.5, "lng": -0.1}

    owner = await repo.find_by_id(Customer, customer.id, include=["orders"])
    assert [o.id for o in owner.orders] == [order.id]

    method = await repo.create(PaymentMethod, {"customer_id": customer.id, "last_four": "4242"})
    await repo.update(Order, order.id, {"payment_method_id": method.id, "status": "shipped"})
    shipped = await repo.query(Order, {"status": "shipped"}, index_name="ByStatus")
    assert [o.id for o in shipped] == [order.id]

    lamp = await repo.create(Product, {"name": "Lamp", "price": 20})
    await repo.link("OrderProduct", {"order_id": order.id, "product_id": lamp.id})
    with_products = await repo.find_by_id(Order, order.id, include=["products", "payment_method"])
    assert [p.id for p in with_products.products] == [lamp.id]
    assert with_products.payment_method == method
    await repo.unlink("OrderProduct", {"order_id": order.id, "product_id": lamp.id})

    await repo.delete(Order, order.id)
    with pytest.raises(NotFoundError):
        await repo.find_by_id(Order, order.id)
    remaining = await repo.find_by_id(Customer, customer.id, include=["orders"])
    assert remaining.orders == []

    # the partition only holds the customer itself and its payment method link
    partition = sorted(
        item["SK"] for item in store.items("app") if item["PK"] == f"Customer#{customer.id}"
    )
    assert partition == ["Customer", f"PaymentMethod#{method.id}"]


@pytest.mark.asyncio
async def test_orphan_order_is_rejected(repo, store):
    with pytest.raises(ConditionalWriteFailedError, match="does not exist"):
        await repo.create(Order, {"customer_id": "nobody", "total": 1, "status": "pending"})
    assert store.items("app") == []
