import asyncio
from decimal import Decimal

import pytest

from order_service.core.exceptions import ValidationError
from order_service.core.state_machine import OrderStatus, TransitionPolicy
from order_service.models import OrderEventStatus
from order_service.repository import SqlAlchemyOrderRepository


async def test_creates_pending_order_with_items(orchestrator, session):
    order = await orchestrator.create_order(
        customer_id=1,
        restaurant_id=5,
        total_price=1200,
        items=[10, 11],
        address="12 Rue de la Paix",
    )

    assert order.id is not None
    assert order.status == OrderStatus.PENDING
    assert order.total_price == Decimal("1200")
    assert order.created_at is not None

    item_ids = await SqlAlchemyOrderRepository(session).get_item_ids([order.id])
    assert item_ids[order.id] == [10, 11]


async def test_duplicate_item_ids_are_kept(orchestrator, session):
    order = await orchestrator.create_order(1, 5, 900, [10, 10, 11])

    item_ids = await SqlAlchemyOrderRepository(session).get_item_ids([order.id])
    assert item_ids[order.id] == [10, 10, 11]


async def test_restaurant_owner_is_notified(orchestrator, publisher, notifications):
    order = await orchestrator.create_order(1, 5, 1200, [10, 11])

    assert len(publisher.published) == 1
    event = publisher.published[0]
    assert event.name == "order_placed"
    assert event.channel == "restaurant"
    assert event.recipient_id == 5
    assert event.data == {"order_id": order.id, "owner_id": 42}
    assert f"#{order.id}" in event.message

    await publisher.drain()
    assert notifications.messages[0][:2] == ("restaurant", 5)


@pytest.mark.parametrize(
    "items",
    [[], None, "10,11", [0], [-3], [10, "x"], [True]],
)
async def test_rejects_bad_items(orchestrator, session, items):
    with pytest.raises(ValidationError):
        await orchestrator.create_order(1, 5, 1200, items)

    total, _ = await SqlAlchemyOrderRepository(session).list_orders()
    assert total == 0


@pytest.mark.parametrize("price", [-1, "abc", None, float("nan")])
async def test_rejects_bad_price(orchestrator, price):
    with pytest.raises(ValidationError):
        await orchestrator.create_order(1, 5, price, [10])


async def test_zero_price_is_allowed(orchestrator):
    order = await orchestrator.create_order(1, 5, 0, [10])
    assert order.total_price == Decimal("0")


async def test_initial_status_must_be_pending(orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.create_order(1, 5, 100, [10], status="confirmed")

    with pytest.raises(ValidationError):
        await orchestrator.create_order(1, 5, 100, [10], status="shipped")


async def test_permissive_policy_accepts_non_terminal_initial_status(session, make_orchestrator, settings):
    permissive = settings.model_copy(update={"transition_policy": TransitionPolicy.PERMISSIVE})
    orchestrator = make_orchestrator(session, settings=permissive)

    order = await orchestrator.create_order(1, 5, 100, [10], status="confirmed")
    assert order.status == OrderStatus.CONFIRMED

    with pytest.raises(ValidationError):
        await orchestrator.create_order(1, 5, 100, [10], status="completed")


async def test_unknown_restaurant_skips_notification(orchestrator, publisher):
    order = await orchestrator.create_order(1, 999, 100, [10])

    assert order.id is not None
    assert publisher.published == []


async def test_directory_outage_does_not_fail_create(orchestrator, directory, publisher):
    directory.available = False

    order = await orchestrator.create_order(1, 5, 100, [10])

    assert order.status == OrderStatus.PENDING
    assert publisher.published == []


async def test_broker_outage_does_not_fail_create(orchestrator, publisher):
    publisher.fail = True

    order = await orchestrator.create_order(1, 5, 100, [10])

    assert order.id is not None


async def test_create_writes_no_outbox_event(orchestrator, session):
    order = await orchestrator.create_order(1, 5, 100, [10])

    events = await SqlAlchemyOrderRepository(session).list_events(order_id=order.id)
    assert events == []
    assert await SqlAlchemyOrderRepository(session).list_events(status=OrderEventStatus.PENDING) == []


async def test_concurrent_creates_get_distinct_ids(session_maker, make_orchestrator):
    async def place(n: int):
        async with session_maker() as session:
            order = await make_orchestrator(session).create_order(n, 5, 100 * n, [10, 11])
            return order.id

    ids = await asyncio.gather(*(place(n) for n in range(1, 9)))
    assert len(set(ids)) == 8

    async with session_maker() as session:
        repository = SqlAlchemyOrderRepository(session)
        total, _ = await repository.list_orders()
        item_ids = await repository.get_item_ids(ids)

    assert total == 8
    assert all(items == [10, 11] for items in item_ids.values())
