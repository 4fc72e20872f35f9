import asyncio
from decimal import Decimal

import pytest

from order_service.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from order_service.core.state_machine import OrderStatus
from order_service.models import OrderEventStatus, OrderEventType
from order_service.repository import SqlAlchemyOrderRepository
from order_service.services.ledger import DeliveryStatus


@pytest.fixture
async def order(orchestrator):
    return await orchestrator.create_order(1, 5, 1200, [10, 11])


async def reload(session_maker, order_id):
    async with session_maker() as session:
        return await SqlAlchemyOrderRepository(session).get_order(order_id, include_deleted=True)


async def test_courier_assignment_creates_delivery(orchestrator, ledger, order, session):
    updated = await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)

    assert updated.status == OrderStatus.WAITING_FOR_PICKUP
    [delivery] = ledger.deliveries.values()
    assert (delivery.courier_id, delivery.order_id) == (7, order.id)
    assert delivery.status == DeliveryStatus.ASSIGNED

    [event] = await SqlAlchemyOrderRepository(session).list_events(order_id=order.id)
    assert event.event_type == OrderEventType.CREATE_DELIVERY
    assert event.status == OrderEventStatus.DONE
    assert event.attempts == 1
    assert event.payload == {"order_id": order.id, "courier_id": 7}


async def test_waiting_for_pickup_without_courier_has_no_side_effect(orchestrator, ledger, order, session):
    await orchestrator.transition_order(order.id, status="waiting_for_pickup")

    assert ledger.deliveries == {}
    assert await SqlAlchemyOrderRepository(session).list_events(order_id=order.id) == []


async def test_courier_on_other_statuses_is_ignored(orchestrator, ledger, order, session):
    await orchestrator.transition_order(order.id, status="confirmed", courier_id=7)

    assert ledger.deliveries == {}
    assert await SqlAlchemyOrderRepository(session).list_events(order_id=order.id) == []


async def test_cancel_deactivates_the_courier_delivery(orchestrator, ledger, order):
    await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)
    await orchestrator.transition_order(order.id, status="cancelled", courier_id=7)

    [delivery] = ledger.deliveries.values()
    assert delivery.status == DeliveryStatus.CANCELLED
    assert not delivery.active


async def test_cancel_without_active_delivery_is_a_no_op(orchestrator, order, session):
    updated = await orchestrator.transition_order(order.id, status="cancelled", courier_id=7)

    assert updated.status == OrderStatus.CANCELLED
    [event] = await SqlAlchemyOrderRepository(session).list_events(order_id=order.id)
    assert event.status == OrderEventStatus.DONE
    assert event.last_error == "no active delivery"


async def test_cancel_deactivates_the_courier_delivery_of_another_order(orchestrator, ledger, order):
    other = await orchestrator.create_order(2, 5, 300, [10])
    await orchestrator.transition_order(other.id, status="waiting_for_pickup", courier_id=7)

    await orchestrator.transition_order(order.id, status="cancelled", courier_id=7)

    [delivery] = ledger.deliveries.values()
    assert delivery.order_id == other.id
    assert not delivery.active


async def test_cancel_can_be_limited_to_the_matching_order(make_orchestrator, session, ledger, settings):
    guarded = make_orchestrator(
        session,
        settings=settings.model_copy(update={"cancel_requires_matching_order": True}),
    )
    order = await guarded.create_order(1, 5, 1200, [10])
    other = await guarded.create_order(2, 5, 300, [10])
    await guarded.transition_order(other.id, status="waiting_for_pickup", courier_id=7)

    await guarded.transition_order(order.id, status="cancelled", courier_id=7)

    [delivery] = ledger.deliveries.values()
    assert delivery.order_id == other.id
    assert delivery.active
    [event] = await SqlAlchemyOrderRepository(session).list_events(order_id=order.id)
    assert event.status == OrderEventStatus.DONE
    assert "belongs to another order" in event.last_error


class TestTerminalOrders:
    async def test_price_edit_on_completed_order_is_rejected(self, orchestrator, order, session_maker):
        await orchestrator.transition_order(order.id, status="completed")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await orchestrator.transition_order(order.id, total_price=1)

        assert exc_info.value.details["current_status"] == "completed"
        stored = await reload(session_maker, order.id)
        assert stored.total_price == Decimal("1200")

    async def test_recancel_with_courier_runs_no_side_effect(self, orchestrator, ledger, order, session):
        await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)
        await orchestrator.transition_order(order.id, status="cancelled", courier_id=7)
        events_before = await SqlAlchemyOrderRepository(session).list_events(order_id=order.id)

        with pytest.raises(InvalidTransitionError):
            await orchestrator.transition_order(order.id, status="cancelled", courier_id=7)

        assert len(await SqlAlchemyOrderRepository(session).list_events(order_id=order.id)) == len(events_before)

    async def test_rewriting_the_terminal_status_alone_is_accepted(self, orchestrator, order):
        await orchestrator.transition_order(order.id, status="cancelled")

        updated = await orchestrator.transition_order(order.id, status="cancelled")

        assert updated.status == OrderStatus.CANCELLED


async def test_example_lifecycle(orchestrator, ledger, publisher):
    order = await orchestrator.create_order(1, 5, 1200, [10, 11])
    assert order.status == OrderStatus.PENDING

    await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)
    await orchestrator.transition_order(order.id, status="product_pickedup")
    await orchestrator.transition_order(order.id, status="confirmed_by_delivery")
    await orchestrator.transition_order(order.id, status="confirmed_by_client")
    final = await orchestrator.transition_order(order.id, status="completed")

    assert final.status == OrderStatus.COMPLETED
    assert len(ledger.deliveries) == 1
    assert [e.name for e in publisher.published] == ["order_placed"] + ["order_status_changed"] * 5

    with pytest.raises(InvalidTransitionError):
        await orchestrator.transition_order(order.id, status="cancelled")


async def test_price_only_update(orchestrator, order, publisher):
    updated = await orchestrator.transition_order(order.id, total_price="1350.50")

    assert updated.total_price == Decimal("1350.50")
    assert updated.status == OrderStatus.PENDING
    assert [e.name for e in publisher.published] == ["order_placed"]


async def test_same_status_does_not_notify(orchestrator, order, publisher):
    await orchestrator.transition_order(order.id, status="pending")
    assert [e.name for e in publisher.published] == ["order_placed"]


async def test_customer_notification_can_be_disabled(session, make_orchestrator, settings, publisher):
    quiet = make_orchestrator(session, settings=settings.model_copy(update={"notify_customer_on_status_change": False}))
    order = await quiet.create_order(1, 5, 100, [10])

    await quiet.transition_order(order.id, status="confirmed")

    assert [e.name for e in publisher.published] == ["order_placed"]


async def test_status_change_notifies_customer(orchestrator, order, publisher, notifications):
    await orchestrator.transition_order(order.id, status="confirmed")

    event = publisher.published[-1]
    assert event.channel == "user"
    assert event.recipient_id == 1
    assert event.data == {"order_id": order.id, "status": "confirmed"}

    await publisher.drain()
    assert ("user", 1, f"Your order #{order.id} is now confirmed") in notifications.messages


async def test_unknown_order(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.transition_order(404, status="confirmed")


async def test_deleted_order_cannot_transition(orchestrator, order):
    await orchestrator.delete_order(order.id)

    with pytest.raises(NotFoundError):
        await orchestrator.transition_order(order.id, status="confirmed")


async def test_rejected_transition_writes_nothing(orchestrator, order, session_maker):
    await orchestrator.transition_order(order.id, status="product_pickedup")

    with pytest.raises(InvalidTransitionError):
        await orchestrator.transition_order(order.id, status="confirmed", total_price=1)

    stored = await reload(session_maker, order.id)
    assert stored.status == OrderStatus.PRODUCT_PICKEDUP
    assert stored.total_price == Decimal("1200")


@pytest.mark.parametrize(
    "changes",
    [{"status": "shipped"}, {"total_price": -5}, {"courier_id": 0}],
)
async def test_invalid_input(orchestrator, order, changes):
    with pytest.raises(ValidationError):
        await orchestrator.transition_order(order.id, **changes)


class TestPartialFailure:
    async def test_ledger_outage_keeps_new_status(self, orchestrator, ledger, order, session_maker):
        ledger.available = False

        with pytest.raises(PartialFailureError) as exc_info:
            await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)

        error = exc_info.value
        assert error.order["status"] == "waiting_for_pickup"
        assert error.cause.status_code == 503
        payload = error.to_dict()
        assert payload["order_state_changed"] is True
        assert payload["downstream"]["service"] == "ledger"

        stored = await reload(session_maker, order.id)
        assert stored.status == OrderStatus.WAITING_FOR_PICKUP

        async with session_maker() as session:
            event = await SqlAlchemyOrderRepository(session).get_event(error.event_id)
        assert event.status == OrderEventStatus.FAILED
        assert event.attempts == 1
        assert "unavailable" in event.last_error

    async def test_existing_delivery_is_reported(self, orchestrator, ledger, order):
        await ledger.create_delivery(3, order.id)

        with pytest.raises(PartialFailureError) as exc_info:
            await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)

        assert isinstance(exc_info.value.cause, ConflictError)
        assert exc_info.value.to_dict()["downstream"]["error"] == "Conflict"

    async def test_cancel_outage_keeps_cancelled(self, orchestrator, ledger, order, session_maker):
        await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)
        ledger.reject_writes = True

        with pytest.raises(PartialFailureError):
            await orchestrator.transition_order(order.id, status="cancelled", courier_id=7)

        stored = await reload(session_maker, order.id)
        assert stored.status == OrderStatus.CANCELLED
        [delivery] = ledger.deliveries.values()
        assert delivery.active

    async def test_customer_is_notified_despite_ledger_failure(self, orchestrator, ledger, order, publisher):
        ledger.available = False

        with pytest.raises(PartialFailureError):
            await orchestrator.transition_order(order.id, status="waiting_for_pickup", courier_id=7)

        assert publisher.published[-1].name == "order_status_changed"


async def test_concurrent_transitions_last_write_wins(order, session_maker, make_orchestrator):
    async def move(status: str):
        async with session_maker() as session:
            return await make_orchestrator(session).transition_order(order.id, status=status)

    results = await asyncio.gather(move("confirmed"), move("cancelled"), return_exceptions=True)

    stored = await reload(session_maker, order.id)
    assert stored.status in (OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
    assert any(not isinstance(r, Exception) and r.status == stored.status for r in results)
