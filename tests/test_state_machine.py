import pytest

from order_service.core.exceptions import InvalidTransitionError, ValidationError
from order_service.core.state_machine import (
    DELIVERY_STATES,
    ORDER_SEQUENCE,
    OrderStatus,
    TransitionPolicy,
    allowed_transitions,
    progress,
    validate_transition,
)


class TestParse:
    def test_canonical_value(self):
        assert OrderStatus.parse("confirmed_by_client") is OrderStatus.CONFIRMED_BY_CLIENT

    def test_space_separated_spelling(self):
        assert OrderStatus.parse("Waiting for pickup") is OrderStatus.WAITING_FOR_PICKUP

    def test_enum_passthrough(self):
        assert OrderStatus.parse(OrderStatus.CANCELLED) is OrderStatus.CANCELLED

    @pytest.mark.parametrize("value", ["shipped", "", 3, None])
    def test_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            OrderStatus.parse(value)


class TestProgress:
    def test_first_and_last_stage(self):
        assert progress(OrderStatus.PENDING) == pytest.approx(14.29)
        assert progress(OrderStatus.COMPLETED) == 100.0

    def test_every_stage_increases(self):
        values = [progress(s) for s in ORDER_SEQUENCE]
        assert values == sorted(values)
        assert len(set(values)) == len(ORDER_SEQUENCE)

    def test_cancelled_and_unknown_are_zero(self):
        assert progress(OrderStatus.CANCELLED) == 0.0
        assert progress("teleported") == 0.0
        assert progress(None) == 0.0

    def test_accepts_strings(self):
        assert progress("waiting_for_pickup") == pytest.approx(42.86)


class TestForwardOnly:
    policy = TransitionPolicy.FORWARD_ONLY

    def test_next_stage(self):
        validate_transition(OrderStatus.PENDING, OrderStatus.CONFIRMED, self.policy)

    def test_skipping_stages(self):
        validate_transition(OrderStatus.PENDING, OrderStatus.WAITING_FOR_PICKUP, self.policy)

    def test_cancel_from_any_non_terminal(self):
        for status in ORDER_SEQUENCE[:-1]:
            validate_transition(status, OrderStatus.CANCELLED, self.policy)

    def test_same_status_is_accepted(self):
        validate_transition(OrderStatus.COMPLETED, OrderStatus.COMPLETED, self.policy)

    def test_going_back_is_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(OrderStatus.PRODUCT_PICKEDUP, OrderStatus.CONFIRMED, self.policy)
        assert exc_info.value.details["current_status"] == "product_pickedup"
        assert exc_info.value.details["requested_status"] == "confirmed"

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        assert allowed_transitions(terminal, self.policy) == frozenset()
        with pytest.raises(InvalidTransitionError):
            validate_transition(terminal, OrderStatus.PENDING, self.policy)

    def test_invalid_transition_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            validate_transition(OrderStatus.COMPLETED, OrderStatus.CANCELLED, self.policy)


class TestStrict:
    policy = TransitionPolicy.STRICT

    def test_only_next_stage_or_cancel(self):
        assert allowed_transitions(OrderStatus.PENDING, self.policy) == {
            OrderStatus.CONFIRMED,
            OrderStatus.CANCELLED,
        }

    def test_skipping_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(OrderStatus.PENDING, OrderStatus.WAITING_FOR_PICKUP, self.policy)


class TestPermissive:
    policy = TransitionPolicy.PERMISSIVE

    def test_backwards_is_allowed(self):
        validate_transition(OrderStatus.CONFIRMED_BY_CLIENT, OrderStatus.PENDING, self.policy)

    def test_terminal_still_final(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(OrderStatus.CANCELLED, OrderStatus.PENDING, self.policy)


def test_delivery_states():
    assert OrderStatus.PENDING not in DELIVERY_STATES
    assert OrderStatus.CONFIRMED not in DELIVERY_STATES
    assert OrderStatus.WAITING_FOR_PICKUP in DELIVERY_STATES
    assert OrderStatus.COMPLETED in DELIVERY_STATES
    assert OrderStatus.CANCELLED in DELIVERY_STATES
