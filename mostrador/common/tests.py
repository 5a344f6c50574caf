"""
Tests para utilidades comunes: dinero, errores y change feed.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone
from uuid import uuid4

from mostrador.common.exceptions import BusinessRuleError, InvalidStateError, TransientIOError, ValidationError
from mostrador.common.money import as_utc, percentage_of, ratio_percentage, to_money
from mostrador.common.realtime import ChangeFeed


class TestMoney:
    """Redondeo y porcentajes"""

    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money("10.004") == Decimal("10.00")
        assert to_money(None) == Decimal("0.00")

    def test_to_money_from_float_has_no_binary_noise(self):
        assert to_money(0.1 + 0.2) == Decimal("0.30")

    def test_percentage_of(self):
        assert percentage_of(Decimal("40"), Decimal("10")) == Decimal("4.00")
        assert percentage_of(Decimal("33.33"), 15) == Decimal("5.00")

    def test_ratio_percentage(self):
        assert ratio_percentage(40, 100) == Decimal("40.00")
        assert ratio_percentage(10, 0) == Decimal("0.00")

    def test_as_utc_treats_naive_as_utc(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert as_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert as_utc(None) is None


class TestErrors:
    """Errores tipados"""

    def test_status_codes(self):
        assert ValidationError("x").status_code == 422
        assert InvalidStateError("x").status_code == 409
        assert BusinessRuleError("x").status_code == 422
        assert TransientIOError("x").status_code == 503

    def test_to_dict_includes_reason_and_context(self):
        error = ValidationError("La seña debe ser al menos $20.00", minimum_deposit=Decimal("20.00"))
        body = error.to_dict()
        assert body["detail"] == "La seña debe ser al menos $20.00"
        assert body["error"] == "ValidationError"
        assert body["minimum_deposit"] == "20.00"
        assert "reason" not in body

        body = BusinessRuleError("Solo efectivo", reason="not_cash_payment").to_dict()
        assert body["reason"] == "not_cash_payment"


class TestChangeFeed:
    """Suscripciones a cambios por tipo de entidad"""

    def test_publish_reaches_subscribers_of_the_kind(self):
        feed = ChangeFeed()
        orders, registers = [], []
        feed.subscribe("orders", orders.append)
        feed.subscribe("cash_registers", registers.append)

        order_id = uuid4()
        feed.publish("orders", order_id, "created")

        assert len(orders) == 1
        assert orders[0].entity_id == order_id
        assert orders[0].action == "created"
        assert registers == []

    def test_unsubscribe_is_idempotent(self):
        feed = ChangeFeed()
        received = []
        unsubscribe = feed.subscribe("orders", received.append)
        assert feed.subscriber_count("orders") == 1

        unsubscribe()
        unsubscribe()
        feed.publish("orders", uuid4(), "updated")

        assert received == []
        assert feed.subscriber_count("orders") == 0

    def test_failing_subscriber_does_not_block_others(self):
        feed = ChangeFeed()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        feed.subscribe("payments", broken)
        feed.subscribe("payments", received.append)

        event = feed.publish("payments", uuid4(), "created")

        assert received == [event]
