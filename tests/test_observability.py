"""
Tests for logging processors, span helpers and metric recording.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import structlog
from prometheus_client import REGISTRY

from ledger.observability.logging import add_app_context, log_context, render_decimals
from ledger.observability.metrics import metrics
from ledger.observability.tracing import add_span_attributes, set_span_error


class TestLoggingProcessors:
    """Tests for structlog processors."""

    def test_render_decimals(self) -> None:
        event = render_decimals(None, "info", {"event": "x", "price": Decimal("19.90"), "n": 3})

        assert event["price"] == "19.90"
        assert event["n"] == 3

    def test_app_context(self) -> None:
        event = add_app_context(None, "info", {"event": "x"})

        assert event["service"] == "marketplace-ledger"
        assert "version" in event

    def test_log_context_binds_and_unbinds(self) -> None:
        with log_context(user_id="u-1"):
            assert structlog.contextvars.get_contextvars()["user_id"] == "u-1"

        assert "user_id" not in structlog.contextvars.get_contextvars()


class TestSpanHelpers:
    """Tests for span attribute helpers."""

    def test_attributes_skip_none_and_stringify(self) -> None:
        span = MagicMock()

        add_span_attributes(span, buyer_id="b", price=Decimal("5"), item=None, count=2)

        span.set_attribute.assert_any_call("buyer_id", "b")
        span.set_attribute.assert_any_call("price", "5")
        span.set_attribute.assert_any_call("count", 2)
        assert span.set_attribute.call_count == 3

    def test_set_span_error(self) -> None:
        span = MagicMock()
        error = RuntimeError("boom")

        set_span_error(span, error)

        span.record_exception.assert_called_once_with(error)
        span.set_status.assert_called_once()


class TestMetrics:
    """Tests for metric helpers."""

    def test_record_purchase_observes_price(self) -> None:
        before = REGISTRY.get_sample_value("ledger_purchase_price_credits_count") or 0

        metrics.record_purchase("completed", price=30.0)
        metrics.record_purchase("insufficient_balance")

        assert REGISTRY.get_sample_value("ledger_purchase_price_credits_count") == before + 1

    def test_record_outbox_write_sets_pending(self) -> None:
        metrics.record_outbox_write("set_like", "applied", pending=4)

        assert REGISTRY.get_sample_value("ledger_outbox_pending") == 4
