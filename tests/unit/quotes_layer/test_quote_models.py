"""
Unit Tests for Quote Models

Ranking order, computed totals and request helpers.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from bridge_aggregator.core.config.constants import MarketOrigin
from bridge_aggregator.quotes.models import Quote
from tests.test_fixtures import QuoteFactory, RequestFactory


@pytest.mark.unit
class TestQuote:
    def test_total_cost_is_serialized(self):
        quote = QuoteFactory.quote(fee=1.25, gas=0.5)
        assert quote.model_dump()["total_cost"] == 1.75

    def test_sort_cheapest_then_reliability_then_name(self):
        quotes = [
            QuoteFactory.quote("Zeta", fee=1.0, gas=0.5, reliability=99.0),
            QuoteFactory.quote("Alpha", fee=1.0, gas=0.5, reliability=99.0),
            QuoteFactory.quote("Reliable", fee=1.0, gas=0.5, reliability=99.9),
            QuoteFactory.quote("Cheap", fee=0.5, gas=0.1, reliability=90.0),
        ]
        ordered = [quote.provider_name for quote in sorted(quotes, key=Quote.sort_key)]
        assert ordered == ["Cheap", "Reliable", "Alpha", "Zeta"]

    @pytest.mark.parametrize("fee", [-0.01, float("nan"), float("inf")])
    def test_rejects_negative_or_non_finite_fee(self, fee):
        with pytest.raises(PydanticValidationError):
            QuoteFactory.quote(fee=fee)

    def test_quote_is_frozen(self):
        quote = QuoteFactory.quote()
        with pytest.raises(PydanticValidationError):
            quote.fee = 0.0


@pytest.mark.unit
class TestQuoteRequest:
    def test_base_units_follow_token_decimals(self):
        assert RequestFactory.basic(amount="100", token="usdc").base_units() == "100000000"
        assert RequestFactory.basic(amount="1.5", token="dai").base_units() == "1500000000000000000"


@pytest.mark.unit
class TestMarketSnapshot:
    def test_fallback_flag(self):
        assert not QuoteFactory.snapshot().is_fallback
        assert QuoteFactory.snapshot(origin=MarketOrigin.STALE).is_fallback
        assert QuoteFactory.snapshot(origin=MarketOrigin.DEFAULT).is_fallback
