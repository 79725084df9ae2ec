"""
Tests for lawnops/services/quote_engine.py - per-visit price ranges.
"""
from lawnops.schemas.service_template import QuotePolicy
from lawnops.services.quote_engine import compute_lot_bucket, compute_quote
from lawnops.services.service_templates import LAWNCARE_V1


class TestComputeLotBucket:
    def test_customer_answer_wins(self):
        assert compute_lot_bucket(0.1, "large") == "large"

    def test_unsure_falls_back_to_enrichment(self):
        """'Not sure' defers to the enriched lot acreage."""
        assert compute_lot_bucket(0.6, "unknown") == "large"
        assert compute_lot_bucket(0.3, None) == "medium"

    def test_nothing_known(self):
        assert compute_lot_bucket(None, None) == "unknown"


class TestComputeQuote:
    def test_weekly_medium_mowing(self):
        """Table lookup with the neutral mowing multiplier."""
        quote = compute_quote(LAWNCARE_V1, "weekly", "medium", ["mowing"])
        assert quote.range_low == 45.0
        assert quote.range_high == 60.0
        assert quote.exact_amount == 52.5
        assert quote.display == "$45-$60 per visit (weekly)"
        assert quote.requires_site_visit is False
        assert quote.assumptions == ["lot_size:medium", "frequency:weekly"]

    def test_service_multiplier(self):
        """Leaf cleanup prices at 1.6x the mowing table."""
        quote = compute_quote(LAWNCARE_V1, "weekly", "medium", ["leaf_cleanup"])
        assert (quote.range_low, quote.range_high) == (72.0, 96.0)

    def test_fence_and_slope_adjust_exact_amount(self):
        """Yard conditions move the exact amount, never the range."""
        quote = compute_quote(LAWNCARE_V1, "weekly", "medium", ["mowing"], has_fence=True, slope="sloped")
        assert (quote.range_low, quote.range_high) == (45.0, 60.0)
        assert quote.exact_amount == 66.41
        assert "fenced_yard" in quote.assumptions
        assert "sloped_lot" in quote.assumptions

    def test_unknown_bucket_has_no_exact_amount(self):
        quote = compute_quote(LAWNCARE_V1, "weekly", "unknown", ["mowing"])
        assert (quote.range_low, quote.range_high) == (40.0, 80.0)
        assert quote.exact_amount is None

    def test_missing_frequency_prices_as_one_time(self):
        quote = compute_quote(LAWNCARE_V1, None, "small", ["mowing"])
        assert quote.frequency == "one_time"
        assert quote.display == "$55-$75 per visit (one-time)"

    def test_site_visit_service(self):
        quote = compute_quote(LAWNCARE_V1, "one_time", "small", ["irrigation"])
        assert quote.requires_site_visit is True
        assert quote.site_visit_reasons == ["service_requires_assessment:irrigation"]

    def test_low_confidence_address(self):
        """An address the enricher is unsure of needs someone on site."""
        quote = compute_quote(LAWNCARE_V1, "weekly", "small", ["mowing"], address_confidence=0.4)
        assert quote.requires_site_visit is True
        assert "low_confidence_address" in quote.site_visit_reasons

    def test_no_price_configured(self):
        """A template without a price table never quotes by text."""
        template = LAWNCARE_V1.model_copy(update={"quote_policy": QuotePolicy(range_per_visit_usd={})})
        quote = compute_quote(template, "weekly", "small", ["mowing"])
        assert quote.requires_site_visit is True
        assert quote.site_visit_reasons == ["no_price_configured"]
        assert quote.display == ""
