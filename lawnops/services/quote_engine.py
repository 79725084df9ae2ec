"""
Quote engine - per-visit price range for a collected intake.
All inputs are typed fields; nothing is parsed back out of free text.
"""
import logging
from typing import Optional

from lawnops.schemas.service_template import ServiceTemplate
from lawnops.schemas.sms import QuoteResult

logger = logging.getLogger(__name__)

LOT_BUCKETS = ("small", "medium", "large")

FREQUENCY_LABELS = {
    "weekly": "weekly",
    "biweekly": "bi-weekly",
    "monthly": "monthly",
    "one_time": "one-time",
}


def compute_lot_bucket(acres: Optional[float], user_bucket: Optional[str] = None) -> str:
    """
    Pick the lot-size bucket for pricing.
    The customer's own answer wins unless they said they weren't sure;
    otherwise fall back to the enriched lot acreage.
    """
    if user_bucket and user_bucket != "unknown":
        return user_bucket
    if acres is None:
        return "unknown"
    if acres < 0.25:
        return "small"
    if acres < 0.5:
        return "medium"
    return "large"


def compute_quote(
    template: ServiceTemplate,
    frequency: Optional[str],
    lot_bucket: str,
    services: list[str],
    has_fence: Optional[bool] = None,
    slope: Optional[str] = None,
    address_confidence: Optional[float] = None,
    bucket_from_enrichment: bool = False,
) -> QuoteResult:
    """Build a QuoteResult from the template's price table."""
    policy = template.quote_policy
    frequency = frequency or "one_time"

    table = policy.range_per_visit_usd.get(frequency) or policy.range_per_visit_usd.get("one_time", {})
    price_range = table.get(lot_bucket) or table.get("unknown")

    assumptions = [f"lot_size:{lot_bucket}", f"frequency:{frequency}"]
    if bucket_from_enrichment:
        assumptions.append("lot_size_estimated_from_address")

    site_visit_reasons = []
    for service in services:
        if service in policy.site_visit_services:
            site_visit_reasons.append(f"service_requires_assessment:{service}")
    if address_confidence is not None and address_confidence < policy.address_confidence_floor:
        site_visit_reasons.append("low_confidence_address")

    if not price_range:
        logger.warning(
            "No price configured for template=%s frequency=%s bucket=%s",
            template.template_id, frequency, lot_bucket,
        )
        site_visit_reasons.append("no_price_configured")
        return QuoteResult(
            range_low=0.0,
            range_high=0.0,
            display="",
            lot_size_bucket=lot_bucket,
            frequency=frequency,
            services=list(services),
            assumptions=assumptions,
            requires_site_visit=True,
            site_visit_reasons=site_visit_reasons,
        )

    multiplier = max(
        (policy.service_multipliers.get(s, 1.0) for s in services),
        default=1.0,
    )
    low = float(round(price_range[0] * multiplier))
    high = float(round(price_range[1] * multiplier))

    exact_amount = None
    if policy.exact_pricing_enabled and lot_bucket in LOT_BUCKETS:
        amount = (low + high) / 2
        if has_fence is True:
            amount *= policy.fence_multiplier
            assumptions.append("fenced_yard")
        if slope == "sloped":
            amount *= policy.slope_multiplier
            assumptions.append("sloped_lot")
        exact_amount = round(amount, 2)

    label = FREQUENCY_LABELS.get(frequency, frequency.replace("_", " "))
    display = f"${int(low)}-${int(high)} per visit ({label})"

    return QuoteResult(
        range_low=low,
        range_high=high,
        exact_amount=exact_amount,
        display=display,
        lot_size_bucket=lot_bucket,
        frequency=frequency,
        services=list(services),
        assumptions=assumptions,
        requires_site_visit=bool(site_visit_reasons),
        site_visit_reasons=site_visit_reasons,
    )
