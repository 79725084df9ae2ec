"""
Service templates - question flows for SMS intake.
CRITICAL: Every outbound text stays under 3 SMS segments.
Templates use {variable} substitution (see lawnops.utils.templates.render_template).
"""
import logging

from lawnops.errors import NotFoundError
from lawnops.schemas.service_template import (
    DispatchProfile,
    FieldSpec,
    HandoffPolicy,
    ObjectionPolicy,
    QuotePolicy,
    ServiceTemplate,
    TemplateMessages,
)

logger = logging.getLogger(__name__)

LAWNCARE_V1 = ServiceTemplate(
    template_id="lawncare_v1",
    name="Residential lawn care",
    fields=[
        FieldSpec(
            name="intent",
            prompt="Are you looking for regular service or a one-time visit? Reply 1 for regular, 2 for one-time.",
            reprompt="Sorry, I didn't catch that. Reply 1 for regular service or 2 for a one-time visit.",
            options={"1": "recurring", "2": "one_time"},
        ),
        FieldSpec(
            name="service",
            prompt=(
                "What can we help with? Reply 1 Mowing, 2 Leaf cleanup, 3 Aeration, "
                "4 Fertilization, 5 Shrub trimming, 6 Mulching, 7 Irrigation."
            ),
            reprompt="Which service do you need? Reply with a number 1-7 or a word like mowing or cleanup.",
            options={
                "1": "mowing",
                "2": "leaf_cleanup",
                "3": "aeration",
                "4": "fertilization",
                "5": "shrub_trimming",
                "6": "mulching",
                "7": "irrigation",
            },
        ),
        FieldSpec(
            name="frequency",
            prompt="How often would you like service? Reply 1 Weekly, 2 Every other week, 3 Monthly, 4 Just once.",
            reprompt="How often should we come by? Reply 1 Weekly, 2 Every other week, 3 Monthly, or 4 Just once.",
            confidence_threshold=0.75,
            options={"1": "weekly", "2": "biweekly", "3": "monthly", "4": "one_time"},
        ),
        FieldSpec(
            name="address",
            prompt="What's the service address? (street number and name, e.g. 123 Oak St)",
            reprompt="I need the street address to price this out, like 123 Oak St. What's the address?",
        ),
        FieldSpec(
            name="property_size",
            prompt="About how big is the yard? Reply 1 Small, 2 Medium, 3 Large, 4 Not sure.",
            reprompt="Roughly how big is the lawn? Reply 1 Small (under 1/4 acre), 2 Medium, 3 Large, or 4 Not sure.",
            options={"1": "small", "2": "medium", "3": "large", "4": "unknown"},
        ),
        FieldSpec(
            name="has_fence",
            prompt="Is the yard fenced? Reply YES or NO.",
            reprompt="Is there a fence or gate we need to get through? Reply YES or NO.",
            required=False,
        ),
        FieldSpec(
            name="slope",
            prompt="Is the lawn mostly flat or sloped?",
            reprompt="Is the lawn flat or on a hill?",
            required=False,
        ),
    ],
    quote_policy=QuotePolicy(
        range_per_visit_usd={
            "weekly": {"small": [35, 45], "medium": [45, 60], "large": [60, 85], "unknown": [40, 80]},
            "biweekly": {"small": [40, 50], "medium": [50, 70], "large": [70, 95], "unknown": [45, 90]},
            "monthly": {"small": [50, 65], "medium": [65, 85], "large": [85, 120], "unknown": [55, 110]},
            "one_time": {"small": [55, 75], "medium": [75, 100], "large": [100, 150], "unknown": [65, 140]},
        },
        service_multipliers={
            "mowing": 1.0,
            "leaf_cleanup": 1.6,
            "aeration": 1.8,
            "fertilization": 1.2,
            "shrub_trimming": 1.5,
            "mulching": 2.0,
        },
        site_visit_services=["irrigation"],
    ),
    handoff_policy=HandoffPolicy(
        human_request_patterns=[
            r"\b(talk|speak|chat)\s+(to|with)\s+(a\s+|an\s+|someone|somebody|a real|the)?\s*(human|person|someone|somebody|rep|representative|agent|manager|owner)\b",
            r"\b(real|live)\s+(person|human)\b",
            r"\bcall\s+me\b",
            r"^\s*(agent|human|operator|representative)\s*[.!?]*\s*$",
        ],
        negative_patterns=[
            r"\b(terrible|awful|horrible|worst|ridiculous|scam|rip[- ]?off)\b",
            r"\b(angry|furious|pissed)\b",
            r"\bwaste of (my )?time\b",
        ],
        offer_click_to_call=True,
        click_to_call_ttl_minutes=10,
    ),
    dispatch=DispatchProfile(
        skills_by_service={
            "mowing": ["mowing"],
            "leaf_cleanup": ["cleanup"],
            "aeration": ["aeration"],
            "fertilization": ["fertilization"],
            "shrub_trimming": ["shrub_trim"],
            "mulching": ["mulch"],
            "irrigation": ["irrigation_install"],
        },
        equipment_by_service={
            "mowing": ["mower_ztr", "trimmer", "blower"],
            "leaf_cleanup": ["blower", "trailer"],
            "aeration": ["aerator", "trailer"],
            "fertilization": ["spreader", "sprayer"],
            "shrub_trimming": ["hedge_trimmer"],
            "mulching": ["trailer"],
        },
        labor_minutes_by_bucket={
            "small": [30, 45],
            "medium": [45, 70],
            "large": [70, 120],
            "unknown": [40, 120],
        },
        lot_sqft_by_bucket={"small": 7000, "medium": 15000, "large": 30000},
        crew_size_min=1,
    ),
    objections={
        "price": ObjectionPolicy(
            patterns=[
                r"\b(too\s+(expensive|much|high|pricey)|expensive|pricey|cheaper|lower\s+price|discount)\b",
                r"\b(out\s+of\s+(my|our)\s+budget|over\s+(my|our)\s+budget|can'?t\s+afford)\b",
            ],
            response=(
                "Totally understand. That price ({display}) includes edging, trimming and blowing off "
                "walks, with no contract. Reply YES to see open times, or AGENT to go over options with our team."
            ),
        ),
        "timing": ObjectionPolicy(
            patterns=[
                r"\b(not\s+(right\s+)?now|not\s+yet|not\s+ready|next\s+(week|month|season|spring|year))\b",
                r"\b(maybe\s+later|too\s+busy|after\s+the\s+holidays|hold\s+off)\b",
            ],
            response=(
                "No problem, there's no rush. Reply YES whenever you're ready and we'll offer "
                "our next open times, or AGENT to pick a later date with our team."
            ),
        ),
    },
    messages=TemplateMessages(
        greeting="Thanks for texting {business_name}!",
        quote=(
            "For {service_label} at {address}, we estimate {display}. "
            "Reply YES to see available times or NO if that doesn't work."
        ),
        quote_reprompt="Would you like to book at {display}? Reply YES or NO.",
        slots="Here are our next openings:\n{slot_lines}\nReply 1, 2 or 3 to pick one.",
        slot_reprompt="Please reply with the number of the time that works (1-{slot_count}).",
        booked=(
            "You're booked for {slot_label} at {address}. "
            "{business_name} will text you a reminder the day before."
        ),
        booked_ack="You're all set for {slot_label}. Reply HELP to reach our team.",
        handoff="Thanks! A member of the {business_name} team will reach out shortly.",
        click_to_call="Prefer to talk now? Tap to call us: {url}",
    ),
)

_TEMPLATES = {
    LAWNCARE_V1.template_id: LAWNCARE_V1,
}


def get_service_template(template_id: str) -> ServiceTemplate:
    """Look up a service template by id."""
    template = _TEMPLATES.get(template_id)
    if template is None:
        logger.error("Unknown service template: %s", template_id)
        raise NotFoundError(f"Unknown service template '{template_id}'", code="unknown_template")
    return template

