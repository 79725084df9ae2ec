"""
Service template schema - the question flow, pricing table and handoff policy
for one kind of intake conversation. Selected per session by service_template_id.
"""
from typing import Optional
from pydantic import BaseModel, Field


class FieldSpec(BaseModel):
    """One field the intake flow collects."""
    name: str
    prompt: str
    reprompt: str
    required: bool = True
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    options: dict[str, str] = Field(
        default_factory=dict, description="Numbered reply -> value, used only when this field was asked"
    )


class QuotePolicy(BaseModel):
    # frequency -> lot bucket -> [low, high] per visit
    range_per_visit_usd: dict[str, dict[str, list[float]]]
    service_multipliers: dict[str, float] = Field(default_factory=dict)
    exact_pricing_enabled: bool = True
    fence_multiplier: float = 1.10
    slope_multiplier: float = 1.15
    site_visit_services: list[str] = Field(default_factory=list)
    address_confidence_floor: float = 0.5


class HandoffPolicy(BaseModel):
    human_request_patterns: list[str] = Field(default_factory=list)
    negative_patterns: list[str] = Field(default_factory=list)
    offer_click_to_call: bool = True
    click_to_call_ttl_minutes: int = 10


class ObjectionPolicy(BaseModel):
    """Scripted answer to one kind of pushback on the quote."""
    patterns: list[str]
    response: str
    # Unresolved objections before a person takes over
    escalate_after: int = Field(default=2, ge=1)


class DispatchProfile(BaseModel):
    """How a booked conversation becomes a job request for the crew engine."""
    skills_by_service: dict[str, list[str]] = Field(default_factory=dict)
    equipment_by_service: dict[str, list[str]] = Field(default_factory=dict)
    # lot bucket -> [low, high] labor minutes
    labor_minutes_by_bucket: dict[str, list[int]] = Field(default_factory=dict)
    lot_sqft_by_bucket: dict[str, int] = Field(default_factory=dict)
    crew_size_min: int = 1


class TemplateMessages(BaseModel):
    greeting: str
    quote: str
    quote_reprompt: str
    slots: str
    slot_reprompt: str
    booked: str
    booked_ack: str
    handoff: str
    click_to_call: str


class ServiceTemplate(BaseModel):
    template_id: str
    name: str
    fields: list[FieldSpec]
    quote_policy: QuotePolicy
    handoff_policy: HandoffPolicy = Field(default_factory=HandoffPolicy)
    dispatch: DispatchProfile = Field(default_factory=DispatchProfile)
    objections: dict[str, ObjectionPolicy] = Field(default_factory=dict)
    messages: TemplateMessages
    slot_count: int = 3

    def field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    @property
    def required_fields(self) -> list[str]:
        return [f.name for f in self.fields if f.required]
