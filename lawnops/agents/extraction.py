"""
Field extraction for SMS intake.
The intake engine never parses free text itself: it asks a FieldExtractor
for (value, confidence) per field and applies the template's thresholds.

HeuristicExtractor is the default. Keyword and regex rules only, no model
calls, so the whole intake flow stays deterministic and replayable.
"""
import logging
import re
from abc import ABC, abstractmethod
from fractions import Fraction
from typing import Any, Optional

from pydantic import BaseModel, Field

from lawnops.schemas.service_template import ObjectionPolicy

logger = logging.getLogger(__name__)


class Extraction(BaseModel):
    value: Any = None
    confidence: float = 0.0

    @property
    def found(self) -> bool:
        return self.value is not None


class ExtractionContext(BaseModel):
    expected_field: Optional[str] = None
    collected: dict[str, Any] = Field(default_factory=dict)
    template_id: Optional[str] = None
    # Numbered replies for the expected field ("1" -> "mowing")
    options: dict[str, str] = Field(default_factory=dict)


NOT_FOUND = Extraction()


class FieldExtractor(ABC):
    """Strategy interface: pull one field out of one inbound text."""

    @abstractmethod
    def extract(self, field: str, text: str, context: ExtractionContext) -> Extraction:
        ...


# === KEYWORD TABLES ===

RECURRING_PATTERN = re.compile(
    r"\b(weekly|bi-?weekly|monthly|every\s+(other\s+)?(week|month)|once\s+a\s+(week|month)|"
    r"each\s+week|recurring|regular(ly)?|ongoing|on\s+a\s+schedule)\b",
    re.IGNORECASE,
)
ONE_TIME_PATTERN = re.compile(
    r"\b(one[-\s]?time|one[-\s]?off|just\s+once|once|single\s+visit)\b",
    re.IGNORECASE,
)

# Order only matters for documentation: the earliest match in the text wins
SERVICE_PATTERNS = {
    "mowing": re.compile(r"\b(mow\w*|lawn\s*cut\w*|grass\s*cut\w*|cut\s+(my|the)\s+(grass|lawn|yard))\b", re.I),
    "leaf_cleanup": re.compile(r"\b(lea(f|ves)|clean[-\s]?up|yard\s+cleanup)\b", re.I),
    "aeration": re.compile(r"\b(aerat\w*)\b", re.I),
    "fertilization": re.compile(r"\b(fertiliz\w*|weed\s+control)\b", re.I),
    "shrub_trimming": re.compile(r"\b(shrubs?|hedges?|bush(es)?|trim(ming)?)\b", re.I),
    "mulching": re.compile(r"\b(mulch\w*)\b", re.I),
    "irrigation": re.compile(r"\b(irrigation|sprinklers?)\b", re.I),
}

# Checked in order: "every other week" must win over "week"
FREQUENCY_PATTERNS = [
    ("biweekly", re.compile(r"\b(bi-?weekly|every\s+(other|2|two)\s+weeks?|twice\s+a\s+month)\b", re.I)),
    ("weekly", re.compile(r"\b(weekly|every\s+week|once\s+a\s+week|each\s+week)\b", re.I)),
    ("monthly", re.compile(r"\b(monthly|every\s+month|once\s+a\s+month)\b", re.I)),
    ("one_time", re.compile(r"\b(one[-\s]?time|one[-\s]?off|just\s+once|once|single\s+visit)\b", re.I)),
]

ADDRESS_PATTERN = re.compile(
    r"\b(\d{1,6}\s+(?:[\w.'-]*[A-Za-z][\w.'-]*\s+){0,4}?"
    r"(?:st|street|ave|avenue|rd|road|dr|drive|ln|lane|ct|court|blvd|boulevard|way|pl|place|"
    r"cir|circle|ter|terrace|pkwy|parkway|hwy|highway|trl|trail|loop))\b\.?",
    re.IGNORECASE,
)
LOOSE_ADDRESS_PATTERN = re.compile(r"^\d{1,6}\s+\S")

SQFT_PATTERN = re.compile(r"(\d[\d,]*)\s*(?:sq\.?\s*ft|square\s*feet|square\s*foot|sqft|sf)\b", re.I)
ACRE_PATTERN = re.compile(
    r"\b(quarter|half|\d+/\d+|\d*\.\d+|\d+|an?|one)(?:\s+an?)?[\s-]*acres?\b",
    re.IGNORECASE,
)
ACRE_WORDS = {"quarter": 0.25, "half": 0.5, "a": 1.0, "an": 1.0, "one": 1.0}
SQFT_PER_ACRE = 43560

SIZE_WORD_PATTERNS = [
    ("small", re.compile(r"\b(small|tiny|little)\b", re.I)),
    ("medium", re.compile(r"\b(medium|average|normal|mid[-\s]?size[d]?)\b", re.I)),
    ("large", re.compile(r"\b(large|big|huge)\b", re.I)),
]
UNSURE_PATTERN = re.compile(r"\b(not\s+sure|unsure|no\s+idea|don'?t\s+know|dunno|idk)\b", re.I)

NO_FENCE_PATTERN = re.compile(r"\b(no\s+fence|not\s+fenced|unfenced|open\s+yard)\b", re.I)
FENCE_PATTERN = re.compile(r"\b(fenced|fence|gated?)\b", re.I)
SLOPED_PATTERN = re.compile(r"\b(slope[ds]?|sloping|hill\w*|steep|incline)\b", re.I)
FLAT_PATTERN = re.compile(r"\b(flat|level)\b", re.I)

YES_WORDS = {"yes", "y", "yeah", "yep", "yup", "sure", "ok", "okay", "confirm", "1", "absolutely", "definitely"}
NO_WORDS = {"no", "n", "nah", "nope", "2"}
YES_PHRASES = ("sounds good", "lets do it", "let's do it", "go ahead", "book it", "works for me")
NO_PHRASES = ("no thanks", "no thank you", "too expensive", "not interested", "too much")

CHOICE_WORDS = {"one": 1, "first": 1, "two": 2, "second": 2, "three": 3, "third": 3, "four": 4, "fourth": 4}


def parse_yes_no(text: str) -> Optional[bool]:
    """Read a YES/NO reply. None when the reply is neither."""
    normalized = (text or "").strip().lower()
    cleaned = re.sub(r"[^\w\s']", "", normalized).strip()
    if not cleaned:
        return None
    for phrase in NO_PHRASES:
        if phrase in cleaned:
            return False
    for phrase in YES_PHRASES:
        if phrase in cleaned:
            return True
    if cleaned in YES_WORDS:
        return True
    if cleaned in NO_WORDS:
        return False
    first = cleaned.split()[0]
    if first in YES_WORDS:
        return True
    if first in NO_WORDS:
        return False
    return None


def classify_objection(text: str, objections: dict[str, ObjectionPolicy]) -> Optional[str]:
    """Name of the first objection whose patterns match the reply, in template order."""
    for kind, policy in objections.items():
        if any(re.search(p, text or "", re.IGNORECASE) for p in policy.patterns):
            return kind
    return None


def parse_choice(text: str, count: int) -> Optional[int]:
    """Read a numbered choice (1-based in the text). Returns a 0-based index or None."""
    normalized = (text or "").strip().lower()
    match = re.search(r"\b(\d{1,2})\b", normalized)
    number = int(match.group(1)) if match else None
    if number is None:
        for word in re.findall(r"[a-z]+", normalized):
            if word in CHOICE_WORDS:
                number = CHOICE_WORDS[word]
                break
    if number is None or not 1 <= number <= count:
        return None
    return number - 1


def acres_to_bucket(acres: float) -> str:
    if acres < 0.25:
        return "small"
    if acres < 0.5:
        return "medium"
    return "large"


class HeuristicExtractor(FieldExtractor):
    """Keyword and regex extraction with fixed confidences."""

    def extract(self, field: str, text: str, context: ExtractionContext) -> Extraction:
        if not text or not text.strip():
            return NOT_FOUND

        focused = context.expected_field == field
        if focused and context.options:
            option = self._match_option(text, context.options)
            if option is not None:
                return Extraction(value=option, confidence=0.95)

        handler = getattr(self, f"_extract_{field}", None)
        if handler is None:
            logger.debug("No heuristic for field %s", field)
            return NOT_FOUND
        return handler(text, focused)

    @staticmethod
    def _match_option(text: str, options: dict[str, str]) -> Optional[str]:
        cleaned = re.sub(r"[^\w]", "", text.strip().lower())
        return options.get(cleaned)

    def _extract_intent(self, text: str, focused: bool) -> Extraction:
        if RECURRING_PATTERN.search(text):
            return Extraction(value="recurring", confidence=0.9)
        if ONE_TIME_PATTERN.search(text):
            return Extraction(value="one_time", confidence=0.85)
        return NOT_FOUND

    def _extract_service(self, text: str, focused: bool) -> Extraction:
        best = None
        for service, pattern in SERVICE_PATTERNS.items():
            match = pattern.search(text)
            if match and (best is None or match.start() < best[0]):
                best = (match.start(), service)
        if best is None:
            return NOT_FOUND
        return Extraction(value=best[1], confidence=0.9)

    def _extract_frequency(self, text: str, focused: bool) -> Extraction:
        for frequency, pattern in FREQUENCY_PATTERNS:
            if pattern.search(text):
                return Extraction(value=frequency, confidence=0.95)
        return NOT_FOUND

    def _extract_address(self, text: str, focused: bool) -> Extraction:
        match = ADDRESS_PATTERN.search(text)
        if match:
            return Extraction(value=match.group(1).strip().rstrip("."), confidence=0.9)
        if focused:
            candidate = text.strip().rstrip(".")
            if (
                LOOSE_ADDRESS_PATTERN.match(candidate)
                and re.search(r"[A-Za-z]", candidate)
                and len(candidate) >= 5
            ):
                return Extraction(value=candidate, confidence=0.75)
        return NOT_FOUND

    def _extract_property_size(self, text: str, focused: bool) -> Extraction:
        sqft = SQFT_PATTERN.search(text)
        if sqft:
            square_feet = int(sqft.group(1).replace(",", ""))
            return Extraction(value=acres_to_bucket(square_feet / SQFT_PER_ACRE), confidence=0.9)

        acre = ACRE_PATTERN.search(text)
        if acre:
            acres = _parse_acres(acre.group(1))
            if acres is not None:
                return Extraction(value=acres_to_bucket(acres), confidence=0.9)

        for bucket, pattern in SIZE_WORD_PATTERNS:
            if pattern.search(text):
                return Extraction(value=bucket, confidence=0.85)

        if focused and UNSURE_PATTERN.search(text):
            return Extraction(value="unknown", confidence=0.8)
        return NOT_FOUND

    def _extract_has_fence(self, text: str, focused: bool) -> Extraction:
        if NO_FENCE_PATTERN.search(text):
            return Extraction(value=False, confidence=0.85)
        if FENCE_PATTERN.search(text):
            return Extraction(value=True, confidence=0.85)
        if focused:
            answer = parse_yes_no(text)
            if answer is not None:
                return Extraction(value=answer, confidence=0.9)
        return NOT_FOUND

    def _extract_slope(self, text: str, focused: bool) -> Extraction:
        if SLOPED_PATTERN.search(text):
            return Extraction(value="sloped", confidence=0.85)
        if FLAT_PATTERN.search(text):
            return Extraction(value="flat", confidence=0.85)
        return NOT_FOUND


def _parse_acres(token: str) -> Optional[float]:
    token = token.lower()
    if token in ACRE_WORDS:
        return ACRE_WORDS[token]
    try:
        if "/" in token:
            return float(Fraction(token))
        return float(token)
    except (ValueError, ZeroDivisionError):
        return None
