"""
SMS opt-out detection.
Carrier opt-out keywords must never be answered by the intake flow: the
carrier sends its own confirmation and further texts are a TCPA violation.
"""
import re

# Exact STOP keywords - recognized case-insensitively after normalization
STOP_KEYWORDS = {"stop", "stopall", "unsubscribe", "cancel", "end", "quit", "opt-out", "optout", "remove"}

# Keywords that still mean opt-out when they appear inside a short message
SHORT_MESSAGE_KEYWORDS = {"stop", "stopall", "unsubscribe", "quit"}

# Phrase patterns that indicate opt-out intent (substring matching)
STOP_PHRASES = [
    "stop texting",
    "stop messaging",
    "stop contacting",
    "stop sending",
    "please stop",
    "dont text",
    "don't text",
    "do not text",
    "do not contact",
    "take me off",
    "remove me",
    "leave me alone",
    "opt out",
    "opt me out",
    "unsubscribe me",
    "no more texts",
    "no more messages",
]


def is_stop_keyword(message: str) -> bool:
    """
    Check if a message indicates opt-out intent.

    Detection layers:
    1. Exact keyword match (after normalization: strip, lowercase, remove punctuation)
    2. Repeated character detection (e.g., "STOPPPP" -> "stop")
    3. Substring phrase matching (e.g., "stop texting me", "leave me alone")
    4. Standalone keyword in a short message (4 words or fewer)
    """
    if not message or not message.strip():
        return False

    normalized = message.strip().lower()
    cleaned = re.sub(r"[^\w\s-]", "", normalized).strip()

    if cleaned in STOP_KEYWORDS:
        return True

    collapsed = re.sub(r"(.)\1{2,}", r"\1", cleaned)
    if collapsed in STOP_KEYWORDS:
        return True

    for phrase in STOP_PHRASES:
        if phrase in normalized:
            return True

    # "Please don't stop the service" is not an opt-out, nor is "remove the leaves"
    words = cleaned.split()
    if len(words) <= 4 and set(words) & SHORT_MESSAGE_KEYWORDS:
        return True

    return False
