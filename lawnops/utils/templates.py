"""
SMS message rendering for service template messages.
Templates use {variable} substitution. Missing variables are left in place
rather than raising, so a half-filled session never crashes the engine.
"""
import logging

logger = logging.getLogger(__name__)


def render_template(text: str, **kwargs) -> str:
    """Render one template message with variable substitution."""
    try:
        return text.format_map(SafeDict(kwargs))
    except Exception as e:
        logger.debug("Template rendering failed for key substitution: %s", str(e))
        return text


class SafeDict(dict):
    """Dict that returns '{key}' for missing keys instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"
