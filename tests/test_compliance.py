"""
Tests for lawnops/services/compliance.py - opt-out keyword detection.
"""
import pytest

from lawnops.services.compliance import is_stop_keyword


class TestIsStopKeyword:
    @pytest.mark.parametrize("text", ["STOP", "stop.", " Unsubscribe ", "STOPPPP", "opt-out", "End"])
    def test_exact_keywords(self, text):
        assert is_stop_keyword(text) is True

    @pytest.mark.parametrize("text", [
        "please stop texting me",
        "Take me off your list",
        "leave me alone!",
        "don't text this number",
    ])
    def test_phrases(self, text):
        assert is_stop_keyword(text) is True

    def test_short_message_keyword(self):
        assert is_stop_keyword("ok stop now") is True

    @pytest.mark.parametrize("text", [
        "Please don't stop the service at my house",
        "can you remove the leaves",
        "the weekend works",
        "cancel my Tuesday slot and give me Wednesday",
    ])
    def test_not_opt_out(self, text):
        """Keywords inside a longer request are ordinary conversation."""
        assert is_stop_keyword(text) is False

    def test_empty(self):
        assert is_stop_keyword("") is False
        assert is_stop_keyword("   ") is False
