import pytest

from agent_relay.brain import classifier
from agent_relay.brain.classifier import UNKNOWN, classify, is_short_greeting
from agent_relay.brain.gate import LOCAL_CONFIDENCE_THRESHOLD, decide
from agent_relay.brain.responder import ANSWERS, DEFAULT_GREETING, GREETINGS, respond


class TestClassify:
    def test_good_morning_is_a_confident_greeting(self):
        intent = classify("good morning")
        assert intent.intent == "greeting"
        assert intent.confidence >= 0.9

    @pytest.mark.parametrize("text", ["hi", "Hello there", "  HEY  ", "muraho", "bonjour team"])
    def test_short_greetings(self, text):
        assert classify(text).intent == "greeting"

    def test_greeting_words_need_word_boundaries(self):
        # "yo" must not fire inside "you"
        assert not is_short_greeting("you")

    def test_question_is_not_a_short_greeting(self):
        assert not is_short_greeting("hi which languages?")
        assert classify("hi which languages?").intent == "languages"

    def test_long_message_is_not_a_short_greeting(self):
        assert not is_short_greeting("hi there I need help with my project")

    def test_first_matching_rule_wins(self):
        # "ok" (ack) sits above "languages" in the table
        assert classify("ok which languages").intent == "ack"

    @pytest.mark.parametrize("text", ["", "   ", "asdkjasjd", "zzz"])
    def test_unmatched_input_is_unknown(self, text):
        assert classify(text) == UNKNOWN

    def test_matching_is_case_and_whitespace_insensitive(self):
        assert classify("  WHAT   Is   KHISIMA  ").intent == "about"

    def test_every_rule_intent_has_an_answer(self):
        for rule in classifier.RULES:
            assert respond(rule.intent, "hello") is not None


class TestRespond:
    @pytest.mark.parametrize("part_of_day", ["morning", "afternoon", "evening"])
    def test_greeting_follows_time_of_day_in_text(self, part_of_day):
        assert respond("greeting", f"good {part_of_day}") == GREETINGS[part_of_day]

    def test_plain_greeting_gets_default(self):
        assert respond("greeting", "hello") == DEFAULT_GREETING

    def test_unknown_intent_has_no_answer(self):
        assert respond("unknown") is None
        assert respond("does-not-exist") is None


class TestDecide:
    def test_gibberish_is_not_answered_locally(self):
        decision = decide("asdkjasjd")
        assert decision.ok is False
        assert decision.answer is None
        assert decision.intent == "unknown"

    def test_languages_question_gets_canned_answer(self):
        decision = decide("what languages do you support")
        assert decision.ok is True
        assert decision.intent == "languages"
        assert decision.answer == ANSWERS["languages"]

    def test_threshold_is_inclusive(self, monkeypatch):
        monkeypatch.setattr(
            "agent_relay.brain.gate.classify",
            lambda text: classifier.Intent("thanks", LOCAL_CONFIDENCE_THRESHOLD),
        )
        assert decide("thanks").ok is True

    def test_low_confidence_is_rejected_even_with_an_answer(self, monkeypatch):
        monkeypatch.setattr(
            "agent_relay.brain.gate.classify",
            lambda text: classifier.Intent("thanks", 0.5),
        )
        decision = decide("thanks")
        assert decision.ok is False
        assert decision.intent == "thanks"

    def test_empty_input(self):
        assert decide("").ok is False
