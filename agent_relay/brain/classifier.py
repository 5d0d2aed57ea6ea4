"""Rule-based intent detection for visitor messages.

Rules are an ordered table of ``(matcher, intent, confidence)`` entries and
the first matching rule wins, so order encodes priority. Confidences are
fixed per rule rather than computed from match strength.
"""
import re
from typing import Callable, Iterable, List, NamedTuple


class Intent(NamedTuple):
    intent: str
    confidence: float


class IntentRule(NamedTuple):
    matches: Callable[[str], bool]
    intent: str
    confidence: float


UNKNOWN = Intent("unknown", 0.2)

GREETING_WORDS = [
    "hi", "hello", "hey", "good morning", "morning", "good afternoon", "afternoon",
    "good evening", "evening", "muraho", "bonjour", "salut", "habari", "mambo",
    "hey there", "yo", "sup", "i was just sending my greetings", "just greetings",
]
SHORT_MESSAGE_WORDS = 5


def normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def has_any(text: str, phrases: Iterable[str]) -> bool:
    """Substring containment of any phrase"""
    t = normalize(text)
    return any(normalize(p) in t for p in phrases)


def has_word(text: str, phrase: str) -> bool:
    """Word-boundary, case-insensitive match of a phrase"""
    return re.search(rf"\b{re.escape(phrase)}\b", text or "", re.IGNORECASE) is not None


def has_any_word(text: str, phrases: Iterable[str]) -> bool:
    return any(has_word(text, p) for p in phrases)


def is_short_greeting(text: str) -> bool:
    is_short = len(text.split(" ")) <= SHORT_MESSAGE_WORDS and "?" not in text
    return is_short and has_any_word(text, GREETING_WORDS)


def contains(*phrases: str) -> Callable[[str], bool]:
    return lambda text: has_any(text, phrases)


RULES: List[IntentRule] = [
    IntentRule(is_short_greeting, "greeting", 0.98),
    IntentRule(contains("thanks", "thank you", "murakoze", "merci", "asante", "thx"), "thanks", 0.98),
    IntentRule(contains("bye", "goodbye", "see you", "cheers", "ciao"), "goodbye", 0.98),
    IntentRule(contains("how are you", "how’s it going", "how's it going", "how are u", "how r u"), "howareyou", 0.95),
    IntentRule(contains("ok", "okay", "alright", "cool", "great", "nice"), "ack", 0.9),
    IntentRule(contains("lol", "haha", "lmao", "\U0001F602", "\U0001F605", "\U0001F606"), "humor", 0.9),
    IntentRule(contains("what is khisima", "about khisima", "about your company", "who are you"), "about", 0.95),
    IntentRule(contains("service", "offer", "solutions", "what do you offer"), "services", 0.9),
    IntentRule(contains("language", "languages", "support languages", "which languages"), "languages", 0.9),
    IntentRule(contains("price", "pricing", "cost", "rate", "how much"), "pricing", 0.9),
    IntentRule(contains("turnaround", "how fast", "timeline", "delivery time", "deadline"), "turnaround", 0.9),
    IntentRule(contains("nda", "confidential", "confidentiality", "privacy", "security"), "nda", 0.9),
    IntentRule(contains("contact", "email", "phone", "reach you"), "contact", 0.95),
    IntentRule(contains("where are you", "location", "address", "based", "kigali"), "location", 0.95),
    IntentRule(
        contains("data", "dataset", "annotation", "collection", "llm", "nlp", "benchmark", "evaluation"),
        "data_services",
        0.9,
    ),
    IntentRule(contains("voice", "voice-over", "dubbing", "audio"), "voiceover", 0.9),
    IntentRule(contains("seo", "multilingual seo", "search engine"), "seo", 0.9),
    IntentRule(contains("career", "job", "hiring", "internship"), "careers", 0.9),
    IntentRule(contains("quote", "estimate", "get quote", "proposal", "rfp"), "quote", 0.95),
    IntentRule(contains("workplace", "country", "countries of operation"), "workplace", 0.85),
]


def classify(text: str) -> Intent:
    t = normalize(text)
    for rule in RULES:
        if rule.matches(t):
            return Intent(rule.intent, rule.confidence)
    return UNKNOWN
