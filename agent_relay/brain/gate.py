from typing import NamedTuple, Optional

from agent_relay.brain.classifier import classify
from agent_relay.brain.responder import respond

# Rule confidences are either >= 0.85 or 0.2, so this acts as a hard cut.
LOCAL_CONFIDENCE_THRESHOLD = 0.75


class Decision(NamedTuple):
    ok: bool
    answer: Optional[str]
    intent: str


def decide(text: str) -> Decision:
    """Answer locally when a canned answer exists and the rule is confident enough"""
    intent, confidence = classify(text)
    answer = respond(intent, text)
    if answer and confidence >= LOCAL_CONFIDENCE_THRESHOLD:
        return Decision(True, answer, intent)
    return Decision(False, None, intent)
