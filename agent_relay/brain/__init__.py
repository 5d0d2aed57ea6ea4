from agent_relay.brain.classifier import Intent, classify
from agent_relay.brain.responder import respond
from agent_relay.brain.gate import Decision, LOCAL_CONFIDENCE_THRESHOLD, decide

__all__ = [
    "Intent",
    "classify",
    "respond",
    "Decision",
    "LOCAL_CONFIDENCE_THRESHOLD",
    "decide",
]
