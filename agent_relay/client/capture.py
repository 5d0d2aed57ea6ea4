import re
from enum import Enum

from agent_relay.client.api import AgentApiClient, AgentApiError
from agent_relay.models.schemas import EMAIL_PATTERN

# Below this many tokens a message is too thin to search or capture.
MEANINGFUL_MIN_TOKENS = 2

_EMAIL_RE = re.compile(EMAIL_PATTERN)


class CaptureOutcome(str, Enum):
    ACCEPTED = "accepted"
    CONFLICT = "conflict"


def is_meaningful(text: str) -> bool:
    return len((text or "").split()) >= MEANINGFUL_MIN_TOKENS


def is_valid_email(email: str) -> bool:
    return _EMAIL_RE.match((email or "").strip()) is not None


async def capture_offline_question(api: AgentApiClient, room: str, email: str, question: str) -> CaptureOutcome:
    """Hand a question to the offline inbox.

    A 409 means a specialist came online after the visitor was offered the
    inbox; it is reported as CONFLICT. Any other failure raises.
    """
    if not is_valid_email(email):
        raise ValueError("invalid email")
    if not (question or "").strip():
        raise ValueError("empty question")
    try:
        await api.create_inbox(room, email.strip().lower(), question)
    except AgentApiError as e:
        if e.status_code == 409:
            return CaptureOutcome.CONFLICT
        raise
    return CaptureOutcome.ACCEPTED
