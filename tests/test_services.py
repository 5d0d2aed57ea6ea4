from agent_relay.models.schemas import InboxCreate, InboxStatus, KnowledgeCreate, MessageOut, MessageRole
from agent_relay.services.inbox_service import InboxService
from agent_relay.services.knowledge_service import KnowledgeService, tokenize
from agent_relay.services.presence_service import PresenceService
from agent_relay.services.room_service import RoomService
from agent_relay.services.transcript_service import TranscriptMailer, render_transcript
from agent_relay.utils.logging import mask_email


def test_mask_email():
    assert mask_email("visitor@example.com") == "v*****r@example.com"
    assert mask_email("ab@example.com") == "**@example.com"
    assert mask_email("") == ""


def test_presence_flag(fake_redis):
    presence = PresenceService(fake_redis, key="test:presence")
    assert presence.is_online() is False
    presence.set_online(True)
    assert presence.is_online() is True
    assert fake_redis.get("test:presence") == "1"
    presence.set_online(False)
    assert presence.is_online() is False


def test_room_history_and_unread(db_session):
    service = RoomService(db_session)
    service.append_message("room-1", MessageRole.USER, "one")
    service.append_message("room-1", MessageRole.AGENT, "two")
    service.append_message("room-1", MessageRole.USER, "three")

    assert [m.text for m in service.get_messages("room-1")] == ["one", "two", "three"]
    assert service.get_room("room-1").unread == 2

    service.mark_read("room-1")
    assert service.get_room("room-1").unread == 0


def test_end_and_delete_room(db_session):
    service = RoomService(db_session)
    assert service.end_room("missing") is None
    assert service.delete_room("missing") is False

    service.append_message("room-1", MessageRole.USER, "one")
    assert service.end_room("room-1").ended_at is not None
    assert service.delete_room("room-1") is True
    assert service.get_room("room-1") is None
    assert service.get_messages("room-1") == []


def test_inbox_entry_lowercases_and_tags_room(db_session):
    entry = InboxService(db_session).create_entry(
        InboxCreate(room="room-1", email="Ann@Example.com", question="  Pricing for audio?  ")
    )
    assert entry.email == "ann@example.com"
    assert entry.question == "Pricing for audio?"
    assert entry.status == InboxStatus.QUEUED.value
    assert RoomService(db_session).get_room("room-1").email == "ann@example.com"


def test_tokenize_drops_short_words_and_stopwords():
    assert tokenize("How much for the Kinyarwanda subtitles?") == {"much", "kinyarwanda", "subtitles"}


def test_knowledge_search_threshold(db_session):
    service = KnowledgeService(db_session, min_score=0.5)
    service.create_entry(KnowledgeCreate(
        question="Do you do subtitles?",
        keywords=["subtitles", "captions"],
        answer="Yes, we subtitle video in 20+ African languages.",
    ))

    match = service.search("captions for video")  # one of two terms
    assert match is not None
    assert match.score == 0.5
    assert service.search("pricing for audio dubbing") is None
    assert service.search("a an to") is None


def test_render_transcript_escapes_text():
    messages = [
        MessageOut(role="user", text="<script>x</script>", ts="2024-01-01T00:00:00Z"),
        MessageOut(role="admin", text="hello", ts="2024-01-01T00:01:00Z"),
    ]
    html = render_transcript("room-1", messages, "ann@example.com")
    assert "&lt;script&gt;" in html
    assert "<strong>Admin</strong>" in html
    assert "ann@example.com" in html


def test_render_transcript_without_email_and_with_markup_in_room():
    messages = [MessageOut(role="agent", text="Tom & Jerry", ts="2024-01-01T00:00:00Z")]
    html = render_transcript("<room>", messages)
    assert "Visitor email" not in html
    assert "Room: &lt;room&gt;" in html
    assert "<strong>Agent</strong>" in html
    assert "Tom &amp; Jerry" in html
    assert html.count("<tr>") == 1


def test_unconfigured_mailer_reports_failure():
    result = TranscriptMailer().send("ops@example.com", "subject", "<p>x</p>")
    assert result.success is False
    assert result.error_code == "SERVICE_NOT_CONFIGURED"
