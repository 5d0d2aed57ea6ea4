from typing import List
import structlog
from jinja2 import Environment, DictLoader
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from agent_relay.config import get_settings
from agent_relay.models.schemas import DeliveryResult, MessageOut
from agent_relay.utils.logging import mask_email

logger = structlog.get_logger()
settings = get_settings()

SENDER_LABELS = {"admin": "Admin", "user": "User", "agent": "Agent", "system": "System"}

TRANSCRIPT_TEMPLATE = """\
<h2>Live Chat Transcript</h2>
<p>Room: {{ room_id }}</p>
{% if email %}
<p>Visitor email: {{ email }}</p>
{% endif %}
<table>
{% for message in messages %}
<tr><td><strong>{{ labels.get(message.role, "System") }}</strong></td><td>{{ message.text }}</td><td>{{ message.ts }}</td></tr>
{% endfor %}
</table>
"""

jinja_env = Environment(
    loader=DictLoader({"transcript.html": TRANSCRIPT_TEMPLATE}),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True
)


def default_subject(room_id: str) -> str:
    return f"Chat transcript — Room {room_id}"


def render_transcript(room_id: str, messages: List[MessageOut], email: str = None) -> str:
    """Render a room history as a simple HTML document"""
    template = jinja_env.get_template("transcript.html")
    return template.render(room_id=room_id, messages=messages, email=email, labels=SENDER_LABELS)


class TranscriptMailer:
    """Forwards room transcripts by email through SendGrid"""

    def __init__(self, sendgrid_client: SendGridAPIClient = None):
        self.sendgrid_client = sendgrid_client
        if self.sendgrid_client is None and settings.sendgrid_api_key:
            self.sendgrid_client = SendGridAPIClient(api_key=settings.sendgrid_api_key)

    def send(self, to: str, subject: str, html_content: str) -> DeliveryResult:
        if not self.sendgrid_client:
            return DeliveryResult(
                success=False,
                message="SendGrid not configured",
                error_code="SERVICE_NOT_CONFIGURED"
            )

        try:
            message = Mail(
                from_email=settings.sendgrid_from_email,
                to_emails=to,
                subject=subject,
                html_content=html_content
            )

            response = self.sendgrid_client.send(message)

            if response.status_code in [200, 202]:
                logger.info("Transcript forwarded", recipient=mask_email(to))
                return DeliveryResult(
                    success=True,
                    message="Transcript forwarded",
                    external_id=response.headers.get("X-Message-Id")
                )
            return DeliveryResult(
                success=False,
                message=f"SendGrid API error: {response.status_code}",
                error_code="SENDGRID_ERROR"
            )

        except Exception as e:
            logger.error("Transcript delivery failed", recipient=mask_email(to), error=str(e))
            return DeliveryResult(
                success=False,
                message=f"Email delivery failed: {str(e)}",
                error_code="EMAIL_ERROR"
            )
