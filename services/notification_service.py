"""
Notification email for a logged submission.
"""
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from services.errors import NotificationError
from services.sheet_log_service import capitalize_first
from utils.email import render_email, send_email

logger = logging.getLogger("backend.email")

TEMPLATE_NAME = "submission_notification.html"

MailTransport = Callable[..., Any]


def _display(value: Any) -> str:
    return "" if value is None else str(value)


def render_text_body(data: Dict[str, Any]) -> str:
    blocks = [f"{capitalize_first(field)}:\n{_display(value)}" for field, value in data.items()]
    return "\n\n".join(blocks)


def render_html_body(heading: str, data: Dict[str, Any]) -> str:
    return render_email(TEMPLATE_NAME, {"heading": heading, "data": data})


class NotificationDispatcher:
    def __init__(self, transport: Optional[MailTransport] = None, email_format: str = "html"):
        self.transport = transport or send_email
        self.email_format = email_format

    def dispatch(
        self,
        recipient: str,
        subject: str,
        heading: str,
        fields: Sequence[str],
        payload: Dict[str, Any],
        reply_to: Optional[str] = None,
    ) -> bool:
        """Send the summary email; returns False without sending when no recipient is set."""
        if not recipient:
            return False
        data = {f: payload.get(f) for f in fields}
        if reply_to is None and payload.get("email"):
            reply_to = str(payload.get("email"))
        html = self.email_format == "html"
        try:
            body = render_html_body(heading, data) if html else render_text_body(data)
            self.transport(recipient, subject, body, html=html, reply_to=reply_to)
        except Exception as e:
            raise NotificationError(f"Failed to send notification email: {e}")
        logger.info("Notification sent to=%s reply_to=%s", recipient, reply_to or "-")
        return True
