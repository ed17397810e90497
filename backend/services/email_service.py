from postmarker.core import PostmarkClient
from pydantic import ValidationError
from database import database
from models import MessageLog, EmailKind, AuditAction
from services.order_email_templates import build_order_email
from utils.audit import create_audit_log
from datetime import datetime, timezone
import html as html_lib
import os
import re
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "Translator Axis <orders@translatoraxis.com>")

_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n\s*\n+")


def strip_html(html_body: str) -> str:
    """Plain-text fallback for an HTML body."""
    text = _STYLE_RE.sub("", html_body)
    text = _SCRIPT_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = html_lib.unescape(text).replace("\xa0", " ")
    text = "\n".join(line.strip() for line in text.splitlines())
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


class EmailService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
        kind: Optional[EmailKind] = None,
        order_id: Optional[str] = None,
    ) -> MessageLog:
        """
        Send one email, recording a message log and an audit entry.
        Never raises on provider errors; an invalid recipient raises ValueError before anything is sent.
        """
        db = database.get_db()

        try:
            message_log = MessageLog(
                order_id=order_id,
                recipient=recipient,
                kind=kind,
                subject=subject,
                status="queued",
            )
        except ValidationError:
            logger.error(f"Email not sent, invalid recipient address: {recipient!r}")
            raise ValueError(f"Invalid recipient email: {recipient}")

        try:
            if self.client:
                response = self.client.emails.send(
                    From=DEFAULT_SENDER,
                    To=recipient,
                    Subject=subject,
                    HtmlBody=html_body,
                    TextBody=text_body or strip_html(html_body),
                    TrackOpens=True,
                    Tag=kind.value if kind else "general",
                )
                message_log.postmark_message_id = response["MessageID"]
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"Email sent to {recipient}: {response['MessageID']}")
            else:
                # Dev mode - just log
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"[DEV MODE] Email logged (not sent) to {recipient}: {subject}")
        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            message_log.provider_error_type = type(e).__name__
            logger.error(f"Failed to send email to {recipient}: {e}")

        await db.message_logs.insert_one(message_log.model_dump())

        await create_audit_log(
            action=AuditAction.EMAIL_SENT if message_log.status == "sent" else AuditAction.EMAIL_FAILED,
            resource_type="order" if order_id else None,
            resource_id=order_id,
            metadata={
                "kind": kind.value if kind else None,
                "status": message_log.status,
                "postmark_id": message_log.postmark_message_id,
                "error": message_log.error_message,
            }
        )

        return message_log

    async def send_order_email(
        self,
        kind: EmailKind,
        order: Dict[str, Any],
        recipient: str,
        **template_kwargs,
    ) -> MessageLog:
        """Render an order lifecycle template and send it."""
        content = build_order_email(kind, order, **template_kwargs)
        return await self.send_email(
            recipient=recipient,
            subject=content["subject"],
            html_body=content["html"],
            text_body=content.get("text"),
            kind=kind,
            order_id=order.get("order_id"),
        )

email_service = EmailService()
