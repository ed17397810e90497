"""
Order Email Templates - branded HTML + plaintext emails for the translation order lifecycle.
Includes: Order Created (payment required), Payment Reminder 1-3, Final Notice, Payment Confirmed, Quote Ready
"""
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import html
import os

from models import EmailKind
from services.languages import get_language_name
from utils.public_app_url import get_public_app_url

# Branding constants
COMPANY_NAME = "Translator Axis"
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "sales@translatoraxis.com")

URGENCY_COLORS = {
    "normal": "#3b82f6",  # blue
    "medium": "#f59e0b",  # amber
    "high": "#ef4444",    # red
}

REMINDER_MESSAGES = {
    1: "We noticed your order is still awaiting payment.",
    2: "This is a friendly reminder that your translation order is still pending payment.",
    3: "This is your final reminder - your order is still awaiting payment.",
}

REMINDER_URGENCY = {1: "normal", 2: "medium", 3: "high"}


def payment_url(order_id: str) -> str:
    return f"{get_public_app_url()}/user/orders/{order_id}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _format_amount(amount: Any) -> str:
    return f"${float(amount or 0):.2f}"


def _format_date(value: Optional[datetime]) -> str:
    if not value:
        return "To be confirmed"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime("%B %d, %Y")


def _source_language_label(order: Dict[str, Any]) -> str:
    source = order.get("source_language", "auto")
    detected = order.get("detected_source_language")
    if source == "auto" and detected:
        return f"{get_language_name(detected)} (auto-detected)"
    return get_language_name(source)


def _order_summary(order: Dict[str, Any], amount_label: str = "Amount Due") -> Dict[str, str]:
    files = order.get("files") or []
    documents = f"{_plural(len(files), 'file')} ({_plural(order.get('total_pages', 0), 'page')})"
    return {
        "order_number": order["order_number"],
        "documents": documents,
        "amount_label": amount_label,
        "amount": _format_amount(order.get("amount")),
    }


def _build_simple_html(
    title: str,
    heading: str,
    message_html: str,
    cta_text: str,
    cta_url: str,
    urgency: str = "normal",
) -> str:
    color = URGENCY_COLORS[urgency]
    return f"""
    <html>
    <head><meta charset="UTF-8"><title>{title}</title></head>
    <body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f3f4f6;">
        <div style="max-width: 600px; margin: 40px auto; background-color: #ffffff; border-radius: 8px;">
            <div style="padding: 40px 40px 20px; text-align: center; background-color: {color}; border-radius: 8px 8px 0 0;">
                <h1 style="margin: 0; color: #ffffff; font-size: 28px;">{COMPANY_NAME}</h1>
            </div>
            <div style="padding: 30px 40px; color: #374151; line-height: 1.6;">
                <h2 style="margin: 0 0 20px; color: #111827;">{heading}</h2>
                {message_html}
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{cta_url}" style="background-color: {color}; color: #ffffff; padding: 14px 32px;
                       text-decoration: none; border-radius: 6px; display: inline-block; font-weight: bold;">{cta_text}</a>
                </div>
            </div>
            <div style="padding: 20px 40px; background-color: #f9fafb; border-radius: 0 0 8px 8px; font-size: 12px; color: #6b7280;">
                Questions? Contact us at <a href="mailto:{SUPPORT_EMAIL}">{SUPPORT_EMAIL}</a>
            </div>
        </div>
    </body>
    </html>
    """.strip()


def _summary_html(summary: Dict[str, str], tone: str = "#f9fafb") -> str:
    return f"""
        <div style="background-color: {tone}; padding: 20px; border-radius: 6px; margin: 20px 0;">
            <p style="margin: 0 0 10px;"><strong>Order Number:</strong> {summary['order_number']}</p>
            <p style="margin: 0 0 10px;"><strong>Documents:</strong> {summary['documents']}</p>
            <p style="margin: 0;"><strong>{summary['amount_label']}:</strong> {summary['amount']}</p>
        </div>
    """


def _summary_text(summary: Dict[str, str]) -> str:
    return (
        f"Order Number: {summary['order_number']}\n"
        f"Documents: {summary['documents']}\n"
        f"{summary['amount_label']}: {summary['amount']}"
    )


def _text_footer() -> str:
    return f"\n--\n{COMPANY_NAME}\nQuestions? Contact us at {SUPPORT_EMAIL}\n"


# ============================================================================
# ORDER CREATED (payment required)
# ============================================================================

def build_order_created_email(order: Dict[str, Any]) -> Dict[str, str]:
    url = payment_url(order["order_id"])
    summary = _order_summary(order)
    html_message = f"""
        <p>Thank you for choosing {COMPANY_NAME}! Your translation order has been created successfully.</p>
        {_summary_html(summary)}
        <p><strong>Payment is required to begin processing your order.</strong> You can complete payment now
        using the button below, or later from your dashboard.</p>
        <p>Payment link: <a href="{url}">{url}</a></p>
    """
    text = f"""Your Order Has Been Created

Thank you for choosing {COMPANY_NAME}! Your translation order has been created successfully.

{_summary_text(summary)}

Payment is required to begin processing your order.
Complete payment: {url}
{_text_footer()}"""
    return {
        "subject": f"Payment Required - Translation Order {order['order_number']}",
        "html": _build_simple_html("Order Created", "Your Order Has Been Created", html_message, "Complete Payment Now", url),
        "text": text,
    }


# ============================================================================
# PAYMENT REMINDER (1..3)
# ============================================================================

def build_payment_reminder_email(order: Dict[str, Any], reminder_number: int) -> Dict[str, str]:
    if reminder_number not in REMINDER_MESSAGES:
        raise ValueError(f"Reminder number must be 1-3, got {reminder_number}")

    url = payment_url(order["order_id"])
    summary = _order_summary(order)
    closing = ""
    closing_text = ""
    if reminder_number == 3:
        closing = ('<p style="color: #dc2626;"><strong>Please note:</strong> If we don\'t receive payment soon, '
                   'you may need to contact us to proceed with your order.</p>')
        closing_text = "\nPlease note: if we don't receive payment soon, you may need to contact us to proceed with your order.\n"

    html_message = f"""
        <p>{REMINDER_MESSAGES[reminder_number]}</p>
        {_summary_html(summary)}
        <p><strong>Complete your payment to start the translation process.</strong></p>
        <p>Payment link: <a href="{url}">{url}</a></p>
        {closing}
    """
    text = f"""Payment Reminder ({reminder_number} of 3)

{REMINDER_MESSAGES[reminder_number]}

{_summary_text(summary)}

Complete your payment to start the translation process: {url}
{closing_text}{_text_footer()}"""
    return {
        "subject": f"Payment Reminder {reminder_number}/3 - Order {order['order_number']}",
        "html": _build_simple_html(
            "Payment Reminder",
            f"Payment Reminder ({reminder_number} of 3)",
            html_message,
            "Pay Now",
            url,
            REMINDER_URGENCY[reminder_number],
        ),
        "text": text,
    }


# ============================================================================
# FINAL NOTICE
# ============================================================================

def build_final_notice_email(order: Dict[str, Any]) -> Dict[str, str]:
    url = payment_url(order["order_id"])
    summary = _order_summary(order)
    html_message = f"""
        <p><strong>This is our final notice regarding your unpaid translation order.</strong></p>
        {_summary_html(summary, tone="#fef2f2")}
        <p>We have sent you multiple reminders about completing payment for your order.
        Your order will remain in our system as unpaid.</p>
        <ul>
            <li>Complete payment using the link below or through your dashboard</li>
            <li>Or contact us at {SUPPORT_EMAIL} for assistance</li>
        </ul>
        <p>Payment link: <a href="{url}">{url}</a></p>
    """
    text = f"""Final Payment Notice

This is our final notice regarding your unpaid translation order.

{_summary_text(summary)}

Complete payment: {url}
Or contact us at {SUPPORT_EMAIL} for assistance.
{_text_footer()}"""
    return {
        "subject": f"Final Notice - Payment Required for Order {order['order_number']}",
        "html": _build_simple_html("Final Notice", "Final Payment Notice", html_message, "Complete Payment Now", url, "high"),
        "text": text,
    }


# ============================================================================
# PAYMENT CONFIRMED
# ============================================================================

def build_payment_confirmed_email(order: Dict[str, Any], customer_name: Optional[str] = None) -> Dict[str, str]:
    url = payment_url(order["order_id"])
    summary = _order_summary(order, amount_label="Total Paid")
    greeting = f"Hi {customer_name}," if customer_name else "Hello,"
    html_greeting = f"Hi {html.escape(customer_name)}," if customer_name else "Hello,"
    source = _source_language_label(order)
    target = get_language_name(order.get("target_language", ""))
    delivery = _format_date(order.get("estimated_delivery_date"))

    html_message = f"""
        <p>{html_greeting}</p>
        <p>Thank you for your payment! Your translation order is confirmed and our translators will begin shortly.</p>
        {_summary_html(summary)}
        <table style="width: 100%; border-collapse: collapse; margin: 10px 0 20px;">
            <tr><td style="padding: 6px 0; color: #6b7280;">From:</td><td style="text-align: right;">{source}</td></tr>
            <tr><td style="padding: 6px 0; color: #6b7280;">To:</td><td style="text-align: right;">{target}</td></tr>
        </table>
        <div style="background-color: #ecfdf5; border-left: 4px solid #10b981; padding: 15px; margin: 20px 0;">
            <p style="margin: 0; color: #065f46;"><strong>Estimated Delivery:</strong> {delivery}</p>
        </div>
    """
    text = f"""Order Confirmed - {order['order_number']}

{greeting}

Thank you for your payment! Your translation order is confirmed.

{_summary_text(summary)}
From: {source}
To: {target}

Estimated Delivery: {delivery}

View your order: {url}
{_text_footer()}"""
    return {
        "subject": f"Order Confirmed - {order['order_number']}",
        "html": _build_simple_html("Order Confirmed", "Your Order Is Confirmed", html_message, "View Your Order", url),
        "text": text,
    }


# ============================================================================
# QUOTE READY (custom orders)
# ============================================================================

def build_quote_ready_email(order: Dict[str, Any]) -> Dict[str, str]:
    url = payment_url(order["order_id"])
    summary = _order_summary(order, amount_label="Quote Amount")
    html_message = f"""
        <p>Good news! We've reviewed your custom translation request and prepared a quote for you.</p>
        {_summary_html(summary)}
        <p><strong>Ready to proceed?</strong> Complete payment using the button below to start the translation process.</p>
        <p>If you have any questions about the quote, contact us at {SUPPORT_EMAIL}.</p>
    """
    text = f"""Your Custom Quote is Ready

Good news! We've reviewed your custom translation request and prepared a quote for you.

{_summary_text(summary)}

Review and pay: {url}
{_text_footer()}"""
    return {
        "subject": f"Your Custom Translation Quote is Ready - {order['order_number']}",
        "html": _build_simple_html("Quote Ready", "Your Custom Quote is Ready", html_message, "Review Quote & Pay", url),
        "text": text,
    }


def build_order_email(kind: EmailKind, order: Dict[str, Any], **kwargs) -> Dict[str, str]:
    """Dispatch to the template for an email kind. Returns subject/html/text."""
    if kind == EmailKind.ORDER_CREATED:
        return build_order_created_email(order)
    if kind == EmailKind.PAYMENT_REMINDER:
        return build_payment_reminder_email(order, kwargs.get("reminder_number", 1))
    if kind == EmailKind.FINAL_NOTICE:
        return build_final_notice_email(order)
    if kind == EmailKind.PAYMENT_CONFIRMED:
        return build_payment_confirmed_email(order, kwargs.get("customer_name"))
    if kind == EmailKind.QUOTE_READY:
        return build_quote_ready_email(order)
    raise ValueError(f"Unknown email kind: {kind}")
