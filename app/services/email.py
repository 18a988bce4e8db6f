import logging
import os
import smtplib
from datetime import datetime
from decimal import Decimal
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

logger = logging.getLogger(__name__)


def _env_value(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_int(name: str, default: int) -> int:
    raw = _env_value(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_value(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _get_smtp_config() -> dict:
    return {
        "host": _env_value("SMTP_HOST") or "localhost",
        "port": _env_int("SMTP_PORT", 587),
        "username": _env_value("SMTP_USERNAME"),
        "password": _env_value("SMTP_PASSWORD"),
        "use_tls": _env_bool("SMTP_USE_TLS", True),
        "use_ssl": _env_bool("SMTP_USE_SSL", False),
        "from_email": _env_value("SMTP_FROM_EMAIL") or "noreply@example.com",
        "from_name": _env_value("SMTP_FROM_NAME") or "Ummati Community",
    }


def send_email(
    to_email: str,
    subject: str,
    body_html: str,
    body_text: str | None = None,
) -> bool:
    """Send one message. Never raises; returns False when delivery failed."""
    config = _get_smtp_config()
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{config['from_name']} <{config['from_email']}>"
    msg["To"] = to_email

    if body_text:
        msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))

    try:
        if config["use_ssl"]:
            server = smtplib.SMTP_SSL(config["host"], config["port"])
        else:
            server = smtplib.SMTP(config["host"], config["port"])

        if config["use_tls"] and not config["use_ssl"]:
            server.starttls()

        if config["username"] and config["password"]:
            server.login(config["username"], config["password"])

        server.sendmail(config["from_email"], to_email, msg.as_string())
        server.quit()

        logger.info("Email sent to %s", to_email)
        return True
    except Exception as exc:
        logger.error("Failed to send email to %s: %s", to_email, exc)
        return False


def _date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _paragraphs(name: str, lines: list[str]) -> tuple[str, str]:
    safe_name = escape(name or "there")
    html_body = f"<p>Dear {safe_name},</p>" + "".join(
        f"<p>{escape(line)}</p>" for line in lines
    )
    text_body = f"Dear {name or 'there'},\n\n" + "\n\n".join(lines)
    return html_body, text_body


def send_subscription_receipt(
    to_email: str,
    name: str,
    tier_name: str,
    price: Decimal,
    interval: str,
    period_start: datetime | None,
    period_end: datetime | None,
    benefits: list[str],
) -> bool:
    lines = [
        "Thank you for subscribing to our premium membership!",
        f"Tier: {tier_name}",
        f"Amount: ${price} per {interval}",
        f"Billing period: {_date(period_start)} to {_date(period_end)}",
        "Your benefits: " + ", ".join(benefits),
    ]
    body_html, body_text = _paragraphs(name, lines)
    return send_email(to_email, "Welcome to Premium Membership!", body_html, body_text)


def send_downgrade_notice(to_email: str, name: str) -> bool:
    lines = [
        "Your membership has been downgraded to the free tier. "
        "You will continue to have access to basic features.",
        "If you would like to upgrade again, please visit your account settings.",
    ]
    body_html, body_text = _paragraphs(name, lines)
    return send_email(to_email, "Membership Downgraded to Free Tier", body_html, body_text)


def send_payment_succeeded(to_email: str, name: str, period_end: datetime | None) -> bool:
    lines = [
        "Your membership payment has been processed successfully.",
        f"Your premium benefits will continue until {_date(period_end)}.",
    ]
    body_html, body_text = _paragraphs(name, lines)
    return send_email(
        to_email, "Payment Successful - Membership Renewed", body_html, body_text
    )


def send_payment_failed(to_email: str, name: str, grace_period_end: datetime | None) -> bool:
    lines = [
        "We were unable to process your membership payment.",
        f"You have until {_date(grace_period_end)} to update your payment method "
        "before your membership is downgraded to the free tier.",
    ]
    body_html, body_text = _paragraphs(name, lines)
    return send_email(to_email, "Payment Failed - Action Required", body_html, body_text)


def send_refund_confirmation(
    to_email: str, name: str, amount: Decimal, reason: str
) -> bool:
    lines = [
        "Your refund request has been processed successfully.",
        f"Amount: ${amount}",
        f"Reason: {reason.replace('_', ' ').capitalize()}",
        "Your paid membership has been cancelled.",
    ]
    body_html, body_text = _paragraphs(name, lines)
    return send_email(
        to_email, "Refund Processed - Membership Cancelled", body_html, body_text
    )
