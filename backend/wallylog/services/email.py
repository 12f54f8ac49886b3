import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from wallylog.core.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).parent.parent / "templates" / "emails"
env = Environment(loader=FileSystemLoader(TEMPLATE_PATH), autoescape=select_autoescape(["html", "xml", "html.j2"]))


@dataclass(frozen=True)
class SendResult:
    ok: bool
    status: int | str | None = None
    body: str = ""


def _sender() -> str:
    return formataddr((settings.smtp_from_name, settings.smtp_from or "no-reply@wallylog.local"))


def _build_message(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = _sender()
    msg["To"] = to_email
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg


def _open_smtp() -> smtplib.SMTP:
    port = int(settings.smtp_port or 25)
    if port == 465:
        return smtplib.SMTP_SSL(settings.smtp_host or "localhost", port, timeout=settings.smtp_timeout_seconds)
    smtp = smtplib.SMTP(settings.smtp_host or "localhost", port, timeout=settings.smtp_timeout_seconds)
    if settings.smtp_use_tls:
        smtp.starttls()
    return smtp


async def send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> SendResult:
    """Send one message over SMTP. Failures are returned, never raised."""
    msg = _build_message(to_email, subject, text_body, html_body)
    try:
        with _open_smtp() as smtp:
            if settings.smtp_username and settings.smtp_password:
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(msg)
        return SendResult(ok=True)
    except smtplib.SMTPResponseException as exc:
        reply = exc.smtp_error.decode("utf-8", "replace") if isinstance(exc.smtp_error, bytes) else str(exc.smtp_error)
        logger.warning("Email send failed: %s %s", exc.smtp_code, reply)
        return SendResult(ok=False, status=exc.smtp_code, body=reply)
    except Exception as exc:
        logger.warning("Email send failed: %s", exc)
        return SendResult(ok=False, status=500, body=str(exc))


def render_template(template_name: str, context: dict[str, Any]) -> tuple[str, str]:
    body_text = env.get_template(template_name).render(**context)
    body_html = env.get_template(template_name.replace(".txt.j2", ".html.j2")).render(**context)
    base_text = env.get_template("base.txt.j2")
    base_html = env.get_template("base.html.j2")
    return base_text.render(body=body_text, **context), base_html.render(body=body_html, **context)
