# inventory/alerts.py
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .logger import get_logger
from .models import SyncResult

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

EMAIL_FROM = os.getenv("EMAIL_FROM", "").strip()
SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASS = os.getenv("SMTP_PASS", "").strip()
SMTP_USE_SSL = os.getenv("SMTP_USE_SSL", "false").lower() == "true"

# Comma or semicolon separated
_ALERT_TO_RAW = os.getenv("SYNC_ALERT_TO", "").strip()


def get_alert_recipients() -> list[str]:
    if not _ALERT_TO_RAW:
        return []
    parts = [p.strip() for p in _ALERT_TO_RAW.replace(";", ",").split(",")]
    return [p for p in parts if p]


def needs_alert(result: Optional[SyncResult], error: Optional[BaseException]) -> bool:
    if error is not None:
        return True
    return bool(result and (result.failed or result.empty_fetch_suspected))


def _context(result: Optional[SyncResult], error: Optional[BaseException]) -> dict:
    if error is not None:
        status = "failed"
    elif result and result.empty_fetch_suspected:
        status = "skipped"
    else:
        status = "partial"

    partial = getattr(error, "partial_result", None)
    shown = result or partial
    return {
        "status": status,
        "result": shown,
        "failures": shown.failures if shown else [],
        "error_kind": getattr(error, "kind", type(error).__name__) if error else "",
        "error_message": str(error) if error else "",
        "error_sample": getattr(error, "sample", "") if error else "",
    }


def build_subject(result: Optional[SyncResult], error: Optional[BaseException]) -> str:
    ctx = _context(result, error)
    if ctx["status"] == "failed":
        return f"[Catalog Sync] Sync failed: {ctx['error_kind']}"
    if ctx["status"] == "skipped":
        return "[Catalog Sync] Empty catalog fetch, deletions skipped"
    return f"[Catalog Sync] {result.failed} product writes failed"


def build_plaintext_report(result: Optional[SyncResult], error: Optional[BaseException]) -> str:
    return env.get_template("sync_report.txt").render(**_context(result, error))


def build_html_report(result: Optional[SyncResult], error: Optional[BaseException]) -> str:
    return env.get_template("sync_report.html").render(**_context(result, error))


def send_email(subject: str, html_body: str, text_body: str, recipients: list[str]) -> None:
    if not (EMAIL_FROM and SMTP_HOST):
        logger.warning(
            "Email not fully configured (EMAIL_FROM/SMTP_HOST); skipping alert: %s",
            subject,
        )
        return

    msg = MIMEMultipart("alternative")
    msg["From"] = EMAIL_FROM
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.attach(MIMEText(text_body, "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))

    if SMTP_USE_SSL:
        server = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, timeout=30)
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30)

    try:
        if not SMTP_USE_SSL:
            server.starttls()
        if SMTP_USER:
            server.login(SMTP_USER, SMTP_PASS)
        server.sendmail(EMAIL_FROM, recipients, msg.as_string())
        logger.info("Sync alert sent to %s: %s", recipients, subject)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            pass


def notify_sync_outcome(result: Optional[SyncResult], error: Optional[BaseException]) -> None:
    """Coordinator alert hook: email a report for failed or degraded runs."""
    if not needs_alert(result, error):
        return
    recipients = get_alert_recipients()
    if not recipients:
        logger.debug("No SYNC_ALERT_TO recipients; not sending sync alert.")
        return

    send_email(
        build_subject(result, error),
        build_html_report(result, error),
        build_plaintext_report(result, error),
        recipients,
    )
