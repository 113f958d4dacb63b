"""
Email Service for the Twofactor Authenticator service
"""

import json
import logging
import os
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)


def load_smtp_config(path: str) -> Optional[dict]:
    """Load SMTP configuration from file"""
    try:
        if os.path.exists(path):
            with open(path, "r") as f:
                return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading SMTP config: {e}")
    return None


def _connect(config: dict) -> smtplib.SMTP:
    if config.get("use_ssl", False):
        context = ssl.create_default_context()
        server = smtplib.SMTP_SSL(config["host"], config.get("port", 465), context=context)
    else:
        server = smtplib.SMTP(config["host"], config.get("port", 587))
        if config.get("use_tls", True):
            server.starttls()

    if config.get("username") and config.get("password"):
        server.login(config["username"], config["password"])
    return server


def send_email(
    config_path: str,
    to_email: str,
    subject: str,
    body_html: str,
    body_text: str = None,
    email_type: str = "general",
) -> dict:
    """Send an email using configured SMTP settings"""
    config = load_smtp_config(config_path)
    if not config:
        logger.warning(f"Not sending {email_type} email to {to_email}: SMTP not configured")
        return {"success": False, "message": "SMTP not configured"}

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.get("from_email", config.get("username"))
    msg["To"] = to_email

    if body_text:
        msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))

    try:
        server = _connect(config)
        server.sendmail(msg["From"], to_email, msg.as_string())
        server.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send {email_type} email to {to_email}: {e}")
        return {"success": False, "message": str(e)}

    logger.info(f"Sent {email_type} email to {to_email}")
    return {"success": True, "message": "Email sent successfully"}


def send_2fa_removed_from_org(config_path: str, to_email: str, org_name: str) -> dict:
    """Tell a user they lost access to an organization that requires two-step login"""
    subject = f"You have been removed from {org_name}"
    body_text = (
        f"Your membership in {org_name} has been revoked because you turned off "
        f"two-step login and {org_name} requires it for all members.\n\n"
        f"Turn two-step login back on and ask an administrator to restore your access."
    )
    body_html = "<p>" + body_text.replace("\n\n", "</p><p>") + "</p>"
    return send_email(config_path, to_email, subject, body_html, body_text, email_type="2fa_removed_from_org")
