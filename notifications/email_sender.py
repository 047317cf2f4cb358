"""
SMTP email sender for pet health alerts.

Each alert goes out as multipart/alternative: the plain body as written, plus
an HTML rendering where blank lines split paragraphs. SMTP credentials come
from PET_ALERTS_SMTP_USER / PET_ALERTS_SMTP_PASS when set, otherwise from the
email section of the config.
"""
import os
import ssl
import html
import smtplib
import logging
from contextlib import contextmanager
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("petalerts.notifications.email_sender")

_HTML_TEMPLATE = """\
<div style="font-family: system-ui, sans-serif; max-width: 500px; margin: 0 auto;
            padding: 20px; background: #FFFFFF; color: #1E272E; border-radius: 12px;">
  <h2 style="margin-top: 0;">{title}</h2>
  {paragraphs}
  <p style="color: #636E72; font-size: 12px; margin-top: 16px;">
    Sent automatically by Pet Health Alerts.
  </p>
</div>
"""


def render_html(subject: str, body: str) -> str:
    """HTML version of a plain alert body. Everything user-supplied is escaped."""
    blocks = []
    for para in body.split("\n\n"):
        lines = [html.escape(line) for line in para.split("\n")]
        blocks.append("<p>" + "<br>".join(lines) + "</p>")
    return _HTML_TEMPLATE.format(title=html.escape(subject), paragraphs="\n  ".join(blocks))


def _secret(env_name, section, key):
    return os.environ.get(env_name) or section.get(key, "")


class EmailSender:
    """Sends alert emails over SMTP with STARTTLS."""

    def __init__(self, config: dict):
        section = config.get("email", {})
        self.smtp_host = section.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = section.get("smtp_port", 587)
        self.use_tls = section.get("use_tls", True)
        self.from_address = section.get("from_address", "")
        self.from_name = section.get("from_name", "Pet Health Alerts")
        self.timeout = section.get("timeout_seconds", 30)
        self.username = _secret("PET_ALERTS_SMTP_USER", section, "smtp_username")
        self.password = _secret("PET_ALERTS_SMTP_PASS", section, "smtp_password")

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_address and self.username and self.password)

    def build_message(self, to: str, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = to
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(body, "plain", "utf-8"))
        msg.attach(MIMEText(render_html(subject, body), "html", "utf-8"))
        return msg

    @contextmanager
    def _session(self, timeout):
        """Logged-in SMTP connection, upgraded to TLS when enabled."""
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=timeout) as server:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            server.login(self.username, self.password)
            yield server

    def send_email(self, to: str, subject: str, body: str) -> bool:
        """Send one alert email. Failures are logged and reported as False."""
        if not self.is_configured():
            logger.warning("Email not configured - skipping send")
            return False
        if not to:
            logger.warning("No recipient address - skipping send")
            return False

        msg = self.build_message(to, subject, body)
        try:
            with self._session(self.timeout) as server:
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError:
            logger.error(f"SMTP login rejected for {self.username} on {self.smtp_host}")
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"Recipient refused: {to}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email to {to} failed: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True

    def test_connection(self) -> dict:
        """Log in without sending anything. Returns {"status": "ok"|"error", "message": ...}."""
        try:
            with self._session(10) as server:
                code, _ = server.noop()
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except (smtplib.SMTPException, OSError) as e:
            return {"status": "error", "message": f"Connection failed: {e}"}
        return {"status": "ok", "message": f"SMTP connection successful ({code})"}
