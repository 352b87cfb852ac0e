import os
import logging
import smtplib
import ssl
import sys
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateNotFound

# Email configuration from environment
SMTP_FROM = os.getenv("SMTP_FROM", "no-reply@localhost")

# Debugging
EMAIL_DEBUG = os.getenv("EMAIL_DEBUG", "false").lower() in ("1", "true", "yes", "on")

# Centralized logger for email utils
logger = logging.getLogger("backend.email")

def _elog(msg: str):
    if EMAIL_DEBUG:
        logger.debug(msg)

# Build template search paths (file-based, CWD-based, and env override)
template_search_paths = []
try:
    template_search_paths.append(str((Path(__file__).resolve().parents[1] / "templates" / "email")))
except Exception:
    pass
try:
    template_search_paths.append(str((Path(os.getcwd()).resolve() / "templates" / "email")))
except Exception:
    pass
# Installed (non-editable) location: data-files land under the environment prefix
template_search_paths.append(str(Path(sys.prefix) / "templates" / "email"))
_env_dir = os.getenv("EMAIL_TEMPLATE_DIR")
if _env_dir:
    template_search_paths.append(_env_dir)

_elog(f"Email template search paths: {template_search_paths}")
_templates_env = Environment(
    loader=FileSystemLoader(template_search_paths),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_email(template_name: str, context: dict) -> str:
    try:
        template = _templates_env.get_template(template_name)
    except TemplateNotFound:
        logger.error("Email template '%s' not found. Paths searched: %s", template_name, template_search_paths)
        raise
    base_context = {"year": datetime.utcnow().year}
    base_context.update(context or {})
    return template.render(**base_context)


def build_message(
    to_email: str,
    subject: str,
    body: str,
    html: bool = True,
    reply_to: Optional[str] = None,
    from_addr: Optional[str] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = (from_addr or "").strip() or os.getenv("SMTP_FROM") or SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    if reply_to:
        msg["Reply-To"] = reply_to
    if html:
        msg.set_content("This email contains HTML content. If you see this, please view in an HTML-capable client.")
        msg.add_alternative(body, subtype="html")
    else:
        msg.set_content(body)
    return msg


def send_email(
    to_email: str,
    subject: str,
    body: str,
    html: bool = True,
    reply_to: Optional[str] = None,
    from_addr: Optional[str] = None,
):
    """
    Send email over SMTP (STARTTLS by default, implicit TLS on port 465).

    Environment variables:
      - SMTP_HOST: SMTP server host (default: localhost)
      - SMTP_PORT: SMTP server port (default: 587 for STARTTLS)
      - SMTP_USER / SMTP_PASSWORD: credentials; login is skipped when no password is set
      - SMTP_FROM: From address
    """
    host = os.getenv("SMTP_HOST", "localhost")
    try:
        port = int(os.getenv("SMTP_PORT", "587") or "587")
    except ValueError:
        port = 587
    username = os.getenv("SMTP_USER", "")
    password = os.getenv("SMTP_PASSWORD", "")

    msg = build_message(to_email, subject, body, html=html, reply_to=reply_to, from_addr=from_addr)

    try:
        if port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context, timeout=15) as server:
                if password:
                    server.login(username, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port, timeout=15) as server:
                server.ehlo()
                if server.has_extn("starttls"):
                    context = ssl.create_default_context()
                    server.starttls(context=context)
                    server.ehlo()
                if password:
                    server.login(username, password)
                server.send_message(msg)
        _elog(f"SMTP send ok via {host}:{port} from={msg['From']} to={to_email}")
    except smtplib.SMTPResponseException as e:
        code = getattr(e, 'smtp_code', None)
        err = getattr(e, 'smtp_error', b'')
        if isinstance(err, (bytes, bytearray)):
            err = err.decode('utf-8', 'ignore')
        logger.warning("SMTP error %s: %s", code, err)
        raise RuntimeError("Failed to send email via SMTP")
    except Exception as ex:
        logger.exception("SMTP send failed: %s", ex)
        raise RuntimeError("Failed to send email via SMTP")
