"""
Transactional email over SMTP.

Without SMTP_HOST nothing is sent; the message is logged instead so local
development works without a mail server.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from dietpanel.core.config import Settings

logger = logging.getLogger(__name__)


class MailError(Exception):
    pass


class Mailer:
    def __init__(self, config: Settings) -> None:
        self.config = config

    def _sender(self) -> str:
        address = self.config.EMAILS_FROM_EMAIL or "no-reply@localhost"
        if self.config.EMAILS_FROM_NAME:
            return f"{self.config.EMAILS_FROM_NAME} <{address}>"
        return address

    def send(self, *, to: str, subject: str, text: str, html: str | None = None) -> None:
        """
        Send one message.

        Raises:
            MailError: the SMTP conversation failed
        """
        cfg = self.config
        if not cfg.SMTP_HOST:
            logger.info("SMTP not configured, mail not sent: subject=%r to=%s", subject, to)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self._sender()
        msg["To"] = to
        msg.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            msg.attach(MIMEText(html, "html", "utf-8"))

        from_address = cfg.EMAILS_FROM_EMAIL or "no-reply@localhost"
        context = ssl.create_default_context()
        try:
            if cfg.SMTP_SSL:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    cfg.SMTP_HOST, cfg.SMTP_PORT, context=context, timeout=10
                )
            else:
                server = smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=10)
            with server:
                if cfg.SMTP_TLS and not cfg.SMTP_SSL:
                    server.starttls(context=context)
                if cfg.SMTP_USER and cfg.SMTP_PASSWORD:
                    server.login(cfg.SMTP_USER, cfg.SMTP_PASSWORD)
                server.sendmail(from_address, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise MailError(f"Failed to send mail to {to}: {e}") from e

    def send_best_effort(self, *, to: str, subject: str, text: str, html: str | None = None) -> None:
        """``send`` for background tasks: failures are logged, never raised."""
        try:
            self.send(to=to, subject=subject, text=text, html=html)
        except MailError:
            logger.warning("Mail delivery failed: subject=%r to=%s", subject, to, exc_info=True)


def invitation_email(link: str, expires_at: str) -> tuple[str, str, str]:
    subject = "Zaproszenie do panelu pacjenta"
    text = (
        "Dzień dobry,\n\n"
        "zapraszamy do założenia konta w panelu pacjenta:\n"
        f"{link}\n\n"
        f"Link jest ważny do {expires_at}."
    )
    html = (
        "<p>Dzień dobry,</p>"
        "<p>zapraszamy do założenia konta w panelu pacjenta.</p>"
        f'<p><a href="{link}">Załóż konto</a></p>'
        f"<p>Link jest ważny do {expires_at}.</p>"
    )
    return subject, text, html


def password_reset_email(link: str, first_name: str | None, valid_minutes: int) -> tuple[str, str, str]:
    greeting = f"Cześć {first_name}," if first_name else "Dzień dobry,"
    subject = "Reset hasła"
    text = (
        f"{greeting}\n\n"
        "otrzymaliśmy prośbę o zmianę hasła. Ustaw nowe hasło tutaj:\n"
        f"{link}\n\n"
        f"Link jest ważny przez {valid_minutes} minut. Jeśli to nie Ty, zignoruj tę wiadomość."
    )
    html = (
        f"<p>{greeting}</p>"
        "<p>otrzymaliśmy prośbę o zmianę hasła.</p>"
        f'<p><a href="{link}">Ustaw nowe hasło</a></p>'
        f"<p>Link jest ważny przez {valid_minutes} minut. Jeśli to nie Ty, zignoruj tę wiadomość.</p>"
    )
    return subject, text, html


def purchase_confirmation_email(modules: list[int], expires_at: str, zone_url: str) -> tuple[str, str, str]:
    names = ", ".join(f"Moduł {m}" for m in modules)
    subject = "Potwierdzenie zakupu PZK"
    text = (
        "Dziękujemy za zakup!\n\n"
        f"Dostęp: {names}\n"
        f"Ważny do: {expires_at}\n\n"
        f"Materiały: {zone_url}"
    )
    html = (
        "<p>Dziękujemy za zakup!</p>"
        f"<p>Dostęp: {names}<br>Ważny do: {expires_at}</p>"
        f'<p><a href="{zone_url}">Przejdź do materiałów</a></p>'
    )
    return subject, text, html
