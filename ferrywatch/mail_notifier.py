from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage

from ferrywatch.config import MailConfig


def build_message(*, mail: MailConfig, subject: str, text: str, html: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = mail.sender
    msg["To"] = ", ".join(mail.recipients)
    msg["Subject"] = subject
    msg.set_content(text)
    if html is not None:
        msg.add_alternative(html, subtype="html")
    return msg


def send_email(*, mail: MailConfig, subject: str, text: str, html: str | None = None) -> None:
    smtp = mail.smtp
    msg = build_message(mail=mail, subject=subject, text=text, html=html)
    context = ssl.create_default_context()

    if smtp.secure:
        server = smtplib.SMTP_SSL(smtp.host, smtp.port, timeout=smtp.timeout_seconds, context=context)
    else:
        server = smtplib.SMTP(smtp.host, smtp.port, timeout=smtp.timeout_seconds)

    with server:
        if not smtp.secure:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
        if smtp.username:
            server.login(smtp.username, smtp.password or "")
        server.send_message(msg)
