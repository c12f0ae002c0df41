"""Email notification helper."""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Protocol

from .config import EmailConfig
from .models import Alert, EmailPayload


class Notifier(Protocol):
    def send_alert(self, alert: Alert) -> None:
        ...


def alert_payload(alert: Alert) -> EmailPayload:
    subject = f"Stock Alert: {alert.ticker} - {alert.alert_type}"
    body = (
        f"Alert for {alert.ticker}:\n\n"
        f"Type: {alert.alert_type}\n"
        f"Message: {alert.message}\n\n"
        f"Generated at: {alert.created_at:%Y-%m-%d %H:%M:%S}"
    )
    return EmailPayload(subject=subject, body=body)


class EmailNotifier:
    def __init__(self, config: EmailConfig):
        self.config = config

    def send(self, payload: EmailPayload) -> None:
        if not self.config.recipients:
            raise ValueError("EmailConfig.recipients is empty")
        msg = EmailMessage()
        msg["Subject"] = payload.subject
        msg["From"] = self.config.sender
        msg["To"] = ",".join(self.config.recipients)
        msg.set_content(payload.body)
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as client:
            if self.config.use_tls:
                client.starttls()
            if self.config.username and self.config.password:
                client.login(self.config.username, self.config.password)
            client.send_message(msg)

    def send_alert(self, alert: Alert) -> None:
        self.send(alert_payload(alert))


__all__ = ["EmailNotifier", "Notifier", "alert_payload"]
