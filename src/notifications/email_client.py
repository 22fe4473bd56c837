# notifications/email_client.py
import smtplib
from email.mime.text import MIMEText
from typing import Optional

from config.settings import smtp_config, SMTPConfig


class EmailClient:
    def __init__(self, config: Optional[SMTPConfig] = None):
        config = config or smtp_config
        self.smtp_server = config.server
        self.smtp_port = config.port
        self.username = config.username
        self.password = config.password
        self.sender = config.sender or config.username

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def send(self, to: str, subject: str, body: str, html: bool = False):
        msg = MIMEText(body, "html" if html else "plain")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to

        with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
            server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.sender, [to], msg.as_string())
