# notifications/notifier.py
from html import escape
from typing import Optional

from .email_client import EmailClient
from ..utils.logger import get_logger
from config.settings import app_config


class StaffNotifier:
    def __init__(self, email_client: Optional[EmailClient] = None):
        self.email = email_client or EmailClient()
        self.logger = get_logger("staff_notifier")

    def send_welcome(
        self,
        email: str,
        display_name: str,
        password_reset_link: Optional[str] = None
    ) -> bool:
        """
        Send the welcome e-mail to a newly created employee.

        Without a reset link the employee signs in with the temporary password
        an administrator handed over; the password itself is never e-mailed.
        """
        try:
            if not self.email.configured:
                self.logger.info("welcome_skipped", email=email, reason="smtp_not_configured")
                return False

            if password_reset_link:
                first_step = (
                    f'<p>Choose your password here: '
                    f'<a href="{escape(password_reset_link)}">set your password</a></p>'
                )
            else:
                first_step = "<p>Sign in with the temporary password provided by your administrator.</p>"

            body = f"""
            <div style="font-family:Arial,sans-serif;line-height:1.6;color:#222">
              <p>Hi {escape(display_name or "")},</p>
              <p>Your staff account has been created.</p>
              {first_step}
              <p>The staff portal is available at <a href="{app_config.portal_url}">{app_config.portal_url}</a>.</p>
            </div>
            """

            self.email.send(to=email, subject="Welcome to the team", body=body, html=True)
            self.logger.info("welcome_sent", email=email, reset_link=bool(password_reset_link))
            return True
        except Exception as e:
            self.logger.error("welcome_failed", error=str(e), email=email)
            return False
