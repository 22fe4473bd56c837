"""
Configuration settings for the staff claims and employee directory backend.
"""
import json
import os
from typing import Dict, Any, Optional
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


@dataclass
class FirebaseConfig:
    """Firebase Admin SDK configuration settings."""
    project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")
    credentials_file: str = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
    credentials_json: str = os.getenv("FIREBASE_CREDENTIALS_JSON", "")
    web_api_key: str = os.getenv("FIREBASE_WEB_API_KEY", "")
    use_emulator: bool = os.getenv("FIREBASE_AUTH_EMULATOR_HOST", "") != ""

    def get_credentials_dict(self) -> Optional[Dict[str, Any]]:
        """
        Service account credentials from FIREBASE_CREDENTIALS_JSON, if set.

        Returns:
            Parsed service account dictionary, or None when the SDK should
            fall back to application default credentials.
        """
        if not self.credentials_json:
            return None
        return json.loads(self.credentials_json)


@dataclass
class AppConfig:
    """Application configuration settings."""
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    # Best-effort Firestore mirrors of the authoritative claims
    employees_collection: str = "employees"
    user_claims_collection: str = "userClaims"

    # Directory settings
    list_accounts_batch_size: int = 1000
    # Collation used to sort directory listings; empty means the process environment
    collation_locale: str = os.getenv("COLLATION_LOCALE", "")
    default_page_size: int = int(os.getenv("EMPLOYEE_PAGE_SIZE", "50"))
    max_page_size: int = int(os.getenv("EMPLOYEE_MAX_PAGE_SIZE", "1000"))

    # Number of extra attempts when attaching claims to a new account
    claims_attach_retries: int = int(os.getenv("CLAIMS_ATTACH_RETRIES", "2"))
    # Seconds before the first retry; doubles on each further attempt
    claims_attach_backoff: float = float(os.getenv("CLAIMS_ATTACH_BACKOFF", "0.5"))

    # Welcome e-mail for newly created employees
    send_welcome_email: bool = os.getenv("SEND_WELCOME_EMAIL", "true").lower() == "true"
    portal_url: str = os.getenv("STAFF_PORTAL_URL", "http://localhost:3000/admin")


@dataclass
class SMTPConfig:
    """Outgoing mail settings for staff notifications."""
    server: str = os.getenv("SMTP_SERVER", "smtp.gmail.com")
    port: int = int(os.getenv("SMTP_PORT", "587"))
    username: str = os.getenv("SMTP_USER", "")
    password: str = os.getenv("SMTP_PASSWORD", "")
    sender: str = os.getenv("SMTP_SENDER", "")

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)


firebase_config = FirebaseConfig()
app_config = AppConfig()
smtp_config = SMTPConfig()
