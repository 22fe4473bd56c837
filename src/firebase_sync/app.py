"""
Shared Firebase Admin SDK application.
"""
import firebase_admin
from firebase_admin import credentials

from ..utils.logger import get_logger
from config.settings import firebase_config

logger = get_logger("firebase_app")


def get_firebase_app() -> firebase_admin.App:
    """
    Initialize the default Firebase app once and return it.

    Uses FIREBASE_CREDENTIALS_JSON when set, application default credentials
    otherwise.
    """
    if firebase_admin._apps:
        return firebase_admin.get_app()

    cred_dict = firebase_config.get_credentials_dict()
    cred = credentials.Certificate(cred_dict) if cred_dict else credentials.ApplicationDefault()
    options = {'projectId': firebase_config.project_id} if firebase_config.project_id else None

    app = firebase_admin.initialize_app(cred, options)
    logger.info("Firebase Admin SDK initialized",
                project_id=firebase_config.project_id or None,
                emulator=firebase_config.use_emulator)
    return app
