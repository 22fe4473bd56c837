"""
Firebase Firestore client for the claims and employee profile mirrors.

Both collections are convenience copies of the authoritative custom claims
held by Firebase Authentication. Writes here are best effort: failures are
logged and reported as False, never raised.
"""
from firebase_admin import firestore
from typing import Optional, Dict, Any

from .app import get_firebase_app
from ..utils.logger import get_logger
from config.settings import app_config

PROFILE_FIELDS = ('employeeId', 'department', 'position', 'role', 'isActive')


class FirestoreClient:
    """Firestore client for claims mirror synchronization."""

    def __init__(self):
        self.logger = get_logger("firestore_client")
        self.db: Optional[firestore.Client] = None
        self.initialized = False

    def initialize(self) -> bool:
        """
        Initialize the Firestore client on the shared Firebase app.

        Returns:
            True if initialization successful, False otherwise
        """
        try:
            if not self.initialized:
                self.db = firestore.client(get_firebase_app())
                self.initialized = True
                self.logger.info("Firebase Firestore client initialized successfully")
            return True

        except Exception as e:
            self.logger.error("Failed to initialize Firebase Firestore", error=str(e))
            self.initialized = False
            return False

    def mirror_user_claims(self, uid: str, claims: Dict[str, Any], updated_by: Optional[str]) -> bool:
        """
        Store a snapshot of an account's claims in the userClaims collection.

        Args:
            uid: Account the claims belong to
            claims: Claims exactly as attached to the account
            updated_by: Account id of the caller making the change

        Returns:
            True if successful, False otherwise
        """
        try:
            if not self.initialized:
                if not self.initialize():
                    return False

            snapshot = dict(claims)
            snapshot['updatedAt'] = firestore.SERVER_TIMESTAMP
            snapshot['updatedBy'] = updated_by

            self.db.collection(app_config.user_claims_collection).document(uid).set(snapshot)

            self.logger.info("Stored user claims in Firestore", uid=uid)
            return True

        except Exception as e:
            self.logger.warning("Failed to store claims in Firestore (non-critical)",
                                uid=uid, error=str(e))
            return False

    def create_employee_profile(
        self,
        account: Dict[str, Any],
        claims: Dict[str, Any],
        created_by: Optional[str]
    ) -> bool:
        """
        Create the denormalized employee profile document.

        Args:
            account: Directory form of the new account (``AccountRecord.to_dict()``)
            claims: Employee claims attached to the account
            created_by: Account id of the caller creating the employee

        Returns:
            True if successful, False otherwise
        """
        uid = account.get('uid')
        try:
            if not self.initialized:
                if not self.initialize():
                    return False

            profile = {
                'uid': uid,
                'email': account.get('email'),
                'displayName': account.get('displayName'),
                'photoURL': account.get('photoURL'),
                'startDate': claims.get('createdAt') or firestore.SERVER_TIMESTAMP,
                'createdAt': firestore.SERVER_TIMESTAMP,
                'createdBy': created_by,
            }
            profile.update({name: claims.get(name) for name in PROFILE_FIELDS})

            self.db.collection(app_config.employees_collection).document(uid).set(profile)

            self.logger.info("Created employee profile document", uid=uid)
            return True

        except Exception as e:
            self.logger.warning("Failed to create employee profile document (non-critical)",
                                uid=uid, error=str(e))
            return False

    def update_employee_profile(self, uid: str, claims: Dict[str, Any], updated_by: Optional[str]) -> bool:
        """
        Refresh the profile fields derived from claims.

        Returns:
            True if successful, False otherwise
        """
        try:
            if not self.initialized:
                if not self.initialize():
                    return False

            updates = {name: claims.get(name) for name in PROFILE_FIELDS}
            updates['updatedAt'] = firestore.SERVER_TIMESTAMP
            updates['updatedBy'] = updated_by

            self.db.collection(app_config.employees_collection).document(uid).set(updates, merge=True)

            self.logger.info("Updated employee profile document", uid=uid)
            return True

        except Exception as e:
            self.logger.warning("Failed to update employee profile document (non-critical)",
                                uid=uid, error=str(e))
            return False

    def get_user_claims_mirror(self, uid: str) -> Optional[Dict[str, Any]]:
        """
        Read the mirrored claims snapshot of an account.

        Returns:
            Claims dictionary or None if not found
        """
        try:
            if not self.initialized:
                if not self.initialize():
                    return None

            doc = self.db.collection(app_config.user_claims_collection).document(uid).get()

            if doc.exists:
                return doc.to_dict()
            else:
                return None

        except Exception as e:
            self.logger.error("Error reading mirrored claims", uid=uid, error=str(e))
            return None
