"""Shared Firebase Admin app (FCM delivery and ID-token verification)."""

from typing import Optional

import firebase_admin
from firebase_admin import credentials

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

_firebase_app: Optional[firebase_admin.App] = None


def get_firebase_app() -> firebase_admin.App:
    """Get or initialize the Firebase Admin app."""
    global _firebase_app
    if _firebase_app is None:
        if not settings.firebase_project_id:
            raise ValueError("Firebase configuration missing: firebase_project_id required")

        # Explicit credentials for local dev; otherwise application default credentials
        cred = None
        if settings.google_application_credentials:
            cred = credentials.Certificate(settings.google_application_credentials)

        _firebase_app = firebase_admin.initialize_app(
            credential=cred, options={"projectId": settings.firebase_project_id}
        )
        logger.info(
            f"Firebase Admin SDK initialized for project: {settings.firebase_project_id}"
        )
    return _firebase_app
