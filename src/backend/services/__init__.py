"""
Infrastructure services: blob storage, outgoing mail, attachment
reconciliation and third-party sign-in.
"""
from .blob_storage import BlobStorage, get_blob_storage
from .email_service import EmailService, get_email_service
from .oauth import OAuthProvider, get_oauth_providers

__all__ = [
    "BlobStorage",
    "get_blob_storage",
    "EmailService",
    "get_email_service",
    "OAuthProvider",
    "get_oauth_providers",
]
