"""Digest email package."""

from hsa_tracker.services.email.renderer import (
    DigestEmailRenderer,
    create_environment,
    digest_subject,
)
from hsa_tracker.services.email.resend_service import EmailSendError, ResendEmailService

__all__ = [
    "DigestEmailRenderer",
    "EmailSendError",
    "ResendEmailService",
    "create_environment",
    "digest_subject",
]
