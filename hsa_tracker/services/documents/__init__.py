"""Supporting document storage package."""

from hsa_tracker.services.documents.cloudinary_service import (
    CloudinaryDocumentService,
    DocumentDeleteError,
    DocumentError,
    DocumentUploadError,
    display_name,
    safe_file_name,
)

__all__ = [
    "CloudinaryDocumentService",
    "DocumentDeleteError",
    "DocumentError",
    "DocumentUploadError",
    "display_name",
    "safe_file_name",
]
