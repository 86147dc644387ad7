"""
Supporting Document Storage using Cloudinary

DESIGN DECISION: We use Cloudinary because:
1. It stores both photos and PDFs behind one API
2. Reliable cloud infrastructure with stable public URLs
3. Simple API
4. Free tier sufficient for personal use

This service handles:
1. Size and format checks before anything leaves the machine
2. Upload under a per-user folder
3. Deleting a document, but only from the caller's own folder

Documents are stored under:
    hsa-documents/{user_id}/{kind}/{timestamp}-{safe_name}

The expense only keeps the returned URL. The rule engine never looks
inside the file.
"""

import re
import time
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hsa_tracker.config import get_settings
from hsa_tracker.models.expense import DocumentKind


SAFE_NAME_MAX_LENGTH = 50

# Cloudinary delivery URLs: /<cloud>/<resource_type>/upload/[v123/]<public_id>.<ext>
_DELIVERY_PATH = re.compile(
    r"/(?P<resource_type>image|raw|video)/upload/(?:v\d+/)?(?P<public_id>.+)$"
)


class DocumentError(Exception):
    """Base exception for document storage errors."""
    pass


class DocumentUploadError(DocumentError):
    """Failed to upload a document, or the file was rejected before upload."""
    pass


class DocumentDeleteError(DocumentError):
    """Failed to delete a document, or the URL isn't the caller's to delete."""
    pass


def safe_file_name(filename: str) -> str:
    """Replace anything outside [A-Za-z0-9.-] and cap the length."""
    return re.sub(r"[^a-zA-Z0-9.-]", "_", filename)[:SAFE_NAME_MAX_LENGTH]


def display_name(url: str) -> str:
    """Human-readable file name for a stored document URL."""
    raw = PurePosixPath(urlparse(url).path).name
    without_timestamp = re.sub(r"^\d+-", "", raw)
    return unquote(without_timestamp).replace("_", " ") or "Document"


class CloudinaryDocumentService:
    """
    Stores supporting documents (receipts, EOBs, invoices, statements).

    Flow:
    1. Validate size and extension
    2. Upload to the user's folder for the document kind
    3. Return the secure URL to attach to the expense
    """

    def __init__(self):
        self._settings = get_settings().cloudinary
        self._app_settings = get_settings().app
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def user_folder(self, user_id: str) -> str:
        return f"{self._settings.root_folder}/{user_id}"

    def build_public_id(
        self,
        user_id: str,
        kind: DocumentKind,
        filename: str,
        timestamp_ms: Optional[int] = None,
    ) -> str:
        """
        Storage path for a new document.

        The extension is dropped; Cloudinary appends the detected format
        to the delivery URL itself.
        """
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        stem = PurePosixPath(safe_file_name(filename)).stem or "document"
        return f"{self.user_folder(user_id)}/{kind.value}/{timestamp_ms}-{stem}"

    def check_file(self, filename: str, size_bytes: int) -> None:
        """
        Reject files we won't store.

        Raises:
            DocumentUploadError: If the file is too large or the format is unsupported
        """
        max_bytes = self._app_settings.max_upload_size_bytes
        if size_bytes > max_bytes:
            raise DocumentUploadError(
                f"File too large. Maximum size is {self._app_settings.max_upload_size_mb} MB."
            )

        extension = PurePosixPath(filename).suffix.lstrip(".").lower()
        supported = self._app_settings.supported_formats_list
        if extension not in supported:
            raise DocumentUploadError(
                f"Unsupported file type '.{extension}'. "
                f"Supported formats: {', '.join(supported)}"
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DocumentUploadError),
        reraise=True,
    )
    async def upload_document(
        self,
        file_bytes: bytes,
        filename: str,
        user_id: str,
        kind: DocumentKind,
    ) -> str:
        """
        Upload a supporting document.

        Args:
            file_bytes: Raw file content (image or PDF)
            filename: Original file name, used for the extension and the stored name
            user_id: Owner; decides the folder
            kind: Document kind; decides the sub-folder

        Returns:
            The secure delivery URL

        Raises:
            DocumentUploadError: If the file is rejected or the upload fails
        """
        self.check_file(filename, len(file_bytes))
        self._configure()

        public_id = self.build_public_id(user_id, kind, filename)
        try:
            result = cloudinary.uploader.upload(
                file_bytes,
                public_id=public_id,
                resource_type="auto",
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise DocumentUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise DocumentUploadError(f"Failed to upload document: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise DocumentUploadError("No URL returned from Cloudinary")
        return url

    def parse_url(self, url: str) -> tuple[str, str]:
        """
        Split a delivery URL into (resource_type, public_id).

        Raises:
            DocumentDeleteError: If the URL isn't a Cloudinary delivery URL
        """
        match = _DELIVERY_PATH.search(urlparse(url).path)
        if not match:
            raise DocumentDeleteError(f"Not a Cloudinary document URL: {url}")

        resource_type = match.group("resource_type")
        public_id = unquote(match.group("public_id"))
        # Raw files keep their extension in the public id
        if resource_type != "raw":
            public_id = str(PurePosixPath(public_id).with_suffix(""))
        return resource_type, public_id

    async def delete_document(self, url: str, user_id: str) -> bool:
        """
        Delete a document the user owns.

        Returns:
            True if Cloudinary reported the file deleted, False if it was already gone

        Raises:
            DocumentDeleteError: If the URL is outside the user's folder or the call fails
        """
        resource_type, public_id = self.parse_url(url)
        if not public_id.startswith(self.user_folder(user_id) + "/"):
            raise DocumentDeleteError("Document does not belong to this user")

        self._configure()
        try:
            result = cloudinary.uploader.destroy(
                public_id,
                resource_type=resource_type,
                invalidate=True,
            )
        except cloudinary.exceptions.Error as e:
            raise DocumentDeleteError(f"Cloudinary error: {e}")
        except Exception as e:
            raise DocumentDeleteError(f"Failed to delete document: {e}")

        return result.get("result") == "ok"
