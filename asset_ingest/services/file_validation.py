"""Upload file validation."""

import io

from PIL import Image, UnidentifiedImageError

from asset_ingest.errors import UploadValidationError
from asset_ingest.schemas.upload_job import UploadFilePayload


ALLOWED_MIME_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/gif",
        "image/webp",
        "audio/mpeg",
        "audio/ogg",
        "audio/wav",
        "model/gltf-binary",
        "model/gltf+json",
        "application/octet-stream",  # FBX and other binary formats
    }
)

MIN_MEDIA_SIZE_BYTES = 100


def detect_mime_type(upload: UploadFilePayload) -> str:
    """Detect the MIME type from the content, falling back to the declared one.

    Only images are sniffed (via Pillow); everything else keeps the declared type.
    """
    try:
        with Image.open(io.BytesIO(upload.content)) as img:
            detected = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError, ValueError):
        detected = None
    return detected or upload.mime_type


class FileValidationService:
    """Reject uploads that are too large, of an unsupported type or corrupted."""

    def __init__(self, max_file_size: int = 10 * 1024 * 1024):
        self.max_file_size = max_file_size

    def validate_file(self, upload: UploadFilePayload) -> str:
        """
        Validate one uploaded file.

        Args:
            upload: File to validate

        Returns:
            The effective MIME type

        Raises:
            UploadValidationError: If the file is rejected
        """
        size = len(upload.content)
        if size > self.max_file_size:
            raise UploadValidationError(
                f"File {upload.original_name} exceeds maximum size of "
                f"{self.max_file_size / 1024 / 1024:.0f}MB"
            )

        mime_type = detect_mime_type(upload)
        if mime_type not in ALLOWED_MIME_TYPES:
            raise UploadValidationError(
                f"File {upload.original_name} has unsupported MIME type: {mime_type}"
            )

        if mime_type.startswith(("image/", "audio/")) and size < MIN_MEDIA_SIZE_BYTES:
            raise UploadValidationError(
                f"File {upload.original_name} appears to be corrupted (too small)"
            )

        if mime_type.startswith("image/"):
            self._validate_image(upload)

        return mime_type

    def _validate_image(self, upload: UploadFilePayload) -> None:
        try:
            with Image.open(io.BytesIO(upload.content)) as img:
                img.verify()
        except Exception as e:
            raise UploadValidationError(
                f"File {upload.original_name} appears to be corrupted: {e}"
            ) from e
