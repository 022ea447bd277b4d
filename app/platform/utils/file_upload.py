import uuid
from pathlib import Path
from typing import Optional

from app.platform.config import settings

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}

_EXTENSION_BY_TYPE = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


class LocalBlobStore:
    """
    Durable storage for uploaded audit screenshots.

    Files are written under UPLOAD_DIR and served by the /static mount,
    so the returned URL is relative to the API host.
    """

    def __init__(self, upload_dir: Optional[str] = None, public_prefix: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.public_prefix = (public_prefix or settings.UPLOAD_PUBLIC_PREFIX).rstrip("/")

    async def put(self, data: bytes, name: str, content_type: Optional[str] = None) -> str:
        """
        Save bytes and return their public URL.

        Raises:
            ValueError: If the payload is empty or too large
            OSError: If the file can't be written
        """
        if not data:
            raise ValueError("Refusing to store an empty file")
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise ValueError(
                f"File too large. Maximum size is {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB"
            )

        self.upload_dir.mkdir(parents=True, exist_ok=True)

        # Generate unique filename
        file_ext = Path(name or "").suffix.lower()
        if file_ext not in ALLOWED_EXTENSIONS:
            file_ext = _EXTENSION_BY_TYPE.get(content_type or "", ".png")
        unique_filename = f"{uuid.uuid4().hex}{file_ext}"
        file_path = self.upload_dir / unique_filename

        with open(file_path, "wb") as f:
            f.write(data)

        return f"{self.public_prefix}/{unique_filename}"
