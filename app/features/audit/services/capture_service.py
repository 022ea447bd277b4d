import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from urllib.parse import quote

import httpx

from app.features.audit.schemas.audit import (
    CapturedImage,
    CaptureKind,
    CaptureTarget,
    UploadedFile,
)
from app.platform.config import settings
from app.platform.logger import get_logger
from app.platform.utils.file_upload import LocalBlobStore

logger = get_logger(__name__)


class CaptureService:
    """
    Turns a capture target into an image the model can look at.

    URLs go through the remote screenshot renderer, which is often cold:
    it answers with a tiny placeholder image until the real render is
    ready, so small payloads are retried like errors. Uploads are passed
    through and copied to durable storage on a best-effort basis.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        blob_store: Optional[LocalBlobStore] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        min_bytes: Optional[int] = None,
        render_timeout: Optional[float] = None,
    ):
        self._http_client = http_client
        self.blob_store = blob_store or LocalBlobStore()
        self.max_attempts = max_attempts if max_attempts is not None else settings.CAPTURE_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.CAPTURE_RETRY_DELAY_SECONDS
        self.min_bytes = min_bytes if min_bytes is not None else settings.CAPTURE_MIN_BYTES
        self.render_timeout = render_timeout if render_timeout is not None else settings.RENDER_TIMEOUT_SECONDS

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.render_timeout, follow_redirects=True) as client:
            yield client

    async def capture(self, target: CaptureTarget) -> Optional[CapturedImage]:
        if target.kind == CaptureKind.url:
            return await self.capture_url(target.url)
        return await self.capture_upload(target.upload)

    @staticmethod
    def renderer_url(target_url: str) -> str:
        return settings.SCREENSHOT_RENDERER_URL.format(url=quote(target_url, safe=""))

    async def capture_url(self, target_url: str) -> Optional[CapturedImage]:
        """
        Render a URL to an image.

        Returns None once every attempt is used up; the caller decides
        whether a missing page is fatal.
        """
        render_url = self.renderer_url(target_url)

        async with self._client() as client:
            for attempt in range(1, self.max_attempts + 1):
                if attempt > 1:
                    await asyncio.sleep(self.retry_delay)

                try:
                    response = await client.get(render_url, timeout=self.render_timeout)
                except httpx.HTTPError as e:
                    logger.warning(
                        f"Renderer request failed for {target_url} "
                        f"(attempt {attempt}/{self.max_attempts}): {e}"
                    )
                    continue

                size = len(response.content)
                if response.status_code < 400 and size > self.min_bytes:
                    logger.info(f"Captured {target_url} ({size} bytes, attempt {attempt}/{self.max_attempts})")
                    return CapturedImage(
                        data=response.content,
                        mime_type=_image_mime(response.headers.get("content-type")),
                        public_url=render_url,
                        source=target_url,
                    )

                logger.warning(
                    f"Renderer not ready for {target_url}: status={response.status_code}, "
                    f"{size} bytes (attempt {attempt}/{self.max_attempts})"
                )

        logger.error(f"Giving up on {target_url} after {self.max_attempts} attempts")
        return None

    async def capture_upload(self, upload: Optional[UploadedFile]) -> Optional[CapturedImage]:
        """
        Accept an uploaded screenshot.

        Storage is best effort: if it fails the in-memory bytes are still
        used for inference and the public URL is left empty.
        """
        if upload is None or not upload.data:
            logger.warning("Skipping empty upload")
            return None

        content_type = (upload.content_type or "").split(";")[0].strip().lower()
        if not content_type.startswith("image/"):
            logger.warning(f"Skipping upload {upload.filename!r}: unsupported content type {upload.content_type!r}")
            return None

        public_url = ""
        try:
            public_url = await self.blob_store.put(upload.data, upload.filename, content_type)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not store upload {upload.filename!r}, continuing without public URL: {e}")

        return CapturedImage(
            data=upload.data,
            mime_type=content_type,
            public_url=public_url,
            source=upload.filename,
        )


def _image_mime(content_type: Optional[str]) -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    return mime if mime.startswith("image/") else "image/jpeg"
