# =============================================================================
# Image Compression Integration (serverless function)
# =============================================================================
#
# Setup:
#   COMPRESSION_FUNCTION_URL=https://.../functions/v1/compress-image
#   COMPRESSION_API_KEY=...            (sent as a bearer token)
#
# The function takes a base64 image and returns a WebP data URL. It is
# treated as opaque: the client only shapes the request and checks the
# reply. Failures are raised, never retried.
#
# =============================================================================

import base64
import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from elan.config import get_settings

logger = logging.getLogger(__name__)


class CompressionError(Exception):
    """The compression function failed or could not be reached."""

    pass


class CompressionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_data: str  # base64, with or without a data: prefix
    max_width: int = 1920
    quality: int = Field(default=80, ge=1, le=100)
    filename: str | None = None


class CompressionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    compressed_data: str | None = None  # data:image/webp;base64,...
    original_size: int = 0
    compressed_size: int = 0
    compression_ratio: float = 0.0
    error: str | None = None

    @property
    def bytes_saved(self) -> int:
        return max(self.original_size - self.compressed_size, 0)

    def decoded(self) -> bytes:
        """The compressed image bytes."""
        if not self.compressed_data:
            raise CompressionError("No compressed data returned")
        payload = self.compressed_data.split(",", 1)[-1]
        return base64.b64decode(payload)


class CompressionClient:
    """Client for the image compression function."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = get_settings()
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.settings.use_compression_function

    async def compress(
        self,
        data: bytes,
        filename: str | None = None,
        max_width: int | None = None,
        quality: int | None = None,
    ) -> CompressionResult:
        """
        Compress one image.

        Raises CompressionError when the function is not configured, the
        call fails, or the function reports `success: false`.
        """
        if not self.is_configured:
            raise CompressionError("Compression function not configured")

        request = CompressionRequest(
            image_data=base64.b64encode(data).decode("ascii"),
            max_width=max_width or self.settings.compression_max_width,
            quality=quality or self.settings.compression_quality,
            filename=filename,
        )

        headers = {}
        if self.settings.compression_api_key:
            headers["Authorization"] = f"Bearer {self.settings.compression_api_key}"

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.compression_timeout_seconds,
            ) as client:
                response = await client.post(
                    self.settings.compression_function_url,
                    json=request.model_dump(by_alias=True, exclude_none=True),
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"Compression request for {filename} failed: {e}")
            raise CompressionError(f"Compression request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Compression function returned {response.status_code}: {response.text}")
            raise CompressionError(f"Compression failed: {response.status_code}")

        result = CompressionResult.model_validate(response.json())
        if not result.success:
            raise CompressionError(result.error or "Compression failed")

        logger.info(
            f"Compressed {filename}: {result.original_size} -> {result.compressed_size} bytes "
            f"({result.compression_ratio:.1f}%)"
        )
        return result
