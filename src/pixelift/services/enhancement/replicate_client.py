"""Replicate API client for image enhancement with error classification."""

import asyncio
import io
import time
from typing import Any

import httpx
import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from pixelift.services.enhancement.base import EnhancementResult
from pixelift.services.exceptions import (
    EnhancementError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from pixelift.services.image_validation import sniff_mime_type


def classify_error(exception: Exception) -> EnhancementError:
    """Classify exception into the enhancement error taxonomy.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified EnhancementError subclass instance

    Classification rules:
        - Timeout errors → UpstreamTimeoutError
        - 429 (rate limit) → UpstreamServiceError
        - 503 (service unavailable) → UpstreamServiceError
        - 401/403 (authentication) → UpstreamServiceError
        - Content policy violations → UpstreamServiceError
        - Connection errors → UpstreamServiceError
        - Anything else → UpstreamServiceError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if isinstance(exception, (TimeoutError, httpx.TimeoutException)) or (
        "timeout" in error_message_lower or "timed out" in error_message_lower
    ):
        return UpstreamTimeoutError(f"Enhancement service timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return UpstreamServiceError(f"Rate limit exceeded: {error_message}")

    if "503" in error_message or "service unavailable" in error_message_lower:
        return UpstreamServiceError(f"Service unavailable: {error_message}")

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return UpstreamServiceError(f"Authentication failed: {error_message}")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
    ):
        return UpstreamServiceError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError, httpx.TransportError)):
        return UpstreamServiceError(f"Connection error: {error_message}")

    return UpstreamServiceError(f"Enhancement service error: {error_message}")


class ReplicateEnhancementClient:
    """Enhancement service backed by a Replicate upscaling/restoration model."""

    def __init__(self, api_token: str, model_version: str, download_timeout: float = 30.0):
        """Initialize Replicate client.

        Args:
            api_token: Replicate API token (from REPLICATE_API_TOKEN env var)
            model_version: Model identifier, "owner/name" or "owner/name:version"
            download_timeout: Timeout for fetching the model output (seconds)
        """
        self.api_token = api_token
        self.model_id = model_version
        self.download_timeout = download_timeout

    async def enhance(self, image: bytes, mime_type: str) -> EnhancementResult:
        """Enhance image bytes with the configured Replicate model.

        Args:
            image: Source image bytes
            mime_type: Source image MIME type

        Returns:
            EnhancementResult with the enhanced bytes

        Raises:
            UpstreamTimeoutError: The service or the output download timed out
            UpstreamServiceError: Any other service failure, including empty output
        """
        if not self.api_token:
            raise UpstreamServiceError("REPLICATE_API_TOKEN not configured")

        start_time = time.monotonic()

        def _run_replicate() -> Any:
            # SDK is synchronous; FileOutput bodies are read in the same worker thread
            client = replicate.Client(api_token=self.api_token)
            output = client.run(self.model_id, input={"image": io.BytesIO(image)})
            if isinstance(output, list):
                output = output[0] if output else None
            if hasattr(output, "read"):
                return output.read()
            return output

        try:
            output = await asyncio.to_thread(_run_replicate)

            # Older SDK releases return the CDN URL instead of a file object
            if isinstance(output, str):
                async with httpx.AsyncClient(timeout=self.download_timeout) as client:
                    response = await client.get(output)
                    response.raise_for_status()
                    output = response.content

        except ReplicateAPIError as e:
            raise classify_error(e) from e

        except (ConnectionError, OSError, TimeoutError, httpx.HTTPError) as e:
            raise classify_error(e) from e

        except Exception as e:
            raise UpstreamServiceError(f"Unexpected error: {e}") from e

        if not isinstance(output, (bytes, bytearray)) or not output:
            raise UpstreamServiceError(
                f"Unexpected output format from Replicate: {type(output).__name__}"
            )

        enhanced = bytes(output)
        return EnhancementResult(
            image=enhanced,
            mime_type=sniff_mime_type(enhanced) or mime_type,
            confidence=None,
            analysis={"model": self.model_id},
            processing_time=time.monotonic() - start_time,
        )
