"""
Google AI Studio service for Gemini image generation.

All image work (composite, pose grid, color grid, hi-res, garment mask) goes
through generate_image: prompt + inline images in, one base64 image out.
"""
import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import types

from core.config import settings
from core.exceptions import DecodeError, GenerationError
from utils.image_codec import strip_data_url

logger = logging.getLogger(__name__)


@dataclass
class InlineImagePart:
    """Image sent inline with a prompt."""

    data: str  # Base64, with or without data URL prefix
    mime_type: str = "image/png"


def is_overloaded_error(error: Exception) -> bool:
    error_str = str(error)
    return "503" in error_str or "overloaded" in error_str.lower() or "UNAVAILABLE" in error_str


def extract_image_b64(response: Any) -> Optional[str]:
    """
    Return the first inline image of a generate_content response as base64.

    The SDK may expose parts directly on the response or nested in
    candidates[0].content.parts. Image bytes may be raw PNG/JPEG or bytes of
    an already base64-encoded string.
    """
    parts = None
    if getattr(response, "parts", None):
        parts = response.parts
    elif getattr(response, "candidates", None):
        candidate = response.candidates[0]
        content = getattr(candidate, "content", None)
        if content is not None and getattr(content, "parts", None):
            parts = content.parts

    if not parts:
        logger.warning(f"[GoogleAI] Response has no parts: {type(response)}")
        return None

    for part in parts:
        text = getattr(part, "text", None)
        if text is not None:
            logger.info(f"[GoogleAI] Text response: {text[:200]}...")
            continue

        inline_data = getattr(part, "inline_data", None)
        if inline_data is None or not inline_data.data:
            continue

        image_data = inline_data.data
        if isinstance(image_data, str):
            return strip_data_url(image_data)
        if not isinstance(image_data, (bytes, bytearray)):
            logger.error(f"[GoogleAI] Unexpected image data type: {type(image_data)}")
            continue

        # Raw PNG: 89504e47, raw JPEG: ffd8ff; anything else is base64 text
        first_hex = bytes(image_data[:4]).hex()
        if first_hex.startswith("89504e47") or first_hex.startswith("ffd8ff"):
            return base64.b64encode(image_data).decode("utf-8")
        return bytes(image_data).decode("utf-8")

    return None


class GoogleAIStudioService:
    """Service for Google AI Studio integration"""

    def __init__(self):
        """Initialize Google AI Studio service"""
        self.api_key = settings.google_ai_api_key
        self.model = settings.google_ai_image_model
        self.timeout_seconds = settings.google_ai_timeout_seconds
        self.usage_stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "total_processing_time": 0.0,
            "last_reset": datetime.now(),
        }

        if self.api_key:
            self.genai_client = genai.Client(api_key=self.api_key)
            self.genai_configured = True

            if len(self.api_key) > 12:
                masked_key = f"{self.api_key[:8]}...{self.api_key[-4:]}"
                logger.info(f"Google AI API Key loaded: {masked_key}")
        else:
            self.genai_configured = False
            self.genai_client = None
            logger.warning("Google AI API key not configured - image generation will not be available")

        logger.info(f"Google AI Studio service initialized with model {self.model}")

    def _build_contents(self, prompt: str, images: Sequence[InlineImagePart]) -> List[Any]:
        contents: List[Any] = [prompt]
        for image in images:
            try:
                raw = base64.b64decode(strip_data_url(image.data).strip())
            except (binascii.Error, ValueError) as e:
                raise DecodeError(f"Invalid base64 image data: {e}") from e
            contents.append(types.Part.from_bytes(data=raw, mime_type=image.mime_type or "image/png"))
        return contents

    async def generate_image(
        self,
        prompt: str,
        images: Sequence[InlineImagePart] = (),
        max_retries: Optional[int] = None,
        label: str = "generate_image",
    ) -> str:
        """
        Generate one image from a prompt and inline reference images.

        Args:
            prompt: Text prompt sent verbatim
            images: Reference images, in prompt order (Image1, Image2, ...)
            max_retries: Transport attempts (defaults to settings)
            label: Name used in log lines

        Returns:
            Base64 image without data URL prefix

        Raises:
            GenerationError: not configured, or no image after all attempts
            DecodeError: an inline image is not valid base64
        """
        if not self.genai_configured:
            raise GenerationError("Google AI API key not configured")

        max_retries = max_retries or settings.google_ai_max_retries
        contents = self._build_contents(prompt, images)
        last_error: Optional[Exception] = None

        def _run_generate():
            """Run the blocking generate_content call in a separate thread"""
            response = self.genai_client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    temperature=settings.google_ai_temperature,
                ),
            )
            return extract_image_b64(response)

        for attempt in range(max_retries):
            start_time = time.time()
            self.usage_stats["total_requests"] += 1
            logger.info(f"[GoogleAI] {label} attempt {attempt + 1}/{max_retries} ({len(images)} images)")

            try:
                loop = asyncio.get_running_loop()
                image_b64 = await asyncio.wait_for(
                    loop.run_in_executor(None, _run_generate), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError as e:
                last_error = e
                self.usage_stats["failed_requests"] += 1
                logger.error(f"[GoogleAI] {label} attempt {attempt + 1} timed out after {self.timeout_seconds}s")
                continue
            except Exception as e:
                last_error = e
                self.usage_stats["failed_requests"] += 1
                if attempt < max_retries - 1:
                    if is_overloaded_error(e):
                        wait_time = 4 * (2**attempt)  # 4, 8, 16...
                        logger.warning(f"[GoogleAI] Model overloaded (503), retrying in {wait_time}s...")
                    else:
                        wait_time = 2 ** (attempt + 1)  # 2, 4, 8...
                        logger.error(f"[GoogleAI] {label} attempt {attempt + 1} failed: {e}; retrying in {wait_time}s")
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"[GoogleAI] {label} attempt {attempt + 1} failed: {e}")
                continue

            if image_b64:
                processing_time = time.time() - start_time
                self.usage_stats["successful_requests"] += 1
                self.usage_stats["total_processing_time"] += processing_time
                logger.info(f"[GoogleAI] {label} succeeded on attempt {attempt + 1} in {processing_time:.2f}s")
                return image_b64

            self.usage_stats["failed_requests"] += 1
            logger.warning(f"[GoogleAI] {label} attempt {attempt + 1} produced no image")

        message = f"{label}: no image returned after {max_retries} attempts"
        if last_error is not None:
            message += f" (last error: {last_error})"
        raise GenerationError(message)

    async def get_usage_statistics(self) -> Dict[str, Any]:
        """Get API usage statistics"""
        return {
            **self.usage_stats,
            "success_rate": (self.usage_stats["successful_requests"] / max(self.usage_stats["total_requests"], 1) * 100),
            "average_processing_time": (
                self.usage_stats["total_processing_time"] / max(self.usage_stats["successful_requests"], 1)
            ),
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check (lists the configured model, no generation)"""
        if not self.genai_configured:
            return {"status": "unconfigured", "api_key_valid": False, "model": self.model}

        try:
            start_time = time.time()
            loop = asyncio.get_running_loop()
            await asyncio.wait_for(
                loop.run_in_executor(None, lambda: self.genai_client.models.get(model=self.model)), timeout=10
            )
            return {
                "status": "healthy",
                "response_time": time.time() - start_time,
                "api_key_valid": True,
                "model": self.model,
                "usage_stats": await self.get_usage_statistics(),
            }
        except Exception as e:
            return {"status": "unhealthy", "error": str(e), "api_key_valid": bool(self.api_key), "model": self.model}


# Global service instance
google_ai_service = GoogleAIStudioService()
