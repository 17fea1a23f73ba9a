"""
Image Analyzer - Vision-model analysis of post images
Sends the image to the vision provider and normalizes the answer into a
VisualSummary. Unparseable answers are rated "caution".
"""

import base64
import logging
from typing import Optional

import httpx

from llm_provider import LLMProvider
from response_parsers import parse_visual_summary
from retry_policy import PermanentCapabilityError, raise_for_capability_status
from vetting_models import MediaAnalysisRecord

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024   # Provider limit for inline images
IMAGE_FETCH_TIMEOUT = 30.0
IMAGE_MAX_TOKENS = 1024

IMAGE_ANALYSIS_SYSTEM_PROMPT = """You are a brand-safety analyst reviewing a single image from a creator's social media post.

Describe what is visible and assess whether a brand would be comfortable appearing next to it.

Respond with ONLY valid JSON (no markdown, no code fences):
{
    "description": "2-3 sentence description of the image",
    "brands": [{"brand": "name", "confidence": "high" | "medium" | "low", "context": "where/how it appears", "appears_sponsored": true | false}],
    "actions": [{"action": "what a person is doing", "is_concerning": true | false, "reason": "why, if concerning"}],
    "text_detections": [{"text": "visible text", "context": "sign, caption overlay, product label..."}],
    "scene": {"setting": "...", "mood": "...", "content_type": "...", "concerns": ["..."]},
    "safety_rating": "safe" | "caution" | "unsafe",
    "safety_summary": "one sentence explaining the rating"
}

Rate "unsafe" only for content no brand would accept (nudity, graphic violence, hate symbols, drug use).
Rate "caution" for alcohol, gambling, weapons, political imagery or anything context-dependent."""

IMAGE_ANALYSIS_USER_PROMPT = "Analyze this image for brand safety. Respond with JSON only."


def sniff_image_media_type(data: bytes, content_type: Optional[str] = None) -> str:
    """Media type from magic bytes, then the declared type, then JPEG."""
    if data[:4] == b"\x89PNG":
        return "image/png"
    if data[:3] == b"GIF":
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if content_type:
        declared = content_type.split(";", 1)[0].strip().lower()
        if declared in ("image/png", "image/gif", "image/webp", "image/jpeg"):
            return declared
    return "image/jpeg"


class ImageAnalyzer:
    """Image-understanding capability backed by a vision model."""

    def __init__(self, provider: LLMProvider, http_client: Optional[httpx.AsyncClient] = None):
        self.provider = provider
        self.client = http_client or httpx.AsyncClient(timeout=IMAGE_FETCH_TIMEOUT, follow_redirects=True)

    async def __aenter__(self) -> "ImageAnalyzer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def is_configured(self) -> bool:
        return self.provider.is_configured

    async def _fetch(self, locator: str) -> tuple[bytes, Optional[str]]:
        response = await self.client.get(locator)
        raise_for_capability_status(response, "Image fetch")
        return response.content, response.headers.get("content-type")

    async def analyze(
        self,
        locator: str,
        data: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> MediaAnalysisRecord:
        """
        Analyze one image, downloading it first when no bytes are given.

        Raises capability errors for fetch/provider failures so the
        scheduler can decide whether to retry.
        """
        if data is None:
            data, content_type = await self._fetch(locator)

        if not data:
            raise PermanentCapabilityError(f"Empty image payload for {locator}")
        if len(data) > MAX_IMAGE_BYTES:
            raise PermanentCapabilityError(
                f"Image too large ({len(data)} bytes, limit {MAX_IMAGE_BYTES})"
            )

        media_type = sniff_image_media_type(data, content_type)
        encoded = base64.standard_b64encode(data).decode("ascii")

        text = await self.provider.complete(
            IMAGE_ANALYSIS_SYSTEM_PROMPT,
            IMAGE_ANALYSIS_USER_PROMPT,
            max_tokens=IMAGE_MAX_TOKENS,
            images=[(media_type, encoded)],
        )

        summary = parse_visual_summary(text, fallback_rating="caution")
        logger.info(f"🖼️ Image analyzed: rating={summary.safety_rating}, brands={len(summary.brands)}")
        return MediaAnalysisRecord(kind="image", visual_summary=summary)

    async def close(self) -> None:
        await self.client.aclose()
