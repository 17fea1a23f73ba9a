"""
Video Analyzer - Video-understanding capability (Twelve Labs API)
Index the video, wait for processing, then fetch the transcript and a
structured brand-safety summary.
"""

import asyncio
import logging
import os
import time
from typing import Awaitable, Callable, Optional

import httpx

from batch_config import (
    VIDEO_POLL_BACKOFF,
    VIDEO_POLL_INTERVAL_SECONDS,
    VIDEO_POLL_MAX_SECONDS,
    VIDEO_POLL_MIN_SECONDS,
    VIDEO_PROCESSING_TIMEOUT_SECONDS,
)
from media_router import classify_bytes
from response_parsers import parse_video_analysis
from retry_policy import (
    PermanentCapabilityError,
    ProcessingTimeoutError,
    raise_for_capability_status,
)
from vetting_models import IndexingMetadata, MediaAnalysisRecord, Transcript, TranscriptSegment

logger = logging.getLogger(__name__)

VIDEO_API_BASE = "https://api.twelvelabs.io/v1.3"
DEFAULT_INDEX_NAME = "creator-brand-safety"
REQUEST_TIMEOUT = 60.0             # Per HTTP request, uploads included
ESTIMATE_POLL_FRACTION = 0.3       # Poll after 30% of the server's estimated remaining time

INDEX_MODELS = [
    {"model_name": "marengo3.0", "model_options": ["visual", "audio"]},
    {"model_name": "pegasus1.2", "model_options": ["visual", "audio"]},
]

VIDEO_ANALYSIS_PROMPT = """Analyze this video for brand safety. Respond with ONLY valid JSON (no markdown):
{
    "description": "3-4 sentence description of what happens in the video",
    "brands": [{"brand": "name", "confidence": 0.0-1.0, "context": "how it appears", "appears_sponsored": true | false, "start_time": seconds, "end_time": seconds}],
    "actions": [{"action": "...", "is_concerning": true | false, "reason": "..."}],
    "text_detections": [{"text": "on-screen text", "context": "..."}],
    "scene": {"setting": "...", "mood": "...", "content_type": "...", "concerns": ["..."]},
    "logos": [{"brand": "name", "confidence": 0.0-1.0, "start_time": seconds, "end_time": seconds}],
    "category_scores": {"profanity": 0-100, "violence": 0-100, "adult": 0-100, "substances": 0-100, "controversial": 0-100, "dangerous": 0-100, "political": 0-100},
    "safety_rating": "safe" | "caution" | "unsafe",
    "safety_summary": "one sentence explaining the rating"
}
Only list concerns you can actually see or hear. An ordinary lifestyle video with no concerns is "safe"."""


class IndexCache:
    """Index name -> index id, owned by one analyzer. clear() forgets everything."""

    def __init__(self):
        self._ids: dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        return self._ids.get(name)

    def set(self, name: str, index_id: str) -> None:
        self._ids[name] = index_id

    def clear(self) -> None:
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._ids)


class VideoAnalyzer:
    """Submit -> poll -> fetch client for the video-understanding API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = VIDEO_API_BASE,
        index_name: str = DEFAULT_INDEX_NAME,
        index_cache: Optional[IndexCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        processing_timeout: float = VIDEO_PROCESSING_TIMEOUT_SECONDS,
        poll_interval: float = VIDEO_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize with an API key (defaults to TWELVE_LABS_API_KEY)."""
        self.api_key = api_key if api_key is not None else os.environ.get("TWELVE_LABS_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.index_name = index_name
        self.index_cache = index_cache or IndexCache()
        self.client = http_client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        self.processing_timeout = processing_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def __aenter__(self) -> "VideoAnalyzer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def _headers(self) -> dict:
        return {"x-api-key": self.api_key}

    # ------------------------------------------------------------------ #
    #  Index and task management                                         #
    # ------------------------------------------------------------------ #

    async def get_or_create_index(self) -> str:
        cached = self.index_cache.get(self.index_name)
        if cached:
            return cached

        response = await self.client.get(
            f"{self.base_url}/indexes",
            params={"index_name": self.index_name},
            headers=self._headers,
        )
        raise_for_capability_status(response, "List indexes")
        for index in response.json().get("data") or []:
            if index.get("index_name") == self.index_name:
                logger.info(f"Using existing video index {index['_id']}")
                self.index_cache.set(self.index_name, index["_id"])
                return index["_id"]

        response = await self.client.post(
            f"{self.base_url}/indexes",
            json={"index_name": self.index_name, "models": INDEX_MODELS},
            headers=self._headers,
        )
        raise_for_capability_status(response, "Create index")
        index_id = response.json()["_id"]
        logger.info(f"Created video index {index_id}")
        self.index_cache.set(self.index_name, index_id)
        return index_id

    async def create_task(
        self,
        index_id: str,
        locator: str,
        data: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """Start indexing from a URL or from uploaded bytes; returns the task id."""
        if data is not None:
            if classify_bytes(data) != "video":
                raise PermanentCapabilityError("Uploaded bytes are not a recognizable video container")
            filename = locator.rsplit("/", 1)[-1].split("?", 1)[0] or "video.mp4"
            files = {
                "index_id": (None, index_id),
                "video_file": (filename, data, content_type or "video/mp4"),
            }
        else:
            files = {
                "index_id": (None, index_id),
                "video_url": (None, locator),
            }

        response = await self.client.post(f"{self.base_url}/tasks", files=files, headers=self._headers)
        raise_for_capability_status(response, "Create task")
        return response.json()["_id"]

    def _next_poll_interval(self, current: float, estimated_time) -> float:
        if isinstance(estimated_time, (int, float)) and estimated_time > 0:
            wait = estimated_time * ESTIMATE_POLL_FRACTION
        else:
            wait = current * VIDEO_POLL_BACKOFF
        return min(max(wait, VIDEO_POLL_MIN_SECONDS), VIDEO_POLL_MAX_SECONDS)

    async def wait_for_indexing(self, task_id: str) -> Optional[IndexingMetadata]:
        """
        Poll the task until it is ready or failed.

        Returns None when processing failed. Raises ProcessingTimeoutError
        once the absolute timeout is spent.
        """
        deadline = self._clock() + self.processing_timeout
        interval = self.poll_interval
        polls = 0

        while True:
            response = await self.client.get(f"{self.base_url}/tasks/{task_id}", headers=self._headers)
            raise_for_capability_status(response, "Task status")
            data = response.json()
            status = data.get("status")
            polls += 1

            if status == "ready":
                system_metadata = data.get("system_metadata") or data.get("metadata") or {}
                logger.info(f"🎬 Indexing complete for task {task_id} after {polls} polls")
                return IndexingMetadata(
                    index_id=data.get("index_id", ""),
                    video_id=data.get("video_id", ""),
                    task_id=task_id,
                    duration=system_metadata.get("duration"),
                )
            if status == "failed":
                logger.error(f"Indexing failed for task {task_id}: {data.get('error_message')}")
                return None

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ProcessingTimeoutError(
                    f"Indexing timed out after {self.processing_timeout:.0f}s (task {task_id})"
                )
            interval = self._next_poll_interval(interval, data.get("estimated_time"))
            await self._sleep(min(interval, remaining))

    # ------------------------------------------------------------------ #
    #  Results                                                           #
    # ------------------------------------------------------------------ #

    async def get_transcript(self, index_id: str, video_id: str) -> Transcript:
        response = await self.client.get(
            f"{self.base_url}/indexes/{index_id}/videos/{video_id}",
            params={"transcription": "true"},
            headers=self._headers,
        )
        # Videos without speech have no transcription
        if response.status_code == 404:
            return Transcript(text="")
        raise_for_capability_status(response, "Transcript")

        segments = [
            TranscriptSegment(
                start=float(seg.get("start", 0) or 0),
                end=float(seg.get("end", 0) or 0),
                text=str(seg.get("value", "")),
            )
            for seg in response.json().get("transcription") or []
        ]
        return Transcript(text=" ".join(s.text for s in segments).strip(), segments=segments)

    async def summarize(self, video_id: str) -> str:
        response = await self.client.post(
            f"{self.base_url}/summarize",
            json={"video_id": video_id, "type": "summary", "prompt": VIDEO_ANALYSIS_PROMPT},
            headers=self._headers,
        )
        raise_for_capability_status(response, "Summarize")
        return response.json().get("summary") or ""

    async def analyze(
        self,
        locator: str,
        data: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> Optional[MediaAnalysisRecord]:
        """
        Full analysis of one video.

        Returns None when remote processing failed; raises capability
        errors for everything the scheduler may want to retry.
        """
        if not self.is_configured:
            raise PermanentCapabilityError("Video analysis is not configured (no TWELVE_LABS_API_KEY)")

        index_id = await self.get_or_create_index()
        task_id = await self.create_task(index_id, locator, data, content_type)
        indexing = await self.wait_for_indexing(task_id)
        if indexing is None:
            return None

        transcript, raw_summary = await asyncio.gather(
            self.get_transcript(indexing.index_id or index_id, indexing.video_id),
            self.summarize(indexing.video_id),
        )
        summary, logos, classification = parse_video_analysis(raw_summary)

        logger.info(
            f"🎬 Video analyzed: rating={summary.safety_rating}, "
            f"logos={len(logos)}, transcript_chars={len(transcript.text)}"
        )
        return MediaAnalysisRecord(
            kind="video",
            visual_summary=summary,
            transcript=transcript if transcript.text else None,
            indexing_metadata=indexing,
            detected_logos=logos,
            content_classification=classification,
        )

    async def close(self) -> None:
        await self.client.aclose()
