"""Creator Safety Vetting - Media Analysis Queue
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Dual-queue scheduler that turns a batch of media items into analysis
records.

Each media kind has its own lane:
  - a concurrency ceiling (asyncio.Semaphore)
  - a rolling-window admission limit (N starts per interval)
Video lanes are tighter than image lanes by default.

Every item is retried on transient errors with exponential backoff and
ends as a record or None. One item's failure never touches another; the
batch call returns once every item is terminal.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol

from batch_config import (
    IMAGE_CONCURRENCY,
    IMAGE_INTERVAL_SECONDS,
    MEDIA_RETRIES,
    MEDIA_RETRY_DELAY_SECONDS,
    VIDEO_CONCURRENCY,
    VIDEO_INTERVAL_SECONDS,
)
from rate_limiter import RollingWindowLimiter
from retry_policy import retry_async
from vetting_models import SAFETY_RATINGS, MediaAnalysisRecord, MediaItem

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]   # (completed, total, failed)


class MediaCapability(Protocol):
    """What the queue needs from a video or image backend."""

    @property
    def is_configured(self) -> bool: ...

    async def analyze(
        self, locator: str, data: Optional[bytes] = None, content_type: Optional[str] = None
    ) -> Optional[MediaAnalysisRecord]: ...


@dataclass
class MediaQueueOptions:
    video_concurrency: int = VIDEO_CONCURRENCY
    video_interval: float = VIDEO_INTERVAL_SECONDS
    image_concurrency: int = IMAGE_CONCURRENCY
    image_interval: float = IMAGE_INTERVAL_SECONDS
    retries: int = MEDIA_RETRIES
    retry_delay: float = MEDIA_RETRY_DELAY_SECONDS
    on_progress: Optional[ProgressCallback] = None


@dataclass
class QueueStats:
    total: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def pending(self) -> int:
        return self.total - self.completed


@dataclass
class MediaBatchSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    videos: int = 0
    images: int = 0
    rating_counts: dict[str, int] = field(default_factory=lambda: {r: 0 for r in SAFETY_RATINGS})
    brands_detected: int = 0
    average_safety_rating: str = "safe"


class _Lane:
    """Concurrency ceiling plus admission limiter for one media kind."""

    def __init__(self, kind: str, concurrency: int, interval: float):
        self.kind = kind
        self.semaphore = asyncio.Semaphore(concurrency)
        self.limiter = RollingWindowLimiter(concurrency, interval)
        self.pending = 0


class MediaAnalysisQueue:
    """Runs media batches against the video and image capabilities."""

    def __init__(
        self,
        video_capability: Optional[MediaCapability] = None,
        image_capability: Optional[MediaCapability] = None,
        options: Optional[MediaQueueOptions] = None,
    ):
        self.options = options or MediaQueueOptions()
        self.capabilities_by_kind = {"video": video_capability, "image": image_capability}
        self.lanes = {
            "video": _Lane("video", self.options.video_concurrency, self.options.video_interval),
            "image": _Lane("image", self.options.image_concurrency, self.options.image_interval),
        }
        self.stats = QueueStats()

    def is_available(self, kind: str) -> bool:
        capability = self.capabilities_by_kind.get(kind)
        return capability is not None and capability.is_configured

    def capabilities(self) -> dict[str, bool]:
        video = self.is_available("video")
        image = self.is_available("image")
        return {"video": video, "image": image, "any": video or image}

    @property
    def video_queue_size(self) -> int:
        return self.lanes["video"].pending

    @property
    def image_queue_size(self) -> int:
        return self.lanes["image"].pending

    def _record_completion(self, stats: QueueStats, success: bool, on_progress: Optional[ProgressCallback]) -> None:
        stats.completed += 1
        if not success:
            stats.failed += 1
        if on_progress is None:
            return
        try:
            on_progress(stats.completed, stats.total, stats.failed)
        except Exception as e:
            logger.warning(f"Progress callback raised: {e}")

    async def _attempt(self, lane: _Lane, capability: MediaCapability, item: MediaItem):
        async with lane.semaphore:
            await lane.limiter.acquire()
            return await capability.analyze(item.locator, item.raw_bytes, item.content_type)

    async def _process(self, item: MediaItem, stats: QueueStats, on_progress: Optional[ProgressCallback]) -> Optional[MediaAnalysisRecord]:
        lane = self.lanes[item.kind]
        capability = self.capabilities_by_kind[item.kind]
        lane.pending += 1
        try:
            record = await retry_async(
                lambda: self._attempt(lane, capability, item),
                retries=self.options.retries,
                base_delay=self.options.retry_delay,
                label=f"{item.kind} analysis of {item.id}",
            )
            if record is None:
                logger.warning(f"{item.kind} analysis of {item.id} produced no result")
        except Exception as e:
            logger.error(f"❌ {item.kind} analysis failed for {item.id}: {e}")
            record = None
        finally:
            lane.pending -= 1

        self._record_completion(stats, record is not None, on_progress)
        return record

    async def submit_batch(
        self,
        items: Iterable[MediaItem],
        on_progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Optional[MediaAnalysisRecord]]:
        """
        Analyze every item and return {item.id: record or None}.

        Items of a kind whose capability is not configured resolve to None
        immediately, without queueing or retries.
        """
        on_progress = on_progress or self.options.on_progress

        unique: dict[str, MediaItem] = {}
        for item in items:
            if item.id in unique:
                logger.warning(f"Duplicate media id {item.id} ignored")
                continue
            unique[item.id] = item

        results: dict[str, Optional[MediaAnalysisRecord]] = {}
        # Counters belong to this call; concurrent batches never share them
        stats = QueueStats(total=len(unique))
        if not unique:
            self.stats = stats
            return results

        queued: list[MediaItem] = []
        for item in unique.values():
            if item.kind not in self.lanes:
                logger.error(f"Media item {item.id} has unknown kind {item.kind!r}")
                results[item.id] = None
                self._record_completion(stats, False, on_progress)
            elif not self.is_available(item.kind):
                results[item.id] = None
                self._record_completion(stats, False, on_progress)
            else:
                queued.append(item)

        skipped = len(unique) - len(queued)
        logger.info(
            f"📦 Media batch: {len(unique)} items "
            f"({sum(1 for i in queued if i.kind == 'video')} video, "
            f"{sum(1 for i in queued if i.kind == 'image')} image queued, {skipped} skipped)"
        )

        outcomes = await asyncio.gather(
            *(self._process(item, stats, on_progress) for item in queued),
            return_exceptions=True,
        )
        for item, outcome in zip(queued, outcomes):
            results[item.id] = None if isinstance(outcome, BaseException) else outcome

        logger.info(
            f"📦 Media batch done: {stats.completed - stats.failed} succeeded, "
            f"{stats.failed} failed"
        )
        self.stats = stats
        return results

    async def analyze_single(self, item: MediaItem) -> Optional[MediaAnalysisRecord]:
        results = await self.submit_batch([item])
        return results.get(item.id)


def summarize_results(
    items: Iterable[MediaItem],
    results: dict[str, Optional[MediaAnalysisRecord]],
) -> MediaBatchSummary:
    """Batch overview: counts by kind, outcome and rating, plus brand total."""
    summary = MediaBatchSummary()
    seen = set()
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        summary.total += 1
        if item.kind == "video":
            summary.videos += 1
        elif item.kind == "image":
            summary.images += 1

        record = results.get(item.id)
        if record is None:
            summary.failed += 1
            continue
        summary.successful += 1
        visual = record.visual_summary
        summary.rating_counts[visual.safety_rating] = summary.rating_counts.get(visual.safety_rating, 0) + 1
        summary.brands_detected += len(visual.brands)

    counts = summary.rating_counts
    if counts.get("unsafe", 0) > 0:
        summary.average_safety_rating = "unsafe"
    elif counts.get("caution", 0) > counts.get("safe", 0):
        summary.average_safety_rating = "caution"
    else:
        summary.average_safety_rating = "safe"
    return summary
