"""Creator Safety Vetting - Vetting Pipeline
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

End-to-end vetting of one creator's posts on one platform:

  Tier 0: keyword prefilter + media analysis (independent, both finish first)
  merge:  attach media records and keyword flags to each post
  Tier 1: high-recall screening of every post
  Tier 2: adjudication of flagged posts only
  output: VettingResult, findings (one per confirmed decision), summaries
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from batch_config import CREATOR_CHUNK_PAUSE_SECONDS, CREATOR_CHUNK_SIZE
from image_analyzer import ImageAnalyzer
from keyword_detector import KeywordDetector
from llm_provider import ADJUDICATION_MODELS, SCREENING_MODELS, VISION_MODELS, LLMProvider
from media_queue import MediaAnalysisQueue, MediaBatchSummary, MediaQueueOptions, ProgressCallback, summarize_results
from risk_rollup import post_risk_levels
from screener import ContentScreener, screening_summary
from vetting_agent import VettingAgent, approved_result, fail_safe_result
from video_analyzer import VideoAnalyzer
from vetting_models import (
    CreatorContext,
    Finding,
    KeywordDetectionResult,
    MediaAnalysisRecord,
    SocialPost,
    VettingResult,
)

logger = logging.getLogger(__name__)

FINDING_EXCERPT_CHARS = 200

PLATFORM_LABELS = {
    "instagram": "Instagram",
    "tiktok": "TikTok",
    "youtube": "YouTube",
    "twitter": "X",
    "x": "X",
    "facebook": "Facebook",
}


@dataclass
class BatchOutcome:
    platform: str
    handle: str
    result: VettingResult
    posts: list[SocialPost] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    keyword_results: dict[str, KeywordDetectionResult] = field(default_factory=dict)
    media_summary: MediaBatchSummary = field(default_factory=MediaBatchSummary)
    screening_summary: dict = field(default_factory=dict)
    post_risk: dict[str, str] = field(default_factory=dict)


@dataclass
class CreatorBatch:
    creator: CreatorContext
    platform: str
    posts: list[SocialPost]
    language: str = "en"


def platform_label(platform: str) -> str:
    return PLATFORM_LABELS.get(platform.lower(), platform.title())


def merge_post(
    post: SocialPost,
    keyword_result: Optional[KeywordDetectionResult],
    record: Optional[MediaAnalysisRecord],
) -> SocialPost:
    """Copy of post with its keyword flags and media record attached."""
    transcript = post.transcript
    # A video transcript stands in when the platform gave none
    if not transcript and record is not None and record.transcript is not None and record.transcript.text:
        transcript = record.transcript.text
    return replace(post, keyword_result=keyword_result, media_analysis=record, transcript=transcript)


def build_findings(result: VettingResult, posts: list[SocialPost], platform: str, handle: str) -> list[Finding]:
    """One finding per confirmed decision, joined back to its post."""
    posts_by_id = {p.id: p for p in posts}
    label = platform_label(platform)
    findings = []

    for decision in result.decisions:
        if not decision.is_confirmed_risk:
            continue
        post = posts_by_id.get(decision.post_id)
        headline = decision.concerns[0] if decision.concerns else decision.category.replace("_", " ").title()

        excerpt = ""
        if post is not None:
            content = post.full_content.strip()
            excerpt = content[:FINDING_EXCERPT_CHARS] + ("..." if len(content) > FINDING_EXCERPT_CHARS else "")

        summary = decision.reason
        if excerpt:
            summary = f"{summary}\n\nPost excerpt: \"{excerpt}\""

        findings.append(Finding(
            post_id=decision.post_id,
            platform=platform,
            handle=handle,
            title=f"{label} Post - {headline}",
            summary=summary,
            severity=decision.severity,
            concerns=decision.concerns,
            reason=decision.reason,
            category=decision.category,
            caption_excerpt=excerpt,
            permalink=post.permalink if post else "",
            published_at=post.timestamp if post else "",
            media_locators=(post.media.locator,) if post and post.media else (),
        ))
    return findings


class VettingPipeline:
    """Runs the three tiers for one platform batch at a time."""

    def __init__(
        self,
        keyword_detector: KeywordDetector,
        media_queue: MediaAnalysisQueue,
        screener: ContentScreener,
        vetting_agent: VettingAgent,
    ):
        self.keyword_detector = keyword_detector
        self.media_queue = media_queue
        self.screener = screener
        self.vetting_agent = vetting_agent

    def capabilities(self) -> dict[str, bool]:
        media = self.media_queue.capabilities()
        return {
            "video": media["video"],
            "image": media["image"],
            "screening": self.screener.is_configured,
            "adjudication": self.vetting_agent.is_configured,
        }

    async def vet_batch(
        self,
        posts: list[SocialPost],
        creator: CreatorContext,
        platform: str,
        language: str = "en",
        custom_keywords: Optional[list[str]] = None,
        on_media_progress: Optional[ProgressCallback] = None,
    ) -> BatchOutcome:
        """
        Vet one creator's posts on one platform.

        Never raises: failures inside a stage become that stage's safe
        default, and anything unexpected turns the batch into "review".
        """
        handle = creator.handle
        if not posts:
            logger.info(f"No {platform} posts for {creator.name}, nothing to vet")
            return BatchOutcome(platform=platform, handle=handle, result=approved_result(language))

        logger.info(f"🚀 Vetting {len(posts)} {platform} posts for {creator.name}")
        try:
            return await self._run(posts, creator, platform, language, custom_keywords, on_media_progress)
        except Exception as e:
            logger.error(f"Vetting pipeline failed for {creator.name} on {platform}: {e}")
            return BatchOutcome(platform=platform, handle=handle, result=fail_safe_result(language), posts=list(posts))

    async def _run(self, posts, creator, platform, language, custom_keywords, on_media_progress) -> BatchOutcome:
        # Tier 0
        keyword_results = {
            post.id: self.keyword_detector.detect(post.full_content, language, custom_keywords)
            for post in posts
        }
        media_items = [p.media for p in posts if p.media is not None]
        media_results = await self.media_queue.submit_batch(media_items, on_progress=on_media_progress)

        enriched = [
            merge_post(
                post,
                keyword_results[post.id],
                media_results.get(post.media.id) if post.media is not None else None,
            )
            for post in posts
        ]

        # Tier 1 and 2
        screening = await self.screener.screen(enriched, platform, creator)
        result = await self.vetting_agent.adjudicate(screening, enriched, creator, platform, language)

        findings = build_findings(result, enriched, platform, creator.handle)
        logger.info(
            f"🏁 {creator.name} on {platform}: {len(findings)} findings, "
            f"risk={result.overall_risk}, recommendation={result.recommendation}"
        )

        return BatchOutcome(
            platform=platform,
            handle=creator.handle,
            result=result,
            posts=enriched,
            findings=findings,
            keyword_results=keyword_results,
            media_summary=summarize_results(media_items, media_results),
            screening_summary=screening_summary(screening),
            post_risk=post_risk_levels(result.decisions),
        )

    async def vet_creators(
        self,
        batches: list[CreatorBatch],
        chunk_size: int = CREATOR_CHUNK_SIZE,
        pause: float = CREATOR_CHUNK_PAUSE_SECONDS,
    ) -> list[BatchOutcome]:
        """Vet many batches, chunk_size at a time, pausing between chunks."""
        outcomes: list[BatchOutcome] = []
        chunk_size = max(1, chunk_size)
        for start in range(0, len(batches), chunk_size):
            if start > 0 and pause > 0:
                await asyncio.sleep(pause)
            chunk = batches[start:start + chunk_size]
            outcomes.extend(await asyncio.gather(*(
                self.vet_batch(b.posts, b.creator, b.platform, b.language) for b in chunk
            )))
        return outcomes


def create_pipeline(
    anthropic_api_key: Optional[str] = None,
    openai_api_key: Optional[str] = None,
    twelve_labs_api_key: Optional[str] = None,
    provider: str = "auto",
    queue_options: Optional[MediaQueueOptions] = None,
) -> VettingPipeline:
    """Wire up every component from credentials. Missing keys disable capabilities."""
    def llm(models: dict, label: str) -> LLMProvider:
        return LLMProvider(
            openai_api_key=openai_api_key,
            anthropic_api_key=anthropic_api_key,
            provider=provider,
            default_models=models,
            label=label,
        )

    media_queue = MediaAnalysisQueue(
        video_capability=VideoAnalyzer(api_key=twelve_labs_api_key or ""),
        image_capability=ImageAnalyzer(llm(VISION_MODELS, "Vision")),
        options=queue_options,
    )
    return VettingPipeline(
        keyword_detector=KeywordDetector(),
        media_queue=media_queue,
        screener=ContentScreener(llm(SCREENING_MODELS, "Screening")),
        vetting_agent=VettingAgent(llm(ADJUDICATION_MODELS, "Adjudication")),
    )
